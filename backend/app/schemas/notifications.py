"""
Pydantic schemas for insight send requests.
Accepts both camelCase and snake_case field names.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import Field

from app.schemas.analytics import CamelModel


class SendInsightRequest(CamelModel):
    """Send one customer's insight on a channel."""
    customer_id: int = Field(..., ge=1)
    insight_id: Optional[int] = Field(default=None, ge=1)  # Latest insight when omitted


class BulkRecipientIn(CamelModel):
    customer_id: int = Field(..., ge=1)
    insight_id: Optional[int] = Field(default=None, ge=1)


class SendBulkRequest(CamelModel):
    """Send to many customers, one after another."""
    recipients: List[BulkRecipientIn] = Field(..., min_length=1, max_length=500)
    queue: bool = False  # Hand the batch to a Celery worker
