"""
Pydantic schemas for notification analytics.
One result model per analytics view; serialized with camelCase keys.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class AnalyticsView(str, Enum):
    """Aggregation shapes of the unified analytics endpoint."""
    SUMMARY = "summary"
    BY_TELECALLER = "by-telecaller"
    BY_CUSTOMER = "by-customer"
    TIMESERIES = "timeseries"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChannelSummary(CamelModel):
    """Counts for one channel. Engagement fields only apply to some channels."""
    total_sent: int = 0
    unique_customers: int = 0
    delivered: int = 0
    failed: int = 0
    read: int | None = None  # WhatsApp read receipts
    seen: int | None = None  # Email pixel loads
    link_opens: int | None = None  # Email and SMS link opens


class OverallSummary(CamelModel):
    total_messages: int = 0
    # Summed per channel, not deduplicated across channels
    unique_customers: int = 0


class SummaryResult(CamelModel):
    overall: OverallSummary = OverallSummary()
    email: ChannelSummary | None = None
    sms: ChannelSummary | None = None
    whatsapp: ChannelSummary | None = None


class ChannelCount(CamelModel):
    sent: int = 0
    unique: int = 0


class SenderBreakdown(CamelModel):
    telecaller_id: int
    full_name: str | None = None
    username: str | None = None
    total_sent: int = 0
    email: ChannelCount | None = None
    sms: ChannelCount | None = None
    whatsapp: ChannelCount | None = None


class CustomerContact(CamelModel):
    phone: str | None = None
    email: str | None = None


class CustomerStats(CamelModel):
    total: int = 0
    last_contact: datetime | None = None
    email: int | None = None
    sms: int | None = None
    whatsapp: int | None = None


class CustomerBreakdown(CamelModel):
    id: int
    name: str | None = None
    vehicle: str | None = None
    contact: CustomerContact = CustomerContact()
    stats: CustomerStats = CustomerStats()


class TimeseriesPoint(CamelModel):
    date: str
    email: int | None = None
    sms: int | None = None
    whatsapp: int | None = None


class DateRange(CamelModel):
    start: datetime | None = None
    end: datetime | None = None


class AppliedFilters(CamelModel):
    """Filters echoed back with every unified analytics response."""
    channel: str = "all"
    view: AnalyticsView = AnalyticsView.SUMMARY
    telecaller_id: Optional[int] = None
    customer_id: Optional[int] = None
    date_range: DateRange = DateRange()

