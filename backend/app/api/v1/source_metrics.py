"""
Customer-view link open tracking and reporting.

The open endpoint is public: it is called by the customer-facing page the
tracking link points to. Reporting endpoints require an operator token.

Routes:
    GET /source-metrics/analytics                - Reach versus opens per source
    GET /source-metrics/by-source?source=        - Openers of one source
    GET /source-metrics/customer/{customer_id}   - One customer's open counters
    GET /source-metrics/{customer_id}?source=    - Record a link open
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.common import parse_id, raise_http
from app.core.exceptions import NotificationError
from app.core.security import TokenData, require_auth
from app.db.postgres import get_db_session
from app.services.tracking_service import link_tracker

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/source-metrics", tags=["Source Metrics"])


@router.get("/analytics")
async def get_source_analytics(
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    return {"success": True, "data": await link_tracker.source_analytics(session)}


@router.get("/by-source")
async def get_by_source(
    source: Optional[str] = Query(None, description="email or sms"),
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        data = await link_tracker.by_source(session, source)
    except NotificationError as e:
        raise_http(e)
    return {"success": True, "data": data}


@router.get("/customer/{customer_id}")
async def get_customer_metrics(
    customer_id: str,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        parsed = parse_id(customer_id, "customer ID")
    except NotificationError as e:
        raise_http(e)
    return {"success": True, "data": await link_tracker.by_customer(session, parsed)}


@router.get("/{customer_id}")
async def track_link_open(
    customer_id: str,
    source: Optional[str] = Query(None, description="email or sms"),
    session: AsyncSession = Depends(get_db_session),
):
    """Count a customer-view link open for (customer, source)."""
    try:
        metric = await link_tracker.track_open(session, parse_id(customer_id, "customer ID"), source)
    except NotificationError as e:
        raise_http(e)

    return {"success": True, "message": "Link open tracked successfully", "data": metric}
