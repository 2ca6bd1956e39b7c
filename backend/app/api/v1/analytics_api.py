"""
Unified notification analytics API.

One query endpoint serves the summary, by-telecaller, by-customer and
timeseries views over the email, SMS and WhatsApp ledgers plus link-open
metrics. Summary results are cached in Redis for a short TTL.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from dateutil import parser as date_parser
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.common import parse_id, parse_optional_id, raise_http
from app.core.exceptions import InvalidIdentifier, NotificationError
from app.core.security import TokenData, require_auth
from app.db.postgres import get_db_session
from app.schemas.analytics import AnalyticsView
from app.services.analytics_service import AnalyticsFilters, analytics_service
from app.services.channels import parse_channel
from app.services.tracking_service import link_tracker

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analytics", tags=["Analytics"])


def _parse_date(value: Optional[str], name: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = date_parser.parse(value)
    except (ValueError, OverflowError):
        raise InvalidIdentifier(name, value)
    # Stored timestamps are naive UTC
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _parse_view(value: str) -> AnalyticsView:
    try:
        return AnalyticsView(value)
    except ValueError:
        raise NotificationError(
            'Invalid view. Must be "summary", "by-telecaller", "by-customer" or "timeseries"'
        )


def _dump(result):
    if isinstance(result, list):
        return [item.model_dump(mode="json", by_alias=True, exclude_none=True) for item in result]
    return result.model_dump(mode="json", by_alias=True, exclude_none=True)


@router.get("")
async def get_unified_analytics(
    channel: str = Query("all", description="all, email, sms or whatsapp"),
    view: str = Query("summary", description="summary, by-telecaller, by-customer or timeseries"),
    telecaller_id: Optional[str] = Query(None, alias="telecallerId"),
    customer_id: Optional[str] = Query(None, alias="customerId"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    sort_by: str = Query("date", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder", pattern="^(asc|desc)$"),
    group_by: str = Query("day", alias="groupBy", pattern="^(day|month)$"),
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    """Cross-channel analytics. Without a telecallerId, stats cover every sender."""
    try:
        filters = AnalyticsFilters(
            channel=parse_channel(channel, allow_all=True),
            view=_parse_view(view),
            telecaller_id=parse_optional_id(telecaller_id, "telecaller ID"),
            customer_id=parse_optional_id(customer_id, "customer ID"),
            start=_parse_date(start_date, "startDate"),
            end=_parse_date(end_date, "endDate"),
            page=page,
            limit=limit,
            sort_by=sort_by,
            sort_order=sort_order,
            group_by=group_by,
        )
        result = await analytics_service.run(session, filters)
    except NotificationError as e:
        raise_http(e)

    return {
        "success": True,
        "data": {
            "filters": filters.applied().model_dump(mode="json", by_alias=True),
            "result": _dump(result),
        },
    }


@router.get("/engagement/{customer_id}")
async def get_customer_engagement(
    customer_id: str,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    """Per-channel counts, link opens and a newest-first timeline for one customer."""
    try:
        data = await analytics_service.customer_engagement(session, parse_id(customer_id, "customer ID"))
    except NotificationError as e:
        raise_http(e)
    return {"success": True, "data": data}


@router.get("/track/{customer_id}")
async def track_link_open(
    customer_id: str,
    source: Optional[str] = Query(None, description="email or sms"),
    session: AsyncSession = Depends(get_db_session),
):
    """Same as GET /source-metrics/{customer_id}; kept for older customer-view links."""
    try:
        metric = await link_tracker.track_open(session, parse_id(customer_id, "customer ID"), source)
    except NotificationError as e:
        raise_http(e)
    return {"success": True, "data": metric}
