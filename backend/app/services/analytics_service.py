"""
Cross-channel notification analytics.

Each channel table is aggregated independently and merged in Python, keyed
by sender id, customer id or date. Nothing here writes. Missing data
always comes back as zeros.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from redis.exceptions import RedisError
from sqlalchemy import exists, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import CustomerNotFound, NotificationError
from app.db.redis import redis_client
from app.models import Customer, SourceMetric, Telecaller
from app.schemas.analytics import (
    AnalyticsView,
    AppliedFilters,
    ChannelCount,
    ChannelSummary,
    CustomerBreakdown,
    CustomerContact,
    CustomerStats,
    DateRange,
    OverallSummary,
    SenderBreakdown,
    SummaryResult,
    TimeseriesPoint,
)
from app.services.channels import Channel, DeliveryStatus, LINK_SOURCES, model_for
from app.services.ledger import DeliveryLedger, is_dispatched, ledger
from app.services.tracking_service import LinkOpenTracker, link_tracker

logger = logging.getLogger(__name__)

ALL_CHANNELS = (Channel.EMAIL, Channel.SMS, Channel.WHATSAPP)


@dataclass
class AnalyticsFilters:
    channel: Optional[Channel] = None  # None means all channels
    view: AnalyticsView = AnalyticsView.SUMMARY
    telecaller_id: Optional[int] = None
    customer_id: Optional[int] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    page: int = 1
    limit: int = 50
    sort_by: str = "date"
    sort_order: str = "desc"
    group_by: str = "day"

    @property
    def channels(self) -> tuple:
        return ALL_CHANNELS if self.channel is None else (self.channel,)

    @property
    def channel_name(self) -> str:
        return self.channel.value if self.channel else "all"

    def applied(self) -> AppliedFilters:
        return AppliedFilters(
            channel=self.channel_name,
            view=self.view,
            telecaller_id=self.telecaller_id,
            customer_id=self.customer_id,
            date_range=DateRange(start=self.start, end=self.end),
        )

    def cache_key(self) -> str:
        raw = json.dumps(asdict(self), default=str, sort_keys=True)
        return f"analytics:{self.view.value}:{hashlib.sha1(raw.encode()).hexdigest()}"


def _where(model, filters: AnalyticsFilters, sender: bool = True, customer: bool = True, dates: bool = True) -> list:
    clauses = [is_dispatched(model)]
    if sender and filters.telecaller_id is not None:
        clauses.append(model.sender_id == filters.telecaller_id)
    if customer and filters.customer_id is not None:
        clauses.append(model.customer_id == filters.customer_id)
    if dates and filters.start is not None:
        clauses.append(model.sent_at >= filters.start)
    if dates and filters.end is not None:
        clauses.append(model.sent_at <= filters.end)
    return clauses


class AnalyticsService:
    """Summary, per-sender, per-customer and time-series views over the ledger."""

    def __init__(self, ledger_: Optional[DeliveryLedger] = None, tracker: Optional[LinkOpenTracker] = None):
        self.ledger = ledger_ or ledger
        self.tracker = tracker or link_tracker

    async def run(self, session: AsyncSession, filters: AnalyticsFilters):
        if filters.view == AnalyticsView.SUMMARY:
            return await self.summary(session, filters)
        if filters.view == AnalyticsView.BY_TELECALLER:
            return await self.by_sender(session, filters)
        if filters.view == AnalyticsView.BY_CUSTOMER:
            return await self.by_customer(session, filters)
        if filters.view == AnalyticsView.TIMESERIES:
            return await self.timeseries(session, filters)
        raise NotificationError(f"Invalid view: {filters.view}")

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    async def summary(self, session: AsyncSession, filters: AnalyticsFilters) -> SummaryResult:
        cached = await self._cache_get(filters)
        if cached is not None:
            return SummaryResult.model_validate(cached)

        result = SummaryResult()
        for channel in filters.channels:
            setattr(result, channel.value, await self._channel_summary(session, channel, filters))

        link_opens = await self._link_opens(session, filters)
        for source, opens in link_opens.items():
            summary = getattr(result, source)
            if summary is not None:
                summary.link_opens = opens

        selected = [getattr(result, c.value) for c in filters.channels]
        result.overall = OverallSummary(
            total_messages=sum(s.total_sent for s in selected),
            unique_customers=sum(s.unique_customers for s in selected),
        )

        await self._cache_set(filters, result.model_dump(mode="json"))
        return result

    async def _channel_summary(
        self, session: AsyncSession, channel: Channel, filters: AnalyticsFilters
    ) -> ChannelSummary:
        model = model_for(channel)
        columns = [
            func.count(model.id),
            func.count(func.distinct(model.customer_id)),
            func.count(model.id).filter(model.status == DeliveryStatus.DELIVERED.value),
            func.count(model.id).filter(
                model.status.in_([DeliveryStatus.FAILED.value, DeliveryStatus.UNDELIVERED.value])
            ),
        ]
        if channel == Channel.EMAIL:
            columns.append(func.count(model.seen_at))
        elif channel == Channel.WHATSAPP:
            columns.append(func.count(model.id).filter(model.status == DeliveryStatus.READ.value))

        row = (await session.execute(select(*columns).where(*_where(model, filters)))).one()
        summary = ChannelSummary(
            total_sent=row[0] or 0,
            unique_customers=row[1] or 0,
            delivered=row[2] or 0,
            failed=row[3] or 0,
        )
        if channel == Channel.EMAIL:
            summary.seen = row[4] or 0
        elif channel == Channel.WHATSAPP:
            summary.read = row[4] or 0
        if channel.value in LINK_SOURCES:
            summary.link_opens = 0
        return summary

    async def _link_opens(self, session: AsyncSession, filters: AnalyticsFilters) -> Dict[str, int]:
        """Total opens per link source. Opens are not attributed to a sender or date."""
        sources = [c.value for c in filters.channels if c.value in LINK_SOURCES]
        if not sources:
            return {}

        query = (
            select(SourceMetric.source, func.coalesce(func.sum(SourceMetric.open_count), 0))
            .where(SourceMetric.source.in_(sources))
            .group_by(SourceMetric.source)
        )
        if filters.customer_id is not None:
            query = query.where(SourceMetric.customer_id == filters.customer_id)

        result = await session.execute(query)
        return {source: int(total or 0) for source, total in result.all()}

    # ------------------------------------------------------------------
    # By sender
    # ------------------------------------------------------------------

    async def by_sender(self, session: AsyncSession, filters: AnalyticsFilters) -> List[SenderBreakdown]:
        counts: Dict[Channel, Dict[int, ChannelCount]] = {}
        for channel in filters.channels:
            model = model_for(channel)
            result = await session.execute(
                select(model.sender_id, func.count(model.id), func.count(func.distinct(model.customer_id)))
                .where(*_where(model, filters, sender=False))
                .group_by(model.sender_id)
            )
            counts[channel] = {
                sender_id: ChannelCount(sent=sent or 0, unique=unique or 0)
                for sender_id, sent, unique in result.all()
                if sender_id is not None
            }

        query = select(Telecaller).order_by(Telecaller.id)
        if filters.telecaller_id is not None:
            query = query.where(Telecaller.id == filters.telecaller_id)
        telecallers = (await session.execute(query)).scalars().all()

        rows: List[SenderBreakdown] = []
        for telecaller in telecallers:
            row = SenderBreakdown(
                telecaller_id=telecaller.id,
                full_name=telecaller.full_name,
                username=telecaller.username,
            )
            for channel in filters.channels:
                count = counts[channel].get(telecaller.id, ChannelCount())
                setattr(row, channel.value, count)
                row.total_sent += count.sent
            rows.append(row)

        if filters.sort_by == "count":
            rows.sort(key=lambda r: r.total_sent, reverse=filters.sort_order != "asc")
        return rows

    # ------------------------------------------------------------------
    # By customer
    # ------------------------------------------------------------------

    def build_customer_query(self, filters: AnalyticsFilters):
        columns = []
        for channel in ALL_CHANNELS:
            model = model_for(channel)
            columns.append(
                select(func.count(model.id))
                .where(model.customer_id == Customer.id, *_where(model, filters, customer=False))
                .scalar_subquery()
                .label(f"{channel.value}_count")
            )
            columns.append(
                select(func.max(model.sent_at))
                .where(model.customer_id == Customer.id, *_where(model, filters, customer=False, dates=False))
                .scalar_subquery()
                .label(f"{channel.value}_last")
            )

        query = select(
            Customer.id,
            Customer.customer_name,
            Customer.vehicle_number,
            Customer.phone,
            Customer.email,
            *columns,
        )
        if filters.customer_id is not None:
            query = query.where(Customer.id == filters.customer_id)
        if filters.telecaller_id is not None:
            query = query.where(or_(*[
                exists().where(
                    model_for(channel).customer_id == Customer.id,
                    model_for(channel).sender_id == filters.telecaller_id,
                )
                for channel in ALL_CHANNELS
            ]))

        page = max(filters.page, 1)
        return (
            query.order_by(Customer.id.desc())
            .limit(filters.limit)
            .offset((page - 1) * filters.limit)
        )

    async def by_customer(self, session: AsyncSession, filters: AnalyticsFilters) -> List[CustomerBreakdown]:
        result = await session.execute(self.build_customer_query(filters))

        rows: List[CustomerBreakdown] = []
        for record in result.mappings().all():
            stats = CustomerStats()
            last_contacts = []
            for channel in filters.channels:
                count = int(record[f"{channel.value}_count"] or 0)
                setattr(stats, channel.value, count)
                stats.total += count
                if record[f"{channel.value}_last"] is not None:
                    last_contacts.append(record[f"{channel.value}_last"])
            stats.last_contact = max(last_contacts) if last_contacts else None

            rows.append(CustomerBreakdown(
                id=record["id"],
                name=record["customer_name"],
                vehicle=record["vehicle_number"],
                contact=CustomerContact(phone=record["phone"], email=record["email"]),
                stats=stats,
            ))
        return rows

    # ------------------------------------------------------------------
    # Time series
    # ------------------------------------------------------------------

    async def timeseries(self, session: AsyncSession, filters: AnalyticsFilters) -> List[TimeseriesPoint]:
        trunc = "month" if filters.group_by == "month" else "day"
        points: Dict[str, TimeseriesPoint] = {}

        for channel in filters.channels:
            model = model_for(channel)
            bucket = func.date_trunc(trunc, model.sent_at).label("bucket")
            result = await session.execute(
                select(bucket, func.count(model.id))
                .where(*_where(model, filters))
                .group_by(bucket)
            )
            for bucket_start, count in result.all():
                key = bucket_start.date().isoformat()
                if key not in points:
                    points[key] = TimeseriesPoint(
                        date=key, **{c.value: 0 for c in filters.channels}
                    )
                setattr(points[key], channel.value, count or 0)

        return [points[key] for key in sorted(points)]

    # ------------------------------------------------------------------
    # Single customer
    # ------------------------------------------------------------------

    async def customer_engagement(self, session: AsyncSession, customer_id: int) -> Dict[str, Any]:
        customer = await session.get(Customer, customer_id)
        if customer is None:
            raise CustomerNotFound(customer_id)

        history = {
            channel: await self.ledger.list_by_customer(session, channel, customer_id)
            for channel in ALL_CHANNELS
        }
        link_opens = await self.tracker.by_customer(session, customer_id)

        timeline = [
            {"type": channel.value, "date": item["sent_at"], "data": item}
            for channel, items in history.items()
            for item in items
        ]
        timeline.sort(key=lambda entry: entry["date"] or "", reverse=True)

        return {
            "customer": {
                "id": customer.id,
                "name": customer.customer_name,
                "vehicle": customer.vehicle_number,
            },
            "engagement": {
                "totalEmails": len(history[Channel.EMAIL]),
                "totalSms": len(history[Channel.SMS]),
                "totalWhatsapp": len(history[Channel.WHATSAPP]),
                "linkOpens": link_opens,
            },
            "timeline": timeline,
        }

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    async def _cache_get(self, filters: AnalyticsFilters) -> Optional[Dict[str, Any]]:
        if settings.analytics_cache_ttl <= 0:
            return None
        try:
            return await redis_client.get_json(filters.cache_key())
        except (RedisError, OSError) as e:
            logger.warning("Analytics cache read failed: %s", e)
            return None

    async def _cache_set(self, filters: AnalyticsFilters, value: Dict[str, Any]) -> None:
        if settings.analytics_cache_ttl <= 0:
            return
        try:
            await redis_client.set_json(filters.cache_key(), value, ex=settings.analytics_cache_ttl)
        except (RedisError, OSError) as e:
            logger.warning("Analytics cache write failed: %s", e)


analytics_service = AnalyticsService()
