"""
Link-open tracking.

Each (customer, source) pair owns exactly one ``source_metrics`` row. Opens
are recorded with a single ``INSERT .. ON CONFLICT DO UPDATE`` so concurrent
opens never lose an increment and ``first_opened_at`` is written only once.

Sources are ``email`` and ``sms``; WhatsApp engagement comes from provider
read receipts on the dispatch row instead.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import CustomerNotFound, DispatchNotFound, InvalidSource
from app.models import Customer, EmailDispatch, SmsDispatch, SourceMetric
from app.services.channels import Channel, LINK_SOURCES
from app.services.ledger import DeliveryLedger, is_dispatched, ledger

logger = logging.getLogger(__name__)

SOURCE_MODELS = {
    Channel.EMAIL.value: EmailDispatch,
    Channel.SMS.value: SmsDispatch,
}


def normalize_source(source: Optional[str]) -> str:
    """Lower-cased source name. Raises InvalidSource for anything but email/sms."""
    normalized = (source or "").strip().lower()
    if normalized not in LINK_SOURCES:
        raise InvalidSource(source)
    return normalized


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _percent(part: int, whole: int) -> str:
    return f"{(part / whole * 100) if whole else 0:.2f}%"


class LinkOpenTracker:
    """Records and reports customer link opens per source."""

    def __init__(self, ledger_: Optional[DeliveryLedger] = None):
        self.ledger = ledger_ or ledger

    def build_open_upsert(self, customer_id: int, source: str, at: datetime):
        stmt = insert(SourceMetric).values(
            customer_id=customer_id,
            source=source,
            open_count=1,
            first_opened_at=at,
            last_opened_at=at,
        )
        return stmt.on_conflict_do_update(
            index_elements=[SourceMetric.customer_id, SourceMetric.source],
            set_={
                "open_count": SourceMetric.open_count + 1,
                "last_opened_at": stmt.excluded.last_opened_at,
            },
        ).returning(
            SourceMetric.open_count,
            SourceMetric.first_opened_at,
            SourceMetric.last_opened_at,
        )

    async def _upsert_open(self, session: AsyncSession, customer_id: int, source: str) -> Dict[str, Any]:
        result = await session.execute(self.build_open_upsert(customer_id, source, datetime.utcnow()))
        row = result.one()
        await session.commit()
        return {
            "customerId": customer_id,
            "source": source,
            "openCount": row.open_count,
            "firstOpenedAt": _iso(row.first_opened_at),
            "lastOpenedAt": _iso(row.last_opened_at),
        }

    async def track_open(self, session: AsyncSession, customer_id: int, source: Optional[str]) -> Dict[str, Any]:
        """Record a link open from a customer-view link."""
        source = normalize_source(source)

        exists = await session.execute(select(Customer.id).where(Customer.id == customer_id))
        if exists.scalar_one_or_none() is None:
            raise CustomerNotFound(customer_id)

        metric = await self._upsert_open(session, customer_id, source)
        logger.info(
            "Link opened by customer %s from %s. Total opens: %s",
            customer_id, source, metric["openCount"],
        )
        return metric

    async def track_pixel(self, session: AsyncSession, dispatch_id: int) -> None:
        """Record an email pixel load: stamp seen and count an email open."""
        result = await session.execute(
            select(EmailDispatch.customer_id).where(EmailDispatch.id == dispatch_id)
        )
        customer_id = result.scalar_one_or_none()
        if customer_id is None:
            raise DispatchNotFound(Channel.EMAIL.value, dispatch_id)

        await self.ledger.mark_seen(session, dispatch_id)
        await self._upsert_open(session, customer_id, Channel.EMAIL.value)

    async def by_customer(self, session: AsyncSession, customer_id: int) -> List[Dict[str, Any]]:
        result = await session.execute(
            select(SourceMetric)
            .where(SourceMetric.customer_id == customer_id)
            .order_by(SourceMetric.last_opened_at.desc())
        )
        return [self._metric_to_dict(m) for m in result.scalars().all()]

    async def by_source(self, session: AsyncSession, source: Optional[str]) -> Dict[str, Any]:
        source = normalize_source(source)
        result = await session.execute(
            select(SourceMetric, Customer)
            .join(Customer, SourceMetric.customer_id == Customer.id)
            .where(SourceMetric.source == source)
            .order_by(SourceMetric.last_opened_at.desc())
        )
        rows = result.all()
        return {
            "source": source,
            "totalCustomersOpened": len(rows),
            "totalOpens": sum(m.open_count or 0 for m, _ in rows),
            "customers": [self._metric_to_dict(m, c) for m, c in rows],
        }

    async def source_analytics(self, session: AsyncSession, recent: int = 10) -> Dict[str, Any]:
        """Per-source reach versus opens, plus overall sums and latest opens."""
        data: Dict[str, Any] = {}
        for source, model in SOURCE_MODELS.items():
            sent = (await session.execute(
                select(func.count(model.id), func.count(func.distinct(model.customer_id)))
                .where(is_dispatched(model))
            )).one()
            opens = (await session.execute(
                select(func.count(SourceMetric.id), func.coalesce(func.sum(SourceMetric.open_count), 0))
                .where(SourceMetric.source == source)
            )).one()

            total_sent, unique_sent = sent[0] or 0, sent[1] or 0
            opened, total_opens = opens[0] or 0, int(opens[1] or 0)
            not_opened = max(unique_sent - opened, 0)

            data[source] = {
                "totalMessagesSent": total_sent,
                "uniqueCustomersSent": unique_sent,
                "customersOpened": opened,
                "customersNotOpened": not_opened,
                "totalOpens": total_opens,
                "openRate": _percent(opened, unique_sent),
                "notOpenedRate": _percent(not_opened, unique_sent),
                "metrics": {
                    "averageOpensPerCustomer": f"{(total_opens / opened) if opened else 0:.2f}",
                },
            }

        data["overall"] = {
            "totalMessagesSent": sum(data[s]["totalMessagesSent"] for s in SOURCE_MODELS),
            "totalCustomersReached": sum(data[s]["uniqueCustomersSent"] for s in SOURCE_MODELS),
            "totalCustomersOpened": sum(data[s]["customersOpened"] for s in SOURCE_MODELS),
            "totalCustomersNotOpened": sum(data[s]["customersNotOpened"] for s in SOURCE_MODELS),
            "totalOpens": sum(data[s]["totalOpens"] for s in SOURCE_MODELS),
        }

        recent_result = await session.execute(
            select(SourceMetric, Customer)
            .join(Customer, SourceMetric.customer_id == Customer.id)
            .order_by(SourceMetric.last_opened_at.desc())
            .limit(recent)
        )
        data["recentOpens"] = [self._metric_to_dict(m, c) for m, c in recent_result.all()]
        return data

    def _metric_to_dict(self, metric: SourceMetric, customer: Optional[Customer] = None) -> Dict[str, Any]:
        data = {
            "customerId": metric.customer_id,
            "source": metric.source,
            "openCount": metric.open_count,
            "firstOpenedAt": _iso(metric.first_opened_at),
            "lastOpenedAt": _iso(metric.last_opened_at),
        }
        if customer is not None:
            data["customerName"] = customer.customer_name
            data["vehicleNumber"] = customer.vehicle_number
        return data


link_tracker = LinkOpenTracker()
