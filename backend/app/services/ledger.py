"""
Delivery ledger: one row per outbound message attempt per channel.

Status updates are single conditional UPDATE statements keyed by the
provider message id, so duplicate or late callbacks cannot regress a row
and concurrent callbacks cannot lose an update.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import EmailDispatch, Telecaller, WhatsappDispatch
from app.services.channels import (
    Channel,
    DeliveryStatus,
    UNKNOWN_PREFIX,
    model_for,
    overwritable_statuses,
)

logger = logging.getLogger(__name__)


def dispatch_to_dict(channel: Channel, record: Any, sender_name: Optional[str] = None) -> Dict[str, Any]:
    data = {
        "id": record.id,
        "channel": channel.value,
        "customer_id": record.customer_id,
        "insight_id": record.insight_id,
        "sender_id": record.sender_id,
        "sender_name": sender_name,
        "provider_message_id": record.provider_message_id,
        "to": record.to_address,
        "body": record.body,
        "status": record.status,
        "sent_at": record.sent_at.isoformat() if record.sent_at else None,
    }
    if channel == Channel.EMAIL:
        data["subject"] = record.subject
        data["seen_at"] = record.seen_at.isoformat() if record.seen_at else None
    elif channel == Channel.WHATSAPP:
        data["read_at"] = record.read_at.isoformat() if record.read_at else None
    return data


def is_dispatched(model):
    """Rows that reached the provider. Email drafts have no provider id yet."""
    return model.provider_message_id.isnot(None)


class DeliveryLedger:
    """Persistence for dispatch records across the three channel tables."""

    async def reserve(
        self,
        session: AsyncSession,
        customer_id: int,
        insight_id: Optional[int] = None,
        sender_id: Optional[int] = None,
        to_address: Optional[str] = None,
        subject: Optional[str] = None,
    ) -> EmailDispatch:
        """Create a ``pending`` email draft so its id can go into the pixel URL."""
        draft = EmailDispatch(
            customer_id=customer_id,
            insight_id=insight_id,
            sender_id=sender_id,
            to_address=to_address,
            subject=subject,
            status=DeliveryStatus.PENDING.value,
            sent_at=datetime.utcnow(),
        )
        session.add(draft)
        await session.commit()
        await session.refresh(draft)
        return draft

    async def finalize(
        self,
        session: AsyncSession,
        draft: EmailDispatch,
        provider_message_id: str,
        status: str,
        body: str,
    ) -> EmailDispatch:
        """Back-fill a reserved draft once the transport accepted the message."""
        draft.provider_message_id = provider_message_id
        draft.status = status
        draft.body = body
        draft.sent_at = datetime.utcnow()
        await session.commit()
        await session.refresh(draft)
        return draft

    async def discard(self, session: AsyncSession, draft: EmailDispatch) -> None:
        """Remove a draft whose send never reached the provider."""
        await session.execute(
            delete(EmailDispatch)
            .where(EmailDispatch.id == draft.id)
            .where(EmailDispatch.provider_message_id.is_(None))
        )
        await session.commit()

    async def record(
        self,
        session: AsyncSession,
        channel: Channel,
        customer_id: int,
        provider_message_id: str,
        status: str,
        body: str,
        to_address: Optional[str] = None,
        insight_id: Optional[int] = None,
        sender_id: Optional[int] = None,
    ):
        """Persist a message the provider already accepted (SMS and WhatsApp)."""
        model = model_for(channel)
        row = model(
            customer_id=customer_id,
            insight_id=insight_id,
            sender_id=sender_id,
            provider_message_id=provider_message_id,
            to_address=to_address,
            body=body,
            status=status,
            sent_at=datetime.utcnow(),
        )
        session.add(row)
        await session.commit()
        await session.refresh(row)
        return row

    def build_status_update(
        self,
        channel: Channel,
        provider_message_id: str,
        new_status: str,
        at: Optional[datetime] = None,
    ):
        model = model_for(channel)
        at = at or datetime.utcnow()

        values: Dict[str, Any] = {"status": new_status, "updated_at": at}
        if channel == Channel.WHATSAPP and new_status == DeliveryStatus.READ.value:
            values["read_at"] = func.coalesce(WhatsappDispatch.read_at, at)

        return (
            update(model)
            .where(model.provider_message_id == provider_message_id)
            .where(
                or_(
                    model.status.in_(overwritable_statuses(new_status)),
                    model.status.is_(None),
                    model.status.like(f"{UNKNOWN_PREFIX}%"),
                )
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )

    async def update_status(
        self,
        session: AsyncSession,
        channel: Channel,
        provider_message_id: str,
        new_status: str,
        at: Optional[datetime] = None,
    ) -> bool:
        """Apply a provider status. Returns False for unknown ids and stale statuses."""
        result = await session.execute(
            self.build_status_update(channel, provider_message_id, new_status, at)
        )
        await session.commit()

        if not result.rowcount:
            logger.info(
                "No %s ledger row updated for %s -> %s (unknown id or stale status)",
                channel.value, provider_message_id, new_status,
            )
            return False
        return True

    async def mark_seen(self, session: AsyncSession, dispatch_id: int, at: Optional[datetime] = None) -> bool:
        """Stamp the first pixel load of an email. Later loads keep the first time."""
        at = at or datetime.utcnow()
        result = await session.execute(
            update(EmailDispatch)
            .where(EmailDispatch.id == dispatch_id)
            .values(seen_at=func.coalesce(EmailDispatch.seen_at, at))
            .execution_options(synchronize_session=False)
        )
        await session.commit()
        return bool(result.rowcount)

    async def list_by_customer(
        self, session: AsyncSession, channel: Channel, customer_id: int
    ) -> List[Dict[str, Any]]:
        """Dispatches to a customer on one channel, newest first."""
        model = model_for(channel)
        result = await session.execute(
            select(model, Telecaller.full_name)
            .outerjoin(Telecaller, model.sender_id == Telecaller.id)
            .where(model.customer_id == customer_id)
            .order_by(model.sent_at.desc())
        )
        return [dispatch_to_dict(channel, row, sender_name) for row, sender_name in result.all()]

    async def channel_overview(self, session: AsyncSession, channel: Channel, recent: int = 10) -> Dict[str, Any]:
        """Totals, delivery/engagement counts and the latest dispatches for a channel."""
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
            columns.append(func.count(model.read_at))

        totals = (await session.execute(select(*columns).where(is_dispatched(model)))).one()
        total_sent = totals[0] or 0
        engaged = (totals[4] or 0) if len(totals) > 4 else None

        recent_result = await session.execute(
            select(model, Telecaller.full_name)
            .outerjoin(Telecaller, model.sender_id == Telecaller.id)
            .where(is_dispatched(model))
            .order_by(model.sent_at.desc())
            .limit(recent)
        )

        overview: Dict[str, Any] = {
            "channel": channel.value,
            "total_sent": total_sent,
            "unique_customers": totals[1] or 0,
            "delivered": totals[2] or 0,
            "failed": totals[3] or 0,
            "recent": [dispatch_to_dict(channel, row, name) for row, name in recent_result.all()],
        }
        if engaged is not None:
            key = "seen" if channel == Channel.EMAIL else "read"
            overview[key] = engaged
            overview[f"{key}_rate"] = round(engaged / total_sent * 100, 2) if total_sent else 0.0
        return overview


ledger = DeliveryLedger()
