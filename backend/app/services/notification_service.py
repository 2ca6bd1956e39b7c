"""
Insight notification orchestration: resolve customer and insight, mint a
tracking reference, compose and dispatch on the requested channel.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import CustomerNotFound, InsightNotFound, InvalidIdentifier, NotificationError
from app.models import Customer, ServiceInsight
from app.services.channels import Channel
from app.services.composer import (
    MessageComposer,
    VehicleData,
    build_tracking_url,
    composer,
    email_subject,
    make_tracking_ref,
)
from app.services.dispatcher import DispatchResult, get_dispatcher

logger = logging.getLogger(__name__)


@dataclass
class BulkRecipient:
    customer_id: int
    insight_id: Optional[int] = None

    @staticmethod
    def customer_ref(item: Any) -> Any:
        if isinstance(item, BulkRecipient):
            return item.customer_id
        if isinstance(item, dict):
            return item.get("customer_id", item.get("customerId"))
        return None

    @classmethod
    def coerce(cls, item: Union["BulkRecipient", Dict[str, Any]]) -> "BulkRecipient":
        """Accept snake_case or camelCase keys. Raises InvalidIdentifier for malformed entries."""
        if isinstance(item, cls):
            return item
        customer_id = cls.customer_ref(item)
        insight_id = item.get("insight_id", item.get("insightId")) if isinstance(item, dict) else None
        try:
            return cls(customer_id=int(customer_id), insight_id=int(insight_id) if insight_id is not None else None)
        except (TypeError, ValueError):
            raise InvalidIdentifier("recipient", str(item))


class NotificationService:
    def __init__(self, composer_: Optional[MessageComposer] = None, dispatchers=None):
        self.composer = composer_ or composer
        self._dispatchers = dispatchers

    def dispatcher_for(self, channel: Channel):
        if self._dispatchers is not None:
            return self._dispatchers[channel]
        return get_dispatcher(channel)

    async def get_customer(self, session: AsyncSession, customer_id: int) -> Customer:
        customer = await session.get(Customer, customer_id)
        if customer is None:
            raise CustomerNotFound(customer_id)
        return customer

    async def resolve_insight(
        self, session: AsyncSession, customer_id: int, insight_id: Optional[int] = None
    ) -> ServiceInsight:
        """The requested insight, or the customer's most recent one."""
        query = select(ServiceInsight).where(ServiceInsight.customer_id == customer_id)
        if insight_id is not None:
            query = query.where(ServiceInsight.id == insight_id)
        else:
            query = query.order_by(ServiceInsight.generated_at.desc()).limit(1)

        result = await session.execute(query)
        insight = result.scalars().first()
        if insight is None:
            raise InsightNotFound(customer_id, insight_id)
        return insight

    async def send_insight_message(
        self,
        session: AsyncSession,
        channel: Channel,
        customer_id: int,
        insight_id: Optional[int] = None,
        sender_id: Optional[int] = None,
    ) -> DispatchResult:
        dispatcher = self.dispatcher_for(channel)

        customer = await self.get_customer(session, customer_id)
        dispatcher.resolve_address(customer)
        insight = await self.resolve_insight(session, customer_id, insight_id)

        vehicle = VehicleData.from_customer(customer)
        tracking_ref = make_tracking_ref(channel, customer.id)
        tracking_url = build_tracking_url(customer.id, channel, tracking_ref)
        insights = insight.insights_json or {}

        async def compose(pixel_url: Optional[str]) -> str:
            return await self.composer.compose(
                channel,
                vehicle,
                insights,
                customer.customer_name,
                tracking_url,
                pixel_url=pixel_url,
            )

        return await dispatcher.dispatch(
            session,
            customer,
            compose,
            insight_id=insight.id,
            sender_id=sender_id,
            subject=email_subject(vehicle) if channel == Channel.EMAIL else None,
            tracking_ref=tracking_ref,
        )

    async def send_bulk(
        self,
        session: AsyncSession,
        channel: Channel,
        recipients: Iterable[Union[BulkRecipient, Dict[str, Any]]],
        sender_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Send to each recipient in turn. One failure never stops the batch."""
        results: List[Dict[str, Any]] = []

        for item in recipients:
            customer_ref = BulkRecipient.customer_ref(item)
            try:
                recipient = BulkRecipient.coerce(item)
                customer_ref = recipient.customer_id
                dispatched = await self.send_insight_message(
                    session,
                    channel,
                    recipient.customer_id,
                    insight_id=recipient.insight_id,
                    sender_id=sender_id,
                )
                results.append({
                    "customerId": customer_ref,
                    "success": True,
                    "data": dispatched.to_dict(),
                })
            except NotificationError as e:
                logger.warning("Bulk %s to customer %s failed: %s", channel.value, customer_ref, e.message)
                results.append({"customerId": customer_ref, "success": False, "error": e.message})
            except Exception as e:
                logger.exception("Unexpected error sending %s to customer %s", channel.value, customer_ref)
                await session.rollback()
                results.append({"customerId": customer_ref, "success": False, "error": str(e)})

        successful = sum(1 for r in results if r["success"])
        logger.info("Bulk %s finished: %s sent, %s failed", channel.value, successful, len(results) - successful)
        return {
            "total": len(results),
            "successful": successful,
            "failed": len(results) - successful,
            "results": results,
        }


notification_service = NotificationService()
