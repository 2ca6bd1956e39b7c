"""
Queued insight sends.

Each task runs its coroutine with ``asyncio.run`` and its own Twilio HTTP
client, then disposes the database pool so no connection outlives the
event loop that opened it.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from app.celery_app import celery_app
from app.core.exceptions import DispatchFailed
from app.db.postgres import close_db, get_db
from app.services.channels import Channel, parse_channel
from app.services.dispatcher import EmailDispatcher, SmsDispatcher, WhatsappDispatcher
from app.services.notification_service import NotificationService
from app.services.twilio_client import TwilioClient

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _worker_service():
    client = TwilioClient()
    try:
        yield NotificationService(dispatchers={
            Channel.EMAIL: EmailDispatcher(),
            Channel.SMS: SmsDispatcher(client=client),
            Channel.WHATSAPP: WhatsappDispatcher(client=client),
        })
    finally:
        await client.close()
        await close_db()


@celery_app.task(bind=True, max_retries=3, default_retry_delay=60)
def send_insight_task(self, channel: str, customer_id: int, insight_id: int = None, sender_id: int = None):
    """Send one insight message. Transport failures are retried; precondition errors are not."""

    async def _send():
        async with _worker_service() as service:
            async with get_db() as session:
                result = await service.send_insight_message(
                    session,
                    parse_channel(channel),
                    customer_id,
                    insight_id=insight_id,
                    sender_id=sender_id,
                )
                return result.to_dict()

    try:
        return asyncio.run(_send())
    except DispatchFailed as exc:
        logger.warning("Retrying %s send to customer %s: %s", channel, customer_id, exc.reason)
        raise self.retry(exc=exc)


@celery_app.task(bind=True)
def send_bulk_task(self, channel: str, recipients: list, sender_id: int = None):
    """Send to each recipient in order. The batch as a whole is never retried."""

    async def _send():
        async with _worker_service() as service:
            async with get_db() as session:
                return await service.send_bulk(session, parse_channel(channel), recipients, sender_id=sender_id)

    summary = asyncio.run(_send())
    logger.info(
        "Bulk %s task %s: %s sent, %s failed",
        channel, self.request.id, summary["successful"], summary["failed"],
    )
    return summary
