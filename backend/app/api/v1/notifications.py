"""
Insight notification endpoints, one router per channel.

Routes (per channel, under /email, /sms, /whatsapp):
    POST /send-insight          - Send one customer's insight
    POST /send-bulk             - Send to many customers (optionally queued)
    GET  /logs/{customer_id}    - Ledger rows for a customer, newest first
    GET  /analytics             - Channel totals and latest dispatches
    POST /webhook               - Twilio status callback (SMS and WhatsApp only)
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.common import parse_id, raise_http
from app.core.config import settings
from app.core.exceptions import NotificationError
from app.core.security import TokenData, require_auth
from app.db.postgres import get_db_session
from app.middleware.rate_limit import limiter
from app.schemas.notifications import SendBulkRequest, SendInsightRequest
from app.services.channels import Channel
from app.services.dispatcher import get_dispatcher
from app.services.ledger import ledger
from app.services.notification_service import notification_service
from app.services.twilio_client import verify_signature
from app.services.webhook_service import webhook_service

logger = logging.getLogger(__name__)

TWIML_EMPTY = "<Response></Response>"

CHANNEL_TAGS = {
    Channel.EMAIL: "Email",
    Channel.SMS: "SMS",
    Channel.WHATSAPP: "WhatsApp",
}


def _twiml_ok() -> Response:
    return Response(content=TWIML_EMPTY, media_type="text/xml")


def build_channel_router(channel: Channel) -> APIRouter:
    router = APIRouter(prefix=f"/{channel.value}", tags=[CHANNEL_TAGS[channel]])

    @router.post("/send-insight")
    async def send_insight(
        request: SendInsightRequest,
        user: TokenData = Depends(require_auth),
        session: AsyncSession = Depends(get_db_session),
    ):
        """Compose and send a customer's insight message on this channel."""
        try:
            result = await notification_service.send_insight_message(
                session,
                channel,
                request.customer_id,
                insight_id=request.insight_id,
                sender_id=user.sender_id,
            )
        except NotificationError as e:
            raise_http(e)

        return {"success": True, "message": f"{channel.value} sent successfully", "data": result.to_dict()}

    @router.post("/send-bulk")
    async def send_bulk(
        request: SendBulkRequest,
        user: TokenData = Depends(require_auth),
        session: AsyncSession = Depends(get_db_session),
    ):
        """Send to every recipient in turn. Per-recipient failures are reported, not raised."""
        recipients = [r.model_dump() for r in request.recipients]

        if request.queue:
            from app.tasks.notifications import send_bulk_task

            task = send_bulk_task.delay(channel.value, recipients, user.sender_id)
            logger.info("Queued bulk %s for %s recipients as %s", channel.value, len(recipients), task.id)
            return {"success": True, "data": {"taskId": task.id, "total": len(recipients)}}

        summary = await notification_service.send_bulk(
            session, channel, recipients, sender_id=user.sender_id
        )
        return {"success": True, "data": summary}

    @router.get("/logs/{customer_id}")
    async def get_logs(
        customer_id: str,
        user: TokenData = Depends(require_auth),
        session: AsyncSession = Depends(get_db_session),
    ):
        """Ledger rows for one customer on this channel."""
        try:
            parsed = parse_id(customer_id, "customer ID")
        except NotificationError as e:
            raise_http(e)

        return {"success": True, "data": await ledger.list_by_customer(session, channel, parsed)}

    @router.get("/analytics")
    async def get_channel_analytics(
        user: TokenData = Depends(require_auth),
        session: AsyncSession = Depends(get_db_session),
    ):
        return {"success": True, "data": await ledger.channel_overview(session, channel)}

    if channel in (Channel.SMS, Channel.WHATSAPP):

        @router.post("/webhook")
        @limiter.exempt
        async def status_webhook(
            request: Request,
            session: AsyncSession = Depends(get_db_session),
        ):
            """Twilio status callback. Always answers 200 with empty TwiML."""
            try:
                form = await request.form()
                payload = {key: str(value) for key, value in form.items()}

                if settings.twilio_validate_signatures:
                    callback_url = get_dispatcher(channel).status_callback or str(request.url)
                    if not verify_signature(request.headers.get("X-Twilio-Signature"), callback_url, payload):
                        logger.warning("Dropping %s callback with invalid signature", channel.value)
                        return _twiml_ok()

                await webhook_service.handle_callback(session, channel, payload)
            except Exception:
                logger.exception("Error handling %s status callback", channel.value)

            return _twiml_ok()

    return router


email_router = build_channel_router(Channel.EMAIL)
sms_router = build_channel_router(Channel.SMS)
whatsapp_router = build_channel_router(Channel.WHATSAPP)

routers = [email_router, sms_router, whatsapp_router]
