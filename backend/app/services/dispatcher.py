"""
Channel dispatchers for email, SMS and WhatsApp.

Email reserves its ledger row before sending because the tracking pixel URL
embeds the row id. SMS and WhatsApp send first: Twilio assigns the message
SID synchronously and the tracking link does not depend on a stored row.
Either way, a ledger row with a provider id exists only for messages the
provider accepted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import DispatchFailed, NoRecipientAddress
from app.services.channels import Channel, DeliveryStatus, normalize_status
from app.services.composer import build_pixel_url
from app.services.email_provider import EmailMessage, EmailProvider, get_email_provider
from app.services.ledger import DeliveryLedger, ledger
from app.services.twilio_client import TwilioClient, TwilioError, twilio_client
from app.utils.phone import pick_phone, to_whatsapp_address

logger = logging.getLogger(__name__)

# Receives the pixel URL (email only) and returns the final message body.
ComposeFn = Callable[[Optional[str]], Awaitable[str]]


@dataclass
class DispatchResult:
    channel: Channel
    dispatch_id: int
    provider_message_id: str
    status: str
    to: str
    body: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "channel": self.channel.value,
            "dispatchId": self.dispatch_id,
            "providerMessageId": self.provider_message_id,
            "status": self.status,
            "to": self.to,
            "message": self.body,
        }


class ChannelDispatcher:
    channel: Channel

    def __init__(self, ledger_: Optional[DeliveryLedger] = None):
        self.ledger = ledger_ or ledger

    def resolve_address(self, customer: Any) -> str:
        raise NotImplementedError

    async def dispatch(
        self,
        session: AsyncSession,
        customer: Any,
        compose: ComposeFn,
        insight_id: Optional[int] = None,
        sender_id: Optional[int] = None,
        subject: Optional[str] = None,
        tracking_ref: Optional[str] = None,
    ) -> DispatchResult:
        raise NotImplementedError


class EmailDispatcher(ChannelDispatcher):
    channel = Channel.EMAIL

    def __init__(self, provider: Optional[EmailProvider] = None, ledger_: Optional[DeliveryLedger] = None):
        super().__init__(ledger_)
        self._provider = provider

    @property
    def provider(self) -> EmailProvider:
        return self._provider or get_email_provider()

    def resolve_address(self, customer: Any) -> str:
        address = (customer.email or "").strip()
        if not address:
            raise NoRecipientAddress(self.channel.value, customer.id)
        return address

    async def dispatch(
        self,
        session: AsyncSession,
        customer: Any,
        compose: ComposeFn,
        insight_id: Optional[int] = None,
        sender_id: Optional[int] = None,
        subject: Optional[str] = None,
        tracking_ref: Optional[str] = None,
    ) -> DispatchResult:
        to = self.resolve_address(customer)

        draft = await self.ledger.reserve(
            session,
            customer_id=customer.id,
            insight_id=insight_id,
            sender_id=sender_id,
            to_address=to,
            subject=subject,
        )
        body = await compose(build_pixel_url(draft.id))

        logger.info("Sending email to %s with tracking id %s", to, draft.id)
        result = await self.provider.send_email(
            EmailMessage(to=to, subject=subject or "", html_body=body, tracking_ref=tracking_ref)
        )

        if not result.success:
            await self.ledger.discard(session, draft)
            raise DispatchFailed(self.channel.value, result.error or "SMTP send failed")

        status = normalize_status(self.channel, DeliveryStatus.SENT.value)
        draft = await self.ledger.finalize(session, draft, result.message_id, status, body)
        logger.info("Email %s sent to %s", result.message_id, to)

        return DispatchResult(
            channel=self.channel,
            dispatch_id=draft.id,
            provider_message_id=result.message_id,
            status=status,
            to=to,
            body=body,
        )


class SmsDispatcher(ChannelDispatcher):
    channel = Channel.SMS

    def __init__(self, client: Optional[TwilioClient] = None, ledger_: Optional[DeliveryLedger] = None):
        super().__init__(ledger_)
        self.client = client or twilio_client

    @property
    def sender(self) -> str:
        return settings.twilio_phone_number

    @property
    def status_callback(self) -> Optional[str]:
        if not settings.backend_url:
            return None
        return f"{settings.backend_url.rstrip('/')}{settings.api_v1_prefix}/{self.channel.value}/webhook"

    def resolve_address(self, customer: Any) -> str:
        number = pick_phone(customer.phone, customer.alternate_phone)
        if not number:
            raise NoRecipientAddress(self.channel.value, customer.id)
        return number

    async def dispatch(
        self,
        session: AsyncSession,
        customer: Any,
        compose: ComposeFn,
        insight_id: Optional[int] = None,
        sender_id: Optional[int] = None,
        subject: Optional[str] = None,
        tracking_ref: Optional[str] = None,
    ) -> DispatchResult:
        to = self.resolve_address(customer)
        body = await compose(None)

        logger.info("Sending %s to %s", self.channel.value, to)
        try:
            message = await self.client.send_message(
                to=to,
                body=body,
                from_=self.sender,
                status_callback=self.status_callback,
            )
        except TwilioError as e:
            raise DispatchFailed(self.channel.value, e.message) from e

        status = normalize_status(self.channel, message.status)
        row = await self.ledger.record(
            session,
            self.channel,
            customer_id=customer.id,
            provider_message_id=message.sid,
            status=status,
            body=body,
            to_address=to,
            insight_id=insight_id,
            sender_id=sender_id,
        )
        logger.info("%s %s accepted for %s (%s)", self.channel.value, message.sid, to, status)

        return DispatchResult(
            channel=self.channel,
            dispatch_id=row.id,
            provider_message_id=message.sid,
            status=status,
            to=to,
            body=body,
        )


class WhatsappDispatcher(SmsDispatcher):
    channel = Channel.WHATSAPP

    @property
    def sender(self) -> str:
        return to_whatsapp_address(settings.whatsapp_sender)

    def resolve_address(self, customer: Any) -> str:
        return to_whatsapp_address(super().resolve_address(customer))


email_dispatcher = EmailDispatcher()
sms_dispatcher = SmsDispatcher()
whatsapp_dispatcher = WhatsappDispatcher()

DISPATCHERS: Dict[Channel, ChannelDispatcher] = {
    Channel.EMAIL: email_dispatcher,
    Channel.SMS: sms_dispatcher,
    Channel.WHATSAPP: whatsapp_dispatcher,
}


def get_dispatcher(channel: Channel) -> ChannelDispatcher:
    return DISPATCHERS[channel]
