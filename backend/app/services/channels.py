"""
Channel and delivery-status vocabulary.

Providers report free-form status strings. Each channel maps them onto
``DeliveryStatus`` through an explicit table; anything unrecognized is kept
as ``unknown:<raw>`` instead of being dropped.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional, Type

from app.core.exceptions import InvalidChannel
from app.models.dispatch import DispatchMixin, EmailDispatch, SmsDispatch, WhatsappDispatch

UNKNOWN_PREFIX = "unknown:"


class Channel(str, Enum):
    """Outbound message channels."""
    EMAIL = "email"
    SMS = "sms"
    WHATSAPP = "whatsapp"


class DeliveryStatus(str, Enum):
    """Normalized delivery states across providers."""
    PENDING = "pending"
    QUEUED = "queued"
    SENDING = "sending"
    SENT = "sent"
    DELIVERED = "delivered"
    UNDELIVERED = "undelivered"
    FAILED = "failed"
    CANCELED = "canceled"
    READ = "read"


# Ordering used to keep late or replayed callbacks from regressing a record.
STATUS_RANK: Dict[str, int] = {
    DeliveryStatus.PENDING.value: 0,
    DeliveryStatus.QUEUED.value: 1,
    DeliveryStatus.SENDING.value: 2,
    DeliveryStatus.SENT.value: 3,
    DeliveryStatus.DELIVERED.value: 4,
    DeliveryStatus.UNDELIVERED.value: 4,
    DeliveryStatus.FAILED.value: 4,
    DeliveryStatus.CANCELED.value: 4,
    DeliveryStatus.READ.value: 5,
}
UNKNOWN_RANK = 1

_TWILIO_STATUS_MAP: Dict[str, DeliveryStatus] = {
    "accepted": DeliveryStatus.QUEUED,
    "scheduled": DeliveryStatus.QUEUED,
    "queued": DeliveryStatus.QUEUED,
    "sending": DeliveryStatus.SENDING,
    "sent": DeliveryStatus.SENT,
    "delivered": DeliveryStatus.DELIVERED,
    "undelivered": DeliveryStatus.UNDELIVERED,
    "failed": DeliveryStatus.FAILED,
    "canceled": DeliveryStatus.CANCELED,
}

PROVIDER_STATUS_MAP: Dict[Channel, Dict[str, DeliveryStatus]] = {
    Channel.EMAIL: {
        "pending": DeliveryStatus.PENDING,
        "sent": DeliveryStatus.SENT,
        "failed": DeliveryStatus.FAILED,
    },
    Channel.SMS: dict(_TWILIO_STATUS_MAP),
    Channel.WHATSAPP: {**_TWILIO_STATUS_MAP, "read": DeliveryStatus.READ},
}

DISPATCH_MODELS: Dict[Channel, Type[DispatchMixin]] = {
    Channel.EMAIL: EmailDispatch,
    Channel.SMS: SmsDispatch,
    Channel.WHATSAPP: WhatsappDispatch,
}

# Link-open sources; WhatsApp engagement is tracked by read receipts instead.
LINK_SOURCES = (Channel.EMAIL.value, Channel.SMS.value)

TRACKING_PREFIX: Dict[Channel, str] = {
    Channel.EMAIL: "email",
    Channel.SMS: "sms",
    Channel.WHATSAPP: "wa",
}


def parse_channel(value: Optional[str], allow_all: bool = False) -> Optional[Channel]:
    """Parse a channel name. Returns None for ``all`` when allowed."""
    normalized = (value or "").strip().lower()
    if allow_all and normalized in ("", "all"):
        return None
    try:
        return Channel(normalized)
    except ValueError:
        raise InvalidChannel(value)


def normalize_status(channel: Channel, raw: Optional[str]) -> str:
    """Map a provider status string to the stored status value."""
    key = (raw or "").strip().lower()
    mapped = PROVIDER_STATUS_MAP[channel].get(key)
    if mapped is None:
        return f"{UNKNOWN_PREFIX}{key}"
    return mapped.value


def status_rank(status: Optional[str]) -> int:
    if not status or status.startswith(UNKNOWN_PREFIX):
        return UNKNOWN_RANK
    return STATUS_RANK.get(status, UNKNOWN_RANK)


def overwritable_statuses(new_status: str) -> List[str]:
    """Known statuses that ``new_status`` may replace.

    ``unknown:*`` values carry no ordering, so the ledger always treats them as
    replaceable in addition to this list.
    """
    rank = status_rank(new_status)
    return [status for status, r in STATUS_RANK.items() if r <= rank]


def model_for(channel: Channel) -> Type[DispatchMixin]:
    return DISPATCH_MODELS[channel]
