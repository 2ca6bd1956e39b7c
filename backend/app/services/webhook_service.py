"""
Provider status callback ingest.

Callbacks arrive unordered and possibly more than once. Handling never
raises: malformed payloads, unknown message ids and internal errors are
logged and dropped so the provider always gets a 2xx and never retries.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.services.channels import Channel, normalize_status
from app.services.ledger import DeliveryLedger, ledger

logger = logging.getLogger(__name__)


class WebhookService:
    def __init__(self, ledger_: Optional[DeliveryLedger] = None):
        self.ledger = ledger_ or ledger

    async def handle_callback(
        self,
        session: AsyncSession,
        channel: Channel,
        payload: Mapping[str, Any],
    ) -> Dict[str, Any]:
        """Apply one status callback. Returns an outcome summary for logging and tests."""
        message_sid = (payload.get("MessageSid") or payload.get("SmsSid") or "").strip()
        raw_status = (payload.get("MessageStatus") or payload.get("SmsStatus") or "").strip()

        if not message_sid or not raw_status:
            logger.warning("Dropping malformed %s callback: %s", channel.value, dict(payload))
            return {"outcome": "malformed"}

        status = normalize_status(channel, raw_status)
        if payload.get("ErrorCode"):
            logger.info(
                "%s %s reported error %s: %s",
                channel.value, message_sid, payload.get("ErrorCode"), payload.get("ErrorMessage"),
            )

        try:
            applied = await self.ledger.update_status(
                session, channel, message_sid, status, at=datetime.utcnow()
            )
        except Exception:
            logger.exception("Failed to apply %s status %s for %s", channel.value, status, message_sid)
            await session.rollback()
            return {"outcome": "error", "messageSid": message_sid, "status": status}

        if applied:
            logger.info("%s %s -> %s", channel.value, message_sid, status)
        return {
            "outcome": "updated" if applied else "ignored",
            "messageSid": message_sid,
            "status": status,
        }


webhook_service = WebhookService()
