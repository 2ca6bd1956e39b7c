"""
Tests for provider status callback handling.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from sqlalchemy.exc import OperationalError

from app.services.channels import Channel
from app.services.webhook_service import WebhookService


class TestWebhookService:
    """Test cases for WebhookService."""

    @pytest.fixture
    def mock_ledger(self):
        ledger = MagicMock()
        ledger.update_status = AsyncMock(return_value=True)
        return ledger

    @pytest.fixture
    def service(self, mock_ledger):
        return WebhookService(ledger_=mock_ledger)

    @pytest.mark.asyncio
    async def test_applies_normalized_status(self, service, mock_ledger, mock_session):
        outcome = await service.handle_callback(
            mock_session, Channel.SMS, {"MessageSid": "SM123", "MessageStatus": "Delivered"}
        )

        assert outcome == {"outcome": "updated", "messageSid": "SM123", "status": "delivered"}
        args = mock_ledger.update_status.call_args.args
        assert args[1:] == (Channel.SMS, "SM123", "delivered")

    @pytest.mark.asyncio
    async def test_accepts_legacy_field_names(self, service, mock_ledger, mock_session):
        outcome = await service.handle_callback(
            mock_session, Channel.SMS, {"SmsSid": "SM7", "SmsStatus": "sent"}
        )

        assert outcome["outcome"] == "updated"
        assert mock_ledger.update_status.call_args.args[2] == "SM7"

    @pytest.mark.asyncio
    async def test_whatsapp_read(self, service, mock_ledger, mock_session):
        outcome = await service.handle_callback(
            mock_session, Channel.WHATSAPP, {"MessageSid": "SM9", "MessageStatus": "read"}
        )

        assert outcome["status"] == "read"

    @pytest.mark.asyncio
    async def test_unknown_status_is_kept(self, service, mock_ledger, mock_session):
        outcome = await service.handle_callback(
            mock_session, Channel.SMS, {"MessageSid": "SM9", "MessageStatus": "receiving"}
        )

        assert outcome["status"] == "unknown:receiving"

    @pytest.mark.asyncio
    async def test_unknown_id_or_stale_status_is_ignored(self, service, mock_ledger, mock_session):
        mock_ledger.update_status.return_value = False

        outcome = await service.handle_callback(
            mock_session, Channel.SMS, {"MessageSid": "SM404", "MessageStatus": "sent"}
        )

        assert outcome["outcome"] == "ignored"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        {},
        {"MessageSid": "SM1"},
        {"MessageStatus": "delivered"},
        {"MessageSid": "  ", "MessageStatus": "delivered"},
    ])
    async def test_malformed_payload(self, service, mock_ledger, mock_session, payload):
        outcome = await service.handle_callback(mock_session, Channel.SMS, payload)

        assert outcome == {"outcome": "malformed"}
        mock_ledger.update_status.assert_not_called()

    @pytest.mark.asyncio
    async def test_database_error_is_contained(self, service, mock_ledger, mock_session):
        mock_ledger.update_status.side_effect = OperationalError("UPDATE", {}, Exception("connection lost"))

        outcome = await service.handle_callback(
            mock_session, Channel.SMS, {"MessageSid": "SM1", "MessageStatus": "delivered"}
        )

        assert outcome["outcome"] == "error"
        mock_session.rollback.assert_awaited_once()
