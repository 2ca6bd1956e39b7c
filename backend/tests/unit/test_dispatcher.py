"""
Tests for the channel dispatchers and the Twilio client.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

import httpx

from app.core.exceptions import DispatchFailed, NoRecipientAddress
from app.services.channels import Channel
from app.services.dispatcher import EmailDispatcher, SmsDispatcher, WhatsappDispatcher
from app.services.email_provider import EmailMessage, SMTPProvider, SendResult
from app.services.twilio_client import (
    TwilioClient,
    TwilioError,
    compute_signature,
    verify_signature,
)


@pytest.fixture
def mock_ledger():
    """Ledger whose calls are recorded in order."""
    ledger = MagicMock()
    ledger.calls = []

    draft = MagicMock()
    draft.id = 15

    async def reserve(session, **kwargs):
        ledger.calls.append(("reserve", kwargs))
        return draft

    async def finalize(session, draft_, provider_message_id, status, body):
        ledger.calls.append(("finalize", provider_message_id, status))
        return draft_

    async def discard(session, draft_):
        ledger.calls.append(("discard", draft_.id))

    async def record(session, channel, **kwargs):
        ledger.calls.append(("record", channel, kwargs))
        row = MagicMock()
        row.id = 99
        return row

    ledger.reserve = AsyncMock(side_effect=reserve)
    ledger.finalize = AsyncMock(side_effect=finalize)
    ledger.discard = AsyncMock(side_effect=discard)
    ledger.record = AsyncMock(side_effect=record)
    return ledger


def compose_recorder(calls):
    async def compose(pixel_url):
        calls.append(("compose", pixel_url))
        return f"body pixel={pixel_url}"
    return compose


class TestEmailDispatcher:
    """Test cases for EmailDispatcher."""

    @pytest.fixture
    def provider(self):
        provider = MagicMock()
        provider.send_email = AsyncMock(return_value=SendResult(success=True, message_id="<abc@autoserve.local>"))
        return provider

    @pytest.mark.asyncio
    async def test_reserves_then_sends_then_finalizes(self, mock_session, mock_ledger, provider, customer):
        dispatcher = EmailDispatcher(provider=provider, ledger_=mock_ledger)

        result = await dispatcher.dispatch(
            mock_session, customer, compose_recorder(mock_ledger.calls),
            insight_id=7, sender_id=3, subject="Service Insights for your Nissan Magnite",
            tracking_ref="email_42_1700000000000_ab12cd",
        )

        steps = [call[0] for call in mock_ledger.calls]
        assert steps == ["reserve", "compose", "finalize"]
        assert mock_ledger.calls[1] == ("compose", "https://api.example.com/api/track/15")
        assert mock_ledger.calls[2] == ("finalize", "<abc@autoserve.local>", "sent")

        sent = provider.send_email.call_args.args[0]
        assert sent.to == "ravi@example.com"
        assert sent.subject == "Service Insights for your Nissan Magnite"
        assert "track/15" in sent.html_body
        assert sent.tracking_ref == "email_42_1700000000000_ab12cd"

        assert result.dispatch_id == 15
        assert result.to_dict()["providerMessageId"] == "<abc@autoserve.local>"
        assert result.to_dict()["channel"] == "email"

    @pytest.mark.asyncio
    async def test_failed_send_discards_draft(self, mock_session, mock_ledger, provider, customer):
        provider.send_email.return_value = SendResult(success=False, error="Connection refused")
        dispatcher = EmailDispatcher(provider=provider, ledger_=mock_ledger)

        with pytest.raises(DispatchFailed) as exc:
            await dispatcher.dispatch(mock_session, customer, compose_recorder([]))

        assert exc.value.status_code == 502
        assert exc.value.reason == "Connection refused"
        assert ("discard", 15) in mock_ledger.calls
        mock_ledger.finalize.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_email_fails_before_reserving(self, mock_session, mock_ledger, provider, customer_factory):
        dispatcher = EmailDispatcher(provider=provider, ledger_=mock_ledger)

        with pytest.raises(NoRecipientAddress) as exc:
            await dispatcher.dispatch(mock_session, customer_factory(email="  "), compose_recorder([]))

        assert exc.value.message == "Customer email address not available"
        mock_ledger.reserve.assert_not_called()
        provider.send_email.assert_not_called()


class TestSMTPProvider:
    """Test cases for SMTPProvider message assembly."""

    def test_mime_carries_tracking_ref_and_message_id(self):
        provider = SMTPProvider(from_email="service@autoserve.example", from_name="AutoServe")

        msg = provider.build_mime(EmailMessage(
            to="ravi@example.com",
            subject="Service Insights",
            html_body="<html><body>Hi</body></html>",
            tracking_ref="email_42_1_ab12cd",
        ))

        assert msg["X-AutoServe-Tracking-Ref"] == "email_42_1_ab12cd"
        assert msg["From"] == "AutoServe <service@autoserve.example>"
        assert msg["Message-ID"].endswith("@autoserve.example>")

    def test_mime_without_tracking_ref(self):
        msg = SMTPProvider(from_email="service@autoserve.example").build_mime(
            EmailMessage(to="ravi@example.com", subject="Hi", html_body="<p>Hi</p>")
        )

        assert msg["X-AutoServe-Tracking-Ref"] is None


class TestSmsDispatcher:
    """Test cases for SmsDispatcher and WhatsappDispatcher."""

    @pytest.mark.asyncio
    async def test_sends_then_records(self, mock_session, mock_ledger, mock_twilio_client, customer):
        dispatcher = SmsDispatcher(client=mock_twilio_client, ledger_=mock_ledger)

        result = await dispatcher.dispatch(mock_session, customer, compose_recorder(mock_ledger.calls), insight_id=7)

        assert [call[0] for call in mock_ledger.calls] == ["compose", "record"]
        assert mock_ledger.calls[0] == ("compose", None)
        assert mock_twilio_client.sent == [{
            "to": "+919876543210",
            "body": "body pixel=None",
            "from": "+15550001111",
            "status_callback": "https://api.example.com/api/sms/webhook",
        }]

        _, channel, kwargs = mock_ledger.calls[1]
        assert channel == Channel.SMS
        assert kwargs["provider_message_id"] == "SM0001"
        assert kwargs["status"] == "queued"
        assert kwargs["insight_id"] == 7

        assert result.dispatch_id == 99
        assert result.status == "queued"

    @pytest.mark.asyncio
    async def test_rejection_leaves_no_record(self, mock_session, mock_ledger, mock_twilio_client, customer):
        mock_twilio_client.fail_for = ("+919876543210",)
        dispatcher = SmsDispatcher(client=mock_twilio_client, ledger_=mock_ledger)

        with pytest.raises(DispatchFailed) as exc:
            await dispatcher.dispatch(mock_session, customer, compose_recorder([]))

        assert "not a valid phone number" in exc.value.reason
        mock_ledger.record.assert_not_called()

    @pytest.mark.asyncio
    async def test_uses_alternate_phone(self, mock_session, mock_ledger, mock_twilio_client, customer_factory):
        dispatcher = SmsDispatcher(client=mock_twilio_client, ledger_=mock_ledger)
        customer = customer_factory(phone=None, alternate_phone="9123456780")

        result = await dispatcher.dispatch(mock_session, customer, compose_recorder([]))

        assert result.to == "+919123456780"

    @pytest.mark.asyncio
    async def test_missing_phone(self, mock_session, mock_ledger, mock_twilio_client, customer_factory):
        dispatcher = SmsDispatcher(client=mock_twilio_client, ledger_=mock_ledger)

        with pytest.raises(NoRecipientAddress) as exc:
            await dispatcher.dispatch(mock_session, customer_factory(phone="", alternate_phone=None), compose_recorder([]))

        assert exc.value.message == "Customer phone number not available"
        assert mock_twilio_client.sent == []

    @pytest.mark.asyncio
    async def test_whatsapp_addresses(self, mock_session, mock_ledger, mock_twilio_client, customer):
        dispatcher = WhatsappDispatcher(client=mock_twilio_client, ledger_=mock_ledger)

        result = await dispatcher.dispatch(mock_session, customer, compose_recorder([]))

        sent = mock_twilio_client.sent[0]
        assert sent["to"] == "whatsapp:+919876543210"
        assert sent["from"] == "whatsapp:+15550001111"
        assert sent["status_callback"] == "https://api.example.com/api/whatsapp/webhook"
        assert result.channel == Channel.WHATSAPP
        assert mock_ledger.calls[-1][1] == Channel.WHATSAPP


class TestTwilioClient:
    """Test cases for TwilioClient."""

    @pytest.mark.asyncio
    async def test_send_message_posts_form(self):
        client = TwilioClient(account_sid="ACtest", auth_token="secret", base_url="https://twilio.test/2010-04-01")
        response = MagicMock()
        response.raise_for_status = MagicMock()
        response.json.return_value = {"sid": "SM123", "status": "queued", "to": "+919876543210", "from": "+15550001111"}
        client.client.request = AsyncMock(return_value=response)

        message = await client.send_message("+919876543210", "Hello", "+15550001111", status_callback="https://cb")

        assert message.sid == "SM123"
        assert message.status == "queued"
        args, kwargs = client.client.request.call_args
        assert args == ("POST", "https://twilio.test/2010-04-01/Accounts/ACtest/Messages.json")
        assert kwargs["data"] == {"To": "+919876543210", "From": "+15550001111", "Body": "Hello", "StatusCallback": "https://cb"}
        assert kwargs["auth"] == ("ACtest", "secret")
        await client.close()

    @pytest.mark.asyncio
    async def test_api_error_becomes_twilio_error(self):
        client = TwilioClient(account_sid="ACtest", auth_token="secret")
        request = httpx.Request("POST", "https://api.twilio.com/2010-04-01/Accounts/ACtest/Messages.json")
        response = httpx.Response(400, json={"code": 21211, "message": "Invalid 'To' Phone Number"}, request=request)
        client.client.request = AsyncMock(return_value=response)

        with pytest.raises(TwilioError) as exc:
            await client.send_message("+1", "Hello", "+15550001111")

        assert exc.value.message == "Invalid 'To' Phone Number"
        assert exc.value.status_code == 400
        assert exc.value.code == 21211
        await client.close()

    @pytest.mark.asyncio
    async def test_network_error_becomes_twilio_error(self):
        client = TwilioClient(account_sid="ACtest", auth_token="secret")
        client.client.request = AsyncMock(side_effect=httpx.ConnectError("connection refused"))

        with pytest.raises(TwilioError) as exc:
            await client.send_message("+919876543210", "Hello", "+15550001111")

        assert "unreachable" in exc.value.message
        await client.close()


class TestSignature:
    """Test cases for status callback signature checks."""

    URL = "https://api.example.com/api/sms/webhook"
    PARAMS = {"MessageSid": "SM123", "MessageStatus": "delivered", "AccountSid": "ACtest"}

    def test_accepts_matching_signature(self):
        signature = compute_signature("secret", self.URL, self.PARAMS)
        assert verify_signature(signature, self.URL, self.PARAMS, auth_token="secret")

    def test_rejects_tampered_params(self):
        signature = compute_signature("secret", self.URL, self.PARAMS)
        tampered = dict(self.PARAMS, MessageStatus="read")
        assert not verify_signature(signature, self.URL, tampered, auth_token="secret")

    def test_rejects_missing_signature(self):
        assert not verify_signature(None, self.URL, self.PARAMS, auth_token="secret")
