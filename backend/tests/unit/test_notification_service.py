"""
Tests for the insight notification orchestration.
"""

import re

import pytest
from unittest.mock import AsyncMock, MagicMock

from sqlalchemy.dialects import postgresql

from app.core.exceptions import CustomerNotFound, DispatchFailed, InsightNotFound, InvalidIdentifier, NoRecipientAddress
from app.services.channels import Channel
from app.services.composer import MessageComposer
from app.services.dispatcher import DispatchResult
from app.services.notification_service import BulkRecipient, NotificationService


def make_dispatcher(channel=Channel.SMS):
    dispatcher = MagicMock()
    dispatcher.resolve_address = MagicMock(return_value="+919876543210")

    async def dispatch(session, customer, compose, insight_id=None, sender_id=None, subject=None, tracking_ref=None):
        body = await compose(None)
        return DispatchResult(
            channel=channel,
            dispatch_id=customer.id * 10,
            provider_message_id=f"SM{customer.id}",
            status="queued",
            to="+919876543210",
            body=body,
        )

    dispatcher.dispatch = AsyncMock(side_effect=dispatch)
    return dispatcher


class TestNotificationService:
    """Test cases for NotificationService."""

    @pytest.fixture
    def dispatcher(self):
        return make_dispatcher()

    @pytest.fixture
    def service(self, dispatcher, mock_writer):
        return NotificationService(
            composer_=MessageComposer(writer=mock_writer),
            dispatchers={Channel.SMS: dispatcher, Channel.EMAIL: make_dispatcher(Channel.EMAIL)},
        )

    @pytest.mark.asyncio
    async def test_send_insight_message(self, service, dispatcher, mock_session, customer, insight_factory, result_factory):
        mock_session.get.return_value = customer
        mock_session.execute.return_value = result_factory(scalars=[insight_factory()])

        result = await service.send_insight_message(mock_session, Channel.SMS, 42, sender_id=3)

        assert result.provider_message_id == "SM42"
        assert "https://crm.example.com/customer-view/42?source=sms&ref=sms_" in result.body

        kwargs = dispatcher.dispatch.call_args.kwargs
        assert kwargs["insight_id"] == 7
        assert kwargs["sender_id"] == 3
        assert kwargs["subject"] is None
        assert re.fullmatch(r"sms_\d+_42_[0-9a-f]{8}", kwargs["tracking_ref"])
        assert f"ref={kwargs['tracking_ref']}" in result.body

    @pytest.mark.asyncio
    async def test_latest_insight_used_when_none_given(self, service, mock_session, customer, insight_factory, result_factory):
        mock_session.get.return_value = customer
        mock_session.execute.return_value = result_factory(scalars=[insight_factory()])

        await service.send_insight_message(mock_session, Channel.SMS, 42)

        query = mock_session.execute.call_args.args[0]
        sql = str(query.compile(dialect=postgresql.dialect()))
        assert "ORDER BY service_insights.generated_at DESC" in sql
        assert "LIMIT" in sql

    @pytest.mark.asyncio
    async def test_email_gets_subject(self, service, mock_session, customer, insight_factory, result_factory):
        mock_session.get.return_value = customer
        mock_session.execute.return_value = result_factory(scalars=[insight_factory()])

        await service.send_insight_message(mock_session, Channel.EMAIL, 42)

        email_dispatcher = service.dispatcher_for(Channel.EMAIL)
        assert email_dispatcher.dispatch.call_args.kwargs["subject"] == "Service Insights for your Nissan Magnite"

    @pytest.mark.asyncio
    async def test_customer_not_found(self, service, dispatcher, mock_session):
        mock_session.get.return_value = None

        with pytest.raises(CustomerNotFound):
            await service.send_insight_message(mock_session, Channel.SMS, 999)

        dispatcher.dispatch.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_insight(self, service, dispatcher, mock_session, customer, result_factory):
        mock_session.get.return_value = customer
        mock_session.execute.return_value = result_factory(scalars=[])

        with pytest.raises(InsightNotFound) as exc:
            await service.send_insight_message(mock_session, Channel.SMS, 42)

        assert exc.value.status_code == 404
        dispatcher.dispatch.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_address_checked_before_insight(self, service, dispatcher, mock_session, customer):
        mock_session.get.return_value = customer
        dispatcher.resolve_address.side_effect = NoRecipientAddress("sms", 42)

        with pytest.raises(NoRecipientAddress):
            await service.send_insight_message(mock_session, Channel.SMS, 42)

        mock_session.execute.assert_not_called()


class TestSendBulk:
    """Test cases for bulk sends."""

    @pytest.mark.asyncio
    async def test_failures_do_not_stop_batch(self, mock_session, mock_writer, customer_factory, insight_factory, result_factory):
        customers = {1: customer_factory(id=1), 2: customer_factory(id=2), 4: customer_factory(id=4)}

        async def get(model, customer_id):
            return customers.get(customer_id)

        mock_session.get.side_effect = get
        mock_session.execute.return_value = result_factory(scalars=[insight_factory()])

        dispatcher = make_dispatcher()
        original = dispatcher.dispatch.side_effect

        async def dispatch(session, customer, compose, **kwargs):
            if customer.id == 4:
                raise DispatchFailed("sms", "Twilio unreachable")
            return await original(session, customer, compose, **kwargs)

        dispatcher.dispatch.side_effect = dispatch
        service = NotificationService(composer_=MessageComposer(writer=mock_writer), dispatchers={Channel.SMS: dispatcher})

        summary = await service.send_bulk(
            mock_session,
            Channel.SMS,
            [{"customerId": 1}, {"customer_id": 3}, BulkRecipient(customer_id=4), {"customerId": 2, "insightId": 7}],
            sender_id=5,
        )

        assert summary["total"] == 4
        assert summary["successful"] == 2
        assert summary["failed"] == 2
        assert [r["customerId"] for r in summary["results"]] == [1, 3, 4, 2]
        assert summary["results"][1] == {"customerId": 3, "success": False, "error": "Customer not found"}
        assert summary["results"][2]["error"] == "Failed to send sms message: Twilio unreachable"
        assert summary["results"][3]["data"]["providerMessageId"] == "SM2"

    @pytest.mark.asyncio
    async def test_unexpected_error_rolls_back_and_continues(self, mock_session, mock_writer, customer_factory, insight_factory, result_factory):
        mock_session.get.return_value = customer_factory(id=1)
        mock_session.execute.side_effect = [
            RuntimeError("connection reset"),
            result_factory(scalars=[insight_factory()]),
        ]
        service = NotificationService(composer_=MessageComposer(writer=mock_writer), dispatchers={Channel.SMS: make_dispatcher()})

        summary = await service.send_bulk(mock_session, Channel.SMS, [{"customerId": 1}, {"customerId": 1}])

        assert summary["successful"] == 1
        assert summary["results"][0] == {"customerId": 1, "success": False, "error": "connection reset"}
        mock_session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_malformed_recipient_does_not_stop_batch(self, mock_session, mock_writer, customer_factory, insight_factory, result_factory):
        mock_session.get.return_value = customer_factory(id=1)
        mock_session.execute.return_value = result_factory(scalars=[insight_factory()])
        service = NotificationService(composer_=MessageComposer(writer=mock_writer), dispatchers={Channel.SMS: make_dispatcher()})

        summary = await service.send_bulk(
            mock_session,
            Channel.SMS,
            [{"customerId": None}, {"customerId": "abc"}, {"customerId": 1}],
        )

        assert summary["total"] == 3
        assert summary["successful"] == 1
        assert summary["results"][0] == {"customerId": None, "success": False, "error": "Invalid recipient"}
        assert summary["results"][1]["customerId"] == "abc"
        assert summary["results"][2]["customerId"] == 1
        mock_session.rollback.assert_not_called()


def test_bulk_recipient_coerce():
    assert BulkRecipient.coerce({"customerId": "5", "insightId": 9}) == BulkRecipient(customer_id=5, insight_id=9)
    assert BulkRecipient.coerce({"customer_id": 6}) == BulkRecipient(customer_id=6)

    with pytest.raises(InvalidIdentifier):
        BulkRecipient.coerce({"insightId": 9})


@pytest.mark.asyncio
async def test_bulk_skips_recipient_without_phone(mock_session, mock_writer, mock_twilio_client, customer_factory, insight_factory, result_factory):
    from app.services.dispatcher import SmsDispatcher

    customers = {
        1: customer_factory(id=1, phone="9876543210"),
        2: customer_factory(id=2, phone=None, alternate_phone=None),
        3: customer_factory(id=3, phone="9123456780"),
    }

    async def get(model, customer_id):
        return customers[customer_id]

    mock_session.get.side_effect = get
    mock_session.execute.return_value = result_factory(scalars=[insight_factory()])

    ledger = MagicMock()
    ledger.record = AsyncMock(side_effect=lambda session, channel, **kwargs: MagicMock(id=kwargs["customer_id"]))
    dispatcher = SmsDispatcher(client=mock_twilio_client, ledger_=ledger)
    service = NotificationService(composer_=MessageComposer(writer=mock_writer), dispatchers={Channel.SMS: dispatcher})

    summary = await service.send_bulk(mock_session, Channel.SMS, [{"customerId": 1}, {"customerId": 2}, {"customerId": 3}])

    assert (summary["successful"], summary["failed"]) == (2, 1)
    assert summary["results"][1] == {"customerId": 2, "success": False, "error": "Customer phone number not available"}
    assert [m["to"] for m in mock_twilio_client.sent] == ["+919876543210", "+919123456780"]
