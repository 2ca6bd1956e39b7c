"""
Delivery ledger models: one table per outbound channel.

All three tables share the same shape. ``provider_message_id`` is the join
key for provider status callbacks and is unique per table. Email rows are
reserved before sending (status ``pending``, no provider id yet) so the
tracking pixel can embed the row id.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import declared_attr, relationship

from app.db.postgres import Base


class DispatchMixin:
    """Columns common to every channel's dispatch table."""

    id = Column(Integer, primary_key=True, autoincrement=True)

    @declared_attr
    def customer_id(cls):
        return Column(Integer, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)

    @declared_attr
    def insight_id(cls):
        return Column(Integer, ForeignKey("service_insights.id", ondelete="SET NULL"), nullable=True)

    @declared_attr
    def sender_id(cls):
        # Nullable for system-originated sends
        return Column(Integer, ForeignKey("telecallers.id", ondelete="SET NULL"), nullable=True, index=True)

    provider_message_id = Column(String(255), unique=True, nullable=True, index=True)
    to_address = Column(String(255), nullable=True)
    body = Column(Text, nullable=True)
    status = Column(String(50), nullable=False, default="pending")

    sent_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @declared_attr
    def customer(cls):
        return relationship("Customer")

    @declared_attr
    def sender(cls):
        return relationship("Telecaller")


class EmailDispatch(DispatchMixin, Base):
    """Insight email with a tracking pixel."""

    __tablename__ = "service_emails"

    subject = Column(String(500), nullable=True)
    seen_at = Column(DateTime, nullable=True)  # First pixel load


class SmsDispatch(DispatchMixin, Base):
    """Insight SMS sent through Twilio."""

    __tablename__ = "sms_messages"


class WhatsappDispatch(DispatchMixin, Base):
    """Insight WhatsApp message sent through Twilio."""

    __tablename__ = "whatsapp_messages"

    read_at = Column(DateTime, nullable=True)  # First "read" receipt
