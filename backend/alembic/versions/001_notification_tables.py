"""Add delivery ledger and link-open metric tables

Revision ID: 001_notification_tables
Revises:
Create Date: 2026-10-18

The CRM-owned customers, telecallers and service_insights tables must
already exist.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_notification_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _dispatch_columns() -> list:
    return [
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),

        # References
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("insight_id", sa.Integer(), sa.ForeignKey("service_insights.id", ondelete="SET NULL"), nullable=True),
        sa.Column("sender_id", sa.Integer(), sa.ForeignKey("telecallers.id", ondelete="SET NULL"), nullable=True, index=True),

        # Provider
        sa.Column("provider_message_id", sa.String(255), unique=True, nullable=True, index=True),
        sa.Column("to_address", sa.String(255), nullable=True),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("status", sa.String(50), nullable=False, server_default="pending"),  # pending, queued, sending, sent, delivered, undelivered, failed, canceled, read, unknown:*

        # Timestamps
        sa.Column("sent_at", sa.DateTime(), server_default=sa.func.now(), nullable=False, index=True),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "service_emails",
        *_dispatch_columns(),
        sa.Column("subject", sa.String(500), nullable=True),
        sa.Column("seen_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "sms_messages",
        *_dispatch_columns(),
    )

    op.create_table(
        "whatsapp_messages",
        *_dispatch_columns(),
        sa.Column("read_at", sa.DateTime(), nullable=True),
    )

    # One row per (customer, source); open_count increments on every open
    op.create_table(
        "source_metrics",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("source", sa.String(20), nullable=False, index=True),  # email, sms
        sa.Column("open_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("first_opened_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("last_opened_at", sa.DateTime(), server_default=sa.func.now(), nullable=False, index=True),
        sa.UniqueConstraint("customer_id", "source", name="uq_source_metrics_customer_source"),
    )


def downgrade() -> None:
    op.drop_table("source_metrics")
    op.drop_table("whatsapp_messages")
    op.drop_table("sms_messages")
    op.drop_table("service_emails")
