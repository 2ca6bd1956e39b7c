"""
Link-open engagement counters.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from app.db.postgres import Base


class SourceMetric(Base):
    """Opens of the customer-view link per (customer, source).

    One row per pair, enforced by the unique constraint, so the number of rows
    is the number of customers who opened at least once and the sum of
    ``open_count`` is the total number of opens.
    """

    __tablename__ = "source_metrics"
    __table_args__ = (
        UniqueConstraint("customer_id", "source", name="uq_source_metrics_customer_source"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)
    source = Column(String(20), nullable=False, index=True)  # email, sms

    open_count = Column(Integer, nullable=False, default=1)
    first_opened_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    last_opened_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    customer = relationship("Customer")
