"""
CRM-owned models read by the notification core.

Customers, telecallers and service insights are created and updated by other
parts of the CRM. They are mapped here so dispatches can join against them.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String
from sqlalchemy.orm import relationship

from app.db.postgres import Base


class Customer(Base):
    """Service-center customer and their vehicle."""

    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_name = Column(String(255), nullable=True)

    # Contact
    phone = Column(String(32), nullable=True, index=True)
    alternate_phone = Column(String(32), nullable=True)
    email = Column(String(255), nullable=True, index=True)

    # Vehicle
    vehicle_number = Column(String(32), nullable=True, index=True)
    vehicle_make = Column(String(100), nullable=True)
    vehicle_model = Column(String(100), nullable=True)
    vehicle_year = Column(Integer, nullable=True)
    total_mileage = Column(Integer, nullable=True)

    # Denormalized, maintained by the service-center module
    preferred_service_center = Column(String(255), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    insights = relationship("ServiceInsight", back_populates="customer")


class Telecaller(Base):
    """Operator who triggers outbound messages."""

    __tablename__ = "telecallers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(100), unique=True, nullable=False)
    full_name = Column(String(255), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)


class ServiceInsight(Base):
    """AI-generated service recommendation bundle for one customer.

    ``insights_json`` holds ``priority_items``, ``recommended_services``,
    ``optional_checks`` (lists of ``{item, reason, urgency, estimated_cost}``)
    and a free-text ``summary``.
    """

    __tablename__ = "service_insights"

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)
    insights_json = Column(JSON, nullable=False, default=dict)
    generated_at = Column(DateTime, default=datetime.utcnow, index=True)

    customer = relationship("Customer", back_populates="insights")
