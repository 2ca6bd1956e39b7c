"""
SQLAlchemy models for PostgreSQL persistence.
"""

from app.models.customer import Customer, Telecaller, ServiceInsight
from app.models.dispatch import DispatchMixin, EmailDispatch, SmsDispatch, WhatsappDispatch
from app.models.source_metric import SourceMetric

__all__ = [
    "Customer",
    "Telecaller",
    "ServiceInsight",
    "DispatchMixin",
    "EmailDispatch",
    "SmsDispatch",
    "WhatsappDispatch",
    "SourceMetric",
]
