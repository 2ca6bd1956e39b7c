"""
Domain errors raised by the notification services.

Routers translate these into HTTP responses using ``status_code``.
"""

from __future__ import annotations


class NotificationError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 400

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class CustomerNotFound(NotificationError):
    status_code = 404

    def __init__(self, customer_id: int):
        super().__init__("Customer not found")
        self.customer_id = customer_id


class InsightNotFound(NotificationError):
    status_code = 404

    def __init__(self, customer_id: int, insight_id: int | None = None):
        super().__init__("No insights found for customer" if insight_id is None else "Insight not found")
        self.customer_id = customer_id
        self.insight_id = insight_id


class DispatchNotFound(NotificationError):
    status_code = 404

    def __init__(self, channel: str, dispatch_id: int):
        super().__init__(f"{channel} dispatch not found")
        self.dispatch_id = dispatch_id


class NoRecipientAddress(NotificationError):
    """Customer has no usable address on the requested channel."""

    status_code = 400

    def __init__(self, channel: str, customer_id: int | None = None):
        what = "email address" if channel == "email" else "phone number"
        super().__init__(f"Customer {what} not available")
        self.channel = channel
        self.customer_id = customer_id


class InvalidSource(NotificationError):
    status_code = 400

    def __init__(self, source: str | None):
        super().__init__('Invalid source. Must be "email" or "sms"')
        self.source = source


class InvalidChannel(NotificationError):
    status_code = 400

    def __init__(self, channel: str | None):
        super().__init__('Invalid channel. Must be "all", "email", "sms" or "whatsapp"')
        self.channel = channel


class InvalidIdentifier(NotificationError):
    status_code = 400

    def __init__(self, name: str, value: str | None):
        super().__init__(f"Invalid {name}")
        self.value = value


class DispatchFailed(NotificationError):
    """The channel transport rejected or could not deliver the message."""

    status_code = 502

    def __init__(self, channel: str, reason: str):
        super().__init__(f"Failed to send {channel} message: {reason}")
        self.channel = channel
        self.reason = reason
