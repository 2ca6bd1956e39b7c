"""
Message composition for insight notifications.

Generated prose comes from the text-generation writer and is treated as
untrusted: the canonical call-to-action with the literal tracking URL is
always present in the returned body, and a fixed template is used whenever
generation fails or comes back empty.
"""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from app.core.config import settings
from app.services.ai import message_writer
from app.services.channels import Channel, TRACKING_PREFIX

logger = logging.getLogger(__name__)

SMS_CTA = "\n\nBook here: {url}\n\nYour Service Advisor"

EMAIL_CTA = """
<br><br>
<p style="text-align: center;">
    <a href="{url}"
       style="display: inline-block; padding: 12px 24px; background-color: #C3002F; color: white; text-decoration: none; border-radius: 4px; font-weight: bold;">
        View Full Service Insights
    </a>
</p>
<p style="text-align: center; font-size: 12px; color: #666;">
    If the button doesn't work, copy and paste this link:<br>
    <a href="{url}" style="color: #666;">{url}</a>
</p>
"""

TRACKING_PIXEL = '<img src="{url}" width="1" height="1" style="display:none;" alt="" />'


@dataclass
class VehicleData:
    make: Optional[str]
    model: Optional[str]
    year: Optional[int] = None
    mileage: Optional[int] = None

    @classmethod
    def from_customer(cls, customer: Any) -> "VehicleData":
        return cls(
            make=customer.vehicle_make,
            model=customer.vehicle_model,
            year=customer.vehicle_year,
            mileage=customer.total_mileage,
        )

    def as_dict(self) -> Dict[str, Any]:
        return {"make": self.make, "model": self.model, "year": self.year, "mileage": self.mileage}

    @property
    def label(self) -> str:
        return " ".join(part for part in (self.make, self.model) if part) or "vehicle"


def make_tracking_ref(channel: Channel, customer_id: int, now_ms: Optional[int] = None) -> str:
    """Unique reference embedded in a customer-view link.

    >>> make_tracking_ref(Channel.SMS, 42, now_ms=1700000000000)[:20]
    'sms_1700000000000_42'
    """
    millis = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{TRACKING_PREFIX[channel]}_{millis}_{customer_id}_{secrets.token_hex(4)}"


def build_tracking_url(customer_id: int, channel: Channel, tracking_ref: str) -> str:
    query = urlencode({"source": channel.value, "ref": tracking_ref})
    return f"{settings.frontend_url.rstrip('/')}/customer-view/{customer_id}?{query}"


def build_pixel_url(dispatch_id: int) -> str:
    return f"{settings.backend_url.rstrip('/')}{settings.api_v1_prefix}/track/{dispatch_id}"


def email_subject(vehicle: VehicleData) -> str:
    return f"Service Insights for your {vehicle.label}"


def insert_before_body_end(html: str, fragment: str) -> str:
    """Insert ``fragment`` before ``</body>``, or append when there is none."""
    index = html.lower().rfind("</body>")
    if index == -1:
        return html + fragment
    return html[:index] + fragment + html[index:]


class MessageComposer:
    """Builds channel-specific message bodies."""

    def __init__(self, writer=None):
        self.writer = writer or message_writer

    async def compose(
        self,
        channel: Channel,
        vehicle: VehicleData,
        insights: Dict[str, Any],
        customer_name: Optional[str],
        tracking_url: str,
        pixel_url: Optional[str] = None,
    ) -> str:
        if channel == Channel.EMAIL:
            return await self.compose_email(vehicle, insights, customer_name, tracking_url, pixel_url)
        return await self.compose_text(channel, vehicle, insights, customer_name, tracking_url)

    async def compose_email(
        self,
        vehicle: VehicleData,
        insights: Dict[str, Any],
        customer_name: Optional[str],
        tracking_url: str,
        pixel_url: Optional[str] = None,
    ) -> str:
        html = ""
        try:
            html = await self.writer.summarize_for_email(insights, customer_name)
        except Exception as e:
            logger.warning("Email summary generation failed, using template: %s", e)

        if not html or not html.strip():
            html = self.fallback_email(vehicle, customer_name)

        html = insert_before_body_end(html, EMAIL_CTA.format(url=tracking_url))
        if pixel_url:
            html = insert_before_body_end(html, TRACKING_PIXEL.format(url=pixel_url))
        return html

    async def compose_text(
        self,
        channel: Channel,
        vehicle: VehicleData,
        insights: Dict[str, Any],
        customer_name: Optional[str],
        tracking_url: str,
    ) -> str:
        text = ""
        try:
            text = await self.writer.summarize_for_text(
                channel.value, vehicle.as_dict(), insights, customer_name, tracking_url
            )
        except Exception as e:
            logger.warning("%s summary generation failed, using template: %s", channel.value, e)

        text = (text or "").strip()
        if not text:
            text = self.fallback_text(vehicle, customer_name)

        if tracking_url not in text:
            text += SMS_CTA.format(url=tracking_url)
        return text

    @staticmethod
    def fallback_text(vehicle: VehicleData, customer_name: Optional[str]) -> str:
        return (
            f"Hi {customer_name or 'Valued Customer'} 👋,\n\n"
            f"We analyzed your {vehicle.label} service history. Key updates available."
        )

    @staticmethod
    def fallback_email(vehicle: VehicleData, customer_name: Optional[str]) -> str:
        return (
            f"<p>Dear {customer_name or 'Valued Customer'},<br>"
            f"We have reviewed the service history of your {vehicle.label} and prepared "
            f"updated service insights for you.<br>"
            f"Sincerely,<br>Your Service Team</p>"
        )


composer = MessageComposer()
