"""Utility modules for the notification backend."""

from app.utils.phone import pick_phone, to_e164, to_whatsapp_address

__all__ = [
    "pick_phone",
    "to_e164",
    "to_whatsapp_address",
]
