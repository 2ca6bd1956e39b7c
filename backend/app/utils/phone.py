"""
Phone number normalization for SMS and WhatsApp recipients.
"""

from __future__ import annotations

import re
from typing import Optional

from app.core.config import settings

WHATSAPP_SCHEME = "whatsapp:"

_NON_DIGITS = re.compile(r"\D")


def to_e164(raw: Optional[str], country_code: Optional[str] = None) -> Optional[str]:
    """Normalize a stored phone number to E.164.

    Bare 10-digit numbers are treated as domestic and get the configured
    country code. Returns None when nothing dialable is left.

    >>> to_e164("98765 43210", "+91")
    '+919876543210'
    >>> to_e164("+1 (415) 555-0100")
    '+14155550100'
    """
    if not raw:
        return None

    value = raw.strip()
    if value.lower().startswith(WHATSAPP_SCHEME):
        value = value[len(WHATSAPP_SCHEME):]

    digits = _NON_DIGITS.sub("", value)
    if len(digits) < 7:
        return None

    if value.startswith("+"):
        return f"+{digits}"
    if digits.startswith("00"):
        return f"+{digits[2:]}"
    if len(digits) == 10:
        code = _NON_DIGITS.sub("", country_code or settings.default_country_code)
        return f"+{code}{digits}"
    if len(digits) == 11 and digits.startswith("0"):
        # Domestic trunk prefix
        code = _NON_DIGITS.sub("", country_code or settings.default_country_code)
        return f"+{code}{digits[1:]}"
    return f"+{digits}"


def to_whatsapp_address(number: str) -> str:
    """Address form expected by the WhatsApp messaging API."""
    if number.startswith(WHATSAPP_SCHEME):
        return number
    return f"{WHATSAPP_SCHEME}{number}"


def pick_phone(phone: Optional[str], alternate_phone: Optional[str], country_code: Optional[str] = None) -> Optional[str]:
    """First usable number of the primary and alternate phones, in E.164."""
    for candidate in (phone, alternate_phone):
        normalized = to_e164(candidate, country_code)
        if normalized:
            return normalized
    return None
