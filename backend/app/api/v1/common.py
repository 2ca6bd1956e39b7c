"""
Helpers shared by the notification routers.
"""

from __future__ import annotations

from typing import NoReturn, Optional

from fastapi import HTTPException

from app.core.exceptions import InvalidIdentifier, NotificationError


def raise_http(error: NotificationError) -> NoReturn:
    """Translate a domain error into an HTTP error response."""
    raise HTTPException(status_code=error.status_code, detail=error.message)


def parse_id(value: Optional[str], name: str) -> int:
    """Parse a positive integer id from a path or query value."""
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        raise InvalidIdentifier(name, value)
    if parsed < 1:
        raise InvalidIdentifier(name, value)
    return parsed


def parse_optional_id(value: Optional[str], name: str) -> Optional[int]:
    if value is None or str(value).strip() == "":
        return None
    return parse_id(value, name)
