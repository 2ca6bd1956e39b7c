"""
Twilio Messaging REST client (SMS and WhatsApp).

Talks to the Messages resource directly with httpx; Twilio assigns the
message SID synchronously, so the returned SID can be written to the ledger
before any status callback can reference it.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class TwilioMessage:
    sid: str
    status: str
    to: str
    from_: str


class TwilioError(Exception):
    """Twilio rejected the request or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


class TwilioClient:
    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.account_sid = account_sid or settings.twilio_account_sid
        self.auth_token = auth_token or settings.twilio_auth_token
        self.base_url = (base_url or settings.twilio_base_url).rstrip("/")
        self.client = httpx.AsyncClient(timeout=float(timeout or settings.twilio_timeout))

    async def close(self):
        await self.client.aclose()

    async def _request(self, method: str, endpoint: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}/Accounts/{self.account_sid}{endpoint}"
        try:
            response = await self.client.request(
                method,
                url,
                data=data,
                auth=(self.account_sid, self.auth_token),
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            detail: Dict[str, Any] = {}
            try:
                detail = e.response.json()
            except ValueError:
                pass
            raise TwilioError(
                detail.get("message") or f"Twilio API error: {e.response.status_code}",
                status_code=e.response.status_code,
                code=detail.get("code"),
            ) from e
        except httpx.RequestError as e:
            raise TwilioError(f"Twilio unreachable: {e}") from e
        return response.json()

    async def send_message(
        self,
        to: str,
        body: str,
        from_: str,
        status_callback: Optional[str] = None,
    ) -> TwilioMessage:
        """Create a message. ``to``/``from_`` carry the ``whatsapp:`` scheme for WhatsApp."""
        data = {"To": to, "From": from_, "Body": body}
        if status_callback:
            data["StatusCallback"] = status_callback

        result = await self._request("POST", "/Messages.json", data)

        return TwilioMessage(
            sid=result["sid"],
            status=result.get("status", "queued"),
            to=result.get("to", to),
            from_=result.get("from", from_),
        )


def compute_signature(auth_token: str, url: str, params: Mapping[str, str]) -> str:
    """Twilio request signature: HMAC-SHA1 over the URL plus sorted POST params."""
    payload = url + "".join(f"{key}{params[key]}" for key in sorted(params))
    digest = hmac.new(auth_token.encode(), payload.encode(), hashlib.sha1).digest()
    return base64.b64encode(digest).decode()


def verify_signature(signature: Optional[str], url: str, params: Mapping[str, str], auth_token: Optional[str] = None) -> bool:
    """Verify the ``X-Twilio-Signature`` header of a status callback."""
    token = auth_token or settings.twilio_auth_token
    if not signature or not token:
        return False
    return hmac.compare_digest(compute_signature(token, url, params), signature)


twilio_client = TwilioClient()
