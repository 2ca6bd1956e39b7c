"""
Email provider abstraction layer.

SMTPProvider submits insight emails over SMTP with STARTTLS. The SMTP
transport only reports acceptance, so a successful send maps to status
``sent``; opens are detected by the tracking pixel instead.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid
from typing import Optional

from app.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class EmailMessage:
    """Email message structure."""
    to: str
    subject: str
    html_body: str
    from_email: Optional[str] = None
    from_name: Optional[str] = None
    tracking_ref: Optional[str] = None


@dataclass
class SendResult:
    """Result of sending an email."""
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class EmailProvider(ABC):
    """Abstract base class for email providers."""

    @abstractmethod
    async def send_email(self, message: EmailMessage) -> SendResult:
        """Send an email message."""
        ...


class SMTPProvider(EmailProvider):
    """
    Send emails via an SMTP submission port (587).

    The Message-ID is generated locally before submission and doubles as the
    provider message id in the delivery ledger.
    """

    def __init__(
        self,
        host: str = None,
        port: int = None,
        username: str = None,
        password: str = None,
        use_tls: bool = None,
        timeout: int = None,
        from_email: str = None,
        from_name: str = None,
    ):
        self.host = host or settings.smtp_host
        self.port = port or settings.smtp_port
        self.username = username if username is not None else settings.smtp_username
        self.password = password if password is not None else settings.smtp_password
        self.use_tls = settings.smtp_use_tls if use_tls is None else use_tls
        self.timeout = timeout or settings.smtp_timeout
        self.from_email = from_email or settings.mail_from_email
        self.from_name = from_name or settings.mail_from_name

    def build_mime(self, message: EmailMessage) -> MIMEMultipart:
        msg = MIMEMultipart('alternative')
        msg['Subject'] = message.subject
        msg['From'] = f"{message.from_name or self.from_name} <{message.from_email or self.from_email}>"
        msg['To'] = message.to

        domain = (message.from_email or self.from_email).rpartition('@')[2] or None
        msg['Message-ID'] = make_msgid(domain=domain)

        if message.tracking_ref:
            msg['X-AutoServe-Tracking-Ref'] = message.tracking_ref

        msg.attach(MIMEText(message.html_body, 'html', 'utf-8'))
        return msg

    async def send_email(self, message: EmailMessage) -> SendResult:
        """Send an email via SMTP."""
        try:
            msg = self.build_mime(message)

            # smtplib is blocking
            loop = asyncio.get_event_loop()
            message_id = await loop.run_in_executor(
                None,
                self._send_sync,
                msg,
            )
            logger.info("SMTP accepted email to %s (%s)", message.to, message_id)
            return SendResult(success=True, message_id=message_id)

        except (smtplib.SMTPException, OSError) as e:
            logger.warning("SMTP send to %s failed: %s", message.to, e)
            return SendResult(success=False, error=str(e))

    def _send_sync(self, msg: MIMEMultipart) -> str:
        """Synchronous SMTP send."""
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(msg)
            return msg['Message-ID']


# Global provider instance (initialized on demand)
_email_provider: Optional[EmailProvider] = None


def get_email_provider() -> EmailProvider:
    """Get the configured email provider."""
    global _email_provider
    if _email_provider is None:
        _email_provider = SMTPProvider()
    return _email_provider
