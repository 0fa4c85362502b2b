"""
SMTP email transport.

Sends HTML mail with PDF attachments through any SMTP server (Gmail with an
app password by default). Credentials come from ``Settings``; when the
password is missing the transport reports itself unconfigured and ``send``
raises ``ConfigurationError`` so callers can mark the channel unavailable.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
import ssl
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import List, Optional, Sequence

from .. import config
from ..config import Settings
from ..errors import ConfigurationError, TransportError, ValidationError
from ..models import RenderedDocument

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutgoingEmail:
    to: str
    subject: str
    html: str
    cc: Optional[str] = None
    attachments: Sequence[RenderedDocument] = field(default_factory=tuple)

    def validate(self) -> None:
        if not self.to:
            raise ValidationError("Recipient email (to) is required")
        if not self.subject:
            raise ValidationError("Subject is required")
        for value in (self.to, self.subject, self.cc or ""):
            if "\r" in value or "\n" in value:
                raise ValidationError("Email headers may not contain line breaks")


class EmailTransport(ABC):
    """Email delivery collaborator."""

    @abstractmethod
    def is_configured(self) -> bool:
        """Return True when credentials are present."""

    @abstractmethod
    async def send(self, message: OutgoingEmail) -> bool:
        """Deliver ``message``; raise on failure."""


def build_mime(message: OutgoingEmail, sender: str, sender_name: str = config.COMPANY_NAME) -> MIMEMultipart:
    msg = MIMEMultipart("mixed")
    msg["From"] = formataddr((sender_name, sender))
    msg["To"] = message.to
    msg["Subject"] = message.subject
    if message.cc:
        msg["Cc"] = message.cc

    msg.attach(MIMEText(message.html, "html", "utf-8"))
    for document in message.attachments:
        _, subtype = document.media_type.split("/", 1)
        part = MIMEApplication(document.content, _subtype=subtype)
        part.add_header("Content-Disposition", "attachment", filename=document.filename)
        msg.attach(part)
    return msg


class SmtpTransport(EmailTransport):
    def __init__(
        self,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "SmtpTransport":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            timeout=settings.outbound_timeout,
        )

    @property
    def sender(self) -> str:
        return self.username or config.DEFAULT_SENDER

    def is_configured(self) -> bool:
        return bool(self.host and self.password)

    async def send(self, message: OutgoingEmail) -> bool:
        if not self.is_configured():
            raise ConfigurationError("Email transport not configured (missing SMTP password)")
        message.validate()
        return await asyncio.to_thread(self._send_sync, message)

    def _send_sync(self, message: OutgoingEmail) -> bool:
        msg = build_mime(message, self.sender)
        recipients: List[str] = [message.to]
        if message.cc:
            recipients.append(message.cc)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls(context=ssl.create_default_context())
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.sendmail(self.sender, recipients, msg.as_string())
        except smtplib.SMTPAuthenticationError as exc:
            raise TransportError("email", f"SMTP authentication failed: {exc}") from exc
        except smtplib.SMTPRecipientsRefused as exc:
            raise TransportError("email", f"Recipients refused: {exc}") from exc
        except (smtplib.SMTPException, OSError) as exc:
            raise TransportError("email", str(exc)) from exc

        logger.info(
            "Email sent to %s (%s, %d attachment(s))",
            message.to,
            message.subject,
            len(message.attachments),
        )
        return True
