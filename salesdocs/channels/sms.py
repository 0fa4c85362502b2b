from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from ..config import Settings
from ..errors import ConfigurationError, TransportError, ValidationError

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"
_NON_DIGITS = re.compile(r"\D")


def normalize_phone(raw: str) -> str:
    """Return an E.164 number. Ten bare digits are taken as North American."""
    value = (raw or "").strip()
    digits = _NON_DIGITS.sub("", value)
    if not digits:
        raise ValidationError(f"Phone number {raw!r} has no digits")
    if value.startswith("+"):
        return "+" + digits
    if len(digits) == 10:
        return "+1" + digits
    return "+" + digits


class SmsTransport(ABC):
    """SMS delivery collaborator."""

    @abstractmethod
    def is_configured(self) -> bool:
        """Return True when credentials are present."""

    @abstractmethod
    async def send(self, to: str, body: str) -> bool:
        """Send ``body`` to ``to`` (any format ``normalize_phone`` accepts)."""


class TwilioSms(SmsTransport):
    def __init__(
        self,
        account_sid: Optional[str],
        auth_token: Optional[str],
        from_number: Optional[str],
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "TwilioSms":
        return cls(
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
            from_number=settings.twilio_phone_number,
            timeout=settings.outbound_timeout,
        )

    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    async def send(self, to: str, body: str) -> bool:
        if not self.is_configured():
            raise ConfigurationError("SMS transport not configured (Twilio credentials missing)")
        number = normalize_phone(to)
        url = f"{TWILIO_API_BASE}/Accounts/{self.account_sid}/Messages.json"
        data = {"To": number, "From": self.from_number, "Body": body}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, data=data, auth=(self.account_sid, self.auth_token))
        except httpx.HTTPError as exc:
            raise TransportError("sms", f"Unable to reach Twilio: {exc}") from exc

        if response.status_code >= 400:
            message = "Twilio request failed"
            try:
                message = response.json().get("message", message)
            except ValueError:
                pass
            raise TransportError("sms", f"Twilio error {response.status_code}: {message}")

        logger.info("SMS sent to %s", number)
        return True
