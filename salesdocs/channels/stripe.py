from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

import httpx

from ..config import Settings
from ..errors import ConfigurationError, TransportError
from ..models import PaymentSession

logger = logging.getLogger(__name__)

STRIPE_API_BASE = "https://api.stripe.com/v1"


class PaymentProcessor(ABC):
    """Payment-processor collaborator that reserves a payable amount."""

    @abstractmethod
    async def create_checkout_session(
        self,
        *,
        email: str,
        amount_minor: int,
        currency: str,
        line_item_name: str,
        line_item_description: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
        idempotency_key: Optional[str] = None,
    ) -> PaymentSession:
        """Return the new session or raise."""


class StripeCheckout(PaymentProcessor):
    def __init__(
        self,
        secret_key: Optional[str],
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.secret_key = secret_key
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "StripeCheckout":
        return cls(settings.stripe_secret_key, timeout=settings.outbound_timeout)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        data: Optional[dict] = None,
        idempotency_key: Optional[str] = None,
    ) -> dict:
        """Execute a Stripe API request with consistent error handling."""
        if not self.secret_key:
            raise ConfigurationError("Stripe not configured (missing STRIPE_SECRET_KEY)")

        headers = {"Authorization": f"Bearer {self.secret_key}"}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        url = f"{STRIPE_API_BASE}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, url, headers=headers, data=data or {})
        except httpx.HTTPError as exc:
            logger.error("Stripe request failed: %s %s (%s)", method, path, exc)
            raise TransportError("payment", f"Unable to reach Stripe: {exc}") from exc

        if response.status_code >= 400:
            message = "Stripe request failed"
            try:
                message = response.json().get("error", {}).get("message", message)
            except ValueError:
                pass
            logger.error("Stripe API error %s %s: %s", method, path, message)
            raise TransportError("payment", f"Stripe error: {message}")

        try:
            return response.json()
        except ValueError as exc:
            raise TransportError("payment", "Stripe returned a non-JSON response") from exc

    async def create_checkout_session(
        self,
        *,
        email: str,
        amount_minor: int,
        currency: str,
        line_item_name: str,
        line_item_description: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
        idempotency_key: Optional[str] = None,
    ) -> PaymentSession:
        data = {
            "mode": "payment",
            "payment_method_types[0]": "card",
            "customer_email": email,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "line_items[0][quantity]": "1",
            "line_items[0][price_data][currency]": currency,
            "line_items[0][price_data][unit_amount]": str(amount_minor),
            "line_items[0][price_data][product_data][name]": line_item_name,
            "line_items[0][price_data][product_data][description]": line_item_description,
        }
        for key, value in metadata.items():
            data[f"metadata[{key}]"] = value

        payload = await self._request("POST", "/checkout/sessions", data=data, idempotency_key=idempotency_key)
        session_id = payload.get("id")
        checkout_url = payload.get("url")
        if not session_id or not checkout_url:
            raise TransportError("payment", "Stripe checkout session could not be created")
        logger.info("Created checkout session %s (%d %s)", session_id, amount_minor, currency)
        return PaymentSession(session_id=session_id, checkout_url=checkout_url)
