from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from .. import config
from ..channels.email import EmailTransport, OutgoingEmail
from ..channels.messages import (
    contract_email_html,
    contract_subject,
    estimate_email_html,
    estimate_subject,
    follow_up_email_html,
    follow_up_subject,
    payment_email_html,
    payment_sms_text,
    payment_subject,
)
from ..channels.sms import SmsTransport
from ..channels.stripe import PaymentProcessor
from ..config import Settings
from ..errors import ConfigurationError, SalesDocsError, TransportError, ValidationError
from ..models import (
    FOLLOW_UP_STATUSES,
    DeliveryOutcome,
    DocumentRequest,
    Lead,
    PaymentRequest,
    PaymentResult,
    PaymentSession,
    RenderedDocument,
)
from ..storage import LeadStore, document_request_from_lead
from .contract import render_contract
from .invoice import render_estimate, render_payment_request
from .layout import format_money
from .template import TemplateSource


logger = logging.getLogger(__name__)

EMAIL = "email"
SMS = "sms"
LEAD_UPDATE = "leadUpdate"


@dataclass
class Collaborators:
    """Handles the request boundary builds and hands to each workflow."""

    payments: PaymentProcessor
    email: EmailTransport
    sms: SmsTransport
    leads: LeadStore
    templates: TemplateSource
    settings: Settings

    @property
    def timeout(self) -> float:
        return self.settings.outbound_timeout


def parse_amount(value: Any) -> Decimal:
    text = str(value).strip().lstrip("$").replace(",", "")
    try:
        amount = Decimal(text)
    except InvalidOperation as exc:
        raise ValidationError(f"Amount {value!r} is not a number") from exc
    if not amount.is_finite():
        raise ValidationError(f"Amount {value!r} is not a number")
    return amount


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def validate_payment(request: PaymentRequest) -> Tuple[Decimal, int]:
    """Return the amount and its minor units, or raise before anything is sent."""
    if not (request.email or "").strip() or request.amount is None or not str(request.amount).strip():
        raise ValidationError("Client email and amount are required")
    amount = parse_amount(request.amount)
    try:
        minor = to_minor_units(amount)
    except InvalidOperation as exc:
        raise ValidationError(f"Amount {request.amount!r} is too large") from exc
    if minor < config.MIN_CHARGE_MINOR_UNITS:
        raise ValidationError(f"Amount must be at least {format_money(Decimal(config.MIN_CHARGE_MINOR_UNITS) / 100)}")
    if minor > config.MAX_CHARGE_MINOR_UNITS:
        raise ValidationError(f"Amount must be at most {format_money(Decimal(config.MAX_CHARGE_MINOR_UNITS) / 100)}")
    return amount, minor


def idempotency_key(request: PaymentRequest) -> str:
    nonce = request.nonce or uuid.uuid4().hex
    return f"checkout-{request.lead_id or 'adhoc'}-{nonce}"


async def attempt(
    channel: str,
    action: Callable[[], Awaitable[Any]],
    timeout: float,
    context: str = "",
) -> Tuple[DeliveryOutcome, Any]:
    """Run one best-effort step; a failure or timeout becomes a failed outcome."""
    try:
        value = await asyncio.wait_for(action(), timeout)
    except asyncio.TimeoutError as exc:
        logger.warning("%s step timed out after %.1fs (%s)", channel, timeout, context)
        return DeliveryOutcome(channel, False, exc), None
    except SalesDocsError as exc:
        logger.warning("%s step failed (%s): %s", channel, context, exc)
        return DeliveryOutcome(channel, False, exc), None
    except Exception as exc:
        logger.exception("%s step raised unexpectedly (%s)", channel, context)
        return DeliveryOutcome(channel, False, exc), None
    return DeliveryOutcome(channel, bool(value)), value


async def _render(kind: str, render: Callable[..., RenderedDocument], *args: Any) -> Optional[RenderedDocument]:
    try:
        return await asyncio.to_thread(render, *args)
    except Exception:
        logger.exception("%s render failed; attachment omitted", kind)
        return None


def _mark_pending(leads: LeadStore, lead_id: str, session: PaymentSession, request: PaymentRequest, amount: Decimal) -> Optional[Lead]:
    lead = leads.get(lead_id)
    if lead is None:
        logger.info("Lead %s not found; nothing to update", lead_id)
        return None
    lead.stripe_session_id = session.session_id
    lead.payment_status = "Pending"
    lead.payment_method = "Credit Card"
    lead.payment_amount = float(amount)
    lead.payment_type = request.kind.value
    leads.set(lead)
    return lead


async def _create_session(
    services: Collaborators,
    request: PaymentRequest,
    minor: int,
) -> PaymentSession:
    client = request.client_name or "Client"
    try:
        return await asyncio.wait_for(
            services.payments.create_checkout_session(
                email=request.email,
                amount_minor=minor,
                currency=config.CURRENCY,
                line_item_name=f"{request.label} - {config.COMPANY_NAME}",
                line_item_description=request.description or f"Service payment for {client}",
                success_url=services.settings.success_url,
                cancel_url=services.settings.cancel_url,
                metadata={
                    "leadId": request.lead_id or "",
                    "clientName": request.client_name or "",
                    "paymentType": request.kind.value,
                },
                idempotency_key=idempotency_key(request),
            ),
            services.timeout,
        )
    except asyncio.TimeoutError as exc:
        raise TransportError("payment", f"checkout session timed out after {services.timeout:.1f}s") from exc


async def request_payment(
    request: PaymentRequest,
    services: Collaborators,
    rep_name: Optional[str] = None,
    today: Optional[date] = None,
) -> PaymentResult:
    """Create a checkout session and deliver it to the client.

    Validation errors and a failed session creation propagate. Everything
    after the session exists is best effort: each step is logged and
    recorded on the result, and the checkout URL only ever reaches the
    client through the email and its attachment.
    """
    amount, minor = validate_payment(request)
    session = await _create_session(services, request, minor)
    rep_name = rep_name or f"{config.COMPANY_NAME} Team"
    client_name = request.client_name or "Valued Customer"
    description = request.description or "Exterior Services"
    outcomes: List[DeliveryOutcome] = []

    lead: Optional[Lead] = None
    if request.lead_id:
        outcome, lead = await attempt(
            LEAD_UPDATE,
            lambda: asyncio.to_thread(_mark_pending, services.leads, request.lead_id, session, request, amount),
            services.timeout,
            context=f"lead={request.lead_id}",
        )
        outcomes.append(outcome)
        if outcome.error is not None:
            # The write failed; the record may still be readable for the contract.
            _, lead = await attempt(
                "leadLookup",
                lambda: asyncio.to_thread(services.leads.get, request.lead_id),
                services.timeout,
                context=f"lead={request.lead_id}",
            )

    payment_doc = await _render(
        f"{request.label} request", render_payment_request, request, amount, session.checkout_url, today
    )
    contract_doc = None
    if lead is not None:
        contract_doc = await _render(
            "Contract", render_contract, document_request_from_lead(lead), services.templates, today
        )

    amount_text = f"{format_money(amount)} {config.CURRENCY_LABEL}"
    message = OutgoingEmail(
        to=request.email,
        subject=payment_subject(request.label, amount_text),
        html=payment_email_html(client_name, request.label, amount_text, description, session.checkout_url, rep_name),
        attachments=tuple(doc for doc in (payment_doc, contract_doc) if doc is not None),
    )
    email_outcome, _ = await attempt(
        EMAIL, lambda: services.email.send(message), services.timeout, context=f"session={session.session_id}"
    )
    outcomes.append(email_outcome)

    sms_outcome = DeliveryOutcome(SMS, False)
    if request.phone:
        text = payment_sms_text(request.client_name, request.label, format_money(amount))
        sms_outcome, _ = await attempt(
            SMS, lambda: services.sms.send(request.phone, text), services.timeout, context=f"session={session.session_id}"
        )
        outcomes.append(sms_outcome)

    logger.info(
        "Payment request %s: email=%s sms=%s attachments=%d",
        session.session_id,
        email_outcome.success,
        sms_outcome.success,
        len(message.attachments),
    )
    return PaymentResult(
        success=True,
        email_sent=email_outcome.success,
        sms_sent=sms_outcome.success,
        session_id=session.session_id,
        outcomes=tuple(outcomes),
    )


async def send_estimate(request: DocumentRequest, services: Collaborators, today: Optional[date] = None) -> dict:
    if not request.client_name or not request.email:
        raise ValidationError("Estimate data with client name and email is required")
    document = await asyncio.to_thread(render_estimate, request, today)
    message = OutgoingEmail(
        to=request.email,
        subject=estimate_subject(request),
        html=estimate_email_html(request),
        attachments=(document,),
    )
    outcome, _ = await attempt(
        EMAIL, lambda: services.email.send(message), services.timeout, context=f"estimate={request.document_number}"
    )
    return {"success": True, "emailSent": outcome.success}


async def send_contract(request: DocumentRequest, services: Collaborators, today: Optional[date] = None) -> dict:
    if not request.email:
        raise ValidationError("Estimate with client email required")
    document = await asyncio.to_thread(render_contract, request, services.templates, today)
    message = OutgoingEmail(
        to=request.email,
        cc=services.settings.admin_email or services.settings.smtp_username,
        subject=contract_subject(request),
        html=contract_email_html(request),
        attachments=(document,),
    )
    outcome, _ = await attempt(
        EMAIL, lambda: services.email.send(message), services.timeout, context=f"contract={request.document_number}"
    )
    return {"success": True, "emailSent": outcome.success}


def stale_leads(leads: List[Lead], now: datetime) -> List[Lead]:
    cutoff = now - timedelta(days=config.FOLLOW_UP_AFTER_DAYS)
    return [
        lead
        for lead in leads
        if lead.status in FOLLOW_UP_STATUSES and lead.email and lead.created_at < cutoff
    ]


def _stamp_follow_up(leads: LeadStore, lead: Lead, now: datetime) -> bool:
    lead.last_follow_up = now
    lead.follow_up_count = (lead.follow_up_count or 0) + 1
    leads.set(lead)
    return True


async def send_follow_ups(services: Collaborators, now: Optional[datetime] = None) -> int:
    """Email every stale lead once; returns how many emails went out."""
    if not services.email.is_configured():
        raise ConfigurationError("Email transport not configured; follow-ups not sent")
    now = now or datetime.utcnow()
    candidates = stale_leads(await asyncio.to_thread(services.leads.list_leads), now)
    sent = 0
    for lead in candidates:
        days = (now - lead.created_at).days
        message = OutgoingEmail(
            to=lead.email,
            subject=follow_up_subject(),
            html=follow_up_email_html(lead.client_name, lead.service_type, days),
        )
        outcome, _ = await attempt(EMAIL, lambda: services.email.send(message), services.timeout, context=f"lead={lead.id}")
        if not outcome.success:
            continue
        sent += 1
        await attempt(
            LEAD_UPDATE,
            lambda: asyncio.to_thread(_stamp_follow_up, services.leads, lead, now),
            services.timeout,
            context=f"lead={lead.id}",
        )
    logger.info("Follow-up sweep: %d of %d stale lead(s) emailed", sent, len(candidates))
    return sent
