from __future__ import annotations

import asyncio
import json
import re
from datetime import date
from pathlib import Path

import pytest

from conftest import CHECKOUT_URL, FakeEmail, FakeProcessor, FakeSms, MemoryLeadStore, pdf_text
from salesdocs.config import Settings
from salesdocs.errors import TransportError, ValidationError
from salesdocs.models import Lead, PaymentKind, PaymentRequest
from salesdocs.pipeline.run import idempotency_key, request_payment, to_minor_units, validate_payment
from salesdocs.pipeline.template import FileTemplateSource


TODAY = date(2026, 10, 18)


def _lead(**overrides) -> Lead:
    values = dict(
        id="lead_1",
        client_name="Jane Doe",
        email="jane@example.com",
        phone="519-555-0134",
        address="14 Elm St",
        services=[{"name": "Eavestrough", "price": "$1,200.00"}],
        subtotal="$1,200.00",
        hst="$156.00",
        total="$1,356.00",
        sales_rep="Sam Rivera",
        estimate_number="EST-0042",
        status="Quoted",
    )
    values.update(overrides)
    return Lead(**values)


def _request(**overrides) -> PaymentRequest:
    values = dict(
        email="jane@example.com",
        amount="150.00",
        client_name="Jane Doe",
        phone="519-555-0134",
        description="Roof repair",
        kind=PaymentKind.DEPOSIT,
        lead_id="lead_1",
    )
    values.update(overrides)
    return PaymentRequest(**values)


def _run(request, services):
    return asyncio.run(request_payment(request, services, rep_name="Sam Rivera", today=TODAY))


def test_amount_below_minimum_is_rejected_before_any_call(make_services) -> None:
    services = make_services()
    with pytest.raises(ValidationError, match="at least \\$0.50"):
        _run(_request(amount="0.25"), services)
    assert services.payments.calls == []
    assert services.email.sent == []


def test_missing_email_is_rejected(make_services) -> None:
    services = make_services()
    with pytest.raises(ValidationError, match="email and amount are required"):
        _run(_request(email=""), services)
    assert services.payments.calls == []


@pytest.mark.parametrize("amount", ["1e30", "10000000000000000000000000000", "1000000.00"])
def test_oversized_amount_is_rejected_before_any_call(make_services, amount) -> None:
    services = make_services()
    with pytest.raises(ValidationError):
        _run(_request(amount=amount), services)
    assert services.payments.calls == []


def test_amount_is_converted_to_minor_units() -> None:
    assert validate_payment(_request(amount="$1,250.505"))[1] == 125051
    assert to_minor_units(validate_payment(_request(amount="0.50"))[0]) == 50
    with pytest.raises(ValidationError):
        validate_payment(_request(amount="lots"))


def test_end_to_end_without_lead_record(make_services) -> None:
    services = make_services()
    result = _run(_request(), services)

    assert result.to_dict() == {"success": True, "emailSent": True, "smsSent": True, "sessionId": "cs_test_123"}
    call = services.payments.calls[0]
    assert call["amount_minor"] == 15000
    assert call["currency"] == "cad"
    assert call["metadata"]["leadId"] == "lead_1"

    message = services.email.sent[0]
    assert [doc.filename for doc in message.attachments] == ["CoreExteriors_Deposit_Request.pdf"]
    assert CHECKOUT_URL.split("#")[0] in message.html
    assert "$150.00 CAD" in pdf_text(message.attachments[0].content)

    to, body = services.sms.sent[0]
    assert to == "519-555-0134"
    assert "$150.00 CAD" in body
    assert "http" not in body


def test_checkout_url_never_leaks_into_the_result(make_services) -> None:
    result = _run(_request(), make_services())
    assert "checkout.stripe.com" not in json.dumps(result.to_dict())
    assert "checkout.stripe.com" not in repr(result)


def test_existing_lead_gets_contract_and_pending_status(make_services) -> None:
    leads = MemoryLeadStore([_lead()])
    services = make_services(leads=leads)
    result = _run(_request(), services)

    assert result.email_sent
    attachments = services.email.sent[0].attachments
    assert [doc.filename for doc in attachments] == [
        "CoreExteriors_Deposit_Request.pdf",
        "CoreExteriors_Contract_EST-0042.pdf",
    ]
    assert "Jane Doe" in pdf_text(attachments[1].content)
    lead = leads.get("lead_1")
    assert lead.payment_status == "Pending"
    assert lead.payment_method == "Credit Card"
    assert lead.payment_amount == 150.0
    assert lead.payment_type == "deposit"
    assert lead.stripe_session_id == "cs_test_123"


def test_failed_lead_write_still_attaches_contract(make_services) -> None:
    services = make_services(leads=MemoryLeadStore([_lead()], fail_writes=True))
    result = _run(_request(), services)

    assert result.success and result.email_sent
    assert len(services.email.sent[0].attachments) == 2
    lead_step = [outcome for outcome in result.outcomes if outcome.channel == "leadUpdate"][0]
    assert not lead_step.success


def test_unconfigured_email_is_reported_not_raised(make_services) -> None:
    services = make_services(email=FakeEmail(configured=False))
    result = _run(_request(), services)
    assert result.to_dict() == {"success": True, "emailSent": False, "smsSent": True, "sessionId": "cs_test_123"}


def test_sms_skipped_without_phone(make_services) -> None:
    services = make_services()
    result = _run(_request(phone=""), services)
    assert result.sms_sent is False
    assert services.sms.sent == []


def test_sms_failure_does_not_fail_the_request(make_services) -> None:
    services = make_services(sms=FakeSms(error=TransportError("sms", "invalid To")))
    result = _run(_request(), services)
    assert result.success and result.email_sent and not result.sms_sent


def test_slow_email_times_out(make_services) -> None:
    services = make_services(email=FakeEmail(delay=1.0), settings=Settings(outbound_timeout=0.1))
    result = _run(_request(), services)
    assert result.success is True
    assert result.email_sent is False


def test_session_failure_propagates(make_services) -> None:
    services = make_services(payments=FakeProcessor(error=TransportError("payment", "card declined")))
    with pytest.raises(TransportError):
        _run(_request(), services)
    assert services.email.sent == []
    assert services.sms.sent == []


def test_full_payment_labels(make_services) -> None:
    services = make_services()
    _run(_request(kind=PaymentKind.FULL, lead_id=None), services)
    message = services.email.sent[0]
    assert message.subject.startswith("Your Core Exteriors Payment Link")
    assert message.attachments[0].filename == "CoreExteriors_Payment_Request.pdf"
    assert services.payments.calls[0]["metadata"]["leadId"] == ""


def test_idempotency_key() -> None:
    assert idempotency_key(_request(nonce="retry-1")) == "checkout-lead_1-retry-1"
    assert re.fullmatch(r"checkout-adhoc-[0-9a-f]{32}", idempotency_key(_request(lead_id=None)))


def test_contract_render_failure_omits_only_that_attachment(make_services, tmp_path: Path) -> None:
    services = make_services(
        leads=MemoryLeadStore([_lead()]),
        templates=FileTemplateSource(tmp_path / "missing.pdf"),
    )
    result = _run(_request(), services)

    assert result.success and result.email_sent
    attachments = services.email.sent[0].attachments
    assert [doc.filename for doc in attachments] == ["CoreExteriors_Deposit_Request.pdf"]
    assert services.leads.get("lead_1").payment_status == "Pending"


def test_session_timeout_is_fatal(make_services) -> None:
    services = make_services(payments=FakeProcessor(delay=1.0), settings=Settings(outbound_timeout=0.1))
    with pytest.raises(TransportError) as info:
        _run(_request(), services)
    assert info.value.channel == "payment"
    assert services.email.sent == []
    assert services.sms.sent == []
