from __future__ import annotations

import asyncio
from datetime import date, datetime, timedelta

import pytest

from conftest import FakeEmail, MemoryLeadStore, pdf_text
from salesdocs.config import Settings
from salesdocs.errors import ConfigurationError, TransportError, ValidationError
from salesdocs.models import FOLLOW_UP_STATUSES, DocumentRequest, Lead, LeadStatus, LineItem
from salesdocs.pipeline.run import send_contract, send_estimate, send_follow_ups, stale_leads


TODAY = date(2026, 10, 18)
NOW = datetime(2026, 10, 18, 9, 0)


def _estimate(**overrides) -> DocumentRequest:
    values = dict(
        client_name="Jane Doe",
        email="jane@example.com",
        services=(LineItem("Soffit", "$800.00"),),
        subtotal="$800.00",
        tax="$104.00",
        total="$904.00",
        document_number="EST-7",
    )
    values.update(overrides)
    return DocumentRequest(**values)


def test_send_estimate(make_services) -> None:
    services = make_services()
    result = asyncio.run(send_estimate(_estimate(), services, today=TODAY))
    assert result == {"success": True, "emailSent": True}
    message = services.email.sent[0]
    assert message.subject == "Your Estimate from Core Exteriors | EST-7"
    assert message.attachments[0].filename == "CoreExteriors_Estimate_EST-7.pdf"
    assert "$904.00" in pdf_text(message.attachments[0].content)


def test_send_estimate_requires_name_and_email(make_services) -> None:
    with pytest.raises(ValidationError):
        asyncio.run(send_estimate(_estimate(email=""), make_services()))


def test_send_estimate_reports_email_failure(make_services) -> None:
    services = make_services(email=FakeEmail(error=TransportError("email", "refused")))
    assert asyncio.run(send_estimate(_estimate(), services, today=TODAY)) == {"success": True, "emailSent": False}


def test_send_contract_copies_the_office(make_services) -> None:
    services = make_services(settings=Settings(admin_email="office@example.com", outbound_timeout=2.0))
    result = asyncio.run(send_contract(_estimate(), services, today=TODAY))
    assert result["emailSent"] is True
    message = services.email.sent[0]
    assert message.cc == "office@example.com"
    assert message.attachments[0].filename == "CoreExteriors_Contract_EST-7.pdf"


def test_send_contract_falls_back_to_sender_cc(make_services) -> None:
    services = make_services()
    asyncio.run(send_contract(_estimate(), services, today=TODAY))
    assert services.email.sent[0].cc == Settings().smtp_username


def _leads():
    return [
        Lead(id="stale", client_name="A", email="a@example.com", status=LeadStatus.NEW.value, created_at=NOW - timedelta(days=5)),
        Lead(id="quoted", client_name="B", email="b@example.com", status=LeadStatus.QUOTED.value, created_at=NOW - timedelta(days=4)),
        Lead(id="fresh", client_name="C", email="c@example.com", status=LeadStatus.NEW.value, created_at=NOW - timedelta(days=1)),
        Lead(id="sold", client_name="D", email="d@example.com", status=LeadStatus.SOLD.value, created_at=NOW - timedelta(days=9)),
        Lead(id="no-email", client_name="E", email="", status=LeadStatus.NEW.value, created_at=NOW - timedelta(days=9)),
        Lead(id="lost", client_name="F", email="f@example.com", status=LeadStatus.LOST.value, created_at=NOW - timedelta(days=9)),
    ]


def test_follow_up_statuses_are_open_leads() -> None:
    assert FOLLOW_UP_STATUSES == {"New", "Quoted"}


def test_stale_lead_selection() -> None:
    assert [lead.id for lead in stale_leads(_leads(), NOW)] == ["stale", "quoted"]


def test_follow_up_sweep_stamps_leads(make_services) -> None:
    leads = MemoryLeadStore(_leads())
    services = make_services(leads=leads)
    assert asyncio.run(send_follow_ups(services, now=NOW)) == 2
    assert sorted(message.to for message in services.email.sent) == ["a@example.com", "b@example.com"]
    assert "5 days ago" in services.email.sent[0].html
    stamped = leads.get("stale")
    assert stamped.follow_up_count == 1
    assert stamped.last_follow_up == NOW
    assert leads.get("fresh").follow_up_count == 0


def test_follow_up_requires_email_transport(make_services) -> None:
    with pytest.raises(ConfigurationError):
        asyncio.run(send_follow_ups(make_services(email=FakeEmail(configured=False)), now=NOW))
