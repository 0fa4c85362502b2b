from __future__ import annotations

import asyncio
import io
from typing import Dict, List, Optional

import fitz  # PyMuPDF
import pytest
from PIL import Image

from salesdocs.channels.email import EmailTransport, OutgoingEmail
from salesdocs.channels.sms import SmsTransport
from salesdocs.channels.stripe import PaymentProcessor
from salesdocs.config import Settings
from salesdocs.errors import ConfigurationError
from salesdocs.models import Lead, PaymentSession
from salesdocs.pipeline.run import Collaborators
from salesdocs.pipeline.template import BuiltinTemplateSource
from salesdocs.storage import LeadStore


CHECKOUT_URL = "https://checkout.stripe.com/c/pay/cs_test_123#fidkdWxOYHwnPyd1blpxYHZxWjA0"


class FakeProcessor(PaymentProcessor):
    def __init__(self, error: Optional[Exception] = None, delay: float = 0.0) -> None:
        self.calls: List[dict] = []
        self.error = error
        self.delay = delay

    async def create_checkout_session(self, **kwargs) -> PaymentSession:
        self.calls.append(kwargs)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return PaymentSession(session_id="cs_test_123", checkout_url=CHECKOUT_URL)


class FakeEmail(EmailTransport):
    def __init__(self, configured: bool = True, error: Optional[Exception] = None, delay: float = 0.0) -> None:
        self.configured = configured
        self.error = error
        self.delay = delay
        self.sent: List[OutgoingEmail] = []

    def is_configured(self) -> bool:
        return self.configured

    async def send(self, message: OutgoingEmail) -> bool:
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self.configured:
            raise ConfigurationError("Email transport not configured")
        if self.error is not None:
            raise self.error
        self.sent.append(message)
        return True


class FakeSms(SmsTransport):
    def __init__(self, error: Optional[Exception] = None) -> None:
        self.error = error
        self.sent: List[tuple] = []

    def is_configured(self) -> bool:
        return True

    async def send(self, to: str, body: str) -> bool:
        if self.error is not None:
            raise self.error
        self.sent.append((to, body))
        return True


class MemoryLeadStore(LeadStore):
    def __init__(self, leads: Optional[List[Lead]] = None, fail_writes: bool = False) -> None:
        self.leads: Dict[str, Lead] = {lead.id: lead for lead in (leads or [])}
        self.fail_writes = fail_writes
        self.writes = 0

    def get(self, lead_id: str) -> Optional[Lead]:
        return self.leads.get(lead_id)

    def set(self, lead: Lead) -> None:
        if self.fail_writes:
            raise RuntimeError("lead store unavailable")
        self.writes += 1
        self.leads[lead.id] = lead

    def list_leads(self) -> List[Lead]:
        return list(self.leads.values())


def pdf_text(content: bytes) -> str:
    with fitz.open(stream=content, filetype="pdf") as doc:
        return "".join(page.get_text() for page in doc)


def png_bytes(size=(200, 60)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGBA", size, (20, 20, 80, 255)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def make_services():
    def _make(**overrides) -> Collaborators:
        values = dict(
            payments=FakeProcessor(),
            email=FakeEmail(),
            sms=FakeSms(),
            leads=MemoryLeadStore(),
            templates=BuiltinTemplateSource(),
            settings=Settings(outbound_timeout=2.0),
        )
        values.update(overrides)
        return Collaborators(**values)

    return _make
