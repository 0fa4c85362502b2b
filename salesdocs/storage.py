from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from . import config
from .models import DocumentRequest, Lead, LineItem


def attachment_name(kind: str, number: str, ext: str = "pdf") -> str:
    number = (number or "").strip() or "Unknown"
    return f"{config.FILE_PREFIX}_{kind}_{number.replace(' ', '_')}.{ext}"


def document_request_from_lead(lead: Lead, signature: Optional[bytes] = None) -> DocumentRequest:
    items = tuple(
        LineItem(name=str(entry.get("name") or ""), price=str(entry.get("price") or ""))
        for entry in (lead.services or [])
        if isinstance(entry, dict)
    )
    return DocumentRequest(
        client_name=lead.client_name,
        address=lead.address,
        phone=lead.phone,
        email=lead.email,
        services=items,
        service_type=lead.service_type,
        subtotal=lead.subtotal,
        tax=lead.hst,
        total=lead.total,
        bundle_discount=lead.bundle_discount or 0.0,
        notes=lead.notes,
        sales_rep=lead.sales_rep,
        document_number=lead.estimate_number,
        survey_date=lead.survey_visit_date,
        completion_date=lead.completion_date,
        signature=signature,
    )


class LeadStore(ABC):
    """Persistence collaborator for lead records."""

    @abstractmethod
    def get(self, lead_id: str) -> Optional[Lead]:
        """Return the lead or None when it does not exist."""

    @abstractmethod
    def set(self, lead: Lead) -> None:
        """Write the whole record. Last write wins."""

    @abstractmethod
    def list_leads(self) -> List[Lead]:
        """Return every stored lead."""


class SqlLeadStore(LeadStore):
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def _session(self) -> Session:
        return Session(self.engine, expire_on_commit=False)

    def get(self, lead_id: str) -> Optional[Lead]:
        with self._session() as session:
            return session.get(Lead, lead_id)

    def set(self, lead: Lead) -> None:
        lead.updated_at = datetime.utcnow()
        with self._session() as session:
            session.merge(lead)
            session.commit()

    def list_leads(self) -> List[Lead]:
        with self._session() as session:
            return list(session.exec(select(Lead).order_by(Lead.created_at.desc())))
