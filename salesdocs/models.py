from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import JSON, Column
from sqlalchemy.engine import Engine
from sqlmodel import Field, SQLModel, create_engine


class LeadStatus(str, Enum):
    NEW = "New"
    QUOTED = "Quoted"
    SOLD = "Sold"
    LOST = "Lost"


FOLLOW_UP_STATUSES = frozenset({LeadStatus.NEW.value, LeadStatus.QUOTED.value})


class PaymentKind(str, Enum):
    DEPOSIT = "deposit"
    FULL = "full"


class Lead(SQLModel, table=True):
    id: str = Field(primary_key=True)
    client_name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    service_type: str = ""
    services: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    bundle_discount: float = 0.0
    subtotal: str = ""
    hst: str = ""
    total: str = ""
    notes: str = ""
    sales_rep: str = ""
    estimate_number: str = ""
    survey_visit_date: Optional[str] = None
    completion_date: Optional[str] = None
    status: str = Field(default=LeadStatus.NEW.value, index=True)
    stripe_session_id: Optional[str] = None
    payment_status: Optional[str] = None
    payment_method: Optional[str] = None
    payment_amount: Optional[float] = None
    payment_type: Optional[str] = None
    last_follow_up: Optional[datetime] = None
    follow_up_count: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


def make_engine(db_path: Path) -> Engine:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return create_engine(f"sqlite:///{db_path}")


def init_db(engine: Engine) -> None:
    SQLModel.metadata.create_all(engine)


@dataclass(frozen=True)
class LineItem:
    name: str
    price: str = ""


@dataclass(frozen=True)
class DocumentRequest:
    """Everything a renderer needs to produce an estimate or a contract.

    Money fields are display strings that already carry a currency symbol,
    except ``bundle_discount`` which stays numeric.
    """

    client_name: str = ""
    address: str = ""
    phone: str = ""
    email: str = ""
    services: Tuple[LineItem, ...] = ()
    service_type: str = ""
    subtotal: str = ""
    tax: str = ""
    total: str = ""
    bundle_discount: float = 0.0
    notes: str = ""
    sales_rep: str = ""
    document_number: str = ""
    survey_date: Optional[str] = None
    completion_date: Optional[str] = None
    signature: Optional[bytes] = field(default=None, repr=False)

    @classmethod
    def from_payload(cls, data: Dict[str, Any], signature: Optional[bytes] = None) -> "DocumentRequest":
        """Build from the estimate JSON the sales form posts (camelCase keys)."""
        services = tuple(
            LineItem(name=str(entry.get("name") or ""), price=str(entry.get("price") or ""))
            if isinstance(entry, dict)
            else LineItem(name=str(entry))
            for entry in (data.get("services") or [])
        )
        survey = data.get("survey") if isinstance(data.get("survey"), dict) else {}
        try:
            discount = float(data.get("bundleDiscount") or 0)
        except (TypeError, ValueError):
            discount = 0.0
        return cls(
            client_name=str(data.get("clientName") or ""),
            address=str(data.get("address") or data.get("clientAddress") or ""),
            phone=str(data.get("phone") or ""),
            email=str(data.get("email") or ""),
            services=services,
            service_type=str(data.get("serviceType") or ""),
            subtotal=str(data.get("subtotal") or ""),
            tax=str(data.get("hst") or data.get("tax") or ""),
            total=str(data.get("total") or ""),
            bundle_discount=discount,
            notes=str(data.get("notes") or ""),
            sales_rep=str(data.get("salesRep") or ""),
            document_number=str(data.get("estimateNumber") or ""),
            survey_date=survey.get("visitDate") or None,
            completion_date=data.get("completionDate") or None,
            signature=signature,
        )

    def service_names(self) -> List[str]:
        if self.services:
            return [item.name for item in self.services]
        return [part for part in self.service_type.split(", ") if part]


@dataclass(frozen=True)
class RenderedDocument:
    content: bytes = field(repr=False)
    filename: str
    media_type: str = "application/pdf"


@dataclass(frozen=True)
class PaymentRequest:
    email: str
    amount: Any
    client_name: str = ""
    phone: str = ""
    description: str = ""
    kind: PaymentKind = PaymentKind.FULL
    lead_id: Optional[str] = None
    nonce: Optional[str] = None

    @property
    def is_deposit(self) -> bool:
        return self.kind == PaymentKind.DEPOSIT

    @property
    def label(self) -> str:
        return "Deposit" if self.is_deposit else "Payment"


@dataclass(frozen=True)
class PaymentSession:
    session_id: str
    # One-time secret; kept out of repr so it never lands in a log line.
    checkout_url: str = field(repr=False)


@dataclass(frozen=True)
class DeliveryOutcome:
    channel: str
    success: bool
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class PaymentResult:
    success: bool
    email_sent: bool
    sms_sent: bool
    session_id: str
    outcomes: Tuple[DeliveryOutcome, ...] = field(default=(), repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "emailSent": self.email_sent,
            "smsSent": self.sms_sent,
            "sessionId": self.session_id,
        }
