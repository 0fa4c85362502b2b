from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional


BASE_DIR = Path(__file__).resolve().parents[1]
OUT_DIR = BASE_DIR / "out"
DB_PATH = OUT_DIR / "salesdocs.db"

COMPANY_NAME = "Core Exteriors"
COMPANY_LEGAL_NAME = "Core Exteriors Ltd."
COMPANY_TAGLINE = "Professional Exterior Services"
COMPANY_REGION = "London, Ontario"
COMPANY_ADDRESS = "203 Cambridge St, London, ON, N6H 1N6"
COMPANY_PHONE = "606 616 2026"
COMPANY_WEBSITE = "corexteriors.ca"
DEFAULT_SENDER = "corexteriors@gmail.com"
FILE_PREFIX = "CoreExteriors"

CURRENCY = "cad"
CURRENCY_LABEL = "CAD"
TAX_LABEL = "HST (13%)"
MIN_CHARGE_MINOR_UNITS = 50
MAX_CHARGE_MINOR_UNITS = 99_999_999

ESTIMATE_TERMS: List[str] = [
    "This estimate is valid for 30 days from the date of issue.",
    "A 25% deposit is required to confirm the booking.",
    "10 day cooling off period applies as per Ontario consumer protection.",
    "Core Exteriors is fully insured and WSIB covered.",
]

FOLLOW_UP_AFTER_DAYS = 3

DEFAULT_SUCCESS_URL = "https://corexteriors.ca/sales?payment=success&session_id={CHECKOUT_SESSION_ID}"
DEFAULT_CANCEL_URL = "https://corexteriors.ca/sales?payment=cancelled"


def _env(name: str, *fallbacks: str, default: Optional[str] = None) -> Optional[str]:
    for key in (name, *fallbacks):
        value = (os.environ.get(key) or "").strip()
        if value:
            return value
    return default


@dataclass(frozen=True)
class Settings:
    stripe_secret_key: Optional[str] = None
    success_url: str = DEFAULT_SUCCESS_URL
    cancel_url: str = DEFAULT_CANCEL_URL
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_username: str = DEFAULT_SENDER
    smtp_password: Optional[str] = None
    admin_email: Optional[str] = None
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_phone_number: Optional[str] = None
    contract_template_path: Optional[Path] = None
    db_path: Path = DB_PATH
    outbound_timeout: float = 10.0

    @classmethod
    def from_env(cls) -> "Settings":
        template = _env("CONTRACT_TEMPLATE_PATH")
        return cls(
            stripe_secret_key=_env("STRIPE_SECRET_KEY"),
            success_url=_env("PAYMENT_SUCCESS_URL", default=DEFAULT_SUCCESS_URL),
            cancel_url=_env("PAYMENT_CANCEL_URL", default=DEFAULT_CANCEL_URL),
            smtp_host=_env("SMTP_HOST", default="smtp.gmail.com"),
            smtp_port=int(_env("SMTP_PORT", default="587")),
            smtp_username=_env("SMTP_USERNAME", "GMAIL_USER", default=DEFAULT_SENDER),
            smtp_password=_env("SMTP_PASSWORD", "GMAIL_APP_PASSWORD"),
            admin_email=_env("ADMIN_EMAIL"),
            twilio_account_sid=_env("TWILIO_ACCOUNT_SID"),
            twilio_auth_token=_env("TWILIO_AUTH_TOKEN"),
            twilio_phone_number=_env("TWILIO_PHONE_NUMBER"),
            contract_template_path=Path(template) if template else None,
            db_path=Path(_env("SALESDOCS_DB_PATH", default=str(DB_PATH))),
            outbound_timeout=float(_env("OUTBOUND_TIMEOUT_SECONDS", default="10")),
        )
