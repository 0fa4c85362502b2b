from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer

from .channels.email import SmtpTransport
from .channels.sms import TwilioSms
from .channels.stripe import StripeCheckout
from .config import Settings
from .errors import SalesDocsError
from .models import DocumentRequest, PaymentKind, PaymentRequest, RenderedDocument, init_db, make_engine
from .pipeline.contract import render_contract
from .pipeline.invoice import render_estimate
from .pipeline.layout import signature_from_data_url
from .pipeline.run import Collaborators, request_payment, send_contract, send_estimate, send_follow_ups
from .pipeline.template import template_source, write_contract_template
from .storage import SqlLeadStore, document_request_from_lead

app = typer.Typer(help="Estimate, contract and payment-request documents")
logger = logging.getLogger(__name__)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_collaborators(settings: Settings) -> Collaborators:
    engine = make_engine(settings.db_path)
    init_db(engine)
    return Collaborators(
        payments=StripeCheckout.from_settings(settings),
        email=SmtpTransport.from_settings(settings),
        sms=TwilioSms.from_settings(settings),
        leads=SqlLeadStore(engine),
        templates=template_source(settings.contract_template_path),
        settings=settings,
    )


def _read_signature(path: Optional[Path]) -> Optional[bytes]:
    if path is None:
        return None
    raw = path.read_bytes()
    if raw.startswith(b"data:"):
        return signature_from_data_url(raw.decode("ascii", errors="ignore").strip())
    return raw


def _load_request(
    services: Collaborators,
    estimate: Optional[Path],
    lead_id: Optional[str],
    signature: Optional[bytes] = None,
) -> DocumentRequest:
    if estimate is not None:
        data = json.loads(estimate.read_text(encoding="utf-8"))
        return DocumentRequest.from_payload(data.get("estimate", data), signature=signature)
    if lead_id:
        lead = services.leads.get(lead_id)
        if lead is None:
            raise typer.BadParameter(f"Lead not found: {lead_id}")
        return document_request_from_lead(lead, signature=signature)
    raise typer.BadParameter("Pass --estimate or --lead")


def _save(document: RenderedDocument, out: Path) -> Path:
    out.mkdir(parents=True, exist_ok=True)
    path = out / document.filename
    path.write_bytes(document.content)
    return path


def _fail(exc: SalesDocsError) -> None:
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=1)


@app.command("init-db")
def init_database() -> None:
    settings = Settings.from_env()
    init_db(make_engine(settings.db_path))
    typer.echo(f"Database ready at {settings.db_path}")


@app.command("build-template")
def build_template(out: Path = typer.Option(Path("CONTRACT.pdf"), "--out", help="Where to write the blank contract")) -> None:
    typer.echo(f"Wrote {write_contract_template(out)}")


@app.command("render-estimate")
def render_estimate_cmd(
    estimate: Optional[Path] = typer.Option(None, "--estimate", help="Estimate JSON"),
    lead: Optional[str] = typer.Option(None, "--lead", help="Lead id"),
    out: Path = typer.Option(Path("out"), "--out", help="Output directory"),
) -> None:
    services = build_collaborators(Settings.from_env())
    try:
        document = render_estimate(_load_request(services, estimate, lead))
    except SalesDocsError as exc:
        _fail(exc)
    typer.echo(f"Wrote {_save(document, out)}")


@app.command("render-contract")
def render_contract_cmd(
    estimate: Optional[Path] = typer.Option(None, "--estimate", help="Estimate JSON"),
    lead: Optional[str] = typer.Option(None, "--lead", help="Lead id"),
    signature: Optional[Path] = typer.Option(None, "--signature", help="PNG or data URL file"),
    out: Path = typer.Option(Path("out"), "--out", help="Output directory"),
) -> None:
    services = build_collaborators(Settings.from_env())
    try:
        request = _load_request(services, estimate, lead, _read_signature(signature))
        document = render_contract(request, services.templates)
    except SalesDocsError as exc:
        _fail(exc)
    typer.echo(f"Wrote {_save(document, out)}")


@app.command("send-estimate")
def send_estimate_cmd(
    estimate: Optional[Path] = typer.Option(None, "--estimate", help="Estimate JSON"),
    lead: Optional[str] = typer.Option(None, "--lead", help="Lead id"),
) -> None:
    services = build_collaborators(Settings.from_env())
    try:
        result = asyncio.run(send_estimate(_load_request(services, estimate, lead), services))
    except SalesDocsError as exc:
        _fail(exc)
    typer.echo(json.dumps(result))


@app.command("send-contract")
def send_contract_cmd(
    estimate: Optional[Path] = typer.Option(None, "--estimate", help="Estimate JSON"),
    lead: Optional[str] = typer.Option(None, "--lead", help="Lead id"),
    signature: Optional[Path] = typer.Option(None, "--signature", help="PNG or data URL file"),
) -> None:
    services = build_collaborators(Settings.from_env())
    try:
        request = _load_request(services, estimate, lead, _read_signature(signature))
        result = asyncio.run(send_contract(request, services))
    except SalesDocsError as exc:
        _fail(exc)
    typer.echo(json.dumps(result))


@app.command("request-payment")
def request_payment_cmd(
    email: str = typer.Option(..., "--email", help="Client email"),
    amount: str = typer.Option(..., "--amount", help="Amount in dollars, e.g. 150.00"),
    name: str = typer.Option("", "--name", help="Client name"),
    phone: str = typer.Option("", "--phone", help="Client phone for the SMS notice"),
    description: str = typer.Option("", "--description", help="What the payment is for"),
    kind: PaymentKind = typer.Option(PaymentKind.FULL, "--kind", help="deposit or full"),
    lead: Optional[str] = typer.Option(None, "--lead", help="Lead id to mark pending"),
    rep: Optional[str] = typer.Option(None, "--rep", help="Sales rep name for the email sign-off"),
    nonce: Optional[str] = typer.Option(None, "--nonce", help="Reuse to make retries idempotent"),
) -> None:
    services = build_collaborators(Settings.from_env())
    request = PaymentRequest(
        email=email,
        amount=amount,
        client_name=name,
        phone=phone,
        description=description,
        kind=kind,
        lead_id=lead,
        nonce=nonce,
    )
    try:
        result = asyncio.run(request_payment(request, services, rep_name=rep))
    except SalesDocsError as exc:
        _fail(exc)
    typer.echo(json.dumps(result.to_dict()))


@app.command("follow-up")
def follow_up_cmd() -> None:
    services = build_collaborators(Settings.from_env())
    try:
        count = asyncio.run(send_follow_ups(services))
    except SalesDocsError as exc:
        _fail(exc)
    typer.echo(json.dumps({"success": True, "count": count, "message": f"Sent {count} follow-up email(s)"}))


if __name__ == "__main__":
    app()
