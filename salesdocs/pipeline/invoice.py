from __future__ import annotations

import io
import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional, Sequence

from reportlab.lib.pagesizes import LETTER
from reportlab.pdfgen import canvas

from .. import config
from ..errors import RenderError
from ..models import DocumentRequest, PaymentRequest, RenderedDocument
from ..storage import attachment_name
from .layout import (
    BLACK,
    DARK_BLUE,
    GOLD,
    GRAY,
    GREEN,
    GREEN_TINT,
    LABEL_BLUE,
    LIGHT_GRAY,
    LINK_BLUE,
    MUTED,
    ORANGE,
    PANEL,
    ROW_TINT,
    WHITE,
    chunk_text,
    draw_line,
    fill_rect,
    format_money,
    long_date,
    place_text,
    wrap_text,
)


logger = logging.getLogger(__name__)

MARGIN = 45.0
TEXT_X = 55.0
TOTALS_X = 350.0
ROW_HEIGHT = 22.0
NOTES_LINE_HEIGHT = 14.0
NOTES_WRAP_CHARS = 80
TERMS_FLOOR = 150.0
NOTES_GAP = 10.0
NOTES_HEADING_HEIGHT = 15.0
ELLIPSIS = "..."

PAYMENT_PAGE = (612.0, 400.0)
DESCRIPTION_WRAP_CHARS = 75
URL_CHUNK_CHARS = 80


class Cursor:
    """Vertical position on the page. It only ever moves down."""

    def __init__(self, top: float) -> None:
        self.y = float(top)

    def advance(self, amount: float) -> float:
        if amount < 0:
            raise ValueError("cursor cannot move up")
        self.y -= amount
        return self.y

    def clamp(self, ceiling: float) -> float:
        self.y = min(self.y, ceiling)
        return self.y


def fit_notes(lines: Sequence[str], top: float, floor: float = TERMS_FLOOR) -> List[str]:
    """Keep the note lines whose baselines stay above the terms block.

    When lines are dropped the last kept line ends with an ellipsis.
    """
    lines = list(lines)
    limit = floor + NOTES_GAP
    room = 0
    y = top
    while room < len(lines) and y > limit:
        room += 1
        y -= NOTES_LINE_HEIGHT
    if room >= len(lines):
        return lines
    kept = lines[:room]
    if kept:
        kept[-1] = kept[-1] + " " + ELLIPSIS
    return kept


def _brand_footer(canv: canvas.Canvas, width: float, height: float, size: float) -> None:
    fill_rect(canv, 0, 0, width, height, DARK_BLUE)
    canv.setFillColor(MUTED)
    canv.setFont("Helvetica", size)
    canv.drawCentredString(
        width / 2,
        height * 0.35,
        f"{config.COMPANY_NAME}  |  {config.COMPANY_ADDRESS}  |  {config.COMPANY_PHONE}  |  {config.COMPANY_WEBSITE}",
    )


def _estimate_header(canv: canvas.Canvas, request: DocumentRequest, width: float, height: float) -> None:
    fill_rect(canv, 0, height - 80, width, 80, DARK_BLUE)
    place_text(canv, config.COMPANY_NAME.upper(), 50, height - 45, size=22, bold=True, color=WHITE)
    place_text(canv, config.COMPANY_TAGLINE, 50, height - 65, size=10, color=MUTED)
    place_text(canv, "ESTIMATE", width - 150, height - 45, size=20, bold=True, color=WHITE)
    place_text(canv, request.document_number, width - 150, height - 62, size=9, color=MUTED, max_width=105)


def _prepared_for(canv: canvas.Canvas, request: DocumentRequest, cursor: Cursor, width: float) -> None:
    y = cursor.y
    fill_rect(canv, MARGIN, y - 55, width - 2 * MARGIN, 60, PANEL, border=LIGHT_GRAY)
    place_text(canv, "PREPARED FOR", TEXT_X, y - 5, size=8, bold=True, color=LABEL_BLUE)
    place_text(canv, request.client_name, TEXT_X, y - 20, size=11, bold=True, color=BLACK)
    details = "  |  ".join(part for part in (request.address, request.phone, request.email) if part)
    place_text(canv, details, TEXT_X, y - 35, size=9, color=GRAY, max_width=width - 2 * MARGIN - 20)
    cursor.advance(85)


def _line_items(canv: canvas.Canvas, request: DocumentRequest, cursor: Cursor, width: float) -> None:
    amount_x = width - 130
    y = cursor.y
    fill_rect(canv, MARGIN, y - 15, width - 2 * MARGIN, 20, DARK_BLUE)
    place_text(canv, "SERVICE", TEXT_X, y - 10, size=9, bold=True, color=WHITE)
    place_text(canv, "AMOUNT", amount_x, y - 10, size=9, bold=True, color=WHITE)
    cursor.advance(30)

    for index, item in enumerate(request.services):
        y = cursor.y
        fill_rect(canv, MARGIN, y - 12, width - 2 * MARGIN, ROW_HEIGHT, ROW_TINT if index % 2 == 0 else WHITE)
        place_text(canv, item.name, TEXT_X, y - 7, max_width=amount_x - TEXT_X - 10)
        place_text(canv, item.price, amount_x, y - 7)
        cursor.advance(ROW_HEIGHT)
    cursor.advance(15)


def _totals(canv: canvas.Canvas, request: DocumentRequest, cursor: Cursor, width: float) -> None:
    amount_x = width - 130
    draw_line(canv, TOTALS_X, cursor.y, width - MARGIN, cursor.y)
    cursor.advance(20)

    discount = request.bundle_discount or 0
    if discount > 0:
        place_text(canv, "Bundle Discount:", TOTALS_X, cursor.y, color=GRAY)
        place_text(canv, f"(${discount:.2f})", amount_x, cursor.y, color=ORANGE)
        cursor.advance(18)

    place_text(canv, "Subtotal:", TOTALS_X, cursor.y, color=GRAY)
    place_text(canv, request.subtotal or "$0.00", amount_x, cursor.y)
    cursor.advance(18)

    place_text(canv, f"{config.TAX_LABEL}:", TOTALS_X, cursor.y, color=GRAY)
    place_text(canv, request.tax or "$0.00", amount_x, cursor.y)
    cursor.advance(5)

    draw_line(canv, TOTALS_X, cursor.y, width - MARGIN, cursor.y, color=LABEL_BLUE)
    cursor.advance(20)

    place_text(canv, "TOTAL ESTIMATE:", TOTALS_X, cursor.y, size=12, bold=True, color=DARK_BLUE)
    place_text(canv, request.total or "$0.00", amount_x, cursor.y, size=14, bold=True, color=GREEN)
    cursor.advance(40)


def _notes(canv: canvas.Canvas, request: DocumentRequest, cursor: Cursor) -> None:
    if not (request.notes or "").strip():
        return
    wrapped = list(wrap_text(request.notes, NOTES_WRAP_CHARS))
    lines = fit_notes(wrapped, cursor.y - NOTES_HEADING_HEIGHT)
    if len(lines) < len(wrapped):
        logger.info("Estimate %s: notes truncated to %d lines", request.document_number or "-", len(lines))
    if not lines:
        return
    place_text(canv, "NOTES", TEXT_X, cursor.y, size=9, bold=True, color=LABEL_BLUE)
    cursor.advance(NOTES_HEADING_HEIGHT)
    for line in lines:
        place_text(canv, line, TEXT_X, cursor.y, size=9, color=GRAY)
        cursor.advance(NOTES_LINE_HEIGHT)
    cursor.advance(NOTES_GAP)


def _terms(canv: canvas.Canvas, cursor: Cursor, width: float) -> None:
    cursor.clamp(TERMS_FLOOR)
    draw_line(canv, MARGIN, cursor.y, width - MARGIN, cursor.y)
    cursor.advance(18)
    place_text(canv, "TERMS & CONDITIONS", TEXT_X, cursor.y, size=8, bold=True, color=LABEL_BLUE)
    cursor.advance(14)
    for term in config.ESTIMATE_TERMS:
        place_text(canv, f"• {term}", TEXT_X, cursor.y, size=7.5, color=GRAY)
        cursor.advance(12)


def compose_estimate(canv: canvas.Canvas, request: DocumentRequest, today: date) -> Cursor:
    width, height = LETTER
    _estimate_header(canv, request, width, height)

    cursor = Cursor(height - 110)
    place_text(canv, f"Date: {long_date(today)}", 50, cursor.y, size=9, color=GRAY)
    place_text(canv, f"Sales Rep: {request.sales_rep or ''}", 350, cursor.y, size=9, color=GRAY)
    cursor.advance(30)

    _prepared_for(canv, request, cursor, width)
    _line_items(canv, request, cursor, width)
    _totals(canv, request, cursor, width)
    _notes(canv, request, cursor)
    _terms(canv, cursor, width)
    _brand_footer(canv, width, 35, 8)
    return cursor


def render_estimate(request: DocumentRequest, today: Optional[date] = None) -> RenderedDocument:
    today = today or date.today()
    buffer = io.BytesIO()
    try:
        canv = canvas.Canvas(buffer, pagesize=LETTER)
        canv.setTitle(f"{config.COMPANY_NAME} Estimate {request.document_number}".strip())
        compose_estimate(canv, request, today)
        canv.showPage()
        canv.save()
    except (ValueError, TypeError, OSError) as exc:
        raise RenderError(f"Estimate {request.document_number or '-'} could not be drawn: {exc}") from exc
    filename = attachment_name("Estimate", request.document_number)
    logger.info("Rendered estimate %s (%d bytes)", filename, buffer.tell())
    return RenderedDocument(content=buffer.getvalue(), filename=filename)


def compose_payment_request(
    canv: canvas.Canvas,
    payment: PaymentRequest,
    amount: Decimal,
    checkout_url: str,
    today: date,
) -> Cursor:
    width, height = PAYMENT_PAGE
    amount_text = f"{format_money(amount)} {config.CURRENCY_LABEL}"
    description = payment.description or "Exterior Services"

    fill_rect(canv, 0, height - 65, width, 65, DARK_BLUE)
    place_text(canv, config.COMPANY_NAME.upper(), 50, height - 32, size=18, bold=True, color=WHITE)
    place_text(canv, f"{config.COMPANY_TAGLINE} - {config.COMPANY_REGION}", 50, height - 50, size=9, color=MUTED)
    place_text(canv, "PAYMENT REQUEST", width - 190, height - 32, size=14, bold=True, color=GOLD)
    place_text(canv, long_date(today), width - 190, height - 50, size=9, color=MUTED)

    cursor = Cursor(height - 85)
    fill_rect(canv, MARGIN, cursor.y, width - 2 * MARGIN, 3, GOLD)
    cursor.advance(20)

    place_text(canv, "PREPARED FOR", 50, cursor.y, size=8, bold=True, color=LABEL_BLUE)
    cursor.advance(16)
    place_text(canv, payment.client_name or "Valued Customer", 50, cursor.y, size=13, bold=True)
    cursor.advance(14)
    place_text(canv, payment.email, 50, cursor.y, size=9, color=GRAY)
    cursor.advance(22)

    draw_line(canv, MARGIN, cursor.y, width - MARGIN, cursor.y)
    cursor.advance(18)
    place_text(canv, "SERVICE", 50, cursor.y, size=8, bold=True, color=LABEL_BLUE)
    cursor.advance(14)
    for line in wrap_text(description, DESCRIPTION_WRAP_CHARS):
        place_text(canv, line, 50, cursor.y)
        cursor.advance(14)
    cursor.advance(10)

    draw_line(canv, MARGIN, cursor.y, width - MARGIN, cursor.y)
    cursor.advance(18)

    y = cursor.y
    fill_rect(canv, MARGIN, y - 40, width - 2 * MARGIN, 48, GREEN_TINT, border=GREEN)
    place_text(canv, f"{payment.label.upper()} AMOUNT DUE", 55, y - 10, size=9, bold=True, color=GRAY)
    place_text(canv, amount_text, 55, y - 28, size=22, bold=True, color=GREEN)
    place_text(canv, "Powered by Stripe - secure payment processing", width - 270, y - 18, size=8, color=GRAY)
    cursor.advance(60)

    place_text(canv, "SECURE PAYMENT LINK", 50, cursor.y, size=8, bold=True, color=LABEL_BLUE)
    cursor.advance(14)
    for segment in chunk_text(checkout_url, URL_CHUNK_CHARS):
        place_text(canv, segment, 50, cursor.y, size=7.5, color=LINK_BLUE)
        cursor.advance(11)
    cursor.advance(8)
    place_text(
        canv,
        "This link expires in 24 hours. Open it in any browser to pay securely.",
        50,
        cursor.y,
        size=8,
        color=GRAY,
    )
    cursor.advance(20)

    _brand_footer(canv, width, 28, 7.5)
    return cursor


def render_payment_request(
    payment: PaymentRequest,
    amount: Decimal,
    checkout_url: str,
    today: Optional[date] = None,
) -> RenderedDocument:
    today = today or date.today()
    buffer = io.BytesIO()
    try:
        canv = canvas.Canvas(buffer, pagesize=PAYMENT_PAGE)
        canv.setTitle(f"{config.COMPANY_NAME} {payment.label} Request")
        compose_payment_request(canv, payment, amount, checkout_url, today)
        canv.showPage()
        canv.save()
    except (ValueError, TypeError, OSError) as exc:
        raise RenderError(f"{payment.label} request for {payment.email} could not be drawn: {exc}") from exc
    filename = attachment_name(payment.label, "Request")
    logger.info("Rendered %s (%d bytes)", filename, buffer.tell())
    return RenderedDocument(content=buffer.getvalue(), filename=filename)
