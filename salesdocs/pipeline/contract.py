from __future__ import annotations

import io
import logging
import math
from datetime import date
from typing import List, Optional, Sequence, Tuple

import fitz  # PyMuPDF
from reportlab.pdfgen import canvas

from .. import config
from ..errors import ConfigurationError, RenderError
from ..models import DocumentRequest, RenderedDocument
from ..storage import attachment_name
from .layout import GREY, decode_signature, erase_region, long_date, place_image, place_text, strip_currency
from .template import BLANKS_BY_FIELD, CONTRACT_BLANKS, BlankRegion, TemplateSource


logger = logging.getLogger(__name__)

SERVICE_RIGHT_X = 312.0
SERVICE_ROW_HEIGHT = 13.0
SIGNATURE_BOX = (46.0, 248.0, 210.0, 20.0)
CONTRACTOR_TITLE_POS = (314.0, 253.0)
SIGNED_PLACEHOLDER = "(Signed digitally)"


def service_positions(names: Sequence[str]) -> List[Tuple[str, float, float]]:
    """Two columns read top to bottom: the first ceil(n/2) names fill the left."""
    blank = BLANKS_BY_FIELD["services"]
    half = math.ceil(len(names) / 2)
    positions: List[Tuple[str, float, float]] = []
    for index, name in enumerate(names):
        if index < half:
            x, row = blank.text_x, index
        else:
            x, row = SERVICE_RIGHT_X, index - half
        positions.append((name, x, blank.text_y - row * SERVICE_ROW_HEIGHT))
    return positions


def contract_values(request: DocumentRequest, today: date) -> dict:
    """Text for each single-line blank; ``None`` leaves the erased blank empty."""
    signed_on = long_date(today)
    return {
        "client_name": request.client_name,
        "agreement_date": signed_on,
        "service_address": request.address,
        "subtotal": strip_currency(request.subtotal),
        "tax": strip_currency(request.tax),
        "total": strip_currency(request.total),
        "start_date": request.survey_date,
        "completion_date": request.completion_date or "Upon completion",
        "client_signature": None,
        "client_date": signed_on,
        "contractor_signature": request.sales_rep or config.COMPANY_NAME,
        "contractor_date": signed_on,
    }


def _write_blank(canv: canvas.Canvas, blank: BlankRegion, value: Optional[str]) -> None:
    place_text(
        canv,
        value,
        blank.text_x,
        blank.text_y,
        size=blank.font_size,
        bold=blank.bold,
        color=blank.color,
        max_width=blank.width - (blank.text_x - blank.x),
    )


def _draw_signature(canv: canvas.Canvas, request: DocumentRequest) -> None:
    if not request.signature:
        return
    try:
        image = decode_signature(request.signature)
    except RenderError as exc:
        logger.warning("Contract %s: %s; drawing placeholder", request.document_number or "-", exc)
        _write_blank(canv, BLANKS_BY_FIELD["client_signature"], SIGNED_PLACEHOLDER)
        return
    place_image(canv, image, *SIGNATURE_BOX)


def _draw_overlay(request: DocumentRequest, page_size: Tuple[float, float], today: date) -> bytes:
    buffer = io.BytesIO()
    canv = canvas.Canvas(buffer, pagesize=page_size)
    values = contract_values(request, today)

    # Every blank is erased before anything is written over it.
    for blank in CONTRACT_BLANKS:
        erase_region(canv, blank.x, blank.y, blank.width, blank.height)

    for blank in CONTRACT_BLANKS:
        if blank.field in values:
            _write_blank(canv, blank, values[blank.field])

    services = BLANKS_BY_FIELD["services"]
    column_width = SERVICE_RIGHT_X - services.text_x - 8
    for name, x, y in service_positions(request.service_names()):
        place_text(canv, name, x, y, size=services.font_size, max_width=column_width)

    _draw_signature(canv, request)

    rep = request.sales_rep or config.COMPANY_NAME
    place_text(canv, f"{rep} - {config.COMPANY_LEGAL_NAME}", *CONTRACTOR_TITLE_POS, size=8, color=GREY)

    canv.showPage()
    canv.save()
    return buffer.getvalue()


def render_contract(
    request: DocumentRequest,
    source: TemplateSource,
    today: Optional[date] = None,
) -> RenderedDocument:
    """Fill the contract template with ``request``.

    A template that is missing or unreadable raises ``ConfigurationError``;
    any other drawing failure raises ``RenderError``.
    """
    today = today or date.today()
    template_bytes = source.load()
    try:
        template = fitz.open(stream=template_bytes, filetype="pdf")
    except (RuntimeError, ValueError) as exc:
        raise ConfigurationError(f"Contract template is not a readable PDF: {exc}") from exc

    with template:
        if template.page_count < 1:
            raise ConfigurationError("Contract template has no pages")
        page = template[0]
        try:
            overlay_bytes = _draw_overlay(request, (page.rect.width, page.rect.height), today)
            with fitz.open(stream=overlay_bytes, filetype="pdf") as overlay:
                page.show_pdf_page(page.rect, overlay, 0, overlay=True)
                content = template.tobytes(garbage=3, deflate=True)
        except (RuntimeError, ValueError, OSError) as exc:
            raise RenderError(f"Contract {request.document_number or '-'} could not be drawn: {exc}") from exc

    filename = attachment_name("Contract", request.document_number or "N/A")
    logger.info("Rendered contract %s (%d bytes)", filename, len(content))
    return RenderedDocument(content=content, filename=filename)
