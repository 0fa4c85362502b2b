from __future__ import annotations

import io
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, Tuple

from reportlab.lib.colors import Color
from reportlab.lib.pagesizes import LETTER
from reportlab.pdfgen import canvas

from .. import config
from ..errors import ConfigurationError
from .layout import BLACK, DARK_BLUE, FONT, FONT_BOLD, GREY, INK_BLUE, MUTED, WHITE, fill_rect, wrap_text


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlankRegion:
    """One printed blank on the contract template.

    ``x``/``y``/``width``/``height`` bound the underscores that must be
    painted over; ``text_x``/``text_y`` is the baseline the value is drawn at.
    """

    field: str
    x: float
    y: float
    width: float
    height: float
    text_x: float
    text_y: float
    font_size: float = 9
    bold: bool = False
    color: Color = BLACK


CONTRACT_BLANKS: Tuple[BlankRegion, ...] = (
    BlankRegion("client_name", 116, 585, 182, 9, 116, 590, 10, True),
    BlankRegion("agreement_date", 76, 568, 218, 9, 76, 573),
    BlankRegion("service_address", 312, 570, 248, 9, 312, 575),
    BlankRegion("services", 44, 479, 520, 54, 48, 524, 10),
    BlankRegion("subtotal", 126, 454, 170, 9, 126, 459, 10, True),
    BlankRegion("tax", 108, 438, 170, 9, 108, 443, 10),
    BlankRegion("total", 108, 421, 170, 9, 108, 426, 10, True),
    BlankRegion("start_date", 368, 454, 190, 9, 368, 459),
    BlankRegion("completion_date", 373, 438, 185, 9, 373, 443),
    BlankRegion("client_signature", 45, 261, 222, 9, 48, 266, 9, False, GREY),
    BlankRegion("client_date", 74, 237, 130, 9, 74, 242),
    BlankRegion("contractor_signature", 312, 261, 224, 9, 314, 266, 13, True, INK_BLUE),
    BlankRegion("contractor_date", 341, 237, 130, 9, 341, 242),
)

BLANKS_BY_FIELD: Dict[str, BlankRegion] = {blank.field: blank for blank in CONTRACT_BLANKS}

# Labels printed left of each blank: (text, x, y, bold)
_LABELS = (
    ("Client Name:", 45, 590, True),
    ("Date:", 45, 573, False),
    ("Service Address:", 312, 590, True),
    ("Services:", 45, 542, True),
    ("Contract Price: $", 45, 459, False),
    (f"{config.TAX_LABEL}: $", 45, 443, False),
    ("Total Due: $", 45, 426, True),
    ("Start Date:", 312, 459, False),
    ("Completion:", 312, 443, False),
    ("CLIENT SIGNATURE", 45, 280, True),
    ("Date:", 45, 242, False),
    ("CONTRACTOR SIGNATURE", 312, 280, True),
    ("Date:", 312, 242, False),
)

_AGREEMENT_TERMS = (
    "The contractor will supply all labour, materials and equipment needed to complete the services listed "
    "above in a professional manner. A deposit is due at signing and the balance is due upon completion. "
    "The client may cancel this agreement without penalty within 10 days of signing as provided by the "
    "Ontario Consumer Protection Act. Work is fully insured and WSIB covered."
)


class TemplateSource(ABC):
    """Supplies the raw bytes of the fixed contract template."""

    @abstractmethod
    def load(self) -> bytes:
        """Return the template PDF or raise ``ConfigurationError``."""


class FileTemplateSource(TemplateSource):
    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> bytes:
        try:
            data = self.path.read_bytes()
        except OSError as exc:
            raise ConfigurationError(f"Contract template unavailable at {self.path}: {exc}") from exc
        if not data:
            raise ConfigurationError(f"Contract template at {self.path} is empty")
        return data


class BuiltinTemplateSource(TemplateSource):
    """The blank service agreement drawn with reportlab."""

    def load(self) -> bytes:
        return build_contract_template()


def template_source(path: Path | None) -> TemplateSource:
    if path is not None:
        return FileTemplateSource(path)
    return BuiltinTemplateSource()


def _underscores(canv: canvas.Canvas, x: float, y: float, width: float, size: float = 10) -> None:
    unit = canv.stringWidth("_", FONT, size)
    canv.setFont(FONT, size)
    canv.setFillColor(BLACK)
    canv.drawString(x, y, "_" * int(width // unit))


@lru_cache(maxsize=1)
def build_contract_template() -> bytes:
    buffer = io.BytesIO()
    page_w, page_h = LETTER
    canv = canvas.Canvas(buffer, pagesize=LETTER)
    canv.setTitle(f"{config.COMPANY_NAME} Service Agreement")

    fill_rect(canv, 0, page_h - 90, page_w, 90, DARK_BLUE)
    canv.setFillColor(WHITE)
    canv.setFont(FONT_BOLD, 22)
    canv.drawString(45, page_h - 50, config.COMPANY_NAME.upper())
    canv.setFillColor(MUTED)
    canv.setFont(FONT, 10)
    canv.drawString(45, page_h - 70, f"{config.COMPANY_TAGLINE} - {config.COMPANY_REGION}")
    canv.setFillColor(WHITE)
    canv.setFont(FONT_BOLD, 16)
    canv.drawRightString(page_w - 45, page_h - 50, "SERVICE AGREEMENT")

    for text, x, y, bold in _LABELS:
        canv.setFillColor(BLACK)
        canv.setFont(FONT_BOLD if bold else FONT, 10)
        canv.drawString(x, y, text)

    for blank in CONTRACT_BLANKS:
        if blank.field == "services":
            for row in range(4):
                for col_x in (blank.text_x, 312):
                    canv.setFont(FONT, 10)
                    canv.drawString(col_x, blank.text_y - row * 13, "[  ]")
                    _underscores(canv, col_x + 18, blank.text_y - row * 13, 200)
            continue
        _underscores(canv, blank.x, blank.text_y, blank.width)

    canv.setFont(FONT_BOLD, 11)
    canv.drawString(45, 395, "Terms of Agreement")
    canv.setFont(FONT, 8.5)
    canv.setFillColor(GREY)
    y = 380
    for line in wrap_text(_AGREEMENT_TERMS, 120):
        canv.drawString(45, y, line)
        y -= 12

    fill_rect(canv, 0, 0, page_w, 35, DARK_BLUE)
    canv.setFillColor(MUTED)
    canv.setFont(FONT, 8)
    canv.drawCentredString(
        page_w / 2,
        14,
        f"{config.COMPANY_NAME}  |  {config.COMPANY_ADDRESS}  |  {config.COMPANY_PHONE}  |  {config.COMPANY_WEBSITE}",
    )
    canv.showPage()
    canv.save()
    logger.debug("Built contract template (%d bytes)", buffer.tell())
    return buffer.getvalue()


def write_contract_template(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(build_contract_template())
    return path
