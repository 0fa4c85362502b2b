from __future__ import annotations

import base64
import binascii
import io
import re
from datetime import date
from decimal import Decimal
from typing import Iterator, Optional, Tuple

from PIL import Image, UnidentifiedImageError
from reportlab.lib import colors
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from ..errors import RenderError


FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"

WHITE = colors.white
BLACK = colors.black
DARK_BLUE = colors.Color(0.04, 0.09, 0.16)
INK_BLUE = colors.Color(0.1, 0.2, 0.5)
LABEL_BLUE = colors.Color(0.2, 0.4, 0.7)
LINK_BLUE = colors.Color(0.1, 0.3, 0.7)
MUTED = colors.Color(0.6, 0.7, 0.8)
GRAY = colors.Color(0.4, 0.4, 0.4)
GREY = colors.Color(0.35, 0.35, 0.35)
LIGHT_GRAY = colors.Color(0.85, 0.85, 0.85)
PANEL = colors.Color(0.96, 0.96, 0.98)
ROW_TINT = colors.Color(0.98, 0.98, 1.0)
GOLD = colors.Color(0.96, 0.72, 0.0)
GREEN = colors.Color(0.18, 0.68, 0.34)
GREEN_TINT = colors.Color(0.96, 0.99, 0.97)
ORANGE = colors.Color(0.9, 0.5, 0.1)

MIN_FONT_SIZE = 5.0
PNG_MAGIC = b"\x89PNG\r\n\x1a\n"
_CURRENCY_PREFIX = re.compile(r"^\s*[$€£¥]\s*")
_DATA_URL_PREFIX = "data:image/png;base64,"


def fit_font(canv: canvas.Canvas, text: str, font_name: str, base_size: float, max_width: float) -> float:
    """Shrink the font in half-point steps until ``text`` fits ``max_width``."""
    size = float(base_size)
    while size > MIN_FONT_SIZE:
        if canv.stringWidth(text, font_name, size) <= max_width:
            return size
        size -= 0.5
    return MIN_FONT_SIZE


def place_text(
    canv: canvas.Canvas,
    value,
    x: float,
    y: float,
    size: float = 10,
    bold: bool = False,
    color=BLACK,
    max_width: Optional[float] = None,
) -> None:
    """Draw ``value`` with its baseline at ``(x, y)``.

    Missing values are common on lead records, so ``None`` and empty strings
    draw nothing instead of raising.
    """
    if value is None:
        return
    text = str(value)
    if not text:
        return
    font_name = FONT_BOLD if bold else FONT
    if max_width is not None:
        size = fit_font(canv, text, font_name, size, max_width)
    canv.setFillColor(color)
    canv.setFont(font_name, size)
    canv.drawString(x, y, text)


def erase_region(canv: canvas.Canvas, x: float, y: float, w: float, h: float, background=WHITE) -> None:
    """Paint over a rectangle so printed underscores vanish before new text goes on top."""
    fill_rect(canv, x, y, w, h, background)


def fill_rect(
    canv: canvas.Canvas,
    x: float,
    y: float,
    w: float,
    h: float,
    color,
    border=None,
    border_width: float = 1,
) -> None:
    canv.setFillColor(color)
    if border is not None:
        canv.setStrokeColor(border)
        canv.setLineWidth(border_width)
    canv.rect(x, y, w, h, stroke=1 if border is not None else 0, fill=1)


def draw_line(canv: canvas.Canvas, x1: float, y1: float, x2: float, y2: float, color=LIGHT_GRAY, thickness: float = 1) -> None:
    canv.setStrokeColor(color)
    canv.setLineWidth(thickness)
    canv.line(x1, y1, x2, y2)


class WrappedText:
    """Greedy word wrap by character count.

    Iterating starts over from the first line every time. A single word
    longer than ``max_chars`` gets a line of its own and is never split.
    """

    def __init__(self, text: Optional[str], max_chars: int) -> None:
        if max_chars < 1:
            raise ValueError("max_chars must be positive")
        self.text = text or ""
        self.max_chars = max_chars

    def __iter__(self) -> Iterator[str]:
        current = ""
        for word in self.text.split():
            if not current:
                current = word
            elif len(current) + 1 + len(word) <= self.max_chars:
                current = f"{current} {word}"
            else:
                yield current
                current = word
        if current:
            yield current


def wrap_text(text: Optional[str], max_chars: int) -> WrappedText:
    return WrappedText(text, max_chars)


def chunk_text(text: str, width: int) -> Iterator[str]:
    """Cut a string without spaces (a URL) into fixed-width segments."""
    for start in range(0, len(text or ""), width):
        yield text[start:start + width]


def strip_currency(value: Optional[str], default: str = "0.00") -> str:
    text = (value or "").strip() or default
    return _CURRENCY_PREFIX.sub("", text).strip()


def scale_to_fit(width: float, height: float, box_w: float, box_h: float) -> Tuple[float, float]:
    if width <= 0 or height <= 0:
        return 0.0, 0.0
    ratio = min(box_w / width, box_h / height)
    return width * ratio, height * ratio


def decode_signature(data: bytes) -> ImageReader:
    """Fully decode PNG bytes; anything else raises ``RenderError``."""
    if not data or not data.startswith(PNG_MAGIC):
        raise RenderError("signature is not PNG data")
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as exc:
        raise RenderError(f"signature could not be decoded: {exc}") from exc
    return ImageReader(image)


def place_image(canv: canvas.Canvas, image: ImageReader, x: float, y: float, box_w: float, box_h: float) -> Tuple[float, float]:
    img_w, img_h = image.getSize()
    w, h = scale_to_fit(img_w, img_h, box_w, box_h)
    canv.drawImage(image, x, y, width=w, height=h, mask="auto")
    return w, h


def signature_from_data_url(value: Optional[str]) -> Optional[bytes]:
    """Pull PNG bytes out of a ``data:image/png;base64,`` URL from the signing pad."""
    if not value or not value.startswith(_DATA_URL_PREFIX):
        return None
    try:
        return base64.b64decode(value[len(_DATA_URL_PREFIX):], validate=False)
    except (binascii.Error, ValueError):
        return None


def long_date(value: date) -> str:
    return f"{value:%B} {value.day}, {value.year}"


def format_money(amount: Decimal) -> str:
    return f"${amount:.2f}"
