from __future__ import annotations

import base64
import io
from datetime import date

import pytest
from reportlab.pdfgen import canvas

from conftest import png_bytes
from salesdocs.errors import RenderError
from salesdocs.pipeline.layout import (
    chunk_text,
    decode_signature,
    long_date,
    place_text,
    scale_to_fit,
    signature_from_data_url,
    strip_currency,
    wrap_text,
)


NOTES = (
    "Replace the north facing eavestrough and downspouts, haul away old material, "
    "and re-seal the soffit joints along the garage before the first frost arrives"
)


def test_wrap_lines_stay_within_limit() -> None:
    lines = list(wrap_text(NOTES, 30))
    assert len(lines) > 1
    assert all(len(line) <= 30 for line in lines)


def test_wrap_preserves_word_sequence() -> None:
    lines = list(wrap_text(NOTES, 25))
    assert " ".join(lines).split() == NOTES.split()


def test_rewrapping_a_line_is_a_no_op() -> None:
    for width in (10, 25, 80):
        for line in wrap_text(NOTES, width):
            assert list(wrap_text(line, width)) == [line]


def test_wrap_is_restartable() -> None:
    wrapped = wrap_text(NOTES, 40)
    assert list(wrapped) == list(wrapped)


def test_long_word_is_never_split() -> None:
    lines = list(wrap_text("see https://example.com/a/very/long/path/segment now", 10))
    assert lines == ["see", "https://example.com/a/very/long/path/segment", "now"]


def test_wrap_empty_text() -> None:
    assert list(wrap_text("", 20)) == []
    assert list(wrap_text(None, 20)) == []


def test_chunk_text_covers_whole_string() -> None:
    url = "https://checkout.example.com/" + "x" * 170
    chunks = list(chunk_text(url, 80))
    assert [len(chunk) for chunk in chunks] == [80, 80, 39]
    assert "".join(chunks) == url


def test_place_text_ignores_missing_values() -> None:
    canv = canvas.Canvas(io.BytesIO())
    place_text(canv, None, 10, 10)
    place_text(canv, "", 10, 10)
    place_text(canv, "Jane Doe", 10, 10, max_width=20)


@pytest.mark.parametrize(
    "raw,expected",
    [("$1,250.00", "1,250.00"), (" $ 99.50", "99.50"), ("162.50", "162.50"), ("", "0.00"), (None, "0.00")],
)
def test_strip_currency(raw, expected) -> None:
    assert strip_currency(raw) == expected


def test_scale_to_fit_keeps_aspect() -> None:
    assert scale_to_fit(420, 60, 210, 20) == pytest.approx((140, 20))
    assert scale_to_fit(0, 10, 210, 20) == (0.0, 0.0)


def test_decode_signature_rejects_garbage() -> None:
    with pytest.raises(RenderError):
        decode_signature(b"not an image")
    with pytest.raises(RenderError):
        decode_signature(b"\x89PNG\r\n\x1a\n" + b"\x00" * 16)


def test_decode_signature_accepts_png() -> None:
    assert decode_signature(png_bytes()).getSize() == (200, 60)


def test_signature_from_data_url() -> None:
    data = png_bytes()
    url = "data:image/png;base64," + base64.b64encode(data).decode("ascii")
    assert signature_from_data_url(url) == data
    assert signature_from_data_url("data:image/jpeg;base64,AAAA") is None
    assert signature_from_data_url(None) is None


def test_long_date() -> None:
    assert long_date(date(2026, 3, 5)) == "March 5, 2026"
