"""Synthetic measure-group preview (PNG) used when MuseScore is unavailable.

Draws a fixed 400×200 image: a five-line staff split into two measures by
bar lines, four note heads, and the group's start/end measure numbers
above each measure. The output depends only on the two measure numbers.

No imaging dependency: the canvas is a list of RGB scanlines encoded with
stdlib ``zlib``/``struct``, and digits come from a tiny 3×5 bitmap font.
"""
from __future__ import annotations

import struct
import zlib

# ---------------------------------------------------------------------------
# Layout constants
# ---------------------------------------------------------------------------

WIDTH: int = 400
HEIGHT: int = 200

BG_COLOR: tuple[int, int, int] = (255, 255, 255)
INK_COLOR: tuple[int, int, int] = (0, 0, 0)

STAFF_LEFT: int = 50
STAFF_RIGHT: int = 350
STAFF_LINES_Y: tuple[int, ...] = (60, 80, 100, 120, 140)
BAR_LINES_X: tuple[int, ...] = (50, 200, 350)
STROKE: int = 2

NOTE_RADIUS: int = 8
NOTE_HEADS: tuple[tuple[int, int], ...] = ((100, 100), (150, 80), (250, 120), (300, 100))

# Measure-number labels: horizontally centred over each measure, baseline y=50.
LABEL_CENTERS_X: tuple[int, int] = (125, 275)
LABEL_BASELINE_Y: int = 50
FONT_SCALE: int = 3

_DIGITS: dict[str, tuple[str, ...]] = {
    "0": ("111", "101", "101", "101", "111"),
    "1": ("010", "110", "010", "010", "111"),
    "2": ("111", "001", "111", "100", "111"),
    "3": ("111", "001", "111", "001", "111"),
    "4": ("101", "101", "111", "001", "001"),
    "5": ("111", "100", "111", "001", "111"),
    "6": ("111", "100", "111", "101", "111"),
    "7": ("111", "001", "010", "010", "010"),
    "8": ("111", "101", "111", "101", "111"),
    "9": ("111", "101", "111", "001", "111"),
}
_GLYPH_W: int = 3
_GLYPH_H: int = 5


# ---------------------------------------------------------------------------
# PNG encoder (pure stdlib, no Pillow)
# ---------------------------------------------------------------------------

_PNG_SIGNATURE: bytes = b"\x89PNG\r\n\x1a\n"


def _png_chunk(chunk_type: bytes, data: bytes) -> bytes:
    """Encode a single PNG chunk (length + type + data + CRC)."""
    crc = zlib.crc32(chunk_type + data) & 0xFFFFFFFF
    return struct.pack(">I", len(data)) + chunk_type + data + struct.pack(">I", crc)


def _encode_png(rows: list[bytearray], width: int, height: int) -> bytes:
    """Encode top-first RGB scanlines as a PNG byte string."""
    # bit-depth=8, colour-type=2 (RGB), no interlace
    ihdr = _png_chunk(b"IHDR", struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0))
    raw_rows = b"".join(b"\x00" + bytes(row) for row in rows)
    idat = _png_chunk(b"IDAT", zlib.compress(raw_rows, 6))
    iend = _png_chunk(b"IEND", b"")
    return _PNG_SIGNATURE + ihdr + idat + iend


# ---------------------------------------------------------------------------
# Drawing primitives
# ---------------------------------------------------------------------------


def _blank_canvas() -> list[bytearray]:
    return [bytearray(BG_COLOR * WIDTH) for _ in range(HEIGHT)]


def _fill_rect(rows: list[bytearray], x0: int, y0: int, x1: int, y1: int) -> None:
    """Paint the half-open rectangle ``[x0, x1) × [y0, y1)`` with ink."""
    x0, x1 = max(0, x0), min(WIDTH, x1)
    y0, y1 = max(0, y0), min(HEIGHT, y1)
    if x0 >= x1:
        return
    span = bytes(INK_COLOR * (x1 - x0))
    for y in range(y0, y1):
        rows[y][x0 * 3 : x1 * 3] = span


def _fill_circle(rows: list[bytearray], cx: int, cy: int, r: int) -> None:
    for dy in range(-r, r + 1):
        half = int((r * r - dy * dy) ** 0.5)
        _fill_rect(rows, cx - half, cy + dy, cx + half + 1, cy + dy + 1)


def _text_width(text: str) -> int:
    if not text:
        return 0
    return (len(text) * (_GLYPH_W + 1) - 1) * FONT_SCALE


def _draw_number(rows: list[bytearray], value: int, center_x: int, baseline_y: int) -> None:
    text = str(value)
    x = center_x - _text_width(text) // 2
    top = baseline_y - _GLYPH_H * FONT_SCALE
    for ch in text:
        glyph = _DIGITS.get(ch)
        if glyph is not None:
            for gy, line in enumerate(glyph):
                for gx, bit in enumerate(line):
                    if bit == "1":
                        px = x + gx * FONT_SCALE
                        py = top + gy * FONT_SCALE
                        _fill_rect(rows, px, py, px + FONT_SCALE, py + FONT_SCALE)
        x += (_GLYPH_W + 1) * FONT_SCALE


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def render_placeholder_png(start_measure: int, end_measure: int) -> bytes:
    """Return the placeholder preview PNG for measures ``start..end``."""
    rows = _blank_canvas()

    half = STROKE // 2
    for y in STAFF_LINES_Y:
        _fill_rect(rows, STAFF_LEFT, y - half, STAFF_RIGHT + 1, y - half + STROKE)
    for x in BAR_LINES_X:
        _fill_rect(
            rows, x - half, STAFF_LINES_Y[0], x - half + STROKE, STAFF_LINES_Y[-1] + 1
        )
    for cx, cy in NOTE_HEADS:
        _fill_circle(rows, cx, cy, NOTE_RADIUS)

    _draw_number(rows, start_measure, LABEL_CENTERS_X[0], LABEL_BASELINE_Y)
    _draw_number(rows, end_measure, LABEL_CENTERS_X[1], LABEL_BASELINE_Y)

    return _encode_png(rows, WIDTH, HEIGHT)
