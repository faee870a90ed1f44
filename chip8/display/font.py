"""Shared helpers for working with the built-in hex font."""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from ..constants import (
    DISPLAY_HEIGHT,
    DISPLAY_WIDTH,
    FONT_GLYPH_SIZE,
    FONT_START,
)

GLYPH_COUNT = 16
GLYPH_WIDTH = 4  # only the high nibble of each row is drawn
GLYPH_HEIGHT = FONT_GLYPH_SIZE

# One row per byte, most significant bit leftmost.
FONT_SPRITES: Tuple[int, ...] = (
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
)


def glyph_address(digit: int) -> int:
    """Return the memory address of the glyph for hex ``digit``."""
    return FONT_START + (digit & 0xF) * FONT_GLYPH_SIZE


def glyph_rows(memory, digit: int) -> Tuple[int, ...]:
    """Return the raw row bytes for a glyph as stored in machine memory."""
    if not (0 <= digit < GLYPH_COUNT):
        raise ValueError(f"Glyph index out of range: {digit}")
    base = glyph_address(digit)
    return tuple(memory.read_byte(base + i) for i in range(FONT_GLYPH_SIZE))


def glyph_bitmap(memory, digit: int) -> List[List[int]]:
    """Decode a glyph into a 5x4 bitmap (1 = pixel on)."""
    bitmap: List[List[int]] = []
    for row in glyph_rows(memory, digit):
        bitmap.append([(row >> (7 - col)) & 1 for col in range(GLYPH_WIDTH)])
    return bitmap


def match_glyph(buffer: Sequence[Sequence[int]], x: int, y: int) -> Optional[int]:
    """Return the hex digit drawn with its top-left corner at (x, y).

    Coordinates wrap the same way sprite drawing does. Returns ``None`` when
    the 4x5 cell does not match any glyph of the built-in font.
    """
    cell = []
    for row in range(GLYPH_HEIGHT):
        bits = 0
        for col in range(GLYPH_WIDTH):
            px = (x + col) % DISPLAY_WIDTH
            py = (y + row) % DISPLAY_HEIGHT
            if buffer[py][px]:
                bits |= 0x80 >> col
        cell.append(bits)
    target = tuple(cell)
    for digit in range(GLYPH_COUNT):
        start = digit * FONT_GLYPH_SIZE
        if FONT_SPRITES[start : start + FONT_GLYPH_SIZE] == target:
            return digit
    return None


__all__ = [
    "FONT_SPRITES",
    "GLYPH_COUNT",
    "GLYPH_WIDTH",
    "GLYPH_HEIGHT",
    "glyph_address",
    "glyph_rows",
    "glyph_bitmap",
    "match_glyph",
]
