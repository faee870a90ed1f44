"""Monochrome 64x32 frame buffer with snapshot and observer support."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Tuple

import numpy as np

from ..constants import DISPLAY_HEIGHT, DISPLAY_WIDTH

Observer = Callable[[Dict[str, object], "DisplaySnapshot"], None]


@dataclass(frozen=True)
class DisplaySnapshot:
    """Immutable copy of the display contents."""

    rows: Tuple[Tuple[int, ...], ...]
    version: int = field(compare=False)

    @property
    def lit_pixels(self) -> int:
        return sum(sum(row) for row in self.rows)

    def pixel(self, x: int, y: int) -> int:
        return self.rows[y][x]


class FrameBuffer:
    """Display sink written by the machine.

    ``pixels`` is indexed ``[y, x]`` and holds 0/1 bytes. Only the machine
    mutates it (CLS and DRW); renderers read through
    :meth:`get_display_buffer` or :meth:`snapshot`, which return copies.
    """

    width = DISPLAY_WIDTH
    height = DISPLAY_HEIGHT

    def __init__(self) -> None:
        self.pixels = np.zeros((self.height, self.width), dtype=np.uint8)
        self.version = 0
        self.clear_count = 0
        self.draw_count = 0
        self._observers: List[Observer] = []

    def clear(self) -> None:
        self.pixels.fill(0)
        self.clear_count += 1
        self._changed({"type": "clear"})

    def xor_row(self, x: int, y: int, bits: int) -> bool:
        """XOR an 8-pixel sprite row at (x, y), wrapping at both edges.

        Returns True when a lit pixel was switched off.
        """
        erased = False
        row = y % self.height
        for col in range(8):
            if not (bits >> (7 - col)) & 1:
                continue
            column = (x + col) % self.width
            if self.pixels[row, column]:
                erased = True
            self.pixels[row, column] ^= 1
        return erased

    def sprite_drawn(self, x: int, y: int, rows: int, collision: bool, pc: int) -> None:
        """Record that a sprite was drawn and notify observers."""
        self.draw_count += 1
        self._changed(
            {
                "type": "draw",
                "x": x,
                "y": y,
                "rows": rows,
                "collision": collision,
                "pc": pc,
            }
        )

    def get_pixel(self, x: int, y: int) -> int:
        return int(self.pixels[y % self.height, x % self.width])

    def get_display_buffer(self) -> np.ndarray:
        """Return a copy of the pixel array (shape ``(32, 64)``)."""
        return self.pixels.copy()

    def snapshot(self) -> DisplaySnapshot:
        rows = tuple(tuple(int(v) for v in row) for row in self.pixels)
        return DisplaySnapshot(rows=rows, version=self.version)

    def restore(self, snapshot: DisplaySnapshot) -> None:
        self.pixels[:, :] = np.array(snapshot.rows, dtype=np.uint8)
        self.version += 1

    def subscribe(self, observer: Observer) -> None:
        self._observers.append(observer)

    def unsubscribe(self, observer: Observer) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def _changed(self, event: Dict[str, object]) -> None:
        self.version += 1
        if not self._observers:
            return
        snap = self.snapshot()
        for observer in list(self._observers):
            observer(dict(event), snap)


__all__ = ["FrameBuffer", "DisplaySnapshot", "Observer"]
