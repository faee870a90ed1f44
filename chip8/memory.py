"""CHIP-8 memory: 4 KB of byte storage with font and program loading."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Union

from .constants import (
    ADDRESS_MASK,
    BYTE_MASK,
    FONT_START,
    MAX_PROGRAM_SIZE,
    MEMORY_SIZE,
    PROGRAM_START,
)
from .display.font import FONT_SPRITES
from .errors import ProgramTooLargeError

logger = logging.getLogger(__name__)

ProgramSource = Union[bytes, bytearray, memoryview, str, Path]


def read_program(source: ProgramSource) -> bytes:
    """Return the raw program image from bytes or a file path."""
    if isinstance(source, (str, Path)):
        return Path(source).read_bytes()
    return bytes(source)


class Memory:
    """Flat 4 KB address space.

    Every address is masked to 12 bits, so no access can land outside the
    backing store. The interpreter area below 0x200 holds the hex font.
    """

    def __init__(self) -> None:
        self.data = bytearray(MEMORY_SIZE)
        self.read_count = 0
        self.write_count = 0
        self._program = b""
        self.load_font()

    def reset(self) -> None:
        """Zero memory and reload the font and the last loaded program."""
        self.data = bytearray(MEMORY_SIZE)
        self.read_count = 0
        self.write_count = 0
        self.load_font()
        if self._program:
            self._copy_program(self._program)

    def load_font(self) -> None:
        self.data[FONT_START : FONT_START + len(FONT_SPRITES)] = bytes(FONT_SPRITES)

    def load_program(self, source: ProgramSource) -> int:
        """Copy a program image to 0x200 and return its length.

        Raises ``ProgramTooLargeError`` before touching memory when the image
        does not fit.
        """
        image = read_program(source)
        if len(image) > MAX_PROGRAM_SIZE:
            raise ProgramTooLargeError(len(image), MAX_PROGRAM_SIZE)
        # Clear any previous program before copying the new one.
        self.data[PROGRAM_START:] = bytes(MAX_PROGRAM_SIZE)
        self._program = image
        self._copy_program(image)
        logger.debug("Loaded %d byte program at 0x%03X", len(image), PROGRAM_START)
        return len(image)

    def _copy_program(self, image: bytes) -> None:
        self.data[PROGRAM_START : PROGRAM_START + len(image)] = image

    @property
    def program(self) -> bytes:
        return self._program

    def read_byte(self, address: int) -> int:
        self.read_count += 1
        return self.data[address & ADDRESS_MASK]

    def write_byte(self, address: int, value: int) -> None:
        self.write_count += 1
        self.data[address & ADDRESS_MASK] = value & BYTE_MASK

    def read_block(self, address: int, length: int) -> bytes:
        """Read ``length`` bytes starting at ``address``, wrapping at 4 KB."""
        return bytes(self.read_byte(address + offset) for offset in range(length))

    def write_block(self, address: int, values: Iterable[int]) -> None:
        for offset, value in enumerate(values):
            self.write_byte(address + offset, value)

    def snapshot(self) -> bytes:
        return bytes(self.data)

    def restore(self, image: bytes) -> None:
        if len(image) != MEMORY_SIZE:
            raise ValueError(
                f"memory image must be {MEMORY_SIZE} bytes, got {len(image)}"
            )
        self.data[:] = image


__all__ = ["Memory", "ProgramSource", "read_program"]
