"""Error taxonomy for the CHIP-8 virtual machine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Tuple


class Chip8Error(Exception):
    """Base class for every error raised by the ``chip8`` package."""


class MachineFault(Chip8Error):
    """Fatal run-time fault raised while executing an instruction.

    The fault captures the address of the failing instruction together with
    the register file and the call stack at the moment of failure so the
    caller can report it without re-inspecting the machine.
    """

    kind = "fault"

    def __init__(
        self,
        pc: int,
        registers: Sequence[int],
        index: int,
        sp: int,
        stack: Sequence[int],
    ) -> None:
        self.pc = pc
        self.registers: Tuple[int, ...] = tuple(registers)
        self.index = index
        self.sp = sp
        self.stack: Tuple[int, ...] = tuple(stack[:sp])
        super().__init__(self._format())

    def _format(self) -> str:
        regs = " ".join(f"V{i:X}={v:02X}" for i, v in enumerate(self.registers))
        frames = ", ".join(f"0x{addr:03X}" for addr in self.stack) or "<empty>"
        return (
            f"{self.kind} at PC=0x{self.pc:03X}: {regs} I=0x{self.index:04X} "
            f"SP={self.sp} stack=[{frames}]"
        )


class StackOverflowError(MachineFault):
    """CALL attempted while all 16 stack slots are in use."""

    kind = "stack overflow"


class StackUnderflowError(MachineFault):
    """RET attempted with no active call."""

    kind = "stack underflow"


class ProgramTooLargeError(Chip8Error):
    """Program image does not fit between 0x200 and the end of memory."""

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(
            f"program is {size} bytes, at most {limit} bytes fit above 0x200"
        )


class InvalidKeyError(Chip8Error, ValueError):
    """Keypad key or host key name that the keypad does not know."""


@dataclass(frozen=True)
class Diagnostic:
    """Non-fatal event recorded while executing (e.g. unknown opcode)."""

    pc: int
    word: int
    message: str

    def __str__(self) -> str:
        return f"0x{self.pc:03X}: {self.word:04X} {self.message}"


__all__ = [
    "Chip8Error",
    "MachineFault",
    "StackOverflowError",
    "StackUnderflowError",
    "ProgramTooLargeError",
    "InvalidKeyError",
    "Diagnostic",
]
