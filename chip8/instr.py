"""Instruction decoding for the CHIP-8 instruction set.

Every 16-bit instruction word decodes into a frozen :class:`Instruction`
carrying one :class:`Opcode` tag and the five operand fields the
instruction set uses:

    x   = bits 11-8      y  = bits 7-4      n = bits 3-0
    kk  = bits 7-0       nnn = bits 11-0

The tag is chosen from the top nibble and, for the families that share a
top nibble (0x0, 0x5, 0x8, 0x9, 0xE, 0xF), the ``n`` or ``kk`` subfield.
Anything else decodes to ``Opcode.UNKNOWN``.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Dict, Tuple


class Opcode(enum.Enum):
    """Closed set of instruction variants, one per instruction-table row."""

    CLS = "CLS"
    RET = "RET"
    JP = "JP"
    CALL = "CALL"
    SE_BYTE = "SE Vx, byte"
    SNE_BYTE = "SNE Vx, byte"
    SE_REG = "SE Vx, Vy"
    LD_BYTE = "LD Vx, byte"
    ADD_BYTE = "ADD Vx, byte"
    LD_REG = "LD Vx, Vy"
    OR = "OR Vx, Vy"
    AND = "AND Vx, Vy"
    XOR = "XOR Vx, Vy"
    ADD_REG = "ADD Vx, Vy"
    SUB = "SUB Vx, Vy"
    SHR = "SHR Vx"
    SUBN = "SUBN Vx, Vy"
    SHL = "SHL Vx"
    SNE_REG = "SNE Vx, Vy"
    LD_I = "LD I, addr"
    JP_V0 = "JP V0, addr"
    RND = "RND Vx, byte"
    DRW = "DRW Vx, Vy, nibble"
    SKP = "SKP Vx"
    SKNP = "SKNP Vx"
    LD_VX_DT = "LD Vx, DT"
    LD_VX_K = "LD Vx, K"
    LD_DT_VX = "LD DT, Vx"
    LD_ST_VX = "LD ST, Vx"
    ADD_I_VX = "ADD I, Vx"
    LD_F_VX = "LD F, Vx"
    LD_B_VX = "LD B, Vx"
    LD_MEM_VX = "LD [I], Vx"
    LD_VX_MEM = "LD Vx, [I]"
    UNKNOWN = "???"

    @property
    def mnemonic(self) -> str:
        return self.value


# Families whose top nibble alone selects the instruction.
_SIMPLE: Dict[int, Opcode] = {
    0x1: Opcode.JP,
    0x2: Opcode.CALL,
    0x3: Opcode.SE_BYTE,
    0x4: Opcode.SNE_BYTE,
    0x6: Opcode.LD_BYTE,
    0x7: Opcode.ADD_BYTE,
    0xA: Opcode.LD_I,
    0xB: Opcode.JP_V0,
    0xC: Opcode.RND,
    0xD: Opcode.DRW,
}

# Families selected by (top nibble, subfield). The subfield is ``n`` for
# 0x5/0x8/0x9 and ``kk`` for 0x0/0xE/0xF.
_BY_N: Dict[Tuple[int, int], Opcode] = {
    (0x5, 0x0): Opcode.SE_REG,
    (0x8, 0x0): Opcode.LD_REG,
    (0x8, 0x1): Opcode.OR,
    (0x8, 0x2): Opcode.AND,
    (0x8, 0x3): Opcode.XOR,
    (0x8, 0x4): Opcode.ADD_REG,
    (0x8, 0x5): Opcode.SUB,
    (0x8, 0x6): Opcode.SHR,
    (0x8, 0x7): Opcode.SUBN,
    (0x8, 0xE): Opcode.SHL,
    (0x9, 0x0): Opcode.SNE_REG,
}

_BY_KK: Dict[Tuple[int, int], Opcode] = {
    (0xE, 0x9E): Opcode.SKP,
    (0xE, 0xA1): Opcode.SKNP,
    (0xF, 0x07): Opcode.LD_VX_DT,
    (0xF, 0x0A): Opcode.LD_VX_K,
    (0xF, 0x15): Opcode.LD_DT_VX,
    (0xF, 0x18): Opcode.LD_ST_VX,
    (0xF, 0x1E): Opcode.ADD_I_VX,
    (0xF, 0x29): Opcode.LD_F_VX,
    (0xF, 0x33): Opcode.LD_B_VX,
    (0xF, 0x55): Opcode.LD_MEM_VX,
    (0xF, 0x65): Opcode.LD_VX_MEM,
}

# 0x0 family: only the full words 00E0 and 00EE are instructions. Other
# 0nnn words (machine-code SYS calls) are not interpreted.
_SYSTEM: Dict[int, Opcode] = {
    0x00E0: Opcode.CLS,
    0x00EE: Opcode.RET,
}


@dataclass(frozen=True)
class Instruction:
    """A decoded instruction word."""

    word: int
    opcode: Opcode
    x: int
    y: int
    n: int
    kk: int
    nnn: int

    @property
    def family(self) -> int:
        """Top nibble of the instruction word."""
        return (self.word >> 12) & 0xF

    def name(self) -> str:
        return self.opcode.name

    def __repr__(self) -> str:
        return f"Instruction({self.word:04X} {self.opcode.name})"


def _select_opcode(word: int) -> Opcode:
    family = (word & 0xF000) >> 12
    if family == 0x0:
        return _SYSTEM.get(word, Opcode.UNKNOWN)
    simple = _SIMPLE.get(family)
    if simple is not None:
        return simple
    if family in (0x5, 0x8, 0x9):
        return _BY_N.get((family, word & 0x000F), Opcode.UNKNOWN)
    return _BY_KK.get((family, word & 0x00FF), Opcode.UNKNOWN)


def decode_word(word: int) -> Instruction:
    """Decode a 16-bit instruction word."""
    word &= 0xFFFF
    return Instruction(
        word=word,
        opcode=_select_opcode(word),
        x=(word & 0x0F00) >> 8,
        y=(word & 0x00F0) >> 4,
        n=word & 0x000F,
        kk=word & 0x00FF,
        nnn=word & 0x0FFF,
    )


def decode(high: int, low: int) -> Instruction:
    """Decode the instruction formed by two consecutive memory bytes."""
    return decode_word(((high & 0xFF) << 8) | (low & 0xFF))


__all__ = ["Opcode", "Instruction", "decode", "decode_word"]
