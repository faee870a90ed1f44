"""CHIP-8 machine: architectural state plus the fetch-decode-execute loop.

Execution model:
  1. If the machine is waiting for a key, poll the input source once and
     return without fetching.
  2. Fetch the two bytes at PC and decode them into an ``Instruction``.
  3. Advance PC by one instruction width.
  4. Execute the instruction handler selected from the dispatch table.

Timers are never touched by dispatch except through the explicit timer
instructions; the driver calls :meth:`Machine.tick_timers` at 60 Hz and
:meth:`Machine.update_sound` once per loop iteration.
"""

from __future__ import annotations

import logging
import random
import threading
from collections import deque
from contextlib import contextmanager
from enum import Enum
from typing import Any, Callable, Deque, Dict, Iterator, List, Optional

from .constants import (
    BYTE_MASK,
    DIAGNOSTIC_LIMIT,
    FLAG_REGISTER,
    FONT_GLYPH_SIZE,
    FONT_START,
    INSTRUCTION_SIZE,
    NUM_REGISTERS,
    PROGRAM_START,
    STACK_SIZE,
    WORD_MASK,
)
from .display import FrameBuffer
from .errors import (
    Diagnostic,
    MachineFault,
    StackOverflowError,
    StackUnderflowError,
)
from .instr import Instruction, Opcode, decode
from .keypad import InputSource, Keypad
from .memory import Memory, ProgramSource
from .peripherals.sound import NullSoundSink, SoundSink

logger = logging.getLogger(__name__)

Handler = Callable[[Instruction, int], None]


class MachineStatus(Enum):
    RUNNING = "running"
    AWAITING_KEY = "awaiting_key"
    HALTED = "halted"


class Machine:
    """CHIP-8 virtual machine.

    Usage:
        machine = Machine()
        machine.load_program(Path("pong.ch8"))
        machine.run(max_instructions=1000)
        machine.tick_timers()   # from a 60 Hz clock
        machine.update_sound()

    The machine is the only writer of its registers, memory, stack and
    display buffer. Every step runs under one re-entrant lock; use
    :meth:`exclusive` (or the snapshot accessors) from other threads.
    """

    def __init__(
        self,
        *,
        display: Optional[FrameBuffer] = None,
        keypad: Optional[InputSource] = None,
        sound: Optional[SoundSink] = None,
        rng: Optional[random.Random] = None,
        seed: Optional[int] = None,
    ) -> None:
        self.memory = Memory()
        self.display = display if display is not None else FrameBuffer()
        self.keypad = keypad if keypad is not None else Keypad()
        self.sound = sound if sound is not None else NullSoundSink()
        self.rng = rng if rng is not None else random.Random(seed)

        self._lock = threading.RLock()
        self.diagnostics: Deque[Diagnostic] = deque(maxlen=DIAGNOSTIC_LIMIT)
        self.diagnostic_count = 0
        self._dispatch: Dict[Opcode, Handler] = self._build_dispatch()
        self._init_registers()

    def _init_registers(self) -> None:
        self.v: List[int] = [0] * NUM_REGISTERS
        self.i = 0
        self.pc = PROGRAM_START
        self.sp = 0
        self.stack: List[int] = [0] * STACK_SIZE
        self.delay_timer = 0
        self.sound_timer = 0
        self.status = MachineStatus.RUNNING
        self.wait_register: Optional[int] = None
        self.instruction_count = 0
        self.timer_ticks = 0

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def reset(self) -> None:
        """Return to power-on state, keeping the loaded program image."""
        with self._lock:
            self.memory.reset()
            self._init_registers()
            self.diagnostics.clear()
            self.diagnostic_count = 0
            self.display.clear()

    def load_program(self, source: ProgramSource) -> int:
        """Load a program at 0x200 and reset. Returns the image length."""
        with self._lock:
            size = self.memory.load_program(source)
            self.reset()
            return size

    def halt(self) -> None:
        """Stop execution; also cancels a pending key wait."""
        with self._lock:
            if self.status is MachineStatus.AWAITING_KEY:
                logger.debug("Key wait on V%X cancelled", self.wait_register)
            self.status = MachineStatus.HALTED
            self.wait_register = None

    @property
    def halted(self) -> bool:
        return self.status is MachineStatus.HALTED

    @property
    def awaiting_key(self) -> bool:
        return self.status is MachineStatus.AWAITING_KEY

    @contextmanager
    def exclusive(self) -> Iterator["Machine"]:
        """Hold the step lock, e.g. while a renderer reads the display."""
        with self._lock:
            yield self

    # ------------------------------------------------------------------ #
    # Execution
    # ------------------------------------------------------------------ #

    def step(self) -> Optional[Instruction]:
        """Execute one instruction.

        Returns the executed instruction, or None when nothing was fetched
        (halted, or still waiting for a key). Stack faults halt the machine
        with PC left on the faulting instruction and propagate.
        """
        with self._lock:
            if self.status is MachineStatus.HALTED:
                return None
            if self.status is MachineStatus.AWAITING_KEY:
                self._poll_key_wait()
                return None

            pc = self.pc
            instr = decode(
                self.memory.read_byte(pc), self.memory.read_byte(pc + 1)
            )
            self.pc = (pc + INSTRUCTION_SIZE) & WORD_MASK
            try:
                self._dispatch[instr.opcode](instr, pc)
            except MachineFault:
                self.pc = pc
                self.status = MachineStatus.HALTED
                raise
            self.instruction_count += 1
            return instr

    def run(self, max_instructions: Optional[int] = None) -> int:
        """Step until halted, waiting for a key, or the budget is spent.

        Returns the number of instructions executed.
        """
        executed = 0
        while max_instructions is None or executed < max_instructions:
            if self.status is not MachineStatus.RUNNING:
                break
            if self.step() is not None:
                executed += 1
        return executed

    def tick_timers(self) -> None:
        """Decrement both timers toward zero (call at 60 Hz)."""
        with self._lock:
            if self.delay_timer > 0:
                self.delay_timer -= 1
            if self.sound_timer > 0:
                self.sound_timer -= 1
            self.timer_ticks += 1

    def update_sound(self) -> None:
        """Drive the sound sink from the sound timer."""
        with self._lock:
            active = self.sound_timer > 0
        if active:
            self.sound.on()
        else:
            self.sound.off()

    # ------------------------------------------------------------------ #
    # Input helpers
    # ------------------------------------------------------------------ #

    def press_key(self, key) -> bool:
        with self._lock:
            return self.keypad.press_key(key)

    def release_key(self, key) -> None:
        with self._lock:
            self.keypad.release_key(key)

    # ------------------------------------------------------------------ #
    # Accessors
    # ------------------------------------------------------------------ #

    def get_cpu_state(self) -> Dict[str, Any]:
        """Return a plain-dict copy of the register file."""
        with self._lock:
            return {
                "pc": self.pc,
                "i": self.i,
                "sp": self.sp,
                "v": list(self.v),
                "stack": list(self.stack[: self.sp]),
                "delay_timer": self.delay_timer,
                "sound_timer": self.sound_timer,
                "status": self.status.value,
                "wait_register": self.wait_register,
                "instruction_count": self.instruction_count,
            }

    def get_display_buffer(self):
        with self._lock:
            return self.display.get_display_buffer()

    # ------------------------------------------------------------------ #
    # Key wait
    # ------------------------------------------------------------------ #

    def _poll_key_wait(self) -> bool:
        key = self.keypad.pop_key_press()
        if key is None:
            return False
        register = self.wait_register
        self.v[register] = key & 0xF
        self.pc = (self.pc + INSTRUCTION_SIZE) & WORD_MASK
        self.status = MachineStatus.RUNNING
        self.wait_register = None
        logger.debug("Key %X stored in V%X", key, register)
        return True

    # ------------------------------------------------------------------ #
    # Dispatch
    # ------------------------------------------------------------------ #

    def _build_dispatch(self) -> Dict[Opcode, Handler]:
        table: Dict[Opcode, Handler] = {
            Opcode.CLS: self._op_cls,
            Opcode.RET: self._op_ret,
            Opcode.JP: self._op_jp,
            Opcode.CALL: self._op_call,
            Opcode.SE_BYTE: self._op_se_byte,
            Opcode.SNE_BYTE: self._op_sne_byte,
            Opcode.SE_REG: self._op_se_reg,
            Opcode.LD_BYTE: self._op_ld_byte,
            Opcode.ADD_BYTE: self._op_add_byte,
            Opcode.LD_REG: self._op_ld_reg,
            Opcode.OR: self._op_or,
            Opcode.AND: self._op_and,
            Opcode.XOR: self._op_xor,
            Opcode.ADD_REG: self._op_add_reg,
            Opcode.SUB: self._op_sub,
            Opcode.SHR: self._op_shr,
            Opcode.SUBN: self._op_subn,
            Opcode.SHL: self._op_shl,
            Opcode.SNE_REG: self._op_sne_reg,
            Opcode.LD_I: self._op_ld_i,
            Opcode.JP_V0: self._op_jp_v0,
            Opcode.RND: self._op_rnd,
            Opcode.DRW: self._op_drw,
            Opcode.SKP: self._op_skp,
            Opcode.SKNP: self._op_sknp,
            Opcode.LD_VX_DT: self._op_ld_vx_dt,
            Opcode.LD_VX_K: self._op_ld_vx_k,
            Opcode.LD_DT_VX: self._op_ld_dt_vx,
            Opcode.LD_ST_VX: self._op_ld_st_vx,
            Opcode.ADD_I_VX: self._op_add_i_vx,
            Opcode.LD_F_VX: self._op_ld_f_vx,
            Opcode.LD_B_VX: self._op_ld_b_vx,
            Opcode.LD_MEM_VX: self._op_ld_mem_vx,
            Opcode.LD_VX_MEM: self._op_ld_vx_mem,
            Opcode.UNKNOWN: self._op_unknown,
        }
        missing = [op.name for op in Opcode if op not in table]
        if missing:
            raise RuntimeError(f"No handler for opcodes: {', '.join(missing)}")
        return table

    def _fault(self, kind, pc: int) -> MachineFault:
        return kind(pc, self.v, self.i, self.sp, self.stack)

    def _skip(self) -> None:
        self.pc = (self.pc + INSTRUCTION_SIZE) & WORD_MASK

    # 0x0 family
    def _op_cls(self, instr: Instruction, pc: int) -> None:
        self.display.clear()

    def _op_ret(self, instr: Instruction, pc: int) -> None:
        if self.sp == 0:
            raise self._fault(StackUnderflowError, pc)
        self.sp -= 1
        self.pc = self.stack[self.sp]

    # Control flow
    def _op_jp(self, instr: Instruction, pc: int) -> None:
        self.pc = instr.nnn

    def _op_call(self, instr: Instruction, pc: int) -> None:
        if self.sp >= STACK_SIZE:
            raise self._fault(StackOverflowError, pc)
        self.stack[self.sp] = self.pc
        self.sp += 1
        self.pc = instr.nnn

    def _op_jp_v0(self, instr: Instruction, pc: int) -> None:
        self.pc = (instr.nnn + self.v[0]) & WORD_MASK

    # Skips
    def _op_se_byte(self, instr: Instruction, pc: int) -> None:
        if self.v[instr.x] == instr.kk:
            self._skip()

    def _op_sne_byte(self, instr: Instruction, pc: int) -> None:
        if self.v[instr.x] != instr.kk:
            self._skip()

    def _op_se_reg(self, instr: Instruction, pc: int) -> None:
        if self.v[instr.x] == self.v[instr.y]:
            self._skip()

    def _op_sne_reg(self, instr: Instruction, pc: int) -> None:
        if self.v[instr.x] != self.v[instr.y]:
            self._skip()

    def _op_skp(self, instr: Instruction, pc: int) -> None:
        if self.keypad.is_pressed(self.v[instr.x] & 0xF):
            self._skip()

    def _op_sknp(self, instr: Instruction, pc: int) -> None:
        if not self.keypad.is_pressed(self.v[instr.x] & 0xF):
            self._skip()

    # Register loads and byte arithmetic
    def _op_ld_byte(self, instr: Instruction, pc: int) -> None:
        self.v[instr.x] = instr.kk

    def _op_add_byte(self, instr: Instruction, pc: int) -> None:
        self.v[instr.x] = (self.v[instr.x] + instr.kk) & BYTE_MASK

    # 0x8 family. VF is always written last so it wins when x == F.
    def _op_ld_reg(self, instr: Instruction, pc: int) -> None:
        self.v[instr.x] = self.v[instr.y]

    def _op_or(self, instr: Instruction, pc: int) -> None:
        self.v[instr.x] |= self.v[instr.y]

    def _op_and(self, instr: Instruction, pc: int) -> None:
        self.v[instr.x] &= self.v[instr.y]

    def _op_xor(self, instr: Instruction, pc: int) -> None:
        self.v[instr.x] ^= self.v[instr.y]

    def _op_add_reg(self, instr: Instruction, pc: int) -> None:
        total = self.v[instr.x] + self.v[instr.y]
        self.v[instr.x] = total & BYTE_MASK
        self.v[FLAG_REGISTER] = 1 if total > BYTE_MASK else 0

    def _op_sub(self, instr: Instruction, pc: int) -> None:
        vx, vy = self.v[instr.x], self.v[instr.y]
        self.v[instr.x] = (vx - vy) & BYTE_MASK
        self.v[FLAG_REGISTER] = 1 if vx > vy else 0

    def _op_shr(self, instr: Instruction, pc: int) -> None:
        vx = self.v[instr.x]
        self.v[instr.x] = vx >> 1
        self.v[FLAG_REGISTER] = vx & 0x1

    def _op_subn(self, instr: Instruction, pc: int) -> None:
        vx, vy = self.v[instr.x], self.v[instr.y]
        self.v[instr.x] = (vy - vx) & BYTE_MASK
        self.v[FLAG_REGISTER] = 1 if vy > vx else 0

    def _op_shl(self, instr: Instruction, pc: int) -> None:
        vx = self.v[instr.x]
        self.v[instr.x] = (vx << 1) & BYTE_MASK
        self.v[FLAG_REGISTER] = (vx >> 7) & 0x1

    # Index register
    def _op_ld_i(self, instr: Instruction, pc: int) -> None:
        self.i = instr.nnn

    def _op_add_i_vx(self, instr: Instruction, pc: int) -> None:
        self.i = (self.i + self.v[instr.x]) & WORD_MASK

    def _op_ld_f_vx(self, instr: Instruction, pc: int) -> None:
        self.i = FONT_START + (self.v[instr.x] & 0xF) * FONT_GLYPH_SIZE

    # Random
    def _op_rnd(self, instr: Instruction, pc: int) -> None:
        self.v[instr.x] = self.rng.randrange(256) & instr.kk

    # Display
    def _op_drw(self, instr: Instruction, pc: int) -> None:
        x = self.v[instr.x]
        y = self.v[instr.y]
        erased = False
        for row in range(instr.n):
            bits = self.memory.read_byte(self.i + row)
            if self.display.xor_row(x, y + row, bits):
                erased = True
        self.v[FLAG_REGISTER] = 1 if erased else 0
        self.display.sprite_drawn(x, y, instr.n, erased, pc)

    # Timers and key wait
    def _op_ld_vx_dt(self, instr: Instruction, pc: int) -> None:
        self.v[instr.x] = self.delay_timer

    def _op_ld_vx_k(self, instr: Instruction, pc: int) -> None:
        # Only presses that happen after the wait starts count.
        self.keypad.clear_key_presses()
        self.pc = pc
        self.status = MachineStatus.AWAITING_KEY
        self.wait_register = instr.x
        logger.debug("Waiting for key into V%X at 0x%03X", instr.x, pc)

    def _op_ld_dt_vx(self, instr: Instruction, pc: int) -> None:
        self.delay_timer = self.v[instr.x]

    def _op_ld_st_vx(self, instr: Instruction, pc: int) -> None:
        self.sound_timer = self.v[instr.x]

    # Memory block transfers
    def _op_ld_b_vx(self, instr: Instruction, pc: int) -> None:
        value = self.v[instr.x]
        self.memory.write_byte(self.i, value // 100)
        self.memory.write_byte(self.i + 1, (value // 10) % 10)
        self.memory.write_byte(self.i + 2, value % 10)

    def _op_ld_mem_vx(self, instr: Instruction, pc: int) -> None:
        for index in range(instr.x + 1):
            self.memory.write_byte(self.i + index, self.v[index])

    def _op_ld_vx_mem(self, instr: Instruction, pc: int) -> None:
        for index in range(instr.x + 1):
            self.v[index] = self.memory.read_byte(self.i + index)

    def _op_unknown(self, instr: Instruction, pc: int) -> None:
        diagnostic = Diagnostic(pc=pc, word=instr.word, message="unknown instruction")
        self.diagnostics.append(diagnostic)
        self.diagnostic_count += 1
        logger.warning("Ignored unknown instruction %04X at 0x%03X", instr.word, pc)


__all__ = ["Machine", "MachineStatus"]
