"""Canonical machine state snapshots and diff utilities."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional, Tuple

from .display.framebuffer import DisplaySnapshot
from .keypad import KeypadSnapshot
from .machine import Machine, MachineStatus


@dataclass(frozen=True)
class CPUState:
    """Register file, timers, stack and execution status."""

    v: Tuple[int, ...]
    i: int
    pc: int
    sp: int
    stack: Tuple[int, ...]
    delay_timer: int
    sound_timer: int
    status: MachineStatus
    wait_register: Optional[int]
    instruction_count: int


@dataclass(frozen=True)
class MemoryState:
    """Full 4 KB memory image."""

    data: bytes


@dataclass(frozen=True)
class MachineState:
    """Composite immutable snapshot of the machine and its collaborators."""

    cpu: CPUState
    memory: MemoryState
    keypad: KeypadSnapshot
    display: DisplaySnapshot


@dataclass(frozen=True)
class FieldDiff:
    """Difference for a single named field."""

    name: str
    before: object
    after: object


@dataclass(frozen=True)
class StateDiff:
    """Aggregated differences between two machine states."""

    cpu: Tuple[FieldDiff, ...] = field(default_factory=tuple)
    memory: Tuple[FieldDiff, ...] = field(default_factory=tuple)
    keypad: Tuple[FieldDiff, ...] = field(default_factory=tuple)
    display_changed: bool = False

    def is_empty(self) -> bool:
        """Return True when no differences were recorded."""

        return (
            not self.cpu
            and not self.memory
            and not self.keypad
            and not self.display_changed
        )


def empty_state_diff() -> StateDiff:
    """Return a reusable empty diff instance."""

    return StateDiff()


def capture_state(machine: Machine) -> MachineState:
    """Capture the current machine state as a canonical snapshot."""

    with machine.exclusive():
        cpu = CPUState(
            v=tuple(machine.v),
            i=machine.i,
            pc=machine.pc,
            sp=machine.sp,
            stack=tuple(machine.stack),
            delay_timer=machine.delay_timer,
            sound_timer=machine.sound_timer,
            status=machine.status,
            wait_register=machine.wait_register,
            instruction_count=machine.instruction_count,
        )
        memory = MemoryState(data=machine.memory.snapshot())
        keypad = machine.keypad.snapshot()
        display = machine.display.snapshot()
    return MachineState(cpu=cpu, memory=memory, keypad=keypad, display=display)


def restore_state(machine: Machine, state: MachineState) -> None:
    """Load a snapshot back into a machine (in memory only)."""

    with machine.exclusive():
        cpu = state.cpu
        machine.v[:] = list(cpu.v)
        machine.i = cpu.i
        machine.pc = cpu.pc
        machine.sp = cpu.sp
        machine.stack[:] = list(cpu.stack)
        machine.delay_timer = cpu.delay_timer
        machine.sound_timer = cpu.sound_timer
        machine.status = cpu.status
        machine.wait_register = cpu.wait_register
        machine.instruction_count = cpu.instruction_count
        machine.memory.restore(state.memory.data)
        machine.keypad.restore(state.keypad)
        machine.display.restore(state.display)


def diff_states(before: Optional[MachineState], after: MachineState) -> StateDiff:
    """Compute structured differences between two machine states."""

    if before is None:
        return empty_state_diff()

    return StateDiff(
        cpu=_diff_cpu(before.cpu, after.cpu),
        memory=_diff_memory(before.memory, after.memory),
        keypad=_diff_keypad(before.keypad, after.keypad),
        display_changed=before.display.rows != after.display.rows,
    )


def _diff_cpu(before: CPUState, after: CPUState) -> Tuple[FieldDiff, ...]:
    diffs: list[FieldDiff] = []
    for index, (previous, current) in enumerate(zip(before.v, after.v)):
        if previous != current:
            diffs.append(FieldDiff(f"v{index:x}", previous, current))
    for name in (
        "i",
        "pc",
        "sp",
        "delay_timer",
        "sound_timer",
        "status",
        "wait_register",
        "instruction_count",
    ):
        previous = getattr(before, name)
        current = getattr(after, name)
        if previous != current:
            diffs.append(FieldDiff(name, previous, current))
    active = max(before.sp, after.sp)
    if before.stack[:active] != after.stack[:active]:
        diffs.append(
            FieldDiff("stack", before.stack[: before.sp], after.stack[: after.sp])
        )
    return tuple(diffs)


def _diff_memory(before: MemoryState, after: MemoryState) -> Tuple[FieldDiff, ...]:
    return tuple(_diff_bytes("memory", before.data, after.data))


def _diff_bytes(prefix: str, before: bytes, after: bytes) -> Iterable[FieldDiff]:
    if before == after:
        return
    for address, (previous, current) in enumerate(zip(before, after)):
        if previous != current:
            yield FieldDiff(f"{prefix}[0x{address:03X}]", previous, current)


def _diff_keypad(
    before: KeypadSnapshot, after: KeypadSnapshot
) -> Tuple[FieldDiff, ...]:
    diffs: list[FieldDiff] = []
    if before.pressed_keys != after.pressed_keys:
        diffs.append(FieldDiff("pressed_keys", before.pressed_keys, after.pressed_keys))
    if before.fifo != after.fifo:
        diffs.append(FieldDiff("fifo", before.fifo, after.fifo))
    return tuple(diffs)


__all__ = [
    "CPUState",
    "MemoryState",
    "MachineState",
    "FieldDiff",
    "StateDiff",
    "capture_state",
    "restore_state",
    "diff_states",
    "empty_state_diff",
]
