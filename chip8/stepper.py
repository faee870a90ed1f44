"""Snapshot-driven single-step helper.

This module exposes a pure stepping function: it accepts a
:class:`~chip8.state_model.MachineState`, executes exactly one instruction
on a private scratch machine, and returns the resulting state together with
the side effects of the step. The caller's machine is never touched, which
lets tests feed deterministic state fixtures and assert the deltas.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from .constants import PROGRAM_START
from .errors import Diagnostic
from .instr import Instruction
from .machine import Machine
from .state_model import (
    FieldDiff,
    MachineState,
    capture_state,
    diff_states,
    restore_state,
)


@dataclass(frozen=True)
class MemoryWrite:
    """Memory byte whose value changed during a step."""

    address: int
    value: int
    previous: int


@dataclass(frozen=True)
class StepResult:
    """One step's outcome. ``changed_fields`` covers every CPU-level field,
    not only registers, as ``name -> (before, after)``."""

    state: MachineState
    instruction: Optional[Instruction]
    changed_fields: Dict[str, Tuple[object, object]]
    memory_writes: Tuple[MemoryWrite, ...]
    display_changed: bool
    diagnostics: Tuple[Diagnostic, ...]


class MachineStepper:
    """Execute single instructions from immutable snapshots.

    ``seed`` fixes the random stream used by RND so repeated calls with the
    same state produce the same result.
    """

    def __init__(self, *, seed: int = 0) -> None:
        self._seed = seed

    def step(self, state: MachineState) -> StepResult:
        machine = Machine(rng=random.Random(self._seed))
        restore_state(machine, state)

        instruction = machine.step()
        after = capture_state(machine)
        diff = diff_states(state, after)

        return StepResult(
            state=after,
            instruction=instruction,
            changed_fields={d.name: (d.before, d.after) for d in diff.cpu},
            memory_writes=tuple(_memory_writes(diff.memory)),
            display_changed=diff.display_changed,
            diagnostics=tuple(machine.diagnostics),
        )


def _memory_writes(diffs: Tuple[FieldDiff, ...]):
    for item in diffs:
        # Names look like "memory[0x2A0]".
        address = int(item.name[item.name.index("[") + 1 : -1], 16)
        yield MemoryWrite(address=address, value=item.after, previous=item.before)


def initial_state(program: bytes = b"", *, pc: int = PROGRAM_START) -> MachineState:
    """Build the power-on state with ``program`` loaded at 0x200."""

    machine = Machine()
    machine.load_program(program)
    machine.pc = pc
    return capture_state(machine)


def step_state(state: MachineState, *, seed: int = 0) -> StepResult:
    """Convenience wrapper: ``(MachineState) -> StepResult``."""

    return MachineStepper(seed=seed).step(state)


__all__ = [
    "MachineStepper",
    "MemoryWrite",
    "StepResult",
    "initial_state",
    "step_state",
]
