"""CHIP-8 virtual machine package."""

from .config import MachineConfig
from .display import DisplaySnapshot, FrameBuffer
from .errors import (
    Chip8Error,
    Diagnostic,
    InvalidKeyError,
    MachineFault,
    ProgramTooLargeError,
    StackOverflowError,
    StackUnderflowError,
)
from .instr import Instruction, Opcode, decode, decode_word
from .keypad import Keypad, KeypadSnapshot
from .machine import Machine, MachineStatus
from .memory import Memory
from .peripherals import LoggingSoundSink, NullSoundSink, RecordingSoundSink
from .runner import FrameResult, MachineRunner
from .scheduler import SchedulerSlice, TimerScheduler
from .state_model import (
    CPUState,
    FieldDiff,
    MachineState,
    MemoryState,
    StateDiff,
    capture_state,
    diff_states,
    empty_state_diff,
    restore_state,
)
from .stepper import MachineStepper, StepResult, initial_state, step_state

__all__ = [
    "Machine",
    "MachineStatus",
    "MachineConfig",
    "Memory",
    "Instruction",
    "Opcode",
    "decode",
    "decode_word",
    "FrameBuffer",
    "DisplaySnapshot",
    "Keypad",
    "KeypadSnapshot",
    "NullSoundSink",
    "LoggingSoundSink",
    "RecordingSoundSink",
    "MachineRunner",
    "FrameResult",
    "TimerScheduler",
    "SchedulerSlice",
    "Chip8Error",
    "MachineFault",
    "StackOverflowError",
    "StackUnderflowError",
    "ProgramTooLargeError",
    "InvalidKeyError",
    "Diagnostic",
    "CPUState",
    "MemoryState",
    "MachineState",
    "FieldDiff",
    "StateDiff",
    "capture_state",
    "restore_state",
    "diff_states",
    "empty_state_diff",
    "MachineStepper",
    "StepResult",
    "initial_state",
    "step_state",
]
