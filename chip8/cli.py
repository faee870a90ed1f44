#!/usr/bin/env python3
"""Command-line runner for CHIP-8 programs."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from .config import MachineConfig
from .display import render_text, save_display
from .errors import Chip8Error, InvalidKeyError, MachineFault
from .keypad import parse_key
from .machine import Machine
from .peripherals import LoggingSoundSink
from .runner import FrameResult

logger = logging.getLogger(__name__)

DEFAULT_STEPS = 10_000
DEFAULT_HOLD = 50


class VirtualClock:
    """Clock/sleep pair that advances only when slept on.

    Lets the runner pace a program deterministically: timers fire after the
    same number of instruction periods on every run.
    """

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += max(0.0, seconds)


@dataclass(frozen=True)
class KeyEvent:
    slot: int
    key: int
    press: bool


def parse_press(text: str, hold: int = DEFAULT_HOLD) -> List[KeyEvent]:
    """Parse ``KEY@SLOT[+HOLD]`` into a press and a matching release."""
    key_text, sep, when = text.partition("@")
    if not sep:
        raise ValueError(f"expected KEY@SLOT, got {text!r}")
    slot_text, plus, hold_text = when.partition("+")
    key = parse_key(key_text)
    slot = int(slot_text, 0)
    if plus:
        hold = int(hold_text, 0)
    if slot < 0 or hold < 1:
        raise ValueError(f"invalid timing in {text!r}")
    return [KeyEvent(slot, key, True), KeyEvent(slot + hold, key, False)]


class ScriptedInput:
    """Runner observer that replays key events at fixed instruction slots.

    A slot is one period of the instruction clock; slots keep advancing
    while the machine waits for a key, so a scripted press can end a wait.
    """

    def __init__(
        self,
        machine: Machine,
        events: Sequence[KeyEvent],
        clock,
        cpu_frequency: int,
    ) -> None:
        self.machine = machine
        self._pending = sorted(events, key=lambda e: (e.slot, not e.press))
        self._clock = clock
        self._frequency = cpu_frequency

    @property
    def remaining(self) -> int:
        return len(self._pending)

    def __call__(self, result: FrameResult) -> None:
        slot = int(self._clock() * self._frequency + 1e-9)
        while self._pending and self._pending[0].slot <= slot:
            event = self._pending.pop(0)
            if event.press:
                logger.debug("Scripted press %X at slot %d", event.key, slot)
                self.machine.press_key(event.key)
            else:
                logger.debug("Scripted release %X at slot %d", event.key, slot)
                self.machine.release_key(event.key)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a CHIP-8 program")
    parser.add_argument("rom", type=Path, help="Program image to load at 0x200")
    parser.add_argument(
        "--steps",
        type=int,
        default=None,
        help=f"Instruction periods to run on a virtual clock (default {DEFAULT_STEPS})",
    )
    parser.add_argument(
        "--seconds",
        type=float,
        default=None,
        help="Run in real time for this many seconds instead of --steps",
    )
    parser.add_argument("--config", type=Path, help="JSON machine configuration")
    parser.add_argument(
        "--model",
        default="chip8",
        help="Configuration preset when --config is not given",
    )
    parser.add_argument(
        "--save-config", type=Path, help="Write the resolved configuration as JSON"
    )
    parser.add_argument("--keymap", help="Override the host keymap")
    parser.add_argument("--seed", type=int, help="Seed for the RND instruction")
    parser.add_argument(
        "--press",
        action="append",
        default=[],
        metavar="KEY@SLOT[+HOLD]",
        help="Press a hex key at an instruction slot, release HOLD slots later",
    )
    parser.add_argument(
        "--hold",
        type=int,
        default=DEFAULT_HOLD,
        help="Default hold length for --press, in instruction slots",
    )
    parser.add_argument("--save-png", type=Path, help="Save the final display as PNG")
    parser.add_argument(
        "--print-screen", action="store_true", help="Print the final display as text"
    )
    parser.add_argument(
        "--print-state", action="store_true", help="Print registers after the run"
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    return parser


def resolve_config(args: argparse.Namespace) -> MachineConfig:
    config = (
        MachineConfig.load(str(args.config))
        if args.config
        else MachineConfig.for_model(args.model)
    )
    overrides = config.to_dict()
    if args.keymap:
        overrides["keymap"] = args.keymap
    if args.seed is not None:
        overrides["seed"] = args.seed
    return MachineConfig.from_dict(overrides)


def print_state(machine: Machine) -> None:
    state = machine.get_cpu_state()
    print(f"\nMachine state after {state['instruction_count']} instructions:")
    print(f"  Status: {state['status']}")
    print(f"  PC: 0x{state['pc']:03X}  I: 0x{state['i']:04X}  SP: {state['sp']}")
    print(
        "  "
        + " ".join(f"V{index:X}={value:02X}" for index, value in enumerate(state["v"]))
    )
    print(f"  DT: {state['delay_timer']}  ST: {state['sound_timer']}")
    if state["stack"]:
        print("  Stack: " + ", ".join(f"0x{addr:03X}" for addr in state["stack"]))
    for diagnostic in machine.diagnostics:
        print(f"  Diagnostic: {diagnostic}")


def run(args: argparse.Namespace) -> int:
    """Run the program described by parsed ``args``; returns an exit code."""
    try:
        config = resolve_config(args)
    except (OSError, ValueError) as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2
    if args.save_config:
        config.save(str(args.save_config))

    try:
        events: List[KeyEvent] = []
        for text in args.press:
            events.extend(parse_press(text, args.hold))
    except (InvalidKeyError, ValueError) as exc:
        logger.error("Invalid --press: %s", exc)
        return 2

    machine = config.create_machine(sound=LoggingSoundSink())
    try:
        size = machine.load_program(args.rom)
    except (OSError, Chip8Error) as exc:
        logger.error("Cannot load %s: %s", args.rom, exc)
        return 2
    print(f"Loaded {size} bytes from {args.rom}")

    if args.seconds is not None:
        clock = time.perf_counter
        runner = config.create_runner(machine, clock=clock)
        limit = args.seconds
    else:
        virtual = VirtualClock()
        runner = config.create_runner(machine, clock=virtual, sleep=virtual.sleep)
        steps = DEFAULT_STEPS if args.steps is None else args.steps
        limit = steps / config.cpu_frequency
        clock = virtual

    script: Optional[ScriptedInput] = None
    if events:
        script = ScriptedInput(machine, events, _elapsed(clock), config.cpu_frequency)
        runner.subscribe(script)

    exit_code = 0
    try:
        executed = runner.run(max_seconds=limit)
        print(f"Executed {executed} instructions")
    except MachineFault as exc:
        logger.error("Machine fault: %s", exc)
        exit_code = 1
    finally:
        machine.sound.off()

    if script is not None and script.remaining:
        logger.warning("%d scripted key events never fired", script.remaining)
    if args.print_state:
        print_state(machine)
    if args.print_screen:
        print(render_text(machine.get_display_buffer()))
    if args.save_png:
        path = save_display(
            machine.get_display_buffer(),
            args.save_png,
            zoom=config.display_zoom,
            on_color=config.on_color,
            off_color=config.off_color,
        )
        print(f"Display saved to {path}")
    return exit_code


def _elapsed(clock):
    """Return a callable reporting seconds since the call to ``_elapsed``."""
    start = clock()
    return lambda: clock() - start


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(levelname)s %(name)s: %(message)s",
    )
    return run(args)


if __name__ == "__main__":
    sys.exit(main())
