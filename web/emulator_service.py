"""Shared machine lifecycle management for the web API."""

from __future__ import annotations

import base64
import io
import logging
import threading
import time
from contextlib import contextmanager
from typing import Dict, Optional

from chip8 import Machine, MachineConfig, MachineFault, MachineRunner
from chip8.display import render_image
from chip8.peripherals import LoggingSoundSink

logger = logging.getLogger(__name__)

RUN_SLEEP_SECONDS = 0.002

# Waits for a key and shows its hex digit in the middle of the screen.
KEY_ECHO_PROGRAM = bytes.fromhex(
    "00E0"  # 200: CLS
    "F00A"  # 202: LD V0, K
    "00E0"  # 204: CLS
    "F029"  # 206: LD F, V0
    "611C"  # 208: LD V1, 28
    "620D"  # 20A: LD V2, 13
    "D125"  # 20C: DRW V1, V2, 5
    "1202"  # 20E: JP 202
)


class EmulatorService:
    """Manage a shared machine instance and background execution."""

    def __init__(self, config: Optional[MachineConfig] = None) -> None:
        self.config = config or MachineConfig()
        self._lock = threading.RLock()
        self._machine: Optional[Machine] = None
        self._runner: Optional[MachineRunner] = None
        self._is_running = False
        self._last_error: Optional[str] = None
        self._run_event = threading.Event()
        self._shutdown = threading.Event()
        self._runner_thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def ensure_machine(self) -> Machine:
        """Return an initialised machine, creating it if necessary."""
        with self._lock:
            if self._machine is None:
                self._machine = self._create_machine()
            return self._machine

    def _create_machine(self) -> Machine:
        machine = self.config.create_machine(sound=LoggingSoundSink())
        machine.load_program(KEY_ECHO_PROGRAM)
        self._runner = self.config.create_runner(machine, clock=time.perf_counter)
        return machine

    def shutdown(self) -> None:
        """Stop the run thread and drop the machine."""
        self._shutdown.set()
        self._run_event.clear()
        if self._runner_thread and self._runner_thread.is_alive():
            self._runner_thread.join(timeout=1.0)
        with self._lock:
            if self._machine is not None:
                self._machine.sound.off()
            self._machine = None
            self._runner = None
            self._is_running = False
            self._last_error = None
        self._shutdown.clear()

    # ------------------------------------------------------------------ #
    # Runner management
    # ------------------------------------------------------------------ #

    def run(self) -> None:
        """Start continuous execution."""
        with self._lock:
            self.ensure_machine()
            # Time spent paused is not replayed.
            self._runner.start()
            self._is_running = True
        self._run_event.set()
        if not self._runner_thread or not self._runner_thread.is_alive():
            self._runner_thread = threading.Thread(
                target=self._runner_loop, name="Chip8Runner", daemon=True
            )
            self._runner_thread.start()

    def pause(self) -> None:
        """Pause continuous execution."""
        self._run_event.clear()
        with self._lock:
            self._is_running = False
            if self._machine is not None:
                self._machine.sound.off()

    def step(self) -> bool:
        """Execute one instruction while paused. Returns False when running."""
        with self._lock:
            if self._is_running:
                return False
            machine = self.ensure_machine()
            try:
                machine.step()
            except MachineFault as exc:
                self._record_fault(exc)
            return True

    def reset(self) -> None:
        """Reset the machine, keeping the loaded program, and resume running."""
        with self._lock:
            machine = self.ensure_machine()
            machine.reset()
            self._last_error = None
        self.run()

    def load_program(self, data: bytes) -> int:
        """Load a new program and reset; a running service keeps running."""
        with self._lock:
            machine = self.ensure_machine()
            size = machine.load_program(data)
            self._last_error = None
            if self._is_running:
                self._runner.start()
            logger.info("Loaded %d byte program", size)
            return size

    def _runner_loop(self) -> None:
        """Background loop for paced execution."""
        while not self._shutdown.is_set():
            if not self._run_event.wait(timeout=0.1):
                continue
            delay = RUN_SLEEP_SECONDS
            with self._lock:
                runner = self._runner
                if runner is None or not self._is_running:
                    continue
                try:
                    runner.run_frame()
                except MachineFault as exc:
                    self._record_fault(exc)
                    self._is_running = False
                    self._run_event.clear()
                    continue
                delay = runner.scheduler.next_deadline() - time.perf_counter()
            if delay > 0:
                time.sleep(min(delay, RUN_SLEEP_SECONDS))

    def _record_fault(self, exc: MachineFault) -> None:
        logger.error("Machine fault: %s", exc)
        self._last_error = str(exc)

    # ------------------------------------------------------------------ #
    # State helpers
    # ------------------------------------------------------------------ #

    def snapshot_state(self) -> Dict[str, object]:
        """Return registers, timers, status and a PNG of the screen."""
        with self._lock:
            machine = self.ensure_machine()
            cpu = machine.get_cpu_state()
            screen = self._encode_screen(machine)
            return {
                "is_running": self._is_running,
                "status": cpu["status"],
                "registers": {
                    "v": cpu["v"],
                    "i": cpu["i"],
                    "pc": cpu["pc"],
                    "sp": cpu["sp"],
                    "stack": cpu["stack"],
                },
                "timers": {
                    "delay": cpu["delay_timer"],
                    "sound": cpu["sound_timer"],
                },
                "wait_register": cpu["wait_register"],
                "instruction_count": cpu["instruction_count"],
                "pressed_keys": list(machine.keypad.get_pressed_keys()),
                "diagnostics": [str(item) for item in list(machine.diagnostics)[-16:]],
                "diagnostic_count": machine.diagnostic_count,
                "last_error": self._last_error,
                "screen": screen,
            }

    def _encode_screen(self, machine: Machine) -> str:
        image = render_image(
            machine.get_display_buffer(),
            zoom=self.config.display_zoom,
            on_color=self.config.on_color,
            off_color=self.config.off_color,
        )
        img_buffer = io.BytesIO()
        image.save(img_buffer, format="PNG")
        screen_base64 = base64.b64encode(img_buffer.getvalue()).decode("utf-8")
        return f"data:image/png;base64,{screen_base64}"

    # ------------------------------------------------------------------ #
    # Input
    # ------------------------------------------------------------------ #

    def press_key(self, key) -> bool:
        with self._lock:
            return self.ensure_machine().press_key(key)

    def release_key(self, key) -> None:
        with self._lock:
            self.ensure_machine().release_key(key)

    @contextmanager
    def machine_context(self):
        """Provide exclusive access to the underlying machine."""
        with self._lock:
            yield self.ensure_machine()


service = EmulatorService()


def init_app(app) -> None:
    """Ensure the machine is ready when the Flask app starts."""
    with app.app_context():
        service.ensure_machine()
