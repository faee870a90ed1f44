"""Run-loop driver pacing a Machine against a wall clock."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from .machine import Machine, MachineStatus
from .scheduler import TimerScheduler

logger = logging.getLogger(__name__)

FrameObserver = Callable[["FrameResult"], None]

# Longest backlog replayed after the driver falls behind, in seconds.
MAX_CATCH_UP_SECONDS = 0.25


@dataclass(frozen=True)
class FrameResult:
    """What one driver iteration did."""

    instructions: int
    timer_ticks: int
    status: MachineStatus
    display_version: int


class MachineRunner:
    """Drive a :class:`Machine` at a fixed instruction rate.

    Each iteration advances the scheduler to the current clock reading,
    executes the instruction budget that fell due, ticks the timers as many
    times as the 60 Hz clock fired, and updates the sound sink. A key wait
    does not block the loop: the machine is polled once per iteration while
    rendering and input keep being serviced by the caller or observers.

    ``clock`` and ``sleep`` are injectable so tests can run deterministically.
    """

    def __init__(
        self,
        machine: Machine,
        scheduler: Optional[TimerScheduler] = None,
        *,
        clock: Callable[[], float] = time.perf_counter,
        sleep: Callable[[float], None] = time.sleep,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> None:
        self.machine = machine
        self.scheduler = scheduler or TimerScheduler(max_catch_up=MAX_CATCH_UP_SECONDS)
        self._clock = clock
        self._sleep = sleep
        self._should_stop = should_stop
        self._stop_event = threading.Event()
        self._observers: List[FrameObserver] = []
        self.frame_count = 0

    def subscribe(self, observer: FrameObserver) -> None:
        self._observers.append(observer)

    def stop(self) -> None:
        """Request the loop to exit after the current iteration."""
        self._stop_event.set()

    @property
    def stop_requested(self) -> bool:
        if self._stop_event.is_set():
            return True
        return bool(self._should_stop and self._should_stop())

    def start(self) -> None:
        """Anchor the scheduler to the current clock reading."""
        self._stop_event.clear()
        self.scheduler.reset(time_base=self._clock())

    def run_frame(
        self, now: Optional[float] = None, *, limit: Optional[int] = None
    ) -> FrameResult:
        """Run one driver iteration at clock reading ``now``.

        ``limit`` caps the instructions executed this iteration; timers still
        tick for the full elapsed time.
        """

        machine = self.machine
        due = self.scheduler.advance(self._clock() if now is None else now)
        budget = due.instructions if limit is None else min(due.instructions, limit)

        executed = 0
        while executed < budget:
            executed += machine.run(budget - executed)
            if machine.status is not MachineStatus.AWAITING_KEY:
                break
            # One poll per iteration; resume only if a key arrived.
            machine.step()
            if machine.status is MachineStatus.AWAITING_KEY:
                break

        for _ in range(due.timer_ticks):
            machine.tick_timers()
        machine.update_sound()

        self.frame_count += 1
        logger.debug(
            "Frame %d: %d instructions, %d timer ticks",
            self.frame_count,
            executed,
            due.timer_ticks,
        )
        result = FrameResult(
            instructions=executed,
            timer_ticks=due.timer_ticks,
            status=machine.status,
            display_version=machine.display.version,
        )
        for observer in list(self._observers):
            observer(result)
        return result

    def run(
        self,
        *,
        max_instructions: Optional[int] = None,
        max_seconds: Optional[float] = None,
        max_frames: Optional[int] = None,
    ) -> int:
        """Run until stopped, halted, or a limit is reached.

        Returns the number of instructions executed. Machine faults
        propagate to the caller.
        """

        self.start()
        started = self.scheduler.now
        total = 0
        frames = 0
        logger.info(
            "Runner started at %d Hz (timers %d Hz)",
            self.scheduler.cpu_frequency,
            self.scheduler.timer_frequency,
        )
        try:
            while not self.stop_requested:
                if self.machine.halted:
                    break
                if max_frames is not None and frames >= max_frames:
                    break
                if max_instructions is not None and total >= max_instructions:
                    break
                now = self._clock()
                if max_seconds is not None and now - started >= max_seconds:
                    break
                remaining = None if max_instructions is None else max_instructions - total
                result = self.run_frame(now, limit=remaining)
                total += result.instructions
                frames += 1
                delay = self.scheduler.next_deadline() - self._clock()
                if delay > 0:
                    self._sleep(delay)
        finally:
            logger.info("Runner stopped after %d instructions", total)
        return total


__all__ = ["FrameResult", "FrameObserver", "MachineRunner"]
