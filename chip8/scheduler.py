"""Fixed-rate pacing for instruction dispatch and the 60 Hz timers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterable, List, Optional

from .constants import DEFAULT_CPU_FREQUENCY, TIMER_FREQUENCY

# Absorbs float error when a clock reading lands exactly on a deadline.
_EPSILON = 1e-9


class ClockSource(Enum):
    """Independent clocks driven by the scheduler."""

    CPU = auto()
    TIMER = auto()


@dataclass(frozen=True)
class SchedulerSlice:
    """Work due after advancing the scheduler to a point in time."""

    instructions: int
    timer_ticks: int

    def fired(self) -> Iterable[ClockSource]:
        sources: List[ClockSource] = []
        if self.instructions:
            sources.append(ClockSource.CPU)
        if self.timer_ticks:
            sources.append(ClockSource.TIMER)
        return sources


@dataclass
class TimerScheduler:
    """Deterministic scheduler converting elapsed seconds into work.

    The instruction clock and the timer clock each keep their own deadline,
    so the number of timer ticks depends only on elapsed time and never on
    how many instructions were executed.
    """

    cpu_frequency: int = DEFAULT_CPU_FREQUENCY
    timer_frequency: int = TIMER_FREQUENCY
    enabled: bool = True
    # Caps the catch-up after a long stall; None disables the cap.
    max_catch_up: Optional[float] = None

    def __post_init__(self) -> None:
        self.cpu_frequency = int(self.cpu_frequency)
        self.timer_frequency = int(self.timer_frequency)
        if self.cpu_frequency <= 0 or self.timer_frequency <= 0:
            raise ValueError("scheduler frequencies must be positive")
        self.reset()

    @property
    def cpu_period(self) -> float:
        return 1.0 / self.cpu_frequency

    @property
    def timer_period(self) -> float:
        return 1.0 / self.timer_frequency

    def reset(self, *, time_base: float = 0.0) -> None:
        """Restart both clocks at ``time_base`` seconds."""

        self._now = float(time_base)
        self._cpu_count = 0
        self._timer_count = 0
        self._base = float(time_base)

    def advance(self, now: float) -> SchedulerSlice:
        """Advance both clocks to ``now`` and return the work that fell due."""

        if not self.enabled:
            return SchedulerSlice(0, 0)

        if self.max_catch_up is not None and now - self._now > self.max_catch_up:
            # Drop the backlog instead of bursting through it.
            self.reset(time_base=now - self.max_catch_up)
        self._now = max(self._now, float(now))
        elapsed = self._now - self._base

        cpu_target = int(elapsed * self.cpu_frequency + _EPSILON)
        timer_target = int(elapsed * self.timer_frequency + _EPSILON)
        instructions = max(0, cpu_target - self._cpu_count)
        ticks = max(0, timer_target - self._timer_count)
        self._cpu_count = max(self._cpu_count, cpu_target)
        self._timer_count = max(self._timer_count, timer_target)
        return SchedulerSlice(instructions=instructions, timer_ticks=ticks)

    def next_deadline(self) -> float:
        """Return the earliest time at which either clock fires again."""

        next_cpu = self._base + (self._cpu_count + 1) * self.cpu_period
        next_timer = self._base + (self._timer_count + 1) * self.timer_period
        return min(next_cpu, next_timer)

    @property
    def now(self) -> float:
        return self._now


__all__ = ["ClockSource", "SchedulerSlice", "TimerScheduler"]
