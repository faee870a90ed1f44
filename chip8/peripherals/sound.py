"""Sound sinks driven by the sound timer."""

from __future__ import annotations

import logging
from typing import List, Protocol

logger = logging.getLogger(__name__)


class SoundSink(Protocol):
    """Receives the on/off tone signal once per run-loop iteration."""

    def on(self) -> None:
        ...

    def off(self) -> None:
        ...


class NullSoundSink:
    """Discards the tone signal."""

    def on(self) -> None:
        pass

    def off(self) -> None:
        pass


class LoggingSoundSink:
    """Logs tone transitions instead of playing audio.

    Only edges are logged; repeated ``on()`` calls while the tone is already
    sounding are silent.
    """

    def __init__(self) -> None:
        self.active = False
        self.transitions = 0

    def on(self) -> None:
        if not self.active:
            self.active = True
            self.transitions += 1
            logger.info("Sound on")

    def off(self) -> None:
        if self.active:
            self.active = False
            self.transitions += 1
            logger.info("Sound off")


class RecordingSoundSink:
    """Keeps every call, for tests and scripted runs."""

    def __init__(self) -> None:
        self.calls: List[bool] = []

    def on(self) -> None:
        self.calls.append(True)

    def off(self) -> None:
        self.calls.append(False)

    @property
    def active(self) -> bool:
        return bool(self.calls) and self.calls[-1]


__all__ = ["SoundSink", "NullSoundSink", "LoggingSoundSink", "RecordingSoundSink"]
