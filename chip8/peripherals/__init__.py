"""Peripheral adapters for the CHIP-8 virtual machine."""

from .sound import LoggingSoundSink, NullSoundSink, RecordingSoundSink, SoundSink

__all__ = [
    "SoundSink",
    "NullSoundSink",
    "LoggingSoundSink",
    "RecordingSoundSink",
]
