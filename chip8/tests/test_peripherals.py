from __future__ import annotations

import logging

from chip8.peripherals import LoggingSoundSink, NullSoundSink, RecordingSoundSink


def test_logging_sink_logs_edges_only(caplog) -> None:
    sink = LoggingSoundSink()
    with caplog.at_level(logging.INFO, logger="chip8.peripherals.sound"):
        sink.off()
        sink.on()
        sink.on()
        sink.off()
        sink.off()
    messages = [record.getMessage() for record in caplog.records]
    assert messages == ["Sound on", "Sound off"]
    assert sink.transitions == 2
    assert not sink.active


def test_recording_sink_keeps_calls() -> None:
    sink = RecordingSoundSink()
    assert not sink.active
    sink.on()
    sink.off()
    sink.on()
    assert sink.calls == [True, False, True]
    assert sink.active


def test_null_sink_accepts_calls() -> None:
    sink = NullSoundSink()
    sink.on()
    sink.off()
