"""Tests for the monochrome frame buffer."""

from __future__ import annotations

import numpy as np

from chip8.display.framebuffer import DisplaySnapshot, FrameBuffer


def test_initial_buffer_is_blank():
    fb = FrameBuffer()
    assert fb.pixels.shape == (32, 64)
    assert fb.pixels.dtype == np.uint8
    assert fb.snapshot().lit_pixels == 0


def test_xor_row_sets_and_reports_erase():
    fb = FrameBuffer()
    assert fb.xor_row(0, 0, 0b10100000) is False
    assert fb.get_pixel(0, 0) == 1
    assert fb.get_pixel(1, 0) == 0
    assert fb.get_pixel(2, 0) == 1

    assert fb.xor_row(1, 0, 0b11000000) is True
    assert [fb.get_pixel(x, 0) for x in range(4)] == [1, 1, 0, 0]


def test_xor_row_wraps_both_axes():
    fb = FrameBuffer()
    fb.xor_row(60, 35, 0xFF)
    assert [x for x in range(64) if fb.get_pixel(x, 3)] == [0, 1, 2, 3, 60, 61, 62, 63]


def test_display_buffer_is_a_copy():
    fb = FrameBuffer()
    fb.xor_row(0, 0, 0x80)
    copy = fb.get_display_buffer()
    copy[0, 0] = 0
    assert fb.get_pixel(0, 0) == 1


def test_clear_and_observers():
    fb = FrameBuffer()
    events = []

    def observer(event, snap):
        events.append((event["type"], snap.version, snap.lit_pixels))

    fb.subscribe(observer)
    fb.xor_row(5, 5, 0x80)
    fb.sprite_drawn(5, 5, 1, False, 0x200)
    fb.clear()
    assert events == [("draw", 1, 1), ("clear", 2, 0)]
    assert fb.draw_count == 1
    assert fb.clear_count == 1

    fb.unsubscribe(observer)
    fb.clear()
    assert len(events) == 2
    assert fb.version == 3


def test_snapshot_restore():
    fb = FrameBuffer()
    fb.xor_row(10, 10, 0xF0)
    snap = fb.snapshot()
    assert isinstance(snap, DisplaySnapshot)
    assert snap.pixel(10, 10) == 1

    other = FrameBuffer()
    other.restore(snap)
    assert other.snapshot() == snap
    assert other.version == 1
