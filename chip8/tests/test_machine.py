"""Execution tests for the CHIP-8 machine."""

from __future__ import annotations

import logging

import pytest

from chip8.constants import DIAGNOSTIC_LIMIT, FONT_START, PROGRAM_START, STACK_SIZE
from chip8.errors import (
    MachineFault,
    ProgramTooLargeError,
    StackOverflowError,
    StackUnderflowError,
)
from chip8.instr import Opcode
from chip8.machine import Machine, MachineStatus
from chip8.peripherals import RecordingSoundSink


def program(*words: int) -> bytes:
    return b"".join(word.to_bytes(2, "big") for word in words)


def load(*words: int, **kwargs) -> Machine:
    machine = Machine(seed=0, **kwargs)
    machine.load_program(program(*words))
    return machine


# --------------------------------------------------------------------------- #
# Arithmetic and flags
# --------------------------------------------------------------------------- #


def test_small_program_adds_registers() -> None:
    machine = load(0x6005, 0x6103, 0x8014)
    assert machine.run(3) == 3
    assert machine.v[0] == 8
    assert machine.v[0xF] == 0
    assert machine.pc == 0x206


@pytest.mark.parametrize(
    "op,vx,vy,result,flag",
    [
        (0x4, 0xFF, 0x01, 0x00, 1),
        (0x4, 0x10, 0x20, 0x30, 0),
        (0x4, 0x80, 0x80, 0x00, 1),
        (0x5, 0x05, 0x03, 0x02, 1),
        (0x5, 0x03, 0x05, 0xFE, 0),
        (0x5, 0x05, 0x05, 0x00, 0),
        (0x7, 0x03, 0x05, 0x02, 1),
        (0x7, 0x05, 0x03, 0xFE, 0),
        (0x6, 0x05, 0x00, 0x02, 1),
        (0x6, 0x04, 0x00, 0x02, 0),
        (0xE, 0x81, 0x00, 0x02, 1),
        (0xE, 0x41, 0x00, 0x82, 0),
    ],
)
def test_alu_result_and_flag(op: int, vx: int, vy: int, result: int, flag: int) -> None:
    machine = load(0x8010 | op)
    machine.v[0], machine.v[1] = vx, vy
    machine.step()
    assert machine.v[0] == result
    assert machine.v[0xF] == flag


@pytest.mark.parametrize("op,expected", [(0x1, 0xF3), (0x2, 0x30), (0x3, 0xC3)])
def test_bitwise_ops_leave_flag_alone(op: int, expected: int) -> None:
    machine = load(0x8010 | op)
    machine.v[0], machine.v[1], machine.v[0xF] = 0xF0, 0x33, 0x7
    machine.step()
    assert machine.v[0] == expected
    assert machine.v[0xF] == 0x7


def test_flag_written_after_result_when_target_is_vf() -> None:
    machine = load(0x8F14)
    machine.v[0xF], machine.v[1] = 0xFF, 0x01
    machine.step()
    assert machine.v[0xF] == 1


def test_add_byte_wraps_without_flag() -> None:
    machine = load(0x70FF)
    machine.v[0], machine.v[0xF] = 0x02, 0x7
    machine.step()
    assert machine.v[0] == 0x01
    assert machine.v[0xF] == 0x7


def test_load_register_copies() -> None:
    machine = load(0x8120)
    machine.v[2] = 0x42
    machine.step()
    assert machine.v[1] == 0x42


# --------------------------------------------------------------------------- #
# Control flow
# --------------------------------------------------------------------------- #


@pytest.mark.parametrize(
    "word,v0,v1,expected_pc",
    [
        (0x3005, 5, 0, 0x204),
        (0x3005, 4, 0, 0x202),
        (0x4005, 5, 0, 0x202),
        (0x4005, 4, 0, 0x204),
        (0x5010, 7, 7, 0x204),
        (0x5010, 7, 8, 0x202),
        (0x9010, 7, 8, 0x204),
        (0x9010, 7, 7, 0x202),
    ],
)
def test_skips(word: int, v0: int, v1: int, expected_pc: int) -> None:
    machine = load(word)
    machine.v[0], machine.v[1] = v0, v1
    machine.step()
    assert machine.pc == expected_pc


def test_jumps() -> None:
    machine = load(0x1234)
    machine.step()
    assert machine.pc == 0x234

    machine = load(0xB300)
    machine.v[0] = 0x04
    machine.step()
    assert machine.pc == 0x304


def test_call_and_return() -> None:
    machine = load(0x2206, 0x0000, 0x0000, 0x00EE)
    machine.step()
    assert machine.pc == 0x206
    assert machine.sp == 1
    assert machine.stack[0] == 0x202

    machine.step()
    assert machine.pc == 0x202
    assert machine.sp == 0


def test_sixteen_nested_calls_succeed_and_seventeenth_overflows() -> None:
    machine = load(0x2200)
    for _ in range(STACK_SIZE):
        machine.step()
    assert machine.sp == STACK_SIZE

    with pytest.raises(StackOverflowError) as excinfo:
        machine.step()
    fault = excinfo.value
    assert fault.pc == 0x200
    assert fault.sp == STACK_SIZE
    assert len(fault.stack) == STACK_SIZE
    assert "stack overflow" in str(fault)
    assert machine.status is MachineStatus.HALTED
    assert machine.pc == 0x200
    assert machine.step() is None


def test_return_with_empty_stack_underflows() -> None:
    machine = load(0x6042, 0x00EE)
    machine.step()
    with pytest.raises(StackUnderflowError) as excinfo:
        machine.run()
    assert isinstance(excinfo.value, MachineFault)
    assert excinfo.value.pc == 0x202
    assert excinfo.value.registers[0] == 0x42
    assert "V0=42" in str(excinfo.value)
    assert machine.halted
    assert machine.run() == 0


# --------------------------------------------------------------------------- #
# Display
# --------------------------------------------------------------------------- #


def test_draw_wraps_horizontally() -> None:
    machine = load(0xA300, 0xD011, 0xD011)
    machine.memory.write_byte(0x300, 0xFF)
    machine.v[0], machine.v[1] = 62, 0

    machine.step()
    machine.step()
    lit = [x for x in range(64) if machine.display.get_pixel(x, 0)]
    assert lit == [0, 1, 2, 3, 4, 5, 62, 63]
    assert machine.v[0xF] == 0

    machine.step()
    assert machine.display.snapshot().lit_pixels == 0
    assert machine.v[0xF] == 1


def test_draw_wraps_vertically() -> None:
    machine = load(0xA300, 0xD012)
    machine.memory.write_block(0x300, [0x80, 0x80])
    machine.v[0], machine.v[1] = 0, 31
    machine.run(2)
    assert machine.display.get_pixel(0, 31) == 1
    assert machine.display.get_pixel(0, 0) == 1
    assert machine.display.snapshot().lit_pixels == 2


def test_redraw_restores_buffer() -> None:
    machine = load(0xF029, 0xD125, 0xD125)
    machine.v[0], machine.v[1], machine.v[2] = 0x8, 10, 10
    machine.step()
    before = machine.get_display_buffer()
    machine.step()
    assert machine.v[0xF] == 0
    machine.step()
    assert machine.v[0xF] == 1
    assert (machine.get_display_buffer() == before).all()


def test_clear_screen() -> None:
    machine = load(0xF029, 0xD015, 0x00E0)
    machine.run(2)
    assert machine.display.snapshot().lit_pixels > 0
    machine.step()
    assert machine.display.snapshot().lit_pixels == 0


def test_display_events_include_draw_collision() -> None:
    machine = load(0xA300, 0xD001, 0xD001)
    machine.memory.write_byte(0x300, 0x80)
    events = []
    machine.display.subscribe(lambda event, snap: events.append(event))
    machine.run(3)
    draws = [event for event in events if event["type"] == "draw"]
    assert [event["collision"] for event in draws] == [False, True]
    assert draws[0]["pc"] == 0x202


# --------------------------------------------------------------------------- #
# Index register and memory transfers
# --------------------------------------------------------------------------- #


@pytest.mark.parametrize(
    "value,digits", [(255, [2, 5, 5]), (0, [0, 0, 0]), (137, [1, 3, 7]), (9, [0, 0, 9])]
)
def test_bcd(value: int, digits) -> None:
    machine = load(0xA300, 0xF033)
    machine.v[0] = value
    machine.run(2)
    assert list(machine.memory.read_block(0x300, 3)) == digits
    assert machine.i == 0x300


def test_store_and_load_registers() -> None:
    machine = load(0xA300, 0xF255, 0x6000, 0x6100, 0x6200, 0xF265)
    machine.v[0:4] = [0x11, 0x22, 0x33, 0x44]
    machine.run(2)
    assert list(machine.memory.read_block(0x300, 4)) == [0x11, 0x22, 0x33, 0x00]
    assert machine.i == 0x300

    machine.run(4)
    assert machine.v[0:4] == [0x11, 0x22, 0x33, 0x44]


def test_memory_access_wraps_at_4k() -> None:
    machine = load(0xF155)
    machine.i = 0xFFF
    machine.v[0], machine.v[1] = 0xAA, 0xBB
    machine.step()
    assert machine.memory.data[0xFFF] == 0xAA
    assert machine.memory.data[0x000] == 0xBB


def test_add_to_index_wraps_at_16_bits() -> None:
    machine = load(0xF01E)
    machine.i = 0xFFFF
    machine.v[0] = 2
    machine.step()
    assert machine.i == 0x0001
    assert machine.v[0xF] == 0


@pytest.mark.parametrize("value,digit", [(0x0A, 0xA), (0x1A, 0xA), (0x00, 0x0)])
def test_font_address_uses_low_nibble(value: int, digit: int) -> None:
    machine = load(0xF029)
    machine.v[0] = value
    machine.step()
    assert machine.i == FONT_START + digit * 5


def test_random_is_masked_and_seeded() -> None:
    first = load(0xC00F, 0xC100)
    second = load(0xC00F, 0xC100)
    first.v[1] = second.v[1] = 0xFF
    first.run(2)
    second.run(2)
    assert first.v[0] <= 0x0F
    assert first.v[0] == second.v[0]
    assert first.v[1] == 0


# --------------------------------------------------------------------------- #
# Unknown instructions
# --------------------------------------------------------------------------- #


@pytest.mark.parametrize("word", [0x0123, 0x0000, 0x5121, 0x800F, 0xE0A2, 0xF0FF])
def test_unknown_opcode_records_one_diagnostic(caplog, word) -> None:
    machine = load(word, 0x6001)
    machine.v[3] = 0x42
    machine.i = 0x300
    registers = list(machine.v)
    image = machine.memory.snapshot()
    with caplog.at_level(logging.WARNING, logger="chip8.machine"):
        instr = machine.step()

    assert instr.opcode is Opcode.UNKNOWN
    assert len(machine.diagnostics) == 1
    assert machine.diagnostics[0].pc == 0x200
    assert machine.diagnostics[0].word == word
    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 1
    assert f"{word:04X}" in warnings[0].getMessage()
    assert machine.v == registers
    assert machine.i == 0x300
    assert machine.sp == 0
    assert machine.memory.snapshot() == image
    assert machine.pc == 0x202
    assert machine.status is MachineStatus.RUNNING

    machine.step()
    assert machine.v[0] == 1


def test_diagnostics_keep_most_recent_entries() -> None:
    machine = load(0x0123, 0x1200)
    machine.run(2 * (DIAGNOSTIC_LIMIT + 50))

    assert len(machine.diagnostics) == DIAGNOSTIC_LIMIT
    assert machine.diagnostic_count == DIAGNOSTIC_LIMIT + 50

    machine.reset()
    assert len(machine.diagnostics) == 0
    assert machine.diagnostic_count == 0


# --------------------------------------------------------------------------- #
# Keypad
# --------------------------------------------------------------------------- #


@pytest.mark.parametrize(
    "word,pressed,expected_pc",
    [(0xE09E, True, 0x204), (0xE09E, False, 0x202), (0xE0A1, True, 0x202),
     (0xE0A1, False, 0x204)],
)
def test_key_skips(word: int, pressed: bool, expected_pc: int) -> None:
    machine = load(word)
    machine.v[0] = 0x14  # low nibble selects key 4
    if pressed:
        machine.press_key(4)
    machine.step()
    assert machine.pc == expected_pc


def test_key_wait_blocks_until_new_press() -> None:
    machine = load(0xF30A, 0x6101)
    machine.press_key(0x2)
    machine.release_key(0x2)

    assert machine.step() is not None
    assert machine.status is MachineStatus.AWAITING_KEY
    assert machine.awaiting_key
    assert machine.wait_register == 3
    assert machine.pc == 0x200

    # The press queued before the wait does not count.
    assert machine.step() is None
    assert machine.run(10) == 0
    assert machine.pc == 0x200

    machine.press_key(0xB)
    assert machine.step() is None
    assert machine.v[3] == 0xB
    assert machine.pc == 0x202
    assert machine.status is MachineStatus.RUNNING

    machine.step()
    assert machine.v[1] == 1


def test_held_key_must_be_pressed_again_for_wait() -> None:
    machine = load(0xF00A)
    machine.press_key(0x5)
    machine.step()
    machine.step()
    assert machine.awaiting_key
    # Still held: no new transition, no event.
    assert machine.press_key(0x5) is False
    machine.step()
    assert machine.awaiting_key

    machine.release_key(0x5)
    machine.press_key(0x5)
    machine.step()
    assert machine.v[0] == 0x5


def test_halt_cancels_key_wait() -> None:
    machine = load(0xF00A)
    machine.step()
    machine.halt()
    assert machine.status is MachineStatus.HALTED
    assert machine.wait_register is None
    machine.press_key(0x1)
    assert machine.step() is None
    assert machine.v[0] == 0


# --------------------------------------------------------------------------- #
# Timers and sound
# --------------------------------------------------------------------------- #


def test_timers_are_set_read_and_ticked() -> None:
    machine = load(0xF015, 0xF118, 0xF207)
    machine.v[0], machine.v[1] = 10, 3
    machine.run(2)
    assert machine.delay_timer == 10
    assert machine.sound_timer == 3

    for _ in range(3):
        machine.tick_timers()
    assert machine.delay_timer == 7
    assert machine.sound_timer == 0

    machine.step()
    assert machine.v[2] == 7


def test_timers_do_not_follow_instruction_count() -> None:
    machine = load(0xF015, 0x1202)
    machine.v[0] = 60
    machine.run(1000)
    assert machine.instruction_count == 1000
    assert machine.delay_timer == 60


def test_tick_stops_at_zero() -> None:
    machine = load(0x1200)
    machine.delay_timer = 1
    machine.tick_timers()
    machine.tick_timers()
    assert machine.delay_timer == 0
    assert machine.timer_ticks == 2


def test_sound_follows_sound_timer() -> None:
    sink = RecordingSoundSink()
    machine = load(0xF018, sound=sink)
    machine.update_sound()
    machine.v[0] = 2
    machine.step()
    machine.update_sound()
    assert sink.active

    machine.tick_timers()
    machine.update_sound()
    assert sink.active
    machine.tick_timers()
    machine.update_sound()
    assert sink.calls == [False, True, True, False]


# --------------------------------------------------------------------------- #
# Lifecycle
# --------------------------------------------------------------------------- #


def test_program_too_large_leaves_memory_untouched() -> None:
    machine = load(0x6001)
    with pytest.raises(ProgramTooLargeError) as excinfo:
        machine.load_program(bytes(0xE01))
    assert excinfo.value.size == 0xE01
    assert excinfo.value.limit == 0xE00
    assert machine.memory.read_byte(PROGRAM_START) == 0x60


def test_program_of_maximum_size_loads() -> None:
    machine = Machine()
    assert machine.load_program(bytes([0x12]) * 0xE00) == 0xE00
    assert machine.memory.data[0xFFF] == 0x12


def test_reset_keeps_program_and_clears_state() -> None:
    machine = load(0x6007, 0xF029, 0xD015)
    machine.run(3)
    machine.reset()
    assert machine.v[0] == 0
    assert machine.pc == PROGRAM_START
    assert machine.instruction_count == 0
    assert machine.display.snapshot().lit_pixels == 0
    assert machine.memory.read_byte(PROGRAM_START) == 0x60


def test_get_cpu_state_returns_copies() -> None:
    machine = load(0x2206)
    machine.step()
    state = machine.get_cpu_state()
    assert state["pc"] == 0x206
    assert state["stack"] == [0x202]
    assert state["status"] == "running"
    state["v"][0] = 99
    assert machine.v[0] == 0


def test_dispatch_table_covers_every_opcode() -> None:
    machine = Machine()
    assert set(machine._dispatch) == set(Opcode)
