from __future__ import annotations

import pytest

from chip8.errors import InvalidKeyError
from chip8.keypad import FIFO_SIZE, KEYMAPS, KEYPAD_LAYOUT, Keypad, parse_key


@pytest.mark.parametrize(
    "key,expected",
    [(0, 0), (15, 15), ("A", 0xA), ("f", 0xF), ("0x3", 0x3), (" 7 ", 0x7)],
)
def test_parse_key_accepts_ints_and_hex(key, expected) -> None:
    assert parse_key(key) == expected


@pytest.mark.parametrize("key", [16, -1, "G", "10", "", True, None, 1.5])
def test_parse_key_rejects_invalid(key) -> None:
    with pytest.raises(InvalidKeyError):
        parse_key(key)


def test_invalid_key_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        Keypad().press_key("Z")


def test_keymaps_cover_all_sixteen_keys() -> None:
    for mapping in KEYMAPS.values():
        assert sorted(mapping.values()) == list(range(16))


def test_qwerty_keymap_follows_pad_layout() -> None:
    mapping = KEYMAPS["qwerty"]
    assert mapping["1"] == KEYPAD_LAYOUT[0][0] == 0x1
    assert mapping["v"] == 0xF
    assert mapping["x"] == 0x0
    assert mapping["q"] == 0x4


def test_qwertz_keymap() -> None:
    keypad = Keypad(keymap="qwertz")
    assert keypad.host_key_to_key("Z") == 0x4
    assert keypad.host_key_to_key(",") == 0xB
    keypad.press_host_key("m")
    assert keypad.is_pressed(0x0)
    keypad.release_host_key("m")
    assert not keypad.is_pressed(0x0)


def test_unknown_keymap_and_host_key() -> None:
    with pytest.raises(InvalidKeyError):
        Keypad(keymap="dvorak")
    with pytest.raises(InvalidKeyError):
        Keypad().host_key_to_key("p")


def test_press_queues_event_only_on_transition() -> None:
    keypad = Keypad()
    assert keypad.press_key("A") is True
    assert keypad.press_key(0xA) is False
    assert keypad.fifo_snapshot() == (0xA,)
    assert keypad.press_count == 1

    keypad.release_key(0xA)
    keypad.press_key(0xA)
    assert keypad.pop_key_press() == 0xA
    assert keypad.pop_key_press() == 0xA
    assert keypad.pop_key_press() is None


def test_pressed_state_and_release_all() -> None:
    keypad = Keypad()
    keypad.press_key(1)
    keypad.press_key(0xC)
    assert keypad.get_pressed_keys() == (0x1, 0xC)
    assert keypad.is_pressed(0x11)  # masked to key 1
    keypad.release_all_keys()
    assert keypad.get_pressed_keys() == ()
    # Release does not discard queued presses.
    assert keypad.fifo_snapshot() == (0x1, 0xC)
    keypad.clear_key_presses()
    assert keypad.fifo_snapshot() == ()


def test_fifo_is_bounded() -> None:
    keypad = Keypad()
    for _ in range(FIFO_SIZE + 4):
        keypad.press_key(3)
        keypad.release_key(3)
    assert len(keypad.fifo_snapshot()) == FIFO_SIZE


def test_snapshot_restore_roundtrip() -> None:
    keypad = Keypad()
    keypad.press_key(2)
    keypad.press_key(9)
    keypad.release_key(9)
    snap = keypad.snapshot()

    other = Keypad()
    other.restore(snap)
    assert other.get_pressed_keys() == (2,)
    assert other.fifo_snapshot() == (2, 9)
    assert other.snapshot() == snap
