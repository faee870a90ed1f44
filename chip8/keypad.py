"""Hex keypad model with host-key mapping and a press-event FIFO."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, Optional, Protocol, Tuple, Union

from .constants import NUM_KEYS
from .errors import InvalidKeyError

KeyLike = Union[int, str]

# Press events kept while nobody consumes them.
FIFO_SIZE = 16

# Physical keypad layout (COSMAC VIP):
#   1 2 3 C
#   4 5 6 D
#   7 8 9 E
#   A 0 B F
KEYPAD_LAYOUT: Tuple[Tuple[int, ...], ...] = (
    (0x1, 0x2, 0x3, 0xC),
    (0x4, 0x5, 0x6, 0xD),
    (0x7, 0x8, 0x9, 0xE),
    (0xA, 0x0, 0xB, 0xF),
)


def _build_keymap(host_rows: Tuple[str, ...]) -> Dict[str, int]:
    """Map host keyboard characters onto the keypad layout, row by row."""

    mapping: Dict[str, int] = {}
    for host_row, pad_row in zip(host_rows, KEYPAD_LAYOUT):
        for char, key in zip(host_row, pad_row):
            mapping[char] = key
    return mapping


KEYMAPS: Dict[str, Dict[str, int]] = {
    "qwerty": _build_keymap(("1234", "qwer", "asdf", "zxcv")),
    # German layout block to the right of the keyboard.
    "qwertz": _build_keymap(("6789", "zuio", "hjkl", "nm,.")),
}


def parse_key(key: KeyLike) -> int:
    """Normalise a key given as int (0-15) or hex digit string ("A", "0xA")."""

    if isinstance(key, bool):
        raise InvalidKeyError(f"Invalid keypad key: {key!r}")
    if isinstance(key, int):
        value = key
    elif isinstance(key, str):
        try:
            value = int(key.strip(), 16)
        except ValueError:
            raise InvalidKeyError(f"Invalid keypad key: {key!r}") from None
    else:
        raise InvalidKeyError(f"Invalid keypad key: {key!r}")
    if not (0 <= value < NUM_KEYS):
        raise InvalidKeyError(f"Keypad key out of range: {key!r}")
    return value


class InputSource(Protocol):
    """What the machine needs from an input device."""

    def is_pressed(self, key: int) -> bool:
        ...

    def pop_key_press(self) -> Optional[int]:
        ...

    def clear_key_presses(self) -> None:
        ...

    def snapshot(self) -> "KeypadSnapshot":
        ...

    def restore(self, snapshot: "KeypadSnapshot") -> None:
        ...


@dataclass(frozen=True)
class KeypadSnapshot:
    pressed_keys: Tuple[int, ...]
    fifo: Tuple[int, ...]


class Keypad:
    """16-key keypad.

    ``press_key`` records the key as down and, on an up-to-down transition,
    queues a press event. The key-wait instruction consumes those events via
    :meth:`pop_key_press`; skip instructions only look at the up/down state.
    """

    def __init__(self, keymap: str = "qwerty") -> None:
        self._down = [False] * NUM_KEYS
        self._fifo: Deque[int] = deque(maxlen=FIFO_SIZE)
        self.press_count = 0
        self.set_keymap(keymap)

    # ------------------------------------------------------------------ #
    # Host mapping
    # ------------------------------------------------------------------ #

    def set_keymap(self, keymap: str) -> None:
        try:
            self._keymap = KEYMAPS[keymap]
        except KeyError:
            raise InvalidKeyError(
                f"Unknown keymap '{keymap}' (expected one of: {sorted(KEYMAPS)})"
            ) from None
        self.keymap_name = keymap

    def host_key_to_key(self, host_key: str) -> int:
        key = self._keymap.get(host_key.lower())
        if key is None:
            raise InvalidKeyError(
                f"Host key {host_key!r} is not mapped in keymap '{self.keymap_name}'"
            )
        return key

    def press_host_key(self, host_key: str) -> bool:
        return self.press_key(self.host_key_to_key(host_key))

    def release_host_key(self, host_key: str) -> None:
        self.release_key(self.host_key_to_key(host_key))

    # ------------------------------------------------------------------ #
    # Public API (used by the machine, drivers and tests)
    # ------------------------------------------------------------------ #

    def press_key(self, key: KeyLike) -> bool:
        """Mark ``key`` as down. Returns False if it was already down."""

        index = parse_key(key)
        if self._down[index]:
            return False
        self._down[index] = True
        self._fifo.append(index)
        self.press_count += 1
        return True

    def release_key(self, key: KeyLike) -> None:
        self._down[parse_key(key)] = False

    def release_all_keys(self) -> None:
        self._down = [False] * NUM_KEYS

    def is_pressed(self, key: int) -> bool:
        return self._down[key & 0xF]

    def get_pressed_keys(self) -> Tuple[int, ...]:
        return tuple(key for key in range(NUM_KEYS) if self._down[key])

    def pop_key_press(self) -> Optional[int]:
        """Consume the oldest queued press event, if any."""

        if not self._fifo:
            return None
        return self._fifo.popleft()

    def clear_key_presses(self) -> None:
        self._fifo.clear()

    def fifo_snapshot(self) -> Tuple[int, ...]:
        return tuple(self._fifo)

    def snapshot(self) -> KeypadSnapshot:
        return KeypadSnapshot(
            pressed_keys=self.get_pressed_keys(), fifo=self.fifo_snapshot()
        )

    def restore(self, snapshot: KeypadSnapshot) -> None:
        self._down = [key in snapshot.pressed_keys for key in range(NUM_KEYS)]
        self._fifo.clear()
        self._fifo.extend(snapshot.fifo)


__all__ = [
    "InputSource",
    "Keypad",
    "KeypadSnapshot",
    "KEYMAPS",
    "KEYPAD_LAYOUT",
    "parse_key",
]
