"""Machine configuration for the CHIP-8 virtual machine."""

from dataclasses import dataclass
from typing import Optional, Tuple
import json

from ..constants import DEFAULT_CPU_FREQUENCY, TIMER_FREQUENCY
from ..keypad import KEYMAPS, Keypad
from ..machine import Machine
from ..runner import MAX_CATCH_UP_SECONDS, MachineRunner
from ..scheduler import TimerScheduler


def _color(value) -> Tuple[int, int, int]:
    if isinstance(value, str):
        value = value.lstrip("#")
        return (int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16))
    red, green, blue = value
    return (int(red), int(green), int(blue))


def _color_hex(color: Tuple[int, int, int]) -> str:
    return "#{:02X}{:02X}{:02X}".format(*color)


@dataclass
class MachineConfig:
    """CHIP-8 machine and driver configuration."""
    name: str = "CHIP-8"
    cpu_frequency: int = DEFAULT_CPU_FREQUENCY  # instructions per second
    timer_frequency: int = TIMER_FREQUENCY
    keymap: str = "qwerty"
    display_zoom: int = 8
    on_color: Tuple[int, int, int] = (255, 255, 255)
    off_color: Tuple[int, int, int] = (0, 0, 0)
    seed: Optional[int] = None

    def __post_init__(self):
        if self.cpu_frequency <= 0:
            raise ValueError(f"cpu_frequency must be positive, got {self.cpu_frequency}")
        if self.timer_frequency <= 0:
            raise ValueError(
                f"timer_frequency must be positive, got {self.timer_frequency}"
            )
        if self.keymap not in KEYMAPS:
            raise ValueError(
                f"Unknown keymap '{self.keymap}' (expected one of: {sorted(KEYMAPS)})"
            )
        if self.display_zoom < 1:
            raise ValueError(f"display_zoom must be >= 1, got {self.display_zoom}")
        self.on_color = _color(self.on_color)
        self.off_color = _color(self.off_color)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "cpu_frequency": self.cpu_frequency,
            "timer_frequency": self.timer_frequency,
            "keymap": self.keymap,
            "display_zoom": self.display_zoom,
            "on_color": _color_hex(self.on_color),
            "off_color": _color_hex(self.off_color),
            "seed": self.seed,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'MachineConfig':
        defaults = cls()
        return cls(
            name=data.get("name", defaults.name),
            cpu_frequency=int(data.get("cpu_frequency", defaults.cpu_frequency)),
            timer_frequency=int(data.get("timer_frequency", defaults.timer_frequency)),
            keymap=data.get("keymap", defaults.keymap),
            display_zoom=int(data.get("display_zoom", defaults.display_zoom)),
            on_color=data.get("on_color", defaults.on_color),
            off_color=data.get("off_color", defaults.off_color),
            seed=data.get("seed"),
        )

    def create_machine(self, **kwargs) -> Machine:
        """Build a machine wired with this configuration's keypad and seed."""
        kwargs.setdefault("keypad", Keypad(keymap=self.keymap))
        kwargs.setdefault("seed", self.seed)
        return Machine(**kwargs)

    def create_runner(self, machine: Machine, **kwargs) -> MachineRunner:
        """Build a runner pacing ``machine`` at the configured rates."""
        scheduler = TimerScheduler(
            cpu_frequency=self.cpu_frequency,
            timer_frequency=self.timer_frequency,
            max_catch_up=MAX_CATCH_UP_SECONDS,
        )
        return MachineRunner(machine, scheduler, **kwargs)

    def save(self, path: str) -> None:
        """Save configuration to JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: str) -> 'MachineConfig':
        """Load configuration from JSON file."""
        with open(path, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data)

    @classmethod
    def for_model(cls, model: str) -> 'MachineConfig':
        """Get configuration preset by name."""
        configs = {
            "chip8": cls(),
            "chip8-fast": cls(name="CHIP-8 (fast)", cpu_frequency=2000),
            "chip8-qwertz": cls(name="CHIP-8 (QWERTZ)", keymap="qwertz"),
        }

        if model not in configs:
            raise ValueError(
                f"Unknown model {model!r}; expected one of {sorted(configs)}"
            )
        return configs[model]
