"""Shared architecture constants for the CHIP-8 virtual machine.

This module centralizes the fixed sizes and addresses used across the
machine, the loader and the tests.
"""

# Total addressable memory: 4 KB, addresses 0x000-0xFFF.
MEMORY_SIZE = 0x1000
ADDRESS_MASK = 0xFFF

# Programs are loaded here; everything below belongs to the interpreter.
PROGRAM_START = 0x200
MAX_PROGRAM_SIZE = MEMORY_SIZE - PROGRAM_START

# Built-in hex font: 16 glyphs of 5 bytes each.
FONT_START = 0x050
FONT_GLYPH_SIZE = 5

NUM_REGISTERS = 16
FLAG_REGISTER = 0xF
STACK_SIZE = 16
NUM_KEYS = 16

DISPLAY_WIDTH = 64
DISPLAY_HEIGHT = 32
SPRITE_WIDTH = 8

INSTRUCTION_SIZE = 2

BYTE_MASK = 0xFF
WORD_MASK = 0xFFFF

# Nominal rates (Hz). Timers always tick at 60 Hz regardless of how fast
# instructions are dispatched.
DEFAULT_CPU_FREQUENCY = 700
TIMER_FREQUENCY = 60

# Most recent diagnostics kept by a machine.
DIAGNOSTIC_LIMIT = 256
