"""Display subsystem for the CHIP-8 virtual machine."""

from .framebuffer import DisplaySnapshot, FrameBuffer
from .font import (
    FONT_SPRITES,
    glyph_address,
    glyph_bitmap,
    glyph_rows,
    match_glyph,
)
from .render import render_image, render_text, save_display

__all__ = [
    # Display sink
    "FrameBuffer",
    "DisplaySnapshot",
    # Font helpers
    "FONT_SPRITES",
    "glyph_address",
    "glyph_rows",
    "glyph_bitmap",
    "match_glyph",
    # Rendering
    "render_image",
    "render_text",
    "save_display",
]
