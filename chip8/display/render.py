"""Display rendering utilities (PIL images and text dumps)."""

from __future__ import annotations

from pathlib import Path
from typing import Tuple, Union

import numpy as np
from PIL import Image

Color = Tuple[int, int, int]

DEFAULT_ON_COLOR: Color = (255, 255, 255)
DEFAULT_OFF_COLOR: Color = (0, 0, 0)


def render_image(
    buffer,
    zoom: int = 1,
    on_color: Color = DEFAULT_ON_COLOR,
    off_color: Color = DEFAULT_OFF_COLOR,
) -> Image.Image:
    """Render a 0/1 pixel buffer as an RGB image.

    Args:
        buffer: 2D array-like indexed ``[y][x]``
        zoom: Integer scaling factor applied to both axes

    Returns:
        PIL Image of size ``(width * zoom, height * zoom)``
    """
    if zoom < 1:
        raise ValueError(f"zoom must be >= 1, got {zoom}")
    pixels = np.asarray(buffer, dtype=np.uint8) != 0
    rgb = np.empty(pixels.shape + (3,), dtype=np.uint8)
    rgb[pixels] = on_color
    rgb[~pixels] = off_color
    if zoom > 1:
        rgb = np.repeat(np.repeat(rgb, zoom, axis=0), zoom, axis=1)
    return Image.fromarray(rgb)


def render_text(buffer, on: str = "#", off: str = ".") -> str:
    """Render the buffer as one text line per display row."""
    pixels = np.asarray(buffer, dtype=np.uint8)
    return "\n".join(
        "".join(on if value else off for value in row) for row in pixels
    )


def save_display(
    buffer,
    path: Union[str, Path],
    zoom: int = 8,
    on_color: Color = DEFAULT_ON_COLOR,
    off_color: Color = DEFAULT_OFF_COLOR,
) -> Path:
    """Save the buffer as an image file and return the path."""
    target = Path(path)
    render_image(buffer, zoom=zoom, on_color=on_color, off_color=off_color).save(
        target
    )
    return target


__all__ = [
    "Color",
    "DEFAULT_ON_COLOR",
    "DEFAULT_OFF_COLOR",
    "render_image",
    "render_text",
    "save_display",
]
