import os
from typing import Optional

from PIL import Image, ImageDraw, ImageFont

from distil.types import Palette


def _load_font(font_path: Optional[str], font_size: int):
    try:
        if font_path and os.path.isfile(font_path):
            return ImageFont.truetype(font_path, font_size)
    except IOError:
        pass  # Fall through to the default font
    try:
        return ImageFont.load_default(size=font_size)
    except TypeError:  # Pillow < 10.1 has no size argument
        return ImageFont.load_default()


def _text_color(color) -> tuple:
    # Rec. 601 luma
    luma = 0.299 * color[0] + 0.587 * color[1] + 0.114 * color[2]
    return (0, 0, 0) if luma > 127 else (255, 255, 255)


def create_swatch_image(
    palette: Palette,
    max_colors: Optional[int] = None,
    swatch_size: int = 80,
    show_weights: bool = False,
    font_path: Optional[str] = None,
    font_size: int = 14,
) -> Optional[Image.Image]:
    """
    Render a ranked palette as a row of square swatches.

    Args:
        palette (Palette): Ranked palette entries; drawn left to right.
        max_colors (int, optional): Draw at most this many swatches.
        swatch_size (int): Width/height of each swatch in pixels.
        show_weights (bool): Write each entry's weight inside its swatch.
        font_path (str, optional): Path to a TTF font for the weight labels.
        font_size (int): Font size for the weight labels.

    Returns:
        PIL.Image.Image: The swatch strip, or None for an empty palette.
    """
    entries = list(palette)[:max_colors] if max_colors is not None else list(palette)
    if not entries:
        return None

    image = Image.new("RGB", (swatch_size * len(entries), swatch_size))
    draw = ImageDraw.Draw(image)
    font = _load_font(font_path, font_size) if show_weights else None

    for idx, entry in enumerate(entries):
        x_offset = idx * swatch_size
        draw.rectangle(
            [x_offset, 0, x_offset + swatch_size - 1, swatch_size - 1],
            fill=tuple(int(c) for c in entry.color),
        )
        if not show_weights:
            continue

        text = str(entry.weight)
        left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
        text_x = x_offset + (swatch_size - (right - left)) / 2.0 - left
        text_y = (swatch_size - (bottom - top)) / 2.0 - top
        draw.text((text_x, text_y), text, fill=_text_color(entry.color), font=font)

    return image
