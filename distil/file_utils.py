import logging
import math
import re
from pathlib import Path
from typing import Dict, Optional, Union

import numpy as np
from PIL import Image, PngImagePlugin, UnidentifiedImageError

from distil.types import ImageLoadError, PixelBuffer, UnsupportedFormat

log = logging.getLogger(__name__)

SUPPORTED_FORMATS = ("PNG", "JPEG")
MAX_SAMPLE_COUNT = 1000


def load_image(path: Union[str, Path]) -> Image.Image:
    """
    Open a PNG or JPEG image and decode it.

    Raises:
        FileNotFoundError: If the path does not exist.
        UnsupportedFormat: If the file is an image of any other format.
        ImageLoadError: If the file cannot be decoded at all.
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Input file not found at {path}")

    try:
        image = Image.open(path)
        image.load()
    except UnidentifiedImageError as e:
        raise UnsupportedFormat(f"{path} is not a JPEG or a PNG") from e
    except OSError as e:
        raise ImageLoadError(f"Failed to decode {path}: {e}") from e

    if image.format not in SUPPORTED_FORMATS:
        raise UnsupportedFormat(f"{path} is a {image.format}, not a JPEG or a PNG")
    return image


def scale_image(image: Image.Image, max_pixels: int = MAX_SAMPLE_COUNT) -> Image.Image:
    """
    Proportionally shrink an image so it holds at most max_pixels pixels.

    Images already within the budget are returned unchanged.
    """
    width, height = image.size
    if width * height <= max_pixels:
        return image

    ratio = math.sqrt(max_pixels / float(width * height))
    scaled_width = max(1, int(width * ratio))
    scaled_height = max(1, int(height * ratio))
    # Rounding the two sides separately can still overshoot by a row or column.
    while scaled_width * scaled_height > max_pixels:
        if scaled_width >= scaled_height and scaled_width > 1:
            scaled_width -= 1
        else:
            scaled_height -= 1

    log.debug("Scaling %dx%d image to %dx%d", width, height, scaled_width, scaled_height)
    return image.resize((scaled_width, scaled_height), Image.Resampling.BICUBIC)


def has_transparency(image: Image.Image) -> bool:
    return "A" in image.getbands() or "transparency" in image.info


def image_to_buffer(image: Image.Image) -> PixelBuffer:
    """Flatten a Pillow image into a row-major RGB (or RGBA) pixel buffer."""
    mode = "RGBA" if has_transparency(image) else "RGB"
    converted = image.convert(mode)
    pixels = np.asarray(converted, dtype=np.uint8).reshape(-1, len(mode))
    return PixelBuffer(width=converted.width, height=converted.height, pixels=pixels)


def read_pixel_buffer(path: Union[str, Path], max_pixels: int = MAX_SAMPLE_COUNT) -> PixelBuffer:
    """Load, downsample and flatten an image file."""
    return image_to_buffer(scale_image(load_image(path), max_pixels))


def save_swatch_png(
    image_to_save: Image.Image,
    output_path: Union[str, Path],
    command_line_invocation: Optional[str] = None,
    additional_metadata: Optional[Dict[str, str]] = None
) -> Path:
    """
    Saves a PIL Image object as a PNG file, embedding specified metadata.
    """
    output_path = Path(output_path)
    if not output_path.parent.exists():
        output_path.parent.mkdir(parents=True, exist_ok=True)

    png_info = PngImagePlugin.PngInfo()
    if command_line_invocation:
        png_info.add_text("distil:command_line", command_line_invocation)
    png_info.add_text("Software", "distil")

    if additional_metadata:
        for key, value in additional_metadata.items():
            key_clean = re.sub(r'\s+', '_', key)
            key_clean = re.sub(r'[^a-zA-Z0-9_.-]', '', key_clean)
            if not re.match(r'^[a-zA-Z_]', key_clean):  # Must start with letter or underscore
                key_clean = "distil_" + key_clean
            # tEXt keywords are limited to 79 bytes, prefix included
            png_info.add_text(f"distil:{key_clean[:70]}", str(value))

    image_to_save.save(output_path, "PNG", pnginfo=png_info)
    return output_path
