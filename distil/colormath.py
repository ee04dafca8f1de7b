"""Perceptual color math: CIE L*a*b* conversion and CIEDE2000 distance."""

from typing import Sequence

import numpy as np
from skimage.color import deltaE_ciede2000, rgb2lab

from distil.types import Color


def to_channels(values) -> np.ndarray:
    """Round float channel values half-up and clamp them to uint8."""
    return np.clip(np.floor(np.asarray(values, dtype=np.float64) + 0.5), 0, 255).astype(np.uint8)


def rgb_to_lab(colors) -> np.ndarray:
    """
    Convert sRGB colors (0-255) to CIE L*a*b* under the D65 illuminant.

    Args:
        colors: A single (r, g, b) color or an array-like of shape (N, 3).

    Returns:
        np.ndarray: float64 array of shape (N, 3), one L*a*b* row per color.
    """
    rgb = np.asarray(colors, dtype=np.float64).reshape(1, -1, 3) / 255.0
    return rgb2lab(rgb)[0]


def distances(color: Color, colors: Sequence[Color]) -> np.ndarray:
    """
    CIEDE2000 distance from one color to each of many colors.

    Hue is undefined on the gray axis; in that case the hue difference is
    taken as zero, so grays, black and white always yield finite values.
    """
    if len(colors) == 0:
        return np.empty(0, dtype=np.float64)
    labs = rgb_to_lab(colors)
    origin = np.repeat(rgb_to_lab(color), len(labs), axis=0)
    return deltaE_ciede2000(origin, labs)


def distance(a: Color, b: Color) -> float:
    """CIEDE2000 distance between two colors. Symmetric, zero for equal colors."""
    return float(deltaE_ciede2000(rgb_to_lab(a), rgb_to_lab(b))[0])


def average(a: Color, b: Color, weight_a: float, weight_b: float) -> Color:
    """Component-wise weighted mean of two colors, rounded to valid channels."""
    total = weight_a + weight_b
    if total == 0:
        weight_a, weight_b, total = 1, 1, 2
    mean = (np.asarray(a, dtype=np.float64) * weight_a + np.asarray(b, dtype=np.float64) * weight_b) / total
    return tuple(int(c) for c in to_channels(mean))


def to_hex(color: Color) -> str:
    return "#{:02x}{:02x}{:02x}".format(*(int(c) for c in color))
