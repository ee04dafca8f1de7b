"""Common types, configuration and exceptions for distil."""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np

# Type aliases
Color = Tuple[int, int, int]
PixelArray = np.ndarray

# The neighbourhood shrinks to a single neuron well before the learning rate
# runs out.
RADIUS_FINAL = 0.001


class DistilError(Exception):
    """Base exception for palette distillation errors."""

    pass


class InvalidConfiguration(DistilError, ValueError):
    """Raised when a configuration value is out of range or malformed."""

    pass


class InvalidPixelBuffer(DistilError, ValueError):
    """Raised when a pixel buffer does not match its declared dimensions."""

    pass


class NetworkFrozenError(DistilError, RuntimeError):
    """Raised when a quantizer network is trained a second time."""

    pass


class UnsupportedFormat(DistilError):
    """Raised when the input image isn't a JPEG or a PNG."""

    pass


class ImageLoadError(DistilError):
    """Raised when an input image cannot be decoded."""

    pass


@dataclass(frozen=True)
class PaletteEntry:
    """A representative color and the number of pixels it stands for."""

    color: Color
    weight: int


Palette = List[PaletteEntry]


@dataclass
class PixelBuffer:
    """A decoded, already downsampled image as a row-major pixel array."""

    width: int
    height: int
    pixels: PixelArray

    def __post_init__(self):
        self.pixels = np.asarray(self.pixels, dtype=np.uint8)
        if self.pixels.size == 0:
            self.pixels = self.pixels.reshape(0, 3)
        if self.width < 0 or self.height < 0:
            raise InvalidPixelBuffer(f"Negative dimensions: {self.width}x{self.height}")
        if self.pixels.ndim != 2 or self.pixels.shape[1] not in (3, 4):
            raise InvalidPixelBuffer(
                f"Pixels must have shape (N, 3) or (N, 4), got {self.pixels.shape}"
            )
        if len(self.pixels) != self.width * self.height:
            raise InvalidPixelBuffer(
                f"Expected {self.width * self.height} pixels for "
                f"{self.width}x{self.height}, got {len(self.pixels)}"
            )

    def __len__(self) -> int:
        return len(self.pixels)


class DecayKind(str, Enum):
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


@dataclass(frozen=True)
class DecaySchedule:
    """How a training parameter shrinks from its initial value.

    ``factor(progress)`` is 1.0 at the start of training and ``final`` at the
    end. Linear decay interpolates straight down; exponential decay follows
    ``final ** progress``.
    """

    kind: DecayKind = DecayKind.EXPONENTIAL
    final: float = 0.01

    def __post_init__(self):
        try:
            kind = DecayKind(self.kind)
        except ValueError:
            raise InvalidConfiguration(f"Unknown decay schedule: {self.kind!r}") from None
        object.__setattr__(self, "kind", kind)

        if math.isnan(self.final):
            raise InvalidConfiguration("Decay schedule final value must be a number")
        if kind is DecayKind.EXPONENTIAL and not 0.0 < self.final < 1.0:
            raise InvalidConfiguration(
                f"Exponential decay needs 0 < final < 1, got {self.final}"
            )
        if kind is DecayKind.LINEAR and not 0.0 <= self.final < 1.0:
            raise InvalidConfiguration(f"Linear decay needs 0 <= final < 1, got {self.final}")

    def factor(self, progress: float) -> float:
        if self.kind is DecayKind.LINEAR:
            return 1.0 - (1.0 - self.final) * progress
        return self.final ** progress


@dataclass
class DistilConfig:
    """Configuration for the distillation pipeline."""

    # Quantizer network
    neurons: int = 256
    cycles: int = 3
    learning_rate: float = 1.0
    learning_rate_decay: DecaySchedule = field(default_factory=DecaySchedule)
    radius: Optional[float] = None  # None: neurons / 8
    radius_decay: DecaySchedule = field(default_factory=lambda: DecaySchedule(final=RADIUS_FINAL))
    sample_factor: int = 1
    seed: Optional[int] = None

    # Perceptual merge
    threshold: float = 10.0

    # Mapping/counting threads
    workers: int = 1

    # Pixel selection
    skip_transparent: bool = False
    skip_extremes: bool = False
    min_black: int = 8
    max_white: int = 247

    # Image input
    max_pixels: int = 1000

    def __post_init__(self):
        if self.neurons < 1:
            raise InvalidConfiguration(f"neurons must be >= 1, got {self.neurons}")
        if self.cycles < 1:
            raise InvalidConfiguration(f"cycles must be >= 1, got {self.cycles}")
        if not 0.0 < self.learning_rate <= 1.0:
            raise InvalidConfiguration(
                f"learning_rate must be in (0, 1], got {self.learning_rate}"
            )
        if self.radius is not None and not self.radius > 0:
            raise InvalidConfiguration(f"radius must be > 0, got {self.radius}")
        if not 1 <= self.sample_factor <= 30:
            raise InvalidConfiguration(
                f"sample_factor must be in 1..30, got {self.sample_factor}"
            )
        if math.isnan(self.threshold) or self.threshold < 0:
            raise InvalidConfiguration(f"threshold must be >= 0, got {self.threshold}")
        if self.workers < 1:
            raise InvalidConfiguration(f"workers must be >= 1, got {self.workers}")
        if not 0 <= self.min_black <= 255 or not 0 <= self.max_white <= 255:
            raise InvalidConfiguration(
                f"min_black/max_white must be in 0..255, got {self.min_black}/{self.max_white}"
            )
        if self.max_pixels < 1:
            raise InvalidConfiguration(f"max_pixels must be >= 1, got {self.max_pixels}")

    @property
    def initial_radius(self) -> float:
        if self.radius is not None:
            return float(self.radius)
        return float(max(1, self.neurons // 8))
