import logging
from typing import Optional

import numpy as np

from distil.colormath import to_channels
from distil.types import (
    RADIUS_FINAL,
    DecaySchedule,
    DistilConfig,
    InvalidConfiguration,
    InvalidPixelBuffer,
    NetworkFrozenError,
    PixelBuffer,
)

log = logging.getLogger(__name__)

# Presentation strides, as in NeuQuant: the first one that does not divide the
# sample count walks every pixel exactly once per pass.
PRIME_STRIDES = (499, 491, 487, 503)
# NeuQuant's learning cycles; tiny inputs are walked repeatedly to reach it.
MIN_CYCLE_PRESENTATIONS = 100
SETTLE_ROUNDS = 10
MAP_CHUNK = 4096


def prepare_pixels(pixels, config: Optional[DistilConfig] = None) -> np.ndarray:
    """
    Coerce pixel input to an (N, 3) uint8 array, applying the pixel filters.

    Args:
        pixels: A PixelBuffer, an (N, 3|4) array, or a sequence of RGB(A) tuples.
        config (DistilConfig, optional): Supplies skip_transparent / skip_extremes.

    Returns:
        np.ndarray: (N, 3) uint8 array, alpha dropped.
    """
    config = config or DistilConfig()
    if isinstance(pixels, PixelBuffer):
        pixels = pixels.pixels

    array = np.asarray(pixels)
    if array.size == 0:
        return np.empty((0, 3), dtype=np.uint8)
    if array.ndim != 2 or array.shape[1] not in (3, 4):
        raise InvalidPixelBuffer(f"Pixels must have shape (N, 3) or (N, 4), got {array.shape}")
    if array.min() < 0 or array.max() > 255:
        raise InvalidPixelBuffer("Pixel channels must be within 0..255")
    array = array.astype(np.uint8)

    keep = np.ones(len(array), dtype=bool)
    if config.skip_transparent and array.shape[1] == 4:
        keep &= array[:, 3] == 255
    rgb = array[:, :3]
    if config.skip_extremes:
        keep &= ~np.all(rgb < config.min_black, axis=1)
        keep &= ~np.all(rgb > config.max_white, axis=1)

    dropped = len(array) - int(keep.sum())
    if dropped:
        log.debug("Skipped %d of %d pixels as transparent or too dark/light", dropped, len(array))
    return np.ascontiguousarray(rgb[keep])


def _prime_stride(count: int) -> int:
    for prime in PRIME_STRIDES:
        if count % prime != 0:
            return prime
    return 1


class QuantizerNetwork:
    """
    A NeuQuant-style self-organising map of K color neurons.

    Neurons live in a flat (K, 3) array. Training moves the best-matching
    neuron toward each presented pixel and drags the neurons at nearby indices
    along by a smaller amount. Once trained, the network is frozen and only
    answers nearest-neuron lookups.
    """

    def __init__(
        self,
        k: int,
        seed: Optional[int] = None,
        learning_rate: float = 1.0,
        learning_rate_decay: Optional[DecaySchedule] = None,
        radius: Optional[float] = None,
        radius_decay: Optional[DecaySchedule] = None,
        sample_factor: int = 1,
    ):
        if k < 1:
            raise InvalidConfiguration(f"Network needs at least one neuron, got k={k}")
        if not 0.0 < learning_rate <= 1.0:
            raise InvalidConfiguration(f"learning_rate must be in (0, 1], got {learning_rate}")
        if radius is not None and not radius > 0:
            raise InvalidConfiguration(f"radius must be > 0, got {radius}")
        if sample_factor < 1:
            raise InvalidConfiguration(f"sample_factor must be >= 1, got {sample_factor}")

        self.k = k
        self.seed = seed
        self.learning_rate = learning_rate
        self.learning_rate_decay = learning_rate_decay or DecaySchedule()
        self.radius = float(radius) if radius is not None else float(max(1, k // 8))
        self.radius_decay = radius_decay or DecaySchedule(final=RADIUS_FINAL)
        self.sample_factor = sample_factor
        self._frozen = False

        if seed is None:
            # Evenly spread along the gray diagonal.
            ramp = np.linspace(0.0, 255.0, k)
            self._weights = np.repeat(ramp[:, None], 3, axis=1)
        else:
            rng = np.random.default_rng(seed)
            self._weights = rng.uniform(0.0, 255.0, size=(k, 3))

    @classmethod
    def from_config(cls, config: DistilConfig) -> "QuantizerNetwork":
        return cls(
            config.neurons,
            seed=config.seed,
            learning_rate=config.learning_rate,
            learning_rate_decay=config.learning_rate_decay,
            radius=config.initial_radius,
            radius_decay=config.radius_decay,
            sample_factor=config.sample_factor,
        )

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def weights(self) -> np.ndarray:
        """Read-only view of the (K, 3) float neuron weights."""
        view = self._weights.view()
        view.flags.writeable = False
        return view

    @property
    def colormap(self) -> np.ndarray:
        """Neuron colors rounded to (K, 3) uint8."""
        return to_channels(self._weights)

    def train(self, pixels, cycles: int) -> None:
        """
        Train the network on a sequence of pixels, then freeze it.

        After the presentations, every neuron that wins some of the presented
        pixels is settled onto their mean, so a color with a neuron of its
        own is reproduced exactly.

        Args:
            pixels: (N, 3) array-like of RGB pixels.
            cycles (int): Number of passes over the (sampled) pixels. Zero
                          leaves the neurons at their initial values.

        Raises:
            NetworkFrozenError: If the network was already trained.
            InvalidConfiguration: If cycles is negative.
        """
        if self._frozen:
            raise NetworkFrozenError("Network is already trained and frozen")
        if cycles < 0:
            raise InvalidConfiguration(f"cycles must be >= 0, got {cycles}")

        samples = np.asarray(pixels, dtype=np.float64)
        if samples.size:
            samples = samples.reshape(-1, samples.shape[-1])[:, :3]
        count = len(samples) if samples.size else 0
        if count == 0 or cycles == 0:
            log.debug("Nothing to train on (%d pixels, %d cycles); keeping initial neurons", count, cycles)
            self._freeze()
            return

        stride = _prime_stride(count)
        presentations = max(-(-count // self.sample_factor), MIN_CYCLE_PRESENTATIONS)
        total = presentations * cycles
        log.debug(
            "Training %d neurons on %d pixels: %d cycles of %d presentations",
            self.k, count, cycles, presentations,
        )

        position = 0
        for step in range(total):
            progress = step / total
            alpha = self.learning_rate * self.learning_rate_decay.factor(progress)
            radius = self.radius * self.radius_decay.factor(progress)

            pixel = samples[position]
            self._alter_neighbourhood(self._best_match(pixel), pixel, alpha, radius)

            position = (position + stride) % count

        # The stride is coprime with count, so these are the distinct pixels presented.
        presented = (np.arange(min(total, count)) * stride) % count
        self._settle(samples[presented])
        self._freeze()

    def _settle(self, samples: np.ndarray) -> None:
        assigned = None
        for _ in range(SETTLE_ROUNDS):
            winners = self.map_pixels(samples)
            if assigned is not None and np.array_equal(winners, assigned):
                break
            assigned = winners
            counts = np.bincount(winners, minlength=self.k)
            sums = np.zeros((self.k, 3))
            np.add.at(sums, winners, samples)
            won = counts > 0
            self._weights[won] = sums[won] / counts[won, None]
        log.debug("Settled %d neurons onto %d presented pixels", int(np.count_nonzero(counts)), len(samples))

    def _best_match(self, pixel: np.ndarray) -> int:
        return int(np.argmin(np.abs(self._weights - pixel).sum(axis=1)))

    def _alter_neighbourhood(self, winner: int, pixel: np.ndarray, alpha: float, radius: float) -> None:
        # Neighbours are the indices strictly within the radius; the winner
        # itself always moves by the full alpha.
        reach = int(np.ceil(radius)) - 1
        lo = max(0, winner - reach)
        hi = min(self.k, winner + reach + 1)
        offsets = np.abs(np.arange(lo, hi) - winner)
        rates = alpha * np.clip(1.0 - (offsets / radius) ** 2, 0.0, None)
        block = self._weights[lo:hi]
        block += rates[:, None] * (pixel - block)

    def _freeze(self) -> None:
        self._frozen = True
        self._weights.flags.writeable = False

    def map(self, pixel) -> int:
        """Index of the neuron nearest to pixel (sum of absolute channel differences)."""
        rgb = np.asarray(pixel, dtype=np.float64)[:3]
        return self._best_match(rgb)

    def map_pixels(self, pixels) -> np.ndarray:
        """
        Vectorized map() over an (N, 3) array. Returns an int64 index array.

        Distances are computed MAP_CHUNK pixels at a time, so memory stays at
        MAP_CHUNK x K x 3 floats whatever the buffer size.
        """
        samples = np.asarray(pixels, dtype=np.float64)
        if samples.size == 0:
            return np.empty(0, dtype=np.int64)
        samples = samples.reshape(-1, samples.shape[-1])[:, :3]
        indices = np.empty(len(samples), dtype=np.int64)
        for start in range(0, len(samples), MAP_CHUNK):
            block = samples[start:start + MAP_CHUNK]
            dists = np.abs(block[:, None, :] - self._weights[None, :, :]).sum(axis=2)
            indices[start:start + MAP_CHUNK] = np.argmin(dists, axis=1)
        return indices
