"""Pipeline orchestrator: pixels -> quantizer -> counts -> merge -> rank."""

import logging
import time
from typing import Optional

from PIL import Image

from distil.file_utils import image_to_buffer, scale_image
from distil.palette_tools import merge_similar_colors, palette_from_counts, rank_palette, tabulate
from distil.quantize import QuantizerNetwork, prepare_pixels
from distil.types import DistilConfig, Palette

log = logging.getLogger(__name__)


class Pipeline:
    """Distills a pixel buffer into a ranked palette."""

    def __init__(self, config: Optional[DistilConfig] = None):
        """Initialize pipeline with configuration.

        Args:
            config: Pipeline configuration. Uses defaults if None.
        """
        self.config = config or DistilConfig()
        self.network: Optional[QuantizerNetwork] = None
        self.raw_palette: Palette = []

    def process(self, pixels) -> Palette:
        """Run every stage over a pixel buffer.

        Args:
            pixels: PixelBuffer, (N, 3|4) array or sequence of RGB(A) tuples,
                already downsampled.

        Returns:
            Ranked palette; empty if no pixel survived selection.
        """
        config = self.config
        samples = prepare_pixels(pixels, config)
        if len(samples) == 0:
            log.warning("No pixels left to distil; returning an empty palette")
            self.network = None
            self.raw_palette = []
            return []

        started = time.perf_counter()
        network = QuantizerNetwork.from_config(config)
        network.train(samples, config.cycles)
        self.network = network
        log.debug("Trained quantizer in %.3fs", time.perf_counter() - started)

        started = time.perf_counter()
        counts = tabulate(network, samples, workers=config.workers)
        self.raw_palette = palette_from_counts(counts, network.colormap)
        log.debug(
            "Counted %d pixels into %d raw colors in %.3fs",
            len(samples), len(self.raw_palette), time.perf_counter() - started,
        )

        refined = merge_similar_colors(self.raw_palette, config.threshold)
        return rank_palette(refined)

    def process_image(self, image: Image.Image) -> Palette:
        """Downsample a decoded image to the pixel budget and distil it."""
        scaled = scale_image(image, self.config.max_pixels)
        return self.process(image_to_buffer(scaled))


def distil(pixels, config: Optional[DistilConfig] = None) -> Palette:
    """Convenience wrapper around Pipeline(config).process(pixels)."""
    return Pipeline(config).process(pixels)
