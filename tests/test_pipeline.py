# tests/test_pipeline.py
import numpy as np
from PIL import Image

from distil.pipeline import Pipeline, distil
from distil.types import DistilConfig, PaletteEntry, PixelBuffer

RED = (255, 0, 0)
WHITE = (255, 255, 255)


def test_two_distinct_colors_come_out_exact():
    pixels = [RED] * 60 + [WHITE] * 40

    palette = distil(pixels)

    assert palette == [
        PaletteEntry(color=RED, weight=60),
        PaletteEntry(color=WHITE, weight=40),
    ]


def test_near_identical_blues_collapse_into_one_entry():
    palette = distil([(0, 0, 200), (0, 0, 202), (0, 0, 204)])

    assert palette == [PaletteEntry(color=(0, 0, 202), weight=3)]


def test_few_pixels_of_distinct_colors_come_back_exactly():
    colors = [(48, 0, 0), (112, 64, 64), (128, 128, 176), (192, 192, 240)]
    pixels = [color for color in colors for _ in range(3)]

    pipeline = Pipeline()
    pipeline.process(pixels)

    assert sorted(entry.color for entry in pipeline.raw_palette) == colors
    assert [entry.weight for entry in pipeline.raw_palette] == [3, 3, 3, 3]


def test_weights_add_up_to_pixel_count():
    rng = np.random.default_rng(42)
    pixels = rng.integers(0, 256, size=(25 * 40, 3)).astype(np.uint8)
    buffer = PixelBuffer(width=25, height=40, pixels=pixels)

    pipeline = Pipeline(DistilConfig(neurons=64))
    palette = pipeline.process(buffer)

    assert sum(entry.weight for entry in palette) == 1000
    assert sum(entry.weight for entry in pipeline.raw_palette) == 1000
    assert len(palette) <= len(pipeline.raw_palette) <= 64
    weights = [entry.weight for entry in palette]
    assert weights == sorted(weights, reverse=True)


def test_worker_count_does_not_change_result():
    rng = np.random.default_rng(9)
    pixels = rng.integers(0, 256, size=(700, 3)).astype(np.uint8)

    serial = distil(pixels, DistilConfig(neurons=48, workers=1))
    threaded = distil(pixels, DistilConfig(neurons=48, workers=3))

    assert serial == threaded


def test_seeded_runs_are_reproducible():
    rng = np.random.default_rng(3)
    pixels = rng.integers(0, 256, size=(400, 3)).astype(np.uint8)
    config = DistilConfig(neurons=32, seed=123)

    assert distil(pixels, config) == distil(pixels, config)


def test_empty_input_gives_empty_palette():
    pipeline = Pipeline()
    assert pipeline.process([]) == []
    assert pipeline.network is None
    assert pipeline.raw_palette == []


def test_extremes_only_image_gives_empty_palette():
    pixels = [(0, 0, 0)] * 20 + [(255, 255, 255)] * 20
    assert distil(pixels, DistilConfig(skip_extremes=True)) == []
    # Without the filter both colors are kept
    assert len(distil(pixels)) == 2


def test_transparent_pixels_are_skipped_on_request():
    buffer = PixelBuffer(
        width=2,
        height=2,
        pixels=[(255, 0, 0, 255), (255, 0, 0, 255), (255, 0, 0, 255), (0, 255, 0, 0)],
    )

    palette = distil(buffer, DistilConfig(skip_transparent=True))

    assert palette == [PaletteEntry(color=RED, weight=3)]


def test_network_is_trained_and_kept():
    pipeline = Pipeline(DistilConfig(neurons=16))
    pipeline.process([RED] * 10)

    assert pipeline.network is not None
    assert pipeline.network.frozen
    assert pipeline.network.k == 16


def test_process_image_downsamples_to_budget():
    rng = np.random.default_rng(11)
    array = rng.integers(0, 256, size=(40, 50, 3)).astype(np.uint8)
    image = Image.fromarray(array, "RGB")

    pipeline = Pipeline(DistilConfig(neurons=32))
    palette = pipeline.process_image(image)

    total = sum(entry.weight for entry in palette)
    assert 0 < total <= 1000
    assert total == sum(entry.weight for entry in pipeline.raw_palette)
