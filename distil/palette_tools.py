import concurrent.futures
import logging
import math
from dataclasses import dataclass
from functools import partial, reduce
from typing import List

import numpy as np

from distil import colormath
from distil.types import Color, InvalidConfiguration, Palette, PaletteEntry

log = logging.getLogger(__name__)


def palette_from_counts(counts: np.ndarray, colormap: np.ndarray) -> Palette:
    """
    Build the raw palette from a per-neuron occurrence table.

    Neurons with a zero count are left out. Entries are sorted by descending
    count, ties broken by ascending neuron index.
    """
    used = [int(i) for i in np.flatnonzero(counts)]
    used.sort(key=lambda i: (-int(counts[i]), i))
    return [
        PaletteEntry(color=tuple(int(c) for c in colormap[i]), weight=int(counts[i]))
        for i in used
    ]


def count_colors(indices, colormap: np.ndarray) -> Palette:
    """
    Tabulate how often each neuron occurs in a quantized (index) buffer.

    Args:
        indices: Sequence of neuron indices, one per pixel.
        colormap (np.ndarray): (K, 3) uint8 neuron colors.

    Returns:
        Palette: One entry per neuron mapped at least once, most frequent first.
    """
    indices = np.asarray(indices, dtype=np.int64)
    if indices.size == 0:
        return []
    counts = np.bincount(indices, minlength=len(colormap))
    return palette_from_counts(counts, colormap)


def tabulate(network, pixels: np.ndarray, workers: int = 1) -> np.ndarray:
    """
    Map pixels to neurons and count them, optionally across worker threads.

    The pixel buffer is split into one shard per worker; each shard's table is
    a bincount over the network's K neurons and the tables are summed.

    Returns:
        np.ndarray: int64 counts of shape (K,).
    """
    if workers < 1:
        raise InvalidConfiguration(f"workers must be >= 1, got {workers}")

    def _count_shard(shard: np.ndarray) -> np.ndarray:
        return np.bincount(network.map_pixels(shard), minlength=network.k)

    if workers == 1 or len(pixels) < 2:
        return _count_shard(pixels)

    shards = np.array_split(pixels, min(workers, len(pixels)))
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
        tables = list(executor.map(_count_shard, shards))
    return reduce(np.add, tables)


@dataclass
class _Cluster:
    color: Color
    weight: int


def _absorb(refined: List[_Cluster], entry: PaletteEntry, threshold: float) -> List[_Cluster]:
    # Nearest cluster by CIEDE2000; argmin picks the earliest cluster on ties.
    if refined:
        gaps = colormath.distances(entry.color, [cluster.color for cluster in refined])
        nearest = int(np.argmin(gaps))
        if gaps[nearest] <= threshold:
            cluster = refined[nearest]
            cluster.color = colormath.average(cluster.color, entry.color, cluster.weight, entry.weight)
            cluster.weight += entry.weight
            return refined
    refined.append(_Cluster(color=tuple(entry.color), weight=entry.weight))
    return refined


def merge_similar_colors(palette: Palette, threshold: float = 10.0) -> Palette:
    """
    Merge perceptually indistinguishable colors of a raw palette.

    Entries are folded in the order given (most frequent first), so dominant
    colors anchor clusters and rarer ones either join the nearest cluster or
    start a new one. A color joins a cluster when its CIEDE2000 distance to the
    cluster's current color is at most ``threshold``; the cluster color
    becomes the weight-averaged color and the weights add up.

    Args:
        palette (Palette): Raw palette sorted by descending weight.
        threshold (float): Largest distance at which two colors are the same.

    Returns:
        Palette: Refined palette, in cluster creation order.
    """
    if math.isnan(threshold) or threshold < 0:
        raise InvalidConfiguration(f"threshold must be >= 0, got {threshold}")

    refined = reduce(partial(_absorb, threshold=threshold), palette, [])
    log.debug("Merged %d raw colors into %d (threshold %.2f)", len(palette), len(refined), threshold)
    return [PaletteEntry(color=cluster.color, weight=cluster.weight) for cluster in refined]


def rank_palette(palette: Palette) -> Palette:
    """Sort by descending weight. Stable, so equal weights keep their order."""
    return sorted(palette, key=lambda entry: entry.weight, reverse=True)
