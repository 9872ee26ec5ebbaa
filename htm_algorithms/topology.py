"""Index arithmetic over n-dimensional column and input spaces.

Flat indices are row-major, the last dimension varies fastest.
"""
from __future__ import annotations

import itertools
from typing import List, Sequence, Tuple

import numpy as np


def compute_coordinates(index: int, dimensions: Sequence[int]) -> Tuple[int, ...]:
    """Flat index -> coordinates."""
    return tuple(int(c) for c in np.unravel_index(index, tuple(dimensions)))


def compute_index(coordinates: Sequence[int], dimensions: Sequence[int]) -> int:
    """Coordinates -> flat index."""
    return int(np.ravel_multi_index(tuple(coordinates), tuple(dimensions)))


def neighborhood(center: int, radius: int, dimensions: Sequence[int]) -> np.ndarray:
    """Flat indices within ``radius`` of ``center``, clipped at the edges.

    The hypercube includes the center itself. Result is sorted.
    """
    center_position = compute_coordinates(center, dimensions)
    ranges: List[range] = []
    for position, size in zip(center_position, dimensions):
        ranges.append(range(max(0, position - radius), min(size - 1, position + radius) + 1))
    return _flatten(ranges, dimensions)


def wrapping_neighborhood(center: int, radius: int, dimensions: Sequence[int]) -> np.ndarray:
    """Like :func:`neighborhood`, but coordinates wrap around each dimension."""
    center_position = compute_coordinates(center, dimensions)
    ranges: List[List[int]] = []
    for position, size in zip(center_position, dimensions):
        if 2 * radius + 1 >= size:
            ranges.append(list(range(size)))
        else:
            ranges.append(sorted({i % size for i in range(position - radius, position + radius + 1)}))
    return _flatten(ranges, dimensions)


def _flatten(ranges: Sequence[Sequence[int]], dimensions: Sequence[int]) -> np.ndarray:
    coords = list(itertools.product(*ranges))
    if not coords:
        return np.empty(0, dtype=np.int64)
    flat = np.ravel_multi_index(tuple(np.array(coords).T), tuple(dimensions))
    return np.sort(flat.astype(np.int64))
