"""Column inhibition strategies for the Spatial Pooler.

A strategy turns boosted overlaps into the sorted array of winning columns.
All strategies rank columns the same way: boosted overlap descending, then
tie-breaker value ascending (the smallest perturbation wins), then column
index ascending.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, Tuple

import numpy as np

from htm_algorithms.connections import Connections
from htm_algorithms.topology import neighborhood, wrapping_neighborhood

MAX_DENSITY = 0.5  # Upper bound of the derived local area density


def rank_columns(connections: Connections, boosted_overlaps: np.ndarray) -> np.ndarray:
    """Column indices, best candidate first."""
    indices = np.arange(boosted_overlaps.size)
    return np.lexsort((indices, connections.tie_breaker, -boosted_overlaps))


def resolve_density(connections: Connections) -> float:
    """Fraction of columns that stay active in one inhibition area."""
    if connections.local_area_density > 0:
        return float(connections.local_area_density)
    radius = connections.inhibition_radius
    ndims = len(connections.column_dimensions)
    inhibition_area = min(connections.num_columns, (2 * radius + 1) ** ndims)
    density = connections.num_active_columns_per_inh_area / inhibition_area
    return float(min(density, MAX_DENSITY))


def column_neighborhood(connections: Connections, center: int, radius: int) -> np.ndarray:
    if connections.wrap_around:
        return wrapping_neighborhood(center, radius, connections.column_dimensions)
    return neighborhood(center, radius, connections.column_dimensions)


class InhibitionStrategy(ABC):
    """Selects active columns from boosted overlaps."""

    @abstractmethod
    def inhibit(self, connections: Connections, boosted_overlaps: np.ndarray, density: float) -> np.ndarray:
        """Return the sorted indices of the winning columns."""
        raise NotImplementedError("Subclasses must implement this method")


class GlobalInhibition(InhibitionStrategy):
    """The whole column space is a single inhibition area."""

    def inhibit(self, connections: Connections, boosted_overlaps: np.ndarray, density: float) -> np.ndarray:
        # Tolerate density * n landing a hair below an integer.
        num_active = int(density * connections.num_columns + 1e-7)
        winners = rank_columns(connections, boosted_overlaps)[:num_active]
        winners = winners[boosted_overlaps[winners] >= connections.stimulus_threshold]
        return np.sort(winners)


class LocalInhibition(InhibitionStrategy):
    """Each column competes only with the columns within the inhibition radius."""

    def __init__(self) -> None:
        self._cache_key: Tuple[int, bool, Tuple[int, ...]] | None = None
        self._neighborhoods: Dict[int, np.ndarray] = {}

    def _neighborhood(self, connections: Connections, column: int) -> np.ndarray:
        key = (connections.inhibition_radius, connections.wrap_around, tuple(connections.column_dimensions))
        if key != self._cache_key:
            self._cache_key = key
            self._neighborhoods = {}
        hood = self._neighborhoods.get(column)
        if hood is None:
            hood = column_neighborhood(connections, column, connections.inhibition_radius)
            self._neighborhoods[column] = hood
        return hood

    def inhibit(self, connections: Connections, boosted_overlaps: np.ndarray, density: float) -> np.ndarray:
        won = np.zeros(connections.num_columns, dtype=bool)
        for column in rank_columns(connections, boosted_overlaps):
            overlap = boosted_overlaps[column]
            if overlap < connections.stimulus_threshold:
                continue
            hood = self._neighborhood(connections, int(column))
            hood_overlaps = boosted_overlaps[hood]
            # Stronger neighbors count whether or not they won; equal ones only once they have.
            num_bigger = np.count_nonzero(hood_overlaps > overlap)
            num_bigger += np.count_nonzero((hood_overlaps == overlap) & won[hood])
            num_active = int(0.5 + density * hood.size)
            if num_bigger < num_active:
                won[column] = True
        return np.flatnonzero(won).astype(np.int64)


class AutoInhibition(InhibitionStrategy):
    """Global inhibition when configured or when the radius spans the column space."""

    def __init__(self) -> None:
        self.global_strategy = GlobalInhibition()
        self.local_strategy = LocalInhibition()

    def uses_global(self, connections: Connections) -> bool:
        return bool(connections.global_inhibition
                    or connections.inhibition_radius > max(connections.column_dimensions))

    def inhibit(self, connections: Connections, boosted_overlaps: np.ndarray, density: float) -> np.ndarray:
        if self.uses_global(connections):
            return self.global_strategy.inhibit(connections, boosted_overlaps, density)
        return self.local_strategy.inhibit(connections, boosted_overlaps, density)
