from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional, Sequence, Union

import numpy as np

from htm_algorithms.connections import EPSILON, Connections, Pool
from htm_algorithms.errors import InputContractError, InvalidSpatialPoolerParamValueError
from htm_algorithms.inhibition import (
    AutoInhibition,
    InhibitionStrategy,
    column_neighborhood,
    resolve_density,
)
from htm_algorithms.topology import compute_coordinates, compute_index, neighborhood, wrapping_neighborhood

log = logging.getLogger(__name__)

PERMANENCE_DECIMALS = 5  # Initial permanences are truncated to this many decimals

InputVector = Union[np.ndarray, Sequence[int]]


# ===== Permanence initialisation =====

class PermanenceInitializer(ABC):
    """Draws the initial proximal permanences of one column."""

    @abstractmethod
    def initialize(self, connections: Connections, potential: np.ndarray) -> np.ndarray:
        """Return a dense permanence row (one entry per input bit)."""
        raise NotImplementedError("Subclasses must implement this method")


class RandomBandInitializer(PermanenceInitializer):
    """Connects about ``init_connected_pct`` of the pool.

    Connected synapses draw from ``[syn_perm_connected, syn_perm_max)``, the
    others from ``[0, syn_perm_connected)``, so a few learning steps are
    enough to flip a synapse either way.
    """

    def initialize(self, connections: Connections, potential: np.ndarray) -> np.ndarray:
        rng = connections.random
        perm = np.zeros(connections.num_inputs, dtype=np.float64)
        for idx in potential:
            if rng.random() <= connections.init_connected_pct:
                value = self.init_perm_connected(connections)
            else:
                value = self.init_perm_non_connected(connections)
            perm[idx] = 0.0 if value < connections.syn_perm_trim_threshold else value
        return perm

    @staticmethod
    def init_perm_connected(connections: Connections) -> float:
        value = connections.syn_perm_connected + (
            connections.syn_perm_max - connections.syn_perm_connected) * connections.random.random()
        return _truncate(value)

    @staticmethod
    def init_perm_non_connected(connections: Connections) -> float:
        return _truncate(connections.syn_perm_connected * connections.random.random())


def _truncate(value: float) -> float:
    scale = 10 ** PERMANENCE_DECIMALS
    return float(np.floor(value * scale) / scale)


# ===== Spatial Pooler =====

class SpatialPooler:
    """Maps input vectors onto a sparse set of active columns.

    The pooler is stateless; everything it learns is written into the
    :class:`Connections` handed to each call. Inhibition and permanence
    initialisation are pluggable strategies.
    """

    def __init__(self,
                 inhibition: Optional[InhibitionStrategy] = None,
                 permanence_initializer: Optional[PermanenceInitializer] = None) -> None:
        self.inhibition: InhibitionStrategy = inhibition if inhibition is not None else AutoInhibition()
        self.permanence_initializer: PermanenceInitializer = (
            permanence_initializer if permanence_initializer is not None else RandomBandInitializer()
        )

    # ----- initialisation -----

    def init(self, connections: Connections) -> None:
        """Validate parameters and build potential pools and permanences."""
        self.validate(connections)
        self.post_init(connections)
        connections.init_columns()
        self.init_matrices(connections)
        self.connect_and_configure_inputs(connections)
        log.debug("Spatial pooler ready: %d columns over %d inputs, inhibition radius %d",
                  connections.num_columns, connections.num_inputs, connections.inhibition_radius)

    def validate(self, connections: Connections) -> None:
        if connections.num_columns <= 0 or any(d <= 0 for d in connections.column_dimensions):
            raise InvalidSpatialPoolerParamValueError(
                f"Invalid number of columns: {connections.num_columns} "
                f"(column dimensions {connections.column_dimensions})")
        if connections.num_inputs <= 0 or any(d <= 0 for d in connections.input_dimensions):
            raise InvalidSpatialPoolerParamValueError(
                f"Invalid number of inputs: {connections.num_inputs} "
                f"(input dimensions {connections.input_dimensions})")
        if connections.local_area_density > 0:
            if connections.local_area_density > 0.5:
                raise InvalidSpatialPoolerParamValueError(
                    f"local_area_density must be within (0, 0.5], got {connections.local_area_density}")
        elif connections.num_active_columns_per_inh_area <= 0:
            raise InvalidSpatialPoolerParamValueError(
                "Inhibition parameters are invalid: set local_area_density within (0, 0.5] "
                "or a positive num_active_columns_per_inh_area")
        if not 0.0 < connections.potential_pct <= 1.0:
            raise InvalidSpatialPoolerParamValueError(
                f"potential_pct must be within (0, 1], got {connections.potential_pct}")
        if connections.potential_radius < -1:
            raise InvalidSpatialPoolerParamValueError(
                f"potential_radius must be -1 or non-negative, got {connections.potential_radius}")
        if not connections.syn_perm_min <= connections.syn_perm_connected <= connections.syn_perm_max:
            raise InvalidSpatialPoolerParamValueError(
                f"syn_perm_connected ({connections.syn_perm_connected}) must lie within "
                f"[{connections.syn_perm_min}, {connections.syn_perm_max}]")
        if connections.stimulus_threshold < 0:
            raise InvalidSpatialPoolerParamValueError(
                f"stimulus_threshold must not be negative, got {connections.stimulus_threshold}")
        if connections.duty_cycle_period <= 0 or connections.update_period <= 0:
            raise InvalidSpatialPoolerParamValueError(
                "duty_cycle_period and update_period must be positive")
        if connections.stimulus_threshold > 0 and connections.syn_perm_below_stimulus_inc <= 0:
            raise InvalidSpatialPoolerParamValueError(
                f"syn_perm_below_stimulus_inc must be positive while stimulus_threshold is set, "
                f"got {connections.syn_perm_below_stimulus_inc}")

    def post_init(self, connections: Connections) -> None:
        """Fill in the values derived from other parameters."""
        if connections.potential_radius == -1:
            connections.potential_radius = connections.num_inputs

    def init_matrices(self, connections: Connections) -> None:
        num_columns, num_inputs = connections.num_columns, connections.num_inputs
        connections.permanences = np.zeros((num_columns, num_inputs), dtype=np.float64)
        connections.potential_mask = np.zeros((num_columns, num_inputs), dtype=bool)
        connections.connected = np.zeros((num_columns, num_inputs), dtype=bool)
        connections.connected_counts = np.zeros(num_columns, dtype=np.int64)
        connections.overlap_duty_cycles = np.zeros(num_columns, dtype=np.float64)
        connections.active_duty_cycles = np.zeros(num_columns, dtype=np.float64)
        connections.min_overlap_duty_cycles = np.zeros(num_columns, dtype=np.float64)
        connections.min_active_duty_cycles = np.zeros(num_columns, dtype=np.float64)
        connections.boost_factors = np.ones(num_columns, dtype=np.float64)
        connections.overlaps = np.zeros(num_columns, dtype=np.float64)
        connections.boosted_overlaps = np.zeros(num_columns, dtype=np.float64)
        connections.overlap_pct = np.zeros(num_columns, dtype=np.float64)
        # Tiny random tie breaker, consumed before any pool is drawn.
        connections.tie_breaker = 0.01 * connections.random.random(num_columns)

    def connect_and_configure_inputs(self, connections: Connections) -> None:
        for column in range(connections.num_columns):
            potential = self.map_potential(connections, column, connections.wrap_around)
            connections.columns[column].pool = Pool(column, potential)
            connections.potential_mask[column, potential] = True
            perm = self.permanence_initializer.initialize(connections, potential)
            self.update_permanences_for_column(connections, perm, column, raise_perm=True)
        self.update_inhibition_radius(connections)

    # ----- topology -----

    def map_column(self, connections: Connections, column: int) -> int:
        """Input index at the center of a column's receptive field."""
        input_dims = np.array(connections.input_dimensions, dtype=np.float64)
        column_dims = np.array(connections.column_dimensions, dtype=np.float64)
        if input_dims.size != column_dims.size:
            ratio = connections.num_inputs / connections.num_columns
            return min(int(column * ratio + 0.5 * ratio), connections.num_inputs - 1)
        column_coords = np.array(compute_coordinates(column, connections.column_dimensions), dtype=np.float64)
        input_coords = input_dims * (column_coords / column_dims) + 0.5 * (input_dims / column_dims)
        input_coords = np.minimum(input_coords.astype(np.int64), input_dims.astype(np.int64) - 1)
        return compute_index(input_coords, connections.input_dimensions)

    def map_potential(self, connections: Connections, column: int, wrap_around: bool) -> np.ndarray:
        """Draw the sorted potential pool of ``column``."""
        center = self.map_column(connections, column)
        if wrap_around:
            column_inputs = wrapping_neighborhood(center, connections.potential_radius, connections.input_dimensions)
        else:
            column_inputs = neighborhood(center, connections.potential_radius, connections.input_dimensions)
        num_potential = int(column_inputs.size * connections.potential_pct + 0.5)
        selected = connections.random.choice(column_inputs, size=num_potential, replace=False)
        return np.sort(selected)

    def get_column_neighborhood(self, connections: Connections, column: int, radius: int) -> np.ndarray:
        return column_neighborhood(connections, column, radius)

    def get_input_neighborhood(self, connections: Connections, center: int, radius: int) -> np.ndarray:
        if connections.wrap_around:
            return wrapping_neighborhood(center, radius, connections.input_dimensions)
        return neighborhood(center, radius, connections.input_dimensions)

    # ----- compute -----

    def compute(self,
                connections: Connections,
                input_vector: InputVector,
                active_array: Optional[np.ndarray] = None,
                learn: bool = True) -> np.ndarray:
        """Run one step and return the sorted indices of the active columns.

        ``active_array``, when given, is filled in place with a 0/1 mask.
        """
        input_vector = np.asarray(input_vector).ravel()
        if input_vector.size != connections.num_inputs:
            raise InputContractError(
                f"Input vector must have {connections.num_inputs} bits, got {input_vector.size}",
                expected=connections.num_inputs, actual=input_vector.size)
        if active_array is not None and active_array.size != connections.num_columns:
            raise InputContractError(
                f"Active array must have {connections.num_columns} entries, got {active_array.size}",
                expected=connections.num_columns, actual=active_array.size)

        self.update_bookkeeping_vars(connections, learn)
        overlaps = self.calculate_overlap(connections, input_vector)
        connections.overlaps = overlaps
        connections.overlap_pct = self.calculate_overlap_pct(connections, overlaps)

        if learn:
            boosted_overlaps = connections.boost_factors * overlaps
        else:
            boosted_overlaps = overlaps.astype(np.float64)
        connections.boosted_overlaps = boosted_overlaps

        active_columns = self.inhibit_columns(connections, boosted_overlaps)

        if learn:
            self.adapt_synapses(connections, input_vector, active_columns)
            self.update_duty_cycles(connections, overlaps, active_columns)
            self.bump_up_weak_columns(connections)
            self.update_boost_factors(connections)
            if self.is_update_round(connections):
                self.update_inhibition_radius(connections)
                self.update_min_duty_cycles(connections)

        if active_array is not None:
            active_array[:] = 0
            active_array[active_columns] = 1
        return active_columns

    def update_bookkeeping_vars(self, connections: Connections, learn: bool) -> None:
        connections.sp_iteration_num += 1
        if learn:
            connections.sp_iteration_learn_num += 1

    def calculate_overlap(self, connections: Connections, input_vector: np.ndarray) -> np.ndarray:
        """Connected synapses on active inputs, zeroed below the stimulus threshold."""
        active_inputs = (np.asarray(input_vector) > 0).astype(np.int64)
        overlaps = connections.connected.astype(np.int64) @ active_inputs
        overlaps[overlaps < connections.stimulus_threshold] = 0
        return overlaps.astype(np.float64)

    def calculate_overlap_pct(self, connections: Connections, overlaps: np.ndarray) -> np.ndarray:
        counts = connections.connected_counts.astype(np.float64)
        pct = np.zeros_like(counts)
        np.divide(overlaps, counts, out=pct, where=counts > 0)
        return pct

    def inhibit_columns(self, connections: Connections, boosted_overlaps: np.ndarray) -> np.ndarray:
        density = resolve_density(connections)
        return np.asarray(self.inhibition.inhibit(connections, boosted_overlaps, density), dtype=np.int64)

    def strip_unlearned_columns(self, connections: Connections, active_columns: np.ndarray) -> np.ndarray:
        """Drop active columns that have never been active while learning."""
        active_columns = np.asarray(active_columns, dtype=np.int64)
        return active_columns[connections.active_duty_cycles[active_columns] > 0]

    # ----- learning -----

    def adapt_synapses(self, connections: Connections, input_vector: np.ndarray, active_columns: np.ndarray) -> None:
        """Reinforce the pool synapses of winning columns toward the input."""
        perm_changes = np.full(connections.num_inputs, -connections.syn_perm_inactive_dec)
        perm_changes[np.asarray(input_vector) > 0] = connections.syn_perm_active_inc
        for column in active_columns:
            perm = connections.permanences[column] + perm_changes * connections.potential_mask[column]
            self.update_permanences_for_column(connections, perm, int(column), raise_perm=True)

    def bump_up_weak_columns(self, connections: Connections) -> None:
        """Raise every pool permanence of columns whose overlap duty cycle is too low."""
        weak_columns = np.flatnonzero(connections.overlap_duty_cycles < connections.min_overlap_duty_cycles)
        for column in weak_columns:
            perm = connections.permanences[column].copy()
            mask = connections.potential_mask[column]
            perm[mask] += connections.syn_perm_below_stimulus_inc
            self.update_permanences_for_column(connections, perm, int(column), raise_perm=True)

    def raise_permanence_to_threshold(self, connections: Connections, perm: np.ndarray, potential: np.ndarray) -> None:
        """Raise the pool permanences in place until enough synapses are connected."""
        if potential.size < connections.stimulus_threshold:
            raise InvalidSpatialPoolerParamValueError(
                f"Potential pool of {potential.size} inputs can never reach stimulus_threshold "
                f"{connections.stimulus_threshold}; the threshold is too large for the input size")
        np.clip(perm, connections.syn_perm_min, connections.syn_perm_max, out=perm)
        threshold = connections.syn_perm_connected - EPSILON
        while np.count_nonzero(perm[potential] >= threshold) < connections.stimulus_threshold:
            perm[potential] += connections.syn_perm_below_stimulus_inc

    def update_permanences_for_column(self, connections: Connections, perm: np.ndarray,
                                      column: int, raise_perm: bool = True) -> None:
        """Store a column's permanences, keeping the connected matrix in step.

        Every write to the permanence matrix goes through here: values are
        raised to the stimulus threshold, trimmed, clipped and masked to the
        potential pool.
        """
        perm = np.asarray(perm, dtype=np.float64).copy()
        mask = connections.potential_mask[column]
        if raise_perm:
            self.raise_permanence_to_threshold(connections, perm, np.flatnonzero(mask))
        perm[perm < connections.syn_perm_trim_threshold] = 0.0
        np.clip(perm, connections.syn_perm_min, connections.syn_perm_max, out=perm)
        perm[~mask] = 0.0

        connected = (perm >= connections.syn_perm_connected - EPSILON) & mask
        connections.permanences[column] = perm
        connections.connected[column] = connected
        connections.connected_counts[column] = int(np.count_nonzero(connected))

    def update_duty_cycles(self, connections: Connections, overlaps: np.ndarray, active_columns: np.ndarray) -> None:
        overlap_array = (np.asarray(overlaps) > 0).astype(np.float64)
        active_array = np.zeros(connections.num_columns, dtype=np.float64)
        if len(active_columns) > 0:
            active_array[active_columns] = 1.0

        period = max(1, min(connections.duty_cycle_period, connections.sp_iteration_num))
        connections.overlap_duty_cycles = self.update_duty_cycles_helper(
            connections.overlap_duty_cycles, overlap_array, period)
        connections.active_duty_cycles = self.update_duty_cycles_helper(
            connections.active_duty_cycles, active_array, period)

    @staticmethod
    def update_duty_cycles_helper(duty_cycles: np.ndarray, new_input: np.ndarray, period: float) -> np.ndarray:
        """Moving average: ``((period - 1) * duty_cycle + new_value) / period``."""
        return (duty_cycles * (period - 1) + new_input) / period

    def update_boost_factors(self, connections: Connections) -> None:
        """Boost columns whose active duty cycle is below their minimum.

        The factor is ``max_boost ** (1 - active / min_active)``: 1 at the
        minimum, ``max_boost`` for a column that never fires.
        """
        min_active = connections.min_active_duty_cycles
        if not np.any(min_active > 0):
            return
        boost = np.ones(connections.num_columns, dtype=np.float64)
        starving = connections.active_duty_cycles < min_active
        ratio = connections.active_duty_cycles[starving] / min_active[starving]
        boost[starving] = connections.max_boost ** (1.0 - ratio)
        connections.boost_factors = boost

    def update_min_duty_cycles(self, connections: Connections) -> None:
        if connections.global_inhibition or connections.inhibition_radius > connections.num_inputs:
            self.update_min_duty_cycles_global(connections)
        else:
            self.update_min_duty_cycles_local(connections)

    def update_min_duty_cycles_global(self, connections: Connections) -> None:
        connections.min_overlap_duty_cycles = np.full(
            connections.num_columns,
            connections.min_pct_overlap_duty_cycles * connections.overlap_duty_cycles.max())
        connections.min_active_duty_cycles = np.full(
            connections.num_columns,
            connections.min_pct_active_duty_cycles * connections.active_duty_cycles.max())

    def update_min_duty_cycles_local(self, connections: Connections) -> None:
        for column in range(connections.num_columns):
            hood = self.get_column_neighborhood(connections, column, connections.inhibition_radius)
            connections.min_active_duty_cycles[column] = (
                connections.active_duty_cycles[hood].max() * connections.min_pct_active_duty_cycles)
            connections.min_overlap_duty_cycles[column] = (
                connections.overlap_duty_cycles[hood].max() * connections.min_pct_overlap_duty_cycles)

    def update_inhibition_radius(self, connections: Connections) -> None:
        """Derive the inhibition radius from the average connected span."""
        if connections.global_inhibition:
            connections.inhibition_radius = int(max(connections.column_dimensions))
            return
        spans = [self.avg_connected_span_for_column(connections, c) for c in range(connections.num_columns)]
        diameter = float(np.mean(spans)) * self.avg_columns_per_input(connections)
        radius = max(1.0, (diameter - 1) / 2.0)
        connections.inhibition_radius = int(radius + 0.5)
        log.debug("Inhibition radius updated to %d", connections.inhibition_radius)

    def avg_columns_per_input(self, connections: Connections) -> float:
        """Columns per input averaged over dimensions; missing dimensions count as 1."""
        column_dims = list(connections.column_dimensions)
        input_dims = list(connections.input_dimensions)
        ndims = max(len(column_dims), len(input_dims))
        column_dims += [1] * (ndims - len(column_dims))
        input_dims += [1] * (ndims - len(input_dims))
        return float(np.mean(np.array(column_dims, dtype=np.float64) / np.array(input_dims, dtype=np.float64)))

    def avg_connected_span_for_column(self, connections: Connections, column: int) -> float:
        """Extent of a column's connected inputs, averaged over input dimensions."""
        connected = np.flatnonzero(connections.connected[column])
        if connected.size == 0:
            return 0.0
        coords = np.array(np.unravel_index(connected, tuple(connections.input_dimensions)))
        spans = coords.max(axis=1) - coords.min(axis=1) + 1
        return float(np.mean(spans))

    def is_update_round(self, connections: Connections) -> bool:
        return connections.sp_iteration_num % connections.update_period == 0
