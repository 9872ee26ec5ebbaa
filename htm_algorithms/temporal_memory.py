from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

import numpy as np

from htm_algorithms.connections import EPSILON, Connections, Segment
from htm_algorithms.errors import InputContractError, InvalidTemporalMemoryParamValueError

log = logging.getLogger(__name__)

ActiveColumnInput = Union[Set[int], Sequence[int], np.ndarray]


@dataclass
class ComputeCycle:
    """Everything one Temporal Memory step produced."""

    active_cells: Set[int] = field(default_factory=set)
    winner_cells: Set[int] = field(default_factory=set)
    predictive_cells: Set[int] = field(default_factory=set)
    active_segments: List[Segment] = field(default_factory=list)
    matching_segments: List[Segment] = field(default_factory=list)
    bursting_columns: Set[int] = field(default_factory=set)
    predicted_active_columns: Set[int] = field(default_factory=set)


def _segment_order(segment: Segment) -> Tuple[int, int]:
    return segment.cell, segment.ordinal


class TemporalMemory:
    """Sequence memory over the cells of the active columns.

    Like the Spatial Pooler, the memory keeps no state of its own: the
    previous step's active, winner and predictive cells and its active and
    matching segments live in :class:`Connections`.
    """

    def init(self, connections: Connections) -> None:
        """Validate parameters and make sure columns and cells exist."""
        if connections.num_columns <= 0 or any(d <= 0 for d in connections.column_dimensions):
            raise InvalidTemporalMemoryParamValueError(
                f"Invalid number of columns: {connections.num_columns} "
                f"(column dimensions {connections.column_dimensions})")
        if connections.cells_per_column <= 0:
            raise InvalidTemporalMemoryParamValueError(
                f"cells_per_column must be positive, got {connections.cells_per_column}")
        for name in ("activation_threshold", "min_threshold", "max_new_synapse_count",
                     "max_segments_per_cell", "max_synapses_per_segment"):
            if getattr(connections, name) <= 0:
                raise InvalidTemporalMemoryParamValueError(
                    f"{name} must be positive, got {getattr(connections, name)}")
        for name in ("initial_permanence", "connected_permanence",
                     "permanence_increment", "permanence_decrement", "predicted_segment_decrement"):
            value = getattr(connections, name)
            if not 0.0 <= value <= 1.0:
                raise InvalidTemporalMemoryParamValueError(f"{name} must be within [0, 1], got {value}")

        connections.init_columns()

    # ----- compute -----

    def compute(self, connections: Connections, active_columns: ActiveColumnInput, learn: bool = True) -> ComputeCycle:
        """Feed one set of active columns through the memory."""
        columns = self._validate_active_columns(connections, active_columns)

        if not columns:
            # Missing input: forget the context, nothing bursts, nothing learns.
            connections.clear_temporal_state()
            self._clear_activity(connections)
            return ComputeCycle()

        cycle = self.activate_cells(connections, columns, learn)
        self.activate_dendrites(connections, cycle, learn)
        log.debug("TM step: %d active cells, %d bursting columns, %d predictive cells",
                  len(cycle.active_cells), len(cycle.bursting_columns), len(cycle.predictive_cells))
        return cycle

    def _validate_active_columns(self, connections: Connections, active_columns: ActiveColumnInput) -> List[int]:
        columns = sorted({int(c) for c in np.asarray(list(active_columns), dtype=np.int64).ravel()})
        if columns and (columns[0] < 0 or columns[-1] >= connections.num_columns):
            bad = columns[0] if columns[0] < 0 else columns[-1]
            raise InputContractError(
                f"Active column index {bad} is outside [0, {connections.num_columns})",
                expected=connections.num_columns, actual=bad)
        return columns

    def activate_cells(self, connections: Connections, active_columns: Sequence[int], learn: bool) -> ComputeCycle:
        """Activate predicted cells or burst each active column, learning as it goes."""
        prev_active_cells = set(connections.active_cells)
        prev_winner_cells = set(connections.winner_cells)

        active_by_column = self._segments_by_column(connections, connections.active_segments)
        matching_by_column = self._segments_by_column(connections, connections.matching_segments)

        cycle = ComputeCycle()
        for column in active_columns:
            column_active = active_by_column.get(column, [])
            column_matching = matching_by_column.get(column, [])
            if column_active:
                cells = self.activate_predicted_column(
                    connections, column_active, prev_active_cells, prev_winner_cells, learn)
                cycle.active_cells.update(cells)
                cycle.winner_cells.update(cells)
                cycle.predicted_active_columns.add(column)
            else:
                cells, winner = self.burst_column(
                    connections, column, column_matching, prev_active_cells, prev_winner_cells, learn)
                cycle.active_cells.update(cells)
                cycle.winner_cells.add(winner)
                cycle.bursting_columns.add(column)

        if learn and connections.predicted_segment_decrement > 0:
            active_set = set(active_columns)
            for column in sorted(matching_by_column):
                if column not in active_set:
                    self.punish_predicted_column(connections, matching_by_column[column], prev_active_cells)

        connections.active_cells = cycle.active_cells
        connections.winner_cells = cycle.winner_cells
        return cycle

    def activate_dendrites(self, connections: Connections, cycle: ComputeCycle, learn: bool) -> None:
        """Find the segments the new active cells drive and the cells they predict."""
        num_connected, num_potential = connections.compute_activity(
            cycle.active_cells, connections.connected_permanence)

        active_segments = [connections.segment_for_flat_idx(int(i))
                           for i in np.flatnonzero(num_connected >= connections.activation_threshold)]
        matching_segments = [connections.segment_for_flat_idx(int(i))
                             for i in np.flatnonzero(num_potential >= connections.min_threshold)]
        active_segments = sorted((s for s in active_segments if s is not None), key=_segment_order)
        matching_segments = sorted((s for s in matching_segments if s is not None), key=_segment_order)

        if learn:
            for segment in active_segments:
                connections.record_segment_activity(segment)
            connections.start_new_iteration()

        cycle.active_segments = active_segments
        cycle.matching_segments = matching_segments
        cycle.predictive_cells = {segment.cell for segment in active_segments}

        connections.active_segments = active_segments
        connections.matching_segments = matching_segments
        connections.predictive_cells = cycle.predictive_cells
        connections.num_active_connected_synapses_for_segment = num_connected
        connections.num_active_potential_synapses_for_segment = num_potential

    def _segments_by_column(self, connections: Connections, segments: Iterable[Segment]) -> Dict[int, List[Segment]]:
        by_column: Dict[int, List[Segment]] = defaultdict(list)
        for segment in segments:
            if not segment.destroyed:
                by_column[connections.column_for_segment(segment)].append(segment)
        return by_column

    def _clear_activity(self, connections: Connections) -> None:
        connections.num_active_connected_synapses_for_segment = np.zeros(0, dtype=np.int64)
        connections.num_active_potential_synapses_for_segment = np.zeros(0, dtype=np.int64)

    def _num_active_potential(self, connections: Connections, segment: Segment) -> int:
        counts = connections.num_active_potential_synapses_for_segment
        if segment.flat_idx >= counts.size:
            return 0
        return int(counts[segment.flat_idx])

    # ----- column handling -----

    def activate_predicted_column(self,
                                  connections: Connections,
                                  column_active_segments: Sequence[Segment],
                                  prev_active_cells: Set[int],
                                  prev_winner_cells: Set[int],
                                  learn: bool) -> List[int]:
        """Activate the cells whose segments predicted this column.

        Returns the activated cells; each of them is also a winner.
        """
        cells: List[int] = []
        for segment in column_active_segments:
            if segment.cell not in cells:
                cells.append(segment.cell)
            if learn and not segment.destroyed:
                n_grow = connections.max_new_synapse_count - self._num_active_potential(connections, segment)
                self.adapt_segment(connections, segment, prev_active_cells,
                                   connections.permanence_increment, connections.permanence_decrement)
                if not segment.destroyed and n_grow > 0:
                    self.grow_synapses(connections, segment, n_grow, prev_winner_cells)
        return cells

    def burst_column(self,
                     connections: Connections,
                     column: int,
                     column_matching_segments: Sequence[Segment],
                     prev_active_cells: Set[int],
                     prev_winner_cells: Set[int],
                     learn: bool) -> Tuple[List[int], int]:
        """Activate every cell of an unpredicted column and pick one winner.

        The winner is the cell of the best matching segment, or else the least
        used cell, which grows a new segment when there is context to learn.
        """
        cells = connections.cells_for_column(column)
        best_segment = self.best_matching_segment(connections, column_matching_segments)

        if best_segment is not None:
            winner = best_segment.cell
            if learn:
                n_grow = connections.max_new_synapse_count - self._num_active_potential(connections, best_segment)
                self.adapt_segment(connections, best_segment, prev_active_cells,
                                   connections.permanence_increment, connections.permanence_decrement)
                if not best_segment.destroyed and n_grow > 0:
                    self.grow_synapses(connections, best_segment, n_grow, prev_winner_cells)
        else:
            winner = self.least_used_cell(connections, cells)
            if learn:
                n_grow = min(connections.max_new_synapse_count, len(prev_winner_cells))
                if n_grow > 0:
                    segment = connections.create_segment(winner)
                    self.grow_synapses(connections, segment, n_grow, prev_winner_cells)

        return cells, winner

    def punish_predicted_column(self,
                                connections: Connections,
                                column_matching_segments: Sequence[Segment],
                                prev_active_cells: Set[int]) -> None:
        """Weaken the active synapses of segments that predicted wrongly."""
        for segment in column_matching_segments:
            if not segment.destroyed:
                self.adapt_segment(connections, segment, prev_active_cells,
                                   -connections.predicted_segment_decrement, 0.0)

    def best_matching_segment(self, connections: Connections,
                              segments: Sequence[Segment]) -> Optional[Segment]:
        """Matching segment with the most active potential synapses.

        Ties go to the cell with fewer segments, then to a random pick.
        """
        candidates = [s for s in segments if not s.destroyed]
        if not candidates:
            return None
        best_count = max(self._num_active_potential(connections, s) for s in candidates)
        ties = [s for s in candidates if self._num_active_potential(connections, s) == best_count]
        if len(ties) == 1:
            return ties[0]
        fewest = min(connections.num_segments(s.cell) for s in ties)
        ties = sorted((s for s in ties if connections.num_segments(s.cell) == fewest), key=_segment_order)
        if len(ties) == 1:
            return ties[0]
        return ties[int(connections.random.integers(len(ties)))]

    def least_used_cell(self, connections: Connections, cells: Sequence[int]) -> int:
        """Cell with the fewest segments, ties broken randomly."""
        fewest = min(connections.num_segments(cell) for cell in cells)
        least_used = sorted(cell for cell in cells if connections.num_segments(cell) == fewest)
        return least_used[int(connections.random.integers(len(least_used)))]

    # ----- segment learning -----

    def adapt_segment(self,
                      connections: Connections,
                      segment: Segment,
                      prev_active_cells: Set[int],
                      permanence_increment: float,
                      permanence_decrement: float) -> None:
        """Move synapse permanences toward the previous activity.

        Synapses on previously active cells gain ``permanence_increment``, the
        rest lose ``permanence_decrement``. Synapses that reach 0 are
        destroyed, and so is a segment left with too few synapses to ever
        match again.
        """
        destroyed_any = False
        for synapse in list(segment.synapses):
            permanence = synapse.permanence
            if synapse.presynaptic_cell in prev_active_cells:
                permanence += permanence_increment
            else:
                permanence -= permanence_decrement
            permanence = min(1.0, max(0.0, permanence))

            if permanence < EPSILON:
                connections.destroy_synapse(synapse)
                destroyed_any = True
            else:
                connections.update_synapse_permanence(synapse, permanence)

        remaining = connections.num_synapses(segment)
        if remaining == 0 or (destroyed_any and remaining < connections.min_threshold):
            log.debug("Destroying degenerate segment %r", segment)
            connections.destroy_segment(segment)

    def grow_synapses(self,
                      connections: Connections,
                      segment: Segment,
                      n_desired: int,
                      prev_winner_cells: Iterable[int]) -> None:
        """Connect ``segment`` to up to ``n_desired`` new previous winner cells."""
        prev_winner_cells = set(prev_winner_cells)
        existing = {synapse.presynaptic_cell for synapse in segment.synapses}
        candidates = sorted(prev_winner_cells - existing)
        n_actual = min(n_desired, len(candidates))
        if n_actual <= 0:
            return

        overrun = connections.num_synapses(segment) + n_actual - connections.max_synapses_per_segment
        if overrun > 0:
            # Synapses onto previous winners are never evicted to make room.
            self.destroy_min_permanence_synapses(connections, segment, overrun, prev_winner_cells)
            n_actual = min(n_actual, connections.max_synapses_per_segment - connections.num_synapses(segment))
            if n_actual <= 0:
                return

        chosen = connections.random.choice(len(candidates), size=n_actual, replace=False)
        for idx in sorted(int(i) for i in chosen):
            connections.create_synapse(segment, candidates[idx], connections.initial_permanence)

    def destroy_min_permanence_synapses(self,
                                        connections: Connections,
                                        segment: Segment,
                                        n_destroy: int,
                                        excluded_cells: Set[int]) -> None:
        """Make room on a full segment by removing its weakest synapses."""
        destroy_candidates = sorted(
            (s for s in segment.synapses if s.presynaptic_cell not in excluded_cells),
            key=lambda s: (s.permanence, s.ordinal),
        )
        for synapse in destroy_candidates[:n_destroy]:
            connections.destroy_synapse(synapse)

    # ----- sequence boundaries and accessors -----

    def reset(self, connections: Connections) -> None:
        """Forget the current sequence context; learned structure is untouched."""
        connections.clear_temporal_state()
        self._clear_activity(connections)

    def get_active_cells(self, connections: Connections) -> List[int]:
        return sorted(connections.active_cells)

    def get_winner_cells(self, connections: Connections) -> List[int]:
        return sorted(connections.winner_cells)

    def get_predictive_cells(self, connections: Connections) -> List[int]:
        return sorted(connections.predictive_cells)

    def get_predicted_columns(self, connections: Connections) -> List[int]:
        return sorted({connections.column_for_cell(cell) for cell in connections.predictive_cells})

    def cells_for_column(self, connections: Connections, column: int) -> List[int]:
        return connections.cells_for_column(column)

    def column_for_cell(self, connections: Connections, cell: int) -> int:
        return connections.column_for_cell(cell)
