from __future__ import annotations

import copy
import logging
from dataclasses import fields
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple, Union

import numpy as np

from htm_algorithms.parameters import Parameters

log = logging.getLogger(__name__)

EPSILON = 0.00001  # Permanences closer than this to a threshold count as reaching it


# ===== Basic Building Blocks =====

class Cell:
    """Single cell within a column.

    Owns the (possibly empty) list of distal segments it grows while learning.
    """

    def __init__(self, index: int, column_index: int) -> None:
        self.index: int = index
        self.column_index: int = column_index
        self.segments: List['Segment'] = []

    def __repr__(self) -> str:
        return f"Cell(index={self.index}, column={self.column_index})"


class Synapse:
    """Distal synapse from a presynaptic cell onto a segment."""

    def __init__(self, presynaptic_cell: int, segment: 'Segment', ordinal: int, permanence: float) -> None:
        self.presynaptic_cell: int = presynaptic_cell
        self.segment: 'Segment' = segment
        self.ordinal: int = ordinal
        self.permanence: float = permanence
        self.destroyed: bool = False

    def __repr__(self) -> str:
        return (f"Synapse(presynaptic_cell={self.presynaptic_cell}, "
                f"segment={self.segment.flat_idx}, permanence={self.permanence:.5f})")


class Segment:
    """Distal segment on a cell.

    ``flat_idx`` addresses the segment in the per-segment activity arrays and
    is recycled after the segment is destroyed. ``ordinal`` is never reused
    and orders segments by creation.
    """

    def __init__(self, cell: int, flat_idx: int, ordinal: int, last_used_iteration: int) -> None:
        self.cell: int = cell
        self.flat_idx: int = flat_idx
        self.ordinal: int = ordinal
        self.last_used_iteration: int = last_used_iteration
        self.synapses: List[Synapse] = []
        self.destroyed: bool = False

    def __repr__(self) -> str:
        return f"Segment(cell={self.cell}, flat_idx={self.flat_idx}, synapses={len(self.synapses)})"


class Pool:
    """Proximal potential pool of a column.

    The potential input indices are fixed once drawn; the permanence values
    live in the owning Connections' permanence matrix.
    """

    def __init__(self, column_index: int, potential: np.ndarray) -> None:
        self.column_index: int = column_index
        self.potential: np.ndarray = np.sort(np.asarray(potential, dtype=np.int64))

    @property
    def size(self) -> int:
        return int(self.potential.size)

    def dense_permanences(self, connections: 'Connections') -> np.ndarray:
        return connections.permanences[self.column_index].copy()

    def sparse_permanences(self, connections: 'Connections') -> np.ndarray:
        """Permanences in the order of ``potential``."""
        return connections.permanences[self.column_index, self.potential].copy()

    def connected_indices(self, connections: 'Connections') -> np.ndarray:
        return np.flatnonzero(connections.connected[self.column_index])


class Column:
    """Column containing cells and a proximal potential pool."""

    def __init__(self, index: int, cells: List[Cell]) -> None:
        self.index: int = index
        self.cells: List[Cell] = cells
        self.pool: Optional[Pool] = None

    def __repr__(self) -> str:
        return f"Column(index={self.index})"


# ===== Connections =====

class Connections:
    """All structure and state of one HTM model.

    Every configuration member of :class:`Parameters` is mirrored as an
    attribute. The Spatial Pooler and Temporal Memory read and write this
    object; neither keeps state of its own.
    """

    def __init__(self, parameters: Union[Parameters, Mapping[str, Any], None] = None) -> None:
        if parameters is None:
            parameters = Parameters()
        elif not isinstance(parameters, Parameters):
            parameters = Parameters.from_dict(parameters)

        # The generator is shared by reference, never copied.
        self.random: np.random.Generator = parameters.build_random()
        self.parameters: Parameters = parameters.copy(random=None).resolve_derived()
        for f in fields(Parameters):
            if f.name != "random":
                setattr(self, f.name, getattr(self.parameters, f.name))

        self.num_inputs: int = self.parameters.num_inputs
        self.num_columns: int = self.parameters.num_columns

        self.columns: List[Column] = []
        self.cells: List[Cell] = []

        # Spatial pooler state, allocated by SpatialPooler.init
        self.permanences = np.zeros((0, 0), dtype=np.float64)
        self.potential_mask = np.zeros((0, 0), dtype=bool)
        self.connected = np.zeros((0, 0), dtype=bool)
        self.connected_counts = np.zeros(0, dtype=np.int64)
        self.overlap_duty_cycles = np.zeros(0, dtype=np.float64)
        self.active_duty_cycles = np.zeros(0, dtype=np.float64)
        self.min_overlap_duty_cycles = np.zeros(0, dtype=np.float64)
        self.min_active_duty_cycles = np.zeros(0, dtype=np.float64)
        self.boost_factors = np.zeros(0, dtype=np.float64)
        self.tie_breaker = np.zeros(0, dtype=np.float64)
        self.overlaps = np.zeros(0, dtype=np.float64)
        self.boosted_overlaps = np.zeros(0, dtype=np.float64)
        self.overlap_pct = np.zeros(0, dtype=np.float64)
        self.sp_iteration_num: int = 0
        self.sp_iteration_learn_num: int = 0

        # Temporal memory state
        self.active_cells: Set[int] = set()
        self.winner_cells: Set[int] = set()
        self.predictive_cells: Set[int] = set()
        self.active_segments: List[Segment] = []
        self.matching_segments: List[Segment] = []
        self.num_active_connected_synapses_for_segment = np.zeros(0, dtype=np.int64)
        self.num_active_potential_synapses_for_segment = np.zeros(0, dtype=np.int64)
        self.tm_iteration: int = 0

        # Distal arena
        self._segment_for_flat_idx: List[Optional[Segment]] = []
        self._free_flat_idxs: List[int] = []
        self._receptors: Dict[int, Set[Synapse]] = {}
        self._next_segment_ordinal: int = 0
        self._next_synapse_ordinal: int = 0
        self._num_segments: int = 0
        self._num_synapses: int = 0

    # ----- columns and cells -----

    def init_columns(self) -> None:
        """Create the columns and their cells. Safe to call more than once."""
        if self.columns:
            return
        for col_idx in range(self.num_columns):
            first = col_idx * self.cells_per_column
            cells = [Cell(first + i, col_idx) for i in range(self.cells_per_column)]
            self.cells.extend(cells)
            self.columns.append(Column(col_idx, cells))
        log.debug("Created %d columns with %d cells each", self.num_columns, self.cells_per_column)

    @property
    def num_cells(self) -> int:
        return self.num_columns * self.cells_per_column

    def column_for_cell(self, cell: int) -> int:
        return cell // self.cells_per_column

    def cells_for_column(self, column: int) -> List[int]:
        first = column * self.cells_per_column
        return list(range(first, first + self.cells_per_column))

    def column_for_segment(self, segment: Segment) -> int:
        return self.column_for_cell(segment.cell)

    def get_pool(self, column: int) -> Pool:
        pool = self.columns[column].pool
        if pool is None:
            raise KeyError(f"Column {column} has no potential pool yet")
        return pool

    # ----- segments -----

    def create_segment(self, cell: int) -> Segment:
        """Add a segment to ``cell``, evicting least recently used ones at the cap."""
        owner = self.cells[cell]
        while len(owner.segments) >= self.max_segments_per_cell:
            oldest = min(owner.segments, key=lambda s: (s.last_used_iteration, s.ordinal))
            log.debug("Cell %d at segment cap, evicting %r", cell, oldest)
            self.destroy_segment(oldest)

        if self._free_flat_idxs:
            flat_idx = self._free_flat_idxs.pop()
        else:
            flat_idx = len(self._segment_for_flat_idx)
            self._segment_for_flat_idx.append(None)

        segment = Segment(cell, flat_idx, self._next_segment_ordinal, self.tm_iteration)
        self._next_segment_ordinal += 1
        self._segment_for_flat_idx[flat_idx] = segment
        owner.segments.append(segment)
        self._num_segments += 1
        return segment

    def destroy_segment(self, segment: Segment) -> None:
        if segment.destroyed:
            return
        for synapse in segment.synapses:
            self._remove_receptor(synapse)
            synapse.destroyed = True
        self._num_synapses -= len(segment.synapses)
        segment.synapses = []

        self.cells[segment.cell].segments.remove(segment)
        self._segment_for_flat_idx[segment.flat_idx] = None
        self._free_flat_idxs.append(segment.flat_idx)
        self._num_segments -= 1
        segment.destroyed = True

    def segments_for_cell(self, cell: int) -> List[Segment]:
        return list(self.cells[cell].segments)

    def segment_for_flat_idx(self, flat_idx: int) -> Optional[Segment]:
        return self._segment_for_flat_idx[flat_idx]

    def segment_flat_list_length(self) -> int:
        return len(self._segment_for_flat_idx)

    def num_segments(self, cell: Optional[int] = None) -> int:
        if cell is not None:
            return len(self.cells[cell].segments)
        return self._num_segments

    def record_segment_activity(self, segment: Segment) -> None:
        segment.last_used_iteration = self.tm_iteration

    def start_new_iteration(self) -> None:
        self.tm_iteration += 1

    # ----- synapses -----

    def create_synapse(self, segment: Segment, presynaptic_cell: int, permanence: float) -> Synapse:
        """Add a synapse to ``segment``, evicting the weakest ones at the cap."""
        while len(segment.synapses) >= self.max_synapses_per_segment:
            weakest = min(segment.synapses, key=lambda s: (s.permanence, s.ordinal))
            log.debug("Segment %d at synapse cap, evicting %r", segment.flat_idx, weakest)
            self.destroy_synapse(weakest)

        synapse = Synapse(presynaptic_cell, segment, self._next_synapse_ordinal, permanence)
        self._next_synapse_ordinal += 1
        segment.synapses.append(synapse)
        self._receptors.setdefault(presynaptic_cell, set()).add(synapse)
        self._num_synapses += 1
        return synapse

    def destroy_synapse(self, synapse: Synapse) -> None:
        if synapse.destroyed:
            return
        self._remove_receptor(synapse)
        synapse.segment.synapses.remove(synapse)
        self._num_synapses -= 1
        synapse.destroyed = True

    def update_synapse_permanence(self, synapse: Synapse, permanence: float) -> None:
        synapse.permanence = permanence

    def synapses_for_segment(self, segment: Segment) -> List[Synapse]:
        return list(segment.synapses)

    def receptor_synapses(self, presynaptic_cell: int) -> Set[Synapse]:
        return set(self._receptors.get(presynaptic_cell, ()))

    def num_synapses(self, segment: Optional[Segment] = None) -> int:
        if segment is not None:
            return len(segment.synapses)
        return self._num_synapses

    def _remove_receptor(self, synapse: Synapse) -> None:
        receptors = self._receptors.get(synapse.presynaptic_cell)
        if receptors is None:
            return
        receptors.discard(synapse)
        if not receptors:
            del self._receptors[synapse.presynaptic_cell]

    # ----- activity -----

    def compute_activity(self, active_presynaptic_cells: Iterable[int],
                         connected_permanence: float) -> Tuple[np.ndarray, np.ndarray]:
        """Count active synapses per segment flat index.

        Returns ``(num_active_connected, num_active_potential)``. Only the
        receptor index of the active cells is walked.
        """
        size = len(self._segment_for_flat_idx)
        num_active_connected = np.zeros(size, dtype=np.int64)
        num_active_potential = np.zeros(size, dtype=np.int64)
        threshold = connected_permanence - EPSILON
        for cell in active_presynaptic_cells:
            for synapse in self._receptors.get(cell, ()):
                flat_idx = synapse.segment.flat_idx
                num_active_potential[flat_idx] += 1
                if synapse.permanence > threshold:
                    num_active_connected[flat_idx] += 1
        return num_active_connected, num_active_potential

    def clear_temporal_state(self) -> None:
        self.active_cells = set()
        self.winner_cells = set()
        self.predictive_cells = set()
        self.active_segments = []
        self.matching_segments = []

    # ----- snapshots -----

    def segment_snapshot(self) -> Dict[int, List[Tuple[int, List[Tuple[int, float]]]]]:
        """Plain-data view of the distal graph, keyed by cell."""
        snapshot: Dict[int, List[Tuple[int, List[Tuple[int, float]]]]] = {}
        for cell in self.cells:
            if not cell.segments:
                continue
            snapshot[cell.index] = [
                (segment.ordinal, [(s.presynaptic_cell, s.permanence) for s in segment.synapses])
                for segment in cell.segments
            ]
        return snapshot

    def copy(self) -> 'Connections':
        return copy.deepcopy(self)
