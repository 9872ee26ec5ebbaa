import sys
import pathlib

import pytest

sys.path.insert(0, str(pathlib.Path(__file__).resolve().parent.parent))
from htm_algorithms.connections import Connections
from htm_algorithms.errors import InputContractError, InvalidTemporalMemoryParamValueError
from htm_algorithms.parameters import Parameters
from htm_algorithms.temporal_memory import TemporalMemory


def build_memory(**overrides):
    settings = dict(
        column_dimensions=(32,),
        cells_per_column=4,
        activation_threshold=3,
        initial_permanence=0.21,
        connected_permanence=0.5,
        min_threshold=2,
        max_new_synapse_count=3,
        permanence_increment=0.10,
        permanence_decrement=0.10,
        predicted_segment_decrement=0.0,
        seed=42,
    )
    settings.update(overrides)
    connections = Connections(Parameters(**settings))
    tm = TemporalMemory()
    tm.init(connections)
    return tm, connections


def add_segment(connections, cell, presynaptic_cells, permanence):
    segment = connections.create_segment(cell)
    for presynaptic in presynaptic_cells:
        connections.create_synapse(segment, presynaptic, permanence)
    return segment


def permanences(segment):
    return {s.presynaptic_cell: s.permanence for s in segment.synapses}


def test_burst_unpredicted_columns():
    tm, connections = build_memory()
    cycle = tm.compute(connections, [0], learn=True)

    assert sorted(cycle.active_cells) == [0, 1, 2, 3]
    assert cycle.bursting_columns == {0}
    assert len(cycle.winner_cells) == 1
    assert cycle.winner_cells <= {0, 1, 2, 3}


def test_predicted_active_cells_are_always_winners():
    tm, connections = build_memory()
    previous_active_cells = [0, 1, 2, 3]
    add_segment(connections, 4, previous_active_cells[:3], 0.5)
    add_segment(connections, 6, previous_active_cells[1:], 0.5)

    tm.compute(connections, [0], learn=False)
    assert tm.get_predictive_cells(connections) == [4, 6]

    cycle = tm.compute(connections, [1], learn=False)
    assert sorted(cycle.active_cells) == [4, 6]
    assert sorted(cycle.winner_cells) == [4, 6]
    assert cycle.bursting_columns == set()
    assert cycle.predicted_active_columns == {1}


def test_zero_active_columns_clears_everything():
    tm, connections = build_memory()
    add_segment(connections, 4, [0, 1, 2], 0.5)
    tm.compute(connections, [0], learn=True)
    segments_before = connections.num_segments()

    cycle = tm.compute(connections, [], learn=True)

    assert cycle.active_cells == set()
    assert cycle.winner_cells == set()
    assert cycle.predictive_cells == set()
    assert cycle.bursting_columns == set()
    assert connections.active_cells == set()
    assert connections.predictive_cells == set()
    assert connections.num_segments() == segments_before


def test_adapt_segment_moves_permanences_toward_activity():
    tm, connections = build_memory(column_dimensions=(128,))
    segment = connections.create_segment(0)
    connections.create_synapse(segment, 23, 0.6)
    connections.create_synapse(segment, 37, 0.4)
    connections.create_synapse(segment, 477, 0.9)

    tm.adapt_segment(connections, segment, {23, 37}, 0.1, 0.1)

    perms = permanences(segment)
    assert perms[23] == pytest.approx(0.7)
    assert perms[37] == pytest.approx(0.5)
    assert perms[477] == pytest.approx(0.8)


def test_adapt_segment_clamps_at_one():
    tm, connections = build_memory(column_dimensions=(128,))
    segment = add_segment(connections, 0, [23], 0.9)
    tm.adapt_segment(connections, segment, {23}, 0.3, 0.1)
    assert segment.synapses[0].permanence == 1.0


def test_adapt_segment_destroys_synapse_that_reaches_zero():
    tm, connections = build_memory(column_dimensions=(128,))
    segment = connections.create_segment(0)
    weak = connections.create_synapse(segment, 23, 0.1)
    connections.create_synapse(segment, 24, 0.6)
    connections.create_synapse(segment, 25, 0.6)

    tm.adapt_segment(connections, segment, {24, 25}, 0.1, 0.1)

    assert weak.destroyed
    assert connections.receptor_synapses(23) == set()
    assert not segment.destroyed
    assert sorted(permanences(segment)) == [24, 25]


def test_adapt_segment_destroys_segment_left_below_min_threshold():
    tm, connections = build_memory(column_dimensions=(128,))
    segment = connections.create_segment(0)
    connections.create_synapse(segment, 23, 0.1)
    connections.create_synapse(segment, 24, 0.6)

    tm.adapt_segment(connections, segment, {24}, 0.1, 0.1)

    assert segment.destroyed
    assert connections.segments_for_cell(0) == []
    assert connections.num_synapses() == 0


def test_new_segment_grows_on_bursting_winner():
    tm, connections = build_memory()
    first = tm.compute(connections, [0], learn=True)
    second = tm.compute(connections, [1], learn=True)

    (winner,) = second.winner_cells
    segments = connections.segments_for_cell(winner)
    assert len(segments) == 1
    perms = permanences(segments[0])
    assert set(perms) == first.winner_cells
    assert all(p == pytest.approx(0.21) for p in perms.values())


def test_no_segment_without_previous_winners():
    tm, connections = build_memory()
    tm.compute(connections, [0], learn=True)
    assert connections.num_segments() == 0


def test_no_learning_leaves_structure_alone():
    tm, connections = build_memory()
    tm.compute(connections, [0], learn=False)
    tm.compute(connections, [1], learn=False)
    assert connections.num_segments() == 0
    assert connections.tm_iteration == 0


def test_best_matching_segment_picks_winner_on_burst():
    tm, connections = build_memory()
    add_segment(connections, 4, [0, 1], 0.3)
    best = add_segment(connections, 5, [0, 1, 2], 0.3)

    tm.compute(connections, [0], learn=True)
    assert connections.predictive_cells == set()

    cycle = tm.compute(connections, [1], learn=True)
    assert cycle.bursting_columns == {1}
    assert cycle.winner_cells == {5}
    assert all(p == pytest.approx(0.4) for p in permanences(best).values())


def test_matching_segments_of_inactive_columns_are_punished():
    tm, connections = build_memory(predicted_segment_decrement=0.08)
    segment = add_segment(connections, 4, [0, 1, 2], 0.5)

    tm.compute(connections, [0], learn=True)
    tm.compute(connections, [2], learn=True)

    assert all(p == pytest.approx(0.42) for p in permanences(segment).values())


def test_grow_synapses_evicts_weakest_at_cap():
    tm, connections = build_memory(max_synapses_per_segment=3)
    segment = connections.create_segment(0)
    connections.create_synapse(segment, 10, 0.2)
    connections.create_synapse(segment, 11, 0.3)
    connections.create_synapse(segment, 12, 0.9)

    tm.grow_synapses(connections, segment, 2, {20, 21})

    assert sorted(permanences(segment)) == [12, 20, 21]
    assert connections.num_synapses(segment) == 3


def test_grow_synapses_keeps_synapses_onto_previous_winners_at_cap():
    tm, connections = build_memory(max_synapses_per_segment=3)
    segment = connections.create_segment(0)
    connections.create_synapse(segment, 10, 0.1)
    connections.create_synapse(segment, 11, 0.5)
    connections.create_synapse(segment, 12, 0.6)

    tm.grow_synapses(connections, segment, 1, {10, 20})

    assert sorted(permanences(segment)) == [10, 12, 20]


def test_grow_synapses_skips_existing_presynaptic_cells():
    tm, connections = build_memory()
    segment = add_segment(connections, 0, [10], 0.3)
    tm.grow_synapses(connections, segment, 3, {10, 11})
    assert sorted(permanences(segment)) == [10, 11]


def test_least_used_cell_prefers_cells_without_segments():
    tm, connections = build_memory()
    connections.create_segment(0)
    connections.create_segment(1)
    for _ in range(10):
        assert tm.least_used_cell(connections, [0, 1, 2, 3]) in (2, 3)


def test_reset_keeps_learned_structure():
    tm, connections = build_memory()
    for _ in range(3):
        for columns in ([0], [1], [2]):
            tm.compute(connections, columns, learn=True)
    snapshot = connections.segment_snapshot()
    assert snapshot

    tm.reset(connections)

    assert connections.active_cells == set()
    assert connections.winner_cells == set()
    assert connections.predictive_cells == set()
    assert connections.active_segments == []
    assert connections.matching_segments == []
    assert connections.segment_snapshot() == snapshot


def test_learns_first_order_sequence():
    tm, connections = build_memory()
    sequence = [[0, 1, 2, 3], [4, 5, 6, 7], [8, 9, 10, 11], [12, 13, 14, 15]]
    for _ in range(15):
        tm.reset(connections)
        for columns in sequence:
            tm.compute(connections, columns, learn=True)

    tm.reset(connections)
    tm.compute(connections, sequence[0], learn=False)
    assert tm.get_predicted_columns(connections) == sequence[1]


def test_active_column_out_of_range_is_rejected():
    tm, connections = build_memory()
    with pytest.raises(InputContractError):
        tm.compute(connections, [32])


@pytest.mark.parametrize(
    "overrides",
    [
        {"column_dimensions": (0,)},
        {"cells_per_column": 0},
        {"activation_threshold": 0},
        {"max_new_synapse_count": 0},
        {"initial_permanence": 1.5},
    ],
)
def test_invalid_parameters_fail_at_init(overrides):
    with pytest.raises(InvalidTemporalMemoryParamValueError):
        build_memory(**overrides)
