import sys
import pathlib

import numpy as np

sys.path.insert(0, str(pathlib.Path(__file__).resolve().parent.parent))
from htm_algorithms.connections import Connections
from htm_algorithms.demo import SequenceDemoConfig, run_sequence_demo
from htm_algorithms.parameters import Parameters
from htm_algorithms.spatial_pooler import SpatialPooler
from htm_algorithms.temporal_memory import TemporalMemory


def _model(seed):
    params = Parameters(
        input_dimensions=(64,),
        column_dimensions=(128,),
        cells_per_column=4,
        potential_radius=-1,
        global_inhibition=False,
        num_active_columns_per_inh_area=4,
        stimulus_threshold=1,
        activation_threshold=3,
        min_threshold=2,
        max_new_synapse_count=5,
        update_period=10,
        seed=seed,
    )
    connections = Connections(params)
    sp, tm = SpatialPooler(), TemporalMemory()
    sp.init(connections)
    tm.init(connections)
    return connections, sp, tm


def _run(seed, inputs):
    connections, sp, tm = _model(seed)
    columns, cells = [], []
    for input_vector in inputs:
        active = sp.compute(connections, input_vector, learn=True)
        cycle = tm.compute(connections, active, learn=True)
        columns.append(active.tolist())
        cells.append(sorted(cycle.active_cells))
    return columns, cells, connections


def test_same_seed_same_outputs():
    rng = np.random.default_rng(2024)
    inputs = [(rng.random(64) < 0.15).astype(int) for _ in range(30)]

    columns_a, cells_a, connections_a = _run(3, inputs)
    columns_b, cells_b, connections_b = _run(3, inputs)

    assert columns_a == columns_b
    assert cells_a == cells_b
    assert np.array_equal(connections_a.permanences, connections_b.permanences)
    assert connections_a.segment_snapshot() == connections_b.segment_snapshot()


def test_different_seed_different_model():
    rng = np.random.default_rng(2024)
    inputs = [(rng.random(64) < 0.15).astype(int) for _ in range(5)]
    _, _, connections_a = _run(3, inputs)
    _, _, connections_b = _run(4, inputs)
    assert not np.array_equal(connections_a.permanences, connections_b.permanences)


def test_sequence_demo_learns_to_predict():
    config = SequenceDemoConfig(input_size=100, num_columns=128, total_steps=150)
    result = run_sequence_demo(config)

    assert len(result.anomaly_scores) == 150
    assert all(0.0 <= score <= 1.0 for score in result.anomaly_scores)
    assert len(result.active_columns[0]) == config.num_active_columns
    assert result.anomaly_scores[:5] == [1.0] * 5
    assert result.mean_anomaly(last=25) < 0.5


def test_sequence_demo_accepts_dict_config():
    result = run_sequence_demo({"input_size": 60, "num_columns": 64, "total_steps": 10, "active_bits": 10})
    assert len(result.bursting_columns) == 10
