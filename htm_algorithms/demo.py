"""Sequence learning demo: repeating patterns through SP -> TM."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

import numpy as np
from tqdm import tqdm

from htm_algorithms.anomaly import raw_anomaly_score
from htm_algorithms.connections import Connections
from htm_algorithms.encoders import SDRPassThroughEncoder
from htm_algorithms.parameters import Parameters
from htm_algorithms.spatial_pooler import SpatialPooler
from htm_algorithms.temporal_memory import TemporalMemory

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SequenceDemoConfig:
    input_size: int = 200
    num_columns: int = 256
    cells_per_column: int = 8
    num_active_columns: int = 10
    active_bits: int = 20
    sequence: str = "ABCDE"
    total_steps: int = 300
    reset_each_sequence: bool = True
    seed: int = 42
    progress: bool = False


@dataclass
class SequenceDemoResult:
    anomaly_scores: List[float] = field(default_factory=list)
    bursting_columns: List[int] = field(default_factory=list)
    active_columns: List[List[int]] = field(default_factory=list)

    def mean_anomaly(self, last: int | None = None) -> float:
        scores = self.anomaly_scores[-last:] if last else self.anomaly_scores
        return float(np.mean(scores)) if scores else 0.0


def _resolve_config(config: dict[str, Any] | SequenceDemoConfig | None) -> SequenceDemoConfig:
    if config is None:
        return SequenceDemoConfig()
    if isinstance(config, SequenceDemoConfig):
        return config
    return SequenceDemoConfig(**config)


def build_parameters(config: SequenceDemoConfig) -> Parameters:
    return Parameters(
        input_dimensions=(config.input_size,),
        column_dimensions=(config.num_columns,),
        cells_per_column=config.cells_per_column,
        potential_radius=-1,
        potential_pct=0.8,
        global_inhibition=True,
        num_active_columns_per_inh_area=config.num_active_columns,
        stimulus_threshold=1,
        syn_perm_connected=0.2,
        syn_perm_active_inc=0.05,
        syn_perm_inactive_dec=0.01,
        activation_threshold=6,
        min_threshold=4,
        max_new_synapse_count=10,
        initial_permanence=0.21,
        connected_permanence=0.5,
        permanence_increment=0.1,
        permanence_decrement=0.05,
        # Homeostasis off: a fixed symbol set should keep its columns.
        max_boost=1.0,
        min_pct_overlap_duty_cycles=0.0,
        min_pct_active_duty_cycles=0.0,
        seed=config.seed,
    )


def make_patterns(config: SequenceDemoConfig) -> Dict[str, np.ndarray]:
    """One random sorted set of on-bits per distinct symbol."""
    rng = np.random.default_rng(config.seed)
    patterns: Dict[str, np.ndarray] = {}
    for symbol in sorted(set(config.sequence)):
        patterns[symbol] = np.sort(rng.choice(config.input_size, size=config.active_bits, replace=False))
    return patterns


def run_sequence_demo(config: dict[str, Any] | SequenceDemoConfig | None = None) -> SequenceDemoResult:
    config_obj = _resolve_config(config)
    connections = Connections(build_parameters(config_obj))
    sp = SpatialPooler()
    tm = TemporalMemory()
    sp.init(connections)
    tm.init(connections)

    encoder = SDRPassThroughEncoder([config_obj.input_size])
    patterns = make_patterns(config_obj)
    result = SequenceDemoResult()
    prev_predicted_columns: List[int] = []

    steps = range(config_obj.total_steps)
    for step in tqdm(steps, desc="Sequence", disable=not config_obj.progress):
        position = step % len(config_obj.sequence)
        if position == 0 and config_obj.reset_each_sequence:
            tm.reset(connections)
            prev_predicted_columns = []

        symbol = config_obj.sequence[position]
        input_vector = encoder.encode(patterns[symbol], sparse=True)
        active_columns = sp.compute(connections, input_vector, learn=True)
        cycle = tm.compute(connections, active_columns, learn=True)

        result.anomaly_scores.append(raw_anomaly_score(active_columns.tolist(), prev_predicted_columns))
        result.bursting_columns.append(len(cycle.bursting_columns))
        result.active_columns.append(active_columns.tolist())
        prev_predicted_columns = tm.get_predicted_columns(connections)

    log.info("Sequence demo finished: mean anomaly %.3f over last %d steps",
             result.mean_anomaly(len(config_obj.sequence) * 5), len(config_obj.sequence) * 5)
    return result
