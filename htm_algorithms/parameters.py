from __future__ import annotations

import copy
from dataclasses import dataclass, fields
from typing import Any, Dict, Mapping, Optional, Tuple

import numpy as np

from htm_algorithms.errors import ParameterValidationError

"""
 * Parameters shared by the Spatial Pooler and the Temporal Memory.
 *
 * A model is configured once from a flat key -> value map whose keys are the
 * upper-case member names (INPUT_DIMENSIONS, COLUMN_DIMENSIONS, SEED, ...).
 * Members left at None are derived from other members by resolve_derived,
 * which Connections and check_parameters both call.
"""


@dataclass
class Parameters:

    # ----- shared -----
    input_dimensions: Tuple[int, ...] = (64,)
    """
    * Member "input_dimensions" is the shape of the input space. The Spatial
    * Pooler expects input vectors with prod(input_dimensions) bits.
    """
    column_dimensions: Tuple[int, ...] = (2048,)
    """
    * Member "column_dimensions" is the shape of the column space. It should
    * have the same number of dimensions as input_dimensions for topology to
    * be meaningful.
    """
    cells_per_column: int = 32
    """
    * Member "cells_per_column" is the number of cells in each column.
    """

    # ----- spatial pooler -----
    potential_radius: int = 16
    """
    * Member "potential_radius" is how far (in input space) from its center a
    * column may reach when its potential pool is drawn. -1 means the whole
    * input space.
    """
    potential_pct: float = 0.5
    """
    * Member "potential_pct" is the fraction of the inputs within the potential
    * radius that end up in a column's potential pool.
    """
    global_inhibition: bool = False
    """
    * Member "global_inhibition" makes the whole column space one inhibition
    * area. Local inhibition uses neighborhoods of size inhibition_radius.
    """
    inhibition_radius: int = 0
    """
    * Member "inhibition_radius" is derived during learning; the value given
    * here is only a starting point.
    """
    local_area_density: float = -1.0
    """
    * Member "local_area_density" is the desired fraction of active columns in
    * an inhibition area. Values <= 0 mean "unset", in which case
    * num_active_columns_per_inh_area controls the density.
    """
    num_active_columns_per_inh_area: float = 10.0
    """
    * Member "num_active_columns_per_inh_area" is the number of columns that
    * stay active in an inhibition area. Mutually exclusive with
    * local_area_density.
    """
    stimulus_threshold: float = 0.0
    """
    * Member "stimulus_threshold" is the minimum overlap a column needs before
    * it is considered during inhibition.
    """
    syn_perm_inactive_dec: float = 0.01
    """
    * Member "syn_perm_inactive_dec" is subtracted from the permanence of
    * synapses on inactive inputs of a winning column.
    """
    syn_perm_active_inc: float = 0.1
    """
    * Member "syn_perm_active_inc" is added to the permanence of synapses on
    * active inputs of a winning column.
    """
    syn_perm_connected: float = 0.10
    """
    * Member "syn_perm_connected" is the permanence at or above which a
    * proximal synapse counts as connected.
    """
    syn_perm_below_stimulus_inc: Optional[float] = None
    """
    * Member "syn_perm_below_stimulus_inc" is the increment used to bump up
    * weak columns. Defaults to syn_perm_connected / 10.
    """
    syn_perm_trim_threshold: Optional[float] = None
    """
    * Member "syn_perm_trim_threshold" is the permanence below which proximal
    * permanences are snapped to 0. Defaults to syn_perm_active_inc / 2.
    """
    syn_perm_min: float = 0.0
    syn_perm_max: float = 1.0
    init_connected_pct: float = 0.5
    """
    * Member "init_connected_pct" is the fraction of each potential pool that
    * starts out connected.
    """
    min_pct_overlap_duty_cycles: float = 0.001
    """
    * Member "min_pct_overlap_duty_cycles" sets a column's minimum overlap duty
    * cycle as a fraction of the largest one in its neighborhood.
    """
    min_pct_active_duty_cycles: float = 0.001
    """
    * Member "min_pct_active_duty_cycles" sets a column's minimum active duty
    * cycle as a fraction of the largest one in its neighborhood.
    """
    duty_cycle_period: int = 1000
    """
    * Member "duty_cycle_period" is the window of the duty cycle moving
    * averages.
    """
    update_period: int = 50
    """
    * Member "update_period" is how often (in learning iterations) the
    * inhibition radius and the minimum duty cycles are refreshed.
    """
    max_boost: float = 10.0
    """
    * Member "max_boost" is the largest boost factor a starving column gets.
    """
    wrap_around: bool = True
    """
    * Member "wrap_around" lets potential pools reach across the input space
    * edges.
    """

    # ----- temporal memory -----
    activation_threshold: int = 13
    """
    * Member "activation_threshold" is the number of active connected synapses
    * that make a distal segment active.
    """
    min_threshold: int = 10
    """
    * Member "min_threshold" is the number of active potential synapses that
    * make a distal segment matching.
    """
    initial_permanence: float = 0.21
    connected_permanence: float = 0.5
    permanence_increment: float = 0.10
    permanence_decrement: float = 0.10
    predicted_segment_decrement: float = 0.0
    """
    * Member "predicted_segment_decrement" punishes matching segments of
    * columns that did not become active. 0 disables punishment.
    """
    max_new_synapse_count: int = 20
    """
    * Member "max_new_synapse_count" is the target number of active potential
    * synapses a learning segment grows toward.
    """
    max_segments_per_cell: int = 255
    max_synapses_per_segment: int = 255

    # ----- randomness -----
    seed: int = 42
    """
    * Member "seed" seeds the shared generator. Two models built with the same
    * seed and fed the same inputs produce identical outputs.
    """
    random: Optional[np.random.Generator] = None
    """
    * Member "random" is an already built generator. When given it is used
    * instead of one seeded from "seed".
    """

    def __post_init__(self) -> None:
        self.input_dimensions = _as_dimensions(self.input_dimensions)
        self.column_dimensions = _as_dimensions(self.column_dimensions)

    @classmethod
    def keys(cls) -> Tuple[str, ...]:
        return tuple(f.name.upper() for f in fields(cls))

    @classmethod
    def from_dict(cls, mapping: Mapping[str, Any]) -> "Parameters":
        """Build parameters from a flat key -> value map.

        Keys may be given in upper case (INPUT_DIMENSIONS) or as attribute
        names (input_dimensions).
        """
        names = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in mapping.items():
            name = key.lower()
            if name not in names:
                raise ParameterValidationError(f"Unknown parameter key {key!r}")
            kwargs[name] = value
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {f.name.upper(): getattr(self, f.name) for f in fields(self)}

    def copy(self, **overrides: Any) -> "Parameters":
        params = copy.deepcopy(self)
        for name, value in overrides.items():
            if not hasattr(params, name):
                raise ParameterValidationError(f"Unknown parameter {name!r}")
            setattr(params, name, value)
        params.__post_init__()
        return params

    @property
    def num_inputs(self) -> int:
        return int(np.prod(self.input_dimensions))

    @property
    def num_columns(self) -> int:
        return int(np.prod(self.column_dimensions))

    def build_random(self) -> np.random.Generator:
        if self.random is not None:
            return self.random
        return np.random.default_rng(self.seed)

    def check_parameters(self) -> "Parameters":
        """Validate value ranges and fill derived members.

        Returns a checked copy; self is left untouched.
        """
        params = self.copy()

        if any(d <= 0 for d in params.input_dimensions):
            raise ParameterValidationError(
                f"Input dimensions must be positive, got {params.input_dimensions}")
        if any(d <= 0 for d in params.column_dimensions):
            raise ParameterValidationError(
                f"Column dimensions must be positive, got {params.column_dimensions}")
        if params.cells_per_column <= 0:
            raise ParameterValidationError(
                f"cells_per_column must be positive, got {params.cells_per_column}")

        for name in ("potential_pct", "init_connected_pct",
                     "min_pct_overlap_duty_cycles", "min_pct_active_duty_cycles",
                     "initial_permanence", "connected_permanence"):
            value = getattr(params, name)
            if not 0.0 <= value <= 1.0:
                raise ParameterValidationError(f"{name} must be within [0, 1], got {value}")

        if params.local_area_density > 0:
            if params.local_area_density > 0.5:
                raise ParameterValidationError(
                    f"local_area_density must be within (0, 0.5], got {params.local_area_density}")
        elif params.num_active_columns_per_inh_area <= 0:
            raise ParameterValidationError(
                "Either local_area_density or num_active_columns_per_inh_area must be positive")

        if params.syn_perm_min >= params.syn_perm_max:
            raise ParameterValidationError(
                f"syn_perm_min ({params.syn_perm_min}) must be below syn_perm_max ({params.syn_perm_max})")

        for name in ("stimulus_threshold", "syn_perm_inactive_dec", "syn_perm_active_inc",
                     "permanence_increment", "permanence_decrement",
                     "predicted_segment_decrement"):
            if getattr(params, name) < 0:
                raise ParameterValidationError(f"{name} must not be negative, got {getattr(params, name)}")

        for name in ("duty_cycle_period", "update_period", "activation_threshold",
                     "min_threshold", "max_new_synapse_count",
                     "max_segments_per_cell", "max_synapses_per_segment"):
            if getattr(params, name) <= 0:
                raise ParameterValidationError(f"{name} must be positive, got {getattr(params, name)}")

        if params.max_boost < 1.0:
            raise ParameterValidationError(f"max_boost must be at least 1, got {params.max_boost}")

        params.resolve_derived()
        if params.stimulus_threshold > 0 and params.syn_perm_below_stimulus_inc <= 0:
            raise ParameterValidationError(
                f"syn_perm_below_stimulus_inc must be positive while stimulus_threshold is set, "
                f"got {params.syn_perm_below_stimulus_inc}")

        return params

    def resolve_derived(self) -> "Parameters":
        """Fill the members left to be derived from others, in place."""
        if self.syn_perm_below_stimulus_inc is None:
            self.syn_perm_below_stimulus_inc = self.syn_perm_connected / 10.0
        if self.syn_perm_trim_threshold is None:
            self.syn_perm_trim_threshold = self.syn_perm_active_inc / 2.0
        return self


def _as_dimensions(value: Any) -> Tuple[int, ...]:
    if isinstance(value, (int, np.integer)):
        return (int(value),)
    return tuple(int(v) for v in value)
