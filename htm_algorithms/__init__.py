"""Spatial Pooler and Temporal Memory over a shared Connections memory."""

from .anomaly import raw_anomaly_score
from .connections import Cell, Column, Connections, Pool, Segment, Synapse
from .encoders import BaseEncoder, SDRPassThroughEncoder
from .errors import (
    InputContractError,
    InvalidSpatialPoolerParamValueError,
    InvalidTemporalMemoryParamValueError,
    ParameterValidationError,
)
from .inhibition import AutoInhibition, GlobalInhibition, InhibitionStrategy, LocalInhibition
from .parameters import Parameters
from .spatial_pooler import PermanenceInitializer, RandomBandInitializer, SpatialPooler
from .temporal_memory import ComputeCycle, TemporalMemory

__all__ = [
    "AutoInhibition",
    "BaseEncoder",
    "Cell",
    "Column",
    "ComputeCycle",
    "Connections",
    "GlobalInhibition",
    "InhibitionStrategy",
    "InputContractError",
    "InvalidSpatialPoolerParamValueError",
    "InvalidTemporalMemoryParamValueError",
    "LocalInhibition",
    "ParameterValidationError",
    "Parameters",
    "PermanenceInitializer",
    "Pool",
    "RandomBandInitializer",
    "SDRPassThroughEncoder",
    "Segment",
    "SpatialPooler",
    "Synapse",
    "TemporalMemory",
    "raw_anomaly_score",
]
