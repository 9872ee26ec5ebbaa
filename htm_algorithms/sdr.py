"""Conversions between dense binary vectors and sparse index lists."""
from __future__ import annotations

from typing import Iterable, Sequence, Union

import numpy as np

from htm_algorithms.errors import InputContractError


def indices_to_dense(indices: Union[Sequence[int], np.ndarray], size: int) -> np.ndarray:
    """Sorted on-bit indices -> 0/1 vector of length ``size``."""
    indices = np.asarray(indices, dtype=np.int64).ravel()
    if indices.size and np.any(np.diff(indices) <= 0):
        raise InputContractError("Sparse indices must be sorted and unique", expected="sorted", actual=indices.tolist())
    if indices.size and (indices[0] < 0 or indices[-1] >= size):
        bad = int(indices[0] if indices[0] < 0 else indices[-1])
        raise InputContractError(f"Sparse index {bad} is outside [0, {size})", expected=size, actual=bad)
    dense = np.zeros(size, dtype=np.int8)
    dense[indices] = 1
    return dense


def dense_to_indices(vector: Union[Sequence[int], np.ndarray]) -> np.ndarray:
    return np.flatnonzero(np.asarray(vector).ravel()).astype(np.int64)


def cells_to_columns(cells: Iterable[int], cells_per_column: int) -> np.ndarray:
    """Sorted, unique columns of the given cells."""
    cells = np.fromiter((int(c) for c in cells), dtype=np.int64)
    return np.unique(cells // cells_per_column)


def sparsity(vector: Union[Sequence[int], np.ndarray]) -> float:
    vector = np.asarray(vector).ravel()
    if vector.size == 0:
        return 0.0
    return float(np.count_nonzero(vector)) / vector.size
