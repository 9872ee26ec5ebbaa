"""Encoders turn raw values into the fixed-width binary input of the Spatial Pooler.

/**
 * An encoder converts a value to a sparse distributed representation.
 *
 * There are several critical properties which all encoders must have:
 *
 * 1) Semantic similarity:  Similar inputs should have high overlap.  Overlap
 * decreases smoothly as inputs become less similar.
 *
 * 2) Stability:  The representation for an input does not change during the
 * lifetime of the encoder.
 *
 * 3) Sparsity: The output SDR should have a similar sparsity for all inputs and
 * have enough active bits to handle noise and subsampling.
 *
 * Reference: https://arxiv.org/pdf/1602.05925.pdf
 */
"""

from abc import ABC, abstractmethod
from math import prod
from typing import Generic, Sequence, TypeVar, Union

import numpy as np

from htm_algorithms.errors import InputContractError
from htm_algorithms.sdr import indices_to_dense

T = TypeVar("T")


class BaseEncoder(ABC, Generic[T]):
    """Base class for all encoders"""

    def __init__(self, dimensions: Sequence[int] | None = None, size: int | None = None):
        self._dimensions: list[int] = [int(d) for d in dimensions] if dimensions is not None else []
        self._size: int = size if size is not None else prod(self._dimensions)

    @property
    def dimensions(self) -> list[int]:
        return self._dimensions

    @property
    def size(self) -> int:
        return self._size

    def reset(self):
        """Resets the encoder to its initial state if applicable."""

    @abstractmethod
    def encode(self, input_value: T) -> np.ndarray:
        """Encodes the input value into a dense 0/1 vector of length ``size``."""
        raise NotImplementedError("Subclasses must implement this method")


class SDRPassThroughEncoder(BaseEncoder[Union[Sequence[int], np.ndarray]]):
    """Accepts an already encoded SDR.

    Sparse input (a sorted list of on-bit indices) is expanded; dense input
    is checked for width and passed on. Without an explicit ``sparse`` flag
    only a binary vector of full width counts as dense.
    """

    def __init__(self, dimensions: Sequence[int]):
        super().__init__(dimensions)

    def encode(self, input_value: Union[Sequence[int], np.ndarray], sparse: bool | None = None) -> np.ndarray:
        values = np.asarray(input_value).ravel()
        if sparse is None:
            # A full-width vector is dense only if it is binary; [0, 1, 2, 3] on
            # four bits lists indices.
            sparse = values.size != self.size or not np.isin(values, (0, 1)).all()
        if sparse:
            return indices_to_dense(values, self.size)
        if values.size != self.size:
            raise InputContractError(
                f"Dense input must have {self.size} bits, got {values.size}",
                expected=self.size, actual=values.size)
        return (values > 0).astype(np.int8)
