import sys
import pathlib

import numpy as np
import pytest

sys.path.insert(0, str(pathlib.Path(__file__).resolve().parent.parent))
from htm_algorithms.anomaly import raw_anomaly_score
from htm_algorithms.encoders import SDRPassThroughEncoder
from htm_algorithms.errors import InputContractError
from htm_algorithms.sdr import cells_to_columns, dense_to_indices, indices_to_dense, sparsity


def test_indices_to_dense():
    assert list(indices_to_dense([1, 3], 5)) == [0, 1, 0, 1, 0]
    assert list(indices_to_dense([], 3)) == [0, 0, 0]


def test_indices_to_dense_requires_sorted_unique_indices():
    with pytest.raises(InputContractError):
        indices_to_dense([3, 1], 5)
    with pytest.raises(InputContractError):
        indices_to_dense([1, 1], 5)


def test_indices_to_dense_rejects_out_of_range():
    with pytest.raises(InputContractError) as excinfo:
        indices_to_dense([1, 5], 5)
    assert "5" in str(excinfo.value)


def test_dense_to_indices_and_sparsity():
    vector = np.array([0, 1, 0, 0, 1, 1, 0, 0])
    assert list(dense_to_indices(vector)) == [1, 4, 5]
    assert sparsity(vector) == pytest.approx(3 / 8)


def test_cells_to_columns():
    assert list(cells_to_columns({0, 3, 4, 9}, 4)) == [0, 1, 2]


def test_raw_anomaly_score():
    assert raw_anomaly_score([1, 2, 3, 4], [1, 2, 3, 4]) == 0.0
    assert raw_anomaly_score([1, 2, 3, 4], []) == 1.0
    assert raw_anomaly_score([1, 2, 3, 4], [3, 4, 5]) == pytest.approx(0.5)
    assert raw_anomaly_score([], [1, 2]) == 0.0


class TestPassThroughEncoder:

    def test_sparse_input_is_expanded(self):
        encoder = SDRPassThroughEncoder([2, 4])
        assert encoder.size == 8
        assert list(encoder.encode([0, 7])) == [1, 0, 0, 0, 0, 0, 0, 1]

    def test_dense_input_is_passed_through(self):
        encoder = SDRPassThroughEncoder([4])
        assert list(encoder.encode(np.array([0, 1, 0, 1]))) == [0, 1, 0, 1]
        assert list(encoder.encode(np.array([0, 2, 0, 1]), sparse=False)) == [0, 1, 0, 1]

    def test_full_width_index_list_is_read_as_sparse(self):
        encoder = SDRPassThroughEncoder([4])
        assert list(encoder.encode([0, 1, 2, 3])) == [1, 1, 1, 1]
        assert list(encoder.encode([1, 3, 2, 0], sparse=False)) == [1, 1, 1, 0]

    def test_full_width_unsorted_indices_are_rejected(self):
        encoder = SDRPassThroughEncoder([4])
        with pytest.raises(InputContractError):
            encoder.encode([3, 2, 1, 0])

    def test_dense_input_of_wrong_width_is_rejected(self):
        encoder = SDRPassThroughEncoder([4])
        with pytest.raises(InputContractError):
            encoder.encode([0, 1, 1], sparse=False)
