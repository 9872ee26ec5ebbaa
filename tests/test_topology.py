import sys
import pathlib

sys.path.insert(0, str(pathlib.Path(__file__).resolve().parent.parent))
from htm_algorithms.topology import (
    compute_coordinates,
    compute_index,
    neighborhood,
    wrapping_neighborhood,
)


def test_coordinates_are_row_major():
    assert compute_coordinates(7, (3, 4)) == (1, 3)
    assert compute_index((1, 3), (3, 4)) == 7
    assert compute_index(compute_coordinates(11, (2, 2, 3)), (2, 2, 3)) == 11


def test_neighborhood_clips_at_edges():
    assert list(neighborhood(0, 2, (10,))) == [0, 1, 2]
    assert list(neighborhood(5, 2, (10,))) == [3, 4, 5, 6, 7]
    assert list(neighborhood(9, 2, (10,))) == [7, 8, 9]


def test_neighborhood_radius_zero_is_center_only():
    assert list(neighborhood(4, 0, (10,))) == [4]


def test_wrapping_neighborhood_crosses_edges():
    assert list(wrapping_neighborhood(0, 2, (10,))) == [0, 1, 2, 8, 9]
    assert list(wrapping_neighborhood(9, 1, (10,))) == [0, 8, 9]


def test_wrapping_neighborhood_larger_than_space_has_no_duplicates():
    assert list(wrapping_neighborhood(2, 10, (5,))) == [0, 1, 2, 3, 4]


def test_two_dimensional_neighborhoods():
    dims = (5, 5)
    center = compute_index((2, 2), dims)
    assert len(neighborhood(center, 1, dims)) == 9
    corner = compute_index((0, 0), dims)
    assert list(neighborhood(corner, 1, dims)) == [0, 1, 5, 6]
    assert len(wrapping_neighborhood(corner, 1, dims)) == 9
