import numpy as np
import pytest

from gattools.errors import ShapeMismatchError
from gattools.labels.algebra import count_labels, intersect_labels, intersect_many, keep_labels


def isolated_points(n: int = 7) -> np.ndarray:
    """Ids 1..n as single pixels on one row, one background pixel apart."""
    labels = np.zeros((3, 2 * n + 1), dtype=np.int32)
    for label_id in range(1, n + 1):
        labels[1, 2 * (label_id - 1)] = label_id
    return labels


def keep_set(ids: set[int], n: int = 7) -> np.ndarray:
    keep = np.zeros(n + 1, dtype=bool)
    keep[list(ids)] = True
    return keep


class TestKeepLabels:
    def test_relabels_contiguously(self) -> None:
        pop = isolated_points()
        out = keep_labels(pop, keep_set({2, 5, 6}))
        assert count_labels(out) == 3
        assert out[1, 2] == 1
        assert out[1, 8] == 2
        assert out[1, 10] == 3
        assert out[1, 0] == 0

    def test_touching_kept_labels_merge(self) -> None:
        a = np.array([[1, 2, 0, 3]], dtype=np.int32)
        out = keep_labels(a, np.array([False, True, True, True]))
        np.testing.assert_array_equal(out, [[1, 1, 0, 2]])
        assert count_labels(out) == 2

    def test_diagonal_merge_follows_connectivity(self) -> None:
        a = np.array([[1, 0], [0, 2]], dtype=np.int32)
        keep = np.array([False, True, True])
        assert count_labels(keep_labels(a, keep)) == 1
        assert count_labels(keep_labels(a, keep, connectivity=1)) == 2

    def test_ids_beyond_keep_are_dropped(self) -> None:
        pop = isolated_points()
        out = keep_labels(pop, np.array([False, True]))
        assert count_labels(out) == 1
        assert out[1, 0] == 1

    def test_nothing_kept(self) -> None:
        out = keep_labels(isolated_points(), np.zeros(8, dtype=bool))
        assert not out.any()
        assert count_labels(out) == 0


class TestIntersect:
    def test_and_of_two_gated_sets(self) -> None:
        pop = isolated_points()
        a = keep_labels(pop, keep_set({1, 3, 5}))
        b = keep_labels(pop, keep_set({3, 5, 7}))

        both = intersect_labels(a, b)
        assert count_labels(both) == 2
        survivors = np.flatnonzero(both[1])
        np.testing.assert_array_equal(survivors, [4, 8])
        assert both[1, 4] == 1
        assert both[1, 8] == 2

    def test_surviving_pixels_are_the_positive_intersection(self) -> None:
        a = np.random.randint(0, 4, size=(16, 16))
        b = np.random.randint(0, 3, size=(16, 16))
        both = intersect_labels(a, b)
        np.testing.assert_array_equal(both > 0, (a > 0) & (b > 0))

    def test_shape_mismatch(self) -> None:
        with pytest.raises(ShapeMismatchError):
            intersect_labels(np.zeros((3, 3), dtype=np.int32), np.zeros((3, 4), dtype=np.int32))

    def test_intersect_many_folds_pairwise(self) -> None:
        pop = isolated_points()
        a = keep_labels(pop, keep_set({1, 3, 5}))
        b = keep_labels(pop, keep_set({3, 5, 7}))
        c = keep_labels(pop, keep_set({5, 6}))

        out = intersect_many(a, b, c)
        assert count_labels(out) == 1
        assert out[1, 8] == 1

    def test_intersect_many_needs_two_maps(self) -> None:
        with pytest.raises(ValueError, match="at least two"):
            intersect_many(isolated_points())
