"""
Unit tests for correlation matching
"""

import pytest
import numpy as np
import os
import sys

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from alignment.correlate import CorrelationMatcher, MatchResult
from common.errors import ArgumentMismatchError, UnsupportedFormatError
from common.types import Point


def random_image(seed: int, shape=(16, 16)) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return rng.integers(1, 256, size=shape, dtype=np.uint8)


def grid_points(seed: int, count: int, lo: int = 2, hi: int = 13):
    """`count` distinct points with both coordinates in [lo, hi]."""
    rng = np.random.default_rng(seed)
    side = hi - lo + 1
    flat = rng.choice(side * side, size=count, replace=False)
    return [Point(int(lo + f % side), int(lo + f // side)) for f in flat]


class TestCorrelationMatcher:
    """Test cases for mutual-best normalized correlation"""

    def test_identical_images_match_every_point(self):
        """Each point is its own best match with score ~1"""
        img = random_image(0)
        pts = grid_points(1, 10)
        result = CorrelationMatcher(window_size=5).match(img, img, pts, pts)

        assert isinstance(result, MatchResult)
        assert len(result) == len(pts)
        assert result.points1 == pts
        assert result.points2 == pts
        np.testing.assert_array_equal(result.indices1, result.indices2)
        np.testing.assert_allclose(result.scores, 1.0, atol=1e-9)

    def test_matrix_shape_and_diagonal(self):
        """Scores are cosine similarities of the windows"""
        img = random_image(2)
        pts = grid_points(3, 6)
        M = CorrelationMatcher(window_size=5).correlation_matrix(img, pts, img, pts)
        assert M.shape == (6, 6)
        np.testing.assert_allclose(np.diag(M), 1.0, atol=1e-9)
        assert np.all(M <= 1.0 + 1e-9)

    def test_mutual_best(self):
        """Every returned pair is the maximum of its row and of its column"""
        img1 = random_image(4, (24, 24))
        img2 = random_image(5, (24, 24))
        pts1 = grid_points(6, 12, 3, 20)
        pts2 = grid_points(7, 15, 3, 20)
        result = CorrelationMatcher(window_size=7).match(img1, img2, pts1, pts2)
        M = result.matrix
        for i, j in zip(result.indices1, result.indices2):
            assert M[i, j] == M[i, :].max()
            assert M[i, j] == M[:, j].max()
        assert len(set(result.indices2.tolist())) == len(result)

    def test_shifted_image(self):
        """Windows are found again after a pure translation"""
        big = random_image(8, (30, 30))
        img1 = big[:20, :20]
        img2 = big[3:23, 2:22]  # image1 point (x, y) sits at (x - 2, y - 3)
        pts1 = [Point(8, 8), Point(12, 6), Point(10, 14), Point(15, 12)]
        pts2 = [Point(p.x - 2, p.y - 3) for p in pts1]
        result = CorrelationMatcher(window_size=5).match(img1, img2, pts1, pts2[::-1])
        assert len(result) == 4
        for p1, p2 in zip(result.points1, result.points2):
            assert p2 == Point(p1.x - 2, p1.y - 3)

    def test_border_points_are_not_scored(self):
        """Points whose window leaves the image stay -inf and unmatched"""
        img = random_image(9)
        pts = [Point(1, 8), Point(8, 8), Point(8, 14)]
        result = CorrelationMatcher(window_size=5).match(img, img, pts, pts)
        assert np.isneginf(result.matrix[0]).all()
        assert np.isneginf(result.matrix[2]).all()
        assert result.points1 == [Point(8, 8)]

    def test_zero_windows_are_not_scored(self):
        """A black window has no direction and cannot be matched"""
        img = random_image(10)
        img[:7, :7] = 0
        pts = [Point(3, 3), Point(10, 10)]
        result = CorrelationMatcher(window_size=5).match(img, img, pts, pts)
        assert np.isneginf(result.matrix[0]).all()
        assert result.points1 == [Point(10, 10)]

    def test_max_distance(self):
        """Pairs at or beyond max_distance are never scored"""
        img = random_image(11)
        pts1 = [Point(4, 4), Point(11, 11)]
        pts2 = [Point(5, 4), Point(11, 5)]
        M = CorrelationMatcher(window_size=5, max_distance=3.0).correlation_matrix(img, pts1, img, pts2)
        assert np.isfinite(M[0, 0])
        assert np.isneginf(M[0, 1])
        assert np.isneginf(M[1, 0])
        assert np.isneginf(M[1, 1])

    def test_max_distance_is_strict(self):
        """A pair exactly max_distance apart is excluded"""
        img = random_image(12)
        M = CorrelationMatcher(window_size=3, max_distance=3.0).correlation_matrix(
            img, [Point(5, 5)], img, [Point(8, 5)]
        )
        assert np.isneginf(M[0, 0])

    def test_array_points_accepted(self):
        """(N,2) integer arrays work like Point lists"""
        img = random_image(13)
        pts = np.array([[4, 5], [9, 10], [12, 3]])
        result = CorrelationMatcher(window_size=5).match(img, img, pts, pts)
        assert result.points1 == [Point(4, 5), Point(9, 10), Point(12, 3)]
        a1, a2 = result.as_arrays()
        np.testing.assert_array_equal(a1, a2)

    def test_empty_input(self):
        img = random_image(14)
        result = CorrelationMatcher().match(img, img, [], [Point(8, 8)])
        assert len(result) == 0
        assert result.matrix.shape == (0, 1)

    @pytest.mark.parametrize("size", [0, 2, 4, 10])
    def test_window_must_be_odd(self, size):
        with pytest.raises(ArgumentMismatchError):
            CorrelationMatcher(window_size=size)

    def test_radius(self):
        assert CorrelationMatcher(window_size=9).radius == 4

    @pytest.mark.parametrize("dtype", [np.uint16, np.float32])
    def test_non_8bit_images_rejected(self, dtype):
        """Either image being non 8-bit fails before any scoring"""
        good = random_image(15)
        bad = random_image(16).astype(dtype)
        pts = [Point(8, 8)]
        matcher = CorrelationMatcher(window_size=5)
        with pytest.raises(UnsupportedFormatError):
            matcher.match(good, bad, pts, pts)
        with pytest.raises(UnsupportedFormatError):
            matcher.correlation_matrix(bad, pts, good, pts)

    def test_unsupported_layout(self):
        img = np.zeros((16, 16, 2), dtype=np.uint8)
        with pytest.raises(UnsupportedFormatError):
            CorrelationMatcher(window_size=3).match(img, img, [Point(5, 5)], [Point(5, 5)])
