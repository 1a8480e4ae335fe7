from __future__ import annotations
"""
Maximum cross-correlation matching of feature points between two images.

Each eligible point of image 1 is compared with the eligible points of image 2
by normalized correlation of square windows centred on them. A pair is kept
only when each point is the other's best match.

References:
  P. D. Kovesi, MATLAB and Octave Functions for Computer Vision
  (matchbycorrelation.m).
"""

from dataclasses import dataclass, field
from typing import List, Sequence, Tuple, Union

import numpy as np

from common.errors import ArgumentMismatchError
from common.logging_setup import get_logger
from common.types import Point
from alignment.preprocess import to_gray_u8


log = get_logger("alignment.correlate")

PointSet = Union[Sequence[Point], np.ndarray]


@dataclass
class MatchResult:
    """Index-aligned matched pairs plus the full score matrix (rows: image 1)."""
    points1: List[Point]
    points2: List[Point]
    indices1: np.ndarray
    indices2: np.ndarray
    scores: np.ndarray
    matrix: np.ndarray = field(repr=False)

    def __len__(self) -> int:
        return len(self.points1)

    def as_arrays(self) -> Tuple[np.ndarray, np.ndarray]:
        """(N,2) float arrays of the matched coordinates."""
        a1 = np.array([p.as_tuple() for p in self.points1], dtype=np.float64).reshape(-1, 2)
        a2 = np.array([p.as_tuple() for p in self.points2], dtype=np.float64).reshape(-1, 2)
        return a1, a2


def _point_array(points: PointSet) -> np.ndarray:
    if isinstance(points, np.ndarray):
        return np.asarray(points).astype(np.int64).reshape(-1, 2)
    return np.array([(p.x, p.y) for p in points], dtype=np.int64).reshape(-1, 2)


def _eligible(xy: np.ndarray, width: int, height: int, r: int) -> np.ndarray:
    """Indices of points whose whole window lies inside the image."""
    x, y = xy[:, 0], xy[:, 1]
    ok = (x >= r) & (x < width - r) & (y >= r) & (y < height - r)
    return np.flatnonzero(ok)


def _windows(gray: np.ndarray, xy: np.ndarray, r: int) -> np.ndarray:
    """(n, W*W) float64 stack of the windows centred on `xy`."""
    off = np.arange(-r, r + 1)
    rows = xy[:, 1, None, None] + off[None, :, None]
    cols = xy[:, 0, None, None] + off[None, None, :]
    return gray[rows, cols].reshape(xy.shape[0], -1).astype(np.float64)


@dataclass
class CorrelationMatcher:
    """
    Args:
        window_size: odd correlation window side W = 2r + 1.
        max_distance: only pairs closer than this (pixels) are scored; 0 scores all.
    """
    window_size: int = 9
    max_distance: float = 0.0

    def __post_init__(self):
        if int(self.window_size) < 1 or int(self.window_size) % 2 == 0:
            raise ArgumentMismatchError("Window size should be odd")
        self.window_size = int(self.window_size)
        self.max_distance = float(self.max_distance)

    @property
    def radius(self) -> int:
        return (self.window_size - 1) // 2

    def correlation_matrix(
        self,
        image1: np.ndarray,
        points1: PointSet,
        image2: np.ndarray,
        points2: PointSet,
    ) -> np.ndarray:
        """
        Score matrix (len(points1) x len(points2)). Pairs never evaluated (border
        points, pairs farther than max_distance, flat-zero windows) hold -inf.
        """
        g1 = to_gray_u8(image1)
        g2 = to_gray_u8(image2)
        xy1 = _point_array(points1)
        xy2 = _point_array(points2)
        r = self.radius

        matrix = np.full((xy1.shape[0], xy2.shape[0]), -np.inf, dtype=np.float64)

        idx1 = _eligible(xy1, g1.shape[1], g1.shape[0], r)
        idx2 = _eligible(xy2, g2.shape[1], g2.shape[0], r)
        if idx1.size == 0 or idx2.size == 0:
            return matrix

        w1 = _windows(g1, xy1[idx1], r)
        w2 = _windows(g2, xy2[idx2], r)
        norm1 = np.sqrt((w1 * w1).sum(axis=1))
        norm2 = np.sqrt((w2 * w2).sum(axis=1))

        with np.errstate(divide="ignore", invalid="ignore"):
            w1n = w1 / norm1[:, None]
            scores = (w1n @ w2.T) / norm2[None, :]

        scored = (norm1 > 0)[:, None] & (norm2 > 0)[None, :]
        if self.max_distance > 0:
            d = xy1[idx1][:, None, :].astype(np.float64) - xy2[idx2][None, :, :]
            scored &= (d * d).sum(axis=2) < self.max_distance * self.max_distance

        matrix[np.ix_(idx1, idx2)] = np.where(scored, scores, -np.inf)
        return matrix

    def match(
        self,
        image1: np.ndarray,
        image2: np.ndarray,
        points1: PointSet,
        points2: PointSet,
    ) -> MatchResult:
        """Mutual-best matching; unmatched points are dropped."""
        matrix = self.correlation_matrix(image1, points1, image2, points2)
        xy1 = _point_array(points1)
        xy2 = _point_array(points2)

        if matrix.size == 0:
            empty = np.zeros(0, dtype=np.intp)
            return MatchResult([], [], empty, empty, np.zeros(0), matrix)

        # argmax keeps the first maximum on ties
        best_j = np.argmax(matrix, axis=1)
        best_i = np.argmax(matrix, axis=0)
        rows = np.arange(matrix.shape[0])
        ok = (best_i[best_j] == rows) & np.isfinite(matrix[rows, best_j])

        i_sel = rows[ok]
        j_sel = best_j[ok]
        result = MatchResult(
            points1=[Point(int(x), int(y)) for x, y in xy1[i_sel]],
            points2=[Point(int(x), int(y)) for x, y in xy2[j_sel]],
            indices1=i_sel,
            indices2=j_sel,
            scores=matrix[i_sel, j_sel],
            matrix=matrix,
        )
        log.debug(
            "correlation matching",
            extra={"extra": {"n1": int(xy1.shape[0]), "n2": int(xy2.shape[0]), "matches": len(result)}},
        )
        return result
