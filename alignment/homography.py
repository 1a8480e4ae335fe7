from __future__ import annotations
"""
Normalized Direct Linear Transform (DLT) homography fit.

- normalize_points: centroid to origin, mean distance sqrt(2)
- collinear / has_collinear_triple: degeneracy tests for minimal samples
- fit_homography: >= 4 correspondences -> ProjectiveTransform via SVD

Reference: Hartley & Zisserman, Multiple View Geometry, alg. 4.2.
"""

from itertools import combinations
from typing import Sequence, Tuple, Union

import numpy as np

from common.errors import ArgumentMismatchError, NumericSingularityError
from common.types import AffinePoint, HomogeneousPoint, points_to_array
from alignment.transform import ProjectiveTransform


SQRT2 = 1.4142135623730951
SINGLE_EPSILON = 1.1920929e-07

PointsLike = Union[np.ndarray, Sequence[AffinePoint], Sequence[HomogeneousPoint]]


def _as_array(points: PointsLike) -> Tuple[np.ndarray, bool]:
    """(N,2) or (N,3) float64 array plus a flag telling if it is homogeneous."""
    if isinstance(points, np.ndarray):
        a = np.asarray(points, dtype=np.float64)
        if a.ndim != 2 or a.shape[1] not in (2, 3):
            raise ArgumentMismatchError(f"expected an (N,2) or (N,3) array, got {a.shape}")
        return a, a.shape[1] == 3
    pts = list(points)
    homogeneous = bool(pts) and all(isinstance(p, HomogeneousPoint) for p in pts)
    return points_to_array(pts, homogeneous=homogeneous), homogeneous


def normalize_points(points: PointsLike) -> Tuple[np.ndarray, ProjectiveTransform]:
    """
    Translate so the centroid is the origin and scale so the mean distance to
    the origin is sqrt(2). Homogeneous input is perspective divided first.

    Returns (normalized (N,2) float32 points, T) with normalized = T * points.
    """
    a, homogeneous = _as_array(points)
    if homogeneous:
        w = a[:, 2]
        if np.any(w == 0):
            raise NumericSingularityError("cannot normalize points at infinity")
        a = a[:, :2] / w[:, None]
    n = a.shape[0]
    if n == 0:
        raise ArgumentMismatchError("cannot normalize an empty point set")

    xmean, ymean = a.mean(axis=0)
    total = float(np.sqrt(((a - (xmean, ymean)) ** 2).sum(axis=1)).sum())
    if total == 0.0 or not np.isfinite(total):
        raise NumericSingularityError("degenerate point set: all points coincide")
    scale = SQRT2 * n / total

    T = ProjectiveTransform((
        scale, 0.0, -scale * xmean,
        0.0, scale, -scale * ymean,
        0.0, 0.0,
    ))
    return T.transform_xy(a), T


def collinear(p1, p2, p3, eps: float = SINGLE_EPSILON) -> bool:
    """Signed-area test; accepts AffinePoints or HomogeneousPoints."""
    if all(isinstance(p, HomogeneousPoint) for p in (p1, p2, p3)):
        area = ((p1.y * p2.w - p1.w * p2.y) * p3.x
                + (p1.w * p2.x - p1.x * p2.w) * p3.y
                + (p1.x * p2.y - p1.y * p2.x) * p3.w)
    else:
        area = ((p1.y - p2.y) * p3.x
                + (p2.x - p1.x) * p3.y
                + (p1.x * p2.y - p1.y * p2.x))
    return abs(area) < eps


def has_collinear_triple(pts: np.ndarray, eps: float = SINGLE_EPSILON) -> bool:
    """True if any three rows of an (N,2) array are collinear."""
    for i, j, k in combinations(range(len(pts)), 3):
        (x1, y1), (x2, y2), (x3, y3) = pts[i], pts[j], pts[k]
        area = (y1 - y2) * x3 + (x2 - x1) * y3 + (x1 * y2 - y1 * x2)
        if abs(area) < eps:
            return True
    return False


def _lift(xy: np.ndarray) -> np.ndarray:
    return np.hstack([xy.astype(np.float64), np.ones((xy.shape[0], 1))])


def dlt_matrix(x1: np.ndarray, x2: np.ndarray, rows_per_point: int = 3) -> np.ndarray:
    """
    Coefficient matrix of x2 × (H x1) = 0 for (N,3) homogeneous inputs.

    Each correspondence yields three rows, of which only two are linearly
    independent; rows_per_point=2 keeps the first two.
    """
    n = x1.shape[0]
    X = x1
    x, y, w = x2[:, 0:1], x2[:, 1:2], x2[:, 2:3]
    z = np.zeros((n, 3))
    r0 = np.hstack([z, -w * X, y * X])
    r1 = np.hstack([w * X, z, -x * X])
    r2 = np.hstack([-y * X, x * X, z])
    rows = (r0, r1, r2)[:rows_per_point]
    return np.stack(rows, axis=1).reshape(rows_per_point * n, 9)


def fit_homography(points1: PointsLike, points2: PointsLike) -> ProjectiveTransform:
    """
    Homography H with points2 ~ H * points1 from N >= 4 correspondences.

    Homogeneous inputs build three constraint rows per correspondence, affine
    inputs two.
    """
    a1, h1 = _as_array(points1)
    a2, h2 = _as_array(points2)
    if a1.shape[0] != a2.shape[0]:
        raise ArgumentMismatchError("The number of points should be equal.")
    if a1.shape[0] < 4:
        raise ArgumentMismatchError("At least four points are required to fit an homography")

    n1, T1 = normalize_points(a1)
    n2, T2 = normalize_points(a2)

    A = dlt_matrix(_lift(n1), _lift(n2), rows_per_point=3 if (h1 or h2) else 2)
    _, _, Vt = np.linalg.svd(A)
    Hn = ProjectiveTransform(Vt[-1])

    if not T2.is_invertible:
        raise NumericSingularityError("normalization transform of the second set is not invertible")
    return T2.inverse() @ (Hn @ T1)
