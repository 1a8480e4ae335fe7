from __future__ import annotations
"""
Projective (homography) transform in homogeneous coordinates.

The 3x3 matrix has 8 degrees of freedom; element [2,2] is fixed to 1 and the
other eight are kept in single precision:

    | e0 e1 e2 |
    | e3 e4 e5 |
    | e6 e7 1  |
"""

from typing import List, Sequence, Union

import numpy as np

from common.errors import NumericSingularityError
from common.types import AffinePoint, HomogeneousPoint, Point, to_affine
from common.utils import to_numpy_3x3


_IDENTITY = (1.0, 0.0, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0)


class ProjectiveTransform:
    __slots__ = ("_e",)

    def __init__(self, elements: Sequence[float] = _IDENTITY):
        e = np.asarray(elements, dtype=np.float64).ravel()
        if e.size == 9:
            if e[8] == 0 or not np.isfinite(e[8]):
                raise NumericSingularityError("projective matrix has zero scale element [2,2]")
            e = e[:8] / e[8]
        elif e.size != 8:
            raise ValueError(f"expected 8 or 9 elements, got {e.size}")
        self._e = e.astype(np.float32, copy=True)
        self._e.flags.writeable = False

    # -----------------------------
    # Construction / conversion
    # -----------------------------

    @classmethod
    def identity(cls) -> "ProjectiveTransform":
        return cls(_IDENTITY)

    @classmethod
    def from_matrix(cls, H) -> "ProjectiveTransform":
        """Build from any 3x3 array-like; divides through by H[2,2]."""
        return cls(to_numpy_3x3(H).ravel())

    def to_matrix(self, dtype=np.float32) -> np.ndarray:
        e = self._e
        return np.array(
            [[e[0], e[1], e[2]],
             [e[3], e[4], e[5]],
             [e[6], e[7], 1.0]],
            dtype=dtype,
        )

    @property
    def elements(self) -> np.ndarray:
        return self._e.copy()

    @property
    def offset_x(self) -> float:
        return float(self._e[2])

    @property
    def offset_y(self) -> float:
        return float(self._e[5])

    # -----------------------------
    # Predicates
    # -----------------------------

    @property
    def determinant(self) -> float:
        a, b, c, d, e, f, g, h = self._e
        return float(a * (e - f * h) - b * (d - f * g) + c * (d * h - e * g))

    @property
    def is_invertible(self) -> bool:
        # det < 0 (orientation-reversing) counts as not invertible.
        det = self.determinant
        return bool(np.isfinite(det) and det > 0)

    @property
    def is_affine(self) -> bool:
        return bool(self._e[6] == 0 and self._e[7] == 0)

    @property
    def is_identity(self) -> bool:
        return bool(np.array_equal(self._e, np.asarray(_IDENTITY, dtype=np.float32)))

    # -----------------------------
    # Algebra
    # -----------------------------

    def multiply(self, other: "ProjectiveTransform") -> "ProjectiveTransform":
        """self · other, renormalized so the result's [2,2] is 1."""
        m = self.to_matrix() @ other.to_matrix()
        return ProjectiveTransform(m.ravel())

    def __matmul__(self, other: "ProjectiveTransform") -> "ProjectiveTransform":
        return self.multiply(other)

    __mul__ = __matmul__

    def inverse(self) -> "ProjectiveTransform":
        """
        Closed-form inverse via cofactors:

            m = 1 / [a(ei-fh) - b(di-fg) + c(dh-eg)],  i = 1
                          (ei-fh)  (ch-bi)  (bf-ce)
            inv = m  x    (fg-di)  (ai-cg)  (cd-af)
                          (dh-eg)  (bg-ah)  (ae-bd)
        """
        a, b, c, d, e, f, g, h = self._e
        det = a * (e - f * h) - b * (d - f * g) + c * (d * h - e * g)
        if det == 0 or not np.isfinite(det):
            raise NumericSingularityError(f"transform is singular (det={float(det)})")
        m = np.float32(1.0) / det
        return ProjectiveTransform((
            m * (e - f * h), m * (c * h - b), m * (b * f - c * e),
            m * (f * g - d), m * (a - c * g), m * (c * d - a * f),
            m * (d * h - e * g), m * (b * g - a * h), m * (a * e - b * d),
        ))

    # -----------------------------
    # Point mapping
    # -----------------------------

    def transform_xyw(self, pts: np.ndarray) -> np.ndarray:
        """Map an (N,3) homogeneous array; no perspective divide."""
        p = np.asarray(pts, dtype=np.float32).reshape(-1, 3)
        return p @ self.to_matrix().T

    def transform_xy(self, pts: np.ndarray) -> np.ndarray:
        """
        Map an (N,2) array with perspective divide. Rows whose projected w is
        zero come back non-finite; callers scoring residuals treat them as misses.
        """
        p = np.asarray(pts, dtype=np.float32).reshape(-1, 2)
        e = self._e
        x, y = p[:, 0], p[:, 1]
        w = e[6] * x + e[7] * y + np.float32(1.0)
        with np.errstate(divide="ignore", invalid="ignore"):
            out = np.empty_like(p)
            out[:, 0] = (e[0] * x + e[1] * y + e[2]) / w
            out[:, 1] = (e[3] * x + e[4] * y + e[5]) / w
        return out

    def transform_points(
        self,
        points: Sequence[Union[HomogeneousPoint, AffinePoint, Point]],
    ) -> Union[List[HomogeneousPoint], List[AffinePoint]]:
        """
        Homogeneous points map to homogeneous points (w carried along);
        Point/AffinePoint map to perspective-divided AffinePoints.
        """
        pts = list(points)
        if not pts:
            return []
        if all(isinstance(p, HomogeneousPoint) for p in pts):
            arr = np.array([p.as_tuple() for p in pts], dtype=np.float32)
            out = self.transform_xyw(arr)
            return [HomogeneousPoint(float(x), float(y), float(w)) for x, y, w in out]
        if any(isinstance(p, HomogeneousPoint) for p in pts):
            raise TypeError("cannot mix homogeneous and affine points in one call")
        arr = np.array([(p.x, p.y, 1.0) for p in pts], dtype=np.float32)
        out = self.transform_xyw(arr)
        return [to_affine(HomogeneousPoint(float(x), float(y), float(w))) for x, y, w in out]

    # -----------------------------
    # Comparison
    # -----------------------------

    def allclose(self, other: "ProjectiveTransform", rtol: float = 1e-5, atol: float = 1e-6) -> bool:
        return bool(np.allclose(self._e, other._e, rtol=rtol, atol=atol))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ProjectiveTransform):
            return NotImplemented
        return bool(np.array_equal(self._e, other._e))

    def __hash__(self) -> int:
        return hash(self._e.tobytes())

    def __repr__(self) -> str:
        vals = ", ".join(f"{v:.6g}" for v in self._e)
        return f"ProjectiveTransform([{vals}, 1])"
