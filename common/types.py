from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import numpy as np

from common.errors import NumericSingularityError, UnsupportedFormatError


@dataclass(frozen=True, slots=True)
class Point:
    """Integer pixel coordinate (x = column, y = row)."""
    x: int
    y: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "x", int(self.x))
        object.__setattr__(self, "y", int(self.y))

    def as_tuple(self) -> Tuple[int, int]:
        return (self.x, self.y)


@dataclass(frozen=True, slots=True)
class AffinePoint:
    """Perspective-divided 2D point (w implicitly 1)."""
    x: float
    y: float

    def as_tuple(self) -> Tuple[float, float]:
        return (self.x, self.y)


@dataclass(frozen=True, slots=True, eq=False)
class HomogeneousPoint:
    """
    2D point in homogeneous coordinates (x, y, w).

    Equality compares the perspective-divided coordinates, so (2, 4, 2) equals
    (1, 2, 1). Points at infinity (w == 0) are equal only to other points at
    infinity with a parallel direction.
    """
    x: float
    y: float
    w: float = 1.0

    @property
    def is_at_infinity(self) -> bool:
        return self.w == 0.0

    @property
    def is_normalized(self) -> bool:
        return self.w == 1.0

    def normalized(self) -> "HomogeneousPoint":
        if self.is_at_infinity:
            raise NumericSingularityError("cannot normalize a point at infinity (w == 0)")
        return HomogeneousPoint(self.x / self.w, self.y / self.w, 1.0)

    def as_tuple(self) -> Tuple[float, float, float]:
        return (self.x, self.y, self.w)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HomogeneousPoint):
            return NotImplemented
        if self.is_at_infinity or other.is_at_infinity:
            return (
                self.is_at_infinity
                and other.is_at_infinity
                and self.x * other.y == self.y * other.x
            )
        return self.x / self.w == other.x / other.w and self.y / self.w == other.y / other.w

    def __hash__(self) -> int:
        if self.is_at_infinity:
            return hash(("inf",))
        return hash((self.x / self.w, self.y / self.w))


AnyPoint = Union[Point, AffinePoint, HomogeneousPoint]


def to_homogeneous(p: AnyPoint) -> HomogeneousPoint:
    """Lift a point to homogeneous form (w = 1 unless already homogeneous)."""
    if isinstance(p, HomogeneousPoint):
        return p
    return HomogeneousPoint(float(p.x), float(p.y), 1.0)


def to_affine(p: AnyPoint) -> AffinePoint:
    """
    Perspective divide. Raises NumericSingularityError for w == 0.
    """
    if isinstance(p, HomogeneousPoint):
        if p.is_at_infinity:
            raise NumericSingularityError("point at infinity has no affine form")
        return AffinePoint(p.x / p.w, p.y / p.w)
    return AffinePoint(float(p.x), float(p.y))


def round_point(p: AnyPoint) -> Point:
    """Nearest integer pixel of a (possibly homogeneous) point."""
    a = to_affine(p)
    return Point(int(round(a.x)), int(round(a.y)))


def points_to_array(points: Iterable[AnyPoint], homogeneous: bool = False) -> np.ndarray:
    """
    Stack points into an (N,2) or (N,3) float64 array.

    With homogeneous=False, HomogeneousPoints are perspective divided.
    """
    rows: List[Tuple[float, ...]] = []
    for p in points:
        if homogeneous:
            rows.append(to_homogeneous(p).as_tuple())
        else:
            rows.append(to_affine(p).as_tuple())
    width = 3 if homogeneous else 2
    if not rows:
        return np.zeros((0, width), dtype=np.float64)
    return np.asarray(rows, dtype=np.float64)


def array_to_points(arr: np.ndarray) -> List[Point]:
    a = np.asarray(arr).reshape(-1, 2)
    return [Point(int(x), int(y)) for x, y in a]


@dataclass(slots=True)
class ImageFrame:
    """
    One input image of an alignment run.

    Attributes:
        source: where the image came from (path, URL or a logical name).
        width, height: image dimensions in pixels.
        frame: np.ndarray of shape (H,W) or (H,W,C) with C in {1,3,4}, dtype uint8.
    """
    source: str
    width: int
    height: int
    frame: np.ndarray

    def __post_init__(self) -> None:
        if not isinstance(self.frame, np.ndarray):
            raise TypeError("frame must be a numpy ndarray")
        if self.frame.ndim not in (2, 3):
            raise UnsupportedFormatError("frame must be 2D (gray) or 3D (BGR/BGRA)")
        if self.frame.ndim == 3 and self.frame.shape[2] not in (1, 3, 4):
            raise UnsupportedFormatError(f"unsupported channel count: {self.frame.shape[2]}")
        if self.frame.shape[0] != self.height or self.frame.shape[1] != self.width:
            raise ValueError("width/height do not match frame shape")
        if self.frame.dtype != np.uint8:
            raise UnsupportedFormatError(f"frame must be 8-bit, got dtype {self.frame.dtype}")

    @classmethod
    def from_array(cls, frame: np.ndarray, source: str = "<memory>") -> "ImageFrame":
        return cls(source=source, width=int(frame.shape[1]), height=int(frame.shape[0]), frame=frame)

    @property
    def channels(self) -> Optional[int]:
        return None if self.frame.ndim == 2 else int(self.frame.shape[2])

    def to_meta(self) -> Dict[str, Any]:
        """Metadata without image bytes (safe to log/serialize)."""
        return {
            "source": self.source,
            "width": self.width,
            "height": self.height,
            "channels": self.channels,
        }
