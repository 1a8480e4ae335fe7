from __future__ import annotations
"""
Harris corner detector.

The gradient images are 8-bit proxies: a 3x3 Prewitt-like stencil whose result
is clamped to [0, 255], and the cross term is the vertical stencil applied to
the clamped horizontal buffer. Negative gradients clamp to zero, so the
detector responds to dark-to-bright transitions going right and
down.

References:
  C.G. Harris and M.J. Stephens, "A combined corner and edge detector",
  Proc. 4th Alvey Vision Conference, 1988.
  P. D. Kovesi, MATLAB and Octave Functions for Computer Vision (harris.m).
"""

from dataclasses import dataclass
from typing import List

import cv2
import numpy as np

from common.logging_setup import get_logger
from common.types import Point
from alignment.preprocess import gaussian_blur_u8, to_gray_u8


log = get_logger("alignment.corners")


def _clamp_u8(v: np.ndarray, shape) -> np.ndarray:
    out = np.zeros(shape, dtype=np.uint8)
    out[1:-1, 1:-1] = np.clip(v, 0, 255)
    return out


def horizontal_diff(src: np.ndarray) -> np.ndarray:
    """dx = -(NW + W + SW) + (NE + E + SE), clamped, zero border."""
    h, w = src.shape
    if h < 3 or w < 3:
        return np.zeros((h, w), dtype=np.uint8)
    s = src.astype(np.int32)
    left = s[:-2, :-2] + s[1:-1, :-2] + s[2:, :-2]
    right = s[:-2, 2:] + s[1:-1, 2:] + s[2:, 2:]
    return _clamp_u8(right - left, (h, w))


def vertical_diff(src: np.ndarray) -> np.ndarray:
    """dy = -(NW + N + NE) + (SW + S + SE), clamped, zero border."""
    h, w = src.shape
    if h < 3 or w < 3:
        return np.zeros((h, w), dtype=np.uint8)
    s = src.astype(np.int32)
    top = s[:-2, :-2] + s[:-2, 1:-1] + s[:-2, 2:]
    bottom = s[2:, :-2] + s[2:, 1:-1] + s[2:, 2:]
    return _clamp_u8(bottom - top, (h, w))


@dataclass
class HarrisCornerDetector:
    """
    Args:
        k: Harris sensitivity parameter.
        threshold: responses not strictly above this are zeroed.
        sigma: Gaussian smoothing of the gradient buffers (0 disables).
        suppression: non-maximum suppression radius r (window 2r+1).
        blur_ksize: kernel size used for the smoothing.
    """
    k: float = 0.04
    threshold: float = 1000.0
    sigma: float = 1.4
    suppression: int = 3
    blur_ksize: int = 5

    def __post_init__(self):
        if int(self.suppression) < 0:
            raise ValueError("suppression radius must be >= 0")
        self.suppression = int(self.suppression)

    def response(self, image: np.ndarray) -> np.ndarray:
        """Thresholded Harris response map (float32, HxW)."""
        gray = to_gray_u8(image)

        dx = horizontal_diff(gray)
        dy = vertical_diff(gray)
        dxy = vertical_diff(dx)

        if self.sigma > 0.0:
            dx = gaussian_blur_u8(dx, self.sigma, self.blur_ksize)
            dy = gaussian_blur_u8(dy, self.sigma, self.blur_ksize)
            dxy = gaussian_blur_u8(dxy, self.sigma, self.blur_ksize)

        A = dx.astype(np.float32)
        B = dy.astype(np.float32)
        C = dxy.astype(np.float32)
        k = np.float32(self.k)
        M = (A * B - C * C) - k * ((A + B) * (A + B))
        return np.where(M > np.float32(self.threshold), M, np.float32(0.0)).astype(np.float32)

    def suppress(self, H: np.ndarray) -> List[Point]:
        """
        Keep non-zero pixels that no neighbour within radius r exceeds.
        Equal neighbours do not suppress each other.
        """
        r = self.suppression
        h, w = H.shape
        if h <= 2 * r or w <= 2 * r:
            return []
        if r == 0:
            local_max = H
        else:
            kernel = np.ones((2 * r + 1, 2 * r + 1), dtype=np.uint8)
            local_max = cv2.dilate(H, kernel)

        keep = np.zeros((h, w), dtype=bool)
        inner = (slice(r, h - r), slice(r, w - r))
        keep[inner] = (H[inner] != 0) & (H[inner] >= local_max[inner])

        ys, xs = np.nonzero(keep)  # row-major order
        return [Point(int(x), int(y)) for y, x in zip(ys, xs)]

    def detect(self, image: np.ndarray) -> List[Point]:
        """Corner points of `image` in raster order."""
        H = self.response(image)
        corners = self.suppress(H)
        log.debug(
            "harris corners",
            extra={"extra": {"width": int(H.shape[1]), "height": int(H.shape[0]), "corners": len(corners)}},
        )
        return corners
