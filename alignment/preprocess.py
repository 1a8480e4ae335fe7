from __future__ import annotations
"""
Pixel-level collaborators used by the detector and the matcher:
- pixel format check + BT.709 grayscale conversion (OpenCV)
- Gaussian smoothing of 8-bit buffers (OpenCV)
"""

import cv2
import numpy as np

from common.errors import UnsupportedFormatError


# BT.709 luma weights in OpenCV channel order (B, G, R)
BT709_BGR = np.array([[0.0721, 0.7154, 0.2125]], dtype=np.float32)
BT709_BGRA = np.array([[0.0721, 0.7154, 0.2125, 0.0]], dtype=np.float32)


def check_format(img: np.ndarray) -> None:
    """Fail fast unless `img` is uint8 HxW or HxWxC with C in {1, 3, 4}."""
    if not isinstance(img, np.ndarray):
        raise TypeError("image must be a numpy ndarray")
    if img.dtype != np.uint8:
        raise UnsupportedFormatError(f"Unsupported pixel format of the source image: dtype={img.dtype}")
    if img.ndim == 2:
        return
    if img.ndim == 3 and img.shape[2] in (1, 3, 4):
        return
    raise UnsupportedFormatError(f"Unsupported pixel layout of the source image: shape={img.shape}")


def to_gray_u8(img: np.ndarray) -> np.ndarray:
    """
    Single-channel uint8 view/copy of `img`.
    3 channels are read as BGR, 4 as BGRA (OpenCV order); alpha is ignored.
    """
    check_format(img)
    if img.ndim == 2:
        return img
    if img.shape[2] == 1:
        return img[:, :, 0]
    m = BT709_BGR if img.shape[2] == 3 else BT709_BGRA
    g = cv2.transform(np.ascontiguousarray(img), m)
    return g.reshape(img.shape[:2])


def gaussian_blur_u8(buf: np.ndarray, sigma: float, ksize: int = 5) -> np.ndarray:
    """Gaussian smoothing of an 8-bit buffer with a fixed odd kernel size."""
    if sigma <= 0:
        return buf
    k = int(ksize) if int(ksize) % 2 == 1 else int(ksize) + 1
    return cv2.GaussianBlur(buf, (k, k), float(sigma))
