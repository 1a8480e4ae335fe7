from __future__ import annotations

from datetime import datetime, timezone
import time
import numpy as np


def iso_now_ms() -> str:
    """UTC ISO-8601 timestamp with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def to_numpy_3x3(x, dtype=np.float64) -> np.ndarray:
    """Ensure input is a 3x3 numpy array of `dtype` (copy if necessary)."""
    a = np.asarray(x, dtype=dtype)
    if a.shape != (3, 3):
        raise ValueError(f"Expected 3x3, got shape {a.shape}")
    return a.copy()


def timer_ms(func):
    """
    Decorator that returns (result, elapsed_ms) for timing pipeline stages.
    """
    def wrapper(*args, **kwargs):
        t0 = time.perf_counter()
        out = func(*args, **kwargs)
        dt_ms = (time.perf_counter() - t0) * 1e3
        return out, dt_ms
    return wrapper
