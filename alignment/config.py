from __future__ import annotations
"""
Run parameters, loaded from config/params.yaml.

Expected layout (every key optional, defaults shown):

    harris:      {k: 0.04, threshold: 1000, sigma: 1.4, suppression: 3, blur_ksize: 5}
    correlation: {window_size: 9, max_distance: 0}
    ransac:      {threshold: 0.001, probability: 0.99, max_trials: 1000,
                  max_evaluations: 1000, seed: null}
    logging:     {level: INFO, format: json}
"""

from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional

import yaml

from alignment.corners import HarrisCornerDetector
from alignment.correlate import CorrelationMatcher
from alignment.ransac import RansacHomographyEstimator


def _pick(cls, section: Optional[Dict[str, Any]]):
    """Instantiate dataclass `cls` from the known keys of `section`."""
    section = section or {}
    known = {f.name for f in fields(cls)}
    unknown = set(section) - known
    if unknown:
        raise ValueError(f"unknown {cls.__name__} keys: {sorted(unknown)}")
    return cls(**section)


@dataclass
class HarrisParams:
    k: float = 0.04
    threshold: float = 1000.0
    sigma: float = 1.4
    suppression: int = 3
    blur_ksize: int = 5

    def build(self) -> HarrisCornerDetector:
        return HarrisCornerDetector(
            k=float(self.k),
            threshold=float(self.threshold),
            sigma=float(self.sigma),
            suppression=int(self.suppression),
            blur_ksize=int(self.blur_ksize),
        )


@dataclass
class CorrelationParams:
    window_size: int = 9
    max_distance: float = 0.0

    def build(self) -> CorrelationMatcher:
        return CorrelationMatcher(window_size=int(self.window_size), max_distance=float(self.max_distance))


@dataclass
class RansacParams:
    threshold: float = 0.001
    probability: float = 0.99
    max_trials: int = 1000
    max_evaluations: int = 1000
    seed: Optional[int] = None

    def build(self) -> RansacHomographyEstimator:
        return RansacHomographyEstimator(
            threshold=float(self.threshold),
            probability=float(self.probability),
            max_trials=int(self.max_trials),
            max_evaluations=int(self.max_evaluations),
            seed=None if self.seed is None else int(self.seed),
        )


@dataclass
class LoggingParams:
    level: str = "INFO"
    format: str = "json"


@dataclass
class AlignmentConfig:
    harris: HarrisParams = field(default_factory=HarrisParams)
    correlation: CorrelationParams = field(default_factory=CorrelationParams)
    ransac: RansacParams = field(default_factory=RansacParams)
    logging: LoggingParams = field(default_factory=LoggingParams)

    @classmethod
    def from_dict(cls, D: Optional[Dict[str, Any]]) -> "AlignmentConfig":
        D = D or {}
        return cls(
            harris=_pick(HarrisParams, D.get("harris")),
            correlation=_pick(CorrelationParams, D.get("correlation")),
            ransac=_pick(RansacParams, D.get("ransac")),
            logging=_pick(LoggingParams, D.get("logging")),
        )

    @classmethod
    def from_yaml(cls, path: str) -> "AlignmentConfig":
        with open(path, "r") as f:
            return cls.from_dict(yaml.safe_load(f))
