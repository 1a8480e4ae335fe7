from __future__ import annotations
"""
RANSAC: a generic robust-fit driver plus its homography specialization.

Ransac knows nothing about the model; it is handed three functions:
  fit(sample_indices)        -> model or None
  degenerate(sample_indices) -> bool
  distances(model, t)        -> indices of inliers
The homography estimator builds those over point sets normalized once per
call, so the inlier threshold is expressed in normalized units (the mean
distance of each point set to its centroid is sqrt(2)).
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Generic, Optional, TypeVar

import numpy as np

from common.errors import ArgumentMismatchError, DegenerateSampleError, NumericSingularityError
from common.logging_setup import get_logger
from common.types import points_to_array
from alignment.homography import PointsLike, fit_homography, has_collinear_triple, normalize_points
from alignment.transform import ProjectiveTransform


log = get_logger("alignment.ransac")

ModelT = TypeVar("ModelT")


class Outcome(str, Enum):
    OK = "ok"
    INSUFFICIENT_CONSENSUS = "insufficient_consensus"


@dataclass
class RansacOutput(Generic[ModelT]):
    model: Optional[ModelT]
    inliers: np.ndarray
    trials: int


@dataclass
class Ransac(Generic[ModelT]):
    """
    Args:
        fit, degenerate, distances: model capabilities (see module docstring).
        sample_size: minimal sample size s.
        threshold: inlier threshold handed to `distances`.
        probability: desired probability of drawing one outlier-free sample.
        max_trials: hard cap on scored trials.
        max_evaluations: cap on consecutive rejected draws within one trial.
        seed / rng: randomness source; a seed gives the same draws on every call.
    """
    fit: Callable[[np.ndarray], Optional[ModelT]]
    degenerate: Callable[[np.ndarray], bool]
    distances: Callable[[ModelT, float], np.ndarray]
    sample_size: int
    threshold: float
    probability: float = 0.99
    max_trials: int = 1000
    max_evaluations: int = 1000
    seed: Optional[int] = None
    rng: Optional[np.random.Generator] = field(default=None, repr=False)

    def __post_init__(self):
        if self.sample_size < 1:
            raise ValueError("sample_size must be >= 1")
        if not (0.0 < self.probability < 1.0):
            raise ValueError("probability must be in (0, 1)")
        if self.max_trials < 1 or self.max_evaluations < 1:
            raise ValueError("max_trials and max_evaluations must be >= 1")

    def _generator(self) -> np.random.Generator:
        return self.rng if self.rng is not None else np.random.default_rng(self.seed)

    def required_trials(self, inlier_fraction: float) -> float:
        """ln(1 - p) / ln(1 - w^s); 0 when every point is an inlier."""
        p_no_outliers = 1.0 - inlier_fraction ** self.sample_size
        if p_no_outliers <= 0.0:
            return 0.0
        if p_no_outliers >= 1.0:
            return math.inf
        return math.log(1.0 - self.probability) / math.log(p_no_outliers)

    def _draw_model(self, rng: np.random.Generator, n: int):
        for _ in range(self.max_evaluations):
            sample = rng.choice(n, size=self.sample_size, replace=False)
            if self.degenerate(sample):
                continue
            try:
                model = self.fit(sample)
            except (DegenerateSampleError, NumericSingularityError):
                continue
            if model is not None:
                return model
        return None

    def compute(self, n: int) -> RansacOutput[ModelT]:
        """Run the search over `n` data points."""
        empty = np.zeros(0, dtype=np.intp)
        if n < self.sample_size:
            return RansacOutput(None, empty, 0)

        rng = self._generator()
        best_model: Optional[ModelT] = None
        best_inliers = empty
        required = float(self.max_trials)
        trials = 0

        while trials < min(required, self.max_trials):
            model = self._draw_model(rng, n)
            if model is None:
                log.debug("no usable sample", extra={"extra": {"n": n, "trials": trials}})
                break

            inliers = np.asarray(self.distances(model, self.threshold), dtype=np.intp)
            trials += 1

            # strictly greater: the first trial reaching the best count wins
            if inliers.size > best_inliers.size:
                best_model, best_inliers = model, inliers
                required = self.required_trials(inliers.size / float(n))

        return RansacOutput(best_model, best_inliers, trials)


@dataclass
class HomographyEstimate:
    transform: Optional[ProjectiveTransform]
    inliers: np.ndarray
    total: int
    trials: int = 0
    rmse_px: float = float("inf")

    @property
    def status(self) -> Outcome:
        return Outcome.OK if self.transform is not None else Outcome.INSUFFICIENT_CONSENSUS

    @property
    def ok(self) -> bool:
        return self.status is Outcome.OK

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "transform": None if self.transform is None else self.transform.to_matrix(np.float64).tolist(),
            "inliers": [int(i) for i in self.inliers],
            "total": int(self.total),
            "trials": int(self.trials),
            "rmse_px": None if not math.isfinite(self.rmse_px) else float(self.rmse_px),
        }


def _xy(points: PointsLike) -> np.ndarray:
    if isinstance(points, np.ndarray):
        return np.asarray(points, dtype=np.float64).reshape(-1, 2)
    return points_to_array(points)


class RansacHomographyEstimator:
    """
    Robust homography between two index-aligned point sets.

    Args:
        threshold: inlier threshold on the squared symmetric transfer error,
            in normalized coordinates.
        probability: RANSAC success probability.
        max_trials, max_evaluations, seed, rng: see Ransac.
    """

    sample_size = 4

    def __init__(
        self,
        threshold: float = 0.001,
        probability: float = 0.99,
        *,
        max_trials: int = 1000,
        max_evaluations: int = 1000,
        seed: Optional[int] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        self.threshold = float(threshold)
        self.probability = float(probability)
        self.max_trials = int(max_trials)
        self.max_evaluations = int(max_evaluations)
        self.seed = seed
        self.rng = rng

    def _insufficient(self, n: int, trials: int = 0, inliers: Optional[np.ndarray] = None) -> HomographyEstimate:
        inl = np.zeros(0, dtype=np.intp) if inliers is None else inliers
        log.info(
            "insufficient consensus",
            extra={"extra": {"total": n, "inliers": int(inl.size), "trials": trials}},
        )
        return HomographyEstimate(None, inl, n, trials)

    def estimate(self, points1: PointsLike, points2: PointsLike) -> HomographyEstimate:
        """
        Estimate H with points2 ~ H * points1.

        Returns an estimate whose status is INSUFFICIENT_CONSENSUS when fewer
        than four correspondences agree; mismatched inputs raise
        ArgumentMismatchError.
        """
        a1 = _xy(points1)
        a2 = _xy(points2)
        if a1.shape[0] != a2.shape[0]:
            raise ArgumentMismatchError("The number of points should be equal.")
        n = a1.shape[0]
        if n < self.sample_size:
            return self._insufficient(n)

        try:
            x1, T1 = normalize_points(a1)
            x2, T2 = normalize_points(a2)
        except NumericSingularityError:
            return self._insufficient(n)

        def fit(sample: np.ndarray) -> ProjectiveTransform:
            H = fit_homography(x1[sample], x2[sample])
            if not np.all(np.isfinite(H.elements)):
                raise DegenerateSampleError("non-finite homography")
            return H

        def degenerate(sample: np.ndarray) -> bool:
            return has_collinear_triple(x1[sample]) or has_collinear_triple(x2[sample])

        def distances(H: ProjectiveTransform, t: float) -> np.ndarray:
            # symmetric transfer error
            try:
                Hinv = H.inverse()
            except NumericSingularityError:
                return np.zeros(0, dtype=np.intp)
            p1 = H.transform_xy(x1)
            p2 = Hinv.transform_xy(x2)
            with np.errstate(invalid="ignore", over="ignore"):
                d2 = ((x1 - p2) ** 2).sum(axis=1) + ((x2 - p1) ** 2).sum(axis=1)
                return np.flatnonzero(d2 < t)

        ransac = Ransac(
            fit=fit,
            degenerate=degenerate,
            distances=distances,
            sample_size=self.sample_size,
            threshold=self.threshold,
            probability=self.probability,
            max_trials=self.max_trials,
            max_evaluations=self.max_evaluations,
            seed=self.seed,
            rng=self.rng,
        )
        out = ransac.compute(n)
        if out.model is None or out.inliers.size < self.sample_size:
            return self._insufficient(n, out.trials, out.inliers)

        inliers = np.sort(out.inliers)
        try:
            H = fit(inliers)
        except (DegenerateSampleError, NumericSingularityError):
            return self._insufficient(n, out.trials, inliers)

        H = T2.inverse() @ (H @ T1)

        proj = H.transform_xy(a1[inliers])
        err = np.linalg.norm(proj.astype(np.float64) - a2[inliers], axis=1)
        rmse = float(np.sqrt(np.mean(err ** 2))) if err.size else float("inf")

        log.info(
            "homography estimated",
            extra={"extra": {"total": n, "inliers": int(inliers.size), "trials": out.trials, "rmse_px": rmse}},
        )
        return HomographyEstimate(H, inliers, n, out.trials, rmse)
