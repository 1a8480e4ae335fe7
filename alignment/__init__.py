# FILE: alignment/__init__.py
"""
Alignment: two-image planar registration

This package provides:
- Harris corner detection on 8-bit gradient proxies
- Mutual-best normalized correlation matching of corner windows
- Projective transforms in homogeneous coordinates (float32, 8 DOF)
- Normalized DLT homography fitting and a seedable RANSAC estimator

Entry point:
    python -m alignment.pipeline left.png right.png --config config/params.yaml
"""
from .transform import ProjectiveTransform
from .corners import HarrisCornerDetector
from .correlate import CorrelationMatcher, MatchResult
from .homography import fit_homography, normalize_points
from .ransac import HomographyEstimate, Outcome, Ransac, RansacHomographyEstimator

__all__ = [
    "ProjectiveTransform",
    "HarrisCornerDetector",
    "CorrelationMatcher",
    "MatchResult",
    "fit_homography",
    "normalize_points",
    "HomographyEstimate",
    "Outcome",
    "Ransac",
    "RansacHomographyEstimator",
]
