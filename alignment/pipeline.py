from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np
import requests

from common.logging_setup import get_logger, setup_logging
from common.types import ImageFrame, Point
from common.utils import iso_now_ms, timer_ms
from alignment.config import AlignmentConfig
from alignment.correlate import MatchResult
from alignment.ransac import HomographyEstimate, Outcome
from alignment.transform import ProjectiveTransform


log = get_logger("alignment.pipeline")

EXIT_OK = 0
EXIT_NO_CONSENSUS = 2


# -----------------------------
# Image I/O
# -----------------------------

def _fetch_image(url: str, timeout: float = 10.0) -> np.ndarray:
    r = requests.get(url, timeout=timeout)
    if r.status_code != 200:
        raise RuntimeError(f"Image download error {r.status_code}: {r.text[:200]}")
    arr = np.frombuffer(r.content, dtype=np.uint8)
    img = cv2.imdecode(arr, cv2.IMREAD_COLOR)
    if img is None:
        raise RuntimeError(f"Failed to decode image from {url}")
    return img


def load_image(src: str, timeout: float = 10.0) -> ImageFrame:
    """Read a local file or an http(s) URL into an ImageFrame (BGR uint8)."""
    if src.startswith(("http://", "https://")):
        img = _fetch_image(src, timeout=timeout)
    else:
        if not Path(src).exists():
            raise FileNotFoundError(f"Image not found: {src}")
        img = cv2.imread(src, cv2.IMREAD_COLOR)
        if img is None:
            raise RuntimeError(f"Cannot decode image: {src}")
    return ImageFrame.from_array(img, source=src)


# -----------------------------
# Stages
# -----------------------------

@dataclass
class AlignmentRun:
    corners1: List[Point]
    corners2: List[Point]
    matches: MatchResult
    estimate: HomographyEstimate
    timings_ms: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        row = self.estimate.to_dict()
        row.update({
            "corners1": len(self.corners1),
            "corners2": len(self.corners2),
            "matches": len(self.matches),
            "latency_ms": {k: round(v, 3) for k, v in self.timings_ms.items()},
        })
        return row


def align(frame1: ImageFrame, frame2: ImageFrame, cfg: AlignmentConfig) -> AlignmentRun:
    """Harris on both images -> correlation matching -> RANSAC homography."""
    detector = cfg.harris.build()
    matcher = cfg.correlation.build()
    estimator = cfg.ransac.build()

    corners1, t1 = timer_ms(detector.detect)(frame1.frame)
    corners2, t2 = timer_ms(detector.detect)(frame2.frame)
    log.info("corners detected", extra={"extra": {"image1": len(corners1), "image2": len(corners2)}})

    matches, t3 = timer_ms(matcher.match)(frame1.frame, frame2.frame, corners1, corners2)
    log.info("points matched", extra={"extra": {"pairs": len(matches)}})

    estimate, t4 = timer_ms(estimator.estimate)(matches.points1, matches.points2)

    return AlignmentRun(
        corners1=corners1,
        corners2=corners2,
        matches=matches,
        estimate=estimate,
        timings_ms={"harris1": t1, "harris2": t2, "correlation": t3, "ransac": t4},
    )


# -----------------------------
# Output collaborators (overlay / reprojection)
# -----------------------------

def _as_bgr(img: np.ndarray) -> np.ndarray:
    if img.ndim == 2:
        return cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)
    if img.shape[2] == 4:
        return cv2.cvtColor(img, cv2.COLOR_BGRA2BGR)
    return img


def draw_pairs(img1: np.ndarray, img2: np.ndarray, p1: List[Point], p2: List[Point]) -> np.ndarray:
    """Side-by-side canvas with a line per matched pair."""
    a, b = _as_bgr(img1), _as_bgr(img2)
    h = max(a.shape[0], b.shape[0])
    canvas = np.zeros((h, a.shape[1] + b.shape[1], 3), dtype=np.uint8)
    canvas[: a.shape[0], : a.shape[1]] = a
    canvas[: b.shape[0], a.shape[1]:] = b
    dx = a.shape[1]
    for q1, q2 in zip(p1, p2):
        cv2.circle(canvas, (q1.x, q1.y), 3, (0, 0, 255), 1)
        cv2.circle(canvas, (q2.x + dx, q2.y), 3, (0, 0, 255), 1)
        cv2.line(canvas, (q1.x, q1.y), (q2.x + dx, q2.y), (0, 255, 0), 1)
    return canvas


def warp_onto(img1: np.ndarray, img2: np.ndarray, H: ProjectiveTransform) -> np.ndarray:
    """
    Reproject img2 into img1's plane (H maps image-1 points to image-2 points)
    on a canvas large enough for both; img1 is pasted on top.
    """
    a, b = _as_bgr(img1), _as_bgr(img2)
    Hinv = H.inverse()
    h2, w2 = b.shape[:2]
    corners = Hinv.transform_xy(np.array([[0, 0], [w2, 0], [w2, h2], [0, h2]], dtype=np.float32))
    h1, w1 = a.shape[:2]
    xs = np.concatenate([corners[:, 0], [0, w1]])
    ys = np.concatenate([corners[:, 1], [0, h1]])
    x0, y0 = int(np.floor(xs.min())), int(np.floor(ys.min()))
    x1, y1 = int(np.ceil(xs.max())), int(np.ceil(ys.max()))
    shift = ProjectiveTransform((1, 0, -x0, 0, 1, -y0, 0, 0))
    M = (shift @ Hinv).to_matrix(np.float64)
    size = (x1 - x0, y1 - y0)
    canvas = cv2.warpPerspective(b, M, size, flags=cv2.INTER_LINEAR, borderMode=cv2.BORDER_CONSTANT)
    canvas[-y0: -y0 + h1, -x0: -x0 + w1] = a
    return canvas


def _write_json(path: Optional[Path], row: Dict) -> None:
    text = json.dumps(row, indent=2)
    if path is None:
        sys.stdout.write(text + "\n")
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text + "\n")


def _write_image(path: Path, img: np.ndarray) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if not cv2.imwrite(str(path), img):
        raise RuntimeError(f"Cannot write image: {path}")


# -----------------------------
# CLI
# -----------------------------

def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Align two overlapping images with a RANSAC homography")
    ap.add_argument("image1", help="reference image (path or http(s) URL)")
    ap.add_argument("image2", help="image to align onto the reference")
    ap.add_argument("--config", default=None, help="YAML parameters (default: built-in defaults)")
    ap.add_argument("--out", default=None, help="JSON result path (default: stdout)")
    ap.add_argument("--pairs-out", default=None, help="Write a side-by-side overlay of inlier pairs")
    ap.add_argument("--warp-out", default=None, help="Write image2 reprojected onto image1")
    ap.add_argument("--seed", type=int, default=None, help="Override RANSAC seed")
    ap.add_argument("--threshold", type=float, default=None, help="Override RANSAC inlier threshold")
    ap.add_argument("--log-level", default=None)
    args = ap.parse_args(argv)

    cfg = AlignmentConfig.from_yaml(args.config) if args.config else AlignmentConfig()
    if args.seed is not None:
        cfg.ransac.seed = args.seed
    if args.threshold is not None:
        cfg.ransac.threshold = args.threshold
    setup_logging(args.log_level or cfg.logging.level, cfg.logging.format, force=True)

    frame1 = load_image(args.image1)
    frame2 = load_image(args.image2)
    log.info("images loaded", extra={"extra": {"image1": frame1.to_meta(), "image2": frame2.to_meta()}})

    run = align(frame1, frame2, cfg)
    row = {"ts": iso_now_ms(), "image1": frame1.source, "image2": frame2.source}
    row.update(run.to_dict())
    _write_json(Path(args.out) if args.out else None, row)

    est = run.estimate
    if est.status is Outcome.INSUFFICIENT_CONSENSUS:
        log.warning("no homography: insufficient consensus", extra={"extra": {"matches": len(run.matches)}})
        return EXIT_NO_CONSENSUS

    if args.pairs_out:
        p1 = [run.matches.points1[i] for i in est.inliers]
        p2 = [run.matches.points2[i] for i in est.inliers]
        _write_image(Path(args.pairs_out), draw_pairs(frame1.frame, frame2.frame, p1, p2))
    if args.warp_out:
        _write_image(Path(args.warp_out), warp_onto(frame1.frame, frame2.frame, est.transform))
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
