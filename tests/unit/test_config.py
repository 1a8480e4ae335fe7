"""
Unit tests for run configuration and logging setup
"""

import json
import logging

import pytest
import os
import sys

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from alignment.config import AlignmentConfig
from alignment.corners import HarrisCornerDetector
from alignment.correlate import CorrelationMatcher
from alignment.ransac import RansacHomographyEstimator
from common.logging_setup import JsonFormatter, TextFormatter, setup_logging


class TestAlignmentConfig:
    """Test cases for YAML parameter loading"""

    def test_defaults(self):
        cfg = AlignmentConfig()
        assert cfg.harris.k == 0.04
        assert cfg.correlation.window_size == 9
        assert cfg.ransac.threshold == 0.001
        assert cfg.ransac.max_trials == 1000
        assert cfg.logging.format == "json"

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "params.yaml"
        path.write_text(
            "harris:\n"
            "  threshold: 500\n"
            "  suppression: 2\n"
            "correlation:\n"
            "  window_size: 7\n"
            "ransac:\n"
            "  seed: 3\n"
            "  max_trials: 50\n"
        )
        cfg = AlignmentConfig.from_yaml(str(path))
        assert cfg.harris.threshold == 500
        assert cfg.harris.sigma == 1.4
        assert cfg.correlation.window_size == 7
        assert cfg.ransac.seed == 3
        assert cfg.logging.level == "INFO"

    def test_empty_yaml(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert AlignmentConfig.from_yaml(str(path)) == AlignmentConfig()

    def test_unknown_key(self):
        with pytest.raises(ValueError, match="unknown"):
            AlignmentConfig.from_dict({"ransac": {"treshold": 0.1}})

    def test_build_components(self):
        cfg = AlignmentConfig.from_dict({"ransac": {"seed": 9, "threshold": 0.01}, "harris": {"suppression": 4}})
        det = cfg.harris.build()
        matcher = cfg.correlation.build()
        est = cfg.ransac.build()
        assert isinstance(det, HarrisCornerDetector) and det.suppression == 4
        assert isinstance(matcher, CorrelationMatcher) and matcher.window_size == 9
        assert isinstance(est, RansacHomographyEstimator)
        assert est.seed == 9 and est.threshold == 0.01

    def test_even_window_fails_at_build(self):
        cfg = AlignmentConfig.from_dict({"correlation": {"window_size": 8}})
        with pytest.raises(ValueError):
            cfg.correlation.build()

    def test_shipped_params_file(self):
        cfg = AlignmentConfig.from_yaml(os.path.join(project_root, "config", "params.yaml"))
        assert cfg.ransac.seed == 0
        assert cfg.correlation.max_distance == 0


def _record(msg: str = "hello", **extra) -> logging.LogRecord:
    rec = logging.LogRecord("alignment.test", logging.INFO, __file__, 1, msg, None, None)
    if extra:
        rec.extra = extra
    return rec


class TestLogging:
    """Test cases for structured log output"""

    def test_json_formatter(self):
        line = JsonFormatter().format(_record(inliers=12, status="ok"))
        payload = json.loads(line)
        assert payload["lvl"] == "INFO"
        assert payload["name"] == "alignment.test"
        assert payload["msg"] == "hello"
        assert payload["extra"] == {"inliers": 12, "status": "ok"}

    def test_json_formatter_without_extra(self):
        payload = json.loads(JsonFormatter().format(_record()))
        assert "extra" not in payload

    def test_text_formatter(self):
        line = TextFormatter().format(_record(trials=7))
        assert "INFO alignment.test: hello" in line
        assert line.endswith("trials=7")

    def test_setup_logging_levels(self, monkeypatch):
        root = logging.getLogger()
        saved = (list(root.handlers), root.level)
        monkeypatch.delenv("LOG_FORMAT", raising=False)
        try:
            setup_logging("debug", "text", force=True)
            assert root.level == logging.DEBUG
            assert isinstance(root.handlers[0].formatter, TextFormatter)

            setup_logging("error")  # already configured: no change
            assert root.level == logging.DEBUG

            monkeypatch.setenv("LOG_LEVEL", "WARNING")
            setup_logging(force=True)
            assert root.level == logging.WARNING
            assert isinstance(root.handlers[0].formatter, JsonFormatter)
        finally:
            root.handlers[:] = saved[0]
            root.setLevel(saved[1])
