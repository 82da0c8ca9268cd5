"""
Tests for log.py and rate.py - log line format, daily file and call counters.
"""

import re

import pytest

import pm.utils.log as log_module
from pm.utils import rate
from pm.utils.log import format_line, log_line


@pytest.fixture(autouse=True)
def fresh_rate():
    rate.rate_reset()
    yield
    rate.rate_reset()


class TestLogLine:
    def test_format(self):
        line = format_line("  POINTS | new=2  ", "WARN")
        assert re.match(r"^\d{4}-\d{2}-\d{2} // \d{2}:\d{2}:\d{2}[+-]\d{2}:\d{2} - WARN \| POINTS \| new=2$", line)

    def test_writes_daily_file(self, tmp_path, monkeypatch, capsys):
        monkeypatch.setattr(log_module, "LOG_DIR", tmp_path)
        log_line("hello")
        (f,) = list(tmp_path.iterdir())
        assert f.name.startswith("client-") and f.name.endswith(".log")
        assert f.read_text(encoding="utf-8").rstrip().endswith("INFO | hello")
        assert "INFO | hello" in capsys.readouterr().out


class TestRate:
    def test_counts_per_endpoint(self):
        rate.rate_inc("/api/v1/points", True)
        rate.rate_inc("/api/v1/points", False)
        rate.rate_inc("/api/v1/upvote", True)
        assert rate.rate_snapshot() == {"/api/v1/points": (1, 1), "/api/v1/upvote": (1, 0)}

    def test_logs_once_per_window(self, capsys):
        assert rate.rate_maybe_log(now=1000.0) is False  # opens the window
        rate.rate_inc("/api/v1/points", True)
        assert rate.rate_maybe_log(now=1000.0 + rate.RATE_WINDOW_S - 1) is False
        assert rate.rate_maybe_log(now=1000.0 + rate.RATE_WINDOW_S) is True
        assert "RATE | window=60m | /api/v1/points=1 ok/0 fail" in capsys.readouterr().out
        assert rate.rate_snapshot() == {}
