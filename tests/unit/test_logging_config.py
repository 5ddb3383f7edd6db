"""Unit tests for structlog setup."""

from __future__ import annotations

import json

import pytest
import structlog

from afont.config import LoggingSettings
from afont.logging_config import setup_logging


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()


class TestSetupLogging:
    def test_json_output_to_stderr(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging(LoggingSettings(level="INFO", format="json"))
        structlog.get_logger().info("refresh_complete", entry_count=3)
        captured = capsys.readouterr()
        assert captured.out == ""
        record = json.loads(captured.err.strip().splitlines()[-1])
        assert record["event"] == "refresh_complete"
        assert record["entry_count"] == 3
        assert record["level"] == "info"

    def test_level_filters_lower_events(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging(LoggingSettings(level="WARNING", format="json"))
        structlog.get_logger().info("http_retry")
        assert capsys.readouterr().err == ""

    def test_text_format(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging(LoggingSettings(level="DEBUG", format="text"))
        structlog.get_logger().debug("page_changed", page=2)
        err = capsys.readouterr().err
        assert "page_changed" in err
        assert "page=2" in err
