"""
Tests for jw-common structured logging setup.
"""

from __future__ import annotations

import json

import pytest
import structlog

from jw_common.logging import configure_logging


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()


class TestConfigureLogging:

    def test_json_lines_carry_service(self, capsys) -> None:
        configure_logging("alerts", "INFO", json_output=True)
        structlog.get_logger().info("alert_dispatched", entity_id="1")

        line = json.loads(capsys.readouterr().out.strip())
        assert line["event"] == "alert_dispatched"
        assert line["service"] == "alerts"
        assert line["entity_id"] == "1"
        assert line["level"] == "info"
        assert "timestamp" in line

    def test_level_filters_debug(self, capsys) -> None:
        configure_logging("alerts", "INFO", json_output=True)
        structlog.get_logger().debug("alert_throttled")
        assert capsys.readouterr().out == ""

    def test_unknown_level_falls_back_to_info(self, capsys) -> None:
        configure_logging("alerts", "LOUD", json_output=True)
        log = structlog.get_logger()
        log.debug("hidden")
        log.info("shown")
        out = capsys.readouterr().out
        assert "hidden" not in out
        assert "shown" in out

    def test_console_renderer(self, capsys) -> None:
        configure_logging("alerts", "DEBUG", json_output=False)
        structlog.get_logger().warning("throttle_entry_corrupt", entity_id="7")
        out = capsys.readouterr().out
        assert "throttle_entry_corrupt" in out
        assert "entity_id" in out
