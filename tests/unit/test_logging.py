"""Test structured logging setup."""

import json
import logging

import pytest

from edge_analytics.observability.logger import (
    get_logger,
    get_trace_id,
    log_context,
    new_trace_id,
    setup_logging,
)


pytestmark = pytest.mark.usefixtures("reset_logging")


def _last_entry(capsys) -> dict:
    lines = capsys.readouterr().err.strip().splitlines()
    return json.loads(lines[-1])


class TestTraceId:
    def test_new_trace_id_is_current(self):
        tid = new_trace_id()
        assert len(tid) == 16
        assert get_trace_id() == tid


class TestSetupLogging:
    def test_stdlib_records_rendered_as_json(self, capsys):
        setup_logging(level="DEBUG", format="json")
        tid = new_trace_id()
        with log_context(source="market_data", generation=3):
            logging.getLogger("edge_analytics.pricing").warning("lookup failed")

        entry = _last_entry(capsys)
        assert entry["event"] == "lookup failed"
        assert entry["level"] == "warning"
        assert entry["logger"] == "edge_analytics.pricing"
        assert entry["source"] == "market_data"
        assert entry["generation"] == 3
        assert entry["trace_id"] == tid

    def test_context_unbound_after_block(self, capsys):
        setup_logging(level="INFO", format="json")
        with log_context(cycle=7):
            pass
        logging.getLogger("edge_analytics").info("after")
        assert "cycle" not in _last_entry(capsys)

    def test_level_filters(self, capsys):
        setup_logging(level="WARNING", format="json")
        logging.getLogger("edge_analytics").info("hidden")
        assert capsys.readouterr().err == ""

    def test_structlog_logger(self, capsys):
        setup_logging(level="INFO", format="json")
        get_logger("edge_analytics.cli").info("loaded", trades=3)
        entry = _last_entry(capsys)
        assert entry["event"] == "loaded"
        assert entry["trades"] == 3
