"""
Unit tests for logging filters and formatters.
"""

from __future__ import annotations

import json
import logging

import pytest

from ledger_sync.config.settings import Settings
from ledger_sync.observability.logging import JSONFormatter, SensitiveDataFilter, SyncLogFormatter, setup_logging


def _record(msg: str, *args, level: int = logging.INFO, **extra) -> logging.LogRecord:
    record = logging.LogRecord("ledger_sync.test", level, __file__, 1, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestSensitiveDataFilter:
    """Tests for secret masking."""

    def test_masks_api_key_query_param(self):
        record = _record("Could not connect to wss://node?api-key=abc123 within 10s")

        assert SensitiveDataFilter().filter(record) is True
        assert record.getMessage() == "Could not connect to wss://node?api-key=***MASKED*** within 10s"

    def test_masks_formatted_args(self):
        record = _record("Authorization: %s", "Bearer abcdefghijklmnopqrstuvwxyz")

        SensitiveDataFilter().filter(record)

        assert "abcdefghijklmnop" not in record.getMessage()
        assert record.args == ()

    def test_leaves_clean_messages(self):
        record = _record("[SYNC] loaded %d accounts", 3)

        SensitiveDataFilter().filter(record)

        assert record.args == (3,)


class TestFormatters:
    """Tests for JSON and console formatters."""

    def test_json_formatter_extra_fields(self):
        record = _record("account changed", level=logging.WARNING, address="A", slot=5, source="protocol")

        data = json.loads(JSONFormatter().format(record))

        assert data["level"] == "WARNING"
        assert data["message"] == "account changed"
        assert data["address"] == "A"
        assert data["slot"] == 5
        assert data["source"] == "protocol"
        assert "error_code" not in data

    def test_console_formatter_strips_tag(self):
        output = SyncLogFormatter().format(_record("[RPC] account stream connected"))

        assert "account stream connected" in output
        assert "[RPC]" in output
        assert output.count("[RPC]") == 1


class TestSetupLogging:
    """Tests for setup_logging()."""

    @pytest.fixture(autouse=True)
    def _restore_root_logger(self):
        root = logging.getLogger()
        level, handlers = root.level, root.handlers[:]
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_uses_configured_level(self):
        root = setup_logging(Settings(logging={"level": "WARNING"}))

        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert root.handlers[0].level == logging.WARNING
        assert isinstance(root.handlers[0].formatter, SyncLogFormatter)

    def test_unknown_level_falls_back_to_info(self):
        root = setup_logging(Settings(logging={"level": "chatty"}))

        assert root.level == logging.INFO
