"""
Unit tests for Settings loading and validation.

OFFLINE-FIRST: reads only the packaged config.yaml.
"""

from __future__ import annotations

import logging
from decimal import Decimal

import pytest
from pydantic import ValidationError

from ledger_sync.config.settings import Settings, _deep_merge, _warn_unknown_keys, get_settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "LEDGER_SYNC_ENV",
        "LEDGER_SYNC_RPC_URL",
        "LEDGER_SYNC_WS_URL",
        "LEDGER_SYNC_RPC_API_KEY",
        "LEDGER_SYNC_COMMITMENT",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestFromYaml:
    """Tests for Settings.from_yaml."""

    def test_packaged_defaults(self):
        settings = Settings.from_yaml()

        assert settings.env == "development"
        assert settings.rpc.commitment == "confirmed"
        assert settings.rpc.max_batch_size == 99
        assert settings.loader.chunk_size == 99
        assert settings.loader.polling_interval_seconds == Decimal("1.0")
        assert settings.subscriber.mode == "websocket"
        assert settings.validate_settings() == []

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("LEDGER_SYNC_RPC_URL", "https://rpc.example.com")
        monkeypatch.setenv("LEDGER_SYNC_WS_URL", "wss://rpc.example.com")
        monkeypatch.setenv("LEDGER_SYNC_RPC_API_KEY", "secret")
        monkeypatch.setenv("LEDGER_SYNC_COMMITMENT", " Finalized ")

        settings = Settings.from_yaml()

        assert settings.rpc.http_url == "https://rpc.example.com"
        assert settings.rpc.ws_url == "wss://rpc.example.com"
        assert settings.rpc.api_key == "secret"
        assert settings.rpc.commitment == "finalized"

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
        assert get_settings("staging").env == "staging"


class TestValidation:
    """Tests for validate_settings and field constraints."""

    def test_bad_commitment_and_mode(self):
        settings = Settings(rpc={"commitment": "soon"}, subscriber={"mode": "carrier-pigeon"})
        errors = settings.validate_settings()

        assert any("rpc.commitment" in e for e in errors)
        assert any("subscriber.mode" in e for e in errors)

    def test_bad_urls(self):
        settings = Settings(rpc={"http_url": "ftp://node", "ws_url": "http://node"})
        errors = settings.validate_settings()

        assert any("http_url" in e for e in errors)
        assert any("ws_url" in e for e in errors)

    def test_ws_url_ignored_in_polling_mode(self):
        settings = Settings(rpc={"ws_url": ""}, subscriber={"mode": "polling"})
        assert settings.validate_settings() == []

    def test_chunk_size_above_batch_limit(self):
        settings = Settings(rpc={"max_batch_size": 10}, loader={"chunk_size": 50})
        assert any("chunk_size" in e for e in settings.validate_settings())

    def test_field_constraints(self):
        with pytest.raises(ValidationError):
            Settings(rpc={"max_batch_size": 150})
        with pytest.raises(ValidationError):
            Settings(loader={"polling_interval_seconds": 0})


class TestHelpers:
    """Tests for merge and unknown-key helpers."""

    def test_deep_merge(self):
        merged = _deep_merge({"rpc": {"http_url": "a", "commitment": "confirmed"}}, {"rpc": {"http_url": "b"}})
        assert merged == {"rpc": {"http_url": "b", "commitment": "confirmed"}}

    def test_unknown_keys_warned(self, caplog):
        with caplog.at_level(logging.WARNING, logger="ledger_sync.config.settings"):
            _warn_unknown_keys({"rpc": {"htp_url": "x"}}, Settings)

        assert "rpc.htp_url" in caplog.text

    def test_removed_testing_mode_key_is_unknown(self, caplog):
        with caplog.at_level(logging.WARNING, logger="ledger_sync.config.settings"):
            _warn_unknown_keys({"testing_mode": True, "logging": {"level": "DEBUG"}}, Settings)

        assert "testing_mode" in caplog.text
        assert "logging.level" not in caplog.text
