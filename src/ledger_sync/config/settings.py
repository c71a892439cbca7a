"""
Settings management using Pydantic.

Loads configuration from YAML files and environment variables.
Environment variables override YAML values.
"""

from __future__ import annotations

import logging
import os
from decimal import Decimal
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

VALID_COMMITMENTS = ("processed", "confirmed", "finalized", "recent")
VALID_SUBSCRIPTION_MODES = ("websocket", "polling")


class RpcSettings(BaseModel):
    """Remote node connection settings."""

    http_url: str = "http://127.0.0.1:8899"
    ws_url: str = "ws://127.0.0.1:8900"
    api_key: str = Field(default="", description="Optional node api key, sent as `api-key` query parameter")
    commitment: str = "confirmed"
    request_timeout_seconds: Decimal = Decimal("30.0")
    connect_timeout_seconds: Decimal = Decimal("10.0")
    max_connections: int = 20
    # getMultipleAccounts accepts at most 100 keys; 99 leaves room for node-side accounting
    max_batch_size: int = Field(default=99, ge=1, le=99)


class LoaderSettings(BaseModel):
    """Shared bulk loader settings."""

    polling_interval_seconds: Decimal = Field(default=Decimal("1.0"), gt=Decimal("0"))
    chunk_size: int = Field(default=99, ge=1, le=99)


class SubscriberSettings(BaseModel):
    """Single-account subscriber settings."""

    mode: str = "websocket"  # "websocket" (push) or "polling" (bulk loader)
    default_poll_rate_seconds: Decimal = Field(default=Decimal("1.0"), gt=Decimal("0"))


class LoggingSettings(BaseModel):
    """Logging settings."""

    level: str = "INFO"
    file_enabled: bool = False
    log_dir: str = "logs"
    json_enabled: bool = False
    json_file: str = "logs/ledger_sync_json.jsonl"
    # Rotate JSONL log to prevent unbounded growth (disk + I/O).
    # Set to 0 to disable rotation.
    json_max_bytes: int = 50_000_000
    json_backup_count: int = 3


class Settings(BaseSettings):
    """
    Main settings container.

    Loads from YAML file based on environment, then applies env var overrides.
    """

    env: str = Field(default="development", alias="LEDGER_SYNC_ENV")

    rpc: RpcSettings = Field(default_factory=RpcSettings)
    loader: LoaderSettings = Field(default_factory=LoaderSettings)
    subscriber: SubscriberSettings = Field(default_factory=SubscriberSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = {
        "env_prefix": "LEDGER_SYNC_",
        "env_nested_delimiter": "__",
        "extra": "ignore",
        "populate_by_name": True,
    }

    def validate_settings(self) -> list[str]:
        """
        Validate settings that pydantic field constraints cannot express.

        Returns:
            List of validation error messages. Empty list means all validations passed.
        """
        errors = []

        if self.rpc.commitment.lower() not in VALID_COMMITMENTS:
            errors.append(f"rpc.commitment must be one of {VALID_COMMITMENTS}, got {self.rpc.commitment!r}")

        if self.subscriber.mode.lower() not in VALID_SUBSCRIPTION_MODES:
            errors.append(f"subscriber.mode must be one of {VALID_SUBSCRIPTION_MODES}, got {self.subscriber.mode!r}")

        if not self.rpc.http_url.startswith(("http://", "https://")):
            errors.append("rpc.http_url must be an http(s) URL")

        if self.subscriber.mode.lower() == "websocket" and not self.rpc.ws_url.startswith(("ws://", "wss://")):
            errors.append("rpc.ws_url must be a ws(s) URL when subscriber.mode is 'websocket'")

        if self.loader.chunk_size > self.rpc.max_batch_size:
            errors.append(
                f"loader.chunk_size ({self.loader.chunk_size}) exceeds rpc.max_batch_size "
                f"({self.rpc.max_batch_size})"
            )

        return errors

    @classmethod
    def from_yaml(cls, env: str = "development") -> Settings:
        """
        Load settings from config.yaml, deep-merged with `<env>.yaml` when present.
        """
        config_dir = Path(__file__).parent
        data: dict = {}

        for yaml_file in (config_dir / "config.yaml", config_dir / f"{env}.yaml"):
            if yaml_file.exists():
                with open(yaml_file, encoding="utf-8") as f:
                    data = _deep_merge(data, yaml.safe_load(f) or {})

        data.setdefault("rpc", {})
        if os.getenv("LEDGER_SYNC_RPC_URL"):
            data["rpc"]["http_url"] = os.getenv("LEDGER_SYNC_RPC_URL")
        if os.getenv("LEDGER_SYNC_WS_URL"):
            data["rpc"]["ws_url"] = os.getenv("LEDGER_SYNC_WS_URL")
        if os.getenv("LEDGER_SYNC_RPC_API_KEY"):
            data["rpc"]["api_key"] = os.getenv("LEDGER_SYNC_RPC_API_KEY")
        if os.getenv("LEDGER_SYNC_COMMITMENT"):
            data["rpc"]["commitment"] = os.getenv("LEDGER_SYNC_COMMITMENT").strip().lower()

        data["env"] = env

        # Warn about unknown keys before creating model (helps catch typos in config.yaml)
        _warn_unknown_keys(data, cls)

        return cls(**data)


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dicts, override wins on conflicts."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _collect_all_keys(data: dict, prefix: str = "") -> set[str]:
    """
    Recursively collect all keys from a nested dict.

    Returns keys in dot-notation format (e.g., "loader.chunk_size").
    """
    keys = set()
    for key, value in data.items():
        full_key = f"{prefix}.{key}" if prefix else key
        keys.add(full_key)
        if isinstance(value, dict):
            keys.update(_collect_all_keys(value, full_key))
    return keys


def _collect_model_fields(model_class: type[BaseModel], prefix: str = "") -> set[str]:
    """
    Recursively collect all field names from a Pydantic model.

    Returns field names in dot-notation format.
    """
    fields = set()
    for field_name, field_info in model_class.model_fields.items():
        full_key = f"{prefix}.{field_name}" if prefix else field_name
        fields.add(full_key)

        annotation = field_info.annotation
        if isinstance(annotation, type) and issubclass(annotation, BaseModel):
            fields.update(_collect_model_fields(annotation, full_key))

    return fields


def _warn_unknown_keys(data: dict, model_class: type[BaseModel]) -> None:
    """
    Warn about unknown keys in YAML config that don't match model fields.

    This prevents silent config bugs where typos in key names are ignored.
    """
    yaml_keys = _collect_all_keys(data)
    model_fields = _collect_model_fields(model_class)

    unknown_keys = yaml_keys - model_fields

    if unknown_keys:
        logger.warning(
            f"Unknown configuration keys found (will be ignored due to extra='ignore'): {sorted(unknown_keys)}. "
            f"This may indicate typos in config.yaml or outdated config keys."
        )


@lru_cache(maxsize=4)
def get_settings(env: str | None = None) -> Settings:
    """Get cached settings instance."""
    resolved_env = env or os.getenv("LEDGER_SYNC_ENV", "development")
    return Settings.from_yaml(env=resolved_env)
