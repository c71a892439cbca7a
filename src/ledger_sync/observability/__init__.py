"""Observability: logging."""

from ledger_sync.observability.logging import (
    LOG_TAG_RPC,
    LOG_TAG_SYNC,
    get_logger,
    setup_logging,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "LOG_TAG_SYNC",
    "LOG_TAG_RPC",
]
