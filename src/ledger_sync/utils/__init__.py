"""Shared utility helpers."""

from ledger_sync.utils.batching import chunked
from ledger_sync.utils.json_parser import dumps as json_dumps
from ledger_sync.utils.json_parser import loads as json_loads

__all__ = ["chunked", "json_loads", "json_dumps"]
