"""Account decoding adapters."""

from ledger_sync.adapters.decoding.registry import DecoderRegistry

__all__ = ["DecoderRegistry"]
