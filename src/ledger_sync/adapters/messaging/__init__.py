"""Messaging adapters."""

from ledger_sync.adapters.messaging.event_bus import InMemoryEventBus

__all__ = ["InMemoryEventBus"]
