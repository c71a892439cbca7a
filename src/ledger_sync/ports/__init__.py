"""
Ports: Abstract interfaces for external dependencies.

This follows the Ports & Adapters (Hexagonal) architecture pattern.
Synchronization logic depends only on these interfaces, not on concrete transports.
"""

from ledger_sync.ports.account_stream import AccountStreamPort
from ledger_sync.ports.decoder import AccountDecoderPort
from ledger_sync.ports.event_bus import EventBusPort
from ledger_sync.ports.remote_reader import RemoteReaderPort

__all__ = ["RemoteReaderPort", "AccountStreamPort", "AccountDecoderPort", "EventBusPort"]
