"""JSON-RPC transport adapters."""

from ledger_sync.adapters.rpc.http_reader import JsonRpcAccountReader
from ledger_sync.adapters.rpc.ws_stream import WebSocketAccountStream

__all__ = ["JsonRpcAccountReader", "WebSocketAccountStream"]
