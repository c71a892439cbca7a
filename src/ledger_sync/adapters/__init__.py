"""
Adapters: Concrete implementations of ports.

This layer contains all external integrations:
- RPC adapters (JSON-RPC HTTP reader, pubsub websocket stream)
- Decoding adapters (decoder registry)
- Messaging adapters (EventBus)
"""
