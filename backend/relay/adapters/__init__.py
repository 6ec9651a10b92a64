"""
Relay Adapters - Connection interfaces used by relay sessions.

Available Adapters:
- BaseClientAdapter: Abstract interface for the inbound client connection
- BaseUpstreamAdapter: Abstract interface for the upstream realtime service
- WebSocketClientAdapter: websockets server connection as a client adapter
- RealtimeUpstreamAdapter: Realtime API WebSocket client as an upstream adapter
"""

from .base import BaseClientAdapter, BaseUpstreamAdapter
from .websocket_adapter import WebSocketClientAdapter
from .realtime_adapter import RealtimeUpstreamAdapter

__all__ = [
    'BaseClientAdapter',
    'BaseUpstreamAdapter',
    'WebSocketClientAdapter',
    'RealtimeUpstreamAdapter',
]
