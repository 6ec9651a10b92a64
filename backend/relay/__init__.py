"""
Realtime Relay - Pairs each client WebSocket with its own Realtime API connection.

Components:
- RelayServer: Accepts clients and runs one session per connection
- RelaySession: Per-connection state machine and forwarding loops
- Adapters: Client (WebSocket server) and Upstream (Realtime API client)
- Error classifier: Fatal vs recoverable upstream errors
"""

from .server import RelayServer
from .session import RelaySession
from .config import RelayConfig
from .data_types import RelayState, ServerEvent, UpstreamClosed, UpstreamError
from .adapters.base import BaseClientAdapter, BaseUpstreamAdapter
from .adapters.websocket_adapter import WebSocketClientAdapter
from .adapters.realtime_adapter import RealtimeUpstreamAdapter
from .classifier import classify_error, is_fatal_error

__all__ = [
    'RelayServer',
    'RelaySession',
    'RelayConfig',
    'RelayState',
    'ServerEvent',
    'UpstreamClosed',
    'UpstreamError',
    'BaseClientAdapter',
    'BaseUpstreamAdapter',
    'WebSocketClientAdapter',
    'RealtimeUpstreamAdapter',
    'classify_error',
    'is_fatal_error',
]
