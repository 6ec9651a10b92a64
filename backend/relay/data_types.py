"""
Data types for the Realtime Relay.

Defines the session state machine and the tagged events emitted by
upstream adapters.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union


class RelayState(Enum):
    """
    Lifecycle of a relay session.

    INIT -> UPSTREAM_CONNECTING -> UPSTREAM_CONNECTED -> CLOSED
    CLOSED is terminal and reachable from any state.
    """
    INIT = "init"
    UPSTREAM_CONNECTING = "upstream_connecting"
    UPSTREAM_CONNECTED = "upstream_connected"
    CLOSED = "closed"


class ErrorSeverity(Enum):
    """Outcome of classifying an upstream error."""
    FATAL = "fatal"
    RECOVERABLE = "recoverable"


@dataclass
class ServerEvent:
    """
    Event produced by the upstream service, destined for the client.

    Attributes:
        event: Decoded event object (always carries a 'type' field)
    """
    event: Dict[str, Any] = field(default_factory=dict)

    @property
    def type(self) -> Optional[str]:
        return self.event.get("type")


@dataclass
class UpstreamClosed:
    """
    Upstream connection has closed.

    Attributes:
        code: WebSocket close code, if known
        reason: Close reason, if any
    """
    code: Optional[int] = None
    reason: str = ""


@dataclass
class UpstreamError:
    """
    Error reported asynchronously by the upstream connection.

    Attributes:
        description: Human-readable description, used for classification
    """
    description: str


UpstreamEvent = Union[ServerEvent, UpstreamClosed, UpstreamError]
