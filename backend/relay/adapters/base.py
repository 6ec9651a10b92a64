"""
Base adapter interfaces for the Realtime Relay.

Provides protocol-agnostic abstractions for:
- Client communication (the inbound WebSocket from the browser)
- Upstream communication (the outbound Realtime API connection)
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Union

from relay.data_types import UpstreamEvent


class BaseClientAdapter(ABC):
    """
    Abstract interface for the inbound client connection.

    Responsibilities:
    - Deliver raw client frames in arrival order
    - Send text frames to the client
    - Report closure (recv() returns None)
    """

    @abstractmethod
    async def recv(self) -> Optional[Union[str, bytes]]:
        """
        Receive the next raw frame from the client.

        Returns:
            Frame if received, None once the connection is closed
        """
        pass

    @abstractmethod
    async def send(self, text: str):
        """
        Send a text frame to the client.

        Args:
            text: Encoded event

        Raises:
            ConnectionError: If send fails
        """
        pass

    @abstractmethod
    async def close(self):
        """Close the connection. Must be safe to call more than once."""
        pass


class BaseUpstreamAdapter(ABC):
    """
    Abstract interface for the upstream realtime service.

    Responsibilities:
    - Open and close the upstream connection
    - Send events to the upstream service
    - Deliver upstream events as tagged variants
      (ServerEvent, UpstreamClosed, UpstreamError)
    """

    @abstractmethod
    async def connect(self, timeout: Optional[float] = 10.0) -> bool:
        """
        Connect to the upstream service.

        Args:
            timeout: Connection timeout in seconds (None: no limit)

        Returns:
            True if connection succeeded, False otherwise
        """
        pass

    @abstractmethod
    async def send(self, event_type: str, event: Dict[str, Any]):
        """
        Send an event upstream.

        Args:
            event_type: Event type
            event: Full event object

        Raises:
            UpstreamSendError: If the event could not be delivered
        """
        pass

    @abstractmethod
    async def recv_event(self) -> UpstreamEvent:
        """
        Receive the next upstream event.

        Returns:
            ServerEvent, UpstreamClosed or UpstreamError
        """
        pass

    @abstractmethod
    def is_connected(self) -> bool:
        """Check if the upstream connection is open."""
        pass

    @abstractmethod
    async def disconnect(self):
        """Close the upstream connection. Must be safe to call more than once."""
        pass
