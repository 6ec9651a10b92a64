"""
Protocol helpers - Translates between client frames and relay events.

Client Protocol (text frames):
  - Each frame is one JSON object with at least a string 'type' field
  - Frames may arrive as str or UTF-8 bytes

Upstream Protocol (Realtime API, text frames):
  - Outgoing events carry 'event_id' and 'type' plus the client payload
  - Incoming events are JSON objects, forwarded to the client verbatim
"""

import json
import secrets
import string
from typing import Any, Dict, Union

EVENT_ID_ALPHABET = string.ascii_letters + string.digits
EVENT_ID_LENGTH = 21


# =============================================================================
# Client -> Upstream
# =============================================================================

def parse_client_event(raw: Union[str, bytes, bytearray]) -> Dict[str, Any]:
    """
    Parse a raw client frame into an event.

    Args:
        raw: Frame received from the client socket

    Returns:
        Decoded event object

    Raises:
        ValueError: If the frame is not JSON, not an object, or has no
                    string 'type' field
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ValueError(f"Frame is not valid UTF-8: {e}")

    try:
        event = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON: {e}")

    if not isinstance(event, dict):
        raise ValueError(f"Expected a JSON object, got {type(event).__name__}")

    event_type = event.get("type")
    if not isinstance(event_type, str) or not event_type:
        raise ValueError("Event has no 'type' field")

    return event


def build_upstream_event(event_type: str, event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Build the event sent upstream.

    A fresh 'event_id' is generated; fields from the caller's event
    (including its own 'event_id') take precedence.
    """
    payload = {"event_id": generate_event_id("evt_"), "type": event_type}
    payload.update(event or {})
    return payload


def generate_event_id(prefix: str = "evt_", length: int = EVENT_ID_LENGTH) -> str:
    """Generate an event id such as 'evt_XXXXXXXXXXXXXXXXX' ('length' chars in total)."""
    size = max(length - len(prefix), 0)
    return prefix + "".join(secrets.choice(EVENT_ID_ALPHABET) for _ in range(size))


# =============================================================================
# Upstream -> Client
# =============================================================================

def serialize_server_event(event: Dict[str, Any]) -> str:
    """Encode a server event as a text frame for the client."""
    return json.dumps(event)


def decode_server_frame(raw: Union[str, bytes]) -> Dict[str, Any]:
    """
    Decode a frame received from the upstream service.

    Raises:
        ValueError: If the frame is not a JSON object
    """
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    event = json.loads(raw)
    if not isinstance(event, dict):
        raise ValueError(f"Expected a JSON object, got {type(event).__name__}")
    return event


# =============================================================================
# Logging
# =============================================================================

def mask_secret(secret: str, visible: int = 3) -> str:
    """Return a log-safe form of a secret: its first characters followed by '...'."""
    if not secret:
        return "<unset>"
    return f"{secret[:visible]}..."


def preview(raw: Union[str, bytes], limit: int = 200) -> str:
    """Shorten a frame for log output."""
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, (bytes, bytearray)) else str(raw)
    if len(text) > limit:
        return text[:limit] + f"... ({len(text)} chars)"
    return text
