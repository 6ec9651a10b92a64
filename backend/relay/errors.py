"""
Exception types for the Realtime Relay.
"""


class RelayError(Exception):
    """Base class for relay errors."""


class ConfigError(RelayError):
    """Raised when required configuration is missing or invalid."""


class UpstreamSendError(RelayError, ConnectionError):
    """
    Raised by an upstream adapter when an event cannot be delivered.

    The message is the error description that the session hands to the
    error classifier.
    """
