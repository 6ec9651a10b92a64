"""
Error Classifier - decides whether an upstream error ends the session.

Connection-level and authentication-level failures mean the upstream link
cannot deliver anything for the rest of the session, so they are fatal.
Anything else (a malformed event, a transient send error) is logged and
the session keeps running.
"""

from typing import Iterable

from relay.data_types import ErrorSeverity

FATAL_ERROR_INDICATORS = ("connection", "authentication")


def is_fatal_error(description, indicators: Iterable[str] = FATAL_ERROR_INDICATORS) -> bool:
    """
    Check whether an upstream error description indicates a fatal failure.

    Args:
        description: Error description (str) or an exception
        indicators: Substrings marking a fatal error (case-insensitive)

    Returns:
        True if the error should close the session
    """
    text = str(description or "").lower()
    return any(indicator.lower() in text for indicator in indicators)


def classify_error(description, indicators: Iterable[str] = FATAL_ERROR_INDICATORS) -> ErrorSeverity:
    """Classify an upstream error as FATAL or RECOVERABLE."""
    if is_fatal_error(description, indicators):
        return ErrorSeverity.FATAL
    return ErrorSeverity.RECOVERABLE
