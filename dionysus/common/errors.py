"""
Error taxonomy for Dionysus.

- TransientError: network/timeout/unreachable dependency, eligible for retry
- InvalidInputError: malformed input or missing field, never retried
- GenerationError: model failure while answering, always surfaced
- SyncError / InvalidTransitionError: operation-level failures surfaced to callers
"""

import asyncio
from typing import Optional

import httpx
from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError


class DionysusError(Exception):
    """Base exception for Dionysus errors."""
    pass


class TransientError(DionysusError):
    """A failure expected to resolve on retry."""
    pass


class InvalidInputError(DionysusError):
    """Malformed input or a missing required field."""
    pass


class NotFoundError(DionysusError):
    """Requested entity does not exist."""
    pass


class HistoryProviderError(DionysusError):
    """Permanent failure from the remote history provider."""
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class SyncError(DionysusError):
    """Commit sync aborted; no partial result is returned."""
    user_message = "Could not sync commits, try again."


class GenerationError(DionysusError):
    """Language model could not produce a grounded answer."""
    pass


class TranscriptionError(DionysusError):
    """Speech-to-text failed for a meeting recording."""
    pass


class InvalidTransitionError(DionysusError):
    """Job state transition rejected."""
    def __init__(self, message: str, current: Optional[str] = None, target: Optional[str] = None):
        self.current = current
        self.target = target
        super().__init__(message)


# Substrings that mark a dependency as temporarily unreachable
_TRANSIENT_MARKERS = (
    "can't reach",
    "unreachable",
    "connection",
    "timeout",
    "timed out",
)

_TRANSIENT_TYPES = (
    TransientError,
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
    httpx.TransportError,
    OperationalError,
    InterfaceError,
    DisconnectionError,
)


def is_transient(error: BaseException) -> bool:
    """
    Classify an error as transient (retryable) or not.

    Validation errors are never transient, even if their message happens to
    mention a connection.
    """
    if isinstance(error, (InvalidInputError, NotFoundError, InvalidTransitionError, HistoryProviderError)):
        return False
    if isinstance(error, _TRANSIENT_TYPES):
        return True
    message = str(error).lower()
    return any(marker in message for marker in _TRANSIENT_MARKERS)
