"""
Error taxonomy for dashsync.

Failures are captured into cache entries and mutation state rather than
raised across the cache boundary. Views decide how to present them.

- TransportFailure: network/HTTP error from the remote data client
- ValidationFailure: the caller supplied an unusable query key
"""

from __future__ import annotations

from typing import Any, Optional


class DashSyncError(Exception):
    """Base class for all dashsync errors."""


class TransportFailure(DashSyncError):
    """
    Error raised when a remote operation fails.

    Attributes:
        status: HTTP-like status code (0 when no response was received)
        message: Human-readable message suitable for inline display
        body: Decoded error body returned by the server, if any
    """

    def __init__(
        self,
        message: str,
        status: int = 0,
        body: Optional[Any] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.body = body

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status={self.status}, message={self.message!r})"


class ValidationFailure(DashSyncError):
    """
    Error raised when a query key cannot be used.

    This includes:
    - Empty keys
    - Keys containing non-primitive elements
    """

    def __init__(self, message: str, key: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.key = key
