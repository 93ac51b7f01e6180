"""
Connection Pool Exception Types.
"""

from buslane.core.exceptions.base import BusLaneError


class ConnectionPoolError(BusLaneError):
    """Base exception for connection pool errors."""

    def __init__(self, message: str = "Connection pool error", details: dict | None = None):
        super().__init__(message=message, details=details)


class ConnectionPoolClosedError(ConnectionPoolError):
    """Raised when a client is requested from a pool that was already torn down."""

    def __init__(self, details: dict | None = None):
        super().__init__(
            message="Connection pool has been closed",
            details=details
        )
