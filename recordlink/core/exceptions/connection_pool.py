"""
Connection Pool Exception Types.

Custom exceptions for logical connection slot management.
"""

from recordlink.core.exceptions.base import RecordLinkError


class ConnectionPoolError(RecordLinkError):
    """Base exception for connection pool errors."""

    def __init__(self, message: str = "Connection pool error", details: dict | None = None):
        super().__init__(message=message, details=details)


class NoSlotsAvailableError(ConnectionPoolError):
    """Raised when every slot in the pool is in use."""

    def __init__(self, pool_size: int, details: dict | None = None):
        super().__init__(
            message="No available connections in pool",
            details=details or {"pool_size": pool_size}
        )
