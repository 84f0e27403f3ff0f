"""
Base Exception Class

This module contains the base exception class that all other recordlink
exceptions inherit from. Specialized exceptions live in their themed modules.
"""

from typing import Any


class RecordLinkError(Exception):
    """
    Base exception for all resilience layer errors.

    All custom exceptions inherit from this class to enable:
    - Consistent error handling
    - Query ID correlation
    - Structured error logging

    Attributes:
        message: Error message
        query_id: Active query ID for correlation (if available)
        details: Additional error details (dict)

    Example:
        raise ServerError(
            "Record API returned 503",
            query_id=42,
            details={"status_code": 503, "path": "/api/collections/posts/records"}
        )
    """

    def __init__(
        self, message: str, query_id: int | None = None, details: dict[str, Any] | None = None
    ):
        self.message = message
        self.query_id = query_id
        self.details = (details or {}).copy()
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for logging.

        Returns:
            Dict with error_type, message, query_id, and details
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "query_id": self.query_id,
            "details": self.details,
        }

    def __repr__(self) -> str:
        details_str = f", details={self.details}" if self.details else ""
        query_id_str = f", query_id={self.query_id}" if self.query_id is not None else ""
        return f"{self.__class__.__name__}(message='{self.message}'{query_id_str}{details_str})"

    @classmethod
    def from_exception(
        cls,
        exc: Exception,
        message: str | None = None,
        query_id: int | None = None,
        **details
    ) -> "RecordLinkError":
        """
        Create an error of this class from another exception.

        Useful for wrapping third-party exceptions (httpx, asyncio) with context.

        Example:
            >>> try:
            ...     await client.get("/api/health")
            ... except httpx.ConnectError as e:
            ...     raise NetworkError.from_exception(e, path="/api/health")
        """
        error_message = message or str(exc) or exc.__class__.__name__
        error_details = {
            "original_error": exc.__class__.__name__,
            "original_message": str(exc),
            **details
        }
        return cls(error_message, query_id=query_id, details=error_details)


class ConfigurationError(RecordLinkError):
    """Raised when configuration is invalid or missing."""
    pass
