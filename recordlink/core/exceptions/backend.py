"""
Backend Exceptions

Failure classes of the remote record API. The split between retryable
(network, 5xx) and permanent (4xx) failures drives the query retry policy.
"""

from typing import Any

from recordlink.core.exceptions.base import RecordLinkError


class BackendError(RecordLinkError):
    """
    Base exception for record API failures.

    Attributes:
        status_code: HTTP status code when the backend answered, else None
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        query_id: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, query_id=query_id, details=details)
        self.status_code = status_code
        if status_code is not None:
            self.details.setdefault("status_code", status_code)


class NetworkError(BackendError):
    """
    Transport-level failure (connection refused, DNS, reset, read timeout).

    Transient: retried by the query executor.
    """
    pass


class ServerError(BackendError):
    """
    The backend answered with a 5xx status.

    Transient: retried by the query executor.
    """
    pass


class ClientError(BackendError):
    """
    The backend rejected the request with a 4xx status.

    Permanent: surfaced to the caller immediately, never retried.
    """
    pass
