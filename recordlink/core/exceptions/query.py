"""
Query Execution Exceptions

Raised by the query executor and its admission controller.
"""

from recordlink.core.exceptions.base import RecordLinkError


class QueryError(RecordLinkError):
    """Base exception for query execution errors."""
    pass


class QueryTimeoutError(QueryError):
    """
    Raised when an operation exceeds its query timeout budget.

    The in-flight attempt is cancelled and the active query record removed.
    Not retried locally, but eligible for the retry queue when the operation
    is a mutation and the connection is down.
    """
    pass


class QueryCancelledError(QueryError):
    """Raised when an active query is cancelled explicitly."""
    pass


class AdmissionDeniedError(QueryError):
    """
    Raised when the concurrent query cap is reached.

    Rejection is immediate: the call never occupies a slot and is never
    retried or queued.
    """

    def __init__(self, active: int, limit: int, operation_name: str = "unknown"):
        super().__init__(
            f"Maximum concurrent queries exceeded ({active}/{limit})",
            details={"active": active, "limit": limit, "operation_name": operation_name},
        )
