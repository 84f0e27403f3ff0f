"""
Core Module

Foundational components: configuration, logging, exceptions, events and the
resilience primitives.
"""

from .exceptions import (
    AdmissionDeniedError,
    BackendError,
    ClientError,
    ConfigurationError,
    ConnectionPoolError,
    NetworkError,
    NoSlotsAvailableError,
    QueryCancelledError,
    QueryError,
    QueryTimeoutError,
    RecordLinkError,
    ServerError,
)
from .logging import (
    clear_query_id,
    get_logger,
    get_query_id,
    set_query_id,
    setup_logging,
)
