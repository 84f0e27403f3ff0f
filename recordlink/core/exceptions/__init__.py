"""
Exception Module

Structured exception hierarchy for the resilience layer, organized by theme.

Module Structure:
-----------------
- **base.py**: RecordLinkError base class + ConfigurationError
- **backend.py**: Record API failures (network, server, client)
- **query.py**: Query execution failures (timeout, cancellation, admission)
- **connection_pool.py**: Logical slot exhaustion

Usage:
------
```python
from recordlink.core.exceptions import NetworkError, QueryTimeoutError
```
"""

from recordlink.core.exceptions.backend import (
    BackendError,
    ClientError,
    NetworkError,
    ServerError,
)
from recordlink.core.exceptions.base import ConfigurationError, RecordLinkError
from recordlink.core.exceptions.connection_pool import (
    ConnectionPoolError,
    NoSlotsAvailableError,
)
from recordlink.core.exceptions.query import (
    AdmissionDeniedError,
    QueryCancelledError,
    QueryError,
    QueryTimeoutError,
)

__all__ = [
    # Base
    "RecordLinkError",
    "ConfigurationError",
    # Backend
    "BackendError",
    "NetworkError",
    "ServerError",
    "ClientError",
    # Query
    "QueryError",
    "QueryTimeoutError",
    "QueryCancelledError",
    "AdmissionDeniedError",
    # Connection Pool
    "ConnectionPoolError",
    "NoSlotsAvailableError",
]
