"""
recordlink - Connection resilience for record API clients

Keeps an application usable while its record backend is flaky: detects
connection loss, reconnects with bounded backoff, caps and times out
concurrent queries, retries transient failures, defers mutations made while
offline and reports aggregated health.

Entry point:
    from recordlink import ConnectionService

    async with ConnectionService.from_settings(get_settings()) as service:
        posts = await service.execute_query(
            lambda: service.backend.list_records("posts"), "posts.list"
        )
"""

from recordlink.application.services.connection_service import ConnectionService
from recordlink.core.config import get_settings
from recordlink.core.resilience.query_executor import ExecuteOptions

__version__ = "1.0.0"

__all__ = [
    "ConnectionService",
    "ExecuteOptions",
    "get_settings",
    "__version__",
]
