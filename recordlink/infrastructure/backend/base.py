"""
Backend Client Interface

Contract of the remote record API as consumed by the resilience layer.
The concrete HTTP implementation lives in ``http_client.py``; tests use
in-memory fakes implementing the same protocol.
"""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class BackendClient(Protocol):
    """
    Protocol for the record API.

    Methods raise ``NetworkError``, ``ServerError`` or ``ClientError`` from
    ``recordlink.core.exceptions`` on failure.
    """

    @property
    def is_authenticated(self) -> bool:
        """True when a session token is held."""
        ...

    async def health(self) -> dict[str, Any]:
        """Lightweight reachability endpoint."""
        ...

    async def refresh_auth(self, collection: str) -> dict[str, Any]:
        """Refresh the current session against an auth collection."""
        ...

    async def list_records(
        self, collection: str, page: int = 1, per_page: int = 1
    ) -> dict[str, Any]:
        """Read one page of a collection."""
        ...

    async def aclose(self) -> None:
        """Release transport resources."""
        ...
