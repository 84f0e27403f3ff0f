"""
Health Probe

Lightweight requests against the record API used only to assess health,
never to perform application work:

- reachability: the health endpoint
- authentication: session refresh (skipped when signed out)
- resource access: first record of a representative collection

Each check raises on failure and returns a small dict on success.
"""

import time
from typing import Any

from recordlink.core.config.constants import BACKEND_AUTH_COLLECTION, BACKEND_PROBE_COLLECTION
from recordlink.infrastructure.backend.base import BackendClient


class HealthProbe:
    """
    Issues probe requests through a ``BackendClient``.

    Timeouts are applied by the callers (``ConnectionMonitor`` and
    ``HealthChecker``), which own their own budgets.
    """

    def __init__(
        self,
        backend: BackendClient,
        auth_collection: str = BACKEND_AUTH_COLLECTION,
        probe_collection: str = BACKEND_PROBE_COLLECTION,
    ):
        self.backend = backend
        self.auth_collection = auth_collection
        self.probe_collection = probe_collection

    async def check_reachability(self) -> float:
        """
        Hit the health endpoint.

        Returns:
            Round-trip time in seconds
        """
        start = time.perf_counter()
        await self.backend.health()
        return time.perf_counter() - start

    async def check_auth(self) -> dict[str, Any]:
        """Refresh the session if one exists."""
        if not self.backend.is_authenticated:
            return {"status": "no_auth"}
        await self.backend.refresh_auth(self.auth_collection)
        return {"status": "valid"}

    async def check_resource(self) -> dict[str, Any]:
        """Read a single record page from the probe collection."""
        await self.backend.list_records(self.probe_collection, page=1, per_page=1)
        return {"status": "accessible", "collection": self.probe_collection}
