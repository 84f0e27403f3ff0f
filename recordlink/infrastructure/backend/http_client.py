"""
HTTP Backend Client

httpx-based implementation of ``BackendClient`` for a PocketBase-style record
API:

    GET  /api/health
    POST /api/collections/{collection}/auth-refresh
    GET  /api/collections/{collection}/records?page=&perPage=

Error Mapping:
    httpx.TransportError (connect, read, timeouts)  -> NetworkError
    HTTP 5xx                                        -> ServerError
    HTTP 4xx                                        -> ClientError

httpx pools the real TCP connections; the resilience layer only budgets
logical concurrency on top of it.
"""

from typing import Any

import httpx

from recordlink.core.config.constants import (
    BACKEND_HEALTH_PATH,
    BACKEND_REQUEST_TIMEOUT,
    HEADER_AUTHORIZATION,
)
from recordlink.core.exceptions import ClientError, NetworkError, ServerError
from recordlink.core.logging.logger import get_logger

logger = get_logger(__name__)


def classify_http_error(exc: httpx.HTTPError, path: str) -> Exception:
    """
    Translate an httpx failure into the resilience error taxonomy.

    Args:
        exc: Exception raised by httpx
        path: Request path, kept in the error details

    Returns:
        NetworkError, ServerError or ClientError
    """
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        body = exc.response.text[:500] if exc.response.text else None
        error_cls = ServerError if status >= 500 else ClientError
        return error_cls(
            f"Record API returned HTTP {status}",
            status_code=status,
            details={"path": path, "response_text": body},
        )
    return NetworkError.from_exception(exc, message=f"Cannot reach record API: {exc!r}", path=path)


class HttpBackendClient:
    """
    Async HTTP client for the record API.

    Usage:
        async with HttpBackendClient("http://localhost:8090") as backend:
            await backend.health()
            page = await backend.list_records("posts", page=1, per_page=20)
    """

    def __init__(
        self,
        base_url: str,
        auth_token: str | None = None,
        timeout: float = BACKEND_REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: Record API base URL
            auth_token: Session token sent as a bearer token
            timeout: Per-request transport timeout in seconds
            transport: Custom httpx transport (``httpx.MockTransport`` in tests)
        """
        self.base_url = base_url.rstrip("/")
        self._auth_token = auth_token
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

        logger.info(
            "Backend client initialized",
            stage="B.0",
            base_url=self.base_url,
            timeout=timeout,
            authenticated=auth_token is not None,
        )

    async def __aenter__(self) -> "HttpBackendClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    @property
    def is_authenticated(self) -> bool:
        return bool(self._auth_token)

    def set_auth_token(self, token: str | None) -> None:
        """Replace the session token; ``None`` signs out."""
        self._auth_token = token
        logger.debug("Auth state changed", stage="B.1", is_valid=self.is_authenticated)

    def _headers(self) -> dict[str, str]:
        if not self._auth_token:
            return {}
        return {HEADER_AUTHORIZATION: f"Bearer {self._auth_token}"}

    async def request(self, method: str, path: str, **kwargs) -> Any:
        """
        Issue a request and return the decoded JSON body.

        Raises:
            NetworkError: Transport failure
            ServerError: HTTP 5xx
            ClientError: HTTP 4xx
        """
        headers = {**self._headers(), **kwargs.pop("headers", {})}
        try:
            response = await self._client.request(method, path, headers=headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise classify_http_error(e, path) from e

        if not response.content:
            return {}
        return response.json()

    async def health(self) -> dict[str, Any]:
        return await self.request("GET", BACKEND_HEALTH_PATH)

    async def refresh_auth(self, collection: str) -> dict[str, Any]:
        result = await self.request("POST", f"/api/collections/{collection}/auth-refresh")
        token = result.get("token") if isinstance(result, dict) else None
        if token:
            self.set_auth_token(token)
        return result

    async def list_records(
        self, collection: str, page: int = 1, per_page: int = 1
    ) -> dict[str, Any]:
        return await self.request(
            "GET",
            f"/api/collections/{collection}/records",
            params={"page": page, "perPage": per_page},
        )

    async def create_record(self, collection: str, data: dict[str, Any]) -> dict[str, Any]:
        return await self.request("POST", f"/api/collections/{collection}/records", json=data)

    async def update_record(
        self, collection: str, record_id: str, data: dict[str, Any]
    ) -> dict[str, Any]:
        return await self.request(
            "PATCH", f"/api/collections/{collection}/records/{record_id}", json=data
        )

    async def delete_record(self, collection: str, record_id: str) -> None:
        await self.request("DELETE", f"/api/collections/{collection}/records/{record_id}")

    async def aclose(self) -> None:
        await self._client.aclose()
