"""
Unit Tests for the HTTP Backend Client

Tests request shaping and error classification against httpx.MockTransport.
"""

import httpx
import pytest

from recordlink.core.exceptions import ClientError, NetworkError, ServerError
from recordlink.infrastructure.backend import BackendClient, HttpBackendClient, classify_http_error


def make_client(handler, **kwargs) -> HttpBackendClient:
    return HttpBackendClient("http://db.test/", transport=httpx.MockTransport(handler), **kwargs)


@pytest.mark.unit
class TestHttpBackendClient:
    """Test suite for HttpBackendClient."""

    @pytest.mark.asyncio
    async def test_health(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"code": 200, "message": "API is healthy."})

        async with make_client(handler) as client:
            result = await client.health()

        assert result["code"] == 200
        assert seen[0].url.path == "/api/health"
        assert "Authorization" not in seen[0].headers

    @pytest.mark.asyncio
    async def test_list_records_params(self):
        def handler(request):
            assert request.url.path == "/api/collections/posts/records"
            assert request.url.params["page"] == "2"
            assert request.url.params["perPage"] == "20"
            return httpx.Response(200, json={"page": 2, "items": []})

        async with make_client(handler) as client:
            result = await client.list_records("posts", page=2, per_page=20)

        assert result["page"] == 2

    @pytest.mark.asyncio
    async def test_refresh_auth_replaces_token(self):
        tokens = []

        def handler(request):
            tokens.append(request.headers.get("Authorization"))
            return httpx.Response(200, json={"token": "fresh"})

        async with make_client(handler, auth_token="stale") as client:
            assert client.is_authenticated
            await client.refresh_auth("users")
            await client.refresh_auth("users")

        assert tokens == ["Bearer stale", "Bearer fresh"]

    @pytest.mark.asyncio
    async def test_empty_body(self):
        async with make_client(lambda request: httpx.Response(204)) as client:
            assert await client.delete_record("posts", "abc") is None
            assert await client.request("GET", "/api/anything") == {}

    @pytest.mark.asyncio
    async def test_create_and_update_send_json(self):
        bodies = []

        def handler(request):
            bodies.append((request.method, request.url.path, request.content))
            return httpx.Response(200, json={"id": "abc"})

        async with make_client(handler) as client:
            await client.create_record("posts", {"title": "hello"})
            await client.update_record("posts", "abc", {"title": "bye"})

        assert bodies[0][0] == "POST"
        assert bodies[1][:2] == ("PATCH", "/api/collections/posts/records/abc")
        assert b"bye" in bodies[1][2]

    @pytest.mark.asyncio
    async def test_5xx_is_server_error(self):
        async with make_client(lambda request: httpx.Response(503, text="maintenance")) as client:
            with pytest.raises(ServerError) as exc_info:
                await client.health()

        assert exc_info.value.status_code == 503
        assert exc_info.value.details["response_text"] == "maintenance"

    @pytest.mark.asyncio
    async def test_4xx_is_client_error(self):
        async with make_client(lambda request: httpx.Response(404, json={"message": "missing"})) as client:
            with pytest.raises(ClientError) as exc_info:
                await client.list_records("nope")

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_transport_failure_is_network_error(self):
        def handler(request):
            raise httpx.ConnectError("Connection refused", request=request)

        async with make_client(handler) as client:
            with pytest.raises(NetworkError) as exc_info:
                await client.health()

        assert exc_info.value.details["original_error"] == "ConnectError"
        assert exc_info.value.details["path"] == "/api/health"

    def test_satisfies_protocol(self):
        client = make_client(lambda request: httpx.Response(200))
        assert isinstance(client, BackendClient)

    def test_classify_read_timeout(self):
        request = httpx.Request("GET", "http://db.test/api/health")
        error = classify_http_error(httpx.ReadTimeout("timed out", request=request), "/api/health")

        assert isinstance(error, NetworkError)
        assert error.status_code is None
