"""
Tests for the HTTP client (auth_mcp/api_client.py).

httpx.MockTransport stands in for the auth service: each test installs a
handler that inspects the outgoing request and returns a canned response.
"""

import json

import httpx
import pytest

from auth_mcp.api_client import ApiClient, fetch_document
from auth_mcp.errors import CatalogUnavailable, NetworkFailure, RemoteFailure


def make_client(handler) -> ApiClient:
    return ApiClient("https://auth.example.com/api", transport=httpx.MockTransport(handler))


class Recorder:
    def __init__(self, response: httpx.Response | None = None):
        self.requests: list[httpx.Request] = []
        self.response = response or httpx.Response(200, json={"ok": True})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.response


class TestExecute:
    async def test_get_sends_query_parameters(self):
        recorder = Recorder()
        async with make_client(recorder) as client:
            response = await client.execute("get", "/users", {"limit": 5})

        request = recorder.requests[0]
        assert request.method == "GET"
        assert request.url.path == "/api/users"
        assert request.url.params["limit"] == "5"
        assert request.content == b""
        assert response.status_code == 200
        assert response.body == {"ok": True}

    @pytest.mark.parametrize("method", ["POST", "PUT", "PATCH", "DELETE"])
    async def test_body_methods_send_json(self, method):
        recorder = Recorder()
        async with make_client(recorder) as client:
            await client.execute(method, "/auth/signin", {"email": "a@b.c"})

        request = recorder.requests[0]
        assert request.method == method
        assert json.loads(request.content) == {"email": "a@b.c"}

    async def test_delete_without_arguments_has_no_body(self):
        recorder = Recorder()
        async with make_client(recorder) as client:
            await client.execute("DELETE", "/sessions/1", {})

        assert recorder.requests[0].content == b""

    async def test_bearer_token_header(self):
        recorder = Recorder()
        async with make_client(recorder) as client:
            await client.execute("GET", "/auth/roles", {}, token="T")
            await client.execute("GET", "/auth/roles", {})

        assert recorder.requests[0].headers["authorization"] == "Bearer T"
        assert "authorization" not in recorder.requests[1].headers

    async def test_error_status_raises_remote_failure_with_service_message(self):
        recorder = Recorder(httpx.Response(401, json={"statusCode": 401, "message": "Invalid credentials"}))
        async with make_client(recorder) as client:
            with pytest.raises(RemoteFailure) as exc_info:
                await client.execute("POST", "/auth/signin", {})

        assert exc_info.value.status_code == 401
        assert exc_info.value.is_authorization_denial
        assert exc_info.value.message == "API Error: 401 - Invalid credentials"

    async def test_error_status_without_message_uses_reason_phrase(self):
        recorder = Recorder(httpx.Response(503, text="down"))
        async with make_client(recorder) as client:
            with pytest.raises(RemoteFailure) as exc_info:
                await client.execute("GET", "/health", {})

        assert exc_info.value.message == "API Error: 503 - Service Unavailable"
        assert not exc_info.value.is_authorization_denial

    async def test_validation_messages_are_joined(self):
        recorder = Recorder(httpx.Response(400, json={"message": ["email must be an email", "password too short"]}))
        async with make_client(recorder) as client:
            with pytest.raises(RemoteFailure, match="email must be an email; password too short"):
                await client.execute("POST", "/auth/signup", {})

    async def test_transport_error_raises_network_failure(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with make_client(refuse) as client:
            with pytest.raises(NetworkFailure, match="connection refused"):
                await client.execute("GET", "/health", {})

    async def test_text_body_is_returned_as_text(self):
        recorder = Recorder(httpx.Response(200, text="pong"))
        async with make_client(recorder) as client:
            response = await client.execute("GET", "/ping", {})

        assert response.body == "pong"

    async def test_unsupported_method(self):
        async with make_client(Recorder()) as client:
            with pytest.raises(ValueError, match="Unsupported HTTP method"):
                await client.execute("HEAD", "/", {})


class TestFetchDocument:
    async def test_returns_decoded_json(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"paths": {}}))

        assert await fetch_document("https://auth.example.com/api-json", transport=transport) == {"paths": {}}

    @pytest.mark.parametrize(
        "response",
        [httpx.Response(404, text="missing"), httpx.Response(200, text="<html>not json</html>")],
    )
    async def test_failures_raise_catalog_unavailable(self, response):
        transport = httpx.MockTransport(lambda request: response)

        with pytest.raises(CatalogUnavailable):
            await fetch_document("https://auth.example.com/api-json", transport=transport)

    async def test_unreachable_raises_catalog_unavailable(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(CatalogUnavailable, match="connection refused"):
            await fetch_document("https://auth.example.com/api-json", transport=httpx.MockTransport(refuse))

    async def test_malformed_url_raises_catalog_unavailable(self):
        with pytest.raises(CatalogUnavailable):
            await fetch_document("http://auth.example.com:abc/api-json")
