"""
Shared test fixtures for the auth MCP server test suite.

Key fixtures:
- make_token: A factory to generate JWT access tokens with any claims
- clock: A controllable replacement for time.time
- session: A CredentialSession backed by a FileTokenStore under tmp_path
- fake_api: A stand-in for the auth service that records every execute() call
- make_server: Builds a ProtocolServer over an in-memory line transport

Testing approach:
- test_schema.py / test_tools.py: the catalog builder as a pure function of
  an OpenAPI document, plus the one-shot loader and its fallback.
- test_auth.py: session lifecycle, token discovery, persistence across a
  simulated restart (a second CredentialSession on the same file).
- test_router.py: classification table and session policy around calls.
- test_server.py: whole request lines in, response lines out.
- test_api_client.py: the httpx client against httpx.MockTransport.
"""

import datetime
import json

import jwt
import pytest

from auth_mcp.api_client import ApiResponse
from auth_mcp.auth import CredentialSession, FileTokenStore
from auth_mcp.errors import RemoteFailure
from auth_mcp.router import CallRouter
from auth_mcp.server import ProtocolServer
from auth_mcp.tools import CatalogLoader

NOW = 1_800_000_000.0


# ---------------------------------------------------------------------------
# Sample OpenAPI description
# ---------------------------------------------------------------------------
SAMPLE_DESCRIPTION = {
    "openapi": "3.0.0",
    "paths": {
        "/health": {"get": {"summary": "Health check"}},
        "/auth/signin": {
            "post": {
                "summary": "Sign in",
                "requestBody": {
                    "content": {"application/json": {"schema": {"$ref": "#/components/schemas/SignInDto"}}}
                },
            }
        },
        "/auth/signout": {"post": {"summary": "Sign out"}},
        "/users/{id}": {
            "get": {
                "summary": "Get user",
                "parameters": [{"name": "id", "in": "path", "required": True, "schema": {"type": "string"}}],
            }
        },
    },
    "components": {
        "schemas": {
            "SignInDto": {
                "type": "object",
                "properties": {"email": {"type": "string"}, "password": {"type": "string"}},
                "required": ["email", "password"],
            }
        }
    },
}


@pytest.fixture
def description():
    return json.loads(json.dumps(SAMPLE_DESCRIPTION))


# ---------------------------------------------------------------------------
# Token factory fixture
# ---------------------------------------------------------------------------
@pytest.fixture
def make_token():
    """
    Factory fixture to generate JWT access tokens.

    The server never verifies these; it only reads `exp` to know when the
    session ends. Any secret works.

    Usage in tests:
        def test_something(make_token):
            token = make_token(exp=NOW + 600)
    """

    def _make_token(sub: str = "test-user", exp: float | None = None, secret: str = "test-secret") -> str:
        payload: dict = {"sub": sub, "iat": datetime.datetime.now(datetime.timezone.utc)}
        if exp is not None:
            payload["exp"] = int(exp)
        return jwt.encode(payload, secret, algorithm="HS256")

    return _make_token


# ---------------------------------------------------------------------------
# Session fixtures
# ---------------------------------------------------------------------------
class FakeClock:
    """Callable stand-in for time.time(); advance it with `clock.now += 60`."""

    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session_file(tmp_path):
    return tmp_path / "session" / "session.json"


@pytest.fixture
def token_store(session_file):
    return FileTokenStore(session_file)


@pytest.fixture
def session(token_store, clock):
    return CredentialSession(token_store, clock=clock)


# ---------------------------------------------------------------------------
# Fake auth service
# ---------------------------------------------------------------------------
class FakeApi:
    """
    Records execute() calls and replays canned outcomes.

    `responses` maps (METHOD, path) to either a response body or an
    exception to raise. Unmapped calls answer {"ok": true}.
    """

    def __init__(self):
        self.calls: list[dict] = []
        self.responses: dict[tuple[str, str], object] = {}

    def respond(self, method: str, path: str, outcome: object) -> None:
        self.responses[(method, path)] = outcome

    async def execute(self, method, path, params, token=None):
        self.calls.append({"method": method, "path": path, "params": params, "token": token})
        outcome = self.responses.get((method, path), {"ok": True})
        if isinstance(outcome, Exception):
            raise outcome
        return ApiResponse(status_code=200, body=outcome)


@pytest.fixture
def fake_api():
    return FakeApi()


@pytest.fixture
def router(session, fake_api):
    return CallRouter(session, fake_api)


@pytest.fixture
def unauthorized():
    return RemoteFailure(401, "Unauthorized")


# ---------------------------------------------------------------------------
# In-memory server fixtures
# ---------------------------------------------------------------------------
class MemoryTransport:
    """Feeds prepared lines to the server and collects what it writes."""

    def __init__(self, lines: list[str]):
        self._lines = list(lines)
        self.written: list[str] = []

    async def read_line(self):
        if not self._lines:
            return None
        return self._lines.pop(0)

    async def write_line(self, text: str) -> None:
        self.written.append(text)

    def responses(self) -> dict:
        """Written responses keyed by id (requests may finish out of order)."""
        decoded = [json.loads(line) for line in self.written]
        return {response["id"]: response for response in decoded}


def fetch_from(document):
    async def _fetch(url):
        if isinstance(document, Exception):
            raise document
        return document

    return _fetch


@pytest.fixture
def make_server(router):
    """
    Factory: make_server(lines, document=...) -> (server, transport).

    `document` is what the catalog fetch returns, or an exception for it to
    raise. Pass description_url=None to skip the fetch entirely.
    """

    def _make_server(lines, document=None, description_url="https://auth.example.com/api-json"):
        catalog = CatalogLoader(description_url, fetch_from(document))
        transport = MemoryTransport(lines)
        return ProtocolServer(catalog, router, transport), transport

    return _make_server
