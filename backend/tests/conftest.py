"""
Bhavin API — Test Configuration (conftest.py)
==============================================

What:  Shared pytest fixtures for the entire test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixture Hierarchy (all function-scoped):
    ├── test_settings: Settings isolated from any .env file
    ├── app: A freshly built pipeline (create_app)
    ├── test_client: HTTPX AsyncClient bound to `app`
    ├── state_echo: Route group that echoes what the shared stages decoded
    └── echo_client: HTTPX AsyncClient for a pipeline with `state_echo`
                      mounted at /api/auth
"""

import os
from typing import Any, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

# Override settings for testing BEFORE any app imports
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["LOG_DIR"] = ""
os.environ["COOKIE_SECRET"] = ""

from bhavin_api.config import Settings  # noqa: E402
from bhavin_api.main import create_app  # noqa: E402

TEST_COOKIE_SECRET = "test-cookie-secret"


# ══════════════════════════════════════════════════════════════════════════
# Helpers
# ══════════════════════════════════════════════════════════════════════════

def make_client(app) -> AsyncClient:
    """HTTPX client that talks to `app` in-process."""
    transport = ASGITransport(app=app)
    return AsyncClient(transport=transport, base_url="http://test")


async def asgi_request(
    app,
    method: str = "GET",
    path: str = "/",
    headers: Optional[List[Tuple[bytes, bytes]]] = None,
    body: bytes = b"",
) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
    """
    Drive an ASGI app with a hand-built scope.

    Used where HTTPX would normalise the request away (e.g. raw control
    characters in a header). Returns (sent messages, scope).
    """
    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "query_string": b"",
        "headers": headers or [],
        "client": ("127.0.0.1", 5000),
        "server": ("test", 80),
    }
    messages = [{"type": "http.request", "body": body, "more_body": False}]
    sent: List[Dict[str, Any]] = []

    async def receive():
        if messages:
            return messages.pop(0)
        return {"type": "http.disconnect"}

    async def send(message):
        sent.append(message)

    await app(scope, receive, send)
    return sent, scope


async def _echo_state(request: Request) -> JSONResponse:
    state = request.state
    downstream = await request.body()
    return JSONResponse(
        {
            "method": request.method,
            "body": getattr(state, "body", "<missing>"),
            "raw_body_length": len(getattr(state, "raw_body", b"")),
            "downstream_body": downstream.decode("utf-8", "replace"),
            "cookies": getattr(state, "cookies", "<missing>"),
            "signed_cookies": getattr(state, "signed_cookies", "<missing>"),
            "request_id": getattr(state, "request_id", None),
            "access_log_started": "access_log_start" in request.scope.get("state", {}),
        }
    )


def build_state_echo() -> Starlette:
    """Route group reporting the request state it was handed."""
    return Starlette(
        routes=[
            Route(
                "/{path:path}",
                _echo_state,
                methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
            )
        ]
    )


# ══════════════════════════════════════════════════════════════════════════
# Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from the developer's .env file."""
    return Settings(_env_file=None, cookie_secret=TEST_COOKIE_SECRET)


@pytest.fixture
def app(test_settings):
    return create_app(test_settings)


@pytest_asyncio.fixture
async def test_client(app):
    """
    Provides an async HTTP test client for endpoint testing.

    Usage:
        async def test_greeting(test_client):
            response = await test_client.get("/")
            assert response.status_code == 200
    """
    async with make_client(app) as client:
        yield client


@pytest.fixture
def state_echo() -> Starlette:
    return build_state_echo()


@pytest_asyncio.fixture
async def echo_client(test_settings, state_echo):
    """Pipeline whose /api/auth group echoes the decoded request state."""
    async with make_client(create_app(test_settings, auth_routes=state_echo)) as client:
        yield client
