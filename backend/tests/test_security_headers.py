"""
Bhavin API — Security Headers Tests
"""

import pytest
from starlette.responses import PlainTextResponse

from bhavin_api.config import DEFAULT_CONTENT_SECURITY_POLICY
from bhavin_api.middleware.security_headers import (
    SecurityHeadersMiddleware,
    default_security_headers,
)

from conftest import make_client


async def powered_by_app(scope, receive, send):
    response = PlainTextResponse(
        "ok", headers={"X-Powered-By": "Express", "X-Frame-Options": "DENY"}
    )
    await response(scope, receive, send)


class TestDefaultHeaders:

    def test_full_set(self):
        headers = default_security_headers()

        assert headers["Content-Security-Policy"] == DEFAULT_CONTENT_SECURITY_POLICY
        assert headers["Strict-Transport-Security"] == "max-age=31536000; includeSubDomains"
        assert headers["X-Content-Type-Options"] == "nosniff"
        assert headers["X-Frame-Options"] == "SAMEORIGIN"
        assert headers["X-XSS-Protection"] == "0"

    def test_empty_csp_and_zero_hsts_are_omitted(self):
        headers = default_security_headers(content_security_policy="", hsts_max_age=0)

        assert "Content-Security-Policy" not in headers
        assert "Strict-Transport-Security" not in headers
        assert "Referrer-Policy" in headers


class TestSecurityHeadersStage:

    @pytest.mark.asyncio
    async def test_headers_added_and_powered_by_removed(self):
        app = SecurityHeadersMiddleware(powered_by_app)

        async with make_client(app) as client:
            response = await client.get("/")

        assert response.headers["referrer-policy"] == "no-referrer"
        assert response.headers["cross-origin-opener-policy"] == "same-origin"
        assert "x-powered-by" not in response.headers

    @pytest.mark.asyncio
    async def test_existing_header_wins(self):
        app = SecurityHeadersMiddleware(powered_by_app)

        async with make_client(app) as client:
            response = await client.get("/")

        assert response.headers["x-frame-options"] == "DENY"

    @pytest.mark.asyncio
    async def test_pipeline_sets_headers_on_errors(self, test_client):
        response = await test_client.get("/missing")

        assert response.status_code == 404
        assert response.headers["x-content-type-options"] == "nosniff"
        assert "content-security-policy" in response.headers
