"""
Bhavin API — Security Headers Middleware
=========================================

What:  Adds the standard browser-hardening headers to every response.
How:   After the downstream stages produce a response, fills in each header
       that is not already present and strips X-Powered-By.
When:  First stage after the boundary, so short-circuit responses produced
       by later stages (400/403/413/415) carry the headers too.

Default headers (helmet-compatible):
    Content-Security-Policy            settings.content_security_policy
    Cross-Origin-Opener-Policy         same-origin
    Cross-Origin-Resource-Policy       same-origin
    Origin-Agent-Cluster               ?1
    Referrer-Policy                    no-referrer
    Strict-Transport-Security          max-age=<hsts_max_age>; includeSubDomains
    X-Content-Type-Options             nosniff
    X-DNS-Prefetch-Control             off
    X-Download-Options                 noopen
    X-Frame-Options                    SAMEORIGIN
    X-Permitted-Cross-Domain-Policies  none
    X-XSS-Protection                   0
"""

from typing import Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from bhavin_api.config import DEFAULT_CONTENT_SECURITY_POLICY


def default_security_headers(
    content_security_policy: Optional[str] = DEFAULT_CONTENT_SECURITY_POLICY,
    hsts_max_age: int = 31_536_000,
) -> Dict[str, str]:
    """Build the header map; an empty CSP or a zero HSTS age omits that header."""
    headers = {
        "Cross-Origin-Opener-Policy": "same-origin",
        "Cross-Origin-Resource-Policy": "same-origin",
        "Origin-Agent-Cluster": "?1",
        "Referrer-Policy": "no-referrer",
        "X-Content-Type-Options": "nosniff",
        "X-DNS-Prefetch-Control": "off",
        "X-Download-Options": "noopen",
        "X-Frame-Options": "SAMEORIGIN",
        "X-Permitted-Cross-Domain-Policies": "none",
        "X-XSS-Protection": "0",
    }
    if content_security_policy:
        headers["Content-Security-Policy"] = content_security_policy
    if hsts_max_age:
        headers["Strict-Transport-Security"] = f"max-age={hsts_max_age}; includeSubDomains"
    return headers


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Sets security headers on every response passing through the stage.

    Headers explicitly set by a route or a later stage win over the defaults.
    """

    def __init__(self, app: ASGIApp, headers: Optional[Dict[str, str]] = None) -> None:
        super().__init__(app)
        self.headers = dict(headers) if headers is not None else default_security_headers()

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        response = await call_next(request)

        for name, value in self.headers.items():
            if name not in response.headers:
                response.headers[name] = value

        if "x-powered-by" in response.headers:
            del response.headers["x-powered-by"]

        return response
