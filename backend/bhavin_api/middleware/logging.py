"""
Bhavin API — Access Logging
============================

What:  One access-log line per request, written once the response is final.
How:   Two halves:
       - AccessLogMiddleware sits in the stage chain and stamps the
         response-time start on the request state when the request reaches it.
       - AccessLog.write is a completion hook of the pipeline boundary, so
         it runs exactly once per request with the final status, whichever
         branch produced the response (handler, short-circuit, fault).
       Requests short-circuited before the stage log "-" as response time.
Who:   Wired together by create_app().

Line formats (Apache / morgan compatible):
    combined  :remote-addr - :remote-user [:date] ":method :url HTTP/:version"
              :status :res[content-length] ":referrer" ":user-agent"
    common    combined without referrer and user agent
    short     :remote-addr :remote-user :method :url HTTP/:version :status
              :res[content-length] - :response-time ms
    tiny      :method :url :status :res[content-length] - :response-time ms
    dev       :method :url :status :response-time ms - :res[content-length]

What we log vs what we DON'T log (privacy):
    ✅ Log: method, path + query, status, duration, IP, user-agent, request ID
    ❌ Don't log: request body, cookies, Authorization values
"""

import base64
import binascii
import logging
import time
from datetime import datetime, timezone
from typing import Dict, Optional

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Receive, Scope, Send

from bhavin_api.middleware.boundary import ResponseOutcome

logger = logging.getLogger("bhavin_api.access")

START_KEY = "access_log_start"

FORMATS: Dict[str, str] = {
    "combined": (
        '{remote_addr} - {remote_user} [{date}] "{method} {url} HTTP/{http_version}" '
        '{status} {content_length} "{referrer}" "{user_agent}"'
    ),
    "common": (
        '{remote_addr} - {remote_user} [{date}] "{method} {url} HTTP/{http_version}" '
        "{status} {content_length}"
    ),
    "short": (
        "{remote_addr} {remote_user} {method} {url} HTTP/{http_version} "
        "{status} {content_length} - {response_time} ms"
    ),
    "tiny": "{method} {url} {status} {content_length} - {response_time} ms",
    "dev": "{method} {url} {status} {response_time} ms - {content_length}",
}

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def clf_date(moment: Optional[datetime] = None) -> str:
    """Common Log Format timestamp, e.g. 17/Oct/2026:10:00:00 +0000."""
    moment = moment or datetime.now(timezone.utc)
    return (
        f"{moment.day:02d}/{_MONTHS[moment.month - 1]}/{moment.year}:"
        f"{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d} +0000"
    )


def remote_user(headers: Headers) -> str:
    """Username from a Basic Authorization header, or "-"."""
    scheme, _, credentials = headers.get("authorization", "").partition(" ")
    if scheme.lower() != "basic" or not credentials:
        return "-"
    try:
        decoded = base64.b64decode(credentials, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return "-"
    user, sep, _ = decoded.partition(":")
    return user if sep and user else "-"


class AccessLogMiddleware:
    """Stamps the response-time start when a request reaches this stage."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            scope.setdefault("state", {})[START_KEY] = time.perf_counter()
        await self.app(scope, receive, send)


class AccessLog:
    """
    Formats and writes access-log lines.

    Log level follows the final status:
        5xx → ERROR, 4xx → WARNING, everything else → INFO
    """

    def __init__(self, fmt: str = "combined", log: Optional[logging.Logger] = None) -> None:
        if fmt not in FORMATS:
            raise ValueError(f"Unknown access log format '{fmt}'. Use one of: {sorted(FORMATS)}")
        self.fmt = fmt
        self.template = FORMATS[fmt]
        self.logger = log or logger

    def format_line(self, scope: Scope, outcome: ResponseOutcome) -> str:
        headers = Headers(scope=scope)
        client = scope.get("client")
        url = (outcome.path or "/") + (f"?{outcome.query_string}" if outcome.query_string else "")

        start = scope.get("state", {}).get(START_KEY)
        response_time = (
            f"{(time.perf_counter() - start) * 1000:.3f}" if start is not None else "-"
        )

        return self.template.format(
            remote_addr=client[0] if client else "-",
            remote_user=remote_user(headers),
            date=clf_date(),
            method=outcome.method or "-",
            url=url,
            http_version=scope.get("http_version", "1.1"),
            status=outcome.status if outcome.status is not None else "-",
            content_length=outcome.content_length or "-",
            referrer=headers.get("referer") or headers.get("referrer") or "-",
            user_agent=headers.get("user-agent", "-"),
            response_time=response_time,
        )

    async def write(self, scope: Scope, outcome: ResponseOutcome) -> None:
        """Completion hook: emit the line for one finished request."""
        status = outcome.status or 0
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        client = scope.get("client")
        self.logger.log(
            log_level,
            self.format_line(scope, outcome),
            extra={
                "request_id": outcome.request_id,
                "method": outcome.method,
                "path": outcome.path,
                "status": outcome.status,
                "duration_ms": round(outcome.duration_ms, 2),
                "client_ip": client[0] if client else None,
            },
        )
