"""
Bhavin API — Request ID Context
================================

What:  Per-request correlation ID, shared by error bodies and log lines.
How:   The pipeline boundary resolves the ID once per request (client-sent
       X-Request-ID or a fresh short UUID), stores it in a ContextVar and
       echoes it in the X-Request-ID response header.

Request IDs let support match a client-visible error body to the server's
access and error log lines for the same request.
"""

import re
import uuid
from contextvars import ContextVar

from starlette.datastructures import Headers

REQUEST_ID_HEADER = "X-Request-ID"

# Client-provided IDs are echoed into headers and logs, so keep them tame
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._\-]{1,128}$")

# Coroutine-local: concurrent requests on one event loop each see their own value
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def generate_request_id() -> str:
    """Short UUID (8 chars) for log correlation."""
    return str(uuid.uuid4())[:8]


def resolve_request_id(headers: Headers) -> str:
    """
    Use the client's X-Request-ID when it is well-formed, otherwise generate one.

    Accepting client IDs lets a frontend trace a UI action end to end.
    """
    candidate = headers.get(REQUEST_ID_HEADER, "")
    if candidate and _VALID_REQUEST_ID.match(candidate):
        return candidate
    return generate_request_id()
