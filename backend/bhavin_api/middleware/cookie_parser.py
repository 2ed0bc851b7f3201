"""
Bhavin API — Cookie Parsing Middleware
=======================================

What:  Decodes the Cookie header into request.state before routing.
How:   request.state.cookies         every cookie, values URL-unquoted;
                                     "j:" values decoded as JSON
       request.state.signed_cookies  "s:" values verified with the cookie
                                     secret (itsdangerous Signer); a bad
                                     signature yields False
       Signed cookies are removed from request.state.cookies.
When:  After body parsing, before the access log and security stages.

Failure mapping:
    Header larger than max_header_size     → 400 validation_error
    Control characters in the header       → 400 validation_error
"""

import json
import logging
import re
from typing import Any, Dict, Optional, Tuple, Union
from urllib.parse import unquote

from itsdangerous import BadSignature, Signer
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request, cookie_parser
from starlette.responses import Response
from starlette.types import ASGIApp

from bhavin_api.exceptions import ValidationError
from bhavin_api.responses import exception_response

logger = logging.getLogger(__name__)

SIGNED_PREFIX = "s:"
JSON_PREFIX = "j:"

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0a-\x1f\x7f]")


def sign_cookie(value: str, secret: str) -> str:
    """Produce an "s:"-prefixed signed cookie value for `value`."""
    return SIGNED_PREFIX + Signer(secret).sign(value).decode("utf-8")


def unsign_cookie(value: str, secret: str) -> Union[str, bool]:
    """Verify an "s:" value; returns the payload, or False if tampered."""
    try:
        return Signer(secret).unsign(value[len(SIGNED_PREFIX):]).decode("utf-8")
    except BadSignature:
        return False


def json_cookie(value: str) -> Any:
    """Decode a "j:" cookie; values that are not valid JSON stay as-is."""
    try:
        return json.loads(value[len(JSON_PREFIX):])
    except ValueError:
        return value


def parse_cookie_header(
    header: str,
    secret: Optional[str] = None,
    max_header_size: int = 8192,
) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Parse a Cookie header into (cookies, signed_cookies).

    Raises ValidationError for oversized headers or control characters.
    """
    if len(header) > max_header_size:
        raise ValidationError(
            message=f"Cookie header too large (limit is {max_header_size} bytes)",
            field="cookie",
            context={"length": len(header)},
        )
    if _CONTROL_CHARS.search(header):
        raise ValidationError(
            message="Malformed Cookie header: control characters are not allowed",
            field="cookie",
        )

    cookies: Dict[str, Any] = {}
    signed: Dict[str, Any] = {}
    for name, raw_value in cookie_parser(header).items():
        value = unquote(raw_value)
        if secret and value.startswith(SIGNED_PREFIX):
            verified = unsign_cookie(value, secret)
            signed[name] = json_cookie(verified) if (
                isinstance(verified, str) and verified.startswith(JSON_PREFIX)
            ) else verified
            continue
        cookies[name] = json_cookie(value) if value.startswith(JSON_PREFIX) else value
    return cookies, signed


class CookieParserMiddleware(BaseHTTPMiddleware):
    """
    Populates request.state.cookies / request.state.signed_cookies.

    Configuration:
        secret:           Cookie signing secret; empty disables signed cookies
        max_header_size:  Largest Cookie header accepted (default: 8192)
    """

    def __init__(
        self,
        app: ASGIApp,
        secret: Optional[str] = None,
        max_header_size: int = 8192,
    ) -> None:
        super().__init__(app)
        self.secret = secret or None
        self.max_header_size = max_header_size

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        header = request.headers.get("cookie", "")
        try:
            cookies, signed = parse_cookie_header(
                header, secret=self.secret, max_header_size=self.max_header_size
            )
        except ValidationError as exc:
            logger.warning(
                "Rejected cookies for %s %s: %s",
                request.method,
                request.url.path,
                exc.message,
            )
            return exception_response(exc)

        request.state.cookies = cookies
        request.state.signed_cookies = signed
        return await call_next(request)
