"""
Bhavin API — Body Parsing Middleware
=====================================

What:  Decodes JSON and URL-encoded request bodies before routing.
How:   Reads the body once (bounded by the size limit), decodes it by
       Content-Type and stores the result on request.state:
           request.state.raw_body  bytes as received (b"" when not read)
           request.state.body      decoded dict/list, or None when the
                                   content type is not one we decode
       Starlette replays the cached body to downstream handlers, so routes can
       still call `await request.body()` / `await request.json()`.
When:  After CORS, before cookie parsing and the security checks, so policies
       see the decoded body.

Failure mapping (short-circuits the chain):
    Content-Length or body above limit   → 413 payload_too_large
    Too many URL-encoded parameters      → 413 payload_too_large
    Charset the decoder does not support → 415 unsupported_media_type
    Bytes not valid in the charset       → 400 validation_error
    Malformed JSON / non-strict top-level→ 400 validation_error
"""

import codecs
import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qsl

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from bhavin_api.exceptions import (
    BhavinAPIError,
    PayloadTooLargeError,
    UnsupportedMediaTypeError,
    ValidationError,
)
from bhavin_api.responses import exception_response

logger = logging.getLogger(__name__)

JSON = "json"
URLENCODED = "urlencoded"

# Nesting depth honoured for extended URL-encoded keys like a[b][c]
MAX_NESTING_DEPTH = 5

_KEY_SEGMENT = re.compile(r"\[([^\[\]]*)\]")


def parse_content_type(header: str) -> Tuple[str, Dict[str, str]]:
    """Split a Content-Type header into (media type, lower-cased params)."""
    media_type, _, rest = header.partition(";")
    params: Dict[str, str] = {}
    for item in rest.split(";"):
        name, sep, value = item.partition("=")
        if sep:
            params[name.strip().lower()] = value.strip().strip('"')
    return media_type.strip().lower(), params


def body_kind(media_type: str) -> Optional[str]:
    """Which decoder handles this media type, if any."""
    if media_type == "application/json":
        return JSON
    if media_type.startswith("application/") and media_type.endswith("+json"):
        return JSON
    if media_type == "application/x-www-form-urlencoded":
        return URLENCODED
    return None


def decode_json(text: str, strict: bool = True) -> Any:
    """
    Parse a JSON body.

    Strict mode only accepts an object or array at the top level.
    """
    stripped = text.lstrip(" \t\n\r")
    if not stripped:
        return {}
    if strict and stripped[0] not in "{[":
        raise ValidationError(
            message="Malformed JSON body: top-level value must be an object or array",
            field="body",
        )
    try:
        return json.loads(stripped)
    except json.JSONDecodeError as exc:
        raise ValidationError(
            message=f"Malformed JSON body: {exc.msg}",
            field="body",
            context={"line": exc.lineno, "column": exc.colno},
        ) from exc


def _assign_flat(target: Dict[str, Any], key: str, value: str) -> None:
    # Repeated keys collect into a list
    if key in target:
        existing = target[key]
        if isinstance(existing, list):
            existing.append(value)
        else:
            target[key] = [existing, value]
    else:
        target[key] = value


def _assign_path(target: Dict[str, Any], path: List[str], value: str) -> None:
    append = path[-1] == ""
    if append:
        path = path[:-1]
    node = target
    for segment in path[:-1]:
        child = node.get(segment)
        if not isinstance(child, dict):
            child = {}
            node[segment] = child
        node = child

    leaf = path[-1]
    if append:
        existing = node.get(leaf)
        if isinstance(existing, list):
            existing.append(value)
        elif existing is None:
            node[leaf] = [value]
        else:
            node[leaf] = [existing, value]
    else:
        _assign_flat(node, leaf, value)


def _key_path(key: str) -> Optional[List[str]]:
    base, bracket, rest = key.partition("[")
    if not base or not bracket:
        return None
    remainder = "[" + rest
    segments = _KEY_SEGMENT.findall(remainder)
    if not segments or "".join(f"[{s}]" for s in segments) != remainder:
        return None
    if len(segments) > MAX_NESTING_DEPTH or "" in segments[:-1]:
        return None
    return [base] + segments


def decode_urlencoded(
    text: str,
    parameter_limit: int = 1000,
    extended: bool = True,
    charset: str = "utf-8",
) -> Dict[str, Any]:
    """
    Parse an application/x-www-form-urlencoded body.

    Extended mode expands bracketed keys: `user[name]=a&tags[]=x&tags[]=y`
    becomes {"user": {"name": "a"}, "tags": ["x", "y"]}. Percent escapes
    are decoded with `charset`.
    """
    if not text:
        return {}
    count = text.count("&") + 1
    if count > parameter_limit:
        raise PayloadTooLargeError(
            limit=parameter_limit,
            message=f"Too many parameters (limit is {parameter_limit})",
            context={"parameters": count},
        )

    result: Dict[str, Any] = {}
    for key, value in parse_qsl(text, keep_blank_values=True, encoding=charset):
        path = _key_path(key) if extended else None
        if path is None:
            _assign_flat(result, key, value)
        else:
            _assign_path(result, path, value)
    return result


class BodyParserMiddleware(BaseHTTPMiddleware):
    """
    JSON + URL-encoded body decoding with a size limit.

    Configuration:
        limit:            Max body size in bytes (default: 100kb)
        parameter_limit:  Max URL-encoded parameters (default: 1000)
        strict:           JSON top-level must be object/array (default: True)
        extended:         Expand bracketed URL-encoded keys (default: True)
    """

    def __init__(
        self,
        app: ASGIApp,
        limit: int = 102_400,
        parameter_limit: int = 1000,
        strict: bool = True,
        extended: bool = True,
    ) -> None:
        super().__init__(app)
        self.limit = limit
        self.parameter_limit = parameter_limit
        self.strict = strict
        self.extended = extended

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request.state.raw_body = b""
        request.state.body = None

        media_type, params = parse_content_type(request.headers.get("content-type", ""))
        kind = body_kind(media_type)
        if kind is None:
            return await call_next(request)

        try:
            raw = await self._read(request)
            request.state.raw_body = raw
            charset = params.get("charset", "utf-8").lower()
            text = self._decode_text(raw, charset, kind)
            if kind == JSON:
                request.state.body = decode_json(text, strict=self.strict)
            else:
                request.state.body = decode_urlencoded(
                    text,
                    parameter_limit=self.parameter_limit,
                    extended=self.extended,
                    charset=charset,
                )
        except BhavinAPIError as exc:
            logger.warning(
                "Rejected %s body for %s %s: %s",
                kind,
                request.method,
                request.url.path,
                exc.message,
            )
            return exception_response(exc)

        return await call_next(request)

    async def _read(self, request: Request) -> bytes:
        declared = request.headers.get("content-length")
        if declared is not None:
            try:
                length = int(declared)
            except ValueError:
                raise ValidationError(
                    message="Invalid Content-Length header", field="content-length"
                )
            if length > self.limit:
                raise PayloadTooLargeError(limit=self.limit, length=length)

        # Chunked uploads carry no Content-Length; stop once the limit is passed
        chunks: List[bytes] = []
        received = 0
        async for chunk in request.stream():
            received += len(chunk)
            if received > self.limit:
                raise PayloadTooLargeError(limit=self.limit, length=received)
            chunks.append(chunk)

        raw = b"".join(chunks)
        # Starlette replays request._body to downstream handlers
        request._body = raw
        return raw

    def _decode_text(self, raw: bytes, charset: str, kind: str) -> str:
        charset = charset.lower()
        if kind == JSON and not charset.startswith("utf-"):
            raise UnsupportedMediaTypeError(charset=charset)
        try:
            codecs.lookup(charset)
        except LookupError:
            raise UnsupportedMediaTypeError(charset=charset)
        try:
            return raw.decode(charset)
        except UnicodeDecodeError as exc:
            raise ValidationError(
                message=f"Request body is not valid {charset.upper()}",
                field="body",
                context={"position": exc.start},
            ) from exc
