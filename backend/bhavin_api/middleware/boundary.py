"""
Bhavin API — Pipeline Boundary
===============================

What:  The outermost layer of the request pipeline. Guarantees that every
       request receives exactly one well-formed response, and signals
       completion once that response is finalized.
How:   Pure ASGI middleware wrapping the stage chain:
       1. Resolves the request ID and binds it to the ContextVar
       2. Wraps `send` to record the outcome (status, bytes) and to fail fast
          on writes after the response finished
       3. Converts any exception escaping the chain into a generic 500
          (or closes the response if it had already started)
       4. Runs the completion hooks (the access log) with the final outcome
Who:   Installed first in the middleware list by create_app().

The boundary observes raw `http.response.*` messages rather than Response
objects, so it knows whether a response already started when a fault happens.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Mapping, Optional, Sequence

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from bhavin_api.exceptions import ResponseAlreadySentError
from bhavin_api.middleware.request_id import (
    REQUEST_ID_HEADER,
    request_id_var,
    resolve_request_id,
)
from bhavin_api.responses import error_response

logger = logging.getLogger(__name__)


@dataclass
class ResponseOutcome:
    """What the client actually received for one request."""

    request_id: str
    method: str = ""
    path: str = ""
    query_string: str = ""
    started_at: float = field(default_factory=time.perf_counter)
    status: Optional[int] = None
    content_length: Optional[str] = None
    bytes_sent: int = 0
    started: bool = False
    finished: bool = False
    faulted: bool = False

    @property
    def duration_ms(self) -> float:
        return (time.perf_counter() - self.started_at) * 1000


CompletionHook = Callable[[Scope, ResponseOutcome], Awaitable[None]]


class PipelineBoundaryMiddleware:
    """
    Top-level fallback and completion signal for the stage chain.

    Args:
        app:               The rest of the pipeline (stages + router)
        on_complete:       Hooks awaited once per request after the response is
                           finalized, in order. A failing hook is logged and
                           does not affect the response or the other hooks.
        fallback_headers:  Extra headers for the fallback 500. It is built
                           outside the security-headers stage, so create_app()
                           passes that stage's header set here.
    """

    def __init__(
        self,
        app: ASGIApp,
        on_complete: Sequence[CompletionHook] = (),
        fallback_headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.app = app
        self.on_complete = tuple(on_complete)
        self.fallback_headers: Dict[str, str] = dict(fallback_headers or {})

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        rid = resolve_request_id(Headers(scope=scope))
        token = request_id_var.set(rid)
        scope.setdefault("state", {})["request_id"] = rid
        outcome = ResponseOutcome(
            request_id=rid,
            method=scope.get("method", ""),
            path=scope.get("path", ""),
            query_string=scope.get("query_string", b"").decode("latin-1"),
        )

        async def guarded_send(message: Message) -> None:
            if outcome.finished:
                raise ResponseAlreadySentError(
                    context={"message_type": message["type"], "request_id": rid}
                )
            if message["type"] == "http.response.start":
                if outcome.started:
                    raise ResponseAlreadySentError(
                        message="Response already started",
                        context={"request_id": rid},
                    )
                outcome.started = True
                outcome.status = message["status"]
                headers = MutableHeaders(scope=message)
                headers[REQUEST_ID_HEADER] = rid
                outcome.content_length = headers.get("content-length")
            elif message["type"] == "http.response.body":
                outcome.bytes_sent += len(message.get("body", b""))
                if not message.get("more_body", False):
                    outcome.finished = True
            await send(message)

        try:
            try:
                await self.app(scope, receive, guarded_send)
            except Exception as exc:
                outcome.faulted = True
                logger.error(
                    "[%s] Unexpected error: %s",
                    rid,
                    str(exc),
                    exc_info=True,
                )
                await self._recover(scope, receive, guarded_send, outcome)
            else:
                if not outcome.finished:
                    logger.error(
                        "[%s] Pipeline returned without completing a response", rid
                    )
                    await self._recover(scope, receive, guarded_send, outcome)

            await self._complete(scope, outcome)
        finally:
            request_id_var.reset(token)

    async def _recover(
        self, scope: Scope, receive: Receive, send: Send, outcome: ResponseOutcome
    ) -> None:
        """Send the fallback 500, or close a response that already started."""
        if outcome.finished:
            return
        if outcome.started:
            await send({"type": "http.response.body", "body": b"", "more_body": False})
            return
        response = error_response(
            status_code=500,
            error="internal_server_error",
            message="An unexpected error occurred. Please try again or contact support.",
            headers=self.fallback_headers,
        )
        await response(scope, receive, send)

    async def _complete(self, scope: Scope, outcome: ResponseOutcome) -> None:
        for hook in self.on_complete:
            try:
                await hook(scope, outcome)
            except Exception:
                logger.exception(
                    "[%s] Completion hook %r failed", outcome.request_id, hook
                )
