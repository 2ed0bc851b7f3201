"""
Bhavin API — Security Check Middleware
=======================================

What:  The last stage before routing. Runs an ordered list of security
       policies against each request; any policy may reject it.
How:   Each SecurityPolicy inspects the request (headers, decoded body,
       cookies are all available by now) and raises PolicyViolationError to
       reject. The stage converts the rejection into an error response with
       the policy's status code and skips routing. Any other exception from
       a policy is a fault and is left to the pipeline boundary (500).
When:  After the access-log stage, so rejections are timed and logged.

Policies are pluggable: pass them to create_app(security_policies=[...]).
The built-in UserAgentDenyListPolicy is enabled from BLOCKED_USER_AGENTS.
"""

import logging
from abc import ABC, abstractmethod
from typing import Iterable, Sequence

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from bhavin_api.exceptions import PolicyViolationError
from bhavin_api.responses import exception_response

logger = logging.getLogger(__name__)


class SecurityPolicy(ABC):
    """
    Interface for a single security check.

    Contract:
        - evaluate() returns None to let the request through
        - evaluate() raises PolicyViolationError to reject it
        - Policies must not keep per-request state on `self`; many requests
          are evaluated concurrently on the same instance
    """

    name: str = "policy"

    @abstractmethod
    async def evaluate(self, request: Request) -> None:
        """
        Inspect one request.

        Raises:
            PolicyViolationError: The request violates this policy. The
                exception's status_code becomes the response status.
        """
        ...


class UserAgentDenyListPolicy(SecurityPolicy):
    """
    Rejects requests whose User-Agent contains a denied substring.

    Matching is case-insensitive. An empty deny list allows everything.
    """

    name = "user_agent_deny_list"

    def __init__(self, denied: Iterable[str]) -> None:
        self.denied = tuple(agent.lower() for agent in denied if agent)

    async def evaluate(self, request: Request) -> None:
        user_agent = request.headers.get("user-agent", "").lower()
        for pattern in self.denied:
            if pattern in user_agent:
                raise PolicyViolationError(
                    message="Automated clients are not allowed",
                    policy=self.name,
                    context={"pattern": pattern},
                )


class SecurityMiddleware(BaseHTTPMiddleware):
    """
    Runs security policies in registration order; first rejection wins.
    """

    def __init__(self, app: ASGIApp, policies: Sequence[SecurityPolicy] = ()) -> None:
        super().__init__(app)
        self.policies = tuple(policies)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        for policy in self.policies:
            try:
                await policy.evaluate(request)
            except PolicyViolationError as exc:
                logger.warning(
                    "[%s] %s %s rejected by %s: %s",
                    getattr(request.state, "request_id", ""),
                    request.method,
                    request.url.path,
                    exc.policy or policy.name,
                    exc.message,
                )
                return exception_response(exc)

        return await call_next(request)
