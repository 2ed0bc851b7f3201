"""
Bhavin API — Request Pipeline Composer
=======================================

What:  Creates and configures the FastAPI application: the ordered stage
       chain, the route table and the exception mapping.
How:   Factory pattern: create_app() returns a fully wired FastAPI instance.
       There is no module-level app; the process entry point (server.py)
       or uvicorn's --factory mode constructs it.
Who:   `uvicorn bhavin_api.main:create_app --factory`, bhavin_api.server, tests.

Application Architecture:
    ┌─────────────────────────────────────────────────────────────┐
    │                        FastAPI App                          │
    │                                                             │
    │  Stage Chain (runs in this order):                          │
    │  Boundary → Security Headers → CORS → Body → Cookies        │
    │           → Access Log → Security Checks                    │
    │                                                             │
    │  Route Table (first match wins):                            │
    │  ┌──────────┐ ┌───────────────────────┐ ┌────────────────┐  │
    │  │  GET /   │ │ Mount /api/auth → auth│ │ anything → 404 │  │
    │  └──────────┘ └───────────────────────┘ └────────────────┘  │
    │                                                             │
    │  Exception Handlers (route level):                          │
    │  BhavinAPIError→status │ 404/405→404 │ others→Boundary 500  │
    └─────────────────────────────────────────────────────────────┘
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import (
    AsyncContextManager,
    AsyncGenerator,
    Callable,
    List,
    Optional,
    Sequence,
    Tuple,
)

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware import Middleware
from starlette.responses import JSONResponse
from starlette.routing import Mount, Route
from starlette.types import ASGIApp, Receive, Scope, Send

from bhavin_api import __version__
from bhavin_api.config import Settings, settings as default_settings
from bhavin_api.exceptions import BhavinAPIError
from bhavin_api.middleware.body_parser import BodyParserMiddleware
from bhavin_api.middleware.boundary import PipelineBoundaryMiddleware
from bhavin_api.middleware.cookie_parser import CookieParserMiddleware
from bhavin_api.middleware.logging import AccessLog, AccessLogMiddleware
from bhavin_api.middleware.request_id import REQUEST_ID_HEADER, request_id_var
from bhavin_api.middleware.security import (
    SecurityMiddleware,
    SecurityPolicy,
    UserAgentDenyListPolicy,
)
from bhavin_api.middleware.security_headers import (
    SecurityHeadersMiddleware,
    default_security_headers,
)
from bhavin_api.responses import error_response, exception_response
from bhavin_api.routes import home
from bhavin_api.routes.auth import create_auth_app

logger = logging.getLogger(__name__)

AUTH_PREFIX = "/api/auth"


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(config: Settings = default_settings) -> None:
    """
    Configure logging for the entire application.

    Handlers:
        - stdout (always; containers capture it)
        - <log_dir>/combined.log, every level (when LOG_DIR is set)
        - <log_dir>/error.log, ERROR and above (when LOG_DIR is set)

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    """
    log_format = (
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if config.log_dir:
        log_dir = Path(config.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_dir / "combined.log", encoding="utf-8"))
        error_handler = logging.FileHandler(log_dir / "error.log", encoding="utf-8")
        error_handler.setLevel(logging.ERROR)
        handlers.append(error_handler)

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=handlers,
        force=True,
    )

    # The access-log stage replaces uvicorn's own access log
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

def make_lifespan(config: Settings) -> Callable[[FastAPI], AsyncContextManager[None]]:
    """Build the lifespan context manager bound to `config`."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        # ── Startup ───────────────────────────────────────────────────────
        setup_logging(config)
        logger.info("=" * 60)
        logger.info("Bhavin API %s starting up (%s)...", __version__, config.app_env)
        logger.info("Listening on http://%s:%d", config.host, config.port)
        if config.log_dir:
            logger.info("Log directory: %s", Path(config.log_dir).resolve())
        if not config.cookie_secret:
            logger.info("COOKIE_SECRET not set; signed cookies are disabled")
        logger.info("=" * 60)

        yield

        # ── Shutdown ──────────────────────────────────────────────────────
        logger.info("Bhavin API shutting down...")

    return lifespan


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def register_exception_handlers(app: FastAPI) -> None:
    """
    Map route-level exceptions to responses.

    Handler hierarchy:
        BhavinAPIError (and subclasses) → the exception's status_code
        404 Not Found                   → 404 not_found
        405 Method Not Allowed          → 404 not_found (unknown method+path
                                          pairs are simply unmatched routes)

    Anything else is not handled here: it escapes to the pipeline boundary,
    which converts it to a single generic 500.
    """

    @app.exception_handler(BhavinAPIError)
    async def handle_app_error(request: Request, exc: BhavinAPIError) -> JSONResponse:
        rid = request_id_var.get("")
        if exc.status_code >= 500:
            logger.error("[%s] %s | Context: %s", rid, exc.message, exc.context)
        else:
            logger.warning("[%s] %s: %s", rid, exc.error_code, exc.message)
        return exception_response(exc)

    async def handle_not_found(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return error_response(
            status_code=404,
            error="not_found",
            message=f"Cannot {request.method} {request.url.path}",
        )

    app.add_exception_handler(404, handle_not_found)
    app.add_exception_handler(405, handle_not_found)


# ══════════════════════════════════════════════════════════════════════════
# Stage Chain
# ══════════════════════════════════════════════════════════════════════════

def default_security_policies(config: Settings) -> List[SecurityPolicy]:
    """Policies enabled from configuration alone."""
    policies: List[SecurityPolicy] = []
    if config.blocked_user_agents_list:
        policies.append(UserAgentDenyListPolicy(config.blocked_user_agents_list))
    return policies


def build_middleware(
    config: Settings,
    access_log: AccessLog,
    security_policies: Sequence[SecurityPolicy] = (),
) -> List[Middleware]:
    """
    The ordered stage chain.

    Starlette runs `middleware=[...]` first-to-last, so this list order is
    the execution order. Do not reorder: the security checks rely on the
    body and cookies being decoded already.
    """
    security_headers = default_security_headers(
        content_security_policy=config.content_security_policy,
        hsts_max_age=config.hsts_max_age,
    )
    return [
        Middleware(
            PipelineBoundaryMiddleware,
            on_complete=[access_log.write],
            fallback_headers=security_headers,
        ),
        Middleware(SecurityHeadersMiddleware, headers=security_headers),
        Middleware(
            CORSMiddleware,
            allow_origins=config.cors_origins_list,
            allow_methods=config.cors_methods_list,
            allow_headers=["*"],
            allow_credentials=config.cors_allow_credentials,
            expose_headers=[REQUEST_ID_HEADER],
        ),
        Middleware(
            BodyParserMiddleware,
            limit=config.body_limit,
            parameter_limit=config.body_parameter_limit,
        ),
        Middleware(
            CookieParserMiddleware,
            secret=config.cookie_secret,
            max_header_size=config.max_cookie_header_size,
        ),
        Middleware(AccessLogMiddleware),
        Middleware(SecurityMiddleware, policies=list(security_policies)),
    ]


# ══════════════════════════════════════════════════════════════════════════
# Route Groups
# ══════════════════════════════════════════════════════════════════════════

class ExactPrefix:
    """
    Hands a request for the bare prefix (/api/auth) to its mount as "/".

    A Starlette Mount only matches "<prefix>/...", and the router would
    otherwise answer the bare prefix with a 307 redirect.
    """

    def __init__(self, mount: Mount) -> None:
        self.mount = mount

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        scope = dict(scope)
        scope["path"] = scope["path"] + "/"
        if scope.get("raw_path"):
            scope["raw_path"] = scope["raw_path"] + b"/"
        _, child_scope = self.mount.matches(scope)
        scope.update(child_scope)
        await self.mount.handle(scope, receive, send)


def mount_group(app: FastAPI, prefix: str, group: ASGIApp) -> None:
    """Mount `group` under `prefix`, including the bare prefix itself."""
    mount = Mount(prefix, app=group)
    app.router.routes.append(mount)
    app.router.routes.append(
        Route(prefix, endpoint=ExactPrefix(mount), include_in_schema=False)
    )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    config: Optional[Settings] = None,
    *,
    auth_routes: Optional[ASGIApp] = None,
    security_policies: Optional[Sequence[SecurityPolicy]] = None,
    route_groups: Sequence[Tuple[str, ASGIApp]] = (),
) -> FastAPI:
    """
    Create and configure the request pipeline.

    Args:
        config:             Settings to build from (default: environment)
        auth_routes:        ASGI app mounted at /api/auth
                            (default: the built-in auth route group)
        security_policies:  Policies for the security stage
                            (default: derived from configuration)
        route_groups:       Extra (prefix, app) mounts, registered after the
                            auth group; the first registered prefix wins

    Returns: FastAPI instance whose __call__ handles one request end to end.
    """
    config = config or default_settings
    if security_policies is None:
        security_policies = default_security_policies(config)

    access_log = AccessLog(fmt=config.access_log_format)

    app = FastAPI(
        title="Bhavin API",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=make_lifespan(config),
        middleware=build_middleware(config, access_log, security_policies),
    )

    register_exception_handlers(app)

    # ── Route Table ───────────────────────────────────────────────────────
    app.include_router(home.router)
    mount_group(app, AUTH_PREFIX, auth_routes if auth_routes is not None else create_auth_app())
    for prefix, group in route_groups:
        mount_group(app, prefix, group)

    return app
