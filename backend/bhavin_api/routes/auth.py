"""
Bhavin API — Authentication Route Group
========================================

What:  Default route group mounted at /api/auth.
How:   Placeholder endpoints acknowledging each call; account handling lives
       in the authentication service that replaces this group in deployment
       (create_app(auth_routes=...)).
Who:   Reached only after every shared stage ran, so request.state already
       carries the decoded body and cookies.

Routes (relative to the mount prefix):
    POST /sign-up   → 201
    POST /sign-in   → 200
    POST /sign-out  → 200
"""

import logging

from fastapi import APIRouter, FastAPI, Request

from bhavin_api.schemas.responses import MessageResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Auth"])


def _acknowledge(request: Request) -> MessageResponse:
    logger.info(
        "[%s] %s %s",
        getattr(request.state, "request_id", ""),
        request.method,
        request.url.path,
    )
    return MessageResponse(message=f"{request.method} {request.url.path} response")


@router.post("/sign-up", status_code=201, response_model=MessageResponse)
async def sign_up(request: Request) -> MessageResponse:
    return _acknowledge(request)


@router.post("/sign-in", response_model=MessageResponse)
async def sign_in(request: Request) -> MessageResponse:
    return _acknowledge(request)


@router.post("/sign-out", response_model=MessageResponse)
async def sign_out(request: Request) -> MessageResponse:
    return _acknowledge(request)


def create_auth_app() -> FastAPI:
    """Build the route group as a sub-application for mounting at /api/auth."""
    auth_app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)
    auth_app.include_router(router)
    return auth_app
