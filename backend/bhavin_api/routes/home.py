"""
Bhavin API — Greeting Route
============================

What:  GET /, a constant greeting used as a liveness smoke test.
How:   Always 200 with a fixed plain-text body and one INFO log line.
"""

import logging

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

logger = logging.getLogger(__name__)

GREETING = "Hello From Bhavin"

router = APIRouter(tags=["Home"])


@router.api_route(
    "/",
    methods=["GET", "HEAD"],
    response_class=PlainTextResponse,
    summary="Greeting",
)
async def greeting() -> PlainTextResponse:
    logger.info("Hello From Bhavin!")
    return PlainTextResponse(GREETING, status_code=200)
