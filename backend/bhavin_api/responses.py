"""
Bhavin API — Error Response Builder
====================================

What:  Builds the JSON error responses shared by stages, exception handlers
       and the pipeline boundary.
How:   Serializes ErrorResponse and stamps the current request ID.
"""

from typing import Any, Dict, Mapping, Optional

from starlette.responses import JSONResponse

from bhavin_api.exceptions import BhavinAPIError
from bhavin_api.middleware.request_id import request_id_var
from bhavin_api.schemas.responses import ErrorResponse


def error_response(
    status_code: int,
    error: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Mapping[str, str]] = None,
) -> JSONResponse:
    """Return a JSONResponse carrying an ErrorResponse body."""
    body = ErrorResponse(
        error=error,
        message=message,
        details=details or None,
        request_id=request_id_var.get("") or None,
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(),
        headers=dict(headers) if headers else None,
    )


def exception_response(exc: BhavinAPIError) -> JSONResponse:
    """Convert an application exception into its error response."""
    return error_response(
        status_code=exc.status_code,
        error=exc.error_code,
        message=exc.message,
        details=exc.context,
    )
