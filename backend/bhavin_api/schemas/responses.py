"""
Bhavin API — Pydantic Response Schemas
=======================================

What:  Pydantic models defining the JSON bodies the pipeline produces.
How:   Stages, exception handlers and the boundary build JSON error bodies
       from ErrorResponse; the auth route group returns MessageResponse.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    What:  Standardized error response format for all pipeline errors.

    Fields:
        error: Machine-readable error code (e.g., "validation_error", "not_found")
        message: Human-readable description for display to users
        details: Optional extra context (e.g., the body size limit)
        request_id: Correlation ID for tracing this error in server logs

    Example:
        {
            "error": "payload_too_large",
            "message": "Request entity too large (limit is 102400 bytes)",
            "details": {"limit": 102400, "length": 204800},
            "request_id": "a1b2c3d4"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class MessageResponse(BaseModel):
    """Plain acknowledgement body used by the authentication route group."""
    message: str = Field(description="Human-readable result")
