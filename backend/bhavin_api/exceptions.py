"""
Bhavin API — Custom Exception Hierarchy
========================================

What:  Application-specific exceptions for the request pipeline.
How:   Each exception carries a message, an optional context dict, and the
       HTTP status / error code it maps to. Stages convert them to responses
       themselves; route-level ones are mapped by the handlers in main.py.
Who:   Raised by stages, security policies and route handlers.

Exception Hierarchy:
    BhavinAPIError (base)           → 500 Internal Server Error
    ├── ValidationError             → 400 Bad Request (malformed body/cookies)
    ├── PolicyViolationError        → 403 Forbidden (or policy-chosen status)
    ├── PayloadTooLargeError        → 413 Payload Too Large
    ├── UnsupportedMediaTypeError   → 415 Unsupported Media Type
    └── ResponseAlreadySentError    → raised on writes after a response finished
"""

from typing import Any, Dict, Optional


class BhavinAPIError(Exception):
    """
    Base exception for all pipeline errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, returned as `details`)
    """

    status_code: int = 500
    error_code: str = "server_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(BhavinAPIError):
    """
    Raised when client input cannot be decoded.

    When:    Malformed JSON, invalid URL-encoded body, malformed Cookie header.
    HTTP:    400 Bad Request
    """

    status_code = 400
    error_code = "validation_error"

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class PayloadTooLargeError(BhavinAPIError):
    """
    Raised when a request body exceeds the configured limit.

    HTTP:    413 Payload Too Large
    """

    status_code = 413
    error_code = "payload_too_large"

    def __init__(
        self,
        limit: int,
        length: Optional[int] = None,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["limit"] = limit
        if length is not None:
            ctx["length"] = length
        super().__init__(
            message=message or f"Request entity too large (limit is {limit} bytes)",
            context=ctx,
        )
        self.limit = limit
        self.length = length


class UnsupportedMediaTypeError(BhavinAPIError):
    """
    Raised when a body uses a charset the parser cannot decode.

    HTTP:    415 Unsupported Media Type
    """

    status_code = 415
    error_code = "unsupported_media_type"

    def __init__(
        self,
        charset: str,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["charset"] = charset
        super().__init__(
            message=f"Unsupported charset '{charset.upper()}'",
            context=ctx,
        )
        self.charset = charset


class PolicyViolationError(BhavinAPIError):
    """
    Raised by a security policy to reject a request.

    HTTP:    403 Forbidden unless the policy picks another status
             (e.g. 429 for a throttling policy).
    """

    status_code = 403
    error_code = "forbidden"

    def __init__(
        self,
        message: str = "Request rejected by security policy",
        policy: Optional[str] = None,
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if policy:
            ctx["policy"] = policy
        super().__init__(message=message, context=ctx)
        self.policy = policy
        if status_code is not None:
            self.status_code = status_code


class ResponseAlreadySentError(BhavinAPIError):
    """
    Raised when something tries to write to a response that already finished.

    Not mapped to a status code: by the time it is raised the client already
    has its response. The boundary logs it.
    """

    def __init__(
        self,
        message: str = "Response already sent",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
