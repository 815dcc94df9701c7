"""Application error taxonomy.

Service code raises these; the exception handlers registered in
``snapfeed.main`` are the only place that turns them into HTTP responses.
"""
from typing import Optional


class AppError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code = 500
    code = "internal_server_error"
    default_message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class BadRequest(AppError):
    status_code = 400
    code = "bad_request"
    default_message = "Bad request"


class Unauthenticated(AppError):
    """Missing, invalid or expired token, or no live session for it."""

    status_code = 401
    code = "unauthorized"
    default_message = "Authentication required"


class Forbidden(AppError):
    """Identity is known but the action is not permitted."""

    status_code = 403
    code = "forbidden"
    default_message = "You do not have permission to perform this action"


class QuotaExhausted(Forbidden):
    code = "quota_exhausted"
    default_message = "Daily limit reached for this action"

    def __init__(self, kind: str, message: Optional[str] = None):
        self.kind = kind
        super().__init__(message or f"Daily limit reached for '{kind}'")


class NotFound(AppError):
    status_code = 404
    code = "not_found"
    default_message = "Resource not found"


class Conflict(AppError):
    status_code = 409
    code = "conflict"
    default_message = "Resource already exists"


class InternalError(AppError):
    """Store, registry or signing failure. Detail is logged, never returned."""

    status_code = 500
    code = "internal_server_error"
