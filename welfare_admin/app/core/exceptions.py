"""
Application exceptions and the handlers that turn them into API responses.

Every failure leaves the API as
`{"success": false, "message": ..., "error": <code>[, "details": {...}]}`.
Subclasses only pick a status and an error code; services raise them and
never build responses themselves.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from starlette.exceptions import HTTPException as StarletteHTTPException

from welfare_admin.app.core.response import error_response

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = "ERR_INTERNAL_SERVER"
    default_message = "An internal server error occurred"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_response(self) -> JSONResponse:
        return JSONResponse(
            status_code=self.status_code,
            content=error_response(self.message, self.error_code, self.details),
        )


class ValidationError(AppException):
    """Missing or malformed input."""
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "ERR_VALIDATION"
    default_message = "Invalid request"


class ConflictError(ValidationError):
    """Uniqueness violations: duplicate assignment, phone or email in use."""
    error_code = "ERR_CONFLICT"


class AuthenticationError(AppException):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "ERR_AUTH_001"
    default_message = "Authentication failed"


class TokenRevokedError(AuthenticationError):
    error_code = "ERR_AUTH_002"
    default_message = "Token has been revoked"


class AuthorizationError(AppException):
    """Authenticated, but the permission check (or account state) says no."""
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "ERR_PERM_001"
    default_message = "Insufficient permissions"


class NotFoundError(AppException):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "ERR_NOT_FOUND_001"

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} with ID {resource_id} not found" if resource_id else f"{resource} not found"
        super().__init__(message, {"resource": resource, "id": resource_id})


class RateLimitError(AppException):
    """OTP send limits."""
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    error_code = "ERR_RATE_LIMIT"

    def __init__(self, message: str, retry_after: Optional[int] = None):
        super().__init__(message, {"retry_after": retry_after} if retry_after else None)


class UpstreamServiceError(AppException):
    """Object storage, SMS gateway or OTP store failure. Not retried."""
    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = "ERR_UPSTREAM"

    def __init__(self, service: str, message: Optional[str] = None):
        super().__init__(message or f"{service} service unavailable", {"service": service})


# Global Exception Handlers

HTTP_ERROR_CODES = {
    400: "ERR_BAD_REQUEST",
    401: "ERR_UNAUTHORIZED",
    403: "ERR_FORBIDDEN",
    404: "ERR_NOT_FOUND",
    405: "ERR_METHOD_NOT_ALLOWED",
    500: "ERR_INTERNAL_SERVER",
}


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.error_code, request.method, request.url.path, exc.message)
    return exc.to_response()


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Framework errors (unknown route, wrong method) in the same envelope."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(str(exc.detail), HTTP_ERROR_CODES.get(exc.status_code, "ERR_UNKNOWN")),
        headers=getattr(exc, "headers", None),
    )


def _safe_errors(errors):
    # ctx can carry exception instances which are not JSON serialisable
    return [{k: v for k, v in err.items() if k in ("loc", "msg", "type")} for err in errors]


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Request body/query validation. Reported as 400 with the first problem as the message."""
    errors = exc.errors()
    message = "Validation error"
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
        message = f"{field}: {first.get('msg')}" if field else first.get("msg", message)
    return ValidationError(message, {"errors": _safe_errors(errors)}).to_response()


async def redis_exception_handler(request: Request, exc: RedisError) -> JSONResponse:
    """Redis outages during OTP flows surface as an upstream failure."""
    logger.error("Redis error on %s %s: %s", request.method, request.url.path, exc)
    return UpstreamServiceError("OTP store", "OTP service temporarily unavailable").to_response()


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return AppException().to_response()
