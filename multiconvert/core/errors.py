"""Centralized error handling for the API.

Every error leaving the service is rendered as ``{"error": <CODE>, "message": <text>}``.
Validation and auth failures surface synchronously here; failures of conversion
work never do, they are recorded on the job and read back through status polls.
"""

from typing import Dict, Optional

import structlog
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_405_METHOD_NOT_ALLOWED,
    HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    HTTP_415_UNSUPPORTED_MEDIA_TYPE,
    HTTP_429_TOO_MANY_REQUESTS,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from multiconvert.core.logging import REQUEST_ID_HEADER, get_request_id
from multiconvert.core.metrics import MetricsCollector

logger = structlog.get_logger(__name__)


class ErrorCode:
    """Machine-readable error categories returned in the ``error`` field."""

    # Client Errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNSUPPORTED_KIND = "UNSUPPORTED_KIND"
    INVALID_URL = "INVALID_URL"
    UNSUPPORTED_FILE_TYPE = "UNSUPPORTED_FILE_TYPE"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    JOB_NOT_FOUND = "JOB_NOT_FOUND"
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    VIDEO_NOT_FOUND = "VIDEO_NOT_FOUND"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"

    # Server Errors (5xx)
    GENERATION_FAILED = "GENERATION_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


ERROR_CODE_TO_STATUS: Dict[str, int] = {
    ErrorCode.VALIDATION_ERROR: HTTP_400_BAD_REQUEST,
    ErrorCode.UNSUPPORTED_KIND: HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_URL: HTTP_400_BAD_REQUEST,
    ErrorCode.UNSUPPORTED_FILE_TYPE: HTTP_415_UNSUPPORTED_MEDIA_TYPE,
    ErrorCode.FILE_TOO_LARGE: HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    ErrorCode.UNAUTHORIZED: HTTP_401_UNAUTHORIZED,
    ErrorCode.FORBIDDEN: HTTP_403_FORBIDDEN,
    ErrorCode.NOT_FOUND: HTTP_404_NOT_FOUND,
    ErrorCode.JOB_NOT_FOUND: HTTP_404_NOT_FOUND,
    ErrorCode.FILE_NOT_FOUND: HTTP_404_NOT_FOUND,
    ErrorCode.VIDEO_NOT_FOUND: HTTP_404_NOT_FOUND,
    ErrorCode.METHOD_NOT_ALLOWED: HTTP_405_METHOD_NOT_ALLOWED,
    ErrorCode.RATE_LIMIT_EXCEEDED: HTTP_429_TOO_MANY_REQUESTS,
    ErrorCode.GENERATION_FAILED: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.INTERNAL_ERROR: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.SERVICE_UNAVAILABLE: HTTP_503_SERVICE_UNAVAILABLE,
}


class APIError(Exception):
    """Structured API error converted to an ``{error, message}`` response."""

    def __init__(
        self,
        error_code: str,
        message: str,
        headers: Optional[Dict[str, str]] = None,
    ):
        """Initialize an API error.

        Args:
            error_code: Machine-readable error code from ErrorCode class.
            message: Human-readable error message.
            headers: Optional extra response headers.
        """
        self.error_code = error_code
        self.message = message
        self.headers = headers
        super().__init__(message)

    @property
    def status_code(self) -> int:
        return ERROR_CODE_TO_STATUS.get(self.error_code, HTTP_500_INTERNAL_SERVER_ERROR)


def error_body(error_code: str, message: str) -> Dict[str, str]:
    """Build the standard error response body."""
    return {"error": error_code, "message": message}


def error_response(
    status_code: int,
    error_code: str,
    message: str,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """Build a JSONResponse with the standard error body and request id header."""
    response_headers = dict(headers or {})
    request_id = get_request_id()
    if request_id:
        response_headers.setdefault(REQUEST_ID_HEADER, request_id)
    return JSONResponse(
        status_code=status_code,
        content=error_body(error_code, message),
        headers=response_headers,
    )


def _format_validation_error(exc: RequestValidationError) -> str:
    """Render the first pydantic validation problem as one readable sentence."""
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Convert every exception into the standard error body.

    Args:
        request: The FastAPI request object.
        exc: The exception that was raised.

    Returns:
        JSONResponse with ``{error, message}`` and an appropriate status code.
    """
    path = request.url.path

    if isinstance(exc, APIError):
        status_code = exc.status_code
        error_code = exc.error_code
        message = exc.message
        headers = exc.headers
        logger.warning("api_error", error_code=error_code, message=message, path=path)

    elif isinstance(exc, RequestValidationError):
        status_code = HTTP_400_BAD_REQUEST
        error_code = ErrorCode.VALIDATION_ERROR
        message = _format_validation_error(exc)
        headers = None
        logger.warning("request_validation_failed", message=message, path=path)

    elif isinstance(exc, StarletteHTTPException):
        status_code = exc.status_code
        error_code = _status_to_error_code(status_code)
        message = str(exc.detail) if exc.detail else "An error occurred"
        headers = getattr(exc, "headers", None)
        logger.warning(
            "http_exception",
            status_code=status_code,
            error_code=error_code,
            path=path,
        )

    else:
        status_code = HTTP_500_INTERNAL_SERVER_ERROR
        error_code = ErrorCode.INTERNAL_ERROR
        message = "An unexpected error occurred"
        headers = None
        logger.error(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error=str(exc),
            path=path,
            exc_info=exc,
        )

    route = request.scope.get("route")
    MetricsCollector.record_error(error_code, route.path if route else "/unmatched")

    return error_response(status_code, error_code, message, headers)


def _status_to_error_code(status_code: int) -> str:
    """Infer error code from HTTP status code."""
    if status_code == HTTP_400_BAD_REQUEST:
        return ErrorCode.VALIDATION_ERROR
    elif status_code == HTTP_401_UNAUTHORIZED:
        return ErrorCode.UNAUTHORIZED
    elif status_code == HTTP_403_FORBIDDEN:
        return ErrorCode.FORBIDDEN
    elif status_code == HTTP_404_NOT_FOUND:
        return ErrorCode.NOT_FOUND
    elif status_code == HTTP_405_METHOD_NOT_ALLOWED:
        return ErrorCode.METHOD_NOT_ALLOWED
    elif status_code == HTTP_413_REQUEST_ENTITY_TOO_LARGE:
        return ErrorCode.FILE_TOO_LARGE
    elif status_code == HTTP_429_TOO_MANY_REQUESTS:
        return ErrorCode.RATE_LIMIT_EXCEEDED
    elif status_code == HTTP_503_SERVICE_UNAVAILABLE:
        return ErrorCode.SERVICE_UNAVAILABLE
    else:
        return ErrorCode.INTERNAL_ERROR
