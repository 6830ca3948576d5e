"""Centralized error handling for the API.

This module provides standardized error codes, exception-to-response mapping,
and a global exception handler for FastAPI.

Every error body carries an ``error`` summary and a ``details`` message,
plus a machine-readable ``error_code`` and the request id for tracing.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Type

import structlog
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
    HTTP_405_METHOD_NOT_ALLOWED,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from app.core.logging import get_request_id
from app.core.metrics import MetricsCollector
from app.providers.exceptions import (
    DownloadError,
    FallbackExhaustedError,
    InvalidURLError,
    MediaURLNotFoundError,
    MissingURLError,
    ProviderError,
    ToolNotFoundError,
    TranscodingError,
    UnsupportedFormatError,
    VideoUnavailableError,
)
from app.services.staging import StagingError

logger = structlog.get_logger(__name__)


class ErrorCode:
    """Standardized error codes for API responses."""

    # Client Errors (4xx)
    MISSING_URL = "MISSING_URL"
    INVALID_URL = "INVALID_URL"
    INVALID_FORMAT = "INVALID_FORMAT"
    INVALID_ACTION = "INVALID_ACTION"
    INVALID_REQUEST = "INVALID_REQUEST"
    NOT_FOUND = "NOT_FOUND"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"

    # Server Errors (5xx)
    VIDEO_UNAVAILABLE = "VIDEO_UNAVAILABLE"
    DOWNLOAD_FAILED = "DOWNLOAD_FAILED"
    TOOL_NOT_FOUND = "TOOL_NOT_FOUND"
    MEDIA_URL_NOT_FOUND = "MEDIA_URL_NOT_FOUND"
    ALL_FALLBACKS_FAILED = "ALL_FALLBACKS_FAILED"
    TRANSCODING_FAILED = "TRANSCODING_FAILED"
    STAGING_FAILED = "STAGING_FAILED"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    # Service Unavailable (503)
    COMPONENT_UNAVAILABLE = "COMPONENT_UNAVAILABLE"


# Error code to HTTP status code mapping
ERROR_CODE_TO_STATUS: Dict[str, int] = {
    ErrorCode.MISSING_URL: HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_URL: HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_FORMAT: HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_ACTION: HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_REQUEST: HTTP_400_BAD_REQUEST,
    ErrorCode.NOT_FOUND: HTTP_404_NOT_FOUND,
    ErrorCode.METHOD_NOT_ALLOWED: HTTP_405_METHOD_NOT_ALLOWED,
    ErrorCode.VIDEO_UNAVAILABLE: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.DOWNLOAD_FAILED: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.TOOL_NOT_FOUND: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.MEDIA_URL_NOT_FOUND: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.ALL_FALLBACKS_FAILED: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.TRANSCODING_FAILED: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.STAGING_FAILED: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.PROVIDER_ERROR: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.INTERNAL_ERROR: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.COMPONENT_UNAVAILABLE: HTTP_503_SERVICE_UNAVAILABLE,
}


# Default summaries used when a handler does not supply its own
ERROR_SUMMARIES: Dict[str, str] = {
    ErrorCode.MISSING_URL: "URL is required",
    ErrorCode.INVALID_URL: "Invalid or unsupported URL",
    ErrorCode.INVALID_FORMAT: "Invalid format",
    ErrorCode.INVALID_ACTION: "Invalid action",
    ErrorCode.INVALID_REQUEST: "Invalid request",
    ErrorCode.NOT_FOUND: "Not found",
    ErrorCode.METHOD_NOT_ALLOWED: "Method Not Allowed",
    ErrorCode.VIDEO_UNAVAILABLE: "Video unavailable",
    ErrorCode.DOWNLOAD_FAILED: "Failed to download video",
    ErrorCode.TOOL_NOT_FOUND: "Failed to download video",
    ErrorCode.MEDIA_URL_NOT_FOUND: "Failed to download video",
    ErrorCode.ALL_FALLBACKS_FAILED: "Failed to download video",
    ErrorCode.TRANSCODING_FAILED: "Failed to download video",
    ErrorCode.STAGING_FAILED: "Failed to process video request",
    ErrorCode.PROVIDER_ERROR: "Failed to process video request",
    ErrorCode.INTERNAL_ERROR: "Internal server error",
    ErrorCode.COMPONENT_UNAVAILABLE: "Service unavailable",
}


# Exception type to error code mapping
# Order matters: subclasses must come before their base classes
EXCEPTION_TO_ERROR_CODE: Dict[Type[Exception], str] = {
    MissingURLError: ErrorCode.MISSING_URL,
    InvalidURLError: ErrorCode.INVALID_URL,
    UnsupportedFormatError: ErrorCode.INVALID_FORMAT,
    VideoUnavailableError: ErrorCode.VIDEO_UNAVAILABLE,
    FallbackExhaustedError: ErrorCode.ALL_FALLBACKS_FAILED,
    ToolNotFoundError: ErrorCode.TOOL_NOT_FOUND,
    MediaURLNotFoundError: ErrorCode.MEDIA_URL_NOT_FOUND,
    DownloadError: ErrorCode.DOWNLOAD_FAILED,
    TranscodingError: ErrorCode.TRANSCODING_FAILED,
    StagingError: ErrorCode.STAGING_FAILED,
    # ProviderError must be last (after its subclasses)
    ProviderError: ErrorCode.PROVIDER_ERROR,
}


class APIError(Exception):
    """Structured API error converted to a JSON error body.

    Route handlers raise this with an endpoint-specific ``error`` summary;
    the global exception handler renders it.
    """

    def __init__(
        self,
        error_code: str,
        details: Optional[str] = None,
        error: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        """Initialize an API error.

        Args:
            error_code: Machine-readable error code from ErrorCode class.
            details: Human-readable description of what went wrong.
            error: Short summary. Defaults to the summary for the code.
            status_code: HTTP status override. Defaults to the status for the code.
        """
        self.error_code = error_code
        self.error = error or ERROR_SUMMARIES.get(error_code, "Error")
        self.details = details
        self.status_code = status_code or ERROR_CODE_TO_STATUS.get(
            error_code, HTTP_500_INTERNAL_SERVER_ERROR
        )
        super().__init__(details or self.error)


def error_code_for(exc: Exception) -> str:
    """Return the error code for an exception, INTERNAL_ERROR when unmapped."""
    for exc_type, error_code in EXCEPTION_TO_ERROR_CODE.items():
        if isinstance(exc, exc_type):
            return error_code
    return ErrorCode.INTERNAL_ERROR


def map_exception_to_api_error(
    exc: Exception,
    error: Optional[str] = None,
    status_code: Optional[int] = None,
) -> APIError:
    """Map provider and service exceptions to APIError.

    Uses EXCEPTION_TO_ERROR_CODE dictionary for type-based dispatch.
    Unmapped exceptions become INTERNAL_ERROR without leaking their message.

    Args:
        exc: The exception to map.
        error: Optional summary overriding the code's default.
        status_code: Optional HTTP status overriding the code's default.
    """
    error_code = error_code_for(exc)
    if error_code == ErrorCode.INTERNAL_ERROR:
        return APIError(error_code, "An unexpected error occurred", error, status_code)
    return APIError(error_code, str(exc), error, status_code)


def build_error_response(
    error_code: str,
    error: str,
    details: Optional[str] = None,
) -> Dict[str, Any]:
    """Build a standardized error response dictionary.

    Returns:
        Dictionary matching the ErrorDetail schema.
    """
    response: Dict[str, Any] = {
        "error": error,
        "details": details,
        "error_code": error_code,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    request_id = get_request_id()
    if request_id:
        response["request_id"] = request_id

    return response


def _route_path(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", "/unmatched")


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler for FastAPI.

    Converts all exceptions to standardized error bodies with proper HTTP
    status codes and request tracing.

    Args:
        request: The FastAPI request object.
        exc: The exception that was raised.

    Returns:
        JSONResponse with ErrorDetail body and appropriate status code.
    """
    if isinstance(exc, APIError):
        api_error = exc
        logger.warning(
            "api_error",
            error_code=exc.error_code,
            details=exc.details,
            path=request.url.path,
        )

    elif isinstance(exc, RequestValidationError):
        messages = [
            f"{'.'.join(str(p) for p in err.get('loc', ())[1:]) or 'body'}: {err.get('msg')}"
            for err in exc.errors()
        ]
        api_error = APIError(ErrorCode.INVALID_REQUEST, "; ".join(messages))
        logger.warning("request_validation_failed", details=api_error.details, path=request.url.path)

    elif isinstance(exc, HTTPException):
        api_error = APIError(
            _status_to_error_code(exc.status_code),
            str(exc.detail) if exc.detail else None,
            status_code=exc.status_code,
        )
        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            error_code=api_error.error_code,
            path=request.url.path,
        )

    elif isinstance(exc, (ProviderError, StagingError)):
        api_error = map_exception_to_api_error(exc)
        logger.warning(
            "provider_error",
            error_code=api_error.error_code,
            error_type=type(exc).__name__,
            message=str(exc),
            path=request.url.path,
        )

    else:
        api_error = APIError(ErrorCode.INTERNAL_ERROR, "An unexpected error occurred")
        logger.error(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error=str(exc),
            path=request.url.path,
            exc_info=True,
        )

    MetricsCollector.record_error(api_error.error_code, _route_path(request))
    response = build_error_response(api_error.error_code, api_error.error, api_error.details)
    headers = getattr(exc, "headers", None) if isinstance(exc, HTTPException) else None
    return JSONResponse(status_code=api_error.status_code, content=response, headers=headers)


def _status_to_error_code(status_code: int) -> str:
    """Infer error code from HTTP status code."""
    if status_code == HTTP_400_BAD_REQUEST:
        return ErrorCode.INVALID_REQUEST
    elif status_code == HTTP_404_NOT_FOUND:
        return ErrorCode.NOT_FOUND
    elif status_code == HTTP_405_METHOD_NOT_ALLOWED:
        return ErrorCode.METHOD_NOT_ALLOWED
    elif status_code == HTTP_503_SERVICE_UNAVAILABLE:
        return ErrorCode.COMPONENT_UNAVAILABLE
    else:
        return ErrorCode.INTERNAL_ERROR
