"""
Error handling for the matching API.

Every failure, whether raised by the matching services, by request
validation or unexpectedly, leaves the API in the same envelope:

    {"error": {"id", "code", "message", "timestamp", "path", "details", "suggestion"}}

Codes are grouped: 1xxx general, 2xxx participant/quota, 3xxx match
lifecycle, 6xxx infrastructure.
"""
import os
import traceback
import logging
from collections import Counter, deque
from typing import Dict, Any, Optional
from datetime import datetime
from enum import Enum
from dataclasses import dataclass
from uuid import uuid4

from fastapi import Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Application error codes."""
    INTERNAL_ERROR = "E1000"
    VALIDATION_ERROR = "E1001"
    NOT_FOUND = "E1002"
    UNAUTHORIZED = "E1003"
    FORBIDDEN = "E1004"
    RATE_LIMITED = "E1005"
    BAD_REQUEST = "E1006"
    CONFLICT = "E1007"

    USER_NOT_FOUND = "E2001"
    QUOTA_EXCEEDED = "E2002"

    MATCH_NOT_FOUND = "E3002"
    MATCH_ALREADY_RESOLVED = "E3003"
    MATCH_EXPIRED = "E3004"

    DATABASE_ERROR = "E6001"
    CACHE_ERROR = "E6002"
    EXTERNAL_API_ERROR = "E6004"


ERROR_STATUS_MAP = {
    ErrorCode.INTERNAL_ERROR: 500,
    ErrorCode.VALIDATION_ERROR: 422,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.BAD_REQUEST: 400,
    ErrorCode.CONFLICT: 409,
    ErrorCode.USER_NOT_FOUND: 404,
    ErrorCode.QUOTA_EXCEEDED: 429,
    ErrorCode.MATCH_NOT_FOUND: 404,
    ErrorCode.MATCH_ALREADY_RESOLVED: 409,
    ErrorCode.MATCH_EXPIRED: 410,
    ErrorCode.DATABASE_ERROR: 503,
    ErrorCode.CACHE_ERROR: 503,
    ErrorCode.EXTERNAL_API_ERROR: 502,
}


@dataclass
class ErrorResponse:
    error_id: str
    code: str
    message: str
    status_code: int
    timestamp: str
    path: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    suggestion: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        body = {
            "id": self.error_id,
            "code": self.code,
            "message": self.message,
            "timestamp": self.timestamp,
            "path": self.path,
            "details": self.details,
            "suggestion": self.suggestion,
        }
        return {"error": {key: value for key, value in body.items() if value}}


class AppException(Exception):
    """Base for errors the API reports with a specific code and status."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
        original_error: Optional[Exception] = None,
        headers: Optional[Dict[str, str]] = None
    ):
        self.code = code
        self.message = message
        self.details = details
        self.suggestion = suggestion
        self.original_error = original_error
        self.headers = headers
        self.status_code = ERROR_STATUS_MAP.get(code, 500)
        super().__init__(message)


class ValidationException(AppException):
    """Invalid input; ``field`` names the offending parameter when known."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        details = dict(details or {})
        if field:
            details["field"] = field
        super().__init__(
            code=ErrorCode.VALIDATION_ERROR,
            message=message,
            details=details,
            suggestion="Please check your input and try again"
        )


class NotFoundException(AppException):

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        code: ErrorCode = ErrorCode.NOT_FOUND
    ):
        if resource_id:
            message = f"{resource_type} with ID '{resource_id}' not found"
        else:
            message = f"{resource_type} not found"
        super().__init__(
            code=code,
            message=message,
            details={"resource_type": resource_type, "resource_id": resource_id}
        )


class QuotaExceededException(AppException):
    """Daily usage quota for an action is exhausted."""

    def __init__(self, action: str, retry_after_seconds: int):
        super().__init__(
            code=ErrorCode.QUOTA_EXCEEDED,
            message=f"Daily limit reached for '{action}'",
            details={"action": action, "retry_after_seconds": retry_after_seconds},
            suggestion="Upgrade your subscription or try again tomorrow",
            headers={"Retry-After": str(retry_after_seconds)}
        )


class ConflictException(AppException):
    """State conflict, e.g. acting on a match that is already resolved."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.CONFLICT
    ):
        super().__init__(code=code, message=message, details=details)


class ExternalServiceException(AppException):
    """A dependency (PostgreSQL, Redis, marketplace backend) failed."""

    def __init__(
        self,
        service_name: str,
        message: str,
        code: ErrorCode = ErrorCode.EXTERNAL_API_ERROR,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            code=code,
            message=f"{service_name}: {message}",
            details={"service": service_name},
            suggestion="Please try again later",
            original_error=original_error
        )


class ErrorTracker:
    """Per-code counters and the most recent errors, reported by /admin/system-health."""

    def __init__(self, max_recent: Optional[int] = None):
        self.max_recent = max_recent or int(os.getenv("MAX_STORED_ERRORS", "1000"))
        self._counts: Counter = Counter()
        self._recent: deque = deque(maxlen=self.max_recent)

    def track(
        self,
        error_id: str,
        error_code: ErrorCode,
        message: str,
        request_path: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> None:
        self._counts[error_code.value] += 1
        self._recent.append({
            "error_id": error_id,
            "code": error_code.value,
            "message": message,
            "path": request_path,
            "user_id": user_id,
            "timestamp": datetime.utcnow().isoformat(),
        })

        # Quota, validation and conflict errors are normal traffic
        level = logging.ERROR if ERROR_STATUS_MAP.get(error_code, 500) >= 500 else logging.INFO
        logger.log(
            level,
            f"Error tracked: {error_id} - {error_code.value}: {message}",
            extra={"extra_fields": {"error_id": error_id, "error_code": error_code.value}}
        )

    def get_stats(self, recent: int = 10) -> Dict[str, Any]:
        return {
            "total_errors": sum(self._counts.values()),
            "by_code": dict(self._counts),
            "recent_errors": list(self._recent)[-recent:][::-1],
        }


error_tracker = ErrorTracker()


def _respond(
    request: Optional[Request],
    code: str,
    message: str,
    status_code: int,
    details: Optional[Dict[str, Any]] = None,
    suggestion: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
    error_id: Optional[str] = None,
) -> JSONResponse:
    response = ErrorResponse(
        error_id=error_id or str(uuid4()),
        code=code,
        message=message,
        status_code=status_code,
        timestamp=datetime.utcnow().isoformat(),
        path=request.url.path if request else None,
        details=details,
        suggestion=suggestion,
    )
    return JSONResponse(status_code=status_code, content=response.to_dict(), headers=headers)


def app_exception_response(error: AppException, request: Optional[Request] = None) -> JSONResponse:
    """Track ``error`` and render it in the standard envelope."""
    error_id = str(uuid4())
    error_tracker.track(
        error_id=error_id,
        error_code=error.code,
        message=error.message,
        request_path=request.url.path if request else None,
        user_id=request.headers.get("X-User-ID") if request else None,
    )
    if error.original_error is not None and error.status_code >= 500:
        logger.debug("".join(traceback.format_exception(
            type(error.original_error), error.original_error, error.original_error.__traceback__
        )))
    return _respond(
        request,
        code=error.code.value,
        message=error.message,
        status_code=error.status_code,
        details=error.details,
        suggestion=error.suggestion,
        headers=error.headers,
        error_id=error_id,
    )


def _internal_error_response(request: Request, exc: Exception) -> JSONResponse:
    error_id = str(uuid4())
    logger.exception(f"Unexpected error {error_id}: {str(exc)}")
    error_tracker.track(
        error_id=error_id,
        error_code=ErrorCode.INTERNAL_ERROR,
        message=str(exc),
        request_path=request.url.path,
    )

    # Exception text is only exposed when DEBUG is on
    is_debug = os.getenv("DEBUG", "false").lower() == "true"
    return _respond(
        request,
        code=ErrorCode.INTERNAL_ERROR.value,
        message=str(exc) if is_debug else "An internal error occurred",
        status_code=500,
        suggestion="Please try again later or contact support",
        error_id=error_id,
    )


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Catches errors raised outside route handlers, e.g. in other middleware."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except AppException as e:
            return app_exception_response(e, request)
        except HTTPException as e:
            return _respond(request, code=f"HTTP_{e.status_code}", message=str(e.detail), status_code=e.status_code)
        except Exception as e:
            return _internal_error_response(request, e)


def setup_error_handling(app):
    """Register the envelope handlers and middleware on ``app``."""
    app.add_middleware(ErrorHandlingMiddleware)

    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException):
        return app_exception_response(exc, request)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        # Drop the leading "body"/"query" segment so field names match the payload
        field = ".".join(str(part) for part in first.get("loc", ())[1:]) or None
        validation_error = ValidationException(
            message=first.get("msg", "Invalid request"),
            field=field,
            details={"errors": [
                {"loc": [str(p) for p in e.get("loc", ())], "msg": e.get("msg"), "type": e.get("type")}
                for e in errors
            ]}
        )
        return app_exception_response(validation_error, request)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        return _internal_error_response(request, exc)

    logger.info("Error handling configured")
