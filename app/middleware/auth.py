"""
API key authentication.

The matching API sits behind the marketplace backend: the backend
authenticates itself with X-API-KEY and forwards the end user's id in
X-User-ID. Health checks and API docs stay public.
"""
import os
import hmac
import logging
from typing import Iterable, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.middleware.error_handling import AppException, ErrorCode, app_exception_response

logger = logging.getLogger(__name__)

PUBLIC_PATH_PREFIXES = ("/health", "/api/v1/health", "/docs", "/redoc", "/openapi.json")


def is_public_path(path: str, prefixes: Iterable[str] = PUBLIC_PATH_PREFIXES) -> bool:
    return path == "/" or any(path.startswith(prefix) for prefix in prefixes)


class APIKeyMiddleware(BaseHTTPMiddleware):
    """Rejects non-public requests without a valid X-API-KEY."""

    def __init__(self, app, public_prefixes: Optional[Iterable[str]] = None):
        super().__init__(app)
        self.api_key = os.getenv('API_KEY')
        self.environment = os.getenv('ENVIRONMENT', 'development').lower()
        self.public_prefixes = tuple(public_prefixes or PUBLIC_PATH_PREFIXES)

        if self.environment == 'production' and not self.api_key:
            raise ValueError("API_KEY environment variable is REQUIRED in production")

    def _bypass_enabled(self) -> bool:
        # AUTH_BYPASS is for tests and local runs; production ignores it
        if self.environment == "production":
            return False
        return os.getenv("AUTH_BYPASS", "").lower() == "true"

    def _reject(self, request: Request, code: ErrorCode, message: str):
        logger.warning(f"Rejected {request.method} {request.url.path}: {message}")
        return app_exception_response(AppException(code, message), request)

    async def dispatch(self, request: Request, call_next):
        if is_public_path(request.url.path, self.public_prefixes) or self._bypass_enabled():
            return await call_next(request)

        if not self.api_key:
            logger.warning("No API_KEY configured - allowing request (development mode only)")
            return await call_next(request)

        provided = request.headers.get("X-API-KEY")
        if not provided:
            return self._reject(request, ErrorCode.UNAUTHORIZED, "X-API-KEY header is required")
        if not hmac.compare_digest(provided, self.api_key):
            return self._reject(request, ErrorCode.FORBIDDEN, "Invalid API key")

        return await call_next(request)
