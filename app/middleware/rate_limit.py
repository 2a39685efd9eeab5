"""
HTTP rate limiting with slowapi.

Separate from the daily subscription quotas enforced by the usage gate:
these limits only protect the service from bursts. Retrieval scores every
candidate, so it gets the tighter limit.
"""
import os
import logging
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request
from fastapi.responses import JSONResponse

from app.middleware.error_handling import AppException, ErrorCode, app_exception_response

logger = logging.getLogger(__name__)

RATE_LIMIT_ENABLED = os.getenv('RATE_LIMIT_ENABLED', 'true').lower() == 'true'
RATE_LIMIT_DEFAULT = os.getenv('RATE_LIMIT_DEFAULT', '100/minute')
RATE_LIMIT_POTENTIAL = os.getenv('RATE_LIMIT_POTENTIAL', '30/minute')
RATE_LIMIT_SWIPE = os.getenv('RATE_LIMIT_SWIPE', '120/minute')

# Shared counters across API replicas when Redis is available
RATE_LIMIT_STORAGE_URL = os.getenv('REDIS_URL', os.getenv('CELERY_BROKER_URL'))

DEFAULT_RETRY_AFTER_SECONDS = 60


def get_rate_limit_key(request: Request) -> str:
    """
    Limit per end user when the backend forwards X-User-ID; otherwise per
    API key, otherwise per client address.
    """
    user_id = request.headers.get("X-User-ID")
    if user_id:
        return f"user:{user_id}"
    api_key = request.headers.get('X-API-KEY')
    if api_key:
        # Key prefix only, the full key never reaches the limiter storage
        return f"apikey:{api_key[:16]}"
    return get_remote_address(request)


def create_limiter(enabled: bool = RATE_LIMIT_ENABLED, storage_url: str = RATE_LIMIT_STORAGE_URL) -> Limiter:
    options = {
        "key_func": get_rate_limit_key,
        "default_limits": [RATE_LIMIT_DEFAULT],
        "strategy": "fixed-window",
        "enabled": enabled,
    }
    if enabled and storage_url:
        options["storage_uri"] = storage_url
        logger.info("Rate limiting backed by Redis")
    return Limiter(**options)


limiter = create_limiter()


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Render a slowapi 429 in the standard error envelope."""
    logger.warning(f"Rate limit exceeded for {get_rate_limit_key(request)}: {exc.detail}")
    retry_after = getattr(exc, 'retry_after', DEFAULT_RETRY_AFTER_SECONDS)
    error = AppException(
        code=ErrorCode.RATE_LIMITED,
        message="Rate limit exceeded. Please slow down your requests.",
        details={"limit": str(exc.detail), "retry_after_seconds": retry_after},
        headers={"Retry-After": str(retry_after)}
    )
    return app_exception_response(error, request)
