"""
Request pipeline for the matching API: authentication, rate limits and the
error envelope.
"""
from app.middleware.auth import APIKeyMiddleware, is_public_path
from app.middleware.error_handling import setup_error_handling
from app.middleware.rate_limit import limiter, rate_limit_exceeded_handler

__all__ = [
    'APIKeyMiddleware',
    'is_public_path',
    'limiter',
    'rate_limit_exceeded_handler',
    'setup_error_handling',
]
