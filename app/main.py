"""
FastAPI application for the Venture Match API.
"""
import os
import json
import logging

# Sentry goes first so import-time failures are captured too
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

sentry_dsn = os.getenv('SENTRY_DSN')
if sentry_dsn:
    sentry_sdk.init(
        dsn=sentry_dsn,
        integrations=[FastApiIntegration(), StarletteIntegration()],
        traces_sample_rate=float(os.getenv('SENTRY_TRACES_SAMPLE_RATE', '0.1')),
        environment=os.getenv('ENVIRONMENT', 'development'),
        send_default_pii=False,
    )

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.openapi.utils import get_openapi
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from dotenv import load_dotenv

from app.middleware import (
    APIKeyMiddleware,
    is_public_path,
    limiter,
    rate_limit_exceeded_handler,
    setup_error_handling,
)
from app.routers.health import router as health_router
from app.routers.matching import router as matching_router
from app.utils.logging_config import RequestLoggingMiddleware, setup_logging

dotenv_override = os.getenv("DOTENV_OVERRIDE", "false").lower() == "true"
load_dotenv(override=dotenv_override)

setup_logging()
logger = logging.getLogger(__name__)

API_DESCRIPTION = "Entrepreneur and funder matching: compatibility scoring, ranking and mutual swipes"
REQUIRED_VARS = ('APP_NAME', 'APP_VERSION', 'CORS_ORIGINS', 'ALLOWED_HOSTS')


def _json_list(name: str) -> list:
    try:
        value = json.loads(os.getenv(name, ''))
    except json.JSONDecodeError:
        value = None
    if not isinstance(value, list) or not value:
        raise ValueError(f"{name} must be a valid JSON array")
    return value


def load_settings() -> dict:
    """Read and validate startup settings; secrets are never logged."""
    missing = [var for var in REQUIRED_VARS if not os.getenv(var)]
    if missing:
        raise ValueError(f"Missing required environment variables: {', '.join(missing)}")
    return {
        "name": os.getenv('APP_NAME'),
        "version": os.getenv('APP_VERSION'),
        "environment": os.getenv('ENVIRONMENT', 'development'),
        "cors_origins": _json_list('CORS_ORIGINS'),
        "allowed_hosts": _json_list('ALLOWED_HOSTS'),
    }


def _install_openapi(app: FastAPI) -> None:
    """Document X-API-KEY on every route the auth middleware protects."""

    def custom_openapi():
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(title=app.title, version=app.version, description=app.description, routes=app.routes)
        schema.setdefault("components", {})["securitySchemes"] = {
            "ApiKeyAuth": {"type": "apiKey", "in": "header", "name": "X-API-KEY"}
        }
        for path, operations in schema["paths"].items():
            if is_public_path(path):
                continue
            for operation in operations.values():
                operation["security"] = [{"ApiKeyAuth": []}]
        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi


def create_app() -> FastAPI:
    settings = load_settings()
    logger.info(f"Starting {settings['name']} v{settings['version']} in {settings['environment']} environment")
    logger.info(f"CORS origins: {len(settings['cors_origins'])} configured")
    logger.info(f"Match store backend: {os.getenv('MATCH_STORE_BACKEND', 'memory')}")

    app = FastAPI(
        title=settings['name'],
        description=API_DESCRIPTION,
        version=settings['version'],
        swagger_ui_parameters={"persistAuthorization": True},
    )
    _install_openapi(app)

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    setup_error_handling(app)

    # Added innermost first; RequestLoggingMiddleware wraps everything
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings['cors_origins'],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-API-KEY", "X-User-ID", "X-Request-ID", "Accept"],
    )
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings['allowed_hosts'])
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(APIKeyMiddleware)
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health_router)
    app.include_router(matching_router, prefix="/api/v1")
    return app


app = create_app()
