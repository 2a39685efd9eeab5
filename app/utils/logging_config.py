"""
Structured Logging Configuration.

JSON logs outside development, with the request id and calling user
attached to every line. Context is held in ContextVars; sync service calls
run in worker threads through ``run_in_context`` so scoring and swipe logs
keep the request id of the HTTP call that triggered them.
"""
import os
import sys
import json
import time
import asyncio
import logging
import contextvars
from typing import Dict, Any
from datetime import datetime
from uuid import uuid4
from contextvars import ContextVar
from functools import partial, wraps

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

# Context variables for request-scoped data
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
user_id_var: ContextVar[str] = ContextVar("user_id", default="")
extra_context_var: ContextVar[Dict[str, Any]] = ContextVar("extra_context", default={})


class StructuredFormatter(logging.Formatter):
    """JSON-formatted log formatter."""

    def __init__(self, include_stack: bool = False):
        super().__init__()
        self.include_stack = include_stack
        self.service_name = os.getenv("SERVICE_NAME", "venture-match-api")
        self.environment = os.getenv("ENVIRONMENT", "development")

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "environment": self.environment,
            # Scoring runs on the match-scoring pool; the thread tells pool logs apart
            "thread": record.threadName,
        }

        request_id = request_id_var.get()
        if request_id:
            log_entry["request_id"] = request_id

        user_id = user_id_var.get()
        if user_id:
            log_entry["user_id"] = user_id

        extra_context = extra_context_var.get()
        if extra_context:
            log_entry["context"] = extra_context

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None
            }
            if self.include_stack:
                import traceback
                log_entry["exception"]["stack_trace"] = traceback.format_exception(*record.exc_info)

        if hasattr(record, "extra_fields"):
            log_entry.update(record.extra_fields)

        return json.dumps(log_entry, default=str)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs each request with timing. Reuses the backend's X-Request-ID when
    present so a swipe can be traced across both services.
    """

    def __init__(self, app, logger_name: str = "api"):
        super().__init__(app)
        self.logger = logging.getLogger(logger_name)

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid4())
        request_id_var.set(request_id)
        user_id_var.set(request.headers.get("X-User-ID", ""))
        extra_context_var.set({})

        start_time = time.perf_counter()
        self.logger.info(
            f"Request started: {request.method} {request.url.path}",
            extra={
                "extra_fields": {
                    "event": "request_started",
                    "method": request.method,
                    "path": request.url.path,
                    "query_params": str(request.query_params),
                    "client_ip": request.client.host if request.client else None,
                }
            }
        )

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            self.logger.error(
                f"Request failed: {request.method} {request.url.path} - {str(e)}",
                extra={
                    "extra_fields": {
                        "event": "request_failed",
                        "path": request.url.path,
                        "duration_ms": round(duration_ms, 2),
                        "error": str(e)
                    }
                },
                exc_info=True
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000
        self.logger.info(
            f"Request completed: {request.method} {request.url.path} - {response.status_code}",
            extra={
                "extra_fields": {
                    "event": "request_completed",
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": round(duration_ms, 2)
                }
            }
        )
        response.headers["X-Request-ID"] = request_id
        return response


def setup_logging(
    level: str = None,
    json_format: bool = True,
    include_stack: bool = False
) -> None:
    """
    Setup application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use JSON formatting outside development
        include_stack: Include stack traces in JSON
    """
    level = level or os.getenv("LOG_LEVEL", "INFO")
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)

    if json_format and os.getenv("ENVIRONMENT", "development") != "development":
        handler.setFormatter(StructuredFormatter(include_stack=include_stack))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))

    root_logger.addHandler(handler)

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("celery").setLevel(logging.WARNING)

    logging.info(f"Logging configured: level={level}, json_format={json_format}")


def log_performance(operation_name: str = None):
    """Log duration of a sync service call, plus the result size for list results."""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            op_name = operation_name or func.__name__
            logger = logging.getLogger(func.__module__)

            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                duration_ms = (time.perf_counter() - start) * 1000
                logger.warning(
                    f"Operation failed: {op_name}",
                    extra={
                        "extra_fields": {
                            "event": "operation_failed",
                            "operation": op_name,
                            "duration_ms": round(duration_ms, 2),
                            "error": str(e)
                        }
                    }
                )
                raise

            duration_ms = (time.perf_counter() - start) * 1000
            fields = {
                "event": "operation_completed",
                "operation": op_name,
                "duration_ms": round(duration_ms, 2)
            }
            if isinstance(result, list):
                fields["result_count"] = len(result)
            logger.info(f"Operation completed: {op_name}", extra={"extra_fields": fields})
            return result

        return wrapper

    return decorator


def set_log_context(**kwargs) -> None:
    """Add fields to the current request's log context."""
    current = extra_context_var.get()
    extra_context_var.set({**current, **kwargs})


async def run_in_context(executor, func, *args):
    """Run a sync call on ``executor`` with the caller's logging context."""
    loop = asyncio.get_running_loop()
    ctx = contextvars.copy_context()
    return await loop.run_in_executor(executor, partial(ctx.run, func, *args))
