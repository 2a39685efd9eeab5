"""
Health check routes.
"""
from fastapi import APIRouter
from app.middleware.error_handling import error_tracker
from app.schemas.common import HealthResponse, SystemHealthResponse
from app.utils.cache import get_cache
import logging
import os
from datetime import datetime

router = APIRouter()
logger = logging.getLogger(__name__)


def _store_backend() -> str:
    return os.getenv("MATCH_STORE_BACKEND", "memory").lower()


def _health_payload() -> dict:
    return {
        "status": "healthy",
        "store_backend": _store_backend(),
        "cache": get_cache().get_stats(),
    }


@router.get("/health", response_model=HealthResponse)
async def health_check():
    return HealthResponse(success=True, data=_health_payload(), message="OK")


@router.get("/api/v1/health", response_model=HealthResponse)
async def health_check_v1():
    return HealthResponse(success=True, data=_health_payload(), message="OK")


@router.get("/", response_model=HealthResponse)
async def root():
    return HealthResponse(
        success=True,
        data={"message": "Welcome to the Venture Match API"},
        message="OK"
    )


def _check_cache(report: SystemHealthResponse) -> None:
    stats = get_cache().get_stats()
    if not stats.get("enabled"):
        report.add("redis_cache", "warning", "Cache disabled, using process-local fallback")
    elif stats.get("connected"):
        report.add("redis_cache", "healthy", f"{stats.get('keys', 0)} keys, {stats.get('used_memory', 'unknown')} used")
    else:
        report.add(
            "redis_cache", "error", str(stats.get("error", "Redis unreachable"))[:100],
            issue="Redis connection failed, industry affinity degraded to default",
        )


def _check_store(report: SystemHealthResponse) -> None:
    if _store_backend() != "postgres":
        report.add("match_store", "warning", "In-memory store, data is not persisted")
        return
    from app.adapters.postgresql import PostgreSQLAdapter
    try:
        ok = PostgreSQLAdapter().health_check()
    except Exception as e:
        logger.warning(f"PostgreSQL health check raised: {e}")
        report.add("postgresql", "error", str(e)[:100], issue="PostgreSQL connection failed")
        return
    if ok:
        report.add("postgresql", "healthy", "Connection active")
    else:
        report.add("postgresql", "error", "Query failed", issue="PostgreSQL health check failed")


def _check_webhooks(report: SystemHealthResponse) -> None:
    if os.getenv("MARKETPLACE_BACKEND_URL"):
        report.add("marketplace_webhooks", "healthy", "Configured")
    else:
        report.add("marketplace_webhooks", "warning", "MARKETPLACE_BACKEND_URL not configured, notifications skipped")


@router.get("/admin/system-health", response_model=SystemHealthResponse)
async def get_system_health():
    """
    Component health for the matching service.
    Each component reports healthy, warning or error; the worst one wins.
    """
    report = SystemHealthResponse(timestamp=datetime.utcnow().isoformat())
    _check_cache(report)
    _check_store(report)
    _check_webhooks(report)
    report.errors = error_tracker.get_stats(recent=5)
    return report
