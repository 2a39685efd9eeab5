"""
Celery worker for match expiry.

Pending matches with no swipe activity for PENDING_MATCH_TTL_DAYS move to
``expired``. Expired is terminal; the pair stays out of normal retrieval.
"""
from typing import Optional
import logging

from app.core.celery import celery_app
from app.services.matching_service import get_matching_service

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name='expire_stale_matches')
def expire_stale_matches_task(self, ttl_days: Optional[int] = None):
    """
    Expire stale pending matches.

    Args:
        ttl_days: Inactivity window in days; defaults to PENDING_MATCH_TTL_DAYS

    Returns:
        Summary with the number of matches expired
    """
    try:
        logger.info(f"[EXPIRY] Task {self.request.id} starting (ttl_days={ttl_days or 'default'})")
        expired = get_matching_service().expire_stale(ttl_days)
        logger.info(f"[EXPIRY] Task {self.request.id} expired {expired} pending matches")
        return {
            "success": True,
            "expired": expired,
            "message": f"Expired {expired} pending matches"
        }
    except Exception as e:
        logger.error(f"[EXPIRY] Error expiring stale matches: {str(e)}")
        return {
            "success": False,
            "expired": 0,
            "message": f"Expiry error: {str(e)}"
        }
