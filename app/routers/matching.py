"""
Matching API endpoints: potential matches, swipes, accepted matches,
preferences and statistics. The caller is identified by the X-User-ID
header set by the marketplace backend.
"""
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from pydantic import ValidationError

from app.middleware.error_handling import AppException, ErrorCode, ValidationException
from app.middleware.rate_limit import limiter, RATE_LIMIT_POTENTIAL, RATE_LIMIT_SWIPE
from app.schemas.matching import (
    AcceptedMatch,
    AcceptedMatchesResponse,
    CandidateResult,
    FilterCriteria,
    MatchStatisticsResponse,
    PotentialMatchesResponse,
    PreferencesResponse,
    SwipeRequest,
    SwipeResponse,
)
from app.services.matching_service import MatchingService, get_matching_service
from app.utils.logging_config import run_in_context, set_log_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/matches", tags=["Matches"])

# Thread pool for running sync service calls off the event loop
_executor = ThreadPoolExecutor(max_workers=4)

MAX_RESULT_LIMIT = 100


def get_service() -> MatchingService:
    return get_matching_service()


def get_current_user_id(x_user_id: Optional[str] = Header(None, alias="X-User-ID")) -> str:
    """Caller identity, forwarded by the backend after authentication."""
    if not x_user_id or not x_user_id.strip():
        raise AppException(
            code=ErrorCode.UNAUTHORIZED,
            message="X-User-ID header is required",
            suggestion="Send the authenticated user's id in the X-User-ID header"
        )
    return x_user_id.strip()


def parse_filters(raw: Optional[str]) -> Optional[FilterCriteria]:
    """Parse the JSON ``filters`` query parameter into FilterCriteria."""
    if raw is None or not raw.strip():
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationException(f"filters must be valid JSON: {e.msg}", field="filters")
    if not isinstance(data, dict):
        raise ValidationException("filters must be a JSON object", field="filters")
    try:
        return FilterCriteria.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise ValidationException(
            first.get("msg", "Invalid filters"),
            field=f"filters.{location}" if location else "filters"
        )


async def _run(func, *args):
    return await run_in_context(_executor, func, *args)


@router.get("/potential", response_model=PotentialMatchesResponse)
@limiter.limit(RATE_LIMIT_POTENTIAL)
async def get_potential_matches(
    request: Request,
    filters: Optional[str] = Query(None, description="JSON-encoded FilterCriteria; stored preferences are used when omitted"),
    limit: Optional[int] = Query(None, ge=1, le=MAX_RESULT_LIMIT, description="Maximum candidates to return"),
    user_id: str = Depends(get_current_user_id),
    service: MatchingService = Depends(get_service),
):
    """
    Ranked potential matches for the caller.

    Each candidate carries its compatibility score, the recency-adjusted
    final score, all eight sub-scores and the reasons behind them.
    """
    criteria = parse_filters(filters)
    set_log_context(filtered=criteria is not None, limit=limit)
    try:
        ranked = await _run(service.find_potential_matches, user_id, criteria, limit)
    except AppException:
        raise
    except Exception as e:
        logger.error(f"Error finding potential matches for user {user_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to retrieve potential matches")

    candidates = [
        CandidateResult(
            user_id=c.profile.user_id,
            name=c.profile.name,
            kind=c.profile.kind.value,
            compatibility_score=round(c.total, 4),
            final_score=round(c.final_score, 4),
            sub_scores={name: round(value, 4) for name, value in c.score.sub_scores.items()},
            reasons=c.score.reasons,
        )
        for c in ranked
    ]
    return PotentialMatchesResponse(user_id=user_id, total=len(candidates), candidates=candidates)


@router.post("/swipe", response_model=SwipeResponse)
@limiter.limit(RATE_LIMIT_SWIPE)
async def swipe(
    request: Request,
    body: SwipeRequest,
    user_id: str = Depends(get_current_user_id),
    service: MatchingService = Depends(get_service),
):
    """Record a like (right) or pass (left) on another participant."""
    set_log_context(target_user_id=body.target_user_id, direction=body.direction.value)
    try:
        outcome = await _run(service.swipe, user_id, body.target_user_id, body.direction)
    except AppException:
        raise
    except Exception as e:
        logger.error(f"Error recording swipe {user_id} -> {body.target_user_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to record swipe")

    return SwipeResponse(
        match_id=outcome.match_id,
        status=outcome.status,
        is_match=outcome.is_match,
        conversation_id=outcome.conversation_id,
    )


@router.get("", response_model=AcceptedMatchesResponse)
async def list_matches(
    user_id: str = Depends(get_current_user_id),
    service: MatchingService = Depends(get_service),
):
    """Accepted matches for the caller, most recently active first."""
    try:
        accepted = await _run(service.list_accepted, user_id)
    except AppException:
        raise
    except Exception as e:
        logger.error(f"Error listing matches for user {user_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to list matches")

    return AcceptedMatchesResponse(
        user_id=user_id,
        matches=[
            AcceptedMatch(
                match_id=v.match.id,
                user_id=v.match.counterpart_of(user_id),
                kind=v.counterpart.kind.value if v.counterpart else None,
                name=v.counterpart.name if v.counterpart else None,
                compatibility_score=round(v.compatibility_score, 4) if v.compatibility_score is not None else None,
                conversation_id=v.match.conversation_id,
                matched_at=v.match.resolved_at or v.match.last_activity_at,
                last_activity_at=v.match.last_activity_at,
            )
            for v in accepted
        ],
    )


@router.put("/preferences", response_model=PreferencesResponse)
async def update_preferences(
    criteria: FilterCriteria,
    user_id: str = Depends(get_current_user_id),
    service: MatchingService = Depends(get_service),
):
    """Store default filter criteria used when a retrieval sends no filters."""
    saved = await _run(service.save_preferences, user_id, criteria)
    return PreferencesResponse(user_id=user_id, preferences=saved)


@router.get("/preferences", response_model=PreferencesResponse)
async def get_preferences(
    user_id: str = Depends(get_current_user_id),
    service: MatchingService = Depends(get_service),
):
    """Stored default filter criteria; null when none are saved."""
    stored = await _run(service.preferences_for, user_id)
    return PreferencesResponse(
        user_id=user_id,
        preferences=stored,
        message="Match preferences retrieved" if stored is not None else "No match preferences saved",
    )


@router.get("/stats", response_model=MatchStatisticsResponse)
async def get_match_statistics(
    user_id: str = Depends(get_current_user_id),
    service: MatchingService = Depends(get_service),
):
    """Swipe and match totals for the caller."""
    stats = await _run(service.statistics, user_id)
    return MatchStatisticsResponse(**stats)


@router.post("/expire")
async def trigger_match_expiry(ttl_days: Optional[int] = Query(None, ge=1, description="Override PENDING_MATCH_TTL_DAYS")):
    """Queue expiry of pending matches with no recent activity."""
    from app.workers.match_expiry import expire_stale_matches_task

    try:
        task = expire_stale_matches_task.delay(ttl_days)
    except Exception as e:
        logger.error(f"Failed to queue match expiry: {str(e)}")
        raise HTTPException(status_code=503, detail="Task queue unavailable")

    logger.info(f"Queued match expiry task {task.id}")
    return {"success": True, "task_id": task.id, "message": "Match expiry queued"}
