"""
Matching service: the entry point used by the API and workers.

Retrieval:  consume quota -> retrieve -> score (bounded pool) -> rank
Swipe:      consume quota -> swipe state machine

Quota is taken before the work and handed back when the work fails or
the swipe changes nothing.
"""
import os
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional
from datetime import datetime, timedelta

from pydantic import ValidationError

from app.middleware.error_handling import (
    ErrorCode,
    NotFoundException,
    QuotaExceededException,
)
from app.models.match import Match, MatchStatus, SwipeDirection, SwipeOutcome
from app.models.profile import BaseProfile
from app.schemas.matching import FilterCriteria
from app.services.candidate_retriever import CandidateRetriever
from app.services.compatibility_scorer import CompatibilityScorer
from app.services.industry_relationship_cache import IndustryRelationshipCache
from app.services.matching_config import MatchingConfig
from app.services.notification_service import WebhookConversationService, WebhookNotificationService
from app.services.ports import (
    MatchStore,
    PreferencesStore,
    ProfileStore,
    ScoreAdjustmentStrategy,
    UsageGate,
)
from app.services.result_ranker import ResultRanker, ScoredCandidate
from app.services.swipe_state_machine import SwipeStateMachine
from app.services.usage_gate import SWIPE, VIEW_MATCHES, RedisUsageGate, seconds_until_utc_midnight
from app.utils.cache import get_cache
from app.utils.logging_config import log_performance

logger = logging.getLogger(__name__)


@dataclass
class AcceptedMatchView:
    """An accepted match as seen by one participant."""
    match: Match
    counterpart: Optional[BaseProfile]
    compatibility_score: Optional[float] = None


class MatchingService:
    """Wires retrieval, scoring, ranking and swipes over the configured stores."""

    def __init__(
        self,
        profiles: ProfileStore,
        matches: MatchStore,
        preferences: PreferencesStore,
        usage_gate: UsageGate,
        scorer: CompatibilityScorer,
        swipes: SwipeStateMachine,
        config: Optional[MatchingConfig] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.config = config or MatchingConfig()
        self.profiles = profiles
        self.matches = matches
        self.preferences = preferences
        self.usage_gate = usage_gate
        self.scorer = scorer
        self.swipes = swipes
        self.retriever = CandidateRetriever(
            profiles,
            excluded_tiers=self.config.excluded_tiers,
            restrict_to_accessible_tiers=self.config.restrict_to_accessible_tiers,
        )
        self.ranker = ResultRanker(
            guaranteed_slots=self.config.diversity_guaranteed_slots,
            escape_score=self.config.diversity_escape_score,
            recency_window_days=self.config.recency_window_days,
            default_limit=self.config.result_limit,
        )
        self._clock = clock
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.scoring_max_workers,
            thread_name_prefix="match-scoring",
        )

    def _require_profile(self, user_id: str) -> BaseProfile:
        profile = self.profiles.get(user_id)
        if profile is None:
            raise NotFoundException("User", user_id, code=ErrorCode.USER_NOT_FOUND)
        return profile

    def _consume_quota(self, user_id: str, action: str) -> None:
        if not self.usage_gate.consume(user_id, action):
            retry_after = seconds_until_utc_midnight(self._clock())
            logger.info(f"User {user_id} over daily quota for {action}")
            raise QuotaExceededException(action, retry_after)

    # Retrieval

    @log_performance("find_potential_matches")
    def find_potential_matches(
        self,
        user_id: str,
        criteria: Optional[FilterCriteria] = None,
        limit: Optional[int] = None,
    ) -> List[ScoredCandidate]:
        """Ranked candidates for ``user_id``; falls back to stored preferences when no criteria given."""
        viewer = self._require_profile(user_id)
        self._consume_quota(user_id, VIEW_MATCHES)
        try:
            return self._rank_for(viewer, criteria, limit)
        except Exception:
            # A failed retrieval does not count against the daily quota
            self.usage_gate.release(user_id, VIEW_MATCHES)
            raise

    def _rank_for(
        self,
        viewer: BaseProfile,
        criteria: Optional[FilterCriteria],
        limit: Optional[int],
    ) -> List[ScoredCandidate]:
        user_id = viewer.user_id
        if criteria is None:
            criteria = self.get_preferences(user_id)

        now = self._clock()
        excluded = {m.counterpart_of(user_id) for m in self.matches.matches_for(user_id)}
        candidates = self.retriever.retrieve(viewer, criteria, excluded)

        since = now - timedelta(days=self.config.success_lookback_days)
        successes = self.matches.count_recent_successes([c.user_id for c in candidates], since)

        scored = self._score_all(viewer, candidates, successes, now)
        ranked = self.ranker.rank(scored, now, limit)

        logger.info(f"Returning {len(ranked)} of {len(candidates)} candidates for user {user_id}")
        return ranked

    def _score_all(
        self,
        viewer: BaseProfile,
        candidates: List[BaseProfile],
        successes: Dict[str, int],
        now: datetime,
    ) -> List[ScoredCandidate]:
        futures = [
            (candidate, self._executor.submit(
                self.scorer.score, viewer, candidate, successes.get(candidate.user_id, 0), now
            ))
            for candidate in candidates
        ]

        scored = []
        for candidate, future in futures:
            try:
                scored.append(ScoredCandidate(profile=candidate, score=future.result()))
            except Exception as e:
                logger.error(f"Skipping candidate {candidate.user_id}, scoring failed: {e}")
        return scored

    # Swipes

    def swipe(self, user_id: str, target_user_id: str, direction: SwipeDirection) -> SwipeOutcome:
        self._require_profile(user_id)
        self._consume_quota(user_id, SWIPE)
        try:
            outcome = self.swipes.swipe(user_id, target_user_id, direction, self._clock())
        except Exception:
            self.usage_gate.release(user_id, SWIPE)
            raise
        # Repeats and swipes on resolved matches are free
        if not outcome.changed:
            self.usage_gate.release(user_id, SWIPE)
        return outcome

    def list_accepted(self, user_id: str) -> List[AcceptedMatchView]:
        """
        Accepted matches, most recently active first, with the other
        participant's profile and their current compatibility score.
        """
        viewer = self._require_profile(user_id)
        accepted = sorted(
            self.matches.matches_for(user_id, MatchStatus.ACCEPTED),
            key=lambda m: m.last_activity_at,
            reverse=True,
        )
        now = self._clock()
        counterpart_ids = [m.counterpart_of(user_id) for m in accepted]
        since = now - timedelta(days=self.config.success_lookback_days)
        successes = self.matches.count_recent_successes(counterpart_ids, since) if counterpart_ids else {}

        views = []
        for match, counterpart_id in zip(accepted, counterpart_ids):
            counterpart = self.profiles.get(counterpart_id)
            score = None
            if counterpart is not None:
                try:
                    score = self.scorer.score(viewer, counterpart, successes.get(counterpart_id, 0), now).total
                except Exception as e:
                    logger.warning(f"Could not score accepted match {match.id}: {e}")
            views.append(AcceptedMatchView(match=match, counterpart=counterpart, compatibility_score=score))
        return views

    def expire_stale(self, ttl_days: Optional[int] = None) -> int:
        now = self._clock()
        ttl_days = self.config.pending_match_ttl_days if ttl_days is None else ttl_days
        return self.swipes.expire_stale(now - timedelta(days=ttl_days), now)

    # Preferences

    def save_preferences(self, user_id: str, criteria: FilterCriteria) -> FilterCriteria:
        self._require_profile(user_id)
        self.preferences.save_preferences(user_id, criteria.model_dump(mode="json", exclude_none=True))
        logger.info(f"Updated match preferences for user {user_id}")
        return criteria

    def preferences_for(self, user_id: str) -> Optional[FilterCriteria]:
        self._require_profile(user_id)
        return self.get_preferences(user_id)

    def get_preferences(self, user_id: str) -> Optional[FilterCriteria]:
        stored = self.preferences.get_preferences(user_id)
        if not stored:
            return None
        try:
            return FilterCriteria.model_validate(stored)
        except ValidationError as e:
            # Stored data predates a schema change; ignore rather than fail retrieval
            logger.warning(f"Ignoring invalid stored preferences for user {user_id}: {e}")
            return None

    # Statistics

    def statistics(self, user_id: str) -> Dict[str, Any]:
        self._require_profile(user_id)
        swipes = self.matches.swipes_by(user_id)
        matches = self.matches.matches_for(user_id)

        by_status = {status: 0 for status in MatchStatus}
        for match in matches:
            by_status[match.status] += 1

        total = len(matches)
        accepted = by_status[MatchStatus.ACCEPTED]
        return {
            "user_id": user_id,
            "total_swipes": len(swipes),
            "right_swipes": sum(1 for s in swipes if s.direction is SwipeDirection.RIGHT),
            "accepted": accepted,
            "rejected": by_status[MatchStatus.REJECTED],
            "pending": by_status[MatchStatus.PENDING],
            "expired": by_status[MatchStatus.EXPIRED],
            "match_rate": round(accepted / total * 100, 2) if total else 0.0,
        }


def build_matching_service(
    profiles: ProfileStore,
    matches: MatchStore,
    preferences: PreferencesStore,
    history,
    config: Optional[MatchingConfig] = None,
    usage_gate: Optional[UsageGate] = None,
    conversations=None,
    notifications=None,
    cache=None,
    adjustment_strategy: Optional[ScoreAdjustmentStrategy] = None,
    clock: Callable[[], datetime] = datetime.utcnow,
) -> MatchingService:
    """Assemble a MatchingService from stores; collaborators default to the webhook/Redis implementations."""
    config = config or MatchingConfig()
    industry_cache = IndustryRelationshipCache(history, cache=cache)
    scorer = CompatibilityScorer(
        industry_cache,
        weights=config.weights,
        thresholds=config.thresholds,
        success_saturation_count=config.success_saturation_count,
        adjustment_strategy=adjustment_strategy,
    )

    def tier_lookup(user_id: str):
        profile = profiles.get(user_id)
        return profile.subscription_tier if profile else None

    swipes = SwipeStateMachine(
        profiles,
        matches,
        conversations or WebhookConversationService(),
        notifications or WebhookNotificationService(),
    )
    return MatchingService(
        profiles=profiles,
        matches=matches,
        preferences=preferences,
        usage_gate=usage_gate or RedisUsageGate(tier_lookup, cache=cache, clock=clock),
        scorer=scorer,
        swipes=swipes,
        config=config,
        clock=clock,
    )


@lru_cache(maxsize=1)
def get_matching_service() -> MatchingService:
    """Process-wide service, backed by MATCH_STORE_BACKEND (memory or postgres)."""
    backend = os.getenv("MATCH_STORE_BACKEND", "memory").lower()
    config = MatchingConfig.from_env()

    if backend == "postgres":
        from app.adapters.postgresql import PostgreSQLAdapter
        adapter = PostgreSQLAdapter()
        stores = (adapter, adapter, adapter, adapter)
    elif backend == "memory":
        from app.adapters.memory import (
            InMemoryEngagementHistory,
            InMemoryMatchStore,
            InMemoryPreferencesStore,
            InMemoryProfileStore,
        )
        stores = (InMemoryProfileStore(), InMemoryMatchStore(), InMemoryPreferencesStore(), InMemoryEngagementHistory())
    else:
        raise ValueError(f"Unknown MATCH_STORE_BACKEND '{backend}', expected 'memory' or 'postgres'")

    logger.info(f"Matching service using {backend} store backend")
    profiles, matches, preferences, history = stores
    return build_matching_service(profiles, matches, preferences, history, config=config, cache=get_cache())
