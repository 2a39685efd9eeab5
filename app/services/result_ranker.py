"""
Result ranking: diversity pass, then recency boost.

Diversity keeps the top slots purely score-ordered and, beyond them, only
admits a candidate that brings a new primary industry or team-size bucket,
unless its score is high enough to stand on its own. The recency pass then
favours recently created profiles without ever boosting above the raw score.
"""
import math
import logging
from typing import List, Optional, Set
from dataclasses import dataclass
from datetime import datetime

from app.models.profile import BaseProfile
from app.services.compatibility_scorer import CompatibilityScore

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60

# (upper bound inclusive, label)
TEAM_SIZE_BUCKETS = [
    (1, "1"),
    (5, "2-5"),
    (10, "6-10"),
    (25, "11-25"),
    (50, "26-50"),
]


def team_size_bucket(team_size: int) -> str:
    for upper, label in TEAM_SIZE_BUCKETS:
        if team_size <= upper:
            return label
    return "51+"


@dataclass
class ScoredCandidate:
    profile: BaseProfile
    score: CompatibilityScore
    final_score: float = 0.0

    @property
    def total(self) -> float:
        return self.score.total


class ResultRanker:

    def __init__(
        self,
        guaranteed_slots: int = 10,
        escape_score: float = 0.8,
        recency_window_days: float = 30.0,
        default_limit: int = 20,
    ):
        self.guaranteed_slots = guaranteed_slots
        self.escape_score = escape_score
        self.recency_window_days = recency_window_days
        self.default_limit = default_limit

    def diversify(self, scored: List[ScoredCandidate]) -> List[ScoredCandidate]:
        """Score-descending pass that skips candidates adding nothing new."""
        ordered = sorted(scored, key=lambda c: c.total, reverse=True)
        seen_industries: Set[Optional[str]] = set()
        seen_buckets: Set[str] = set()
        admitted = []

        for index, candidate in enumerate(ordered):
            industry = candidate.profile.primary_industry()
            industry = industry.lower() if industry else None
            bucket = team_size_bucket(candidate.profile.team_size)

            keep = (
                index < self.guaranteed_slots
                or industry not in seen_industries
                or bucket not in seen_buckets
                or candidate.total > self.escape_score
            )
            if keep:
                admitted.append(candidate)
                seen_industries.add(industry)
                seen_buckets.add(bucket)

        return admitted

    def recency_factor(self, profile: BaseProfile, now: datetime) -> float:
        age_days = max((now - profile.created_at).total_seconds(), 0.0) / SECONDS_PER_DAY
        return 0.8 + 0.2 * math.exp(-age_days / self.recency_window_days)

    def rank(
        self,
        scored: List[ScoredCandidate],
        now: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[ScoredCandidate]:
        now = now or datetime.utcnow()
        limit = self.default_limit if limit is None else limit

        diverse = self.diversify(scored)
        for candidate in diverse:
            candidate.final_score = candidate.total * self.recency_factor(candidate.profile, now)

        diverse.sort(key=lambda c: c.final_score, reverse=True)
        logger.debug(f"Ranked {len(scored)} scored candidates, {len(diverse)} kept after diversity pass")
        return diverse[:limit]
