"""
Compatibility scoring between a viewer and a candidate profile.

Eight sub-scores, each in [0, 1], combined as a fixed-weight linear sum:

    industry_alignment   0.25   Jaccard + cached industry affinity
    investment_fit       0.20   exponential proximity inside funder range
    experience_match     0.15   exponential decay on years gap + funder bonus
    verification_level   0.15   ladder position, penalized by level gap
    success_history      0.10   recent successes, verification, activity
    team_compatibility   0.05   team size proximity + skill complementarity
    business_model_fit   0.05   business type + market size alignment
    timeline_alignment   0.05   distance between timeline buckets

The scorer holds no mutable state and is safe to call from worker threads.
"""
import math
import logging
from typing import Dict, List, Optional
from dataclasses import dataclass, field
from datetime import datetime
from collections import defaultdict

from app.models.profile import (
    BaseProfile,
    MARKET_SIZES,
    TIMELINE_BUCKETS,
    VerificationLevel,
    split_pair,
)
from app.services.industry_relationship_cache import IndustryRelationshipCache
from app.services.matching_config import ReasonThresholds, ScoringWeights
from app.services.ports import NoOpAdjustmentStrategy, ScoreAdjustmentStrategy

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 0.5
EXPERIENCE_DECAY_YEARS = 10.0
FUNDER_EXPERIENCE_BONUS = 0.2
TEAM_SIZE_DECAY = 5.0
SECONDS_PER_DAY = 24 * 60 * 60
ACTIVITY_WINDOW_DAYS = 30.0


@dataclass
class CompatibilityScore:
    """Scored (viewer, candidate) pair. Recomputed per request, never persisted."""
    total: float
    sub_scores: Dict[str, float]
    reasons: List[str] = field(default_factory=list)


def _clamp(value: float) -> float:
    return min(max(value, 0.0), 1.0)


def jaccard(a, b) -> float:
    set_a = {i.strip().lower() for i in a}
    set_b = {i.strip().lower() for i in b}
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


def common_industries(viewer: BaseProfile, candidate: BaseProfile) -> List[str]:
    """Shared industries, in the viewer's declared order."""
    theirs = {i.strip().lower() for i in candidate.industries()}
    return [i for i in viewer.industries() if i.strip().lower() in theirs]


class CompatibilityScorer:
    """Computes weighted compatibility and the reasons behind it."""

    def __init__(
        self,
        industry_cache: IndustryRelationshipCache,
        weights: Optional[ScoringWeights] = None,
        thresholds: Optional[ReasonThresholds] = None,
        adjustment_strategy: Optional[ScoreAdjustmentStrategy] = None,
        success_saturation_count: int = 5,
    ):
        self.industry_cache = industry_cache
        self.weights = weights or ScoringWeights()
        self.thresholds = thresholds or ReasonThresholds()
        self.adjustment_strategy = adjustment_strategy or NoOpAdjustmentStrategy()
        self.success_saturation_count = success_saturation_count

    def score(
        self,
        viewer: BaseProfile,
        candidate: BaseProfile,
        successful_matches: int = 0,
        now: Optional[datetime] = None,
    ) -> CompatibilityScore:
        """Score one pair. ``successful_matches`` is the candidate's recent accepted-match count."""
        now = now or datetime.utcnow()
        sub_scores = {
            "industry_alignment": self.industry_alignment(viewer, candidate),
            "investment_fit": self.investment_fit(viewer, candidate),
            "experience_match": self.experience_match(viewer, candidate),
            "verification_level": self.verification_score(viewer, candidate),
            "success_history": self.success_history(candidate, successful_matches, now),
            "team_compatibility": self.team_compatibility(viewer, candidate),
            "business_model_fit": self.business_model_fit(viewer, candidate),
            "timeline_alignment": self.timeline_alignment(viewer, candidate),
        }

        adjustments = self.adjustment_strategy.adjustments(viewer.user_id, candidate.user_id) or {}
        weights = self.weights.as_dict()
        total = sum(
            sub_scores[name] * weights[name] * adjustments.get(name, 1.0)
            for name in sub_scores
        )

        return CompatibilityScore(
            total=_clamp(total),
            sub_scores=sub_scores,
            reasons=self.reasons(viewer, candidate, sub_scores),
        )

    # Factor scores

    def industry_alignment(self, viewer: BaseProfile, candidate: BaseProfile) -> float:
        """0.7 x Jaccard similarity + 0.3 x cached industry affinity."""
        overlap = jaccard(viewer.industries(), candidate.industries())
        affinity = self.industry_cache.get_affinity(viewer.industries(), candidate.industries())
        return _clamp(overlap * 0.7 + affinity * 0.3)

    def investment_fit(self, viewer: BaseProfile, candidate: BaseProfile) -> float:
        entrepreneur, funder = split_pair(viewer, candidate)
        if entrepreneur is None:
            return NEUTRAL_SCORE

        desired = entrepreneur.desired_investment
        available = funder.available_funds
        if available <= 0 or desired <= 0:
            return 0.0
        if not funder.accepts_amount(desired):
            return 0.0
        return _clamp(math.exp(-abs(desired - available) / available))

    def experience_match(self, viewer: BaseProfile, candidate: BaseProfile) -> float:
        gap = abs(viewer.experience_years - candidate.experience_years)
        score = math.exp(-gap / EXPERIENCE_DECAY_YEARS)

        entrepreneur, funder = split_pair(viewer, candidate)
        if funder is not None and funder.experience_years > entrepreneur.experience_years:
            score += FUNDER_EXPERIENCE_BONUS
        return _clamp(score)

    def verification_score(self, viewer: Optional[BaseProfile], candidate: BaseProfile) -> float:
        """Candidate ladder position; blended with level similarity when a viewer is given."""
        level_score = candidate.verification_level.normalized()
        if viewer is None:
            return level_score

        gap = abs(viewer.verification_level.rank - candidate.verification_level.rank)
        similarity = 1 - gap / VerificationLevel.count()
        return _clamp(level_score * 0.7 + similarity * 0.3)

    def success_history(self, candidate: BaseProfile, successful_matches: int, now: datetime) -> float:
        successes = min(max(successful_matches, 0) / self.success_saturation_count, 1.0)
        verification = self.verification_score(None, candidate)
        activity = self._activity_score(candidate, now)
        return _clamp(successes * 0.4 + verification * 0.4 + activity * 0.2)

    @staticmethod
    def _activity_score(candidate: BaseProfile, now: datetime) -> float:
        if candidate.last_active_at is not None:
            idle_days = max((now - candidate.last_active_at).total_seconds(), 0.0) / SECONDS_PER_DAY
            return math.exp(-idle_days / ACTIVITY_WINDOW_DAYS)
        # No activity signal: fall back to account age, saturating at one year
        age_days = max((now - candidate.created_at).total_seconds(), 0.0) / SECONDS_PER_DAY
        return min(age_days / 365.0, 1.0)

    def team_compatibility(self, viewer: BaseProfile, candidate: BaseProfile) -> float:
        size_gap = abs(viewer.team_size - candidate.team_size)
        size_score = math.exp(-size_gap / TEAM_SIZE_DECAY)
        skills_score = self.skills_complementarity(viewer, candidate)
        return _clamp(size_score * 0.4 + skills_score * 0.6)

    @staticmethod
    def skills_complementarity(viewer: BaseProfile, candidate: BaseProfile) -> float:
        """Per skill category, lower overlap scores higher; averaged over categories."""
        by_category_a = defaultdict(set)
        by_category_b = defaultdict(set)
        for skill in viewer.skills:
            by_category_a[skill.category.lower()].add(skill.name.lower())
        for skill in candidate.skills:
            by_category_b[skill.category.lower()].add(skill.name.lower())

        categories = set(by_category_a) | set(by_category_b)
        if not categories:
            return NEUTRAL_SCORE

        total = 0.0
        for category in categories:
            names_a = by_category_a.get(category, set())
            names_b = by_category_b.get(category, set())
            union = names_a | names_b
            total += 1 - len(names_a & names_b) / len(union)
        return total / len(categories)

    def business_model_fit(self, viewer: BaseProfile, candidate: BaseProfile) -> float:
        entrepreneur, funder = split_pair(viewer, candidate)
        if entrepreneur is None:
            return NEUTRAL_SCORE
        if entrepreneur.declared_business_type is None or not funder.preferred_business_types:
            return NEUTRAL_SCORE

        type_match = entrepreneur.declared_business_type in funder.preferred_business_types
        market = self.market_size_alignment(entrepreneur.target_market_size, funder.preferred_market_size)
        return _clamp((0.6 if type_match else 0.0) + market * 0.4)

    @staticmethod
    def market_size_alignment(target: Optional[str], preferred: Optional[str]) -> float:
        if not target or not preferred:
            return NEUTRAL_SCORE
        target, preferred = target.lower(), preferred.lower()
        if target not in MARKET_SIZES or preferred not in MARKET_SIZES:
            return NEUTRAL_SCORE
        gap = abs(MARKET_SIZES.index(target) - MARKET_SIZES.index(preferred))
        return 1 - gap / len(MARKET_SIZES)

    def timeline_alignment(self, viewer: BaseProfile, candidate: BaseProfile) -> float:
        entrepreneur, funder = split_pair(viewer, candidate)
        if entrepreneur is None:
            return NEUTRAL_SCORE

        wanted = TIMELINE_BUCKETS.get((entrepreneur.funding_timeline or "").lower())
        offered = TIMELINE_BUCKETS.get((funder.preferred_timeline or "").lower())
        if wanted is None or offered is None:
            return NEUTRAL_SCORE
        return _clamp(1 - abs(wanted - offered))

    # Explanations

    def reasons(self, viewer: BaseProfile, candidate: BaseProfile, sub_scores: Dict[str, float]) -> List[str]:
        t = self.thresholds
        reasons = []

        shared = common_industries(viewer, candidate)
        if shared and sub_scores["industry_alignment"] > t.industry:
            more = " and more" if len(shared) > 3 else ""
            reasons.append(f"Aligned industries: {', '.join(shared[:3])}{more}")

        if sub_scores["investment_fit"] > t.investment:
            reasons.append(f"Strong investment alignment with {candidate.name}")

        if sub_scores["experience_match"] > t.experience_high:
            reasons.append("Highly compatible experience levels")
        elif sub_scores["experience_match"] > t.experience_mid:
            reasons.append("Complementary experience levels")

        if sub_scores["success_history"] > t.success_history:
            reasons.append("Strong track record of successful collaborations")

        if sub_scores["verification_level"] > t.verification:
            reasons.append("High verification level indicating trustworthiness")

        if sub_scores["team_compatibility"] > t.team:
            reasons.append("Strong team composition compatibility")

        if sub_scores["timeline_alignment"] > t.timeline:
            reasons.append("Highly aligned investment timelines")

        return reasons
