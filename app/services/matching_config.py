"""
Matching engine configuration.

All tunables are read from the environment once, via ``MatchingConfig.from_env()``.
"""
import os
import math
from typing import Dict, FrozenSet
from dataclasses import dataclass, field, fields

from app.models.profile import SubscriptionTier


@dataclass(frozen=True)
class ScoringWeights:
    """Fixed-weight linear combination of the eight sub-scores."""
    industry_alignment: float = 0.25
    investment_fit: float = 0.20
    experience_match: float = 0.15
    verification_level: float = 0.15
    success_history: float = 0.10
    team_compatibility: float = 0.05
    business_model_fit: float = 0.05
    timeline_alignment: float = 0.05

    def __post_init__(self):
        total = sum(self.as_dict().values())
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            raise ValueError(f"Scoring weights must sum to 1.0, got {total}")
        if any(w < 0 for w in self.as_dict().values()):
            raise ValueError("Scoring weights must be non-negative")

    def as_dict(self) -> Dict[str, float]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_env(cls) -> 'ScoringWeights':
        defaults = cls()
        return cls(**{
            name: float(os.getenv(f"WEIGHT_{name.upper()}", str(value)))
            for name, value in defaults.as_dict().items()
        })


@dataclass(frozen=True)
class ReasonThresholds:
    """Sub-score levels above which an explanation string is emitted."""
    industry: float = 0.7
    investment: float = 0.7
    experience_high: float = 0.8
    experience_mid: float = 0.6
    success_history: float = 0.7
    verification: float = 0.8
    team: float = 0.7
    timeline: float = 0.8


def _parse_tiers(raw: str) -> FrozenSet[SubscriptionTier]:
    tiers = set()
    for item in raw.split(","):
        item = item.strip()
        if item:
            tiers.add(SubscriptionTier(item))
    return frozenset(tiers)


@dataclass(frozen=True)
class MatchingConfig:
    weights: ScoringWeights = field(default_factory=ScoringWeights)
    thresholds: ReasonThresholds = field(default_factory=ReasonThresholds)
    excluded_tiers: FrozenSet[SubscriptionTier] = frozenset({SubscriptionTier.BASIC})
    restrict_to_accessible_tiers: bool = False
    diversity_guaranteed_slots: int = 10
    diversity_escape_score: float = 0.8
    recency_window_days: float = 30.0
    result_limit: int = 20
    scoring_max_workers: int = 8
    success_lookback_days: int = 90
    success_saturation_count: int = 5
    pending_match_ttl_days: int = 14

    @classmethod
    def from_env(cls) -> 'MatchingConfig':
        return cls(
            weights=ScoringWeights.from_env(),
            excluded_tiers=_parse_tiers(os.getenv("EXCLUDED_CANDIDATE_TIERS", "Basic")),
            restrict_to_accessible_tiers=os.getenv("RESTRICT_TO_ACCESSIBLE_TIERS", "false").lower() == "true",
            diversity_guaranteed_slots=int(os.getenv("DIVERSITY_GUARANTEED_SLOTS", "10")),
            diversity_escape_score=float(os.getenv("DIVERSITY_ESCAPE_SCORE", "0.8")),
            recency_window_days=float(os.getenv("RECENCY_WINDOW_DAYS", "30")),
            result_limit=int(os.getenv("MATCH_RESULT_LIMIT", "20")),
            scoring_max_workers=int(os.getenv("SCORING_MAX_WORKERS", "8")),
            success_lookback_days=int(os.getenv("SUCCESS_LOOKBACK_DAYS", "90")),
            success_saturation_count=int(os.getenv("SUCCESS_SATURATION_COUNT", "5")),
            pending_match_ttl_days=int(os.getenv("PENDING_MATCH_TTL_DAYS", "14")),
        )
