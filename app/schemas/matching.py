"""
Matching-related Pydantic schemas for request/response validation.
"""
from typing import List, Optional, Dict
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from app.models.profile import (
    BaseProfile,
    BusinessType,
    TIMELINE_BUCKETS,
    VerificationLevel,
)
from app.models.match import SwipeDirection, MatchStatus


class FilterCriteria(BaseModel):
    """
    Viewer-supplied candidate constraints. Every field is optional; an
    absent or empty field imposes no constraint. Accepts camelCase keys.
    """
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    industries: Optional[List[str]] = Field(None, description="Candidate must declare at least one")
    min_investment: Optional[float] = Field(None, ge=0, description="Lower bound on candidate amount")
    max_investment: Optional[float] = Field(None, ge=0, description="Upper bound on candidate amount")
    min_team_size: Optional[int] = Field(None, ge=1)
    max_team_size: Optional[int] = Field(None, ge=1)
    timelines: Optional[List[str]] = Field(None, description="Accepted timeline buckets")
    location: Optional[str] = Field(None, max_length=200)
    verification_levels: Optional[List[VerificationLevel]] = None
    business_types: Optional[List[BusinessType]] = None
    min_experience_years: Optional[float] = Field(None, ge=0)

    @field_validator('industries')
    @classmethod
    def _strip_industries(cls, v):
        if v is None:
            return v
        return [item.strip() for item in v if item and item.strip()]

    @field_validator('timelines')
    @classmethod
    def _validate_timelines(cls, v):
        if v is None:
            return v
        normalized = [item.strip().lower() for item in v]
        unknown = [item for item in normalized if item not in TIMELINE_BUCKETS]
        if unknown:
            raise ValueError(f"Unknown timeline bucket(s): {', '.join(unknown)}")
        return normalized

    @model_validator(mode='after')
    def _validate_ranges(self):
        if (self.min_investment is not None and self.max_investment is not None
                and self.min_investment > self.max_investment):
            raise ValueError("min_investment must not exceed max_investment")
        if (self.min_team_size is not None and self.max_team_size is not None
                and self.min_team_size > self.max_team_size):
            raise ValueError("min_team_size must not exceed max_team_size")
        return self

    def matches(self, profile: BaseProfile) -> bool:
        """AND of all per-field predicates."""
        if self.industries:
            wanted = {i.lower() for i in self.industries}
            if not wanted.intersection(i.lower() for i in profile.industries()):
                return False

        amount = profile.investment_amount()
        if self.min_investment is not None and amount < self.min_investment:
            return False
        if self.max_investment is not None and amount > self.max_investment:
            return False

        if self.min_team_size is not None and profile.team_size < self.min_team_size:
            return False
        if self.max_team_size is not None and profile.team_size > self.max_team_size:
            return False

        if self.timelines:
            timeline = (profile.timeline() or "").lower()
            if timeline not in self.timelines:
                return False

        if self.location:
            if (profile.location or "").strip().lower() != self.location.strip().lower():
                return False

        if self.verification_levels and profile.verification_level not in self.verification_levels:
            return False

        if self.business_types:
            if profile.business_type() not in self.business_types:
                return False

        if self.min_experience_years is not None and profile.experience_years < self.min_experience_years:
            return False

        return True


class SwipeRequest(BaseModel):
    """Schema for a one-sided like/pass decision."""
    model_config = ConfigDict(populate_by_name=True)

    target_user_id: str = Field(..., alias="targetUserId", min_length=1, max_length=128)
    direction: SwipeDirection = Field(..., description="'left' to pass, 'right' to like")


class SwipeResponse(BaseModel):
    success: bool = True
    match_id: str
    status: MatchStatus
    is_match: bool = Field(..., description="Whether a mutual match occurred")
    conversation_id: Optional[str] = None


class CandidateResult(BaseModel):
    """One ranked candidate with its explanation."""
    user_id: str
    name: str
    kind: str
    compatibility_score: float = Field(..., ge=0.0, le=1.0)
    final_score: float = Field(..., ge=0.0, le=1.0)
    sub_scores: Dict[str, float]
    reasons: List[str]


class PotentialMatchesResponse(BaseModel):
    success: bool = True
    user_id: str
    total: int
    candidates: List[CandidateResult]


class AcceptedMatch(BaseModel):
    match_id: str
    user_id: str = Field(..., description="The other participant")
    kind: Optional[str] = Field(None, description="entrepreneur or funder; null if the profile is gone")
    name: Optional[str] = None
    compatibility_score: Optional[float] = Field(None, ge=0.0, le=1.0)
    conversation_id: Optional[str] = None
    matched_at: datetime
    last_activity_at: datetime


class AcceptedMatchesResponse(BaseModel):
    success: bool = True
    user_id: str
    matches: List[AcceptedMatch]


class PreferencesResponse(BaseModel):
    success: bool = True
    user_id: str
    preferences: Optional[FilterCriteria] = None
    message: str = "Match preferences updated successfully"


class MatchStatisticsResponse(BaseModel):
    success: bool = True
    user_id: str
    total_swipes: int
    right_swipes: int
    accepted: int
    rejected: int
    pending: int
    expired: int
    match_rate: float = Field(..., description="Accepted matches as a percentage of all match records")
