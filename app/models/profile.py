"""
Participant profile types read by the matching engine.

Two concrete shapes (entrepreneur, funder) share a small capability
interface so scoring never has to branch on ad hoc field lookups.
"""
from typing import List, Optional, Tuple
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ParticipantKind(str, Enum):
    """Which side of the marketplace a profile belongs to."""
    ENTREPRENEUR = "entrepreneur"
    FUNDER = "funder"

    def complement(self) -> "ParticipantKind":
        if self is ParticipantKind.ENTREPRENEUR:
            return ParticipantKind.FUNDER
        return ParticipantKind.ENTREPRENEUR


class VerificationLevel(str, Enum):
    """Ordered verification ladder, lowest first."""
    NONE = "None"
    BUSINESS_PLAN = "BusinessPlan"
    USE_CASE = "UseCase"
    DEMOGRAPHIC_ALIGNMENT = "DemographicAlignment"
    APP_UX_UI = "AppUXUI"
    FISCAL_ANALYSIS = "FiscalAnalysis"

    @property
    def rank(self) -> int:
        return list(VerificationLevel).index(self)

    @classmethod
    def count(cls) -> int:
        return len(list(cls))

    def normalized(self) -> float:
        """Position on the ladder scaled to [0, 1]."""
        return self.rank / (VerificationLevel.count() - 1)


class SubscriptionTier(str, Enum):
    """Ordered subscription tiers, lowest first."""
    BASIC = "Basic"
    CHROME = "Chrome"
    BRONZE = "Bronze"
    SILVER = "Silver"
    GOLD = "Gold"
    PLATINUM = "Platinum"

    @property
    def rank(self) -> int:
        return list(SubscriptionTier).index(self)

    def accessible_tiers(self) -> List["SubscriptionTier"]:
        """Tiers a member of this tier may browse: its own and all below."""
        return list(SubscriptionTier)[: self.rank + 1]


class BusinessType(str, Enum):
    B2B = "B2B"
    B2C = "B2C"


# Ordered market-size scale used for business-model alignment
MARKET_SIZES = ["small", "medium", "large", "enterprise"]

# Discretized timeline buckets mapped onto [0, 1]
TIMELINE_BUCKETS = {
    "immediate": 0.0,
    "0-6 months": 0.2,
    "6-12 months": 0.4,
    "1-2 years": 0.6,
    "2-3 years": 0.8,
    "3+ years": 1.0,
}


@dataclass(frozen=True)
class Skill:
    """A declared skill, grouped by category for complementarity scoring."""
    name: str
    category: str = "general"


@dataclass
class BaseProfile:
    """Fields every participant has, regardless of kind."""
    user_id: str
    name: str
    experience_years: float = 0.0
    verification_level: VerificationLevel = VerificationLevel.NONE
    subscription_tier: SubscriptionTier = SubscriptionTier.BASIC
    team_size: int = 1
    email_verified: bool = False
    location: Optional[str] = None
    skills: List[Skill] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.utcnow)
    last_active_at: Optional[datetime] = None

    kind: ParticipantKind = field(init=False)

    def industries(self) -> Tuple[str, ...]:
        raise NotImplementedError

    def investment_amount(self) -> float:
        raise NotImplementedError

    def timeline(self) -> Optional[str]:
        raise NotImplementedError

    def business_type(self) -> Optional[BusinessType]:
        return None

    def primary_industry(self) -> Optional[str]:
        industries = self.industries()
        return industries[0] if industries else None


@dataclass
class EntrepreneurProfile(BaseProfile):
    """Founder side: declares what it builds and how much it wants to raise."""
    industry_list: List[str] = field(default_factory=list)
    desired_investment: float = 0.0
    declared_business_type: Optional[BusinessType] = None
    target_market_size: Optional[str] = None
    funding_timeline: Optional[str] = None

    def __post_init__(self):
        self.kind = ParticipantKind.ENTREPRENEUR

    def industries(self) -> Tuple[str, ...]:
        return tuple(self.industry_list)

    def investment_amount(self) -> float:
        return self.desired_investment

    def timeline(self) -> Optional[str]:
        return self.funding_timeline

    def business_type(self) -> Optional[BusinessType]:
        return self.declared_business_type


@dataclass
class FunderProfile(BaseProfile):
    """Investor side: declares interests, available capital and ticket range."""
    areas_of_interest: List[str] = field(default_factory=list)
    available_funds: float = 0.0
    min_investment: Optional[float] = None
    max_investment: Optional[float] = None
    preferred_business_types: List[BusinessType] = field(default_factory=list)
    preferred_market_size: Optional[str] = None
    preferred_timeline: Optional[str] = None

    def __post_init__(self):
        self.kind = ParticipantKind.FUNDER

    def industries(self) -> Tuple[str, ...]:
        return tuple(self.areas_of_interest)

    def investment_amount(self) -> float:
        return self.available_funds

    def timeline(self) -> Optional[str]:
        return self.preferred_timeline

    def accepts_amount(self, amount: float) -> bool:
        """Whether ``amount`` falls inside the declared ticket range."""
        low = self.min_investment if self.min_investment is not None else 0.0
        high = self.max_investment if self.max_investment is not None else float("inf")
        return low <= amount <= high


Profile = BaseProfile


def split_pair(a: Profile, b: Profile) -> Tuple[Optional[EntrepreneurProfile], Optional[FunderProfile]]:
    """Return (entrepreneur, funder) for a cross-kind pair, else (None, None)."""
    if isinstance(a, EntrepreneurProfile) and isinstance(b, FunderProfile):
        return a, b
    if isinstance(a, FunderProfile) and isinstance(b, EntrepreneurProfile):
        return b, a
    return None, None
