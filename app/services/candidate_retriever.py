"""
Candidate retrieval: which profiles a viewer may be shown at all.

Hard exclusions (self, anyone already paired with the viewer, same kind,
unverified email, excluded tiers) are applied before the optional
FilterCriteria. Output is unordered and unbounded; ranking happens later.
"""
import logging
from typing import FrozenSet, Iterable, List, Optional

from app.models.profile import BaseProfile, SubscriptionTier
from app.schemas.matching import FilterCriteria
from app.services.ports import CandidatePredicate, ProfileStore

logger = logging.getLogger(__name__)


class CandidateRetriever:

    def __init__(
        self,
        profiles: ProfileStore,
        excluded_tiers: Iterable[SubscriptionTier] = (SubscriptionTier.BASIC,),
        restrict_to_accessible_tiers: bool = False,
    ):
        self.profiles = profiles
        self.excluded_tiers: FrozenSet[SubscriptionTier] = frozenset(excluded_tiers)
        self.restrict_to_accessible_tiers = restrict_to_accessible_tiers

    def build_predicate(
        self,
        viewer: BaseProfile,
        criteria: Optional[FilterCriteria],
        excluded_ids: Iterable[str],
    ) -> CandidatePredicate:
        excluded = set(excluded_ids)
        excluded.add(viewer.user_id)

        accessible = None
        if self.restrict_to_accessible_tiers:
            accessible = set(viewer.subscription_tier.accessible_tiers())

        def test(candidate: BaseProfile) -> bool:
            if candidate.user_id in excluded:
                return False
            if not candidate.email_verified:
                return False
            if candidate.subscription_tier in self.excluded_tiers:
                return False
            if accessible is not None and candidate.subscription_tier not in accessible:
                return False
            if criteria is not None and not criteria.matches(candidate):
                return False
            return True

        return CandidatePredicate(kind=viewer.kind.complement(), test=test)

    def retrieve(
        self,
        viewer: BaseProfile,
        criteria: Optional[FilterCriteria] = None,
        excluded_ids: Iterable[str] = (),
    ) -> List[BaseProfile]:
        """All profiles passing exclusions and filters for ``viewer``."""
        predicate = self.build_predicate(viewer, criteria, excluded_ids)
        candidates = [c for c in self.profiles.list_candidates(predicate) if predicate(c)]
        logger.info(f"Retrieved {len(candidates)} candidates for user {viewer.user_id}")
        return candidates
