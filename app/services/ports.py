"""
Collaborator interfaces consumed by the matching engine.

Concrete adapters live in ``app.adapters`` (PostgreSQL, in-memory) and
``app.services`` (Redis usage gate, webhook notifications).
"""
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Tuple
from dataclasses import dataclass
from datetime import datetime

from app.models.profile import BaseProfile, ParticipantKind
from app.models.match import Engagement, Match, MatchStatus, Swipe


@dataclass
class CandidatePredicate:
    """
    Predicate handed to ``ProfileStore.list_candidates``. ``kind`` is exposed
    so SQL-backed stores can narrow the scan before applying ``test``.
    """
    kind: Optional[ParticipantKind]
    test: Callable[[BaseProfile], bool]

    def __call__(self, profile: BaseProfile) -> bool:
        if self.kind is not None and profile.kind is not self.kind:
            return False
        return self.test(profile)


class ProfileStore(Protocol):
    def get(self, user_id: str) -> Optional[BaseProfile]: ...

    def list_candidates(self, predicate: CandidatePredicate) -> List[BaseProfile]: ...


class MatchStore(Protocol):
    """Persisted swipes and matches. Pair creation and apply_swipe must be atomic."""

    def create_match_if_absent(self, user_x: str, user_y: str, now: datetime) -> Tuple[Match, bool]: ...

    def get_match(self, user_x: str, user_y: str) -> Optional[Match]: ...

    def apply_swipe(self, match_id: str, swipe: Swipe, now: datetime) -> Optional[MatchStatus]:
        """
        Record ``swipe`` and resolve the match in one atomic step.

        Returns the status the match is in afterwards, or None when the match
        was no longer pending and nothing was written.
        """
        ...

    def attach_conversation(self, match_id: str, conversation_id: str) -> None: ...

    def get_swipe(self, actor_id: str, target_id: str) -> Optional[Swipe]: ...

    def matches_for(self, user_id: str, status: Optional[MatchStatus] = None) -> List[Match]: ...

    def swipes_by(self, actor_id: str) -> List[Swipe]: ...

    def count_recent_successes(self, user_ids: Iterable[str], since: datetime) -> Dict[str, int]: ...

    def expire_pending(self, older_than: datetime, now: datetime) -> int: ...


class PreferencesStore(Protocol):
    def get_preferences(self, user_id: str) -> Optional[dict]: ...

    def save_preferences(self, user_id: str, preferences: dict) -> None: ...


class EngagementHistory(Protocol):
    """Past accepted matches between participants of two industry sets."""

    def engagements_between(self, industries_a: List[str], industries_b: List[str]) -> List[Engagement]: ...


class UsageGate(Protocol):
    """Daily quotas. ``consume`` takes a unit atomically; ``release`` hands it back."""

    def consume(self, user_id: str, action: str) -> bool: ...

    def release(self, user_id: str, action: str) -> None: ...


@dataclass
class ConversationRef:
    id: str


class ConversationService(Protocol):
    def create_for_match(self, match_id: str, participant_ids: List[str]) -> ConversationRef: ...


class NotificationService(Protocol):
    def notify(self, user_id: str, event: dict) -> None: ...


class ScoreAdjustmentStrategy(Protocol):
    """
    Per-factor multiplicative adjustments for a (viewer, candidate) pair.
    Missing factors are treated as a multiplier of 1.
    """

    def adjustments(self, viewer_id: str, candidate_id: str) -> Dict[str, float]: ...


class NoOpAdjustmentStrategy:
    """Default strategy: no learned ranking signal, every multiplier is 1."""

    def adjustments(self, viewer_id: str, candidate_id: str) -> Dict[str, float]:
        return {}
