"""
In-memory store adapters.

Used for local development (MATCH_STORE_BACKEND=memory) and tests. Match
creation and swipe resolution hold a single lock, giving the same
insert-if-absent and row-lock guarantees as the PostgreSQL adapter.
"""
import uuid
import threading
from typing import Dict, Iterable, List, Optional, Tuple
from datetime import datetime

from app.models.profile import BaseProfile
from app.models.match import Engagement, Match, MatchStatus, Swipe, pair_key, resolve_status
from app.services.ports import CandidatePredicate


class InMemoryProfileStore:

    def __init__(self, profiles: Iterable[BaseProfile] = ()):
        self._profiles: Dict[str, BaseProfile] = {p.user_id: p for p in profiles}
        self._lock = threading.Lock()

    def add(self, profile: BaseProfile) -> None:
        with self._lock:
            self._profiles[profile.user_id] = profile

    def get(self, user_id: str) -> Optional[BaseProfile]:
        return self._profiles.get(user_id)

    def list_candidates(self, predicate: CandidatePredicate) -> List[BaseProfile]:
        with self._lock:
            profiles = list(self._profiles.values())
        return [p for p in profiles if predicate(p)]


class InMemoryMatchStore:

    def __init__(self):
        self._matches: Dict[Tuple[str, str], Match] = {}
        self._by_id: Dict[str, Match] = {}
        self._swipes: Dict[Tuple[str, str], Swipe] = {}
        self._lock = threading.RLock()

    def create_match_if_absent(self, user_x: str, user_y: str, now: datetime) -> Tuple[Match, bool]:
        key = pair_key(user_x, user_y)
        with self._lock:
            existing = self._matches.get(key)
            if existing is not None:
                return self._copy(existing), False
            match = Match(
                id=str(uuid.uuid4()),
                user_a_id=key[0],
                user_b_id=key[1],
                status=MatchStatus.PENDING,
                created_at=now,
                last_activity_at=now,
            )
            self._matches[key] = match
            self._by_id[match.id] = match
            return self._copy(match), True

    def get_match(self, user_x: str, user_y: str) -> Optional[Match]:
        with self._lock:
            match = self._matches.get(pair_key(user_x, user_y))
            return self._copy(match) if match else None

    def apply_swipe(self, match_id: str, swipe: Swipe, now: datetime) -> Optional[MatchStatus]:
        with self._lock:
            match = self._by_id.get(match_id)
            if match is None or match.status is not MatchStatus.PENDING:
                return None
            self._swipes[(swipe.actor_id, swipe.target_id)] = swipe
            match.last_activity_at = max(match.last_activity_at, now)
            status = resolve_status(swipe, self._swipes.get((swipe.target_id, swipe.actor_id)))
            if status.is_terminal:
                match.status = status
                match.resolved_at = now
            return status

    def attach_conversation(self, match_id: str, conversation_id: str) -> None:
        with self._lock:
            match = self._by_id.get(match_id)
            if match is not None:
                match.conversation_id = conversation_id

    def get_swipe(self, actor_id: str, target_id: str) -> Optional[Swipe]:
        with self._lock:
            return self._swipes.get((actor_id, target_id))

    def matches_for(self, user_id: str, status: Optional[MatchStatus] = None) -> List[Match]:
        with self._lock:
            return [
                self._copy(m) for m in self._matches.values()
                if m.involves(user_id) and (status is None or m.status is status)
            ]

    def swipes_by(self, actor_id: str) -> List[Swipe]:
        with self._lock:
            return [s for (actor, _), s in self._swipes.items() if actor == actor_id]

    def count_recent_successes(self, user_ids: Iterable[str], since: datetime) -> Dict[str, int]:
        wanted = set(user_ids)
        counts = {user_id: 0 for user_id in wanted}
        with self._lock:
            for match in self._matches.values():
                if match.status is not MatchStatus.ACCEPTED:
                    continue
                if (match.resolved_at or match.last_activity_at) < since:
                    continue
                for user_id in match.pair:
                    if user_id in wanted:
                        counts[user_id] += 1
        return counts

    def expire_pending(self, older_than: datetime, now: datetime) -> int:
        expired = 0
        with self._lock:
            for match in self._matches.values():
                if match.status is MatchStatus.PENDING and match.last_activity_at < older_than:
                    match.status = MatchStatus.EXPIRED
                    match.resolved_at = now
                    expired += 1
        return expired

    @staticmethod
    def _copy(match: Match) -> Match:
        # Callers never see the stored instance, so reads cannot race with transitions
        return Match(**vars(match))


class InMemoryPreferencesStore:

    def __init__(self):
        self._preferences: Dict[str, dict] = {}
        self._lock = threading.Lock()

    def get_preferences(self, user_id: str) -> Optional[dict]:
        with self._lock:
            preferences = self._preferences.get(user_id)
            return dict(preferences) if preferences is not None else None

    def save_preferences(self, user_id: str, preferences: dict) -> None:
        with self._lock:
            self._preferences[user_id] = dict(preferences)


class InMemoryEngagementHistory:
    """Engagement records keyed by the industries of each side of a past match."""

    def __init__(self):
        self._records: List[Tuple[frozenset, frozenset, Engagement]] = []

    def add(self, industries_a: Iterable[str], industries_b: Iterable[str], engagement: Engagement) -> None:
        self._records.append((
            frozenset(i.lower() for i in industries_a),
            frozenset(i.lower() for i in industries_b),
            engagement,
        ))

    def engagements_between(self, industries_a: List[str], industries_b: List[str]) -> List[Engagement]:
        side_a = {i.lower() for i in industries_a}
        side_b = {i.lower() for i in industries_b}
        found = []
        for rec_a, rec_b, engagement in self._records:
            if (rec_a & side_a and rec_b & side_b) or (rec_a & side_b and rec_b & side_a):
                found.append(engagement)
        return found
