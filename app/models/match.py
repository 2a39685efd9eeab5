"""
Swipe and match records tracked by the swipe state machine.
"""
from typing import Optional, Tuple
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class SwipeDirection(str, Enum):
    LEFT = "left"
    RIGHT = "right"


class MatchStatus(str, Enum):
    """Lifecycle of a match record: pending until resolved or timed out."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self is not MatchStatus.PENDING


def pair_key(user_x: str, user_y: str) -> Tuple[str, str]:
    """Order-independent key for a pair of participants."""
    return (user_x, user_y) if user_x <= user_y else (user_y, user_x)


@dataclass(frozen=True)
class Swipe:
    actor_id: str
    target_id: str
    direction: SwipeDirection
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class Match:
    """
    One record per unordered pair. ``user_a_id``/``user_b_id`` are stored
    sorted, so the pair itself is the uniqueness key.
    """
    id: str
    user_a_id: str
    user_b_id: str
    status: MatchStatus = MatchStatus.PENDING
    created_at: datetime = field(default_factory=datetime.utcnow)
    last_activity_at: datetime = field(default_factory=datetime.utcnow)
    conversation_id: Optional[str] = None
    resolved_at: Optional[datetime] = None

    @property
    def pair(self) -> Tuple[str, str]:
        return (self.user_a_id, self.user_b_id)

    def involves(self, user_id: str) -> bool:
        return user_id in self.pair

    def counterpart_of(self, user_id: str) -> str:
        return self.user_b_id if user_id == self.user_a_id else self.user_a_id


def resolve_status(swipe: Swipe, counter_swipe: Optional[Swipe]) -> MatchStatus:
    """
    Status of a pending match right after ``swipe`` is recorded.

    A left swipe rejects; a right swipe accepts only when the other side's
    latest swipe is also right. Otherwise the match stays pending.
    """
    if swipe.direction is SwipeDirection.LEFT:
        return MatchStatus.REJECTED
    if counter_swipe is not None and counter_swipe.direction is SwipeDirection.RIGHT:
        return MatchStatus.ACCEPTED
    return MatchStatus.PENDING


@dataclass
class SwipeOutcome:
    """Result of applying one swipe."""
    match_id: str
    status: MatchStatus
    is_match: bool
    conversation_id: Optional[str] = None
    changed: bool = True


@dataclass(frozen=True)
class Engagement:
    """Historical engagement of one accepted match, used for industry affinity."""
    message_count: int
    duration_seconds: float
