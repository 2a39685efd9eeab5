"""
Swipe state machine.

    none -> pending -> {accepted, rejected}
            pending -> expired   (TTL policy, see expire_stale)

Recording a swipe and resolving the match is one atomic MatchStore step
(apply_swipe) that only writes while the match is pending. When both
participants swipe at the same instant the store serializes them: exactly
one request sees the mutual like and moves the match to accepted, and a
swipe that arrives after resolution is not recorded. Only the request that
accepted creates the conversation and notifies the pair.
"""
import logging
from typing import Optional
from datetime import datetime

from app.middleware.error_handling import (
    ConflictException,
    ErrorCode,
    NotFoundException,
    ValidationException,
)
from app.models.match import Match, MatchStatus, Swipe, SwipeDirection, SwipeOutcome
from app.services.ports import ConversationService, MatchStore, NotificationService, ProfileStore

logger = logging.getLogger(__name__)


class SwipeStateMachine:

    def __init__(
        self,
        profiles: ProfileStore,
        matches: MatchStore,
        conversations: ConversationService,
        notifications: NotificationService,
    ):
        self.profiles = profiles
        self.matches = matches
        self.conversations = conversations
        self.notifications = notifications

    def swipe(
        self,
        actor_id: str,
        target_id: str,
        direction: SwipeDirection,
        now: Optional[datetime] = None,
    ) -> SwipeOutcome:
        """Record one decision and resolve the pair's match if it can be resolved."""
        now = now or datetime.utcnow()
        direction = SwipeDirection(direction)

        if actor_id == target_id:
            raise ValidationException("Cannot swipe on yourself", field="targetUserId")
        if self.profiles.get(target_id) is None:
            raise NotFoundException("User", target_id, code=ErrorCode.USER_NOT_FOUND)

        match, created = self.matches.create_match_if_absent(actor_id, target_id, now)
        if created:
            logger.info(f"Created pending match {match.id} for {actor_id} -> {target_id}")

        try:
            self._ensure_pending(match)
        except ConflictException as e:
            logger.info(f"Swipe by {actor_id} on resolved match {match.id} ignored: {e.message}")
            return self._outcome(match, changed=False)

        status = self.matches.apply_swipe(match.id, Swipe(actor_id, target_id, direction, now), now)
        if status is None:
            # Resolved by the counterparty or by expiry after our read; nothing was written
            current = self._reload(match)
            logger.info(f"Swipe by {actor_id} lost the race on match {match.id}, now {current.status.value}")
            return self._outcome(current, changed=False)

        if status is MatchStatus.ACCEPTED:
            logger.info(f"Mutual match {match.id} between {actor_id} and {target_id}")
            self._on_accepted(match, now)

        return self._outcome(self._reload(match))

    def expire_stale(self, older_than: datetime, now: Optional[datetime] = None) -> int:
        """Move pending matches with no activity since ``older_than`` to expired."""
        now = now or datetime.utcnow()
        expired = self.matches.expire_pending(older_than, now)
        if expired:
            logger.info(f"Expired {expired} stale pending matches (inactive since {older_than.isoformat()})")
        return expired

    @staticmethod
    def _ensure_pending(match: Match) -> None:
        if match.status.is_terminal:
            raise ConflictException(
                f"Match {match.id} is already {match.status.value}",
                details={"match_id": match.id, "status": match.status.value},
                code=ErrorCode.MATCH_ALREADY_RESOLVED,
            )

    def _on_accepted(self, match: Match, now: datetime) -> None:
        """Side effects for the single pending -> accepted winner. Failures are logged, not retried."""
        conversation_id = None
        try:
            conversation = self.conversations.create_for_match(match.id, list(match.pair))
            conversation_id = conversation.id
            self.matches.attach_conversation(match.id, conversation_id)
        except Exception as e:
            logger.error(f"Failed to create conversation for match {match.id}: {e}")

        for user_id in match.pair:
            event = {
                "type": "match_accepted",
                "match_id": match.id,
                "matched_user_id": match.counterpart_of(user_id),
                "conversation_id": conversation_id,
                "matched_at": now.isoformat(),
            }
            try:
                self.notifications.notify(user_id, event)
            except Exception as e:
                logger.error(f"Failed to notify user {user_id} of match {match.id}: {e}")

    def _reload(self, match: Match) -> Match:
        current = self.matches.get_match(match.user_a_id, match.user_b_id)
        return current or match

    @staticmethod
    def _outcome(match: Match, changed: bool = True) -> SwipeOutcome:
        return SwipeOutcome(
            match_id=match.id,
            status=match.status,
            is_match=match.status is MatchStatus.ACCEPTED,
            conversation_id=match.conversation_id,
            changed=changed,
        )
