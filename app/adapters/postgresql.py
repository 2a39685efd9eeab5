"""PostgreSQL adapter for profiles, matches, swipes and match preferences."""
import logging
import os
import uuid
from contextlib import contextmanager
from typing import List, Dict, Any, Iterable, Optional, Tuple
from datetime import datetime

import psycopg2
from psycopg2.extras import RealDictCursor, Json
from dotenv import load_dotenv

from app.middleware.error_handling import ErrorCode, ExternalServiceException
from app.models.profile import (
    BaseProfile,
    BusinessType,
    EntrepreneurProfile,
    FunderProfile,
    ParticipantKind,
    Skill,
    SubscriptionTier,
    VerificationLevel,
)
from app.models.match import Engagement, Match, MatchStatus, Swipe, SwipeDirection, pair_key, resolve_status
from app.services.ports import CandidatePredicate

load_dotenv()

logger = logging.getLogger(__name__)

MATCH_COLUMNS = "id, user_a_id, user_b_id, status, created_at, last_activity_at, resolved_at, conversation_id"
SWIPE_COLUMNS = "actor_id, target_id, direction, created_at"


def _business_type(value: Optional[str]) -> Optional[BusinessType]:
    return BusinessType(value) if value else None


def profile_from_row(row: Dict[str, Any]) -> BaseProfile:
    """Build a typed profile from a ``profiles`` row; kind-specific fields live in ``data``."""
    data = row.get("data") or {}
    common = dict(
        user_id=str(row["user_id"]),
        name=row.get("name") or "",
        experience_years=float(data.get("experience_years") or 0),
        verification_level=VerificationLevel(row.get("verification_level") or VerificationLevel.NONE.value),
        subscription_tier=SubscriptionTier(row.get("subscription_tier") or SubscriptionTier.BASIC.value),
        team_size=int(data.get("team_size") or 1),
        email_verified=bool(row.get("email_verified")),
        location=data.get("location"),
        skills=[Skill(s["name"], s.get("category", "general")) for s in data.get("skills", [])],
        created_at=row["created_at"],
        last_active_at=row.get("last_active_at"),
    )

    if row["kind"] == ParticipantKind.FUNDER.value:
        return FunderProfile(
            **common,
            areas_of_interest=list(data.get("areas_of_interest", [])),
            available_funds=float(data.get("available_funds") or 0),
            min_investment=data.get("min_investment"),
            max_investment=data.get("max_investment"),
            preferred_business_types=[BusinessType(b) for b in data.get("preferred_business_types", [])],
            preferred_market_size=data.get("preferred_market_size"),
            preferred_timeline=data.get("preferred_timeline"),
        )

    return EntrepreneurProfile(
        **common,
        industry_list=list(data.get("industries", [])),
        desired_investment=float(data.get("desired_investment") or 0),
        declared_business_type=_business_type(data.get("business_type")),
        target_market_size=data.get("target_market_size"),
        funding_timeline=data.get("timeline"),
    )


def match_from_row(row: Dict[str, Any]) -> Match:
    return Match(
        id=str(row["id"]),
        user_a_id=row["user_a_id"],
        user_b_id=row["user_b_id"],
        status=MatchStatus(row["status"]),
        created_at=row["created_at"],
        last_activity_at=row["last_activity_at"],
        resolved_at=row.get("resolved_at"),
        conversation_id=row.get("conversation_id"),
    )


def swipe_from_row(row: Dict[str, Any]) -> Swipe:
    return Swipe(row["actor_id"], row["target_id"], SwipeDirection(row["direction"]), row["created_at"])


class PostgreSQLAdapter:
    """
    Implements ProfileStore, MatchStore, PreferencesStore and
    EngagementHistory over one database.

    Pair creation relies on the (user_a_id, user_b_id) unique constraint with
    ``ON CONFLICT DO NOTHING``. A swipe is recorded and resolved under a
    ``SELECT ... FOR UPDATE`` lock on the match row, so the two participants
    of a pair are serialized and a resolved match never takes another swipe.
    """

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or os.getenv('DATABASE_URL')
        if not self.database_url:
            raise ValueError("DATABASE_URL environment variable is required")

    def get_connection(self):
        """Get database connection. Caller is responsible for closing."""
        return psycopg2.connect(self.database_url)

    @contextmanager
    def _cursor(self, commit: bool = False):
        conn = None
        cursor = None
        try:
            conn = self.get_connection()
            cursor = conn.cursor(cursor_factory=RealDictCursor)
            yield cursor
            if commit:
                conn.commit()
        except psycopg2.Error as e:
            if conn:
                conn.rollback()
            logger.error(f"Database error: {str(e)}")
            raise ExternalServiceException("postgresql", str(e), code=ErrorCode.DATABASE_ERROR, original_error=e)
        finally:
            if cursor:
                cursor.close()
            if conn:
                conn.close()

    # ProfileStore

    def get(self, user_id: str) -> Optional[BaseProfile]:
        with self._cursor() as cursor:
            cursor.execute("SELECT * FROM profiles WHERE user_id = %s", (user_id,))
            row = cursor.fetchone()
        return profile_from_row(row) if row else None

    def list_candidates(self, predicate: CandidatePredicate) -> List[BaseProfile]:
        query = "SELECT * FROM profiles WHERE email_verified = TRUE"
        params: List[Any] = []
        if predicate.kind is not None:
            query += " AND kind = %s"
            params.append(predicate.kind.value)

        with self._cursor() as cursor:
            cursor.execute(query, params)
            rows = cursor.fetchall()

        candidates = []
        for row in rows:
            try:
                profile = profile_from_row(row)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed profile {row.get('user_id')}: {e}")
                continue
            if predicate(profile):
                candidates.append(profile)
        return candidates

    # MatchStore

    def create_match_if_absent(self, user_x: str, user_y: str, now: datetime) -> Tuple[Match, bool]:
        user_a, user_b = pair_key(user_x, user_y)
        with self._cursor(commit=True) as cursor:
            cursor.execute(
                f"""
                INSERT INTO matches (id, user_a_id, user_b_id, status, created_at, last_activity_at)
                VALUES (%s, %s, %s, %s, %s, %s)
                ON CONFLICT (user_a_id, user_b_id) DO NOTHING
                RETURNING {MATCH_COLUMNS}
                """,
                (str(uuid.uuid4()), user_a, user_b, MatchStatus.PENDING.value, now, now)
            )
            row = cursor.fetchone()
            if row:
                return match_from_row(row), True

            cursor.execute(
                f"SELECT {MATCH_COLUMNS} FROM matches WHERE user_a_id = %s AND user_b_id = %s",
                (user_a, user_b)
            )
            return match_from_row(cursor.fetchone()), False

    def get_match(self, user_x: str, user_y: str) -> Optional[Match]:
        user_a, user_b = pair_key(user_x, user_y)
        with self._cursor() as cursor:
            cursor.execute(
                f"SELECT {MATCH_COLUMNS} FROM matches WHERE user_a_id = %s AND user_b_id = %s",
                (user_a, user_b)
            )
            row = cursor.fetchone()
        return match_from_row(row) if row else None

    def apply_swipe(self, match_id: str, swipe: Swipe, now: datetime) -> Optional[MatchStatus]:
        with self._cursor(commit=True) as cursor:
            # Row lock serializes the two participants of a pair until commit
            cursor.execute("SELECT status FROM matches WHERE id = %s FOR UPDATE", (match_id,))
            row = cursor.fetchone()
            if row is None or row["status"] != MatchStatus.PENDING.value:
                return None

            cursor.execute(
                """
                INSERT INTO swipes (actor_id, target_id, direction, created_at)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (actor_id, target_id)
                DO UPDATE SET direction = EXCLUDED.direction, created_at = EXCLUDED.created_at
                """,
                (swipe.actor_id, swipe.target_id, swipe.direction.value, swipe.created_at)
            )
            cursor.execute(
                f"SELECT {SWIPE_COLUMNS} FROM swipes WHERE actor_id = %s AND target_id = %s",
                (swipe.target_id, swipe.actor_id)
            )
            counter_row = cursor.fetchone()
            status = resolve_status(swipe, swipe_from_row(counter_row) if counter_row else None)

            cursor.execute(
                """
                UPDATE matches
                SET status = %s,
                    last_activity_at = GREATEST(last_activity_at, %s),
                    resolved_at = CASE WHEN %s THEN %s ELSE resolved_at END
                WHERE id = %s
                """,
                (status.value, now, status.is_terminal, now, match_id)
            )
            return status

    def attach_conversation(self, match_id: str, conversation_id: str) -> None:
        with self._cursor(commit=True) as cursor:
            cursor.execute(
                "UPDATE matches SET conversation_id = %s WHERE id = %s AND conversation_id IS NULL",
                (conversation_id, match_id)
            )

    def get_swipe(self, actor_id: str, target_id: str) -> Optional[Swipe]:
        with self._cursor() as cursor:
            cursor.execute(
                f"SELECT {SWIPE_COLUMNS} FROM swipes WHERE actor_id = %s AND target_id = %s",
                (actor_id, target_id)
            )
            row = cursor.fetchone()
        return swipe_from_row(row) if row else None

    def matches_for(self, user_id: str, status: Optional[MatchStatus] = None) -> List[Match]:
        query = f"SELECT {MATCH_COLUMNS} FROM matches WHERE (user_a_id = %s OR user_b_id = %s)"
        params: List[Any] = [user_id, user_id]
        if status is not None:
            query += " AND status = %s"
            params.append(status.value)
        query += " ORDER BY last_activity_at DESC"

        with self._cursor() as cursor:
            cursor.execute(query, params)
            return [match_from_row(row) for row in cursor.fetchall()]

    def swipes_by(self, actor_id: str) -> List[Swipe]:
        with self._cursor() as cursor:
            cursor.execute(
                f"SELECT {SWIPE_COLUMNS} FROM swipes WHERE actor_id = %s",
                (actor_id,)
            )
            return [swipe_from_row(row) for row in cursor.fetchall()]

    def count_recent_successes(self, user_ids: Iterable[str], since: datetime) -> Dict[str, int]:
        user_ids = list(user_ids)
        counts = {user_id: 0 for user_id in user_ids}
        if not user_ids:
            return counts

        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT participant, COUNT(*) AS successes
                FROM (
                    SELECT user_a_id AS participant FROM matches
                    WHERE status = %s AND resolved_at >= %s AND user_a_id = ANY(%s)
                    UNION ALL
                    SELECT user_b_id AS participant FROM matches
                    WHERE status = %s AND resolved_at >= %s AND user_b_id = ANY(%s)
                ) accepted
                GROUP BY participant
                """,
                (MatchStatus.ACCEPTED.value, since, user_ids, MatchStatus.ACCEPTED.value, since, user_ids)
            )
            for row in cursor.fetchall():
                counts[row["participant"]] = int(row["successes"])
        return counts

    def expire_pending(self, older_than: datetime, now: datetime) -> int:
        with self._cursor(commit=True) as cursor:
            cursor.execute(
                """
                UPDATE matches SET status = %s, resolved_at = %s
                WHERE status = %s AND last_activity_at < %s
                """,
                (MatchStatus.EXPIRED.value, now, MatchStatus.PENDING.value, older_than)
            )
            return cursor.rowcount

    # PreferencesStore

    def get_preferences(self, user_id: str) -> Optional[dict]:
        with self._cursor() as cursor:
            cursor.execute("SELECT preferences FROM match_preferences WHERE user_id = %s", (user_id,))
            row = cursor.fetchone()
        return row["preferences"] if row else None

    def save_preferences(self, user_id: str, preferences: dict) -> None:
        with self._cursor(commit=True) as cursor:
            cursor.execute(
                """
                INSERT INTO match_preferences (user_id, preferences, updated_at)
                VALUES (%s, %s, (CURRENT_TIMESTAMP AT TIME ZONE 'UTC'))
                ON CONFLICT (user_id)
                DO UPDATE SET
                    preferences = EXCLUDED.preferences,
                    updated_at = (CURRENT_TIMESTAMP AT TIME ZONE 'UTC')
                """,
                (user_id, Json(preferences))
            )
        logger.info(f"Stored match preferences for user {user_id}")

    # EngagementHistory

    def engagements_between(self, industries_a: List[str], industries_b: List[str]) -> List[Engagement]:
        """Accepted matches whose participants declared industries from each side."""
        side_a = [i.lower() for i in industries_a]
        side_b = [i.lower() for i in industries_b]
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT m.message_count,
                       EXTRACT(EPOCH FROM (COALESCE(m.last_message_at, m.resolved_at) - m.resolved_at)) AS duration_seconds
                FROM matches m
                JOIN profiles pa ON pa.user_id = m.user_a_id
                JOIN profiles pb ON pb.user_id = m.user_b_id
                WHERE m.status = %s
                  AND (
                      (pa.industry_keys && %s::text[] AND pb.industry_keys && %s::text[])
                   OR (pa.industry_keys && %s::text[] AND pb.industry_keys && %s::text[])
                  )
                """,
                (MatchStatus.ACCEPTED.value, side_a, side_b, side_b, side_a)
            )
            rows = cursor.fetchall()
        return [
            Engagement(message_count=int(r["message_count"] or 0), duration_seconds=float(r["duration_seconds"] or 0))
            for r in rows
        ]

    def health_check(self) -> bool:
        """Check if PostgreSQL is accessible."""
        try:
            with self._cursor() as cursor:
                cursor.execute("SELECT 1 AS ok")
                return cursor.fetchone()["ok"] == 1
        except ExternalServiceException:
            return False
