"""
Daily usage quotas per subscription tier.

Counters live in Redis under ``usage:<action>:<user>:<YYYY-MM-DD>`` (UTC day)
and are taken with INCR (rolled back with DECR when over the limit),
expiring two days later. When Redis is disabled or unreachable, a
process-local counter is used instead.
"""
import logging
import threading
from typing import Callable, Dict, Optional, Tuple
from datetime import datetime, timedelta

from redis.exceptions import RedisError

from app.models.profile import SubscriptionTier
from app.utils.cache import RedisCache

logger = logging.getLogger(__name__)

VIEW_MATCHES = "view_matches"
SWIPE = "swipe"

# None means unlimited
TIER_DAILY_LIMITS: Dict[SubscriptionTier, Optional[int]] = {
    SubscriptionTier.BASIC: 5,
    SubscriptionTier.CHROME: 10,
    SubscriptionTier.BRONZE: 20,
    SubscriptionTier.SILVER: 30,
    SubscriptionTier.GOLD: 50,
    SubscriptionTier.PLATINUM: None,
}

COUNTER_TTL_SECONDS = 2 * 24 * 60 * 60


def seconds_until_utc_midnight(now: datetime) -> int:
    tomorrow = (now + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
    return max(int((tomorrow - now).total_seconds()), 1)


class RedisUsageGate:
    """UsageGate backed by Redis counters, with an in-memory fallback."""

    def __init__(
        self,
        tier_lookup: Callable[[str], Optional[SubscriptionTier]],
        cache: Optional[RedisCache] = None,
        limits: Optional[Dict[SubscriptionTier, Optional[int]]] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.tier_lookup = tier_lookup
        self.cache = cache
        self.limits = limits or TIER_DAILY_LIMITS
        self._clock = clock
        self._memory: Dict[Tuple[str, str, str], int] = {}
        self._lock = threading.Lock()

    @staticmethod
    def counter_key(user_id: str, action: str, day: str) -> str:
        return f"usage:{action}:{user_id}:{day}"

    def daily_limit(self, user_id: str) -> Optional[int]:
        tier = self.tier_lookup(user_id) or SubscriptionTier.BASIC
        return self.limits.get(tier, self.limits[SubscriptionTier.BASIC])

    def usage(self, user_id: str, action: str) -> int:
        day = self._clock().strftime("%Y-%m-%d")
        client = self.cache.client if self.cache else None
        if client is not None:
            try:
                value = client.get(self.counter_key(user_id, action, day))
                return int(value) if value is not None else 0
            except RedisError as e:
                logger.warning(f"Usage counter read failed, using local counter: {e}")
        with self._lock:
            return self._memory.get((user_id, action, day), 0)

    def consume(self, user_id: str, action: str) -> bool:
        """
        Take one unit of today's quota, or return False when none is left.

        The counter is incremented first and handed back when the new value
        is over the limit, so concurrent requests cannot both take the last unit.
        """
        limit = self.daily_limit(user_id)
        day = self._clock().strftime("%Y-%m-%d")
        client = self.cache.client if self.cache else None
        if client is not None:
            key = self.counter_key(user_id, action, day)
            try:
                pipe = client.pipeline()
                pipe.incr(key)
                pipe.expire(key, COUNTER_TTL_SECONDS)
                count = int(pipe.execute()[0])
            except RedisError as e:
                logger.warning(f"Usage counter write failed, using local counter: {e}")
            else:
                if limit is not None and count > limit:
                    self._decrement(client, key)
                    return False
                return True

        with self._lock:
            counter = (user_id, action, day)
            count = self._memory.get(counter, 0)
            if limit is not None and count >= limit:
                return False
            self._memory[counter] = count + 1
            return True

    def release(self, user_id: str, action: str) -> None:
        """Hand back a unit taken by ``consume`` for an action that did not count."""
        day = self._clock().strftime("%Y-%m-%d")
        client = self.cache.client if self.cache else None
        if client is not None and self._decrement(client, self.counter_key(user_id, action, day)):
            return
        with self._lock:
            counter = (user_id, action, day)
            if self._memory.get(counter, 0) > 0:
                self._memory[counter] -= 1

    @staticmethod
    def _decrement(client, key: str) -> bool:
        try:
            client.decr(key)
            return True
        except RedisError as e:
            logger.warning(f"Usage counter rollback failed for {key}: {e}")
            return False

    def retry_after_seconds(self) -> int:
        return seconds_until_utc_midnight(self._clock())
