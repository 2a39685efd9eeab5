"""
Industry Relationship Cache.

Affinity between two industry sets, derived from how well past accepted
matches between those industries engaged (message volume and conversation
duration). Scores are cached for 24 hours:

1. Redis (read-through / write-through, SETEX) when Redis is configured
2. Process-local TTL dict when caching is disabled (dev, tests)
3. Default 0.5 when Redis is configured but unreachable, or history fails

Concurrent misses on the same key may both compute; the write is a plain
overwrite, so the last writer wins with an equivalent value.
"""
import os
import time
import logging
import threading
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from app.models.match import Engagement
from app.services.ports import EngagementHistory
from app.utils.cache import RedisCache

logger = logging.getLogger(__name__)

DEFAULT_AFFINITY = 0.5
INDUSTRY_AFFINITY_TTL = int(os.getenv('INDUSTRY_AFFINITY_TTL', '86400'))  # 24 hours

MESSAGE_SATURATION = 100
DURATION_SATURATION_SECONDS = 90 * 24 * 60 * 60


def normalize_industries(industries: Iterable[str]) -> List[str]:
    """Lower-cased, de-duplicated, sorted industry names."""
    return sorted({i.strip().lower() for i in industries if i and i.strip()})


def engagement_score(engagement: Engagement) -> float:
    """Half message volume, half conversation duration, each capped at 1."""
    messages = min(engagement.message_count / MESSAGE_SATURATION, 1.0)
    duration = min(max(engagement.duration_seconds, 0.0) / DURATION_SATURATION_SECONDS, 1.0)
    return messages * 0.5 + duration * 0.5


class IndustryRelationshipCache:
    """Cached, order-independent industry affinity lookups."""

    KEY_PREFIX = "industry_rel"

    def __init__(
        self,
        history: EngagementHistory,
        cache: Optional[RedisCache] = None,
        ttl_seconds: int = INDUSTRY_AFFINITY_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self.history = history
        self.cache = cache
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._memory: Dict[str, Tuple[float, float]] = {}
        self._lock = threading.Lock()

    def cache_key(self, industries_a: Iterable[str], industries_b: Iterable[str]) -> str:
        """Same key for (A, B) and (B, A), and for any ordering inside A or B."""
        side_a = ",".join(normalize_industries(industries_a))
        side_b = ",".join(normalize_industries(industries_b))
        first, second = sorted([side_a, side_b])
        return RedisCache._generate_key(self.KEY_PREFIX, f"{first}|{second}")

    def _uses_redis(self) -> bool:
        return self.cache is not None and self.cache.enabled

    def get_affinity(self, industries_a: Iterable[str], industries_b: Iterable[str]) -> float:
        """Cached affinity in [0, 1]; recomputed synchronously on miss or expiry."""
        industries_a = list(industries_a)
        industries_b = list(industries_b)
        key = self.cache_key(industries_a, industries_b)

        if self._uses_redis() and not self.cache.connected:
            logger.warning("Industry relationship cache unavailable, using default affinity")
            return DEFAULT_AFFINITY

        cached = self._read(key)
        if cached is not None:
            return cached

        score = self._compute(industries_a, industries_b)
        if score is None:
            return DEFAULT_AFFINITY

        self._write(key, score)
        return score

    def _read(self, key: str) -> Optional[float]:
        now = self._clock()
        if self._uses_redis():
            entry = self.cache.get(key)
            if not entry:
                return None
            computed_at = float(entry.get("computed_at", 0))
            if now - computed_at >= self.ttl_seconds:
                return None
            return float(entry["score"])

        with self._lock:
            entry = self._memory.get(key)
        if entry is None:
            return None
        score, computed_at = entry
        if now - computed_at >= self.ttl_seconds:
            logger.debug(f"Industry affinity entry {key} expired")
            return None
        return score

    def _write(self, key: str, score: float) -> None:
        now = self._clock()
        if self._uses_redis():
            self.cache.set(key, {"score": score, "computed_at": now}, ttl=self.ttl_seconds)
            return
        with self._lock:
            self._memory[key] = (score, now)

    def _compute(self, industries_a: List[str], industries_b: List[str]) -> Optional[float]:
        """Average engagement of historical matches; None when history is unavailable."""
        if not industries_a or not industries_b:
            return DEFAULT_AFFINITY

        try:
            engagements = self.history.engagements_between(industries_a, industries_b)
        except Exception as e:
            logger.error(f"Error loading engagement history for industry affinity: {e}")
            return None

        if not engagements:
            return DEFAULT_AFFINITY

        total = sum(engagement_score(e) for e in engagements)
        score = total / len(engagements)
        logger.debug(f"Computed industry affinity {score:.3f} from {len(engagements)} engagements")
        return min(max(score, 0.0), 1.0)
