"""
Shared Redis access for the matching engine.

Holds the industry affinity cache entries (JSON values with a TTL) and
hands the raw client to the usage gate for its atomic counters. Redis is
optional: with CACHE_ENABLED=false or an unreachable server every call
degrades to a miss and callers use their process-local fallbacks.
"""
import os
import json
import hashlib
import logging
from functools import lru_cache
from typing import Any, Dict, Optional
import redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

REDIS_URL = os.getenv('REDIS_URL', os.getenv('CELERY_BROKER_URL', 'redis://localhost:6379/0'))
CACHE_TTL_SECONDS = int(os.getenv('CACHE_TTL_SECONDS', '86400'))
SOCKET_TIMEOUT_SECONDS = 5


def _client_options(url: str) -> Dict[str, Any]:
    options = {
        "decode_responses": False,
        "socket_timeout": SOCKET_TIMEOUT_SECONDS,
        "socket_connect_timeout": SOCKET_TIMEOUT_SECONDS,
        "retry_on_timeout": True,
    }
    if url.startswith("rediss://"):
        options["ssl_cert_reqs"] = "none"
    return options


class RedisCache:
    """JSON values in Redis; misses instead of errors when Redis is away."""

    def __init__(self, url: str = REDIS_URL, enabled: Optional[bool] = None):
        if enabled is None:
            enabled = os.getenv('CACHE_ENABLED', 'true').lower() == 'true'
        self.enabled = enabled
        self._url = url
        self._client: Optional[redis.Redis] = None
        if self.enabled:
            self._client = self._connect()

    def _connect(self) -> Optional[redis.Redis]:
        try:
            client = redis.from_url(self._url, **_client_options(self._url))
            client.ping()
        except RedisError as e:
            logger.warning(f"Redis unavailable, falling back to local state: {e}")
            return None
        logger.info("Redis cache connected")
        return client

    @property
    def connected(self) -> bool:
        return self.enabled and self._client is not None

    @property
    def client(self) -> Optional[redis.Redis]:
        """Raw client for atomic counters; None when not connected."""
        return self._client if self.connected else None

    @staticmethod
    def _generate_key(prefix: str, data: str) -> str:
        digest = hashlib.sha256(data.encode('utf-8')).hexdigest()
        return f"{prefix}:{digest[:32]}"

    def get(self, key: str) -> Optional[Any]:
        if not self.connected:
            return None
        try:
            raw = self._client.get(key)
            return None if raw is None else json.loads(raw.decode('utf-8'))
        except (RedisError, ValueError) as e:
            # Corrupt entries read as misses and get rewritten by the caller
            logger.warning(f"Cache read failed for {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl: int = CACHE_TTL_SECONDS) -> bool:
        if not self.connected:
            return False
        try:
            self._client.setex(key, ttl, json.dumps(value).encode('utf-8'))
        except (RedisError, TypeError) as e:
            logger.warning(f"Cache write failed for {key}: {e}")
            return False
        return True

    def delete(self, key: str) -> bool:
        if not self.connected:
            return False
        try:
            self._client.delete(key)
        except RedisError as e:
            logger.warning(f"Cache delete failed for {key}: {e}")
            return False
        return True

    def get_stats(self) -> Dict[str, Any]:
        """Connection state and memory usage for the health endpoints."""
        stats: Dict[str, Any] = {"enabled": self.enabled}
        if not self.enabled:
            return stats
        stats["connected"] = self.connected
        if not self.connected:
            return stats
        try:
            memory = self._client.info('memory')
            stats.update(
                used_memory=memory.get('used_memory_human', 'unknown'),
                max_memory=memory.get('maxmemory_human', 'unlimited'),
                keys=self._client.dbsize(),
            )
        except RedisError as e:
            stats.update(connected=False, error=str(e))
        return stats


@lru_cache(maxsize=1)
def get_cache() -> RedisCache:
    """Process-wide cache, connected on first use."""
    return RedisCache()
