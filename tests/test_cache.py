"""
Unit tests for Redis caching utility.
Tests cache operations, key generation, and error handling.
"""
import pytest
from unittest.mock import Mock, patch
import json
import sys
import os

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.utils.cache import RedisCache


class TestRedisCacheKeyGeneration:
    """Tests for cache key generation."""

    def test_generate_key_deterministic(self):
        """Same input should produce same key."""
        assert RedisCache._generate_key("industry_rel", "a|b") == RedisCache._generate_key("industry_rel", "a|b")

    def test_generate_key_different_data(self):
        """Different data should produce different keys."""
        assert RedisCache._generate_key("p", "data1") != RedisCache._generate_key("p", "data2")

    def test_generate_key_format(self):
        """Key should be prefix plus a 32 char hash."""
        key = RedisCache._generate_key("industry_rel", "test")
        assert key.startswith("industry_rel:")
        assert len(key) == len("industry_rel:") + 32


class TestRedisCacheOperations:
    """Tests for cache get/set operations."""

    @pytest.fixture
    def mock_redis_client(self):
        """Create mock Redis client."""
        mock_client = Mock()
        mock_client.ping.return_value = True
        mock_client.get.return_value = None
        mock_client.setex.return_value = True
        mock_client.delete.return_value = 1
        return mock_client

    @pytest.fixture
    def cache_with_mock(self, mock_redis_client):
        """Create cache with mocked Redis."""
        with patch('redis.from_url', return_value=mock_redis_client):
            cache = RedisCache(url='redis://localhost:6379/0', enabled=True)
        return cache, mock_redis_client

    def test_connects_on_init(self, cache_with_mock):
        cache, mock_client = cache_with_mock
        mock_client.ping.assert_called_once()
        assert cache.connected is True
        assert cache.client is mock_client

    def test_set_serializes_value(self, cache_with_mock):
        """Set should serialize value to JSON."""
        cache, mock_client = cache_with_mock
        cache.set("key", {"score": 0.75}, ttl=100)
        mock_client.setex.assert_called_once()
        call_args = mock_client.setex.call_args
        assert call_args[0][0] == "key"
        assert call_args[0][1] == 100
        stored_value = json.loads(call_args[0][2].decode('utf-8'))
        assert stored_value == {"score": 0.75}

    def test_get_deserializes_value(self, cache_with_mock):
        """Get should deserialize JSON value."""
        cache, mock_client = cache_with_mock
        mock_client.get.return_value = b'{"score": 0.5}'
        assert cache.get("key") == {"score": 0.5}

    def test_get_returns_none_for_missing_key(self, cache_with_mock):
        cache, mock_client = cache_with_mock
        mock_client.get.return_value = None
        assert cache.get("missing_key") is None

    def test_get_returns_none_on_corrupt_value(self, cache_with_mock):
        cache, mock_client = cache_with_mock
        mock_client.get.return_value = b'not json'
        assert cache.get("key") is None

    def test_set_returns_false_on_redis_error(self, cache_with_mock):
        from redis.exceptions import RedisError
        cache, mock_client = cache_with_mock
        mock_client.setex.side_effect = RedisError("READONLY")
        assert cache.set("key", {"score": 1.0}) is False

    def test_delete_key(self, cache_with_mock):
        """Delete should remove key."""
        cache, mock_client = cache_with_mock
        cache.delete("key")
        mock_client.delete.assert_called_once_with("key")


class TestCacheDisabled:
    """Tests for cache when disabled."""

    def test_get_returns_none_when_disabled(self):
        cache = RedisCache(enabled=False)
        assert cache.get("key") is None

    def test_set_returns_false_when_disabled(self):
        cache = RedisCache(enabled=False)
        assert cache.set("key", "value") is False

    def test_client_is_none_when_disabled(self):
        cache = RedisCache(enabled=False)
        assert cache.client is None
        assert cache.connected is False

    def test_enabled_flag_read_from_environment(self):
        with patch.dict(os.environ, {'CACHE_ENABLED': 'false'}):
            cache = RedisCache()
        assert cache.enabled is False


class TestCacheConnectionFailure:
    """Tests for cache behavior when Redis is unavailable."""

    def test_graceful_degradation_on_connection_error(self):
        """Cache should gracefully degrade when Redis is unavailable."""
        from redis.exceptions import RedisError
        with patch('redis.from_url') as mock_from_url:
            mock_from_url.side_effect = RedisError("Connection refused")
            cache = RedisCache(enabled=True)

        assert cache.enabled is True
        assert cache.connected is False

    def test_get_returns_none_on_connection_failure(self):
        from redis.exceptions import RedisError
        with patch('redis.from_url') as mock_from_url:
            mock_from_url.side_effect = RedisError("Connection refused")
            cache = RedisCache(enabled=True)

        assert cache.get("key") is None


class TestCacheStats:
    """Tests for cache statistics."""

    @pytest.fixture
    def cache_with_mock(self):
        mock_client = Mock()
        mock_client.ping.return_value = True
        mock_client.info.return_value = {
            'used_memory_human': '1M',
            'maxmemory_human': '100M'
        }
        mock_client.dbsize.return_value = 42

        with patch('redis.from_url', return_value=mock_client):
            return RedisCache(enabled=True)

    def test_get_stats_returns_info(self, cache_with_mock):
        stats = cache_with_mock.get_stats()
        assert stats['enabled'] is True
        assert stats['connected'] is True
        assert stats['used_memory'] == '1M'
        assert stats['keys'] == 42

    def test_get_stats_when_disabled(self):
        stats = RedisCache(enabled=False).get_stats()
        assert stats['enabled'] is False
