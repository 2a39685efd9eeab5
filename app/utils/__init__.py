"""
Shared plumbing: the Redis cache and structured logging.
"""
from .cache import get_cache, RedisCache
from .logging_config import run_in_context, set_log_context, setup_logging

__all__ = ['get_cache', 'RedisCache', 'run_in_context', 'set_log_context', 'setup_logging']
