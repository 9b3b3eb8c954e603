"""
Shared Redis client for the active-deployment cache.

All Redis connections go through this module so there is exactly one
client per process.
"""

import logging
import threading

import redis

from streamgate.core.config import settings

_LOG = logging.getLogger(__name__)

_lock = threading.Lock()
_client: "redis.Redis | None" = None
_tried = False

def get_redis() -> "redis.Redis | None":
    """Return the shared Redis client (str responses).

    Returns ``None`` when ``CACHE_ENABLED`` is ``False`` or the initial
    ping fails.
    """
    global _client, _tried
    if _tried:
        return _client
    with _lock:
        if _tried:
            return _client
        _tried = True
        _client = _create_client()
        return _client

def _create_client() -> "redis.Redis | None":
    if not settings.CACHE_ENABLED:
        return None
    try:
        r = redis.Redis.from_url(settings.redis_url, decode_responses=True)
        r.ping()
        return r
    except redis.RedisError as e:
        _LOG.warning("Redis unavailable, using in-process cache only: %s", e)
        return None


def ping() -> bool:
    """True if Redis answers PING or caching is disabled."""
    if not settings.CACHE_ENABLED:
        return True
    client = get_redis()
    if client is None:
        return False
    try:
        return bool(client.ping())
    except redis.RedisError:
        return False
