"""
Active-deployment cache: two-tier (in-process + Redis).

Caches, per stage, the deployed revision id and its resolved snapshot so
request handling does not hit the database. ``deploy`` invalidates the
entry; other workers pick the new deployment up within the TTLs.
"""

import json
import logging
import threading
import time
from typing import Any

import redis

from streamgate.core.config import settings
from streamgate.core.redis_client import get_redis

_LOG = logging.getLogger(__name__)
_KEY_PREFIX = "streamgate:active:"

# In-process L1 cache: {stage: (entry, expires_at_monotonic)}
_LOCAL_CACHE: dict[str, tuple[dict[str, Any], float]] = {}
_LOCAL_LOCK = threading.Lock()
_LOCAL_TTL = 5.0  # short TTL to stay fresh while avoiding Redis on every request


def _cache_key(stage: str) -> str:
    return f"{_KEY_PREFIX}{stage}"


def _local_get(stage: str) -> dict[str, Any] | None:
    entry = _LOCAL_CACHE.get(stage)
    if entry is None:
        return None
    value, expires_at = entry
    if time.monotonic() > expires_at:
        return None
    return value


def _local_set(stage: str, value: dict[str, Any]) -> None:
    with _LOCAL_LOCK:
        _LOCAL_CACHE[stage] = (value, time.monotonic() + _LOCAL_TTL)


def get_active_entry(stage: str) -> dict[str, Any] | None:
    """
    Get cached {"revision_id", "snapshot"} for *stage*: L1 in-process, then L2 Redis.
    Returns None on miss.
    """
    local = _local_get(stage)
    if local is not None:
        return local

    r = get_redis()
    if r is None:
        return None
    try:
        raw = r.get(_cache_key(stage))
        if raw is None:
            return None
        value = json.loads(raw)
        _local_set(stage, value)
        return value
    except (redis.RedisError, json.JSONDecodeError) as e:
        _LOG.debug("Cache get failed for stage %s: %s", stage, e)
        return None


def set_active_entry(stage: str, value: dict[str, Any]) -> None:
    """Store the active entry in L1 + L2 cache with TTL."""
    _local_set(stage, value)

    r = get_redis()
    if r is None:
        return
    try:
        ttl = max(1, settings.CONFIG_CACHE_TTL_SECONDS)
        r.setex(_cache_key(stage), ttl, json.dumps(value, default=str))
    except redis.RedisError as e:
        _LOG.debug("Cache set failed for stage %s: %s", stage, e)


def invalidate_active_entry(stage: str | None = None) -> None:
    """Drop the cached entry for *stage* (all stages when None)."""
    with _LOCAL_LOCK:
        if stage is None:
            _LOCAL_CACHE.clear()
        else:
            _LOCAL_CACHE.pop(stage, None)

    r = get_redis()
    if r is None:
        return
    try:
        if stage is None:
            keys = list(r.scan_iter(f"{_KEY_PREFIX}*"))
            if keys:
                r.delete(*keys)
        else:
            r.delete(_cache_key(stage))
    except redis.RedisError as e:
        _LOG.debug("Cache invalidate failed for stage %s: %s", stage, e)
