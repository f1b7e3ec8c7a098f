"""Time-boxed response cache for upstream queries.

Avoids redundant upstream fetches for identical requests within a TTL.
Two interchangeable backends:

- ``RedisResponseCache``: shared across processes, JSON values with ``EX``
- ``LocalResponseCache``: in-process dict with monotonic expiry and a size cap

Key derivation (``build_cache_key``) is deterministic in (scope, sub-scope,
query text, variables). The request fingerprint is shortened to 16 hex
chars of SHA-256; this is a shortening hash, not a collision-proof
identity, and two distinct requests sharing a digest would share an entry.

Backend failures never propagate: reads degrade to a miss and writes are
dropped, both logged. Availability of upstream data takes priority over the
cache itself.

Usage::

    key = build_cache_key(chain_id, query, variables)
    data = await cache.get(key)
    if data is None:
        data = await fetch()
        await cache.set(key, data, ttl_seconds=600)
"""

from __future__ import annotations

import abc
import hashlib
import json
import logging
import threading
import time
from typing import Any, Callable

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

# Key prefix for upstream market data entries
KEY_PREFIX = "aave:market:"
FINGERPRINT_LENGTH = 16


def request_fingerprint(query: str, variables: dict[str, Any] | None) -> str:
    """Shortened SHA-256 digest of the query text plus canonical variables."""
    canonical = json.dumps(
        variables or {}, sort_keys=True, separators=(",", ":"), default=str
    )
    digest = hashlib.sha256(f"{query}\n{canonical}".encode("utf-8")).hexdigest()
    return digest[:FINGERPRINT_LENGTH]


def build_cache_key(
    scope: Any,
    query: str,
    variables: dict[str, Any] | None = None,
    sub_scope: str = "subgraph",
) -> str:
    """Return the cache key for an upstream request.

    Identical (scope, sub_scope, query, variables) always map to the same
    key; variable ordering does not matter.
    """
    return f"{KEY_PREFIX}{scope}:{sub_scope}:{request_fingerprint(query, variables)}"


class ResponseCache(abc.ABC):
    """TTL key-value cache. ``get`` returns ``None`` on a miss."""

    @abc.abstractmethod
    async def get(self, key: str) -> Any | None:
        ...

    @abc.abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        ...

    @abc.abstractmethod
    async def invalidate(self, key: str) -> None:
        ...


class RedisResponseCache(ResponseCache):
    """Redis-backed response cache.

    Parameters
    ----------
    redis_client : redis.asyncio.Redis
        An async Redis client instance (from ``defi_alerts.core.redis.get_redis``).
    """

    def __init__(self, redis_client: aioredis.Redis) -> None:
        self._redis = redis_client

    async def get(self, key: str) -> Any | None:
        """GET a JSON-serialized value. Returns None on miss or error."""
        try:
            raw = await self._redis.get(key)
            if raw is None:
                logger.debug("ResponseCache MISS: %s", key)
                return None
            logger.debug("ResponseCache HIT: %s", key)
            return json.loads(raw)
        except Exception:
            logger.warning("ResponseCache: GET failed for %s, treating as miss", key, exc_info=True)
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """SET a JSON-serialized value with EX (seconds); overwrites."""
        if value is None:
            return
        try:
            raw = json.dumps(value, default=str)
            await self._redis.set(key, raw, ex=max(int(ttl_seconds), 1))
            logger.debug("ResponseCache SET: %s (ttl=%ds)", key, ttl_seconds)
        except Exception:
            logger.warning("ResponseCache: SET failed for %s", key, exc_info=True)

    async def invalidate(self, key: str) -> None:
        try:
            await self._redis.delete(key)
        except Exception:
            logger.warning("ResponseCache: DELETE failed for %s", key, exc_info=True)


class LocalResponseCache(ResponseCache):
    """In-process response cache.

    Entries expire on read once their deadline passes. When ``max_entries``
    is reached, expired entries are purged first and then the entry closest
    to expiry is evicted.

    Parameters
    ----------
    max_entries : int
        Upper bound on stored entries.
    clock : callable
        Monotonic seconds source; injectable for tests.
    """

    def __init__(
        self,
        max_entries: int = 200,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: dict[str, tuple[Any, float]] = {}
        self._max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()

    async def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                logger.debug("LocalResponseCache MISS: %s", key)
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                logger.debug("LocalResponseCache EXPIRED: %s", key)
                return None
            logger.debug("LocalResponseCache HIT: %s", key)
            return value

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        if value is None:
            return
        with self._lock:
            if key not in self._entries and len(self._entries) >= self._max_entries:
                self._evict()
            self._entries[key] = (value, self._clock() + ttl_seconds)

    async def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict[str, int]:
        """Entry counts split by validity."""
        now = self._clock()
        with self._lock:
            valid = sum(1 for _, exp in self._entries.values() if exp > now)
            total = len(self._entries)
        return {
            "total_entries": total,
            "valid_entries": valid,
            "expired_entries": total - valid,
            "max_entries": self._max_entries,
        }

    def _evict(self) -> None:
        now = self._clock()
        expired = [k for k, (_, exp) in self._entries.items() if exp <= now]
        for k in expired:
            del self._entries[k]
        if len(self._entries) >= self._max_entries:
            soonest = min(self._entries, key=lambda k: self._entries[k][1])
            del self._entries[soonest]
        logger.debug("LocalResponseCache: evicted %d expired entries", len(expired))
