"""Fixed-window rate limiting keyed by (identifier, action).

``enforce(identifier, action, limit, window_seconds)`` increments the
window counter and raises ``RateLimitError`` once the post-increment count
exceeds ``limit``. ``retry_after`` is the number of seconds until the
window resets.

Backends:
- ``RedisRateLimiter``: ``SET NX EX`` + ``INCR`` + ``TTL`` in one MULTI/EXEC
  transaction, so concurrent callers are serialized by Redis
- ``LocalRateLimiter``: in-process counters under a lock

If the backend is unavailable the limiter lets the request through and logs
a warning.

``client_identifier(request)`` derives a best-effort caller identity from
proxy headers; it is not authenticated.
"""

from __future__ import annotations

import abc
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

import redis.asyncio as aioredis
from starlette.requests import Request

from defi_alerts.core.errors import RateLimitError

logger = logging.getLogger(__name__)

KEY_PREFIX = "ratelimit:"
ANONYMOUS = "anonymous"


@dataclass(frozen=True)
class RateLimitStatus:
    """Counter state after a permitted request."""

    count: int
    limit: int
    reset_in: int

    @property
    def remaining(self) -> int:
        return max(self.limit - self.count, 0)


def rate_limit_key(identifier: str | None, action: str) -> str:
    return f"{KEY_PREFIX}{identifier or ANONYMOUS}:{action}"


def client_identifier(request: Request) -> str:
    """Best-effort client identity for rate limiting.

    Order: first hop of ``X-Forwarded-For``, the direct connection address,
    ``X-Real-IP``, ``CF-Connecting-IP``, then the anonymous bucket.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    for header in ("x-real-ip", "cf-connecting-ip"):
        value = request.headers.get(header, "").strip()
        if value:
            return value
    return ANONYMOUS


class RateLimiter(abc.ABC):
    """Fixed-window request throttle."""

    async def enforce(
        self, identifier: str | None, action: str, limit: int, window_seconds: int
    ) -> RateLimitStatus | None:
        """Count one request; raise ``RateLimitError`` when over *limit*.

        Returns the counter status, or ``None`` when the backend was
        unavailable and the request was let through.
        """
        key = rate_limit_key(identifier, action)
        try:
            count, reset_in = await self._increment(key, window_seconds)
        except Exception:
            logger.warning(
                "RateLimiter: backend unavailable for %s, not limiting", key, exc_info=True
            )
            return None

        if reset_in <= 0:
            reset_in = window_seconds
        if count > limit:
            logger.info("RateLimiter: %s over limit (%d > %d)", key, count, limit)
            raise RateLimitError("Too many requests", retry_after=reset_in)
        return RateLimitStatus(count=count, limit=limit, reset_in=reset_in)

    @abc.abstractmethod
    async def _increment(self, key: str, window_seconds: int) -> tuple[int, int]:
        """Atomically increment *key*; return (count, seconds until reset)."""
        ...


class RedisRateLimiter(RateLimiter):
    """Redis-backed limiter shared across processes."""

    def __init__(self, redis_client: aioredis.Redis) -> None:
        self._redis = redis_client

    async def _increment(self, key: str, window_seconds: int) -> tuple[int, int]:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.set(key, 0, ex=window_seconds, nx=True)
            pipe.incr(key)
            pipe.ttl(key)
            _, count, ttl = await pipe.execute()
        return int(count), int(ttl)


class LocalRateLimiter(RateLimiter):
    """In-process limiter; windows reset on their boundary.

    Parameters
    ----------
    clock : callable
        Monotonic seconds source; injectable for tests.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._windows: dict[str, tuple[int, float]] = {}
        self._clock = clock
        self._lock = threading.Lock()

    async def _increment(self, key: str, window_seconds: int) -> tuple[int, int]:
        with self._lock:
            now = self._clock()
            count, resets_at = self._windows.get(key, (0, 0.0))
            if now >= resets_at:
                count, resets_at = 0, now + window_seconds
            count += 1
            self._windows[key] = (count, resets_at)
            self._purge(now)
        return count, math.ceil(resets_at - now)

    def _purge(self, now: float) -> None:
        if len(self._windows) > 10_000:
            for k in [k for k, (_, r) in self._windows.items() if r <= now]:
                del self._windows[k]
