"""Upstream guards: response cache and rate limiter.

Exports:
- ``ResponseCache`` (``RedisResponseCache``, ``LocalResponseCache``) and
  ``build_cache_key``
- ``RateLimiter`` (``RedisRateLimiter``, ``LocalRateLimiter``) and
  ``client_identifier``
"""

from defi_alerts.cache.rate_limiter import (
    LocalRateLimiter,
    RateLimiter,
    RateLimitStatus,
    RedisRateLimiter,
    client_identifier,
)
from defi_alerts.cache.response_cache import (
    LocalResponseCache,
    RedisResponseCache,
    ResponseCache,
    build_cache_key,
)

__all__ = [
    "LocalRateLimiter",
    "LocalResponseCache",
    "RateLimitStatus",
    "RateLimiter",
    "RedisRateLimiter",
    "RedisResponseCache",
    "ResponseCache",
    "build_cache_key",
    "client_identifier",
]
