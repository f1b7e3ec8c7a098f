"""Aave subgraph connector and the cached, rate-limited query wrapper.

``SubgraphConnector`` POSTs GraphQL documents to the per-chain subgraph
endpoint and translates failures into ``UpstreamError``.

``SubgraphQueryService.execute`` is the guarded entry point used by the API:

    validate -> rate limit -> cache lookup -> fetch (bounded) -> cache store

Only successful ``data`` payloads are cached. GraphQL ``errors`` payloads,
non-2xx responses and timeouts surface as ``UpstreamError`` subclasses and
leave the cache untouched.

There is no request coalescing: two concurrent misses for the same key both
fetch upstream and both write the cache, the last write wins. This is an
accepted tradeoff of the cache, not a defect.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx
import structlog

from defi_alerts.cache.rate_limiter import RateLimiter
from defi_alerts.cache.response_cache import ResponseCache, build_cache_key
from defi_alerts.connectors.base import BaseConnector
from defi_alerts.core.config import settings
from defi_alerts.core.errors import (
    OperationTimeoutError,
    UpstreamError,
    ValidationError,
)

logger = structlog.get_logger(__name__)

SUBGRAPH_ACTION = "subgraph-query"


class SubgraphConnector(BaseConnector):
    """GraphQL client for the Aave V3 subgraphs.

    Parameters:
        endpoints: chain id -> subgraph URL. Falls back to
            ``settings.subgraph_endpoints``.
    """

    SOURCE_NAME: str = "SUBGRAPH"
    BASE_URL: str = ""
    MAX_RETRIES: int = 2
    RETRY_MAX_WAIT: float = 5.0
    RETRY_JITTER: float = 1.0

    def __init__(
        self,
        endpoints: dict[int, str] | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self.endpoints = dict(endpoints if endpoints is not None else settings.subgraph_endpoints)
        self.TIMEOUT_SECONDS = timeout_seconds or settings.upstream_timeout_seconds
        super().__init__()

    def supports(self, chain_id: int) -> bool:
        return chain_id in self.endpoints

    async def query(
        self, chain_id: int, query: str, variables: dict[str, Any] | None = None
    ) -> Any:
        """Run *query* against the subgraph for *chain_id*; return ``data``.

        Raises:
            ValidationError: chain id has no configured endpoint.
            UpstreamError: transport failure, non-2xx, or GraphQL errors.
        """
        url = self.endpoints.get(chain_id)
        if url is None:
            raise ValidationError(f"Unsupported chain id: {chain_id}")

        try:
            response = await self._request(
                "POST", url, json={"query": query, "variables": variables or {}}
            )
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            self.log.warning(
                "subgraph_http_error", chain_id=chain_id, status=exc.response.status_code
            )
            raise UpstreamError(
                f"Subgraph returned HTTP {exc.response.status_code}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            self.log.warning("subgraph_request_failed", chain_id=chain_id, error=str(exc))
            raise UpstreamError(f"Subgraph request failed: {exc}") from exc

        if not isinstance(payload, dict):
            raise UpstreamError("Subgraph returned a malformed payload")
        errors = payload.get("errors")
        if errors:
            message = "; ".join(
                str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors
            )
            self.log.warning("subgraph_graphql_error", chain_id=chain_id, errors=message)
            raise UpstreamError(f"Subgraph query failed: {message}")
        return payload.get("data")


@dataclass
class QueryResult:
    """Upstream data plus cache metadata."""

    data: Any
    from_cache: bool
    cache_key: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": self.data,
            "metadata": {
                "from_cache": self.from_cache,
                "cache_key": self.cache_key,
                "timestamp": self.timestamp.isoformat(),
            },
        }


class SubgraphQueryService:
    """Cached, rate-limited wrapper around ``SubgraphConnector``.

    Parameters:
        connector: Opened ``SubgraphConnector``.
        cache: Response cache for successful payloads.
        limiter: Rate limiter applied per caller identifier.
        ttl_seconds: Cache lifetime (default ``settings.subgraph_cache_ttl_seconds``).
        timeout_seconds: Outer deadline per fetch (default
            ``settings.upstream_timeout_seconds``).
    """

    def __init__(
        self,
        connector: SubgraphConnector,
        cache: ResponseCache,
        limiter: RateLimiter,
        ttl_seconds: int | None = None,
        timeout_seconds: float | None = None,
        max_query_length: int | None = None,
        rate_limit: int | None = None,
        window_seconds: int | None = None,
    ) -> None:
        self.connector = connector
        self.cache = cache
        self.limiter = limiter
        self.ttl_seconds = ttl_seconds or settings.subgraph_cache_ttl_seconds
        self.timeout_seconds = timeout_seconds or settings.upstream_timeout_seconds
        self.max_query_length = max_query_length or settings.subgraph_max_query_length
        self.rate_limit = rate_limit or settings.rate_limit_subgraph
        self.window_seconds = window_seconds or settings.rate_limit_window_seconds

    def validate(self, chain_id: Any, query: Any, variables: Any) -> None:
        """Reject malformed requests before they count against any quota."""
        if isinstance(chain_id, bool) or not isinstance(chain_id, int):
            raise ValidationError("chain_id must be an integer")
        if not self.connector.supports(chain_id):
            raise ValidationError(f"Unsupported chain id: {chain_id}")
        if not isinstance(query, str) or not query.strip():
            raise ValidationError("query must be a non-empty string")
        if len(query) > self.max_query_length:
            raise ValidationError(
                f"query exceeds {self.max_query_length} characters"
            )
        if variables is not None and not isinstance(variables, dict):
            raise ValidationError("variables must be an object")

    async def execute(
        self,
        chain_id: int,
        query: str,
        variables: dict[str, Any] | None,
        identifier: str | None,
    ) -> QueryResult:
        """Serve *query* from cache or upstream.

        Raises:
            ValidationError: malformed request.
            RateLimitError: caller exceeded its quota.
            OperationTimeoutError: upstream exceeded the deadline.
            UpstreamError: upstream failed or returned errors.
        """
        self.validate(chain_id, query, variables)
        await self.limiter.enforce(
            identifier, SUBGRAPH_ACTION, self.rate_limit, self.window_seconds
        )

        key = build_cache_key(chain_id, query, variables)
        cached = await self.cache.get(key)
        if cached is not None:
            logger.debug("subgraph_cache_hit", chain_id=chain_id, cache_key=key)
            return QueryResult(data=cached, from_cache=True, cache_key=key)

        try:
            data = await asyncio.wait_for(
                self.connector.query(chain_id, query, variables),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            logger.warning(
                "subgraph_timeout", chain_id=chain_id, timeout=self.timeout_seconds
            )
            raise OperationTimeoutError(
                f"Subgraph did not respond within {self.timeout_seconds:g}s"
            ) from exc

        await self.cache.set(key, data, self.ttl_seconds)
        logger.info("subgraph_fetched", chain_id=chain_id, cache_key=key)
        return QueryResult(data=data, from_cache=False, cache_key=key)
