"""Base connector infrastructure for every outbound HTTP integration.

Provides the BaseConnector class with:
- Async HTTP client via httpx with connection pooling
- Retry with exponential backoff + jitter via tenacity (transient failures only)
- Concurrency cap via asyncio.Semaphore
- Structured logging via structlog

Used by the Telegram notifier, the subgraph connector and the HTTP metrics
provider. Subclasses translate ``httpx`` failures into the service error
taxonomy in ``defi_alerts.core.errors``.
"""

import asyncio
import inspect
from typing import Any

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from defi_alerts.core.errors import AlertServiceError


class ConnectorError(AlertServiceError):
    """Raised when a connector is used outside its client lifecycle."""


def is_transient_http_error(exc: BaseException) -> bool:
    """True for failures worth retrying: transport errors, timeouts, 429 and 5xx."""
    if isinstance(exc, (httpx.TransportError, httpx.TimeoutException)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


class BaseConnector:
    """Base class for outbound HTTP connectors.

    Subclasses SHOULD override:
        SOURCE_NAME: str - identifier used in logs (e.g., "TELEGRAM")
        BASE_URL: str - base API URL

    Subclasses MAY override:
        MAX_CONCURRENCY: int - max in-flight requests (default 5)
        MAX_RETRIES: int - attempts on transient failure (default 3)
        TIMEOUT_SECONDS: float - HTTP timeout per request (default 30.0)
        RETRY_INITIAL_WAIT / RETRY_MAX_WAIT / RETRY_JITTER: backoff shape

    Usage::

        async with MyConnector() as conn:
            response = await conn._request("GET", "/path")
    """

    SOURCE_NAME: str = ""
    BASE_URL: str = ""

    MAX_CONCURRENCY: int = 5
    MAX_RETRIES: int = 3
    TIMEOUT_SECONDS: float = 30.0
    RETRY_INITIAL_WAIT: float = 1.0
    RETRY_MAX_WAIT: float = 30.0
    RETRY_JITTER: float = 5.0

    def __init__(self) -> None:
        self._client: httpx.AsyncClient | None = None
        self._semaphore = asyncio.Semaphore(self.MAX_CONCURRENCY)
        self.log = structlog.get_logger().bind(connector=self.SOURCE_NAME)

    async def __aenter__(self) -> "BaseConnector":
        await self.open()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def open(self) -> None:
        """Create the httpx async client if it is not already open."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.BASE_URL,
                timeout=httpx.Timeout(self.TIMEOUT_SECONDS),
                limits=httpx.Limits(
                    max_connections=10,
                    max_keepalive_connections=5,
                ),
            )

    async def aclose(self) -> None:
        """Close the httpx async client if open."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Return the active httpx client.

        Raises:
            ConnectorError: If the client has not been opened.
        """
        if self._client is None:
            raise ConnectorError(
                f"{self.SOURCE_NAME}: HTTP client not initialized. "
                "Use 'async with connector:' or call open() first."
            )
        return self._client

    async def _request(
        self, method: str, url: str, **kwargs: Any
    ) -> httpx.Response:
        """Concurrency-limited HTTP request with retry.

        Raises:
            httpx.HTTPStatusError: non-2xx response (after retries for 429/5xx).
            httpx.TransportError: network failure after retries.
        """
        async with self._semaphore:
            return await self._request_with_retry(method, url, **kwargs)

    async def _request_with_retry(
        self, method: str, url: str, **kwargs: Any
    ) -> httpx.Response:
        """Execute an HTTP request with tenacity retry logic.

        Uses AsyncRetrying so that instance attributes (MAX_RETRIES and the
        wait shape) are read at call time rather than decoration time.
        Client errors other than 429 fail on the first attempt.
        """
        async for attempt in AsyncRetrying(
            retry=retry_if_exception(is_transient_http_error),
            stop=stop_after_attempt(self.MAX_RETRIES),
            wait=wait_exponential_jitter(
                initial=self.RETRY_INITIAL_WAIT,
                max=self.RETRY_MAX_WAIT,
                jitter=self.RETRY_JITTER,
            ),
            reraise=True,
        ):
            with attempt:
                self.log.debug(
                    "http_request",
                    method=method,
                    url=url,
                    attempt=attempt.retry_state.attempt_number,
                )
                response = self.client.request(method, url, **kwargs)
                if inspect.isawaitable(response):
                    response = await response
                response.raise_for_status()
                return response

        raise ConnectorError(f"{self.SOURCE_NAME}: Request failed after retries")  # pragma: no cover
