"""Process-wide service wiring.

``open_services()`` builds every long-lived collaborator once (store,
metrics provider, notifier, cache, limiter, subgraph service and the alert
monitor) and closes them on exit. The application lifespan stores the
resulting ``ServiceContainer`` on ``app.state.services``; route handlers
receive it through the dependencies in ``defi_alerts.api.deps``.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass

from defi_alerts.cache.rate_limiter import RateLimiter, RedisRateLimiter
from defi_alerts.cache.response_cache import RedisResponseCache, ResponseCache
from defi_alerts.connectors.base import BaseConnector
from defi_alerts.connectors.subgraph import SubgraphConnector, SubgraphQueryService
from defi_alerts.core.config import settings
from defi_alerts.core.database import async_session_factory
from defi_alerts.core.redis import get_redis
from defi_alerts.monitoring.alert_monitor import AlertMonitor
from defi_alerts.monitoring.alert_store import AlertStore, SqlAlertStore
from defi_alerts.monitoring.metrics import (
    HttpMetricsProvider,
    MetricsProvider,
    StaticMetricsProvider,
)
from defi_alerts.notifications.telegram import TelegramNotifier

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    store: AlertStore
    metrics: MetricsProvider
    notifier: TelegramNotifier
    cache: ResponseCache
    limiter: RateLimiter
    subgraph: SubgraphQueryService
    monitor: AlertMonitor


@asynccontextmanager
async def open_services() -> AsyncIterator[ServiceContainer]:
    """Build the production service graph; close connectors on exit."""
    async with AsyncExitStack() as stack:
        redis = await get_redis()
        cache = RedisResponseCache(redis)
        limiter = RedisRateLimiter(redis)

        if settings.metrics_service_url:
            metrics: MetricsProvider = HttpMetricsProvider()
        else:
            logger.warning("METRICS_SERVICE_URL not set; alerts will report metrics unavailable")
            metrics = StaticMetricsProvider()

        notifier = TelegramNotifier()
        if not notifier.enabled:
            logger.warning("TELEGRAM_BOT_TOKEN not set; notifications are disabled")
        connector = SubgraphConnector()
        for conn in (notifier, connector, metrics):
            if isinstance(conn, BaseConnector):
                await stack.enter_async_context(conn)

        store = SqlAlertStore(async_session_factory)
        monitor = AlertMonitor(store, metrics, notifier)
        services = ServiceContainer(
            store=store,
            metrics=metrics,
            notifier=notifier,
            cache=cache,
            limiter=limiter,
            subgraph=SubgraphQueryService(connector, cache, limiter),
            monitor=monitor,
        )
        try:
            yield services
        finally:
            await monitor.shutdown()
