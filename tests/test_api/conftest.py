"""Fixtures for API tests.

Builds a minimal FastAPI app (no DB or Redis lifespan) wired to in-process
services: InMemoryAlertStore, StaticMetricsProvider, the recording notifier,
LocalResponseCache and LocalRateLimiter. Authentication is replaced by a
fixed owner through ``dependency_overrides``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from defi_alerts.api.auth import get_current_owner
from defi_alerts.api.errors import register_exception_handlers
from defi_alerts.api.routes import alerts_api, monitoring_api, notifications_api, subgraph_api
from defi_alerts.api.services import ServiceContainer
from defi_alerts.cache.rate_limiter import LocalRateLimiter
from defi_alerts.cache.response_cache import LocalResponseCache
from defi_alerts.connectors.base import BaseConnector
from defi_alerts.connectors.subgraph import SubgraphConnector, SubgraphQueryService
from defi_alerts.core.config import settings
from defi_alerts.monitoring.alert_monitor import AlertMonitor

OWNER = "owner-1"
SUBGRAPH_ENDPOINT = "https://subgraph.test/aave-v3-ethereum"


def _make_test_app(services: ServiceContainer) -> FastAPI:
    """Build a minimal app with the v1 routers and in-process services."""

    @asynccontextmanager
    async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
        async with AsyncExitStack() as stack:
            for conn in (services.notifier, services.subgraph.connector):
                if isinstance(conn, BaseConnector):
                    await stack.enter_async_context(conn)
            app.state.services = services
            yield
            await services.monitor.shutdown()

    app = FastAPI(lifespan=_lifespan)
    register_exception_handlers(app)
    for module in (alerts_api, monitoring_api, notifications_api, subgraph_api):
        app.include_router(module.router, prefix="/api/v1")
    app.dependency_overrides[get_current_owner] = lambda: OWNER
    return app


@pytest.fixture
def api_services(store, metrics, notifier, clock) -> ServiceContainer:
    connector = SubgraphConnector(endpoints={1: SUBGRAPH_ENDPOINT}, timeout_seconds=5)
    connector.RETRY_INITIAL_WAIT = 0
    connector.RETRY_MAX_WAIT = 0
    connector.RETRY_JITTER = 0
    cache = LocalResponseCache()
    limiter = LocalRateLimiter()
    return ServiceContainer(
        store=store,
        metrics=metrics,
        notifier=notifier,
        cache=cache,
        limiter=limiter,
        subgraph=SubgraphQueryService(connector, cache, limiter, ttl_seconds=600),
        monitor=AlertMonitor(store, metrics, notifier, interval_seconds=3600, clock=clock),
    )


@pytest.fixture
def app(api_services, monkeypatch) -> FastAPI:
    # Generous quotas unless a test tightens them
    monkeypatch.setattr(settings, "rate_limit_alerts_read", 1000)
    monkeypatch.setattr(settings, "rate_limit_alerts_write", 1000)
    return _make_test_app(api_services)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c
