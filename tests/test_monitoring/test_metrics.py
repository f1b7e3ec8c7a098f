"""Tests for metrics providers.

Uses respx to mock the external metrics service and verify value parsing
and the MetricUnavailableError mapping.
"""

from __future__ import annotations

import pytest
import respx

from defi_alerts.core.enums import WidgetType
from defi_alerts.core.errors import MetricUnavailableError
from defi_alerts.monitoring.metrics import HttpMetricsProvider, StaticMetricsProvider

METRICS_URL = "https://metrics.test"


# ---------------------------------------------------------------------------
# StaticMetricsProvider
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_static_owner_value_overrides_wildcard():
    provider = StaticMetricsProvider()
    provider.set_metric(WidgetType.LTV, 0.5)
    provider.set_metric(WidgetType.LTV, 0.7, owner_id="owner-1")

    assert await provider.get_metric("owner-1", WidgetType.LTV) == 0.7
    assert await provider.get_metric("owner-2", WidgetType.LTV) == 0.5


@pytest.mark.asyncio
async def test_static_missing_value_unavailable():
    provider = StaticMetricsProvider()
    provider.set_metric(WidgetType.NET_APY, 0.04)
    provider.clear_metric(WidgetType.NET_APY)
    with pytest.raises(MetricUnavailableError):
        await provider.get_metric("owner-1", WidgetType.NET_APY)


# ---------------------------------------------------------------------------
# HttpMetricsProvider
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_http_provider_reads_value():
    with respx.mock(base_url=METRICS_URL) as mock:
        route = mock.get("/owners/owner-1/metrics/healthFactor").respond(
            200, json={"value": 1.42}
        )
        async with HttpMetricsProvider(base_url=METRICS_URL) as provider:
            value = await provider.get_metric("owner-1", WidgetType.HEALTH_FACTOR)

    assert value == pytest.approx(1.42)
    assert route.call_count == 1


@pytest.mark.asyncio
async def test_http_provider_not_found_is_unavailable():
    with respx.mock(base_url=METRICS_URL) as mock:
        mock.get("/owners/owner-1/metrics/ltv").respond(404, json={"detail": "no position"})
        async with HttpMetricsProvider(base_url=METRICS_URL) as provider:
            with pytest.raises(MetricUnavailableError, match="HTTP 404"):
                await provider.get_metric("owner-1", WidgetType.LTV)


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{"value": None}, {"value": "1.2"}, {"other": 1}, [1.2]])
async def test_http_provider_rejects_unusable_payload(payload):
    with respx.mock(base_url=METRICS_URL) as mock:
        mock.get("/owners/owner-1/metrics/netAPY").respond(200, json=payload)
        async with HttpMetricsProvider(base_url=METRICS_URL) as provider:
            with pytest.raises(MetricUnavailableError, match="no usable"):
                await provider.get_metric("owner-1", WidgetType.NET_APY)


@pytest.mark.asyncio
async def test_http_provider_without_url_is_unavailable():
    async with HttpMetricsProvider(base_url="") as provider:
        with pytest.raises(MetricUnavailableError, match="not configured"):
            await provider.get_metric("owner-1", WidgetType.LTV)
