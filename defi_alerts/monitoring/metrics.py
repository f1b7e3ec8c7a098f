"""Position metrics providers consumed by the alert monitor.

The monitor never computes health factor, LTV or APY itself; it reads them
through the narrow ``MetricsProvider`` interface:

    await provider.get_metric(owner_id, WidgetType.HEALTH_FACTOR) -> float

Implementations:
- ``StaticMetricsProvider``: values set in-process (tests, demos)
- ``HttpMetricsProvider``: reads from an external metrics service at
  ``GET {metrics_service_url}/owners/{owner_id}/metrics/{widget_type}``
  returning ``{"value": <number>}``
"""

from __future__ import annotations

import abc
import math
import threading

import httpx

from defi_alerts.connectors.base import BaseConnector
from defi_alerts.core.config import settings
from defi_alerts.core.enums import WidgetType
from defi_alerts.core.errors import MetricUnavailableError


class MetricsProvider(abc.ABC):
    """Reads the live value of one position metric for one owner."""

    @abc.abstractmethod
    async def get_metric(self, owner_id: str, widget_type: WidgetType) -> float:
        """Return the current metric value.

        Raises:
            MetricUnavailableError: if the position cannot be read.
        """
        ...


class StaticMetricsProvider(MetricsProvider):
    """In-process metric values keyed by ``(owner_id, widget_type)``.

    A value registered with ``owner_id=None`` applies to every owner.
    """

    def __init__(self, values: dict[tuple[str | None, WidgetType], float] | None = None) -> None:
        self._values: dict[tuple[str | None, WidgetType], float] = dict(values or {})
        self._lock = threading.Lock()

    def set_metric(self, widget_type: WidgetType, value: float, owner_id: str | None = None) -> None:
        with self._lock:
            self._values[(owner_id, widget_type)] = value

    def clear_metric(self, widget_type: WidgetType, owner_id: str | None = None) -> None:
        with self._lock:
            self._values.pop((owner_id, widget_type), None)

    async def get_metric(self, owner_id: str, widget_type: WidgetType) -> float:
        with self._lock:
            value = self._values.get((owner_id, widget_type))
            if value is None:
                value = self._values.get((None, widget_type))
        if value is None:
            raise MetricUnavailableError(
                f"No {widget_type.value} value available for owner {owner_id}"
            )
        return value


class HttpMetricsProvider(BaseConnector, MetricsProvider):
    """Metrics provider backed by an external HTTP metrics service."""

    SOURCE_NAME: str = "METRICS"
    MAX_RETRIES: int = 2

    def __init__(self, base_url: str | None = None, timeout_seconds: float | None = None) -> None:
        self.BASE_URL = base_url if base_url is not None else settings.metrics_service_url
        self.TIMEOUT_SECONDS = timeout_seconds or settings.metrics_timeout_seconds
        super().__init__()

    async def get_metric(self, owner_id: str, widget_type: WidgetType) -> float:
        if not self.BASE_URL:
            raise MetricUnavailableError("Metrics service URL is not configured")
        try:
            response = await self._request(
                "GET", f"/owners/{owner_id}/metrics/{widget_type.value}"
            )
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise MetricUnavailableError(
                f"Metrics service returned HTTP {exc.response.status_code} "
                f"for {widget_type.value}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise MetricUnavailableError(
                f"Metrics service unreachable: {exc}"
            ) from exc

        value = payload.get("value") if isinstance(payload, dict) else None
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise MetricUnavailableError(
                f"Metrics service returned no usable {widget_type.value} value"
            )
        return float(value)
