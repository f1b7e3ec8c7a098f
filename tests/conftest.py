"""Root pytest configuration and shared fixtures.

Provides common test fixtures used across all test modules:
- clock: mutable UTC clock for cooldown and scheduling tests
- store: empty InMemoryAlertStore
- metrics: StaticMetricsProvider with no values
- notifier: RecordingNotifier capturing every delivery
- make_alert: factory creating alerts through the store
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from defi_alerts.core.errors import TransientDispatchError
from defi_alerts.monitoring.alert_rules import Alert, build_alert_body
from defi_alerts.monitoring.alert_store import InMemoryAlertStore
from defi_alerts.monitoring.metrics import StaticMetricsProvider
from defi_alerts.notifications.telegram import DeliveryResult

START = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class MutableClock:
    """Callable clock advanced explicitly by tests."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class RecordingNotifier:
    """Stand-in for TelegramNotifier that records deliveries.

    Set ``fail_with`` to an exception instance to make every send raise it.
    """

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail_with: Exception | None = None

    def format_alert_message(self, alert: Alert, value: float, now: datetime) -> str:
        return f"[{alert.alert_name}] {build_alert_body(alert, value)}"

    async def send_to_target(self, target: str, message: str) -> DeliveryResult:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append((target, message))
        return DeliveryResult(destination=target, message_id=len(self.sent))


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def store() -> InMemoryAlertStore:
    return InMemoryAlertStore()


@pytest.fixture
def metrics() -> StaticMetricsProvider:
    return StaticMetricsProvider()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def transient_failure() -> TransientDispatchError:
    return TransientDispatchError("Telegram API returned HTTP 502", "123456")


@pytest.fixture
def make_alert(store: InMemoryAlertStore):
    """Return an async factory creating alerts in ``store``.

    Usage::

        async def test_x(make_alert):
            alert = await make_alert(threshold=1.5)
    """

    async def _make(owner_id: str = "owner-1", **overrides: Any) -> Alert:
        fields: dict[str, Any] = {
            "alert_name": "HF watch",
            "widget_type": "healthFactor",
            "condition": "less_than",
            "threshold": 1.5,
            "notify_target": "123456",
            "cooldown_minutes": 60,
        }
        fields.update(overrides)
        return await store.create(owner_id, **fields)

    return _make
