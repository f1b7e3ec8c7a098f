"""Tests for AlertMonitor.

Covers:
- Fire / cooldown / re-fire scenario on a virtual clock
- Failure isolation within a cycle (metric errors, timeouts, dispatch errors)
- last_fired_at untouched on dispatch failure
- Manual test (cooldown bypass, NotFound, no last_fired_at update)
- start/stop idempotence and stop during an in-flight cycle
"""

from __future__ import annotations

import asyncio

import pytest

from defi_alerts.core.enums import AlertOutcomeStatus, WidgetType
from defi_alerts.core.errors import DispatchError, NotFoundError
from defi_alerts.monitoring.alert_monitor import AlertMonitor


@pytest.fixture
def monitor(store, metrics, notifier, clock) -> AlertMonitor:
    return AlertMonitor(
        store,
        metrics,
        notifier,
        interval_seconds=0.01,
        alert_timeout_seconds=1.0,
        max_concurrency=4,
        clock=clock,
    )


# ---------------------------------------------------------------------------
# Cycle evaluation
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_fire_cooldown_refire_scenario(monitor, store, metrics, notifier, clock, make_alert):
    alert = await make_alert(threshold=1.5, cooldown_minutes=60)

    metrics.set_metric(WidgetType.HEALTH_FACTOR, 1.3)
    report = await monitor.run_cycle()
    assert report.outcomes[0].status == AlertOutcomeStatus.FIRED
    assert len(notifier.sent) == 1
    assert (await store.get(alert.id)).last_fired_at == clock.now

    report = await monitor.run_cycle()
    assert report.outcomes[0].status == AlertOutcomeStatus.COOLDOWN
    assert len(notifier.sent) == 1

    clock.advance(minutes=61)
    metrics.set_metric(WidgetType.HEALTH_FACTOR, 1.2)
    report = await monitor.run_cycle()
    assert report.outcomes[0].status == AlertOutcomeStatus.FIRED
    assert len(notifier.sent) == 2
    assert (await store.get(alert.id)).last_fired_at == clock.now


@pytest.mark.asyncio
async def test_cooldown_59_minutes_blocks_61_fires(monitor, metrics, notifier, clock, make_alert):
    await make_alert(cooldown_minutes=60)
    metrics.set_metric(WidgetType.HEALTH_FACTOR, 1.0)
    await monitor.run_cycle()

    clock.advance(minutes=59)
    assert (await monitor.run_cycle()).outcomes[0].status == AlertOutcomeStatus.COOLDOWN
    clock.advance(minutes=2)
    assert (await monitor.run_cycle()).outcomes[0].status == AlertOutcomeStatus.FIRED
    assert len(notifier.sent) == 2


@pytest.mark.asyncio
async def test_condition_not_met_sends_nothing(monitor, metrics, notifier, make_alert):
    await make_alert(threshold=1.5)
    metrics.set_metric(WidgetType.HEALTH_FACTOR, 2.4)
    report = await monitor.run_cycle()
    assert report.outcomes[0].status == AlertOutcomeStatus.NOT_TRIGGERED
    assert report.outcomes[0].value == 2.4
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_notification_uses_target_and_body(monitor, metrics, notifier, make_alert):
    await make_alert(notify_target="@alice", custom_message="Add collateral")
    metrics.set_metric(WidgetType.HEALTH_FACTOR, 1.1)
    await monitor.run_cycle()
    assert notifier.sent == [("alice", "[HF watch] Add collateral")]


@pytest.mark.asyncio
async def test_inactive_alerts_are_skipped(monitor, store, metrics, notifier, make_alert):
    alert = await make_alert()
    await store.set_active(alert.id, "owner-1", False)
    metrics.set_metric(WidgetType.HEALTH_FACTOR, 1.0)
    report = await monitor.run_cycle()
    assert report.outcomes == []
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_one_failure_does_not_abort_cycle(monitor, metrics, notifier, make_alert):
    await make_alert(alert_name="hf", owner_id="owner-1")
    await make_alert(alert_name="ltv", owner_id="owner-2", widget_type="ltv",
                     condition="greater_than", threshold=0.8)
    # Only owner-2 has an LTV value; owner-1's health factor is unavailable
    metrics.set_metric(WidgetType.LTV, 0.85, owner_id="owner-2")

    report = await monitor.run_cycle()

    statuses = sorted(o.status.value for o in report.outcomes)
    assert statuses == ["FAILED", "FIRED"]
    failed = next(o for o in report.outcomes if o.status == AlertOutcomeStatus.FAILED)
    assert "No healthFactor value" in failed.error
    assert len(notifier.sent) == 1
    assert monitor.last_report is report


@pytest.mark.asyncio
async def test_slow_alert_times_out_without_blocking_others(store, notifier, clock, make_alert):
    class SlowForOwnerOne:
        async def get_metric(self, owner_id, widget_type):
            if owner_id == "owner-1":
                await asyncio.sleep(5)
            return 1.0

    await make_alert(owner_id="owner-1")
    await make_alert(owner_id="owner-2")
    monitor = AlertMonitor(
        store, SlowForOwnerOne(), notifier, alert_timeout_seconds=0.05, clock=clock
    )

    report = await monitor.run_cycle()

    assert report.failed == 1
    assert report.fired == 1
    failed = next(o for o in report.outcomes if o.status == AlertOutcomeStatus.FAILED)
    assert "timed out" in failed.error


@pytest.mark.asyncio
async def test_dispatch_failure_leaves_last_fired_unchanged(
    monitor, store, metrics, notifier, transient_failure, make_alert
):
    alert = await make_alert()
    metrics.set_metric(WidgetType.HEALTH_FACTOR, 1.0)
    notifier.fail_with = transient_failure

    report = await monitor.run_cycle()

    assert report.outcomes[0].status == AlertOutcomeStatus.FAILED
    assert (await store.get(alert.id)).last_fired_at is None

    # Next cycle retries once delivery recovers
    notifier.fail_with = None
    report = await monitor.run_cycle()
    assert report.outcomes[0].status == AlertOutcomeStatus.FIRED


@pytest.mark.asyncio
async def test_cycle_report_counts(monitor, metrics, make_alert):
    await make_alert(alert_name="a")
    await make_alert(alert_name="b", threshold=0.5)
    metrics.set_metric(WidgetType.HEALTH_FACTOR, 1.0)
    data = (await monitor.run_cycle()).to_dict()
    assert data["evaluated"] == 2
    assert data["counts"]["FIRED"] == 1
    assert data["counts"]["NOT_TRIGGERED"] == 1


# ---------------------------------------------------------------------------
# Manual test
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_test_alert_bypasses_cooldown(monitor, store, metrics, notifier, clock, make_alert):
    alert = await make_alert()
    metrics.set_metric(WidgetType.HEALTH_FACTOR, 1.0)
    await monitor.run_cycle()
    fired_at = (await store.get(alert.id)).last_fired_at

    clock.advance(minutes=5)
    outcome = await monitor.test_alert(alert.id, "owner-1")

    assert outcome.status == AlertOutcomeStatus.FIRED
    assert len(notifier.sent) == 2
    assert (await store.get(alert.id)).last_fired_at == fired_at


@pytest.mark.asyncio
async def test_test_alert_not_triggered(monitor, metrics, notifier, make_alert):
    alert = await make_alert()
    metrics.set_metric(WidgetType.HEALTH_FACTOR, 3.0)
    outcome = await monitor.test_alert(alert.id, "owner-1")
    assert outcome.status == AlertOutcomeStatus.NOT_TRIGGERED
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_test_alert_unknown_or_foreign_is_not_found(monitor, make_alert):
    alert = await make_alert()
    with pytest.raises(NotFoundError):
        await monitor.test_alert("missing", "owner-1")
    with pytest.raises(NotFoundError):
        await monitor.test_alert(alert.id, "owner-2")


@pytest.mark.asyncio
async def test_test_alert_surfaces_dispatch_errors(
    monitor, metrics, notifier, transient_failure, make_alert
):
    alert = await make_alert()
    metrics.set_metric(WidgetType.HEALTH_FACTOR, 1.0)
    notifier.fail_with = transient_failure
    with pytest.raises(DispatchError):
        await monitor.test_alert(alert.id, "owner-1")


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_start_stop_idempotent(monitor):
    assert monitor.is_active() is False
    assert monitor.start() is True
    assert monitor.start() is True
    assert monitor.is_active() is True
    assert monitor.stop() is False
    assert monitor.stop() is False
    assert monitor.is_active() is False
    await monitor.shutdown()


@pytest.mark.asyncio
async def test_start_runs_cycles_until_stopped(monitor, metrics, make_alert):
    await make_alert()
    metrics.set_metric(WidgetType.HEALTH_FACTOR, 2.0)
    monitor.start()
    for _ in range(100):
        if monitor.last_report is not None:
            break
        await asyncio.sleep(0.01)
    await monitor.shutdown()
    assert monitor.last_report is not None
    assert monitor.status()["running"] is False


@pytest.mark.asyncio
async def test_stop_mid_cycle_finishes_and_schedules_nothing(store, notifier, clock, make_alert):
    started = asyncio.Event()
    release = asyncio.Event()
    calls = 0

    class BlockingMetrics:
        async def get_metric(self, owner_id, widget_type):
            nonlocal calls
            calls += 1
            started.set()
            await release.wait()
            return 1.0

    await make_alert()
    monitor = AlertMonitor(
        store, BlockingMetrics(), notifier,
        interval_seconds=0.01, alert_timeout_seconds=5, clock=clock,
    )
    monitor.start()
    await asyncio.wait_for(started.wait(), timeout=1)

    monitor.stop()
    assert monitor.is_active() is False

    release.set()
    await monitor.shutdown()

    # In-flight evaluation completed; no further cycle started
    assert len(notifier.sent) == 1
    assert calls == 1
    await asyncio.sleep(0.05)
    assert calls == 1


# ---------------------------------------------------------------------------
# Overlapping cycles
# ---------------------------------------------------------------------------
class SlowNotifier:
    """Notifier whose deliveries take a little while to complete."""

    def __init__(self) -> None:
        self.sent: list[str] = []

    def format_alert_message(self, alert, value, now):
        return alert.alert_name

    async def send_to_target(self, target, message):
        await asyncio.sleep(0.05)
        self.sent.append(target)


@pytest.mark.asyncio
async def test_manual_cycle_during_background_cycle_fires_once(store, metrics, clock, make_alert):
    await make_alert(cooldown_minutes=60)
    metrics.set_metric(WidgetType.HEALTH_FACTOR, 1.0)
    slow = SlowNotifier()
    monitor = AlertMonitor(store, metrics, slow, interval_seconds=3600, clock=clock)

    monitor.start()
    report = await monitor.run_cycle()
    await asyncio.sleep(0.1)
    await monitor.shutdown()

    assert slow.sent == ["123456"]
    assert report.fired + monitor.last_report.fired == 1


@pytest.mark.asyncio
async def test_restart_during_cycle_waits_for_previous_loop(store, metrics, clock, make_alert):
    await make_alert(cooldown_minutes=60)
    metrics.set_metric(WidgetType.HEALTH_FACTOR, 1.0)
    slow = SlowNotifier()
    monitor = AlertMonitor(store, metrics, slow, interval_seconds=3600, clock=clock)

    monitor.start()
    await asyncio.sleep(0.01)
    monitor.stop()
    monitor.start()
    await asyncio.sleep(0.15)
    await monitor.shutdown()

    assert slow.sent == ["123456"]
    assert monitor.last_report.outcomes[0].status == AlertOutcomeStatus.COOLDOWN


@pytest.mark.asyncio
async def test_concurrent_run_cycle_calls_are_serialized(monitor, metrics, notifier, make_alert):
    await make_alert(cooldown_minutes=60)
    metrics.set_metric(WidgetType.HEALTH_FACTOR, 1.0)

    first, second = await asyncio.gather(monitor.run_cycle(), monitor.run_cycle())

    assert first.fired + second.fired == 1
    assert len(notifier.sent) == 1


# ---------------------------------------------------------------------------
# Activation changes between cycles
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_deactivation_observed_on_next_cycle(monitor, store, metrics, notifier, clock, make_alert):
    alert = await make_alert(cooldown_minutes=0)
    metrics.set_metric(WidgetType.HEALTH_FACTOR, 1.0)

    report = await monitor.run_cycle()
    assert [o.alert_id for o in report.outcomes] == [alert.id]
    assert len(notifier.sent) == 1

    await store.set_active(alert.id, "owner-1", False)
    clock.advance(minutes=1)
    report = await monitor.run_cycle()

    assert report.outcomes == []
    assert len(notifier.sent) == 1
