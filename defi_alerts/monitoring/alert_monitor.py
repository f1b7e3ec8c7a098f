"""AlertMonitor -- background evaluation loop for user alerts.

Provides:
- ``start()`` / ``stop()`` / ``is_active()`` lifecycle, idempotent and safe
  to call concurrently (state guarded by a lock)
- ``run_cycle()``: evaluates every active alert independently, with bounded
  concurrency and a per-alert timeout, and aggregates the outcomes into a
  ``CycleReport``; one alert failing never aborts the others
- ``test_alert()``: forced evaluation of a single alert, cooldown bypassed,
  errors raised to the caller

Per-alert evaluation:
    metric -> condition -> cooldown -> message -> dispatch -> last_fired_at

``last_fired_at`` is written only after a successful dispatch, so a failed
delivery is retried on the next cycle.
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable

import structlog

from defi_alerts.core.config import settings
from defi_alerts.core.enums import AlertOutcomeStatus
from defi_alerts.core.errors import OperationTimeoutError
from defi_alerts.monitoring.alert_rules import Alert, cooldown_elapsed, evaluate_condition
from defi_alerts.monitoring.alert_store import AlertStore
from defi_alerts.monitoring.metrics import MetricsProvider

if TYPE_CHECKING:
    from defi_alerts.notifications.telegram import TelegramNotifier

logger = structlog.get_logger("alert_monitor")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AlertOutcome:
    """Result of evaluating one alert."""

    alert_id: str
    status: AlertOutcomeStatus
    value: float | None = None
    error: str | None = None
    fired_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "alert_id": self.alert_id,
            "status": self.status.value,
            "value": self.value,
            "error": self.error,
            "fired_at": self.fired_at.isoformat() if self.fired_at else None,
        }


@dataclass
class CycleReport:
    """Aggregated outcomes of one evaluation cycle."""

    started_at: datetime
    finished_at: datetime | None = None
    outcomes: list[AlertOutcome] = field(default_factory=list)

    def count(self, status: AlertOutcomeStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def fired(self) -> int:
        return self.count(AlertOutcomeStatus.FIRED)

    @property
    def failed(self) -> int:
        return self.count(AlertOutcomeStatus.FAILED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "evaluated": len(self.outcomes),
            "counts": {s.value: self.count(s) for s in AlertOutcomeStatus},
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


class AlertMonitor:
    """Evaluate active alerts on a fixed interval and dispatch notifications.

    Constructed once per process and injected where needed.

    Parameters:
        store: Alert persistence; re-read every cycle.
        metrics: Source of live position metrics.
        notifier: Delivery channel (``send_to_target`` / ``format_alert_message``).
        interval_seconds: Seconds to wait after a cycle before the next one.
        alert_timeout_seconds: Deadline for evaluating a single alert.
        max_concurrency: Alerts evaluated in parallel within one cycle.
        clock: Returns the current aware UTC datetime; injectable for tests.
    """

    def __init__(
        self,
        store: AlertStore,
        metrics: MetricsProvider,
        notifier: TelegramNotifier,
        interval_seconds: float | None = None,
        alert_timeout_seconds: float | None = None,
        max_concurrency: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.metrics = metrics
        self.notifier = notifier
        self.interval_seconds = interval_seconds or settings.monitor_interval_seconds
        self.alert_timeout_seconds = (
            alert_timeout_seconds or settings.monitor_alert_timeout_seconds
        )
        self.max_concurrency = max_concurrency or settings.monitor_max_concurrency
        self._clock = clock

        self._lock = threading.Lock()
        self._running = False
        self._stop_event: asyncio.Event | None = None
        self._task: asyncio.Task | None = None
        # Cycles never overlap: each one must see the last_fired_at the previous one wrote
        self._cycle_lock = asyncio.Lock()
        self.last_report: CycleReport | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Begin the recurring cycle; no-op when already running.

        Must be called from within a running event loop. Returns the
        running state.
        """
        with self._lock:
            if self._running:
                return True
            loop = asyncio.get_running_loop()
            previous = self._task if self._task is not None and not self._task.done() else None
            self._stop_event = asyncio.Event()
            self._task = loop.create_task(self._run_loop(self._stop_event, previous))
            self._running = True
        logger.info("monitor_started", interval_seconds=self.interval_seconds)
        return True

    def stop(self) -> bool:
        """Stop scheduling cycles; an in-flight cycle is allowed to finish.

        Idempotent. Returns the running state (always False).
        """
        with self._lock:
            if not self._running:
                return False
            self._running = False
            if self._stop_event is not None:
                self._stop_event.set()
        logger.info("monitor_stopped")
        return False

    def is_active(self) -> bool:
        with self._lock:
            return self._running

    async def shutdown(self) -> None:
        """Stop and wait for the background task to exit."""
        self.stop()
        task, self._task = self._task, None
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    def status(self) -> dict[str, Any]:
        return {
            "running": self.is_active(),
            "interval_seconds": self.interval_seconds,
            "last_cycle": self.last_report.to_dict() if self.last_report else None,
        }

    async def _run_loop(
        self, stop_event: asyncio.Event, previous: asyncio.Task | None = None
    ) -> None:
        if previous is not None:
            # Restarted while a stopped loop was still finishing its cycle
            await asyncio.gather(previous, return_exceptions=True)
        while not stop_event.is_set():
            try:
                await self.run_cycle()
            except Exception:
                # Store unreachable; try again next interval
                logger.exception("cycle_failed")
            if stop_event.is_set():
                break
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    async def run_cycle(self) -> CycleReport:
        """Evaluate every active alert once and return the cycle report.

        A cycle requested while another is running waits for it to finish.
        """
        async with self._cycle_lock:
            return await self._run_cycle_locked()

    async def _run_cycle_locked(self) -> CycleReport:
        report = CycleReport(started_at=self._clock())
        alerts = await self.store.list_active()
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def guarded(alert: Alert) -> AlertOutcome:
            async with semaphore:
                try:
                    return await asyncio.wait_for(
                        self.evaluate_alert(alert), timeout=self.alert_timeout_seconds
                    )
                except asyncio.TimeoutError:
                    error = f"evaluation timed out after {self.alert_timeout_seconds:g}s"
                except Exception as exc:
                    error = str(exc) or type(exc).__name__
                logger.warning(
                    "alert_evaluation_failed",
                    alert_id=alert.id,
                    owner_id=alert.owner_id,
                    error=error,
                )
                return AlertOutcome(
                    alert_id=alert.id, status=AlertOutcomeStatus.FAILED, error=error
                )

        report.outcomes = list(await asyncio.gather(*(guarded(a) for a in alerts)))
        report.finished_at = self._clock()
        self.last_report = report
        logger.info(
            "cycle_complete",
            evaluated=len(report.outcomes),
            fired=report.fired,
            failed=report.failed,
        )
        return report

    async def evaluate_alert(self, alert: Alert, force: bool = False) -> AlertOutcome:
        """Evaluate *alert* and dispatch when it should fire.

        With ``force`` the cooldown is bypassed and ``last_fired_at`` is
        left untouched (manual test). Errors propagate to the caller.
        """
        value = await self.metrics.get_metric(alert.owner_id, alert.widget_type)
        if not evaluate_condition(value, alert.condition, alert.threshold):
            return AlertOutcome(
                alert_id=alert.id, status=AlertOutcomeStatus.NOT_TRIGGERED, value=value
            )

        now = self._clock()
        if not force and not cooldown_elapsed(
            alert.last_fired_at, alert.cooldown_minutes, now
        ):
            logger.debug("alert_in_cooldown", alert_id=alert.id, value=value)
            return AlertOutcome(
                alert_id=alert.id, status=AlertOutcomeStatus.COOLDOWN, value=value
            )

        message = self.notifier.format_alert_message(alert, value, now)
        await self.notifier.send_to_target(alert.notify_target, message)
        logger.info(
            "alert_fired",
            alert_id=alert.id,
            owner_id=alert.owner_id,
            widget_type=alert.widget_type.value,
            value=value,
            forced=force,
        )

        outcome = AlertOutcome(
            alert_id=alert.id, status=AlertOutcomeStatus.FIRED, value=value, fired_at=now
        )
        if not force:
            try:
                await self.store.update_last_fired(alert.id, now)
            except Exception as exc:
                # Delivered, but the next cycle may notify again
                logger.error("last_fired_update_failed", alert_id=alert.id, error=str(exc))
                outcome.error = f"last_fired_at not recorded: {exc}"
        return outcome

    async def test_alert(self, alert_id: str, owner_id: str | None = None) -> AlertOutcome:
        """Evaluate one alert now, bypassing cooldown.

        Raises:
            NotFoundError: alert missing or not owned by *owner_id*.
            MetricUnavailableError: metric could not be read.
            DispatchError: delivery failed.
            OperationTimeoutError: evaluation exceeded the per-alert deadline.
        """
        alert = await self.store.get(alert_id, owner_id)
        try:
            outcome = await asyncio.wait_for(
                self.evaluate_alert(alert, force=True), timeout=self.alert_timeout_seconds
            )
        except asyncio.TimeoutError as exc:
            raise OperationTimeoutError(
                f"Alert test timed out after {self.alert_timeout_seconds:g}s"
            ) from exc
        logger.info("alert_tested", alert_id=alert_id, status=outcome.status.value)
        return outcome
