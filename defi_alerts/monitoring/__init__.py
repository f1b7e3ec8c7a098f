"""Monitoring package -- user alert rules, persistence and the evaluation loop.

Provides:
- AlertMonitor: Background loop that evaluates active alerts and dispatches
- Alert: Alert entity dataclass; evaluate_condition / cooldown_elapsed rules
- AlertStore: Owner-scoped persistence (in-memory and SQL implementations)
- MetricsProvider: Live position metrics consumed by the monitor
"""

from defi_alerts.monitoring.alert_monitor import AlertMonitor, AlertOutcome, CycleReport
from defi_alerts.monitoring.alert_rules import Alert, cooldown_elapsed, evaluate_condition
from defi_alerts.monitoring.alert_store import AlertStore, InMemoryAlertStore, SqlAlertStore
from defi_alerts.monitoring.metrics import (
    HttpMetricsProvider,
    MetricsProvider,
    StaticMetricsProvider,
)

__all__ = [
    "Alert",
    "AlertMonitor",
    "AlertOutcome",
    "AlertStore",
    "CycleReport",
    "HttpMetricsProvider",
    "InMemoryAlertStore",
    "MetricsProvider",
    "SqlAlertStore",
    "StaticMetricsProvider",
    "cooldown_elapsed",
    "evaluate_condition",
]
