"""Alert entity and the pure rules applied to it.

Provides:
- ``Alert``: the persisted threshold alert as a plain dataclass
- ``AlertDraft`` / ``validate_alert_fields``: normalization and validation of
  owner input before an alert is created
- ``evaluate_condition``: value vs threshold comparison (no side effects)
- ``cooldown_elapsed``: whether an alert may fire again
- ``build_alert_body``: notification body (custom message or generated)
"""

from __future__ import annotations

import math
import operator
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from defi_alerts.core.enums import AlertCondition, WidgetType
from defi_alerts.core.errors import ValidationError

MAX_ALERT_NAME_LENGTH = 100
MAX_CUSTOM_MESSAGE_LENGTH = 500
MAX_NOTIFY_TARGET_LENGTH = 64
DEFAULT_COOLDOWN_MINUTES = 60


# ---------------------------------------------------------------------------
# Alert dataclass
# ---------------------------------------------------------------------------


@dataclass
class Alert:
    """A user-defined threshold alert.

    Attributes:
        id: Opaque system-assigned identifier.
        owner_id: Identity of the owning user.
        alert_name: Human-readable name, unique per owner and widget.
        widget_type: Metric watched (health factor, LTV, net APY).
        condition: Comparison applied against ``threshold``.
        threshold: Finite numeric threshold.
        notify_target: Telegram chat id or handle (without ``@``).
        custom_message: Optional override for the notification body.
        cooldown_minutes: Minimum minutes between two notifications.
        is_active: Owner toggle; inactive alerts are never evaluated.
        last_fired_at: Last successful notification (set by the monitor).
        created_at: Creation instant.
    """

    id: str
    owner_id: str
    alert_name: str
    widget_type: WidgetType
    condition: AlertCondition
    threshold: float
    notify_target: str
    custom_message: str | None = None
    cooldown_minutes: int = DEFAULT_COOLDOWN_MINUTES
    is_active: bool = True
    last_fired_at: datetime | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "alert_name": self.alert_name,
            "widget_type": self.widget_type.value,
            "condition": self.condition.value,
            "threshold": self.threshold,
            "notify_target": self.notify_target,
            "custom_message": self.custom_message,
            "cooldown_minutes": self.cooldown_minutes,
            "is_active": self.is_active,
            "last_fired_at": (
                self.last_fired_at.isoformat() if self.last_fired_at else None
            ),
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class AlertDraft:
    """Validated, normalized fields for a new alert."""

    alert_name: str
    widget_type: WidgetType
    condition: AlertCondition
    threshold: float
    notify_target: str
    custom_message: str | None = None
    cooldown_minutes: int = DEFAULT_COOLDOWN_MINUTES

    def to_alert(self, alert_id: str, owner_id: str, created_at: datetime) -> Alert:
        return Alert(
            id=alert_id,
            owner_id=owner_id,
            alert_name=self.alert_name,
            widget_type=self.widget_type,
            condition=self.condition,
            threshold=self.threshold,
            notify_target=self.notify_target,
            custom_message=self.custom_message,
            cooldown_minutes=self.cooldown_minutes,
            created_at=created_at,
        )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def parse_widget_type(value: Any) -> WidgetType:
    """Return the WidgetType for *value*; unknown values raise ValidationError."""
    if isinstance(value, WidgetType):
        return value
    try:
        return WidgetType(str(value).strip())
    except ValueError:
        allowed = ", ".join(w.value for w in WidgetType)
        raise ValidationError(
            f"Invalid widget type {value!r} (expected one of: {allowed})"
        ) from None


def parse_condition(value: Any) -> AlertCondition:
    """Return the AlertCondition for *value*; unknown values raise ValidationError."""
    if isinstance(value, AlertCondition):
        return value
    try:
        return AlertCondition(str(value).strip())
    except ValueError:
        allowed = ", ".join(c.value for c in AlertCondition)
        raise ValidationError(
            f"Invalid condition {value!r} (expected one of: {allowed})"
        ) from None


def validate_alert_fields(
    *,
    alert_name: Any,
    widget_type: Any,
    condition: Any,
    threshold: Any,
    notify_target: Any,
    custom_message: Any = None,
    cooldown_minutes: Any = None,
) -> AlertDraft:
    """Normalize and validate owner input for a new alert.

    Strings are trimmed, a leading ``@`` is stripped from the notify target,
    and enum values must match exactly.

    Raises:
        ValidationError: on any missing or malformed field.
    """
    name = alert_name.strip() if isinstance(alert_name, str) else ""
    if not name:
        raise ValidationError("alert_name is required")
    if len(name) > MAX_ALERT_NAME_LENGTH:
        raise ValidationError(
            f"alert_name exceeds {MAX_ALERT_NAME_LENGTH} characters"
        )

    if isinstance(threshold, bool):
        raise ValidationError("threshold must be a number")
    try:
        threshold_value = float(threshold)
    except (TypeError, ValueError):
        raise ValidationError("threshold must be a number") from None
    if not math.isfinite(threshold_value):
        raise ValidationError("threshold must be a finite number")

    target = notify_target.strip().lstrip("@") if isinstance(notify_target, str) else ""
    if not target:
        raise ValidationError("notify_target is required")
    if len(target) > MAX_NOTIFY_TARGET_LENGTH:
        raise ValidationError("notify_target is too long")

    message: str | None = None
    if custom_message is not None:
        if not isinstance(custom_message, str):
            raise ValidationError("custom_message must be a string")
        message = custom_message.strip() or None
        if message and len(message) > MAX_CUSTOM_MESSAGE_LENGTH:
            raise ValidationError(
                f"custom_message exceeds {MAX_CUSTOM_MESSAGE_LENGTH} characters"
            )

    if cooldown_minutes is None:
        cooldown = DEFAULT_COOLDOWN_MINUTES
    elif isinstance(cooldown_minutes, bool) or not isinstance(cooldown_minutes, int):
        raise ValidationError("cooldown_minutes must be an integer")
    else:
        cooldown = cooldown_minutes
    if cooldown < 0:
        raise ValidationError("cooldown_minutes must be >= 0")

    return AlertDraft(
        alert_name=name,
        widget_type=parse_widget_type(widget_type),
        condition=parse_condition(condition),
        threshold=threshold_value,
        notify_target=target,
        custom_message=message,
        cooldown_minutes=cooldown,
    )


# ---------------------------------------------------------------------------
# Condition evaluation
# ---------------------------------------------------------------------------

# Exact comparisons; ``equals`` has no epsilon tolerance.
_COMPARATORS: dict[AlertCondition, Callable[[float, float], bool]] = {
    AlertCondition.GREATER_THAN: operator.gt,
    AlertCondition.LESS_THAN: operator.lt,
    AlertCondition.EQUALS: operator.eq,
}

assert set(_COMPARATORS) == set(AlertCondition), "every condition needs a comparator"


def evaluate_condition(value: float, condition: Any, threshold: float) -> bool:
    """Return ``True`` when *value* satisfies *condition* against *threshold*.

    Raises:
        ValidationError: if *condition* is not a known AlertCondition.
    """
    return _COMPARATORS[parse_condition(condition)](value, threshold)


# ---------------------------------------------------------------------------
# Cooldown
# ---------------------------------------------------------------------------


def cooldown_elapsed(
    last_fired_at: datetime | None, cooldown_minutes: int, now: datetime
) -> bool:
    """Return ``True`` when the alert may fire again at *now*."""
    if last_fired_at is None:
        return True
    return now - last_fired_at >= timedelta(minutes=cooldown_minutes)


# ---------------------------------------------------------------------------
# Notification body
# ---------------------------------------------------------------------------


def build_alert_body(alert: Alert, value: float) -> str:
    """Return the custom message, or a generated description of the breach."""
    if alert.custom_message:
        return alert.custom_message
    return (
        f"{alert.widget_type.display_name} is {value:.4f}, "
        f"{alert.condition.label} your threshold of {alert.threshold:g}."
    )
