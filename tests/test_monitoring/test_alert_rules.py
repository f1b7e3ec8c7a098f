"""Tests for the pure alert rules.

Covers:
- Condition evaluation, including equality boundaries
- Cooldown windows (59 vs 61 minutes, never fired, exact boundary)
- Field validation and normalization for new alerts
- Default and custom notification bodies
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from defi_alerts.core.enums import AlertCondition, WidgetType
from defi_alerts.core.errors import ValidationError
from defi_alerts.monitoring.alert_rules import (
    DEFAULT_COOLDOWN_MINUTES,
    Alert,
    build_alert_body,
    cooldown_elapsed,
    evaluate_condition,
    validate_alert_fields,
)

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def _fields(**overrides):
    fields = {
        "alert_name": "HF watch",
        "widget_type": "healthFactor",
        "condition": "less_than",
        "threshold": 1.5,
        "notify_target": "123456",
    }
    fields.update(overrides)
    return fields


# ---------------------------------------------------------------------------
# Condition evaluation
# ---------------------------------------------------------------------------
@pytest.mark.parametrize(
    "value,condition,threshold,expected",
    [
        (2.0, "greater_than", 1.5, True),
        (1.5, "greater_than", 1.5, False),
        (1.0, "greater_than", 1.5, False),
        (1.3, "less_than", 1.5, True),
        (1.5, "less_than", 1.5, False),
        (1.7, "less_than", 1.5, False),
        (1.5, "equals", 1.5, True),
        (1.5001, "equals", 1.5, False),
        (-0.02, AlertCondition.LESS_THAN, 0.0, True),
    ],
)
def test_evaluate_condition(value, condition, threshold, expected):
    assert evaluate_condition(value, condition, threshold) is expected


def test_equals_has_no_tolerance():
    # 0.1 + 0.2 != 0.3 in binary floating point
    assert evaluate_condition(0.1 + 0.2, "equals", 0.3) is False


def test_unknown_condition_raises_validation_error():
    with pytest.raises(ValidationError, match="Invalid condition"):
        evaluate_condition(1.0, "between", 2.0)


# ---------------------------------------------------------------------------
# Cooldown
# ---------------------------------------------------------------------------
def test_cooldown_never_fired_is_elapsed():
    assert cooldown_elapsed(None, 60, NOW) is True


def test_cooldown_59_minutes_not_elapsed():
    assert cooldown_elapsed(NOW - timedelta(minutes=59), 60, NOW) is False


def test_cooldown_61_minutes_elapsed():
    assert cooldown_elapsed(NOW - timedelta(minutes=61), 60, NOW) is True


def test_cooldown_exact_boundary_elapsed():
    assert cooldown_elapsed(NOW - timedelta(minutes=60), 60, NOW) is True


def test_zero_cooldown_always_elapsed():
    assert cooldown_elapsed(NOW, 0, NOW) is True


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------
def test_validate_normalizes_fields():
    draft = validate_alert_fields(
        **_fields(alert_name="  HF watch  ", notify_target="@alice", custom_message="  ")
    )
    assert draft.alert_name == "HF watch"
    assert draft.notify_target == "alice"
    assert draft.custom_message is None
    assert draft.widget_type is WidgetType.HEALTH_FACTOR
    assert draft.condition is AlertCondition.LESS_THAN
    assert draft.cooldown_minutes == DEFAULT_COOLDOWN_MINUTES


@pytest.mark.parametrize(
    "overrides,match",
    [
        ({"widget_type": "collateral"}, "Invalid widget type"),
        ({"condition": "gte"}, "Invalid condition"),
        ({"alert_name": ""}, "alert_name is required"),
        ({"alert_name": "x" * 101}, "alert_name exceeds"),
        ({"threshold": "abc"}, "threshold must be a number"),
        ({"threshold": float("nan")}, "finite"),
        ({"threshold": True}, "threshold must be a number"),
        ({"notify_target": "@"}, "notify_target is required"),
        ({"custom_message": "m" * 501}, "custom_message exceeds"),
        ({"cooldown_minutes": -1}, "cooldown_minutes must be >= 0"),
        ({"cooldown_minutes": 1.5}, "cooldown_minutes must be an integer"),
    ],
)
def test_validate_rejects_bad_input(overrides, match):
    with pytest.raises(ValidationError, match=match):
        validate_alert_fields(**_fields(**overrides))


def test_widget_type_is_case_sensitive():
    with pytest.raises(ValidationError):
        validate_alert_fields(**_fields(widget_type="healthfactor"))


# ---------------------------------------------------------------------------
# Notification body
# ---------------------------------------------------------------------------
def _alert(**overrides) -> Alert:
    draft = validate_alert_fields(**_fields(**overrides))
    return draft.to_alert("a-1", "owner-1", NOW)


def test_default_body_names_widget_condition_and_threshold():
    body = build_alert_body(_alert(), 1.3)
    assert body == "Health Factor is 1.3000, less than your threshold of 1.5."


def test_custom_message_replaces_default_body():
    alert = _alert(custom_message="Top up collateral now")
    assert build_alert_body(alert, 1.3) == "Top up collateral now"


def test_alert_to_dict_uses_wire_values():
    data = _alert(widget_type="netAPY", condition="equals").to_dict()
    assert data["widget_type"] == "netAPY"
    assert data["condition"] == "equals"
    assert data["last_fired_at"] is None
    assert data["is_active"] is True
