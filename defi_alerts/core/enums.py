"""Shared enumerations used across the alert model, monitor and API.

All enums use the (str, Enum) mixin pattern so their values are
serializable strings, compatible with database storage and JSON output.
"""

from enum import Enum


class WidgetType(str, Enum):
    """Position metric an alert watches."""

    HEALTH_FACTOR = "healthFactor"
    LTV = "ltv"
    NET_APY = "netAPY"

    @property
    def display_name(self) -> str:
        return _WIDGET_DISPLAY_NAMES[self]


_WIDGET_DISPLAY_NAMES = {
    WidgetType.HEALTH_FACTOR: "Health Factor",
    WidgetType.LTV: "LTV Ratio",
    WidgetType.NET_APY: "Net APY",
}


class AlertCondition(str, Enum):
    """Comparison applied between the live metric and the threshold."""

    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    EQUALS = "equals"

    @property
    def label(self) -> str:
        return _CONDITION_LABELS[self]


_CONDITION_LABELS = {
    AlertCondition.GREATER_THAN: "greater than",
    AlertCondition.LESS_THAN: "less than",
    AlertCondition.EQUALS: "equal to",
}


class AlertOutcomeStatus(str, Enum):
    """Result of evaluating one alert in a cycle."""

    FIRED = "FIRED"
    NOT_TRIGGERED = "NOT_TRIGGERED"
    COOLDOWN = "COOLDOWN"
    FAILED = "FAILED"
