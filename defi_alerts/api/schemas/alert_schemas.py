"""Pydantic v2 request schemas for the alerts, notifications and subgraph APIs.

Enum fields and bounds are validated by the service layer so that
malformed values surface as 400 responses with a readable message.
Request bodies accept both snake_case and camelCase keys.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Request(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateAlertRequest(_Request):
    """Request body for POST /alerts."""

    alert_name: str
    widget_type: str = Field(..., description="healthFactor, ltv or netAPY")
    condition: str = Field(..., description="greater_than, less_than or equals")
    threshold: float
    notify_target: str = Field(..., description="Telegram chat id or @handle")
    custom_message: Optional[str] = None
    cooldown_minutes: Optional[int] = None


class UpdateAlertRequest(_Request):
    """Request body for PATCH /alerts/{id}."""

    is_active: bool


class SubgraphQueryRequest(_Request):
    """Request body for POST /aave/subgraph."""

    chain_id: int
    query: str
    variables: Any = None


class TestNotificationRequest(_Request):
    """Request body for POST /notifications/test."""

    destination: str = Field(..., min_length=1)
    message: str = Field("Test notification from DeFi Alerts", max_length=4096)
