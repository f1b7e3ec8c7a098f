"""Alert management endpoints (owner-scoped).

Provides:
- GET    /api/v1/alerts                -- List the caller's alerts (?widget_type=)
- POST   /api/v1/alerts                -- Create an alert
- PATCH  /api/v1/alerts/{alert_id}     -- Activate / deactivate an alert
- DELETE /api/v1/alerts/{alert_id}     -- Delete an alert
- POST   /api/v1/alerts/{alert_id}/test -- Evaluate now, bypassing cooldown

Reads are limited per owner, writes and tests per client.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, status

from defi_alerts.api.deps import get_monitor, get_store, limit_alert_reads, limit_alert_writes
from defi_alerts.api.schemas.alert_schemas import CreateAlertRequest, UpdateAlertRequest
from defi_alerts.monitoring.alert_monitor import AlertMonitor
from defi_alerts.monitoring.alert_rules import parse_widget_type
from defi_alerts.monitoring.alert_store import AlertStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/alerts", tags=["Alerts"])


def _envelope(data: Any) -> dict:
    return {
        "status": "ok",
        "data": data,
        "meta": {"timestamp": datetime.now(timezone.utc).isoformat()},
    }


@router.get("")
async def list_alerts(
    widget_type: Optional[str] = None,
    owner_id: str = Depends(limit_alert_reads),
    store: AlertStore = Depends(get_store),
):
    """Return the caller's alerts, newest first."""
    widget = parse_widget_type(widget_type) if widget_type else None
    alerts = await store.list_for_owner(owner_id, widget)
    return _envelope(
        {
            "alerts": [a.to_dict() for a in alerts],
            "total": len(alerts),
        }
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_alert(
    body: CreateAlertRequest,
    owner_id: str = Depends(limit_alert_writes),
    store: AlertStore = Depends(get_store),
):
    alert = await store.create(owner_id, **body.model_dump())
    logger.info("Alert %s created for owner %s", alert.id, owner_id)
    return _envelope(alert.to_dict())


@router.patch("/{alert_id}")
async def update_alert(
    alert_id: str,
    body: UpdateAlertRequest,
    owner_id: str = Depends(limit_alert_writes),
    store: AlertStore = Depends(get_store),
):
    alert = await store.set_active(alert_id, owner_id, body.is_active)
    return _envelope(alert.to_dict())


@router.delete("/{alert_id}")
async def delete_alert(
    alert_id: str,
    owner_id: str = Depends(limit_alert_writes),
    store: AlertStore = Depends(get_store),
):
    await store.delete(alert_id, owner_id)
    return _envelope({"id": alert_id, "deleted": True})


@router.post("/{alert_id}/test")
async def test_alert(
    alert_id: str,
    owner_id: str = Depends(limit_alert_writes),
    monitor: AlertMonitor = Depends(get_monitor),
):
    """Evaluate one alert now and notify if its condition holds.

    Cooldown is bypassed and ``last_fired_at`` is not updated.
    """
    outcome = await monitor.test_alert(alert_id, owner_id)
    return _envelope(outcome.to_dict())
