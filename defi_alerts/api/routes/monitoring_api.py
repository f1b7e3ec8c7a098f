"""Monitoring lifecycle endpoints.

Provides:
- POST /api/v1/monitoring/start     -- Start the alert monitor (idempotent)
- POST /api/v1/monitoring/stop      -- Stop the alert monitor (idempotent)
- GET  /api/v1/monitoring/status    -- Running state and last cycle report
- POST /api/v1/monitoring/run-cycle -- Evaluate all active alerts once, now
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends

from defi_alerts.api.auth import get_current_owner
from defi_alerts.api.deps import get_monitor
from defi_alerts.monitoring.alert_monitor import AlertMonitor

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/monitoring",
    tags=["Monitoring"],
    dependencies=[Depends(get_current_owner)],
)


def _envelope(data: Any) -> dict:
    return {
        "status": "ok",
        "data": data,
        "meta": {"timestamp": datetime.now(timezone.utc).isoformat()},
    }


@router.post("/start")
async def start_monitoring(monitor: AlertMonitor = Depends(get_monitor)):
    running = monitor.start()
    return _envelope({"running": running, "message": "Monitoring started"})


@router.post("/stop")
async def stop_monitoring(monitor: AlertMonitor = Depends(get_monitor)):
    running = monitor.stop()
    return _envelope({"running": running, "message": "Monitoring stopped"})


@router.get("/status")
async def monitoring_status(monitor: AlertMonitor = Depends(get_monitor)):
    return _envelope(monitor.status())


@router.post("/run-cycle")
async def run_cycle(monitor: AlertMonitor = Depends(get_monitor)):
    """Run one evaluation cycle synchronously and return its report."""
    report = await monitor.run_cycle()
    logger.info("Manual cycle: %d evaluated, %d fired", len(report.outcomes), report.fired)
    return _envelope(report.to_dict())
