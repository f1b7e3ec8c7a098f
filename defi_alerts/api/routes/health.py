"""Health-check endpoint."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from defi_alerts.api.deps import get_db, get_monitor
from defi_alerts.core.config import settings
from defi_alerts.core.redis import get_redis
from defi_alerts.monitoring.alert_monitor import AlertMonitor

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check(
    session: AsyncSession = Depends(get_db),
    monitor: AlertMonitor = Depends(get_monitor),
) -> dict:
    """Liveness probe -- database, Redis, Telegram configuration, monitor state."""
    db_status = "disconnected"
    try:
        await session.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception as exc:
        db_status = f"disconnected: {exc}"

    redis_status = "disconnected"
    try:
        redis = await get_redis()
        await redis.ping()
        redis_status = "connected"
    except Exception as exc:
        redis_status = f"disconnected: {exc}"

    healthy = db_status == "connected" and redis_status == "connected"
    return {
        "status": "ok" if healthy else "degraded",
        "database": db_status,
        "redis": redis_status,
        "telegram": "configured" if settings.telegram_configured else "disabled",
        "monitor": "running" if monitor.is_active() else "stopped",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
