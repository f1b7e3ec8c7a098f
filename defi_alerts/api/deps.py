"""FastAPI dependency injection for services, sessions and rate limits."""

from collections.abc import AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from defi_alerts.api.auth import get_current_owner
from defi_alerts.api.services import ServiceContainer
from defi_alerts.cache.rate_limiter import client_identifier
from defi_alerts.core.config import settings
from defi_alerts.core.database import async_session_factory
from defi_alerts.monitoring.alert_monitor import AlertMonitor
from defi_alerts.monitoring.alert_store import AlertStore
from defi_alerts.notifications.telegram import TelegramNotifier

ALERTS_READ = "alerts-read"
ALERTS_WRITE = "alerts-write"


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async DB session; auto-rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


def get_store(services: ServiceContainer = Depends(get_services)) -> AlertStore:
    return services.store


def get_monitor(services: ServiceContainer = Depends(get_services)) -> AlertMonitor:
    return services.monitor


def get_notifier(services: ServiceContainer = Depends(get_services)) -> TelegramNotifier:
    return services.notifier


async def limit_alert_reads(
    owner_id: str = Depends(get_current_owner),
    services: ServiceContainer = Depends(get_services),
) -> str:
    """Per-owner quota on alert reads. Returns the owner id."""
    await services.limiter.enforce(
        owner_id, ALERTS_READ, settings.rate_limit_alerts_read, settings.rate_limit_window_seconds
    )
    return owner_id


async def limit_alert_writes(
    request: Request,
    owner_id: str = Depends(get_current_owner),
    services: ServiceContainer = Depends(get_services),
) -> str:
    """Per-client quota on alert mutations and test sends. Returns the owner id."""
    await services.limiter.enforce(
        client_identifier(request),
        ALERTS_WRITE,
        settings.rate_limit_alerts_write,
        settings.rate_limit_window_seconds,
    )
    return owner_id
