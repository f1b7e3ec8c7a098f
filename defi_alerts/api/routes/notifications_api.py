"""Notification channel endpoints.

Provides:
- GET  /api/v1/notifications/test-connection -- Telegram bot self-test
- POST /api/v1/notifications/test            -- Send a one-off test message
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from defi_alerts.api.auth import get_current_owner
from defi_alerts.api.deps import get_notifier, limit_alert_writes
from defi_alerts.api.schemas.alert_schemas import TestNotificationRequest
from defi_alerts.notifications.telegram import TelegramNotifier

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("/test-connection", dependencies=[Depends(get_current_owner)])
async def test_connection(notifier: TelegramNotifier = Depends(get_notifier)):
    """Return ``{success, channel_info}`` or ``{success, error, reason}``."""
    check = await notifier.test_connection()
    return check.to_dict()


@router.post("/test", dependencies=[Depends(limit_alert_writes)])
async def send_test_notification(
    body: TestNotificationRequest,
    notifier: TelegramNotifier = Depends(get_notifier),
):
    result = await notifier.send_to_target(body.destination, body.message)
    return result.to_dict()
