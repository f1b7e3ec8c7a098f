"""Notification channels.

Exports:
- ``TelegramNotifier`` -- Telegram Bot API dispatcher with retry and self-test
- ``ConnectionCheck`` / ``DeliveryResult`` -- dispatcher result types
"""

from defi_alerts.notifications.telegram import (
    ConnectionCheck,
    DeliveryResult,
    TelegramNotifier,
    is_chat_id,
)

__all__ = ["ConnectionCheck", "DeliveryResult", "TelegramNotifier", "is_chat_id"]
