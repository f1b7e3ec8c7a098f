"""Telegram notification dispatcher.

Delivers alert messages through the Telegram Bot API:

- ``test_connection()``: ``getMe`` self-test returning the bot identity or
  a structured reason (disabled channel, invalid credentials, network)
- ``send(destination, message)``: ``sendMessage`` to a chat id; transient
  failures (429, 5xx, timeouts) are retried before raising
- ``resolve_username(handle)`` / ``send_message_to_username(handle, ...)``:
  resolve an ``@handle`` to a chat id through ``getChat`` and the bot's
  recent updates (users must have messaged the bot first)
- ``format_alert_message(alert, value, now)``: HTML alert body

The notifier never mutates alerts; the monitor owns ``last_fired_at``.
"""

from __future__ import annotations

import html
import re
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx

from defi_alerts.connectors.base import BaseConnector
from defi_alerts.core.config import settings
from defi_alerts.core.errors import (
    DestinationUnreachableError,
    DispatchError,
    NotFoundError,
    TransientDispatchError,
)
from defi_alerts.monitoring.alert_rules import Alert, build_alert_body

_CHAT_ID_RE = re.compile(r"^-?\d+$")


def is_chat_id(target: str) -> bool:
    """True when *target* is a numeric Telegram chat id rather than a handle."""
    return bool(_CHAT_ID_RE.match(target.strip()))


@dataclass
class ConnectionCheck:
    """Outcome of ``TelegramNotifier.test_connection``."""

    success: bool
    channel_info: dict[str, Any] | None = None
    error: str | None = None
    reason: str | None = None  # "disabled" | "invalid_credentials" | "network"

    def to_dict(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, "channel_info": self.channel_info}
        return {"success": False, "error": self.error, "reason": self.reason}


@dataclass
class DeliveryResult:
    """A message accepted by Telegram."""

    destination: str
    message_id: int | None
    sent_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "destination": self.destination,
            "message_id": self.message_id,
            "sent_at": self.sent_at.isoformat(),
        }


class TelegramNotifier(BaseConnector):
    """Telegram Bot API client used as the alert notification channel.

    Parameters:
        bot_token: Bot token. Falls back to ``settings.telegram_bot_token``.
        api_url: Bot API base URL. Falls back to ``settings.telegram_api_url``.
        dashboard_url: Link appended to alert messages when set.
    """

    SOURCE_NAME: str = "TELEGRAM"
    MAX_RETRIES: int = 3
    RETRY_MAX_WAIT: float = 10.0
    RETRY_JITTER: float = 1.0

    def __init__(
        self,
        bot_token: str | None = None,
        api_url: str | None = None,
        dashboard_url: str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self.bot_token = bot_token if bot_token is not None else settings.telegram_bot_token
        api_base = (api_url or settings.telegram_api_url).rstrip("/")
        # Token lives in the base URL so request paths stay safe to log
        self.BASE_URL = f"{api_base}/bot{self.bot_token}"
        self.TIMEOUT_SECONDS = timeout_seconds or settings.telegram_timeout_seconds
        self.dashboard_url = (
            dashboard_url if dashboard_url is not None else settings.dashboard_url
        )
        self._chat_ids: dict[str, str] = {}
        self._chat_ids_lock = threading.Lock()
        super().__init__()

    @property
    def enabled(self) -> bool:
        return bool(self.bot_token)

    def _method_url(self, method: str) -> str:
        return f"/{method}"

    # ------------------------------------------------------------------
    # Connectivity self-test
    # ------------------------------------------------------------------

    async def test_connection(self) -> ConnectionCheck:
        """Verify the bot token against ``getMe``.

        Never raises; failures are reported in the returned check.
        """
        if not self.enabled:
            return ConnectionCheck(
                success=False,
                error="Telegram bot token not configured",
                reason="disabled",
            )
        try:
            response = await self._request("GET", self._method_url("getMe"))
            info = response.json().get("result", {})
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            reason = "invalid_credentials" if status in (401, 404) else "network"
            self.log.warning("telegram_self_test_failed", status=status, reason=reason)
            return ConnectionCheck(
                success=False,
                error=_describe(exc.response),
                reason=reason,
            )
        except (httpx.HTTPError, ValueError) as exc:
            self.log.warning("telegram_self_test_failed", error=str(exc), reason="network")
            return ConnectionCheck(success=False, error=str(exc), reason="network")

        self.log.info("telegram_self_test_ok", username=info.get("username"))
        return ConnectionCheck(
            success=True,
            channel_info={
                "id": info.get("id"),
                "username": info.get("username"),
                "first_name": info.get("first_name"),
                "is_bot": info.get("is_bot", True),
            },
        )

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def send(self, destination: str, message: str) -> DeliveryResult:
        """Deliver *message* (HTML) to the chat *destination*.

        Raises:
            DestinationUnreachableError: chat unknown, invalid, or bot blocked.
            TransientDispatchError: network/provider failure after retries.
            DispatchError: channel disabled (no bot token).
        """
        if not self.enabled:
            raise DispatchError("Telegram bot token not configured", destination)

        payload = {
            "chat_id": destination,
            "text": message,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        try:
            response = await self._request(
                "POST", self._method_url("sendMessage"), json=payload
            )
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            detail = _describe(exc.response)
            self.log.error(
                "telegram_send_failed", destination=destination, status=status, error=detail
            )
            if status in (400, 403, 404):
                raise DestinationUnreachableError(detail, destination) from exc
            raise TransientDispatchError(detail, destination) from exc
        except httpx.HTTPError as exc:
            self.log.error("telegram_send_failed", destination=destination, error=str(exc))
            raise TransientDispatchError(
                f"Telegram request failed: {exc}", destination
            ) from exc

        try:
            message_id = response.json().get("result", {}).get("message_id")
        except ValueError:
            message_id = None
        self.log.info("telegram_sent", destination=destination, message_id=message_id)
        return DeliveryResult(destination=destination, message_id=message_id)

    async def send_message_to_username(self, handle: str, message: str) -> DeliveryResult:
        """Resolve *handle* to a chat id, then deliver *message*.

        Raises:
            NotFoundError: if the handle cannot be resolved.
        """
        chat_id = await self.resolve_username(handle)
        return await self.send(chat_id, message)

    async def send_to_target(self, target: str, message: str) -> DeliveryResult:
        """Deliver to a chat id directly or to a handle after resolution."""
        if is_chat_id(target):
            return await self.send(target.strip(), message)
        return await self.send_message_to_username(target, message)

    async def resolve_username(self, handle: str) -> str:
        """Return the chat id for *handle* (with or without ``@``).

        Tries ``getChat`` first (public channels and groups), then scans
        ``getUpdates`` for a private chat with a matching username.
        Resolutions are memoized for the notifier's lifetime.

        Raises:
            NotFoundError: if no chat matches the handle.
            DispatchError: channel disabled or provider unreachable.
        """
        username = handle.strip().lstrip("@")
        if not username:
            raise NotFoundError("Empty Telegram handle")
        key = username.lower()
        with self._chat_ids_lock:
            cached = self._chat_ids.get(key)
        if cached is not None:
            return cached
        if not self.enabled:
            raise DispatchError("Telegram bot token not configured", handle)

        chat_id = await self._lookup_chat(username) or await self._scan_updates(key)
        if chat_id is None:
            raise NotFoundError(
                f"Telegram handle @{username} not found; "
                "the user must start a conversation with the bot first"
            )
        with self._chat_ids_lock:
            self._chat_ids[key] = chat_id
        self.log.debug("telegram_handle_resolved", username=username, chat_id=chat_id)
        return chat_id

    async def _lookup_chat(self, username: str) -> str | None:
        try:
            response = await self._request(
                "GET", self._method_url("getChat"), params={"chat_id": f"@{username}"}
            )
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code in (400, 403, 404):
                return None
            raise TransientDispatchError(_describe(exc.response), username) from exc
        except httpx.HTTPError as exc:
            raise TransientDispatchError(
                f"Telegram request failed: {exc}", username
            ) from exc
        chat_id = response.json().get("result", {}).get("id")
        return str(chat_id) if chat_id is not None else None

    async def _scan_updates(self, username_lower: str) -> str | None:
        try:
            response = await self._request("GET", self._method_url("getUpdates"))
        except httpx.HTTPError as exc:
            raise TransientDispatchError(
                f"Telegram request failed: {exc}", username_lower
            ) from exc
        for update in response.json().get("result", []):
            for key in ("message", "edited_message", "my_chat_member"):
                entry = update.get(key)
                if not entry:
                    continue
                chat = entry.get("chat", {})
                sender = entry.get("from", {})
                for candidate in (chat.get("username"), sender.get("username")):
                    if candidate and candidate.lower() == username_lower:
                        return str(chat.get("id"))
        return None

    # ------------------------------------------------------------------
    # Formatting
    # ------------------------------------------------------------------

    def format_alert_message(self, alert: Alert, value: float, now: datetime) -> str:
        """Format an HTML alert message for Telegram."""
        lines = [
            f"🚨 <b>ALERT {html.escape(alert.alert_name)}</b>",
            "",
            f"📊 <b>Widget:</b> {html.escape(alert.widget_type.display_name)}",
            f"📈 <b>Current value:</b> {value:.4f}",
            f"⚖️ <b>Condition:</b> {alert.condition.label} {alert.threshold:g}",
            f"⏰ <b>Time:</b> {now.strftime('%Y-%m-%d %H:%M:%S UTC')}",
            "",
            html.escape(build_alert_body(alert, value)),
        ]
        if self.dashboard_url:
            lines.append("")
            lines.append(f"🔗 <b>Dashboard:</b> {html.escape(self.dashboard_url)}/dashboard")
        return "\n".join(lines)


def _describe(response: httpx.Response) -> str:
    """Extract Telegram's error description from a failed response."""
    try:
        description = response.json().get("description")
    except ValueError:
        description = None
    return description or f"Telegram API returned HTTP {response.status_code}"
