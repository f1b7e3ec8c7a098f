"""Alert persistence: the store interface and its two implementations.

- ``AlertStore``: owner-scoped CRUD plus the two monitor operations
  (``list_active`` and ``update_last_fired``)
- ``InMemoryAlertStore``: lock-guarded dict store for tests and local runs
- ``SqlAlertStore``: SQLAlchemy async store over the ``alerts`` table

Stores are the single source of truth for ``is_active`` and
``last_fired_at``. Alerts owned by another user are reported as missing.
"""

from __future__ import annotations

import abc
import threading
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from defi_alerts.core.enums import AlertCondition, WidgetType
from defi_alerts.core.errors import NotFoundError, ValidationError
from defi_alerts.core.models.alerts import AlertRecord
from defi_alerts.monitoring.alert_rules import Alert, validate_alert_fields

logger = structlog.get_logger(__name__)

DUPLICATE_ALERT_MESSAGE = "An alert with this name already exists for this widget"


class AlertStore(abc.ABC):
    """Owner-scoped persistence for alerts."""

    async def create(self, owner_id: str, **fields: Any) -> Alert:
        """Validate *fields* and persist a new active alert.

        Raises:
            ValidationError: on malformed input or a duplicate
                ``(owner_id, widget_type, alert_name)``.
        """
        if not owner_id:
            raise ValidationError("owner_id is required")
        draft = validate_alert_fields(**fields)
        alert = draft.to_alert(
            alert_id=str(uuid.uuid4()),
            owner_id=owner_id,
            created_at=datetime.now(timezone.utc),
        )
        created = await self._insert(alert)
        logger.info(
            "alert_created",
            alert_id=created.id,
            owner_id=owner_id,
            widget_type=created.widget_type.value,
        )
        return created

    @abc.abstractmethod
    async def _insert(self, alert: Alert) -> Alert:
        ...

    @abc.abstractmethod
    async def get(self, alert_id: str, owner_id: str | None = None) -> Alert:
        """Return one alert; ``owner_id`` scopes the lookup when given.

        Raises:
            NotFoundError: if missing or owned by someone else.
        """
        ...

    @abc.abstractmethod
    async def list_for_owner(
        self, owner_id: str, widget_type: WidgetType | None = None
    ) -> list[Alert]:
        """Return the owner's alerts, newest first."""
        ...

    @abc.abstractmethod
    async def list_active(self) -> list[Alert]:
        """Return every alert with ``is_active`` set, across owners."""
        ...

    @abc.abstractmethod
    async def set_active(self, alert_id: str, owner_id: str, is_active: bool) -> Alert:
        ...

    @abc.abstractmethod
    async def delete(self, alert_id: str, owner_id: str) -> None:
        ...

    @abc.abstractmethod
    async def update_last_fired(self, alert_id: str, fired_at: datetime) -> None:
        ...


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------


class InMemoryAlertStore(AlertStore):
    """Dict-backed store guarded by a lock; suitable for tests and dev runs."""

    def __init__(self) -> None:
        self._alerts: dict[str, Alert] = {}
        self._lock = threading.Lock()

    async def _insert(self, alert: Alert) -> Alert:
        with self._lock:
            for existing in self._alerts.values():
                if (
                    existing.owner_id == alert.owner_id
                    and existing.widget_type == alert.widget_type
                    and existing.alert_name == alert.alert_name
                ):
                    raise ValidationError(DUPLICATE_ALERT_MESSAGE)
            self._alerts[alert.id] = alert
            return replace(alert)

    async def get(self, alert_id: str, owner_id: str | None = None) -> Alert:
        with self._lock:
            alert = self._alerts.get(alert_id)
            if alert is None or (owner_id is not None and alert.owner_id != owner_id):
                raise NotFoundError(f"Alert {alert_id} not found")
            return replace(alert)

    async def list_for_owner(
        self, owner_id: str, widget_type: WidgetType | None = None
    ) -> list[Alert]:
        with self._lock:
            alerts = [
                replace(a)
                for a in self._alerts.values()
                if a.owner_id == owner_id
                and (widget_type is None or a.widget_type == widget_type)
            ]
        return sorted(alerts, key=lambda a: a.created_at, reverse=True)

    async def list_active(self) -> list[Alert]:
        with self._lock:
            return [replace(a) for a in self._alerts.values() if a.is_active]

    async def set_active(self, alert_id: str, owner_id: str, is_active: bool) -> Alert:
        return self._modify(alert_id, owner_id, is_active=is_active)

    async def delete(self, alert_id: str, owner_id: str) -> None:
        with self._lock:
            alert = self._alerts.get(alert_id)
            if alert is None or alert.owner_id != owner_id:
                raise NotFoundError(f"Alert {alert_id} not found")
            del self._alerts[alert_id]

    async def update_last_fired(self, alert_id: str, fired_at: datetime) -> None:
        self._modify(alert_id, None, last_fired_at=fired_at)

    def _modify(self, alert_id: str, owner_id: str | None, **changes: Any) -> Alert:
        with self._lock:
            alert = self._alerts.get(alert_id)
            if alert is None or (owner_id is not None and alert.owner_id != owner_id):
                raise NotFoundError(f"Alert {alert_id} not found")
            updated = replace(alert, **changes)
            self._alerts[alert_id] = updated
            return replace(updated)


# ---------------------------------------------------------------------------
# SQLAlchemy implementation
# ---------------------------------------------------------------------------


def _to_alert(record: AlertRecord) -> Alert:
    return Alert(
        id=record.id,
        owner_id=record.owner_id,
        alert_name=record.alert_name,
        widget_type=WidgetType(record.widget_type),
        condition=AlertCondition(record.condition),
        threshold=record.threshold,
        notify_target=record.notify_target,
        custom_message=record.custom_message,
        cooldown_minutes=record.cooldown_minutes,
        is_active=record.is_active,
        last_fired_at=record.last_fired_at,
        created_at=record.created_at,
    )


class SqlAlertStore(AlertStore):
    """Alert store over the ``alerts`` table.

    The unique constraint on ``(owner_id, widget_type, alert_name)`` is the
    final arbiter for duplicates; the pre-insert lookup only produces a
    friendlier error in the common case.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def _insert(self, alert: Alert) -> Alert:
        async with self._session_factory() as session:
            existing = await session.execute(
                select(AlertRecord.id).where(
                    AlertRecord.owner_id == alert.owner_id,
                    AlertRecord.widget_type == alert.widget_type.value,
                    AlertRecord.alert_name == alert.alert_name,
                )
            )
            if existing.first() is not None:
                raise ValidationError(DUPLICATE_ALERT_MESSAGE)

            record = AlertRecord(
                id=alert.id,
                owner_id=alert.owner_id,
                alert_name=alert.alert_name,
                widget_type=alert.widget_type.value,
                condition=alert.condition.value,
                threshold=alert.threshold,
                notify_target=alert.notify_target,
                custom_message=alert.custom_message,
                cooldown_minutes=alert.cooldown_minutes,
                is_active=True,
                last_fired_at=None,
                created_at=alert.created_at,
            )
            session.add(record)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise ValidationError(DUPLICATE_ALERT_MESSAGE) from None
            return _to_alert(record)

    async def get(self, alert_id: str, owner_id: str | None = None) -> Alert:
        stmt = select(AlertRecord).where(AlertRecord.id == alert_id)
        if owner_id is not None:
            stmt = stmt.where(AlertRecord.owner_id == owner_id)
        async with self._session_factory() as session:
            record = (await session.execute(stmt)).scalar_one_or_none()
        if record is None:
            raise NotFoundError(f"Alert {alert_id} not found")
        return _to_alert(record)

    async def list_for_owner(
        self, owner_id: str, widget_type: WidgetType | None = None
    ) -> list[Alert]:
        stmt = select(AlertRecord).where(AlertRecord.owner_id == owner_id)
        if widget_type is not None:
            stmt = stmt.where(AlertRecord.widget_type == widget_type.value)
        stmt = stmt.order_by(AlertRecord.created_at.desc())
        async with self._session_factory() as session:
            records = (await session.execute(stmt)).scalars().all()
        return [_to_alert(r) for r in records]

    async def list_active(self) -> list[Alert]:
        stmt = select(AlertRecord).where(AlertRecord.is_active.is_(True))
        async with self._session_factory() as session:
            records = (await session.execute(stmt)).scalars().all()
        return [_to_alert(r) for r in records]

    async def set_active(self, alert_id: str, owner_id: str, is_active: bool) -> Alert:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(AlertRecord)
                    .where(AlertRecord.id == alert_id, AlertRecord.owner_id == owner_id)
                    .values(is_active=is_active)
                )
                if result.rowcount == 0:
                    raise NotFoundError(f"Alert {alert_id} not found")
        return await self.get(alert_id, owner_id)

    async def delete(self, alert_id: str, owner_id: str) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    delete(AlertRecord).where(
                        AlertRecord.id == alert_id, AlertRecord.owner_id == owner_id
                    )
                )
                if result.rowcount == 0:
                    raise NotFoundError(f"Alert {alert_id} not found")

    async def update_last_fired(self, alert_id: str, fired_at: datetime) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(AlertRecord)
                    .where(AlertRecord.id == alert_id)
                    .values(last_fired_at=fired_at)
                )
                if result.rowcount == 0:
                    raise NotFoundError(f"Alert {alert_id} not found")
