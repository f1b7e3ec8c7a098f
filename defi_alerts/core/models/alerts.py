"""Alert ORM model.

One row per user-defined threshold alert. The monitor only ever updates
``last_fired_at``; every other column is owned by the alert's owner.

Created by Alembic migration 001.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class AlertRecord(Base):
    """Persisted threshold alert.

    ``(owner_id, widget_type, alert_name)`` is unique per owner so the same
    name can be reused across widgets but never twice on one widget.
    """

    __tablename__ = "alerts"
    __table_args__ = (
        UniqueConstraint(
            "owner_id",
            "widget_type",
            "alert_name",
            name="uq_alerts_owner_widget_name",
        ),
        CheckConstraint(
            "widget_type IN ('healthFactor', 'ltv', 'netAPY')",
            name="widget_type",
        ),
        CheckConstraint(
            "condition IN ('greater_than', 'less_than', 'equals')",
            name="condition",
        ),
        CheckConstraint("cooldown_minutes >= 0", name="cooldown_minutes"),
        Index("ix_alerts_owner_widget", "owner_id", "widget_type"),
        Index("ix_alerts_is_active", "is_active"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    alert_name: Mapped[str] = mapped_column(String(100), nullable=False)
    widget_type: Mapped[str] = mapped_column(String(20), nullable=False)
    condition: Mapped[str] = mapped_column(String(20), nullable=False)
    threshold: Mapped[float] = mapped_column(Float, nullable=False)
    notify_target: Mapped[str] = mapped_column(String(64), nullable=False)
    custom_message: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    cooldown_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_fired_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<AlertRecord(id={self.id!r}, owner_id={self.owner_id!r}, "
            f"widget_type={self.widget_type!r}, alert_name={self.alert_name!r})>"
        )
