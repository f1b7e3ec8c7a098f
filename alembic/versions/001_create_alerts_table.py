"""create alerts table

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "a1b2c3d4e5f6"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "alerts",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column("alert_name", sa.String(100), nullable=False),
        sa.Column("widget_type", sa.String(20), nullable=False),
        sa.Column("condition", sa.String(20), nullable=False),
        sa.Column("threshold", sa.Float(), nullable=False),
        sa.Column("notify_target", sa.String(64), nullable=False),
        sa.Column("custom_message", sa.String(500), nullable=True),
        sa.Column("cooldown_minutes", sa.Integer(), nullable=False, server_default="60"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_fired_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_alerts"),
        sa.UniqueConstraint(
            "owner_id",
            "widget_type",
            "alert_name",
            name="uq_alerts_owner_widget_name",
        ),
        sa.CheckConstraint(
            "widget_type IN ('healthFactor', 'ltv', 'netAPY')",
            name="ck_alerts_widget_type",
        ),
        sa.CheckConstraint(
            "condition IN ('greater_than', 'less_than', 'equals')",
            name="ck_alerts_condition",
        ),
        sa.CheckConstraint("cooldown_minutes >= 0", name="ck_alerts_cooldown_minutes"),
    )
    op.create_index("ix_alerts_owner_widget", "alerts", ["owner_id", "widget_type"])
    # The monitor scans active alerts every cycle
    op.create_index("ix_alerts_is_active", "alerts", ["is_active"])


def downgrade() -> None:
    op.drop_index("ix_alerts_is_active")
    op.drop_index("ix_alerts_owner_widget")
    op.drop_table("alerts")
