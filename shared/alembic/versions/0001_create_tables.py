"""Create users, notifications, notification_channels, delivery_records tables.

Revision ID: 0001
Revises: -
Create Date: 2026-10-19
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column(
            "role", sa.String(16), nullable=False, server_default="student"
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("body", sa.Text, nullable=False),
        sa.Column(
            "context", JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")
        ),
        sa.Column("category", sa.String(16), nullable=False),
        sa.Column("sender_id", sa.Uuid, sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "recipient_id", sa.Uuid, sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column(
            "status", sa.String(16), nullable=False, server_default="created"
        ),
        *_timestamps(),
    )
    op.create_index(
        "ix_notifications_recipient_id", "notifications", ["recipient_id"]
    )
    op.create_index("ix_notifications_status", "notifications", ["status"])

    op.create_table(
        "notification_channels",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("owner_id", sa.Uuid, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("kind", sa.String(16), nullable=False),
        sa.Column("address", sa.Text, nullable=False),
        sa.Column(
            "is_active",
            sa.Boolean,
            nullable=False,
            server_default=sa.text("true"),
        ),
        sa.Column(
            "is_verified",
            sa.Boolean,
            nullable=False,
            server_default=sa.text("false"),
        ),
        sa.Column(
            "metadata", JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")
        ),
        *_timestamps(),
        sa.UniqueConstraint(
            "owner_id", "kind", "address", name="uq_channel_owner_kind_address"
        ),
    )
    op.create_index(
        "ix_notification_channels_owner_id", "notification_channels", ["owner_id"]
    )

    op.create_table(
        "delivery_records",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column(
            "notification_id",
            sa.Uuid,
            sa.ForeignKey("notifications.id"),
            nullable=False,
        ),
        sa.Column(
            "channel_id",
            sa.Uuid,
            sa.ForeignKey("notification_channels.id"),
            nullable=False,
        ),
        sa.Column(
            "status", sa.String(16), nullable=False, server_default="pending"
        ),
        sa.Column("provider_message_id", sa.String(255), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("retry_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "metadata", JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")
        ),
        *_timestamps(),
    )
    op.create_index(
        "ix_delivery_records_notification_id",
        "delivery_records",
        ["notification_id"],
    )
    op.create_index(
        "ix_delivery_records_channel_id", "delivery_records", ["channel_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_delivery_records_channel_id", table_name="delivery_records")
    op.drop_index(
        "ix_delivery_records_notification_id", table_name="delivery_records"
    )
    op.drop_table("delivery_records")
    op.drop_index(
        "ix_notification_channels_owner_id", table_name="notification_channels"
    )
    op.drop_table("notification_channels")
    op.drop_index("ix_notifications_status", table_name="notifications")
    op.drop_index("ix_notifications_recipient_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_table("users")
