"""create camp scheduling schema

Revision ID: 20261019_0001
Revises: None
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


user_role_enum = sa.Enum("owner", "admin", "scheduler", "viewer", name="user_role")
notification_type_enum = sa.Enum(
    "double_booking", "reassignment", "schedule", "system", name="notification_type"
)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("role", user_role_enum, nullable=False),
        sa.Column("divisions", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "camp_settings",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("slot_minutes", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("day_start", sa.String(length=10), nullable=False),
        sa.Column("day_end", sa.String(length=10), nullable=False),
        sa.Column("divisions", sa.JSON(), nullable=False),
        sa.Column("resources", sa.JSON(), nullable=False),
        sa.Column("disabled_resources", sa.JSON(), nullable=False),
        sa.Column("frequency_threshold", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "day_schedules",
        sa.Column("day", sa.String(length=10), primary_key=True, nullable=False),
        sa.Column("blocks", sa.JSON(), nullable=False),
        sa.Column("assignments", sa.JSON(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("updated_by_id", sa.String(length=36), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "bunk_activity_history",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("bunk", sa.String(length=100), nullable=False),
        sa.Column("activity_key", sa.String(length=200), nullable=False),
        sa.Column("activity", sa.String(length=200), nullable=False),
        sa.Column("last_done_on", sa.Date(), nullable=True),
        sa.Column("lifetime_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("bunk", "activity_key", name="uq_bunk_activity_history_identity"),
    )
    op.create_index("ix_bunk_activity_history_bunk", "bunk_activity_history", ["bunk"])

    op.create_table(
        "resource_locks",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("day", sa.String(length=10), nullable=False),
        sa.Column("resource_key", sa.String(length=200), nullable=False),
        sa.Column("resource_name", sa.String(length=200), nullable=False),
        sa.Column("slot_index", sa.Integer(), nullable=False),
        sa.Column("locked_by", sa.String(length=100), nullable=False),
        sa.Column("division", sa.String(length=100), nullable=True),
        sa.Column("bunk", sa.String(length=100), nullable=True),
        sa.Column("activity", sa.String(length=200), nullable=True),
        sa.Column("source", sa.String(length=50), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("day", "resource_key", "slot_index", name="uq_resource_locks_identity"),
    )
    op.create_index("ix_resource_locks_day", "resource_locks", ["day"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("notification_type", notification_type_enum, nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("day", sa.String(length=10), nullable=True),
        sa.Column("entity_type", sa.String(length=100), nullable=True),
        sa.Column("entity_id", sa.String(length=100), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_activity_logs_action", "activity_logs", ["action"])
    op.create_index("ix_activity_logs_day", "activity_logs", ["day"])


def downgrade() -> None:
    op.drop_index("ix_activity_logs_day", table_name="activity_logs")
    op.drop_index("ix_activity_logs_action", table_name="activity_logs")
    op.drop_table("activity_logs")
    op.drop_index("ix_notifications_user_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_resource_locks_day", table_name="resource_locks")
    op.drop_table("resource_locks")
    op.drop_index("ix_bunk_activity_history_bunk", table_name="bunk_activity_history")
    op.drop_table("bunk_activity_history")
    op.drop_table("day_schedules")
    op.drop_table("camp_settings")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    notification_type_enum.drop(op.get_bind(), checkfirst=True)
    user_role_enum.drop(op.get_bind(), checkfirst=True)
