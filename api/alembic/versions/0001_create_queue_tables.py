"""create queue tables

Revision ID: 0001_create_queue_tables
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision: str = "0001_create_queue_tables"
down_revision: str | None = None
branch_labels: tuple[str, ...] | None = None
depends_on: tuple[str, ...] | None = None


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False)


def upgrade() -> None:
    op.create_table(
        "queues",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="active"),
        sa.Column("manager_id", sa.String(), nullable=False),
        _created_at(),
    )
    op.create_index("ix_queues_manager_id", "queues", ["manager_id"])

    op.create_table(
        "service_types",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("queue_id", sa.String(36), sa.ForeignKey("queues.id"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "estimated_duration_minutes", sa.Integer(), nullable=False, server_default="15"
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
    )
    op.create_index("ix_service_types_queue_id", "service_types", ["queue_id"])

    op.create_table(
        "tokens",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("queue_id", sa.String(36), sa.ForeignKey("queues.id"), nullable=False),
        sa.Column("person_name", sa.String(), nullable=False),
        sa.Column("contact_number", sa.String(), nullable=True),
        sa.Column(
            "service_type_id",
            sa.String(36),
            sa.ForeignKey("service_types.id"),
            nullable=True,
        ),
        sa.Column("priority_level", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="waiting"),
        _created_at(),
        sa.Column("serving_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("served_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("no_show_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_tokens_queue_status_position", "tokens", ["queue_id", "status", "position"]
    )

    op.create_table(
        "queue_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("queue_id", sa.String(36), sa.ForeignKey("queues.id"), nullable=False),
        sa.Column("token_id", sa.String(36), sa.ForeignKey("tokens.id"), nullable=True),
        sa.Column("event_type", sa.String(), nullable=False),
        _created_at(),
        sa.Column("wait_time_minutes", sa.Integer(), nullable=True),
        sa.Column("service_duration_minutes", sa.Integer(), nullable=True),
    )
    op.create_index(
        "ix_queue_events_queue_created", "queue_events", ["queue_id", "created_at"]
    )

    op.create_table(
        "queue_settings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "queue_id",
            sa.String(36),
            sa.ForeignKey("queues.id"),
            nullable=False,
            unique=True,
        ),
        sa.Column("is_paused", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("pause_reason", sa.Text(), nullable=True),
        sa.Column(
            "auto_serve_enabled", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("auto_serve_minutes", sa.Integer(), nullable=False, server_default="5"),
        sa.Column(
            "priority_enabled", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("max_tokens_per_day", sa.Integer(), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("queue_id", sa.String(36), sa.ForeignKey("queues.id"), nullable=False),
        sa.Column("token_id", sa.String(36), sa.ForeignKey("tokens.id"), nullable=True),
        sa.Column("type", sa.String(), nullable=False, server_default="system"),
        sa.Column("recipient", sa.String(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index("ix_notifications_queue_id", "notifications", ["queue_id"])


def downgrade() -> None:
    op.drop_index("ix_notifications_queue_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_table("queue_settings")
    op.drop_index("ix_queue_events_queue_created", table_name="queue_events")
    op.drop_table("queue_events")
    op.drop_index("ix_tokens_queue_status_position", table_name="tokens")
    op.drop_table("tokens")
    op.drop_index("ix_service_types_queue_id", table_name="service_types")
    op.drop_table("service_types")
    op.drop_index("ix_queues_manager_id", table_name="queues")
    op.drop_table("queues")
