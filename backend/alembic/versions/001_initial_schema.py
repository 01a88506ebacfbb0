"""Initial schema: users, groups, events, pools, registrations, strikes, notifications.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "group_memberships",
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("group_slug", sa.String(100), primary_key=True),
    )
    op.create_index("ix_group_memberships_group_slug", "group_memberships", ["group_slug"])

    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(255), nullable=False, unique=True),
        sa.Column("capacity", sa.Integer(), nullable=True),
        sa.Column("requires_signing_up", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("is_registration_closed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("registration_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("enforces_previous_strikes", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("capacity IS NULL OR capacity >= 0", name="check_event_capacity_non_negative"),
    )
    op.create_index("ix_events_id", "events", ["id"])

    op.create_table(
        "event_priority_pools",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("priority_score", sa.Integer(), nullable=False, server_default=sa.text("0")),
    )
    op.create_index("ix_event_priority_pools_id", "event_priority_pools", ["id"])
    op.create_index("ix_event_priority_pools_event_id", "event_priority_pools", ["event_id"])

    op.create_table(
        "event_priority_pool_groups",
        sa.Column(
            "pool_id",
            sa.Integer(),
            sa.ForeignKey("event_priority_pools.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("group_slug", sa.String(100), primary_key=True),
    )

    op.create_table(
        "event_registrations",
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("waitlist_position", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.Column("attended_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('pending', 'registered', 'waitlisted', 'cancelled', 'attended', 'no_show')",
            name="check_registration_status",
        ),
        # A waitlist position exists exactly while the row is waitlisted
        sa.CheckConstraint(
            "(status = 'waitlisted') = (waitlist_position IS NOT NULL)",
            name="check_waitlist_position_iff_waitlisted",
        ),
    )
    # Resolution and listing always filter by event and status
    op.create_index("ix_event_registrations_event_status", "event_registrations", ["event_id", "status"])

    op.create_table(
        "event_strikes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("count", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("reason", sa.String(500), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("count > 0", name="check_strike_count_positive"),
    )
    op.create_index("ix_event_strikes_id", "event_strikes", ["id"])
    # Strike totals are summed per user on every resolution
    op.create_index("ix_event_strikes_user_id", "event_strikes", ["user_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.String(1000), nullable=False),
        sa.Column("link", sa.String(500), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
    )
    op.create_index("ix_notifications_id", "notifications", ["id"])
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("event_strikes")
    op.drop_table("event_registrations")
    op.drop_table("event_priority_pool_groups")
    op.drop_table("event_priority_pools")
    op.drop_table("events")
    op.drop_table("group_memberships")
    op.drop_table("users")
