"""Initial schema: users, sessions, status history, reputation, notifications.

Revision ID: 0001_initial
Revises: None
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SESSION_STATUSES = ("pending", "approved", "declined", "cancelled", "completed", "no-show")
CANCELLED_BY = ("requester", "provider", "system")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime, nullable=True),
        sa.Column("updated_at", sa.DateTime, nullable=True),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "sessions",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("requester_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("provider_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("scheduled_start", sa.DateTime, nullable=False),
        sa.Column("duration_minutes", sa.Integer, nullable=False),
        sa.Column("timezone", sa.String(64), nullable=False, server_default="UTC"),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.String(1000), nullable=False),
        sa.Column("topic", sa.String(100), nullable=False),
        sa.Column("agenda", sa.JSON, nullable=False),
        sa.Column(
            "status",
            sa.Enum(*SESSION_STATUSES, name="session_status", native_enum=False),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("meeting_link", sa.String(500)),
        sa.Column("provider_response_message", sa.String(1000)),
        sa.Column("provider_responded_at", sa.DateTime),
        sa.Column("approved_at", sa.DateTime),
        sa.Column("declined_at", sa.DateTime),
        sa.Column("cancelled_at", sa.DateTime),
        sa.Column("cancelled_by", sa.Enum(*CANCELLED_BY, name="cancelled_by", native_enum=False)),
        sa.Column("cancellation_reason", sa.String(500)),
        sa.Column("actual_start", sa.DateTime),
        sa.Column("actual_end", sa.DateTime),
        sa.Column("actual_duration_minutes", sa.Integer),
        sa.Column("rating", sa.Integer),
        sa.Column("review", sa.Text),
        sa.Column("rated_at", sa.DateTime),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("updated_at", sa.DateTime),
        sa.CheckConstraint(
            "duration_minutes >= 15 AND duration_minutes <= 240",
            name="check_duration_range",
        ),
        sa.CheckConstraint(
            "rating IS NULL OR (rating >= 1 AND rating <= 5)",
            name="check_rating_range",
        ),
    )
    op.create_index("ix_sessions_id", "sessions", ["id"])
    op.create_index("ix_sessions_requester_id", "sessions", ["requester_id"])
    op.create_index("ix_sessions_provider_id", "sessions", ["provider_id"])
    op.create_index(
        "ix_sessions_provider_status_start",
        "sessions",
        ["provider_id", "status", "scheduled_start"],
    )

    op.create_table(
        "session_status_changes",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "session_id",
            sa.Integer,
            sa.ForeignKey("sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("action", sa.String(20), nullable=False),
        sa.Column("from_status", sa.String(20)),
        sa.Column("to_status", sa.String(20), nullable=False),
        sa.Column("actor_role", sa.String(20), nullable=False),
        sa.Column("actor_id", sa.Integer, sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("note", sa.String(1000)),
        sa.Column("changed_at", sa.DateTime, nullable=False),
    )
    op.create_index("ix_session_status_changes_id", "session_status_changes", ["id"])
    op.create_index("ix_session_status_changes_session_id", "session_status_changes", ["session_id"])

    op.create_table(
        "provider_reputations",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "provider_id",
            sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("average_rating", sa.Float, nullable=False, server_default="0"),
        sa.Column("total_ratings", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_sessions", sa.Integer, nullable=False, server_default="0"),
        sa.Column("completed_sessions", sa.Integer, nullable=False, server_default="0"),
        sa.Column("version", sa.Integer, nullable=False),
        sa.Column("updated_at", sa.DateTime),
    )
    op.create_index("ix_provider_reputations_id", "provider_reputations", ["id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "recipient_id",
            sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("actor_id", sa.Integer, sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("session_id", sa.Integer, sa.ForeignKey("sessions.id", ondelete="SET NULL")),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("message", sa.String(500), nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("dispatched_at", sa.DateTime),
    )
    op.create_index("ix_notifications_id", "notifications", ["id"])
    op.create_index("ix_notifications_recipient_id", "notifications", ["recipient_id"])
    op.create_index("ix_notifications_actor_id", "notifications", ["actor_id"])
    op.create_index("ix_notifications_session_id", "notifications", ["session_id"])
    op.create_index("ix_notifications_event_type", "notifications", ["event_type"])


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("provider_reputations")
    op.drop_table("session_status_changes")
    op.drop_index("ix_sessions_provider_status_start", table_name="sessions")
    op.drop_table("sessions")
    op.drop_table("users")
