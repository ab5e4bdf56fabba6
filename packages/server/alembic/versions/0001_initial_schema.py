"""Initial StudyHub schema: users, groups, queues, topics, participants, activity.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-17 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid_pk() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True)


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=nullable,
        server_default=None if nullable else sa.text("now()"),
    )


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    op.create_table(
        "users",
        _uuid_pk(),
        sa.Column("telegram_id", sa.Text(), nullable=False, unique=True),
        sa.Column("telegram_username", sa.Text(), nullable=True),
        sa.Column("first_name", sa.Text(), nullable=False),
        sa.Column("last_name", sa.Text(), nullable=False),
        sa.Column("middle_name", sa.Text(), nullable=True),
        _timestamp("created_at"),
        _timestamp("last_active_at"),
    )

    op.create_table(
        "groups",
        _uuid_pk(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _timestamp("created_at"),
    )

    op.create_table(
        "group_members",
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "group_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("groups.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("role", sa.Text(), nullable=False, server_default="member"),
        _timestamp("joined_at"),
        sa.CheckConstraint(
            "role IN ('leader', 'assistant', 'member')", name="ck_group_members_role"
        ),
    )

    op.create_table(
        "group_invitations",
        _uuid_pk(),
        sa.Column(
            "group_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("groups.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "invited_by_user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id"),
            nullable=False,
        ),
        sa.Column("token", postgresql.UUID(as_uuid=True), nullable=False, unique=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_used", sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp("created_at"),
    )
    op.create_index("ix_group_invitations_group_id", "group_invitations", ["group_id"])

    op.create_table(
        "queues",
        _uuid_pk(),
        sa.Column(
            "group_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("groups.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "created_by_user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id"),
            nullable=False,
        ),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("subject", sa.Text(), nullable=True),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("max_participants", sa.Integer(), nullable=False, server_default="20"),
        sa.Column("last_position", sa.Integer(), nullable=False, server_default="0"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint("max_participants >= 1", name="ck_queues_max_participants_positive"),
        sa.CheckConstraint("last_position >= 0", name="ck_queues_last_position_non_negative"),
    )
    op.create_index("ix_queues_group_id", "queues", ["group_id"])
    op.create_index("ix_queues_date", "queues", ["date"])

    op.create_table(
        "topics",
        _uuid_pk(),
        sa.Column(
            "queue_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("queues.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("max_participants", sa.Integer(), nullable=False, server_default="1"),
        _timestamp("created_at"),
        sa.UniqueConstraint("queue_id", "title", name="uq_topics_queue_title"),
        sa.CheckConstraint("max_participants >= 1", name="ck_topics_max_participants_positive"),
    )
    op.create_index("ix_topics_queue_id", "topics", ["queue_id"])

    op.create_table(
        "queue_participants",
        _uuid_pk(),
        sa.Column(
            "queue_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("queues.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column(
            "topic_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("topics.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("topic_confirmed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "topic_confirmed_by_user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        _timestamp("topic_confirmed_at", nullable=True),
        _timestamp("joined_at"),
        sa.UniqueConstraint("queue_id", "user_id", name="uq_queue_participants_queue_user"),
        sa.UniqueConstraint("queue_id", "position", name="uq_queue_participants_queue_position"),
        sa.CheckConstraint("position >= 1", name="ck_queue_participants_position_positive"),
    )
    op.create_index("ix_queue_participants_queue_id", "queue_participants", ["queue_id"])
    op.create_index("ix_queue_participants_user_id", "queue_participants", ["user_id"])
    op.create_index("ix_queue_participants_topic_id", "queue_participants", ["topic_id"])

    op.create_table(
        "activity_events",
        _uuid_pk(),
        sa.Column(
            "group_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("groups.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column(
            "actor_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("payload", postgresql.JSONB(), nullable=False, server_default="{}"),
        _timestamp("timestamp"),
    )
    op.create_index(
        "idx_activity_events_group_ts", "activity_events", ["group_id", sa.text("timestamp DESC")]
    )


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    for table in (
        "activity_events",
        "queue_participants",
        "topics",
        "queues",
        "group_invitations",
        "group_members",
        "groups",
        "users",
    ):
        op.drop_table(table)
