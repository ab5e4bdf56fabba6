"""Queue participant model, including the participant's topic claim."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, _utcnow


class QueueParticipant(UUIDMixin, SQLModel, table=True):
    __tablename__ = "queue_participants"
    __table_args__ = (
        sa.UniqueConstraint("queue_id", "user_id", name="uq_queue_participants_queue_user"),
        sa.UniqueConstraint("queue_id", "position", name="uq_queue_participants_queue_position"),
    )

    queue_id: uuid.UUID = Field(
        foreign_key="queues.id", ondelete="CASCADE", nullable=False, index=True
    )
    user_id: uuid.UUID = Field(
        foreign_key="users.id", ondelete="CASCADE", nullable=False, index=True
    )
    position: int = Field(nullable=False)
    topic_id: Optional[uuid.UUID] = Field(
        default=None, foreign_key="topics.id", ondelete="SET NULL", index=True
    )
    topic_confirmed: bool = Field(default=False, nullable=False)
    topic_confirmed_by_user_id: Optional[uuid.UUID] = Field(
        default=None, foreign_key="users.id", ondelete="SET NULL"
    )
    topic_confirmed_at: Optional[datetime] = Field(
        default=None, sa_type=sa.DateTime(timezone=True)
    )
    joined_at: datetime = Field(
        default_factory=_utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.func.now()},
        sa_type=sa.DateTime(timezone=True),
    )
