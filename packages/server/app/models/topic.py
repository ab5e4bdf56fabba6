"""Topic model: a capacity-bounded sub-choice within a queue."""

from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, UUIDMixin


class Topic(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "topics"
    __table_args__ = (
        sa.UniqueConstraint("queue_id", "title", name="uq_topics_queue_title"),
        sa.CheckConstraint("max_participants >= 1", name="ck_topics_max_participants_positive"),
    )

    queue_id: uuid.UUID = Field(
        foreign_key="queues.id", ondelete="CASCADE", nullable=False, index=True
    )
    title: str = Field(nullable=False)
    description: Optional[str] = None
    max_participants: int = Field(default=1, nullable=False)
