"""Queue model: a bookable, capacity-bounded slot owned by a group."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Queue(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "queues"
    __table_args__ = (
        sa.CheckConstraint("max_participants >= 1", name="ck_queues_max_participants_positive"),
        sa.CheckConstraint("last_position >= 0", name="ck_queues_last_position_non_negative"),
    )

    group_id: uuid.UUID = Field(
        foreign_key="groups.id", ondelete="CASCADE", nullable=False, index=True
    )
    created_by_user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False)
    title: str = Field(nullable=False)
    description: Optional[str] = None
    subject: Optional[str] = None
    date: datetime = Field(nullable=False, index=True, sa_type=sa.DateTime(timezone=True))
    max_participants: int = Field(default=20, nullable=False)
    # Highest position ever issued; positions are never handed out twice.
    last_position: int = Field(default=0, nullable=False)
