"""Activity event model (append-only log of group mutations)."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from .base import _utcnow


class ActivityEvent(SQLModel, table=True):
    __tablename__ = "activity_events"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    group_id: uuid.UUID = Field(
        foreign_key="groups.id", ondelete="CASCADE", nullable=False, index=True
    )
    type: str = Field(nullable=False)  # e.g. queue.joined, topic.selected
    actor_id: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id", ondelete="SET NULL")
    payload: dict = Field(
        default_factory=dict,
        sa_type=sa.JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        nullable=False,
        index=True,
        sa_column_kwargs={"server_default": sa.func.now()},
        sa_type=sa.DateTime(timezone=True),
    )
