from typing import Optional
from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime
from .common import UserSummary, remaining_capacity


class QueueBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    subject: Optional[str] = None
    date: datetime


class QueueCreate(QueueBase):
    # None falls back to the server's default capacity
    max_participants: Optional[int] = Field(None, ge=1)


class QueueUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    subject: Optional[str] = None
    date: Optional[datetime] = None
    max_participants: Optional[int] = Field(None, ge=1)


class QueueRead(QueueBase):
    id: UUID
    group_id: UUID
    created_by_user_id: UUID
    max_participants: int
    participant_count: int = 0
    available: int = 0
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ParticipantRead(BaseModel):
    id: UUID
    queue_id: UUID
    user_id: UUID
    position: int
    topic_id: Optional[UUID] = None
    topic_title: Optional[str] = None
    topic_confirmed: bool = False
    topic_confirmed_by_user_id: Optional[UUID] = None
    topic_confirmed_at: Optional[datetime] = None
    joined_at: datetime
    user: Optional[UserSummary] = None


class TopicSelectRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)


def queue_read(queue, participant_count: int) -> QueueRead:
    """Build a QueueRead from an ORM queue and its live participant count."""
    return QueueRead(
        id=queue.id,
        group_id=queue.group_id,
        created_by_user_id=queue.created_by_user_id,
        title=queue.title,
        description=queue.description,
        subject=queue.subject,
        date=queue.date,
        max_participants=queue.max_participants,
        participant_count=participant_count,
        available=remaining_capacity(queue.max_participants, participant_count),
        created_at=queue.created_at,
        updated_at=queue.updated_at,
    )
