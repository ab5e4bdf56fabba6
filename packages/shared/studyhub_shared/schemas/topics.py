from typing import Optional
from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime


class TopicCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    # None falls back to the server's default topic capacity
    max_participants: Optional[int] = Field(None, ge=1)


class TopicUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    max_participants: Optional[int] = Field(None, ge=1)


class TopicRead(BaseModel):
    id: UUID
    queue_id: UUID
    title: str
    description: Optional[str] = None
    max_participants: int
    taken: int = 0
    available: int = 0
    created_at: datetime

    model_config = {"from_attributes": True}
