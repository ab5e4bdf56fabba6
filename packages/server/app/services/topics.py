"""
Topic catalogue: per-queue topics with their own capacity.
"""

from __future__ import annotations

import uuid
from typing import Optional, Sequence

import structlog
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import get_settings
from app.core.database import atomic
from app.core.errors import DuplicateTopic, InvalidCapacity, NotFound
from app.core.locks import topic_lock
from app.models.participant import QueueParticipant
from app.models.topic import Topic
from app.services.signup import count_topic_claims, lock_topic_row
from studyhub_shared.schemas.common import remaining_capacity
from studyhub_shared.schemas.topics import TopicCreate, TopicRead, TopicUpdate

log = structlog.get_logger()
settings = get_settings()


async def get_topic_or_404(
    session: AsyncSession, topic_id: uuid.UUID, queue_id: uuid.UUID
) -> Topic:
    topic = await session.get(Topic, topic_id)
    if not topic or topic.queue_id != queue_id:
        raise NotFound("Topic not found")
    return topic


async def _title_taken(
    session: AsyncSession,
    queue_id: uuid.UUID,
    title: str,
    exclude_id: Optional[uuid.UUID] = None,
) -> bool:
    stmt = select(Topic.id).where(Topic.queue_id == queue_id, Topic.title == title)
    if exclude_id is not None:
        stmt = stmt.where(Topic.id != exclude_id)
    result = await session.execute(stmt)
    return result.first() is not None


def topic_read(topic: Topic, taken: int) -> TopicRead:
    return TopicRead(
        id=topic.id,
        queue_id=topic.queue_id,
        title=topic.title,
        description=topic.description,
        max_participants=topic.max_participants,
        taken=taken,
        available=remaining_capacity(topic.max_participants, taken),
        created_at=topic.created_at,
    )


async def enrich_topics(session: AsyncSession, topics: Sequence[Topic]) -> list[TopicRead]:
    if not topics:
        return []
    result = await session.execute(
        select(QueueParticipant.topic_id, func.count())
        .where(QueueParticipant.topic_id.in_([t.id for t in topics]))
        .group_by(QueueParticipant.topic_id)
    )
    counts = {topic_id: count for topic_id, count in result.all()}
    return [topic_read(t, counts.get(t.id, 0)) for t in topics]


async def create_topic(
    session: AsyncSession, queue_id: uuid.UUID, topic_in: TopicCreate
) -> Topic:
    """Add a topic to a queue. Titles are unique within the queue."""
    max_participants = topic_in.max_participants
    if max_participants is None:
        max_participants = settings.default_topic_capacity
    if max_participants < 1:
        raise InvalidCapacity()

    if await _title_taken(session, queue_id, topic_in.title):
        raise DuplicateTopic()

    topic = Topic(
        queue_id=queue_id,
        title=topic_in.title,
        description=topic_in.description,
        max_participants=max_participants,
    )
    try:
        async with atomic(session, retry_conflicts=True):
            session.add(topic)
            await session.flush()
    except IntegrityError:
        raise DuplicateTopic()

    log.info("topic.created", topic_id=str(topic.id), queue_id=str(queue_id))
    return topic


async def list_topics(session: AsyncSession, queue_id: uuid.UUID) -> list[Topic]:
    result = await session.execute(
        select(Topic).where(Topic.queue_id == queue_id).order_by(Topic.created_at, Topic.title)
    )
    return list(result.scalars().all())


async def update_topic(
    session: AsyncSession, topic: Topic, topic_in: TopicUpdate
) -> Topic:
    """Apply a partial update. Capacity may not drop below current claims."""
    update_data = {
        field: value
        for field, value in topic_in.model_dump(exclude_unset=True).items()
        if value is not None or field == "description"
    }

    topic_id = topic.id
    try:
        async with topic_lock(topic_id):
            async with atomic(session, retry_conflicts=True):
                topic = await lock_topic_row(session, topic_id)
                if topic is None:
                    raise NotFound("Topic not found")

                if "title" in update_data and await _title_taken(
                    session, topic.queue_id, update_data["title"], exclude_id=topic_id
                ):
                    raise DuplicateTopic()

                if "max_participants" in update_data:
                    taken = await count_topic_claims(session, topic_id)
                    if update_data["max_participants"] < max(1, taken):
                        raise InvalidCapacity(
                            f"Capacity {update_data['max_participants']} is below "
                            f"the {taken} participants holding this topic"
                        )
                for field, value in update_data.items():
                    setattr(topic, field, value)
                session.add(topic)
                await session.flush()
    except IntegrityError:
        raise DuplicateTopic()

    log.info("topic.updated", topic_id=str(topic.id), fields=sorted(update_data))
    return topic


async def delete_topic(session: AsyncSession, topic: Topic) -> None:
    """Delete a topic and release every claim on it."""
    topic_id = topic.id
    async with topic_lock(topic_id):
        async with atomic(session):
            await session.execute(
                update(QueueParticipant)
                .where(QueueParticipant.topic_id == topic_id)
                .values(
                    topic_id=None,
                    topic_confirmed=False,
                    topic_confirmed_by_user_id=None,
                    topic_confirmed_at=None,
                )
            )
            await session.delete(topic)
            await session.flush()

    log.info("topic.deleted", topic_id=str(topic_id), queue_id=str(topic.queue_id))
