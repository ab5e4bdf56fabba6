"""
Signup engine: joining and leaving queues, and topic claims.

Handles:
- Capacity-checked joins with strictly increasing, never reused positions
- Leaving (idempotent) which also releases the participant's topic claim
- Claiming a topic by title or by id, releasing it, and staff confirmation
- Participant listings enriched with user and topic data

Every mutating operation takes the per-resource lock, re-reads the guarded
row with ``FOR UPDATE`` and commits before releasing the lock. The unique
constraints on ``queue_participants`` catch anything that still slips
through; a join that hits one is rolled back and retried.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import delete, func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import get_settings
from app.core.database import atomic
from app.core.errors import (
    AlreadyJoined,
    Conflict,
    NotFound,
    QueueFull,
    StorageFailure,
    TopicFull,
)
from app.core.locks import queue_lock, topic_lock
from app.models.participant import QueueParticipant
from app.models.topic import Topic
from app.models.user import User
from app.services.queues import count_participants, lock_queue_row
from studyhub_shared.schemas.common import UserSummary
from studyhub_shared.schemas.queues import ParticipantRead

log = structlog.get_logger()
settings = get_settings()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def get_participant(
    session: AsyncSession, queue_id: uuid.UUID, user_id: uuid.UUID
) -> Optional[QueueParticipant]:
    result = await session.execute(
        select(QueueParticipant).where(
            QueueParticipant.queue_id == queue_id,
            QueueParticipant.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def get_participant_or_404(
    session: AsyncSession, queue_id: uuid.UUID, user_id: uuid.UUID
) -> QueueParticipant:
    participant = await get_participant(session, queue_id, user_id)
    if participant is None:
        raise NotFound("Participant not found in this queue")
    return participant


async def count_topic_claims(session: AsyncSession, topic_id: uuid.UUID) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(QueueParticipant)
        .where(QueueParticipant.topic_id == topic_id)
    )
    return result.scalar_one()


async def lock_topic_row(session: AsyncSession, topic_id: uuid.UUID) -> Optional[Topic]:
    """Re-read a topic with a row lock held until the transaction ends."""
    result = await session.execute(
        select(Topic)
        .where(Topic.id == topic_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def _reset_confirmation(participant: QueueParticipant) -> None:
    participant.topic_confirmed = False
    participant.topic_confirmed_by_user_id = None
    participant.topic_confirmed_at = None


async def enrich_participant(
    session: AsyncSession, participant: QueueParticipant
) -> ParticipantRead:
    """Convert a single participant row into its API shape."""
    user = await session.get(User, participant.user_id)
    topic = await session.get(Topic, participant.topic_id) if participant.topic_id else None
    return _participant_read(participant, user, topic.title if topic else None)


def _participant_read(
    participant: QueueParticipant, user: Optional[User], topic_title: Optional[str]
) -> ParticipantRead:
    return ParticipantRead(
        id=participant.id,
        queue_id=participant.queue_id,
        user_id=participant.user_id,
        position=participant.position,
        topic_id=participant.topic_id,
        topic_title=topic_title,
        topic_confirmed=participant.topic_confirmed,
        topic_confirmed_by_user_id=participant.topic_confirmed_by_user_id,
        topic_confirmed_at=participant.topic_confirmed_at,
        joined_at=participant.joined_at,
        user=UserSummary.model_validate(user) if user else None,
    )


# ---------------------------------------------------------------------------
# Joining and leaving
# ---------------------------------------------------------------------------


async def _insert_participant(
    session: AsyncSession, queue_id: uuid.UUID, user_id: uuid.UUID
) -> QueueParticipant:
    queue = await lock_queue_row(session, queue_id)
    if queue is None:
        raise NotFound("Queue not found")
    if await session.get(User, user_id) is None:
        raise NotFound("User not found")

    if await get_participant(session, queue_id, user_id) is not None:
        raise AlreadyJoined()

    taken = await count_participants(session, queue_id)
    if taken >= queue.max_participants:
        raise QueueFull()

    queue.last_position += 1
    participant = QueueParticipant(
        queue_id=queue_id,
        user_id=user_id,
        position=queue.last_position,
    )
    session.add(queue)
    session.add(participant)
    await session.flush()
    return participant


async def join_queue(
    session: AsyncSession, queue_id: uuid.UUID, user_id: uuid.UUID
) -> QueueParticipant:
    """Add the user at the end of the queue.

    Raises AlreadyJoined, QueueFull or NotFound. A constraint conflict
    rolls the attempt back and re-runs the checks; once the retries are
    used up the caller gets StorageFailure.
    """
    for attempt in range(1, settings.signup_max_retries + 1):
        try:
            async with queue_lock(queue_id):
                async with atomic(session, retry_conflicts=True):
                    participant = await _insert_participant(session, queue_id, user_id)
        except IntegrityError:
            log.warning(
                "queue.join_conflict",
                queue_id=str(queue_id),
                user_id=str(user_id),
                attempt=attempt,
            )
            continue

        log.info(
            "queue.joined",
            queue_id=str(queue_id),
            user_id=str(user_id),
            position=participant.position,
        )
        return participant

    log.error("queue.join_retries_exhausted", queue_id=str(queue_id), user_id=str(user_id))
    raise StorageFailure("Could not join the queue, please retry")


async def leave_queue(
    session: AsyncSession, queue_id: uuid.UUID, user_id: uuid.UUID
) -> bool:
    """Remove the user from the queue. Returns False if they were not in it.

    The participant's topic claim goes with the row.
    """
    async with queue_lock(queue_id):
        async with atomic(session):
            result = await session.execute(
                delete(QueueParticipant).where(
                    QueueParticipant.queue_id == queue_id,
                    QueueParticipant.user_id == user_id,
                )
            )
    removed = result.rowcount > 0

    log.info("queue.left", queue_id=str(queue_id), user_id=str(user_id), removed=removed)
    return removed


async def list_participants(
    session: AsyncSession, queue_id: uuid.UUID
) -> list[ParticipantRead]:
    """Participants in ascending position order."""
    result = await session.execute(
        select(QueueParticipant, User, Topic.title)
        .join(User, User.id == QueueParticipant.user_id)
        .outerjoin(Topic, Topic.id == QueueParticipant.topic_id)
        .where(QueueParticipant.queue_id == queue_id)
        .order_by(QueueParticipant.position)
    )
    return [
        _participant_read(participant, user, topic_title)
        for participant, user, topic_title in result.all()
    ]


# ---------------------------------------------------------------------------
# Topic claims
# ---------------------------------------------------------------------------


async def _claim_topic(
    session: AsyncSession, topic_id: uuid.UUID, user_id: uuid.UUID
) -> QueueParticipant:
    async with topic_lock(topic_id):
        async with atomic(session):
            topic = await lock_topic_row(session, topic_id)
            if topic is None:
                raise NotFound("Topic not found")

            participant = await get_participant_or_404(session, topic.queue_id, user_id)
            if participant.topic_id == topic.id:
                return participant

            taken = await count_topic_claims(session, topic.id)
            if taken >= topic.max_participants:
                raise TopicFull()

            previous_topic_id = participant.topic_id
            participant.topic_id = topic.id
            _reset_confirmation(participant)
            session.add(participant)
            await session.flush()

    log.info(
        "topic.claimed",
        topic_id=str(topic_id),
        user_id=str(user_id),
        previous_topic_id=str(previous_topic_id) if previous_topic_id else None,
    )
    return participant


async def set_participant_topic(
    session: AsyncSession,
    queue_id: uuid.UUID,
    user_id: uuid.UUID,
    topic_title: str,
) -> QueueParticipant:
    """Claim the queue's topic named ``topic_title`` for the participant."""
    result = await session.execute(
        select(Topic.id).where(Topic.queue_id == queue_id, Topic.title == topic_title)
    )
    topic_id = result.scalar_one_or_none()
    if topic_id is None:
        raise NotFound("Topic not found")
    return await _claim_topic(session, topic_id, user_id)


async def select_topic(
    session: AsyncSession, topic_id: uuid.UUID, user_id: uuid.UUID
) -> QueueParticipant:
    """Claim a topic by id. Re-selecting the topic already held is a no-op."""
    return await _claim_topic(session, topic_id, user_id)


async def clear_participant_topic(
    session: AsyncSession, queue_id: uuid.UUID, user_id: uuid.UUID
) -> Optional[QueueParticipant]:
    """Release the participant's topic claim, if any. Idempotent."""
    async with atomic(session):
        participant = await get_participant(session, queue_id, user_id)
        released = participant.topic_id if participant else None
        if released is not None:
            participant.topic_id = None
            _reset_confirmation(participant)
            session.add(participant)
            await session.flush()

    if released is not None:
        log.info("topic.released", topic_id=str(released), user_id=str(user_id))
    return participant


async def confirm_participant_topic(
    session: AsyncSession,
    queue_id: uuid.UUID,
    user_id: uuid.UUID,
    confirmed_by: uuid.UUID,
) -> QueueParticipant:
    """Mark a participant's current topic choice as approved by staff.

    The write only lands if the participant still holds the topic that was
    read; a claim switched in between raises Conflict.
    """
    async with atomic(session):
        participant = await get_participant_or_404(session, queue_id, user_id)
        seen_topic_id = participant.topic_id
        if seen_topic_id is None:
            raise NotFound("Participant has not selected a topic")

        result = await session.execute(
            update(QueueParticipant)
            .where(
                QueueParticipant.id == participant.id,
                QueueParticipant.topic_id == seen_topic_id,
            )
            .values(
                topic_confirmed=True,
                topic_confirmed_by_user_id=confirmed_by,
                topic_confirmed_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise Conflict("Participant changed their topic, reload and try again")
        await session.refresh(participant)

    log.info(
        "topic.confirmed",
        topic_id=str(participant.topic_id),
        user_id=str(user_id),
        confirmed_by=str(confirmed_by),
    )
    return participant
