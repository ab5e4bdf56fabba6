"""
Queue registry: business logic for queue lifecycle and date lookup.

Handles:
- Queue CRUD scoped to a group
- Capacity changes serialized with signups on the same queue
- Calendar-day lookup in the deployment's reference time zone
- Enrichment with live participant counts for API responses
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, time, timezone
from typing import Optional, Sequence
from zoneinfo import ZoneInfo

import structlog
from sqlalchemy import delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import get_settings
from app.core.database import atomic
from app.core.errors import InvalidCapacity, NotFound
from app.core.locks import queue_lock
from app.models.participant import QueueParticipant
from app.models.queue import Queue
from app.models.topic import Topic
from studyhub_shared.schemas.queues import QueueCreate, QueueRead, QueueUpdate, queue_read

log = structlog.get_logger()
settings = get_settings()

END_OF_DAY = time(23, 59, 59, 999000)

# Columns a PATCH may not null out
_REQUIRED_FIELDS = {"title", "date", "max_participants"}


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------


def reference_zone() -> ZoneInfo:
    return ZoneInfo(settings.timezone)


def to_utc(value: datetime, tz: Optional[ZoneInfo] = None) -> datetime:
    """Normalize to UTC. Naive values are read in the reference zone."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=tz or reference_zone())
    return value.astimezone(timezone.utc)


def day_bounds(day: date, tz: Optional[ZoneInfo] = None) -> tuple[datetime, datetime]:
    """Inclusive UTC bounds of a calendar day in the reference zone.

    The day runs from 00:00:00.000 to 23:59:59.999 local time.
    """
    tz = tz or reference_zone()
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day, END_OF_DAY, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def get_queue_or_404(
    session: AsyncSession, queue_id: uuid.UUID, group_id: uuid.UUID
) -> Queue:
    queue = await session.get(Queue, queue_id)
    if not queue or queue.group_id != group_id:
        raise NotFound("Queue not found")
    return queue


async def lock_queue_row(session: AsyncSession, queue_id: uuid.UUID) -> Optional[Queue]:
    """Re-read a queue with a row lock held until the transaction ends."""
    result = await session.execute(
        select(Queue)
        .where(Queue.id == queue_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def count_participants(session: AsyncSession, queue_id: uuid.UUID) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(QueueParticipant)
        .where(QueueParticipant.queue_id == queue_id)
    )
    return result.scalar_one()


async def _participant_counts(
    session: AsyncSession, queue_ids: Sequence[uuid.UUID]
) -> dict[uuid.UUID, int]:
    if not queue_ids:
        return {}
    result = await session.execute(
        select(QueueParticipant.queue_id, func.count())
        .where(QueueParticipant.queue_id.in_(queue_ids))
        .group_by(QueueParticipant.queue_id)
    )
    return {queue_id: count for queue_id, count in result.all()}


async def enrich_queue(session: AsyncSession, queue: Queue) -> QueueRead:
    return queue_read(queue, await count_participants(session, queue.id))


async def enrich_queues(session: AsyncSession, queues: Sequence[Queue]) -> list[QueueRead]:
    counts = await _participant_counts(session, [q.id for q in queues])
    return [queue_read(q, counts.get(q.id, 0)) for q in queues]


def _check_capacity(max_participants: int, taken: int = 0) -> None:
    if max_participants < 1:
        raise InvalidCapacity()
    if max_participants < taken:
        raise InvalidCapacity(
            f"Capacity {max_participants} is below the {taken} participants already signed up"
        )


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


async def create_queue(
    session: AsyncSession,
    queue_in: QueueCreate,
    group_id: uuid.UUID,
    creator_id: uuid.UUID,
) -> Queue:
    max_participants = queue_in.max_participants
    if max_participants is None:
        max_participants = settings.default_queue_capacity
    _check_capacity(max_participants)

    queue = Queue(
        group_id=group_id,
        created_by_user_id=creator_id,
        title=queue_in.title,
        description=queue_in.description,
        subject=queue_in.subject,
        date=to_utc(queue_in.date),
        max_participants=max_participants,
    )
    session.add(queue)
    await session.flush()

    log.info(
        "queue.created",
        queue_id=str(queue.id),
        group_id=str(group_id),
        max_participants=max_participants,
    )
    return queue


async def list_group_queues(
    session: AsyncSession,
    group_id: uuid.UUID,
    day: Optional[date] = None,
) -> list[Queue]:
    """All queues of a group ordered by date, optionally limited to one day."""
    stmt = select(Queue).where(Queue.group_id == group_id)
    if day is not None:
        start, end = day_bounds(day)
        stmt = stmt.where(Queue.date >= start, Queue.date <= end)
    result = await session.execute(stmt.order_by(Queue.date, Queue.created_at))
    return list(result.scalars().all())


async def list_queues_for_date(
    session: AsyncSession, group_id: uuid.UUID, day: date
) -> list[Queue]:
    """The group's queues whose date falls on ``day`` in the reference zone."""
    start, end = day_bounds(day)
    result = await session.execute(
        select(Queue)
        .where(Queue.group_id == group_id, Queue.date >= start, Queue.date <= end)
        .order_by(Queue.date)
    )
    return list(result.scalars().all())


async def update_queue(
    session: AsyncSession,
    queue: Queue,
    queue_in: QueueUpdate,
) -> Queue:
    """Apply a partial update and commit it.

    Runs under the queue's lock so a capacity change cannot interleave
    with a join on the same queue.
    """
    update_data = {
        field: value
        for field, value in queue_in.model_dump(exclude_unset=True).items()
        if value is not None or field not in _REQUIRED_FIELDS
    }
    if "date" in update_data:
        update_data["date"] = to_utc(update_data["date"])

    async with queue_lock(queue.id):
        async with atomic(session):
            locked = await lock_queue_row(session, queue.id)
            if locked is None:
                raise NotFound("Queue not found")

            if "max_participants" in update_data:
                taken = await count_participants(session, locked.id)
                _check_capacity(update_data["max_participants"], taken)

            for field, value in update_data.items():
                setattr(locked, field, value)
            session.add(locked)
            await session.flush()

    log.info("queue.updated", queue_id=str(locked.id), fields=sorted(update_data))
    return locked


async def delete_queue(session: AsyncSession, queue: Queue) -> None:
    """Delete a queue together with its participants and topics, atomically."""
    queue_id = queue.id
    async with queue_lock(queue_id):
        async with atomic(session):
            await session.execute(
                delete(QueueParticipant).where(QueueParticipant.queue_id == queue_id)
            )
            await session.execute(delete(Topic).where(Topic.queue_id == queue_id))
            await session.delete(queue)
            await session.flush()

    log.info("queue.deleted", queue_id=str(queue_id), group_id=str(queue.group_id))
