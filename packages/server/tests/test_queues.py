"""
Tests for the queue registry: creation, calendar-day lookup, updates, deletion.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy import func
from sqlmodel import select

from app.core.errors import InvalidCapacity, NotFound
from app.models.group import Group
from app.models.participant import QueueParticipant
from app.models.topic import Topic
from app.services import queues as queue_service
from app.services import signup as signup_service
from app.services import topics as topic_service
from studyhub_shared.schemas.queues import QueueCreate, QueueUpdate
from studyhub_shared.schemas.topics import TopicCreate


def _queue_in(title="Lab 1", when=None, max_participants=None) -> QueueCreate:
    return QueueCreate(
        title=title,
        date=when or datetime(2025, 9, 1, 10, 0, tzinfo=timezone.utc),
        max_participants=max_participants,
    )


def _naive_utc(value: datetime) -> datetime:
    """SQLite hands datetimes back without tzinfo; compare in naive UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# ---------------------------------------------------------------------------
# Date handling
# ---------------------------------------------------------------------------


class TestDates:
    def test_naive_value_read_in_reference_zone(self):
        moscow = ZoneInfo("Europe/Moscow")
        result = queue_service.to_utc(datetime(2025, 9, 1, 10, 0), moscow)
        assert result == datetime(2025, 9, 1, 7, 0, tzinfo=timezone.utc)

    def test_aware_value_converted(self):
        moscow = ZoneInfo("Europe/Moscow")
        result = queue_service.to_utc(datetime(2025, 9, 1, 10, 0, tzinfo=moscow))
        assert result == datetime(2025, 9, 1, 7, 0, tzinfo=timezone.utc)

    def test_day_bounds_in_utc(self):
        start, end = queue_service.day_bounds(date(2025, 9, 1), ZoneInfo("UTC"))
        assert start == datetime(2025, 9, 1, 0, 0, tzinfo=timezone.utc)
        assert end == datetime(2025, 9, 1, 23, 59, 59, 999000, tzinfo=timezone.utc)

    def test_day_bounds_shift_with_zone(self):
        start, end = queue_service.day_bounds(date(2025, 9, 1), ZoneInfo("Europe/Moscow"))
        assert start == datetime(2025, 8, 31, 21, 0, tzinfo=timezone.utc)
        assert end == datetime(2025, 9, 1, 20, 59, 59, 999000, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


class TestCreateQueue:
    @pytest.mark.asyncio
    async def test_default_capacity(self, session, study_group):
        g = study_group
        queue = await queue_service.create_queue(session, _queue_in(), g.group.id, g.leader.id)
        await session.commit()
        assert queue.max_participants == 20
        assert queue.last_position == 0

    @pytest.mark.asyncio
    async def test_explicit_capacity(self, session, study_group):
        g = study_group
        queue = await queue_service.create_queue(
            session, _queue_in(max_participants=2), g.group.id, g.leader.id
        )
        assert queue.max_participants == 2

    @pytest.mark.asyncio
    async def test_stored_in_utc(self, session, study_group):
        g = study_group
        moscow = ZoneInfo("Europe/Moscow")
        queue = await queue_service.create_queue(
            session,
            _queue_in(when=datetime(2025, 9, 1, 10, 0, tzinfo=moscow)),
            g.group.id,
            g.leader.id,
        )
        await session.commit()
        await session.refresh(queue)
        assert _naive_utc(queue.date) == datetime(2025, 9, 1, 7, 0)

    @pytest.mark.asyncio
    async def test_get_queue_from_other_group_is_not_found(self, session, study_group):
        g = study_group
        queue = await queue_service.create_queue(session, _queue_in(), g.group.id, g.leader.id)
        await session.commit()
        with pytest.raises(NotFound):
            await queue_service.get_queue_or_404(session, queue.id, uuid.uuid4())


class TestListQueues:
    @pytest.mark.asyncio
    async def test_day_bounds_inclusive(self, session, study_group):
        g = study_group
        for title, when in [
            ("before", datetime(2025, 8, 31, 23, 59, 59, tzinfo=timezone.utc)),
            ("start", datetime(2025, 9, 1, 0, 0, 0, tzinfo=timezone.utc)),
            ("end", datetime(2025, 9, 1, 23, 59, 59, 999000, tzinfo=timezone.utc)),
            ("after", datetime(2025, 9, 2, 0, 0, 0, tzinfo=timezone.utc)),
        ]:
            await queue_service.create_queue(
                session, _queue_in(title=title, when=when), g.group.id, g.leader.id
            )
        await session.commit()

        queues = await queue_service.list_queues_for_date(session, g.group.id, date(2025, 9, 1))
        assert [q.title for q in queues] == ["start", "end"]

    @pytest.mark.asyncio
    async def test_date_lookup_scoped_to_group(self, session, study_group):
        g = study_group
        other = Group(name="MATH-200")
        session.add(other)
        await session.commit()

        when = datetime(2025, 9, 1, 10, tzinfo=timezone.utc)
        await queue_service.create_queue(
            session, _queue_in(title="ours", when=when), g.group.id, g.leader.id
        )
        await queue_service.create_queue(
            session, _queue_in(title="theirs", when=when), other.id, g.leader.id
        )
        await session.commit()

        queues = await queue_service.list_queues_for_date(session, g.group.id, date(2025, 9, 1))
        assert [q.title for q in queues] == ["ours"]

    @pytest.mark.asyncio
    async def test_counts_participants(self, session, study_group):
        g = study_group
        queue = await queue_service.create_queue(session, _queue_in(), g.group.id, g.leader.id)
        await session.commit()
        await signup_service.join_queue(session, queue.id, g.alice.id)

        queues = await queue_service.list_group_queues(session, g.group.id)
        [read] = await queue_service.enrich_queues(session, queues)
        assert read.participant_count == 1
        assert read.available == 19

    @pytest.mark.asyncio
    async def test_ordered_by_date(self, session, study_group):
        g = study_group
        await queue_service.create_queue(
            session,
            _queue_in(title="later", when=datetime(2025, 9, 3, tzinfo=timezone.utc)),
            g.group.id,
            g.leader.id,
        )
        await queue_service.create_queue(
            session,
            _queue_in(title="sooner", when=datetime(2025, 9, 2, tzinfo=timezone.utc)),
            g.group.id,
            g.leader.id,
        )
        await session.commit()
        queues = await queue_service.list_group_queues(session, g.group.id)
        assert [q.title for q in queues] == ["sooner", "later"]


class TestUpdateQueue:
    @pytest.mark.asyncio
    async def test_rename(self, session, study_group):
        g = study_group
        queue = await queue_service.create_queue(session, _queue_in(), g.group.id, g.leader.id)
        await session.commit()
        queue = await queue_service.update_queue(session, queue, QueueUpdate(title="Lab 2"))
        assert queue.title == "Lab 2"

    @pytest.mark.asyncio
    async def test_shrink_below_participants_rejected(self, session, study_group):
        g = study_group
        queue = await queue_service.create_queue(session, _queue_in(), g.group.id, g.leader.id)
        await session.commit()
        await signup_service.join_queue(session, queue.id, g.alice.id)
        await signup_service.join_queue(session, queue.id, g.bob.id)

        with pytest.raises(InvalidCapacity):
            await queue_service.update_queue(session, queue, QueueUpdate(max_participants=1))

        await session.refresh(queue)
        assert queue.max_participants == 20

    @pytest.mark.asyncio
    async def test_shrink_to_current_count_allowed(self, session, study_group):
        g = study_group
        queue = await queue_service.create_queue(session, _queue_in(), g.group.id, g.leader.id)
        await session.commit()
        await signup_service.join_queue(session, queue.id, g.alice.id)

        queue = await queue_service.update_queue(session, queue, QueueUpdate(max_participants=1))
        assert queue.max_participants == 1

    @pytest.mark.asyncio
    async def test_null_title_ignored(self, session, study_group):
        g = study_group
        queue = await queue_service.create_queue(session, _queue_in(), g.group.id, g.leader.id)
        await session.commit()
        queue = await queue_service.update_queue(
            session, queue, QueueUpdate(title=None, description="Bring a laptop")
        )
        assert queue.title == "Lab 1"
        assert queue.description == "Bring a laptop"


class TestDeleteQueue:
    @pytest.mark.asyncio
    async def test_removes_participants_and_topics(self, session, study_group):
        g = study_group
        queue = await queue_service.create_queue(session, _queue_in(), g.group.id, g.leader.id)
        await session.commit()
        await topic_service.create_topic(session, queue.id, TopicCreate(title="Graphs"))
        await signup_service.join_queue(session, queue.id, g.alice.id)
        await signup_service.set_participant_topic(session, queue.id, g.alice.id, "Graphs")
        queue_id = queue.id

        await queue_service.delete_queue(session, queue)

        participants = await session.execute(
            select(func.count()).select_from(QueueParticipant).where(QueueParticipant.queue_id == queue_id)
        )
        topics = await session.execute(
            select(func.count()).select_from(Topic).where(Topic.queue_id == queue_id)
        )
        assert participants.scalar_one() == 0
        assert topics.scalar_one() == 0
        with pytest.raises(NotFound):
            await queue_service.get_queue_or_404(session, queue_id, g.group.id)
