"""
Tests for the signup engine: joining, leaving, positions and capacity races.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy import func
from sqlmodel import select

from app.core.database import async_session_factory
from app.core.errors import AlreadyJoined, NotFound, QueueFull
from app.models.participant import QueueParticipant
from app.models.queue import Queue
from app.services import queues as queue_service
from app.services import signup as signup_service
from studyhub_shared.schemas.queues import QueueCreate


@pytest.fixture
def make_queue(session, study_group):
    async def _make(max_participants: int = 20):
        queue = await queue_service.create_queue(
            session,
            QueueCreate(
                title="Lab 1",
                date=datetime(2025, 9, 1, 10, tzinfo=timezone.utc),
                max_participants=max_participants,
            ),
            study_group.group.id,
            study_group.leader.id,
        )
        await session.commit()
        session.expunge(queue)
        return queue

    return _make


async def _participant_rows(session, queue_id) -> int:
    result = await session.execute(
        select(func.count()).select_from(QueueParticipant).where(QueueParticipant.queue_id == queue_id)
    )
    return result.scalar_one()


class TestJoinQueue:
    @pytest.mark.asyncio
    async def test_first_join_gets_position_one(self, session, study_group, make_queue):
        queue = await make_queue()
        participant = await signup_service.join_queue(session, queue.id, study_group.alice.id)
        assert participant.position == 1
        assert participant.topic_id is None

    @pytest.mark.asyncio
    async def test_join_twice_already_joined(self, session, study_group, make_queue):
        queue = await make_queue()
        await signup_service.join_queue(session, queue.id, study_group.alice.id)
        with pytest.raises(AlreadyJoined):
            await signup_service.join_queue(session, queue.id, study_group.alice.id)
        assert await _participant_rows(session, queue.id) == 1

    @pytest.mark.asyncio
    async def test_missing_queue(self, session, study_group):
        with pytest.raises(NotFound):
            await signup_service.join_queue(session, uuid.uuid4(), study_group.alice.id)

    @pytest.mark.asyncio
    async def test_unknown_user_not_found(self, session, study_group, make_queue):
        queue = await make_queue()
        with pytest.raises(NotFound):
            await signup_service.join_queue(session, queue.id, uuid.uuid4())
        assert await _participant_rows(session, queue.id) == 0

    @pytest.mark.asyncio
    async def test_full_queue_scenario(self, session, study_group, make_queue):
        """max=2: A joins (1), B joins (2), C is refused, A leaves, C joins (3)."""
        g = study_group
        queue = await make_queue(max_participants=2)

        a = await signup_service.join_queue(session, queue.id, g.alice.id)
        b = await signup_service.join_queue(session, queue.id, g.bob.id)
        assert (a.position, b.position) == (1, 2)

        with pytest.raises(QueueFull):
            await signup_service.join_queue(session, queue.id, g.assistant.id)
        assert await _participant_rows(session, queue.id) == 2

        assert await signup_service.leave_queue(session, queue.id, g.alice.id) is True
        c = await signup_service.join_queue(session, queue.id, g.assistant.id)
        assert c.position == 3

    @pytest.mark.asyncio
    async def test_positions_not_reused_after_last_leaves(self, session, study_group, make_queue):
        g = study_group
        queue = await make_queue()
        await signup_service.join_queue(session, queue.id, g.alice.id)
        await signup_service.join_queue(session, queue.id, g.bob.id)
        await signup_service.leave_queue(session, queue.id, g.bob.id)

        again = await signup_service.join_queue(session, queue.id, g.bob.id)
        assert again.position == 3

    @pytest.mark.asyncio
    async def test_queue_full_leaves_no_row(self, session, study_group, make_queue):
        g = study_group
        queue = await make_queue(max_participants=1)
        await signup_service.join_queue(session, queue.id, g.alice.id)
        with pytest.raises(QueueFull):
            await signup_service.join_queue(session, queue.id, g.bob.id)

        participant = await signup_service.get_participant(session, queue.id, g.bob.id)
        assert participant is None
        stored = await session.get(Queue, queue.id)
        assert stored.last_position == 1


class TestLeaveQueue:
    @pytest.mark.asyncio
    async def test_leave_twice_is_not_an_error(self, session, study_group, make_queue):
        queue = await make_queue()
        await signup_service.join_queue(session, queue.id, study_group.alice.id)

        assert await signup_service.leave_queue(session, queue.id, study_group.alice.id) is True
        assert await signup_service.leave_queue(session, queue.id, study_group.alice.id) is False
        assert await _participant_rows(session, queue.id) == 0

    @pytest.mark.asyncio
    async def test_leave_missing_queue(self, session, study_group):
        assert await signup_service.leave_queue(session, uuid.uuid4(), study_group.alice.id) is False

    @pytest.mark.asyncio
    async def test_no_renumbering(self, session, study_group, make_queue):
        g = study_group
        queue = await make_queue()
        for user in (g.alice, g.bob, g.assistant):
            await signup_service.join_queue(session, queue.id, user.id)
        await signup_service.leave_queue(session, queue.id, g.alice.id)

        participants = await signup_service.list_participants(session, queue.id)
        assert [p.position for p in participants] == [2, 3]


class TestListParticipants:
    @pytest.mark.asyncio
    async def test_ordered_with_user_identity(self, session, study_group, make_queue):
        g = study_group
        queue = await make_queue()
        await signup_service.join_queue(session, queue.id, g.bob.id)
        await signup_service.join_queue(session, queue.id, g.alice.id)

        participants = await signup_service.list_participants(session, queue.id)
        assert [p.user.first_name for p in participants] == ["Bob", "Alice"]
        assert [p.position for p in participants] == [1, 2]
        assert all(p.topic_title is None for p in participants)


class TestConcurrentJoins:
    @pytest.mark.asyncio
    async def test_exactly_capacity_succeed(self, make_user, add_member, study_group, make_queue):
        queue = await make_queue(max_participants=3)
        users = []
        for i in range(10):
            user = await make_user(f"Student{i}", "Racer")
            await add_member(study_group.group, user)
            users.append(user)

        async def _join(user_id):
            async with async_session_factory() as s:
                try:
                    participant = await signup_service.join_queue(s, queue.id, user_id)
                except QueueFull:
                    return None
                return participant.position

        results = await asyncio.gather(*(_join(u.id) for u in users))

        positions = sorted(p for p in results if p is not None)
        assert positions == [1, 2, 3]
        assert results.count(None) == 7

        async with async_session_factory() as s:
            assert await _participant_rows(s, queue.id) == 3

    @pytest.mark.asyncio
    async def test_same_user_concurrently_joins_once(self, study_group, make_queue):
        queue = await make_queue()

        async def _join():
            async with async_session_factory() as s:
                try:
                    await signup_service.join_queue(s, queue.id, study_group.alice.id)
                except AlreadyJoined:
                    return False
                return True

        results = await asyncio.gather(*(_join() for _ in range(5)))
        assert results.count(True) == 1

        async with async_session_factory() as s:
            assert await _participant_rows(s, queue.id) == 1
