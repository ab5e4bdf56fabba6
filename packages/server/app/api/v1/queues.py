"""
Queue endpoints: CRUD, joining and leaving, participants and topic claims.

- Any member can read queues, join, leave and claim a topic.
- Leaders and assistants create and edit queues and confirm topic choices;
  a queue's creator may always edit it. Only leaders delete queues.
- Activity events are emitted after every committed mutation.
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedMember, require_leader, require_member, require_staff
from app.core.database import get_session
from app.core.errors import Forbidden, NotFound
from app.core.events import broadcast_event
from app.models.queue import Queue
from app.services import queues as queue_service
from app.services import signup as signup_service
from studyhub_shared.schemas.common import GroupAction
from studyhub_shared.schemas.queues import (
    ParticipantRead,
    QueueCreate,
    QueueRead,
    QueueUpdate,
    TopicSelectRequest,
)

router = APIRouter()


# ---------------------------------------------------------------------------
# Queue CRUD
# ---------------------------------------------------------------------------


@router.get("", response_model=List[QueueRead])
async def list_queues(
    groupId: uuid.UUID,
    day: Optional[date] = Query(None, alias="date"),
    member: AuthenticatedMember = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """List the group's queues, optionally only those on one calendar day."""
    if day is not None:
        queues = await queue_service.list_queues_for_date(session, member.group_id, day)
    else:
        queues = await queue_service.list_group_queues(session, member.group_id)
    return await queue_service.enrich_queues(session, queues)


@router.post("", response_model=QueueRead, status_code=201)
async def create_queue(
    groupId: uuid.UUID,
    queue_in: QueueCreate,
    member: AuthenticatedMember = Depends(require_staff),
    session: AsyncSession = Depends(get_session),
):
    """Create a queue (leader or assistant)."""
    queue = await queue_service.create_queue(session, queue_in, member.group_id, member.user_id)
    await session.commit()
    await session.refresh(queue)

    await broadcast_event(
        session=session,
        group_id=member.group_id,
        event_type="queue.created",
        payload={
            "queue_id": str(queue.id),
            "title": queue.title,
            "date": queue.date.isoformat(),
            "max_participants": queue.max_participants,
        },
        actor_id=member.user_id,
    )
    return await queue_service.enrich_queue(session, queue)


@router.get("/{queueId}", response_model=QueueRead)
async def get_queue(
    groupId: uuid.UUID,
    queueId: uuid.UUID,
    member: AuthenticatedMember = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    queue = await queue_service.get_queue_or_404(session, queueId, member.group_id)
    return await queue_service.enrich_queue(session, queue)


@router.patch("/{queueId}", response_model=QueueRead)
async def update_queue(
    groupId: uuid.UUID,
    queueId: uuid.UUID,
    queue_in: QueueUpdate,
    member: AuthenticatedMember = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Update a queue (leader, assistant or the queue's creator)."""
    queue = await queue_service.get_queue_or_404(session, queueId, member.group_id)
    if not member.can(GroupAction.EDIT) and queue.created_by_user_id != member.user_id:
        raise Forbidden("Leader or assistant role required")

    queue = await queue_service.update_queue(session, queue, queue_in)

    await broadcast_event(
        session=session,
        group_id=member.group_id,
        event_type="queue.updated",
        payload={
            "queue_id": str(queue.id),
            "fields": sorted(queue_in.model_dump(exclude_unset=True)),
        },
        actor_id=member.user_id,
    )
    return await queue_service.enrich_queue(session, queue)


@router.delete("/{queueId}", status_code=204)
async def delete_queue(
    groupId: uuid.UUID,
    queueId: uuid.UUID,
    member: AuthenticatedMember = Depends(require_leader),
    session: AsyncSession = Depends(get_session),
):
    """Delete a queue with its participants and topics (leader only)."""
    queue = await queue_service.get_queue_or_404(session, queueId, member.group_id)
    title = queue.title
    await queue_service.delete_queue(session, queue)

    await broadcast_event(
        session=session,
        group_id=member.group_id,
        event_type="queue.deleted",
        payload={"queue_id": str(queueId), "title": title},
        actor_id=member.user_id,
    )


# ---------------------------------------------------------------------------
# Joining and leaving
# ---------------------------------------------------------------------------


@router.post("/{queueId}/join", response_model=ParticipantRead, status_code=201)
async def join_queue(
    groupId: uuid.UUID,
    queueId: uuid.UUID,
    member: AuthenticatedMember = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Join the queue; the caller gets the next position."""
    await queue_service.get_queue_or_404(session, queueId, member.group_id)
    participant = await signup_service.join_queue(session, queueId, member.user_id)

    await broadcast_event(
        session=session,
        group_id=member.group_id,
        event_type="queue.joined",
        payload={
            "queue_id": str(queueId),
            "user_id": str(member.user_id),
            "position": participant.position,
        },
        actor_id=member.user_id,
    )
    return await signup_service.enrich_participant(session, participant)


@router.post("/{queueId}/leave")
async def leave_queue(
    groupId: uuid.UUID,
    queueId: uuid.UUID,
    member: AuthenticatedMember = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Leave the queue. Leaving a queue you are not in is not an error."""
    queue = await session.get(Queue, queueId)
    if queue is not None and queue.group_id != member.group_id:
        raise NotFound("Queue not found")

    removed = await signup_service.leave_queue(session, queueId, member.user_id)
    if removed:
        await broadcast_event(
            session=session,
            group_id=member.group_id,
            event_type="queue.left",
            payload={"queue_id": str(queueId), "user_id": str(member.user_id)},
            actor_id=member.user_id,
        )
    return {"removed": removed}


# ---------------------------------------------------------------------------
# Participants and topic claims
# ---------------------------------------------------------------------------


@router.get("/{queueId}/participants", response_model=List[ParticipantRead])
async def list_participants(
    groupId: uuid.UUID,
    queueId: uuid.UUID,
    member: AuthenticatedMember = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Participants in position order, with user and claimed topic."""
    await queue_service.get_queue_or_404(session, queueId, member.group_id)
    return await signup_service.list_participants(session, queueId)


@router.put("/{queueId}/participants/me/topic", response_model=ParticipantRead)
async def set_my_topic(
    groupId: uuid.UUID,
    queueId: uuid.UUID,
    body: TopicSelectRequest,
    member: AuthenticatedMember = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Claim a topic of this queue by its title."""
    await queue_service.get_queue_or_404(session, queueId, member.group_id)
    participant = await signup_service.set_participant_topic(
        session, queueId, member.user_id, body.title
    )

    await broadcast_event(
        session=session,
        group_id=member.group_id,
        event_type="topic.selected",
        payload={
            "queue_id": str(queueId),
            "topic_id": str(participant.topic_id),
            "user_id": str(member.user_id),
        },
        actor_id=member.user_id,
    )
    return await signup_service.enrich_participant(session, participant)


@router.delete("/{queueId}/participants/me/topic", status_code=204)
async def clear_my_topic(
    groupId: uuid.UUID,
    queueId: uuid.UUID,
    member: AuthenticatedMember = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Release the caller's topic claim, if any."""
    await queue_service.get_queue_or_404(session, queueId, member.group_id)
    await signup_service.clear_participant_topic(session, queueId, member.user_id)


@router.post(
    "/{queueId}/participants/{userId}/topic/confirm",
    response_model=ParticipantRead,
)
async def confirm_topic(
    groupId: uuid.UUID,
    queueId: uuid.UUID,
    userId: uuid.UUID,
    member: AuthenticatedMember = Depends(require_staff),
    session: AsyncSession = Depends(get_session),
):
    """Approve a participant's topic choice (leader or assistant)."""
    await queue_service.get_queue_or_404(session, queueId, member.group_id)
    participant = await signup_service.confirm_participant_topic(
        session, queueId, userId, member.user_id
    )

    await broadcast_event(
        session=session,
        group_id=member.group_id,
        event_type="topic.confirmed",
        payload={
            "queue_id": str(queueId),
            "topic_id": str(participant.topic_id),
            "user_id": str(userId),
        },
        actor_id=member.user_id,
    )
    return await signup_service.enrich_participant(session, participant)
