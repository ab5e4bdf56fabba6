"""
Topic endpoints, nested under a queue.
"""

from __future__ import annotations

import uuid
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedMember, require_member, require_staff
from app.core.database import get_session
from app.core.events import broadcast_event
from app.services import queues as queue_service
from app.services import signup as signup_service
from app.services import topics as topic_service
from studyhub_shared.schemas.queues import ParticipantRead
from studyhub_shared.schemas.topics import TopicCreate, TopicRead, TopicUpdate

router = APIRouter()


@router.get("", response_model=List[TopicRead])
async def list_topics(
    groupId: uuid.UUID,
    queueId: uuid.UUID,
    member: AuthenticatedMember = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Topics of the queue with how many claims each has left."""
    await queue_service.get_queue_or_404(session, queueId, member.group_id)
    topics = await topic_service.list_topics(session, queueId)
    return await topic_service.enrich_topics(session, topics)


@router.post("", response_model=TopicRead, status_code=201)
async def create_topic(
    groupId: uuid.UUID,
    queueId: uuid.UUID,
    topic_in: TopicCreate,
    member: AuthenticatedMember = Depends(require_staff),
    session: AsyncSession = Depends(get_session),
):
    await queue_service.get_queue_or_404(session, queueId, member.group_id)
    topic = await topic_service.create_topic(session, queueId, topic_in)

    await broadcast_event(
        session=session,
        group_id=member.group_id,
        event_type="topic.created",
        payload={"queue_id": str(queueId), "topic_id": str(topic.id), "title": topic.title},
        actor_id=member.user_id,
    )
    return topic_service.topic_read(topic, 0)


@router.patch("/{topicId}", response_model=TopicRead)
async def update_topic(
    groupId: uuid.UUID,
    queueId: uuid.UUID,
    topicId: uuid.UUID,
    topic_in: TopicUpdate,
    member: AuthenticatedMember = Depends(require_staff),
    session: AsyncSession = Depends(get_session),
):
    await queue_service.get_queue_or_404(session, queueId, member.group_id)
    topic = await topic_service.get_topic_or_404(session, topicId, queueId)
    topic = await topic_service.update_topic(session, topic, topic_in)

    await broadcast_event(
        session=session,
        group_id=member.group_id,
        event_type="topic.updated",
        payload={
            "queue_id": str(queueId),
            "topic_id": str(topicId),
            "fields": sorted(topic_in.model_dump(exclude_unset=True)),
        },
        actor_id=member.user_id,
    )
    enriched = await topic_service.enrich_topics(session, [topic])
    return enriched[0]


@router.delete("/{topicId}", status_code=204)
async def delete_topic(
    groupId: uuid.UUID,
    queueId: uuid.UUID,
    topicId: uuid.UUID,
    member: AuthenticatedMember = Depends(require_staff),
    session: AsyncSession = Depends(get_session),
):
    """Delete a topic; participants who claimed it are left without one."""
    await queue_service.get_queue_or_404(session, queueId, member.group_id)
    topic = await topic_service.get_topic_or_404(session, topicId, queueId)
    await topic_service.delete_topic(session, topic)

    await broadcast_event(
        session=session,
        group_id=member.group_id,
        event_type="topic.deleted",
        payload={"queue_id": str(queueId), "topic_id": str(topicId)},
        actor_id=member.user_id,
    )


@router.post("/{topicId}/select", response_model=ParticipantRead)
async def select_topic(
    groupId: uuid.UUID,
    queueId: uuid.UUID,
    topicId: uuid.UUID,
    member: AuthenticatedMember = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Claim a topic by id. The caller must already be in the queue."""
    await queue_service.get_queue_or_404(session, queueId, member.group_id)
    await topic_service.get_topic_or_404(session, topicId, queueId)
    participant = await signup_service.select_topic(session, topicId, member.user_id)

    await broadcast_event(
        session=session,
        group_id=member.group_id,
        event_type="topic.selected",
        payload={
            "queue_id": str(queueId),
            "topic_id": str(topicId),
            "user_id": str(member.user_id),
        },
        actor_id=member.user_id,
    )
    return await signup_service.enrich_participant(session, participant)
