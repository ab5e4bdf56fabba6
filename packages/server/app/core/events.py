"""
Group activity log with Redis Pub/Sub fan-out.

Every committed mutation of a group's queues, topics or membership is
recorded as an ActivityEvent and published on ``<prefix>:<group_id>`` so that
notification workers (Telegram bot, dashboards) can react to it.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

import structlog
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import get_settings
from app.core.redis import get_redis
from app.models.activity import ActivityEvent

log = structlog.get_logger()
settings = get_settings()

MAX_ACTIVITY_PAGE = 200


def activity_channel(group_id: UUID) -> str:
    return f"{settings.events_channel_prefix}:{group_id}"


async def broadcast_event(
    session: AsyncSession,
    group_id: UUID,
    event_type: str,
    payload: dict[str, Any],
    actor_id: UUID | None = None,
) -> ActivityEvent:
    """
    Persist an activity event, then publish it to the group's channel.

    The mutation being reported has already been committed, so a Redis
    outage is logged and does not fail the caller.
    """
    new_event = ActivityEvent(
        group_id=group_id,
        type=event_type,
        actor_id=actor_id,
        payload=payload,
        timestamp=datetime.now(timezone.utc),
    )
    session.add(new_event)
    await session.commit()

    event_json = json.dumps({
        "id": str(new_event.id),
        "group_id": str(group_id),
        "type": event_type,
        "actor_id": str(actor_id) if actor_id else None,
        "payload": payload,
        "timestamp": new_event.timestamp.isoformat(),
    })

    try:
        redis = await get_redis()
        await redis.publish(activity_channel(group_id), event_json)
    except RedisError as exc:
        log.warning(
            "activity.publish_failed",
            group_id=str(group_id),
            event_type=event_type,
            error=str(exc),
        )

    return new_event


async def list_group_activity(
    session: AsyncSession,
    group_id: UUID,
    limit: int = 50,
) -> list[ActivityEvent]:
    """Most recent activity first."""
    limit = max(1, min(limit, MAX_ACTIVITY_PAGE))
    result = await session.execute(
        select(ActivityEvent)
        .where(ActivityEvent.group_id == group_id)
        .order_by(ActivityEvent.timestamp.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
