"""
Group activity log (leaders and assistants).
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedMember, require_staff
from app.core.database import get_session
from app.core.events import MAX_ACTIVITY_PAGE, list_group_activity
from studyhub_shared.schemas.groups import ActivityEventResponse, ActivityListResponse

router = APIRouter()


@router.get("", response_model=ActivityListResponse)
async def list_activity(
    groupId: uuid.UUID,
    limit: int = Query(50, ge=1, le=MAX_ACTIVITY_PAGE),
    member: AuthenticatedMember = Depends(require_staff),
    session: AsyncSession = Depends(get_session),
):
    """Most recent activity first."""
    events = await list_group_activity(session, member.group_id, limit)
    return ActivityListResponse(
        data=[ActivityEventResponse.model_validate(e, from_attributes=True) for e in events]
    )
