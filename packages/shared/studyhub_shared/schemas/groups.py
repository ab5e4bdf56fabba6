"""
Group-related Pydantic schemas shared between server and clients.

Covers: group CRUD request/response, membership and roles, invitations,
and the group activity log.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from .common import GroupRole


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class GroupCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Group display name")
    description: Optional[str] = Field(None, max_length=1000)


class MemberRoleUpdateRequest(BaseModel):
    role: GroupRole


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class GroupResponse(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class GroupListItem(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    role: GroupRole  # the requesting user's role in this group

    model_config = {"from_attributes": True}


class GroupListResponse(BaseModel):
    data: list[GroupListItem]


class MemberResponse(BaseModel):
    user_id: uuid.UUID
    first_name: str
    last_name: str
    middle_name: Optional[str] = None
    telegram_username: Optional[str] = None
    role: GroupRole
    joined_at: datetime


class MemberListResponse(BaseModel):
    data: list[MemberResponse]


class InvitationResponse(BaseModel):
    token: uuid.UUID
    group_id: uuid.UUID
    invited_by_user_id: uuid.UUID
    expires_at: datetime
    created_at: datetime

    model_config = {"from_attributes": True}


class InvitationAcceptResponse(BaseModel):
    group: GroupResponse
    role: GroupRole


class ActivityEventResponse(BaseModel):
    id: uuid.UUID
    type: str
    actor_id: Optional[uuid.UUID] = None
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime

    model_config = {"from_attributes": True}


class ActivityListResponse(BaseModel):
    data: list[ActivityEventResponse]
