"""
Group API endpoints.

GET    /api/v1/groups                              - List groups for the caller
POST   /api/v1/groups                              - Create a group (caller becomes leader)
GET    /api/v1/groups/{groupId}                    - Group details
GET    /api/v1/groups/{groupId}/members            - List members with roles
PATCH  /api/v1/groups/{groupId}/members/{userId}   - Change a member's role
DELETE /api/v1/groups/{groupId}/members/{userId}   - Remove a member
POST   /api/v1/groups/{groupId}/invitations        - Create an invitation token
POST   /api/v1/invitations/{token}/accept          - Join a group by invitation
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import (
    AuthenticatedMember,
    get_current_user,
    require_leader,
    require_member,
)
from app.core.database import get_session
from app.core.events import broadcast_event
from app.models.user import User
from app.services import groups as group_service
from studyhub_shared.schemas.groups import (
    GroupCreateRequest,
    GroupListResponse,
    GroupResponse,
    InvitationAcceptResponse,
    InvitationResponse,
    MemberListResponse,
    MemberResponse,
    MemberRoleUpdateRequest,
)

# ---------------------------------------------------------------------------
# Routes that are not scoped to one group
# ---------------------------------------------------------------------------
router_global = APIRouter()


@router_global.get("/groups", response_model=GroupListResponse, tags=["Groups"])
async def list_groups(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """List groups the caller belongs to."""
    items = await group_service.list_user_groups(user.id, session)
    return GroupListResponse(data=items)


@router_global.post("/groups", response_model=GroupResponse, status_code=201, tags=["Groups"])
async def create_group(
    body: GroupCreateRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Create a group. The creator becomes its leader."""
    group = await group_service.create_group(body, user.id, session)
    await session.commit()
    await session.refresh(group)

    await broadcast_event(
        session=session,
        group_id=group.id,
        event_type="group.created",
        payload={"group_id": str(group.id), "name": group.name},
        actor_id=user.id,
    )
    return GroupResponse.model_validate(group)


@router_global.post(
    "/invitations/{token}/accept",
    response_model=InvitationAcceptResponse,
    tags=["Groups"],
)
async def accept_invitation(
    token: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Join the group behind an invitation token."""
    group, role = await group_service.accept_invitation(token, user.id, session)
    await session.commit()

    await broadcast_event(
        session=session,
        group_id=group.id,
        event_type="group.member_joined",
        payload={"user_id": str(user.id), "role": role.value},
        actor_id=user.id,
    )
    return InvitationAcceptResponse(group=GroupResponse.model_validate(group), role=role)


# ---------------------------------------------------------------------------
# Group-scoped routes (mounted under /groups/{groupId})
# ---------------------------------------------------------------------------
router_scoped = APIRouter()


@router_scoped.get("", response_model=GroupResponse)
async def get_group(
    groupId: uuid.UUID,
    member: AuthenticatedMember = Depends(require_member),
):
    """Group details."""
    return GroupResponse.model_validate(member.group)


@router_scoped.get("/members", response_model=MemberListResponse)
async def list_members(
    groupId: uuid.UUID,
    member: AuthenticatedMember = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """List members of the group with their roles."""
    items = await group_service.list_members(member.group_id, session)
    return MemberListResponse(data=items)


@router_scoped.patch("/members/{userId}", response_model=MemberResponse)
async def update_member_role(
    groupId: uuid.UUID,
    userId: uuid.UUID,
    body: MemberRoleUpdateRequest,
    member: AuthenticatedMember = Depends(require_leader),
    session: AsyncSession = Depends(get_session),
):
    """Change a member's role (leader only)."""
    await group_service.update_member_role(member.group_id, userId, body.role, session)
    await session.commit()

    await broadcast_event(
        session=session,
        group_id=member.group_id,
        event_type="group.member_role_changed",
        payload={"user_id": str(userId), "role": body.role.value},
        actor_id=member.user_id,
    )

    members = await group_service.list_members(member.group_id, session)
    return next(m for m in members if m["user_id"] == userId)


@router_scoped.delete("/members/{userId}", status_code=204)
async def remove_member(
    groupId: uuid.UUID,
    userId: uuid.UUID,
    member: AuthenticatedMember = Depends(require_leader),
    session: AsyncSession = Depends(get_session),
):
    """Remove a member from the group (leader only)."""
    await group_service.remove_member(member.group_id, userId, session)
    await session.commit()

    await broadcast_event(
        session=session,
        group_id=member.group_id,
        event_type="group.member_removed",
        payload={"user_id": str(userId)},
        actor_id=member.user_id,
    )


@router_scoped.post("/invitations", response_model=InvitationResponse, status_code=201)
async def create_invitation(
    groupId: uuid.UUID,
    member: AuthenticatedMember = Depends(require_leader),
    session: AsyncSession = Depends(get_session),
):
    """Create a single-use invitation token (leader only)."""
    invitation = await group_service.create_invitation(member.group_id, member.user_id, session)
    await session.commit()
    await session.refresh(invitation)
    return InvitationResponse.model_validate(invitation)
