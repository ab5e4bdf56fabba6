"""
Group service: group creation, membership and invitations.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import get_settings
from app.core.errors import Conflict, NotFound
from app.models.group import Group
from app.models.group_member import GroupMember
from app.models.invitation import GroupInvitation
from app.models.user import User
from studyhub_shared.schemas.common import GroupRole
from studyhub_shared.schemas.groups import GroupCreateRequest

log = structlog.get_logger()
settings = get_settings()


async def list_user_groups(
    user_id: uuid.UUID, session: AsyncSession
) -> list[dict]:
    """List all groups a user belongs to, with their role."""
    result = await session.execute(
        select(Group, GroupMember.role)
        .join(GroupMember, GroupMember.group_id == Group.id)
        .where(GroupMember.user_id == user_id)
        .order_by(Group.name)
    )
    return [
        {
            "id": group.id,
            "name": group.name,
            "description": group.description,
            "role": role,
        }
        for group, role in result.all()
    ]


async def create_group(
    req: GroupCreateRequest,
    creator_id: uuid.UUID,
    session: AsyncSession,
) -> Group:
    """Create a group and make the creator its leader."""
    group = Group(name=req.name, description=req.description)
    session.add(group)
    await session.flush()

    session.add(
        GroupMember(user_id=creator_id, group_id=group.id, role=GroupRole.LEADER.value)
    )
    await session.flush()

    log.info("group.created", group_id=str(group.id), creator_id=str(creator_id))
    return group


async def list_members(group_id: uuid.UUID, session: AsyncSession) -> list[dict]:
    result = await session.execute(
        select(User, GroupMember)
        .join(GroupMember, GroupMember.user_id == User.id)
        .where(GroupMember.group_id == group_id)
        .order_by(User.last_name, User.first_name)
    )
    return [
        {
            "user_id": user.id,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "middle_name": user.middle_name,
            "telegram_username": user.telegram_username,
            "role": membership.role,
            "joined_at": membership.joined_at,
        }
        for user, membership in result.all()
    ]


async def _get_membership_or_404(
    group_id: uuid.UUID, user_id: uuid.UUID, session: AsyncSession
) -> GroupMember:
    result = await session.execute(
        select(GroupMember).where(
            GroupMember.group_id == group_id, GroupMember.user_id == user_id
        )
    )
    membership = result.scalar_one_or_none()
    if not membership:
        raise NotFound("Member not found")
    return membership


async def _count_leaders(group_id: uuid.UUID, session: AsyncSession) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(GroupMember)
        .where(
            GroupMember.group_id == group_id,
            GroupMember.role == GroupRole.LEADER.value,
        )
    )
    return result.scalar_one()


async def update_member_role(
    group_id: uuid.UUID,
    user_id: uuid.UUID,
    role: GroupRole,
    session: AsyncSession,
) -> GroupMember:
    """Change a member's role. A group always keeps at least one leader."""
    membership = await _get_membership_or_404(group_id, user_id, session)

    if (
        membership.role == GroupRole.LEADER.value
        and role != GroupRole.LEADER
        and await _count_leaders(group_id, session) <= 1
    ):
        raise Conflict("Cannot demote the last leader of a group")

    old_role = membership.role
    membership.role = role.value
    session.add(membership)
    await session.flush()

    log.info(
        "group.member_role_changed",
        group_id=str(group_id),
        user_id=str(user_id),
        old_role=old_role,
        new_role=role.value,
    )
    return membership


async def remove_member(
    group_id: uuid.UUID, user_id: uuid.UUID, session: AsyncSession
) -> None:
    """Remove a member. Their queue places in the group's queues stay."""
    membership = await _get_membership_or_404(group_id, user_id, session)

    if (
        membership.role == GroupRole.LEADER.value
        and await _count_leaders(group_id, session) <= 1
    ):
        raise Conflict("Cannot remove the last leader of a group")

    await session.delete(membership)
    await session.flush()
    log.info("group.member_removed", group_id=str(group_id), user_id=str(user_id))


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------


async def create_invitation(
    group_id: uuid.UUID, invited_by: uuid.UUID, session: AsyncSession
) -> GroupInvitation:
    invitation = GroupInvitation(
        group_id=group_id,
        invited_by_user_id=invited_by,
        expires_at=datetime.now(timezone.utc) + timedelta(days=settings.invitation_ttl_days),
    )
    session.add(invitation)
    await session.flush()

    log.info("group.invitation_created", group_id=str(group_id), invited_by=str(invited_by))
    return invitation


async def accept_invitation(
    token: uuid.UUID, user_id: uuid.UUID, session: AsyncSession
) -> tuple[Group, GroupRole]:
    """Join the group behind an unused, unexpired invitation as a member.

    A caller who is already a member gets Conflict.
    """
    result = await session.execute(
        select(GroupInvitation).where(
            GroupInvitation.token == token,
            GroupInvitation.is_used.is_(False),
            GroupInvitation.expires_at > datetime.now(timezone.utc),
        )
    )
    invitation = result.scalar_one_or_none()
    if not invitation:
        raise NotFound("Invitation not found or expired")

    group = await session.get(Group, invitation.group_id)
    if not group:
        raise NotFound("Group not found")

    existing = await session.execute(
        select(GroupMember).where(
            GroupMember.group_id == group.id, GroupMember.user_id == user_id
        )
    )
    if existing.scalar_one_or_none():
        raise Conflict("You are already a member of this group")

    session.add(GroupMember(user_id=user_id, group_id=group.id, role=GroupRole.MEMBER.value))
    invitation.is_used = True
    session.add(invitation)
    await session.flush()

    log.info("group.invitation_accepted", group_id=str(group.id), user_id=str(user_id))
    return group, GroupRole.MEMBER
