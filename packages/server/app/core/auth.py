"""
Caller identity and group membership for StudyHub.

Supports:
- Identity: HS256 bearer JWT whose ``sub`` is the user id. Login flows live
  elsewhere; ``create_jwt`` is used by the bootstrap script and tests.
- Membership: resolves the caller's role in the group named by the path.
- Role-based authorization dependencies (member / staff / leader).
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import structlog
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import get_settings
from app.core.database import get_session
from app.core.errors import Forbidden, NotFound, Unauthorized
from app.models.group import Group
from app.models.group_member import GroupMember
from app.models.user import User
from studyhub_shared.schemas.common import GroupAction, GroupRole, can_perform

log = structlog.get_logger()
settings = get_settings()

bearer_scheme = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def create_jwt(
    user_id: uuid.UUID,
    *,
    expires_delta: timedelta | None = None,
) -> tuple[str, str]:
    """Create a signed JWT. Returns (token, jti)."""
    jti = str(uuid.uuid4())
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": exp,
        "jti": jti,
    }
    token = jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)
    return token, jti


def decode_jwt(token: str) -> dict:
    """Decode and verify a JWT. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------

class AuthenticatedMember:
    """Container for the caller plus their membership in one group."""

    def __init__(self, user: User, group: Group, membership: GroupMember):
        self.user = user
        self.group = group
        self.membership = membership
        self.user_id = user.id
        self.group_id = group.id
        self.role = GroupRole(membership.role)

    def can(self, action: GroupAction) -> bool:
        return can_perform(self.role, action)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_session),
) -> User:
    """Resolve the caller from the bearer token."""
    if credentials is None:
        raise Unauthorized()

    try:
        payload = decode_jwt(credentials.credentials)
    except jwt.PyJWTError:
        raise Unauthorized("Invalid or expired token")

    try:
        user_id = uuid.UUID(payload["sub"])
    except (KeyError, ValueError):
        raise Unauthorized("Invalid token subject")

    user = await session.get(User, user_id)
    if not user:
        raise Unauthorized("User not found")
    return user


async def get_role_in_group(
    session: AsyncSession, user_id: uuid.UUID, group_id: uuid.UUID
) -> Optional[GroupRole]:
    """The user's role in the group, or None when they are not a member."""
    result = await session.execute(
        select(GroupMember.role).where(
            GroupMember.user_id == user_id, GroupMember.group_id == group_id
        )
    )
    role = result.scalar_one_or_none()
    return GroupRole(role) if role else None


async def get_group_member(
    groupId: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> AuthenticatedMember:
    """Resolve the caller's membership in ``groupId``.

    Non-members get the same 404 as a missing group.
    """
    result = await session.execute(
        select(Group, GroupMember)
        .join(GroupMember, GroupMember.group_id == Group.id)
        .where(Group.id == groupId, GroupMember.user_id == user.id)
    )
    row = result.first()
    if not row:
        raise NotFound("Group not found")
    group, membership = row
    return AuthenticatedMember(user=user, group=group, membership=membership)


# ---------------------------------------------------------------------------
# Authorization dependencies (role checks)
# ---------------------------------------------------------------------------

async def require_member(
    member: AuthenticatedMember = Depends(get_group_member),
) -> AuthenticatedMember:
    """Any group member can access this endpoint."""
    return member


async def require_staff(
    member: AuthenticatedMember = Depends(get_group_member),
) -> AuthenticatedMember:
    """Requires leader or assistant role."""
    if not member.can(GroupAction.EDIT):
        log.info("auth.forbidden", user_id=str(member.user_id), role=member.role.value, needed="staff")
        raise Forbidden("Leader or assistant role required")
    return member


async def require_leader(
    member: AuthenticatedMember = Depends(get_group_member),
) -> AuthenticatedMember:
    """Requires leader role."""
    if not member.can(GroupAction.DELETE):
        log.info("auth.forbidden", user_id=str(member.user_id), role=member.role.value, needed="leader")
        raise Forbidden("Leader role required")
    return member
