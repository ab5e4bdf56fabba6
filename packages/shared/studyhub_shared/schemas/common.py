from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class GroupRole(str, Enum):
    LEADER = "leader"
    ASSISTANT = "assistant"
    MEMBER = "member"


class GroupAction(str, Enum):
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"
    INVITE = "invite"
    MANAGE_MEMBERS = "manage_members"
    CONFIRM_TOPIC = "confirm_topic"
    VIEW_ACTIVITY = "view_activity"


STAFF_ROLES: list[GroupRole] = [GroupRole.LEADER, GroupRole.ASSISTANT]

# Roles allowed to perform each privileged action. Reading, joining, leaving
# and claiming topics are open to every member and are not listed here.
ROLE_PERMISSIONS: dict[GroupAction, list[GroupRole]] = {
    GroupAction.CREATE: STAFF_ROLES,
    GroupAction.EDIT: STAFF_ROLES,
    GroupAction.CONFIRM_TOPIC: STAFF_ROLES,
    GroupAction.VIEW_ACTIVITY: STAFF_ROLES,
    GroupAction.DELETE: [GroupRole.LEADER],
    GroupAction.INVITE: [GroupRole.LEADER],
    GroupAction.MANAGE_MEMBERS: [GroupRole.LEADER],
}


def can_perform(role: Optional[GroupRole | str], action: GroupAction) -> bool:
    """Return True if ``role`` may perform ``action``. ``None`` means not a member."""
    if role is None:
        return False
    return GroupRole(role) in ROLE_PERMISSIONS.get(action, [])


def remaining_capacity(max_participants: int, taken: int) -> int:
    """Free slots left, never negative."""
    return max(max_participants - taken, 0)


class UserSummary(BaseModel):
    id: UUID
    first_name: str
    last_name: str
    middle_name: Optional[str] = None
    telegram_username: Optional[str] = None

    model_config = {"from_attributes": True}

