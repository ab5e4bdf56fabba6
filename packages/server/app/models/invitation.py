"""Group invitation model (single-use, expiring token)."""

from datetime import datetime
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, UUIDMixin


class GroupInvitation(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "group_invitations"

    group_id: uuid.UUID = Field(
        foreign_key="groups.id", ondelete="CASCADE", nullable=False, index=True
    )
    invited_by_user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False)
    token: uuid.UUID = Field(default_factory=uuid.uuid4, unique=True, index=True, nullable=False)
    expires_at: datetime = Field(nullable=False, sa_type=sa.DateTime(timezone=True))
    is_used: bool = Field(default=False, nullable=False)
