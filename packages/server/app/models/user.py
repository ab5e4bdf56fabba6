"""User model."""

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, UUIDMixin, _utcnow


class User(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "users"

    telegram_id: str = Field(nullable=False, unique=True, index=True)
    telegram_username: Optional[str] = None
    first_name: str = Field(nullable=False)
    last_name: str = Field(nullable=False)
    middle_name: Optional[str] = None
    last_active_at: datetime = Field(
        default_factory=_utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.func.now()},
        sa_type=sa.DateTime(timezone=True),
    )
