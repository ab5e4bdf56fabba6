"""Group model."""

from typing import Optional

from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, UUIDMixin


class Group(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "groups"

    name: str = Field(nullable=False, index=True)
    description: Optional[str] = None
