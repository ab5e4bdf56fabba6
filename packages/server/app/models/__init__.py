# SQLModel definitions - imported here to ensure metadata is populated for Alembic.
from .base import CreatedAtMixin, TimestampMixin, UUIDMixin  # noqa: F401
from .user import User  # noqa: F401
from .group import Group  # noqa: F401
from .group_member import GroupMember  # noqa: F401
from .invitation import GroupInvitation  # noqa: F401
from .queue import Queue  # noqa: F401
from .topic import Topic  # noqa: F401
from .participant import QueueParticipant  # noqa: F401
from .activity import ActivityEvent  # noqa: F401
