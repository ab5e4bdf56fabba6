"""
User service: identity records keyed by Telegram account.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.user import User

log = structlog.get_logger()


async def upsert_telegram_user(
    session: AsyncSession,
    telegram_id: str,
    first_name: str,
    last_name: str,
    middle_name: Optional[str] = None,
    telegram_username: Optional[str] = None,
) -> User:
    """Create the user for a Telegram account, or refresh their profile."""
    result = await session.execute(select(User).where(User.telegram_id == telegram_id))
    user = result.scalar_one_or_none()

    if user is None:
        user = User(
            telegram_id=telegram_id,
            telegram_username=telegram_username,
            first_name=first_name,
            last_name=last_name,
            middle_name=middle_name,
        )
        session.add(user)
        await session.flush()
        log.info("user.created", user_id=str(user.id), telegram_id=telegram_id)
        return user

    user.first_name = first_name
    user.last_name = last_name
    user.middle_name = middle_name
    user.telegram_username = telegram_username
    user.last_active_at = datetime.now(timezone.utc)
    session.add(user)
    await session.flush()
    log.info("user.updated", user_id=str(user.id))
    return user
