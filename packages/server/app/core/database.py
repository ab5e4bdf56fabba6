"""
Database connection and session management.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from app.core.config import get_settings
from app.core.errors import ServiceError, StorageFailure

settings = get_settings()

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    future=True,
)

async_session_factory = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def check_db() -> None:
    """Round-trip a trivial statement; raises if the database is unreachable."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def atomic(session: AsyncSession, *, retry_conflicts: bool = False):
    """Commit the enclosed unit of work, or roll it back entirely.

    Typed service failures propagate unchanged. Storage errors become
    StorageFailure, except that with ``retry_conflicts`` an IntegrityError
    propagates so the caller can re-run its checks.
    """
    try:
        yield session
        await session.commit()
    except ServiceError:
        await session.rollback()
        raise
    except IntegrityError as exc:
        await session.rollback()
        if retry_conflicts:
            raise
        raise StorageFailure() from exc
    except SQLAlchemyError as exc:
        await session.rollback()
        raise StorageFailure() from exc


@asynccontextmanager
async def get_session_context():
    """Context manager for use outside of FastAPI request lifecycle."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
