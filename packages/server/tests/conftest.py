"""
Shared fixtures for server tests.

The app is pointed at a throwaway SQLite file (via aiosqlite) before it is
imported; every test starts from freshly created tables. Redis publishing is
replaced with an AsyncMock.

Rows built by fixtures are detached from the test session, since a service
call that rolls back expires everything still attached to it.
"""

import os
import tempfile

_db_fd, _db_path = tempfile.mkstemp(suffix=".db")
os.close(_db_fd)
os.environ["SH_DATABASE_URL"] = f"sqlite+aiosqlite:///{_db_path}"
os.environ.setdefault("SH_SECRET_KEY", "test-secret-key-with-enough-bytes-for-hs256")

from itertools import count
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlmodel import SQLModel

import app.models  # noqa: F401
from app.core.auth import create_jwt
from app.core.database import async_session_factory, engine
from app.main import app as fastapi_app
from app.models.group import Group
from app.models.group_member import GroupMember
from app.models.user import User
from studyhub_shared.schemas.common import GroupRole

_telegram_ids = count(1000)


@event.listens_for(engine.sync_engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def pytest_sessionfinish(session, exitstatus):
    try:
        os.unlink(_db_path)
    except OSError:
        pass


@pytest.fixture(autouse=True)
async def db():
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
        await conn.run_sync(SQLModel.metadata.create_all)
    yield
    await engine.dispose()


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch):
    redis = AsyncMock()

    async def _get_redis():
        return redis

    monkeypatch.setattr("app.core.events.get_redis", _get_redis)
    return redis


@pytest.fixture
async def session(db):
    async with async_session_factory() as s:
        yield s


@pytest.fixture
async def client(db):
    async with AsyncClient(transport=ASGITransport(app=fastapi_app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def make_user(session):
    async def _make(first_name: str = "Ada", last_name: str = "Lovelace") -> User:
        user = User(
            telegram_id=str(next(_telegram_ids)),
            first_name=first_name,
            last_name=last_name,
        )
        session.add(user)
        await session.commit()
        session.expunge(user)
        return user

    return _make


@pytest.fixture
def add_member(session):
    async def _add(group: Group, user: User, role: GroupRole = GroupRole.MEMBER) -> None:
        session.add(GroupMember(user_id=user.id, group_id=group.id, role=role.value))
        await session.commit()

    return _add


@pytest.fixture
async def study_group(session, make_user, add_member):
    """A group with one leader, one assistant and two plain members."""
    leader = await make_user("Lena", "Leader")
    assistant = await make_user("Artem", "Assistant")
    alice = await make_user("Alice", "Member")
    bob = await make_user("Bob", "Member")

    group = Group(name="CS-101")
    session.add(group)
    await session.commit()
    session.expunge(group)

    await add_member(group, leader, GroupRole.LEADER)
    await add_member(group, assistant, GroupRole.ASSISTANT)
    await add_member(group, alice)
    await add_member(group, bob)

    return SimpleNamespace(
        group=group, leader=leader, assistant=assistant, alice=alice, bob=bob
    )


def auth_headers(user: User) -> dict[str, str]:
    token, _ = create_jwt(user.id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers():
    return auth_headers
