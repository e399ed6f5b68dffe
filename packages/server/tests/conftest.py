"""
Shared fixtures: in-memory SQLite database, task factories, a recording
Redis stub and an HTTP client bound to the app.
"""

from __future__ import annotations

import json
import uuid

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

import app.models  # noqa: F401
from app.core.auth import create_jwt
from app.models.project import Project
from app.models.task import Task
from taskflow_shared.schemas.common import TaskStatus


class RecordingRedis:
    """Just enough of redis.asyncio.Redis for event publication."""

    def __init__(self):
        self.buffer: list[str] = []
        self.published: list[dict] = []

    async def lpush(self, key, value):
        self.buffer.insert(0, value)
        return len(self.buffer)

    async def ltrim(self, key, start, end):
        self.buffer = self.buffer[start : end + 1]
        return True

    async def publish(self, channel, message):
        self.published.append(json.loads(message))
        return 1

    def pipeline(self):
        return RecordingPipeline(self)

    def types(self) -> list[str]:
        return [e["type"] for e in self.published]


class RecordingPipeline:
    """Queues buffer commands and replays them against the stub on execute()."""

    def __init__(self, redis: RecordingRedis):
        self._redis = redis
        self._commands: list[tuple[str, tuple]] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self._commands.clear()

    def lpush(self, *args):
        self._commands.append(("lpush", args))
        return self

    def ltrim(self, *args):
        self._commands.append(("ltrim", args))
        return self

    async def execute(self):
        results = [await getattr(self._redis, name)(*args) for name, args in self._commands]
        self._commands.clear()
        return results


@pytest.fixture(autouse=True)
def redis_stub(monkeypatch):
    stub = RecordingRedis()

    async def _get_redis():
        return stub

    monkeypatch.setattr("app.core.events.get_redis", _get_redis)
    return stub


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
async def project(session):
    p = Project(name="Website relaunch")
    session.add(p)
    await session.commit()
    return p


@pytest.fixture
async def other_project(session):
    p = Project(name="Payroll migration")
    session.add(p)
    await session.commit()
    return p


@pytest.fixture
def make_task(session, project):
    async def _make(
        title: str,
        status: TaskStatus = TaskStatus.TODO,
        *,
        project_id: uuid.UUID | None = None,
        block_reason: str | None = None,
        created_by: uuid.UUID | None = None,
    ) -> Task:
        task = Task(
            project_id=project_id or project.id,
            title=title,
            status=status.value,
            block_reason=block_reason,
            created_by=created_by,
        )
        session.add(task)
        await session.commit()
        return task

    return _make


@pytest.fixture
def auth_headers():
    def _headers(role: str = "employee", user_id: uuid.UUID | None = None) -> dict[str, str]:
        token = create_jwt(user_id or uuid.uuid4(), role)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
async def client(session_factory):
    from app.core.database import get_session
    from app.main import app

    async def _get_test_session():
        async with session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    app.dependency_overrides[get_session] = _get_test_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
