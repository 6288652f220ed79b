"""Shared fixtures for recurring task tests.

Database handling in tests:
- Each test gets its own SQLite file under tmp_path (through aiosqlite).
- Tables are created from the ORM metadata; nothing is shared between tests.
- NOW is a fixed Wednesday so calendar assertions are deterministic.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

import app.db.models  # noqa: F401  (registers ORM tables)
from app.db.base import Base
from app.db.models.user_profile import UserProfile as UserProfileORM
from app.db.session import create_session_factory
from app.features.tasks.locks import TemplateLockRegistry
from app.features.tasks.service import TaskService
from app.models.recurrence import RecurrenceRule
from app.models.task import Task, TaskCreate, TaskStatus

# Wednesday 2026-03-11 09:00 UTC
NOW = datetime(2026, 3, 11, 9, 0, tzinfo=timezone.utc)
USER_ID = "00000000-0000-0000-0000-000000000001"


def days(n: int) -> timedelta:
    return timedelta(days=n)


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def locks() -> TemplateLockRegistry:
    return TemplateLockRegistry()


@pytest.fixture
def service(session, locks) -> TaskService:
    return TaskService(session, horizon_days=7, locks=locks)


@pytest.fixture
def repo(service):
    return service.repository


@pytest.fixture
def add_task(service, session):
    """Insert a task row and commit it."""

    async def _add(
        name: str = "Task",
        *,
        status: TaskStatus = TaskStatus.NOT_STARTED,
        due_date: datetime | None = None,
        recurrence: RecurrenceRule | None = None,
        parent_task_id: int | None = None,
        recurring_parent_id: int | None = None,
        last_generated_date: datetime | None = None,
        note: str | None = None,
        user_id: str = USER_ID,
    ) -> Task:
        task = await service.repository.create(
            TaskCreate(
                user_id=user_id,
                name=name,
                note=note,
                status=status,
                due_date=due_date,
                recurrence=recurrence or RecurrenceRule(),
                parent_task_id=parent_task_id,
                recurring_parent_id=recurring_parent_id,
                last_generated_date=last_generated_date,
                completed_at=NOW if status == TaskStatus.DONE else None,
            )
        )
        await session.commit()
        return task

    return _add


@pytest.fixture
def set_user_timezone(session):
    async def _set(zone: str, user_id: str = USER_ID) -> None:
        session.add(UserProfileORM(id=user_id, timezone=zone))
        await session.commit()

    return _set
