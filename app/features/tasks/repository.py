"""SQLAlchemy repository for tasks"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Iterable, List, Optional, Set

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

# SQLAlchemy ORM models
from app.db.models.task import Task as TaskORM
from app.db.models.user_profile import UserProfile as UserProfileORM

# Pydantic domain models
from app.features.tasks.errors import TaskNotFound
from app.models.recurrence import RecurrenceRule, RecurrenceType
from app.models.task import Task, TaskCreate, TaskStatus
from app.models.user import UserProfile
from app.utils.datetime_helper import ensure_utc

logger = logging.getLogger(__name__)


class TaskRepository:
    """Repository for task operations using SQLAlchemy"""

    def __init__(self, db: AsyncSession):
        """
        Initialize the repository with a database session.

        Args:
            db: SQLAlchemy async database session
        """
        self.db = db

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[None]:
        """
        Commit everything written inside the block, or nothing.

        Any exception rolls the session back and is re-raised.
        """
        try:
            yield
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    # ── Reads ────────────────────────────────────────────────────────

    async def get(self, task_id: int) -> Optional[Task]:
        row = await self.db.get(TaskORM, task_id)
        return self._to_domain(row) if row is not None else None

    async def get_for_update(self, task_id: int) -> Task:
        """
        Load a task with a row lock held until the unit of work ends.

        Raises:
            TaskNotFound: If no task has this id
        """
        stmt = select(TaskORM).where(TaskORM.id == task_id).with_for_update()
        result = await self.db.execute(stmt)
        row = result.scalar_one_or_none()
        if row is None:
            raise TaskNotFound(task_id)
        return self._to_domain(row)

    async def list_by_user(self, user_id: str) -> List[Task]:
        stmt = select(TaskORM).where(TaskORM.user_id == user_id).order_by(TaskORM.id.asc())
        result = await self.db.execute(stmt)
        return [self._to_domain(row) for row in result.scalars().all()]

    async def find_subtasks(self, parent_task_id: int) -> List[Task]:
        stmt = (
            select(TaskORM)
            .where(TaskORM.parent_task_id == parent_task_id)
            .order_by(TaskORM.id.asc())
        )
        result = await self.db.execute(stmt)
        return [self._to_domain(row) for row in result.scalars().all()]

    async def find_instances(
        self,
        template_id: int,
        statuses: Optional[Iterable[TaskStatus]] = None,
    ) -> List[Task]:
        """
        Find recurrence instances of a template.

        Args:
            template_id: The template's task ID
            statuses: Optional status filter

        Returns:
            Instances ordered by due_date (undated last), then id
        """
        conditions = [TaskORM.recurring_parent_id == template_id]
        if statuses is not None:
            conditions.append(TaskORM.status.in_([s.value for s in statuses]))
        stmt = (
            select(TaskORM)
            .where(and_(*conditions))
            .order_by(TaskORM.due_date.is_(None), TaskORM.due_date.asc(), TaskORM.id.asc())
        )
        result = await self.db.execute(stmt)
        return [self._to_domain(row) for row in result.scalars().all()]

    async def find_templates_due(self, horizon_end: datetime) -> List[int]:
        """
        Find IDs of templates that may owe instances up to horizon_end.

        A template qualifies when its generation anchor (last_generated_date,
        or due_date when nothing was generated yet) is not after the horizon.
        Completion-based templates always qualify.
        """
        horizon_end = ensure_utc(horizon_end)
        stmt = (
            select(TaskORM.id)
            .where(
                and_(
                    TaskORM.recurring_parent_id.is_(None),
                    TaskORM.recurrence_type != RecurrenceType.NONE.value,
                    or_(
                        TaskORM.completion_based.is_(True),
                        TaskORM.last_generated_date <= horizon_end,
                        and_(
                            TaskORM.last_generated_date.is_(None),
                            TaskORM.due_date <= horizon_end,
                        ),
                    ),
                )
            )
            .order_by(TaskORM.id.asc())
        )
        result = await self.db.execute(stmt)
        return [row[0] for row in result.all()]

    async def get_user_profile(self, user_id: str) -> Optional[UserProfile]:
        row = await self.db.get(UserProfileORM, user_id)
        return UserProfile.model_validate(row) if row is not None else None

    async def get_user_timezone(self, user_id: str) -> Optional[str]:
        profile = await self.get_user_profile(user_id)
        return profile.timezone if profile is not None else None

    # ── Writes ───────────────────────────────────────────────────────

    async def create(self, data: TaskCreate) -> Task:
        """Create a new task row and flush it to obtain its ID"""
        row = TaskORM(user_id=data.user_id)
        self._apply(row, data)
        row.recurring_parent_id = data.recurring_parent_id
        self.db.add(row)
        await self.db.flush()
        return self._to_domain(row)

    async def save(self, task: Task) -> Task:
        """
        Write every mutable field of a domain task back to its row.

        Raises:
            TaskNotFound: If the row no longer exists
        """
        row = await self.db.get(TaskORM, task.id)
        if row is None:
            raise TaskNotFound(task.id)
        self._apply(row, task)
        row.updated_at = datetime.now(timezone.utc)
        await self.db.flush()
        return self._to_domain(row)

    async def delete_many(self, task_ids: Iterable[int]) -> int:
        """Hard-delete the given rows; returns the number deleted"""
        ids = list(task_ids)
        if not ids:
            return 0
        result = await self.db.execute(delete(TaskORM).where(TaskORM.id.in_(ids)))
        await self.db.flush()
        return result.rowcount or 0

    async def delete_tree(self, task_id: int) -> int:
        """
        Delete a task together with everything hanging off it.

        Both axes are followed: subtasks (parent_task_id) and, for a
        template, its instances (recurring_parent_id), recursively, so an
        instance's own subtasks go too.

        Returns:
            Number of rows deleted (0 if the task does not exist)
        """
        if await self.db.get(TaskORM, task_id) is None:
            return 0

        collected: Set[int] = {task_id}
        frontier: Set[int] = {task_id}
        while frontier:
            stmt = select(TaskORM.id).where(
                or_(
                    TaskORM.parent_task_id.in_(frontier),
                    TaskORM.recurring_parent_id.in_(frontier),
                )
            )
            result = await self.db.execute(stmt)
            children = {row[0] for row in result.all()} - collected
            collected |= children
            frontier = children

        deleted = await self.delete_many(collected)
        logger.info(f"Deleted task {task_id} and {deleted - 1} dependent rows")
        return deleted

    # ── Mapping ──────────────────────────────────────────────────────

    @staticmethod
    def _apply(row: TaskORM, task) -> None:
        """Copy domain fields onto an ORM row (recurrence flattened to columns)"""
        rule = task.recurrence
        row.name = task.name
        row.note = task.note
        row.priority = task.priority
        row.status = TaskStatus(task.status).value
        row.due_date = ensure_utc(task.due_date) if task.due_date else None
        row.completed_at = ensure_utc(task.completed_at) if task.completed_at else None
        row.parent_task_id = task.parent_task_id
        row.last_generated_date = (
            ensure_utc(task.last_generated_date) if task.last_generated_date else None
        )
        row.recurrence_type = RecurrenceType(rule.type).value
        row.recurrence_interval = rule.interval
        row.recurrence_weekday = int(rule.weekday) if rule.weekday is not None else None
        row.recurrence_month_day = rule.month_day
        row.recurrence_week_of_month = rule.week_of_month
        row.recurrence_end_date = rule.end_date
        row.completion_based = bool(rule.completion_based)

    @staticmethod
    def _to_domain(row: TaskORM) -> Task:
        """Convert an ORM row to the domain model; timestamps come back as aware UTC"""
        def _utc(value: Optional[datetime]) -> Optional[datetime]:
            return ensure_utc(value) if value is not None else None

        rule = RecurrenceRule(
            type=row.recurrence_type or RecurrenceType.NONE.value,
            interval=row.recurrence_interval or 1,
            weekday=row.recurrence_weekday,
            month_day=row.recurrence_month_day,
            week_of_month=row.recurrence_week_of_month,
            end_date=row.recurrence_end_date,
            completion_based=bool(row.completion_based),
        )
        return Task(
            id=row.id,
            user_id=row.user_id,
            name=row.name,
            note=row.note,
            priority=row.priority,
            status=row.status,
            due_date=_utc(row.due_date),
            completed_at=_utc(row.completed_at),
            recurrence=rule,
            parent_task_id=row.parent_task_id,
            recurring_parent_id=row.recurring_parent_id,
            last_generated_date=_utc(row.last_generated_date),
            created_at=_utc(row.created_at) or datetime.now(timezone.utc),
            updated_at=_utc(row.updated_at),
        )
