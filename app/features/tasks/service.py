"""Business logic for tasks and recurring tasks"""

import logging
from datetime import date, datetime, timedelta, tzinfo
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import DEFAULT_TIMEZONE, RECURRENCE_HORIZON_DAYS
from app.features.tasks.cascade import CompletionCascadeEngine
from app.features.tasks.errors import TaskNotFound
from app.features.tasks.generator import InstanceGenerator
from app.features.tasks.locks import TemplateLockRegistry, template_locks
from app.features.tasks.repository import TaskRepository
from app.features.tasks.rule_update import PROPAGATED_FIELDS, RecurrenceUpdateCoordinator
from app.features.tasks.schemas import (
    CascadeResult,
    CreateTaskRequest,
    GenerationOutcome,
    RuleChangeResult,
    TaskMetrics,
    TaskView,
    UpdateTaskRequest,
    ViewType,
)
from app.features.tasks.visibility import compute_metrics, filter_for_view, to_view
from app.models.recurrence import InvalidRule, RecurrenceRule
from app.models.task import Task, TaskCreate, TaskStatus
from app.utils.datetime_helper import local_today, resolve_timezone, to_local_date, utcnow
from app.utils.recurrence_calculator import DEFAULT_PREVIEW_COUNT, preview_occurrences

logger = logging.getLogger(__name__)


class TaskService:
    """Service layer for task and recurrence business logic"""

    def __init__(
        self,
        db: AsyncSession,
        horizon_days: int = RECURRENCE_HORIZON_DAYS,
        locks: Optional[TemplateLockRegistry] = None,
    ):
        self.repository = TaskRepository(db)
        self.generator = InstanceGenerator(self.repository)
        self.coordinator = RecurrenceUpdateCoordinator(self.repository, self.generator)
        self.cascade = CompletionCascadeEngine(self.repository, self.generator)
        self.horizon_days = horizon_days
        self.locks = locks or template_locks

    async def user_timezone(self, user_id: str) -> tzinfo:
        """User's configured zone, else DEFAULT_TIMEZONE; unknown names fall back to UTC"""
        name = await self.repository.get_user_timezone(user_id)
        return resolve_timezone(name or DEFAULT_TIMEZONE)

    async def get_task(self, task_id: int) -> Task:
        task = await self.repository.get(task_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task

    async def create_task(self, request: CreateTaskRequest) -> Task:
        """
        Create a standalone task, a template or a subtask.

        Instances are never created here; they come from generation only.

        Raises:
            TaskNotFound: If parent_task_id does not exist
        """
        async with self.repository.unit_of_work():
            if request.parent_task_id is not None:
                await self.get_task(request.parent_task_id)

            task = await self.repository.create(
                TaskCreate(
                    user_id=request.user_id,
                    name=request.name,
                    note=request.note,
                    priority=request.priority,
                    status=request.status,
                    due_date=request.due_date,
                    parent_task_id=request.parent_task_id,
                    recurrence=request.recurrence or RecurrenceRule(),
                    completed_at=utcnow() if request.status == TaskStatus.DONE else None,
                )
            )
        logger.info(f"Created task {task.id} (recurrence: {task.recurrence.type.value})")
        return task

    async def list_tasks(self, user_id: str, view: ViewType = ViewType.DEFAULT,
                         now: Optional[datetime] = None) -> List[TaskView]:
        tz = await self.user_timezone(user_id)
        tasks = await self.repository.list_by_user(user_id)
        visible = filter_for_view(view, tasks, local_today(tz, now), tz)
        return [to_view(task) for task in visible]

    async def get_metrics(self, user_id: str, now: Optional[datetime] = None) -> TaskMetrics:
        tz = await self.user_timezone(user_id)
        tasks = await self.repository.list_by_user(user_id)
        return compute_metrics(tasks, local_today(tz, now), tz)

    async def set_status(self, task_id: int, status: TaskStatus,
                         now: Optional[datetime] = None) -> CascadeResult:
        """
        Write a status and its cascade as one unit of work.

        Instances take their template's lock, since completing one may
        create a successor.
        """
        task = await self.get_task(task_id)
        tz = await self.user_timezone(task.user_id)

        if task.is_instance:
            async with self.locks.for_template(task.recurring_parent_id):
                return await self._set_status(task_id, status, tz, now)
        return await self._set_status(task_id, status, tz, now)

    async def _set_status(self, task_id: int, status: TaskStatus, tz: tzinfo,
                          now: Optional[datetime]) -> CascadeResult:
        async with self.repository.unit_of_work():
            result = await self.cascade.set_status(task_id, status, tz, now)
        return result

    async def toggle_completion(self, task_id: int, now: Optional[datetime] = None) -> CascadeResult:
        """
        Done goes back to in_progress when the task has a note, else to
        not_started; any other status goes to done.
        """
        task = await self.get_task(task_id)
        if task.status == TaskStatus.DONE:
            new_status = TaskStatus.IN_PROGRESS if task.note else TaskStatus.NOT_STARTED
        else:
            new_status = TaskStatus.DONE
        return await self.set_status(task_id, new_status, now)

    async def update_task(self, task_id: int, request: UpdateTaskRequest,
                          now: Optional[datetime] = None) -> RuleChangeResult:
        """
        Edit task fields and, for templates, the recurrence rule.

        A changed rule runs the stale-instance cleanup and regeneration;
        changed name/note/priority on a template are copied onto future
        instances not yet acted on.

        Raises:
            TaskNotFound: If the task does not exist
            InvalidRule: If the rule is invalid or set on an instance
        """
        existing = await self.get_task(task_id)
        if request.recurrence is not None and existing.is_instance:
            raise InvalidRule("recurrence cannot be set on a recurrence instance")

        tz = await self.user_timezone(existing.user_id)
        async with self.locks.for_template(task_id):
            async with self.repository.unit_of_work():
                task = await self.repository.get_for_update(task_id)
                fields = request.model_dump(exclude_unset=True, exclude={"recurrence"})
                if fields.get("name", "") is None:
                    del fields["name"]
                fields_changed = any(
                    getattr(task, name) != value for name, value in fields.items()
                    if name in PROPAGATED_FIELDS
                )
                for name, value in fields.items():
                    setattr(task, name, value)
                task = await self.repository.save(task)

                updated_count = 0
                if fields_changed and task.is_template:
                    updated_count = await self.coordinator.on_template_fields_changed(task, now)

                old_rule = task.recurrence
                new_rule = request.recurrence
                if new_rule is not None and new_rule != old_rule:
                    result = await self.coordinator.on_rule_changed(
                        task, old_rule, new_rule, self.horizon_days, tz, now
                    )
                    result.updated_count = updated_count
                else:
                    result = RuleChangeResult(template=task, updated_count=updated_count)
        return result

    async def delete_task(self, task_id: int) -> int:
        """Delete a task with its subtasks and, for a template, its instances"""
        async with self.locks.for_template(task_id):
            async with self.repository.unit_of_work():
                deleted = await self.repository.delete_tree(task_id)
        if not deleted:
            raise TaskNotFound(task_id)
        self.locks.discard(task_id)
        return deleted

    async def preview_occurrences(self, task_id: int, count: int = DEFAULT_PREVIEW_COUNT,
                                  now: Optional[datetime] = None) -> List[date]:
        """
        Next calendar occurrences of a template without creating anything.

        Counting starts from the later of the generation watermark and today.
        """
        task = await self.get_task(task_id)
        if not task.is_template:
            raise InvalidRule(f"Task {task_id} is not a recurrence template")

        tz = await self.user_timezone(task.user_id)
        today = local_today(tz, now)
        start = today - timedelta(days=1)
        if task.last_generated_date is not None:
            start = max(start, to_local_date(task.last_generated_date, tz))
        return preview_occurrences(task.recurrence, start, count)

    async def generate_for_template(self, template_id: int,
                                    now: Optional[datetime] = None) -> GenerationOutcome:
        """
        Fill one template's horizon in its own unit of work.

        Raises:
            TaskNotFound: If the template does not exist
            InvalidRule: If the template's rule cannot be evaluated
        """
        async with self.locks.for_template(template_id):
            async with self.repository.unit_of_work():
                template = await self.repository.get_for_update(template_id)
                tz = await self.user_timezone(template.user_id)
                outcome = await self.generator.generate(template, self.horizon_days, tz, now)
        return outcome
