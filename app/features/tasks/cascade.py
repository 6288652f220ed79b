"""
Completion cascade engine

Status writes on a task propagate top-down to its direct subtasks:

    T -> done                 subtasks not done      -> done
    T done -> active          all subtasks           -> not_started
    T -> cancelled            active subtasks        -> cancelled
    T cancelled -> active     cancelled subtasks     -> not_started

A subtask's own transitions never change its parent. Completing an
instance of a completion-based template also creates its successor.
"""

import logging
from datetime import datetime, tzinfo
from typing import List, Optional

from app.features.tasks.errors import CascadeAborted, RecurrenceError
from app.features.tasks.generator import InstanceGenerator
from app.features.tasks.repository import TaskRepository
from app.features.tasks.schemas import CascadeResult
from app.models.recurrence import InvalidRule
from app.models.task import ACTIVE_STATUSES, Task, TaskStatus
from app.utils.datetime_helper import utcnow

logger = logging.getLogger(__name__)


def subtask_target_status(
    old_status: TaskStatus,
    new_status: TaskStatus,
    subtask_status: TaskStatus,
) -> Optional[TaskStatus]:
    """
    Status a subtask moves to when its parent goes old_status -> new_status.

    Returns:
        The subtask's new status, or None if it is left as it is
    """
    if new_status == TaskStatus.DONE:
        return TaskStatus.DONE if subtask_status != TaskStatus.DONE else None

    if new_status == TaskStatus.CANCELLED:
        # done/archived subtasks keep their state
        return TaskStatus.CANCELLED if subtask_status in ACTIVE_STATUSES else None

    if new_status in ACTIVE_STATUSES:
        if old_status == TaskStatus.DONE:
            return TaskStatus.NOT_STARTED if subtask_status != TaskStatus.NOT_STARTED else None
        if old_status == TaskStatus.CANCELLED:
            # pre-cancellation state is not kept
            return TaskStatus.NOT_STARTED if subtask_status == TaskStatus.CANCELLED else None

    return None


def apply_status(task: Task, status: TaskStatus, now: datetime) -> Task:
    """Set status and keep completed_at set exactly while status is done"""
    task.status = status
    if status == TaskStatus.DONE:
        task.completed_at = now
    else:
        task.completed_at = None
    return task


class CompletionCascadeEngine:
    """Applies a status write and everything it implies"""

    def __init__(self, repository: TaskRepository, generator: InstanceGenerator):
        self.repository = repository
        self.generator = generator

    async def set_status(
        self,
        task_id: int,
        new_status: TaskStatus,
        tz: tzinfo,
        now: Optional[datetime] = None,
    ) -> CascadeResult:
        """
        Change a task's status and cascade to its subtasks.

        Must run inside TaskRepository.unit_of_work(): on any failure the
        caller's rollback discards the parent write as well.

        Args:
            task_id: Task to change
            new_status: Target status
            tz: Owner's time zone (for a completion-based successor)
            now: Reference time (defaults to now in UTC)

        Returns:
            CascadeResult; changed is False when the task already had new_status

        Raises:
            TaskNotFound: If the task does not exist
            CascadeAborted: If any write of the cascade fails
        """
        if now is None:
            now = utcnow()

        task = await self.repository.get_for_update(task_id)
        old_status = task.status
        if old_status == new_status:
            logger.debug(f"Task {task_id} already {new_status.value}; nothing to cascade")
            return CascadeResult(task=task, changed=False)

        try:
            saved = await self.repository.save(apply_status(task, new_status, now))
            affected = await self._cascade_to_subtasks(saved, old_status, new_status, now)
        except Exception as e:
            raise CascadeAborted(
                f"Status change of task {task_id} to {new_status.value} aborted: {e}"
            ) from e

        successor = None
        if new_status == TaskStatus.DONE and saved.is_instance:
            try:
                successor = await self._spawn_successor(saved, now, tz)
            except InvalidRule as e:
                # The completion stands; only the successor is skipped
                logger.error(
                    f"Could not create successor for task {task_id} "
                    f"(template {saved.recurring_parent_id}): {e}"
                )
            except RecurrenceError:
                raise
            except Exception as e:
                raise CascadeAborted(f"Successor for task {task_id} could not be created: {e}") from e

        if affected:
            logger.info(
                f"Task {task_id} {old_status.value} -> {new_status.value}: "
                f"cascaded to subtasks {affected}"
            )
        return CascadeResult(
            task=saved,
            changed=True,
            affected_subtask_ids=affected,
            successor=successor,
        )

    async def _cascade_to_subtasks(
        self,
        parent: Task,
        old_status: TaskStatus,
        new_status: TaskStatus,
        now: datetime,
    ) -> List[int]:
        affected: List[int] = []
        for subtask in await self.repository.find_subtasks(parent.id):
            target = subtask_target_status(old_status, new_status, subtask.status)
            if target is None:
                continue
            await self.repository.save(apply_status(subtask, target, now))
            affected.append(subtask.id)
        return affected

    async def _spawn_successor(self, instance: Task, now: datetime, tz: tzinfo) -> Optional[Task]:
        template = await self.repository.get(instance.recurring_parent_id)
        if template is None or not template.is_template:
            return None
        if not template.recurrence.completion_based:
            return None
        return await self.generator.spawn_successor(template, now, tz)
