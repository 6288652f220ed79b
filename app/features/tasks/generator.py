"""
Instance generator for recurring task templates

Materialises concrete instance tasks from a template's recurrence rule:
- Horizon-bounded generation for calendar-driven templates
- A single open instance for completion-based templates
- Subtask copy from the template onto each new instance
"""

import logging
from datetime import datetime, timedelta, tzinfo
from typing import List, Optional, Set

from app.features.tasks.repository import TaskRepository
from app.features.tasks.schemas import GenerationOutcome, GenerationStatus
from app.models.task import ACTIVE_STATUSES, Task, TaskCreate, TaskStatus
from app.utils.datetime_helper import ensure_utc, local_today, to_local_date, utcnow
from app.utils.recurrence_calculator import calculate_next_due_date

logger = logging.getLogger(__name__)

# Guards against a runaway loop on a very old anchor
MAX_OCCURRENCES_PER_RUN = 5000


def generation_anchor(template: Task) -> Optional[datetime]:
    """Latest of due_date and last_generated_date, or None if neither is set"""
    candidates = [ensure_utc(d) for d in (template.due_date, template.last_generated_date) if d]
    return max(candidates) if candidates else None


def first_occurrence(template: Task, tz: tzinfo) -> Optional[datetime]:
    """
    The template's own due date when nothing has been generated yet.

    Returns None once a watermark exists or when the due date falls after
    the rule's end date.
    """
    if template.last_generated_date is not None or template.due_date is None:
        return None
    due = ensure_utc(template.due_date)
    end_date = template.recurrence.end_date
    if end_date is not None and to_local_date(due, tz) > end_date:
        return None
    return due


class InstanceGenerator:
    """Creates instance tasks for a template"""

    def __init__(self, repository: TaskRepository):
        self.repository = repository

    async def generate(
        self,
        template: Task,
        horizon_days: int,
        tz: tzinfo,
        now: Optional[datetime] = None,
    ) -> GenerationOutcome:
        """
        Materialise the template's occurrences up to today + horizon_days.

        Occurrences dated before today are not back-filled; the watermark
        still moves past them. An occurrence that already has an instance
        is skipped, so repeated runs are no-ops.

        Args:
            template: Template task (recurrence set, no recurring_parent_id)
            horizon_days: Number of days ahead of today to fill
            tz: Owner's time zone for day boundaries
            now: Reference time (defaults to now in UTC)

        Returns:
            GenerationOutcome for this template

        Raises:
            InvalidRule: If the template's rule cannot be evaluated
        """
        if now is None:
            now = utcnow()

        if not template.is_template:
            return self._skipped(template, "task is not a recurrence template")

        if template.recurrence.completion_based:
            return await self._ensure_open_instance(template, tz)

        anchor = generation_anchor(template)
        if anchor is None:
            return self._skipped(template, "template has no due date and no generation history")

        today = local_today(tz, now)
        horizon_date = today + timedelta(days=horizon_days)
        existing = await self._existing_due_dates(template.id)

        created: List[Task] = []
        duplicates = 0
        watermark = anchor
        current = anchor
        # Until something was generated, the due date is itself the first occurrence
        pending_first = first_occurrence(template, tz)

        for _ in range(MAX_OCCURRENCES_PER_RUN):
            if pending_first is not None:
                next_due, pending_first = pending_first, None
            else:
                next_due = calculate_next_due_date(template.recurrence, current, tz)
            if next_due is None or to_local_date(next_due, tz) > horizon_date:
                break
            current = next_due
            watermark = next_due

            if to_local_date(next_due, tz) < today:
                continue
            if next_due in existing:
                duplicates += 1
                continue

            created.append(await self.materialize(template, next_due))
            existing.add(next_due)
        else:
            logger.warning(
                f"Template {template.id} hit the occurrence limit ({MAX_OCCURRENCES_PER_RUN}) in one run"
            )

        await self._advance_watermark(template, watermark)

        if duplicates:
            logger.info(f"Template {template.id}: skipped {duplicates} occurrences that already exist")
        if not created:
            return self._skipped(template, "no new occurrences within horizon", duplicates)

        logger.info(
            f"Generated {len(created)} instances for template {template.id} "
            f"through {created[-1].due_date.isoformat()}"
        )
        return GenerationOutcome(
            template_id=template.id,
            status=GenerationStatus.GENERATED,
            created_ids=[t.id for t in created],
            skipped_duplicates=duplicates,
        )

    async def spawn_successor(self, template: Task, completed_at: datetime, tz: tzinfo) -> Optional[Task]:
        """
        Create the next instance of a completion-based template.

        The occurrence is computed from completed_at, not from the calendar.

        Returns:
            The new instance, or None if the rule has ended or the
            occurrence already exists
        """
        next_due = calculate_next_due_date(template.recurrence, completed_at, tz)
        if next_due is None:
            logger.info(f"Template {template.id} has reached its end date; no successor created")
            return None

        if next_due in await self._existing_due_dates(template.id):
            logger.info(f"Template {template.id} already has an instance due {next_due.isoformat()}")
            return None

        instance = await self.materialize(template, next_due)
        await self._advance_watermark(template, next_due)
        logger.info(f"Created successor instance {instance.id} for template {template.id}")
        return instance

    async def materialize(self, template: Task, due_date: datetime) -> Task:
        """
        Create one instance of the template plus a fresh copy of its subtasks.

        Subtasks are read from the template as it is now and reset to
        not_started.
        """
        instance = await self.repository.create(
            TaskCreate(
                user_id=template.user_id,
                name=template.name,
                note=template.note,
                priority=template.priority,
                status=TaskStatus.NOT_STARTED,
                due_date=due_date,
                recurring_parent_id=template.id,
            )
        )

        for subtask in await self.repository.find_subtasks(template.id):
            await self.repository.create(
                TaskCreate(
                    user_id=subtask.user_id,
                    name=subtask.name,
                    note=subtask.note,
                    priority=subtask.priority,
                    status=TaskStatus.NOT_STARTED,
                    parent_task_id=instance.id,
                )
            )

        return instance

    async def _ensure_open_instance(self, template: Task, tz: tzinfo) -> GenerationOutcome:
        """Completion-based templates get exactly one open instance at a time"""
        instances = await self.repository.find_instances(template.id)
        if any(i.status in ACTIVE_STATUSES for i in instances):
            return self._skipped(template, "completion-based template already has an open instance")

        anchor = generation_anchor(template)
        if anchor is None:
            return self._skipped(template, "template has no due date and no generation history")

        # 最初のインスタンスはテンプレートの期日そのもの
        first_due = first_occurrence(template, tz)
        if first_due is None:
            first_due = calculate_next_due_date(template.recurrence, anchor, tz)
        if first_due is None:
            return self._skipped(template, "recurrence has ended")

        if first_due in {ensure_utc(i.due_date) for i in instances if i.due_date}:
            return self._skipped(template, "occurrence already exists", duplicates=1)

        instance = await self.materialize(template, first_due)
        await self._advance_watermark(template, first_due)
        return GenerationOutcome(
            template_id=template.id,
            status=GenerationStatus.GENERATED,
            created_ids=[instance.id],
        )

    async def _existing_due_dates(self, template_id: int) -> Set[datetime]:
        instances = await self.repository.find_instances(template_id)
        return {ensure_utc(i.due_date) for i in instances if i.due_date is not None}

    async def _advance_watermark(self, template: Task, watermark: datetime) -> None:
        """Move last_generated_date forward; it never moves back here"""
        current = template.last_generated_date
        if current is not None and ensure_utc(current) >= watermark:
            return
        template.last_generated_date = watermark
        await self.repository.save(template)

    @staticmethod
    def _skipped(template: Task, reason: str, duplicates: int = 0) -> GenerationOutcome:
        logger.debug(f"Generation skipped for task {template.id}: {reason}")
        return GenerationOutcome(
            template_id=template.id,
            status=GenerationStatus.SKIPPED,
            skipped_duplicates=duplicates,
            reason=reason,
        )
