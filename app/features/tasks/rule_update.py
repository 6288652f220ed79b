"""
Recurrence update coordinator

Re-synchronises a template's materialised instances after its rule is edited.
Instances the user has not acted on and that are due in the future were
scheduled under the old rule; they are deleted and the horizon is refilled
under the new rule. Everything else is history and is left alone.
"""

import logging
from datetime import datetime, tzinfo
from typing import List, Optional, Tuple

from app.features.tasks.generator import InstanceGenerator
from app.features.tasks.repository import TaskRepository
from app.features.tasks.schemas import RuleChangeResult
from app.models.recurrence import RecurrenceRule, validate_recurrence_rule
from app.models.task import Task, TaskStatus
from app.utils.datetime_helper import combine_local, ensure_utc, local_today, start_of_local_day, to_local, utcnow

logger = logging.getLogger(__name__)

# Template fields copied onto instances that have not been acted on yet
PROPAGATED_FIELDS = ("name", "note", "priority")


def is_stale_instance(instance: Task, now: datetime) -> bool:
    """Not started and due strictly after now"""
    return (
        instance.status == TaskStatus.NOT_STARTED
        and instance.due_date is not None
        and ensure_utc(instance.due_date) > now
    )


def partition_instances(instances: List[Task], now: datetime) -> Tuple[List[Task], List[Task]]:
    """
    Split a template's instances into (preserved, stale).

    Preserved: done, in progress, waiting, cancelled or archived, or not
    started with a past or missing due date. Stale: not started and due in
    the future.
    """
    preserved: List[Task] = []
    stale: List[Task] = []
    for instance in instances:
        (stale if is_stale_instance(instance, now) else preserved).append(instance)
    return preserved, stale


class RecurrenceUpdateCoordinator:
    """Applies a rule change to a template and its instances"""

    def __init__(self, repository: TaskRepository, generator: InstanceGenerator):
        self.repository = repository
        self.generator = generator

    async def on_rule_changed(
        self,
        template: Task,
        old_rule: RecurrenceRule,
        new_rule: RecurrenceRule,
        horizon_days: int,
        tz: tzinfo,
        now: Optional[datetime] = None,
    ) -> RuleChangeResult:
        """
        Replace a template's rule, drop stale instances and regenerate.

        Validation runs before any row is touched. Turning the rule off
        (type none) stores it but leaves every instance as it is.

        Args:
            template: Template being edited (its current state)
            old_rule: Rule before the edit
            new_rule: Rule after the edit
            horizon_days: Horizon used to refill instances
            tz: Owner's time zone
            now: Reference time (defaults to now in UTC)

        Returns:
            RuleChangeResult with deleted and regenerated counts

        Raises:
            InvalidRule: If new_rule is structurally invalid
        """
        validate_recurrence_rule(new_rule)
        if now is None:
            now = utcnow()

        if new_rule == old_rule:
            return RuleChangeResult(template=template)

        if not new_rule.is_active:
            template.recurrence = new_rule
            saved = await self.repository.save(template)
            logger.info(f"Recurrence turned off for task {template.id}; instances left untouched")
            return RuleChangeResult(template=saved)

        instances = await self.repository.find_instances(template.id)
        preserved, stale = partition_instances(instances, now)

        deleted = 0
        for instance in stale:
            deleted += await self.repository.delete_tree(instance.id)

        template.recurrence = new_rule
        # Never generated before: the due date stays the first occurrence
        scheduled = old_rule.is_active or template.last_generated_date is not None
        if scheduled and new_rule.type != old_rule.type:
            # Type changed: start the new schedule from today
            template.last_generated_date = self._restart_watermark(template, tz, now)
        elif scheduled:
            template.last_generated_date = self._surviving_watermark(template, preserved, tz, now)
        saved = await self.repository.save(template)

        outcome = await self.generator.generate(saved, horizon_days, tz, now)
        refreshed = await self.repository.get(template.id) or saved

        logger.info(
            f"Rule change on template {template.id}: deleted {len(stale)} stale instances "
            f"({deleted} rows), generated {len(outcome.created_ids)}"
        )
        return RuleChangeResult(
            template=refreshed,
            deleted_count=len(stale),
            regenerated_count=len(outcome.created_ids),
        )

    async def on_template_fields_changed(self, template: Task, now: Optional[datetime] = None) -> int:
        """
        Copy name, note and priority onto instances not yet acted on.

        Returns:
            Number of instances updated
        """
        if now is None:
            now = utcnow()

        updated = 0
        for instance in await self.repository.find_instances(template.id):
            if not is_stale_instance(instance, now):
                continue
            changes = {
                field: getattr(template, field)
                for field in PROPAGATED_FIELDS
                if getattr(instance, field) != getattr(template, field)
            }
            if not changes:
                continue
            await self.repository.save(instance.model_copy(update=changes))
            updated += 1

        if updated:
            logger.info(f"Propagated template {template.id} fields to {updated} future instances")
        return updated

    @staticmethod
    def _restart_watermark(template: Task, tz: tzinfo, now: datetime) -> datetime:
        """Today at the template's wall-clock time (midnight if it has no due date)"""
        today = local_today(tz, now)
        if template.due_date is None:
            return start_of_local_day(today, tz)
        return combine_local(today, to_local(template.due_date, tz).time(), tz)

    @classmethod
    def _surviving_watermark(cls, template: Task, preserved: List[Task], tz: tzinfo, now: datetime) -> datetime:
        """Latest due date among the instances that survived, else today"""
        dates = [ensure_utc(i.due_date) for i in preserved if i.due_date is not None]
        if dates:
            return max(dates)
        return cls._restart_watermark(template, tz, now)
