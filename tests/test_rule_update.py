"""Tests for RecurrenceUpdateCoordinator and rule edits through TaskService."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from app.features.tasks.rule_update import is_stale_instance, partition_instances
from app.features.tasks.schemas import UpdateTaskRequest
from app.models.recurrence import InvalidRule, RecurrenceRule, RecurrenceType, Weekday
from app.models.task import Task, TaskStatus
from conftest import NOW, USER_ID, days

UTC = timezone.utc


def weekly(weekday: Weekday, interval: int = 1) -> RecurrenceRule:
    return RecurrenceRule(type=RecurrenceType.WEEKLY, weekday=weekday, interval=interval)


def _task(id: int, status: TaskStatus, due_date) -> Task:
    return Task(
        id=id,
        user_id=USER_ID,
        name="i",
        status=status,
        due_date=due_date,
        recurring_parent_id=1,
        created_at=NOW,
    )


class TestPartition:

    def test_only_not_started_future_instances_are_stale(self):
        instances = [
            _task(1, TaskStatus.NOT_STARTED, NOW + days(1)),
            _task(2, TaskStatus.IN_PROGRESS, NOW + days(1)),
            _task(3, TaskStatus.WAITING, NOW + days(2)),
            _task(4, TaskStatus.DONE, NOW + days(3)),
            _task(5, TaskStatus.NOT_STARTED, NOW - days(1)),
            _task(6, TaskStatus.NOT_STARTED, None),
            _task(7, TaskStatus.NOT_STARTED, NOW),
        ]

        preserved, stale = partition_instances(instances, NOW)

        assert [t.id for t in stale] == [1]
        assert [t.id for t in preserved] == [2, 3, 4, 5, 6, 7]

    def test_due_exactly_now_is_not_stale(self):
        assert not is_stale_instance(_task(1, TaskStatus.NOT_STARTED, NOW), NOW)


# ═══════════════════════════════════════════════════════════════════
#  Coordinator
# ═══════════════════════════════════════════════════════════════════


@pytest.fixture
def coordinator(service):
    return service.coordinator


async def _change(coordinator, session, repo, template_id, new_rule, horizon_days=7):
    template = await repo.get(template_id)
    result = await coordinator.on_rule_changed(
        template, template.recurrence, new_rule, horizon_days, UTC, now=NOW
    )
    await session.commit()
    return result


class TestRuleChange:

    async def test_weekly_monday_to_biweekly_friday(self, coordinator, session, repo, add_task):
        """Stale Mondays are replaced by Fridays; the done instance stays."""
        template = await add_task(
            "Review", recurrence=weekly(Weekday.MONDAY),
            due_date=datetime(2026, 2, 16, 9, 0, tzinfo=UTC),
            last_generated_date=datetime(2026, 3, 23, 9, 0, tzinfo=UTC),
        )
        done = await add_task(
            "Review", status=TaskStatus.DONE, recurring_parent_id=template.id,
            due_date=datetime(2026, 3, 9, 9, 0, tzinfo=UTC),
        )
        for due in (datetime(2026, 3, 16, 9, 0, tzinfo=UTC), datetime(2026, 3, 23, 9, 0, tzinfo=UTC)):
            await add_task("Review", recurring_parent_id=template.id, due_date=due)

        result = await _change(
            coordinator, session, repo, template.id, weekly(Weekday.FRIDAY, interval=2), horizon_days=21
        )

        assert result.deleted_count == 2
        assert result.regenerated_count == 2
        instances = await repo.find_instances(template.id)
        assert [(i.id, i.status) for i in instances][0] == (done.id, TaskStatus.DONE)
        assert [i.due_date for i in instances] == [
            datetime(2026, 3, 9, 9, 0, tzinfo=UTC),
            datetime(2026, 3, 13, 9, 0, tzinfo=UTC),
            datetime(2026, 3, 27, 9, 0, tzinfo=UTC),
        ]
        assert result.template.recurrence.weekday == Weekday.FRIDAY

    async def test_instances_user_acted_on_are_kept(self, coordinator, session, repo, add_task):
        template = await add_task(
            "T", recurrence=RecurrenceRule(type=RecurrenceType.DAILY),
            due_date=NOW - days(2), last_generated_date=NOW + days(2),
        )
        kept = [
            await add_task("T", recurring_parent_id=template.id, due_date=NOW - days(2)),
            await add_task("T", recurring_parent_id=template.id, due_date=NOW + days(1),
                           status=TaskStatus.IN_PROGRESS),
            await add_task("T", recurring_parent_id=template.id, due_date=NOW + days(2),
                           status=TaskStatus.WAITING),
        ]

        result = await _change(
            coordinator, session, repo, template.id,
            RecurrenceRule(type=RecurrenceType.DAILY, interval=2),
        )

        assert result.deleted_count == 0
        remaining = {i.id: i.status for i in await repo.find_instances(template.id)}
        for task in kept:
            assert remaining[task.id] == task.status

    async def test_type_change_restarts_from_today(self, coordinator, session, repo, add_task):
        template = await add_task(
            "T", recurrence=RecurrenceRule(type=RecurrenceType.DAILY),
            due_date=NOW - days(5), last_generated_date=NOW + days(2),
        )
        await add_task("T", status=TaskStatus.DONE, recurring_parent_id=template.id, due_date=NOW - days(1))
        for offset in (0, 1, 2):
            await add_task("T", recurring_parent_id=template.id, due_date=NOW + days(offset))

        result = await _change(coordinator, session, repo, template.id, weekly(Weekday.FRIDAY))

        assert result.deleted_count == 2
        assert [i.due_date for i in await repo.find_instances(template.id)] == [
            NOW - days(1),
            NOW,
            datetime(2026, 3, 13, 9, 0, tzinfo=UTC),
        ]

    async def test_turning_rule_off_leaves_instances(self, coordinator, session, repo, add_task):
        template = await add_task(
            "T", recurrence=RecurrenceRule(type=RecurrenceType.DAILY),
            due_date=NOW, last_generated_date=NOW + days(1),
        )
        for offset in (0, 1):
            await add_task("T", recurring_parent_id=template.id, due_date=NOW + days(offset))

        result = await _change(coordinator, session, repo, template.id, RecurrenceRule())

        assert result.deleted_count == 0
        assert result.template.recurrence.type == RecurrenceType.NONE
        assert len(await repo.find_instances(template.id)) == 2

    async def test_unchanged_rule_is_a_noop(self, coordinator, session, repo, add_task):
        rule = RecurrenceRule(type=RecurrenceType.DAILY)
        template = await add_task("T", recurrence=rule, due_date=NOW, last_generated_date=NOW + days(1))
        await add_task("T", recurring_parent_id=template.id, due_date=NOW + days(1))

        result = await _change(coordinator, session, repo, template.id, rule)

        assert result.deleted_count == 0
        assert result.regenerated_count == 0
        assert len(await repo.find_instances(template.id)) == 1

    async def test_invalid_rule_changes_nothing(self, coordinator, session, repo, add_task):
        template = await add_task(
            "T", recurrence=RecurrenceRule(type=RecurrenceType.DAILY),
            due_date=NOW, last_generated_date=NOW + days(1),
        )
        await add_task("T", recurring_parent_id=template.id, due_date=NOW + days(1))

        with pytest.raises(InvalidRule):
            await _change(
                coordinator, session, repo, template.id,
                RecurrenceRule(type=RecurrenceType.MONTHLY_WEEKDAY, week_of_month=2),
            )

        assert len(await repo.find_instances(template.id)) == 1
        assert (await repo.get(template.id)).recurrence.type == RecurrenceType.DAILY

    async def test_stale_instance_subtasks_are_deleted(self, coordinator, session, repo, add_task):
        template = await add_task(
            "T", recurrence=RecurrenceRule(type=RecurrenceType.DAILY),
            due_date=NOW, last_generated_date=NOW + days(1),
        )
        stale = await add_task("T", recurring_parent_id=template.id, due_date=NOW + days(1))
        subtask = await add_task("Step", parent_task_id=stale.id)

        await _change(coordinator, session, repo, template.id, weekly(Weekday.SUNDAY))

        instances = await repo.find_instances(template.id)
        assert NOW + days(1) not in [i.due_date for i in instances]
        assert all(i.due_date.weekday() == Weekday.SUNDAY for i in instances)
        assert await repo.find_subtasks(stale.id) == []
        assert await repo.get(subtask.id) is None
        assert stale.id not in [i.id for i in instances]


# ═══════════════════════════════════════════════════════════════════
#  Through the service
# ═══════════════════════════════════════════════════════════════════


class TestUpdateTask:

    async def test_standalone_task_becomes_template(self, service, repo, add_task):
        task = await add_task("Stretch", due_date=NOW)

        result = await service.update_task(
            task.id,
            UpdateTaskRequest(recurrence=RecurrenceRule(type=RecurrenceType.DAILY)),
            now=NOW,
        )

        assert result.template.is_template
        dates = [i.due_date for i in await repo.find_instances(task.id)]
        assert dates[0] == NOW
        assert dates[-1] == NOW + days(7)
        assert len(dates) == 8

    async def test_template_edits_reach_future_instances_only(self, service, repo, add_task):
        template = await add_task(
            "Old", recurrence=RecurrenceRule(type=RecurrenceType.DAILY),
            due_date=NOW - days(1), last_generated_date=NOW + days(1),
        )
        done = await add_task("Old", status=TaskStatus.DONE, recurring_parent_id=template.id,
                              due_date=NOW - days(1))
        future = await add_task("Old", recurring_parent_id=template.id, due_date=NOW + days(1))

        result = await service.update_task(template.id, UpdateTaskRequest(name="New", priority=2), now=NOW)

        assert result.updated_count == 1
        assert (await repo.get(future.id)).name == "New"
        assert (await repo.get(future.id)).priority == 2
        assert (await repo.get(done.id)).name == "Old"

    async def test_rule_cannot_be_set_on_instance(self, service, add_task):
        template = await add_task("T", recurrence=RecurrenceRule(type=RecurrenceType.DAILY), due_date=NOW)
        instance = await add_task("T", recurring_parent_id=template.id, due_date=NOW)

        with pytest.raises(InvalidRule):
            await service.update_task(
                instance.id,
                UpdateTaskRequest(recurrence=RecurrenceRule(type=RecurrenceType.WEEKLY)),
                now=NOW,
            )
