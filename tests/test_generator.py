"""Tests for InstanceGenerator: horizon filling, idempotency and subtask copy."""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from app.features.tasks.generator import InstanceGenerator, first_occurrence, generation_anchor
from app.features.tasks.schemas import GenerationStatus
from app.models.recurrence import RecurrenceRule, RecurrenceType, Weekday
from app.models.task import TaskStatus
from conftest import NOW, days

UTC = timezone.utc


def daily(**kwargs) -> RecurrenceRule:
    return RecurrenceRule(type=RecurrenceType.DAILY, **kwargs)


@pytest.fixture
def generator(repo) -> InstanceGenerator:
    return InstanceGenerator(repo)


async def _generate(generator, session, template_id, horizon_days=2, now=NOW):
    template = await generator.repository.get(template_id)
    outcome = await generator.generate(template, horizon_days, UTC, now=now)
    await session.commit()
    return outcome


async def _due_dates(repo, template_id):
    return [i.due_date for i in await repo.find_instances(template_id)]


# ═══════════════════════════════════════════════════════════════════
#  Anchors
# ═══════════════════════════════════════════════════════════════════


class TestAnchors:

    async def test_anchor_is_latest_of_due_and_watermark(self, add_task):
        template = await add_task(
            "T", recurrence=daily(), due_date=NOW - days(5), last_generated_date=NOW - days(2)
        )
        assert generation_anchor(template) == NOW - days(2)

    async def test_no_anchor_without_dates(self, add_task):
        template = await add_task("T", recurrence=daily())
        assert generation_anchor(template) is None

    async def test_due_date_is_first_occurrence_before_any_generation(self, add_task):
        template = await add_task("T", recurrence=daily(), due_date=NOW)
        assert first_occurrence(template, UTC) == NOW

    async def test_no_first_occurrence_once_generated(self, add_task):
        template = await add_task("T", recurrence=daily(), due_date=NOW, last_generated_date=NOW)
        assert first_occurrence(template, UTC) is None


# ═══════════════════════════════════════════════════════════════════
#  Horizon generation
# ═══════════════════════════════════════════════════════════════════


class TestGenerate:

    async def test_old_template_catches_up_without_backfill(self, generator, session, repo, add_task):
        """A template last generated a month ago only gets today onwards."""
        template = await add_task(
            "Water plants", recurrence=daily(),
            due_date=NOW - days(30), last_generated_date=NOW - days(30),
        )

        outcome = await _generate(generator, session, template.id, horizon_days=2)

        assert outcome.status == GenerationStatus.GENERATED
        assert await _due_dates(repo, template.id) == [
            datetime(2026, 3, 11, 9, 0, tzinfo=UTC),
            datetime(2026, 3, 12, 9, 0, tzinfo=UTC),
            datetime(2026, 3, 13, 9, 0, tzinfo=UTC),
        ]
        refreshed = await repo.get(template.id)
        assert refreshed.last_generated_date == datetime(2026, 3, 13, 9, 0, tzinfo=UTC)

    async def test_instances_copy_template_fields(self, generator, session, repo, add_task):
        template = await add_task("Report", recurrence=daily(), due_date=NOW, note="weekly numbers")

        await _generate(generator, session, template.id, horizon_days=0)

        [instance] = await repo.find_instances(template.id)
        assert instance.name == "Report"
        assert instance.note == "weekly numbers"
        assert instance.status == TaskStatus.NOT_STARTED
        assert instance.recurring_parent_id == template.id
        assert instance.recurrence.type == RecurrenceType.NONE

    async def test_second_run_is_a_noop(self, generator, session, repo, add_task):
        template = await add_task("T", recurrence=daily(), due_date=NOW)

        await _generate(generator, session, template.id)
        first = await _due_dates(repo, template.id)
        outcome = await _generate(generator, session, template.id)

        assert outcome.status == GenerationStatus.SKIPPED
        assert outcome.created_ids == []
        assert await _due_dates(repo, template.id) == first

    async def test_existing_due_date_is_not_duplicated(self, generator, session, repo, add_task):
        template = await add_task("T", recurrence=daily(), due_date=NOW)
        await add_task("T", due_date=NOW + days(1), recurring_parent_id=template.id)

        outcome = await _generate(generator, session, template.id)

        dates = await _due_dates(repo, template.id)
        assert len(dates) == len(set(dates)) == 3
        assert outcome.skipped_duplicates == 1

    async def test_watermark_never_moves_back(self, generator, session, repo, add_task):
        template = await add_task(
            "T", recurrence=daily(), due_date=NOW - days(3), last_generated_date=NOW + days(10)
        )

        outcome = await _generate(generator, session, template.id, horizon_days=2)

        assert outcome.status == GenerationStatus.SKIPPED
        refreshed = await repo.get(template.id)
        assert refreshed.last_generated_date == NOW + days(10)

    async def test_later_run_extends_horizon(self, generator, session, repo, add_task):
        template = await add_task("T", recurrence=daily(), due_date=NOW)

        await _generate(generator, session, template.id, horizon_days=1)
        await _generate(generator, session, template.id, horizon_days=1, now=NOW + days(1))

        assert await _due_dates(repo, template.id) == [NOW, NOW + days(1), NOW + days(2)]

    async def test_weekly_template_starts_on_its_due_date(self, generator, session, repo, add_task):
        template = await add_task(
            "Standup", recurrence=RecurrenceRule(type=RecurrenceType.WEEKLY, weekday=Weekday.WEDNESDAY),
            due_date=NOW,
        )

        await _generate(generator, session, template.id, horizon_days=7)

        assert await _due_dates(repo, template.id) == [NOW, NOW + days(7)]

    async def test_stops_at_end_date(self, generator, session, repo, add_task):
        template = await add_task(
            "T", recurrence=daily(end_date=date(2026, 3, 12)), due_date=NOW
        )

        await _generate(generator, session, template.id, horizon_days=7)

        assert await _due_dates(repo, template.id) == [NOW, NOW + days(1)]

    async def test_template_without_dates_is_skipped(self, generator, session, add_task):
        template = await add_task("T", recurrence=daily())

        outcome = await _generate(generator, session, template.id)

        assert outcome.status == GenerationStatus.SKIPPED
        assert "no due date" in outcome.reason

    async def test_standalone_task_is_skipped(self, generator, session, add_task):
        task = await add_task("Plain", due_date=NOW)

        outcome = await _generate(generator, session, task.id)

        assert outcome.status == GenerationStatus.SKIPPED
        assert outcome.reason == "task is not a recurrence template"


# ═══════════════════════════════════════════════════════════════════
#  Subtasks
# ═══════════════════════════════════════════════════════════════════


class TestSubtaskCopy:

    async def test_each_instance_gets_fresh_subtasks(self, generator, session, repo, add_task):
        template = await add_task("Checklist", recurrence=daily(), due_date=NOW)
        await add_task("Step 1", parent_task_id=template.id, status=TaskStatus.DONE)
        await add_task("Step 2", parent_task_id=template.id, status=TaskStatus.IN_PROGRESS)

        await _generate(generator, session, template.id, horizon_days=1)

        instances = await repo.find_instances(template.id)
        assert len(instances) == 2
        for instance in instances:
            subtasks = await repo.find_subtasks(instance.id)
            assert [s.name for s in subtasks] == ["Step 1", "Step 2"]
            assert all(s.status == TaskStatus.NOT_STARTED for s in subtasks)
            assert all(s.completed_at is None for s in subtasks)

    async def test_template_subtasks_are_untouched(self, generator, session, repo, add_task):
        template = await add_task("Checklist", recurrence=daily(), due_date=NOW)
        await add_task("Step 1", parent_task_id=template.id, status=TaskStatus.DONE)

        await _generate(generator, session, template.id, horizon_days=1)

        [subtask] = await repo.find_subtasks(template.id)
        assert subtask.status == TaskStatus.DONE


# ═══════════════════════════════════════════════════════════════════
#  Completion-based templates
# ═══════════════════════════════════════════════════════════════════


class TestCompletionBased:

    async def test_only_one_open_instance(self, generator, session, repo, add_task):
        template = await add_task(
            "Haircut", recurrence=daily(interval=3, completion_based=True), due_date=NOW
        )

        first = await _generate(generator, session, template.id, horizon_days=30)
        second = await _generate(generator, session, template.id, horizon_days=30)

        assert first.status == GenerationStatus.GENERATED
        assert second.status == GenerationStatus.SKIPPED
        assert await _due_dates(repo, template.id) == [NOW]

    async def test_successor_follows_completion_time(self, generator, session, repo, add_task):
        template = await add_task(
            "Haircut", recurrence=daily(interval=3, completion_based=True), due_date=NOW
        )

        successor = await generator.spawn_successor(template, NOW + days(5), UTC)
        await session.commit()

        assert successor.due_date == NOW + days(8)
        assert successor.recurring_parent_id == template.id
