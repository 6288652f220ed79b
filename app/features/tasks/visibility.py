"""Read-time visibility of templates and instances per list view"""

from datetime import date, tzinfo
from typing import Iterable, List

from app.features.tasks.schemas import TaskMetrics, TaskView, ViewType
from app.models.recurrence import GENERIC_LABELS
from app.models.task import ACTIVE_STATUSES, Task, TaskStatus
from app.utils.datetime_helper import to_local_date


def display_name(task: Task) -> str:
    """Generic recurrence label for templates; stored name for everything else"""
    if task.is_template:
        return GENERIC_LABELS.get(task.recurrence.type, task.name)
    return task.name


def _due_local(task: Task, tz: tzinfo):
    return to_local_date(task.due_date, tz) if task.due_date is not None else None


def is_visible(view: ViewType, task: Task, today: date, tz: tzinfo) -> bool:
    """
    Whether a row appears at the top level of a view.

    Subtasks never do; they are listed under their parent. Standalone
    tasks follow the view's due-date window in today/upcoming and are
    always shown in default/someday.
    """
    if task.parent_task_id is not None:
        return False

    due = _due_local(task, tz)

    if task.is_standalone:
        if view == ViewType.TODAY:
            return due == today
        if view == ViewType.UPCOMING:
            return due is not None and due > today
        return True

    if view in (ViewType.DEFAULT, ViewType.SOMEDAY):
        if task.is_instance:
            return False
        # A template whose due date has passed is a missed commitment
        return due is None or due >= today

    if view == ViewType.TODAY:
        return task.is_instance and due == today

    if view == ViewType.UPCOMING:
        return due is not None and due > today

    return False


def filter_for_view(view: ViewType, tasks: Iterable[Task], today: date, tz: tzinfo) -> List[Task]:
    return [task for task in tasks if is_visible(view, task, today, tz)]


def to_view(task: Task) -> TaskView:
    return TaskView(
        id=task.id,
        name=display_name(task),
        original_name=task.name,
        status=task.status,
        note=task.note,
        priority=task.priority,
        due_date=task.due_date,
        completed_at=task.completed_at,
        parent_task_id=task.parent_task_id,
        recurring_parent_id=task.recurring_parent_id,
        recurrence_type=task.recurrence.type,
        is_template=task.is_template,
        is_instance=task.is_instance,
    )


def compute_metrics(tasks: Iterable[Task], today: date, tz: tzinfo) -> TaskMetrics:
    """Counters over exactly the rows the default view shows"""
    metrics = TaskMetrics()
    for task in filter_for_view(ViewType.DEFAULT, tasks, today, tz):
        metrics.total += 1
        if task.status in ACTIVE_STATUSES:
            metrics.open += 1
        if task.status == TaskStatus.IN_PROGRESS:
            metrics.in_progress += 1
        if task.status == TaskStatus.DONE:
            metrics.done += 1

        due = _due_local(task, tz)
        if due is not None and task.status in ACTIVE_STATUSES:
            if due == today:
                metrics.due_today += 1
            elif due < today:
                metrics.overdue += 1
    return metrics
