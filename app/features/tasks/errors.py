"""Errors raised by the recurring task engine"""

from app.models.recurrence import InvalidRule


class RecurrenceError(Exception):
    """Base class for task engine errors"""


class TaskNotFound(RecurrenceError, LookupError):
    """Raised when a task id does not resolve to a row"""

    def __init__(self, task_id: int):
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class CascadeAborted(RecurrenceError):
    """
    Raised when a status cascade cannot be applied in full.

    The enclosing unit of work is rolled back, so no partial cascade is
    ever visible.
    """


__all__ = ["RecurrenceError", "InvalidRule", "TaskNotFound", "CascadeAborted"]
