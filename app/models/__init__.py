"""Domain models for the application"""
from .recurrence import (
    GENERIC_LABELS,
    InvalidRule,
    RecurrenceRule,
    RecurrenceType,
    ValidatedRecurrenceRule,
    Weekday,
    validate_recurrence_rule,
)
from .task import ACTIVE_STATUSES, Task, TaskCreate, TaskStatus, TaskUpdate
from .user import UserProfile

__all__ = [
    'GENERIC_LABELS', 'InvalidRule', 'RecurrenceRule', 'RecurrenceType',
    'ValidatedRecurrenceRule', 'Weekday', 'validate_recurrence_rule',
    'ACTIVE_STATUSES',
    'Task', 'TaskCreate', 'TaskStatus', 'TaskUpdate',
    'UserProfile',
]
