"""Task domain model"""
from datetime import datetime
from enum import Enum
from typing import FrozenSet, Optional
from pydantic import BaseModel, Field

from app.models.recurrence import RecurrenceRule, RecurrenceType


class TaskStatus(str, Enum):
    """Closed set of task statuses"""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    WAITING = "waiting"
    DONE = "done"
    CANCELLED = "cancelled"
    ARCHIVED = "archived"


ACTIVE_STATUSES: FrozenSet[TaskStatus] = frozenset(
    {TaskStatus.NOT_STARTED, TaskStatus.IN_PROGRESS, TaskStatus.WAITING}
)


class TaskBase(BaseModel):
    """Base task fields for creation"""
    name: str
    note: Optional[str] = None
    priority: Optional[int] = Field(None, ge=0, le=2)
    status: TaskStatus = TaskStatus.NOT_STARTED
    due_date: Optional[datetime] = None
    recurrence: RecurrenceRule = Field(default_factory=RecurrenceRule)
    parent_task_id: Optional[int] = None


class TaskCreate(TaskBase):
    """Task creation model"""
    user_id: str   # UUID as string
    recurring_parent_id: Optional[int] = None
    completed_at: Optional[datetime] = None
    last_generated_date: Optional[datetime] = None


class TaskUpdate(BaseModel):
    """Task update model - all fields optional"""
    name: Optional[str] = None
    note: Optional[str] = None
    priority: Optional[int] = Field(None, ge=0, le=2)
    due_date: Optional[datetime] = None


class Task(TaskBase):
    """Complete task model from database"""
    id: int
    user_id: str
    recurring_parent_id: Optional[int] = None
    completed_at: Optional[datetime] = None
    last_generated_date: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @property
    def is_template(self) -> bool:
        return self.recurring_parent_id is None and self.recurrence.type != RecurrenceType.NONE

    @property
    def is_instance(self) -> bool:
        return self.recurring_parent_id is not None

    @property
    def is_standalone(self) -> bool:
        return not self.is_template and not self.is_instance
