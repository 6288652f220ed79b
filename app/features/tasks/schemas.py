"""Request and response schemas for the tasks API"""

from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from app.models.recurrence import RecurrenceType, ValidatedRecurrenceRule
from app.models.task import Task, TaskStatus, TaskUpdate


class ViewType(str, Enum):
    """List views with their own recurrence visibility policy"""
    DEFAULT = "default"
    SOMEDAY = "someday"
    TODAY = "today"
    UPCOMING = "upcoming"


class GenerationStatus(str, Enum):
    """Per-template outcome of a generation run"""
    GENERATED = "generated"
    SKIPPED = "skipped"
    FAILED = "failed"


# ── Requests ────────────────────────────────────────────────────────


class CreateTaskRequest(BaseModel):
    user_id: str
    name: str
    note: Optional[str] = None
    priority: Optional[int] = Field(None, ge=0, le=2)
    status: TaskStatus = TaskStatus.NOT_STARTED
    due_date: Optional[datetime] = None
    parent_task_id: Optional[int] = None
    recurrence: ValidatedRecurrenceRule = None


class UpdateTaskRequest(TaskUpdate):
    """Task edit - all fields optional; recurrence replaces the whole rule"""
    recurrence: ValidatedRecurrenceRule = None


class SetStatusRequest(BaseModel):
    status: TaskStatus


# ── Engine results ──────────────────────────────────────────────────


class GenerationOutcome(BaseModel):
    """Result of generating instances for one template"""
    template_id: int
    status: GenerationStatus
    created_ids: List[int] = []
    skipped_duplicates: int = 0
    reason: Optional[str] = None


class GenerationRunResult(BaseModel):
    """Result of a batch generation run; failures are reported, not raised"""
    success: bool = True
    duplicate_request: bool = False
    generated_count: int = 0
    failed_count: int = 0
    outcomes: List[GenerationOutcome] = []


class CascadeResult(BaseModel):
    """Result of a status write and its cascade"""
    task: Task
    changed: bool
    affected_subtask_ids: List[int] = []
    successor: Optional[Task] = None


class RuleChangeResult(BaseModel):
    """Result of editing a template's recurrence rule"""
    template: Task
    deleted_count: int = 0
    regenerated_count: int = 0
    updated_count: int = 0


# ── Responses ───────────────────────────────────────────────────────


class TaskView(BaseModel):
    """Task as rendered in a list; name is the display name"""
    id: int
    name: str
    original_name: str
    status: TaskStatus
    note: Optional[str] = None
    priority: Optional[int] = None
    due_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    parent_task_id: Optional[int] = None
    recurring_parent_id: Optional[int] = None
    recurrence_type: RecurrenceType = RecurrenceType.NONE
    is_template: bool = False
    is_instance: bool = False


class TaskListResponse(BaseModel):
    tasks: List[TaskView]
    count: int


class TaskResponse(BaseModel):
    task: TaskView


class TaskMetrics(BaseModel):
    """Counters over the same rows the default view renders"""
    total: int = 0
    open: int = 0
    in_progress: int = 0
    done: int = 0
    due_today: int = 0
    overdue: int = 0


class OccurrencePreviewResponse(BaseModel):
    task_id: int
    occurrences: List[date]


class DeleteResponse(BaseModel):
    success: bool
    deleted_count: int
    message: str
