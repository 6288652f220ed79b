"""Tasks feature module: recurring-task engine and its API"""

from app.features.tasks.api import router
from app.features.tasks.cascade import CompletionCascadeEngine, subtask_target_status
from app.features.tasks.errors import CascadeAborted, RecurrenceError, TaskNotFound
from app.features.tasks.generation_job import RecurringGenerationJob
from app.features.tasks.generator import InstanceGenerator
from app.features.tasks.repository import TaskRepository
from app.features.tasks.rule_update import RecurrenceUpdateCoordinator, partition_instances
from app.features.tasks.service import TaskService
from app.features.tasks.visibility import display_name, filter_for_view

__all__ = [
    "router",
    "CompletionCascadeEngine",
    "subtask_target_status",
    "CascadeAborted",
    "RecurrenceError",
    "TaskNotFound",
    "RecurringGenerationJob",
    "InstanceGenerator",
    "TaskRepository",
    "RecurrenceUpdateCoordinator",
    "partition_instances",
    "TaskService",
    "display_name",
    "filter_for_view",
]
