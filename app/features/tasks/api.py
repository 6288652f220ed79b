"""Tasks API endpoints"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db import get_db, get_session_factory
from app.features.tasks.errors import CascadeAborted, TaskNotFound
from app.features.tasks.generation_job import RecurringGenerationJob
from app.features.tasks.schemas import (
    CascadeResult,
    CreateTaskRequest,
    DeleteResponse,
    GenerationRunResult,
    OccurrencePreviewResponse,
    RuleChangeResult,
    SetStatusRequest,
    TaskListResponse,
    TaskMetrics,
    TaskResponse,
    UpdateTaskRequest,
    ViewType,
)
from app.features.tasks.service import TaskService
from app.features.tasks.visibility import to_view
from app.models.recurrence import InvalidRule
from app.utils.recurrence_calculator import DEFAULT_PREVIEW_COUNT, MAX_PREVIEW_COUNT

logger = logging.getLogger(__name__)


router = APIRouter(prefix="/api/tasks", tags=["tasks"])


@router.get("", response_model=TaskListResponse)
async def list_tasks(
    user_id: str,
    view: ViewType = ViewType.DEFAULT,
    db: AsyncSession = Depends(get_db),
):
    """
    List a user's tasks for a view.

    default/someday hide recurrence instances and show templates under a
    generic label; today shows instances due today; upcoming shows rows
    with a future due date.
    """
    service = TaskService(db)
    tasks = await service.list_tasks(user_id, view)
    return {"tasks": tasks, "count": len(tasks)}


@router.get("/metrics", response_model=TaskMetrics)
async def get_metrics(user_id: str, db: AsyncSession = Depends(get_db)):
    """Task counters matching what the default view renders"""
    return await TaskService(db).get_metrics(user_id)


@router.post("/generate-recurring", response_model=GenerationRunResult)
async def generate_recurring(
    request_id: Optional[str] = Query(None, description="Stable trigger ID for at-least-once callers"),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """
    Generate recurring instances for all templates.

    Per-template failures are reported in the outcome list; the run itself
    always succeeds.
    """
    job = RecurringGenerationJob(session_factory)
    return await job.run(request_id=request_id)


@router.post("", response_model=TaskResponse)
async def create_task(request: CreateTaskRequest, db: AsyncSession = Depends(get_db)):
    """Create a task, subtask or recurrence template"""
    try:
        task = await TaskService(db).create_task(request)
    except TaskNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"task": to_view(task)}


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(task_id: int, db: AsyncSession = Depends(get_db)):
    """Get a single task by ID"""
    try:
        task = await TaskService(db).get_task(task_id)
    except TaskNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"task": to_view(task)}


@router.patch("/{task_id}", response_model=RuleChangeResult)
async def update_task(task_id: int, request: UpdateTaskRequest, db: AsyncSession = Depends(get_db)):
    """
    Update task fields and/or the recurrence rule.

    A rule change deletes not-started future instances and regenerates
    under the new rule; returns how many were deleted and created.
    """
    try:
        return await TaskService(db).update_task(task_id, request)
    except TaskNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidRule as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.patch("/{task_id}/status", response_model=CascadeResult)
async def set_task_status(task_id: int, request: SetStatusRequest, db: AsyncSession = Depends(get_db)):
    """Set a task's status and cascade it to subtasks"""
    try:
        return await TaskService(db).set_status(task_id, request.status)
    except TaskNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CascadeAborted as e:
        logger.error(f"Cascade aborted for task {task_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to update task status: {str(e)}")


@router.patch("/{task_id}/toggle_completion", response_model=CascadeResult)
async def toggle_completion(task_id: int, db: AsyncSession = Depends(get_db)):
    """Toggle a task between done and not done"""
    try:
        return await TaskService(db).toggle_completion(task_id)
    except TaskNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CascadeAborted as e:
        logger.error(f"Cascade aborted for task {task_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to toggle task: {str(e)}")


@router.get("/{task_id}/next-iterations", response_model=OccurrencePreviewResponse)
async def next_iterations(
    task_id: int,
    count: int = Query(DEFAULT_PREVIEW_COUNT, ge=1, le=MAX_PREVIEW_COUNT),
    db: AsyncSession = Depends(get_db),
):
    """Preview the next occurrences of a template"""
    try:
        occurrences = await TaskService(db).preview_occurrences(task_id, count)
    except TaskNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidRule as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"task_id": task_id, "occurrences": occurrences}


@router.delete("/{task_id}", response_model=DeleteResponse)
async def delete_task(task_id: int, db: AsyncSession = Depends(get_db)):
    """Delete a task with its subtasks and, for a template, its instances"""
    try:
        deleted = await TaskService(db).delete_task(task_id)
    except TaskNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {
        "success": True,
        "deleted_count": deleted,
        "message": "Task deleted successfully",
    }
