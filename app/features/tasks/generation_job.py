"""
Recurring task generation job

Batch entry point for the scheduler tick and the on-demand
"generate-recurring" trigger. Each template is generated in its own
session and unit of work; a failing template is reported and never
rolls back or stops the others.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from app.config import GENERATION_CONCURRENCY, PROCESSED_REQUEST_CAP, RECURRENCE_HORIZON_DAYS
from app.features.tasks.locks import TemplateLockRegistry, template_locks
from app.features.tasks.repository import TaskRepository
from app.features.tasks.schemas import GenerationOutcome, GenerationRunResult, GenerationStatus
from app.features.tasks.service import TaskService
from app.utils.datetime_helper import utcnow
from app.utils.processed_requests import ProcessedRequestSet

logger = logging.getLogger(__name__)

# Request IDs of triggers already handled (at-least-once delivery)
processed_requests = ProcessedRequestSet(PROCESSED_REQUEST_CAP)


class RecurringGenerationJob:
    """Generates instances for every template that is owed some"""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        horizon_days: int = RECURRENCE_HORIZON_DAYS,
        concurrency: int = GENERATION_CONCURRENCY,
        locks: Optional[TemplateLockRegistry] = None,
        processed: Optional[ProcessedRequestSet] = None,
    ):
        self.session_factory = session_factory
        self.horizon_days = horizon_days
        self.concurrency = max(1, concurrency)
        self.locks = locks or template_locks
        self.processed = processed if processed is not None else processed_requests

    async def run(self, now: Optional[datetime] = None, request_id: Optional[str] = None) -> GenerationRunResult:
        """
        Run generation for all templates due within the horizon.

        Args:
            now: Reference time (defaults to now in UTC)
            request_id: Stable trigger ID; a repeated ID is acknowledged
                without running again

        Returns:
            GenerationRunResult with one outcome per template
        """
        if request_id is not None and self.processed.seen(request_id):
            logger.info(f"Generation request {request_id} already processed; skipping")
            return GenerationRunResult(duplicate_request=True)

        if now is None:
            now = utcnow()

        # One extra day covers zones ahead of UTC; the generator checks exactly
        horizon_end = now + timedelta(days=self.horizon_days + 1)
        async with self.session_factory() as session:
            template_ids = await TaskRepository(session).find_templates_due(horizon_end)

        semaphore = asyncio.Semaphore(self.concurrency)
        outcomes = await asyncio.gather(
            *(self._run_one(template_id, now, semaphore) for template_id in template_ids)
        )

        result = GenerationRunResult(
            generated_count=sum(len(o.created_ids) for o in outcomes),
            failed_count=sum(1 for o in outcomes if o.status == GenerationStatus.FAILED),
            outcomes=list(outcomes),
        )
        logger.info(
            f"Generation run finished: {len(template_ids)} templates, "
            f"{result.generated_count} instances created, {result.failed_count} failed"
        )
        return result

    async def _run_one(self, template_id: int, now: datetime, semaphore: asyncio.Semaphore) -> GenerationOutcome:
        async with semaphore:
            async with self.session_factory() as session:
                service = TaskService(session, horizon_days=self.horizon_days, locks=self.locks)
                try:
                    return await service.generate_for_template(template_id, now)
                except Exception as e:
                    logger.error(f"Error generating instances for template {template_id}: {e}", exc_info=True)
                    return GenerationOutcome(
                        template_id=template_id,
                        status=GenerationStatus.FAILED,
                        reason=str(e),
                    )
