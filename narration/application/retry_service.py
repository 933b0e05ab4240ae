"""
Retry Services

Execution of due retries and the manual "retry failed items" use case.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from narration.domain.content_processing import ContentItemRepository, ItemStatus
from narration.domain.errors import ErrorScope, ValidationError
from narration.domain.error_tracking import ErrorLogRepository
from narration.domain.events import ItemCreatedEvent
from narration.domain.job_management import JobStatus
from narration.domain.queues import IItemQueue, ItemWorkDescriptor, RetryDescriptor

from .event_bus import EventBus
from .item_processing_service import ItemProcessingService
from .pipeline_orchestrator import PipelineOrchestrator

logger = logging.getLogger(__name__)


class RetryService:
    """Runs a retry once its delay has elapsed."""

    def __init__(
        self,
        orchestrator: PipelineOrchestrator,
        item_processing: ItemProcessingService,
        error_log_repository: ErrorLogRepository,
    ):
        self.orchestrator = orchestrator
        self.item_processing = item_processing
        self.error_log_repository = error_log_repository

    def dispatch(self, descriptor: RetryDescriptor) -> None:
        """
        Re-invoke the failed unit of work described by ``descriptor``.

        Items re-enter the pipeline through validation, chunks are
        synthesized again, jobs get their pending items enqueued again.
        """
        logger.info(
            f"Dispatching retry {descriptor.retry_count}/{descriptor.max_retries} "
            f"for {descriptor.scope.value} {descriptor.entity_id}"
        )
        self._mark_retried(descriptor.error_log_id)

        if descriptor.scope == ErrorScope.ITEM:
            if self._already_retried(descriptor):
                logger.info(
                    f"Retry {descriptor.retry_count} of item {descriptor.entity_id} already ran, skipping"
                )
                return
            self.item_processing.process_item(descriptor.entity_id)
        elif descriptor.scope == ErrorScope.CHUNK:
            self.item_processing.generate_chunk_audio(descriptor.entity_id)
        elif descriptor.scope == ErrorScope.JOB:
            self.orchestrator.requeue_pending_items(descriptor.entity_id)
        else:
            logger.warning(f"No retry handler for scope {descriptor.scope.value}")

    def _already_retried(self, descriptor: RetryDescriptor) -> bool:
        # resuming a paused job hands out waiting items without their descriptor
        item = self.orchestrator.item_repository.find_by_id(descriptor.entity_id)
        return item is not None and item.retry_count >= descriptor.retry_count

    def _mark_retried(self, error_log_id: Optional[str]) -> None:
        if not error_log_id:
            return
        error_log = self.error_log_repository.find_by_id(error_log_id)
        if error_log is None or error_log.was_retried or not error_log.is_retryable:
            return
        error_log.mark_as_retried()
        self.error_log_repository.save(error_log)


class RetryFailedItemsService:
    """
    Manual recovery of items that failed for good.

    Only final failures are picked up; items waiting for a scheduled retry
    are left to it.
    """

    def __init__(
        self,
        orchestrator: PipelineOrchestrator,
        item_repository: ContentItemRepository,
        item_queue: IItemQueue,
        event_bus: EventBus,
    ):
        self.orchestrator = orchestrator
        self.item_repository = item_repository
        self.item_queue = item_queue
        self.event_bus = event_bus

    def retry_failed_items(
        self, job_id: str, item_ids: Optional[Iterable[str]] = None
    ) -> Dict[str, Any]:
        """
        Reset failed items of a job and send them through the pipeline again.

        Args:
            job_id: Job whose items are retried
            item_ids: Restrict the retry to these items, all failed items if None

        Returns:
            Dictionary with the job id and the retried item ids

        Raises:
            EntityNotFoundError: If the job doesn't exist
            ValidationError: If the job is COMPLETED or CANCELLED
        """
        job = self.orchestrator.get_job(job_id)
        if job.status in (JobStatus.COMPLETED, JobStatus.CANCELLED):
            raise ValidationError(f"Cannot retry items of a {job.status.value} job")

        wanted = set(item_ids) if item_ids is not None else None
        items = [
            item
            for item in self.item_repository.find_by_job_id_and_status(job_id, ItemStatus.FAILED)
            if not item.awaiting_retry and (wanted is None or item.item_id in wanted)
        ]
        if not items:
            logger.info(f"No failed items to retry for job {job_id}")
            return {"job_id": job_id, "retried_items": []}

        retried: List[str] = []
        for item in items:
            item.reset_for_retry()
            self.item_repository.save(item)
            retried.append(item.item_id)

        self.orchestrator.reopen_failed_items(job_id, len(retried))

        for item in items:
            self.event_bus.publish(
                ItemCreatedEvent(
                    aggregate_id=item.item_id,
                    occurred_at=datetime.utcnow(),
                    job_id=job_id,
                    row_index=item.row_index,
                    is_retry=True,
                )
            )
            self.item_queue.enqueue(ItemWorkDescriptor(item_id=item.item_id, job_id=job_id))

        logger.info(f"Retrying {len(retried)} failed items of job {job_id}")
        return {"job_id": job_id, "retried_items": retried}
