"""
Pipeline Orchestrator

Coordinates job-level use cases: starting a job, moving items in and out
of the pipeline, and keeping the job counters consistent as items finish.
"""

import dataclasses
import logging
from datetime import datetime
from typing import Optional

from narration.domain.content_processing import ContentItem, ContentItemRepository, ItemStatus
from narration.domain.errors import (
    DomainError,
    EntityNotFoundError,
    ErrorCode,
    ProcessingCancelledError,
)
from narration.domain.error_tracking import ErrorLog, ErrorLogRepository
from narration.domain.events import (
    ItemPermanentFailureEvent,
    ItemProgressUpdatedEvent,
    ItemValidationStartedEvent,
    JobProgressUpdatedEvent,
)
from narration.domain.job_management import Job, JobProgress, JobRepository, JobStatus
from narration.domain.queues import IItemQueue, ItemWorkDescriptor

from .event_bus import EventBus
from .keyed_lock import KeyedLock

logger = logging.getLogger(__name__)


class PipelineOrchestrator:
    """
    Application service for the job lifecycle.

    Every load-increment-save of the job counters happens under a per-job
    lock. Terminal job events are published after the lock is released.
    """

    def __init__(
        self,
        job_repository: JobRepository,
        item_repository: ContentItemRepository,
        event_bus: EventBus,
        item_queue: IItemQueue,
        error_log_repository: Optional[ErrorLogRepository] = None,
        locks: Optional[KeyedLock] = None,
    ):
        """
        Initialize PipelineOrchestrator.

        Args:
            job_repository: Repository for jobs
            item_repository: Repository for content items
            event_bus: Bus receiving lifecycle events
            item_queue: Queue handing items to workers
            error_log_repository: Where item failures are recorded, optional
            locks: Per-job locks around counter updates, in-process by default
        """
        self.job_repository = job_repository
        self.item_repository = item_repository
        self.event_bus = event_bus
        self.item_queue = item_queue
        self.error_log_repository = error_log_repository
        self._job_locks = locks or KeyedLock()

    def register_event_handlers(self, event_bus: Optional[EventBus] = None) -> None:
        """Subscribe to failures decided by the error recovery policy."""
        bus = event_bus or self.event_bus
        bus.subscribe(ItemPermanentFailureEvent, self._on_item_permanent_failure)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_job(self, job_id: str) -> Job:
        job = self.job_repository.find_by_id(job_id)
        if job is None:
            raise EntityNotFoundError("Job", job_id)
        return job

    def get_item(self, item_id: str) -> ContentItem:
        item = self.item_repository.find_by_id(item_id)
        if item is None:
            raise EntityNotFoundError("ContentItem", item_id)
        return item

    # ------------------------------------------------------------------
    # Job use cases
    # ------------------------------------------------------------------

    def start_job_processing(self, job_id: str) -> Job:
        """
        Start a job and enqueue all of its pending items.

        If enqueueing fails, the job is marked FAILED and the error re-raised.

        Raises:
            EntityNotFoundError: If the job doesn't exist
            ValidationError: If the job has no items
            InvalidTransitionError: If the job cannot be started
        """
        with self._job_locks.hold(job_id):
            job = self.get_job(job_id)
            started = job.start()
            self.job_repository.save(job)
        self.event_bus.publish(started)

        try:
            enqueued = self.requeue_pending_items(job_id)
        except Exception as e:
            logger.error(f"Failed to enqueue items for job {job_id}: {e}", exc_info=True)
            with self._job_locks.hold(job_id):
                job = self.get_job(job_id)
                failed = job.fail(f"Failed to enqueue items: {e}") if not job.is_terminal() else None
                self.job_repository.save(job)
            if failed:
                self.event_bus.publish(failed)
            raise

        logger.info(f"Job {job_id} started with {enqueued} items enqueued")
        self.update_job_progress(job_id)
        return job

    def pause_job_processing(self, job_id: str) -> Job:
        """Pause a processing job. Items already running finish their current step."""
        with self._job_locks.hold(job_id):
            job = self.get_job(job_id)
            paused = job.pause()
            self.job_repository.save(job)
        logger.info(f"Job {job_id} paused")
        self.event_bus.publish(paused)
        self.update_job_progress(job_id)
        return job

    def resume_job_processing(self, job_id: str) -> Job:
        """
        Resume a paused job.

        If items finished while the job was paused, the job may complete
        immediately. Otherwise its PENDING items are enqueued again.
        """
        with self._job_locks.hold(job_id):
            job = self.get_job(job_id)
            resumed = job.resume()
            finished = job.finish_if_all_processed()
            self.job_repository.save(job)

        logger.info(f"Job {job_id} resumed")
        self.event_bus.publish(resumed)
        if finished:
            self.event_bus.publish(finished)
        else:
            self.requeue_pending_items(job_id, include_awaiting_retry=True)
        self.update_job_progress(job_id)
        return job

    def cancel_job_processing(self, job_id: str) -> int:
        """
        Cancel a job and every item that has not finished.

        Items still running are stopped by the worker, which checks the job
        status before committing results.

        Returns:
            Number of items cancelled
        """
        with self._job_locks.hold(job_id):
            job = self.get_job(job_id)
            cancelled = job.cancel()
            self.job_repository.save(job)

        count = 0
        for item in self.item_repository.find_by_job_id(job_id):
            if item.is_terminal():
                continue
            item.cancel()
            self.item_repository.save(item)
            self.publish_item_progress(item)
            count += 1

        logger.info(f"Job {job_id} cancelled, {count} items stopped")
        self.event_bus.publish(dataclasses.replace(cancelled, cancelled_items=count))
        self.update_job_progress(job_id)
        return count

    def requeue_pending_items(self, job_id: str, include_awaiting_retry: bool = False) -> int:
        """
        Enqueue every PENDING item of a job.

        Args:
            job_id: Job whose items are enqueued
            include_awaiting_retry: Also enqueue FAILED items waiting for a
                retry. A retry delivered while the job was paused is dropped,
                so resuming has to hand those items out again.

        Returns:
            Number of items enqueued
        """
        items = self.item_repository.find_by_job_id_and_status(job_id, ItemStatus.PENDING)
        if include_awaiting_retry:
            items += [
                item
                for item in self.item_repository.find_by_job_id_and_status(job_id, ItemStatus.FAILED)
                if item.awaiting_retry
            ]
        for item in items:
            self.item_queue.enqueue(ItemWorkDescriptor(item_id=item.item_id, job_id=job_id))
        logger.debug(f"Enqueued {len(items)} items for job {job_id}")
        return len(items)

    def reopen_failed_items(self, job_id: str, count: int) -> Job:
        """
        Roll back the failed counter for items about to be retried.

        A FAILED job goes back to PAUSED and is resumed. A job the user
        paused stays paused.
        """
        events = []
        with self._job_locks.hold(job_id):
            job = self.get_job(job_id)
            was_failed = job.status == JobStatus.FAILED
            if was_failed:
                job.reset_after_failure()
            job.reopen_failed_items(count)
            if was_failed:
                events.append(job.resume())
            self.job_repository.save(job)

        for event in events:
            self.event_bus.publish(event)
        self.update_job_progress(job_id)
        return job

    def update_job_progress(self, job_id: str) -> JobProgress:
        """Publish the current counters of a job."""
        job = self.get_job(job_id)
        progress = job.progress()
        self.event_bus.publish(
            JobProgressUpdatedEvent(
                aggregate_id=job_id,
                occurred_at=datetime.utcnow(),
                total_items=progress.total_items,
                completed_items=progress.completed_items,
                failed_items=progress.failed_items,
                percentage=progress.percentage,
            )
        )
        return progress

    # ------------------------------------------------------------------
    # Item use cases
    # ------------------------------------------------------------------

    def process_item(self, item_id: str) -> Optional[ContentItem]:
        """
        Move an item into validation, fresh or as a retry.

        Returns:
            The item, or None when its job is paused or the item is already
            being processed

        Raises:
            ProcessingCancelledError: If the job is cancelled or finished
            DomainError: If the item cannot start; the item is failed first
        """
        item = self.get_item(item_id)
        job = self.get_job(item.job_id)

        if job.status == JobStatus.PAUSED:
            logger.info(f"Job {job.job_id} is paused, item {item_id} stays {item.status.value}")
            return None
        if job.status != JobStatus.PROCESSING:
            raise ProcessingCancelledError(
                f"Job {job.job_id} is {job.status.value}, not processing item {item_id}"
            )

        if item.status == ItemStatus.FAILED and not item.awaiting_retry:
            logger.warning(f"Item {item_id} failed for good, ignoring delivery")
            return None
        if item.status not in (ItemStatus.PENDING, ItemStatus.FAILED):
            logger.warning(f"Item {item_id} is already {item.status.value}, ignoring duplicate delivery")
            return None

        attempt = item.retry_count
        try:
            item.start_processing()
        except DomainError as e:
            logger.error(f"Item {item_id} cannot start processing: {e.message}")
            self.fail_item(item_id, e.message, error_code=e.error_code)
            raise
        self.item_repository.save(item)

        self.event_bus.publish(
            ItemValidationStartedEvent(
                aggregate_id=item_id,
                occurred_at=item.updated_at,
                job_id=item.job_id,
                attempt=attempt,
            )
        )
        self.publish_item_progress(item)
        return item

    def complete_item(self, item_id: str, final_audio_path: Optional[str] = None) -> ContentItem:
        """Mark an item completed and count it on its job."""
        item = self.get_item(item_id)
        completed = item.complete(final_audio_path)
        self.item_repository.save(item)

        logger.info(f"Item {item_id} completed")
        self.event_bus.publish(completed)
        self.publish_item_progress(item)
        self._record_item_outcome(item.job_id, failed=False)
        return item

    def fail_item(
        self,
        item_id: str,
        error_message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN,
    ) -> ContentItem:
        """
        Fail an item for good and count it on its job.

        Idempotent: an item that already finished is left untouched. An item
        waiting for a retry is turned into a final failure.
        """
        item = self.get_item(item_id)

        if item.status == ItemStatus.FAILED and item.awaiting_retry:
            item.abandon_retry(error_message)
            event = None
        elif item.is_terminal():
            logger.warning(
                f"Item {item_id} already {item.status.value}, ignoring failure: {error_message}"
            )
            return item
        else:
            event = item.fail(error_message)
        self.item_repository.save(item)
        self._record_error(item, error_message, error_code)

        logger.warning(f"Item {item_id} failed: {error_message}")
        if event:
            self.event_bus.publish(event)
        self.publish_item_progress(item)
        self._record_item_outcome(item.job_id, failed=True)
        return item

    def skip_item(self, item_id: str, reason: str) -> ContentItem:
        """Skip an item that failed validation. Skipped items count as failed."""
        item = self.get_item(item_id)
        item.skip(reason)
        self.item_repository.save(item)

        logger.info(f"Item {item_id} skipped: {reason}")
        self.publish_item_progress(item)
        self._record_item_outcome(item.job_id, failed=True)
        return item

    def publish_item_progress(self, item: ContentItem) -> None:
        self.event_bus.publish(
            ItemProgressUpdatedEvent(
                aggregate_id=item.item_id,
                occurred_at=datetime.utcnow(),
                job_id=item.job_id,
                status=item.status.value,
                percentage=item.progress_percentage,
            )
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _on_item_permanent_failure(self, event: ItemPermanentFailureEvent) -> None:
        self._record_item_outcome(event.job_id, failed=True)

    def _record_item_outcome(self, job_id: str, failed: bool) -> None:
        with self._job_locks.hold(job_id):
            job = self.get_job(job_id)
            if job.is_terminal():
                logger.info(
                    f"Job {job_id} is {job.status.value}, not counting item outcome"
                )
                return
            finished = job.increment_failed() if failed else job.increment_completed()
            self.job_repository.save(job)

        self.update_job_progress(job_id)
        if finished:
            logger.info(f"Job {job_id} finished as {job.status.value}")
            self.event_bus.publish(finished)
            self._job_locks.discard(job_id)

    def _record_error(self, item: ContentItem, error_message: str, error_code: ErrorCode) -> None:
        if self.error_log_repository is None:
            return
        error_log = ErrorLog.create(
            message=error_message,
            error_code=error_code,
            step=item.current_step,
            job_id=item.job_id,
            item_id=item.item_id,
        )
        self.error_log_repository.save(error_log)
