"""
Logging Event Handler

Infrastructure event handler for logging domain events.
Subscribes to every domain event and logs it at a level matching its weight.
Domain layer remains unaware of logging infrastructure.
"""

import logging
from typing import Callable, Dict, Type

from narration.domain.events import (
    ALL_EVENT_TYPES,
    AudioChunkGeneratedEvent,
    AudioMergeCompletedEvent,
    AudioMergeStartedEvent,
    ChunkCreatedEvent,
    ChunkFailedEvent,
    ChunkProcessingCompletedEvent,
    ChunkProcessingStartedEvent,
    ChunkProgressUpdatedEvent,
    DomainEvent,
    ErrorOccurredEvent,
    ItemCompletedEvent,
    ItemCreatedEvent,
    ItemFailedEvent,
    ItemPermanentFailureEvent,
    ItemProgressUpdatedEvent,
    ItemValidationCompletedEvent,
    ItemValidationStartedEvent,
    JobCancelledEvent,
    JobCompletedEvent,
    JobCreatedEvent,
    JobFailedEvent,
    JobPausedEvent,
    JobProgressUpdatedEvent,
    JobResumedEvent,
    JobStartedEvent,
    RateLimitHitEvent,
    RetryScheduledEvent,
    TextChunkingCompletedEvent,
    TextGenerationCompletedEvent,
    TextGenerationStartedEvent,
)


class LoggingEventHandler:
    """
    Infrastructure event handler for logging domain events.

    Dispatches on the exact event class. Construction fails if a domain
    event type has no log method, so new events cannot go unlogged.
    """

    def __init__(self, logger: logging.Logger):
        """
        Initialize with logger instance.

        Args:
            logger: Python logging.Logger instance

        Raises:
            TypeError: If an event type in ALL_EVENT_TYPES has no handler
        """
        self.logger = logger
        self._dispatch: Dict[Type[DomainEvent], Callable] = {
            JobCreatedEvent: self._handle_job_created,
            JobStartedEvent: self._handle_job_started,
            JobProgressUpdatedEvent: self._handle_job_progress,
            JobCompletedEvent: self._handle_job_completed,
            JobFailedEvent: self._handle_job_failed,
            JobCancelledEvent: self._handle_job_cancelled,
            JobPausedEvent: self._handle_job_paused,
            JobResumedEvent: self._handle_job_resumed,
            ItemCreatedEvent: self._handle_item_created,
            ItemValidationStartedEvent: self._handle_validation_started,
            ItemValidationCompletedEvent: self._handle_validation_completed,
            TextGenerationStartedEvent: self._handle_text_generation_started,
            TextGenerationCompletedEvent: self._handle_text_generation_completed,
            TextChunkingCompletedEvent: self._handle_text_chunked,
            AudioChunkGeneratedEvent: self._handle_audio_chunk_generated,
            AudioMergeStartedEvent: self._handle_merge_started,
            AudioMergeCompletedEvent: self._handle_merge_completed,
            ItemCompletedEvent: self._handle_item_completed,
            ItemFailedEvent: self._handle_item_failed,
            ItemPermanentFailureEvent: self._handle_item_permanent_failure,
            ItemProgressUpdatedEvent: self._handle_item_progress,
            ChunkCreatedEvent: self._handle_chunk_created,
            ChunkProcessingStartedEvent: self._handle_chunk_started,
            ChunkProcessingCompletedEvent: self._handle_chunk_completed,
            ChunkFailedEvent: self._handle_chunk_failed,
            ChunkProgressUpdatedEvent: self._handle_chunk_progress,
            ErrorOccurredEvent: self._handle_error_occurred,
            RetryScheduledEvent: self._handle_retry_scheduled,
            RateLimitHitEvent: self._handle_rate_limit,
        }
        missing = [cls.__name__ for cls in ALL_EVENT_TYPES if cls not in self._dispatch]
        if missing:
            raise TypeError(f"No log handler for events: {', '.join(missing)}")

    def handle(self, event: DomainEvent) -> None:
        """
        Handle domain event by logging it.

        Args:
            event: Domain event to log
        """
        handler = self._dispatch.get(type(event))
        if handler is None:
            self.logger.debug(
                f"Unhandled event: {event.__class__.__name__} "
                f"(aggregate_id={event.aggregate_id})"
            )
            return
        try:
            handler(event)
        except Exception as e:
            # Log handler errors but don't fail the operation
            self.logger.error(
                f"Error in logging event handler for {event.__class__.__name__}: {e}",
                exc_info=True,
            )

    # Job events

    def _handle_job_created(self, event: JobCreatedEvent) -> None:
        self.logger.info(
            f"Job created: {event.aggregate_id} '{event.name}' ({event.total_items} items)"
        )

    def _handle_job_started(self, event: JobStartedEvent) -> None:
        self.logger.info(f"Job started: {event.aggregate_id} ({event.total_items} items)")

    def _handle_job_progress(self, event: JobProgressUpdatedEvent) -> None:
        self.logger.debug(
            f"Job progress: {event.aggregate_id} - {event.percentage}% "
            f"({event.completed_items} completed, {event.failed_items} failed "
            f"of {event.total_items})"
        )

    def _handle_job_completed(self, event: JobCompletedEvent) -> None:
        duration = (
            f" in {event.duration_seconds:.1f}s" if event.duration_seconds is not None else ""
        )
        self.logger.info(
            f"Job completed: {event.aggregate_id}{duration} "
            f"({event.completed_items} completed, {event.failed_items} failed)"
        )

    def _handle_job_failed(self, event: JobFailedEvent) -> None:
        self.logger.error(f"Job failed: {event.aggregate_id} - {event.error_message}")

    def _handle_job_cancelled(self, event: JobCancelledEvent) -> None:
        self.logger.warning(
            f"Job cancelled: {event.aggregate_id} ({event.cancelled_items} items cancelled)"
        )

    def _handle_job_paused(self, event: JobPausedEvent) -> None:
        self.logger.info(
            f"Job paused: {event.aggregate_id} "
            f"({event.completed_items} completed, {event.failed_items} failed)"
        )

    def _handle_job_resumed(self, event: JobResumedEvent) -> None:
        self.logger.info(
            f"Job resumed: {event.aggregate_id} ({event.remaining_items} items remaining)"
        )

    # Item events

    def _handle_item_created(self, event: ItemCreatedEvent) -> None:
        action = "requeued for retry" if event.is_retry else "created"
        self.logger.debug(
            f"Item {action}: {event.aggregate_id} (job {event.job_id}, row {event.row_index})"
        )

    def _handle_validation_started(self, event: ItemValidationStartedEvent) -> None:
        self.logger.debug(f"Item validation started: {event.aggregate_id} (attempt {event.attempt})")

    def _handle_validation_completed(self, event: ItemValidationCompletedEvent) -> None:
        if event.is_valid:
            self.logger.debug(f"Item valid: {event.aggregate_id}")
        else:
            self.logger.warning(
                f"Item invalid: {event.aggregate_id} - {'; '.join(event.errors)}"
            )

    def _handle_text_generation_started(self, event: TextGenerationStartedEvent) -> None:
        self.logger.debug(f"Text generation started: {event.aggregate_id}")

    def _handle_text_generation_completed(self, event: TextGenerationCompletedEvent) -> None:
        self.logger.info(
            f"Text generated: {event.aggregate_id} - {event.character_count} chars "
            f"in {event.duration_ms}ms"
        )

    def _handle_text_chunked(self, event: TextChunkingCompletedEvent) -> None:
        self.logger.info(f"Text chunked: {event.aggregate_id} - {event.chunk_count} chunks")

    def _handle_audio_chunk_generated(self, event: AudioChunkGeneratedEvent) -> None:
        self.logger.debug(
            f"Audio chunk generated: item {event.aggregate_id} chunk {event.chunk_index} "
            f"({event.duration:.2f}s)"
        )

    def _handle_merge_started(self, event: AudioMergeStartedEvent) -> None:
        self.logger.info(f"Audio merge started: {event.aggregate_id} ({event.chunk_count} chunks)")

    def _handle_merge_completed(self, event: AudioMergeCompletedEvent) -> None:
        self.logger.info(
            f"Audio merged: {event.aggregate_id} -> {event.audio_path} ({event.duration:.2f}s)"
        )

    def _handle_item_completed(self, event: ItemCompletedEvent) -> None:
        self.logger.info(f"Item completed: {event.aggregate_id} (job {event.job_id})")

    def _handle_item_failed(self, event: ItemFailedEvent) -> None:
        step = f" at {event.step}" if event.step else ""
        self.logger.warning(f"Item failed{step}: {event.aggregate_id} - {event.error_message}")

    def _handle_item_permanent_failure(self, event: ItemPermanentFailureEvent) -> None:
        self.logger.error(
            f"Item permanently failed after {event.retry_count} retries: "
            f"{event.aggregate_id} (job {event.job_id}) - {event.error_message}"
        )

    def _handle_item_progress(self, event: ItemProgressUpdatedEvent) -> None:
        self.logger.debug(
            f"Item progress: {event.aggregate_id} - {event.status} {event.percentage}%"
        )

    # Chunk events

    def _handle_chunk_created(self, event: ChunkCreatedEvent) -> None:
        self.logger.debug(
            f"Chunk created: {event.aggregate_id} (item {event.item_id}, "
            f"index {event.chunk_index}, {event.text_length} chars)"
        )

    def _handle_chunk_started(self, event: ChunkProcessingStartedEvent) -> None:
        self.logger.debug(f"Chunk synthesis started: {event.aggregate_id}")

    def _handle_chunk_completed(self, event: ChunkProcessingCompletedEvent) -> None:
        self.logger.debug(
            f"Chunk synthesized: {event.aggregate_id} ({event.duration:.2f}s, "
            f"{event.file_size} bytes)"
        )

    def _handle_chunk_failed(self, event: ChunkFailedEvent) -> None:
        self.logger.warning(
            f"Chunk failed: {event.aggregate_id} (item {event.item_id}, "
            f"index {event.chunk_index}) - {event.error_message}"
        )

    def _handle_chunk_progress(self, event: ChunkProgressUpdatedEvent) -> None:
        self.logger.debug(
            f"Chunk progress: {event.aggregate_id} - {event.status} {event.progress:.0%}"
        )

    # Error events

    def _handle_error_occurred(self, event: ErrorOccurredEvent) -> None:
        level = logging.ERROR if event.severity in ("high", "critical") else logging.WARNING
        self.logger.log(
            level,
            f"[{event.error_code}] {event.scope} {event.aggregate_id} "
            f"({event.severity}, retryable={event.retryable}, "
            f"retry {event.retry_count}): {event.error_message}",
        )

    def _handle_retry_scheduled(self, event: RetryScheduledEvent) -> None:
        self.logger.info(
            f"Retry {event.retry_count}/{event.max_retries} scheduled for "
            f"{event.scope} {event.aggregate_id} in {event.delay_ms}ms"
        )

    def _handle_rate_limit(self, event: RateLimitHitEvent) -> None:
        self.logger.warning(
            f"Rate limit hit by {event.scope} {event.aggregate_id}: {event.error_message}"
        )
