"""
Item Processing Service

Worker-side use cases driving one item through validation, text
generation and chunking, one chunk through speech synthesis, and the
merge and upload tail once every chunk has reported.
"""

import dataclasses
import logging
import time
from datetime import datetime
from typing import List, Optional

from narration.domain.content_processing import (
    AudioChunk,
    AudioChunkRepository,
    ChunkStatus,
    ContentItem,
    ContentItemRepository,
    IAudioMergeService,
    IAudioUploadService,
    ISpeechSynthesisService,
    ITextChunkingService,
    ITextGenerationService,
    ItemStatus,
    PipelineStep,
)
from narration.domain.errors import (
    DomainError,
    EntityNotFoundError,
    ErrorCode,
    ErrorScope,
    ExternalServiceError,
    ProcessingCancelledError,
    ValidationError,
)
from narration.domain.events import (
    AudioChunkGeneratedEvent,
    AudioMergeCompletedEvent,
    AudioMergeStartedEvent,
    ChunkCreatedEvent,
    ChunkFailedEvent,
    ChunkProcessingCompletedEvent,
    ChunkProcessingStartedEvent,
    ChunkProgressUpdatedEvent,
    ItemValidationCompletedEvent,
    TextChunkingCompletedEvent,
    TextGenerationCompletedEvent,
    TextGenerationStartedEvent,
)
from narration.domain.job_management import Job, JobRepository, JobStatus
from narration.domain.queues import ChunkWorkDescriptor, IChunkQueue

from .chunk_processing_coordinator import ChunkProcessingCoordinator
from .error_recovery_coordinator import ErrorRecoveryCoordinator, RecoveryResult
from .event_bus import EventBus
from .pipeline_orchestrator import PipelineOrchestrator

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 500
MAX_DETAILS_LENGTH = 20000
DEFAULT_MAX_CHUNK_RETRIES = 3


class ItemProcessingService:
    """
    Application service executed by pipeline workers.

    Before committing the result of a slow external call, the item and its
    job are loaded again; results for a cancelled job or a finished item
    are discarded. Failures are handed to the ErrorRecoveryCoordinator.
    """

    def __init__(
        self,
        job_repository: JobRepository,
        item_repository: ContentItemRepository,
        chunk_repository: AudioChunkRepository,
        event_bus: EventBus,
        orchestrator: PipelineOrchestrator,
        chunk_coordinator: ChunkProcessingCoordinator,
        error_coordinator: ErrorRecoveryCoordinator,
        chunk_queue: IChunkQueue,
        text_generator: ITextGenerationService,
        text_chunker: ITextChunkingService,
        speech_synthesizer: ISpeechSynthesisService,
        audio_merger: IAudioMergeService,
        audio_uploader: IAudioUploadService,
        max_chunk_retries: int = DEFAULT_MAX_CHUNK_RETRIES,
    ):
        self.job_repository = job_repository
        self.item_repository = item_repository
        self.chunk_repository = chunk_repository
        self.event_bus = event_bus
        self.orchestrator = orchestrator
        self.chunk_coordinator = chunk_coordinator
        self.error_coordinator = error_coordinator
        self.chunk_queue = chunk_queue
        self.text_generator = text_generator
        self.text_chunker = text_chunker
        self.speech_synthesizer = speech_synthesizer
        self.audio_merger = audio_merger
        self.audio_uploader = audio_uploader
        self.max_chunk_retries = max_chunk_retries

    # ------------------------------------------------------------------
    # Item: validation -> text -> chunks
    # ------------------------------------------------------------------

    def process_item(self, item_id: str) -> Optional[ContentItem]:
        """
        Run an item up to the fan-out of its audio chunks.

        Returns:
            The item in GENERATING_AUDIO, or None when the item was not
            processed (paused job, cancellation, duplicate delivery or failure)
        """
        try:
            item = self.orchestrator.process_item(item_id)
        except ProcessingCancelledError as e:
            logger.info(f"Not processing item {item_id}: {e.message}")
            return None
        except DomainError:
            # already failed and counted by the orchestrator, or gone
            logger.warning(f"Item {item_id} could not start processing", exc_info=True)
            return None
        if item is None:
            return None

        try:
            if not self._validate(item):
                return None
            item = self._generate_text(item)
            chunks = self._chunk_text(item)
            return self._fan_out(item, chunks)
        except ProcessingCancelledError as e:
            logger.info(f"Discarding work on item {item_id}: {e.message}")
            return None
        except Exception as e:
            logger.error(f"Item {item_id} failed: {e}", exc_info=True)
            self.handle_item_failure(item_id, e)
            return None

    def _validate(self, item: ContentItem) -> bool:
        errors = []
        if len(item.source.title) > MAX_TITLE_LENGTH:
            errors.append(f"Title exceeds {MAX_TITLE_LENGTH} characters")
        if len(item.source.details) > MAX_DETAILS_LENGTH:
            errors.append(f"Details exceed {MAX_DETAILS_LENGTH} characters")

        self.event_bus.publish(
            ItemValidationCompletedEvent(
                aggregate_id=item.item_id,
                occurred_at=datetime.utcnow(),
                job_id=item.job_id,
                is_valid=not errors,
                errors=tuple(errors),
            )
        )
        if errors:
            self.orchestrator.skip_item(item.item_id, "; ".join(errors))
            return False
        return True

    def _generate_text(self, item: ContentItem) -> ContentItem:
        job = self._active_job(item.job_id)
        item.start_text_generation()
        self.item_repository.save(item)
        self.event_bus.publish(
            TextGenerationStartedEvent(
                aggregate_id=item.item_id, occurred_at=item.updated_at, job_id=item.job_id
            )
        )
        self.orchestrator.publish_item_progress(item)

        started = time.monotonic()
        text = self.text_generator.generate(item.source, job.config)
        duration_ms = int((time.monotonic() - started) * 1000)

        item = self._reload_active_item(item.item_id, ItemStatus.GENERATING_TEXT)
        item.set_generated_text(text)
        item.start_chunking()
        self.item_repository.save(item)
        self.event_bus.publish(
            TextGenerationCompletedEvent(
                aggregate_id=item.item_id,
                occurred_at=item.updated_at,
                job_id=item.job_id,
                character_count=len(text),
                duration_ms=duration_ms,
            )
        )
        self.orchestrator.publish_item_progress(item)
        return item

    def _chunk_text(self, item: ContentItem) -> List[AudioChunk]:
        job = self._active_job(item.job_id)
        text_chunks = self.text_chunker.chunk(item.generated_text, job.config.max_chunk_size)
        if not text_chunks:
            raise ValidationError(f"Chunking produced no chunks for item {item.item_id}")

        # chunks of an earlier attempt
        stale = self.chunk_repository.delete_by_item_id(item.item_id)
        if stale:
            logger.info(f"Removed {stale} chunks of a previous attempt of item {item.item_id}")
            self.chunk_coordinator.reset_item_tracking(item.item_id)

        voice_id = job.config.voice_settings.voice_id
        chunks = []
        for text_chunk in sorted(text_chunks, key=lambda c: c.index):
            chunk = AudioChunk.create(
                item_id=item.item_id,
                index=text_chunk.index,
                text=text_chunk.text,
                voice_id=voice_id,
                text_chunk_id=text_chunk.chunk_id,
            )
            self.chunk_repository.save(chunk)
            chunks.append(chunk)
            self.event_bus.publish(
                ChunkCreatedEvent(
                    aggregate_id=chunk.chunk_id,
                    occurred_at=chunk.created_at,
                    item_id=item.item_id,
                    chunk_index=chunk.index,
                    text_length=len(chunk.text),
                )
            )
        return chunks

    def _fan_out(self, item: ContentItem, chunks: List[AudioChunk]) -> ContentItem:
        item = self._reload_active_item(item.item_id, ItemStatus.CHUNKING)
        self.chunk_coordinator.register_item_chunks(item.item_id, [c.chunk_id for c in chunks])
        item.start_audio_generation()
        self.item_repository.save(item)

        self.event_bus.publish(
            TextChunkingCompletedEvent(
                aggregate_id=item.item_id,
                occurred_at=item.updated_at,
                job_id=item.job_id,
                chunk_count=len(chunks),
            )
        )
        self.orchestrator.publish_item_progress(item)

        for chunk in chunks:
            self.chunk_queue.enqueue(
                ChunkWorkDescriptor(chunk_id=chunk.chunk_id, item_id=item.item_id, job_id=item.job_id)
            )
        logger.info(f"Item {item.item_id} fanned out into {len(chunks)} audio chunks")
        return item

    def handle_item_failure(self, item_id: str, error: Exception) -> Optional[RecoveryResult]:
        """
        Route an item failure through the recovery policy.

        When a retry is scheduled the item waits in FAILED without being
        counted on its job. Permanent failures are counted by the
        orchestrator through ItemPermanentFailureEvent.
        """
        item = self.item_repository.find_by_id(item_id)
        if item is None or item.is_terminal():
            logger.warning(f"Item {item_id} is gone or finished, dropping error: {error}")
            return None

        context = self.error_coordinator.build_context(
            ErrorScope.ITEM,
            item_id,
            error,
            step=item.current_step,
            retry_count=item.retry_count,
            max_retries=item.max_retries,
            job_id=item.job_id,
            item_id=item_id,
        )
        result = self.error_coordinator.handle_error(context)

        if result.retry_scheduled:
            item = self.item_repository.find_by_id(item_id)
            if item is not None and not item.is_terminal():
                item.fail(context.message, awaiting_retry=True)
                self.item_repository.save(item)
                self.orchestrator.publish_item_progress(item)
        return result

    # ------------------------------------------------------------------
    # Chunk: synthesis
    # ------------------------------------------------------------------

    def generate_chunk_audio(self, chunk_id: str) -> Optional[AudioChunk]:
        """
        Synthesize one chunk and report the outcome.

        Returns:
            The completed chunk, or None when synthesis failed or the result
            was discarded

        Raises:
            EntityNotFoundError: If the chunk doesn't exist
        """
        chunk = self.chunk_repository.find_by_id(chunk_id)
        if chunk is None:
            raise EntityNotFoundError("AudioChunk", chunk_id)

        item = self.item_repository.find_by_id(chunk.item_id)
        if item is None or item.status != ItemStatus.GENERATING_AUDIO:
            logger.info(f"Item of chunk {chunk_id} is not generating audio, skipping")
            return None
        job = self.job_repository.find_by_id(item.job_id)
        if job is None or job.status == JobStatus.CANCELLED:
            logger.info(f"Job of chunk {chunk_id} is cancelled, skipping")
            return None
        if chunk.status not in (ChunkStatus.PENDING, ChunkStatus.FAILED):
            logger.warning(f"Chunk {chunk_id} is already {chunk.status.value}, ignoring duplicate")
            return None

        chunk.start_processing()
        self.chunk_repository.save(chunk)
        self.event_bus.publish(
            ChunkProcessingStartedEvent(
                aggregate_id=chunk_id,
                occurred_at=chunk.updated_at,
                item_id=chunk.item_id,
                chunk_index=chunk.index,
            )
        )
        self._publish_chunk_progress(chunk, 0.5)

        voice = dataclasses.replace(job.config.voice_settings, voice_id=chunk.voice_id)
        try:
            audio = self.speech_synthesizer.synthesize(chunk.text, voice, chunk_id)
        except Exception as e:
            logger.error(f"Synthesis failed for chunk {chunk_id}: {e}", exc_info=True)
            self.handle_chunk_failure(chunk_id, item.job_id, e)
            return None

        if not self._item_accepts_chunks(chunk.item_id):
            logger.info(f"Discarding audio of chunk {chunk_id}, item no longer generating audio")
            chunk.fail("Discarded after item left audio generation")
            self.chunk_repository.save(chunk)
            return None

        chunk.complete(audio.audio_path, audio.duration, audio.file_size)
        self.chunk_repository.save(chunk)

        self.event_bus.publish(
            ChunkProcessingCompletedEvent(
                aggregate_id=chunk_id,
                occurred_at=chunk.updated_at,
                item_id=chunk.item_id,
                chunk_index=chunk.index,
                duration=audio.duration,
                file_size=audio.file_size,
            )
        )
        self._publish_chunk_progress(chunk, 1.0)
        self.event_bus.publish(
            AudioChunkGeneratedEvent(
                aggregate_id=chunk.item_id,
                occurred_at=chunk.updated_at,
                job_id=item.job_id,
                chunk_id=chunk_id,
                chunk_index=chunk.index,
                audio_path=audio.audio_path,
                duration=audio.duration,
            )
        )
        return chunk

    def handle_chunk_failure(self, chunk_id: str, job_id: str, error: Exception) -> RecoveryResult:
        """
        Record a chunk failure and either schedule its retry or report it.

        Only permanent failures reach the ChunkProcessingCoordinator.
        """
        chunk = self.chunk_repository.find_by_id(chunk_id)
        context = self.error_coordinator.build_context(
            ErrorScope.CHUNK,
            chunk_id,
            error,
            step=PipelineStep.AUDIO_GENERATION,
            retry_count=chunk.retry_count,
            max_retries=self.max_chunk_retries,
            job_id=job_id,
            item_id=chunk.item_id,
            chunk_id=chunk_id,
        )
        chunk.fail(context.message)
        self.chunk_repository.save(chunk)

        result = self.error_coordinator.handle_error(context)
        if result.retry_scheduled:
            # a chunk waiting for its retry stays PENDING
            chunk.increment_retry()
            chunk.reset()
            self.chunk_repository.save(chunk)
            return result

        self._publish_chunk_progress(chunk, 0.0)
        self.event_bus.publish(
            ChunkFailedEvent(
                aggregate_id=chunk_id,
                occurred_at=chunk.updated_at,
                item_id=chunk.item_id,
                job_id=job_id,
                chunk_index=chunk.index,
                error_message=context.message,
            )
        )
        return result

    # ------------------------------------------------------------------
    # Item: merge -> upload -> complete
    # ------------------------------------------------------------------

    def merge_item_audio(self, item_id: str) -> Optional[ContentItem]:
        """
        Merge the completed chunks of an item, upload the result and
        complete the item.

        Chunks are merged in index order. Failed chunks are left out.

        Raises:
            ExternalServiceError: If merge or upload fails (never retried)
        """
        item = self.orchestrator.get_item(item_id)
        job = self.orchestrator.get_job(item.job_id)
        if job.status == JobStatus.CANCELLED:
            logger.info(f"Job {job.job_id} cancelled, not merging item {item_id}")
            return None

        chunks = sorted(
            (c for c in self.chunk_repository.find_by_item_id(item_id) if c.is_completed()),
            key=lambda c: c.index,
        )
        if not chunks:
            raise ValidationError(f"Item {item_id} has no completed chunks to merge")

        # normally already claimed by the chunk coordinator
        if item.status != ItemStatus.MERGING:
            item.start_merging()
            self.item_repository.save(item)
        self.event_bus.publish(
            AudioMergeStartedEvent(
                aggregate_id=item_id,
                occurred_at=item.updated_at,
                job_id=item.job_id,
                chunk_count=len(chunks),
            )
        )
        self.orchestrator.publish_item_progress(item)

        try:
            merged = self.audio_merger.merge(
                [c.audio_path for c in chunks],
                job.config.silence_between_chunks_ms,
                item_id,
            )
        except Exception as e:
            raise ExternalServiceError(
                f"Merge of {len(chunks)} chunks failed: {e}",
                error_code=ErrorCode.MERGE_ERROR,
                original_error=e,
            ) from e

        item = self._reload_active_item(item_id, ItemStatus.MERGING)
        item.set_audio(merged.audio_path, merged.duration)
        item.start_uploading()
        self.item_repository.save(item)
        self.event_bus.publish(
            AudioMergeCompletedEvent(
                aggregate_id=item_id,
                occurred_at=item.updated_at,
                job_id=item.job_id,
                audio_path=merged.audio_path,
                duration=merged.duration,
            )
        )
        self.orchestrator.publish_item_progress(item)

        try:
            final_path = self.audio_uploader.upload(
                merged.audio_path, f"{item.job_id}/{item_id}"
            )
        except Exception as e:
            raise ExternalServiceError(
                f"Upload failed: {e}",
                error_code=ErrorCode.UPLOAD_ERROR,
                original_error=e,
            ) from e

        self._reload_active_item(item_id, ItemStatus.UPLOADING)
        return self.orchestrator.complete_item(item_id, final_path)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _active_job(self, job_id: str) -> Job:
        job = self.job_repository.find_by_id(job_id)
        if job is None:
            raise ProcessingCancelledError(f"Job {job_id} no longer exists")
        if job.status == JobStatus.CANCELLED:
            raise ProcessingCancelledError(f"Job {job_id} was cancelled")
        return job

    def _reload_active_item(self, item_id: str, expected: ItemStatus) -> ContentItem:
        """Load the item again and make sure nobody moved it meanwhile."""
        item = self.item_repository.find_by_id(item_id)
        if item is None:
            raise ProcessingCancelledError(f"Item {item_id} no longer exists")
        if item.status != expected:
            raise ProcessingCancelledError(
                f"Item {item_id} is {item.status.value}, expected {expected.value}"
            )
        self._active_job(item.job_id)
        return item

    def _item_accepts_chunks(self, item_id: str) -> bool:
        item = self.item_repository.find_by_id(item_id)
        if item is None or item.status != ItemStatus.GENERATING_AUDIO:
            return False
        job = self.job_repository.find_by_id(item.job_id)
        return job is not None and job.status != JobStatus.CANCELLED

    def _publish_chunk_progress(self, chunk: AudioChunk, progress: float) -> None:
        self.event_bus.publish(
            ChunkProgressUpdatedEvent(
                aggregate_id=chunk.chunk_id,
                occurred_at=datetime.utcnow(),
                item_id=chunk.item_id,
                status=chunk.status.value,
                progress=progress,
            )
        )
