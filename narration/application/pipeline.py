"""
Pipeline Assembly

Wires the application services of the narration pipeline together and
subscribes them to the event bus. Used by the Flask app factory and by
tests, so both run the same wiring.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from narration.domain.content_processing import (
    AudioChunkRepository,
    ContentItemRepository,
    IAudioMergeService,
    IAudioUploadService,
    ISpeechSynthesisService,
    ITextChunkingService,
    ITextGenerationService,
)
from narration.domain.error_tracking import ErrorLogRepository
from narration.domain.job_management import JobRepository
from narration.domain.queues import IChunkQueue, IItemQueue, IRetryQueue

from .chunk_processing_coordinator import DEFAULT_FAILURE_THRESHOLD, ChunkProcessingCoordinator
from .dependency_container import DependencyContainer
from .error_recovery_coordinator import (
    DEFAULT_BASE_DELAY_MS,
    DEFAULT_MAX_DELAY_MS,
    ErrorRecoveryCoordinator,
)
from .event_bus import EventBus
from .item_processing_service import DEFAULT_MAX_CHUNK_RETRIES, ItemProcessingService
from .job_service import JobService
from .keyed_lock import KeyedLock
from .pipeline_orchestrator import PipelineOrchestrator
from .progress_tracking_service import ProgressTrackingService
from .retry_service import RetryFailedItemsService, RetryService

logger = logging.getLogger(__name__)


@dataclass
class PipelineRepositories:
    jobs: JobRepository
    items: ContentItemRepository
    chunks: AudioChunkRepository
    error_logs: ErrorLogRepository


@dataclass
class PipelineQueues:
    items: IItemQueue
    chunks: IChunkQueue
    retries: IRetryQueue


@dataclass
class ExternalServices:
    """Implementations of the content processing service ports."""
    text_generator: ITextGenerationService
    text_chunker: ITextChunkingService
    speech_synthesizer: ISpeechSynthesisService
    audio_merger: IAudioMergeService
    audio_uploader: IAudioUploadService


@dataclass
class PipelineSettings:
    max_item_retries: int = 3
    max_chunk_retries: int = DEFAULT_MAX_CHUNK_RETRIES
    retry_base_delay_ms: int = DEFAULT_BASE_DELAY_MS
    retry_max_delay_ms: int = DEFAULT_MAX_DELAY_MS
    chunk_failure_threshold: float = DEFAULT_FAILURE_THRESHOLD
    shared_state: bool = False


@dataclass
class Pipeline:
    """Wired application services. ``item_processing`` needs external services."""
    event_bus: EventBus
    orchestrator: PipelineOrchestrator
    chunk_coordinator: ChunkProcessingCoordinator
    error_coordinator: ErrorRecoveryCoordinator
    progress_tracking: ProgressTrackingService
    job_service: JobService
    retry_failed_items: RetryFailedItemsService
    item_processing: Optional[ItemProcessingService] = None
    retry_service: Optional[RetryService] = None


def build_pipeline(
    repositories: PipelineRepositories,
    queues: PipelineQueues,
    services: Optional[ExternalServices] = None,
    settings: Optional[PipelineSettings] = None,
    event_bus: Optional[EventBus] = None,
    locks: Optional[KeyedLock] = None,
) -> Pipeline:
    """
    Create and wire every application service.

    Without external services the pipeline can create, start, pause,
    cancel and report on jobs, but workers cannot process items.

    Args:
        locks: Lock used for job counters and chunk decisions; pass a
            distributed lock when workers run in several processes
    """
    settings = settings or PipelineSettings()
    event_bus = event_bus or EventBus()

    orchestrator = PipelineOrchestrator(
        repositories.jobs,
        repositories.items,
        event_bus,
        queues.items,
        error_log_repository=repositories.error_logs,
        locks=locks,
    )
    chunk_coordinator = ChunkProcessingCoordinator(
        repositories.items,
        repositories.chunks,
        item_failure_handler=orchestrator.fail_item,
        failure_threshold=settings.chunk_failure_threshold,
        locks=locks,
        shared_state=settings.shared_state,
    )
    error_coordinator = ErrorRecoveryCoordinator(
        repositories.jobs,
        repositories.items,
        repositories.error_logs,
        event_bus,
        queues.retries,
        chunk_repository=repositories.chunks,
        base_delay_ms=settings.retry_base_delay_ms,
        max_delay_ms=settings.retry_max_delay_ms,
    )
    progress_tracking = ProgressTrackingService(
        repositories.jobs, repositories.items, repositories.chunks
    )
    job_service = JobService(
        repositories.jobs,
        repositories.items,
        repositories.chunks,
        repositories.error_logs,
        event_bus,
        max_item_retries=settings.max_item_retries,
    )
    retry_failed_items = RetryFailedItemsService(
        orchestrator, repositories.items, queues.items, event_bus
    )

    orchestrator.register_event_handlers(event_bus)
    chunk_coordinator.register_event_handlers(event_bus)
    progress_tracking.register_event_handlers(event_bus)

    pipeline = Pipeline(
        event_bus=event_bus,
        orchestrator=orchestrator,
        chunk_coordinator=chunk_coordinator,
        error_coordinator=error_coordinator,
        progress_tracking=progress_tracking,
        job_service=job_service,
        retry_failed_items=retry_failed_items,
    )

    if services is None:
        logger.warning("No external services configured, item processing is disabled")
        return pipeline

    item_processing = ItemProcessingService(
        repositories.jobs,
        repositories.items,
        repositories.chunks,
        event_bus,
        orchestrator,
        chunk_coordinator,
        error_coordinator,
        queues.chunks,
        text_generator=services.text_generator,
        text_chunker=services.text_chunker,
        speech_synthesizer=services.speech_synthesizer,
        audio_merger=services.audio_merger,
        audio_uploader=services.audio_uploader,
        max_chunk_retries=settings.max_chunk_retries,
    )
    chunk_coordinator.merge_handler = item_processing.merge_item_audio

    pipeline.item_processing = item_processing
    pipeline.retry_service = RetryService(orchestrator, item_processing, repositories.error_logs)
    return pipeline


def register_pipeline(container: DependencyContainer, pipeline: Pipeline) -> None:
    """Register every service of ``pipeline`` as a singleton."""
    container.register_singleton(EventBus, pipeline.event_bus)
    container.register_singleton(PipelineOrchestrator, pipeline.orchestrator)
    container.register_singleton(ChunkProcessingCoordinator, pipeline.chunk_coordinator)
    container.register_singleton(ErrorRecoveryCoordinator, pipeline.error_coordinator)
    container.register_singleton(ProgressTrackingService, pipeline.progress_tracking)
    container.register_singleton(JobService, pipeline.job_service)
    container.register_singleton(RetryFailedItemsService, pipeline.retry_failed_items)
    if pipeline.item_processing is not None:
        container.register_singleton(ItemProcessingService, pipeline.item_processing)
        container.register_singleton(RetryService, pipeline.retry_service)
