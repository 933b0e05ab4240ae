"""
Domain Events

Immutable records of significant state changes in the pipeline.
Events decouple side effects (progress tracking, WebSocket notifications,
logging) from the orchestration logic.

The set of events is closed: every concrete event is listed in
``ALL_EVENT_TYPES`` and handlers that dispatch on event class are expected
to cover all of them.
"""

from abc import ABC
from dataclasses import dataclass, fields
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Tuple, Type


def _serialize(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, tuple):
        return [_serialize(v) for v in value]
    return value


@dataclass(frozen=True)
class DomainEvent(ABC):
    """
    Base class for all domain events.

    Domain events are immutable records of something that happened in the domain.
    They enable decoupling of side effects from core business logic.

    Attributes:
        aggregate_id: ID of the entity that generated the event (job, item or chunk id)
        occurred_at: Timestamp when the event occurred
        event_type: Dotted event name used by log and WebSocket consumers
    """
    event_type: ClassVar[str] = "domain.event"

    aggregate_id: str
    occurred_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert event to dictionary for serialization.

        Returns:
            JSON-serializable dictionary representation of the event
        """
        data: Dict[str, Any] = {"event_type": self.event_type}
        for f in fields(self):
            data[f.name] = _serialize(getattr(self, f.name))
        return data


# =============================================================================
# Job events
# =============================================================================

@dataclass(frozen=True)
class JobCreatedEvent(DomainEvent):
    """Event emitted when a job and its items have been created."""
    event_type: ClassVar[str] = "job.created"

    name: str
    total_items: int


@dataclass(frozen=True)
class JobStartedEvent(DomainEvent):
    """
    Event emitted when a job starts processing.

    Attributes:
        aggregate_id: Job ID
        occurred_at: When the job started
        total_items: Number of items enqueued
    """
    event_type: ClassVar[str] = "job.started"

    total_items: int


@dataclass(frozen=True)
class JobProgressUpdatedEvent(DomainEvent):
    """
    Event emitted when a job's counters change.

    Attributes:
        aggregate_id: Job ID
        occurred_at: When the progress was updated
        percentage: Items accounted for, as a whole percentage
    """
    event_type: ClassVar[str] = "job.progress.updated"

    total_items: int
    completed_items: int
    failed_items: int
    percentage: int


@dataclass(frozen=True)
class JobCompletedEvent(DomainEvent):
    """Event emitted when every item of a job is accounted for and at least one succeeded."""
    event_type: ClassVar[str] = "job.completed"

    completed_items: int
    failed_items: int
    duration_seconds: Optional[float] = None


@dataclass(frozen=True)
class JobFailedEvent(DomainEvent):
    """
    Event emitted when a job fails.

    Attributes:
        aggregate_id: Job ID
        occurred_at: When the job failed
        error_message: Human-readable error message
    """
    event_type: ClassVar[str] = "job.failed"

    error_message: str
    completed_items: int = 0
    failed_items: int = 0


@dataclass(frozen=True)
class JobCancelledEvent(DomainEvent):
    event_type: ClassVar[str] = "job.cancelled"

    cancelled_items: int = 0


@dataclass(frozen=True)
class JobPausedEvent(DomainEvent):
    event_type: ClassVar[str] = "job.paused"

    completed_items: int
    failed_items: int


@dataclass(frozen=True)
class JobResumedEvent(DomainEvent):
    event_type: ClassVar[str] = "job.resumed"

    remaining_items: int


# =============================================================================
# Item events (aggregate_id is the item id)
# =============================================================================

@dataclass(frozen=True)
class ItemCreatedEvent(DomainEvent):
    """Event emitted when an item is created, or re-created for a retry."""
    event_type: ClassVar[str] = "item.created"

    job_id: str
    row_index: int
    is_retry: bool = False


@dataclass(frozen=True)
class ItemValidationStartedEvent(DomainEvent):
    event_type: ClassVar[str] = "item.validation.started"

    job_id: str
    attempt: int = 0


@dataclass(frozen=True)
class ItemValidationCompletedEvent(DomainEvent):
    event_type: ClassVar[str] = "item.validation.completed"

    job_id: str
    is_valid: bool
    errors: Tuple[str, ...] = ()


@dataclass(frozen=True)
class TextGenerationStartedEvent(DomainEvent):
    event_type: ClassVar[str] = "item.text.generation.started"

    job_id: str


@dataclass(frozen=True)
class TextGenerationCompletedEvent(DomainEvent):
    event_type: ClassVar[str] = "item.text.generation.completed"

    job_id: str
    character_count: int
    duration_ms: int


@dataclass(frozen=True)
class TextChunkingCompletedEvent(DomainEvent):
    event_type: ClassVar[str] = "item.text.chunking.completed"

    job_id: str
    chunk_count: int


@dataclass(frozen=True)
class AudioChunkGeneratedEvent(DomainEvent):
    """
    Event emitted when one chunk of an item has been synthesized.

    Attributes:
        aggregate_id: Item ID
        chunk_id: The chunk that succeeded
        chunk_index: Position of the chunk inside the item
        duration: Audio duration in seconds
    """
    event_type: ClassVar[str] = "item.audio.chunk.generated"

    job_id: str
    chunk_id: str
    chunk_index: int
    audio_path: str
    duration: float


@dataclass(frozen=True)
class AudioMergeStartedEvent(DomainEvent):
    event_type: ClassVar[str] = "item.audio.merge.started"

    job_id: str
    chunk_count: int


@dataclass(frozen=True)
class AudioMergeCompletedEvent(DomainEvent):
    event_type: ClassVar[str] = "item.audio.merge.completed"

    job_id: str
    audio_path: str
    duration: float


@dataclass(frozen=True)
class ItemCompletedEvent(DomainEvent):
    event_type: ClassVar[str] = "item.completed"

    job_id: str
    audio_path: Optional[str] = None
    duration: Optional[float] = None


@dataclass(frozen=True)
class ItemFailedEvent(DomainEvent):
    event_type: ClassVar[str] = "item.failed"

    job_id: str
    error_message: str
    step: Optional[str] = None


@dataclass(frozen=True)
class ItemPermanentFailureEvent(DomainEvent):
    """Event emitted by error recovery when an item will not be retried again."""
    event_type: ClassVar[str] = "item.permanent.failure"

    job_id: str
    error_message: str
    retry_count: int


@dataclass(frozen=True)
class ItemProgressUpdatedEvent(DomainEvent):
    event_type: ClassVar[str] = "item.progress.updated"

    job_id: str
    status: str
    percentage: int


# =============================================================================
# Chunk events (aggregate_id is the chunk id)
# =============================================================================

@dataclass(frozen=True)
class ChunkCreatedEvent(DomainEvent):
    event_type: ClassVar[str] = "chunk.created"

    item_id: str
    chunk_index: int
    text_length: int


@dataclass(frozen=True)
class ChunkProcessingStartedEvent(DomainEvent):
    event_type: ClassVar[str] = "chunk.processing.started"

    item_id: str
    chunk_index: int


@dataclass(frozen=True)
class ChunkProcessingCompletedEvent(DomainEvent):
    event_type: ClassVar[str] = "chunk.processing.completed"

    item_id: str
    chunk_index: int
    duration: float
    file_size: int


@dataclass(frozen=True)
class ChunkFailedEvent(DomainEvent):
    """
    Event emitted when a chunk fails for good (no retry scheduled).

    Attributes:
        aggregate_id: Chunk ID
        item_id: Owning item
        error_message: Last error reported by the synthesis service
    """
    event_type: ClassVar[str] = "chunk.failed"

    item_id: str
    job_id: str
    chunk_index: int
    error_message: str


@dataclass(frozen=True)
class ChunkProgressUpdatedEvent(DomainEvent):
    event_type: ClassVar[str] = "chunk.progress.updated"

    item_id: str
    status: str
    progress: float


# =============================================================================
# Error events
# =============================================================================

@dataclass(frozen=True)
class ErrorOccurredEvent(DomainEvent):
    """
    Event emitted for every failure handed to error recovery.

    Attributes:
        aggregate_id: ID of the failing job, item or chunk
        scope: job, item, chunk or system
        severity: Derived severity
    """
    event_type: ClassVar[str] = "error.occurred"

    scope: str
    severity: str
    error_message: str
    error_code: str
    retryable: bool
    retry_count: int


@dataclass(frozen=True)
class RetryScheduledEvent(DomainEvent):
    event_type: ClassVar[str] = "error.retry.scheduled"

    scope: str
    retry_count: int
    max_retries: int
    delay_ms: int
    scheduled_for: datetime


@dataclass(frozen=True)
class RateLimitHitEvent(DomainEvent):
    event_type: ClassVar[str] = "error.ratelimit.hit"

    scope: str
    error_message: str


ALL_EVENT_TYPES: Tuple[Type[DomainEvent], ...] = (
    JobCreatedEvent,
    JobStartedEvent,
    JobProgressUpdatedEvent,
    JobCompletedEvent,
    JobFailedEvent,
    JobCancelledEvent,
    JobPausedEvent,
    JobResumedEvent,
    ItemCreatedEvent,
    ItemValidationStartedEvent,
    ItemValidationCompletedEvent,
    TextGenerationStartedEvent,
    TextGenerationCompletedEvent,
    TextChunkingCompletedEvent,
    AudioChunkGeneratedEvent,
    AudioMergeStartedEvent,
    AudioMergeCompletedEvent,
    ItemCompletedEvent,
    ItemFailedEvent,
    ItemPermanentFailureEvent,
    ItemProgressUpdatedEvent,
    ChunkCreatedEvent,
    ChunkProcessingStartedEvent,
    ChunkProcessingCompletedEvent,
    ChunkFailedEvent,
    ChunkProgressUpdatedEvent,
    ErrorOccurredEvent,
    RetryScheduledEvent,
    RateLimitHitEvent,
)

EVENT_TYPES_BY_NAME: Dict[str, Type[DomainEvent]] = {
    event_class.event_type: event_class for event_class in ALL_EVENT_TYPES
}
