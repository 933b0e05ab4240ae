"""
Content Processing Entities

Domain entities for content items and their synthesized audio chunks.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from ..errors import ValidationError
from ..events import ItemCompletedEvent, ItemFailedEvent
from .value_objects import (
    CHUNK_STATE_MACHINE,
    ITEM_PIPELINE_ORDER,
    ITEM_STATE_MACHINE,
    STEP_BY_STATUS,
    ChunkStatus,
    ItemStatus,
    PipelineStep,
    SourceRow,
)

DEFAULT_MAX_RETRIES = 3


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _format_dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class ContentItem:
    """
    Entity representing one row moving through the text-to-audio pipeline.

    Status changes are validated against ``ITEM_STATE_MACHINE``. The only
    ways out of FAILED are the retry path (``start_processing``) and the
    explicit ``reset_for_retry``.
    """

    item_id: str
    job_id: str
    row_index: int
    source: SourceRow
    status: ItemStatus
    created_at: datetime
    updated_at: datetime
    current_step: Optional[PipelineStep] = None
    generated_text: Optional[str] = None
    final_audio_path: Optional[str] = None
    audio_duration: Optional[float] = None
    error_message: Optional[str] = None
    awaiting_retry: bool = False
    retry_count: int = 0
    max_retries: int = DEFAULT_MAX_RETRIES
    processing_started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def create(
        cls,
        job_id: str,
        row_index: int,
        source: SourceRow,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> "ContentItem":
        """
        Factory method to create a pending item for a job.

        Raises:
            ValidationError: If row_index or max_retries is negative
        """
        if row_index < 0:
            raise ValidationError(f"Row index must be non-negative, got {row_index}")
        if max_retries < 0:
            raise ValidationError(f"Max retries must be non-negative, got {max_retries}")

        now = datetime.utcnow()
        return cls(
            item_id=str(uuid.uuid4()),
            job_id=job_id,
            row_index=row_index,
            source=source,
            status=ItemStatus.PENDING,
            created_at=now,
            updated_at=now,
            max_retries=max_retries,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_terminal(self) -> bool:
        return self.status.is_terminal()

    def is_processing(self) -> bool:
        return self.status.is_processing()

    def can_retry(self) -> bool:
        return self.retry_count < self.max_retries

    @property
    def progress_percentage(self) -> int:
        """Position in the happy-path pipeline, 0 for FAILED/SKIPPED."""
        if self.status not in ITEM_PIPELINE_ORDER:
            return 0
        position = ITEM_PIPELINE_ORDER.index(self.status)
        return round(position / (len(ITEM_PIPELINE_ORDER) - 1) * 100)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _transition(self, target: ItemStatus) -> None:
        ITEM_STATE_MACHINE.assert_transition(self.status, target)
        self.status = target
        self.current_step = STEP_BY_STATUS.get(target, self.current_step)
        self.updated_at = datetime.utcnow()

    def start_processing(self) -> None:
        """
        Enter validation, either fresh or through the FAILED retry path.

        Raises:
            ValidationError: If retrying and no retries are left
            InvalidTransitionError: If the item is in any other status
        """
        if self.status == ItemStatus.FAILED:
            self.increment_retry()
            self.error_message = None
            self.awaiting_retry = False
        self._transition(ItemStatus.VALIDATING)
        self.processing_started_at = self.updated_at

    def start_text_generation(self) -> None:
        self._transition(ItemStatus.GENERATING_TEXT)

    def set_generated_text(self, text: str) -> None:
        if not text or not text.strip():
            raise ValidationError("Generated text cannot be empty")
        self.generated_text = text
        self.updated_at = datetime.utcnow()

    def start_chunking(self) -> None:
        if not self.generated_text:
            raise ValidationError(f"Item {self.item_id} has no generated text to chunk")
        self._transition(ItemStatus.CHUNKING)

    def start_audio_generation(self) -> None:
        self._transition(ItemStatus.GENERATING_AUDIO)

    def start_merging(self) -> None:
        self._transition(ItemStatus.MERGING)

    def set_audio(self, audio_path: str, duration: float) -> None:
        if not audio_path:
            raise ValidationError("Audio path cannot be empty")
        if duration < 0:
            raise ValidationError(f"Audio duration must be non-negative, got {duration}")
        self.final_audio_path = audio_path
        self.audio_duration = duration
        self.updated_at = datetime.utcnow()

    def start_uploading(self) -> None:
        self._transition(ItemStatus.UPLOADING)

    def complete(self, final_audio_path: Optional[str] = None) -> ItemCompletedEvent:
        """
        Mark the item completed after upload.

        Args:
            final_audio_path: Location returned by the upload, if it moved the file
        """
        self._transition(ItemStatus.COMPLETED)
        if final_audio_path:
            self.final_audio_path = final_audio_path
        self.completed_at = self.updated_at
        return ItemCompletedEvent(
            aggregate_id=self.item_id,
            occurred_at=self.updated_at,
            job_id=self.job_id,
            audio_path=self.final_audio_path,
            duration=self.audio_duration,
        )

    def fail(self, error_message: str, awaiting_retry: bool = False) -> ItemFailedEvent:
        """
        Move the item to FAILED.

        Args:
            error_message: Last error, kept for display
            awaiting_retry: True when a retry has been scheduled, so the
                failure is not final yet
        """
        step = self.current_step
        self._transition(ItemStatus.FAILED)
        self.error_message = error_message
        self.awaiting_retry = awaiting_retry
        return ItemFailedEvent(
            aggregate_id=self.item_id,
            occurred_at=self.updated_at,
            job_id=self.job_id,
            error_message=error_message,
            step=step.value if step else None,
        )

    def abandon_retry(self, error_message: str) -> None:
        """Turn a failure that was waiting for a retry into a final one."""
        if self.status != ItemStatus.FAILED or not self.awaiting_retry:
            raise ValidationError(f"Item {self.item_id} is not waiting for a retry")
        self.awaiting_retry = False
        self.error_message = error_message
        self.updated_at = datetime.utcnow()

    def skip(self, reason: str) -> None:
        self._transition(ItemStatus.SKIPPED)
        self.error_message = reason

    def cancel(self, reason: str = "Job cancelled") -> ItemStatus:
        """
        Stop a non-terminal item because its job was cancelled.

        Items that have not produced anything yet are skipped; items caught
        mid-pipeline fail with ``reason``.

        Returns:
            The status the item ended in
        """
        if self.status in (ItemStatus.PENDING, ItemStatus.VALIDATING):
            self.skip(reason)
        else:
            self.fail(reason)
        return self.status

    def increment_retry(self) -> None:
        if not self.can_retry():
            raise ValidationError(
                f"Item {self.item_id} exhausted its {self.max_retries} retries"
            )
        self.retry_count += 1
        self.updated_at = datetime.utcnow()

    def reset_for_retry(self) -> None:
        """
        Put a FAILED item back to PENDING with a fresh retry budget.

        Explicit recovery path outside the transition table.

        Raises:
            ValidationError: If the item is not FAILED
        """
        if self.status != ItemStatus.FAILED:
            raise ValidationError(
                f"Only failed items can be reset, item {self.item_id} is {self.status.value}"
            )
        self.status = ItemStatus.PENDING
        self.current_step = None
        self.error_message = None
        self.awaiting_retry = False
        self.retry_count = 0
        self.processing_started_at = None
        self.completed_at = None
        self.updated_at = datetime.utcnow()

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_id": self.item_id,
            "job_id": self.job_id,
            "row_index": self.row_index,
            "source": self.source.to_dict(),
            "status": self.status.value,
            "current_step": self.current_step.value if self.current_step else None,
            "generated_text": self.generated_text,
            "final_audio_path": self.final_audio_path,
            "audio_duration": self.audio_duration,
            "error_message": self.error_message,
            "awaiting_retry": self.awaiting_retry,
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "processing_started_at": _format_dt(self.processing_started_at),
            "completed_at": _format_dt(self.completed_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContentItem":
        return cls(
            item_id=data["item_id"],
            job_id=data["job_id"],
            row_index=data["row_index"],
            source=SourceRow.from_dict(data["source"]),
            status=ItemStatus(data["status"]),
            current_step=PipelineStep(data["current_step"]) if data.get("current_step") else None,
            generated_text=data.get("generated_text"),
            final_audio_path=data.get("final_audio_path"),
            audio_duration=data.get("audio_duration"),
            error_message=data.get("error_message"),
            awaiting_retry=data.get("awaiting_retry", False),
            retry_count=data.get("retry_count", 0),
            max_retries=data.get("max_retries", DEFAULT_MAX_RETRIES),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            processing_started_at=_parse_dt(data.get("processing_started_at")),
            completed_at=_parse_dt(data.get("completed_at")),
        )


@dataclass
class AudioChunk:
    """
    Entity representing one synthesized speech segment of an item.
    """

    chunk_id: str
    item_id: str
    text_chunk_id: str
    index: int
    text: str
    voice_id: str
    status: ChunkStatus
    created_at: datetime
    updated_at: datetime
    audio_path: Optional[str] = None
    duration: Optional[float] = None
    file_size: Optional[int] = None
    retry_count: int = 0
    last_error: Optional[str] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def create(
        cls,
        item_id: str,
        index: int,
        text: str,
        voice_id: str,
        text_chunk_id: Optional[str] = None,
    ) -> "AudioChunk":
        if index < 0:
            raise ValidationError(f"Chunk index must be non-negative, got {index}")
        if not text or not text.strip():
            raise ValidationError("Chunk text cannot be empty")
        if not voice_id:
            raise ValidationError("Voice ID is required")

        now = datetime.utcnow()
        return cls(
            chunk_id=str(uuid.uuid4()),
            item_id=item_id,
            text_chunk_id=text_chunk_id or str(uuid.uuid4()),
            index=index,
            text=text,
            voice_id=voice_id,
            status=ChunkStatus.PENDING,
            created_at=now,
            updated_at=now,
        )

    def _transition(self, target: ChunkStatus) -> None:
        CHUNK_STATE_MACHINE.assert_transition(self.status, target)
        self.status = target
        self.updated_at = datetime.utcnow()

    def is_completed(self) -> bool:
        return self.status == ChunkStatus.COMPLETED

    def start_processing(self) -> None:
        self._transition(ChunkStatus.PROCESSING)
        self.last_error = None

    def complete(self, audio_path: str, duration: float, file_size: int) -> None:
        """
        Record synthesized audio for the chunk.

        Raises:
            ValidationError: If the path is empty or duration/size is negative
            InvalidTransitionError: If the chunk is not PROCESSING
        """
        if not audio_path:
            raise ValidationError("Audio path cannot be empty")
        if duration < 0:
            raise ValidationError(f"Duration must be non-negative, got {duration}")
        if file_size < 0:
            raise ValidationError(f"File size must be non-negative, got {file_size}")
        self._transition(ChunkStatus.COMPLETED)
        self.audio_path = audio_path
        self.duration = duration
        self.file_size = file_size
        self.completed_at = self.updated_at

    def fail(self, reason: str) -> None:
        if not reason:
            raise ValidationError("Failure reason cannot be empty")
        self._transition(ChunkStatus.FAILED)
        self.last_error = reason

    def reset(self) -> None:
        """Return a FAILED chunk to PENDING and drop any partial audio."""
        self._transition(ChunkStatus.PENDING)
        self.audio_path = None
        self.duration = None
        self.file_size = None
        self.completed_at = None

    def increment_retry(self) -> None:
        self.retry_count += 1
        self.updated_at = datetime.utcnow()

    def update_voice(self, voice_id: str) -> None:
        if not voice_id:
            raise ValidationError("Voice ID is required")
        if self.status == ChunkStatus.PROCESSING:
            raise ValidationError(
                f"Cannot change voice of chunk {self.chunk_id} while it is processing"
            )
        self.voice_id = voice_id
        self.updated_at = datetime.utcnow()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chunk_id": self.chunk_id,
            "item_id": self.item_id,
            "text_chunk_id": self.text_chunk_id,
            "index": self.index,
            "text": self.text,
            "voice_id": self.voice_id,
            "status": self.status.value,
            "audio_path": self.audio_path,
            "duration": self.duration,
            "file_size": self.file_size,
            "retry_count": self.retry_count,
            "last_error": self.last_error,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "completed_at": _format_dt(self.completed_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AudioChunk":
        return cls(
            chunk_id=data["chunk_id"],
            item_id=data["item_id"],
            text_chunk_id=data["text_chunk_id"],
            index=data["index"],
            text=data["text"],
            voice_id=data["voice_id"],
            status=ChunkStatus(data["status"]),
            audio_path=data.get("audio_path"),
            duration=data.get("duration"),
            file_size=data.get("file_size"),
            retry_count=data.get("retry_count", 0),
            last_error=data.get("last_error"),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            completed_at=_parse_dt(data.get("completed_at")),
        )
