"""
Content Processing Value Objects

Statuses, pipeline steps and the source row of a content item.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from ..errors import ValidationError
from ..state_machine import StateMachine


class ItemStatus(Enum):
    """Content item status enumeration, in pipeline order."""
    PENDING = "pending"
    VALIDATING = "validating"
    GENERATING_TEXT = "generating_text"
    CHUNKING = "chunking"
    GENERATING_AUDIO = "generating_audio"
    MERGING = "merging"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    def is_terminal(self) -> bool:
        return self in (ItemStatus.COMPLETED, ItemStatus.FAILED, ItemStatus.SKIPPED)

    def is_processing(self) -> bool:
        return self in ITEM_PIPELINE_ORDER[1:-1]


# Happy path; FAILED and SKIPPED are the alternate terminals
ITEM_PIPELINE_ORDER: List[ItemStatus] = [
    ItemStatus.PENDING,
    ItemStatus.VALIDATING,
    ItemStatus.GENERATING_TEXT,
    ItemStatus.CHUNKING,
    ItemStatus.GENERATING_AUDIO,
    ItemStatus.MERGING,
    ItemStatus.UPLOADING,
    ItemStatus.COMPLETED,
]

ITEM_STATE_MACHINE: StateMachine[ItemStatus] = StateMachine(
    "item",
    {
        ItemStatus.PENDING: {ItemStatus.VALIDATING, ItemStatus.SKIPPED, ItemStatus.FAILED},
        ItemStatus.VALIDATING: {
            ItemStatus.GENERATING_TEXT,
            ItemStatus.SKIPPED,
            ItemStatus.FAILED,
        },
        ItemStatus.GENERATING_TEXT: {ItemStatus.CHUNKING, ItemStatus.FAILED},
        ItemStatus.CHUNKING: {ItemStatus.GENERATING_AUDIO, ItemStatus.FAILED},
        ItemStatus.GENERATING_AUDIO: {ItemStatus.MERGING, ItemStatus.FAILED},
        ItemStatus.MERGING: {ItemStatus.UPLOADING, ItemStatus.FAILED},
        ItemStatus.UPLOADING: {ItemStatus.COMPLETED, ItemStatus.FAILED},
        ItemStatus.COMPLETED: set(),
        # retry path
        ItemStatus.FAILED: {ItemStatus.VALIDATING},
        ItemStatus.SKIPPED: set(),
    },
)


class PipelineStep(Enum):
    """Step of the item pipeline a failure or progress reading belongs to."""
    VALIDATION = "validation"
    TEXT_GENERATION = "text_generation"
    CHUNKING = "chunking"
    AUDIO_GENERATION = "audio_generation"
    AUDIO_MERGE = "audio_merge"
    UPLOAD = "upload"


STEP_BY_STATUS: Dict[ItemStatus, PipelineStep] = {
    ItemStatus.VALIDATING: PipelineStep.VALIDATION,
    ItemStatus.GENERATING_TEXT: PipelineStep.TEXT_GENERATION,
    ItemStatus.CHUNKING: PipelineStep.CHUNKING,
    ItemStatus.GENERATING_AUDIO: PipelineStep.AUDIO_GENERATION,
    ItemStatus.MERGING: PipelineStep.AUDIO_MERGE,
    ItemStatus.UPLOADING: PipelineStep.UPLOAD,
}


class ChunkStatus(Enum):
    """Audio chunk status enumeration."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


CHUNK_STATE_MACHINE: StateMachine[ChunkStatus] = StateMachine(
    "chunk",
    {
        ChunkStatus.PENDING: {ChunkStatus.PROCESSING},
        ChunkStatus.PROCESSING: {ChunkStatus.COMPLETED, ChunkStatus.FAILED},
        ChunkStatus.FAILED: {ChunkStatus.PROCESSING, ChunkStatus.PENDING},
        ChunkStatus.COMPLETED: set(),
    },
)


@dataclass(frozen=True)
class SourceRow:
    """
    One row of input data.

    Immutable to ensure thread-safety when passed between components.
    """
    title: str
    details: str
    category: Optional[str] = None
    reference: Optional[str] = None

    def __post_init__(self):
        if not self.title or not self.title.strip():
            raise ValidationError("Row title is required")
        if not self.details or not self.details.strip():
            raise ValidationError("Row details are required")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "details": self.details,
            "category": self.category,
            "reference": self.reference,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SourceRow":
        return cls(
            title=data["title"],
            details=data["details"],
            category=data.get("category"),
            reference=data.get("reference"),
        )


@dataclass(frozen=True)
class TextChunk:
    """A slice of generated text to be synthesized as one audio chunk."""
    chunk_id: str
    index: int
    text: str


@dataclass(frozen=True)
class SynthesizedAudio:
    """Result returned by a speech synthesis service for one chunk."""
    audio_path: str
    duration: float
    file_size: int


@dataclass(frozen=True)
class MergedAudio:
    """Result returned by an audio merge service for one item."""
    audio_path: str
    duration: float
