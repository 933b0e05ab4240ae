"""
Job Management Value Objects

Immutable value objects for job status and narration configuration.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from ..errors import ValidationError
from ..state_machine import StateMachine


class JobStatus(Enum):
    """Job status enumeration."""
    DRAFT = "draft"
    VALIDATING = "validating"
    READY = "ready"
    PROCESSING = "processing"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    def is_terminal(self) -> bool:
        """Check if status is terminal (completed, failed or cancelled)."""
        return JOB_STATE_MACHINE.is_terminal(self)

    def is_active(self) -> bool:
        """Check if job is actively processing or paused mid-run."""
        return self in (JobStatus.PROCESSING, JobStatus.PAUSED)


JOB_STATE_MACHINE: StateMachine[JobStatus] = StateMachine(
    "job",
    {
        JobStatus.DRAFT: {
            JobStatus.VALIDATING,
            JobStatus.READY,
            JobStatus.PROCESSING,
            JobStatus.CANCELLED,
        },
        JobStatus.VALIDATING: {JobStatus.READY, JobStatus.FAILED, JobStatus.CANCELLED},
        JobStatus.READY: {JobStatus.PROCESSING, JobStatus.CANCELLED},
        JobStatus.PROCESSING: {
            JobStatus.PAUSED,
            JobStatus.COMPLETED,
            JobStatus.FAILED,
            JobStatus.CANCELLED,
        },
        JobStatus.PAUSED: {JobStatus.PROCESSING, JobStatus.FAILED, JobStatus.CANCELLED},
        JobStatus.COMPLETED: set(),
        JobStatus.FAILED: set(),
        JobStatus.CANCELLED: set(),
    },
)


@dataclass(frozen=True)
class VoiceSettings:
    """
    Value object describing the synthesized voice.

    Immutable to ensure thread-safety when passed between components.
    """
    voice_id: str
    stability: float = 0.5
    similarity_boost: float = 0.75
    style: float = 0.0
    speed: float = 1.0

    def __post_init__(self):
        """Validate voice values."""
        if not self.voice_id:
            raise ValidationError("Voice ID is required")
        for name in ("stability", "similarity_boost", "style"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValidationError(f"{name} must be between 0 and 1, got {value}")
        if self.speed <= 0:
            raise ValidationError(f"speed must be positive, got {self.speed}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "voice_id": self.voice_id,
            "stability": self.stability,
            "similarity_boost": self.similarity_boost,
            "style": self.style,
            "speed": self.speed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VoiceSettings":
        return cls(
            voice_id=data["voice_id"],
            stability=data.get("stability", 0.5),
            similarity_boost=data.get("similarity_boost", 0.75),
            style=data.get("style", 0.0),
            speed=data.get("speed", 1.0),
        )


DEFAULT_MAX_CHUNK_SIZE = 2000
DEFAULT_SILENCE_BETWEEN_CHUNKS_MS = 500


@dataclass(frozen=True)
class JobConfig:
    """
    Value object holding the voice, prompt and chunking configuration
    shared by every item of a job.
    """
    voice_settings: VoiceSettings
    system_prompt: str = ""
    user_prompt_template: str = "{title}\n\n{details}"
    max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE
    silence_between_chunks_ms: int = DEFAULT_SILENCE_BETWEEN_CHUNKS_MS

    def __post_init__(self):
        if self.max_chunk_size <= 0:
            raise ValidationError(
                f"max_chunk_size must be positive, got {self.max_chunk_size}"
            )
        if self.silence_between_chunks_ms < 0:
            raise ValidationError(
                "silence_between_chunks_ms must be non-negative, "
                f"got {self.silence_between_chunks_ms}"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "voice_settings": self.voice_settings.to_dict(),
            "system_prompt": self.system_prompt,
            "user_prompt_template": self.user_prompt_template,
            "max_chunk_size": self.max_chunk_size,
            "silence_between_chunks_ms": self.silence_between_chunks_ms,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobConfig":
        """Create JobConfig from dictionary."""
        return cls(
            voice_settings=VoiceSettings.from_dict(data["voice_settings"]),
            system_prompt=data.get("system_prompt", ""),
            user_prompt_template=data.get("user_prompt_template", "{title}\n\n{details}"),
            max_chunk_size=data.get("max_chunk_size", DEFAULT_MAX_CHUNK_SIZE),
            silence_between_chunks_ms=data.get(
                "silence_between_chunks_ms", DEFAULT_SILENCE_BETWEEN_CHUNKS_MS
            ),
        )


@dataclass(frozen=True)
class JobProgress:
    """
    Value object representing job-level counters as a progress reading.
    """
    total_items: int
    completed_items: int
    failed_items: int
    percentage: int
    estimated_seconds_remaining: Optional[int] = None

    def __post_init__(self):
        if not 0 <= self.percentage <= 100:
            raise ValueError(f"Percentage must be between 0 and 100, got {self.percentage}")

    @property
    def processed_items(self) -> int:
        return self.completed_items + self.failed_items

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "total_items": self.total_items,
            "completed_items": self.completed_items,
            "failed_items": self.failed_items,
            "percentage": self.percentage,
            "estimated_seconds_remaining": self.estimated_seconds_remaining,
        }
