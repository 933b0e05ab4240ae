"""
Queue Interfaces

Ports for handing work to external workers and for scheduling delayed
retries. The orchestration core only enqueues; what backs the queue is an
infrastructure concern.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from .errors import ErrorScope


@dataclass(frozen=True)
class ItemWorkDescriptor:
    """Request to run one content item through the pipeline."""
    item_id: str
    job_id: str
    priority: str = "normal"

    def to_dict(self) -> Dict[str, Any]:
        return {"item_id": self.item_id, "job_id": self.job_id, "priority": self.priority}


@dataclass(frozen=True)
class ChunkWorkDescriptor:
    """Request to synthesize one audio chunk."""
    chunk_id: str
    item_id: str
    job_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {"chunk_id": self.chunk_id, "item_id": self.item_id, "job_id": self.job_id}


@dataclass(frozen=True)
class RetryDescriptor:
    """
    Delayed re-invocation of a failed job, item or chunk.

    Attributes:
        entity_id: ID of the entity to retry
        scope: Which kind of entity ``entity_id`` refers to
        retry_count: Attempt number this retry represents
        delay_ms: Backoff delay applied before the retry
        scheduled_for: When the retry becomes due
        error_log_id: ErrorLog that triggered the retry, marked retried on dispatch
    """
    entity_id: str
    scope: ErrorScope
    retry_count: int
    max_retries: int
    delay_ms: int
    scheduled_for: datetime
    error_message: str
    error_log_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "scope": self.scope.value,
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
            "delay_ms": self.delay_ms,
            "scheduled_for": self.scheduled_for.isoformat(),
            "error_message": self.error_message,
            "error_log_id": self.error_log_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RetryDescriptor":
        return cls(
            entity_id=data["entity_id"],
            scope=ErrorScope(data["scope"]),
            retry_count=data["retry_count"],
            max_retries=data["max_retries"],
            delay_ms=data["delay_ms"],
            scheduled_for=datetime.fromisoformat(data["scheduled_for"]),
            error_message=data.get("error_message", ""),
            error_log_id=data.get("error_log_id"),
        )


class IItemQueue(ABC):
    """Queue of items waiting for a worker."""

    @abstractmethod
    def enqueue(self, descriptor: ItemWorkDescriptor) -> None:
        pass


class IChunkQueue(ABC):
    """Queue of audio chunks waiting for synthesis."""

    @abstractmethod
    def enqueue(self, descriptor: ChunkWorkDescriptor) -> None:
        pass


class IRetryQueue(ABC):
    """Delayed queue of retries."""

    @abstractmethod
    def enqueue(self, descriptor: RetryDescriptor) -> None:
        """
        Schedule ``descriptor`` to run after ``descriptor.delay_ms``.

        Must return immediately; the re-invocation is the queue's concern.
        """
        pass
