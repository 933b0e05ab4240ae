"""
Job Management Entities

Domain entity for a batch narration job.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from ..errors import InvalidTransitionError, ValidationError
from ..events import (
    JobCancelledEvent,
    JobCompletedEvent,
    JobFailedEvent,
    JobPausedEvent,
    JobResumedEvent,
    JobStartedEvent,
)
from .value_objects import JOB_STATE_MACHINE, JobConfig, JobProgress, JobStatus


@dataclass
class Job:
    """
    Entity representing one batch run of content items.

    Owns its status and counters. All mutation goes through the methods
    below; every status change is checked against ``JOB_STATE_MACHINE``.
    """

    job_id: str
    name: str
    config: JobConfig
    status: JobStatus
    created_at: datetime
    updated_at: datetime
    total_items: int = 0
    completed_items: int = 0
    failed_items: int = 0
    description: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    @classmethod
    def create(
        cls, name: str, config: JobConfig, description: Optional[str] = None
    ) -> "Job":
        """
        Factory method to create a new draft job.

        Args:
            name: Display name of the job
            config: Voice, prompt and chunking configuration
            description: Optional free-form description

        Returns:
            New Job instance in DRAFT status

        Raises:
            ValidationError: If the name is empty
        """
        if not name or not name.strip():
            raise ValidationError("Job name is required")

        now = datetime.utcnow()
        return cls(
            job_id=str(uuid.uuid4()),
            name=name.strip(),
            config=config,
            status=JobStatus.DRAFT,
            created_at=now,
            updated_at=now,
            description=description,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_terminal(self) -> bool:
        return self.status.is_terminal()

    def can_modify(self) -> bool:
        """Only non-terminal jobs accept configuration or counter changes."""
        return not self.is_terminal()

    def can_start(self) -> bool:
        return self.status in (JobStatus.DRAFT, JobStatus.READY) and self.total_items > 0

    def can_pause(self) -> bool:
        return self.status == JobStatus.PROCESSING

    def can_resume(self) -> bool:
        return self.status == JobStatus.PAUSED

    def can_cancel(self) -> bool:
        return JOB_STATE_MACHINE.can_transition(self.status, JobStatus.CANCELLED)

    @property
    def processed_items(self) -> int:
        return self.completed_items + self.failed_items

    @property
    def remaining_items(self) -> int:
        return max(self.total_items - self.processed_items, 0)

    @property
    def progress_percentage(self) -> int:
        if self.total_items == 0:
            return 0
        return round(self.processed_items / self.total_items * 100)

    @property
    def duration(self) -> Optional[float]:
        """Seconds between start and completion (or now, while running)."""
        if self.started_at is None:
            return None
        end = self.completed_at or datetime.utcnow()
        return (end - self.started_at).total_seconds()

    def progress(self) -> JobProgress:
        return JobProgress(
            total_items=self.total_items,
            completed_items=self.completed_items,
            failed_items=self.failed_items,
            percentage=self.progress_percentage,
        )

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def _ensure_modifiable(self, action: str) -> None:
        if not self.can_modify():
            raise ValidationError(
                f"Cannot {action} job {self.job_id} in {self.status.value} state"
            )

    def _touch(self) -> None:
        self.updated_at = datetime.utcnow()

    def set_total_items(self, total_items: int) -> None:
        """
        Record how many items belong to the job.

        Raises:
            ValidationError: If negative, below the processed count, or the
                job is terminal
        """
        self._ensure_modifiable("resize")
        if total_items < 0:
            raise ValidationError(f"Total items must be non-negative, got {total_items}")
        if total_items < self.processed_items:
            raise ValidationError(
                f"Total items {total_items} is below the {self.processed_items} "
                "items already processed"
            )
        self.total_items = total_items
        self._touch()

    def update_config(self, config: JobConfig) -> None:
        self._ensure_modifiable("reconfigure")
        self.config = config
        self._touch()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _transition(self, target: JobStatus) -> None:
        JOB_STATE_MACHINE.assert_transition(self.status, target)
        self.status = target
        self._touch()

    def mark_validating(self) -> None:
        self._transition(JobStatus.VALIDATING)

    def mark_ready(self) -> None:
        self._transition(JobStatus.READY)

    def start(self) -> JobStartedEvent:
        """
        Transition job to processing state.

        Returns:
            JobStartedEvent for the transition

        Raises:
            ValidationError: If the job has no items
            InvalidTransitionError: If the job is not DRAFT or READY
        """
        # PAUSED -> PROCESSING is resume(), not start()
        if self.status not in (JobStatus.DRAFT, JobStatus.READY):
            raise InvalidTransitionError("job", self.status, JobStatus.PROCESSING)
        if self.total_items <= 0:
            raise ValidationError("Cannot start job with no items")

        self._transition(JobStatus.PROCESSING)
        self.started_at = self.updated_at
        return JobStartedEvent(
            aggregate_id=self.job_id,
            occurred_at=self.updated_at,
            total_items=self.total_items,
        )

    def pause(self) -> JobPausedEvent:
        self._transition(JobStatus.PAUSED)
        return JobPausedEvent(
            aggregate_id=self.job_id,
            occurred_at=self.updated_at,
            completed_items=self.completed_items,
            failed_items=self.failed_items,
        )

    def resume(self) -> JobResumedEvent:
        """
        Resume a paused job.

        Counters may have reached the total while paused; the caller should
        check ``finish_if_all_processed()`` right after resuming.
        """
        if self.status != JobStatus.PAUSED:
            raise InvalidTransitionError("job", self.status, JobStatus.PROCESSING)
        self._transition(JobStatus.PROCESSING)
        return JobResumedEvent(
            aggregate_id=self.job_id,
            occurred_at=self.updated_at,
            remaining_items=self.remaining_items,
        )

    def cancel(self) -> JobCancelledEvent:
        self._transition(JobStatus.CANCELLED)
        self.completed_at = self.updated_at
        return JobCancelledEvent(aggregate_id=self.job_id, occurred_at=self.updated_at)

    def complete(self) -> JobCompletedEvent:
        self._transition(JobStatus.COMPLETED)
        self.completed_at = self.updated_at
        return JobCompletedEvent(
            aggregate_id=self.job_id,
            occurred_at=self.updated_at,
            completed_items=self.completed_items,
            failed_items=self.failed_items,
            duration_seconds=self.duration,
        )

    def fail(self, reason: str) -> JobFailedEvent:
        self._transition(JobStatus.FAILED)
        self.completed_at = self.updated_at
        self.error_message = reason
        return JobFailedEvent(
            aggregate_id=self.job_id,
            occurred_at=self.updated_at,
            error_message=reason,
            completed_items=self.completed_items,
            failed_items=self.failed_items,
        )

    def reset_after_failure(self) -> None:
        """
        Move a FAILED job back to PAUSED for manual recovery.

        This is the only way out of FAILED and sits outside the transition
        table.

        Raises:
            ValidationError: If the job is not FAILED
        """
        if self.status != JobStatus.FAILED:
            raise ValidationError(
                f"Only failed jobs can be reset, job {self.job_id} is {self.status.value}"
            )
        self.status = JobStatus.PAUSED
        self.completed_at = None
        self.error_message = None
        self._touch()

    # ------------------------------------------------------------------
    # Counters
    # ------------------------------------------------------------------

    def _ensure_counter_room(self) -> None:
        self._ensure_modifiable("count items on")
        if self.processed_items >= self.total_items:
            raise ValidationError(
                f"Job {self.job_id} already accounts for all {self.total_items} items"
            )

    def increment_completed(self):
        """
        Count one completed item.

        Returns:
            JobCompletedEvent or JobFailedEvent if the increment finished
            the job, None otherwise
        """
        self._ensure_counter_room()
        self.completed_items += 1
        self._touch()
        return self.finish_if_all_processed()

    def increment_failed(self):
        """
        Count one failed item.

        Returns:
            JobCompletedEvent or JobFailedEvent if the increment finished
            the job, None otherwise
        """
        self._ensure_counter_room()
        self.failed_items += 1
        self._touch()
        return self.finish_if_all_processed()

    def reopen_failed_items(self, count: int) -> None:
        """Give back ``count`` failed items so they can be processed again."""
        self._ensure_modifiable("reopen items on")
        if count < 0 or count > self.failed_items:
            raise ValidationError(
                f"Cannot reopen {count} items, job {self.job_id} has "
                f"{self.failed_items} failed"
            )
        self.failed_items -= count
        self._touch()

    def finish_if_all_processed(self):
        """
        Apply the auto-finish rule.

        Once every item is accounted for while PROCESSING, the job completes
        if at least one item completed and fails if every item failed.
        """
        if self.status != JobStatus.PROCESSING or self.total_items == 0:
            return None
        if self.processed_items < self.total_items:
            return None
        if self.completed_items > 0:
            return self.complete()
        return self.fail(f"All {self.total_items} items failed")

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Convert job to dictionary for serialization."""
        return {
            "job_id": self.job_id,
            "name": self.name,
            "description": self.description,
            "config": self.config.to_dict(),
            "status": self.status.value,
            "total_items": self.total_items,
            "completed_items": self.completed_items,
            "failed_items": self.failed_items,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error_message": self.error_message,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Job":
        """Create Job from dictionary."""
        return cls(
            job_id=data["job_id"],
            name=data["name"],
            description=data.get("description"),
            config=JobConfig.from_dict(data["config"]),
            status=JobStatus(data["status"]),
            total_items=data.get("total_items", 0),
            completed_items=data.get("completed_items", 0),
            failed_items=data.get("failed_items", 0),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            started_at=datetime.fromisoformat(data["started_at"]) if data.get("started_at") else None,
            completed_at=datetime.fromisoformat(data["completed_at"]) if data.get("completed_at") else None,
            error_message=data.get("error_message"),
        )
