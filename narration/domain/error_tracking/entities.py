"""
Error Tracking Entities

Immutable record of one pipeline failure.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from ..content_processing.value_objects import PipelineStep
from ..errors import ErrorCode, ErrorSeverity, ValidationError

MAX_MESSAGE_LENGTH = 5000
MAX_DETAILS_LENGTH = 10000


def derive_severity(step: Optional[PipelineStep], error_code: Optional[ErrorCode]) -> ErrorSeverity:
    """
    Classify a failure.

    Merge and upload failures are HIGH regardless of code. Provider
    rate-limit and auth failures are CRITICAL, timeouts and network
    failures MEDIUM, everything else LOW.
    """
    if step in (PipelineStep.AUDIO_MERGE, PipelineStep.UPLOAD):
        return ErrorSeverity.HIGH
    if error_code in (ErrorCode.RATE_LIMIT, ErrorCode.AUTH_ERROR):
        return ErrorSeverity.CRITICAL
    if error_code in (ErrorCode.TIMEOUT, ErrorCode.NETWORK_ERROR):
        return ErrorSeverity.MEDIUM
    return ErrorSeverity.LOW


@dataclass
class ErrorLog:
    """
    Record of one failure, optionally linked to a job, item and chunk.

    Never mutated except by the one-time ``mark_as_retried``.
    """

    error_id: str
    message: str
    created_at: datetime
    error_code: ErrorCode = ErrorCode.UNKNOWN
    step: Optional[PipelineStep] = None
    job_id: Optional[str] = None
    item_id: Optional[str] = None
    chunk_id: Optional[str] = None
    stack_trace: Optional[str] = None
    details: Optional[str] = None
    is_retryable: bool = False
    was_retried: bool = False
    retried_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.message or not self.message.strip():
            raise ValidationError("Error message cannot be empty")
        if len(self.message) > MAX_MESSAGE_LENGTH:
            raise ValidationError(
                f"Error message exceeds {MAX_MESSAGE_LENGTH} characters"
            )
        if self.details and len(self.details) > MAX_DETAILS_LENGTH:
            raise ValidationError(
                f"Error details exceed {MAX_DETAILS_LENGTH} characters"
            )

    @classmethod
    def create(
        cls,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN,
        step: Optional[PipelineStep] = None,
        job_id: Optional[str] = None,
        item_id: Optional[str] = None,
        chunk_id: Optional[str] = None,
        stack_trace: Optional[str] = None,
        details: Optional[str] = None,
        is_retryable: bool = False,
    ) -> "ErrorLog":
        """Factory method; truncates over-long messages instead of rejecting them."""
        if message and len(message) > MAX_MESSAGE_LENGTH:
            message = message[: MAX_MESSAGE_LENGTH - 3] + "..."
        if details and len(details) > MAX_DETAILS_LENGTH:
            details = details[: MAX_DETAILS_LENGTH - 3] + "..."
        return cls(
            error_id=str(uuid.uuid4()),
            message=message,
            created_at=datetime.utcnow(),
            error_code=error_code,
            step=step,
            job_id=job_id,
            item_id=item_id,
            chunk_id=chunk_id,
            stack_trace=stack_trace,
            details=details,
            is_retryable=is_retryable,
        )

    @property
    def severity(self) -> ErrorSeverity:
        return derive_severity(self.step, self.error_code)

    def mark_as_retried(self) -> None:
        """
        Record that a retry was executed for this failure.

        Raises:
            ValidationError: If already retried or not retryable
        """
        if not self.is_retryable:
            raise ValidationError(f"Error {self.error_id} is not retryable")
        if self.was_retried:
            raise ValidationError(f"Error {self.error_id} was already retried")
        self.was_retried = True
        self.retried_at = datetime.utcnow()

    def context_summary(self) -> str:
        """Return e.g. ``Job: j1 | Item: i1 | Step: upload``."""
        parts = []
        if self.job_id:
            parts.append(f"Job: {self.job_id}")
        if self.item_id:
            parts.append(f"Item: {self.item_id}")
        if self.chunk_id:
            parts.append(f"Chunk: {self.chunk_id}")
        if self.step:
            parts.append(f"Step: {self.step.value}")
        return " | ".join(parts)

    def full_message(self) -> str:
        prefix = f"[{self.error_code.value}]"
        if self.step:
            prefix += f" [{self.step.value.upper()}]"
        return f"{prefix} {self.message}"

    def is_recent(self, seconds: int = 60) -> bool:
        return datetime.utcnow() - self.created_at <= timedelta(seconds=seconds)

    def is_stale(self, hours: int = 1) -> bool:
        return datetime.utcnow() - self.created_at > timedelta(hours=hours)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_id": self.error_id,
            "message": self.message,
            "error_code": self.error_code.value,
            "step": self.step.value if self.step else None,
            "severity": self.severity.value,
            "job_id": self.job_id,
            "item_id": self.item_id,
            "chunk_id": self.chunk_id,
            "stack_trace": self.stack_trace,
            "details": self.details,
            "is_retryable": self.is_retryable,
            "was_retried": self.was_retried,
            "retried_at": self.retried_at.isoformat() if self.retried_at else None,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ErrorLog":
        return cls(
            error_id=data["error_id"],
            message=data["message"],
            error_code=ErrorCode(data.get("error_code", ErrorCode.UNKNOWN.value)),
            step=PipelineStep(data["step"]) if data.get("step") else None,
            job_id=data.get("job_id"),
            item_id=data.get("item_id"),
            chunk_id=data.get("chunk_id"),
            stack_trace=data.get("stack_trace"),
            details=data.get("details"),
            is_retryable=data.get("is_retryable", False),
            was_retried=data.get("was_retried", False),
            retried_at=datetime.fromisoformat(data["retried_at"]) if data.get("retried_at") else None,
            created_at=datetime.fromisoformat(data["created_at"]),
        )
