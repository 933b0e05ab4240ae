"""
Error Recovery Coordinator

Single place where a failure is classified, recorded, and either scheduled
for a retry with exponential backoff or made permanent.
"""

import logging
import traceback
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from narration.domain.content_processing import (
    AudioChunkRepository,
    ContentItemRepository,
    PipelineStep,
)
from narration.domain.errors import (
    DomainError,
    EntityNotFoundError,
    ErrorCode,
    ErrorScope,
    ErrorSeverity,
    ExternalServiceError,
    ValidationError,
)
from narration.domain.error_tracking import ErrorLog, ErrorLogRepository, derive_severity
from narration.domain.events import (
    ErrorOccurredEvent,
    ItemPermanentFailureEvent,
    RateLimitHitEvent,
    RetryScheduledEvent,
)
from narration.domain.job_management import JOB_STATE_MACHINE, JobRepository, JobStatus
from narration.domain.queues import IRetryQueue, RetryDescriptor

from .event_bus import EventBus

logger = logging.getLogger(__name__)

DEFAULT_BASE_DELAY_MS = 1000
DEFAULT_MAX_DELAY_MS = 300000
DEFAULT_MAX_RETRIES = 3

NON_RETRYABLE_STEPS = (PipelineStep.AUDIO_MERGE, PipelineStep.UPLOAD)


@dataclass(frozen=True)
class ErrorClassification:
    error_code: ErrorCode
    severity: ErrorSeverity
    retryable: bool


@dataclass
class ErrorContext:
    """
    Everything the recovery policy needs to know about one failure.

    Attributes:
        scope: Kind of entity that failed
        entity_id: ID of the failing job, item or chunk
        error: The exception raised
        retry_count: Retries already spent on the entity
        max_retries: Retry budget of the entity
    """
    scope: ErrorScope
    entity_id: str
    error: Exception
    severity: ErrorSeverity = ErrorSeverity.LOW
    retryable: bool = False
    retry_count: int = 0
    max_retries: int = DEFAULT_MAX_RETRIES
    error_code: ErrorCode = ErrorCode.UNKNOWN
    step: Optional[PipelineStep] = None
    job_id: Optional[str] = None
    item_id: Optional[str] = None
    chunk_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def message(self) -> str:
        return str(self.error) or self.error.__class__.__name__


@dataclass(frozen=True)
class RecoveryResult:
    retry_scheduled: bool
    next_retry_at: Optional[datetime] = None
    delay_ms: Optional[int] = None
    error_log_id: Optional[str] = None


class ErrorRecoveryCoordinator:
    """
    Application service deciding between retry and permanent failure.

    A failure is retried when it is retryable, not CRITICAL, and the entity
    still has retries left. The delay is ``base * 2**retry_count`` capped
    at ``max_delay_ms``.
    """

    def __init__(
        self,
        job_repository: JobRepository,
        item_repository: ContentItemRepository,
        error_log_repository: ErrorLogRepository,
        event_bus: EventBus,
        retry_queue: IRetryQueue,
        chunk_repository: Optional[AudioChunkRepository] = None,
        base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
        max_delay_ms: int = DEFAULT_MAX_DELAY_MS,
    ):
        if base_delay_ms <= 0 or max_delay_ms < base_delay_ms:
            raise ValidationError(
                f"Invalid backoff bounds: base={base_delay_ms}ms cap={max_delay_ms}ms"
            )
        self.job_repository = job_repository
        self.item_repository = item_repository
        self.error_log_repository = error_log_repository
        self.event_bus = event_bus
        self.retry_queue = retry_queue
        self.chunk_repository = chunk_repository
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms

    # ------------------------------------------------------------------
    # Policy
    # ------------------------------------------------------------------

    @staticmethod
    def classify(error: Exception, step: Optional[PipelineStep] = None) -> ErrorClassification:
        """
        Map an exception to an error code, severity and retryability.

        Provider errors carry their own code and retry hint. Timeouts and
        connection errors are retryable, other domain errors are not.
        Failures during merge or upload are never retried.
        """
        if isinstance(error, ExternalServiceError):
            code, retryable = error.error_code, error.retryable
        elif isinstance(error, DomainError):
            code, retryable = error.error_code, False
        elif isinstance(error, TimeoutError):
            code, retryable = ErrorCode.TIMEOUT, True
        elif isinstance(error, ConnectionError):
            code, retryable = ErrorCode.NETWORK_ERROR, True
        else:
            code, retryable = ErrorCode.UNKNOWN, True

        if step in NON_RETRYABLE_STEPS:
            retryable = False
        return ErrorClassification(
            error_code=code,
            severity=derive_severity(step, code),
            retryable=retryable,
        )

    def build_context(
        self,
        scope: ErrorScope,
        entity_id: str,
        error: Exception,
        step: Optional[PipelineStep] = None,
        retry_count: int = 0,
        max_retries: int = DEFAULT_MAX_RETRIES,
        job_id: Optional[str] = None,
        item_id: Optional[str] = None,
        chunk_id: Optional[str] = None,
    ) -> ErrorContext:
        """Create an ErrorContext with code, severity and retryability classified."""
        classification = self.classify(error, step)
        return ErrorContext(
            scope=scope,
            entity_id=entity_id,
            error=error,
            severity=classification.severity,
            retryable=classification.retryable,
            retry_count=retry_count,
            max_retries=max_retries,
            error_code=classification.error_code,
            step=step,
            job_id=job_id,
            item_id=item_id,
            chunk_id=chunk_id,
        )

    def calculate_backoff(self, retry_count: int) -> int:
        """Delay in milliseconds before retry number ``retry_count + 1``."""
        retry_count = max(retry_count, 0)
        return min(self.base_delay_ms * 2 ** retry_count, self.max_delay_ms)

    def should_retry(self, context: ErrorContext) -> bool:
        return (
            context.retryable
            and context.severity != ErrorSeverity.CRITICAL
            and context.retry_count < context.max_retries
        )

    # ------------------------------------------------------------------
    # Handling
    # ------------------------------------------------------------------

    def handle_error(self, context: ErrorContext) -> RecoveryResult:
        """
        Record a failure and either schedule a retry or make it permanent.

        Always publishes ErrorOccurredEvent first, plus RateLimitHitEvent for
        rate-limit errors.

        Returns:
            RecoveryResult telling the caller whether a retry is pending
        """
        now = datetime.utcnow()
        retry = self.should_retry(context)

        logger.log(
            logging.ERROR if context.severity in (ErrorSeverity.HIGH, ErrorSeverity.CRITICAL)
            else logging.WARNING,
            f"{context.scope.value} {context.entity_id} failed "
            f"[{context.error_code.value}/{context.severity.value}]: {context.message}",
        )

        self.event_bus.publish(
            ErrorOccurredEvent(
                aggregate_id=context.entity_id,
                occurred_at=now,
                scope=context.scope.value,
                severity=context.severity.value,
                error_message=context.message,
                error_code=context.error_code.value,
                retryable=context.retryable,
                retry_count=context.retry_count,
            )
        )
        if context.error_code == ErrorCode.RATE_LIMIT:
            self.event_bus.publish(
                RateLimitHitEvent(
                    aggregate_id=context.entity_id,
                    occurred_at=now,
                    scope=context.scope.value,
                    error_message=context.message,
                )
            )

        error_log = self._record(context, retry)
        error_log_id = error_log.error_id if error_log else None

        if retry:
            return self._schedule_retry(context, now, error_log_id)

        self._fail_permanently(context)
        return RecoveryResult(retry_scheduled=False, error_log_id=error_log_id)

    def _record(self, context: ErrorContext, retry: bool) -> Optional[ErrorLog]:
        stack_trace = "".join(
            traceback.format_exception(
                type(context.error), context.error, context.error.__traceback__
            )
        )
        try:
            error_log = ErrorLog.create(
                message=context.message,
                error_code=context.error_code,
                step=context.step,
                job_id=context.job_id,
                item_id=context.item_id,
                chunk_id=context.chunk_id,
                stack_trace=stack_trace,
                details=repr(context.metadata) if context.metadata else None,
                is_retryable=retry,
            )
            self.error_log_repository.save(error_log)
            return error_log
        except Exception as e:
            logger.error(
                f"Failed to record error for {context.scope.value} {context.entity_id}: {e}",
                exc_info=True,
            )
            return None

    def _schedule_retry(
        self, context: ErrorContext, now: datetime, error_log_id: Optional[str]
    ) -> RecoveryResult:
        delay_ms = self.calculate_backoff(context.retry_count)
        scheduled_for = now + timedelta(milliseconds=delay_ms)
        descriptor = RetryDescriptor(
            entity_id=context.entity_id,
            scope=context.scope,
            retry_count=context.retry_count + 1,
            max_retries=context.max_retries,
            delay_ms=delay_ms,
            scheduled_for=scheduled_for,
            error_message=context.message,
            error_log_id=error_log_id,
        )
        self.retry_queue.enqueue(descriptor)

        logger.info(
            f"Retry {descriptor.retry_count}/{context.max_retries} scheduled for "
            f"{context.scope.value} {context.entity_id} in {delay_ms}ms"
        )
        self.event_bus.publish(
            RetryScheduledEvent(
                aggregate_id=context.entity_id,
                occurred_at=now,
                scope=context.scope.value,
                retry_count=descriptor.retry_count,
                max_retries=context.max_retries,
                delay_ms=delay_ms,
                scheduled_for=scheduled_for,
            )
        )
        return RecoveryResult(
            retry_scheduled=True,
            next_retry_at=scheduled_for,
            delay_ms=delay_ms,
            error_log_id=error_log_id,
        )

    def _fail_permanently(self, context: ErrorContext) -> None:
        if context.scope == ErrorScope.JOB:
            self._fail_job(context)
        elif context.scope == ErrorScope.ITEM:
            self._fail_item(context)
        else:
            logger.warning(
                f"{context.scope.value} {context.entity_id} failed permanently: {context.message}"
            )

    def _fail_job(self, context: ErrorContext) -> None:
        job = self.job_repository.find_by_id(context.entity_id)
        if job is None:
            logger.warning(f"Job {context.entity_id} vanished before it could be failed")
            return
        if not JOB_STATE_MACHINE.can_transition(job.status, JobStatus.FAILED):
            logger.warning(f"Job {job.job_id} is {job.status.value}, not failing it")
            return
        event = job.fail(context.message)
        self.job_repository.save(job)
        self.event_bus.publish(event)

    def _fail_item(self, context: ErrorContext) -> None:
        item = self.item_repository.find_by_id(context.entity_id)
        if item is None:
            logger.warning(f"Item {context.entity_id} vanished before it could be failed")
            return
        if item.is_terminal():
            logger.warning(f"Item {item.item_id} is {item.status.value}, not failing it")
            return
        event = item.fail(context.message)
        self.item_repository.save(item)
        self.event_bus.publish(event)
        self.event_bus.publish(
            ItemPermanentFailureEvent(
                aggregate_id=item.item_id,
                occurred_at=item.updated_at,
                job_id=item.job_id,
                error_message=context.message,
                retry_count=item.retry_count,
            )
        )

    # ------------------------------------------------------------------
    # Manual recovery and reporting
    # ------------------------------------------------------------------

    def reset_entity(self, scope: ErrorScope, entity_id: str) -> None:
        """
        Reset a failed entity so it can be processed again.

        Jobs go from FAILED to PAUSED, items from FAILED to PENDING with
        their retry budget restored, chunks from FAILED to PENDING.

        Raises:
            EntityNotFoundError: If the entity doesn't exist
            ValidationError: If the entity is not FAILED or the scope is unsupported
        """
        if scope == ErrorScope.JOB:
            job = self.job_repository.find_by_id(entity_id)
            if job is None:
                raise EntityNotFoundError("Job", entity_id)
            job.reset_after_failure()
            self.job_repository.save(job)
        elif scope == ErrorScope.ITEM:
            item = self.item_repository.find_by_id(entity_id)
            if item is None:
                raise EntityNotFoundError("ContentItem", entity_id)
            item.reset_for_retry()
            self.item_repository.save(item)
        elif scope == ErrorScope.CHUNK and self.chunk_repository is not None:
            chunk = self.chunk_repository.find_by_id(entity_id)
            if chunk is None:
                raise EntityNotFoundError("AudioChunk", entity_id)
            chunk.reset()
            self.chunk_repository.save(chunk)
        else:
            raise ValidationError(f"Cannot reset entities of scope {scope.value}")
        logger.info(f"Reset {scope.value} {entity_id}")

    def get_error_stats(self, job_id: str) -> Dict[str, Any]:
        """Summarize the recorded errors of a job."""
        error_logs = self.error_log_repository.find_by_job_id(job_id)
        by_step = Counter(log.step.value if log.step else "unknown" for log in error_logs)
        by_severity = Counter(log.severity.value for log in error_logs)
        by_code = Counter(log.error_code.value for log in error_logs)
        return {
            "job_id": job_id,
            "total": len(error_logs),
            "retryable": sum(1 for log in error_logs if log.is_retryable),
            "retried": sum(1 for log in error_logs if log.was_retried),
            "recent": sum(1 for log in error_logs if log.is_recent()),
            "by_step": dict(by_step),
            "by_severity": dict(by_severity),
            "by_code": dict(by_code),
        }
