"""
Job Application Service

Coordinates job management use cases that sit outside the pipeline:
creating a job from rows, reporting its status and deleting it.
"""

import logging
from collections import Counter
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from narration.domain.content_processing import (
    AudioChunkRepository,
    ContentItem,
    ContentItemRepository,
    SourceRow,
)
from narration.domain.errors import EntityNotFoundError, ValidationError
from narration.domain.error_tracking import ErrorLogRepository
from narration.domain.events import ItemCreatedEvent, JobCreatedEvent
from narration.domain.job_management import Job, JobConfig, JobRepository, JobStatus

from .event_bus import EventBus

logger = logging.getLogger(__name__)

RowInput = Union[SourceRow, Mapping[str, Any]]


class JobService:
    """
    Application service for job management operations.

    Creates jobs with their items, reports their status and removes them
    together with everything they own.
    """

    def __init__(
        self,
        job_repository: JobRepository,
        item_repository: ContentItemRepository,
        chunk_repository: AudioChunkRepository,
        error_log_repository: ErrorLogRepository,
        event_bus: EventBus,
        max_item_retries: int = 3,
    ):
        self.job_repository = job_repository
        self.item_repository = item_repository
        self.chunk_repository = chunk_repository
        self.error_log_repository = error_log_repository
        self.event_bus = event_bus
        self.max_item_retries = max_item_retries

    def create_job(
        self,
        name: str,
        config: JobConfig,
        rows: Sequence[RowInput],
        description: Optional[str] = None,
    ) -> Job:
        """
        Create a READY job with one PENDING item per row.

        Rows are validated before anything is stored; a single invalid row
        rejects the whole batch.

        Raises:
            ValidationError: If the name is empty, there are no rows, or a
                row is invalid
        """
        if not rows:
            raise ValidationError("A job needs at least one row")

        job = Job.create(name=name, config=config, description=description)
        job.mark_validating()

        sources = self._parse_rows(rows)
        items = [
            ContentItem.create(job.job_id, index, source, max_retries=self.max_item_retries)
            for index, source in enumerate(sources)
        ]
        job.set_total_items(len(items))
        job.mark_ready()

        self.job_repository.save(job)
        for item in items:
            self.item_repository.save(item)

        logger.info(f"Created job {job.job_id} '{job.name}' with {len(items)} items")
        self.event_bus.publish(
            JobCreatedEvent(
                aggregate_id=job.job_id,
                occurred_at=job.created_at,
                name=job.name,
                total_items=job.total_items,
            )
        )
        for item in items:
            self.event_bus.publish(
                ItemCreatedEvent(
                    aggregate_id=item.item_id,
                    occurred_at=item.created_at,
                    job_id=job.job_id,
                    row_index=item.row_index,
                )
            )
        return job

    @staticmethod
    def _parse_rows(rows: Sequence[RowInput]) -> List[SourceRow]:
        sources: List[SourceRow] = []
        errors: List[str] = []
        for index, row in enumerate(rows):
            if isinstance(row, SourceRow):
                sources.append(row)
                continue
            try:
                sources.append(SourceRow.from_dict(dict(row)))
            except KeyError as e:
                errors.append(f"row {index}: missing column {e}")
            except ValidationError as e:
                errors.append(f"row {index}: {e.message}")
        if errors:
            raise ValidationError("Invalid rows: " + "; ".join(errors))
        return sources

    def get_job(self, job_id: str) -> Job:
        job = self.job_repository.find_by_id(job_id)
        if job is None:
            raise EntityNotFoundError("Job", job_id)
        return job

    def get_job_status(self, job_id: str) -> Dict[str, Any]:
        """
        Get job status information.

        Returns:
            Job fields, its progress and a count of items per status

        Raises:
            EntityNotFoundError: If job doesn't exist
        """
        job = self.get_job(job_id)
        items = self.item_repository.find_by_job_id(job_id)
        status = job.to_dict()
        status["progress"] = job.progress().to_dict()
        status["items_by_status"] = dict(Counter(item.status.value for item in items))
        status["error_count"] = self.error_log_repository.count(job_id)
        return status

    def update_config(self, job_id: str, config: JobConfig) -> Job:
        job = self.get_job(job_id)
        job.update_config(config)
        self.job_repository.save(job)
        return job

    def delete_job(self, job_id: str) -> bool:
        """
        Delete a job together with its items, chunks and error logs.

        Raises:
            EntityNotFoundError: If job doesn't exist
            ValidationError: If the job is still processing
        """
        job = self.get_job(job_id)
        if job.status == JobStatus.PROCESSING:
            raise ValidationError(f"Job {job_id} is processing; cancel or pause it first")

        chunk_count = 0
        for item in self.item_repository.find_by_job_id(job_id):
            chunk_count += self.chunk_repository.delete_by_item_id(item.item_id)
        item_count = self.item_repository.delete_by_job_id(job_id)
        for error_log in self.error_log_repository.find_by_job_id(job_id):
            self.error_log_repository.delete(error_log.error_id)

        deleted = self.job_repository.delete(job_id)
        logger.info(
            f"Deleted job {job_id} with {item_count} items and {chunk_count} chunks"
        )
        return deleted
