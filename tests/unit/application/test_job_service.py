"""
Unit tests for JobService

Tests job creation from rows, status reporting, configuration updates and
cascading deletion.
"""

import pytest

from narration.application.job_service import JobService
from narration.domain.content_processing.value_objects import ItemStatus
from narration.domain.errors import EntityNotFoundError, ValidationError
from narration.domain.events import ItemCreatedEvent, JobCreatedEvent
from narration.domain.error_tracking.entities import ErrorLog
from narration.domain.job_management.value_objects import JobStatus
from tests.fixtures import (
    assert_dict_contains_keys,
    create_chunks,
    create_job_config,
    create_source_row,
)


@pytest.fixture
def job_service(job_repository, item_repository, chunk_repository, error_log_repository, event_bus, recorder):
    """Create JobService over in-memory repositories."""
    return JobService(
        job_repository,
        item_repository,
        chunk_repository,
        error_log_repository,
        event_bus,
        max_item_retries=2,
    )


class TestJobServiceCreation:
    """Test job creation from input rows."""

    def test_create_job_success(self, job_service, job_repository, item_repository, recorder):
        """
        Test successful job creation.

        Verifies that:
        - The job is stored READY with one item per row
        - Items keep their row order and the configured retry budget
        - JobCreatedEvent is followed by one ItemCreatedEvent per item
        """
        # Arrange
        rows = [
            {"title": "Lighthouse", "details": "History of the lighthouse", "category": "places"},
            create_source_row(1),
        ]

        # Act
        job = job_service.create_job("Weekly batch", create_job_config(), rows, description="week 3")

        # Assert
        stored = job_repository.find_by_id(job.job_id)
        assert stored.status == JobStatus.READY
        assert stored.total_items == 2
        assert stored.description == "week 3"

        items = sorted(item_repository.find_by_job_id(job.job_id), key=lambda i: i.row_index)
        assert [i.row_index for i in items] == [0, 1]
        assert items[0].source.title == "Lighthouse"
        assert items[0].source.category == "places"
        assert all(i.status == ItemStatus.PENDING and i.max_retries == 2 for i in items)

        assert recorder.types() == ["job.created", "item.created", "item.created"]
        assert recorder.of_type(JobCreatedEvent)[0].total_items == 2
        assert not any(e.is_retry for e in recorder.of_type(ItemCreatedEvent))

    def test_create_job_without_rows(self, job_service):
        with pytest.raises(ValidationError):
            job_service.create_job("Empty", create_job_config(), [])

    def test_create_job_without_name(self, job_service):
        with pytest.raises(ValidationError):
            job_service.create_job("  ", create_job_config(), [create_source_row()])

    def test_invalid_rows_reject_the_whole_batch(self, job_service, job_repository, item_repository, recorder):
        """
        Test all-or-nothing row validation.

        Verifies that every invalid row is reported and nothing is stored.
        """
        # Arrange
        rows = [
            create_source_row(0),
            {"title": "No details"},
            {"title": "", "details": "Missing title"},
        ]

        # Act
        with pytest.raises(ValidationError) as exc_info:
            job_service.create_job("Batch", create_job_config(), rows)

        # Assert
        message = exc_info.value.message
        assert message.startswith("Invalid rows: ")
        assert "row 1: missing column 'details'" in message
        assert "row 2: Row title is required" in message
        assert job_repository.count() == 0
        assert item_repository.count() == 0
        assert recorder.events == []


class TestJobServiceStatus:
    """Test status reporting."""

    def test_get_job_status(self, job_service, error_log_repository):
        job = job_service.create_job("Batch", create_job_config(), [create_source_row(0), create_source_row(1)])
        error_log_repository.save(ErrorLog.create("provider slow", job_id=job.job_id))

        status = job_service.get_job_status(job.job_id)

        assert_dict_contains_keys(status, ["job_id", "status", "progress", "items_by_status", "error_count"])
        assert status["status"] == "ready"
        assert status["items_by_status"] == {"pending": 2}
        assert status["error_count"] == 1
        assert status["progress"]["percentage"] == 0

    def test_get_unknown_job(self, job_service):
        with pytest.raises(EntityNotFoundError):
            job_service.get_job_status("missing")


class TestJobServiceConfig:
    def test_update_config_before_start(self, job_service, job_repository):
        job = job_service.create_job("Batch", create_job_config(), [create_source_row()])

        job_service.update_config(job.job_id, create_job_config(voice_id="voice-2"))

        assert job_repository.find_by_id(job.job_id).config.voice_settings.voice_id == "voice-2"

    def test_update_config_of_finished_job(self, job_service, job_repository):
        job = job_service.create_job("Batch", create_job_config(), [create_source_row()])
        stored = job_repository.find_by_id(job.job_id)
        stored.cancel()
        job_repository.save(stored)

        with pytest.raises(ValidationError):
            job_service.update_config(job.job_id, create_job_config(voice_id="voice-2"))


class TestJobServiceDeletion:
    """Test cascading deletion."""

    def test_delete_job_removes_everything_it_owns(
        self, job_service, job_repository, item_repository, chunk_repository, error_log_repository
    ):
        # Arrange
        job = job_service.create_job("Batch", create_job_config(), [create_source_row()])
        item = item_repository.find_by_job_id(job.job_id)[0]
        for chunk in create_chunks(item.item_id, count=2):
            chunk_repository.save(chunk)
        error_log_repository.save(ErrorLog.create("boom", job_id=job.job_id, item_id=item.item_id))

        # Act
        deleted = job_service.delete_job(job.job_id)

        # Assert
        assert deleted
        assert job_repository.find_by_id(job.job_id) is None
        assert item_repository.count(job.job_id) == 0
        assert chunk_repository.count(item.item_id) == 0
        assert error_log_repository.count(job.job_id) == 0

    def test_processing_job_cannot_be_deleted(self, job_service, job_repository):
        job = job_service.create_job("Batch", create_job_config(), [create_source_row()])
        stored = job_repository.find_by_id(job.job_id)
        stored.start()
        job_repository.save(stored)

        with pytest.raises(ValidationError):
            job_service.delete_job(job.job_id)
        assert job_repository.exists(job.job_id)

    def test_delete_unknown_job(self, job_service):
        with pytest.raises(EntityNotFoundError):
            job_service.delete_job("missing")
