"""
End-to-End Tests for the Narration Workflow

Drive whole jobs through the wired pipeline the way Celery workers would:
every queued item, chunk and retry is delivered until the queues are
empty. Covers:
- Complete runs from input rows to uploaded audio
- Transient provider errors recovered by delayed retries
- Permanent failures, partial completion and manual retry of failed items
- Pause, resume and cancel while work is in flight
"""

from collections import Counter

import pytest

from narration.domain.content_processing.value_objects import ItemStatus
from narration.domain.errors import ErrorCode, ExternalServiceError
from narration.domain.events import (
    AudioMergeCompletedEvent,
    ItemCompletedEvent,
    ItemPermanentFailureEvent,
    JobCompletedEvent,
    JobCreatedEvent,
    JobFailedEvent,
    JobStartedEvent,
    RetryScheduledEvent,
)
from narration.domain.job_management.value_objects import JobStatus
from tests.fixtures import (
    FakeAudioUploader,
    FakeSpeechSynthesizer,
    FakeTextGenerator,
    assert_counters_consistent,
    assert_events_in_order,
    assert_job_status,
    drain,
    make_external_services,
    start_job,
)


def _invalid_key():
    return ExternalServiceError("invalid api key", error_code=ErrorCode.AUTH_ERROR)


class TestCompleteRun:
    def test_every_row_becomes_uploaded_audio(
        self, pipeline, queues, job_repository, item_repository, recorder, external_services
    ):
        """
        Test a job running to completion.

        Verifies that:
        - Every item is merged and uploaded
        - The job completes with consistent counters
        - Lifecycle events arrive in order
        """
        # Act
        job = start_job(pipeline, rows=3)
        drain(pipeline, queues)

        # Assert
        stored = job_repository.find_by_id(job.job_id)
        assert_job_status(stored, JobStatus.COMPLETED)
        assert_counters_consistent(stored, item_repository)
        assert stored.completed_items == 3

        items = item_repository.find_by_job_id(job.job_id)
        assert all(i.status == ItemStatus.COMPLETED for i in items)
        assert all(i.final_audio_path.startswith("/srv/audio/") for i in items)
        assert len(external_services.audio_uploader.calls) == 3

        assert_events_in_order(
            recorder.events,
            [JobCreatedEvent, JobStartedEvent, AudioMergeCompletedEvent, ItemCompletedEvent, JobCompletedEvent],
        )
        assert len(recorder.of_type(JobCompletedEvent)) == 1
        assert pipeline.chunk_coordinator.tracked_item_ids() == []

    def test_progress_reaches_one_hundred_percent(self, pipeline, queues):
        job = start_job(pipeline, rows=2)
        drain(pipeline, queues)

        snapshot = pipeline.progress_tracking.get_job_progress(job.job_id)

        assert snapshot.percentage == 100
        assert pipeline.job_service.get_job_status(job.job_id)["items_by_status"] == {"completed": 2}


class TestTransientFailures:
    @pytest.fixture
    def external_services(self):
        attempts = Counter()

        def flaky(text):
            attempts[text] += 1
            if text.startswith("Row 1") and attempts[text] == 1:
                return TimeoutError("synthesis timed out")
            return None

        # first text call times out, every chunk of row 1 times out once
        return make_external_services(
            text_generator=FakeTextGenerator(errors=[ConnectionError("reset by peer")]),
            speech_synthesizer=FakeSpeechSynthesizer(fail_when=flaky),
        )

    def test_retries_recover_the_job(
        self, pipeline, queues, job_repository, item_repository, error_log_repository, recorder
    ):
        job = start_job(pipeline, rows=2)
        drain(pipeline, queues)

        stored = job_repository.find_by_id(job.job_id)
        assert_job_status(stored, JobStatus.COMPLETED)
        assert stored.failed_items == 0
        assert_counters_consistent(stored, item_repository)

        logs = error_log_repository.find_by_job_id(job.job_id)
        assert len(logs) == 3
        assert all(log.was_retried for log in logs)
        assert len(recorder.of_type(RetryScheduledEvent)) == 3
        assert recorder.of_type(ItemPermanentFailureEvent) == []


class TestPermanentFailures:
    @pytest.fixture
    def external_services(self):
        return make_external_services(
            speech_synthesizer=FakeSpeechSynthesizer(
                fail_when=lambda text: _invalid_key() if text.startswith("Row 0") else None
            )
        )

    def test_failed_chunks_fail_only_their_item(
        self, pipeline, queues, job_repository, item_repository, recorder
    ):
        job = start_job(pipeline, rows=2)
        drain(pipeline, queues)

        stored = job_repository.find_by_id(job.job_id)
        assert_job_status(stored, JobStatus.COMPLETED)
        assert (stored.completed_items, stored.failed_items) == (1, 1)
        assert_counters_consistent(stored, item_repository)

        by_row = {i.row_index: i for i in item_repository.find_by_job_id(job.job_id)}
        assert by_row[0].status == ItemStatus.FAILED
        assert by_row[1].status == ItemStatus.COMPLETED
        assert [e.aggregate_id for e in recorder.of_type(ItemPermanentFailureEvent)] == [by_row[0].item_id]


class TestManualRetry:
    @pytest.fixture
    def external_services(self):
        return make_external_services(
            text_generator=FakeTextGenerator(errors=[_invalid_key(), _invalid_key()])
        )

    def test_failed_job_is_retried_to_completion(
        self, pipeline, queues, job_repository, item_repository, recorder
    ):
        """
        Test recovering a job whose items all failed.

        Verifies that:
        - Non-retryable provider errors fail every item and the job
        - Retrying the failed items reopens the job and completes it
        """
        # Arrange
        job = start_job(pipeline, rows=2)
        drain(pipeline, queues)
        assert_job_status(job_repository.find_by_id(job.job_id), JobStatus.FAILED)
        assert len(recorder.of_type(JobFailedEvent)) == 1

        # Act
        result = pipeline.retry_failed_items.retry_failed_items(job.job_id)
        drain(pipeline, queues)

        # Assert
        assert len(result["retried_items"]) == 2
        stored = job_repository.find_by_id(job.job_id)
        assert_job_status(stored, JobStatus.COMPLETED)
        assert (stored.completed_items, stored.failed_items) == (2, 0)
        assert_counters_consistent(stored, item_repository)


class TestJobControl:
    def test_pause_holds_work_until_resume(self, pipeline, queues, job_repository, item_repository):
        job = start_job(pipeline, rows=2)
        pipeline.orchestrator.pause_job_processing(job.job_id)

        drain(pipeline, queues)

        assert all(i.status == ItemStatus.PENDING for i in item_repository.find_by_job_id(job.job_id))
        assert_job_status(job_repository.find_by_id(job.job_id), JobStatus.PAUSED)

        pipeline.orchestrator.resume_job_processing(job.job_id)
        drain(pipeline, queues)

        assert_job_status(job_repository.find_by_id(job.job_id), JobStatus.COMPLETED)

    def test_retry_due_while_paused_runs_after_resume(
        self, pipeline, queues, job_repository, item_repository, error_log_repository
    ):
        """
        Test a scheduled retry falling due while its job is paused.

        Verifies that:
        - The retry delivered during the pause leaves the item waiting
        - Resuming hands the item out again and the job completes
        """
        # Arrange
        pipeline.item_processing.text_generator = FakeTextGenerator(
            errors=[ConnectionError("reset by peer")]
        )
        job = start_job(pipeline, rows=1)
        pipeline.item_processing.process_item(queues.items.pop().item_id)
        pipeline.orchestrator.pause_job_processing(job.job_id)

        # Act
        drain(pipeline, queues)
        waiting = item_repository.find_by_job_id(job.job_id)[0]
        pipeline.orchestrator.resume_job_processing(job.job_id)
        drain(pipeline, queues)

        # Assert
        assert waiting.status == ItemStatus.FAILED
        assert waiting.awaiting_retry
        stored = job_repository.find_by_id(job.job_id)
        assert_job_status(stored, JobStatus.COMPLETED)
        assert stored.failed_items == 0
        assert_counters_consistent(stored, item_repository)
        item = item_repository.find_by_job_id(job.job_id)[0]
        assert item.status == ItemStatus.COMPLETED
        assert item.retry_count == 1
        assert all(log.was_retried for log in error_log_repository.find_by_job_id(job.job_id))

    def test_cancel_discards_work_in_flight(
        self, pipeline, queues, job_repository, item_repository, external_services
    ):
        job = start_job(pipeline, rows=2)
        pipeline.item_processing.process_item(queues.items.pop().item_id)

        cancelled = pipeline.orchestrator.cancel_job_processing(job.job_id)
        drain(pipeline, queues)

        assert cancelled == 2
        assert_job_status(job_repository.find_by_id(job.job_id), JobStatus.CANCELLED)
        assert external_services.audio_uploader.calls == []
        assert external_services.speech_synthesizer.calls == []
        statuses = sorted(i.status.value for i in item_repository.find_by_job_id(job.job_id))
        assert statuses == ["failed", "skipped"]

    def test_failing_uploads_are_not_retried(self, pipeline, queues, job_repository, retry_queue):
        pipeline.item_processing.audio_uploader = FakeAudioUploader(error=OSError("disk full"))
        job = start_job(pipeline, rows=1)

        drain(pipeline, queues)

        assert_job_status(job_repository.find_by_id(job.job_id), JobStatus.FAILED)
        assert retry_queue.enqueued == []
