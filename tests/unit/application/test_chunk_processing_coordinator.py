"""
Unit tests for ChunkProcessingCoordinator.
"""

import threading
from datetime import datetime

import pytest

from narration.application.chunk_processing_coordinator import ChunkProcessingCoordinator
from narration.domain.content_processing.value_objects import ChunkStatus, ItemStatus
from narration.domain.errors import (
    ErrorCode,
    ExternalServiceError,
    ProcessingCancelledError,
    ValidationError,
)
from narration.domain.events import AudioChunkGeneratedEvent, ChunkFailedEvent
from tests.fixtures import create_chunks, create_item


class HandlerSpy:
    def __init__(self, error=None):
        self.merged = []
        self.failed = []
        self.error = error

    def merge(self, item_id):
        self.merged.append(item_id)
        if self.error:
            raise self.error

    def fail(self, item_id, message, error_code=ErrorCode.UNKNOWN):
        self.failed.append((item_id, message, error_code))


@pytest.fixture
def spy():
    return HandlerSpy()


@pytest.fixture
def item(item_repository):
    item = create_item("job-1", status=ItemStatus.GENERATING_AUDIO)
    item_repository.save(item)
    return item


@pytest.fixture
def chunks(item, chunk_repository):
    chunks = create_chunks(item.item_id, count=4)
    for chunk in chunks:
        chunk_repository.save(chunk)
    return chunks


def _coordinator(item_repository, chunk_repository, spy, **kwargs):
    return ChunkProcessingCoordinator(
        item_repository,
        chunk_repository,
        merge_handler=spy.merge,
        item_failure_handler=spy.fail,
        **kwargs,
    )


@pytest.fixture
def coordinator(item_repository, chunk_repository, spy):
    return _coordinator(item_repository, chunk_repository, spy)


def test_threshold_must_be_a_share():
    with pytest.raises(ValidationError):
        ChunkProcessingCoordinator(None, None, failure_threshold=0)
    with pytest.raises(ValidationError):
        ChunkProcessingCoordinator(None, None, failure_threshold=1.5)


def test_register_requires_chunks(coordinator):
    with pytest.raises(ValidationError):
        coordinator.register_item_chunks("i1", [])


def test_merge_once_every_chunk_completed(coordinator, item, chunks, item_repository, spy):
    coordinator.register_item_chunks(item.item_id, [c.chunk_id for c in chunks])

    for chunk in chunks[:-1]:
        coordinator.handle_chunk_succeeded(item.item_id, chunk.chunk_id)
    assert spy.merged == []
    assert coordinator.get_chunk_status(item.item_id) == {
        "total": 4, "completed": 3, "failed": 0, "pending": 1,
    }

    coordinator.handle_chunk_succeeded(item.item_id, chunks[-1].chunk_id)

    assert spy.merged == [item.item_id]
    assert item_repository.find_by_id(item.item_id).status == ItemStatus.MERGING
    assert not coordinator.is_tracking(item.item_id)
    assert not coordinator.is_resolving(item.item_id)


def test_registering_twice_still_merges_once(coordinator, item, chunks, item_repository, spy):
    chunk_ids = [c.chunk_id for c in chunks]
    coordinator.register_item_chunks(item.item_id, chunk_ids)
    coordinator.register_item_chunks(item.item_id, chunk_ids)
    assert coordinator.get_chunk_status(item.item_id)["total"] == 4

    for chunk_id in chunk_ids:
        coordinator.handle_chunk_succeeded(item.item_id, chunk_id)
    coordinator.handle_chunk_succeeded(item.item_id, chunk_ids[0])

    assert spy.merged == [item.item_id]
    assert spy.failed == []
    assert item_repository.find_by_id(item.item_id).status == ItemStatus.MERGING


def test_merge_with_failures_below_threshold(coordinator, item, chunks, spy):
    coordinator.register_item_chunks(item.item_id, [c.chunk_id for c in chunks])

    coordinator.handle_chunk_failed(item.item_id, chunks[0].chunk_id, "voice error")
    for chunk in chunks[1:]:
        coordinator.handle_chunk_succeeded(item.item_id, chunk.chunk_id)

    assert spy.merged == [item.item_id]
    assert spy.failed == []


def test_fail_at_threshold(coordinator, item, chunks, spy):
    coordinator.register_item_chunks(item.item_id, [c.chunk_id for c in chunks])

    coordinator.handle_chunk_failed(item.item_id, chunks[0].chunk_id)
    assert spy.failed == []
    coordinator.handle_chunk_failed(item.item_id, chunks[1].chunk_id)

    assert len(spy.failed) == 1
    assert spy.failed[0][0] == item.item_id
    assert spy.merged == []

    # later outcomes for the decided item are ignored
    coordinator.handle_chunk_succeeded(item.item_id, chunks[2].chunk_id)
    assert len(spy.failed) == 1


def test_single_chunk_failure_fails_single_chunk_item(
    item_repository, chunk_repository, spy
):
    item = create_item("job-1", status=ItemStatus.GENERATING_AUDIO)
    item_repository.save(item)
    coordinator = _coordinator(item_repository, chunk_repository, spy)
    coordinator.register_item_chunks(item.item_id, ["only"])

    coordinator.handle_chunk_failed(item.item_id, "only")

    assert len(spy.failed) == 1


def test_duplicate_and_foreign_outcomes_are_ignored(coordinator, item, chunks, spy):
    coordinator.register_item_chunks(item.item_id, [c.chunk_id for c in chunks])

    coordinator.handle_chunk_succeeded(item.item_id, chunks[0].chunk_id)
    coordinator.handle_chunk_succeeded(item.item_id, chunks[0].chunk_id)
    coordinator.handle_chunk_succeeded(item.item_id, "not-a-chunk-of-this-item")
    coordinator.handle_chunk_failed(item.item_id, chunks[0].chunk_id)

    assert coordinator.get_chunk_status(item.item_id)["completed"] == 1
    assert coordinator.get_chunk_status(item.item_id)["failed"] == 0


def test_failed_chunk_can_later_succeed(coordinator, item, chunks, spy):
    coordinator.register_item_chunks(item.item_id, [c.chunk_id for c in chunks])

    coordinator.handle_chunk_failed(item.item_id, chunks[0].chunk_id)
    coordinator.handle_chunk_succeeded(item.item_id, chunks[0].chunk_id)

    status = coordinator.get_chunk_status(item.item_id)
    assert status["failed"] == 0
    assert status["completed"] == 1


def test_tracking_is_rebuilt_from_repository(
    coordinator, item, chunks, chunk_repository, spy
):
    # simulates a worker that never saw the registration
    for chunk in chunks:
        chunk.start_processing()
        chunk.complete(f"/tmp/{chunk.chunk_id}.mp3", 1.0, 100)
        chunk_repository.save(chunk)

    coordinator.handle_chunk_succeeded(item.item_id, chunks[-1].chunk_id)

    assert spy.merged == [item.item_id]


def test_shared_state_reads_repository_every_time(
    item_repository, chunk_repository, item, chunks, spy
):
    coordinator = _coordinator(item_repository, chunk_repository, spy, shared_state=True)

    for chunk in chunks:
        chunk.start_processing()
        chunk.complete(f"/tmp/{chunk.chunk_id}.mp3", 1.0, 100)
        chunk_repository.save(chunk)
        coordinator.handle_chunk_succeeded(item.item_id, chunk.chunk_id)

    # every event saw the persisted state; only the first full view claims the merge
    assert spy.merged == [item.item_id]
    assert coordinator.tracked_item_ids() == []


def test_outcome_for_item_outside_audio_generation_is_ignored(
    coordinator, item_repository, chunk_repository, spy
):
    item = create_item("job-1", status=ItemStatus.CHUNKING)
    item_repository.save(item)
    chunk = create_chunks(item.item_id, count=1, status=ChunkStatus.COMPLETED)[0]
    chunk_repository.save(chunk)

    coordinator.handle_chunk_succeeded(item.item_id, chunk.chunk_id)

    assert spy.merged == []


def test_merge_is_not_claimed_twice(coordinator, item, chunks, item_repository, spy):
    coordinator.register_item_chunks(item.item_id, [c.chunk_id for c in chunks])
    stored = item_repository.find_by_id(item.item_id)
    stored.start_merging()
    item_repository.save(stored)

    for chunk in chunks:
        coordinator.handle_chunk_succeeded(item.item_id, chunk.chunk_id)

    assert spy.merged == []
    assert not coordinator.is_tracking(item.item_id)


def test_merge_error_fails_the_item_with_its_code(item_repository, chunk_repository, item, chunks):
    spy = HandlerSpy(error=ExternalServiceError("upload refused", error_code=ErrorCode.UPLOAD_ERROR))
    coordinator = _coordinator(item_repository, chunk_repository, spy)
    coordinator.register_item_chunks(item.item_id, [c.chunk_id for c in chunks])

    for chunk in chunks:
        coordinator.handle_chunk_succeeded(item.item_id, chunk.chunk_id)

    assert spy.failed[0][2] == ErrorCode.UPLOAD_ERROR
    assert not coordinator.is_resolving(item.item_id)


def test_unexpected_merge_error_defaults_to_merge_error(item_repository, chunk_repository, item, chunks):
    spy = HandlerSpy(error=RuntimeError("ffmpeg crashed"))
    coordinator = _coordinator(item_repository, chunk_repository, spy)
    coordinator.register_item_chunks(item.item_id, [c.chunk_id for c in chunks])

    for chunk in chunks:
        coordinator.handle_chunk_succeeded(item.item_id, chunk.chunk_id)

    assert spy.failed[0][2] == ErrorCode.MERGE_ERROR
    assert "ffmpeg crashed" in spy.failed[0][1]


def test_cancelled_merge_does_not_fail_the_item(item_repository, chunk_repository, item, chunks):
    spy = HandlerSpy(error=ProcessingCancelledError("job cancelled"))
    coordinator = _coordinator(item_repository, chunk_repository, spy)
    coordinator.register_item_chunks(item.item_id, [c.chunk_id for c in chunks])

    for chunk in chunks:
        coordinator.handle_chunk_succeeded(item.item_id, chunk.chunk_id)

    assert spy.merged == [item.item_id]
    assert spy.failed == []


def test_missing_merge_handler_is_logged(item_repository, chunk_repository, item, chunks, caplog):
    coordinator = ChunkProcessingCoordinator(item_repository, chunk_repository)
    coordinator.register_item_chunks(item.item_id, [c.chunk_id for c in chunks])

    for chunk in chunks:
        coordinator.handle_chunk_succeeded(item.item_id, chunk.chunk_id)

    assert "No merge handler configured" in caplog.text
    assert not coordinator.is_resolving(item.item_id)


def test_reacts_to_bus_events(coordinator, item, chunks, event_bus, spy):
    coordinator.register_event_handlers(event_bus)
    coordinator.register_item_chunks(item.item_id, [c.chunk_id for c in chunks])
    now = datetime.utcnow()

    event_bus.publish(
        ChunkFailedEvent(
            aggregate_id=chunks[0].chunk_id,
            occurred_at=now,
            item_id=item.item_id,
            job_id=item.job_id,
            chunk_index=0,
            error_message="voice error",
        )
    )
    for chunk in chunks[1:]:
        event_bus.publish(
            AudioChunkGeneratedEvent(
                aggregate_id=item.item_id,
                occurred_at=now,
                job_id=item.job_id,
                chunk_id=chunk.chunk_id,
                chunk_index=chunk.index,
                audio_path=f"/tmp/{chunk.chunk_id}.mp3",
                duration=1.0,
            )
        )

    assert spy.merged == [item.item_id]


def test_reset_item_tracking(coordinator, item, chunks):
    coordinator.register_item_chunks(item.item_id, [c.chunk_id for c in chunks])

    coordinator.reset_item_tracking(item.item_id)

    assert not coordinator.is_tracking(item.item_id)
    assert coordinator.get_chunk_status(item.item_id)["total"] == 0


def test_concurrent_outcomes_decide_exactly_once(item_repository, chunk_repository, spy):
    item = create_item("job-1", status=ItemStatus.GENERATING_AUDIO)
    item_repository.save(item)
    chunk_ids = [f"c{n}" for n in range(50)]
    coordinator = _coordinator(item_repository, chunk_repository, spy)
    coordinator.register_item_chunks(item.item_id, chunk_ids)

    threads = [
        threading.Thread(target=coordinator.handle_chunk_succeeded, args=(item.item_id, chunk_id))
        for chunk_id in chunk_ids
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert spy.merged == [item.item_id]
    assert spy.failed == []
