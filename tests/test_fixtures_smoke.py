"""
Smoke test for fixtures to verify they work correctly.
"""
import pytest

from narration.domain.content_processing.value_objects import ChunkStatus, ItemStatus
from narration.domain.job_management.value_objects import JobStatus
from narration.domain.queues import ItemWorkDescriptor
from tests.fixtures import (
    EventRecorder,
    OneChunkPerSentence,
    RecordingItemQueue,
    create_chunks,
    create_item,
    create_job,
    create_source_row,
)


class TestDomainEntityFactories:
    """Test domain entity factory functions."""

    @pytest.mark.parametrize(
        "status", [JobStatus.DRAFT, JobStatus.READY, JobStatus.PROCESSING, JobStatus.PAUSED, JobStatus.CANCELLED]
    )
    def test_create_job(self, status):
        """Test Job factory reaches each requested status."""
        job = create_job(total_items=3, status=status)
        assert job.status == status
        assert job.total_items == 3

    @pytest.mark.parametrize("status", list(ItemStatus))
    def test_create_item(self, status):
        """Test ContentItem factory reaches each requested status."""
        item = create_item("job-1", 4, status=status)
        assert item.status == status
        assert item.row_index == 4

    def test_create_chunks(self):
        """Test AudioChunk factory numbers chunks in order."""
        chunks = create_chunks("item-1", count=3, status=ChunkStatus.COMPLETED)
        assert [c.index for c in chunks] == [0, 1, 2]
        assert all(c.audio_path for c in chunks)

    def test_create_source_row(self):
        row = create_source_row(2, category="places")
        assert row.title == "Row 2"
        assert row.category == "places"


class TestFakes:
    def test_chunker_splits_on_sentences(self):
        chunks = OneChunkPerSentence().chunk("One. Two. Three.", 100)
        assert [c.text for c in chunks] == ["One.", "Two.", "Three."]

    def test_recording_queue_is_fifo(self):
        queue = RecordingItemQueue()
        queue.enqueue(ItemWorkDescriptor("a", "job-1"))
        queue.enqueue(ItemWorkDescriptor("b", "job-1"))

        assert queue.pop().item_id == "a"
        assert len(queue.enqueued) == 2

    def test_event_recorder(self, event_bus):
        recorder = EventRecorder()
        event_bus.subscribe_all(recorder)
        job = create_job(status=JobStatus.READY)

        event_bus.publish(job.start())

        assert recorder.types() == ["job.started"]
