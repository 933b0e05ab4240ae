"""
Test fixtures package.

Provides factory functions, in-memory implementations, fake providers and
assertion helpers for testing.
"""

from .assertion_helpers import (
    assert_counters_consistent,
    assert_dict_contains_keys,
    assert_events_in_order,
    assert_job_status,
)
from .domain_fixtures import (
    create_chunks,
    create_item,
    create_job,
    create_job_config,
    create_source_row,
)
from .fake_services import (
    EventRecorder,
    FailingItemQueue,
    FakeAudioMerger,
    FakeAudioUploader,
    FakeSpeechSynthesizer,
    FakeTextGenerator,
    OneChunkPerSentence,
    RecordingChunkQueue,
    RecordingItemQueue,
    RecordingRetryQueue,
    make_external_services,
)
from .mock_repositories import (
    InMemoryAudioChunkRepository,
    InMemoryContentItemRepository,
    InMemoryErrorLogRepository,
    InMemoryJobRepository,
)
from .workflow_helpers import drain, start_job

__all__ = [
    # Assertion helpers
    "assert_counters_consistent",
    "assert_dict_contains_keys",
    "assert_events_in_order",
    "assert_job_status",
    # Domain fixtures
    "create_chunks",
    "create_item",
    "create_job",
    "create_job_config",
    "create_source_row",
    # Fakes
    "EventRecorder",
    "FailingItemQueue",
    "FakeAudioMerger",
    "FakeAudioUploader",
    "FakeSpeechSynthesizer",
    "FakeTextGenerator",
    "OneChunkPerSentence",
    "RecordingChunkQueue",
    "RecordingItemQueue",
    "RecordingRetryQueue",
    "make_external_services",
    # In-memory repositories
    "InMemoryAudioChunkRepository",
    "InMemoryContentItemRepository",
    "InMemoryErrorLogRepository",
    "InMemoryJobRepository",
    # Workflow helpers
    "drain",
    "start_job",
]
