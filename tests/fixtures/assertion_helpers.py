"""
Custom Assertion Helpers

Provides domain-specific assertion functions for cleaner test code.
"""

from typing import Any, Dict, Iterable, List, Type

from narration.domain.content_processing.repositories import ContentItemRepository
from narration.domain.content_processing.value_objects import ItemStatus
from narration.domain.events import DomainEvent
from narration.domain.job_management.entities import Job
from narration.domain.job_management.value_objects import JobStatus


def assert_job_status(job: Job, expected_status: JobStatus) -> None:
    assert job.status == expected_status, (
        f"Expected job {job.job_id} to be {expected_status.value}, got {job.status.value}"
    )


def assert_counters_consistent(job: Job, item_repository: ContentItemRepository) -> None:
    """
    Assert the job counters match its items.

    Completed items count as completed; FAILED items not waiting for a
    retry and SKIPPED items count as failed.
    """
    items = item_repository.find_by_job_id(job.job_id)
    completed = sum(1 for i in items if i.status == ItemStatus.COMPLETED)
    failed = sum(
        1
        for i in items
        if i.status == ItemStatus.SKIPPED
        or (i.status == ItemStatus.FAILED and not i.awaiting_retry)
    )
    assert job.completed_items == completed, (
        f"completed_items={job.completed_items} but {completed} items are completed"
    )
    assert job.failed_items == failed, (
        f"failed_items={job.failed_items} but {failed} items failed for good"
    )
    assert job.completed_items + job.failed_items <= job.total_items


def assert_events_in_order(events: Iterable[DomainEvent], expected: List[Type[DomainEvent]]) -> None:
    """Assert ``expected`` event classes appear in ``events`` in that order (gaps allowed)."""
    remaining = list(expected)
    for event in events:
        if remaining and isinstance(event, remaining[0]):
            remaining.pop(0)
    assert not remaining, f"Events not seen in order: {[cls.__name__ for cls in remaining]}"


def assert_dict_contains_keys(data: Dict[str, Any], keys: Iterable[str]) -> None:
    missing = [key for key in keys if key not in data]
    assert not missing, f"Missing keys: {missing}"
