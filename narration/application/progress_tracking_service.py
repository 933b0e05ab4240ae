"""
Progress Tracking Service

Keeps the latest progress of jobs, items and chunks in memory, with an
estimated completion time, and falls back to the repositories for
entities that have not reported yet.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from threading import Lock
from typing import Any, Callable, Dict, List, Optional

from narration.domain.content_processing import (
    AudioChunkRepository,
    ChunkStatus,
    ContentItemRepository,
)
from narration.domain.events import (
    ChunkProgressUpdatedEvent,
    ItemProgressUpdatedEvent,
    JobProgressUpdatedEvent,
)
from narration.domain.job_management import JobRepository

from .event_bus import EventBus

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE_MINUTES = 60

CHUNK_PROGRESS = {
    ChunkStatus.PENDING: 0.0,
    ChunkStatus.PROCESSING: 0.5,
    ChunkStatus.COMPLETED: 1.0,
    ChunkStatus.FAILED: 0.0,
}


@dataclass
class ProgressSnapshot:
    """
    Point-in-time progress of one job, item or chunk.

    Attributes:
        entity_id: ID of the tracked entity
        progress: Fraction done, between 0 and 1
        status: Status value of the entity when observed
        parent_id: Owning job (for items) or item (for chunks)
    """
    entity_id: str
    progress: float
    status: str
    started_at: Optional[datetime]
    last_updated: datetime
    estimated_completion: Optional[datetime] = None
    parent_id: Optional[str] = None

    @property
    def percentage(self) -> int:
        return round(self.progress * 100)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "progress": self.progress,
            "percentage": self.percentage,
            "status": self.status,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "last_updated": self.last_updated.isoformat(),
            "estimated_completion": (
                self.estimated_completion.isoformat() if self.estimated_completion else None
            ),
            "parent_id": self.parent_id,
        }


def estimate_completion(
    started_at: Optional[datetime], progress: float, now: datetime
) -> Optional[datetime]:
    """Linear extrapolation of the time elapsed so far."""
    if started_at is None or progress <= 0:
        return None
    if progress >= 1:
        return now
    elapsed = (now - started_at).total_seconds()
    remaining = elapsed / progress - elapsed
    return now + timedelta(seconds=max(remaining, 0))


class ProgressTrackingService:
    """
    In-memory progress store fed by progress events.

    Thread-safe. Snapshots are kept until ``reset_tracking`` or
    ``cleanup_old_tracking`` removes them.
    """

    def __init__(
        self,
        job_repository: JobRepository,
        item_repository: ContentItemRepository,
        chunk_repository: AudioChunkRepository,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.job_repository = job_repository
        self.item_repository = item_repository
        self.chunk_repository = chunk_repository
        self._clock = clock
        self._jobs: Dict[str, ProgressSnapshot] = {}
        self._items: Dict[str, ProgressSnapshot] = {}
        self._chunks: Dict[str, ProgressSnapshot] = {}
        self._lock = Lock()

    def register_event_handlers(self, event_bus: EventBus) -> None:
        event_bus.subscribe(JobProgressUpdatedEvent, self.on_job_progress)
        event_bus.subscribe(ItemProgressUpdatedEvent, self.on_item_progress)
        event_bus.subscribe(ChunkProgressUpdatedEvent, self.on_chunk_progress)

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def on_job_progress(self, event: JobProgressUpdatedEvent) -> None:
        total = event.total_items
        progress = (event.completed_items + event.failed_items) / total if total else 0.0
        job = self.job_repository.find_by_id(event.aggregate_id)
        status = job.status.value if job else "unknown"
        self._update(self._jobs, event.aggregate_id, progress, status, event.occurred_at)

    def on_item_progress(self, event: ItemProgressUpdatedEvent) -> None:
        self._update(
            self._items,
            event.aggregate_id,
            event.percentage / 100,
            event.status,
            event.occurred_at,
            parent_id=event.job_id,
        )

    def on_chunk_progress(self, event: ChunkProgressUpdatedEvent) -> None:
        self._update(
            self._chunks,
            event.aggregate_id,
            event.progress,
            event.status,
            event.occurred_at,
            parent_id=event.item_id,
        )

    def _update(
        self,
        store: Dict[str, ProgressSnapshot],
        entity_id: str,
        progress: float,
        status: str,
        occurred_at: datetime,
        parent_id: Optional[str] = None,
    ) -> None:
        progress = min(max(progress, 0.0), 1.0)
        now = self._clock()
        with self._lock:
            previous = store.get(entity_id)
            started_at = previous.started_at if previous and previous.started_at else occurred_at
            store[entity_id] = ProgressSnapshot(
                entity_id=entity_id,
                progress=progress,
                status=status,
                started_at=started_at,
                last_updated=now,
                estimated_completion=estimate_completion(started_at, progress, now),
                parent_id=parent_id or (previous.parent_id if previous else None),
            )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_job_progress(self, job_id: str) -> Optional[ProgressSnapshot]:
        with self._lock:
            snapshot = self._jobs.get(job_id)
        if snapshot:
            return snapshot

        job = self.job_repository.find_by_id(job_id)
        if job is None:
            return None
        progress = job.processed_items / job.total_items if job.total_items else 0.0
        now = self._clock()
        return ProgressSnapshot(
            entity_id=job_id,
            progress=progress,
            status=job.status.value,
            started_at=job.started_at,
            last_updated=job.updated_at,
            estimated_completion=estimate_completion(job.started_at, progress, now),
        )

    def get_item_progress(self, item_id: str) -> Optional[ProgressSnapshot]:
        with self._lock:
            snapshot = self._items.get(item_id)
        if snapshot:
            return snapshot

        item = self.item_repository.find_by_id(item_id)
        if item is None:
            return None
        progress = item.progress_percentage / 100
        return ProgressSnapshot(
            entity_id=item_id,
            progress=progress,
            status=item.status.value,
            started_at=item.processing_started_at,
            last_updated=item.updated_at,
            estimated_completion=estimate_completion(
                item.processing_started_at, progress, self._clock()
            ),
            parent_id=item.job_id,
        )

    def get_chunk_progress(self, chunk_id: str) -> Optional[ProgressSnapshot]:
        with self._lock:
            snapshot = self._chunks.get(chunk_id)
        if snapshot:
            return snapshot

        chunk = self.chunk_repository.find_by_id(chunk_id)
        if chunk is None:
            return None
        return ProgressSnapshot(
            entity_id=chunk_id,
            progress=CHUNK_PROGRESS[chunk.status],
            status=chunk.status.value,
            started_at=None,
            last_updated=chunk.updated_at,
            parent_id=chunk.item_id,
        )

    def get_pipeline_progress(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Job snapshot together with a snapshot of each of its items."""
        job_snapshot = self.get_job_progress(job_id)
        if job_snapshot is None:
            return None

        items: List[Dict[str, Any]] = []
        for item in self.item_repository.find_by_job_id(job_id):
            snapshot = self.get_item_progress(item.item_id)
            if snapshot:
                items.append(snapshot.to_dict())
        return {"job": job_snapshot.to_dict(), "items": items}

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def reset_tracking(self, job_id: Optional[str] = None) -> None:
        """Drop the snapshots of one job and its items, or of everything."""
        with self._lock:
            if job_id is None:
                self._jobs.clear()
                self._items.clear()
                self._chunks.clear()
                return

            self._jobs.pop(job_id, None)
            item_ids = {i for i, s in self._items.items() if s.parent_id == job_id}
            for item_id in item_ids:
                del self._items[item_id]
            for chunk_id in [c for c, s in self._chunks.items() if s.parent_id in item_ids]:
                del self._chunks[chunk_id]

    def cleanup_old_tracking(self, max_age_minutes: int = DEFAULT_MAX_AGE_MINUTES) -> int:
        """
        Remove snapshots not updated within ``max_age_minutes``.

        Returns:
            Number of snapshots removed
        """
        cutoff = self._clock() - timedelta(minutes=max_age_minutes)
        removed = 0
        with self._lock:
            for store in (self._jobs, self._items, self._chunks):
                stale = [k for k, s in store.items() if s.last_updated < cutoff]
                for key in stale:
                    del store[key]
                removed += len(stale)
        if removed:
            logger.info(f"Removed {removed} stale progress snapshots")
        return removed

    def tracked_count(self) -> int:
        with self._lock:
            return len(self._jobs) + len(self._items) + len(self._chunks)
