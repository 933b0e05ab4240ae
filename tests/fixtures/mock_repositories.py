"""
Mock Repository Implementations

In-memory implementations of the repository interfaces for unit testing.
Entities are copied on the way in and out, like a real store would
serialize them, and every call is recorded for assertions.
"""

import copy
from typing import Any, Dict, List, Optional

from narration.domain.content_processing.entities import AudioChunk, ContentItem
from narration.domain.content_processing.repositories import (
    AudioChunkRepository,
    ContentItemRepository,
)
from narration.domain.content_processing.value_objects import ItemStatus
from narration.domain.error_tracking.entities import ErrorLog
from narration.domain.error_tracking.repositories import ErrorLogRepository
from narration.domain.job_management.entities import Job
from narration.domain.job_management.repositories import JobRepository
from narration.domain.job_management.value_objects import JobStatus


class _CallHistory:
    def __init__(self):
        self._call_history: List[Dict[str, Any]] = []

    def _record(self, method: str, **args) -> None:
        self._call_history.append({"method": method, "args": args})

    def get_call_history(self) -> List[Dict[str, Any]]:
        return list(self._call_history)

    def calls_to(self, method: str) -> List[Dict[str, Any]]:
        return [call for call in self._call_history if call["method"] == method]

    def clear_history(self) -> None:
        self._call_history.clear()


class InMemoryJobRepository(_CallHistory, JobRepository):
    """In-memory JobRepository."""

    def __init__(self):
        super().__init__()
        self._storage: Dict[str, Job] = {}

    def save(self, job: Job) -> bool:
        self._record("save", job_id=job.job_id, status=job.status)
        self._storage[job.job_id] = copy.deepcopy(job)
        return True

    def find_by_id(self, job_id: str) -> Optional[Job]:
        self._record("find_by_id", job_id=job_id)
        job = self._storage.get(job_id)
        return copy.deepcopy(job) if job else None

    def delete(self, job_id: str) -> bool:
        self._record("delete", job_id=job_id)
        return self._storage.pop(job_id, None) is not None

    def exists(self, job_id: str) -> bool:
        return job_id in self._storage

    def count(self) -> int:
        return len(self._storage)

    def find_by_status(self, status: JobStatus, limit: int = 100) -> List[Job]:
        jobs = [copy.deepcopy(j) for j in self._storage.values() if j.status == status]
        jobs.sort(key=lambda job: job.created_at)
        return jobs[:limit]


class InMemoryContentItemRepository(_CallHistory, ContentItemRepository):
    """In-memory ContentItemRepository."""

    def __init__(self):
        super().__init__()
        self._storage: Dict[str, ContentItem] = {}

    def save(self, item: ContentItem) -> bool:
        self._record("save", item_id=item.item_id, status=item.status)
        self._storage[item.item_id] = copy.deepcopy(item)
        return True

    def find_by_id(self, item_id: str) -> Optional[ContentItem]:
        item = self._storage.get(item_id)
        return copy.deepcopy(item) if item else None

    def find_by_job_id(self, job_id: str) -> List[ContentItem]:
        items = [copy.deepcopy(i) for i in self._storage.values() if i.job_id == job_id]
        items.sort(key=lambda item: item.row_index)
        return items

    def find_by_job_id_and_status(self, job_id: str, status: ItemStatus) -> List[ContentItem]:
        return [item for item in self.find_by_job_id(job_id) if item.status == status]

    def delete(self, item_id: str) -> bool:
        self._record("delete", item_id=item_id)
        return self._storage.pop(item_id, None) is not None

    def delete_by_job_id(self, job_id: str) -> int:
        self._record("delete_by_job_id", job_id=job_id)
        item_ids = [i.item_id for i in self._storage.values() if i.job_id == job_id]
        for item_id in item_ids:
            del self._storage[item_id]
        return len(item_ids)

    def exists(self, item_id: str) -> bool:
        return item_id in self._storage

    def count(self, job_id: Optional[str] = None) -> int:
        if job_id is None:
            return len(self._storage)
        return sum(1 for i in self._storage.values() if i.job_id == job_id)


class InMemoryAudioChunkRepository(_CallHistory, AudioChunkRepository):
    """In-memory AudioChunkRepository."""

    def __init__(self):
        super().__init__()
        self._storage: Dict[str, AudioChunk] = {}

    def save(self, chunk: AudioChunk) -> bool:
        self._record("save", chunk_id=chunk.chunk_id, status=chunk.status)
        self._storage[chunk.chunk_id] = copy.deepcopy(chunk)
        return True

    def find_by_id(self, chunk_id: str) -> Optional[AudioChunk]:
        chunk = self._storage.get(chunk_id)
        return copy.deepcopy(chunk) if chunk else None

    def find_by_item_id(self, item_id: str) -> List[AudioChunk]:
        chunks = [copy.deepcopy(c) for c in self._storage.values() if c.item_id == item_id]
        chunks.sort(key=lambda chunk: chunk.index)
        return chunks

    def delete(self, chunk_id: str) -> bool:
        self._record("delete", chunk_id=chunk_id)
        return self._storage.pop(chunk_id, None) is not None

    def delete_by_item_id(self, item_id: str) -> int:
        self._record("delete_by_item_id", item_id=item_id)
        chunk_ids = [c.chunk_id for c in self._storage.values() if c.item_id == item_id]
        for chunk_id in chunk_ids:
            del self._storage[chunk_id]
        return len(chunk_ids)

    def exists(self, chunk_id: str) -> bool:
        return chunk_id in self._storage

    def count(self, item_id: Optional[str] = None) -> int:
        if item_id is None:
            return len(self._storage)
        return sum(1 for c in self._storage.values() if c.item_id == item_id)


class InMemoryErrorLogRepository(_CallHistory, ErrorLogRepository):
    """In-memory ErrorLogRepository, newest first like the Redis one."""

    def __init__(self):
        super().__init__()
        self._storage: Dict[str, ErrorLog] = {}

    def save(self, error_log: ErrorLog) -> bool:
        self._record("save", error_id=error_log.error_id)
        self._storage[error_log.error_id] = copy.deepcopy(error_log)
        return True

    def find_by_id(self, error_id: str) -> Optional[ErrorLog]:
        error_log = self._storage.get(error_id)
        return copy.deepcopy(error_log) if error_log else None

    def _sorted(self, logs: List[ErrorLog]) -> List[ErrorLog]:
        return sorted((copy.deepcopy(log) for log in logs), key=lambda log: log.created_at, reverse=True)

    def find_by_job_id(self, job_id: str) -> List[ErrorLog]:
        return self._sorted([log for log in self._storage.values() if log.job_id == job_id])

    def find_by_item_id(self, item_id: str) -> List[ErrorLog]:
        return self._sorted([log for log in self._storage.values() if log.item_id == item_id])

    def delete(self, error_id: str) -> bool:
        self._record("delete", error_id=error_id)
        return self._storage.pop(error_id, None) is not None

    def exists(self, error_id: str) -> bool:
        return error_id in self._storage

    def count(self, job_id: Optional[str] = None) -> int:
        if job_id is None:
            return len(self._storage)
        return sum(1 for log in self._storage.values() if log.job_id == job_id)

    def all(self) -> List[ErrorLog]:
        return self._sorted(list(self._storage.values()))
