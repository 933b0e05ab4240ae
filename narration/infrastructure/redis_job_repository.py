"""
Redis Job Repository Implementation

Concrete Redis-based implementation of the JobRepository interface.
"""

import logging
import os
from typing import List, Optional

from narration.domain.job_management.entities import Job
from narration.domain.job_management.repositories import JobRepository
from narration.domain.job_management.value_objects import JobStatus

from .redis_repository import RedisRepository

logger = logging.getLogger(__name__)

DEFAULT_ENTITY_TTL_SECONDS = 86400


def entity_ttl() -> int:
    """TTL applied to every persisted pipeline entity and index."""
    return int(os.getenv("ENTITY_TTL_SECONDS", DEFAULT_ENTITY_TTL_SECONDS))


class RedisJobRepository(JobRepository):
    """
    Redis-based implementation of JobRepository.

    Jobs are stored as JSON under ``job:<job_id>`` and expire after
    ``ENTITY_TTL_SECONDS``.
    """

    def __init__(self, redis_repository: RedisRepository, ttl: Optional[int] = None):
        """
        Initialize with Redis repository.

        Args:
            redis_repository: RedisRepository instance from infrastructure layer
            ttl: Override for the entity TTL in seconds
        """
        self.redis_repo = redis_repository
        self.key_prefix = "job"
        self.ttl = ttl if ttl is not None else entity_ttl()

    def _key(self, job_id: str) -> str:
        return f"{self.key_prefix}:{job_id}"

    def _deserialize(self, data: dict) -> Optional[Job]:
        try:
            return Job.from_dict(data)
        except (KeyError, ValueError) as e:
            logger.error(f"Error deserializing job {data.get('job_id')}: {e}")
            return None

    def save(self, job: Job) -> bool:
        """Save or update a job in Redis."""
        return self.redis_repo.set_json(self._key(job.job_id), job.to_dict(), ttl=self.ttl)

    def find_by_id(self, job_id: str) -> Optional[Job]:
        data = self.redis_repo.get_json(self._key(job_id))
        if data is None:
            return None
        return self._deserialize(data)

    def get_many(self, job_ids: List[str]) -> List[Job]:
        """
        Retrieve multiple jobs in a single round trip.

        Jobs that don't exist or fail to deserialize are omitted.
        """
        rows = self.redis_repo.get_many_json([self._key(job_id) for job_id in job_ids])
        jobs = [self._deserialize(row) for row in rows]
        return [job for job in jobs if job is not None]

    def delete(self, job_id: str) -> bool:
        return self.redis_repo.delete(self._key(job_id))

    def exists(self, job_id: str) -> bool:
        return self.redis_repo.exists(self._key(job_id))

    def _all_ids(self) -> List[str]:
        prefix = f"{self.key_prefix}:"
        return [
            key[len(prefix):]
            for key in self.redis_repo.get_keys_by_pattern(f"{prefix}*")
        ]

    def count(self) -> int:
        return len(self._all_ids())

    def find_by_status(self, status: JobStatus, limit: int = 100) -> List[Job]:
        """
        Find jobs by status using SCAN.

        SCAN does not block Redis; results are filtered client-side.
        """
        jobs = [job for job in self.get_many(self._all_ids()) if job.status == status]
        jobs.sort(key=lambda job: job.created_at)
        return jobs[:limit]
