"""
Redis Error Log Repository

Error logs are stored under ``error:<error_id>`` with per-job and per-item
index sets so a job's failures can be listed without scanning.
"""

import logging
from typing import List, Optional

from narration.domain.error_tracking.entities import ErrorLog
from narration.domain.error_tracking.repositories import ErrorLogRepository

from .redis_job_repository import entity_ttl
from .redis_repository import RedisRepository

logger = logging.getLogger(__name__)


class RedisErrorLogRepository(ErrorLogRepository):
    """Redis-based implementation of ErrorLogRepository."""

    def __init__(self, redis_repository: RedisRepository, ttl: Optional[int] = None):
        self.redis_repo = redis_repository
        self.key_prefix = "error"
        self.ttl = ttl if ttl is not None else entity_ttl()

    def _key(self, error_id: str) -> str:
        return f"{self.key_prefix}:{error_id}"

    @staticmethod
    def _job_index(job_id: str) -> str:
        return f"job_errors:{job_id}"

    @staticmethod
    def _item_index(item_id: str) -> str:
        return f"item_errors:{item_id}"

    def _deserialize(self, data: dict) -> Optional[ErrorLog]:
        try:
            return ErrorLog.from_dict(data)
        except (KeyError, ValueError) as e:
            logger.error(f"Error deserializing error log {data.get('error_id')}: {e}")
            return None

    def _load_many(self, error_ids: List[str]) -> List[ErrorLog]:
        rows = self.redis_repo.get_many_json([self._key(error_id) for error_id in error_ids])
        logs = [log for log in map(self._deserialize, rows) if log is not None]
        logs.sort(key=lambda log: log.created_at, reverse=True)
        return logs

    def save(self, error_log: ErrorLog) -> bool:
        if not self.redis_repo.set_json(
            self._key(error_log.error_id), error_log.to_dict(), ttl=self.ttl
        ):
            return False
        if error_log.job_id:
            self.redis_repo.add_to_set(
                self._job_index(error_log.job_id), error_log.error_id, ttl=self.ttl
            )
        if error_log.item_id:
            self.redis_repo.add_to_set(
                self._item_index(error_log.item_id), error_log.error_id, ttl=self.ttl
            )
        return True

    def find_by_id(self, error_id: str) -> Optional[ErrorLog]:
        data = self.redis_repo.get_json(self._key(error_id))
        if data is None:
            return None
        return self._deserialize(data)

    def find_by_job_id(self, job_id: str) -> List[ErrorLog]:
        return self._load_many(self.redis_repo.get_set_members(self._job_index(job_id)))

    def find_by_item_id(self, item_id: str) -> List[ErrorLog]:
        return self._load_many(self.redis_repo.get_set_members(self._item_index(item_id)))

    def delete(self, error_id: str) -> bool:
        error_log = self.find_by_id(error_id)
        if error_log is not None:
            if error_log.job_id:
                self.redis_repo.remove_from_set(self._job_index(error_log.job_id), error_id)
            if error_log.item_id:
                self.redis_repo.remove_from_set(self._item_index(error_log.item_id), error_id)
        return self.redis_repo.delete(self._key(error_id))

    def exists(self, error_id: str) -> bool:
        return self.redis_repo.exists(self._key(error_id))

    def count(self, job_id: Optional[str] = None) -> int:
        if job_id is not None:
            return len(self.redis_repo.get_set_members(self._job_index(job_id)))
        return len(self.redis_repo.get_keys_by_pattern(f"{self.key_prefix}:*"))
