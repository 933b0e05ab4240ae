"""
Redis Content Item Repository

Items are stored as JSON under ``item:<item_id>``; a set at
``job_items:<job_id>`` indexes the items of each job.
"""

import logging
from typing import List, Optional

from narration.domain.content_processing.entities import ContentItem
from narration.domain.content_processing.repositories import ContentItemRepository
from narration.domain.content_processing.value_objects import ItemStatus

from .redis_job_repository import entity_ttl
from .redis_repository import RedisRepository

logger = logging.getLogger(__name__)


class RedisContentItemRepository(ContentItemRepository):
    """Redis-based implementation of ContentItemRepository."""

    def __init__(self, redis_repository: RedisRepository, ttl: Optional[int] = None):
        self.redis_repo = redis_repository
        self.key_prefix = "item"
        self.index_prefix = "job_items"
        self.ttl = ttl if ttl is not None else entity_ttl()

    def _key(self, item_id: str) -> str:
        return f"{self.key_prefix}:{item_id}"

    def _index_key(self, job_id: str) -> str:
        return f"{self.index_prefix}:{job_id}"

    def _deserialize(self, data: dict) -> Optional[ContentItem]:
        try:
            return ContentItem.from_dict(data)
        except (KeyError, ValueError) as e:
            logger.error(f"Error deserializing item {data.get('item_id')}: {e}")
            return None

    def save(self, item: ContentItem) -> bool:
        if not self.redis_repo.set_json(self._key(item.item_id), item.to_dict(), ttl=self.ttl):
            return False
        return self.redis_repo.add_to_set(
            self._index_key(item.job_id), item.item_id, ttl=self.ttl
        )

    def find_by_id(self, item_id: str) -> Optional[ContentItem]:
        data = self.redis_repo.get_json(self._key(item_id))
        if data is None:
            return None
        return self._deserialize(data)

    def find_by_job_id(self, job_id: str) -> List[ContentItem]:
        item_ids = self.redis_repo.get_set_members(self._index_key(job_id))
        rows = self.redis_repo.get_many_json([self._key(item_id) for item_id in item_ids])
        items = [item for item in map(self._deserialize, rows) if item is not None]
        items.sort(key=lambda item: item.row_index)
        return items

    def find_by_job_id_and_status(self, job_id: str, status: ItemStatus) -> List[ContentItem]:
        return [item for item in self.find_by_job_id(job_id) if item.status == status]

    def delete(self, item_id: str) -> bool:
        item = self.find_by_id(item_id)
        if item is not None:
            self.redis_repo.remove_from_set(self._index_key(item.job_id), item_id)
        return self.redis_repo.delete(self._key(item_id))

    def delete_by_job_id(self, job_id: str) -> int:
        deleted = 0
        for item_id in self.redis_repo.get_set_members(self._index_key(job_id)):
            if self.redis_repo.delete(self._key(item_id)):
                deleted += 1
        self.redis_repo.delete(self._index_key(job_id))
        return deleted

    def exists(self, item_id: str) -> bool:
        return self.redis_repo.exists(self._key(item_id))

    def count(self, job_id: Optional[str] = None) -> int:
        if job_id is not None:
            return len(self.find_by_job_id(job_id))
        return len(self.redis_repo.get_keys_by_pattern(f"{self.key_prefix}:*"))
