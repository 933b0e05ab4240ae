"""
Redis Audio Chunk Repository

Chunks are stored as JSON under ``chunk:<chunk_id>``; a set at
``item_chunks:<item_id>`` indexes the chunks of each item.
"""

import logging
from typing import List, Optional

from narration.domain.content_processing.entities import AudioChunk
from narration.domain.content_processing.repositories import AudioChunkRepository

from .redis_job_repository import entity_ttl
from .redis_repository import RedisRepository

logger = logging.getLogger(__name__)


class RedisAudioChunkRepository(AudioChunkRepository):
    """Redis-based implementation of AudioChunkRepository."""

    def __init__(self, redis_repository: RedisRepository, ttl: Optional[int] = None):
        self.redis_repo = redis_repository
        self.key_prefix = "chunk"
        self.index_prefix = "item_chunks"
        self.ttl = ttl if ttl is not None else entity_ttl()

    def _key(self, chunk_id: str) -> str:
        return f"{self.key_prefix}:{chunk_id}"

    def _index_key(self, item_id: str) -> str:
        return f"{self.index_prefix}:{item_id}"

    def _deserialize(self, data: dict) -> Optional[AudioChunk]:
        try:
            return AudioChunk.from_dict(data)
        except (KeyError, ValueError) as e:
            logger.error(f"Error deserializing chunk {data.get('chunk_id')}: {e}")
            return None

    def save(self, chunk: AudioChunk) -> bool:
        if not self.redis_repo.set_json(self._key(chunk.chunk_id), chunk.to_dict(), ttl=self.ttl):
            return False
        return self.redis_repo.add_to_set(
            self._index_key(chunk.item_id), chunk.chunk_id, ttl=self.ttl
        )

    def find_by_id(self, chunk_id: str) -> Optional[AudioChunk]:
        data = self.redis_repo.get_json(self._key(chunk_id))
        if data is None:
            return None
        return self._deserialize(data)

    def find_by_item_id(self, item_id: str) -> List[AudioChunk]:
        chunk_ids = self.redis_repo.get_set_members(self._index_key(item_id))
        rows = self.redis_repo.get_many_json([self._key(chunk_id) for chunk_id in chunk_ids])
        chunks = [chunk for chunk in map(self._deserialize, rows) if chunk is not None]
        chunks.sort(key=lambda chunk: chunk.index)
        return chunks

    def delete(self, chunk_id: str) -> bool:
        chunk = self.find_by_id(chunk_id)
        if chunk is not None:
            self.redis_repo.remove_from_set(self._index_key(chunk.item_id), chunk_id)
        return self.redis_repo.delete(self._key(chunk_id))

    def delete_by_item_id(self, item_id: str) -> int:
        deleted = 0
        for chunk_id in self.redis_repo.get_set_members(self._index_key(item_id)):
            if self.redis_repo.delete(self._key(chunk_id)):
                deleted += 1
        self.redis_repo.delete(self._index_key(item_id))
        return deleted

    def exists(self, chunk_id: str) -> bool:
        return self.redis_repo.exists(self._key(chunk_id))

    def count(self, item_id: Optional[str] = None) -> int:
        if item_id is not None:
            return len(self.redis_repo.get_set_members(self._index_key(item_id)))
        return len(self.redis_repo.get_keys_by_pattern(f"{self.key_prefix}:*"))
