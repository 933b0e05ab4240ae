"""
Content Processing Repositories

Repository interfaces for content items and audio chunks.
Concrete implementations are in the infrastructure layer.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from .entities import AudioChunk, ContentItem
from .value_objects import ItemStatus


class ContentItemRepository(ABC):
    """Abstract repository interface for content item persistence."""

    @abstractmethod
    def save(self, item: ContentItem) -> bool:
        """
        Save or update an item (idempotent upsert by id).

        Returns:
            True if successful, False otherwise
        """
        pass

    @abstractmethod
    def find_by_id(self, item_id: str) -> Optional[ContentItem]:
        pass

    @abstractmethod
    def find_by_job_id(self, job_id: str) -> List[ContentItem]:
        """
        Retrieve all items of a job ordered by row index.

        Args:
            job_id: Owning job identifier

        Returns:
            List of ContentItem instances, empty if none
        """
        pass

    @abstractmethod
    def find_by_job_id_and_status(self, job_id: str, status: ItemStatus) -> List[ContentItem]:
        pass

    @abstractmethod
    def delete(self, item_id: str) -> bool:
        pass

    @abstractmethod
    def delete_by_job_id(self, job_id: str) -> int:
        """
        Delete every item of a job.

        Returns:
            Number of items deleted
        """
        pass

    @abstractmethod
    def exists(self, item_id: str) -> bool:
        pass

    @abstractmethod
    def count(self, job_id: Optional[str] = None) -> int:
        """Count items, optionally restricted to one job."""
        pass


class AudioChunkRepository(ABC):
    """Abstract repository interface for audio chunk persistence."""

    @abstractmethod
    def save(self, chunk: AudioChunk) -> bool:
        pass

    @abstractmethod
    def find_by_id(self, chunk_id: str) -> Optional[AudioChunk]:
        pass

    @abstractmethod
    def find_by_item_id(self, item_id: str) -> List[AudioChunk]:
        """
        Retrieve all chunks of an item ordered by index.

        Args:
            item_id: Owning item identifier

        Returns:
            List of AudioChunk instances, empty if none
        """
        pass

    @abstractmethod
    def delete(self, chunk_id: str) -> bool:
        pass

    @abstractmethod
    def delete_by_item_id(self, item_id: str) -> int:
        """
        Delete every chunk of an item.

        Returns:
            Number of chunks deleted
        """
        pass

    @abstractmethod
    def exists(self, chunk_id: str) -> bool:
        pass

    @abstractmethod
    def count(self, item_id: Optional[str] = None) -> int:
        """Count chunks, optionally restricted to one item."""
        pass
