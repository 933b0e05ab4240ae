"""
Infrastructure Layer

Redis persistence, Celery queue adapters, file storage and event handlers.
"""

from .celery_queues import CeleryChunkQueue, CeleryItemQueue, CeleryRetryQueue
from .local_audio_storage import LocalAudioUploadService
from .redis_audio_chunk_repository import RedisAudioChunkRepository
from .redis_content_item_repository import RedisContentItemRepository
from .redis_error_log_repository import RedisErrorLogRepository
from .redis_job_repository import RedisJobRepository
from .redis_keyed_lock import RedisKeyedLock
from .redis_repository import RedisConnectionManager, RedisRepository
from .sentence_text_chunker import SentenceTextChunker

__all__ = [
    "CeleryChunkQueue",
    "CeleryItemQueue",
    "CeleryRetryQueue",
    "LocalAudioUploadService",
    "RedisAudioChunkRepository",
    "RedisContentItemRepository",
    "RedisErrorLogRepository",
    "RedisJobRepository",
    "RedisKeyedLock",
    "RedisConnectionManager",
    "RedisRepository",
    "SentenceTextChunker",
]
