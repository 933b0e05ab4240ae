"""
Redis Keyed Lock

Cross-process replacement for the in-process KeyedLock, used when
pipeline workers run in several Celery processes.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator

from narration.application.keyed_lock import KeyedLock

from .redis_repository import RedisRepository

logger = logging.getLogger(__name__)


class RedisKeyedLock(KeyedLock):
    """
    Per-key lock held in Redis.

    Re-entrant within one thread: nested ``hold`` calls for a key already
    held by the current thread do not touch Redis again.
    """

    def __init__(
        self,
        redis_repository: RedisRepository,
        namespace: str = "pipeline",
        timeout: int = 30,
        blocking_timeout: int = 10,
    ):
        super().__init__()
        self.redis_repo = redis_repository
        self.namespace = namespace
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout
        self._held = threading.local()

    def _depths(self):
        if not hasattr(self._held, "depths"):
            self._held.depths = {}
        return self._held.depths

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        depths = self._depths()
        if depths.get(key):
            depths[key] += 1
            try:
                yield
            finally:
                depths[key] -= 1
            return

        with super().hold(key):
            with self.redis_repo.distributed_lock(
                f"{self.namespace}:{key}",
                timeout=self.timeout,
                blocking_timeout=self.blocking_timeout,
            ):
                depths[key] = 1
                try:
                    yield
                finally:
                    depths.pop(key, None)
