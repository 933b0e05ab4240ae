"""
Redis Repository Base Class

Provides JSON storage, index sets and distributed locking on top of a
redis-py client. Entity repositories build on these primitives.
"""

import json
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

import redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import LockError

logger = logging.getLogger(__name__)


def _decode(value) -> str:
    return value.decode('utf-8') if isinstance(value, bytes) else value


class RedisRepository:
    """Base Redis repository with atomic operations and distributed locking."""

    def __init__(self, redis_client: redis.Redis, key_prefix: str = ""):
        self.redis = redis_client
        self.key_prefix = key_prefix

    def _make_key(self, key: str) -> str:
        """Create a prefixed key for Redis storage."""
        return f"{self.key_prefix}:{key}" if self.key_prefix else key

    def _strip_key(self, key) -> str:
        key = _decode(key)
        if self.key_prefix:
            return key[len(self.key_prefix) + 1:]
        return key

    # ------------------------------------------------------------------
    # JSON values
    # ------------------------------------------------------------------

    def set_json(self, key: str, data: Dict[str, Any], ttl: Optional[int] = None) -> bool:
        """
        Atomically set JSON data with optional TTL.

        Args:
            key: Redis key
            data: Dictionary to store as JSON
            ttl: Time to live in seconds

        Returns:
            True if successful, False otherwise
        """
        try:
            redis_key = self._make_key(key)
            json_data = json.dumps(data)

            if ttl:
                return bool(self.redis.setex(redis_key, ttl, json_data))
            return bool(self.redis.set(redis_key, json_data))
        except (RedisConnectionError, TypeError) as e:
            logger.error(f"Error setting JSON data for key {key}: {e}")
            return False

    def get_json(self, key: str) -> Optional[Dict[str, Any]]:
        """
        Get JSON data from Redis.

        Returns:
            Dictionary if found and valid JSON, None otherwise
        """
        try:
            data = self.redis.get(self._make_key(key))
            if data is None:
                return None
            return json.loads(_decode(data))
        except (RedisConnectionError, json.JSONDecodeError) as e:
            logger.error(f"Error getting JSON data for key {key}: {e}")
            return None

    def get_many_json(self, keys: List[str]) -> List[Dict[str, Any]]:
        """
        Fetch several JSON values in one round trip using a pipeline.

        Missing keys and undecodable values are left out.
        """
        if not keys:
            return []
        try:
            pipeline = self.redis.pipeline()
            for key in keys:
                pipeline.get(self._make_key(key))
            results = pipeline.execute()
        except RedisConnectionError as e:
            logger.error(f"Error in batch get of {len(keys)} keys: {e}")
            return []

        values = []
        for key, result in zip(keys, results):
            if result is None:
                continue
            try:
                values.append(json.loads(_decode(result)))
            except json.JSONDecodeError as e:
                logger.error(f"Error decoding JSON for key {key}: {e}")
        return values

    def delete(self, key: str) -> bool:
        """
        Delete a key from Redis.

        Returns:
            True if key was deleted, False otherwise
        """
        try:
            return self.redis.delete(self._make_key(key)) > 0
        except RedisConnectionError as e:
            logger.error(f"Error deleting key {key}: {e}")
            return False

    def exists(self, key: str) -> bool:
        try:
            return self.redis.exists(self._make_key(key)) > 0
        except RedisConnectionError as e:
            logger.error(f"Error checking existence of key {key}: {e}")
            return False

    def get_keys_by_pattern(self, pattern: str) -> List[str]:
        """
        Get all keys matching a pattern using SCAN.

        Returns:
            List of matching keys (without prefix)
        """
        try:
            return [
                self._strip_key(key)
                for key in self.redis.scan_iter(match=self._make_key(pattern), count=100)
            ]
        except RedisConnectionError as e:
            logger.error(f"Error getting keys by pattern {pattern}: {e}")
            return []

    # ------------------------------------------------------------------
    # Index sets
    # ------------------------------------------------------------------

    def add_to_set(self, key: str, *members: str, ttl: Optional[int] = None) -> bool:
        try:
            redis_key = self._make_key(key)
            pipeline = self.redis.pipeline()
            pipeline.sadd(redis_key, *members)
            if ttl:
                pipeline.expire(redis_key, ttl)
            pipeline.execute()
            return True
        except RedisConnectionError as e:
            logger.error(f"Error adding to set {key}: {e}")
            return False

    def remove_from_set(self, key: str, *members: str) -> bool:
        try:
            return self.redis.srem(self._make_key(key), *members) > 0
        except RedisConnectionError as e:
            logger.error(f"Error removing from set {key}: {e}")
            return False

    def get_set_members(self, key: str) -> List[str]:
        try:
            return [_decode(m) for m in self.redis.smembers(self._make_key(key))]
        except RedisConnectionError as e:
            logger.error(f"Error reading set {key}: {e}")
            return []

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    @contextmanager
    def distributed_lock(
        self, lock_name: str, timeout: int = 10, blocking_timeout: int = 5
    ) -> Iterator[Any]:
        """
        Distributed lock context manager using Redis.

        Args:
            lock_name: Name of the lock
            timeout: Lock timeout in seconds
            blocking_timeout: How long to wait for lock acquisition

        Raises:
            LockError: If lock cannot be acquired
        """
        lock_key = self._make_key(f"lock:{lock_name}")
        lock = self.redis.lock(lock_key, timeout=timeout, blocking_timeout=blocking_timeout)

        if not lock.acquire(blocking=True, blocking_timeout=blocking_timeout):
            raise LockError(f"Could not acquire lock: {lock_name}")
        try:
            yield lock
        finally:
            try:
                lock.release()
            except LockError:
                # expired while held
                logger.warning(f"Lock {lock_name} expired before release")


class RedisConnectionManager:
    """Manages Redis connection with connection pooling."""

    def __init__(self, host: str = 'localhost', port: int = 6379, db: int = 0,
                 password: Optional[str] = None, max_connections: int = 20):
        self.connection_pool = redis.ConnectionPool(
            host=host,
            port=port,
            db=db,
            password=password,
            max_connections=max_connections,
            retry_on_timeout=True,
            socket_keepalive=True,
        )
        self._client = None

    @classmethod
    def from_url(cls, url: str, max_connections: int = 20) -> "RedisConnectionManager":
        manager = cls.__new__(cls)
        manager.connection_pool = redis.ConnectionPool.from_url(
            url, max_connections=max_connections, retry_on_timeout=True
        )
        manager._client = None
        return manager

    @property
    def client(self) -> redis.Redis:
        """Get Redis client instance with connection pooling."""
        if self._client is None:
            self._client = redis.Redis(connection_pool=self.connection_pool)
        return self._client

    def health_check(self) -> bool:
        """Check if Redis connection is healthy."""
        try:
            return bool(self.client.ping())
        except RedisConnectionError:
            return False

    def close(self):
        """Close the connection pool."""
        if self.connection_pool:
            self.connection_pool.disconnect()
