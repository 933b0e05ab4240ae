"""
Unit tests for RedisKeyedLock over a mocked Redis client.
"""

from unittest.mock import MagicMock

import pytest
from redis.exceptions import LockError

from narration.infrastructure.redis_keyed_lock import RedisKeyedLock
from narration.infrastructure.redis_repository import RedisRepository


@pytest.fixture
def redis_client():
    client = MagicMock()
    client.lock.return_value.acquire.return_value = True
    return client


@pytest.fixture
def keyed_lock(redis_client):
    return RedisKeyedLock(RedisRepository(redis_client, "narration"), timeout=5, blocking_timeout=2)


def test_hold_takes_and_releases_redis_lock(keyed_lock, redis_client):
    with keyed_lock.hold("job-1"):
        redis_client.lock.assert_called_once_with(
            "narration:lock:pipeline:job-1", timeout=5, blocking_timeout=2
        )

    redis_client.lock.return_value.release.assert_called_once()


def test_nested_hold_is_reentrant(keyed_lock, redis_client):
    with keyed_lock.hold("job-1"):
        with keyed_lock.hold("job-1"):
            pass
        assert redis_client.lock.call_count == 1

    with keyed_lock.hold("job-1"):
        pass

    assert redis_client.lock.call_count == 2


def test_different_keys_take_different_locks(keyed_lock, redis_client):
    with keyed_lock.hold("job-1"):
        with keyed_lock.hold("item-1"):
            pass

    names = [c[0][0] for c in redis_client.lock.call_args_list]
    assert names == ["narration:lock:pipeline:job-1", "narration:lock:pipeline:item-1"]


def test_unavailable_lock_raises(keyed_lock, redis_client):
    redis_client.lock.return_value.acquire.return_value = False

    with pytest.raises(LockError):
        with keyed_lock.hold("job-1"):
            pass

    redis_client.lock.return_value.acquire.return_value = True
    with keyed_lock.hold("job-1"):
        pass
    assert redis_client.lock.call_count == 2
