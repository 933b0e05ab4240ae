import os

import pytest
import redis

from narration.application.pipeline import PipelineRepositories
from narration.infrastructure.redis_audio_chunk_repository import RedisAudioChunkRepository
from narration.infrastructure.redis_content_item_repository import RedisContentItemRepository
from narration.infrastructure.redis_error_log_repository import RedisErrorLogRepository
from narration.infrastructure.redis_job_repository import RedisJobRepository
from narration.infrastructure.redis_repository import RedisRepository


@pytest.fixture
def redis_client():
    """
    Yields a clean Redis client for integration testing.
    Connects to the Redis instance named by REDIS_HOST/REDIS_PORT.
    """
    host = os.getenv("REDIS_HOST", "localhost")
    port = int(os.getenv("REDIS_PORT", 6379))
    db = int(os.getenv("REDIS_TEST_DB", 15))

    client = redis.Redis(host=host, port=port, db=db, decode_responses=False)

    try:
        client.ping()
    except redis.ConnectionError:
        pytest.skip("Redis service not available. Skipping integration tests.")

    # Clean before test
    client.flushdb()

    yield client

    # Clean after test
    client.flushdb()
    client.close()


@pytest.fixture
def redis_repo(redis_client):
    return RedisRepository(redis_client, "narration-test")


@pytest.fixture
def repositories(redis_repo):
    """Redis-backed repositories; overrides the in-memory set."""
    return PipelineRepositories(
        jobs=RedisJobRepository(redis_repo, ttl=600),
        items=RedisContentItemRepository(redis_repo, ttl=600),
        chunks=RedisAudioChunkRepository(redis_repo, ttl=600),
        error_logs=RedisErrorLogRepository(redis_repo, ttl=600),
    )


@pytest.fixture
def job_repository(repositories):
    return repositories.jobs


@pytest.fixture
def item_repository(repositories):
    return repositories.items


@pytest.fixture
def chunk_repository(repositories):
    return repositories.chunks


@pytest.fixture
def error_log_repository(repositories):
    return repositories.error_logs
