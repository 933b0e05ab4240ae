"""
Integration tests running whole jobs over Redis persistence with the
Redis-held keyed lock, as several worker processes would.
"""

import pytest

from narration.application.pipeline import PipelineSettings, build_pipeline
from narration.domain.content_processing.value_objects import ItemStatus
from narration.domain.job_management.value_objects import JobStatus
from narration.infrastructure.redis_keyed_lock import RedisKeyedLock
from tests.fixtures import assert_counters_consistent, drain, start_job


@pytest.fixture
def shared_pipeline(repositories, queues, external_services, redis_repo):
    return build_pipeline(
        repositories,
        queues,
        services=external_services,
        settings=PipelineSettings(shared_state=True),
        locks=RedisKeyedLock(redis_repo),
    )


def test_job_completes_with_shared_state(shared_pipeline, queues, job_repository, item_repository):
    job = start_job(shared_pipeline, rows=3)

    drain(shared_pipeline, queues)

    stored = job_repository.find_by_id(job.job_id)
    assert stored.status == JobStatus.COMPLETED
    assert_counters_consistent(stored, item_repository)
    assert all(i.status == ItemStatus.COMPLETED for i in item_repository.find_by_job_id(job.job_id))


def test_second_worker_sees_persisted_progress(
    shared_pipeline, repositories, queues, external_services, redis_repo, job_repository
):
    """A fresh coordinator, as in another process, finishes what the first started."""
    job = start_job(shared_pipeline, rows=1)
    shared_pipeline.item_processing.process_item(queues.items.pop().item_id)
    first_chunk = queues.chunks.pop()
    shared_pipeline.item_processing.generate_chunk_audio(first_chunk.chunk_id)

    other_worker = build_pipeline(
        repositories,
        queues,
        services=external_services,
        settings=PipelineSettings(shared_state=True),
        locks=RedisKeyedLock(redis_repo),
    )
    drain(other_worker, queues)

    assert job_repository.find_by_id(job.job_id).status == JobStatus.COMPLETED


def test_delete_job_cascades_in_redis(pipeline, queues, redis_client, job_repository):
    job = start_job(pipeline, rows=2)
    drain(pipeline, queues)

    assert pipeline.job_service.delete_job(job.job_id)

    assert job_repository.find_by_id(job.job_id) is None
    assert redis_client.keys("narration-test:item:*") == []
    assert redis_client.keys("narration-test:chunk:*") == []
