"""
Celery Queue Adapters

Implement the domain queue ports by sending named Celery tasks. Tasks are
sent by name so the application layer never imports task modules; routing
to the item/chunk/retry queues is configured in ``CeleryConfig``.
"""

import logging

from celery import Celery

from narration.domain.queues import (
    ChunkWorkDescriptor,
    IChunkQueue,
    IItemQueue,
    IRetryQueue,
    ItemWorkDescriptor,
    RetryDescriptor,
)

logger = logging.getLogger(__name__)

PROCESS_ITEM_TASK = "narration.process_item"
GENERATE_CHUNK_AUDIO_TASK = "narration.generate_chunk_audio"
DISPATCH_RETRY_TASK = "narration.dispatch_retry"

PRIORITY_LEVELS = {"low": 3, "normal": 5, "high": 8}


class CeleryItemQueue(IItemQueue):
    """Sends ``narration.process_item`` for each enqueued item."""

    def __init__(self, celery: Celery):
        self.celery = celery

    def enqueue(self, descriptor: ItemWorkDescriptor) -> None:
        self.celery.send_task(
            PROCESS_ITEM_TASK,
            args=(descriptor.item_id, descriptor.job_id),
            priority=PRIORITY_LEVELS.get(descriptor.priority, PRIORITY_LEVELS["normal"]),
        )
        logger.debug(f"Enqueued item {descriptor.item_id} of job {descriptor.job_id}")


class CeleryChunkQueue(IChunkQueue):
    """Sends ``narration.generate_chunk_audio`` for each enqueued chunk."""

    def __init__(self, celery: Celery):
        self.celery = celery

    def enqueue(self, descriptor: ChunkWorkDescriptor) -> None:
        self.celery.send_task(
            GENERATE_CHUNK_AUDIO_TASK,
            args=(descriptor.chunk_id, descriptor.item_id, descriptor.job_id),
        )
        logger.debug(f"Enqueued chunk {descriptor.chunk_id} of item {descriptor.item_id}")


class CeleryRetryQueue(IRetryQueue):
    """
    Delayed retry queue backed by Celery countdowns.

    The descriptor travels as a dict and is rebuilt by the retry task.
    """

    def __init__(self, celery: Celery):
        self.celery = celery

    def enqueue(self, descriptor: RetryDescriptor) -> None:
        countdown = descriptor.delay_ms / 1000.0
        self.celery.send_task(
            DISPATCH_RETRY_TASK,
            args=(descriptor.to_dict(),),
            countdown=countdown,
        )
        logger.info(
            f"Scheduled {descriptor.scope.value} retry {descriptor.retry_count}/"
            f"{descriptor.max_retries} for {descriptor.entity_id} in {countdown:.1f}s"
        )
