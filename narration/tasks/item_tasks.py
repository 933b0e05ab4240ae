"""
Item Tasks

Celery tasks running one content item or one audio chunk through the
pipeline. Thin wrappers that delegate to ItemProcessingService.
"""

import logging
import time
from typing import Any, Dict

from narration.celery_app import celery_app

logger = logging.getLogger(__name__)


def _item_processing_service():
    from narration.application.item_processing_service import ItemProcessingService
    from narration.celery_app import flask_app

    return flask_app.container.resolve(ItemProcessingService)


@celery_app.task(bind=True, name="narration.process_item")
def process_item(self, item_id: str, job_id: str) -> Dict[str, Any]:
    """
    Validate an item, generate its text and fan its chunks out.

    Failures are handled inside the service (error log, retry scheduling)
    so the task itself only fails on unexpected infrastructure errors.

    Args:
        item_id: Item to process
        job_id: Owning job, used for logging

    Returns:
        dict: Item id and status after this step
    """
    task_start_time = time.time()
    logger.info(f"Task started for item {item_id} of job {job_id}")

    try:
        item = _item_processing_service().process_item(item_id)
    except Exception as e:
        duration_ms = (time.time() - task_start_time) * 1000
        logger.error(f"Task failed for item {item_id} after {duration_ms:.2f}ms: {e}")
        raise

    duration_ms = (time.time() - task_start_time) * 1000
    status = item.status.value if item is not None else "skipped"
    logger.info(f"Task finished for item {item_id} in {duration_ms:.2f}ms: {status}")
    return {"item_id": item_id, "job_id": job_id, "status": status}


@celery_app.task(bind=True, name="narration.generate_chunk_audio")
def generate_chunk_audio(self, chunk_id: str, item_id: str, job_id: str) -> Dict[str, Any]:
    """
    Synthesize one audio chunk.

    The chunk coordinator reacts to the resulting event and triggers the
    merge once the item's last chunk is done.
    """
    task_start_time = time.time()

    try:
        chunk = _item_processing_service().generate_chunk_audio(chunk_id)
    except Exception as e:
        duration_ms = (time.time() - task_start_time) * 1000
        logger.error(f"Task failed for chunk {chunk_id} after {duration_ms:.2f}ms: {e}")
        raise

    duration_ms = (time.time() - task_start_time) * 1000
    status = chunk.status.value if chunk is not None else "skipped"
    logger.debug(f"Task finished for chunk {chunk_id} of item {item_id} in {duration_ms:.2f}ms")
    return {"chunk_id": chunk_id, "item_id": item_id, "job_id": job_id, "status": status}
