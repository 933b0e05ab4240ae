"""
Retry Task

Celery task executing a retry once its backoff countdown has elapsed.
"""

import logging
from typing import Any, Dict

from narration.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name="narration.dispatch_retry")
def dispatch_retry(self, descriptor_data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Rebuild the retry descriptor and hand it to RetryService.

    Args:
        descriptor_data: ``RetryDescriptor.to_dict()`` output
    """
    from narration.application.retry_service import RetryService
    from narration.celery_app import flask_app
    from narration.domain.queues import RetryDescriptor

    descriptor = RetryDescriptor.from_dict(descriptor_data)
    logger.info(
        f"Dispatching {descriptor.scope.value} retry {descriptor.retry_count} "
        f"for {descriptor.entity_id}"
    )

    retry_service = flask_app.container.resolve(RetryService)
    retry_service.dispatch(descriptor)
    return {
        "entity_id": descriptor.entity_id,
        "scope": descriptor.scope.value,
        "retry_count": descriptor.retry_count,
    }
