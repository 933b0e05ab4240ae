"""
Maintenance Task

Celery beat task dropping stale progress tracking entries.
"""

import logging
from typing import Any, Dict

from narration.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name="narration.cleanup_progress_tracking")
def cleanup_progress_tracking(self) -> Dict[str, Any]:
    """
    Remove progress snapshots not updated within TRACKING_MAX_AGE_MINUTES.

    Returns:
        dict: Number of removed and remaining snapshots
    """
    from narration.application.progress_tracking_service import ProgressTrackingService
    from narration.celery_app import flask_app
    from narration.config.pipeline_config import PipelineConfig

    max_age_minutes = PipelineConfig().tracking_max_age_minutes
    progress_tracking = flask_app.container.resolve(ProgressTrackingService)

    removed = progress_tracking.cleanup_old_tracking(max_age_minutes=max_age_minutes)
    remaining = progress_tracking.tracked_count()
    logger.info(
        f"Progress tracking cleanup removed {removed} entries older than "
        f"{max_age_minutes} minutes ({remaining} remaining)"
    )
    return {"removed": removed, "remaining": remaining}
