"""
Celery Configuration

Configures Celery with Flask integration, Redis broker, and task routing
for the item, chunk, retry and maintenance queues.
"""

import os

from celery import Celery
from kombu import Queue


class CeleryConfig:
    """Celery configuration settings."""

    # Broker settings
    broker_url = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
    result_backend = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/0")

    # Task settings
    task_serializer = "json"
    accept_content = ["json"]
    result_serializer = "json"
    timezone = "UTC"
    enable_utc = True

    # Worker settings
    worker_prefetch_multiplier = 1
    task_acks_late = True
    worker_max_tasks_per_child = 200

    # Task routing
    task_routes = {
        "narration.process_item": {"queue": "item_queue"},
        "narration.generate_chunk_audio": {"queue": "chunk_queue"},
        "narration.dispatch_retry": {"queue": "retry_queue"},
        "narration.cleanup_progress_tracking": {"queue": "maintenance_queue"},
    }

    # Queue definitions
    task_default_queue = "default"
    task_queues = (
        Queue("default", routing_key="default"),
        Queue("item_queue", routing_key="item"),
        Queue("chunk_queue", routing_key="chunk"),
        Queue("retry_queue", routing_key="retry"),
        Queue("maintenance_queue", routing_key="maintenance"),
    )

    # Beat schedule for periodic tasks
    beat_schedule = {
        "cleanup-progress-tracking": {
            "task": "narration.cleanup_progress_tracking",
            "schedule": float(os.getenv("TRACKING_CLEANUP_INTERVAL_SECONDS", 600)),
        },
    }

    # Task time limits (in seconds); one synthesis or text call per task
    task_soft_time_limit = int(os.getenv("CELERY_TASK_SOFT_TIME_LIMIT", 600))
    task_time_limit = int(os.getenv("CELERY_TASK_TIME_LIMIT", 720))

    result_expires = 3600

    worker_concurrency = int(os.getenv("CELERY_WORKER_CONCURRENCY", 4))


def make_celery(app):
    """
    Create Celery instance with Flask app context.

    Args:
        app: Flask application instance

    Returns:
        Configured Celery instance
    """
    celery = Celery(
        app.import_name,
        backend=CeleryConfig.result_backend,
        broker=CeleryConfig.broker_url,
    )

    celery.config_from_object(CeleryConfig)

    class ContextTask(celery.Task):
        """Make celery tasks work with Flask app context."""

        def __call__(self, *args, **kwargs):
            with app.app_context():
                return self.run(*args, **kwargs)

    celery.Task = ContextTask
    return celery
