"""
Celery Application Instance

Creates the Celery app instance for use by workers and beat scheduler.
Uses the app factory so tasks resolve services from the same container.

Provider adapters are loaded from ``NARRATION_SERVICES_FACTORY``
(``package.module:function``), a callable returning ``ExternalServices``.
Without it workers can run maintenance tasks but not process items.
"""

import importlib
import logging
import os
from typing import Optional

from narration.app_factory import create_app
from narration.application.pipeline import ExternalServices

logger = logging.getLogger(__name__)


def load_external_services(target: Optional[str]) -> Optional[ExternalServices]:
    """
    Import and call the services factory named by ``target``.

    Raises:
        ValueError: If target is not of the form ``module:function``
    """
    if not target:
        return None
    module_name, sep, attribute = target.partition(":")
    if not sep or not module_name or not attribute:
        raise ValueError(f"Expected 'module:function', got {target!r}")
    factory = getattr(importlib.import_module(module_name), attribute)
    services = factory()
    logger.info(f"Loaded external services from {target}")
    return services


flask_app = create_app(
    external_services=load_external_services(os.getenv("NARRATION_SERVICES_FACTORY"))
)

celery_app = flask_app.celery

# Task modules are imported by the worker at startup, once celery_app exists
celery_app.conf.imports = (
    "narration.tasks.item_tasks",
    "narration.tasks.retry_task",
    "narration.tasks.maintenance_task",
)
