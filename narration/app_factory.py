"""
Application Factory

Creates and configures the Flask application hosting the narration
pipeline: Redis persistence, Celery queues, SocketIO broadcasting and
the dependency container used by tasks and WebSocket handlers.
"""

import logging
import os
from typing import Optional, Tuple

from flask import Flask, jsonify

from narration.api.websocket_events import register_socketio_events
from narration.application.dependency_container import DependencyContainer
from narration.application.pipeline import (
    ExternalServices,
    Pipeline,
    PipelineQueues,
    PipelineRepositories,
    build_pipeline,
    register_pipeline,
)
from narration.config.celery_config import make_celery
from narration.config.pipeline_config import PipelineConfig
from narration.config.redis_config import RedisConfig, get_redis_repository, init_redis, redis_health_check
from narration.config.socketio_config import init_socketio, is_socketio_enabled
from narration.infrastructure.celery_queues import CeleryChunkQueue, CeleryItemQueue, CeleryRetryQueue
from narration.infrastructure.event_handlers import (
    LoggingEventHandler,
    NotificationEventHandler,
    WebSocketEventHandler,
)
from narration.infrastructure.redis_audio_chunk_repository import RedisAudioChunkRepository
from narration.infrastructure.redis_content_item_repository import RedisContentItemRepository
from narration.infrastructure.redis_error_log_repository import RedisErrorLogRepository
from narration.infrastructure.redis_job_repository import RedisJobRepository
from narration.infrastructure.redis_keyed_lock import RedisKeyedLock
from narration.infrastructure.redis_repository import RedisRepository

logger = logging.getLogger(__name__)


class AppConfig:
    """Application configuration."""

    def __init__(self):
        self.flask_env = os.getenv("FLASK_ENV", "development")
        self.is_production = self.flask_env == "production"
        self.socketio_enabled = os.getenv("SOCKETIO_ENABLED", "true").lower() == "true"
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        self.pipeline = PipelineConfig()


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(
    config: Optional[AppConfig] = None,
    external_services: Optional[ExternalServices] = None,
) -> Flask:
    """
    Create and configure Flask application.

    Args:
        config: Application configuration, uses default if None
        external_services: Text, speech, merge and upload adapters; workers
            cannot process items without them

    Returns:
        Configured Flask application
    """
    if config is None:
        config = AppConfig()

    configure_logging(config.log_level)

    app = Flask(__name__)

    _initialize_infrastructure(app, config)
    _initialize_services(app, config, external_services)
    _register_health_endpoint(app)

    return app


def _initialize_infrastructure(app: Flask, config: AppConfig) -> None:
    """
    Initialize infrastructure components (Redis, Celery, SocketIO).

    A failure leaves ``app.celery`` unset and the app reports itself
    degraded on /health.
    """
    try:
        init_redis(RedisConfig())
        logger.info("Redis initialized successfully")

        app.celery = make_celery(app)
        logger.info("Celery initialized successfully")

        if config.socketio_enabled:
            try:
                app.socketio = init_socketio(app)
                register_socketio_events(app)
                logger.info("SocketIO initialized successfully")
            except Exception as e:
                logger.warning(f"Could not initialize SocketIO, live updates disabled: {e}")
        else:
            logger.info("SocketIO disabled")

    except Exception as e:
        logger.warning(f"Could not initialize infrastructure: {e}", exc_info=True)
        app.celery = None


def _initialize_services(
    app: Flask, config: AppConfig, external_services: Optional[ExternalServices]
) -> None:
    """
    Build the pipeline and attach its container to the app.

    Tasks and WebSocket handlers resolve services through
    ``app.container`` only.
    """
    app.container = None
    app.pipeline = None
    if app.celery is None:
        logger.warning("Celery unavailable, pipeline services not initialized")
        return

    try:
        container = DependencyContainer()

        redis_repo = get_redis_repository(RedisConfig().key_prefix)
        container.register_singleton(RedisRepository, redis_repo)

        ttl = config.pipeline.entity_ttl_seconds
        repositories = PipelineRepositories(
            jobs=RedisJobRepository(redis_repo, ttl=ttl),
            items=RedisContentItemRepository(redis_repo, ttl=ttl),
            chunks=RedisAudioChunkRepository(redis_repo, ttl=ttl),
            error_logs=RedisErrorLogRepository(redis_repo, ttl=ttl),
        )
        queues = PipelineQueues(
            items=CeleryItemQueue(app.celery),
            chunks=CeleryChunkQueue(app.celery),
            retries=CeleryRetryQueue(app.celery),
        )

        settings = config.pipeline.to_settings()
        locks = RedisKeyedLock(redis_repo) if settings.shared_state else None
        pipeline: Pipeline = build_pipeline(
            repositories,
            queues,
            services=external_services,
            settings=settings,
            locks=locks,
        )
        register_pipeline(container, pipeline)

        notification_handler = NotificationEventHandler()
        container.register_singleton(NotificationEventHandler, notification_handler)
        container.setup_event_handlers(
            pipeline.event_bus,
            [
                LoggingEventHandler(logging.getLogger("narration.events")),
                WebSocketEventHandler(),
                notification_handler,
            ],
        )

        app.container = container
        app.pipeline = pipeline
        logger.info(
            f"Pipeline services initialized "
            f"(item processing {'enabled' if pipeline.item_processing else 'disabled'})"
        )

    except Exception as e:
        logger.warning(f"Could not initialize services: {e}", exc_info=True)
        app.container = None
        app.pipeline = None


def _get_health_status(app: Flask) -> Tuple[dict, int]:
    """
    Get health status of all system components.

    Returns:
        Tuple of (health_status_dict, http_status_code)
    """
    health_status = {
        "status": "ok",
        "message": "pipeline ready",
        "redis": "unknown",
        "celery": "unknown",
        "socketio": "unknown",
        "item_processing": "unknown",
    }

    try:
        if redis_health_check():
            health_status["redis"] = "connected"
        else:
            health_status["redis"] = "disconnected"
            health_status["status"] = "degraded"
    except Exception as e:
        health_status["redis"] = f"error: {str(e)}"
        health_status["status"] = "degraded"

    if getattr(app, "celery", None) is not None:
        health_status["celery"] = "available"
    else:
        health_status["celery"] = "unavailable"
        health_status["status"] = "degraded"

    if is_socketio_enabled():
        health_status["socketio"] = "available"
    else:
        health_status["socketio"] = "not_configured"

    pipeline = getattr(app, "pipeline", None)
    if pipeline is not None and pipeline.item_processing is not None:
        health_status["item_processing"] = "enabled"
    else:
        health_status["item_processing"] = "disabled"

    status_code = 200 if health_status["status"] == "ok" else 503
    return health_status, status_code


def _register_health_endpoint(app: Flask) -> None:
    @app.route("/health", methods=["GET"])
    def health():
        """Overall health of the application and its dependencies."""
        health_status, status_code = _get_health_status(app)
        return jsonify(health_status), status_code
