"""
SocketIO Configuration

Configures Flask-SocketIO with Redis message queue for WebSocket support.
"""

import logging
import os

from flask_socketio import SocketIO

logger = logging.getLogger(__name__)

# Global SocketIO instance
socketio = None


def init_socketio(app):
    """
    Initialize Flask-SocketIO with Redis message queue.

    The message queue lets Celery workers emit to clients connected to
    the web process.

    Args:
        app: Flask application instance

    Returns:
        SocketIO instance
    """
    global socketio

    redis_url = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    socketio = SocketIO(
        app,
        cors_allowed_origins=os.getenv("SOCKETIO_CORS_ORIGINS", "*"),
        message_queue=redis_url,
        async_mode=os.getenv("SOCKETIO_ASYNC_MODE", "threading"),
        logger=False,
        engineio_logger=False,
        ping_timeout=60,
        ping_interval=25,
    )

    logger.info(f"SocketIO initialized with Redis message queue: {redis_url}")
    return socketio


def get_socketio():
    """
    Get the global SocketIO instance.

    Returns:
        SocketIO instance or None if not initialized
    """
    return socketio


def is_socketio_enabled():
    """
    Check if SocketIO is enabled and initialized.

    Returns:
        bool: True if SocketIO is available
    """
    socketio_enabled = os.getenv("SOCKETIO_ENABLED", "true").lower() == "true"
    return socketio_enabled and socketio is not None
