"""
WebSocket Event Handlers

Handles WebSocket connections and job subscriptions for real-time
pipeline updates. Pipeline events themselves are pushed by
``WebSocketEventHandler`` into the room named after each job id.
"""

import logging

from flask import current_app, request
from flask_socketio import emit, join_room, leave_room

from narration.application.job_service import JobService
from narration.config.socketio_config import get_socketio
from narration.domain.errors import DomainError

logger = logging.getLogger(__name__)


def _job_id_from(data):
    job_id = (data or {}).get("job_id")
    if not job_id:
        emit("error", {"message": "Missing job_id"})
    return job_id


def register_socketio_events(app):
    """
    Register WebSocket event handlers with the Flask-SocketIO instance.

    Args:
        app: Flask application instance
    """
    socketio = get_socketio()

    if socketio is None:
        logger.warning("SocketIO not initialized, skipping event registration")
        return

    @socketio.on("connect")
    def handle_connect():
        client_id = request.sid
        logger.info(f"Client connected: {client_id}")
        emit("connected", {"message": "Connected to server", "client_id": client_id})

    @socketio.on("disconnect")
    def handle_disconnect():
        logger.info(f"Client disconnected: {request.sid}")

    @socketio.on("subscribe_job")
    def handle_subscribe_job(data):
        """
        Subscribe to pipeline events of a job.

        Args:
            data: dict with 'job_id' field
        """
        job_id = _job_id_from(data)
        if not job_id:
            return

        join_room(job_id)
        logger.info(f"Client {request.sid} subscribed to job {job_id}")
        emit("subscribed", {"job_id": job_id, "message": f"Subscribed to job {job_id}"})

    @socketio.on("unsubscribe_job")
    def handle_unsubscribe_job(data):
        job_id = _job_id_from(data)
        if not job_id:
            return

        leave_room(job_id)
        logger.info(f"Client {request.sid} unsubscribed from job {job_id}")
        emit(
            "unsubscribed",
            {"job_id": job_id, "message": f"Unsubscribed from job {job_id}"},
        )

    @socketio.on("job_status")
    def handle_job_status(data):
        """Reply with the current status summary of a job."""
        job_id = _job_id_from(data)
        if not job_id:
            return

        container = getattr(current_app, "container", None)
        if container is None:
            emit("error", {"message": "Job service not initialized"})
            return

        try:
            status = container.resolve(JobService).get_job_status(job_id)
        except DomainError as e:
            emit("error", {"message": e.message, "error_code": e.error_code.value})
            return
        emit("job_status", status)

    @socketio.on("ping")
    def handle_ping():
        """Handle ping from client for connection health check."""
        emit("pong", {"timestamp": request.args.get("timestamp")})

    logger.info("SocketIO event handlers registered")
