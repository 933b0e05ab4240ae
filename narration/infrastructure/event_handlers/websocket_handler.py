"""
WebSocket Event Handler

Infrastructure event handler for emitting WebSocket messages for domain events.
Translates domain events into WebSocket messages for real-time client notifications.
"""

import logging
from typing import Optional

from narration.config.socketio_config import get_socketio, is_socketio_enabled
from narration.domain.events import (
    ChunkProgressUpdatedEvent,
    DomainEvent,
    JobCancelledEvent,
    JobCompletedEvent,
    JobCreatedEvent,
    JobFailedEvent,
    JobPausedEvent,
    JobProgressUpdatedEvent,
    JobResumedEvent,
    JobStartedEvent,
)

logger = logging.getLogger(__name__)

JOB_EVENT_TYPES = (
    JobCreatedEvent,
    JobStartedEvent,
    JobProgressUpdatedEvent,
    JobCompletedEvent,
    JobFailedEvent,
    JobCancelledEvent,
    JobPausedEvent,
    JobResumedEvent,
)

# High-frequency events not worth a round trip to every subscriber
SILENT_EVENT_TYPES = (ChunkProgressUpdatedEvent,)


def job_room(event: DomainEvent) -> Optional[str]:
    """Return the job id whose room should receive ``event``, if any."""
    if isinstance(event, JOB_EVENT_TYPES):
        return event.aggregate_id
    return getattr(event, "job_id", None)


class WebSocketEventHandler:
    """
    Event handler that emits WebSocket messages for domain events.

    Clients join a room named after the job id (see ``subscribe_job``)
    and receive every job-scoped event as ``{"event_type": ..., ...}``
    under the ``pipeline_event`` message name. Chunk and error events
    that carry no job id are not broadcast.
    """

    message_name = "pipeline_event"

    def handle(self, event: DomainEvent) -> None:
        if not is_socketio_enabled():
            return
        if isinstance(event, SILENT_EVENT_TYPES):
            return

        room = job_room(event)
        if room is None:
            return

        try:
            get_socketio().emit(self.message_name, event.to_dict(), room=room)
            logger.debug(f"Emitted {event.event_type} to job {room}")
        except Exception as e:
            logger.error(
                f"Error emitting {event.__class__.__name__} for job {room}: {e}",
                exc_info=True,
            )
