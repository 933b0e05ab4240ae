"""
Notification Event Handler

Turns the few events a user should hear about (job finished, item given
up on, critical error) into notifications. Recent notifications are kept
in memory and pushed to the job's WebSocket room when SocketIO is up.
"""

import logging
import threading
import uuid
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional

from narration.config.socketio_config import get_socketio, is_socketio_enabled
from narration.domain.errors import ErrorSeverity
from narration.domain.events import (
    DomainEvent,
    ErrorOccurredEvent,
    ItemPermanentFailureEvent,
    JobCompletedEvent,
    JobFailedEvent,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationPreferences:
    notify_on_job_completion: bool = True
    notify_on_job_failure: bool = True
    notify_on_item_failure: bool = True
    notify_on_errors: bool = True


@dataclass(frozen=True)
class Notification:
    title: str
    message: str
    level: str
    job_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    notification_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data


class NotificationEventHandler:
    """
    Event handler producing user notifications.

    Args:
        preferences: Which kinds of notification to produce
        max_notifications: Size of the in-memory history
    """

    def __init__(
        self,
        preferences: Optional[NotificationPreferences] = None,
        max_notifications: int = 100,
    ):
        self.preferences = preferences or NotificationPreferences()
        self._notifications: Deque[Notification] = deque(maxlen=max_notifications)
        self._lock = threading.Lock()

    def handle(self, event: DomainEvent) -> None:
        notification = self._build(event)
        if notification is None:
            return
        with self._lock:
            self._notifications.append(notification)
        self._emit(notification)

    def _build(self, event: DomainEvent) -> Optional[Notification]:
        prefs = self.preferences
        if isinstance(event, JobCompletedEvent) and prefs.notify_on_job_completion:
            return Notification(
                title="Job Completed",
                message=(
                    f"Job {event.aggregate_id} finished: {event.completed_items} completed, "
                    f"{event.failed_items} failed."
                ),
                level="success" if event.failed_items == 0 else "warning",
                job_id=event.aggregate_id,
                data={"completed_items": event.completed_items, "failed_items": event.failed_items},
            )
        if isinstance(event, JobFailedEvent) and prefs.notify_on_job_failure:
            return Notification(
                title="Job Failed",
                message=f"Job {event.aggregate_id} failed: {event.error_message}",
                level="error",
                job_id=event.aggregate_id,
                data={"error": event.error_message},
            )
        if isinstance(event, ItemPermanentFailureEvent) and prefs.notify_on_item_failure:
            return Notification(
                title="Item Processing Failed",
                message=(
                    f"Item {event.aggregate_id} failed after {event.retry_count} retries: "
                    f"{event.error_message}"
                ),
                level="warning",
                job_id=event.job_id,
                data={"item_id": event.aggregate_id, "retry_count": event.retry_count},
            )
        if (
            isinstance(event, ErrorOccurredEvent)
            and prefs.notify_on_errors
            and event.severity == ErrorSeverity.CRITICAL.value
        ):
            return Notification(
                title="Critical Error Occurred",
                message=f"A critical error occurred: {event.error_message}",
                level="error",
                data={
                    "scope": event.scope,
                    "entity_id": event.aggregate_id,
                    "error_code": event.error_code,
                },
            )
        return None

    def _emit(self, notification: Notification) -> None:
        if notification.job_id is None or not is_socketio_enabled():
            return
        try:
            get_socketio().emit("notification", notification.to_dict(), room=notification.job_id)
        except Exception as e:
            logger.error(f"Failed to emit notification {notification.title}: {e}", exc_info=True)

    def recent(self, limit: int = 20, job_id: Optional[str] = None) -> List[Notification]:
        """Return the newest notifications first."""
        with self._lock:
            notifications = list(self._notifications)
        if job_id is not None:
            notifications = [n for n in notifications if n.job_id == job_id]
        return list(reversed(notifications))[:limit]

    def clear(self) -> None:
        with self._lock:
            self._notifications.clear()
