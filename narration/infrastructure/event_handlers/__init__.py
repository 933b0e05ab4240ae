"""
Event Handlers

Infrastructure subscribers of the domain event bus.
"""

from .logging_handler import LoggingEventHandler
from .notification_handler import Notification, NotificationEventHandler, NotificationPreferences
from .websocket_handler import WebSocketEventHandler

__all__ = [
    "LoggingEventHandler",
    "Notification",
    "NotificationEventHandler",
    "NotificationPreferences",
    "WebSocketEventHandler",
]
