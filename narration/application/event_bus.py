"""
Event Bus

Application service for publishing domain events to registered handlers.
Enables decoupling of side effects from the orchestration logic.
"""

import logging
from threading import Lock
from typing import Callable, Dict, List, Optional, Type

from narration.domain.events import DomainEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[DomainEvent], None]
Unsubscribe = Callable[[], None]


def _handler_name(handler: EventHandler) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


class _Subscription:
    """One registration. Compared by identity, so equal handlers stay apart."""

    __slots__ = ("handler",)

    def __init__(self, handler: EventHandler):
        self.handler = handler


class EventBus:
    """
    In-process event bus that dispatches domain events to registered handlers.

    Handlers are keyed by event class. Wildcard handlers receive every event.
    Dispatch is synchronous: handlers of the event's class run first, in
    subscription order, then wildcard handlers. Handler exceptions are caught
    and logged so that side effects never break the publisher or sibling
    handlers.

    Thread-safe for concurrent subscription and publishing.
    """

    def __init__(self):
        """Initialize EventBus with empty handler registry."""
        self._handlers: Dict[Type[DomainEvent], List[_Subscription]] = {}
        self._wildcard_handlers: List[_Subscription] = []
        self._lock = Lock()

    def subscribe(self, event_type: Type[DomainEvent], handler: EventHandler) -> Unsubscribe:
        """
        Register a handler for a specific event class.

        Args:
            event_type: The domain event class to handle
            handler: Callable that accepts the event as parameter

        Returns:
            Function that removes this subscription when called

        Example:
            bus = EventBus()
            unsubscribe = bus.subscribe(JobCompletedEvent, handle_job_completed)
        """
        subscription = _Subscription(handler)
        with self._lock:
            self._handlers.setdefault(event_type, []).append(subscription)
        logger.debug(
            f"Registered handler {_handler_name(handler)} for {event_type.event_type}"
        )

        def unsubscribe() -> None:
            with self._lock:
                handlers = self._handlers.get(event_type, [])
                if subscription in handlers:
                    handlers.remove(subscription)
                if not handlers:
                    self._handlers.pop(event_type, None)

        return unsubscribe

    def subscribe_all(self, handler: EventHandler) -> Unsubscribe:
        """
        Register a wildcard handler that receives every published event.

        Returns:
            Function that removes this subscription when called
        """
        subscription = _Subscription(handler)
        with self._lock:
            self._wildcard_handlers.append(subscription)
        logger.debug(f"Registered wildcard handler {_handler_name(handler)}")

        def unsubscribe() -> None:
            with self._lock:
                if subscription in self._wildcard_handlers:
                    self._wildcard_handlers.remove(subscription)

        return unsubscribe

    def publish(self, event: DomainEvent) -> None:
        """
        Publish an event to all registered handlers.

        Args:
            event: The domain event to publish
        """
        event_type = type(event)

        with self._lock:
            subscriptions = self._handlers.get(event_type, []) + self._wildcard_handlers
        handlers = [s.handler for s in subscriptions]

        if not handlers:
            logger.debug(f"No handlers registered for {event_type.event_type}")
            return

        logger.debug(f"Publishing {event_type.event_type} to {len(handlers)} handler(s)")

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                # Log but don't fail - side effects should not break core logic
                logger.error(
                    f"Error in handler {_handler_name(handler)} for "
                    f"{event_type.event_type}: {e}",
                    exc_info=True,
                )

    def subscription_count(self, event_type: Optional[Type[DomainEvent]] = None) -> int:
        """
        Count subscriptions.

        Args:
            event_type: Count only handlers of this class (wildcards excluded);
                all handlers when None
        """
        with self._lock:
            if event_type is not None:
                return len(self._handlers.get(event_type, []))
            return sum(len(h) for h in self._handlers.values()) + len(self._wildcard_handlers)

    def clear(self) -> None:
        """Remove every subscription."""
        with self._lock:
            self._handlers.clear()
            self._wildcard_handlers.clear()
