"""
Dependency Injection Container

Manages service lifecycles and dependency resolution.
"""

import logging
import threading
from typing import Any, Callable, Dict, Iterable, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


class DependencyNotFoundError(Exception):
    """Raised when attempting to resolve an unregistered dependency."""
    pass


class DependencyContainer:
    """
    Dependency injection container for managing service lifecycles.

    Supports singleton (single instance) and transient (factory-created)
    registration. Overrides take precedence over both and are meant for
    tests. Thread-safe for concurrent access.
    """

    def __init__(self):
        """Initialize the dependency container."""
        self._singletons: Dict[Type, Any] = {}
        self._transients: Dict[Type, Callable[[], Any]] = {}
        self._overrides: Dict[Type, Any] = {}
        self._lock = threading.Lock()

        logger.debug("DependencyContainer initialized")

    def register_singleton(self, interface: Type[T], implementation: T) -> None:
        """
        Register a singleton service (single instance shared across all resolutions).

        Example:
            container.register_singleton(PipelineOrchestrator, orchestrator)
        """
        with self._lock:
            self._singletons[interface] = implementation
            logger.debug(f"Registered singleton: {interface.__name__}")

    def register_transient(self, interface: Type[T], factory: Callable[[], T]) -> None:
        """
        Register a transient service (new instance created on each resolution).

        Example:
            container.register_transient(
                JobService,
                lambda: JobService(job_repo, item_repo, chunk_repo, error_repo, bus)
            )
        """
        with self._lock:
            self._transients[interface] = factory
            logger.debug(f"Registered transient: {interface.__name__}")

    def resolve(self, interface: Type[T]) -> T:
        """
        Resolve a registered service.

        Raises:
            DependencyNotFoundError: If the interface is not registered
        """
        with self._lock:
            if interface in self._overrides:
                return self._overrides[interface]
            if interface in self._singletons:
                return self._singletons[interface]
            if interface in self._transients:
                factory = self._transients[interface]
            else:
                raise DependencyNotFoundError(
                    f"No registration found for type: {interface.__name__}"
                )

        # Factory runs outside the lock so it can resolve other services
        return factory()

    def override(self, interface: Type[T], implementation: T) -> None:
        """Override a registered service (primarily for testing)."""
        with self._lock:
            self._overrides[interface] = implementation
            logger.debug(f"Overridden: {interface.__name__}")

    def clear_overrides(self) -> None:
        with self._lock:
            self._overrides.clear()
            logger.debug("Cleared all overrides")

    def is_registered(self, interface: Type) -> bool:
        with self._lock:
            return (
                interface in self._singletons or
                interface in self._transients or
                interface in self._overrides
            )

    def get_registration_type(self, interface: Type) -> str:
        """
        Get the registration type for an interface.

        Returns:
            'singleton', 'transient', 'override', or 'not_registered'
        """
        with self._lock:
            if interface in self._overrides:
                return 'override'
            if interface in self._singletons:
                return 'singleton'
            if interface in self._transients:
                return 'transient'
            return 'not_registered'

    def setup_event_handlers(self, event_bus, handlers: Iterable[Any]) -> None:
        """
        Subscribe infrastructure event handlers to every domain event.

        Each handler exposes ``handle(event)`` and dispatches on the event
        class itself. A handler that fails to register is logged and skipped.

        Args:
            event_bus: EventBus to subscribe to
            handlers: Handler instances (LoggingEventHandler, WebSocketEventHandler, ...)
        """
        for handler in handlers:
            try:
                event_bus.subscribe_all(handler.handle)
                logger.debug(f"Registered event handler: {handler.__class__.__name__}")
            except Exception as e:
                logger.error(
                    f"Failed to register event handler {handler.__class__.__name__}: {e}"
                )
                continue
