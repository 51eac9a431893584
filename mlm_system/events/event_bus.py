# mlm_system/events/event_bus.py
"""
Event bus for decoupled communication between components.
Events are published only after the transaction that produced them commits.
"""
from typing import Dict, List, Callable, Any, Iterable, Tuple
import logging
import asyncio

logger = logging.getLogger(__name__)


class EventBus:
    """
    Simple in-process event bus.
    Handler failures are logged and never reach the publisher.
    """

    _instance = None
    _handlers: Dict[str, List[Callable]] = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._handlers = {}
        return cls._instance

    def subscribe(self, eventName: str, handler: Callable):
        """Subscribe handler to event."""
        if eventName not in self._handlers:
            self._handlers[eventName] = []

        self._handlers[eventName].append(handler)
        logger.debug(f"Handler {handler.__name__} subscribed to {eventName}")

    def unsubscribe(self, eventName: str, handler: Callable):
        """Unsubscribe handler from event."""
        if eventName in self._handlers and handler in self._handlers[eventName]:
            self._handlers[eventName].remove(handler)
            logger.debug(f"Handler {handler.__name__} unsubscribed from {eventName}")

    async def emit(self, eventName: str, data: Dict[str, Any]):
        """Emit event to all subscribers."""
        if eventName not in self._handlers:
            return

        logger.debug(f"Emitting event {eventName} with data: {data}")

        for handler in list(self._handlers[eventName]):
            try:
                if asyncio.iscoroutinefunction(handler):
                    await handler(data)
                else:
                    handler(data)
            except Exception as e:
                logger.error(f"Error in handler {handler.__name__} for event {eventName}: {e}")

    async def emitAll(self, events: Iterable[Tuple[str, Dict[str, Any]]]):
        """Emit a batch of buffered (eventName, data) pairs in order."""
        for eventName, data in events:
            await self.emit(eventName, data)

    def clear(self):
        """Clear all event handlers."""
        self._handlers.clear()


# Global event bus instance
eventBus = EventBus()


# Predefined events
class MLMEvents:
    """Standard commission engine events."""

    PACKAGE_APPROVED = "package.approved"
    PACKAGE_REJECTED = "package.rejected"

    COMMISSION_PAID = "commission.paid"
    COMMISSION_FORFEITED = "commission.forfeited"
    POINTS_ADDED = "points.added"

    RANK_CHANGED = "rank.changed"
