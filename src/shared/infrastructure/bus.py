"""In-memory event bus implementation."""

from __future__ import annotations

from typing import Any, Dict, List, Type

from shared.domain.bus import IEventBus, IEventHandler
from shared.domain.events import DomainEvent


class UnknownEventType(LookupError):
    """No event class has been subscribed under the given name."""


class InMemoryEventBus(IEventBus):
    """Simple in-process event bus.

    Handlers are keyed by event class; the class is also registered by
    name so serialized outbox rows can be turned back into events.
    """

    def __init__(self) -> None:
        self._handlers: Dict[Type[DomainEvent], List[IEventHandler]] = {}
        self._event_classes: Dict[str, Type[DomainEvent]] = {}

    def subscribe(self, event_class: Type[DomainEvent], handler: IEventHandler) -> None:
        self._event_classes[event_class.__name__] = event_class
        handlers = self._handlers.setdefault(event_class, [])
        if handler not in handlers:
            handlers.append(handler)

    def publish(self, event: DomainEvent) -> None:
        for handler in self._handlers.get(type(event), []):
            handler.handle(event)

    def publish_payload(self, event_name: str, payload: Dict[str, Any]) -> int:
        """Rebuild and publish an event; returns the number of handlers run."""
        event_class = self._event_classes.get(event_name)
        if event_class is None:
            raise UnknownEventType(event_name)
        event = event_class.from_payload(payload)
        handlers = self._handlers.get(event_class, [])
        for handler in handlers:
            handler.handle(event)
        return len(handlers)


# Global bus instance (singleton)

event_bus = InMemoryEventBus()
