"""Event delivery adapters."""

from soulfetch.infrastructure.events.event_bus import EventHandler, InMemoryEventBus

__all__ = ["EventHandler", "InMemoryEventBus"]
