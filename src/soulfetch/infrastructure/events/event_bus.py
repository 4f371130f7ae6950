"""In-memory event bus implementing the download event sink.

Hey future me - subscribers register per event TYPE (JobProgressEvent, JobFinishedEvent,
...) or for everything with subscribe_all(). publish() calls them inline, so handlers
MUST be quick: schedule a task if you need to do I/O (see LibraryBookkeeper).

A handler that raises is logged and skipped. The scheduler calls publish() from inside
its job tasks, and a broken UI listener must never fail a download.
"""

import logging
import threading
from collections import deque
from collections.abc import Callable

from soulfetch.domain.entities.events import DownloadEvent
from soulfetch.domain.ports.event_sink import IDownloadEventSink

logger = logging.getLogger(__name__)

EventHandler = Callable[[DownloadEvent], None]


class InMemoryEventBus(IDownloadEventSink):
    """Synchronous fan-out of download events to subscribers."""

    def __init__(self, history_size: int = 1000) -> None:
        self._handlers: dict[type, list[EventHandler]] = {}
        self._catch_all: list[EventHandler] = []
        self._lock = threading.Lock()
        # Recent events, newest last. Handy for debugging endpoints and tests.
        self._history: deque[DownloadEvent] = deque(maxlen=history_size)
        self._errors_total = 0

    def subscribe(self, event_type: type, handler: EventHandler) -> None:
        """Call handler for every published event of event_type."""
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)

    def subscribe_all(self, handler: EventHandler) -> None:
        """Call handler for every published event."""
        with self._lock:
            self._catch_all.append(handler)

    def unsubscribe(self, handler: EventHandler) -> None:
        """Remove handler from every subscription. Unknown handlers are ignored."""
        with self._lock:
            for handlers in self._handlers.values():
                while handler in handlers:
                    handlers.remove(handler)
            while handler in self._catch_all:
                self._catch_all.remove(handler)

    def publish(self, event: DownloadEvent) -> None:
        with self._lock:
            self._history.append(event)
            handlers = [*self._handlers.get(type(event), []), *self._catch_all]

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                self._errors_total += 1
                logger.error(
                    "event_bus.handler_failed",
                    exc_info=True,
                    extra={
                        "event_type": type(event).__name__,
                        "handler": getattr(handler, "__qualname__", repr(handler)),
                        "error_type": type(e).__name__,
                    },
                )

    @property
    def history(self) -> list[DownloadEvent]:
        with self._lock:
            return list(self._history)

    def events_of(self, event_type: type) -> list[DownloadEvent]:
        """Recorded events of one type, oldest first."""
        return [event for event in self.history if isinstance(event, event_type)]

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()

    @property
    def errors_total(self) -> int:
        return self._errors_total
