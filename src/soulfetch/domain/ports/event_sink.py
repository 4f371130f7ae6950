"""Event sink port: where the scheduler sends job events."""

from abc import ABC, abstractmethod

from soulfetch.domain.entities.events import DownloadEvent


class IDownloadEventSink(ABC):
    """Receives state-change, progress and finished events.

    Hey future me - publish() is called from INSIDE the scheduler's job tasks.
    It must return fast and must not raise. Fire-and-forget: queue it, log it,
    hand it off, but never do slow I/O inline.
    """

    @abstractmethod
    def publish(self, event: DownloadEvent) -> None:
        """Deliver one event (non-blocking)."""
        pass
