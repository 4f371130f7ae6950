"""Search/transfer provider port (interface) for the download scheduler.

Following Hexagonal Architecture (Ports & Adapters), this is a PORT in the
domain layer. Implementations live in the infrastructure layer
(SlskdSearchProvider talks to an slskd daemon over HTTP).

The scheduler treats the provider as opaque network I/O: it asks for candidates,
tells it to transfer one into a local path, and tells it to stop.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from pathlib import Path

from soulfetch.domain.entities.candidate import Candidate

# on_progress(bytes_transferred, total_bytes_or_None, speed_bytes_per_sec)
ProgressCallback = Callable[[int, int | None, float], None]


@dataclass(frozen=True)
class SearchFilters:
    """Server-side hints for a search.

    Providers MAY ignore these (the ranking engine scores conditions anyway).
    """

    formats: tuple[str, ...] = ()
    min_bitrate: int | None = None
    timeout_seconds: float = 30.0
    max_results: int = 500


class ISearchProvider(ABC):
    """Interface for search/transfer backends.

    Errors: implementations raise ProviderError (or TransferError) for network
    failures. Cancellation arrives as asyncio.CancelledError inside transfer();
    implementations must let it propagate.
    """

    @abstractmethod
    def search(self, query: str, filters: SearchFilters | None = None) -> AsyncIterator[Candidate]:
        """Stream candidates for a query.

        Args:
            query: Free-text search string ("Artist Title")
            filters: Optional search hints

        Yields:
            Candidate objects as the network reports them
        """
        pass

    @abstractmethod
    async def transfer(
        self,
        candidate: Candidate,
        destination: Path,
        on_progress: ProgressCallback | None = None,
    ) -> int:
        """Download a candidate into destination.

        Args:
            candidate: File to fetch
            destination: Local path to write (the scheduler passes a .part path)
            on_progress: Called with (bytes, total, speed) while transferring

        Returns:
            Number of bytes written
        """
        pass

    @abstractmethod
    async def cancel_transfer(self, candidate: Candidate) -> None:
        """Abort an in-flight transfer of candidate on the remote side.

        Must be safe to call for transfers that already finished or never started.
        """
        pass
