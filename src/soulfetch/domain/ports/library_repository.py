"""Library persistence port.

The core does not define a storage schema. It only needs to look an entry up by
the normalized identity hash (TrackQuery.identity_hash) and to upsert where the
file ended up plus the final job state.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

from soulfetch.domain.entities.download_job import DownloadState


@dataclass(frozen=True)
class LibraryEntry:
    """What the library knows about one track."""

    identity_hash: str
    artist: str
    title: str
    resolved_path: str | None = None
    status: DownloadState | None = None
    updated_at: datetime | None = None


class ILibraryRepository(ABC):
    """Interface for library bookkeeping storage."""

    @abstractmethod
    async def find_by_hash(self, identity_hash: str) -> LibraryEntry | None:
        """Find an existing entry by normalized identity hash."""
        pass

    @abstractmethod
    async def upsert_resolved_path(
        self,
        identity_hash: str,
        resolved_path: str | None,
        status: DownloadState,
        artist: str = "",
        title: str = "",
    ) -> None:
        """Insert or update the resolved file path and final status."""
        pass

    @abstractmethod
    async def list_entries(self) -> list[LibraryEntry]:
        """All entries (used by reconciliation)."""
        pass
