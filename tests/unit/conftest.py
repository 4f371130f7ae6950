"""Shared fixtures for unit tests."""

from dataclasses import replace
from datetime import UTC, datetime

import pytest

from soulfetch.domain.entities.download_job import DownloadState
from soulfetch.domain.ports.library_repository import ILibraryRepository, LibraryEntry


class InMemoryLibraryRepository(ILibraryRepository):
    """Dict-backed library repository with the same upsert rules as the SQL one."""

    def __init__(self) -> None:
        self.entries: dict[str, LibraryEntry] = {}
        self.upserts: list[tuple[str, str | None, DownloadState]] = []

    async def find_by_hash(self, identity_hash: str) -> LibraryEntry | None:
        return self.entries.get(identity_hash)

    async def upsert_resolved_path(
        self,
        identity_hash: str,
        resolved_path: str | None,
        status: DownloadState,
        artist: str = "",
        title: str = "",
    ) -> None:
        self.upserts.append((identity_hash, resolved_path, status))
        existing = self.entries.get(identity_hash)
        if existing is None:
            self.entries[identity_hash] = LibraryEntry(
                identity_hash=identity_hash,
                artist=artist,
                title=title,
                resolved_path=resolved_path,
                status=status,
                updated_at=datetime.now(UTC),
            )
            return

        keep_completed = existing.status == DownloadState.COMPLETED and status != DownloadState.COMPLETED
        self.entries[identity_hash] = replace(
            existing,
            artist=artist or existing.artist,
            title=title or existing.title,
            resolved_path=resolved_path if resolved_path is not None else existing.resolved_path,
            status=existing.status if keep_completed else status,
            updated_at=datetime.now(UTC),
        )

    async def list_entries(self) -> list[LibraryEntry]:
        return [self.entries[key] for key in sorted(self.entries)]


@pytest.fixture
def library_repository() -> InMemoryLibraryRepository:
    return InMemoryLibraryRepository()
