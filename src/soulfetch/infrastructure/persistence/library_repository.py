"""SQLAlchemy implementation of the library repository."""

import logging

from sqlalchemy import select

from soulfetch.domain.entities.download_job import DownloadState
from soulfetch.domain.ports.library_repository import ILibraryRepository, LibraryEntry
from soulfetch.infrastructure.persistence.database import Database
from soulfetch.infrastructure.persistence.models import (
    LibraryEntryModel,
    ensure_utc_aware,
    utc_now,
)

logger = logging.getLogger(__name__)


def _to_entry(model: LibraryEntryModel) -> LibraryEntry:
    return LibraryEntry(
        identity_hash=model.identity_hash,
        artist=model.artist,
        title=model.title,
        resolved_path=model.resolved_path,
        status=DownloadState(model.status) if model.status else None,
        updated_at=ensure_utc_aware(model.updated_at) if model.updated_at else None,
    )


class SqlAlchemyLibraryRepository(ILibraryRepository):
    """Library entries stored in the library_entries table.

    Hey future me - this repository is long-lived (the scheduler holds it for its
    whole lifetime), so it opens a short session PER CALL through Database.session_scope()
    instead of holding one session across awaits.
    """

    def __init__(self, database: Database) -> None:
        self._database = database

    async def find_by_hash(self, identity_hash: str) -> LibraryEntry | None:
        async with self._database.session_scope() as session:
            model = await session.get(LibraryEntryModel, identity_hash)
            return _to_entry(model) if model else None

    # Yo, resolved_path=None on an EXISTING row keeps the old path. A failed retry of a
    # track we already own must not erase where the good copy lives.
    async def upsert_resolved_path(
        self,
        identity_hash: str,
        resolved_path: str | None,
        status: DownloadState,
        artist: str = "",
        title: str = "",
    ) -> None:
        async with self._database.session_scope() as session:
            model = await session.get(LibraryEntryModel, identity_hash)
            if model is None:
                session.add(
                    LibraryEntryModel(
                        identity_hash=identity_hash,
                        artist=artist,
                        title=title,
                        resolved_path=resolved_path,
                        status=status.value,
                        updated_at=utc_now(),
                    )
                )
                logger.debug("library_repository.inserted", extra={"identity_hash": identity_hash})
                return

            if resolved_path is not None:
                model.resolved_path = resolved_path
            if artist:
                model.artist = artist
            if title:
                model.title = title
            # A completed entry stays completed when a later attempt fails/cancels
            if model.status != DownloadState.COMPLETED.value or status == DownloadState.COMPLETED:
                model.status = status.value
            model.updated_at = utc_now()

    async def list_entries(self) -> list[LibraryEntry]:
        async with self._database.session_scope() as session:
            result = await session.execute(
                select(LibraryEntryModel).order_by(LibraryEntryModel.identity_hash)
            )
            return [_to_entry(model) for model in result.scalars().all()]
