"""Library bookkeeping: record where finished downloads ended up.

Hey future me - the scheduler never touches the library table on its own for
anything beyond "already have it?" lookups and the completed upsert. This service
listens to JobFinishedEvent on the event bus and records the FINAL state of every
attempt (failed and cancelled too, so the UI can show "last attempt failed").

reconcile() is the "files moved" repair pass: it re-runs the FilePathResolver for
every entry whose stored path vanished and writes the new location back.
"""

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from soulfetch.application.services.file_path_resolver import FilePathResolver
from soulfetch.domain.entities.download_job import DownloadState
from soulfetch.domain.entities.events import DownloadEvent, JobFinishedEvent
from soulfetch.domain.ports.library_repository import ILibraryRepository, LibraryEntry
from soulfetch.infrastructure.events.event_bus import InMemoryEventBus
from soulfetch.infrastructure.observability.logger_template import log_operation

logger = logging.getLogger(__name__)

# Paused attempts are not an outcome - the job will run again
_RECORDED_STATES = frozenset(
    {DownloadState.COMPLETED, DownloadState.FAILED, DownloadState.CANCELLED}
)


@dataclass
class ReconcileResult:
    """Outcome of one reconcile pass."""

    checked: int = 0
    unchanged: int = 0
    relocated: int = 0
    missing: int = 0


class LibraryBookkeeper:
    """Keeps ILibraryRepository in sync with download outcomes."""

    def __init__(
        self,
        repository: ILibraryRepository,
        resolver: FilePathResolver | None = None,
    ) -> None:
        self._repository = repository
        self._resolver = resolver
        self._tasks: set[asyncio.Task[None]] = set()
        self._stats = {"recorded": 0, "skipped": 0, "errors": 0}

    def attach(self, bus: InMemoryEventBus) -> None:
        """Subscribe to finished events on the bus."""
        bus.subscribe(JobFinishedEvent, self.on_event)

    def on_event(self, event: DownloadEvent) -> None:
        """Event bus callback. Schedules the upsert without blocking the publisher."""
        if not isinstance(event, JobFinishedEvent):
            return
        task = asyncio.get_running_loop().create_task(self.record(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def record(self, event: JobFinishedEvent) -> bool:
        """Upsert the outcome of one finished attempt.

        Returns:
            True if something was written
        """
        if event.state not in _RECORDED_STATES or not event.identity_hash:
            self._stats["skipped"] += 1
            return False

        try:
            await self._repository.upsert_resolved_path(
                event.identity_hash, event.resolved_path, event.state
            )
        except Exception as e:
            # Bookkeeping must never take the download pipeline down with it
            self._stats["errors"] += 1
            logger.error(
                "library_bookkeeping.record_failed",
                exc_info=True,
                extra={"job_id": event.job_id, "error_type": type(e).__name__},
            )
            return False

        self._stats["recorded"] += 1
        logger.debug(
            "library_bookkeeping.recorded",
            extra={"job_id": event.job_id, "state": event.state.value},
        )
        return True

    async def drain(self) -> None:
        """Wait for scheduled upserts to finish (shutdown and tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def reconcile(self, entries: Iterable[LibraryEntry] | None = None) -> ReconcileResult:
        """Re-resolve entries whose files are gone and store the new paths.

        Args:
            entries: Entries to check, defaults to every entry in the repository
        """
        result = ReconcileResult()
        if self._resolver is None:
            logger.warning("library_bookkeeping.reconcile_skipped", extra={"reason": "no_resolver"})
            return result

        if entries is None:
            entries = await self._repository.list_entries()

        async with log_operation(logger, "library_reconcile") as fields:
            for entry in entries:
                if entry.status != DownloadState.COMPLETED or not entry.resolved_path:
                    continue
                result.checked += 1

                resolved = await self._resolver.resolve_async(
                    entry.resolved_path, entry.artist, entry.title
                )
                if resolved is None:
                    result.missing += 1
                    continue
                if resolved == Path(entry.resolved_path):
                    result.unchanged += 1
                    continue

                await self._repository.upsert_resolved_path(
                    entry.identity_hash,
                    str(resolved),
                    DownloadState.COMPLETED,
                    artist=entry.artist,
                    title=entry.title,
                )
                result.relocated += 1

            fields.update(
                checked=result.checked,
                relocated=result.relocated,
                missing=result.missing,
            )

        return result

    def get_stats(self) -> dict[str, int]:
        return dict(self._stats)
