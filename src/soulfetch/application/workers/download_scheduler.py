"""Download Scheduler - bounded worker pool driving DownloadJobs to a terminal state.

Hey future me - THIS IS THE DOWNLOAD PIPELINE!

One attempt of one job, in order:
1. Library check: already have it? → COMPLETED without touching the network
2. Search (coalesced: identical queries share ONE provider search)
3. Rank + select a candidate → QUEUED
4. Transfer into "<destination>.<job id>.part" → DOWNLOADING (progress events, throttled,
   stall watchdog)
5. Size check, atomic rename to the final name → COMPLETED
6. Library upsert

ARCHITECTURE:
- start() runs a dispatch loop. Each tick it admits PENDING jobs (priority first,
  then oldest) while the semaphore has free slots.
- Every admitted attempt runs in its OWN asyncio task. The semaphore is the only
  admission counter: acquired by the dispatcher, released in the task's done callback.
- cancel/pause set the job state FIRST, then cancel the task. The task sees
  CancelledError, tells the provider to abort, and the done callback releases the slot.
- JobFinishedEvent is published exactly once per attempt, from that same callback.
- Errors inside an attempt NEVER escape the task: DomainExceptions become FAILED
  with their message, anything else becomes FAILED with "Unexpected error: ...".
- A transfer that reports nothing for stall_timeout seconds is cancelled and fails as
  retryable, so auto-retry can pick it up.

The job map is guarded by a threading.Lock so event listeners on other threads
(a UI thread, a metrics exporter) can call get_job()/list_jobs() safely. All
mutation happens on the event loop thread.
"""

import asyncio
import logging
import os
import threading
import time
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from soulfetch.application.services.path_builder import DownloadPathBuilder
from soulfetch.application.services.ranking_service import CandidateRanker
from soulfetch.application.services.search_coalescer import SearchCoalescer
from soulfetch.config.settings import DownloadSettings, RankingSettings
from soulfetch.domain.entities.candidate import Candidate, TrackQuery
from soulfetch.domain.entities.download_job import DownloadJob, DownloadState
from soulfetch.domain.entities.events import (
    DownloadEvent,
    JobFinishedEvent,
    JobProgressEvent,
    JobStateChangedEvent,
)
from soulfetch.domain.exceptions import (
    DomainException,
    InvalidStateException,
    NoCandidatesError,
    ProviderError,
    SizeMismatchError,
    ValidationError,
)
from soulfetch.domain.ports.event_sink import IDownloadEventSink
from soulfetch.domain.ports.library_repository import ILibraryRepository
from soulfetch.domain.ports.search_provider import ISearchProvider, SearchFilters
from soulfetch.infrastructure.observability.logger_template import log_worker_health
from soulfetch.infrastructure.observability.logging import set_correlation_id

logger = logging.getLogger(__name__)

# How long we give the provider to acknowledge a remote cancel before moving on
CANCEL_TRANSFER_TIMEOUT = 5.0
# Log worker health every N dispatch cycles
HEALTH_LOG_EVERY = 100


class DownloadScheduler:
    """Runs download jobs with bounded concurrency.

    Usage:
        scheduler = create_download_scheduler(provider, event_sink=bus)
        runner = asyncio.create_task(scheduler.start())
        job_id = scheduler.enqueue(TrackQuery(artist="Daft Punk", title="One More Time"))
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        provider: ISearchProvider,
        event_sink: IDownloadEventSink | None = None,
        library: ILibraryRepository | None = None,
        settings: DownloadSettings | None = None,
        ranking_settings: RankingSettings | None = None,
        ranker: CandidateRanker | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            provider: Search/transfer backend
            event_sink: Receives state, progress and finished events (optional)
            library: Library repository for "already have it" checks and upserts (optional)
            settings: Download settings (concurrency, paths, retry policy)
            ranking_settings: Strategy and selection thresholds, ignored if ranker is given
            ranker: Pre-configured ranking engine
        """
        self._provider = provider
        self._event_sink = event_sink
        self._library = library
        self._settings = settings or DownloadSettings()

        if ranker is None:
            ranking = ranking_settings or RankingSettings()
            ranker = CandidateRanker(
                strategy=ranking.strategy,
                penalize_suspicious=ranking.penalize_suspicious,
                min_string_similarity=ranking.min_string_similarity,
                duration_tolerance=ranking.duration_tolerance,
            )
        self._ranker = ranker

        self._max_concurrent = self._settings.max_concurrent_downloads
        self._semaphore = asyncio.Semaphore(self._max_concurrent)
        self._path_builder = DownloadPathBuilder(Path(self._settings.download_dir))
        self._coalescer: SearchCoalescer[list[Candidate]] = SearchCoalescer()

        self._jobs: dict[str, DownloadJob] = {}
        self._jobs_lock = threading.Lock()
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._part_paths: dict[str, Path] = {}
        self._retry_handles: dict[str, asyncio.TimerHandle] = {}
        self._last_progress_emit: dict[str, float] = {}
        self._last_progress_sent: dict[str, tuple[int, float]] = {}
        self._retryable_failures: set[str] = set()

        self._wakeup = asyncio.Event()
        self._running = False

        # Lifecycle tracking
        self._cycles_completed = 0
        self._errors_total = 0
        self._start_time = time.time()

        # Stats
        self._stats: dict[str, int | str | None] = {
            "enqueued_total": 0,
            "attempts_started": 0,
            "completed_total": 0,
            "failed_total": 0,
            "cancelled_total": 0,
            "library_hits": 0,
            "auto_retries": 0,
            "last_cycle_at": None,
        }

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> None:
        """Run the dispatch loop until stop() is called."""
        if self._running:
            raise InvalidStateException("Download scheduler is already running")
        self._running = True
        self._start_time = time.time()

        try:
            await asyncio.to_thread(self.cleanup_orphaned_parts)
        except OSError as e:
            logger.warning("download_scheduler.orphan_cleanup_failed", extra={"error": str(e)})

        logger.info(
            "worker.started",
            extra={
                "worker": "download_scheduler",
                "max_concurrent_downloads": self._max_concurrent,
                "download_dir": str(self._settings.download_dir),
                "strategy": self._ranker.strategy.value,
            },
        )

        while self._running:
            self._wakeup.clear()
            try:
                await self._dispatch_pending()
                self._cycles_completed += 1
                self._stats["last_cycle_at"] = datetime.now(UTC).isoformat()

                if self._cycles_completed % HEALTH_LOG_EVERY == 0:
                    log_worker_health(
                        logger,
                        "download_scheduler",
                        cycles=self._cycles_completed,
                        errors=self._errors_total,
                        uptime_seconds=time.time() - self._start_time,
                        active=len(self._tasks),
                        completed_total=self._stats["completed_total"],
                        failed_total=self._stats["failed_total"],
                    )
            except Exception as e:
                self._errors_total += 1
                logger.error(
                    "download_scheduler.loop_error",
                    exc_info=True,
                    extra={"error_type": type(e).__name__, "cycle": self._cycles_completed},
                )

            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=self._settings.poll_interval)
            except TimeoutError:
                pass

        logger.info(
            "worker.stopped",
            extra={
                "worker": "download_scheduler",
                "cycles_completed": self._cycles_completed,
                "errors_total": self._errors_total,
                "uptime_seconds": round(time.time() - self._start_time, 2),
                "completed_total": self._stats["completed_total"],
            },
        )

    async def stop(self) -> None:
        """Stop dispatching and interrupt in-flight attempts.

        Interrupted jobs go back to PENDING (retry count untouched) so a later
        start() or a hydrate() after restart picks them up again.
        """
        self._running = False
        self._wakeup.set()

        for handle in self._retry_handles.values():
            handle.cancel()
        self._retry_handles.clear()

        tasks = list(self._tasks.items())
        for job_id, task in tasks:
            job = self.get_job(job_id)
            if job is not None:
                self._transition(job, job.requeue)
            task.cancel()
        if tasks:
            await asyncio.gather(*(task for _, task in tasks), return_exceptions=True)

        self._coalescer.cancel_all()

    def get_status(self) -> dict[str, Any]:
        """Get current worker status for monitoring."""
        with self._jobs_lock:
            states: dict[str, int] = {}
            for job in self._jobs.values():
                states[job.state.value] = states.get(job.state.value, 0) + 1
        return {
            "name": "Download Scheduler",
            "running": self._running,
            "status": "active" if self._running else "stopped",
            "max_concurrent_downloads": self._max_concurrent,
            "active_attempts": len(self._tasks),
            "jobs_by_state": states,
            "searches": self._coalescer.get_stats(),
            "strategy": self._ranker.strategy.value,
            "stats": self._stats.copy(),
        }

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def ranker(self) -> CandidateRanker:
        return self._ranker

    # =========================================================================
    # JOB REGISTRY
    # =========================================================================

    def enqueue(self, track: TrackQuery, priority: int = 0) -> str:
        """Add a job for track and return its id.

        Raises:
            ValidationError: If the track has no artist or title
        """
        if not track.artist.strip() or not track.title.strip():
            raise ValidationError("Track query needs both artist and title")

        job = DownloadJob(track=track, priority=priority)
        with self._jobs_lock:
            self._jobs[job.id] = job
        self._stats["enqueued_total"] = int(self._stats["enqueued_total"] or 0) + 1

        logger.info(
            "download_scheduler.job_enqueued",
            extra={"job_id": job.id, "track": track.display_name, "priority": priority},
        )
        self._wakeup.set()
        return job.id

    def get_job(self, job_id: str) -> DownloadJob | None:
        with self._jobs_lock:
            return self._jobs.get(job_id)

    def list_jobs(self, state: DownloadState | None = None) -> list[DownloadJob]:
        """Jobs in creation order, optionally filtered by state."""
        with self._jobs_lock:
            jobs = sorted(self._jobs.values(), key=lambda job: job.created_at)
        if state is not None:
            jobs = [job for job in jobs if job.state == state]
        return jobs

    def remove_job(self, job_id: str) -> bool:
        """Forget a job. Active jobs must be cancelled or paused first.

        Returns:
            True if the job was removed
        """
        job = self.get_job(job_id)
        if job is None or job.state.is_active:
            return False

        handle = self._retry_handles.pop(job_id, None)
        if handle is not None:
            handle.cancel()
        self._discard_part_file(job_id)
        with self._jobs_lock:
            del self._jobs[job_id]
        self._last_progress_emit.pop(job_id, None)
        self._last_progress_sent.pop(job_id, None)
        logger.debug("download_scheduler.job_removed", extra={"job_id": job_id})
        return True

    def hydrate(self, jobs: Iterable[DownloadJob]) -> int:
        """Load jobs restored from storage after a restart.

        Hey future me - a job that was SEARCHING/QUEUED/DOWNLOADING when the process
        died never finished that attempt. We put it back to PENDING so it runs again.

        Returns:
            Number of interrupted jobs that were requeued
        """
        requeued = 0
        for job in jobs:
            if job.id in self._tasks:
                continue
            if job.state.is_active:
                old_state = job.state
                job.requeue()
                self._publish(JobStateChangedEvent(job.id, old_state, job.state))
                requeued += 1
            with self._jobs_lock:
                self._jobs[job.id] = job

        if requeued:
            logger.info("download_scheduler.jobs_hydrated", extra={"requeued": requeued})
        self._wakeup.set()
        return requeued

    async def wait_until_idle(self, timeout: float | None = None) -> bool:
        """Wait until no attempt is running and nothing is left to dispatch.

        Returns:
            True if idle was reached, False on timeout
        """

        async def _idle() -> None:
            while True:
                tasks = list(self._tasks.values())
                if tasks:
                    await asyncio.wait(tasks)
                    continue
                if not self._running:
                    return
                if not self._retry_handles and not self.list_jobs(DownloadState.PENDING):
                    return
                await asyncio.sleep(0.01)

        try:
            await asyncio.wait_for(_idle(), timeout=timeout)
        except TimeoutError:
            return False
        return True

    # =========================================================================
    # USER ACTIONS
    # =========================================================================

    async def cancel(self, job_id: str) -> bool:
        """Cancel a job in any non-terminal state."""
        job = self.get_job(job_id)
        if job is None:
            return False

        handle = self._retry_handles.pop(job_id, None)
        if handle is not None:
            handle.cancel()

        if not self._transition(job, job.cancel):
            return False

        task = self._tasks.get(job_id)
        if task is not None:
            task.cancel()
            await asyncio.wait([task])
        else:
            # Pending or paused: no attempt running, clean up what a pause left behind
            self._discard_part_file(job_id)

        self._stats["cancelled_total"] = int(self._stats["cancelled_total"] or 0) + 1
        logger.info("download_scheduler.job_cancelled", extra={"job_id": job_id})
        self._wakeup.set()
        return True

    async def pause(self, job_id: str) -> bool:
        """Pause an active job. The partial file is kept."""
        job = self.get_job(job_id)
        if job is None or not self._transition(job, job.pause):
            return False

        task = self._tasks.get(job_id)
        if task is not None:
            task.cancel()
            await asyncio.wait([task])

        logger.info("download_scheduler.job_paused", extra={"job_id": job_id})
        self._wakeup.set()
        return True

    async def resume(self, job_id: str) -> bool:
        """Put a paused job back in the queue."""
        job = self.get_job(job_id)
        if job is None or not self._transition(job, job.resume):
            return False
        logger.info("download_scheduler.job_resumed", extra={"job_id": job_id})
        self._wakeup.set()
        return True

    async def hard_retry(self, job_id: str) -> bool:
        """Retry a failed or cancelled job from scratch."""
        job = self.get_job(job_id)
        if job is None:
            return False

        handle = self._retry_handles.pop(job_id, None)
        if handle is not None:
            handle.cancel()

        if not self._transition(job, job.hard_retry):
            return False
        logger.info(
            "download_scheduler.job_retried",
            extra={"job_id": job_id, "retry_count": job.retry_count},
        )
        self._wakeup.set()
        return True

    async def cancel_all(self) -> int:
        """Cancel every non-terminal job.

        Hey future me - this never touches the semaphore. States flip first, then all
        tasks are cancelled together, then we wait for their done callbacks to hand
        the slots back. No acquire anywhere means no deadlock.

        Returns:
            Number of jobs cancelled
        """
        for handle in self._retry_handles.values():
            handle.cancel()
        self._retry_handles.clear()

        cancelled = 0
        tasks: list[asyncio.Task[None]] = []
        for job in self.list_jobs():
            if not self._transition(job, job.cancel):
                continue
            cancelled += 1
            task = self._tasks.get(job.id)
            if task is not None:
                task.cancel()
                tasks.append(task)
            else:
                self._discard_part_file(job.id)

        if tasks:
            await asyncio.wait(tasks)

        self._stats["cancelled_total"] = int(self._stats["cancelled_total"] or 0) + cancelled
        logger.info("download_scheduler.cancelled_all", extra={"cancelled": cancelled})
        self._wakeup.set()
        return cancelled

    def cleanup_orphaned_parts(self) -> int:
        """Delete .part files in the download directory that no job owns.

        Returns:
            Number of files removed
        """
        owned = set(self._part_paths.values())
        removed = 0
        for part in self._path_builder.iter_part_files():
            if part in owned:
                continue
            try:
                part.unlink()
                removed += 1
            except OSError as e:
                logger.warning(
                    "download_scheduler.orphan_unlink_failed",
                    extra={"path": str(part), "error": str(e)},
                )
        if removed:
            logger.info("download_scheduler.orphans_removed", extra={"removed": removed})
        return removed

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def _pending_in_order(self) -> list[DownloadJob]:
        pending = self.list_jobs(DownloadState.PENDING)
        # Higher priority first, then oldest first (list_jobs is already by created_at)
        return sorted(pending, key=lambda job: -job.priority)

    async def _dispatch_pending(self) -> None:
        for job in self._pending_in_order():
            if not self._running or self._semaphore.locked():
                return
            # Uncontended acquire completes without suspending
            await self._semaphore.acquire()
            if not self._transition(job, job.start_search):
                self._semaphore.release()
                continue

            self._stats["attempts_started"] = int(self._stats["attempts_started"] or 0) + 1
            task = asyncio.create_task(self._run_attempt(job), name=f"download-{job.id}")
            self._tasks[job.id] = task
            # Hey future me - a done callback, NOT a finally block! A task cancelled
            # before its first step never runs its body, so a finally would leak the slot.
            task.add_done_callback(lambda _done, j=job: self._finish_attempt(j))

    # =========================================================================
    # ONE ATTEMPT
    # =========================================================================

    async def _run_attempt(self, job: DownloadJob) -> None:
        set_correlation_id(job.id)
        logger.info(
            "download_scheduler.attempt_started",
            extra={"job_id": job.id, "track": job.track.display_name, "attempt": job.attempt},
        )

        try:
            await self._execute(job)
        except ProviderError as e:
            if e.retryable:
                self._retryable_failures.add(job.id)
            self._fail(job, e)
        except DomainException as e:
            self._fail(job, e)
        except Exception as e:
            logger.error(
                "download_scheduler.attempt_crashed",
                exc_info=True,
                extra={"job_id": job.id, "error_type": type(e).__name__},
            )
            self._fail(job, e, message=f"Unexpected error: {e}")

    async def _execute(self, job: DownloadJob) -> None:
        track = job.track

        # 1. Already in the library?
        if await self._complete_from_library(job):
            return

        # 2. Search (shared with any job asking the same thing right now)
        candidates = await self._coalescer.run(
            track.search_text, lambda: self._collect_candidates(track)
        )

        # 3. Rank and select
        chosen, total = self._ranker.select(track, candidates)
        if chosen is None:
            raise NoCandidatesError(track.display_name, total)
        candidate = chosen.candidate
        self._transition(job, job.mark_queued, candidate)

        final_path = self._path_builder.final_path(track, candidate)
        part_path = self._path_builder.part_path(final_path, job.id)
        self._part_paths[job.id] = part_path
        await asyncio.to_thread(part_path.parent.mkdir, parents=True, exist_ok=True)

        # 4. Transfer
        self._transition(job, job.start_download)
        self._last_progress_emit.pop(job.id, None)
        self._last_progress_sent.pop(job.id, None)
        written = await self._transfer(job, candidate, part_path)

        # 5. Verify and move into place
        if candidate.size and written != candidate.size:
            raise SizeMismatchError(candidate.size, written)
        await asyncio.to_thread(os.replace, part_path, final_path)
        self._part_paths.pop(job.id, None)

        job.update_progress(written, candidate.size or written, job.speed)
        self._emit_progress(job, force=True)
        self._transition(job, job.complete, str(final_path))

        # 6. Library bookkeeping
        await self._record_in_library(job)

    async def _complete_from_library(self, job: DownloadJob) -> bool:
        if self._library is None:
            return False
        entry = await self._library.find_by_hash(job.track.identity_hash)
        if entry is None or entry.status != DownloadState.COMPLETED or not entry.resolved_path:
            return False
        if not await asyncio.to_thread(Path(entry.resolved_path).is_file):
            return False

        self._transition(job, job.complete, entry.resolved_path)
        self._stats["library_hits"] = int(self._stats["library_hits"] or 0) + 1
        logger.info(
            "download_scheduler.library_hit",
            extra={"job_id": job.id, "path": entry.resolved_path},
        )
        return True

    async def _collect_candidates(self, track: TrackQuery) -> list[Candidate]:
        # Format/bitrate preferences are scored, not filtered, so no hard filters here
        filters = SearchFilters(
            timeout_seconds=self._settings.search_timeout,
            max_results=self._settings.max_search_results,
        )
        candidates: list[Candidate] = []
        started = time.monotonic()
        async for candidate in self._provider.search(track.search_text, filters):
            candidates.append(candidate)
            if len(candidates) >= self._settings.max_search_results:
                break
        logger.info(
            "download_scheduler.search_completed",
            extra={
                "query": track.search_text,
                "results": len(candidates),
                "duration_ms": int((time.monotonic() - started) * 1000),
            },
        )
        return candidates

    async def _transfer(self, job: DownloadJob, candidate: Candidate, part_path: Path) -> int:
        """Run the provider transfer under the stall watchdog.

        Hey future me - the watchdog only knows what the provider reports. Before the
        first byte (peer still has us in its queue) any progress report counts as alive.
        Once data flows, only NEW bytes do. A provider that goes completely silent
        for stall_timeout seconds gets cancelled and the attempt fails as retryable.
        """
        last_activity = time.monotonic()

        def on_progress(transferred: int, total: int | None, speed: float) -> None:
            nonlocal last_activity
            before = job.bytes_transferred
            if job.update_progress(transferred, total or candidate.size, speed):
                self._emit_progress(job)
            if before == 0 or job.bytes_transferred > before:
                last_activity = time.monotonic()

        transfer = asyncio.ensure_future(self._provider.transfer(candidate, part_path, on_progress))
        stall_timeout = self._settings.stall_timeout
        try:
            if not stall_timeout:
                return await transfer
            tick = min(1.0, stall_timeout / 4)
            while True:
                done, _ = await asyncio.wait({transfer}, timeout=tick)
                if done:
                    return transfer.result()
                idle = time.monotonic() - last_activity
                if idle > stall_timeout:
                    break
        except asyncio.CancelledError:
            await self._abort_transfer(job, candidate, transfer)
            raise

        logger.warning(
            "download_scheduler.transfer_stalled",
            extra={
                "job_id": job.id,
                "idle_seconds": round(idle, 1),
                "bytes_transferred": job.bytes_transferred,
                "username": candidate.username,
            },
        )
        await self._abort_transfer(job, candidate, transfer)
        raise ProviderError(f"Transfer stalled: no data for {int(idle)}s", retryable=True)

    async def _abort_transfer(
        self, job: DownloadJob, candidate: Candidate, transfer: "asyncio.Future[int]"
    ) -> None:
        transfer.cancel()
        await asyncio.wait({transfer})
        if not transfer.cancelled() and transfer.exception() is not None:
            # Finished with an error while we were tearing it down, nobody wants the result
            logger.debug(
                "download_scheduler.transfer_abort_error",
                extra={"job_id": job.id, "error_type": type(transfer.exception()).__name__},
            )
        await self._cancel_remote(job, candidate)

    async def _cancel_remote(self, job: DownloadJob, candidate: Candidate) -> None:
        try:
            await asyncio.wait_for(
                self._provider.cancel_transfer(candidate), timeout=CANCEL_TRANSFER_TIMEOUT
            )
        except (DomainException, TimeoutError) as e:
            logger.warning(
                "download_scheduler.remote_cancel_failed",
                extra={"job_id": job.id, "error": str(e), "error_type": type(e).__name__},
            )

    async def _record_in_library(self, job: DownloadJob) -> None:
        if self._library is None:
            return
        try:
            await self._library.upsert_resolved_path(
                job.track.identity_hash,
                job.resolved_path,
                DownloadState.COMPLETED,
                artist=job.track.artist,
                title=job.track.title,
            )
        except Exception as e:
            # The file is on disk, a bookkeeping hiccup doesn't undo the download
            logger.error(
                "download_scheduler.library_upsert_failed",
                exc_info=True,
                extra={"job_id": job.id, "error_type": type(e).__name__},
            )

    def _fail(self, job: DownloadJob, error: Exception, message: str | None = None) -> None:
        text = message or getattr(error, "message", None) or str(error)
        if self._transition(job, job.fail, text):
            self._stats["failed_total"] = int(self._stats["failed_total"] or 0) + 1
            logger.warning(
                "download_scheduler.job_failed",
                extra={
                    "job_id": job.id,
                    "track": job.track.display_name,
                    "error": text,
                    "error_type": type(error).__name__,
                    "attempt": job.attempt,
                },
            )

    def _finish_attempt(self, job: DownloadJob) -> None:
        """Release the slot and publish the attempt's single finished event.

        Runs as the task's done callback, before anyone awaiting the task resumes.
        """
        self._tasks.pop(job.id, None)
        self._semaphore.release()
        retryable = job.id in self._retryable_failures
        self._retryable_failures.discard(job.id)

        # cancel()/pause()/stop() set the state before cancelling the task. Still
        # active here means something else cancelled it (loop shutdown): interrupted.
        if job.state.is_active:
            self._transition(job, job.requeue)

        if job.state in (DownloadState.FAILED, DownloadState.CANCELLED):
            self._discard_part_file(job.id)
        if job.state == DownloadState.COMPLETED:
            self._stats["completed_total"] = int(self._stats["completed_total"] or 0) + 1

        self._publish(
            JobFinishedEvent(
                job_id=job.id,
                state=job.state,
                attempt=job.attempt,
                identity_hash=job.track.identity_hash,
                resolved_path=job.resolved_path,
                error_message=job.error_message,
            )
        )
        logger.info(
            "download_scheduler.attempt_finished",
            extra={"job_id": job.id, "state": job.state.value, "attempt": job.attempt},
        )

        if job.state == DownloadState.FAILED and retryable:
            self._schedule_auto_retry(job)
        self._wakeup.set()

    # =========================================================================
    # AUTO RETRY
    # =========================================================================

    def _schedule_auto_retry(self, job: DownloadJob) -> None:
        if not self._settings.auto_retry or not self._running:
            return
        if job.retry_count >= self._settings.max_retries:
            logger.info(
                "download_scheduler.retries_exhausted",
                extra={"job_id": job.id, "retry_count": job.retry_count},
            )
            return

        # 5s, 10s, 20s, ... Waiting happens on the loop's timer, not in a slot
        delay = self._settings.retry_base_delay * (2**job.retry_count)
        loop = asyncio.get_running_loop()
        self._retry_handles[job.id] = loop.call_later(delay, self._auto_retry, job.id)
        logger.info(
            "download_scheduler.retry_scheduled",
            extra={"job_id": job.id, "delay_seconds": delay, "retry_count": job.retry_count},
        )

    def _auto_retry(self, job_id: str) -> None:
        self._retry_handles.pop(job_id, None)
        job = self.get_job(job_id)
        if job is None or job.state != DownloadState.FAILED:
            return
        if self._transition(job, job.hard_retry):
            self._stats["auto_retries"] = int(self._stats["auto_retries"] or 0) + 1
            self._wakeup.set()

    # =========================================================================
    # EVENTS / HELPERS
    # =========================================================================

    def _transition(self, job: DownloadJob, method: Callable[..., bool], *args: Any) -> bool:
        """Apply a job transition and publish the state change if it happened."""
        old_state = job.state
        with self._jobs_lock:
            applied = method(*args)
        if applied and job.state != old_state:
            self._publish(
                JobStateChangedEvent(
                    job_id=job.id,
                    old_state=old_state,
                    new_state=job.state,
                    error_message=job.error_message if job.state == DownloadState.FAILED else None,
                )
            )
            logger.debug(
                "download_scheduler.state_changed",
                extra={"job_id": job.id, "from": old_state.value, "to": job.state.value},
            )
        return applied

    def _emit_progress(self, job: DownloadJob, force: bool = False) -> None:
        # One event per progress_interval per job; force=True is the final one
        snapshot = (job.bytes_transferred, job.progress)
        if self._last_progress_sent.get(job.id) == snapshot:
            return
        now = time.monotonic()
        last = self._last_progress_emit.get(job.id)
        if not force and last is not None and now - last < self._settings.progress_interval:
            return
        self._last_progress_emit[job.id] = now
        self._last_progress_sent[job.id] = snapshot
        self._publish(
            JobProgressEvent(
                job_id=job.id,
                fraction=job.progress,
                bytes_transferred=job.bytes_transferred,
                speed=job.speed,
            )
        )

    def _publish(self, event: DownloadEvent) -> None:
        if self._event_sink is None:
            return
        try:
            self._event_sink.publish(event)
        except Exception as e:
            logger.error(
                "download_scheduler.publish_failed",
                exc_info=True,
                extra={"event_type": type(event).__name__, "error_type": type(e).__name__},
            )

    def _discard_part_file(self, job_id: str) -> None:
        part_path = self._part_paths.pop(job_id, None)
        if part_path is None:
            return
        try:
            part_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(
                "download_scheduler.part_unlink_failed",
                extra={"job_id": job_id, "path": str(part_path), "error": str(e)},
            )


def create_download_scheduler(
    provider: ISearchProvider,
    event_sink: IDownloadEventSink | None = None,
    library: ILibraryRepository | None = None,
    settings: DownloadSettings | None = None,
    ranking_settings: RankingSettings | None = None,
) -> DownloadScheduler:
    """Factory function to create a DownloadScheduler.

    Args:
        provider: Search/transfer backend
        event_sink: Event sink for job events
        library: Library repository
        settings: Download settings (defaults from environment)
        ranking_settings: Ranking settings (defaults from environment)

    Returns:
        Configured DownloadScheduler instance
    """
    return DownloadScheduler(
        provider=provider,
        event_sink=event_sink,
        library=library,
        settings=settings or DownloadSettings(),
        ranking_settings=ranking_settings or RankingSettings(),
    )
