"""Download job entity and its lifecycle state machine.

Hey future me - a DownloadJob is the ONLY mutable thing in the download pipeline.
TrackQuery/Candidate are frozen values; the job owns state, progress, retry count
and error. Only the scheduler (and explicit user actions routed through it) mutate a
job, and every transition goes through the methods below.

State machine:

    PENDING ──start_search──► SEARCHING ──mark_queued──► QUEUED ──start_download──► DOWNLOADING
       ▲                          │                         │                          │
       │                          └─────────── pause ───────┴──────────► PAUSED ◄──────┤
       │◄──────────────── resume ────────────────────────────────────────┘             │
       │                                                                          complete
       │◄── hard_retry ── FAILED / CANCELLED                                           ▼
                                                                                  COMPLETED

    cancel: any non-terminal → CANCELLED
    fail:   any non-terminal → FAILED (error_message set)

Transition methods return True when applied and False on a guard violation. They
NEVER raise - a double-clicked "Cancel" button must be a harmless no-op.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from soulfetch.domain.entities.candidate import Candidate, TrackQuery


class DownloadState(str, Enum):
    """Lifecycle state of a download job. Exactly one holds at any instant."""

    PENDING = "pending"  # Waiting for a free slot
    SEARCHING = "searching"  # Slot acquired, asking the network
    QUEUED = "queued"  # Candidate chosen, transfer not started yet
    DOWNLOADING = "downloading"  # Bytes flowing
    PAUSED = "paused"  # User paused, resumable

    # Terminal states
    COMPLETED = "completed"
    FAILED = "failed"  # See error_message
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        """Check if the job currently holds a concurrency slot."""
        return self in _ACTIVE_STATES

    @property
    def is_terminal(self) -> bool:
        """Check if this is a terminal (final) state."""
        return self in _TERMINAL_STATES


_ACTIVE_STATES = frozenset(
    {DownloadState.SEARCHING, DownloadState.QUEUED, DownloadState.DOWNLOADING}
)
_TERMINAL_STATES = frozenset(
    {DownloadState.COMPLETED, DownloadState.FAILED, DownloadState.CANCELLED}
)
_PAUSABLE_STATES = frozenset(
    {DownloadState.SEARCHING, DownloadState.QUEUED, DownloadState.DOWNLOADING}
)
_RETRYABLE_STATES = frozenset({DownloadState.FAILED, DownloadState.CANCELLED})


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class DownloadJob:
    """One wanted track moving through search → selection → transfer.

    Attributes:
        track: The wanted track (immutable)
        candidate: Bound candidate, None until one is selected
        progress: Fraction in [0, 1], meaningful only in DOWNLOADING/COMPLETED
        error_message: Set only when entering FAILED
        attempt: Bumped every time the scheduler starts working on the job
    """

    track: TrackQuery
    id: str = field(default_factory=lambda: str(uuid4()))
    priority: int = 0
    state: DownloadState = DownloadState.PENDING
    candidate: Candidate | None = None
    progress: float = 0.0
    bytes_transferred: int = 0
    speed: float = 0.0  # bytes/s
    retry_count: int = 0
    attempt: int = 0
    error_message: str | None = None
    resolved_path: str | None = None
    created_at: datetime = field(default_factory=_utcnow)
    last_attempt_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    # =========================================================================
    # Guards
    # =========================================================================

    @property
    def can_pause(self) -> bool:
        return self.state in _PAUSABLE_STATES

    @property
    def can_resume(self) -> bool:
        return self.state == DownloadState.PAUSED

    @property
    def can_cancel(self) -> bool:
        return not self.state.is_terminal

    @property
    def can_hard_retry(self) -> bool:
        return self.state in _RETRYABLE_STATES

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    # =========================================================================
    # Scheduler-driven transitions
    # =========================================================================

    def start_search(self) -> bool:
        """PENDING → SEARCHING (the scheduler acquired a slot)."""
        if self.state != DownloadState.PENDING:
            return False
        self.state = DownloadState.SEARCHING
        self.attempt += 1
        self.last_attempt_at = _utcnow()
        return True

    def mark_queued(self, candidate: Candidate) -> bool:
        """SEARCHING → QUEUED with the selected candidate bound."""
        if self.state != DownloadState.SEARCHING:
            return False
        self.candidate = candidate
        self.state = DownloadState.QUEUED
        return True

    def start_download(self) -> bool:
        """QUEUED → DOWNLOADING (the provider accepted the transfer)."""
        if self.state != DownloadState.QUEUED:
            return False
        self.state = DownloadState.DOWNLOADING
        self.progress = 0.0
        self.bytes_transferred = 0
        if self.started_at is None:
            self.started_at = _utcnow()
        return True

    # Hey future me - progress only goes UP within an attempt. Providers sometimes
    # report a stale smaller byte count after a reconnect; we ignore those so listeners
    # never see a bar jump backwards.
    def update_progress(self, bytes_transferred: int, total_bytes: int | None, speed: float = 0.0) -> bool:
        """Record transfer progress. Only valid in DOWNLOADING, never decreases.

        Returns:
            True if the recorded progress changed
        """
        if self.state != DownloadState.DOWNLOADING:
            return False
        if bytes_transferred < self.bytes_transferred:
            return False

        if total_bytes:
            fraction = min(1.0, max(0.0, bytes_transferred / total_bytes))
        else:
            fraction = self.progress
        fraction = max(fraction, self.progress)

        changed = bytes_transferred != self.bytes_transferred or fraction != self.progress
        self.bytes_transferred = bytes_transferred
        self.progress = fraction
        self.speed = max(0.0, speed)
        return changed

    def complete(self, resolved_path: str | None = None) -> bool:
        """DOWNLOADING → COMPLETED, or SEARCHING → COMPLETED for a library hit."""
        if self.state not in (DownloadState.DOWNLOADING, DownloadState.SEARCHING):
            return False
        self.state = DownloadState.COMPLETED
        self.progress = 1.0
        self.speed = 0.0
        self.resolved_path = resolved_path
        self.completed_at = _utcnow()
        return True

    def fail(self, message: str) -> bool:
        """Any non-terminal state → FAILED with an error message."""
        if self.state.is_terminal:
            return False
        self.state = DownloadState.FAILED
        self.error_message = message or "Unknown error"
        self.speed = 0.0
        self.completed_at = _utcnow()
        return True

    def requeue(self) -> bool:
        """Active state → PENDING without touching retry count.

        Used when the scheduler shuts down mid-attempt or when hydrating jobs
        after a crash - the work was interrupted, not failed.
        """
        if not self.state.is_active:
            return False
        self.state = DownloadState.PENDING
        self._reset_transfer()
        return True

    # =========================================================================
    # User-initiated transitions
    # =========================================================================

    def cancel(self) -> bool:
        """Any non-terminal state → CANCELLED."""
        if not self.can_cancel:
            return False
        self.state = DownloadState.CANCELLED
        self.speed = 0.0
        self.completed_at = _utcnow()
        return True

    def pause(self) -> bool:
        """SEARCHING/QUEUED/DOWNLOADING → PAUSED. Retry count and error survive."""
        if not self.can_pause:
            return False
        self.state = DownloadState.PAUSED
        self.speed = 0.0
        return True

    def resume(self) -> bool:
        """PAUSED → PENDING, re-entering the queue."""
        if not self.can_resume:
            return False
        self.state = DownloadState.PENDING
        self._reset_transfer()
        return True

    def hard_retry(self) -> bool:
        """FAILED/CANCELLED → PENDING, bumping retry_count and wiping error/progress."""
        if not self.can_hard_retry:
            return False
        self.state = DownloadState.PENDING
        self.retry_count += 1
        self.error_message = None
        self.completed_at = None
        self._reset_transfer()
        return True

    def _reset_transfer(self) -> None:
        self.candidate = None
        self.progress = 0.0
        self.bytes_transferred = 0
        self.speed = 0.0
