"""Events the download scheduler publishes to the event sink.

Hey future me - these are the ONLY way other components learn about jobs. Nobody
reaches into a DownloadJob from the outside; they subscribe to these.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime

from soulfetch.domain.entities.download_job import DownloadState


@dataclass(frozen=True)
class JobStateChangedEvent:
    """A job moved from one lifecycle state to another."""

    job_id: str
    old_state: DownloadState
    new_state: DownloadState
    error_message: str | None = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True)
class JobProgressEvent:
    """Transfer progress. Fractions per job never decrease."""

    job_id: str
    fraction: float
    bytes_transferred: int
    speed: float = 0.0
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))


# Hey future me - exactly ONE of these per attempt, whatever happened (completed,
# failed, cancelled, paused, interrupted by shutdown). Bookkeeping listens to this
# instead of state changes so it can't double-count.
@dataclass(frozen=True)
class JobFinishedEvent:
    """An attempt ended and its slot was released."""

    job_id: str
    state: DownloadState
    attempt: int
    identity_hash: str = ""
    resolved_path: str | None = None
    error_message: str | None = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))


DownloadEvent = JobStateChangedEvent | JobProgressEvent | JobFinishedEvent
