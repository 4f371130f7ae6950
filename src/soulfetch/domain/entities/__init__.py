"""Domain entities."""

from soulfetch.domain.entities.candidate import (
    Candidate,
    ScoreBreakdown,
    ScoredCandidate,
    TrackQuery,
)
from soulfetch.domain.entities.download_job import DownloadJob, DownloadState
from soulfetch.domain.entities.events import (
    DownloadEvent,
    JobFinishedEvent,
    JobProgressEvent,
    JobStateChangedEvent,
)

__all__ = [
    "Candidate",
    "DownloadEvent",
    "DownloadJob",
    "DownloadState",
    "JobFinishedEvent",
    "JobProgressEvent",
    "JobStateChangedEvent",
    "ScoreBreakdown",
    "ScoredCandidate",
    "TrackQuery",
]
