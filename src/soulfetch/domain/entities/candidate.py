"""Search-side domain model: what we want and what the network offers.

Key Design Principles:
1. Immutable values: TrackQuery and Candidate are frozen, many Candidates map to one TrackQuery
2. Optional everything: Soulseek peers report whatever they feel like, None means "unknown"
3. No null-object track: "no candidate yet" is `Candidate | None`, never a sentinel instance
"""

import re
from dataclasses import dataclass, field
from pathlib import PurePosixPath

from soulfetch.domain.value_objects.scoring import LOSSLESS_FORMATS

_PATH_SPLIT_PATTERN = re.compile(r"[\\/]")


@dataclass(frozen=True)
class TrackQuery:
    """The wanted track.

    Hey future me - everything except artist/title is optional. Album/duration/year
    feed the metadata sub-score, bpm/key feed the musical sub-score, preferred_formats
    and min_bitrate feed the conditions sub-score. Leave them None and those
    sub-scores simply contribute 0.
    """

    artist: str
    title: str
    album: str | None = None
    duration: int | None = None  # seconds
    year: int | None = None
    bpm: float | None = None
    key: str | None = None  # Camelot notation, e.g. "8A"
    preferred_formats: tuple[str, ...] = ()
    min_bitrate: int | None = None

    @property
    def display_name(self) -> str:
        """Formatted display string: Artist - Title."""
        return f"{self.artist} - {self.title}"

    @property
    def search_text(self) -> str:
        """Query string sent to the network."""
        return f"{self.artist} {self.title}".strip()

    # Hey future me - this MUST stay stable, the library repository is keyed by it!
    # "Daft Punk" + "One More Time" → "daftpunk-onemoretime"
    @property
    def identity_hash(self) -> str:
        """Normalized identity used to find existing library entries."""
        artist = self.artist.lower().replace(" ", "")
        title = self.title.lower().replace(" ", "")
        return f"{artist}-{title}".strip("-")

    @property
    def has_requirements(self) -> bool:
        return bool(self.preferred_formats) or self.min_bitrate is not None


@dataclass(frozen=True)
class Candidate:
    """One file offered by one peer for a wanted track.

    Immutable once received from the search provider. `filename` is the full
    remote path as the peer shares it (Soulseek uses backslashes).
    """

    filename: str
    username: str
    artist: str | None = None
    title: str | None = None
    album: str | None = None
    bitrate: int | None = None  # kbps
    extension: str | None = None
    length: int | None = None  # seconds
    size: int | None = None  # bytes
    has_free_upload_slot: bool = False
    queue_length: int | None = None
    upload_speed: int | None = None  # bytes/s

    @property
    def path_parts(self) -> list[str]:
        return [part for part in _PATH_SPLIT_PATTERN.split(self.filename) if part]

    @property
    def basename(self) -> str:
        """Filename without remote directories."""
        parts = self.path_parts
        return parts[-1] if parts else ""

    @property
    def directory(self) -> str:
        """Remote directory portion (forward slashes)."""
        return "/".join(self.path_parts[:-1])

    @property
    def stem(self) -> str:
        """Basename without extension: "Artist - Title.mp3" → "Artist - Title"."""
        basename = self.basename
        suffix = PurePosixPath(basename).suffix
        if suffix and len(suffix) <= 6:
            return basename[: -len(suffix)]
        return basename

    @property
    def format(self) -> str:
        """Lower-case extension without the dot ("flac"), "" when unknown."""
        if self.extension:
            return self.extension.lower().lstrip(".")
        suffix = PurePosixPath(self.basename).suffix
        return suffix.lower().lstrip(".")

    @property
    def is_lossless(self) -> bool:
        return self.format in LOSSLESS_FORMATS

    @property
    def display_name(self) -> str:
        return f"{self.username}: {self.basename}"


@dataclass(frozen=True)
class ScoreBreakdown:
    """The sub-scores behind one candidate's score (all but tiebreaker in [0, 1])."""

    availability: float = 0.0
    conditions: float = 0.0
    quality: float = 0.0
    musical: float = 0.0
    metadata: float = 0.0
    string: float = 0.0
    tiebreaker: float = 0.0
    suspicious: bool = False


@dataclass(frozen=True)
class ScoredCandidate:
    """A candidate with its final score.

    `index` is the arrival position in the input list, kept so callers can
    reproduce the stable ordering on exact ties.
    """

    candidate: Candidate
    score: float
    breakdown: ScoreBreakdown = field(default_factory=ScoreBreakdown)
    index: int = 0
