"""Destination paths for downloaded files.

Hey future me - downloads land in a Lidarr-ish layout:

    <download_dir>/<Artist>/<Album>/<Artist> - <Title>.<ext>
    <download_dir>/<Artist>/<Artist> - <Title>.<ext>          (no album known)

The transfer writes to "<final>.<job id>.part" first and the scheduler renames it into
place once the size check passes. A half-written file never carries the real name, and
two jobs for the same track never share a partial file.
"""

import re
from dataclasses import dataclass
from pathlib import Path

from soulfetch.domain.entities.candidate import Candidate, TrackQuery

PART_SUFFIX = ".part"

# Characters illegal in filenames across operating systems
# Windows: < > : " / \ | ? *
# Linux: / and NUL
ILLEGAL_CHARS_PATTERN = re.compile(r'[<>"/\\|?*\x00-\x1f]')


def sanitize_component(value: str | None, fallback: str = "Unknown") -> str:
    """Make one path component safe on every OS.

    Colons become " -" ("Re: Stacks" → "Re - Stacks"), other illegal characters are
    removed, and leading/trailing dots and spaces are trimmed (Windows chokes on them).
    """
    if not value:
        return fallback
    result = value.replace(":", " -")
    result = ILLEGAL_CHARS_PATTERN.sub("", result)
    result = re.sub(r"\s{2,}", " ", result).strip(" .")
    return result or fallback


@dataclass(frozen=True)
class DownloadPathBuilder:
    """Builds final and partial paths under a download directory."""

    download_dir: Path

    def final_path(self, track: TrackQuery, candidate: Candidate) -> Path:
        artist = sanitize_component(track.artist)
        title = sanitize_component(track.title)
        extension = candidate.format or "bin"

        folder = self.download_dir / artist
        if track.album:
            folder = folder / sanitize_component(track.album)

        return folder / f"{artist} - {title}.{extension}"

    @staticmethod
    def part_path(final_path: Path, job_id: str) -> Path:
        """Per-job partial file next to the final destination."""
        return final_path.with_name(f"{final_path.name}.{job_id}{PART_SUFFIX}")

    def iter_part_files(self) -> list[Path]:
        """All partial files currently under the download directory."""
        if not self.download_dir.exists():
            return []
        return sorted(self.download_dir.rglob(f"*{PART_SUFFIX}"))
