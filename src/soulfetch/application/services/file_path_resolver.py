"""Find library files that moved or were renamed.

Hey future me - users reorganize their music folders ALL the time. When a library
entry points at a path that no longer exists, this resolver tries (cheapest first):

1. Fast check: does the stored path still exist? Done.
2. Exact filename: same basename somewhere under a library root (file moved).
3. Fuzzy: "Artist - Title" vs every audio file stem, best normalized_score above
   the threshold wins (file moved AND renamed).

The walk is blocking disk I/O, so async callers go through resolve_async() which
runs it in a worker thread. Permission errors, vanished files and missing roots are
logged and skipped - one unreadable folder never aborts the whole pass.
"""

import asyncio
import logging
import os
from collections.abc import Iterable, Iterator
from pathlib import Path

from soulfetch.domain.value_objects.string_distance import normalized_score
from soulfetch.infrastructure.observability.logger_template import warn_if_slow

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS: tuple[str, ...] = (".mp3", ".flac", ".m4a", ".wav", ".ogg", ".wma")
DEFAULT_FUZZY_THRESHOLD = 0.85
# A fuzzy walk slower than this usually means a network share or a huge root
SLOW_WALK_THRESHOLD_MS = 2000


class FilePathResolver:
    """Resolves moved/renamed audio files under a set of library roots."""

    def __init__(
        self,
        roots: Iterable[Path | str],
        extensions: Iterable[str] = DEFAULT_EXTENSIONS,
        threshold: float = DEFAULT_FUZZY_THRESHOLD,
    ) -> None:
        self._roots = [Path(root) for root in roots]
        self._extensions = tuple(
            ext.lower() if ext.startswith(".") else f".{ext.lower()}" for ext in extensions
        )
        self._threshold = threshold

    @property
    def roots(self) -> list[Path]:
        return list(self._roots)

    def resolve(self, expected_path: Path | str | None, artist: str, title: str) -> Path | None:
        """Locate a track's file.

        Args:
            expected_path: Where the library thinks the file is (may be None)
            artist: Track artist, used for fuzzy matching
            title: Track title, used for fuzzy matching

        Returns:
            Path of the file, or None if nothing matched
        """
        if expected_path:
            expected = Path(expected_path)
            if expected.is_file():
                return expected

            found = self._search_by_filename(expected.name)
            if found is not None:
                logger.info(
                    "resolver.filename_match",
                    extra={"expected": str(expected), "resolved": str(found)},
                )
                return found

        found = self._search_by_fuzzy_name(artist, title)
        if found is not None:
            return found

        logger.warning(
            "resolver.unresolved",
            extra={"artist": artist, "title": title, "expected": str(expected_path or "")},
        )
        return None

    async def resolve_async(
        self, expected_path: Path | str | None, artist: str, title: str
    ) -> Path | None:
        """resolve() in a worker thread so the event loop keeps running."""
        return await asyncio.to_thread(self.resolve, expected_path, artist, title)

    # =========================================================================
    # Search strategies
    # =========================================================================

    def _search_by_filename(self, filename: str) -> Path | None:
        # Same name means same suffix, so a non-audio name can never match an audio file
        if not filename or Path(filename).suffix.lower() not in self._extensions:
            return None
        for path in self._iter_files():
            if path.name == filename:
                return path
        return None

    def _search_by_fuzzy_name(self, artist: str, title: str) -> Path | None:
        if not artist.strip() or not title.strip():
            logger.debug("resolver.fuzzy_skipped", extra={"reason": "missing_metadata"})
            return None

        target = f"{artist} - {title}"
        best_path: Path | None = None
        best_score = self._threshold

        with warn_if_slow(logger, "resolver.fuzzy_walk", SLOW_WALK_THRESHOLD_MS, target=target):
            for path in self._iter_files():
                if path.suffix.lower() not in self._extensions:
                    continue
                score = normalized_score(target, path.stem)
                if score > best_score:
                    best_score = score
                    best_path = path

        if best_path is not None:
            logger.info(
                "resolver.fuzzy_match",
                extra={"target": target, "resolved": str(best_path), "score": round(best_score, 3)},
            )
        return best_path

    # =========================================================================
    # Walking
    # =========================================================================

    def _iter_files(self) -> Iterator[Path]:
        """Every file under every existing root, in a stable order."""
        for root in self._roots:
            if not root.is_dir():
                logger.warning("resolver.root_missing", extra={"root": str(root)})
                continue

            for dirpath, dirnames, filenames in os.walk(root, onerror=self._log_walk_error):
                dirnames.sort()
                for name in sorted(filenames):
                    path = Path(dirpath) / name
                    try:
                        if not path.is_file():
                            continue
                    except OSError as e:
                        logger.warning(
                            "resolver.file_unreadable",
                            extra={"path": str(path), "error": str(e)},
                        )
                        continue
                    yield path

    @staticmethod
    def _log_walk_error(error: OSError) -> None:
        logger.warning(
            "resolver.walk_error",
            extra={"path": getattr(error, "filename", None), "error": str(error)},
        )
