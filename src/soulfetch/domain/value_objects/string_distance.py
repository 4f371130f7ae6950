"""Edit-distance similarity over canonicalized filenames.

Hey future me - this is the ONE place where "how similar are these two names" is
decided. The ranking engine uses it for query ↔ candidate relevance, the file path
resolver uses it for "Artist - Title" ↔ file on disk.

Both sides are CANONICALIZED first (normalize → letters/digits only → lowercase), so
"Daft_Punk - One More Time [HD].mp3" and "daft punk one more time" compare as equal.

The path helpers live here too because they answer the same question for BPM/key:
"where in this path is the token, and how much do we trust it?"
"""

import re
from collections.abc import Callable
from dataclasses import dataclass

from rapidfuzz.distance import Levenshtein

from soulfetch.domain.value_objects.filename_normalization import (
    extract_bpm,
    extract_key,
    normalize,
)

# Confidence decay by directory depth (0 = filename itself)
FILENAME_CONFIDENCE = 1.0
PARENT_DIR_CONFIDENCE = 0.9
DEEP_PATH_CONFIDENCE = 0.7

_PATH_SEPARATOR_PATTERN = re.compile(r"[\\/]")


def canonicalize(value: str) -> str:
    """Normalize, keep only letters/digits, lowercase.

    Example:
        >>> canonicalize("Daft_Punk - One More Time [HD].mp3")
        'daftpunkonemoretime'
    """
    return "".join(ch for ch in normalize(value) if ch.isalnum()).lower()


def distance(a: str, b: str) -> int:
    """Levenshtein edit distance between the canonicalized inputs.

    Symmetric: distance(a, b) == distance(b, a).
    """
    return Levenshtein.distance(canonicalize(a), canonicalize(b))


def normalized_score(a: str, b: str) -> float:
    """Similarity in [0, 1]: 1.0 identical, 0.0 maximally different.

    Score is 1 - distance / length of the longer canonical string.

    Args:
        a: First string (raw, canonicalized here)
        b: Second string (raw, canonicalized here)

    Returns:
        1.0 when both canonicalize to empty, 0.0 when exactly one does.
    """
    left = canonicalize(a)
    right = canonicalize(b)

    if not left and not right:
        return 1.0
    if not left or not right:
        return 0.0

    longest = max(len(left), len(right))
    return 1.0 - Levenshtein.distance(left, right) / longest


# =============================================================================
# PATH-AWARE TOKEN EXTRACTION
# =============================================================================


@dataclass(frozen=True)
class PathToken:
    """A BPM/key token found somewhere in a path.

    Attributes:
        value: Token as found ("128" for BPM, "8A" for key)
        confidence: 1.0 in the filename, 0.9 one folder up, 0.7 further up
        depth: 0 = filename, 1 = parent folder, ...
    """

    value: str
    confidence: float
    depth: int

    @property
    def as_float(self) -> float:
        return float(self.value)


def _confidence_for_depth(depth: int) -> float:
    if depth == 0:
        return FILENAME_CONFIDENCE
    if depth == 1:
        return PARENT_DIR_CONFIDENCE
    return DEEP_PATH_CONFIDENCE


def _scan_path(path: str, extractor: Callable[[str], str | None]) -> PathToken | None:
    # Soulseek paths mix separators ("@@share\Music/House\track.mp3"), split on both
    parts = [part for part in _PATH_SEPARATOR_PATTERN.split(path) if part]
    for depth, part in enumerate(reversed(parts)):
        value = extractor(part)
        if value is not None:
            return PathToken(value=value, confidence=_confidence_for_depth(depth), depth=depth)
    return None


def extract_bpm_from_path(path: str) -> PathToken | None:
    """Find the nearest tempo token scanning from the filename upward.

    Example:
        >>> extract_bpm_from_path("Music/House 128 BPM/track.mp3")
        PathToken(value='128', confidence=0.9, depth=1)
    """
    if not path:
        return None
    return _scan_path(path, extract_bpm)


def extract_key_from_path(path: str) -> PathToken | None:
    """Find the nearest Camelot key token scanning from the filename upward."""
    if not path:
        return None
    return _scan_path(path, extract_key)
