"""Noise stripping for Soulseek filenames.

Hey future me - Soulseek filenames are FULL of junk that kills fuzzy matching:

    "Daft Punk - One More Time [Official Video] (2000) [320].mp3"
    "{xXuploaderXx} Daft_Punk_-_One_More_Time_(Remastered).flac"

Both are the same song, but Levenshtein thinks they're 40% different. This module
strips the junk so "Daft Punk - One More Time" is what the string matcher sees.

The pipeline (fixed order, see normalize()):
1. UPLOADER TAGS: [token] / {token} made of letters, digits, dash, dot, underscore
2. NOISE: video/quality markers, edition markers, bracketed years, explicit/clean, format tags
3. CLEANUP: underscores → spaces, collapse whitespace, trim spaces/dashes/dots

DJ files often carry BPM and Camelot key in the name ("Track 128bpm 8A.mp3"). Stripping
destroys that, so normalize_with_extraction() grabs those tokens FIRST.

Usage:
    from soulfetch.domain.value_objects.filename_normalization import (
        normalize,
        normalize_with_extraction,
    )

    normalize("Artist - Track [Official Video] (2023).mp3")  # "Artist - Track"
    result = normalize_with_extraction("Artist - Track 128 BPM 8A.mp3")
    result.bpm, result.key  # "128", "8A"
"""

import re
from dataclasses import dataclass

# =============================================================================
# REGEX PATTERNS
# =============================================================================

# Uploader tags: bracketed single tokens without spaces
# Examples:
#   "[xXuploaderXx] Song" → " Song"
#   "Song {web.rip}" → "Song "
# Hey future me - this also eats [HD], [FLAC], [320], [2023] since they're single tokens.
# That's fine, step 2 would strip them anyway.
UPLOADER_TAG_PATTERN = re.compile(r"\[[\w\-\.]+\]|\{[\w\-\.]+\}")

# Video/quality markers from YouTube rips
# Examples: "[Official Video]", "[Video]", "[HD]", "[4K]", "[720p]"
VIDEO_QUALITY_PATTERN = re.compile(
    r"\[(?:Official\s+)?Video\]|\[HD\]|\[HQ\]|\[4K\]|\[1080p\]|\[720p\]",
    re.IGNORECASE,
)

# Edition markers
# Examples: "(Remaster)", "(Remastered)", "(Deluxe Edition)", "(Anniversary Edition)"
EDITION_PATTERN = re.compile(
    r"\(Remaster(?:ed)?\)|\(Deluxe\s+Edition\)|\(Anniversary\s+Edition\)|\(Expanded\s+Edition\)",
    re.IGNORECASE,
)

# Bracketed 4-digit years: "(2023)", "[1999]"
YEAR_PATTERN = re.compile(r"[\[\(]\d{4}[\]\)]")

# Explicit/clean tags: "[Explicit]", "(Clean)"
EXPLICIT_PATTERN = re.compile(r"\[Explicit\]|\(Explicit\)|\[Clean\]|\(Clean\)", re.IGNORECASE)

# Redundant format tags: "[FLAC]", "[MP3]", "[320]", "[V0]", "[AAC]"
FORMAT_TAG_PATTERN = re.compile(r"\[FLAC\]|\[MP3\]|\[320\]|\[V0\]|\[AAC\]", re.IGNORECASE)

# Applied in this order by _strip_noise()
NOISE_PATTERNS: tuple[re.Pattern[str], ...] = (
    VIDEO_QUALITY_PATTERN,
    EDITION_PATTERN,
    YEAR_PATTERN,
    EXPLICIT_PATTERN,
    FORMAT_TAG_PATTERN,
)

# Tempo token: "128bpm", "128 BPM", "95 bpm"
BPM_PATTERN = re.compile(r"\b(\d{2,3})\s*bpm\b", re.IGNORECASE)

# Camelot key token as a whole word: "8A", "12B" (uppercase letter only, "8a" is not a key)
CAMELOT_KEY_PATTERN = re.compile(r"\b((?:1[0-2]|[1-9])[AB])\b")

# Trailing audio extension (one or more, "song.mp3.mp3" happens on Soulseek)
AUDIO_EXTENSION_PATTERN = re.compile(
    r"(?:\.(?:mp3|flac|m4a|wav|ogg|wma|aac|aiff|alac|ape|opus))+$",
    re.IGNORECASE,
)

WHITESPACE_RUN_PATTERN = re.compile(r"\s{2,}")
EDGE_DELIMITER_PATTERN = re.compile(r"^[\s\-\.]+|[\s\-\.]+$")


@dataclass(frozen=True)
class NormalizedFilename:
    """Result of normalize_with_extraction().

    Attributes:
        normalized: Comparison-safe string (same as normalize(raw))
        bpm: Tempo token digits found in the raw string, e.g. "128"
        key: Camelot key token found in the raw string, e.g. "8A"
    """

    normalized: str
    bpm: str | None = None
    key: str | None = None


# =============================================================================
# NORMALIZATION
# =============================================================================


def _strip_noise(value: str) -> str:
    value = UPLOADER_TAG_PATTERN.sub(" ", value)
    for pattern in NOISE_PATTERNS:
        value = pattern.sub(" ", value)
    return value


def _cleanup(value: str) -> str:
    value = value.replace("_", " ")
    value = WHITESPACE_RUN_PATTERN.sub(" ", value)
    return EDGE_DELIMITER_PATTERN.sub("", value)


def _single_pass(value: str) -> str:
    value = _strip_noise(value)
    value = AUDIO_EXTENSION_PATTERN.sub("", value.rstrip())
    return _cleanup(value)


# Hey future me - we loop _single_pass until nothing changes. One pass is NOT
# idempotent on nasty input: "(Deluxe_Edition)" only becomes a noise token after
# underscores turn into spaces, and "[Official (2023) Video]" only matches the
# video pattern once the year is gone. Every pass shortens the string or removes
# underscores, so the loop always terminates.
def normalize(raw: str) -> str:
    """Strip noise tokens from a raw filename.

    Args:
        raw: Raw filename or search-result string

    Returns:
        Comparison-safe string; empty string for empty/whitespace input.
        normalize(normalize(x)) == normalize(x) for every x.

    Example:
        >>> normalize("Artist - Track [Official Video] (2023).mp3")
        'Artist - Track'
    """
    if not raw or not raw.strip():
        return ""

    current = raw
    while True:
        cleaned = _single_pass(current)
        if cleaned == current:
            return cleaned
        current = cleaned


def normalize_with_extraction(raw: str) -> NormalizedFilename:
    """Normalize and recover BPM/key tokens that stripping would destroy.

    Extraction runs on the RAW string, before any stripping.

    Args:
        raw: Raw filename

    Returns:
        NormalizedFilename with bpm/key set to None when not present
    """
    if not raw or not raw.strip():
        return NormalizedFilename(normalized="")

    return NormalizedFilename(
        normalized=normalize(raw),
        bpm=extract_bpm(raw),
        key=extract_key(raw),
    )


def extract_bpm(raw: str) -> str | None:
    """Return the first tempo token's digits ("128bpm" → "128") or None."""
    match = BPM_PATTERN.search(raw)
    return match.group(1) if match else None


def extract_key(raw: str) -> str | None:
    """Return the first Camelot key token ("8A") or None."""
    match = CAMELOT_KEY_PATTERN.search(raw)
    return match.group(1) if match else None


def strip_audio_extension(filename: str) -> str:
    """Drop trailing audio extension(s): "Song.flac" → "Song"."""
    return AUDIO_EXTENSION_PATTERN.sub("", filename)
