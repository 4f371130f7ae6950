"""Tests for Soulseek filename noise stripping."""

import pytest

from soulfetch.domain.value_objects.filename_normalization import (
    NormalizedFilename,
    extract_bpm,
    extract_key,
    normalize,
    normalize_with_extraction,
    strip_audio_extension,
)

# Hey future me - the idempotence grid below is the important one. normalize() runs
# a fixed-point loop, so every messy input here must be stable after one call.
MESSY_FILENAMES = [
    "Artist - Track [Official Video] (2023).mp3",
    "[xXuploaderXx] Daft_Punk_-_One_More_Time_(Remastered).flac",
    "Song {web.rip}",
    "Track [HD] [Explicit] [FLAC]",
    "(Deluxe_Edition) Album_Track",
    "[Official (2023) Video] Song",
    "  ..--Song--..  ",
    "song.mp3.mp3",
    "My_Song_-_",
    "Track (Live)",
    "Track 128bpm 8A [320].mp3",
    "___",
    "",
]


class TestNormalize:
    """Test normalize()."""

    def test_strips_video_marker_year_and_extension(self) -> None:
        """The classic YouTube-rip filename collapses to Artist - Track."""
        assert normalize("Artist - Track [Official Video] (2023).mp3") == "Artist - Track"

    def test_strips_uploader_tag_edition_and_underscores(self) -> None:
        """Uploader tags and edition markers vanish, underscores become spaces."""
        raw = "[xXuploaderXx] Daft_Punk_-_One_More_Time_(Remastered).flac"
        assert normalize(raw) == "Daft Punk - One More Time"

    def test_strips_curly_uploader_tag(self) -> None:
        assert normalize("Song {web.rip}") == "Song"

    def test_strips_multiple_noise_categories(self) -> None:
        assert normalize("Track [HD] [Explicit] [FLAC]") == "Track"

    def test_noise_matching_is_case_insensitive(self) -> None:
        assert normalize("Artist - Track (deluxe edition)") == "Artist - Track"
        assert normalize("Artist - Track [official video]") == "Artist - Track"

    def test_trims_dashes_and_dots_at_edges(self) -> None:
        assert normalize("My_Song_-_") == "My Song"
        assert normalize("  ..--Song--..  ") == "Song"

    def test_collapses_whitespace(self) -> None:
        assert normalize("Artist    -     Track") == "Artist - Track"

    def test_keeps_meaningful_parentheses(self) -> None:
        """Only known noise goes; (Live) is a different recording."""
        assert normalize("Track (Live)") == "Track (Live)"

    def test_keeps_unbracketed_year(self) -> None:
        assert normalize("Summer 2023") == "Summer 2023"

    def test_drops_repeated_audio_extension(self) -> None:
        assert normalize("song.mp3.mp3") == "song"

    def test_keeps_non_audio_extension(self) -> None:
        assert normalize("notes.txt") == "notes.txt"

    @pytest.mark.parametrize("raw", ["", "   ", "\t\n"])
    def test_empty_or_whitespace_returns_empty(self, raw: str) -> None:
        assert normalize(raw) == ""

    def test_only_noise_returns_empty(self) -> None:
        assert normalize("[HD] [Explicit]") == ""

    @pytest.mark.parametrize("raw", MESSY_FILENAMES)
    def test_is_idempotent(self, raw: str) -> None:
        once = normalize(raw)
        assert normalize(once) == once


class TestExtraction:
    """Test BPM/key extraction before stripping."""

    def test_extracts_bpm_and_key(self) -> None:
        result = normalize_with_extraction("Artist - Track 128 BPM 8A.mp3")

        assert result == NormalizedFilename(
            normalized="Artist - Track 128 BPM 8A", bpm="128", key="8A"
        )

    def test_extraction_runs_before_stripping(self) -> None:
        """The [320] format tag is stripped, but the tokens were read first."""
        result = normalize_with_extraction("Track 124bpm 11B [320].mp3")

        assert result.bpm == "124"
        assert result.key == "11B"
        assert "[320]" not in result.normalized

    def test_absent_tokens_are_none(self) -> None:
        result = normalize_with_extraction("Artist - Track.mp3")

        assert result.bpm is None
        assert result.key is None

    def test_empty_input(self) -> None:
        assert normalize_with_extraction("   ") == NormalizedFilename(normalized="")

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("Track 128bpm", "128"),
            ("Track 95 BPM", "95"),
            ("Track 1000bpm", None),
            ("Track bpm", None),
        ],
    )
    def test_extract_bpm(self, raw: str, expected: str | None) -> None:
        assert extract_bpm(raw) == expected

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("Track 8A", "8A"),
            ("Track 12B.mp3", "12B"),
            ("Track 13A", None),
            ("Track 8a", None),
            ("Track 0A", None),
            ("TRACK8A", None),
        ],
    )
    def test_extract_key(self, raw: str, expected: str | None) -> None:
        assert extract_key(raw) == expected


class TestStripAudioExtension:
    """Test strip_audio_extension()."""

    def test_strips_known_extension(self) -> None:
        assert strip_audio_extension("Song.FLAC") == "Song"

    def test_leaves_unknown_extension(self) -> None:
        assert strip_audio_extension("cover.jpg") == "cover.jpg"
