"""Tests for TrackQuery and Candidate values."""

import pytest

from soulfetch.domain.entities.candidate import Candidate, TrackQuery


class TestTrackQuery:
    """Test TrackQuery helpers."""

    def test_display_and_search_text(self) -> None:
        track = TrackQuery(artist="Daft Punk", title="One More Time")
        assert track.display_name == "Daft Punk - One More Time"
        assert track.search_text == "Daft Punk One More Time"

    def test_identity_hash(self) -> None:
        track = TrackQuery(artist="Daft Punk", title="One More Time")
        assert track.identity_hash == "daftpunk-onemoretime"

    def test_identity_hash_strips_outer_dashes(self) -> None:
        assert TrackQuery(artist="", title="Intro").identity_hash == "intro"

    def test_has_requirements(self) -> None:
        assert not TrackQuery(artist="A", title="B").has_requirements
        assert TrackQuery(artist="A", title="B", preferred_formats=("flac",)).has_requirements
        assert TrackQuery(artist="A", title="B", min_bitrate=256).has_requirements


class TestCandidate:
    """Test Candidate path helpers."""

    @pytest.fixture
    def candidate(self) -> Candidate:
        return Candidate(
            filename="@@music\\Daft Punk\\Discovery\\01 - One More Time.FLAC",
            username="peer",
        )

    def test_basename_and_directory(self, candidate: Candidate) -> None:
        assert candidate.basename == "01 - One More Time.FLAC"
        assert candidate.directory == "@@music/Daft Punk/Discovery"

    def test_stem(self, candidate: Candidate) -> None:
        assert candidate.stem == "01 - One More Time"

    def test_format_from_filename(self, candidate: Candidate) -> None:
        assert candidate.format == "flac"
        assert candidate.is_lossless

    def test_explicit_extension_wins(self) -> None:
        candidate = Candidate(filename="track", username="peer", extension=".MP3")
        assert candidate.format == "mp3"
        assert not candidate.is_lossless

    def test_unknown_format(self) -> None:
        assert Candidate(filename="track", username="peer").format == ""

    def test_is_frozen(self, candidate: Candidate) -> None:
        with pytest.raises(AttributeError):
            candidate.bitrate = 320  # type: ignore[misc]
