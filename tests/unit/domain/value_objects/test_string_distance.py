"""Tests for the canonicalized Levenshtein matcher and path token extraction."""

import pytest

from soulfetch.domain.value_objects.string_distance import (
    PathToken,
    canonicalize,
    distance,
    extract_bpm_from_path,
    extract_key_from_path,
    normalized_score,
)

PAIRS = [
    ("hello world", "hello world"),
    ("abc", "xyz"),
    ("kitten", "sitting"),
    ("Daft Punk - One More Time", "daft_punk_-_one_more_time [HD].mp3"),
    ("Aphex Twin - Xtal", "Aphex Twin - Ageispolis"),
    ("", "something"),
    ("", ""),
]


class TestCanonicalize:
    """Test canonicalize()."""

    def test_strips_noise_punctuation_and_case(self) -> None:
        assert canonicalize("Daft_Punk - One More Time [HD].mp3") == "daftpunkonemoretime"

    def test_keeps_unicode_letters(self) -> None:
        assert canonicalize("Sigur Rós - Hoppípolla") == "sigurróshoppípolla"

    def test_empty(self) -> None:
        assert canonicalize("") == ""


class TestDistance:
    """Test distance()."""

    def test_classic_example(self) -> None:
        assert distance("kitten", "sitting") == 3

    def test_identical_after_canonicalization(self) -> None:
        assert distance("Daft Punk", "daft_punk.mp3") == 0

    @pytest.mark.parametrize(("a", "b"), PAIRS)
    def test_is_symmetric(self, a: str, b: str) -> None:
        assert distance(a, b) == distance(b, a)


class TestNormalizedScore:
    """Test normalized_score()."""

    def test_identical_strings_score_one(self) -> None:
        assert normalized_score("hello world", "hello world") == 1.0

    def test_completely_different_strings_score_zero(self) -> None:
        assert normalized_score("abc", "xyz") == 0.0

    def test_both_empty_score_one(self) -> None:
        assert normalized_score("", "") == 1.0

    def test_one_empty_scores_zero(self) -> None:
        assert normalized_score("abc", "") == 0.0
        assert normalized_score("", "abc") == 0.0

    def test_noise_only_counts_as_empty(self) -> None:
        """"[HD]" canonicalizes to nothing, so it's the both-empty case."""
        assert normalized_score("[HD]", "") == 1.0

    def test_partial_similarity(self) -> None:
        # "kitten" vs "sitting": 3 edits over 7 characters
        assert normalized_score("kitten", "sitting") == pytest.approx(1 - 3 / 7)

    def test_ignores_noise_and_formatting(self) -> None:
        score = normalized_score(
            "Daft Punk - One More Time", "Daft_Punk_-_One_More_Time [Official Video].mp3"
        )
        assert score == 1.0

    @pytest.mark.parametrize(("a", "b"), PAIRS)
    def test_is_symmetric_and_bounded(self, a: str, b: str) -> None:
        score = normalized_score(a, b)
        assert score == normalized_score(b, a)
        assert 0.0 <= score <= 1.0


class TestPathTokens:
    """Test BPM/key extraction from paths with depth confidence."""

    def test_bpm_in_filename_has_full_confidence(self) -> None:
        token = extract_bpm_from_path("Music/House/Artist - Track 124bpm.mp3")
        assert token == PathToken(value="124", confidence=1.0, depth=0)
        assert token.as_float == 124.0

    def test_bpm_in_parent_folder(self) -> None:
        token = extract_bpm_from_path("Music/House 128 BPM/track.mp3")
        assert token == PathToken(value="128", confidence=0.9, depth=1)

    def test_bpm_deeper_up_the_tree(self) -> None:
        token = extract_bpm_from_path("Music\\128 BPM\\Deep\\track.mp3")
        assert token is not None
        assert token.depth == 2
        assert token.confidence == 0.7

    def test_nearest_token_wins(self) -> None:
        token = extract_bpm_from_path("Sets/140 BPM/Track 128bpm.mp3")
        assert token is not None
        assert token.value == "128"

    def test_key_in_parent_folder(self) -> None:
        token = extract_key_from_path("Techno/8A/track.mp3")
        assert token == PathToken(value="8A", confidence=0.9, depth=1)

    def test_mixed_separators(self) -> None:
        token = extract_key_from_path("@@share\\Music/Keys\\11B - Track.flac")
        assert token is not None
        assert token.value == "11B"
        assert token.depth == 0

    def test_absent_tokens(self) -> None:
        assert extract_bpm_from_path("Music/track.mp3") is None
        assert extract_key_from_path("Music/track.mp3") is None

    def test_empty_path(self) -> None:
        assert extract_bpm_from_path("") is None
        assert extract_key_from_path("") is None
