"""Tests for the candidate ranking engine."""

# Hey future me - these tests verify ranking behaviour, not exact magic numbers:
# - strategy presets flip the winner between a fast MP3 peer and a slow FLAC peer
# - missing data never raises, empty input ranks to []
# - exact ties keep arrival order, and reruns give identical output
# - suspicious files sink below every clean file
# The two scenario candidates are tuned so every sub-score is easy to hand-check.

import random

import pytest

from soulfetch.application.services.ranking_service import (
    CandidateRanker,
    availability_score,
    conditions_score,
    is_suspicious,
    metadata_score,
    musical_score,
    quality_score,
    rank,
    score_candidate,
    select_candidate,
    tiebreaker_score,
)
from soulfetch.domain.entities.candidate import (
    Candidate,
    ScoreBreakdown,
    ScoredCandidate,
    TrackQuery,
)
from soulfetch.domain.value_objects.scoring import RankingStrategy, ScoringWeights

WANTED = TrackQuery(artist="Daft Punk", title="One More Time", duration=240)

FLAC = Candidate(
    filename="@@music\\Daft Punk\\Daft Punk - One More Time.flac",
    username="slow_flac_peer",
    bitrate=1000,
    size=30_000_000,
    length=240,
    has_free_upload_slot=False,
    queue_length=10,
    upload_speed=200_000,
)

MP3 = Candidate(
    filename="@@music\\Daft Punk\\Daft Punk - One More Time.mp3",
    username="fast_mp3_peer",
    bitrate=320,
    size=9_632_768,
    length=240,
    has_free_upload_slot=True,
    queue_length=0,
    upload_speed=1_048_576,
)


class TestSubScores:
    """Hand-checked sub-scores for the two scenario candidates."""

    def test_availability(self) -> None:
        assert availability_score(MP3) == pytest.approx(1.0)
        # 0.25 * (1 - 10/50) + 0.15 * 200000/1048576
        assert availability_score(FLAC) == pytest.approx(0.2 + 0.15 * 200_000 / 1_048_576)

    def test_conditions_without_requirements(self) -> None:
        assert conditions_score(MP3, WANTED) == pytest.approx(0.5)
        assert conditions_score(FLAC, WANTED) == pytest.approx(0.25)

    def test_conditions_with_requirements(self) -> None:
        wanted = TrackQuery(artist="Daft Punk", title="One More Time", preferred_formats=("flac",))
        assert conditions_score(FLAC, wanted) == pytest.approx(0.75)
        assert conditions_score(MP3, wanted) == pytest.approx(0.5)

    def test_quality(self) -> None:
        assert quality_score(FLAC) == pytest.approx(1.0)
        assert quality_score(MP3) == pytest.approx(0.4)

    def test_quality_is_monotonic_in_bitrate(self) -> None:
        scores = [
            quality_score(Candidate(filename="x.mp3", username="u", bitrate=bitrate))
            for bitrate in (64, 128, 192, 256, 320)
        ]
        assert scores == sorted(scores)

    def test_lossless_without_bitrate_is_high_tier(self) -> None:
        assert quality_score(Candidate(filename="x.flac", username="u")) == pytest.approx(1.0)

    def test_metadata(self) -> None:
        assert metadata_score(FLAC, WANTED) == pytest.approx(0.6)

    def test_musical_is_zero_without_data(self) -> None:
        assert musical_score(MP3, WANTED) == 0.0

    def test_musical_bpm_and_key_from_path(self) -> None:
        wanted = TrackQuery(artist="A", title="B", bpm=128, key="8A")
        candidate = Candidate(filename="Techno/8A/A - B 128bpm.mp3", username="u")
        # BPM in filename (confidence 1.0), key in parent folder (confidence 0.9)
        assert musical_score(candidate, wanted) == pytest.approx((100 + 75 * 0.9) / 175)

    def test_tiebreaker_is_tiny_and_prefers_larger_files(self) -> None:
        assert 0 < tiebreaker_score(MP3) < tiebreaker_score(FLAC) < 1e-4
        assert tiebreaker_score(Candidate(filename="x", username="u")) == 0.0


class TestStrategyScenario:
    """The same two candidates, ranked under different weight sets."""

    def test_balanced_prefers_available_mp3(self) -> None:
        ranked = rank(WANTED, [FLAC, MP3], RankingStrategy.BALANCED.weights)

        assert ranked[0].candidate == MP3
        assert ranked[0].score == pytest.approx(3.5, abs=1e-3)
        assert ranked[1].score == pytest.approx(3.0786, abs=1e-3)

    def test_quality_first_prefers_flac(self) -> None:
        ranked = rank(WANTED, [MP3, FLAC], RankingStrategy.QUALITY_FIRST.weights)

        assert ranked[0].candidate == FLAC
        assert ranked[0].score == pytest.approx(4.0786, abs=1e-3)
        assert ranked[1].score == pytest.approx(3.9, abs=1e-3)

    def test_availability_heavy_custom_weights(self) -> None:
        weights = ScoringWeights(availability=2.0, conditions=2.0)
        ranked = rank(WANTED, [FLAC, MP3], weights)
        assert ranked[0].candidate == MP3

    def test_default_weights_are_balanced(self) -> None:
        assert rank(WANTED, [FLAC, MP3]) == rank(WANTED, [FLAC, MP3], ScoringWeights())


class TestRankProperties:
    """Bounds, determinism, ordering."""

    def test_empty_input(self) -> None:
        assert rank(WANTED, []) == []

    def test_bare_candidates_never_raise(self) -> None:
        ranked = rank(WANTED, [Candidate(filename="", username="u"), Candidate(filename="?", username="v")])
        assert len(ranked) == 2

    def test_sub_scores_within_bounds(self) -> None:
        rng = random.Random(7)
        wanted = TrackQuery(
            artist="Daft Punk", title="One More Time", album="Discovery", duration=320,
            year=2001, bpm=123, key="8A", preferred_formats=("flac",), min_bitrate=256,
        )
        candidates = [
            Candidate(
                filename=f"Music\\{rng.choice(['8A', '9B', '123 BPM'])}\\Track {i}.{rng.choice(['mp3', 'flac', 'ogg'])}",
                username=f"peer{i}",
                bitrate=rng.choice([None, 96, 192, 320, 1411]),
                size=rng.choice([None, 0, 1_000_000, 50_000_000]),
                length=rng.choice([None, 30, 320, 900]),
                has_free_upload_slot=rng.random() < 0.5,
                queue_length=rng.choice([None, 0, 5, 500]),
                upload_speed=rng.choice([None, 0, 10_000, 50_000_000]),
            )
            for i in range(60)
        ]

        for item in rank(wanted, candidates, penalize_suspicious=False):
            breakdown = item.breakdown
            for value in (
                breakdown.availability, breakdown.conditions, breakdown.quality,
                breakdown.musical, breakdown.metadata, breakdown.string,
            ):
                assert 0.0 <= value <= 1.0
            assert 0.0 <= item.score <= ScoringWeights().total + 1e-4

    def test_sorted_descending(self) -> None:
        ranked = rank(WANTED, [FLAC, MP3, Candidate(filename="other.mp3", username="u")])
        scores = [item.score for item in ranked]
        assert scores == sorted(scores, reverse=True)

    def test_deterministic(self) -> None:
        candidates = [FLAC, MP3, Candidate(filename="Daft Punk - Aerodynamic.mp3", username="u")]
        assert rank(WANTED, candidates) == rank(WANTED, candidates)

    def test_exact_ties_keep_arrival_order(self) -> None:
        first = Candidate(filename="Daft Punk - One More Time.mp3", username="first", bitrate=320)
        second = Candidate(filename="Daft Punk - One More Time.mp3", username="second", bitrate=320)

        ranked = rank(WANTED, [first, second])

        assert [item.candidate.username for item in ranked] == ["first", "second"]
        assert [item.index for item in ranked] == [0, 1]

    def test_tiebreaker_orders_otherwise_equal_candidates(self) -> None:
        small = Candidate(filename="Daft Punk - One More Time.mp3", username="small", size=5_000_000)
        large = Candidate(filename="Daft Punk - One More Time.mp3", username="large", size=9_000_000)
        ranked = rank(TrackQuery(artist="Daft Punk", title="One More Time"), [small, large])
        assert ranked[0].candidate.username == "large"


class TestSuspicious:
    """Test the fake/wrong-version detection."""

    def test_clean_candidates(self) -> None:
        assert not is_suspicious(FLAC, WANTED)
        assert not is_suspicious(MP3, WANTED)

    def test_wrong_duration(self) -> None:
        preview = Candidate(filename="x.mp3", username="u", length=30)
        assert is_suspicious(preview, WANTED)

    def test_truncated_file(self) -> None:
        truncated = Candidate(filename="x.mp3", username="u", length=240, size=500_000)
        assert is_suspicious(truncated, WANTED)

    def test_upconverted_bitrate(self) -> None:
        # 128 kbps worth of bytes labelled as 320
        fake = Candidate(filename="x.mp3", username="u", bitrate=320, length=240, size=3_840_000 + 32_768)
        assert is_suspicious(fake, WANTED)

    def test_suspicious_sinks_below_clean(self) -> None:
        fake = Candidate(
            filename="Daft Punk - One More Time.mp3",
            username="fake",
            bitrate=320,
            length=240,
            size=3_000_000,
            has_free_upload_slot=True,
            queue_length=0,
            upload_speed=10_000_000,
        )
        plain = Candidate(filename="Some Other Song.ogg", username="plain")

        ranked = rank(WANTED, [fake, plain])

        assert ranked[-1].candidate == fake
        assert ranked[-1].breakdown.suspicious

    def test_penalty_can_be_disabled(self) -> None:
        fake = Candidate(filename="Daft Punk - One More Time.mp3", username="u", length=30)
        scored = score_candidate(WANTED, fake, ScoringWeights(), penalize_suspicious=False)
        assert scored.breakdown.suspicious
        assert scored.score >= 0.0


def _scored(username: str, score: float, string: float = 1.0, length: int | None = None,
            suspicious: bool = False) -> ScoredCandidate:
    return ScoredCandidate(
        candidate=Candidate(filename=f"{username}.mp3", username=username, length=length),
        score=score,
        breakdown=ScoreBreakdown(string=string, suspicious=suspicious),
    )


class TestSelectCandidate:
    """Test select_candidate()."""

    def test_empty(self) -> None:
        assert select_candidate([], WANTED) is None

    def test_best_wins_without_duration(self) -> None:
        ranked = [_scored("a", 3.0), _scored("b", 2.0)]
        chosen = select_candidate(ranked, TrackQuery(artist="A", title="B"))
        assert chosen is not None
        assert chosen.candidate.username == "a"

    def test_string_threshold(self) -> None:
        ranked = [_scored("a", 3.0, string=0.4), _scored("b", 2.0, string=0.9)]
        chosen = select_candidate(ranked, TrackQuery(artist="A", title="B"), min_string_similarity=0.6)
        assert chosen is not None
        assert chosen.candidate.username == "b"

    def test_nothing_passes_threshold(self) -> None:
        ranked = [_scored("a", 3.0, string=0.1)]
        assert select_candidate(ranked, WANTED, min_string_similarity=0.6) is None

    def test_prefers_duration_window(self) -> None:
        ranked = [_scored("far", 3.0, length=262), _scored("close", 2.5, length=245)]
        chosen = select_candidate(ranked, WANTED, duration_tolerance=15)
        assert chosen is not None
        assert chosen.candidate.username == "close"

    def test_falls_back_when_no_duration_fits(self) -> None:
        ranked = [_scored("far", 3.0, length=262), _scored("farther", 2.5, length=265)]
        chosen = select_candidate(ranked, WANTED, duration_tolerance=15)
        assert chosen is not None
        assert chosen.candidate.username == "far"

    def test_suspicious_excluded_unless_allowed(self) -> None:
        ranked = [_scored("fake", -5.0, suspicious=True)]
        assert select_candidate(ranked, WANTED) is None
        assert select_candidate(ranked, WANTED, allow_suspicious=True) is not None


class TestCandidateRanker:
    """Test the strategy-bound ranker."""

    def test_set_strategy_from_string(self) -> None:
        ranker = CandidateRanker(custom_weights=ScoringWeights(quality=9.0))

        ranker.set_strategy("quality-first")

        assert ranker.strategy == RankingStrategy.QUALITY_FIRST
        assert ranker.weights == RankingStrategy.QUALITY_FIRST.weights

    def test_strategy_swap_changes_winner(self) -> None:
        ranker = CandidateRanker()
        chosen, total = ranker.select(WANTED, [FLAC, MP3])
        assert total == 2
        assert chosen is not None
        assert chosen.candidate == MP3

        ranker.set_strategy(RankingStrategy.QUALITY_FIRST)
        chosen, _ = ranker.select(WANTED, [FLAC, MP3])
        assert chosen is not None
        assert chosen.candidate == FLAC

    def test_select_applies_string_threshold(self) -> None:
        ranker = CandidateRanker(min_string_similarity=0.6)
        unrelated = Candidate(filename="Aphex Twin - Xtal.mp3", username="u", bitrate=320)

        chosen, total = ranker.select(WANTED, [unrelated])

        assert chosen is None
        assert total == 1

    def test_select_empty(self) -> None:
        assert CandidateRanker().select(WANTED, []) == (None, 0)
