"""Candidate ranking engine.

Hey future me - this turns a pile of Soulseek search hits into an ordered list.

Every candidate gets six sub-scores, each in [0, 1] BEFORE weighting:

    availability  free upload slot, short queue, fast uploader
    conditions    peer health (inverse queue) + the query's format/bitrate requirements
    quality       bitrate tier + flat lossless bonus
    musical       BPM/Camelot key agreement, only when both sides know them
    metadata      duration/album/year agreement
    string        "Artist - Title" vs candidate filename (canonicalized Levenshtein)

    score = Σ weight_i * sub_i + tiebreaker

Missing data contributes 0 - NEVER an error. An empty candidate list ranks to [].

Ordering is deterministic: the tiebreaker favours bigger files, and Python's sort is
stable so exact ties keep arrival order. Rank the same input twice → same output.

Suspicious files (wrong duration, too small, fake bitrate) get pushed below every clean
candidate by subtracting (1 + Σweights). The output stays sorted by score.
"""

import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from soulfetch.domain.entities.candidate import (
    Candidate,
    ScoreBreakdown,
    ScoredCandidate,
    TrackQuery,
)
from soulfetch.domain.value_objects import scoring
from soulfetch.domain.value_objects.camelot import KeyRelationship, key_relationship
from soulfetch.domain.value_objects.scoring import RankingStrategy, ScoringWeights
from soulfetch.domain.value_objects.string_distance import (
    extract_bpm_from_path,
    extract_key_from_path,
    normalized_score,
)

logger = logging.getLogger(__name__)

# =============================================================================
# SUB-SCORES
# =============================================================================


def availability_score(candidate: Candidate) -> float:
    """Free slot dominates, then queue length, then upload speed."""
    score = scoring.FREE_SLOT_SHARE if candidate.has_free_upload_slot else 0.0

    if candidate.queue_length is not None:
        queue_factor = max(0.0, 1.0 - candidate.queue_length / scoring.LONG_QUEUE_THRESHOLD)
        score += scoring.QUEUE_SHARE * queue_factor

    if candidate.upload_speed:
        speed_factor = min(1.0, candidate.upload_speed / scoring.FAST_UPLOAD_SPEED)
        score += scoring.SPEED_SHARE * speed_factor

    return score


def _requirements_met(candidate: Candidate, wanted: TrackQuery) -> float:
    checks: list[bool] = []

    if wanted.preferred_formats:
        preferred = {fmt.lower().lstrip(".") for fmt in wanted.preferred_formats}
        checks.append(candidate.format in preferred)

    if wanted.min_bitrate is not None:
        # Lossless always satisfies a bitrate floor, peers often don't report it for FLAC
        if candidate.is_lossless:
            checks.append(True)
        else:
            checks.append(candidate.bitrate is not None and candidate.bitrate >= wanted.min_bitrate)

    if not checks:
        return 0.0
    return sum(checks) / len(checks)


def conditions_score(candidate: Candidate, wanted: TrackQuery) -> float:
    """Peer health proxy plus the fraction of query requirements the file meets."""
    score = 0.0
    if candidate.queue_length is not None:
        score += 0.5 / (1.0 + max(0, candidate.queue_length) / scoring.QUEUE_HALF_LIFE)
    if wanted.has_requirements:
        score += 0.5 * _requirements_met(candidate, wanted)
    return score


def quality_score(candidate: Candidate) -> float:
    """Monotonic in declared bitrate, plus a flat bonus for lossless formats.

    Lossless files without a reported bitrate are treated as high tier.
    """
    bitrate = candidate.bitrate
    if bitrate is None or bitrate <= 0:
        points = float(scoring.HIGH_QUALITY_BASE) if candidate.is_lossless else 0.0
    elif bitrate >= scoring.HIGH_QUALITY_THRESHOLD_KBPS:
        points = float(scoring.HIGH_QUALITY_BASE)
    elif bitrate >= scoring.MEDIUM_QUALITY_THRESHOLD_KBPS:
        points = float(scoring.MEDIUM_QUALITY_BASE)
    else:
        points = bitrate * scoring.LOW_QUALITY_MULTIPLIER

    if candidate.is_lossless:
        points += scoring.LOSSLESS_BONUS

    return min(1.0, points / scoring.MAX_QUALITY_POINTS)


def bpm_proximity(difference: float) -> float:
    if difference < scoring.BPM_PERFECT_THRESHOLD:
        return 1.0
    if difference < scoring.BPM_CLOSE_THRESHOLD:
        return 0.75
    if difference < scoring.BPM_ACCEPTABLE_THRESHOLD:
        return 0.5
    return 0.0


# Hey future me - the candidate's BPM/key come from its PATH, not from metadata. DJ
# pools love "Techno/128 BPM/8A - Artist - Track.mp3". A token in a parent folder is
# trusted a bit less than one in the filename (PathToken.confidence).
def musical_score(candidate: Candidate, wanted: TrackQuery) -> float:
    """BPM/key agreement; 0 when either side doesn't know."""
    points = 0.0

    if wanted.bpm:
        token = extract_bpm_from_path(candidate.filename)
        if token is not None:
            points += (
                scoring.BPM_MATCH_BONUS
                * bpm_proximity(abs(token.as_float - wanted.bpm))
                * token.confidence
            )

    if wanted.key:
        token = extract_key_from_path(candidate.filename)
        if token is not None:
            relationship = key_relationship(wanted.key, token.value)
            if relationship == KeyRelationship.PERFECT:
                points += scoring.KEY_MATCH_BONUS * token.confidence
            elif relationship.is_harmonic:
                points += scoring.HARMONIC_KEY_BONUS * token.confidence

    return points / (scoring.BPM_MATCH_BONUS + scoring.KEY_MATCH_BONUS)


def length_agreement(candidate_length: int, wanted_length: int) -> float:
    difference = abs(candidate_length - wanted_length)
    tolerance = scoring.LENGTH_TOLERANCE_SECONDS
    if difference <= tolerance:
        return 1.0
    if difference <= tolerance * 2:
        return 0.75
    if difference <= tolerance * 4:
        return 0.5
    return max(0.0, 0.25 - difference / 1000.0)


def metadata_score(candidate: Candidate, wanted: TrackQuery) -> float:
    """Duration, album and year agreement where both sides have the data."""
    score = 0.0

    if wanted.duration and candidate.length is not None:
        score += scoring.LENGTH_SHARE * length_agreement(candidate.length, wanted.duration)

    if wanted.album:
        # Peers rarely tag album, but "Artist/Album/track.mp3" is the Soulseek norm
        album = candidate.album or (candidate.path_parts[-2] if len(candidate.path_parts) > 1 else None)
        if album:
            score += scoring.ALBUM_SHARE * normalized_score(wanted.album, album)

    if wanted.year and re.search(rf"\b{wanted.year}\b", candidate.filename):
        score += scoring.YEAR_SHARE

    return score


def string_score(candidate: Candidate, wanted: TrackQuery) -> float:
    """Canonicalized similarity of "Artist - Title" to the candidate's filename."""
    return normalized_score(wanted.display_name, candidate.stem)


def tiebreaker_score(candidate: Candidate) -> float:
    """Tiny, deterministic preference for larger files."""
    if not candidate.size or candidate.size <= 0:
        return 0.0
    return scoring.TIEBREAKER_SCALE * candidate.size / (candidate.size + scoring.TIEBREAKER_SIZE_PIVOT)


# =============================================================================
# VALIDATION
# =============================================================================


def bitrate_efficiency(candidate: Candidate) -> float | None:
    """Actual size ÷ size implied by the declared bitrate, None when unknown."""
    if not candidate.size or not candidate.length or not candidate.bitrate or candidate.bitrate <= 0:
        return None
    expected_bytes = candidate.bitrate * 1000 * candidate.length / 8
    adjusted_size = max(0, candidate.size - scoring.ARTWORK_BUFFER_BYTES)
    return adjusted_size / expected_bytes


# Hey future me - these catch the classic Soulseek fakes: 30s previews, truncated files,
# and 128k MP3s re-encoded and relabelled "320". Lossless declares huge bitrates but
# compresses unevenly, so it gets a softer efficiency floor.
def is_suspicious(candidate: Candidate, wanted: TrackQuery) -> bool:
    """Check whether a candidate looks like a wrong version or a fake file."""
    if (
        wanted.duration
        and candidate.length is not None
        and abs(candidate.length - wanted.duration) > scoring.DURATION_TOLERANCE_SECONDS
    ):
        return True

    if candidate.length and candidate.size is not None:
        expected_min_size = candidate.length * scoring.MIN_BYTES_PER_SECOND
        if candidate.size < expected_min_size * scoring.FILESIZE_SUSPICION_THRESHOLD:
            return True

    efficiency = bitrate_efficiency(candidate)
    if efficiency is not None and efficiency < scoring.VBR_VALIDATION_THRESHOLD:
        lossless_tolerated = (
            candidate.bitrate is not None
            and candidate.bitrate > 1000
            and efficiency >= scoring.LOSSLESS_EFFICIENCY_FLOOR
        )
        if not lossless_tolerated:
            return True

    return False


# =============================================================================
# RANKING
# =============================================================================


def score_candidate(
    wanted: TrackQuery,
    candidate: Candidate,
    weights: ScoringWeights,
    index: int = 0,
    penalize_suspicious: bool = True,
) -> ScoredCandidate:
    """Compute the breakdown and final score for one candidate."""
    breakdown = ScoreBreakdown(
        availability=availability_score(candidate),
        conditions=conditions_score(candidate, wanted),
        quality=quality_score(candidate),
        musical=musical_score(candidate, wanted),
        metadata=metadata_score(candidate, wanted),
        string=string_score(candidate, wanted),
        tiebreaker=tiebreaker_score(candidate),
        suspicious=is_suspicious(candidate, wanted),
    )

    score = (
        weights.availability * breakdown.availability
        + weights.conditions * breakdown.conditions
        + weights.quality * breakdown.quality
        + weights.musical * breakdown.musical
        + weights.metadata * breakdown.metadata
        + weights.string * breakdown.string
        + breakdown.tiebreaker
    )
    if penalize_suspicious and breakdown.suspicious:
        score -= 1.0 + weights.total

    return ScoredCandidate(candidate=candidate, score=score, breakdown=breakdown, index=index)


def rank(
    wanted: TrackQuery,
    candidates: Iterable[Candidate],
    weights: ScoringWeights | None = None,
    *,
    penalize_suspicious: bool = True,
) -> list[ScoredCandidate]:
    """Score and sort candidates, best first.

    Args:
        wanted: The track we're looking for
        candidates: Search hits in arrival order
        weights: Weight set for this pass (default: Balanced preset)
        penalize_suspicious: Push suspicious files below all clean ones

    Returns:
        ScoredCandidates sorted by score descending, stable on exact ties
    """
    weights = weights or RankingStrategy.default().weights
    scored = [
        score_candidate(wanted, candidate, weights, index, penalize_suspicious)
        for index, candidate in enumerate(candidates)
    ]
    # sorted() is stable: equal scores keep arrival order
    return sorted(scored, key=lambda item: -item.score)


# =============================================================================
# SELECTION
# =============================================================================


def select_candidate(
    ranked: Sequence[ScoredCandidate],
    wanted: TrackQuery,
    *,
    min_string_similarity: float = 0.0,
    duration_tolerance: int = scoring.SMART_DURATION_TOLERANCE_SECONDS,
    allow_suspicious: bool = False,
) -> ScoredCandidate | None:
    """Pick the candidate to download from a ranked list.

    Candidates below min_string_similarity are dropped, and so are suspicious files
    unless allow_suspicious is set. When the wanted duration is
    known, the best candidate within ±duration_tolerance seconds wins; if none is that
    close, the best remaining candidate is used.

    Returns:
        The chosen ScoredCandidate or None when nothing survives
    """
    eligible = [
        item
        for item in ranked
        if item.breakdown.string >= min_string_similarity
        and (allow_suspicious or not item.breakdown.suspicious)
    ]
    if not eligible:
        return None

    if wanted.duration:
        for item in eligible:
            length = item.candidate.length
            if length is not None and abs(length - wanted.duration) <= duration_tolerance:
                return item

    return eligible[0]


@dataclass
class CandidateRanker:
    """Ranking engine bound to a strategy.

    Hey future me - the strategy can be swapped between searches (set_strategy), but
    rank() snapshots the weights at the start of the pass so a concurrent swap never
    mixes two weight sets inside one ranking.
    """

    strategy: RankingStrategy = RankingStrategy.BALANCED
    penalize_suspicious: bool = True
    min_string_similarity: float = 0.0
    duration_tolerance: int = scoring.SMART_DURATION_TOLERANCE_SECONDS
    custom_weights: ScoringWeights | None = None

    @property
    def weights(self) -> ScoringWeights:
        return self.custom_weights or self.strategy.weights

    def set_strategy(self, strategy: RankingStrategy | str) -> None:
        if isinstance(strategy, str):
            strategy = RankingStrategy.from_string(strategy)
        self.strategy = strategy
        self.custom_weights = None
        logger.info("ranking.strategy_changed", extra={"strategy": strategy.value})

    def rank(self, wanted: TrackQuery, candidates: Iterable[Candidate]) -> list[ScoredCandidate]:
        return rank(wanted, candidates, self.weights, penalize_suspicious=self.penalize_suspicious)

    def select(self, wanted: TrackQuery, candidates: Iterable[Candidate]) -> tuple[ScoredCandidate | None, int]:
        """Rank then select.

        Returns:
            (chosen candidate or None, number of ranked candidates)
        """
        ranked = self.rank(wanted, candidates)
        chosen = select_candidate(
            ranked,
            wanted,
            min_string_similarity=self.min_string_similarity,
            duration_tolerance=self.duration_tolerance,
        )
        logger.debug(
            "ranking.selected",
            extra={
                "track": wanted.display_name,
                "candidates": len(ranked),
                "chosen": chosen.candidate.display_name if chosen else None,
                "score": round(chosen.score, 4) if chosen else None,
            },
        )
        return chosen, len(ranked)
