"""Scoring weights, ranking presets and the constants behind each sub-score.

Hey future me - this is THE SINGLE SOURCE OF TRUTH for ranking knobs!

The ranking engine computes six sub-scores per candidate, each in [0, 1]:
availability, conditions, quality, musical, metadata, string. The final score is

    Σ weight_i * sub_i + tiebreaker

A RankingStrategy is just a named row in _STRATEGY_WEIGHTS. There is NO per-strategy
formula - DJ mode doesn't gate on BPM/key, it just weights musical/string higher.

Usage:
    from soulfetch.domain.value_objects.scoring import RankingStrategy, ScoringWeights

    weights = RankingStrategy.QUALITY_FIRST.weights
    custom = ScoringWeights(availability=3.0, conditions=3.0)
    strategy = RankingStrategy.from_string("dj")
"""

from dataclasses import asdict, dataclass, fields
from enum import Enum

from soulfetch.domain.exceptions import ValidationError

# =============================================================================
# QUALITY TIERS
# Points: bitrate tier plus a flat lossless bonus, divided by MAX_QUALITY_POINTS
# =============================================================================

LOSSLESS_BONUS = 450
HIGH_QUALITY_BASE = 300
MEDIUM_QUALITY_BASE = 150
# 256 catches VBR V0 files that report ~245-260 kbps alongside 320 CBR
HIGH_QUALITY_THRESHOLD_KBPS = 256
MEDIUM_QUALITY_THRESHOLD_KBPS = 192
LOW_QUALITY_MULTIPLIER = 0.5
MAX_QUALITY_POINTS = HIGH_QUALITY_BASE + LOSSLESS_BONUS

LOSSLESS_FORMATS: frozenset[str] = frozenset({"flac", "wav", "alac", "ape", "aiff", "aif", "wv"})

# =============================================================================
# AVAILABILITY / PEER CONDITIONS
# =============================================================================

FREE_SLOT_SHARE = 0.6
QUEUE_SHARE = 0.25
SPEED_SHARE = 0.15
# Queue factor reaches 0 at this many queued uploads (the "long queue" penalty point)
LONG_QUEUE_THRESHOLD = 50
# Upload speed at which the speed factor saturates (bytes/s)
FAST_UPLOAD_SPEED = 1024 * 1024
# Conditions: queue health is 1 / (1 + queue / QUEUE_HALF_LIFE)
QUEUE_HALF_LIFE = 10

# =============================================================================
# MUSICAL INTELLIGENCE
# =============================================================================

BPM_MATCH_BONUS = 100
KEY_MATCH_BONUS = 75
HARMONIC_KEY_BONUS = 50
BPM_PERFECT_THRESHOLD = 1.0
BPM_CLOSE_THRESHOLD = 3.0
BPM_ACCEPTABLE_THRESHOLD = 6.0

# =============================================================================
# METADATA / VALIDATION
# =============================================================================

LENGTH_SHARE = 0.6
ALBUM_SHARE = 0.25
YEAR_SHARE = 0.15
LENGTH_TOLERANCE_SECONDS = 5
# Strict gate for the suspicious-file check (wrong version / radio edit)
DURATION_TOLERANCE_SECONDS = 30
# Preferred window when selecting the download candidate
SMART_DURATION_TOLERANCE_SECONDS = 15
# ~64 kbps; anything smaller per second of audio is a truncated or fake file
MIN_BYTES_PER_SECOND = 8000
FILESIZE_SUSPICION_THRESHOLD = 0.5
# Size / (bitrate * length) below this = upconverted fake (e.g. 128k re-encoded as "320")
VBR_VALIDATION_THRESHOLD = 0.8
LOSSLESS_EFFICIENCY_FLOOR = 0.6
# Embedded cover art inflates size; subtracted before the efficiency check
ARTWORK_BUFFER_BYTES = 32768

# =============================================================================
# TIEBREAKER
# =============================================================================

# Always < 1e-4 so it can never outvote a real sub-score difference
TIEBREAKER_SCALE = 1e-4
TIEBREAKER_SIZE_PIVOT = 100 * 1024 * 1024


@dataclass(frozen=True)
class ScoringWeights:
    """Coefficients for the six sub-scores plus the tiebreaker.

    Hey future me - weights are STRATEGY config, not candidate state. The ranking
    engine receives ONE instance per pass, so swapping presets between searches is
    safe and a pass never sees a half-updated set.

    All weights must be non-negative (score bounds depend on it).

    The tiebreaker field rides along so every preset is a complete seven-value
    record, but the tiebreaker term itself is always added UNWEIGHTED - it only
    orders candidates that are otherwise equal.
    """

    availability: float = 1.0
    conditions: float = 1.0
    quality: float = 1.0
    musical: float = 1.0
    metadata: float = 1.0
    string: float = 1.0
    tiebreaker: float = 1.0

    def __post_init__(self) -> None:
        for weight in fields(self):
            value = getattr(self, weight.name)
            if value < 0:
                raise ValidationError(
                    f"Scoring weight '{weight.name}' must be non-negative, got {value}"
                )

    @property
    def total(self) -> float:
        """Sum of the six sub-score weights (tiebreaker excluded)."""
        return (
            self.availability
            + self.conditions
            + self.quality
            + self.musical
            + self.metadata
            + self.string
        )

    def to_dict(self) -> dict[str, float]:
        return asdict(self)


class RankingStrategy(str, Enum):
    """Named weight presets.

    Usage:
        strategy = RankingStrategy.from_string("quality-first")
        weights = strategy.weights
    """

    BALANCED = "balanced"
    QUALITY_FIRST = "quality_first"
    DJ_MODE = "dj_mode"

    @property
    def weights(self) -> ScoringWeights:
        """Get the ScoringWeights preset for this strategy."""
        return _STRATEGY_WEIGHTS[self]

    @property
    def description(self) -> str:
        return _STRATEGY_DESCRIPTIONS[self]

    @classmethod
    def from_string(cls, value: str) -> "RankingStrategy":
        """Parse a strategy name (case-insensitive, dashes/spaces allowed).

        Raises:
            ValidationError: If value is not a known strategy
        """
        normalized = value.lower().strip().replace("-", "_").replace(" ", "_")
        normalized = _STRATEGY_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            valid = ", ".join(cls.valid_names())
            raise ValidationError(
                f"Invalid ranking strategy: '{value}'. Valid options: {valid}"
            ) from None

    @classmethod
    def valid_names(cls) -> list[str]:
        return [strategy.value for strategy in cls]

    @classmethod
    def default(cls) -> "RankingStrategy":
        return cls.BALANCED

    def __str__(self) -> str:
        return self.value


# Hey future me - these are the OFFICIAL presets! Only the numbers differ between them.
_STRATEGY_WEIGHTS: dict[RankingStrategy, ScoringWeights] = {
    RankingStrategy.BALANCED: ScoringWeights(),
    RankingStrategy.QUALITY_FIRST: ScoringWeights(quality=2.0, musical=0.5),
    RankingStrategy.DJ_MODE: ScoringWeights(quality=0.5, musical=2.0, string=1.5),
}

_STRATEGY_DESCRIPTIONS: dict[RankingStrategy, str] = {
    RankingStrategy.BALANCED: "Equal weight on every factor",
    RankingStrategy.QUALITY_FIRST: "Prefers lossless and high bitrate, BPM/key secondary",
    RankingStrategy.DJ_MODE: "Prefers BPM/key and exact names, quality secondary",
}

_STRATEGY_ALIASES: dict[str, str] = {
    "quality": "quality_first",
    "qualityfirst": "quality_first",
    "dj": "dj_mode",
    "djmode": "dj_mode",
}
