"""Domain value objects."""

from soulfetch.domain.value_objects.camelot import KeyRelationship, key_relationship
from soulfetch.domain.value_objects.filename_normalization import (
    NormalizedFilename,
    normalize,
    normalize_with_extraction,
)
from soulfetch.domain.value_objects.scoring import RankingStrategy, ScoringWeights
from soulfetch.domain.value_objects.string_distance import (
    PathToken,
    canonicalize,
    distance,
    extract_bpm_from_path,
    extract_key_from_path,
    normalized_score,
)

__all__ = [
    "KeyRelationship",
    "NormalizedFilename",
    "PathToken",
    "RankingStrategy",
    "ScoringWeights",
    "canonicalize",
    "distance",
    "extract_bpm_from_path",
    "extract_key_from_path",
    "key_relationship",
    "normalize",
    "normalize_with_extraction",
    "normalized_score",
]
