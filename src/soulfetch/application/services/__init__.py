"""Application services."""

from soulfetch.application.services.file_path_resolver import FilePathResolver
from soulfetch.application.services.path_builder import DownloadPathBuilder, sanitize_component
from soulfetch.application.services.ranking_service import (
    CandidateRanker,
    rank,
    score_candidate,
    select_candidate,
)
from soulfetch.application.services.search_coalescer import SearchCoalescer, normalize_query

__all__ = [
    "CandidateRanker",
    "DownloadPathBuilder",
    "FilePathResolver",
    "SearchCoalescer",
    "normalize_query",
    "rank",
    "sanitize_component",
    "score_candidate",
    "select_candidate",
]
