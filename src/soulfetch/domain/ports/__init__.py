"""Domain ports (interfaces) for dependency inversion."""

from soulfetch.domain.ports.event_sink import IDownloadEventSink
from soulfetch.domain.ports.library_repository import ILibraryRepository, LibraryEntry
from soulfetch.domain.ports.search_provider import (
    ISearchProvider,
    ProgressCallback,
    SearchFilters,
)

__all__ = [
    "IDownloadEventSink",
    "ILibraryRepository",
    "ISearchProvider",
    "LibraryEntry",
    "ProgressCallback",
    "SearchFilters",
]
