"""Persistence adapters (async SQLAlchemy)."""

from soulfetch.infrastructure.persistence.database import Database
from soulfetch.infrastructure.persistence.library_repository import SqlAlchemyLibraryRepository
from soulfetch.infrastructure.persistence.models import Base, LibraryEntryModel

__all__ = ["Base", "Database", "LibraryEntryModel", "SqlAlchemyLibraryRepository"]
