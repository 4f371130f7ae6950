"""SQLAlchemy ORM models for soulfetch."""

from datetime import UTC, datetime

from sqlalchemy import String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


# Hey future me - SQLite doesn't preserve timezone info! UTC datetimes come back
# "naive". Attach UTC before comparing with datetime.now(UTC) or you get a TypeError.
def ensure_utc_aware(dt: datetime) -> datetime:
    """Ensure datetime is UTC-aware, assuming naive datetimes are UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class LibraryEntryModel(Base):
    """One known track and where its file lives.

    identity_hash is TrackQuery.identity_hash ("daftpunk-onemoretime"), so lookups
    before a download never need fuzzy matching. status stores DownloadState values
    as plain strings (SQLite has no enums).
    """

    __tablename__ = "library_entries"

    identity_hash: Mapped[str] = mapped_column(String(512), primary_key=True)
    artist: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    resolved_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str | None] = mapped_column(String(20), nullable=True, index=True)
    updated_at: Mapped[datetime] = mapped_column(default=utc_now, onupdate=utc_now, nullable=False)
