"""Application settings loaded from environment variables.

Hey future me - settings are grouped by concern, each group with its own env prefix:

    SOULFETCH_DOWNLOAD_MAX_CONCURRENT_DOWNLOADS=4
    SOULFETCH_RANKING_STRATEGY=dj_mode
    SOULFETCH_RESOLVER_LIBRARY_ROOTS='["/music", "/mnt/archive"]'
    SOULFETCH_SLSKD_URL=http://slskd:5030
    SOULFETCH_LOG_LEVEL=DEBUG

Access them via get_settings() (cached) - don't instantiate Settings() all over the place.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from soulfetch.domain.exceptions import ValidationError
from soulfetch.domain.value_objects.scoring import RankingStrategy


class DownloadSettings(BaseSettings):
    """Download scheduler configuration."""

    model_config = SettingsConfigDict(env_prefix="SOULFETCH_DOWNLOAD_", extra="ignore")

    # Hey future me - Soulseek peers HATE being hammered. 3 parallel transfers is
    # plenty for a home connection, raising this mostly gets you queued everywhere.
    max_concurrent_downloads: int = Field(default=3, ge=1, le=20)
    download_dir: Path = Field(default=Path("downloads"))
    poll_interval: float = Field(default=0.5, gt=0, description="Dispatcher tick in seconds")
    progress_interval: float = Field(
        default=0.1, ge=0, description="Minimum seconds between progress events per job"
    )
    search_timeout: float = Field(default=30.0, gt=0)
    max_search_results: int = Field(default=500, ge=1)

    # Automatic retry is OFF by default - retries are a user decision (hard retry)
    auto_retry: bool = False
    max_retries: int = Field(default=3, ge=0)
    retry_base_delay: float = Field(default=5.0, ge=0)

    # Hey future me - the watchdog kills a transfer whose provider has gone silent
    # (no bytes AND no progress report) for this long. 0 turns it off.
    stall_timeout: float = Field(default=300.0, ge=0)


class RankingSettings(BaseSettings):
    """Candidate ranking configuration."""

    model_config = SettingsConfigDict(env_prefix="SOULFETCH_RANKING_", extra="ignore")

    strategy: RankingStrategy = RankingStrategy.BALANCED
    penalize_suspicious: bool = True
    min_string_similarity: float = Field(default=0.6, ge=0.0, le=1.0)
    duration_tolerance: int = Field(default=15, ge=0, description="Seconds")

    @field_validator("strategy", mode="before")
    @classmethod
    def _parse_strategy(cls, value: object) -> object:
        if isinstance(value, str):
            try:
                return RankingStrategy.from_string(value)
            except ValidationError as e:
                raise ValueError(e.message) from e
        return value


class ResolverSettings(BaseSettings):
    """Library file path resolver configuration."""

    model_config = SettingsConfigDict(env_prefix="SOULFETCH_RESOLVER_", extra="ignore")

    library_roots: list[Path] = Field(default_factory=list)
    fuzzy_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    extensions: tuple[str, ...] = (".mp3", ".flac", ".m4a", ".wav", ".ogg", ".wma")


class SlskdSettings(BaseSettings):
    """slskd daemon connection."""

    model_config = SettingsConfigDict(env_prefix="SOULFETCH_SLSKD_", extra="ignore")

    url: str = "http://localhost:5030"
    api_key: str = ""
    timeout: float = Field(default=30.0, gt=0)
    # Where slskd drops completed files (shared volume with us)
    downloads_dir: Path = Field(default=Path("/downloads/slskd"))
    transfer_poll_interval: float = Field(default=1.0, gt=0)
    # Seconds without new bytes before an active transfer counts as stalled.
    # Transfers still queued on the peer's side never time out.
    stall_timeout: float = Field(default=60.0, gt=0)

    @property
    def configured(self) -> bool:
        return bool(self.url and self.api_key)


class DatabaseSettings(BaseSettings):
    """Library database configuration."""

    model_config = SettingsConfigDict(env_prefix="SOULFETCH_DATABASE_", extra="ignore")

    url: str = "sqlite+aiosqlite:///./soulfetch.db"
    echo: bool = False


class Settings(BaseSettings):
    """Top-level settings aggregating every group."""

    model_config = SettingsConfigDict(
        env_prefix="SOULFETCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "soulfetch"
    log_level: str = Field(default="INFO")
    log_json: bool = False

    download: DownloadSettings = Field(default_factory=DownloadSettings)
    ranking: RankingSettings = Field(default_factory=RankingSettings)
    resolver: ResolverSettings = Field(default_factory=ResolverSettings)
    slskd: SlskdSettings = Field(default_factory=SlskdSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {value}")
        return level


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
