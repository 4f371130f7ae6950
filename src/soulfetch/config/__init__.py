"""Configuration module for soulfetch."""

from .settings import (
    DatabaseSettings,
    DownloadSettings,
    RankingSettings,
    ResolverSettings,
    Settings,
    SlskdSettings,
    get_settings,
)

__all__ = [
    "DatabaseSettings",
    "DownloadSettings",
    "RankingSettings",
    "ResolverSettings",
    "Settings",
    "SlskdSettings",
    "get_settings",
]
