"""soulfetch - ranks Soulseek search results and schedules the downloads."""

__version__ = "0.1.0"
