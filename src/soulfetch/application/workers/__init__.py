"""Background workers."""

from soulfetch.application.workers.download_scheduler import (
    DownloadScheduler,
    create_download_scheduler,
)

__all__ = ["DownloadScheduler", "create_download_scheduler"]
