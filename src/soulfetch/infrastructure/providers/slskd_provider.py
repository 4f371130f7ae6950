"""slskd search/transfer provider.

This adapter implements ISearchProvider on top of the slskd daemon's REST API
(https://github.com/slskd/slskd). slskd speaks the Soulseek protocol for us; we only
talk HTTP to it.

Endpoints used:
- POST   /api/v0/searches                               start a search
- GET    /api/v0/searches/{id}                          poll isComplete
- GET    /api/v0/searches/{id}/responses                peer responses with files
- POST   /api/v0/transfers/downloads/{username}         enqueue a download
- GET    /api/v0/transfers/downloads/{username}         poll transfer state
- DELETE /api/v0/transfers/downloads/{username}/{id}    cancel a transfer

slskd writes finished files into ITS downloads directory. We share that volume
(SlskdSettings.downloads_dir) and move the file to the destination the scheduler asked for.
"""

import asyncio
import logging
import shutil
import time
from collections.abc import AsyncIterator
from pathlib import Path, PureWindowsPath
from typing import Any, cast
from uuid import uuid4

import httpx

from soulfetch.config.settings import SlskdSettings
from soulfetch.domain.entities.candidate import Candidate
from soulfetch.domain.entities.download_job import DownloadState
from soulfetch.domain.exceptions import ConfigurationError, ProviderError, TransferError
from soulfetch.domain.ports.search_provider import (
    ISearchProvider,
    ProgressCallback,
    SearchFilters,
)

logger = logging.getLogger(__name__)


# Hey future me - slskd download states are NOT documented well!
# They come as comma-separated flags like "Completed, Succeeded" or "Queued, Remotely".
# We lowercase each flag and look it up here; the most specific (last) known flag wins.
SLSKD_STATE_MAPPING: dict[str, DownloadState] = {
    # Pre-transfer states
    "none": DownloadState.QUEUED,
    "queued": DownloadState.QUEUED,
    "requested": DownloadState.QUEUED,  # Waiting for user to accept
    # Active states
    "initializing": DownloadState.DOWNLOADING,
    "inprogress": DownloadState.DOWNLOADING,
    "downloading": DownloadState.DOWNLOADING,  # Alias
    # Terminal - Success
    "completed": DownloadState.COMPLETED,
    "succeeded": DownloadState.COMPLETED,
    # Terminal - Failure
    "errored": DownloadState.FAILED,
    "timedout": DownloadState.FAILED,
    "rejected": DownloadState.FAILED,  # User rejected our request
    "forbidden": DownloadState.FAILED,  # User blocked us
    "failed": DownloadState.FAILED,
    # Terminal - Cancelled
    "cancelled": DownloadState.CANCELLED,
    "aborted": DownloadState.CANCELLED,
    "removed": DownloadState.CANCELLED,
}


def map_slskd_state(raw_state: str | None) -> DownloadState:
    """Translate an slskd transfer state string into a DownloadState.

    Unknown states are treated as QUEUED (still waiting on the remote side).
    """
    if not raw_state:
        return DownloadState.QUEUED
    flags = [flag.strip().lower().replace(" ", "") for flag in raw_state.split(",")]
    for flag in reversed(flags):
        if flag in SLSKD_STATE_MAPPING:
            return SLSKD_STATE_MAPPING[flag]
    return DownloadState.QUEUED


def _remote_basename(filename: str) -> str:
    # Soulseek paths are Windows-style: "Music\\Daft Punk\\01 - One More Time.flac"
    return PureWindowsPath(filename).name


def _remote_parent(filename: str) -> str:
    return PureWindowsPath(filename).parent.name


class SlskdSearchProvider(ISearchProvider):
    """ISearchProvider backed by an slskd daemon."""

    def __init__(self, settings: SlskdSettings) -> None:
        """
        Initialize the slskd provider.

        Args:
            settings: slskd connection settings
        """
        self.settings = settings
        self._client: httpx.AsyncClient | None = None
        # (username, remote filename) → slskd transfer id, for cancel_transfer()
        self._transfer_ids: dict[tuple[str, str], str] = {}

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            if not self.settings.configured:
                raise ConfigurationError("slskd URL and API key must be configured")
            self._client = httpx.AsyncClient(
                base_url=self.settings.url.rstrip("/"),
                headers={"X-API-Key": self.settings.api_key},
                timeout=self.settings.timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send a request, translating HTTP failures into ProviderError.

        Returns:
            Decoded JSON body, or None for empty responses
        """
        client = await self._get_client()
        try:
            response = await client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            # 401/403 won't fix themselves by retrying
            raise ProviderError(
                f"slskd API error: {status} {e.response.reason_phrase} ({method} {path})",
                retryable=status not in (401, 403),
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"slskd unreachable: {e}") from e

        if not response.content:
            return None
        return response.json()

    # =========================================================================
    # Search
    # =========================================================================

    async def search(
        self, query: str, filters: SearchFilters | None = None
    ) -> AsyncIterator[Candidate]:
        filters = filters or SearchFilters()
        search_id = str(uuid4())
        timeout_ms = int(filters.timeout_seconds * 1000)

        await self._request(
            "POST",
            "/api/v0/searches",
            json={
                "id": search_id,
                "searchText": query,
                "searchTimeout": timeout_ms,
                "responseLimit": 100,
                "fileLimit": filters.max_results,
            },
        )
        logger.debug("slskd.search_started", extra={"search_id": search_id, "query": query})

        # slskd ends the search itself after searchTimeout; give it a little slack
        deadline = time.monotonic() + filters.timeout_seconds + 5.0
        while time.monotonic() < deadline:
            state = cast(dict[str, Any], await self._request("GET", f"/api/v0/searches/{search_id}"))
            if state and state.get("isComplete"):
                break
            await asyncio.sleep(self.settings.transfer_poll_interval)
        else:
            logger.warning("slskd.search_timeout", extra={"search_id": search_id, "query": query})

        responses = await self._request("GET", f"/api/v0/searches/{search_id}/responses") or []

        emitted = 0
        for response in responses:
            for candidate in self._candidates_from_response(response, filters):
                yield candidate
                emitted += 1
                if emitted >= filters.max_results:
                    return

    def _candidates_from_response(
        self, response: dict[str, Any], filters: SearchFilters
    ) -> list[Candidate]:
        username = response.get("username", "")
        candidates: list[Candidate] = []
        for file in response.get("files", []):
            filename = file.get("filename")
            if not username or not filename:
                continue
            candidate = Candidate(
                filename=filename,
                username=username,
                bitrate=file.get("bitRate"),
                extension=file.get("extension") or None,
                length=file.get("length"),
                size=file.get("size"),
                has_free_upload_slot=bool(response.get("hasFreeUploadSlot", False)),
                queue_length=response.get("queueLength"),
                upload_speed=response.get("uploadSpeed"),
            )
            if filters.formats and candidate.format not in filters.formats:
                continue
            if (
                filters.min_bitrate
                and candidate.bitrate is not None
                and not candidate.is_lossless
                and candidate.bitrate < filters.min_bitrate
            ):
                continue
            candidates.append(candidate)
        return candidates

    # =========================================================================
    # Transfer
    # =========================================================================

    async def transfer(
        self,
        candidate: Candidate,
        destination: Path,
        on_progress: ProgressCallback | None = None,
    ) -> int:
        key = (candidate.username, candidate.filename)
        await self._request(
            "POST",
            f"/api/v0/transfers/downloads/{candidate.username}",
            json=[{"filename": candidate.filename, "size": candidate.size or 0}],
        )
        logger.info(
            "slskd.transfer_enqueued",
            extra={"username": candidate.username, "file": candidate.basename},
        )

        # On CancelledError the id stays registered, cancel_transfer() needs it
        try:
            await self._wait_for_completion(candidate, on_progress)
        except ProviderError:
            self._transfer_ids.pop(key, None)
            raise
        self._transfer_ids.pop(key, None)

        return await asyncio.to_thread(self._move_completed_file, candidate, destination)

    async def _wait_for_completion(
        self, candidate: Candidate, on_progress: ProgressCallback | None
    ) -> None:
        """Poll slskd until the transfer reaches a terminal state.

        Raises:
            TransferError: On a failed/cancelled transfer, when slskd stops listing it,
                or when an active transfer moves no bytes for ``stall_timeout`` seconds
        """
        key = (candidate.username, candidate.filename)
        stall_timeout = self.settings.stall_timeout
        last_activity = time.monotonic()
        last_bytes = 0
        while True:
            transfer = await self._find_transfer(candidate)
            now = time.monotonic()
            if transfer is None:
                # Hey future me - slskd drops transfers on restart or manual clear. Give it
                # the stall window to show up (the POST may not be visible yet), then give up.
                if now - last_activity > stall_timeout:
                    raise TransferError(
                        f"slskd no longer lists transfer of {candidate.basename} "
                        f"from {candidate.username}"
                    )
            else:
                if transfer.get("id"):
                    self._transfer_ids[key] = transfer["id"]
                state = map_slskd_state(transfer.get("state"))
                transferred = int(transfer.get("bytesTransferred") or 0)
                total = transfer.get("size") or candidate.size
                if on_progress is not None:
                    on_progress(transferred, total, float(transfer.get("averageSpeed") or 0.0))

                if state == DownloadState.COMPLETED:
                    return
                if state == DownloadState.FAILED:
                    raise TransferError(f"slskd transfer failed: {transfer.get('state')}")
                if state == DownloadState.CANCELLED:
                    raise TransferError(f"slskd transfer cancelled remotely: {transfer.get('state')}")

                # Waiting in the peer's upload queue is passive, not stalled
                if state == DownloadState.QUEUED or transferred > last_bytes:
                    last_bytes = transferred
                    last_activity = now
                elif now - last_activity > stall_timeout:
                    # Drop it on the slskd side too, a retry enqueues a fresh transfer
                    await self.cancel_transfer(candidate)
                    raise TransferError(
                        f"slskd transfer stalled: no data for {int(now - last_activity)}s "
                        f"at {transferred} bytes"
                    )
            await asyncio.sleep(self.settings.transfer_poll_interval)

    async def _find_transfer(self, candidate: Candidate) -> dict[str, Any] | None:
        data = await self._request("GET", f"/api/v0/transfers/downloads/{candidate.username}")
        if not data:
            return None
        for directory in data.get("directories", []):
            for file in directory.get("files", []):
                if file.get("filename") == candidate.filename:
                    return cast(dict[str, Any], file)
        return None

    def _move_completed_file(self, candidate: Candidate, destination: Path) -> int:
        """Move slskd's finished file to destination. Returns its size in bytes."""
        basename = _remote_basename(candidate.filename)
        parent = _remote_parent(candidate.filename)
        downloads_dir = self.settings.downloads_dir
        for source in (downloads_dir / parent / basename, downloads_dir / basename):
            if source.is_file():
                destination.parent.mkdir(parents=True, exist_ok=True)
                shutil.move(str(source), str(destination))
                return destination.stat().st_size
        raise TransferError(f"slskd reported completion but {basename} is not in {downloads_dir}")

    async def cancel_transfer(self, candidate: Candidate) -> None:
        transfer_id = self._transfer_ids.pop((candidate.username, candidate.filename), None)
        if transfer_id is None:
            transfer = await self._find_transfer(candidate)
            transfer_id = transfer.get("id") if transfer else None
        if not transfer_id:
            return
        try:
            await self._request(
                "DELETE",
                f"/api/v0/transfers/downloads/{candidate.username}/{transfer_id}",
                params={"remove": "true"},
            )
        except ProviderError as e:
            # Already gone on the slskd side is fine, anything else is worth a warning
            logger.warning(
                "slskd.cancel_failed",
                extra={"username": candidate.username, "file": candidate.basename, "error": e.message},
            )

    async def __aenter__(self) -> "SlskdSearchProvider":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()
