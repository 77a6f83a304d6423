"""File downloads and uploads for one host.

This module provides:
- TransferPipeline: progress-reporting downloads into a per-host
  temporary area, and multipart uploads to the host's upload endpoint

A download is an async generator of FileDownload events: zero or more
FileDownloadProgress followed by exactly one FileDownloadComplete, or a
FileFetchError raised from the generator. Transfers run on the caller's
event loop.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import posixpath
from collections.abc import AsyncIterator
from pathlib import Path
from typing import TYPE_CHECKING

from moonfiles.client.files.classifier import parse_action_response
from moonfiles.core.errors import (
    FileActionError,
    FileFetchError,
    MalformedResponseError,
    TransportError,
    UploadRejectedError,
)
from moonfiles.core.types import (
    FileActionResponse,
    FileDownload,
    FileDownloadComplete,
    FileDownloadProgress,
)

if TYPE_CHECKING:
    from moonfiles.client.http import HostHttpClient

logger = logging.getLogger(__name__)

FILES_ENDPOINT = "/server/files"
UPLOAD_ENDPOINT = "/server/files/upload"


class _ProgressReporter:
    """Turns (received, total) byte counts into non-decreasing ratios."""

    def __init__(self, path: str, queue: asyncio.Queue[FileDownload | BaseException]) -> None:
        self._path = path
        self._queue = queue
        self._last = 0.0

    def __call__(self, received: int, total: int) -> None:
        if total <= 0:
            return
        ratio = min(received / total, 1.0)
        if ratio < self._last:
            return
        self._last = ratio
        logger.debug("Progress for %s: %.1f%%", self._path, ratio * 100)
        self._queue.put_nowait(FileDownloadProgress(ratio))


class TransferPipeline:
    """Downloads and uploads files of one host."""

    def __init__(self, host_id: str, http: HostHttpClient, download_root: Path) -> None:
        """Initialize the pipeline.

        Args:
            host_id: Identifier of the host; names the local subdirectory.
            http: Shared HTTP client for the host.
            download_root: Shared temporary area for all hosts.
        """
        self._host_id = host_id
        self._http = http
        self._download_root = Path(download_root)

    @property
    def host_dir(self) -> Path:
        return self._download_root / self._host_id

    def local_path_for(self, path: str) -> Path:
        """Local target of a remote path: ``<download_root>/<host_id>/<path>``.

        Raises:
            ValueError: If the path is empty or escapes the host directory.
        """
        normalized = posixpath.normpath(path.strip("/"))
        if normalized in ("", ".") or normalized.split("/")[0] == "..":
            raise ValueError(f"Invalid remote path: {path!r}")
        return self.host_dir.joinpath(*normalized.split("/"))

    async def download(
        self, path: str, overwrite: bool = True
    ) -> AsyncIterator[FileDownload]:
        """Download a file, yielding progress and completion.

        Args:
            path: Remote path including its root, e.g. ``gcodes/part.gcode``.
            overwrite: If False and the local file exists, complete
                immediately without a network transfer.

        Yields:
            FileDownloadProgress events, then one FileDownloadComplete.

        Raises:
            FileFetchError: If the transfer fails; the local file is then
                unreliable.
        """
        target = self.local_path_for(path)
        if not overwrite and target.is_file():
            logger.info("File %s already exists locally, skipping download", path)
            yield FileDownloadComplete(target)
            return

        logger.info("Downloading %s to %s", path, target)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Cannot create local directory for %s: %s", path, e)
            raise FileFetchError(
                "Error while downloading file", req_path=path, parent=e
            ) from e

        queue: asyncio.Queue[FileDownload | BaseException] = asyncio.Queue()
        on_progress = _ProgressReporter(path, queue)

        async def run() -> None:
            try:
                await self._http.download(f"{FILES_ENDPOINT}/{path.strip('/')}", target, on_progress)
            except Exception as e:
                queue.put_nowait(e)
            else:
                queue.put_nowait(FileDownloadComplete(target))

        task = asyncio.create_task(run(), name=f"download-{self._host_id}-{path}")
        try:
            while True:
                event = await queue.get()
                if isinstance(event, BaseException):
                    logger.error("Error while downloading %s: %s", path, event)
                    raise FileFetchError(
                        "Error while downloading file", req_path=path, parent=event
                    ) from event
                yield event
                if isinstance(event, FileDownloadComplete):
                    logger.info("File download of %s completed", path)
                    return
        finally:
            # Consumer stopped early: stop writing as well
            if not task.done():
                logger.info("Download of %s abandoned, cancelling transfer", path)
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    async def upload(self, path: str, content: str | bytes) -> FileActionResponse:
        """Upload content as a file.

        Args:
            path: ``<root>/<relative path>``, e.g. ``config/printer.cfg``.
            content: File content.

        Returns:
            The parsed acknowledgement.

        Raises:
            ValueError: If the path has no root or no filename.
            UploadRejectedError: If the host does not answer 201 Created.
            FileActionError: On transport errors.
        """
        root, _, relative = path.strip("/").partition("/")
        if not root or not relative:
            raise ValueError(f"Upload path must contain a root and a filename: {path!r}")

        logger.info("Trying upload of %s", path)
        try:
            response = await self._http.post(
                UPLOAD_ENDPOINT,
                data={"root": root},
                files={"file": (relative, content)},
            )
        except TransportError as e:
            raise FileActionError(
                "Error while trying to upload file", req_path=path, parent=e
            ) from e

        if response.status_code != 201:
            logger.warning("Upload of %s rejected with status %d", path, response.status_code)
            raise UploadRejectedError(
                f"Upload rejected with status {response.status_code}",
                req_path=path,
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise MalformedResponseError(f"Upload response is not JSON: {e}") from e
        return parse_action_response(payload)
