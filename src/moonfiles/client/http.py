"""HTTP channel to a Moonraker host.

This module provides:
- HostHttpClient: async httpx client for the file endpoints, with a
  streamed download that reports progress
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx

from moonfiles.core.config import HostConfig
from moonfiles.core.errors import TransportError

logger = logging.getLogger(__name__)

# Called with (received_bytes, total_bytes); total is 0 when unknown
DownloadProgressCallback = Callable[[int, int], None]

DOWNLOAD_CHUNK_SIZE = 64 * 1024


class HostHttpClient:
    """Async HTTP client for a Moonraker host."""

    def __init__(
        self,
        config: HostConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the HTTP client.

        Args:
            config: Host configuration with URL, API key and timeouts.
            transport: Optional httpx transport (used by tests).
        """
        self._config = config
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.timeout,
            verify=config.verify_ssl,
            headers=config.headers,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._config.base_url

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> HostHttpClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    async def get(self, url_path: str, **kwargs: Any) -> httpx.Response:
        """Send a GET request.

        Raises:
            TransportError: On network errors.
        """
        try:
            return await self._client.get(url_path, **kwargs)
        except httpx.HTTPError as e:
            raise TransportError(f"GET {url_path} failed: {e}") from e

    async def post(
        self,
        url_path: str,
        data: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a POST request, multipart-encoded when ``files`` is given.

        The status code is not checked; callers decide what counts as success.

        Raises:
            TransportError: On network errors.
        """
        try:
            return await self._client.post(url_path, data=data, files=files, **kwargs)
        except httpx.HTTPError as e:
            raise TransportError(f"POST {url_path} failed: {e}") from e

    async def download(
        self,
        url_path: str,
        save_path: Path,
        on_progress: DownloadProgressCallback | None = None,
    ) -> Path:
        """Stream a file to disk.

        Args:
            url_path: Path below the base URL.
            save_path: Local destination; parent directories must exist.
            on_progress: Called after every received chunk.

        Returns:
            The path the content was written to.

        Raises:
            TransportError: On network errors or a non-2xx status.
        """
        logger.debug("Downloading %s to %s", url_path, save_path)
        try:
            async with self._client.stream("GET", url_path) as response:
                response.raise_for_status()
                # Content-Length counts encoded bytes, so progress does too
                total = int(response.headers.get("Content-Length") or 0)
                with open(save_path, "wb") as f:
                    async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_SIZE):
                        f.write(chunk)
                        if on_progress:
                            on_progress(response.num_bytes_downloaded, total)
        except httpx.HTTPStatusError as e:
            raise TransportError(
                f"GET {url_path} returned {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(f"GET {url_path} failed: {e}") from e
        return save_path
