"""Shared configuration classes for moonfiles.

This module defines the per-host connection settings used by the JSON-RPC
client, the HTTP client and the transfer pipeline.
"""

from __future__ import annotations

import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any


@dataclass
class HostConfig:
    """Configuration for connecting to one Moonraker host.

    Attributes:
        host_id: Stable identifier of the host (used for local paths).
        base_url: Base URL of the host (e.g., "http://printer.local:7125").
        api_key: Optional Moonraker API key sent as ``X-Api-Key``.
        timeout: Request/connection timeout in seconds.
        verify_ssl: Whether to verify SSL certificates (default True).
        temp_dir: Shared temporary area for downloads (default: system temp).
    """

    host_id: str
    base_url: str
    api_key: str | None = None
    timeout: float = 30.0
    verify_ssl: bool = True
    temp_dir: Path | None = None

    def __post_init__(self) -> None:
        """Normalize base URL and temp dir."""
        if not self.host_id:
            raise ValueError("host_id must not be empty")
        self.base_url = self.base_url.rstrip("/")
        if self.temp_dir is not None:
            self.temp_dir = Path(self.temp_dir).expanduser()

    @property
    def ws_url(self) -> str:
        """Get the Moonraker websocket URL.

        Returns:
            WebSocket URL for JSON-RPC.
        """
        url = self.base_url
        if url.startswith("https://"):
            url = "wss://" + url[8:]
        elif url.startswith("http://"):
            url = "ws://" + url[7:]
        return f"{url}/websocket"

    @property
    def is_secure(self) -> bool:
        """Check if using HTTPS/WSS."""
        return self.base_url.startswith("https://")

    @property
    def download_root(self) -> Path:
        """Shared temporary area that holds one subdirectory per host."""
        return self.temp_dir or Path(tempfile.gettempdir()) / "moonfiles"

    @property
    def headers(self) -> dict[str, str]:
        """Headers sent with every HTTP request."""
        if self.api_key:
            return {"X-Api-Key": self.api_key}
        return {}

    @classmethod
    def from_dict(cls, host_id: str, data: dict[str, Any]) -> HostConfig:
        """Create from an entry of the CLI config file."""
        return cls(
            host_id=host_id,
            base_url=data["base_url"],
            api_key=data.get("api_key"),
            timeout=float(data.get("timeout", 30.0)),
            verify_ssl=bool(data.get("verify_ssl", True)),
            temp_dir=Path(data["temp_dir"]) if data.get("temp_dir") else None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the CLI config file."""
        data: dict[str, Any] = {
            "base_url": self.base_url,
            "timeout": self.timeout,
            "verify_ssl": self.verify_ssl,
        }
        if self.api_key:
            data["api_key"] = self.api_key
        if self.temp_dir is not None:
            data["temp_dir"] = str(self.temp_dir)
        return data
