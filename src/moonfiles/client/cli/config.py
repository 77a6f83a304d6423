"""Configuration utilities for the moonfiles CLI.

The config file holds the known hosts and the default one:
    {"default_host": "voron",
     "hosts": {"voron": {"base_url": "http://voron.local:7125"}}}
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from moonfiles.core.config import HostConfig


def get_config_dir() -> Path:
    """Get the configuration directory.

    Returns:
        MOONFILES_CONFIG_DIR if set, else ~/.moonfiles.
    """
    override = os.environ.get("MOONFILES_CONFIG_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".moonfiles"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def load_config() -> dict[str, Any]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def add_host(host: HostConfig, make_default: bool = False) -> None:
    """Store a host; the first host added becomes the default."""
    config = load_config()
    hosts = config.setdefault("hosts", {})
    hosts[host.host_id] = host.to_dict()
    if make_default or not config.get("default_host"):
        config["default_host"] = host.host_id
    save_config(config)


def get_host(host_id: str | None = None) -> HostConfig:
    """Get a configured host.

    Args:
        host_id: Host to look up, or None for the default host.

    Raises:
        LookupError: If no such host is configured.
    """
    config = load_config()
    host_id = host_id or config.get("default_host")
    if not host_id:
        raise LookupError("No host configured. Run 'moonfiles add-host' first.")
    hosts = config.get("hosts", {})
    if host_id not in hosts:
        raise LookupError(f"Unknown host '{host_id}'")
    return HostConfig.from_dict(host_id, hosts[host_id])
