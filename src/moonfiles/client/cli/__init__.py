"""Command-line interface for moonfiles.

This module provides the main CLI entry point and assembles all commands.

Commands:
- add-host: Store a host in the config file
- hosts: List configured hosts
- roots, ls, meta: Inspect remote files
- mkdir, rm, mv: Mutate remote files
- download, upload: Transfer files
- watch: Print file change notifications
"""

from __future__ import annotations

import logging

import click

from moonfiles.client.cli.config import (
    add_host,
    get_config_dir,
    get_config_file,
    get_host,
    load_config,
    save_config,
)
from moonfiles.client.cli.files import (
    download,
    ls,
    meta,
    mkdir,
    mv,
    rm,
    roots,
    upload,
    watch,
)
from moonfiles.core.config import HostConfig


def configure_logging(verbose: bool) -> None:
    """Send moonfiles logs to stderr."""
    moonfiles_logger = logging.getLogger("moonfiles")
    for handler in moonfiles_logger.handlers[:]:
        moonfiles_logger.removeHandler(handler)
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    moonfiles_logger.addHandler(handler)
    moonfiles_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    moonfiles_logger.propagate = False


@click.group()
@click.version_option(package_name="moonfiles")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """moonfiles - Browse and transfer files on Moonraker hosts."""
    configure_logging(verbose)


@cli.command("add-host")
@click.argument("host_id")
@click.argument("base_url")
@click.option("--api-key", default=None, help="Moonraker API key.")
@click.option("--no-verify-ssl", is_flag=True, help="Skip SSL certificate verification.")
@click.option("--default", "make_default", is_flag=True, help="Make this the default host.")
def add_host_cmd(
    host_id: str,
    base_url: str,
    api_key: str | None,
    no_verify_ssl: bool,
    make_default: bool,
) -> None:
    """Store HOST_ID reachable at BASE_URL."""
    add_host(
        HostConfig(host_id=host_id, base_url=base_url, api_key=api_key, verify_ssl=not no_verify_ssl),
        make_default=make_default,
    )
    click.echo(f"Added host {host_id} ({base_url})")


@cli.command()
def hosts() -> None:
    """List configured hosts."""
    config = load_config()
    default = config.get("default_host")
    for host_id, data in config.get("hosts", {}).items():
        marker = "*" if host_id == default else " "
        click.echo(f"{marker} {host_id}\t{data.get('base_url', '')}")


cli.add_command(roots)
cli.add_command(ls)
cli.add_command(meta)
cli.add_command(mkdir)
cli.add_command(rm)
cli.add_command(mv)
cli.add_command(download)
cli.add_command(upload)
cli.add_command(watch)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    "cli",
    "configure_logging",
    "get_config_dir",
    "get_config_file",
    "get_host",
    "load_config",
    "main",
    "save_config",
]
