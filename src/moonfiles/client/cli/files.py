"""File commands for the moonfiles CLI.

Commands:
- roots: List the host's file roots
- ls: List a directory
- meta: Show g-code metadata
- mkdir, rm, mv: Mutate remote files
- download, upload: Transfer files
- watch: Print file change notifications
"""

from __future__ import annotations

import asyncio
import contextlib
import sys
from collections.abc import AsyncIterator, Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar, cast

import click

from moonfiles.client.cli.config import get_host
from moonfiles.client.service import FileService, HostSession, HostSessionRegistry
from moonfiles.core.errors import MoonfilesError
from moonfiles.core.types import (
    FileActionResponse,
    FileDownloadComplete,
    FileDownloadProgress,
    FileKind,
    GCodeFile,
)

T = TypeVar("T")


@contextlib.asynccontextmanager
async def open_service(host_id: str | None) -> AsyncIterator[FileService]:
    """Connect to a configured host and yield its file service."""
    config = get_host(host_id)
    registry = HostSessionRegistry()
    registry.register(await HostSession.open(config))
    try:
        yield registry.file_service(config.host_id)
    finally:
        await registry.close()


def run_with_service(host_id: str | None, func: Callable[[FileService], Awaitable[T]]) -> T:
    """Run ``func`` against the host's file service, reporting errors."""

    async def runner() -> T:
        async with open_service(host_id) as service:
            return await func(service)

    try:
        return asyncio.run(runner())
    except LookupError as e:
        raise click.ClickException(str(e.args[0])) from e
    except ValueError as e:
        raise click.BadParameter(str(e)) from e
    except MoonfilesError as e:
        raise click.ClickException(str(e)) from e


def _echo_action(response: FileActionResponse) -> None:
    line = f"{response.action.value}: {response.item.full_path}"
    if response.source_item is not None:
        line = f"{response.action.value}: {response.source_item.full_path} -> {response.item.full_path}"
    click.echo(line)


host_option = click.option("--host", "-H", default=None, help="Configured host id (default: default host).")


@click.command()
@host_option
def roots(host: str | None) -> None:
    """List the host's file roots."""
    for root in run_with_service(host, lambda s: s.fetch_roots()):
        click.echo(f"{root.name}\t{root.permissions}\t{root.path}")


@click.command("ls")
@host_option
@click.option("--extended", "-e", is_flag=True, help="Include slicer metadata.")
@click.argument("path", default="gcodes")
def ls(host: str | None, extended: bool, path: str) -> None:
    """List folders and files in PATH."""
    listing = run_with_service(host, lambda s: s.fetch_directory_info(path, extended))
    for folder in listing.folders:
        click.echo(f"{folder.name}/")
    for file in listing.files:
        line = f"{file.name}\t{file.size}"
        if file.kind is FileKind.GCODE:
            label = cast(GCodeFile, file).estimated_time_label
            if label:
                line += f"\t{label}"
        click.echo(line)


@click.command()
@host_option
@click.argument("filename")
def meta(host: str | None, filename: str) -> None:
    """Show slicer metadata of a g-code file."""
    gcode = run_with_service(host, lambda s: s.get_gcode_metadata(filename))
    fields: dict[str, Any] = {
        "path": gcode.full_path,
        "size": gcode.size,
        "slicer": gcode.slicer,
        "estimated time": gcode.estimated_time_label,
        "layer height": gcode.layer_height,
        "filament": gcode.filament_total,
        "thumbnails": len(gcode.thumbnails),
    }
    for key, value in fields.items():
        if value is not None:
            click.echo(f"{key}: {value}")


@click.command()
@host_option
@click.argument("path")
def mkdir(host: str | None, path: str) -> None:
    """Create directory PATH."""
    _echo_action(run_with_service(host, lambda s: s.create_dir(path)))


@click.command()
@host_option
@click.option("--dir", "is_dir", is_flag=True, help="PATH is a directory.")
@click.option("--force", is_flag=True, help="Delete non-empty directories.")
@click.argument("path")
def rm(host: str | None, is_dir: bool, force: bool, path: str) -> None:
    """Delete file or directory PATH."""
    if is_dir:
        response = run_with_service(host, lambda s: s.delete_dir(path, force=force))
    else:
        response = run_with_service(host, lambda s: s.delete_file(path))
    _echo_action(response)


@click.command()
@host_option
@click.argument("source")
@click.argument("dest")
def mv(host: str | None, source: str, dest: str) -> None:
    """Move or rename SOURCE to DEST."""
    _echo_action(run_with_service(host, lambda s: s.move_file(source, dest)))


@click.command()
@host_option
@click.option("--skip-existing", is_flag=True, help="Reuse a previously downloaded copy.")
@click.option("--no-progress", is_flag=True, help="Disable the progress bar.")
@click.argument("path")
def download(host: str | None, skip_existing: bool, no_progress: bool, path: str) -> None:
    """Download PATH into the local temporary area."""

    async def run(service: FileService) -> Path | None:
        result: Path | None = None
        events = service.download_file(path, overwrite=not skip_existing)
        if no_progress:
            async for event in events:
                if isinstance(event, FileDownloadComplete):
                    result = event.file
            return result

        with click.progressbar(length=1000, label=path, file=sys.stderr) as bar:
            done = 0
            async for event in events:
                if isinstance(event, FileDownloadProgress):
                    step = int(event.progress * 1000)
                    bar.update(step - done)
                    done = step
                elif isinstance(event, FileDownloadComplete):
                    bar.update(1000 - done)
                    result = event.file
        return result

    local = run_with_service(host, run)
    click.echo(str(local))


@click.command()
@host_option
@click.argument("local", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("remote")
def upload(host: str | None, local: Path, remote: str) -> None:
    """Upload LOCAL to REMOTE (``<root>/<path>``)."""
    content = local.read_bytes()
    _echo_action(run_with_service(host, lambda s: s.upload_as_file(remote, content)))


@click.command()
@host_option
def watch(host: str | None) -> None:
    """Print file changes until interrupted."""

    async def run(service: FileService) -> None:
        async for event in service.subscribe():
            _echo_action(event)

    with contextlib.suppress(KeyboardInterrupt):
        run_with_service(host, run)
