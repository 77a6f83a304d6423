"""File service for the roots of a Moonraker host.

This module provides:
- FileService: listing, metadata, create/delete/move, transfers and the
  live change-notification stream of one host
- HostSession: the transport and HTTP handles of one host
- HostSessionRegistry: one HostSession and one FileService per host id

Architecture:
    JsonRpcClient ──requests──► FileService ──parse──► typed results
         │                            │
         └─notify_filelist_changed─►  └─► EventStream[FileActionEvent]

The service borrows the session's handles and never closes them. RPC
responses and notifications are not serialized against each other.

See https://moonraker.readthedocs.io/en/latest/web_api/#file-operations
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from moonfiles.client.events import EventStream, Subscription
from moonfiles.client.files.classifier import (
    allowed_extensions_for,
    parse_action_response,
    parse_directory,
    parse_roots,
)
from moonfiles.client.files.metadata import parse_metadata, strip_gcode_root
from moonfiles.client.files.notifications import FILELIST_CHANGED, normalize_notification
from moonfiles.client.http import HostHttpClient
from moonfiles.client.rpc import JsonRpcClient, RpcTransport
from moonfiles.client.transfers import TransferPipeline
from moonfiles.core.config import HostConfig
from moonfiles.core.errors import (
    FileActionError,
    FileFetchError,
    FileServiceError,
    MalformedResponseError,
    ServiceDisposedError,
    TransportError,
)
from moonfiles.core.types import (
    FileActionEvent,
    FileActionResponse,
    FileDownload,
    FileRoot,
    FolderContentWrapper,
    GCodeFile,
)

logger = logging.getLogger(__name__)


class FileService:
    """Handles the file roots of one host.

    Usage:
        service = FileService(host_id, transport, http, download_root)
        listing = await service.fetch_directory_info("gcodes")
        async for event in service.subscribe():
            ...
        service.dispose()
    """

    def __init__(
        self,
        host_id: str,
        transport: RpcTransport,
        http: HostHttpClient,
        download_root: Path,
    ) -> None:
        """Initialize the service and subscribe to file notifications.

        Args:
            host_id: Identifier of the host.
            transport: Shared RPC channel of the host.
            http: Shared HTTP client of the host.
            download_root: Shared temporary area for downloads.
        """
        self._host_id = host_id
        self._transport = transport
        self._transfers = TransferPipeline(host_id, http, download_root)
        self._notifications: EventStream[FileActionEvent] = EventStream(
            f"file-notifications-{host_id}"
        )
        self._disposed = False
        self._unsubscribe = transport.subscribe(
            FILELIST_CHANGED,
            self._on_file_list_changed,
            on_error=self._on_notification_error,
        )

    @property
    def host_id(self) -> str:
        return self._host_id

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def notifications(self) -> EventStream[FileActionEvent]:
        """Broadcast stream of file changes pushed by the host."""
        return self._notifications

    def subscribe(self) -> Subscription[FileActionEvent]:
        """Observe file changes from now on."""
        return self._notifications.subscribe()

    def local_path_for(self, path: str) -> Path:
        """Where ``download_file(path)`` stores the file."""
        return self._transfers.local_path_for(path)

    # === Reads ===

    async def fetch_roots(self) -> list[FileRoot]:
        """List the host's registered roots."""
        logger.info("Fetching roots")
        result = await self._call(
            "server.files.roots", None, FileFetchError, "Error while trying to fetch roots", None
        )
        return parse_roots(result)

    async def fetch_directory_info(
        self, path: str, extended: bool = False
    ) -> FolderContentWrapper:
        """List folders and files directly below ``path``.

        Files are filtered by the allow-list of the path's root.
        """
        logger.info("Fetching for `%s` [extended:%s]", path, extended)
        result = await self._call(
            "server.files.get_directory",
            {"path": path, "extended": extended},
            FileFetchError,
            "Error while trying to fetch directory",
            path,
        )
        return parse_directory(result, path, allowed_extensions_for(path))

    async def get_gcode_metadata(self, filename: str) -> GCodeFile:
        """Get slicer metadata of a g-code file.

        Args:
            filename: Path of the file, with or without the ``gcodes`` root.
        """
        logger.info("Getting meta for file: `%s`", filename)
        result = await self._call(
            "server.files.metadata",
            {"filename": strip_gcode_root(filename)},
            FileFetchError,
            "Error while trying to get metadata",
            filename,
        )
        return parse_metadata(result, filename)

    # === Mutations ===

    async def create_dir(self, path: str) -> FileActionResponse:
        logger.info('Creating Folder "%s"', path)
        return await self._action(
            "server.files.post_directory", {"path": path}, "create directory", path
        )

    async def delete_file(self, path: str) -> FileActionResponse:
        logger.info('Deleting File "%s"', path)
        return await self._action(
            "server.files.delete_file", {"path": path}, "delete file", path
        )

    async def delete_dir(self, path: str, force: bool = False) -> FileActionResponse:
        """Delete a directory; ``force`` also deletes non-empty ones."""
        logger.info('Deleting Folder "%s" [force:%s]', path, force)
        return await self._action(
            "server.files.delete_directory",
            {"path": path, "force": force},
            "delete directory",
            path,
        )

    async def delete_dir_forced(self, path: str) -> FileActionResponse:
        return await self.delete_dir(path, force=True)

    async def move_file(self, origin: str, destination: str) -> FileActionResponse:
        """Move or rename a file or directory."""
        logger.info("Moving file from %s to %s", origin, destination)
        return await self._action(
            "server.files.move",
            {"source": origin, "dest": destination},
            "move file",
            origin,
        )

    # === Transfers ===

    def download_file(
        self, path: str, overwrite: bool = True
    ) -> AsyncIterator[FileDownload]:
        """Download a file into the per-host temporary area.

        Failures before the transfer starts raise here; transfer failures
        raise FileFetchError while iterating.

        Args:
            path: Remote path including its root.
            overwrite: Re-download even if the local file exists.
        """
        self._check_open()
        self._transfers.local_path_for(path)
        return self._transfers.download(path, overwrite=overwrite)

    async def upload_as_file(self, path: str, content: str | bytes) -> FileActionResponse:
        """Upload content to ``path`` (``<root>/<relative path>``)."""
        self._check_open()
        return await self._transfers.upload(path, content)

    # === Lifecycle ===

    def dispose(self) -> None:
        """Stop listening for notifications and close the stream.

        In-flight RPC calls are not cancelled.
        """
        if self._disposed:
            return
        self._disposed = True
        self._unsubscribe()
        self._notifications.close()
        logger.info("Disposed file service of %s", self._host_id)

    def __enter__(self) -> FileService:
        return self

    def __exit__(self, *args: object) -> None:
        self.dispose()

    def _check_open(self) -> None:
        if self._disposed:
            raise ServiceDisposedError(f"File service of {self._host_id} is disposed")

    async def _call(
        self,
        method: str,
        params: dict[str, Any] | None,
        error_cls: type[FileServiceError],
        message: str,
        req_path: str | None,
    ) -> Any:
        self._check_open()
        try:
            return await self._transport.send_request(method, params)
        except TransportError as e:
            logger.warning("%s: %s", message, e)
            raise error_cls(message, req_path=req_path, parent=e) from e

    async def _action(
        self, method: str, params: dict[str, Any], what: str, req_path: str
    ) -> FileActionResponse:
        result = await self._call(
            method, params, FileActionError, f"Error while trying to {what}", req_path
        )
        return parse_action_response(result)

    def _on_file_list_changed(self, message: dict[str, Any]) -> None:
        if self._disposed:
            return
        try:
            event = normalize_notification(message)
        except MalformedResponseError as e:
            logger.warning("Dropping malformed file notification: %s", e)
            return
        except Exception:
            logger.exception("Error parsing file notification")
            return
        if event is not None:
            logger.debug("File notification: %s %s", event.action.value, event.item.full_path)
            self._notifications.add(event)

    def _on_notification_error(self, error: BaseException) -> None:
        if not self._disposed:
            self._notifications.add_error(error)


@dataclass
class HostSession:
    """The connection handles of one host.

    The session owns its transport and HTTP client; services borrow them.
    """

    config: HostConfig
    transport: RpcTransport
    http: HostHttpClient

    @property
    def host_id(self) -> str:
        return self.config.host_id

    @classmethod
    async def open(cls, config: HostConfig) -> HostSession:
        """Connect to a host."""
        transport = JsonRpcClient(config)
        await transport.connect()
        return cls(config=config, transport=transport, http=HostHttpClient(config))

    async def close(self) -> None:
        close = getattr(self.transport, "close", None)
        if close is not None:
            await close()
        await self.http.close()


class HostSessionRegistry:
    """Maps host ids to sessions and their file services.

    Usage:
        registry = HostSessionRegistry()
        registry.register(await HostSession.open(config))
        service = registry.file_service(config.host_id)
        ...
        await registry.close()
    """

    def __init__(self) -> None:
        self._sessions: dict[str, HostSession] = {}
        self._services: dict[str, FileService] = {}

    def __contains__(self, host_id: str) -> bool:
        return host_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def register(self, session: HostSession) -> None:
        """Add a session.

        Raises:
            ValueError: If a session for the host is already registered.
        """
        if session.host_id in self._sessions:
            raise ValueError(f"Host {session.host_id} is already registered")
        self._sessions[session.host_id] = session

    def session(self, host_id: str) -> HostSession:
        try:
            return self._sessions[host_id]
        except KeyError:
            raise KeyError(f"No session for host {host_id}") from None

    def file_service(self, host_id: str) -> FileService:
        """Get the file service of a host, creating it on first use."""
        service = self._services.get(host_id)
        if service is None or service.disposed:
            session = self.session(host_id)
            service = FileService(
                host_id,
                session.transport,
                session.http,
                session.config.download_root,
            )
            self._services[host_id] = service
        return service

    async def remove(self, host_id: str) -> None:
        """Dispose the host's service and close its session."""
        service = self._services.pop(host_id, None)
        if service is not None:
            service.dispose()
        session = self._sessions.pop(host_id, None)
        if session is not None:
            await session.close()

    async def close(self) -> None:
        for host_id in list(self._sessions):
            await self.remove(host_id)
