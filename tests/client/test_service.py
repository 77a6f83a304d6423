"""Tests for FileService and HostSessionRegistry."""

from __future__ import annotations

from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from moonfiles.client.files.notifications import FILELIST_CHANGED
from moonfiles.client.service import FileService, HostSession, HostSessionRegistry
from moonfiles.core.config import HostConfig
from moonfiles.core.errors import (
    FileActionError,
    FileFetchError,
    JsonRpcError,
    MalformedResponseError,
    ServiceDisposedError,
    TransportError,
    UploadRejectedError,
)
from moonfiles.core.types import (
    FileAction,
    FileActionEvent,
    FileDownloadComplete,
    FileKind,
)

ACTION_RESULT: dict[str, Any] = {
    "item": {"root": "gcodes", "path": "sub", "modified": 0, "size": 4096, "permissions": "rw"},
    "action": "create_dir",
}


def delete_notification(path: str = "part.gcode") -> dict[str, Any]:
    return {"action": "delete_file", "item": {"root": "gcodes", "path": path}}


class TestReads:
    """Tests for roots, listings and metadata."""

    @pytest.mark.asyncio
    async def test_fetch_roots(self, service: FileService, transport) -> None:
        """Should parse the host's roots."""
        transport.responses["server.files.roots"] = [
            {"name": "gcodes", "path": "/data/gcodes", "permissions": "rw"},
        ]
        roots = await service.fetch_roots()
        assert [r.name for r in roots] == ["gcodes"]
        assert transport.requests == [("server.files.roots", None)]

    @pytest.mark.asyncio
    async def test_fetch_directory_info_filters_by_root(self, service: FileService, transport) -> None:
        """Should apply the root's extension filter."""
        transport.responses["server.files.get_directory"] = {
            "dirs": [{"dirname": ".thumbs", "modified": 1}, {"dirname": "sub", "modified": 1}],
            "files": [
                {"filename": "part.gcode", "modified": 1, "size": 10},
                {"filename": "notes.txt", "modified": 1, "size": 10},
            ],
        }
        listing = await service.fetch_directory_info("gcodes", extended=True)

        assert transport.requests == [
            ("server.files.get_directory", {"path": "gcodes", "extended": True}),
        ]
        assert [f.name for f in listing.folders] == ["sub"]
        assert [f.name for f in listing.files] == ["part.gcode"]
        assert listing.files[0].kind is FileKind.GCODE

    @pytest.mark.asyncio
    async def test_fetch_directory_info_other_root_unfiltered(self, service: FileService, transport) -> None:
        """Should keep every file in roots without a filter."""
        transport.responses["server.files.get_directory"] = {
            "files": [
                {"filename": "klippy.log", "modified": 1, "size": 10},
                {"filename": "moonraker.log", "modified": 1, "size": 10},
            ],
        }
        listing = await service.fetch_directory_info("logs")
        assert len(listing.files) == 2

    @pytest.mark.asyncio
    async def test_fetch_directory_error_wrapped(self, service: FileService, transport) -> None:
        """Should wrap RPC failures in FileFetchError."""
        cause = JsonRpcError("Directory not found", -32601)
        transport.errors["server.files.get_directory"] = cause

        with pytest.raises(FileFetchError) as exc_info:
            await service.fetch_directory_info("gcodes/missing")

        assert exc_info.value.req_path == "gcodes/missing"
        assert exc_info.value.parent is cause

    @pytest.mark.asyncio
    async def test_malformed_listing_not_wrapped(self, service: FileService, transport) -> None:
        """Should let MalformedResponseError through unwrapped."""
        transport.responses["server.files.get_directory"] = {"files": [{"filename": "a.gcode"}]}
        with pytest.raises(MalformedResponseError):
            await service.fetch_directory_info("gcodes")

    @pytest.mark.asyncio
    async def test_get_gcode_metadata(self, service: FileService, transport) -> None:
        """Should query without the gcodes root and parse the record."""
        transport.responses["server.files.metadata"] = {
            "size": 10, "modified": 1.0, "filename": "sub/part.gcode", "estimated_time": 60,
        }
        gcode = await service.get_gcode_metadata("gcodes/sub/part.gcode")

        assert transport.requests == [("server.files.metadata", {"filename": "sub/part.gcode"})]
        assert gcode.parent_path == "gcodes/sub"
        assert gcode.estimated_time == 60

    @pytest.mark.asyncio
    async def test_metadata_error_wrapped(self, service: FileService, transport) -> None:
        """Should wrap metadata failures in FileFetchError."""
        transport.errors["server.files.metadata"] = TransportError("closed")
        with pytest.raises(FileFetchError):
            await service.get_gcode_metadata("part.gcode")


class TestMutations:
    """Tests for create, delete and move."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("call", "method", "params"),
        [
            (lambda s: s.create_dir("gcodes/sub"), "server.files.post_directory", {"path": "gcodes/sub"}),
            (lambda s: s.delete_file("gcodes/a.gcode"), "server.files.delete_file", {"path": "gcodes/a.gcode"}),
            (lambda s: s.delete_dir("gcodes/sub"), "server.files.delete_directory", {"path": "gcodes/sub", "force": False}),
            (lambda s: s.delete_dir_forced("gcodes/sub"), "server.files.delete_directory", {"path": "gcodes/sub", "force": True}),
            (lambda s: s.move_file("gcodes/a", "gcodes/b"), "server.files.move", {"source": "gcodes/a", "dest": "gcodes/b"}),
        ],
    )
    async def test_rpc_calls(self, service: FileService, transport, call, method: str, params: dict[str, Any]) -> None:
        """Should send each mutation with its parameters."""
        transport.responses[method] = ACTION_RESULT
        response = await call(service)
        assert transport.requests == [(method, params)]
        assert response.action is FileAction.CREATE_DIR
        assert response.item.full_path == "gcodes/sub"

    @pytest.mark.asyncio
    async def test_move_error_carries_origin(self, service: FileService, transport) -> None:
        """Should report the source path of a failed move."""
        transport.errors["server.files.move"] = JsonRpcError("exists")
        with pytest.raises(FileActionError) as exc_info:
            await service.move_file("gcodes/a.gcode", "gcodes/b.gcode")
        assert exc_info.value.req_path == "gcodes/a.gcode"
        assert "exists" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_delete_error_is_action_error(self, service: FileService, transport) -> None:
        """Should wrap mutation failures in FileActionError."""
        transport.errors["server.files.delete_file"] = JsonRpcError("denied")
        with pytest.raises(FileActionError):
            await service.delete_file("config/printer.cfg")


class TestTransfers:
    """Tests for download and upload through the service."""

    @pytest.mark.asyncio
    async def test_download(self, service: FileService, http, tmp_path: Path) -> None:
        """Should store downloads below the host directory."""
        events = [e async for e in service.download_file("gcodes/part.gcode")]
        assert events[-1] == FileDownloadComplete(tmp_path / "printer-1" / "gcodes" / "part.gcode")
        assert service.local_path_for("gcodes/part.gcode") == events[-1].file

    def test_download_invalid_path_fails_at_call_time(self, service: FileService) -> None:
        """Should validate the path before iteration starts."""
        with pytest.raises(ValueError):
            service.download_file("../secrets")

    @pytest.mark.asyncio
    async def test_upload_rejected(self, service: FileService, http) -> None:
        """Should surface a rejected upload with its status."""
        http.post_status = 409
        with pytest.raises(UploadRejectedError):
            await service.upload_as_file("gcodes/part.gcode", "G28")


class TestNotifications:
    """Tests for the change notification stream."""

    def test_subscribes_at_construction(self, service: FileService, transport) -> None:
        """Should subscribe to file notifications once."""
        assert transport.listener_count(FILELIST_CHANGED) == 1

    @pytest.mark.asyncio
    async def test_known_action_emitted(self, service: FileService, transport) -> None:
        """Should emit a typed event for a known action."""
        sub = service.subscribe()
        transport.notify(FILELIST_CHANGED, delete_notification())

        event = await sub.next(timeout=1)
        assert isinstance(event, FileActionEvent)
        assert event.action is FileAction.DELETE_FILE
        assert sub.pending() == 0

    @pytest.mark.asyncio
    async def test_unknown_action_dropped(self, service: FileService, transport) -> None:
        """Should skip unknown actions."""
        sub = service.subscribe()
        transport.notify(FILELIST_CHANGED, {"action": "unknown_action", "item": {"root": "gcodes", "path": "a"}})
        transport.notify(FILELIST_CHANGED, {"action": "create_file", "item": {"root": "gcodes", "path": "b"}})

        event = await sub.next(timeout=1)
        assert event.item.path == "b"
        assert sub.pending() == 0

    @pytest.mark.asyncio
    async def test_malformed_notification_dropped(self, service: FileService, transport) -> None:
        """Should drop notifications without an item."""
        sub = service.subscribe()
        transport.notify(FILELIST_CHANGED, {"action": "create_file"})
        assert sub.pending() == 0

    @pytest.mark.asyncio
    async def test_non_finite_size_dropped(self, service: FileService, transport) -> None:
        """Should keep the event but drop a size the host sent as Infinity."""
        sub = service.subscribe()
        transport.notify(
            FILELIST_CHANGED,
            {"action": "create_file", "item": {"root": "gcodes", "path": "a.gcode", "size": float("inf")}},
        )

        event = await sub.next(timeout=1)
        assert event.item.path == "a.gcode"
        assert event.item.size is None

    @pytest.mark.asyncio
    async def test_unexpected_parse_error_dropped(
        self, service: FileService, transport, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Should log and drop a notification that fails to parse for any reason."""
        def explode(message: dict[str, Any]) -> None:
            raise OverflowError("cannot convert float infinity to integer")

        monkeypatch.setattr("moonfiles.client.service.normalize_notification", explode)
        sub = service.subscribe()

        transport.notify(FILELIST_CHANGED, delete_notification())

        assert sub.pending() == 0

    @pytest.mark.asyncio
    async def test_order_preserved(self, service: FileService, transport) -> None:
        """Should keep the host's notification order."""
        sub = service.subscribe()
        for name in ("a", "b", "c"):
            transport.notify(FILELIST_CHANGED, delete_notification(name))
        assert [(await sub.next(timeout=1)).item.path for _ in range(3)] == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_transport_error_forwarded(self, service: FileService, transport) -> None:
        """Should forward channel failures to observers."""
        sub = service.subscribe()
        transport.fail(TransportError("connection lost"))
        with pytest.raises(TransportError):
            await sub.next(timeout=1)

    def test_transport_error_without_observer_dropped(self, service: FileService, transport) -> None:
        """Should not close the stream on an unobserved failure."""
        transport.fail(TransportError("connection lost"))
        assert not service.notifications.closed


class TestDispose:
    """Tests for FileService.dispose."""

    @pytest.mark.asyncio
    async def test_no_events_after_dispose(self, service: FileService, transport) -> None:
        """Should finish subscriptions on dispose."""
        sub = service.subscribe()
        service.dispose()
        transport.notify(FILELIST_CHANGED, delete_notification())

        assert transport.listener_count(FILELIST_CHANGED) == 0
        assert service.notifications.closed
        assert [e async for e in sub] == []

    @pytest.mark.asyncio
    async def test_late_notification_from_stale_listener_ignored(self, transport, http, tmp_path: Path) -> None:
        """Should ignore notifications arriving after dispose."""
        service = FileService("printer-1", transport, http, tmp_path)
        listener, _ = transport.listeners[FILELIST_CHANGED][0]
        sub = service.subscribe()
        service.dispose()

        listener({"method": FILELIST_CHANGED, "params": [delete_notification()]})
        assert [e async for e in sub] == []

    def test_dispose_idempotent(self, service: FileService) -> None:
        """Should allow dispose to be called twice."""
        service.dispose()
        service.dispose()
        assert service.disposed

    @pytest.mark.asyncio
    async def test_operations_after_dispose(self, service: FileService) -> None:
        """Should refuse operations after dispose."""
        service.dispose()
        with pytest.raises(ServiceDisposedError):
            await service.fetch_roots()
        with pytest.raises(ServiceDisposedError):
            service.download_file("gcodes/a.gcode")

    def test_context_manager(self, transport, http, tmp_path: Path) -> None:
        """Should dispose when leaving the with block."""
        with FileService("printer-1", transport, http, tmp_path) as service:
            assert not service.disposed
        assert service.disposed


class TestHostSessionRegistry:
    """Tests for HostSessionRegistry."""

    def make_session(self, host_id: str, transport, tmp_path: Path) -> HostSession:
        config = HostConfig(host_id=host_id, base_url="http://printer.local", temp_dir=tmp_path)
        http = MagicMock()
        http.close = AsyncMock()
        return HostSession(config=config, transport=transport, http=http)

    def test_one_service_per_host(self, transport, tmp_path: Path) -> None:
        """Should return the same service for one host."""
        registry = HostSessionRegistry()
        registry.register(self.make_session("a", transport, tmp_path))

        assert registry.file_service("a") is registry.file_service("a")
        assert transport.listener_count(FILELIST_CHANGED) == 1

    def test_distinct_hosts_distinct_services(self, transport, tmp_path: Path) -> None:
        """Should keep services of different hosts apart."""
        registry = HostSessionRegistry()
        registry.register(self.make_session("a", transport, tmp_path))
        registry.register(self.make_session("b", transport, tmp_path))

        assert registry.file_service("a") is not registry.file_service("b")
        assert registry.file_service("b").local_path_for("gcodes/x.gcode") == tmp_path / "b" / "gcodes" / "x.gcode"

    def test_duplicate_registration(self, transport, tmp_path: Path) -> None:
        """Should refuse a second session for one host."""
        registry = HostSessionRegistry()
        registry.register(self.make_session("a", transport, tmp_path))
        with pytest.raises(ValueError):
            registry.register(self.make_session("a", transport, tmp_path))

    def test_unknown_host(self) -> None:
        """Should raise KeyError for unknown hosts."""
        with pytest.raises(KeyError):
            HostSessionRegistry().file_service("nope")

    @pytest.mark.asyncio
    async def test_remove_disposes_and_closes(self, transport, tmp_path: Path) -> None:
        """Should dispose the service and close the session on remove."""
        registry = HostSessionRegistry()
        session = self.make_session("a", transport, tmp_path)
        registry.register(session)
        service = registry.file_service("a")

        await registry.remove("a")

        assert service.disposed
        assert "a" not in registry
        session.http.close.assert_awaited_once()
