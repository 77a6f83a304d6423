"""Shared fixtures: in-memory stand-ins for the RPC and HTTP channels."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest

from moonfiles.client.service import FileService


class FakeTransport:
    """RpcTransport that answers from a dict and lets tests push notifications."""

    def __init__(self) -> None:
        self.requests: list[tuple[str, dict[str, Any] | None]] = []
        self.responses: dict[str, Any] = {}
        self.errors: dict[str, BaseException] = {}
        self.listeners: dict[str, list[tuple[Callable[..., None], Callable[..., None] | None]]] = {}

    async def send_request(self, method: str, params: dict[str, Any] | None = None) -> Any:
        self.requests.append((method, params))
        if method in self.errors:
            raise self.errors[method]
        return self.responses[method]

    def subscribe(
        self,
        method: str,
        listener: Callable[[dict[str, Any]], None],
        on_error: Callable[[BaseException], None] | None = None,
    ) -> Callable[[], None]:
        entry = (listener, on_error)
        self.listeners.setdefault(method, []).append(entry)

        def unsubscribe() -> None:
            self.listeners[method].remove(entry)

        return unsubscribe

    def listener_count(self, method: str) -> int:
        return len(self.listeners.get(method, []))

    def notify(self, method: str, *params: dict[str, Any]) -> None:
        message = {"jsonrpc": "2.0", "method": method, "params": list(params)}
        for listener, _ in list(self.listeners.get(method, [])):
            listener(message)

    def fail(self, error: BaseException) -> None:
        for entries in self.listeners.values():
            for _, on_error in list(entries):
                if on_error is not None:
                    on_error(error)


class FakeHttp:
    """HostHttpClient stand-in recording calls and replaying progress."""

    def __init__(self) -> None:
        self.content = b"G28\nG1 X10\n"
        self.progress: list[tuple[int, int]] = []
        self.download_error: BaseException | None = None
        self.download_calls: list[str] = []
        self.block: asyncio.Event | None = None
        self.cancelled = False
        self.post_status = 201
        self.post_json: Any = {
            "item": {"path": "sub/part.gcode", "root": "gcodes", "size": 11, "modified": 1.0},
            "action": "create_file",
        }
        self.post_error: BaseException | None = None
        self.posts: list[dict[str, Any]] = []

    async def download(
        self,
        url_path: str,
        save_path: Path,
        on_progress: Callable[[int, int], None] | None = None,
    ) -> Path:
        self.download_calls.append(url_path)
        try:
            for received, total in self.progress:
                if on_progress:
                    on_progress(received, total)
                await asyncio.sleep(0)
            if self.block is not None:
                await self.block.wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.download_error is not None:
            raise self.download_error
        save_path.write_bytes(self.content)
        return save_path

    async def post(
        self,
        url_path: str,
        data: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
    ) -> httpx.Response:
        self.posts.append({"url": url_path, "data": data, "files": files})
        if self.post_error is not None:
            raise self.post_error
        return httpx.Response(self.post_status, json=self.post_json)

    async def close(self) -> None:
        pass


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def http() -> FakeHttp:
    return FakeHttp()


@pytest.fixture
def service(transport: FakeTransport, http: FakeHttp, tmp_path: Path) -> FileService:
    return FileService("printer-1", transport, http, tmp_path)  # type: ignore[arg-type]
