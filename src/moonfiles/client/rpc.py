"""JSON-RPC channel to a Moonraker host.

This module provides:
- RpcTransport: the interface the file service needs from an RPC channel
- JsonRpcClient: websocket implementation of RpcTransport

Architecture:
    Host ──ws──► JsonRpcClient ─┬─► pending request futures (by id)
                                └─► notification listeners (by method)

Responses are matched to requests by id; messages without an id are
notifications and are dispatched to the listeners of their method, in the
order received. Reconnection is left to the owner of the client.
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import json
import logging
import ssl
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol

import websockets
from websockets.exceptions import WebSocketException

from moonfiles.core.errors import JsonRpcError, TransportError

if TYPE_CHECKING:
    from websockets.asyncio.client import ClientConnection

    from moonfiles.core.config import HostConfig

logger = logging.getLogger(__name__)

NotificationListener = Callable[[dict[str, Any]], None]
ErrorListener = Callable[[BaseException], None]


class RpcTransport(Protocol):
    """Request/response calls plus push notifications over one channel."""

    async def send_request(
        self, method: str, params: dict[str, Any] | None = None
    ) -> Any:
        """Send a request and return its ``result``."""
        ...

    def subscribe(
        self,
        method: str,
        listener: NotificationListener,
        on_error: ErrorListener | None = None,
    ) -> Callable[[], None]:
        """Register a notification listener; returns the unsubscribe call."""
        ...


class JsonRpcClient:
    """JSON-RPC 2.0 client over a Moonraker websocket.

    Usage:
        client = JsonRpcClient(host_config)
        await client.connect()
        roots = await client.send_request("server.files.roots")
        unsubscribe = client.subscribe("notify_filelist_changed", print)
        ...
        await client.close()
    """

    def __init__(
        self,
        config: HostConfig,
        request_timeout: float | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Host configuration with URL and SSL settings.
            request_timeout: Seconds to wait for a response (default:
                config.timeout).
        """
        self._config = config
        self._request_timeout = request_timeout or config.timeout
        self._ws: ClientConnection | None = None
        self._reader: asyncio.Task[None] | None = None
        self._ids = itertools.count(1)
        self._pending: dict[int, asyncio.Future[Any]] = {}
        self._listeners: dict[str, list[tuple[NotificationListener, ErrorListener | None]]] = {}

    @property
    def connected(self) -> bool:
        """Check if currently connected."""
        return self._ws is not None

    @property
    def ws_url(self) -> str:
        return self._config.ws_url

    async def connect(self) -> None:
        """Open the websocket and start reading messages."""
        if self._ws is not None:
            return
        ssl_context: ssl.SSLContext | None = None
        if self.ws_url.startswith("wss://"):
            ssl_context = ssl.create_default_context()
            if not self._config.verify_ssl:
                ssl_context.check_hostname = False
                ssl_context.verify_mode = ssl.CERT_NONE

        headers = self._config.headers or None
        try:
            self._ws = await websockets.connect(
                self.ws_url,
                ssl=ssl_context,
                additional_headers=headers,
                open_timeout=self._config.timeout,
                close_timeout=5,
                max_size=None,
            )
        except (WebSocketException, OSError) as e:
            raise TransportError(f"Could not connect to {self.ws_url}: {e}") from e
        self._reader = asyncio.create_task(self._read_loop())
        logger.info("Connected to %s", self.ws_url)

    async def close(self) -> None:
        """Close the websocket and fail all pending requests."""
        if self._reader:
            self._reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader
            self._reader = None
        if self._ws:
            with contextlib.suppress(WebSocketException):
                await self._ws.close()
            self._ws = None
        self._fail_pending(TransportError("Connection closed"))
        logger.info("Disconnected from %s", self.ws_url)

    async def __aenter__(self) -> JsonRpcClient:
        await self.connect()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    async def send_request(
        self, method: str, params: dict[str, Any] | None = None
    ) -> Any:
        """Send a request and wait for its result.

        Args:
            method: JSON-RPC method name.
            params: Optional named parameters.

        Returns:
            The ``result`` member of the response.

        Raises:
            JsonRpcError: If the host answered with an error object.
            TransportError: If not connected, the connection dropped or the
                request timed out.
        """
        if self._ws is None:
            raise TransportError("Not connected")

        request_id = next(self._ids)
        message: dict[str, Any] = {"jsonrpc": "2.0", "method": method, "id": request_id}
        if params is not None:
            message["params"] = params

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        logger.debug("Sending %s (id=%d)", method, request_id)
        try:
            await self._ws.send(json.dumps(message))
            return await asyncio.wait_for(future, timeout=self._request_timeout)
        except TimeoutError as e:
            raise TransportError(f"Request {method} timed out") from e
        except WebSocketException as e:
            raise TransportError(f"Request {method} failed: {e}") from e
        finally:
            self._pending.pop(request_id, None)

    def subscribe(
        self,
        method: str,
        listener: NotificationListener,
        on_error: ErrorListener | None = None,
    ) -> Callable[[], None]:
        """Listen for notifications of one method.

        Args:
            method: Notification method, e.g. ``notify_filelist_changed``.
            listener: Called with every raw notification message.
            on_error: Called if the connection fails while subscribed.

        Returns:
            Callable that removes the listener again.
        """
        entry = (listener, on_error)
        self._listeners.setdefault(method, []).append(entry)

        def unsubscribe() -> None:
            entries = self._listeners.get(method, [])
            if entry in entries:
                entries.remove(entry)

        return unsubscribe

    async def _read_loop(self) -> None:
        assert self._ws is not None
        error = TransportError("Connection closed by host")
        # Cancellation from close() propagates and skips the teardown below
        try:
            async for raw in self._ws:
                if isinstance(raw, bytes):
                    raw = raw.decode("utf-8", errors="replace")
                try:
                    self._handle_message(raw)
                except Exception:
                    logger.exception("Error handling message from %s", self.ws_url)
        except websockets.ConnectionClosed as e:
            logger.warning("Connection to %s closed: %s", self.ws_url, e)
            error = TransportError(f"Connection closed: {e}")
        except Exception as e:
            logger.exception("Reader for %s stopped", self.ws_url)
            error = TransportError(f"Connection failed: {e}")
        self._ws = None
        self._fail_all(error)

    def _handle_message(self, raw: str) -> None:
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Invalid message received: %s", raw[:100])
            return
        if not isinstance(message, dict):
            logger.warning("Unexpected message received: %s", raw[:100])
            return

        request_id = message.get("id")
        if request_id is not None:
            if not isinstance(request_id, (int, str)):
                logger.warning("Invalid request id in message: %s", raw[:100])
                return
            future = self._pending.get(request_id)
            if future is None or future.done():
                logger.debug("Response for unknown request id %s", request_id)
                return
            error = message.get("error")
            if isinstance(error, dict):
                future.set_exception(
                    JsonRpcError(str(error.get("message", error)), error.get("code"))
                )
            elif error is not None:
                future.set_exception(JsonRpcError(str(error)))
            else:
                future.set_result(message.get("result"))
            return

        method = message.get("method")
        if not isinstance(method, str):
            logger.debug("Message without method ignored: %s", raw[:100])
            return
        for listener, _ in list(self._listeners.get(method, [])):
            try:
                listener(message)
            except Exception:
                logger.exception("Listener for %s failed", method)

    def _fail_all(self, error: TransportError) -> None:
        self._fail_pending(error)
        for entries in list(self._listeners.values()):
            for _, on_error in list(entries):
                if on_error is None:
                    continue
                try:
                    on_error(error)
                except Exception:
                    logger.exception("Error listener failed")

    def _fail_pending(self, error: TransportError) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()

