"""Broadcast stream for file change events.

This module provides:
- EventStream: single-writer stream fanned out to any number of observers
- Subscription: one observer's view, an async iterator over the events

Events reach every subscription in the order they were added. An error
added while nobody is subscribed is dropped. After close(), subscriptions
finish and further events are ignored.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _Closed:
    pass


_CLOSED = _Closed()


class _Error:
    __slots__ = ("error",)

    def __init__(self, error: BaseException) -> None:
        self.error = error


class Subscription(Generic[T]):
    """An observer of an EventStream.

    Usage:
        async for event in stream.subscribe():
            ...
    """

    def __init__(self, stream: EventStream[T]) -> None:
        self._stream = stream
        self._queue: asyncio.Queue[T | _Error | _Closed] = asyncio.Queue()
        self._done = False

    def __aiter__(self) -> Subscription[T]:
        return self

    async def __anext__(self) -> T:
        if self._done:
            raise StopAsyncIteration
        item = await self._queue.get()
        if isinstance(item, _Closed):
            self._done = True
            raise StopAsyncIteration
        if isinstance(item, _Error):
            raise item.error
        return item

    async def next(self, timeout: float | None = None) -> T:
        """Wait for the next event.

        Raises:
            StopAsyncIteration: If the stream is closed.
            TimeoutError: If no event arrives within ``timeout``.
        """
        return await asyncio.wait_for(self.__anext__(), timeout=timeout)

    def pending(self) -> int:
        """Number of events received but not consumed yet."""
        return self._queue.qsize()

    def cancel(self) -> None:
        """Stop receiving events."""
        self._stream._remove(self)
        self._deliver(_CLOSED)

    def _deliver(self, item: T | _Error | _Closed) -> None:
        self._queue.put_nowait(item)


class EventStream(Generic[T]):
    """Single-writer, multi-observer event stream."""

    def __init__(self, name: str = "events") -> None:
        self._name = name
        self._subscriptions: list[Subscription[T]] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self) -> Subscription[T]:
        """Start observing; only events added from now on are received."""
        subscription: Subscription[T] = Subscription(self)
        if self._closed:
            subscription._deliver(_CLOSED)
        else:
            self._subscriptions.append(subscription)
        return subscription

    def add(self, event: T) -> bool:
        """Publish an event to all current subscriptions.

        Returns:
            False if the stream is closed and the event was ignored.
        """
        if self._closed:
            logger.debug("Stream %s closed, ignoring event %s", self._name, event)
            return False
        for subscription in list(self._subscriptions):
            subscription._deliver(event)
        return True

    def add_error(self, error: BaseException) -> bool:
        """Publish an error; dropped when closed or nobody is subscribed."""
        if self._closed or not self._subscriptions:
            logger.debug("Dropping error on stream %s: %s", self._name, error)
            return False
        for subscription in list(self._subscriptions):
            subscription._deliver(_Error(error))
        return True

    def close(self) -> None:
        """Close the stream and finish all subscriptions."""
        if self._closed:
            return
        self._closed = True
        for subscription in self._subscriptions:
            subscription._deliver(_CLOSED)
        self._subscriptions.clear()

    def _remove(self, subscription: Subscription[T]) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
