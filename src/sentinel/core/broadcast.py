"""Single-producer, multi-consumer broadcast channel for asyncio."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Generic, TypeVar

logger = logging.getLogger("sentinel.broadcast")

T = TypeVar("T")

DEFAULT_CAPACITY = 16


class ChannelClosed(Exception):
    """The channel was closed and the subscriber has drained its buffer."""


class Subscription(Generic[T]):
    """One consumer's bounded view of the channel.

    When the buffer is full the oldest item is dropped: a slow consumer lags
    behind, it never holds up the producer.
    """

    def __init__(self, channel: BroadcastChannel[T], capacity: int) -> None:
        self._channel = channel
        self._buffer: deque[T] = deque()
        self._capacity = capacity
        self._ready = asyncio.Event()
        self._closed = False
        self.lagged = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def _push(self, item: T) -> None:
        if len(self._buffer) >= self._capacity:
            self._buffer.popleft()
            self.lagged += 1
        self._buffer.append(item)
        self._ready.set()

    def _shutdown(self) -> None:
        self._closed = True
        self._ready.set()

    async def recv(self) -> T:
        """Next item in production order. Raises ChannelClosed when done."""
        while not self._buffer:
            if self._closed:
                raise ChannelClosed
            self._ready.clear()
            await self._ready.wait()
        return self._buffer.popleft()

    def close(self) -> None:
        """Stop receiving. Safe to call more than once."""
        self._channel._unsubscribe(self)
        self._shutdown()

    def __aiter__(self) -> Subscription[T]:
        return self

    async def __anext__(self) -> T:
        try:
            return await self.recv()
        except ChannelClosed:
            raise StopAsyncIteration from None

    def __enter__(self) -> Subscription[T]:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class BroadcastChannel(Generic[T]):
    """Every subscriber independently receives every item published after
    it subscribed, minus whatever it lagged past.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        self._subscribers: list[Subscription[T]] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription[T]:
        sub: Subscription[T] = Subscription(self, self._capacity)
        if self._closed:
            sub._shutdown()
        else:
            self._subscribers.append(sub)
        return sub

    def publish(self, item: T) -> int:
        """Hand the item to every subscriber without waiting.

        Returns the number of subscribers it was delivered to.
        """
        if self._closed:
            return 0
        for sub in self._subscribers:
            sub._push(item)
        return len(self._subscribers)

    def close(self) -> None:
        """Close the channel; subscribers finish what is buffered, then stop."""
        if self._closed:
            return
        self._closed = True
        subscribers, self._subscribers = self._subscribers, []
        for sub in subscribers:
            sub._shutdown()
        logger.debug("Broadcast channel closed (%d subscribers)", len(subscribers))

    def _unsubscribe(self, sub: Subscription[T]) -> None:
        try:
            self._subscribers.remove(sub)
        except ValueError:
            pass
