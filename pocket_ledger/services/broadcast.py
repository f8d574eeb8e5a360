"""
Fan-out publish channel.

Every subscriber owns its own unbounded queue, so publishing never waits for
a consumer and a slow subscriber cannot stall the publisher or the other
subscribers. Values are delivered from the moment of subscription onwards;
nothing is replayed.

Broadcasters are meant to be used from a single event loop.
"""

import asyncio
from typing import Generic, Optional, TypeVar

import structlog


T = TypeVar("T")

logger = structlog.get_logger(__name__)

_CLOSED = object()


class Subscription(Generic[T]):
    """
    Receiving end of a Broadcaster.

    Iterate with `async for`; iteration ends once the subscription or its
    channel is closed and every value published before that was consumed.
    """

    def __init__(self, channel: "Broadcaster[T]"):
        self._channel = channel
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        """Number of values delivered but not consumed yet."""
        return self._queue.qsize()

    def _deliver(self, value) -> None:
        self._queue.put_nowait(value)

    def _end(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    def close(self) -> None:
        """Stop receiving values. Already queued values can still be read."""
        self._channel._detach(self)
        self._end()

    async def get(self, timeout: Optional[float] = None) -> T:
        """
        Wait for the next value.

        Raises:
            asyncio.TimeoutError: nothing arrived within `timeout` seconds
            StopAsyncIteration: the subscription is closed and drained
        """
        if timeout is None:
            item = await self._queue.get()
        else:
            item = await asyncio.wait_for(self._queue.get(), timeout)
        if item is _CLOSED:
            # Keep the marker so later reads end the same way
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item

    def get_nowait(self) -> T:
        """
        Next value if one is queued.

        Raises:
            asyncio.QueueEmpty: nothing is queued
            StopAsyncIteration: the subscription is closed and drained
        """
        item = self._queue.get_nowait()
        if item is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item

    def drain(self) -> list[T]:
        """Take every value queued so far without waiting."""
        values = []
        while True:
            try:
                values.append(self.get_nowait())
            except (asyncio.QueueEmpty, StopAsyncIteration):
                return values

    def __aiter__(self) -> "Subscription[T]":
        return self

    async def __anext__(self) -> T:
        return await self.get()

    def __enter__(self) -> "Subscription[T]":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class Broadcaster(Generic[T]):
    """Multi-consumer publish channel without replay."""

    def __init__(self, name: str = "broadcast"):
        self._name = name
        self._subscribers: list[Subscription[T]] = []
        self._closed = False

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self) -> Subscription[T]:
        """Attach a new subscriber. A closed channel hands out ended subscriptions."""
        subscription: Subscription[T] = Subscription(self)
        if self._closed:
            subscription._end()
        else:
            self._subscribers.append(subscription)
        return subscription

    def publish(self, value: T) -> int:
        """
        Deliver `value` to every current subscriber.

        Returns the number of subscribers reached.
        """
        if self._closed:
            logger.debug("publish_on_closed_channel", channel=self._name)
            return 0
        for subscription in list(self._subscribers):
            subscription._deliver(value)
        return len(self._subscribers)

    def close(self) -> None:
        """End every subscription. Later publishes are dropped."""
        self._closed = True
        subscribers, self._subscribers = self._subscribers, []
        for subscription in subscribers:
            subscription._end()

    def _detach(self, subscription: Subscription[T]) -> None:
        try:
            self._subscribers.remove(subscription)
        except ValueError:
            pass
