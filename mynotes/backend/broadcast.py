"""
Broadcast channel - publish/subscribe fan-out for in-process observers.

A Broadcast owns a list of subscriptions. Every published value is pushed to
the queue of each subscription that is live at publish time. Values published
before a subscription existed are never delivered to it (no replay).

Subscriptions are async iterators, so a consumer reads them with::

    subscription = channel.subscribe()
    async for value in subscription:
        ...

and stops by calling ``subscription.close()``.
"""

import asyncio
import logging
from typing import Any, Generic, List, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CLOSED = object()


class Subscription(Generic[T]):
    """One observer's view of a Broadcast."""

    def __init__(self, channel: "Broadcast[T]"):
        self._channel = channel
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def _deliver(self, value: Any) -> None:
        self._queue.put_nowait(value)

    def get_nowait(self) -> T:
        """
        Return the oldest undelivered value.

        Raises:
            asyncio.QueueEmpty: If nothing is pending or the subscription is closed
        """
        value = self._queue.get_nowait()
        if value is _CLOSED:
            raise asyncio.QueueEmpty()
        return value

    def drain(self) -> List[T]:
        """Return every pending value, oldest first."""
        values = []
        while True:
            try:
                values.append(self.get_nowait())
            except asyncio.QueueEmpty:
                return values

    def close(self) -> None:
        """Unsubscribe. Pending values stay readable; iteration then stops."""
        if self.closed:
            return
        self.closed = True
        self._channel.unsubscribe(self)
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> "Subscription[T]":
        return self

    async def __anext__(self) -> T:
        value = await self._queue.get()
        if value is _CLOSED:
            raise StopAsyncIteration
        return value


class Broadcast(Generic[T]):
    """Multi-consumer channel delivering every publish to all live subscribers."""

    def __init__(self, name: str = "broadcast"):
        self.name = name
        self._subscriptions: List[Subscription[T]] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self) -> Subscription[T]:
        subscription: Subscription[T] = Subscription(self)
        self._subscriptions.append(subscription)
        logger.debug("%s: subscriber added (%d live)", self.name, len(self._subscriptions))
        return subscription

    def unsubscribe(self, subscription: Subscription[T]) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
            logger.debug("%s: subscriber removed (%d live)", self.name, len(self._subscriptions))

    def publish(self, value: T) -> int:
        """Push ``value`` to every live subscriber and return how many received it."""
        for subscription in list(self._subscriptions):
            subscription._deliver(value)
        return len(self._subscriptions)

    def close(self) -> None:
        """Close every live subscription."""
        for subscription in list(self._subscriptions):
            subscription.close()
