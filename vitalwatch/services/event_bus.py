"""
In-process publish/subscribe channel.

Decouples the feed client from the classification pipeline. Each subscriber
gets its own unbounded queue, so delivery order per subscriber equals
publish order.
"""

import asyncio
from collections.abc import AsyncIterator
from typing import Generic, TypeVar

import structlog

logger = structlog.get_logger(__name__)

MessageT = TypeVar("MessageT")


class _Closed:
    """Sentinel pushed to subscriber queues when the bus closes."""


_CLOSED = _Closed()


class EventBus(Generic[MessageT]):
    """Fan-out channel with one queue per subscriber."""

    def __init__(self) -> None:
        self._queues: list[asyncio.Queue[MessageT | _Closed]] = []
        self._closed = False
        self.logger = logger.bind(component="event_bus")

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._queues)

    def publish(self, message: MessageT) -> None:
        """Deliver a message to every current subscriber. Never blocks."""
        if self._closed:
            raise RuntimeError("Cannot publish on a closed bus")
        for queue in self._queues:
            queue.put_nowait(message)

    def open_subscription(self) -> "Subscription[MessageT]":
        """Register a subscriber. Messages published from now on are queued."""
        if self._closed:
            raise RuntimeError("Cannot subscribe to a closed bus")
        queue: asyncio.Queue[MessageT | _Closed] = asyncio.Queue()
        self._queues.append(queue)
        return Subscription(self, queue)

    def close(self) -> None:
        """Stop the bus; subscribers finish after draining queued messages."""
        if self._closed:
            return
        self._closed = True
        for queue in self._queues:
            queue.put_nowait(_CLOSED)
        self.logger.info("event_bus_closed", subscribers=len(self._queues))

    def _unsubscribe(self, queue: "asyncio.Queue[MessageT | _Closed]") -> None:
        if queue in self._queues:
            self._queues.remove(queue)


class Subscription(Generic[MessageT]):
    """Async iterator over messages published after subscribing."""

    def __init__(
        self, bus: EventBus[MessageT], queue: "asyncio.Queue[MessageT | _Closed]"
    ) -> None:
        self._bus = bus
        self._queue = queue

    def __aiter__(self) -> AsyncIterator[MessageT]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[MessageT]:
        try:
            while True:
                message = await self._queue.get()
                if isinstance(message, _Closed):
                    return
                yield message
        finally:
            self.close()

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        self._bus._unsubscribe(self._queue)
