"""Fan-out channel with explicit subscriber lifecycle."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Subscription:
    def __init__(self, cancel: Callable[[], None]) -> None:
        self._cancel: Callable[[], None] | None = cancel

    @property
    def active(self) -> bool:
        return self._cancel is not None

    def unsubscribe(self) -> None:
        if self._cancel is not None:
            cancel, self._cancel = self._cancel, None
            cancel()

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.unsubscribe()


class Broadcaster(Generic[T]):
    """Delivers every published item to all current subscribers, in publish order.

    Callbacks run synchronously inside ``publish``. A failing callback is
    logged and does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._callbacks: dict[int, Callable[[T], None]] = {}
        self._next_id = 0

    def __len__(self) -> int:
        return len(self._callbacks)

    def subscribe(self, callback: Callable[[T], None]) -> Subscription:
        key = self._next_id
        self._next_id += 1
        self._callbacks[key] = callback
        return Subscription(lambda: self._callbacks.pop(key, None))

    def publish(self, item: T) -> None:
        for callback in list(self._callbacks.values()):
            try:
                callback(item)
            except Exception:
                logger.exception("Subscriber %r failed handling %r", callback, item)

    async def listen(self, *, maxsize: int = 0) -> AsyncIterator[T]:
        """Yield published items until the consumer stops iterating."""
        queue: asyncio.Queue[T] = asyncio.Queue(maxsize=maxsize)

        def enqueue(item: T) -> None:
            try:
                queue.put_nowait(item)
            except asyncio.QueueFull:
                logger.warning("Dropping notification for slow listener: %r", item)

        subscription = self.subscribe(enqueue)
        try:
            while True:
                yield await queue.get()
        finally:
            subscription.unsubscribe()
