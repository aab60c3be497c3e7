"""Topic-based in-process pub/sub used for streaming fan-out."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any


logger = logging.getLogger(__name__)

_CLOSED = object()


class Subscription:
    """Infinite async iterator over messages published to one topic.

    Only messages published after the subscription was created are seen.
    Close it (or use it as an async context manager) to stop receiving.
    """

    def __init__(self, bus: "EventBus", topic: str):
        self.bus = bus
        self.topic = topic
        self._queue: asyncio.Queue = asyncio.Queue()  # Unbounded; no backpressure
        self._closed = False

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Any:
        if self._closed:
            raise StopAsyncIteration
        message = await self._queue.get()
        if message is _CLOSED:
            raise StopAsyncIteration
        return message

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()

    async def aclose(self) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, message: Any) -> None:
        if not self._closed:
            self._queue.put_nowait(message)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.bus._discard(self)
        self._queue.put_nowait(_CLOSED)  # Wake a pending __anext__


class EventBus:
    """Delivers each published message to every live subscription of its topic."""

    def __init__(self) -> None:
        self._subscribers: dict[str, set[Subscription]] = defaultdict(set)

    def subscribe(self, topic: str) -> Subscription:
        subscription = Subscription(self, topic)
        self._subscribers[topic].add(subscription)
        return subscription

    def publish(self, topic: str, message: Any) -> int:
        """Publish to a topic. Returns how many subscriptions received it."""
        subscriptions = self._subscribers.get(topic)
        if not subscriptions:
            return 0
        for subscription in list(subscriptions):
            subscription.put(message)
        return len(subscriptions)

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, ()))

    def topics(self) -> list[str]:
        return [topic for topic, subs in self._subscribers.items() if subs]

    def _discard(self, subscription: Subscription) -> None:
        subscriptions = self._subscribers.get(subscription.topic)
        if subscriptions is None:
            return
        subscriptions.discard(subscription)
        if not subscriptions:
            del self._subscribers[subscription.topic]
