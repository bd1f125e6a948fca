"""EventBus implementation for store change notifications."""

import asyncio
from typing import Awaitable, Callable, Protocol

from ..logging_config import get_logger
from ..models import StoreEvent, Topic

logger = get_logger(__name__)


TopicHandler = Callable[[StoreEvent], Awaitable[None]]


class IEventBus(Protocol):
    """In-memory pub/sub for exchanging StoreEvents."""

    def subscribe(self, topic: Topic, handler: TopicHandler) -> None:
        """Subscribe a handler to a topic."""
        ...

    def unsubscribe(self, topic: Topic, handler: TopicHandler) -> None:
        """Remove a handler from a topic."""
        ...

    async def publish(self, event: StoreEvent) -> None:
        """Publish StoreEvent to every subscriber of its topic."""
        ...


class EventBus:
    """In-memory pub/sub event bus."""

    def __init__(self):
        self._subscribers: dict[Topic, list[TopicHandler]] = {
            topic: [] for topic in Topic
        }

    def subscribe(self, topic: Topic, handler: TopicHandler) -> None:
        """Subscribe a handler to a topic."""
        self._subscribers[topic].append(handler)

    def unsubscribe(self, topic: Topic, handler: TopicHandler) -> None:
        """Remove a handler from a topic."""
        if handler in self._subscribers[topic]:
            self._subscribers[topic].remove(handler)

    async def publish(self, event: StoreEvent) -> None:
        """Publish StoreEvent: calls subscriber callbacks concurrently."""
        handlers = self._subscribers.get(event.topic, [])
        if not handlers:
            return

        results = await asyncio.gather(
            *[handler(event) for handler in handlers],
            return_exceptions=True,
        )

        # A failing subscriber never affects the store or other subscribers
        for i, result in enumerate(results):
            if isinstance(result, Exception):
                logger.error("Error in %s handler %s: %s", event.topic.value, i, result)
