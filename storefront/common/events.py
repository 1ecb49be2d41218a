"""In-process domain event bus shaped like a Kafka producer/consumer pair.

Topics follow the ``<aggregate>.<event>.v<version>`` convention. Delivery is
at-most-once and synchronous within the publishing task; a failing consumer is
logged and never propagates back to the publisher.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Sequence

ORDER_CREATED_TOPIC = "order.created.v1"
ORDER_STATUS_CHANGED_TOPIC = "order.status.changed.v1"

MessageHandler = Callable[[dict[str, Any]], Awaitable[None]]
TopicHandler = Callable[[str, dict[str, Any]], Awaitable[None]]

_LOGGER = logging.getLogger(__name__)


class _InMemoryBroker:
    """Dispatches published messages to subscribed coroutines."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[MessageHandler]] = defaultdict(list)

    def subscribe(self, topic: str, handler: MessageHandler) -> None:
        self._subscribers[topic].append(handler)

    def unsubscribe(self, topic: str, handler: MessageHandler) -> None:
        handlers = self._subscribers.get(topic)
        if handlers and handler in handlers:
            handlers.remove(handler)
            if not handlers:
                self._subscribers.pop(topic, None)

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, []))

    async def publish(self, topic: str, message: dict[str, Any]) -> int:
        delivered = 0
        # Iterate over a copy in case handlers mutate subscriptions.
        for handler in list(self._subscribers.get(topic, [])):
            try:
                await handler(message)
            except Exception:
                _LOGGER.exception("Consumer failed while handling %s", topic)
            else:
                delivered += 1
        return delivered


_BROKER = _InMemoryBroker()


def get_broker() -> _InMemoryBroker:
    return _BROKER


class EventProducer:
    """Producer facade; ``send`` wraps payloads in a standard envelope."""

    def __init__(self, *, source: str, bootstrap_servers: str | None = None) -> None:
        self.source = source
        self.bootstrap_servers = bootstrap_servers
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self._connected = True

    async def send(self, topic: str, value: dict[str, Any]) -> int:
        if not self._connected:
            raise RuntimeError("Producer not connected")
        envelope = {
            "eventType": topic,
            "source": self.source,
            "occurredAt": datetime.now(timezone.utc).isoformat(),
            **value,
        }
        return await _BROKER.publish(topic, envelope)

    async def close(self) -> None:
        self._connected = False


class EventConsumer:
    """Subscribes a single ``handler(topic, message)`` coroutine to several topics."""

    def __init__(self, topics: Sequence[str], handler: TopicHandler) -> None:
        self._topics = list(topics)
        self._handler = handler
        self._registrations: list[tuple[str, MessageHandler]] = []
        self._started = False

    @property
    def topics(self) -> list[str]:
        return list(self._topics)

    async def start(self) -> None:
        if self._started:
            return
        for topic in self._topics:
            async def _callback(message: dict[str, Any], current_topic: str = topic) -> None:
                await self._handler(current_topic, message)

            _BROKER.subscribe(topic, _callback)
            self._registrations.append((topic, _callback))
        self._started = True

    async def stop(self) -> None:
        if not self._started:
            return
        for topic, callback in self._registrations:
            _BROKER.unsubscribe(topic, callback)
        self._registrations.clear()
        self._started = False
