from typing import Any

import pytest

from storefront.common import ORDER_CREATED_TOPIC, EventConsumer, EventProducer
from storefront.common.events import get_broker


@pytest.mark.asyncio
async def test_consumer_receives_enveloped_messages() -> None:
    received: list[tuple[str, dict[str, Any]]] = []

    async def handler(topic: str, message: dict[str, Any]) -> None:
        received.append((topic, message))

    consumer = EventConsumer([ORDER_CREATED_TOPIC], handler)
    await consumer.start()
    producer = EventProducer(source="Checkout Service")
    await producer.connect()
    try:
        delivered = await producer.send(ORDER_CREATED_TOPIC, {"order": {"id": "o-1"}})
    finally:
        await consumer.stop()
        await producer.close()

    assert delivered == 1
    topic, message = received[0]
    assert topic == ORDER_CREATED_TOPIC
    assert message["eventType"] == ORDER_CREATED_TOPIC
    assert message["source"] == "Checkout Service"
    assert message["order"] == {"id": "o-1"}
    assert "occurredAt" in message


@pytest.mark.asyncio
async def test_failing_consumer_does_not_reach_publisher() -> None:
    calls: list[str] = []

    async def broken(topic: str, message: dict[str, Any]) -> None:
        calls.append("broken")
        raise RuntimeError("consumer exploded")

    async def healthy(topic: str, message: dict[str, Any]) -> None:
        calls.append("healthy")

    consumers = [EventConsumer(["test.bus.v1"], broken), EventConsumer(["test.bus.v1"], healthy)]
    for consumer in consumers:
        await consumer.start()
    producer = EventProducer(source="test")
    await producer.connect()
    try:
        delivered = await producer.send("test.bus.v1", {})
    finally:
        for consumer in consumers:
            await consumer.stop()

    assert calls == ["broken", "healthy"]
    assert delivered == 1
    assert get_broker().subscriber_count("test.bus.v1") == 0


@pytest.mark.asyncio
async def test_send_requires_connection() -> None:
    producer = EventProducer(source="test")
    with pytest.raises(RuntimeError):
        await producer.send("test.bus.v1", {})


@pytest.mark.asyncio
async def test_stopped_consumer_receives_nothing() -> None:
    received: list[str] = []

    async def handler(topic: str, message: dict[str, Any]) -> None:
        received.append(topic)

    consumer = EventConsumer(["test.stopped.v1"], handler)
    await consumer.start()
    await consumer.start()
    assert get_broker().subscriber_count("test.stopped.v1") == 1
    await consumer.stop()

    producer = EventProducer(source="test")
    await producer.connect()
    assert await producer.send("test.stopped.v1", {}) == 0
    assert received == []
