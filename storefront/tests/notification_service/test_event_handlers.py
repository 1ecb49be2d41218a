import json

import pytest
from prometheus_client import REGISTRY

from storefront.common import (
    ORDER_CREATED_TOPIC,
    ORDER_STATUS_CHANGED_TOPIC,
    create_schema,
    dispose_engines,
    get_session_factory,
    lifespan_session,
)
from storefront.notification_service.app.event_handlers import NotificationEventHandler
from storefront.notification_service.app.models import Base
from storefront.notification_service.app.providers import InMemoryEmailProvider, InMemoryPushProvider
from storefront.notification_service.app.repository import NotificationRepository
from storefront.notification_service.app.services import NotificationDispatcher, data_from_json


def _metric(name: str, labels: dict[str, str]) -> float:
    value = REGISTRY.get_sample_value(name, labels)
    return float(value) if value is not None else 0.0


async def _handler(tmp_path):
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'events.db'}"
    await create_schema(database_url, Base.metadata)
    session_factory = get_session_factory(database_url)
    dispatcher = NotificationDispatcher(
        session_factory,
        push_provider=InMemoryPushProvider(),
        email_provider=InMemoryEmailProvider(),
    )
    return NotificationEventHandler(session_factory, dispatcher=dispatcher), session_factory


def _order(**overrides):
    order = {
        "id": "order-42",
        "userId": "customer-1",
        "status": "processing",
        "total": "108.00",
        "items": [
            {"productId": "shirt", "name": "Shirt", "quantity": 2, "price": "60.00"},
            {"productId": "cap", "name": "Cap", "quantity": 1, "price": "15.00"},
        ],
    }
    order.update(overrides)
    return order


async def _inbox(session_factory, user_id: str):
    async with lifespan_session(session_factory) as session:
        entries, _, _ = await NotificationRepository(session).list_inbox(
            user_id, unread_only=False, limit=50, offset=0
        )
    return entries


@pytest.mark.asyncio
async def test_order_created_confirms_to_customer_and_alerts_admins(tmp_path) -> None:
    handler, session_factory = await _handler(tmp_path)
    processed = _metric("notification_events_processed_total", {"topic": ORDER_CREATED_TOPIC})
    try:
        async with lifespan_session(session_factory) as session:
            repository = NotificationRepository(session)
            await repository.save_profile("admin-1", {"role": "admin"})
            await repository.save_profile("admin-2", {"role": "admin"})
            await repository.save_profile("customer-1", {"role": "customer"})

        await handler.handle(
            ORDER_CREATED_TOPIC,
            {
                "eventType": ORDER_CREATED_TOPIC,
                "order": _order(),
                "lowStock": [{"productId": "shirt", "name": "Shirt", "inventoryCount": 4}],
            },
        )

        confirmations = await _inbox(session_factory, "customer-1")
        assert len(confirmations) == 1
        confirmation = confirmations[0]
        assert confirmation.title == "Order Confirmation"
        assert confirmation.body == "Your order #order-42 has been placed successfully."
        assert confirmation.type == "order_placed"
        data = data_from_json(confirmation.data_json)
        assert data["order_id"] == "order-42"
        assert data["order_total"] == "108.00"
        assert json.loads(data["order_items"]) == [
            {"product_id": "shirt", "quantity": 2, "price": "60.00"},
            {"product_id": "cap", "quantity": 1, "price": "15.00"},
        ]

        for admin_id in ("admin-1", "admin-2"):
            alerts = await _inbox(session_factory, admin_id)
            assert [alert.type for alert in alerts] == ["stock_alert"]
            assert alerts[0].title == "Low Inventory Alert"
            assert alerts[0].body == 'Product "Shirt" (ID: shirt) has low inventory: 4 items remaining.'
            assert data_from_json(alerts[0].data_json)["url"] == "/admin/products/shirt/edit"

        assert _metric("notification_events_processed_total", {"topic": ORDER_CREATED_TOPIC}) - processed == 1
    finally:
        await dispose_engines()


@pytest.mark.asyncio
async def test_low_stock_without_admins_is_counted(tmp_path) -> None:
    handler, session_factory = await _handler(tmp_path)
    labels = {"topic": ORDER_CREATED_TOPIC, "reason": "no_admins"}
    baseline = _metric("notification_events_dropped_total", labels)
    try:
        await handler.handle(
            ORDER_CREATED_TOPIC,
            {"order": _order(), "lowStock": [{"productId": "cap", "name": "Cap", "inventoryCount": 2}]},
        )

        assert len(await _inbox(session_factory, "customer-1")) == 1
        assert _metric("notification_events_dropped_total", labels) - baseline == 1
    finally:
        await dispose_engines()


@pytest.mark.asyncio
async def test_status_change_notifies_customer(tmp_path) -> None:
    handler, session_factory = await _handler(tmp_path)
    try:
        await handler.handle(
            ORDER_STATUS_CHANGED_TOPIC,
            {"order": _order(status="shipped"), "previousStatus": "processing", "currentStatus": "shipped"},
        )

        entries = await _inbox(session_factory, "customer-1")
        assert [(entry.title, entry.type) for entry in entries] == [("Order shipped", "order_status")]
        assert entries[0].body == "Your order #order-42 has been shipped."
        assert data_from_json(entries[0].data_json) == {
            "order_id": "order-42",
            "status": "shipped",
            "url": "/orders/order-42",
        }
    finally:
        await dispose_engines()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("topic", "payload", "reason"),
    [
        (ORDER_CREATED_TOPIC, {"order": "not-a-dict"}, "invalid_payload"),
        (ORDER_CREATED_TOPIC, {"order": {"id": "o-1", "userId": "  "}}, "missing_user"),
        (ORDER_STATUS_CHANGED_TOPIC, {"order": {"id": "o-1", "userId": "u-1"}}, "invalid_payload"),
        ("inventory.adjusted.v1", {"order": {"id": "o-1", "userId": "u-1"}}, "unsupported_topic"),
    ],
)
async def test_unusable_events_are_dropped(tmp_path, topic, payload, reason) -> None:
    handler, session_factory = await _handler(tmp_path)
    labels = {"topic": topic, "reason": reason}
    baseline = _metric("notification_events_dropped_total", labels)
    try:
        await handler.handle(topic, payload)

        assert _metric("notification_events_dropped_total", labels) - baseline == 1
        assert await _inbox(session_factory, "u-1") == []
    finally:
        await dispose_engines()
