"""Background event handlers for order notifications."""

from __future__ import annotations

import json
import logging
from typing import Any, cast

from sqlalchemy.ext.asyncio import async_sessionmaker

from storefront.common import ORDER_CREATED_TOPIC, ORDER_STATUS_CHANGED_TOPIC, lifespan_session

from .metrics import (
    NOTIFICATION_EVENTS_DROPPED_TOTAL,
    NOTIFICATION_EVENTS_PROCESSED_TOTAL,
    normalise_event_reason,
)
from .repository import NotificationRepository
from .services import NotificationDispatcher, NotificationRequest

logger = logging.getLogger(__name__)


def _user_id(order: dict[str, Any]) -> str | None:
    raw = order.get("userId")
    if raw is None:
        return None
    cleaned = str(raw).strip()
    return cleaned or None


class NotificationEventHandler:
    """Consumes order events and dispatches customer and admin notifications."""

    def __init__(self, session_factory: async_sessionmaker, *, dispatcher: NotificationDispatcher) -> None:
        self._session_factory = session_factory
        self._dispatcher = dispatcher

    async def handle(self, topic: str, payload: dict[str, Any]) -> None:
        processed = False
        outcome = "unsupported_topic"
        if topic == ORDER_CREATED_TOPIC:
            processed, outcome = await self._handle_order_created(payload)
        elif topic == ORDER_STATUS_CHANGED_TOPIC:
            processed, outcome = await self._handle_order_status(payload)

        reason = normalise_event_reason(outcome)
        if processed:
            NOTIFICATION_EVENTS_PROCESSED_TOTAL.labels(topic=topic).inc()
        else:
            logger.info("Dropped %s event: %s", topic, reason)
            NOTIFICATION_EVENTS_DROPPED_TOTAL.labels(topic=topic, reason=reason).inc()

    async def _handle_order_created(self, payload: dict[str, Any]) -> tuple[bool, str]:
        order_obj = payload.get("order")
        if not isinstance(order_obj, dict):
            return False, "invalid_payload"
        order = cast(dict[str, Any], order_obj)

        user_id = _user_id(order)
        if user_id is None:
            return False, "missing_user"

        order_id = order.get("id")
        items = [
            {"product_id": item.get("productId"), "quantity": item.get("quantity"), "price": item.get("price")}
            for item in order.get("items") or []
            if isinstance(item, dict)
        ]
        await self._dispatcher.send_notification(
            NotificationRequest(
                user_id=user_id,
                title="Order Confirmation",
                body=f"Your order #{order_id} has been placed successfully.",
                type="order_placed",
                data={
                    "order_id": str(order_id),
                    "order_total": str(order.get("total")),
                    "order_items": json.dumps(items),
                },
            )
        )

        low_stock = payload.get("lowStock") or []
        if low_stock:
            await self._notify_low_stock([entry for entry in low_stock if isinstance(entry, dict)])
        return True, "processed"

    async def _notify_low_stock(self, entries: list[dict[str, Any]]) -> None:
        async with lifespan_session(self._session_factory) as session:
            admins = await NotificationRepository(session).list_admins()
            admin_ids = [admin.id for admin in admins]
        if not admin_ids:
            logger.warning("Low inventory for %d products but no admin profiles exist", len(entries))
            NOTIFICATION_EVENTS_DROPPED_TOTAL.labels(topic=ORDER_CREATED_TOPIC, reason="no_admins").inc()
            return

        for entry in entries:
            product_id = entry.get("productId")
            name = entry.get("name")
            remaining = entry.get("inventoryCount")
            for admin_id in admin_ids:
                await self._dispatcher.send_notification(
                    NotificationRequest(
                        user_id=admin_id,
                        title="Low Inventory Alert",
                        body=f'Product "{name}" (ID: {product_id}) has low inventory: {remaining} items remaining.',
                        type="stock_alert",
                        data={
                            "product_id": str(product_id),
                            "product_name": str(name),
                            "inventory_count": str(remaining),
                            "url": f"/admin/products/{product_id}/edit",
                        },
                    )
                )

    async def _handle_order_status(self, payload: dict[str, Any]) -> tuple[bool, str]:
        order_obj = payload.get("order")
        if not isinstance(order_obj, dict):
            return False, "invalid_payload"
        order = cast(dict[str, Any], order_obj)

        user_id = _user_id(order)
        if user_id is None:
            return False, "missing_user"

        order_id = order.get("id")
        status = payload.get("currentStatus") or order.get("status")
        if not status:
            return False, "invalid_payload"

        await self._dispatcher.send_notification(
            NotificationRequest(
                user_id=user_id,
                title=f"Order {status}",
                body=f"Your order #{order_id} has been {status}.",
                type="order_status",
                data={
                    "order_id": str(order_id),
                    "status": str(status),
                    "url": f"/orders/{order_id}",
                },
            )
        )
        return True, "processed"
