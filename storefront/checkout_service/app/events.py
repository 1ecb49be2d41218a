"""Event publishing helpers for the checkout service."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Sequence

from storefront.common import ORDER_CREATED_TOPIC, ORDER_STATUS_CHANGED_TOPIC, EventProducer

from .models import Order
from .money import from_cents


def _iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)
    return dt.isoformat()


class OrderEventPublisher:
    """Publishes order lifecycle events once the order transaction has committed."""

    def __init__(self, producer: EventProducer | None) -> None:
        self._producer = producer

    async def _emit(self, topic: str, payload: dict[str, Any]) -> None:
        if self._producer is None:
            return
        await self._producer.send(topic, payload)

    async def order_created(self, order: Order, *, low_stock: Sequence[dict[str, Any]]) -> None:
        await self._emit(
            ORDER_CREATED_TOPIC,
            {
                "order": self._serialize_order(order),
                "lowStock": list(low_stock),
            },
        )

    async def order_status_changed(self, order: Order, *, previous_status: str) -> None:
        await self._emit(
            ORDER_STATUS_CHANGED_TOPIC,
            {
                "order": self._serialize_order(order),
                "previousStatus": previous_status,
                "currentStatus": order.status,
            },
        )

    def _serialize_order(self, order: Order) -> dict[str, Any]:
        return {
            "id": order.id,
            "userId": order.user_id,
            "status": order.status,
            "currency": order.currency,
            "subtotal": str(from_cents(order.subtotal_cents)),
            "discountAmount": str(from_cents(order.discount_cents)),
            "total": str(from_cents(order.total_cents)),
            "couponCode": order.coupon_code,
            "paymentId": order.payment_id,
            "items": [
                {
                    "productId": item.product_id,
                    "name": item.name,
                    "quantity": item.quantity,
                    "price": str(from_cents(item.price_cents)),
                }
                for item in order.items
            ],
            "createdAt": _iso(order.created_at),
            "updatedAt": _iso(order.updated_at),
        }
