"""HTTP routes for order submission and management."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from ..dependencies import get_order_repository, get_order_writer
from ..money import from_cents
from ..repository import OrderRepository
from ..schemas import (
    OrderCreate,
    OrderCreateResponse,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
)
from ..services import OrderNotFound, OrderWriter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"])


def _serialize_order(order, *, include_events: bool = False) -> dict[str, object]:
    payload: dict[str, object] = {
        "id": order.id,
        "userId": order.user_id,
        "status": order.status,
        "currency": order.currency,
        "subtotal": from_cents(order.subtotal_cents),
        "discountAmount": from_cents(order.discount_cents),
        "total": from_cents(order.total_cents),
        "couponId": order.coupon_id,
        "couponCode": order.coupon_code,
        "address": order.address,
        "city": order.city,
        "state": order.state,
        "postalCode": order.postal_code,
        "country": order.country,
        "paymentId": order.payment_id,
        "gatewayOrderId": order.gateway_order_id,
        "items": [
            {
                "id": item.id,
                "productId": item.product_id,
                "name": item.name,
                "quantity": item.quantity,
                "price": from_cents(item.price_cents),
                "createdAt": item.created_at,
            }
            for item in order.items
        ],
        "createdAt": order.created_at,
        "updatedAt": order.updated_at,
    }
    if include_events:
        payload["events"] = [
            {"type": event.type, "payload": event.payload, "createdAt": event.created_at}
            for event in order.events
        ]
    return payload


@router.post("/create", response_model=OrderCreateResponse)
async def create_order(
    payload: OrderCreate,
    writer: OrderWriter = Depends(get_order_writer),
):
    try:
        outcome = await writer.create_order(payload)
    except SQLAlchemyError:
        logger.exception("Order creation failed for user %s", payload.user_id)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to create order"},
        )
    return OrderCreateResponse(success=True, orderId=outcome.order.id, replayed=outcome.replayed)


@router.get("", response_model=OrderListResponse)
async def list_orders(
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    user_id: str | None = Query(default=None, alias="userId"),
    status_filter: str | None = Query(default=None, alias="status"),
    repository: OrderRepository = Depends(get_order_repository),
) -> OrderListResponse:
    orders, total = await repository.list_orders(
        user_id=user_id,
        status=status_filter,
        limit=limit,
        offset=offset,
    )
    items = [OrderResponse.model_validate(_serialize_order(order)) for order in orders]
    return OrderListResponse(items=items, total=total)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, repository: OrderRepository = Depends(get_order_repository)) -> OrderResponse:
    order = await repository.get_order(order_id)
    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return OrderResponse.model_validate(_serialize_order(order, include_events=True))


@router.put("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: str,
    payload: OrderStatusUpdate,
    writer: OrderWriter = Depends(get_order_writer),
) -> OrderResponse:
    try:
        order = await writer.update_status(order_id, status=payload.status)
    except OrderNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found") from exc
    return OrderResponse.model_validate(_serialize_order(order, include_events=True))
