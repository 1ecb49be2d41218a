"""Service layer for writing orders."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from time import perf_counter
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.common import lifespan_session

from .coupons import COUPON_EXHAUSTED, CouponValidator
from .events import OrderEventPublisher
from .metrics import (
    CHECKOUT_EVENTS_PUBLISH_FAILURES_TOTAL,
    CHECKOUT_LOW_STOCK_TOTAL,
    CHECKOUT_ORDER_WRITE_SECONDS,
    CHECKOUT_ORDERS_CREATED_TOTAL,
    CHECKOUT_ORDERS_REJECTED_TOTAL,
    CHECKOUT_ORDERS_REPLAYED_TOTAL,
    normalise_rejection_reason,
)
from .models import Order
from .money import from_cents, to_cents
from .repository import CouponRepository, OrderRepository, ProductRepository
from .schemas import OrderCreate

logger = logging.getLogger(__name__)

MISSING_FIELDS_MESSAGE = "Missing required fields: userId, items, and total are required"
PRICE_MISMATCH_MESSAGE = "Order total does not match current prices"


class CheckoutError(Exception):
    """Base class for order submissions rejected before commit."""

    reason = "unexpected_error"

    def __init__(self, message: str, *, reason: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if reason is not None:
            self.reason = reason


class OrderValidationError(CheckoutError):
    reason = "missing_fields"


class InsufficientInventory(CheckoutError):
    reason = "insufficient_inventory"

    def __init__(self, product_id: str, name: str) -> None:
        super().__init__(f"Insufficient inventory for {name}")
        self.product_id = product_id


class PriceMismatch(CheckoutError):
    reason = "price_mismatch"


class CouponRejected(CheckoutError):
    reason = "coupon_rejected"


class OrderNotFound(LookupError):
    """Raised when an order id does not resolve."""


@dataclass
class OrderOutcome:
    order: Order
    replayed: bool = False
    low_stock: list[dict[str, Any]] = field(default_factory=list)


@dataclass(slots=True)
class _PricedLine:
    product_id: str
    name: str
    quantity: int
    price_cents: int


class OrderWriter:
    """Turns a paid cart into an order, reserving stock and coupon usage atomically.

    Everything between the idempotency lookup and the coupon usage increment
    runs in one transaction. Stock is taken with a conditional update, so a
    stale cart can never drive inventory below zero; any failed step rolls
    back the order rows written so far. Events are published only after the
    transaction commits.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        currency: str,
        total_tolerance: Decimal,
        low_stock_threshold: int,
        event_publisher: OrderEventPublisher | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.currency = currency
        self.total_tolerance = total_tolerance
        self.low_stock_threshold = low_stock_threshold
        self.event_publisher = event_publisher

    async def create_order(self, payload: OrderCreate) -> OrderOutcome:
        try:
            user_id, client_total = self._require_fields(payload)
            start = perf_counter()
            try:
                outcome = await self._write(payload, user_id=user_id, client_total=client_total)
            except IntegrityError:
                # A concurrent submission with the same payment id committed first.
                if payload.payment_id is None:
                    raise
                existing = await self._find_existing(payload.payment_id)
                if existing is None:
                    raise
                outcome = OrderOutcome(order=existing, replayed=True)
            CHECKOUT_ORDER_WRITE_SECONDS.observe(perf_counter() - start)
        except CheckoutError as exc:
            CHECKOUT_ORDERS_REJECTED_TOTAL.labels(reason=normalise_rejection_reason(exc.reason)).inc()
            logger.info("Order rejected for user %s: %s", payload.user_id, exc.message)
            raise

        if outcome.replayed:
            CHECKOUT_ORDERS_REPLAYED_TOTAL.inc()
            logger.info("Order %s replayed for payment %s", outcome.order.id, outcome.order.payment_id)
            return outcome

        CHECKOUT_ORDERS_CREATED_TOTAL.labels(currency=outcome.order.currency).inc()
        CHECKOUT_LOW_STOCK_TOTAL.inc(len(outcome.low_stock))
        logger.info("Order %s created for user %s", outcome.order.id, outcome.order.user_id)
        await self._publish_created(outcome)
        return outcome

    async def update_status(self, order_id: str, *, status: str) -> Order:
        async with lifespan_session(self._session_factory) as session:
            repository = OrderRepository(session)
            order = await repository.get_order(order_id)
            if order is None:
                raise OrderNotFound(order_id)
            previous_status = order.status
            await repository.add_event(order, event_type="status_changed", payload=status)
            order = await repository.update_status(order, status=status)

        if self.event_publisher is not None:
            try:
                await self.event_publisher.order_status_changed(order, previous_status=previous_status)
            except Exception:
                CHECKOUT_EVENTS_PUBLISH_FAILURES_TOTAL.labels(topic="order.status.changed.v1").inc()
                logger.exception("Failed to publish status change for order %s", order.id)
        return order

    @staticmethod
    def _require_fields(payload: OrderCreate) -> tuple[str, Decimal]:
        if not payload.user_id or not payload.items or payload.total is None:
            raise OrderValidationError(MISSING_FIELDS_MESSAGE)
        return payload.user_id, payload.total

    async def _find_existing(self, payment_id: str) -> Order | None:
        async with lifespan_session(self._session_factory) as session:
            return await OrderRepository(session).find_by_payment_id(payment_id)

    async def _write(self, payload: OrderCreate, *, user_id: str, client_total: Decimal) -> OrderOutcome:
        payment_id = payload.payment_id or f"payment_{uuid.uuid4().hex}"
        gateway_order_id = payload.order_id or f"order_{uuid.uuid4().hex}"

        async with lifespan_session(self._session_factory) as session:
            orders = OrderRepository(session)
            products = ProductRepository(session)
            coupons = CouponRepository(session)

            if payload.payment_id is not None:
                existing = await orders.find_by_payment_id(payload.payment_id)
                if existing is not None:
                    return OrderOutcome(order=existing, replayed=True)

            lines = await self._price_lines(products, payload)
            subtotal = sum((from_cents(line.price_cents) * line.quantity for line in lines), Decimal("0"))

            discount = Decimal("0")
            coupon_id: str | None = None
            coupon_code: str | None = None
            if payload.coupon_code is not None:
                result, coupon = await CouponValidator(coupons).apply_coupon(subtotal, payload.coupon_code)
                if not result.ok:
                    raise CouponRejected(result.message)
                discount = result.discount_amount
                coupon_id = result.coupon_id
                coupon_code = coupon.code if coupon is not None else payload.coupon_code

            expected_total = subtotal - discount
            if abs(expected_total - client_total) > self.total_tolerance:
                logger.warning(
                    "Client total %s differs from server total %s for user %s",
                    client_total,
                    expected_total,
                    user_id,
                )
                raise PriceMismatch(PRICE_MISMATCH_MESSAGE)

            order = await orders.create_order(
                user_id=user_id,
                currency=self.currency,
                items=[
                    {
                        "product_id": line.product_id,
                        "name": line.name,
                        "quantity": line.quantity,
                        "price_cents": line.price_cents,
                    }
                    for line in lines
                ],
                discount_cents=to_cents(discount),
                coupon_id=coupon_id,
                coupon_code=coupon_code,
                shipping={
                    "address": payload.address,
                    "city": payload.city,
                    "state": payload.state,
                    "postal_code": payload.postal_code,
                    "country": payload.country,
                },
                payment_id=payment_id,
                gateway_order_id=gateway_order_id,
            )

            low_stock: list[dict[str, Any]] = []
            for line in lines:
                remaining = await products.decrement_inventory(line.product_id, quantity=line.quantity)
                if remaining is None:
                    raise InsufficientInventory(line.product_id, line.name)
                if remaining <= self.low_stock_threshold:
                    low_stock.append(
                        {"productId": line.product_id, "name": line.name, "inventoryCount": remaining}
                    )

            if coupon_id is not None and await coupons.increment_usage(coupon_id) is None:
                raise CouponRejected(COUPON_EXHAUSTED)

            await orders.add_event(order, event_type="created", payload=order.status)

        return OrderOutcome(order=order, low_stock=low_stock)

    @staticmethod
    async def _price_lines(products: ProductRepository, payload: OrderCreate) -> list[_PricedLine]:
        catalog = await products.get_products(line.id for line in payload.items)
        lines: list[_PricedLine] = []
        for line in payload.items:
            product = catalog.get(line.id)
            if product is None:
                raise OrderValidationError(f"Product not found: {line.id}", reason="unknown_product")
            lines.append(
                _PricedLine(
                    product_id=product.id,
                    name=product.name,
                    quantity=line.quantity,
                    price_cents=product.price_cents,
                )
            )
        return lines

    async def _publish_created(self, outcome: OrderOutcome) -> None:
        if self.event_publisher is None:
            return
        try:
            await self.event_publisher.order_created(outcome.order, low_stock=outcome.low_stock)
        except Exception:
            CHECKOUT_EVENTS_PUBLISH_FAILURES_TOTAL.labels(topic="order.created.v1").inc()
            logger.exception("Failed to publish order.created for order %s", outcome.order.id)
