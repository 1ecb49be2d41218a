"""Prometheus metrics for the checkout service."""

from __future__ import annotations

from typing import Final

from prometheus_client import Counter, Histogram

_REJECTION_REASONS: Final = (
    "missing_fields",
    "unknown_product",
    "price_mismatch",
    "insufficient_inventory",
    "coupon_rejected",
    "unexpected_error",
)

# Orders -----------------------------------------------------------------------------------
CHECKOUT_ORDERS_CREATED_TOTAL: Final = Counter(
    "checkout_orders_created_total",
    "Orders committed by the order writer.",
    labelnames=("currency",),
)

CHECKOUT_ORDERS_REPLAYED_TOTAL: Final = Counter(
    "checkout_orders_replayed_total",
    "Order submissions answered from an existing order with the same payment id.",
)

CHECKOUT_ORDERS_REJECTED_TOTAL: Final = Counter(
    "checkout_orders_rejected_total",
    "Order submissions rejected before commit.",
    labelnames=("reason",),
)

CHECKOUT_ORDER_WRITE_SECONDS: Final = Histogram(
    "checkout_order_write_seconds",
    "Time spent inside the order transaction.",
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2, 5),
)

CHECKOUT_LOW_STOCK_TOTAL: Final = Counter(
    "checkout_low_stock_total",
    "Order lines that left a product at or below the low stock threshold.",
)

# Cart and coupons -------------------------------------------------------------------------
INVENTORY_CHECKS_TOTAL: Final = Counter(
    "checkout_inventory_checks_total",
    "Cart inventory checks by outcome.",
    labelnames=("outcome",),
)

COUPON_APPLICATIONS_TOTAL: Final = Counter(
    "checkout_coupon_applications_total",
    "Coupon evaluations by result status.",
    labelnames=("status",),
)

# Payments ---------------------------------------------------------------------------------
PAYMENT_ORDERS_TOTAL: Final = Counter(
    "checkout_payment_orders_total",
    "Gateway orders created, by mode.",
    labelnames=("mode",),
)

PAYMENT_VERIFICATIONS_TOTAL: Final = Counter(
    "checkout_payment_verifications_total",
    "Payment signature verifications by result.",
    labelnames=("result",),
)

# Events -----------------------------------------------------------------------------------
CHECKOUT_EVENTS_PUBLISH_FAILURES_TOTAL: Final = Counter(
    "checkout_events_publish_failures_total",
    "Domain events that could not be published after commit.",
    labelnames=("topic",),
)


def normalise_rejection_reason(raw_reason: str) -> str:
    """Return a bounded label value for rejection counters."""

    reason = (raw_reason or "unexpected_error").strip().lower().replace(" ", "_")
    if reason not in _REJECTION_REASONS:
        return "unexpected_error"
    return reason
