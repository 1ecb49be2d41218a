"""Server-side coupon evaluation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Literal

from .metrics import COUPON_APPLICATIONS_TOTAL
from .models import Coupon
from .money import from_cents, round_money
from .repository import CouponRepository

COUPON_APPLIED = "Coupon applied successfully"
COUPON_NOT_FOUND = "Coupon code does not exist"
COUPON_INACTIVE = "Coupon is not active"
COUPON_EXPIRED = "Coupon has expired"
COUPON_EXHAUSTED = "Coupon usage limit has been reached"
COUPON_BELOW_MINIMUM = "Order total does not meet minimum amount required for this coupon"


@dataclass(frozen=True, slots=True)
class CouponResult:
    status: Literal["success", "error"]
    message: str
    discounted_total: Decimal
    discount_amount: Decimal
    coupon_id: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "success"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _reject(order_total: Decimal, message: str, coupon_id: str | None = None) -> CouponResult:
    return CouponResult(
        status="error",
        message=message,
        discounted_total=order_total,
        discount_amount=Decimal("0.00"),
        coupon_id=coupon_id,
    )


def evaluate_coupon(coupon: Coupon | None, order_total: Decimal, *, now: datetime | None = None) -> CouponResult:
    """Run the coupon gates in order and compute the discount for ``order_total``."""

    order_total = round_money(order_total)
    if coupon is None:
        return _reject(order_total, COUPON_NOT_FOUND)
    if not coupon.is_active:
        return _reject(order_total, COUPON_INACTIVE, coupon.id)

    current = _as_utc(now or datetime.now(timezone.utc))
    if coupon.expiry_date is not None and _as_utc(coupon.expiry_date) < current:
        return _reject(order_total, COUPON_EXPIRED, coupon.id)
    if coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit:
        return _reject(order_total, COUPON_EXHAUSTED, coupon.id)
    if order_total < from_cents(coupon.min_order_amount_cents):
        return _reject(order_total, COUPON_BELOW_MINIMUM, coupon.id)

    value = from_cents(coupon.discount_value_cents)
    if coupon.discount_type == "percentage":
        discount = round_money(order_total * value / Decimal("100"))
    else:
        discount = value
    discount = min(discount, order_total)

    return CouponResult(
        status="success",
        message=COUPON_APPLIED,
        discounted_total=order_total - discount,
        discount_amount=discount,
        coupon_id=coupon.id,
    )


class CouponValidator:
    """Looks coupons up by code and evaluates them against an order total."""

    def __init__(self, repository: CouponRepository) -> None:
        self.repository = repository

    async def apply_coupon(
        self,
        order_total: Decimal,
        code: str,
        *,
        now: datetime | None = None,
    ) -> tuple[CouponResult, Coupon | None]:
        coupon = await self.repository.get_by_code(code.strip())
        result = evaluate_coupon(coupon, order_total, now=now)
        COUPON_APPLICATIONS_TOTAL.labels(status=result.status).inc()
        return result, coupon
