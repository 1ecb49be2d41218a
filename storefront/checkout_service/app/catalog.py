"""Flash sale windows and display pricing."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from .models import Product
from .money import from_cents, round_money

FLASH_SALE_SETTING_KEYS = {
    "show_flash_sale_section": "showFlashSaleSection",
    "flash_sale_section_title": "flashSaleSectionTitle",
    "flash_sale_section_subtitle": "flashSaleSectionSubtitle",
}


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_on_sale_now(product: Product, *, now: datetime | None = None) -> bool:
    """A sale is live when flagged and ``now`` falls inside the optional window."""

    if not product.is_on_sale:
        return False
    current = _as_utc(now or datetime.now(timezone.utc))
    if product.sale_start_date is not None and current < _as_utc(product.sale_start_date):
        return False
    if product.sale_end_date is not None and current > _as_utc(product.sale_end_date):
        return False
    return True


def is_upcoming_sale(product: Product, *, now: datetime | None = None) -> bool:
    if not product.is_on_sale or product.sale_start_date is None:
        return False
    current = _as_utc(now or datetime.now(timezone.utc))
    return current < _as_utc(product.sale_start_date)


def sale_price(product: Product, *, now: datetime | None = None) -> Decimal | None:
    """Discounted display price; orders are always charged the list price."""

    if not product.discount_percent or not is_on_sale_now(product, now=now):
        return None
    price = from_cents(product.price_cents)
    return round_money(price * (Decimal("100") - Decimal(product.discount_percent)) / Decimal("100"))


def split_flash_sale(products: list[Product], *, now: datetime | None = None) -> tuple[list[Product], list[Product]]:
    """Partition sale products into live and upcoming lists.

    Live sales are ordered by end date, soonest first, and open-ended sales
    last; upcoming sales by start date.
    """

    current = now or datetime.now(timezone.utc)
    active = [product for product in products if is_on_sale_now(product, now=current)]
    upcoming = [product for product in products if is_upcoming_sale(product, now=current)]
    active.sort(key=lambda p: (p.sale_end_date is None, _as_utc(p.sale_end_date) if p.sale_end_date else current))
    upcoming.sort(key=lambda p: _as_utc(p.sale_start_date))  # type: ignore[arg-type]
    return active, upcoming


def slugify(name: str) -> str:
    cleaned = "".join(ch.lower() if ch.isalnum() else "-" for ch in name.strip())
    parts = [part for part in cleaned.split("-") if part]
    return "-".join(parts) or "product"
