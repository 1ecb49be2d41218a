"""On-demand stock check for cart contents."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError

from .cart import Cart
from .metrics import INVENTORY_CHECKS_TOTAL
from .repository import ProductRepository

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class InventoryCheckResult:
    cart: Cart
    inventory_checked: bool

    @property
    def has_out_of_stock_items(self) -> bool:
        return self.cart.has_out_of_stock_items


class InventoryChecker:
    """Refreshes cart stock figures from the product table in one batched read."""

    def __init__(self, repository: ProductRepository) -> None:
        self.repository = repository

    async def check(self, cart: Cart) -> InventoryCheckResult:
        if not cart.items:
            INVENTORY_CHECKS_TOTAL.labels(outcome="empty").inc()
            return InventoryCheckResult(cart=cart, inventory_checked=True)

        try:
            levels = await self.repository.get_inventory_levels(item.id for item in cart.items)
        except SQLAlchemyError:
            # Keep the last known counts; the order writer re-validates stock.
            logger.warning("Inventory check failed; keeping last known stock", exc_info=True)
            INVENTORY_CHECKS_TOTAL.labels(outcome="error").inc()
            return InventoryCheckResult(cart=cart, inventory_checked=False)

        cart.apply_inventory(levels)
        outcome = "out_of_stock" if cart.has_out_of_stock_items else "in_stock"
        INVENTORY_CHECKS_TOTAL.labels(outcome=outcome).inc()
        return InventoryCheckResult(cart=cart, inventory_checked=True)
