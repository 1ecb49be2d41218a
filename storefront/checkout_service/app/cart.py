"""Cart value object used to reconcile client carts with server stock."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Mapping


@dataclass(slots=True)
class CartItem:
    id: str
    name: str
    price: Decimal
    image_url: str = ""
    inventory_count: int = 0
    quantity: int = 1
    is_out_of_stock: bool = False

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


@dataclass
class Cart:
    """Ordered collection of cart lines keyed by product id.

    Stock figures held here are only the last known values; the order writer
    re-checks them when the order is committed.
    """

    items: list[CartItem] = field(default_factory=list)

    def _find(self, product_id: str) -> CartItem | None:
        for item in self.items:
            if item.id == product_id:
                return item
        return None

    def add(self, product: CartItem, quantity: int = 1) -> CartItem:
        existing = self._find(product.id)
        if existing is not None:
            existing.quantity += quantity
            return existing
        item = CartItem(
            id=product.id,
            name=product.name,
            price=product.price,
            image_url=product.image_url,
            inventory_count=product.inventory_count,
            quantity=quantity,
        )
        self.items.append(item)
        return item

    def update_quantity(self, product_id: str, quantity: int) -> None:
        if quantity <= 0:
            self.remove(product_id)
            return
        item = self._find(product_id)
        if item is not None:
            item.quantity = quantity

    def remove(self, product_id: str) -> None:
        self.items = [item for item in self.items if item.id != product_id]

    def remove_selected(self, product_ids: Iterable[str]) -> None:
        selected = set(product_ids)
        self.items = [item for item in self.items if item.id not in selected]

    def clear(self) -> None:
        self.items = []

    def selected(self, product_ids: Iterable[str]) -> list[CartItem]:
        wanted = set(product_ids)
        return [item for item in self.items if item.id in wanted]

    @property
    def count(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def total(self) -> Decimal:
        return sum((item.line_total for item in self.items), Decimal("0"))

    def apply_inventory(self, levels: Mapping[str, int]) -> None:
        """Merge fresh stock levels; ids missing from ``levels`` count as sold out."""

        for item in self.items:
            item.inventory_count = levels.get(item.id, 0)
            item.is_out_of_stock = item.quantity > item.inventory_count

    @property
    def has_out_of_stock_items(self) -> bool:
        return any(item.is_out_of_stock for item in self.items)
