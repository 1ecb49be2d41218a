"""Data access helpers for the checkout service."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Select, and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .models import Category, Coupon, Order, OrderEvent, OrderItem, Product, Setting, UserAddress, WishlistItem


class ProductRepository:
    """Persistence helpers for catalog rows and their stock levels."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_product(self, **fields: Any) -> Product:
        product = Product(**fields)
        self.session.add(product)
        await self.session.flush()
        await self.session.refresh(product, attribute_names=["created_at", "updated_at"])
        return product

    async def get_product(self, product_id: str) -> Product | None:
        return await self.session.get(Product, product_id)

    async def get_by_slug(self, slug: str) -> Product | None:
        result = await self.session.execute(select(Product).where(Product.slug == slug))
        return result.scalar_one_or_none()

    async def get_products(self, product_ids: Iterable[str]) -> dict[str, Product]:
        ids = list(set(product_ids))
        if not ids:
            return {}
        result = await self.session.execute(select(Product).where(Product.id.in_(ids)))
        return {product.id: product for product in result.scalars()}

    async def get_inventory_levels(self, product_ids: Iterable[str]) -> dict[str, int]:
        """Read current stock for all ids in one round trip."""

        ids = list(set(product_ids))
        if not ids:
            return {}
        result = await self.session.execute(
            select(Product.id, Product.inventory_count).where(Product.id.in_(ids))
        )
        return {product_id: count for product_id, count in result.all()}

    async def list_products(
        self,
        *,
        search: str | None,
        featured: bool | None,
        on_sale: bool | None,
        limit: int,
        offset: int,
        category_id: str | None = None,
    ) -> tuple[list[Product], int]:
        filters = []
        if search:
            filters.append(Product.name.ilike(f"%{search}%"))
        if featured is not None:
            filters.append(Product.featured.is_(featured))
        if on_sale is not None:
            filters.append(Product.is_on_sale.is_(on_sale))
        if category_id is not None:
            filters.append(Product.category_id == category_id)

        base: Select[tuple[Product]] = select(Product).order_by(Product.created_at.desc(), Product.id)
        count: Select[tuple[int]] = select(func.count(Product.id))

        if filters:
            clause = and_(*filters)
            base = base.where(clause)
            count = count.where(clause)

        total = (await self.session.execute(count)).scalar_one()
        result = await self.session.execute(base.offset(offset).limit(limit))
        return list(result.scalars()), total

    async def list_sale_products(self) -> list[Product]:
        result = await self.session.execute(
            select(Product)
            .where(Product.is_on_sale.is_(True))
            .order_by(Product.sale_end_date.is_(None), Product.sale_end_date.asc(), Product.id)
        )
        return list(result.scalars())

    async def update_product(self, product: Product, updates: dict[str, Any]) -> Product:
        for key, value in updates.items():
            setattr(product, key, value)
        await self.session.flush()
        await self.session.refresh(product, attribute_names=["updated_at"])
        return product

    async def set_inventory(self, product: Product, *, inventory_count: int) -> Product:
        product.inventory_count = inventory_count
        await self.session.flush()
        await self.session.refresh(product, attribute_names=["updated_at"])
        return product

    async def decrement_inventory(self, product_id: str, *, quantity: int) -> int | None:
        """Atomically take ``quantity`` units; return the remaining stock or None when short."""

        result = await self.session.execute(
            update(Product)
            .where(Product.id == product_id, Product.inventory_count >= quantity)
            .values(inventory_count=Product.inventory_count - quantity)
            .returning(Product.inventory_count)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()

    async def delete_product(self, product: Product) -> None:
        await self.session.delete(product)
        await self.session.flush()


class CategoryRepository:
    """Persistence helpers for product categories."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_category(self, *, name: str, slug: str, description: str | None) -> Category:
        category = Category(name=name, slug=slug, description=description)
        self.session.add(category)
        await self.session.flush()
        await self.session.refresh(category, attribute_names=["created_at"])
        return category

    async def get_category(self, category_id: str) -> Category | None:
        return await self.session.get(Category, category_id)

    async def get_by_slug(self, slug: str) -> Category | None:
        result = await self.session.execute(select(Category).where(Category.slug == slug))
        return result.scalar_one_or_none()

    async def list_categories(self) -> list[tuple[Category, int]]:
        """All categories by name, each with the number of products filed under it."""

        product_count = func.count(Product.id)
        result = await self.session.execute(
            select(Category, product_count)
            .outerjoin(Product, Product.category_id == Category.id)
            .group_by(Category.id)
            .order_by(Category.name, Category.id)
        )
        return [(category, count) for category, count in result.all()]

    async def count_products(self, category_id: str) -> int:
        result = await self.session.execute(
            select(func.count(Product.id)).where(Product.category_id == category_id)
        )
        return result.scalar_one()

    async def update_category(self, category: Category, updates: dict[str, Any]) -> Category:
        for key, value in updates.items():
            setattr(category, key, value)
        await self.session.flush()
        return category

    async def delete_category(self, category: Category) -> None:
        await self.session.delete(category)
        await self.session.flush()


class CouponRepository:
    """Persistence helpers for coupons."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_coupon(self, **fields: Any) -> Coupon:
        coupon = Coupon(**fields)
        self.session.add(coupon)
        await self.session.flush()
        await self.session.refresh(coupon, attribute_names=["created_at", "updated_at"])
        return coupon

    async def get_coupon(self, coupon_id: str) -> Coupon | None:
        return await self.session.get(Coupon, coupon_id)

    async def get_by_code(self, code: str) -> Coupon | None:
        result = await self.session.execute(select(Coupon).where(Coupon.code == code))
        return result.scalar_one_or_none()

    async def list_coupons(
        self,
        *,
        active: bool | None,
        limit: int,
        offset: int,
    ) -> tuple[list[Coupon], int]:
        base: Select[tuple[Coupon]] = select(Coupon).order_by(Coupon.created_at.desc(), Coupon.code)
        count: Select[tuple[int]] = select(func.count(Coupon.id))
        if active is not None:
            base = base.where(Coupon.is_active.is_(active))
            count = count.where(Coupon.is_active.is_(active))

        total = (await self.session.execute(count)).scalar_one()
        result = await self.session.execute(base.offset(offset).limit(limit))
        return list(result.scalars()), total

    async def update_coupon(self, coupon: Coupon, updates: dict[str, Any]) -> Coupon:
        for key, value in updates.items():
            setattr(coupon, key, value)
        await self.session.flush()
        await self.session.refresh(coupon, attribute_names=["updated_at"])
        return coupon

    async def increment_usage(self, coupon_id: str) -> int | None:
        """Count one redemption unless the usage cap is already reached."""

        result = await self.session.execute(
            update(Coupon)
            .where(
                Coupon.id == coupon_id,
                or_(Coupon.usage_limit.is_(None), Coupon.usage_count < Coupon.usage_limit),
            )
            .values(usage_count=Coupon.usage_count + 1)
            .returning(Coupon.usage_count)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()

    async def delete_coupon(self, coupon: Coupon) -> None:
        await self.session.delete(coupon)
        await self.session.flush()


class OrderRepository:
    """Persistence helpers for orders and related entities."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_order(
        self,
        *,
        user_id: str,
        currency: str,
        items: list[dict[str, Any]],
        discount_cents: int,
        coupon_id: str | None,
        coupon_code: str | None,
        shipping: dict[str, str | None],
        payment_id: str,
        gateway_order_id: str,
    ) -> Order:
        order = Order(
            user_id=user_id,
            status="processing",
            currency=currency,
            discount_cents=discount_cents,
            coupon_id=coupon_id,
            coupon_code=coupon_code,
            payment_id=payment_id,
            gateway_order_id=gateway_order_id,
            **shipping,
        )
        self.session.add(order)
        await self.session.flush()

        subtotal = 0
        for entry in items:
            item = OrderItem(
                order=order,
                product_id=entry["product_id"],
                name=entry["name"],
                quantity=entry["quantity"],
                price_cents=entry["price_cents"],
            )
            subtotal += item.price_cents * item.quantity
            self.session.add(item)

        order.subtotal_cents = subtotal
        order.total_cents = subtotal - discount_cents
        await self.session.flush()
        await self.session.refresh(order, attribute_names=["items", "created_at", "updated_at"])
        return order

    async def get_order(self, order_id: str) -> Order | None:
        result = await self.session.execute(
            select(Order)
            .options(selectinload(Order.items), selectinload(Order.events))
            .where(Order.id == order_id)
        )
        return result.scalar_one_or_none()

    async def find_by_payment_id(self, payment_id: str) -> Order | None:
        result = await self.session.execute(
            select(Order).options(selectinload(Order.items)).where(Order.payment_id == payment_id)
        )
        return result.scalar_one_or_none()

    async def list_orders(
        self,
        *,
        user_id: str | None,
        status: str | None,
        limit: int,
        offset: int,
    ) -> tuple[list[Order], int]:
        base: Select[tuple[Order]] = select(Order)
        count: Select[tuple[int]] = select(func.count(func.distinct(Order.id)))

        filters = []
        if user_id is not None:
            filters.append(Order.user_id == user_id)
        if status is not None:
            filters.append(Order.status == status)

        if filters:
            base = base.where(and_(*filters))
            count = count.where(and_(*filters))

        base = base.order_by(Order.created_at.desc(), Order.id.desc())

        total = (await self.session.execute(count)).scalar_one()
        result = await self.session.execute(
            base.options(selectinload(Order.items)).offset(offset).limit(limit)
        )
        orders = list(result.scalars().unique())
        return orders, total

    async def add_event(self, order: Order, *, event_type: str, payload: str) -> OrderEvent:
        entry = OrderEvent(order=order, type=event_type, payload=payload)
        self.session.add(entry)
        await self.session.flush()
        await self.session.refresh(entry)
        return entry

    async def update_status(self, order: Order, *, status: str) -> Order:
        order.status = status
        await self.session.flush()
        await self.session.refresh(order, attribute_names=["updated_at"])
        return order


class SettingsRepository:
    """Key/value storefront settings."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_settings(self) -> list[Setting]:
        result = await self.session.execute(select(Setting).order_by(Setting.key))
        return list(result.scalars())

    async def get_many(self, keys: Iterable[str]) -> dict[str, str]:
        result = await self.session.execute(select(Setting).where(Setting.key.in_(list(keys))))
        return {setting.key: setting.value for setting in result.scalars()}

    async def upsert(self, key: str, value: str, *, description: str | None = None) -> Setting:
        setting = await self.session.get(Setting, key)
        if setting is None:
            setting = Setting(key=key, value=value, description=description)
            self.session.add(setting)
        else:
            setting.value = value
            if description is not None:
                setting.description = description
            setting.updated_at = datetime.now(timezone.utc)
        await self.session.flush()
        await self.session.refresh(setting)
        return setting


class AccountRepository:
    """Default shipping address and wishlist rows per user."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_default_address(self, user_id: str) -> UserAddress | None:
        result = await self.session.execute(
            select(UserAddress)
            .where(UserAddress.user_id == user_id, UserAddress.is_default.is_(True))
            .order_by(UserAddress.updated_at.desc(), UserAddress.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def save_default_address(self, user_id: str, fields: dict[str, str]) -> UserAddress:
        address = await self.get_default_address(user_id)
        if address is None:
            address = UserAddress(user_id=user_id, is_default=True, **fields)
            self.session.add(address)
        else:
            for key, value in fields.items():
                setattr(address, key, value)
        await self.session.flush()
        await self.session.refresh(address)
        return address

    async def list_wishlist(self, user_id: str) -> list[WishlistItem]:
        result = await self.session.execute(
            select(WishlistItem)
            .options(selectinload(WishlistItem.product))
            .where(WishlistItem.user_id == user_id)
            .order_by(WishlistItem.created_at.desc(), WishlistItem.id.desc())
        )
        return list(result.scalars())

    async def get_wishlist_item(self, user_id: str, product_id: str) -> WishlistItem | None:
        result = await self.session.execute(
            select(WishlistItem).where(WishlistItem.user_id == user_id, WishlistItem.product_id == product_id)
        )
        return result.scalar_one_or_none()

    async def add_to_wishlist(self, user_id: str, product_id: str) -> WishlistItem:
        entry = WishlistItem(user_id=user_id, product_id=product_id)
        self.session.add(entry)
        await self.session.flush()
        await self.session.refresh(entry)
        return entry

    async def remove_from_wishlist(self, user_id: str, product_id: str) -> None:
        await self.session.execute(
            delete(WishlistItem).where(WishlistItem.user_id == user_id, WishlistItem.product_id == product_id)
        )
        await self.session.flush()
