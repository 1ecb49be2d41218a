#!/usr/bin/env python3
"""Seed a local storefront with demo catalog data, coupons and message templates."""

from __future__ import annotations

import argparse
import asyncio
import json
import os
from decimal import Decimal
from typing import Any

from storefront.checkout_service.app.models import Base as CheckoutBase
from storefront.checkout_service.app.money import to_cents
from storefront.checkout_service.app.repository import (
    CategoryRepository,
    CouponRepository,
    ProductRepository,
    SettingsRepository,
)
from storefront.common import create_schema, dispose_engines, get_session_factory, lifespan_session
from storefront.notification_service.app.models import Base as NotificationBase
from storefront.notification_service.app.models import EmailTemplate
from storefront.notification_service.app.repository import NotificationRepository

CATEGORIES: tuple[dict[str, str], ...] = (
    {"name": "Apparel", "slug": "apparel", "description": "Shirts, caps and other clothing"},
    {"name": "Home", "slug": "home", "description": "Lighting and home essentials"},
)

PRODUCTS: tuple[dict[str, Any], ...] = (
    {
        "name": "Classic Shirt",
        "slug": "classic-shirt",
        "category": "apparel",
        "price": "60.00",
        "inventory_count": 40,
        "featured": True,
    },
    {"name": "Canvas Cap", "slug": "canvas-cap", "category": "apparel", "price": "15.00", "inventory_count": 120},
    {
        "name": "Desk Lamp",
        "slug": "desk-lamp",
        "category": "home",
        "price": "40.00",
        "inventory_count": 6,
        "is_on_sale": True,
        "discount_percent": 15,
    },
)

COUPONS: tuple[dict[str, Any], ...] = (
    {"code": "SUMMER20", "discount_type": "percentage", "discount_value": "20", "min_order_amount": "50"},
    {"code": "FLAT10", "discount_type": "fixed", "discount_value": "10", "min_order_amount": "0", "usage_limit": 100},
)

EMAIL_TEMPLATES: tuple[dict[str, str], ...] = (
    {
        "name": "Order placed",
        "type": "order_placed",
        "subject": "Your order {{order_id}} is confirmed",
        "body": "<p>Hi {{first_name}},</p><p>Thanks for your order. Total paid: {{order_total}}.</p>",
    },
    {
        "name": "Order status",
        "type": "order_status",
        "subject": "Order {{order_id}} is now {{status}}",
        "body": "<p>Hi {{first_name}}, your order {{order_id}} is {{status}}.</p>",
    },
    {
        "name": "Low stock",
        "type": "stock_alert",
        "subject": "Low stock: {{product_name}}",
        "body": "<p>{{product_name}} has {{inventory_count}} units left.</p>",
    },
)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed demo data into the storefront databases")
    parser.add_argument(
        "--checkout-db",
        default=os.getenv("CHECKOUT_DATABASE_URL", "sqlite+aiosqlite:///./checkout_service.db"),
        help="Checkout database URL (default: %(default)s or CHECKOUT_DATABASE_URL)",
    )
    parser.add_argument(
        "--notification-db",
        default=os.getenv("NOTIFICATION_DATABASE_URL", "sqlite+aiosqlite:///./notification_service.db"),
        help="Notification database URL (default: %(default)s or NOTIFICATION_DATABASE_URL)",
    )
    parser.add_argument(
        "--admin-id",
        default=os.getenv("STOREFRONT_ADMIN_ID"),
        help="Optional user id to register as an admin profile for low stock alerts",
    )
    parser.add_argument(
        "--admin-email",
        default=os.getenv("STOREFRONT_ADMIN_EMAIL"),
        help="Email address for the admin profile",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would be seeded without inserting any rows",
    )
    return parser.parse_args()


async def seed_checkout(database_url: str, *, dry_run: bool) -> dict[str, list[str]]:
    created: dict[str, list[str]] = {"categories": [], "products": [], "coupons": [], "settings": []}
    await create_schema(database_url, CheckoutBase.metadata)
    async with lifespan_session(get_session_factory(database_url)) as session:
        categories = CategoryRepository(session)
        category_ids: dict[str, str] = {}
        for entry in CATEGORIES:
            category = await categories.get_by_slug(entry["slug"])
            if category is None:
                created["categories"].append(entry["slug"])
                if dry_run:
                    continue
                category = await categories.create_category(**entry)
            category_ids[entry["slug"]] = category.id

        products = ProductRepository(session)
        for entry in PRODUCTS:
            if await products.get_by_slug(entry["slug"]) is not None:
                continue
            created["products"].append(entry["slug"])
            if dry_run:
                continue
            fields = {key: value for key, value in entry.items() if key not in ("price", "category")}
            await products.create_product(
                price_cents=to_cents(Decimal(entry["price"])),
                category_id=category_ids.get(entry["category"]),
                **fields,
            )

        coupons = CouponRepository(session)
        for entry in COUPONS:
            if await coupons.get_by_code(entry["code"]) is not None:
                continue
            created["coupons"].append(entry["code"])
            if dry_run:
                continue
            await coupons.create_coupon(
                code=entry["code"],
                discount_type=entry["discount_type"],
                discount_value_cents=to_cents(Decimal(entry["discount_value"])),
                min_order_amount_cents=to_cents(Decimal(entry["min_order_amount"])),
                usage_limit=entry.get("usage_limit"),
            )

        settings = SettingsRepository(session)
        defaults = {
            "show_flash_sale_section": "true",
            "flash_sale_section_title": "Weekend Flash Sale",
            "flash_sale_section_subtitle": "Limited stock at sale prices",
        }
        existing = await settings.get_many(defaults)
        for key, value in defaults.items():
            if key in existing:
                continue
            created["settings"].append(key)
            if not dry_run:
                await settings.upsert(key, value)
    return created


async def seed_notifications(
    database_url: str,
    *,
    admin_id: str | None,
    admin_email: str | None,
    dry_run: bool,
) -> dict[str, list[str]]:
    created: dict[str, list[str]] = {"email_templates": [], "profiles": []}
    await create_schema(database_url, NotificationBase.metadata)
    async with lifespan_session(get_session_factory(database_url)) as session:
        repository = NotificationRepository(session)
        for entry in EMAIL_TEMPLATES:
            if await repository.get_active_template(EmailTemplate, entry["type"]) is not None:
                continue
            created["email_templates"].append(entry["type"])
            if not dry_run:
                await repository.create_template(EmailTemplate, **entry)

        if admin_id:
            created["profiles"].append(admin_id)
            if not dry_run:
                fields: dict[str, Any] = {"role": "admin"}
                if admin_email:
                    fields["email"] = admin_email
                await repository.save_profile(admin_id, fields)
    return created


async def main_async() -> int:
    args = parse_args()
    try:
        checkout = await seed_checkout(args.checkout_db, dry_run=args.dry_run)
        notifications = await seed_notifications(
            args.notification_db,
            admin_id=args.admin_id,
            admin_email=args.admin_email,
            dry_run=args.dry_run,
        )
    finally:
        await dispose_engines()
    print(json.dumps({"dry_run": args.dry_run, **checkout, **notifications}, indent=2, sort_keys=True))
    return 0


def main() -> None:
    raise SystemExit(asyncio.run(main_async()))


if __name__ == "__main__":
    main()
