import pytest

from storefront.common import create_schema, dispose_engines, get_session_factory, lifespan_session
from storefront.checkout_service.app.models import Base
from storefront.checkout_service.app.repository import CouponRepository, ProductRepository


@pytest.mark.asyncio
async def test_stale_read_cannot_oversell(tmp_path) -> None:
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'decrement.db'}"
    await create_schema(database_url, Base.metadata)
    session_factory = get_session_factory(database_url)
    try:
        async with lifespan_session(session_factory) as session:
            product = await ProductRepository(session).create_product(
                name="Last Lamp", slug="last-lamp", price_cents=4000, inventory_count=1
            )
            product_id = product.id

        stale_session = session_factory()
        try:
            stale = await ProductRepository(stale_session).get_product(product_id)
            assert stale is not None and stale.inventory_count == 1

            async with lifespan_session(session_factory) as session:
                assert await ProductRepository(session).decrement_inventory(product_id, quantity=1) == 0

            # The stale copy still believes one unit is left.
            assert stale.inventory_count == 1
            assert await ProductRepository(stale_session).decrement_inventory(product_id, quantity=1) is None
            await stale_session.rollback()
        finally:
            await stale_session.close()

        async with lifespan_session(session_factory) as session:
            levels = await ProductRepository(session).get_inventory_levels([product_id, "unknown"])
        assert levels == {product_id: 0}
    finally:
        await dispose_engines()


@pytest.mark.asyncio
async def test_usage_increment_respects_limit(tmp_path) -> None:
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'usage.db'}"
    await create_schema(database_url, Base.metadata)
    session_factory = get_session_factory(database_url)
    try:
        async with lifespan_session(session_factory) as session:
            repository = CouponRepository(session)
            limited = await repository.create_coupon(
                code="ONCE", discount_type="fixed", discount_value_cents=500, usage_limit=1
            )
            unlimited = await repository.create_coupon(code="ALWAYS", discount_type="fixed", discount_value_cents=500)
            limited_id, unlimited_id = limited.id, unlimited.id

        async with lifespan_session(session_factory) as session:
            repository = CouponRepository(session)
            assert await repository.increment_usage(limited_id) == 1
            assert await repository.increment_usage(limited_id) is None
            assert await repository.increment_usage(unlimited_id) == 1
            assert await repository.increment_usage(unlimited_id) == 2
    finally:
        await dispose_engines()
