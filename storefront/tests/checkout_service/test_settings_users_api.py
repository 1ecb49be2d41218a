import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from storefront.common import ServiceSettings, dispose_engines
from storefront.checkout_service.app.main import create_app


def _run(coro):
    return asyncio.run(coro)


def _prepare_app(tmp_path) -> FastAPI:
    settings = ServiceSettings(
        app_name="Checkout Accounts Test",
        enable_metrics=False,
        enable_tracing=False,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'accounts.db'}",
        auto_create_schema=True,
    )
    return create_app(settings)


def test_flash_sale_settings_default_and_update(tmp_path) -> None:
    app = _prepare_app(tmp_path)

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                defaults = await client.get("/settings/flash-sale")
                assert defaults.status_code == 200
                assert defaults.json() == {
                    "showFlashSaleSection": True,
                    "flashSaleSectionTitle": "Flash Sale",
                    "flashSaleSectionSubtitle": "Limited time offers on our best products",
                }

                updated = await client.put(
                    "/settings/flash-sale",
                    json={
                        "showFlashSaleSection": False,
                        "flashSaleSectionTitle": "Diwali Deals",
                        "flashSaleSectionSubtitle": "Festive prices",
                    },
                )
                assert updated.status_code == 200

                stored = (await client.get("/settings/flash-sale")).json()
                assert stored["showFlashSaleSection"] is False
                assert stored["flashSaleSectionTitle"] == "Diwali Deals"

                currency = await client.put("/settings/currency", json={"value": "INR", "description": "Store currency"})
                assert currency.status_code == 200
                assert currency.json()["key"] == "currency"

                listing = (await client.get("/settings")).json()
                keys = {entry["key"]: entry["value"] for entry in listing}
                assert keys["currency"] == "INR"
                assert keys["show_flash_sale_section"] == "false"

    _run(_with_cleanup(body()))


def test_default_address_round_trip(tmp_path) -> None:
    app = _prepare_app(tmp_path)

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                missing = await client.get("/users/user-7/address")
                assert missing.status_code == 404

                address = {
                    "address": "4 Park Street",
                    "city": "Kolkata",
                    "state": "WB",
                    "postalCode": "700016",
                    "country": "India",
                }
                saved = await client.put("/users/user-7/address", json=address)
                assert saved.status_code == 200

                moved = await client.put("/users/user-7/address", json={**address, "city": "Howrah"})
                assert moved.json()["city"] == "Howrah"

                fetched = (await client.get("/users/user-7/address")).json()
                assert fetched["city"] == "Howrah"
                assert fetched["postalCode"] == "700016"
                assert fetched["isDefault"] is True

                blank = await client.put("/users/user-7/address", json={**address, "city": "   "})
                assert blank.status_code == 400

    _run(_with_cleanup(body()))


def test_wishlist_add_list_remove(tmp_path) -> None:
    app = _prepare_app(tmp_path)

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                product = (await client.post("/products", json={"name": "Teapot", "price": "22.00"})).json()

                added = await client.post(f"/users/user-3/wishlist/{product['id']}")
                assert added.status_code == 201
                again = await client.post(f"/users/user-3/wishlist/{product['id']}")
                assert again.status_code == 201

                wishlist = (await client.get("/users/user-3/wishlist")).json()
                assert wishlist["total"] == 1
                assert wishlist["items"][0]["product"]["name"] == "Teapot"

                unknown = await client.post("/users/user-3/wishlist/not-a-product")
                assert unknown.status_code == 404

                removed = await client.delete(f"/users/user-3/wishlist/{product['id']}")
                assert removed.status_code == 204
                assert (await client.get("/users/user-3/wishlist")).json()["total"] == 0

    _run(_with_cleanup(body()))


async def _with_cleanup(coro) -> None:
    try:
        await coro
    finally:
        await dispose_engines()


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with app.router.lifespan_context(app):
        yield
