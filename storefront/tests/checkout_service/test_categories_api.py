import asyncio
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from storefront.common import ServiceSettings, dispose_engines
from storefront.checkout_service.app.main import create_app


def _run(coro):
    return asyncio.run(coro)


def _prepare_app(tmp_path) -> FastAPI:
    settings = ServiceSettings(
        app_name="Checkout Categories Test",
        enable_metrics=False,
        enable_tracing=False,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'categories.db'}",
        auto_create_schema=True,
    )
    return create_app(settings)


async def _create_category(client: AsyncClient, name: str, **extra: Any) -> dict[str, Any]:
    response = await client.post("/categories", json={"name": name, **extra})
    assert response.status_code == 201, response.text
    return response.json()


async def _create_product(client: AsyncClient, name: str, category_id: str | None) -> dict[str, Any]:
    response = await client.post("/products", json={"name": name, "price": "10.00", "categoryId": category_id})
    assert response.status_code == 201, response.text
    return response.json()


def test_category_crud(tmp_path) -> None:
    app = _prepare_app(tmp_path)

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                kitchen = await _create_category(client, "Home & Kitchen", description="Cookware and more")
                assert kitchen["slug"] == "home-kitchen"
                assert kitchen["productCount"] == 0
                await _create_category(client, "Apparel", slug="clothing")

                duplicate = await client.post("/categories", json={"name": "Home Kitchen"})
                assert duplicate.status_code == 409

                listing = (await client.get("/categories")).json()
                assert listing["total"] == 2
                assert [item["name"] for item in listing["items"]] == ["Apparel", "Home & Kitchen"]

                by_slug = await client.get("/categories/slug/clothing")
                assert by_slug.json()["name"] == "Apparel"
                assert (await client.get("/categories/slug/toys")).status_code == 404

                renamed = await client.patch(
                    f"/categories/{kitchen['id']}", json={"name": "Kitchen", "slug": "kitchen"}
                )
                assert renamed.status_code == 200
                assert (renamed.json()["name"], renamed.json()["slug"]) == ("Kitchen", "kitchen")
                assert renamed.json()["description"] == "Cookware and more"

                taken = await client.patch(f"/categories/{kitchen['id']}", json={"slug": "clothing"})
                assert taken.status_code == 409

                deleted = await client.delete(f"/categories/{kitchen['id']}")
                assert deleted.status_code == 204
                assert (await client.get(f"/categories/{kitchen['id']}")).status_code == 404
                assert (await client.delete(f"/categories/{kitchen['id']}")).status_code == 404

    _run(_with_cleanup(body()))


def test_products_are_filtered_and_counted_by_category(tmp_path) -> None:
    app = _prepare_app(tmp_path)

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                lighting = await _create_category(client, "Lighting")
                seating = await _create_category(client, "Seating")
                lamp = await _create_product(client, "Desk Lamp", lighting["id"])
                await _create_product(client, "Floor Lamp", lighting["id"])
                stool = await _create_product(client, "Bar Stool", None)
                assert lamp["categoryId"] == lighting["id"]
                assert stool["categoryId"] is None

                unknown = await client.post(
                    "/products", json={"name": "Ghost", "price": "1.00", "categoryId": "no-such-category"}
                )
                assert unknown.status_code == 400

                filtered = (await client.get("/products", params={"categoryId": lighting["id"]})).json()
                assert filtered["total"] == 2
                assert sorted(p["name"] for p in filtered["items"]) == ["Desk Lamp", "Floor Lamp"]

                moved = await client.patch(f"/products/{stool['id']}", json={"categoryId": seating["id"]})
                assert moved.json()["categoryId"] == seating["id"]
                bad_move = await client.patch(f"/products/{stool['id']}", json={"categoryId": "no-such-category"})
                assert bad_move.status_code == 400

                listing = (await client.get("/categories")).json()
                counts = {item["name"]: item["productCount"] for item in listing["items"]}
                assert counts == {"Lighting": 2, "Seating": 1}
                assert (await client.get(f"/categories/{lighting['id']}")).json()["productCount"] == 2

                # Removing a category keeps its products, uncategorised.
                assert (await client.delete(f"/categories/{lighting['id']}")).status_code == 204
                orphaned = (await client.get(f"/products/{lamp['id']}")).json()
                assert orphaned["categoryId"] is None
                assert (await client.get("/products", params={"categoryId": lighting["id"]})).json()["total"] == 0

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
