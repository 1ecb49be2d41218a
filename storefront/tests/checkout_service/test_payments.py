import asyncio
import hashlib
import hmac
import json
from contextlib import asynccontextmanager

import httpx
import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from storefront.common import ServiceSettings, dispose_engines
from storefront.checkout_service.app.main import create_app
from storefront.checkout_service.app.payments import (
    PaymentGatewayError,
    PaymentVerificationError,
    RazorpayGateway,
    sign_payment,
)

SECRET = "rzp_test_secret"


def _run(coro):
    return asyncio.run(coro)


def _prepare_app(tmp_path, **overrides) -> FastAPI:
    settings = ServiceSettings(
        app_name="Checkout Payments Test",
        enable_metrics=False,
        enable_tracing=False,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'payments.db'}",
        auto_create_schema=True,
        **overrides,
    )
    return create_app(settings)


def test_signature_is_hmac_of_order_and_payment_ids() -> None:
    signature = sign_payment(SECRET, order_id="order_1", payment_id="pay_1")
    expected = hmac.new(SECRET.encode(), b"order_1|pay_1", hashlib.sha256).hexdigest()
    assert signature == expected
    assert signature == sign_payment(SECRET, order_id="order_1", payment_id="pay_1")
    assert signature != sign_payment(SECRET, order_id="order_1", payment_id="pay_2")


def test_verify_payment_accepts_only_matching_signature() -> None:
    gateway = RazorpayGateway(key_id="rzp_test_key", key_secret=SECRET, api_url="https://api.razorpay.com/v1")
    good = sign_payment(SECRET, order_id="order_9", payment_id="pay_9")

    assert gateway.verify_payment(order_id="order_9", payment_id="pay_9", signature=good)
    assert not gateway.verify_payment(order_id="order_9", payment_id="pay_9", signature="0" * 64)
    assert not gateway.verify_payment(order_id="order_other", payment_id="pay_9", signature=good)


def test_verify_without_secret_raises() -> None:
    gateway = RazorpayGateway(key_id=None, key_secret=None, api_url="https://api.razorpay.com/v1")

    with pytest.raises(PaymentVerificationError):
        gateway.verify_payment(order_id="order_1", payment_id="pay_1", signature="abc")


@pytest.mark.asyncio
async def test_create_order_posts_to_razorpay_with_basic_auth() -> None:
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers["Authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"id": "order_live_1", "amount": 49900, "currency": "INR", "receipt": "rcpt_1", "status": "created"},
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        gateway = RazorpayGateway(
            key_id="rzp_test_key",
            key_secret=SECRET,
            api_url="https://api.razorpay.com/v1/",
            client=client,
        )
        order = await gateway.create_order(amount=49900, currency="INR", receipt="rcpt_1")

    assert gateway.live
    assert captured["url"] == "https://api.razorpay.com/v1/orders"
    assert str(captured["auth"]).startswith("Basic ")
    assert captured["body"] == {"amount": 49900, "currency": "INR", "receipt": "rcpt_1"}
    assert order.id == "order_live_1"
    assert order.key == "rzp_test_key"


@pytest.mark.asyncio
async def test_gateway_error_is_wrapped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": {"description": "Authentication failed"}})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        gateway = RazorpayGateway(key_id="k", key_secret="s", api_url="https://api.razorpay.com/v1", client=client)
        with pytest.raises(PaymentGatewayError):
            await gateway.create_order(amount=100, currency="INR", receipt=None)


@pytest.mark.asyncio
async def test_simulated_order_without_credentials() -> None:
    gateway = RazorpayGateway(key_id=None, key_secret=None, api_url="https://api.razorpay.com/v1")

    order = await gateway.create_order(amount=1500, currency="INR", receipt=None)

    assert not gateway.live
    assert order.id.startswith("order_")
    assert order.amount == 1500
    assert order.status == "created"


def test_payment_routes_with_configured_secret(tmp_path) -> None:
    app = _prepare_app(tmp_path, razorpay_key_secret=SECRET)

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                created = await client.post("/payments/razorpay/orders", json={"amount": 2500})
                assert created.status_code == 200
                order = created.json()
                assert order["currency"] == "INR"
                assert order["id"].startswith("order_")

                signature = sign_payment(SECRET, order_id=order["id"], payment_id="pay_42")
                verified = await client.put(
                    "/payments/razorpay/verify",
                    json={
                        "razorpay_order_id": order["id"],
                        "razorpay_payment_id": "pay_42",
                        "razorpay_signature": signature,
                    },
                )
                assert verified.status_code == 200
                assert verified.json()["verified"] is True

                rejected = await client.put(
                    "/payments/razorpay/verify",
                    json={
                        "razorpay_order_id": order["id"],
                        "razorpay_payment_id": "pay_43",
                        "razorpay_signature": signature,
                    },
                )
                assert rejected.status_code == 400
                assert rejected.json() == {"verified": False, "error": "Invalid signature"}

                invalid_amount = await client.post("/payments/razorpay/orders", json={"amount": 0})
                assert invalid_amount.status_code == 400

    _run(_with_cleanup(body()))


def test_verify_route_without_secret_is_unavailable(tmp_path) -> None:
    app = _prepare_app(tmp_path)

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                response = await client.put(
                    "/payments/razorpay/verify",
                    json={"razorpay_order_id": "o", "razorpay_payment_id": "p", "razorpay_signature": "s"},
                )
                assert response.status_code == 503
                assert response.json()["verified"] is False

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
