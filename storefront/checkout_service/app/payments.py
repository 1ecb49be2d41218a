"""Razorpay gateway orders and payment signature checks."""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from .metrics import PAYMENT_ORDERS_TOTAL, PAYMENT_VERIFICATIONS_TOTAL

logger = logging.getLogger(__name__)


class PaymentGatewayError(Exception):
    """Raised when the gateway rejects or cannot process an order request."""


class PaymentVerificationError(Exception):
    """Raised when a payment signature cannot be checked at all."""


@dataclass(slots=True)
class GatewayOrder:
    id: str
    amount: int
    currency: str
    receipt: str | None
    status: str
    key: str | None


class PaymentGateway(Protocol):
    async def create_order(self, *, amount: int, currency: str, receipt: str | None) -> GatewayOrder: ...

    def verify_payment(self, *, order_id: str, payment_id: str, signature: str) -> bool: ...


def sign_payment(secret: str, *, order_id: str, payment_id: str) -> str:
    message = f"{order_id}|{payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


class RazorpayGateway:
    """Creates Razorpay orders over HTTP, or simulated ones when no keys are configured."""

    def __init__(
        self,
        *,
        key_id: str | None,
        key_secret: str | None,
        api_url: str,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.key_id = key_id
        self.key_secret = key_secret
        self.api_url = api_url.rstrip("/")
        self._client = client

    @property
    def live(self) -> bool:
        return bool(self.key_id and self.key_secret and self._client is not None)

    async def create_order(self, *, amount: int, currency: str, receipt: str | None) -> GatewayOrder:
        client = self._client
        if client is None or not self.live:
            PAYMENT_ORDERS_TOTAL.labels(mode="simulated").inc()
            return GatewayOrder(
                id=f"order_{int(time.time() * 1000)}",
                amount=amount,
                currency=currency,
                receipt=receipt,
                status="created",
                key=self.key_id,
            )

        payload: dict[str, Any] = {"amount": amount, "currency": currency}
        if receipt:
            payload["receipt"] = receipt
        try:
            response = await client.post(
                f"{self.api_url}/orders",
                json=payload,
                auth=(self.key_id or "", self.key_secret or ""),
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Razorpay order creation failed: %s", exc)
            PAYMENT_ORDERS_TOTAL.labels(mode="failed").inc()
            raise PaymentGatewayError("Failed to create order") from exc

        PAYMENT_ORDERS_TOTAL.labels(mode="live").inc()
        return GatewayOrder(
            id=data["id"],
            amount=int(data.get("amount", amount)),
            currency=data.get("currency", currency),
            receipt=data.get("receipt", receipt),
            status=data.get("status", "created"),
            key=self.key_id,
        )

    def verify_payment(self, *, order_id: str, payment_id: str, signature: str) -> bool:
        if not self.key_secret:
            PAYMENT_VERIFICATIONS_TOTAL.labels(result="unconfigured").inc()
            raise PaymentVerificationError("Payment gateway is not configured")
        expected = sign_payment(self.key_secret, order_id=order_id, payment_id=payment_id)
        verified = hmac.compare_digest(expected, signature)
        PAYMENT_VERIFICATIONS_TOTAL.labels(result="verified" if verified else "rejected").inc()
        return verified
