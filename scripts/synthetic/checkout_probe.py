#!/usr/bin/env python3
"""Synthetic probe for the checkout to notification path.

Creates a throwaway product, places an order for it through the checkout
service, then waits for the order confirmation to land in the customer's
notification inbox. Optionally verifies that the key Prometheus counters of
both services moved. Intended for scheduled synthetic checks.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import re
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence, Tuple

import httpx

_METRIC_LINE = re.compile(
    r"^(?P<name>[a-zA-Z_:][a-zA-Z0-9_:]*)(?:\{(?P<labels>[^}]*)\})?\s+(?P<value>[-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?)$"
)
_LABEL_PAIR = re.compile(r'(?P<key>[a-zA-Z_][a-zA-Z0-9_]*)="(?P<value>(?:[^"\\]|\\.)*)"')


@dataclass(slots=True)
class MetricSample:
    name: str
    labels: Mapping[str, str]
    value: float


@dataclass(slots=True)
class MetricDelta:
    name: str
    labels: Mapping[str, str]
    before: float
    after: float

    @property
    def delta(self) -> float:
        return self.after - self.before


class ProbeError(RuntimeError):
    def __init__(self, message: str, *, context: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.context = dict(context or {})


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Synthetic probe for checkout and order notifications")
    parser.add_argument(
        "--checkout-url",
        default=os.getenv("CHECKOUT_BASE_URL", "http://127.0.0.1:8000"),
        help="Base URL for the checkout service (default: %(default)s or CHECKOUT_BASE_URL)",
    )
    parser.add_argument(
        "--notification-url",
        default=os.getenv("NOTIFICATION_BASE_URL", "http://127.0.0.1:8001"),
        help="Base URL for the notification service (default: %(default)s or NOTIFICATION_BASE_URL)",
    )
    parser.add_argument(
        "--metrics-path",
        default=os.getenv("PROBE_METRICS_PATH", "/metrics"),
        help="Path to Prometheus metrics endpoint on both services (default: %(default)s)",
    )
    parser.add_argument(
        "--skip-metrics",
        action="store_true",
        help="Skip verification of Prometheus metric deltas",
    )
    parser.add_argument(
        "--currency",
        default=os.getenv("PROBE_CURRENCY", "INR"),
        help="Currency the checkout service is configured with (default: %(default)s or PROBE_CURRENCY)",
    )
    parser.add_argument(
        "--user-id",
        default=None,
        help="Customer id to order as. Default generates a unique synthetic user",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=0.5,
        help="Polling interval (seconds) when waiting for the inbox entry (default: %(default)s)",
    )
    parser.add_argument(
        "--poll-timeout",
        type=float,
        default=10.0,
        help="Maximum time (seconds) to wait for the inbox entry (default: %(default)s)",
    )
    parser.add_argument(
        "--request-timeout",
        type=float,
        default=5.0,
        help="HTTP client timeout in seconds (default: %(default)s)",
    )
    parser.add_argument(
        "--max-order-ms",
        type=float,
        default=float(os.getenv("CHECKOUT_PROBE_MAX_ORDER_MS", "2000")),
        help="Maximum allowed order write latency in milliseconds (default: %(default)s or CHECKOUT_PROBE_MAX_ORDER_MS)",
    )
    parser.add_argument(
        "--keep-product",
        action="store_true",
        help="Leave the synthetic product in the catalog after the probe",
    )
    return parser.parse_args()


def _parse_labels(raw: str | None) -> Dict[str, str]:
    if not raw:
        return {}
    return {
        match.group("key"): match.group("value").replace('\\"', '"').replace("\\\\", "\\")
        for match in _LABEL_PAIR.finditer(raw)
    }


def parse_metrics(text: str) -> List[MetricSample]:
    samples: List[MetricSample] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        match = _METRIC_LINE.match(stripped)
        if not match:
            continue
        samples.append(
            MetricSample(
                name=match.group("name"),
                labels=_parse_labels(match.group("labels")),
                value=float(match.group("value")),
            )
        )
    return samples


def find_metric_value(samples: Sequence[MetricSample], name: str, *, labels: Mapping[str, str]) -> float:
    for sample in samples:
        if sample.name != name:
            continue
        if all(sample.labels.get(key) == value for key, value in labels.items()):
            return sample.value
    return 0.0


async def fetch_metrics(client: httpx.AsyncClient, path: str) -> List[MetricSample]:
    response = await client.get(path)
    response.raise_for_status()
    return parse_metrics(response.text)


async def _create_product(client: httpx.AsyncClient, identifier: str) -> Dict[str, Any]:
    response = await client.post(
        "/products",
        json={
            "name": f"Synthetic probe item {identifier}",
            "slug": f"synthetic-probe-{identifier}",
            "price": "1.00",
            "inventoryCount": 10,
        },
    )
    if response.status_code != 201:
        raise ProbeError(
            "Failed to create probe product",
            context={"status_code": response.status_code, "body": response.text},
        )
    return response.json()


async def _check_inventory(client: httpx.AsyncClient, product_id: str) -> None:
    response = await client.post("/cart/inventory-check", json={"items": [{"id": product_id, "quantity": 1}]})
    if response.status_code != 200:
        raise ProbeError(
            "Inventory check failed",
            context={"status_code": response.status_code, "body": response.text},
        )
    data = response.json()
    if not data.get("inventoryChecked") or data.get("hasOutOfStockItems"):
        raise ProbeError("Inventory check did not confirm stock", context={"response": data})


async def _create_order(client: httpx.AsyncClient, user_id: str, product_id: str, identifier: str) -> Tuple[str, float]:
    payload = {
        "userId": user_id,
        "items": [{"id": product_id, "quantity": 1}],
        "total": "1.00",
        "paymentId": f"pay_probe_{identifier}",
        "orderId": f"order_probe_{identifier}",
    }
    start = time.monotonic()
    response = await client.post("/api/orders/create", json=payload)
    duration = (time.monotonic() - start) * 1000.0
    if response.status_code != 200:
        raise ProbeError(
            "Failed to create order",
            context={"status_code": response.status_code, "body": response.text},
        )
    return str(response.json()["orderId"]), duration


async def _wait_for_confirmation(
    client: httpx.AsyncClient,
    user_id: str,
    order_id: str,
    *,
    interval: float,
    timeout: float,
) -> float:
    start = time.monotonic()
    deadline = start + timeout
    attempt = 0
    while True:
        attempt += 1
        response = await client.get(f"/notifications/inbox/{user_id}")
        if response.status_code != 200:
            raise ProbeError(
                "Failed to read notification inbox",
                context={"status_code": response.status_code, "body": response.text, "user_id": user_id},
            )
        for item in response.json().get("items", []):
            data = item.get("data") or {}
            if item.get("type") == "order_placed" and data.get("order_id") == order_id:
                return (time.monotonic() - start) * 1000.0
        if time.monotonic() >= deadline:
            raise ProbeError(
                "Order confirmation did not reach the inbox before timeout",
                context={"order_id": order_id, "timeout": timeout, "attempts": attempt},
            )
        await asyncio.sleep(interval)


def _delta(
    before: Sequence[MetricSample],
    after: Sequence[MetricSample],
    *,
    name: str,
    labels: Mapping[str, str],
) -> MetricDelta:
    return MetricDelta(
        name=name,
        labels=dict(labels),
        before=find_metric_value(before, name, labels=labels),
        after=find_metric_value(after, name, labels=labels),
    )


async def run_probe(args: argparse.Namespace) -> Dict[str, Any]:
    timeout = httpx.Timeout(args.request_timeout)
    identifier = uuid.uuid4().hex[:8]
    user_id = args.user_id or f"synthetic-{identifier}"
    checkout = httpx.AsyncClient(base_url=args.checkout_url, timeout=timeout)
    notifications = httpx.AsyncClient(base_url=args.notification_url, timeout=timeout)
    async with checkout, notifications:
        checkout_before: Sequence[MetricSample] = ()
        notification_before: Sequence[MetricSample] = ()
        if not args.skip_metrics:
            checkout_before = await fetch_metrics(checkout, args.metrics_path)
            notification_before = await fetch_metrics(notifications, args.metrics_path)

        product = await _create_product(checkout, identifier)
        try:
            await _check_inventory(checkout, product["id"])
            order_id, order_ms = await _create_order(checkout, user_id, product["id"], identifier)
            inbox_ms = await _wait_for_confirmation(
                notifications,
                user_id,
                order_id,
                interval=args.poll_interval,
                timeout=args.poll_timeout,
            )
        finally:
            if not args.keep_product:
                await checkout.delete(f"/products/{product['id']}")

        if order_ms > args.max_order_ms:
            raise ProbeError(
                "Order write latency exceeded threshold",
                context={"order_ms": round(order_ms, 2), "threshold_ms": args.max_order_ms},
            )

        metric_results: List[MetricDelta] = []
        if not args.skip_metrics:
            checkout_after = await fetch_metrics(checkout, args.metrics_path)
            notification_after = await fetch_metrics(notifications, args.metrics_path)
            metric_results.append(
                _delta(
                    checkout_before,
                    checkout_after,
                    name="checkout_orders_created_total",
                    labels={"currency": args.currency},
                )
            )
            metric_results.append(
                _delta(
                    notification_before,
                    notification_after,
                    name="notification_events_processed_total",
                    labels={"topic": "order.created.v1"},
                )
            )
            for result in metric_results:
                if result.delta < 1:
                    raise ProbeError(
                        f"{result.name} did not increment",
                        context={"delta": result.delta, "labels": dict(result.labels)},
                    )

        return {
            "status": "ok",
            "orderId": order_id,
            "userId": user_id,
            "durationsMs": {
                "order": round(order_ms, 2),
                "inbox": round(inbox_ms, 2),
                "total": round(order_ms + inbox_ms, 2),
            },
            "metrics": [
                {
                    "name": delta.name,
                    "labels": delta.labels,
                    "before": delta.before,
                    "after": delta.after,
                    "delta": delta.delta,
                }
                for delta in metric_results
            ],
        }


async def main_async() -> int:
    args = parse_args()
    try:
        result = await run_probe(args)
    except ProbeError as exc:
        payload = {"status": "error", "message": str(exc), "context": exc.context}
        print(json.dumps(payload, indent=2, sort_keys=True))
        return 1
    except httpx.HTTPError as exc:
        payload = {
            "status": "error",
            "message": str(exc),
            "context": {"exc_type": exc.__class__.__name__},
        }
        print(json.dumps(payload, indent=2, sort_keys=True))
        return 1
    print(json.dumps(result, indent=2, sort_keys=True))
    return 0


def main() -> None:
    exit_code = asyncio.run(main_async())
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
