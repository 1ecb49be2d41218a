"""Prometheus metrics for the notification service."""

from __future__ import annotations

from typing import Final

from prometheus_client import Counter, Histogram

_EVENT_OUTCOME_LABELS: Final = (
    "processed",
    "invalid_payload",
    "missing_user",
    "no_admins",
    "unsupported_topic",
)

# Channel delivery -------------------------------------------------------------------------
NOTIFICATION_CHANNEL_TOTAL: Final = Counter(
    "notification_channel_total",
    "Notification channel attempts by outcome (sent, failed, database_only, skipped).",
    labelnames=("channel", "outcome"),
)

NOTIFICATION_SEND_LATENCY_SECONDS: Final = Histogram(
    "notification_send_latency_seconds",
    "Time taken to hand notifications off to the provider.",
    labelnames=("channel",),
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10),
)

NOTIFICATION_STALE_TOKENS_TOTAL: Final = Counter(
    "notification_stale_tokens_total",
    "Device tokens removed after the push provider reported them unregistered.",
)

# Event handling ---------------------------------------------------------------------------
NOTIFICATION_EVENTS_PROCESSED_TOTAL: Final = Counter(
    "notification_events_processed_total",
    "Domain events that resulted in at least one notification dispatch.",
    labelnames=("topic",),
)

NOTIFICATION_EVENTS_DROPPED_TOTAL: Final = Counter(
    "notification_events_dropped_total",
    "Domain events skipped during processing.",
    labelnames=("topic", "reason"),
)


def normalise_event_reason(raw_reason: str) -> str:
    """Return a bounded label value for event outcome counters."""

    reason = (raw_reason or "unsupported_topic").strip().lower().replace(" ", "_")
    if reason not in _EVENT_OUTCOME_LABELS:
        return "unsupported_topic"
    return reason
