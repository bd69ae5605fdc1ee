"""Prometheus metrics for the backorder service."""

from __future__ import annotations

from typing import Final

from prometheus_client import Counter

_EVENT_OUTCOME_LABELS: Final = (
    "processed",
    "ignored_status",
    "invalid_payload",
    "duplicate_order",
    "processing_error",
    "unsupported_topic",
)

# Ledger activity --------------------------------------------------------------------------
BACKORDER_UNITS_RECORDED_TOTAL: Final = Counter(
    "backorder_units_recorded_total",
    "Units added to backorder sold counters by completed orders.",
)

BACKORDER_POLICY_UPDATES_TOTAL: Final = Counter(
    "backorder_policy_updates_total",
    "Backorder policy changes applied, by resulting mode.",
    labelnames=("mode",),
)

BACKORDER_LIMIT_EXCEEDED_TOTAL: Final = Counter(
    "backorder_limit_exceeded_total",
    "Fulfillments that pushed an item past its backorder limit, by configured action.",
    labelnames=("action",),
)

BACKORDER_PURCHASE_WARNINGS_TOTAL: Final = Counter(
    "backorder_purchase_warnings_total",
    "Purchase validations that produced a backorder limit warning.",
    labelnames=("context",),
)

# Alerts -----------------------------------------------------------------------------------
BACKORDER_ALERT_FAILURES_TOTAL: Final = Counter(
    "backorder_alert_failures_total",
    "Operator alerts that could not be delivered.",
    labelnames=("stage",),
)

# Progress cache ---------------------------------------------------------------------------
BACKORDER_PROGRESS_CACHE_EVENTS_TOTAL: Final = Counter(
    "backorder_progress_cache_events_total",
    "Progress cache hits, misses, writes, invalidations and errors.",
    labelnames=("event",),
)

# Event handling ---------------------------------------------------------------------------
BACKORDER_EVENTS_PROCESSED_TOTAL: Final = Counter(
    "backorder_events_processed_total",
    "Order events that resulted in fulfillment being recorded.",
    labelnames=("topic",),
)

BACKORDER_EVENTS_DROPPED_TOTAL: Final = Counter(
    "backorder_events_dropped_total",
    "Order events skipped during processing.",
    labelnames=("topic", "reason"),
)


def normalise_event_reason(raw_reason: str) -> str:
    """Return a bounded label value for event outcome counters."""

    reason = (raw_reason or "unsupported_topic").strip().lower().replace(" ", "_")
    if reason not in _EVENT_OUTCOME_LABELS:
        return "unsupported_topic"
    return reason
