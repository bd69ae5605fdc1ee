#!/usr/bin/env python3
"""Synthetic probe for the backorder service.

Registers a throwaway item, enables backorders with a small limit, records a
fulfillment that crosses the limit and checks that progress, purchase
validation and the Prometheus counters agree. The item is deleted afterwards
unless ``--keep-item`` is given. Prints a JSON report and exits non-zero on
any mismatch.
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
from typing import Any, Dict, List, Mapping, Sequence

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
    parser = argparse.ArgumentParser(description="Synthetic probe for backorder service")
    parser.add_argument(
        "--base-url",
        default=os.getenv("BACKORDER_BASE_URL", "http://127.0.0.1:8000"),
        help="Base URL for the backorder service (default: %(default)s or BACKORDER_BASE_URL)",
    )
    parser.add_argument(
        "--metrics-path",
        default=os.getenv("BACKORDER_METRICS_PATH", "/metrics"),
        help="Path to Prometheus metrics endpoint (default: %(default)s or BACKORDER_METRICS_PATH)",
    )
    parser.add_argument(
        "--skip-metrics",
        action="store_true",
        help="Skip verification of Prometheus metric deltas",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=int(os.getenv("BACKORDER_PROBE_LIMIT", "3")),
        help="Backorder limit applied to the probe item (default: %(default)s or BACKORDER_PROBE_LIMIT)",
    )
    parser.add_argument(
        "--expected-action",
        default=os.getenv("BACKORDER_PROBE_ACTION", "notify"),
        choices=("notify", "disable", "ignore"),
        help="Limit-exceeded action configured on the service (default: %(default)s or BACKORDER_PROBE_ACTION)",
    )
    parser.add_argument(
        "--keep-item",
        action="store_true",
        help="Leave the probe item in place instead of deleting it",
    )
    parser.add_argument(
        "--request-timeout",
        type=float,
        default=5.0,
        help="HTTP client timeout in seconds (default: %(default)s)",
    )
    parser.add_argument(
        "--max-fulfillment-ms",
        type=float,
        default=float(os.getenv("BACKORDER_PROBE_MAX_FULFILLMENT_MS", "2000")),
        help="Maximum allowed fulfillment latency in milliseconds (default: %(default)s)",
    )
    return parser.parse_args()


def parse_metrics(text: str) -> List[MetricSample]:
    samples: List[MetricSample] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        match = _METRIC_LINE.match(stripped)
        if not match:
            continue
        labels = {pair.group("key"): pair.group("value") for pair in _LABEL_PAIR.finditer(match.group("labels") or "")}
        samples.append(MetricSample(name=match.group("name"), labels=labels, value=float(match.group("value"))))
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


async def _request(client: httpx.AsyncClient, method: str, path: str, *, expected: int, **kwargs: Any) -> tuple[Any, float]:
    start = time.monotonic()
    response = await client.request(method, path, **kwargs)
    duration = (time.monotonic() - start) * 1000.0
    if response.status_code != expected:
        raise ProbeError(
            f"{method} {path} returned unexpected status",
            context={"status_code": response.status_code, "expected": expected, "body": response.text},
        )
    data = response.json() if response.content else None
    return data, duration


def _metric_delta(
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
    if args.limit < 1:
        raise ProbeError("Probe limit must be at least 1", context={"limit": args.limit})

    identifier = uuid.uuid4().hex[:8]
    quantity = args.limit + 1
    timeout = httpx.Timeout(args.request_timeout)
    async with httpx.AsyncClient(base_url=args.base_url, timeout=timeout) as client:
        metrics_before: Sequence[MetricSample] = ()
        if not args.skip_metrics:
            metrics_before = await fetch_metrics(client, args.metrics_path)

        item, create_ms = await _request(
            client,
            "POST",
            "/items",
            expected=201,
            json={"sku": f"probe-{identifier}", "name": f"Synthetic probe {identifier}", "category": "synthetic"},
        )
        item_id = int(item["id"])
        try:
            _, policy_ms = await _request(
                client,
                "PUT",
                f"/backorders/{item_id}",
                expected=200,
                json={"mode": "allowed", "limit": args.limit},
            )

            validation, validate_ms = await _request(
                client,
                "POST",
                "/backorders/validate",
                expected=200,
                json={"context": "cart", "lines": [{"productId": item_id, "quantity": quantity}]},
            )
            if not validation["allowed"] or not validation["notices"]:
                raise ProbeError("Purchase validation did not warn past the limit", context={"response": validation})

            fulfillment, fulfillment_ms = await _request(
                client,
                "POST",
                "/backorders/fulfillments",
                expected=200,
                json={"orderId": f"probe-{identifier}", "lines": [{"productId": item_id, "quantity": quantity}]},
            )
            line = fulfillment["lines"][0]
            if not line["recorded"] or not line["limitExceeded"]:
                raise ProbeError("Fulfillment was not recorded past the limit", context={"line": line})
            if fulfillment_ms > args.max_fulfillment_ms:
                raise ProbeError(
                    "Fulfillment latency exceeded threshold",
                    context={"fulfillment_ms": round(fulfillment_ms, 2), "threshold_ms": args.max_fulfillment_ms},
                )

            progress, progress_ms = await _request(client, "GET", f"/backorders/{item_id}/progress", expected=200)
            expected_mode = "disabled" if args.expected_action == "disable" else "allowed"
            if progress["mode"] != expected_mode:
                raise ProbeError(
                    "Progress mode did not match configured action",
                    context={"expected": expected_mode, "progress": progress},
                )
        finally:
            if not args.keep_item:
                await client.delete(f"/items/{item_id}")

        metric_results: List[MetricDelta] = []
        if not args.skip_metrics:
            metrics_after = await fetch_metrics(client, args.metrics_path)
            units = _metric_delta(metrics_before, metrics_after, name="backorder_units_recorded_total", labels={})
            exceeded = _metric_delta(
                metrics_before,
                metrics_after,
                name="backorder_limit_exceeded_total",
                labels={"action": args.expected_action},
            )
            metric_results = [units, exceeded]
            if units.delta < quantity:
                raise ProbeError(
                    "backorder_units_recorded_total did not increment",
                    context={"delta": units.delta, "expected": quantity},
                )
            if exceeded.delta < 1:
                raise ProbeError(
                    "backorder_limit_exceeded_total did not increment",
                    context={"delta": exceeded.delta, "action": args.expected_action},
                )

        return {
            "status": "ok",
            "itemId": item_id,
            "progress": progress,
            "durationsMs": {
                "create": round(create_ms, 2),
                "policy": round(policy_ms, 2),
                "validate": round(validate_ms, 2),
                "fulfillment": round(fulfillment_ms, 2),
                "progress": round(progress_ms, 2),
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
