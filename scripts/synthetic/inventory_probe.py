#!/usr/bin/env python3
"""Synthetic probe for the inventory service.

Creates a throwaway item, walks it through an adjustment, a sale and a
reversal, checks the resulting stock level and ledger, and (optionally)
verifies that the ledger counters moved. The probe item is retired at the end
so it never shows up in active listings.
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

TYPE_LABEL = "type"

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
    parser = argparse.ArgumentParser(description="Synthetic probe for inventory service")
    parser.add_argument(
        "--base-url",
        default=os.getenv("INVENTORY_BASE_URL", "http://127.0.0.1:8000"),
        help="Base URL for the inventory service (default: %(default)s or INVENTORY_BASE_URL)",
    )
    parser.add_argument(
        "--metrics-path",
        default=os.getenv("INVENTORY_METRICS_PATH", "/metrics"),
        help="Path to Prometheus metrics endpoint (default: %(default)s or INVENTORY_METRICS_PATH)",
    )
    parser.add_argument(
        "--skip-metrics",
        action="store_true",
        help="Skip verification of Prometheus metric deltas",
    )
    parser.add_argument(
        "--owner-id",
        type=int,
        default=int(os.getenv("INVENTORY_PROBE_OWNER_ID", "999999")),
        help="Owner the probe item is created for (default: %(default)s or INVENTORY_PROBE_OWNER_ID)",
    )
    parser.add_argument(
        "--request-timeout",
        type=float,
        default=5.0,
        help="HTTP client timeout in seconds (default: %(default)s)",
    )
    parser.add_argument(
        "--max-adjust-ms",
        type=float,
        default=float(os.getenv("INVENTORY_PROBE_MAX_ADJUST_MS", "1000")),
        help="Maximum allowed adjustment latency in milliseconds (default: %(default)s or INVENTORY_PROBE_MAX_ADJUST_MS)",
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


def _expect(response: httpx.Response, expected_status: int, message: str, **context: Any) -> Dict[str, Any]:
    if response.status_code != expected_status:
        raise ProbeError(message, context={"status_code": response.status_code, "body": response.text, **context})
    return response.json()


def build_payload() -> Dict[str, Any]:
    identifier = uuid.uuid4().hex[:8].upper()
    return {
        "name": f"Synthetic probe {identifier}",
        "sku": f"PROBE-{identifier}",
        "category": "other",
        "quantity": {"current": 10},
        "stockLevels": {"reorderPoint": 0},
        "alerts": {"lowStock": False, "outOfStock": False},
        "notes": "Created by the inventory synthetic probe",
    }


async def _timed_post(client: httpx.AsyncClient, path: str, payload: Mapping[str, Any]) -> tuple[httpx.Response, float]:
    start = time.monotonic()
    response = await client.post(path, json=payload)
    return response, (time.monotonic() - start) * 1000.0


async def run_probe(args: argparse.Namespace) -> Dict[str, Any]:
    timeout = httpx.Timeout(args.request_timeout)
    headers = {"X-Owner-Id": str(args.owner_id)}
    async with httpx.AsyncClient(base_url=args.base_url, timeout=timeout, headers=headers) as client:
        metrics_before: Sequence[MetricSample] = ()
        if not args.skip_metrics:
            metrics_before = await fetch_metrics(client, args.metrics_path)

        response, create_ms = await _timed_post(client, "/inventory", build_payload())
        item = _expect(response, 201, "Failed to create probe item")
        item_id = int(item["id"])

        response, restock_ms = await _timed_post(
            client, f"/inventory/{item_id}/adjust", {"adjustment": 5, "reason": "Synthetic restock"}
        )
        _expect(response, 200, "Failed to restock probe item", item_id=item_id)

        response, sale_ms = await _timed_post(
            client, f"/inventory/{item_id}/adjust", {"adjustment": -3, "reason": "Synthetic sale"}
        )
        sale = _expect(response, 200, "Failed to record probe sale", item_id=item_id)
        sale_id = int(sale["transaction"]["id"])

        response, reverse_ms = await _timed_post(
            client, f"/inventory/transactions/{sale_id}/reverse", {"reason": "Synthetic probe cleanup"}
        )
        reversal = _expect(response, 201, "Failed to reverse probe sale", transaction_id=sale_id)

        adjust_ms = max(restock_ms, sale_ms)
        if adjust_ms > args.max_adjust_ms:
            raise ProbeError(
                "Inventory adjustment latency exceeded threshold",
                context={"adjust_ms": round(adjust_ms, 2), "threshold_ms": args.max_adjust_ms},
            )

        final_quantity = int(reversal["item"]["quantity"]["current"])
        if final_quantity != 15:
            raise ProbeError(
                "Probe item quantity drifted",
                context={"expected": 15, "actual": final_quantity, "item_id": item_id},
            )

        ledger = _expect(
            await client.get(f"/inventory/{item_id}/transactions"),
            200,
            "Failed to fetch probe ledger",
            item_id=item_id,
        )
        if ledger["total"] != 4:
            raise ProbeError(
                "Probe ledger has an unexpected number of entries",
                context={"expected": 4, "actual": ledger["total"], "item_id": item_id},
            )

        cleanup = _expect(await client.delete(f"/inventory/{item_id}"), 200, "Failed to retire probe item")

        metric_results: List[MetricDelta] = []
        if not args.skip_metrics:
            metrics_after = await fetch_metrics(client, args.metrics_path)
            for transaction_type, minimum in (("stock_in", 3), ("stock_out", 1)):
                labels = {TYPE_LABEL: transaction_type}
                delta = MetricDelta(
                    name="inventory_transactions_total",
                    labels=labels,
                    before=find_metric_value(metrics_before, "inventory_transactions_total", labels=labels),
                    after=find_metric_value(metrics_after, "inventory_transactions_total", labels=labels),
                )
                metric_results.append(delta)
                if delta.delta < minimum:
                    raise ProbeError(
                        "inventory_transactions_total did not increment",
                        context={"type": transaction_type, "delta": delta.delta, "expected_at_least": minimum},
                    )

        return {
            "status": "ok",
            "itemId": item_id,
            "finalQuantity": final_quantity,
            "cleanup": cleanup.get("status"),
            "durationsMs": {
                "create": round(create_ms, 2),
                "restock": round(restock_ms, 2),
                "sale": round(sale_ms, 2),
                "reverse": round(reverse_ms, 2),
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
