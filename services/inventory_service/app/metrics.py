"""Prometheus metrics for the inventory service."""

from __future__ import annotations

from typing import Final

from prometheus_client import Counter, Histogram

from .models import TRANSACTION_TYPES

_ALERT_TYPES: Final = ("low_stock", "out_of_stock", "overstock", "expiring_soon")

# Ledger --------------------------------------------------------------------------------
INVENTORY_TRANSACTIONS_TOTAL: Final = Counter(
    "inventory_transactions_total",
    "Ledger entries appended, by transaction type.",
    labelnames=("type",),
)

INVENTORY_OPERATION_LATENCY_SECONDS: Final = Histogram(
    "inventory_operation_latency_seconds",
    "Time spent executing inventory mutations.",
    labelnames=("operation",),
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10),
)

# Alerts --------------------------------------------------------------------------------
INVENTORY_ALERTS_TOTAL: Final = Counter(
    "inventory_alerts_total",
    "Stock alerts raised by the evaluator.",
    labelnames=("type",),
)

INVENTORY_ALERT_NOTIFICATIONS_TOTAL: Final = Counter(
    "inventory_alert_notifications_total",
    "Alert emails handed to the email provider.",
)

INVENTORY_ALERT_DISPATCH_FAILURES_TOTAL: Final = Counter(
    "inventory_alert_dispatch_failures_total",
    "Alert emails that could not be delivered.",
)

# Imports -------------------------------------------------------------------------------
INVENTORY_IMPORT_ROWS_TOTAL: Final = Counter(
    "inventory_import_rows_total",
    "Bulk import rows processed, by outcome.",
    labelnames=("outcome",),
)


def normalise_transaction_type(raw_type: str) -> str:
    """Return a bounded label value for ledger counters."""

    value = (raw_type or "").strip().lower()
    return value if value in TRANSACTION_TYPES else "adjustment"


def normalise_alert_type(raw_type: str) -> str:
    value = (raw_type or "").strip().lower()
    return value if value in _ALERT_TYPES else "low_stock"
