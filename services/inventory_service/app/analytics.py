"""Read-only inventory analytics."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from services.common import ServiceSettings

from .repository import InventoryRepository, as_utc

DEFAULT_WINDOW = timedelta(days=30)
_CENTS = Decimal("0.01")


def calculate_turnover_rate(stock_out_total: int, days: float) -> float:
    """Average units shipped per day, rounded to two decimals."""

    if days <= 0:
        return 0.0
    rate = Decimal(stock_out_total) / Decimal(str(days))
    return float(rate.quantize(_CENTS, rounding=ROUND_HALF_UP))


def resolve_window(start: datetime | None, end: datetime | None) -> tuple[datetime, datetime]:
    """Fill in a missing window bound; the default window is the last 30 days."""

    resolved_end = as_utc(end) if end is not None else datetime.now(timezone.utc)
    resolved_start = as_utc(start) if start is not None else resolved_end - DEFAULT_WINDOW
    if resolved_start > resolved_end:
        msg = "startDate must not be after endDate"
        raise ValueError(msg)
    return resolved_start, resolved_end


def _money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(_CENTS, rounding=ROUND_HALF_UP)


class InventoryAnalytics:
    """Aggregates stock and ledger figures for one owner over a time window."""

    def __init__(self, repository: InventoryRepository, settings: ServiceSettings) -> None:
        self.repository = repository
        self.settings = settings

    async def summarize(
        self,
        owner_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict[str, Any]:
        window_start, window_end = resolve_window(start, end)
        repo = self.repository

        total_items = await repo.count_items(owner_id)
        active_items = await repo.count_items(owner_id, status="active")
        low_stock = await repo.count_by_stock_status(owner_id, "low_stock")
        out_of_stock = await repo.count_by_stock_status(owner_id, "out_of_stock")

        value = await repo.inventory_value(owner_id)
        value["totalValue"] = _money(value["totalValue"])
        value["totalRetailValue"] = _money(value["totalRetailValue"])

        by_type = await repo.transactions_by_type(owner_id, window_start, window_end)
        for entry in by_type:
            entry["totalValue"] = _money(entry["totalValue"])
        stock_out_total = sum(entry["totalQuantity"] for entry in by_type if entry["type"] == "stock_out")

        window_days = (window_end - window_start).total_seconds() / 86400
        window_rate = calculate_turnover_rate(stock_out_total, window_days)
        if self.settings.inventory_turnover_basis == "window":
            turnover_rate = window_rate
        else:
            turnover_rate = calculate_turnover_rate(
                stock_out_total, self.settings.inventory_turnover_reference_days
            )

        top_moving = await repo.top_moving_items(
            owner_id,
            window_start,
            window_end,
            limit=self.settings.inventory_top_moving_limit,
        )
        categories = await repo.category_breakdown(owner_id)
        for entry in categories:
            entry["totalValue"] = _money(entry["totalValue"])

        return {
            "summary": {
                "totalItems": total_items,
                "activeItems": active_items,
                "lowStockItems": low_stock,
                "outOfStockItems": out_of_stock,
                "inventoryValue": value,
                "stockTurnoverRate": turnover_rate,
                "windowTurnoverRate": window_rate,
                "turnoverBasis": self.settings.inventory_turnover_basis,
            },
            "transactions": {
                "total": sum(entry["count"] for entry in by_type),
                "byType": by_type,
            },
            "topMovingItems": top_moving,
            "categoryBreakdown": categories,
            "dateRange": {"start": window_start, "end": window_end},
        }
