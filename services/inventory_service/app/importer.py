"""Row adapter for bulk item imports (JSON rows or CSV uploads)."""

from __future__ import annotations

import csv
import io
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping

from pydantic import ValidationError

from .errors import ValidationFailure
from .models import ITEM_CATEGORIES
from .schemas import ItemCreate

# Each field accepts its API spelling first, then the spreadsheet header.
_ALIASES: dict[str, tuple[str, ...]] = {
    "name": ("name", "Name"),
    "sku": ("sku", "SKU"),
    "description": ("description", "Description"),
    "category": ("category", "Category"),
    "quantity": ("quantity", "Quantity"),
    "minimum": ("minimum", "Minimum"),
    "reorder_point": ("reorderPoint", "Reorder Point"),
    "cost": ("cost", "Cost"),
    "selling_price": ("sellingPrice", "Selling Price"),
}


def _lookup(row: Mapping[str, Any], field: str) -> Any:
    for key in _ALIASES[field]:
        value = row.get(key)
        if isinstance(value, str):
            value = value.strip()
        if value not in (None, ""):
            return value
    return None


def _as_int(value: Any, default: int) -> int:
    if value is None:
        return default
    try:
        number = Decimal(str(value))
    except InvalidOperation:
        return default
    if not number.is_finite():
        return default
    return int(number)


def _as_money(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        return Decimal("0")
    if not amount.is_finite():
        return Decimal("0")
    return amount.quantize(Decimal("0.01"))


def _describe(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts)


def map_row(row: Mapping[str, Any]) -> ItemCreate:
    """Translate one import row into an item creation payload.

    Missing or unparsable numbers fall back to 0, except the reorder point which
    falls back to 10. Unknown categories become ``other``.
    """

    category = _lookup(row, "category")
    category = str(category).strip().lower() if category is not None else "other"
    if category not in ITEM_CATEGORIES:
        category = "other"

    name = _lookup(row, "name")
    sku = _lookup(row, "sku")
    if name is None:
        raise ValidationFailure("Item name is required")
    if sku is None:
        raise ValidationFailure("Item SKU is required")

    payload = {
        "name": str(name),
        "sku": str(sku),
        "description": str(_lookup(row, "description") or ""),
        "category": category,
        "quantity": {"current": max(0, _as_int(_lookup(row, "quantity"), 0))},
        "stockLevels": {
            "minimum": max(0, _as_int(_lookup(row, "minimum"), 0)),
            "reorderPoint": max(0, _as_int(_lookup(row, "reorder_point"), 10)),
        },
        "pricing": {
            "cost": max(Decimal("0"), _as_money(_lookup(row, "cost"))),
            "sellingPrice": max(Decimal("0"), _as_money(_lookup(row, "selling_price"))),
        },
    }
    try:
        return ItemCreate.model_validate(payload)
    except ValidationError as exc:
        raise ValidationFailure(_describe(exc)) from exc


def parse_csv(text: str) -> list[dict[str, str]]:
    """Parse CSV text with a header row into a list of row dicts, skipping blank lines."""

    reader = csv.DictReader(io.StringIO(text.lstrip("\ufeff")))
    return [dict(row) for row in _non_blank(reader)]


def _non_blank(rows: Iterable[dict[str, Any]]) -> Iterable[dict[str, Any]]:
    for row in rows:
        if any(isinstance(value, str) and value.strip() for value in row.values()):
            yield row
