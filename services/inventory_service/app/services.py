"""Inventory domain services."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from functools import partial
from typing import Any, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from services.common import ServiceSettings, operation_span, run_bounded

from .alerts import AlertNotifier, StockAlert, evaluate_alerts
from .errors import (
    ConcurrentModification,
    DuplicateSku,
    InsufficientStock,
    InventoryError,
    ItemNotFound,
    PersistenceFailure,
    TransactionNotFound,
    ValidationFailure,
)
from .importer import map_row
from .metrics import (
    INVENTORY_IMPORT_ROWS_TOTAL,
    INVENTORY_OPERATION_LATENCY_SECONDS,
    INVENTORY_TRANSACTIONS_TOTAL,
    normalise_transaction_type,
)
from .models import InventoryItem, InventoryTransaction, ItemLocation, ItemSupplier
from .repository import InventoryRepository
from .schemas import MAX_STOCK_QUANTITY, ItemCreate, ItemUpdate, LocationEntry, LocationRef, SupplierEntry

_LOGGER = logging.getLogger(__name__)
_T = TypeVar("_T")

_SCALAR_FIELDS = (
    "name",
    "sku",
    "barcode",
    "description",
    "category",
    "subcategory",
    "tags",
    "status",
    "is_perishable",
    "expiration_date",
    "notes",
)
_REQUIRED_FIELDS = frozenset({"name", "sku", "category", "tags", "status", "is_perishable"})
_STOCK_LEVEL_COLUMNS = {
    "minimum": "stock_minimum",
    "maximum": "stock_maximum",
    "reorder_point": "reorder_point",
    "reorder_quantity": "reorder_quantity",
}
_PRICING_COLUMNS = {
    "cost": "cost",
    "selling_price": "selling_price",
    "wholesale_price": "wholesale_price",
    "currency": "currency",
}
_ALERT_COLUMNS = {
    "low_stock": "alert_low_stock",
    "out_of_stock": "alert_out_of_stock",
    "expiring_soon": "alert_expiring_soon",
    "overstock": "alert_overstock",
}

INITIAL_STOCK_REASON = "Initial stock entry"
UPDATE_ADJUSTMENT_REASON = "Manual adjustment via update"


@dataclass
class LedgerResult:
    item: InventoryItem
    transaction: InventoryTransaction


@dataclass
class DeleteResult:
    deleted: bool
    status: str | None
    message: str


@dataclass
class ImportReport:
    success: list[dict[str, Any]] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)
    total: int = 0


def _build_location(entry: LocationEntry) -> ItemLocation:
    return ItemLocation(
        warehouse=entry.warehouse,
        zone=entry.zone,
        aisle=entry.aisle,
        shelf=entry.shelf,
        bin=entry.bin,
        quantity=entry.quantity,
    )


def _build_supplier(position: int, entry: SupplierEntry) -> ItemSupplier:
    contact = entry.contact_info
    return ItemSupplier(
        position=position,
        name=entry.name,
        contact_email=contact.email if contact else None,
        contact_phone=contact.phone if contact else None,
        contact_address=contact.address if contact else None,
        lead_time_days=entry.lead_time_days,
        min_order_qty=entry.min_order_qty,
        cost=entry.cost,
        is_primary=entry.is_primary,
    )


def _location_snapshot(location: LocationRef) -> dict[str, Any]:
    return location.model_dump(include={"warehouse", "zone", "aisle", "shelf", "bin"})


def _clean_reason(reason: str | None) -> str:
    cleaned = (reason or "").strip()
    if not cleaned:
        raise ValidationFailure("Reason is required")
    return cleaned


class InventoryService:
    """High-level inventory orchestration."""

    def __init__(
        self,
        repository: InventoryRepository,
        settings: ServiceSettings,
        notifier: AlertNotifier | None = None,
    ) -> None:
        self.repository = repository
        self.settings = settings
        self.notifier = notifier

    # Plumbing -----------------------------------------------------------------------

    async def _bounded(
        self,
        operation: str,
        work: Callable[[], Awaitable[_T]],
        *,
        owner_id: int,
        item_id: int | None = None,
    ) -> _T:
        """Run a unit of persistence work under the configured time budget.

        Store failures are translated into the inventory error taxonomy.
        """

        timeout = self.settings.inventory_persistence_timeout_seconds
        started = time.perf_counter()
        try:
            with operation_span(operation, owner_id=owner_id, item_id=item_id):
                return await run_bounded(work(), timeout)
        except StaleDataError as exc:
            raise ConcurrentModification(
                "Inventory item was modified by another request; reload and retry"
            ) from exc
        except IntegrityError as exc:
            raise ValidationFailure(f"Write rejected by a data constraint: {exc.orig}") from exc
        except DBAPIError as exc:
            raise PersistenceFailure(f"Persistence layer unavailable: {exc.orig}") from exc
        except asyncio.TimeoutError as exc:
            raise PersistenceFailure(f"{operation} did not complete within {timeout:g}s") from exc
        finally:
            INVENTORY_OPERATION_LATENCY_SECONDS.labels(operation=operation).observe(time.perf_counter() - started)

    async def _load_for_update(self, owner_id: int, item_id: int) -> InventoryItem:
        item = await self.repository.get_item(owner_id, item_id, for_update=True)
        if item is None:
            raise ItemNotFound(item_id)
        return item

    def _check_location_totals(self, item: InventoryItem) -> None:
        if not self.settings.inventory_enforce_location_totals:
            return
        total = item.location_total
        if total > item.quantity_current:
            raise ValidationFailure(
                f"Location quantities ({total}) exceed current stock ({item.quantity_current}) for {item.sku}"
            )

    async def _append(self, transaction: InventoryTransaction) -> InventoryTransaction:
        await self.repository.add_transaction(transaction)
        INVENTORY_TRANSACTIONS_TOTAL.labels(type=normalise_transaction_type(transaction.type)).inc()
        return transaction

    async def _apply_adjustment(
        self,
        item: InventoryItem,
        delta: int,
        *,
        reason: str,
        unit_cost: Decimal | None = None,
        **entry_fields: Any,
    ) -> InventoryTransaction:
        before = item.quantity_current
        target = before + delta
        if target < 0 and self.settings.inventory_negative_policy == "reject":
            raise InsufficientStock(
                f"Cannot remove {abs(delta)} units of {item.sku}; only {before} on hand",
                requested=abs(delta),
                available=before,
            )
        if target > MAX_STOCK_QUANTITY:
            raise ValidationFailure(
                f"Adding {delta} units of {item.sku} would exceed the maximum stock of {MAX_STOCK_QUANTITY}"
            )
        item.quantity_current = max(0, target)
        item.refresh_derived_state()
        self._check_location_totals(item)
        await self.repository.save_item(item)

        transaction = InventoryTransaction(
            owner_id=item.owner_id,
            item=item,
            type="stock_in" if delta > 0 else "stock_out",
            quantity=abs(delta),
            before_quantity=before,
            after_quantity=item.quantity_current,
            reason=reason,
            unit_cost=item.cost if unit_cost is None else unit_cost,
            **entry_fields,
        )
        return await self._append(transaction)

    async def _dispatch_alerts(self, item: InventoryItem) -> list[StockAlert]:
        alerts = evaluate_alerts(item, window_days=self.settings.inventory_expiring_window_days)
        if not alerts or self.notifier is None:
            return alerts
        try:
            contact = await self.repository.get_contact(item.owner_id)
            self.notifier.notify(contact, alerts)
        except Exception:
            _LOGGER.exception("Failed to dispatch stock alerts for inventory item %s", item.id)
        return alerts

    # Item lifecycle -----------------------------------------------------------------

    async def _create(self, owner_id: int, payload: ItemCreate) -> InventoryItem:
        if await self.repository.find_by_sku(owner_id, payload.sku) is not None:
            raise DuplicateSku(payload.sku)

        item = InventoryItem(
            owner_id=owner_id,
            sku=payload.sku,
            barcode=payload.barcode,
            name=payload.name,
            description=payload.description,
            category=payload.category,
            subcategory=payload.subcategory,
            tags=list(payload.tags),
            notes=payload.notes,
            quantity_current=payload.quantity.current,
            quantity_reserved=payload.quantity.reserved,
            stock_minimum=payload.stock_levels.minimum,
            stock_maximum=payload.stock_levels.maximum,
            reorder_point=payload.stock_levels.reorder_point,
            reorder_quantity=payload.stock_levels.reorder_quantity,
            cost=payload.pricing.cost,
            selling_price=payload.pricing.selling_price,
            wholesale_price=payload.pricing.wholesale_price,
            currency=payload.pricing.currency.upper(),
            status=payload.status,
            is_perishable=payload.is_perishable,
            expiration_date=payload.expiration_date,
            alert_low_stock=payload.alerts.low_stock,
            alert_out_of_stock=payload.alerts.out_of_stock,
            alert_expiring_soon=payload.alerts.expiring_soon,
            alert_overstock=payload.alerts.overstock,
            locations=[_build_location(entry) for entry in payload.locations],
            suppliers=[_build_supplier(position, entry) for position, entry in enumerate(payload.suppliers)],
        )
        item.refresh_derived_state()
        self._check_location_totals(item)
        try:
            await self.repository.add_item(item)
        except IntegrityError as exc:
            raise DuplicateSku(payload.sku) from exc

        if item.quantity_current > 0:
            await self._append(
                InventoryTransaction(
                    owner_id=owner_id,
                    item=item,
                    type="stock_in",
                    quantity=item.quantity_current,
                    before_quantity=0,
                    after_quantity=item.quantity_current,
                    reason=INITIAL_STOCK_REASON,
                    unit_cost=item.cost,
                )
            )
        return item

    async def create_item(self, owner_id: int, payload: ItemCreate) -> InventoryItem:
        item = await self._bounded("create_item", partial(self._create, owner_id, payload), owner_id=owner_id)
        _LOGGER.info("Created inventory item %s (%s) for owner %s", item.id, item.sku, owner_id)
        return item

    async def update_item(
        self,
        owner_id: int,
        item_id: int,
        payload: ItemUpdate,
        *,
        performed_by: int | None = None,
    ) -> InventoryItem:
        changes = payload.model_dump(exclude_unset=True)

        async def _work() -> tuple[InventoryItem, bool]:
            item = await self._load_for_update(owner_id, item_id)

            new_sku = changes.get("sku")
            if new_sku and new_sku != item.sku:
                if await self.repository.find_by_sku(owner_id, new_sku) is not None:
                    raise DuplicateSku(new_sku)

            for name in _SCALAR_FIELDS:
                if name not in changes:
                    continue
                value = changes[name]
                if value is None and name in _REQUIRED_FIELDS:
                    continue
                setattr(item, name, value)

            for group, columns in (
                ("stock_levels", _STOCK_LEVEL_COLUMNS),
                ("pricing", _PRICING_COLUMNS),
                ("alerts", _ALERT_COLUMNS),
            ):
                for key, value in (changes.get(group) or {}).items():
                    if value is not None:
                        setattr(item, columns[key], value)

            if payload.suppliers is not None:
                item.suppliers = [
                    _build_supplier(position, entry) for position, entry in enumerate(payload.suppliers)
                ]
            if payload.locations is not None:
                item.locations = [_build_location(entry) for entry in payload.locations]
                flag_modified(item, "quantity_current")

            quantity = payload.quantity
            if quantity is not None and quantity.reserved is not None:
                item.quantity_reserved = quantity.reserved

            delta = 0
            if quantity is not None and quantity.current is not None:
                delta = quantity.current - item.quantity_current
            if delta:
                await self._apply_adjustment(
                    item,
                    delta,
                    reason=UPDATE_ADJUSTMENT_REASON,
                    reference_type="adjustment",
                    performed_by=performed_by,
                )
            else:
                item.refresh_derived_state()
                self._check_location_totals(item)
                await self.repository.save_item(item)
            return item, bool(delta)

        item, moved = await self._bounded("update_item", _work, owner_id=owner_id, item_id=item_id)
        _LOGGER.info("Updated inventory item %s for owner %s", item.id, owner_id)
        if moved:
            await self._dispatch_alerts(item)
        return item

    async def delete_item(self, owner_id: int, item_id: int) -> DeleteResult:
        async def _work() -> DeleteResult:
            item = await self._load_for_update(owner_id, item_id)
            if await self.repository.count_transactions(item.id) > 0:
                item.status = "inactive"
                await self.repository.save_item(item)
                return DeleteResult(
                    deleted=False,
                    status=item.status,
                    message="Item marked as inactive due to existing transactions",
                )
            await self.repository.delete_item(item)
            return DeleteResult(deleted=True, status=None, message="Item deleted successfully")

        result = await self._bounded("delete_item", _work, owner_id=owner_id, item_id=item_id)
        _LOGGER.info(
            "%s inventory item %s for owner %s",
            "Deleted" if result.deleted else "Deactivated",
            item_id,
            owner_id,
        )
        return result

    # Ledger operations --------------------------------------------------------------

    async def adjust(
        self,
        owner_id: int,
        item_id: int,
        *,
        adjustment: int,
        reason: str,
        performed_by: int | None = None,
        performed_by_name: str | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
        notes: str | None = None,
    ) -> LedgerResult:
        """Change on-hand stock by ``adjustment`` and record one ledger entry.

        Removals that would go below zero are clamped at zero unless the
        ``reject`` policy is configured, in which case InsufficientStock is raised.
        """

        if adjustment == 0:
            raise ValidationFailure("Adjustment must be a non-zero integer")
        cleaned_reason = _clean_reason(reason)

        async def _work() -> LedgerResult:
            item = await self._load_for_update(owner_id, item_id)
            transaction = await self._apply_adjustment(
                item,
                adjustment,
                reason=cleaned_reason,
                performed_by=performed_by,
                performed_by_name=performed_by_name,
                reference_type=reference_type,
                reference_id=reference_id,
                notes=notes,
            )
            return LedgerResult(item=item, transaction=transaction)

        result = await self._bounded("adjust", _work, owner_id=owner_id, item_id=item_id)
        _LOGGER.info(
            "Adjusted inventory item %s by %+d (%d -> %d)",
            item_id,
            adjustment,
            result.transaction.before_quantity,
            result.transaction.after_quantity,
        )
        await self._dispatch_alerts(result.item)
        return result

    async def transfer(
        self,
        owner_id: int,
        item_id: int,
        *,
        from_location: LocationRef,
        to_location: LocationRef,
        quantity: int,
        reason: str,
        performed_by: int | None = None,
    ) -> LedgerResult:
        """Move stock between two locations of one item; on-hand stock is unchanged."""

        if quantity <= 0:
            raise ValidationFailure("Transfer quantity must be positive")
        cleaned_reason = _clean_reason(reason)
        if (from_location.warehouse, from_location.zone) == (to_location.warehouse, to_location.zone):
            raise ValidationFailure("Source and destination locations must differ")

        async def _work() -> LedgerResult:
            item = await self._load_for_update(owner_id, item_id)
            source = next(
                (loc for loc in item.locations if loc.matches(from_location.warehouse, from_location.zone)),
                None,
            )
            if source is None or source.quantity < quantity:
                raise InsufficientStock(
                    "Insufficient quantity at source location",
                    requested=quantity,
                    available=source.quantity if source is not None else 0,
                )
            source.quantity -= quantity

            destination = next(
                (loc for loc in item.locations if loc.matches(to_location.warehouse, to_location.zone)),
                None,
            )
            if destination is None:
                destination = ItemLocation(
                    warehouse=to_location.warehouse,
                    zone=to_location.zone,
                    aisle=to_location.aisle,
                    shelf=to_location.shelf,
                    bin=to_location.bin,
                    quantity=0,
                )
                item.locations.append(destination)
            destination.quantity += quantity

            # location-only changes still bump the item version
            flag_modified(item, "quantity_current")
            await self.repository.save_item(item)

            transaction = await self._append(
                InventoryTransaction(
                    owner_id=owner_id,
                    item=item,
                    type="transfer",
                    quantity=quantity,
                    before_quantity=item.quantity_current,
                    after_quantity=item.quantity_current,
                    reason=cleaned_reason,
                    reference_type="transfer",
                    location_from=_location_snapshot(from_location),
                    location_to=_location_snapshot(to_location),
                    performed_by=performed_by,
                )
            )
            return LedgerResult(item=item, transaction=transaction)

        result = await self._bounded("transfer", _work, owner_id=owner_id, item_id=item_id)
        _LOGGER.info(
            "Transferred %d units of inventory item %s from %s to %s",
            quantity,
            item_id,
            from_location.warehouse,
            to_location.warehouse,
        )
        await self._dispatch_alerts(result.item)
        return result

    async def reserve(self, owner_id: int, item_id: int, *, quantity: int) -> InventoryItem:
        if quantity <= 0:
            raise ValidationFailure("quantity must be positive")

        async def _work() -> InventoryItem:
            item = await self._load_for_update(owner_id, item_id)
            available = item.quantity_available
            if quantity > available:
                raise InsufficientStock(
                    f"Insufficient available quantity for {item.sku}: requested {quantity}, available {available}",
                    requested=quantity,
                    available=available,
                )
            item.quantity_reserved += quantity
            item.refresh_derived_state()
            return await self.repository.save_item(item)

        return await self._bounded("reserve", _work, owner_id=owner_id, item_id=item_id)

    async def release(self, owner_id: int, item_id: int, *, quantity: int) -> InventoryItem:
        if quantity <= 0:
            raise ValidationFailure("quantity must be positive")

        async def _work() -> InventoryItem:
            item = await self._load_for_update(owner_id, item_id)
            item.quantity_reserved = max(0, item.quantity_reserved - quantity)
            item.refresh_derived_state()
            return await self.repository.save_item(item)

        return await self._bounded("release", _work, owner_id=owner_id, item_id=item_id)

    async def reverse(
        self,
        owner_id: int,
        transaction_id: int,
        *,
        reason: str,
        performed_by: int | None = None,
    ) -> LedgerResult:
        """Append an entry that negates ``transaction_id`` and apply it to the item.

        Reversing a ``stock_in`` removes its quantity; any other movement adds it
        back. Transfers cannot be reversed.
        """

        cleaned_reason = _clean_reason(reason)

        async def _work() -> LedgerResult:
            original = await self.repository.get_transaction(owner_id, transaction_id)
            if original is None:
                raise TransactionNotFound(transaction_id)
            if original.type == "transfer":
                raise ValidationFailure("Transfer transactions cannot be reversed")
            if original.quantity == 0:
                raise ValidationFailure(f"Transaction {transaction_id} has no quantity to reverse")

            # The item row lock is held across the reversal lookup.
            item = await self._load_for_update(owner_id, original.item_id)
            if not self.settings.inventory_allow_repeat_reversal:
                existing = await self.repository.find_reversal(original.id)
                if existing is not None:
                    raise ValidationFailure(
                        f"Transaction {transaction_id} has already been reversed by transaction {existing.id}"
                    )
            delta = -original.quantity if original.type == "stock_in" else original.quantity
            transaction = await self._apply_adjustment(
                item,
                delta,
                reason=f"Reversal: {cleaned_reason}",
                unit_cost=original.unit_cost,
                unit_price=original.unit_price,
                reference_type="correction",
                reference_id=str(original.id),
                reversed_transaction_id=original.id,
                performed_by=performed_by if performed_by is not None else original.performed_by,
            )
            return LedgerResult(item=item, transaction=transaction)

        result = await self._bounded("reverse", _work, owner_id=owner_id)
        _LOGGER.info(
            "Reversed inventory transaction %s with transaction %s",
            transaction_id,
            result.transaction.id,
        )
        await self._dispatch_alerts(result.item)
        return result

    # Alerts -------------------------------------------------------------------------

    async def evaluate_item_alerts(self, owner_id: int, item_id: int) -> list[StockAlert]:
        item = await self.repository.get_item(owner_id, item_id)
        if item is None:
            raise ItemNotFound(item_id)
        return evaluate_alerts(item, window_days=self.settings.inventory_expiring_window_days)

    # Bulk import --------------------------------------------------------------------

    async def bulk_import(self, owner_id: int, rows: Sequence[Mapping[str, Any]]) -> ImportReport:
        """Create one item per row; a failing row is reported and never undoes the others."""

        report = ImportReport(total=len(rows))
        session = self.repository.session
        for index, row in enumerate(rows, start=1):
            try:
                payload = map_row(row)
                async with session.begin_nested():
                    item = await self._bounded(
                        "import_row", partial(self._create, owner_id, payload), owner_id=owner_id
                    )
            except InventoryError as exc:
                report.errors.append({"row": index, "error": str(exc)})
                INVENTORY_IMPORT_ROWS_TOTAL.labels(outcome="error").inc()
                continue
            report.success.append({"row": index, "item": item.name, "sku": item.sku})
            INVENTORY_IMPORT_ROWS_TOTAL.labels(outcome="success").inc()

        _LOGGER.info(
            "Imported %d of %d inventory rows for owner %s (%d errors)",
            len(report.success),
            report.total,
            owner_id,
            len(report.errors),
        )
        return report
