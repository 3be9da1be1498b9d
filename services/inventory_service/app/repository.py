"""Data access helpers for inventory service."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import Select, and_, case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import InventoryItem, InventoryTransaction, OwnerContact

_SORT_COLUMNS = {
    "name": InventoryItem.name,
    "sku": InventoryItem.sku,
    "category": InventoryItem.category,
    "createdAt": InventoryItem.created_at,
    "updatedAt": InventoryItem.updated_at,
    "quantity": InventoryItem.quantity_current,
}
_LISTABLE_STATUSES = ("active", "out_of_stock")


def _stock_status_clause(stock_status: str):
    if stock_status == "low_stock":
        return InventoryItem.quantity_current <= InventoryItem.reorder_point
    if stock_status == "out_of_stock":
        return InventoryItem.quantity_current == 0
    if stock_status == "overstock":
        return InventoryItem.quantity_current >= InventoryItem.stock_maximum
    return None


def as_utc(value: datetime) -> datetime:
    """Normalise a bound to UTC; naive values are taken to be UTC already."""

    return value.astimezone(timezone.utc) if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _window_filters(owner_id: int, start: datetime, end: datetime) -> list[Any]:
    return [
        InventoryTransaction.owner_id == owner_id,
        InventoryTransaction.created_at >= start,
        InventoryTransaction.created_at <= end,
    ]


class InventoryRepository:
    """Persistence utilities for inventory items, ledger entries and owner contacts."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # Items --------------------------------------------------------------------------

    async def add_item(self, item: InventoryItem) -> InventoryItem:
        self.session.add(item)
        await self.session.flush()
        await self.session.refresh(item, attribute_names=["created_at", "updated_at"])
        return item

    async def save_item(self, item: InventoryItem) -> InventoryItem:
        await self.session.flush()
        await self.session.refresh(item, attribute_names=["updated_at"])
        return item

    async def get_item(self, owner_id: int, item_id: int, *, for_update: bool = False) -> InventoryItem | None:
        stmt = select(InventoryItem).where(
            InventoryItem.id == item_id,
            InventoryItem.owner_id == owner_id,
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_sku(self, owner_id: int, sku: str) -> InventoryItem | None:
        result = await self.session.execute(
            select(InventoryItem).where(InventoryItem.owner_id == owner_id, InventoryItem.sku == sku)
        )
        return result.scalar_one_or_none()

    async def find_by_barcode(self, owner_id: int, barcode: str) -> InventoryItem | None:
        result = await self.session.execute(
            select(InventoryItem)
            .where(
                InventoryItem.owner_id == owner_id,
                InventoryItem.barcode == barcode,
                InventoryItem.status == "active",
            )
            .order_by(InventoryItem.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_items(
        self,
        owner_id: int,
        *,
        category: str | None,
        status: str | None,
        stock_status: str | None,
        search: str | None,
        sort_by: str,
        sort_order: str,
        limit: int,
        offset: int,
    ) -> tuple[list[InventoryItem], int]:
        filters: list[Any] = [InventoryItem.owner_id == owner_id]
        if category is not None and category != "all":
            filters.append(InventoryItem.category == category)
        if status is not None and status != "all":
            filters.append(InventoryItem.status == status)
        if search:
            pattern = f"%{search.strip()}%"
            filters.append(
                or_(
                    InventoryItem.name.ilike(pattern),
                    InventoryItem.sku.ilike(pattern),
                    InventoryItem.description.ilike(pattern),
                )
            )
        if stock_status is not None:
            clause = _stock_status_clause(stock_status)
            if clause is not None:
                filters.append(clause)

        column = _SORT_COLUMNS.get(sort_by, InventoryItem.name)
        ordering = column.desc() if sort_order == "desc" else column.asc()
        clause = and_(*filters)
        base: Select[tuple[InventoryItem]] = select(InventoryItem).where(clause).order_by(ordering, InventoryItem.id)
        count: Select[tuple[int]] = select(func.count(InventoryItem.id)).where(clause)

        total = (await self.session.execute(count)).scalar_one()
        result = await self.session.execute(base.offset(offset).limit(limit))
        return list(result.scalars().unique()), total

    async def list_categories(self, owner_id: int) -> list[str]:
        result = await self.session.execute(
            select(InventoryItem.category)
            .where(InventoryItem.owner_id == owner_id, InventoryItem.status == "active")
            .distinct()
            .order_by(InventoryItem.category)
        )
        return list(result.scalars())

    async def list_low_stock(self, owner_id: int) -> list[InventoryItem]:
        result = await self.session.execute(
            select(InventoryItem)
            .where(
                InventoryItem.owner_id == owner_id,
                InventoryItem.status.in_(_LISTABLE_STATUSES),
                InventoryItem.quantity_current <= InventoryItem.reorder_point,
            )
            .order_by(InventoryItem.quantity_current.asc(), InventoryItem.id)
        )
        return list(result.scalars().unique())

    async def list_out_of_stock(self, owner_id: int) -> list[InventoryItem]:
        result = await self.session.execute(
            select(InventoryItem)
            .where(
                InventoryItem.owner_id == owner_id,
                InventoryItem.status.in_(_LISTABLE_STATUSES),
                InventoryItem.quantity_current == 0,
            )
            .order_by(InventoryItem.updated_at.desc(), InventoryItem.id.desc())
        )
        return list(result.scalars().unique())

    async def delete_item(self, item: InventoryItem) -> None:
        await self.session.delete(item)
        await self.session.flush()

    # Ledger -------------------------------------------------------------------------

    async def add_transaction(self, transaction: InventoryTransaction) -> InventoryTransaction:
        self.session.add(transaction)
        await self.session.flush()
        return transaction

    async def count_transactions(self, item_id: int) -> int:
        result = await self.session.execute(
            select(func.count(InventoryTransaction.id)).where(InventoryTransaction.item_id == item_id)
        )
        return result.scalar_one()

    async def get_transaction(self, owner_id: int, transaction_id: int) -> InventoryTransaction | None:
        result = await self.session.execute(
            select(InventoryTransaction).where(
                InventoryTransaction.id == transaction_id,
                InventoryTransaction.owner_id == owner_id,
            )
        )
        return result.scalar_one_or_none()

    async def find_reversal(self, transaction_id: int) -> InventoryTransaction | None:
        result = await self.session.execute(
            select(InventoryTransaction)
            .where(InventoryTransaction.reversed_transaction_id == transaction_id)
            .order_by(InventoryTransaction.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_transactions(
        self,
        owner_id: int,
        *,
        item_id: int | None,
        transaction_type: str | None,
        start: datetime | None,
        end: datetime | None,
        limit: int,
        offset: int,
    ) -> tuple[list[InventoryTransaction], int]:
        filters: list[Any] = [InventoryTransaction.owner_id == owner_id]
        if item_id is not None:
            filters.append(InventoryTransaction.item_id == item_id)
        if transaction_type is not None:
            filters.append(InventoryTransaction.type == transaction_type)
        if start is not None:
            filters.append(InventoryTransaction.created_at >= as_utc(start))
        if end is not None:
            filters.append(InventoryTransaction.created_at <= as_utc(end))

        clause = and_(*filters)
        count = select(func.count(InventoryTransaction.id)).where(clause)
        base = (
            select(InventoryTransaction)
            .where(clause)
            .order_by(InventoryTransaction.created_at.desc(), InventoryTransaction.id.desc())
        )
        total = (await self.session.execute(count)).scalar_one()
        result = await self.session.execute(base.offset(offset).limit(limit))
        return list(result.scalars().unique()), total

    # Aggregates ---------------------------------------------------------------------

    async def count_items(self, owner_id: int, *, status: str | None = None) -> int:
        stmt = select(func.count(InventoryItem.id)).where(InventoryItem.owner_id == owner_id)
        if status is not None:
            stmt = stmt.where(InventoryItem.status == status)
        return (await self.session.execute(stmt)).scalar_one()

    async def count_by_stock_status(self, owner_id: int, stock_status: str) -> int:
        stmt = select(func.count(InventoryItem.id)).where(
            InventoryItem.owner_id == owner_id,
            _stock_status_clause(stock_status),
        )
        return (await self.session.execute(stmt)).scalar_one()

    async def inventory_value(self, owner_id: int) -> dict[str, Any]:
        stmt = select(
            func.coalesce(func.sum(InventoryItem.quantity_current * InventoryItem.cost), 0),
            func.coalesce(func.sum(InventoryItem.quantity_current * InventoryItem.selling_price), 0),
            func.coalesce(func.sum(InventoryItem.quantity_current), 0),
        ).where(InventoryItem.owner_id == owner_id, InventoryItem.status == "active")
        total_value, total_retail, total_quantity = (await self.session.execute(stmt)).one()
        return {
            "totalValue": Decimal(str(total_value)),
            "totalRetailValue": Decimal(str(total_retail)),
            "totalQuantity": int(total_quantity),
        }

    async def transactions_by_type(self, owner_id: int, start: datetime, end: datetime) -> list[dict[str, Any]]:
        stmt = (
            select(
                InventoryTransaction.type,
                func.count(InventoryTransaction.id),
                func.coalesce(func.sum(InventoryTransaction.quantity), 0),
                func.coalesce(func.sum(InventoryTransaction.total_cost), 0),
            )
            .where(*_window_filters(owner_id, start, end))
            .group_by(InventoryTransaction.type)
            .order_by(InventoryTransaction.type)
        )
        rows = (await self.session.execute(stmt)).all()
        return [
            {
                "type": row[0],
                "count": int(row[1]),
                "totalQuantity": int(row[2]),
                "totalValue": Decimal(str(row[3])),
            }
            for row in rows
        ]

    async def top_moving_items(
        self,
        owner_id: int,
        start: datetime,
        end: datetime,
        *,
        limit: int,
    ) -> list[dict[str, Any]]:
        stock_in = func.sum(
            case((InventoryTransaction.type == "stock_in", InventoryTransaction.quantity), else_=0)
        )
        stock_out = func.sum(
            case((InventoryTransaction.type == "stock_out", InventoryTransaction.quantity), else_=0)
        )
        total_movement = func.sum(InventoryTransaction.quantity).label("total_movement")
        stmt = (
            select(
                InventoryTransaction.item_id,
                InventoryItem.name,
                InventoryItem.sku,
                total_movement,
                stock_in,
                stock_out,
                func.count(InventoryTransaction.id),
            )
            .join(InventoryItem, InventoryItem.id == InventoryTransaction.item_id)
            .where(
                *_window_filters(owner_id, start, end),
                InventoryTransaction.type.in_(("stock_in", "stock_out")),
            )
            .group_by(InventoryTransaction.item_id, InventoryItem.name, InventoryItem.sku)
            .order_by(total_movement.desc(), InventoryTransaction.item_id)
            .limit(limit)
        )
        rows = (await self.session.execute(stmt)).all()
        return [
            {
                "itemId": row[0],
                "name": row[1],
                "sku": row[2],
                "totalMovement": int(row[3] or 0),
                "stockIn": int(row[4] or 0),
                "stockOut": int(row[5] or 0),
                "transactionCount": int(row[6]),
            }
            for row in rows
        ]

    async def category_breakdown(self, owner_id: int) -> list[dict[str, Any]]:
        total_value = func.coalesce(func.sum(InventoryItem.quantity_current * InventoryItem.cost), 0).label(
            "total_value"
        )
        stmt = (
            select(
                InventoryItem.category,
                func.count(InventoryItem.id),
                func.coalesce(func.sum(InventoryItem.quantity_current), 0),
                total_value,
            )
            .where(InventoryItem.owner_id == owner_id, InventoryItem.status == "active")
            .group_by(InventoryItem.category)
            .order_by(total_value.desc(), InventoryItem.category)
        )
        rows = (await self.session.execute(stmt)).all()
        return [
            {
                "category": row[0],
                "count": int(row[1]),
                "totalQuantity": int(row[2]),
                "totalValue": Decimal(str(row[3])),
            }
            for row in rows
        ]

    # Owner contacts -----------------------------------------------------------------

    async def get_contact(self, owner_id: int) -> OwnerContact | None:
        return await self.session.get(OwnerContact, owner_id)

    async def upsert_contact(
        self,
        owner_id: int,
        *,
        email: str,
        name: str | None,
        notifications_enabled: bool,
    ) -> OwnerContact:
        contact = await self.session.get(OwnerContact, owner_id)
        if contact is None:
            contact = OwnerContact(owner_id=owner_id)
            self.session.add(contact)
        contact.email = email
        contact.name = name
        contact.notifications_enabled = notifications_enabled
        await self.session.flush()
        await self.session.refresh(contact, attribute_names=["updated_at"])
        return contact
