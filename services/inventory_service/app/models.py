"""SQLAlchemy models for inventory service."""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    event,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

ITEM_CATEGORIES = (
    "electronics",
    "clothing",
    "food",
    "beverages",
    "supplies",
    "equipment",
    "furniture",
    "accessories",
    "raw_materials",
    "finished_goods",
    "services",
    "other",
)
ITEM_STATUSES = ("active", "inactive", "discontinued", "out_of_stock")
TRANSACTION_TYPES = (
    "stock_in",
    "stock_out",
    "adjustment",
    "transfer",
    "return",
    "damage",
    "theft",
    "expired",
    "promotion",
    "sample",
    "correction",
)
REFERENCE_TYPES = ("order", "purchase", "transfer", "adjustment", "return", "correction", "other")
APPROVAL_STATUSES = ("pending", "approved", "rejected")

_MONEY = Numeric(12, 2)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for inventory ORM models."""


class InventoryItem(Base):
    __tablename__ = "inventory_items"
    __table_args__ = (UniqueConstraint("owner_id", "sku", name="uq_inventory_items_owner_sku"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    sku: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    barcode: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    category: Mapped[str] = mapped_column(String(32), nullable=False, default="other", index=True)
    subcategory: Mapped[str | None] = mapped_column(String(64), nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    quantity_current: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    quantity_reserved: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    quantity_available: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    stock_minimum: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    stock_maximum: Mapped[int] = mapped_column(Integer, nullable=False, default=1000)
    reorder_point: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    reorder_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=50)

    cost: Mapped[Decimal] = mapped_column(_MONEY, nullable=False, default=Decimal("0"))
    selling_price: Mapped[Decimal] = mapped_column(_MONEY, nullable=False, default=Decimal("0"))
    wholesale_price: Mapped[Decimal] = mapped_column(_MONEY, nullable=False, default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active", index=True)
    is_perishable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    expiration_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    alert_low_stock: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    alert_out_of_stock: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    alert_expiring_soon: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    alert_overstock: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    locations: Mapped[list[ItemLocation]] = relationship(
        back_populates="item",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ItemLocation.id",
    )
    suppliers: Mapped[list[ItemSupplier]] = relationship(
        back_populates="item",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ItemSupplier.position",
    )

    __mapper_args__ = {"version_id_col": version}

    def refresh_derived_state(self) -> None:
        """Recompute available quantity and stock-driven status.

        Retired items (inactive, discontinued) keep their status at zero stock.
        """

        current = self.quantity_current or 0
        reserved = self.quantity_reserved or 0
        self.quantity_available = max(0, current - reserved)
        if current == 0:
            if self.status in (None, "active", "out_of_stock"):
                self.status = "out_of_stock"
        elif self.status == "out_of_stock":
            self.status = "active"

    @property
    def location_total(self) -> int:
        return sum(location.quantity for location in self.locations)

    @property
    def primary_supplier(self) -> ItemSupplier | None:
        for supplier in self.suppliers:
            if supplier.is_primary:
                return supplier
        return self.suppliers[0] if self.suppliers else None

    @property
    def stock_status(self) -> str:
        available = self.quantity_available
        if available == 0:
            return "out_of_stock"
        if available <= self.reorder_point:
            return "low_stock"
        if available >= self.stock_maximum:
            return "overstock"
        return "in_stock"

    @property
    def profit_margin(self) -> float:
        cost = Decimal(self.cost or 0)
        price = Decimal(self.selling_price or 0)
        if not cost or not price:
            return 0.0
        return float(round((price - cost) / price * 100, 2))

    @property
    def reorder_suggestion(self) -> int:
        if self.quantity_current <= self.reorder_point:
            return max(0, self.stock_maximum - self.quantity_current)
        return 0


class ItemLocation(Base):
    __tablename__ = "inventory_item_locations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    item_id: Mapped[int] = mapped_column(
        ForeignKey("inventory_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    warehouse: Mapped[str] = mapped_column(String(64), nullable=False, default="Main")
    zone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    aisle: Mapped[str | None] = mapped_column(String(64), nullable=True)
    shelf: Mapped[str | None] = mapped_column(String(64), nullable=True)
    bin: Mapped[str | None] = mapped_column(String(64), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    item: Mapped[InventoryItem] = relationship(back_populates="locations")

    def matches(self, warehouse: str, zone: str | None) -> bool:
        return self.warehouse == warehouse and (self.zone or None) == (zone or None)


class ItemSupplier(Base):
    __tablename__ = "inventory_item_suppliers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    item_id: Mapped[int] = mapped_column(
        ForeignKey("inventory_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    contact_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    contact_phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    contact_address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    lead_time_days: Mapped[int] = mapped_column(Integer, nullable=False, default=7)
    min_order_qty: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    cost: Mapped[Decimal | None] = mapped_column(_MONEY, nullable=True)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    item: Mapped[InventoryItem] = relationship(back_populates="suppliers")


class InventoryTransaction(Base):
    __tablename__ = "inventory_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    item_id: Mapped[int] = mapped_column(
        ForeignKey("inventory_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    before_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    after_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(500), nullable=False)

    reference_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    reference_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    reversed_transaction_id: Mapped[int | None] = mapped_column(
        ForeignKey("inventory_transactions.id", ondelete="SET NULL"), nullable=True, index=True
    )

    location_from: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    location_to: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    unit_cost: Mapped[Decimal] = mapped_column(_MONEY, nullable=False, default=Decimal("0"))
    total_cost: Mapped[Decimal] = mapped_column(_MONEY, nullable=False, default=Decimal("0"))
    unit_price: Mapped[Decimal] = mapped_column(_MONEY, nullable=False, default=Decimal("0"))
    total_price: Mapped[Decimal] = mapped_column(_MONEY, nullable=False, default=Decimal("0"))

    supplier: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    customer: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    performed_by: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    performed_by_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    automatic: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    requires_approval: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    approval_status: Mapped[str] = mapped_column(String(16), nullable=False, default="approved")
    approved_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
        index=True,
    )

    item: Mapped[InventoryItem] = relationship(lazy="joined")

    def compute_totals(self) -> None:
        quantity = Decimal(self.quantity or 0)
        self.total_cost = Decimal(self.unit_cost or 0) * quantity
        self.total_price = Decimal(self.unit_price or 0) * quantity


class OwnerContact(Base):
    __tablename__ = "inventory_owner_contacts"

    owner_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    notifications_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


@event.listens_for(InventoryItem, "before_insert")
@event.listens_for(InventoryItem, "before_update")
def _item_before_flush(_mapper, _connection, target: InventoryItem) -> None:
    target.refresh_derived_state()


@event.listens_for(InventoryTransaction, "before_insert")
def _transaction_before_insert(_mapper, _connection, target: InventoryTransaction) -> None:
    target.compute_totals()
