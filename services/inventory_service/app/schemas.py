"""Pydantic schemas for inventory service."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, PositiveInt, field_validator

Category = Literal[
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
]
ItemStatus = Literal["active", "inactive", "discontinued", "out_of_stock"]
TransactionType = Literal[
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
]
ReferenceType = Literal["order", "purchase", "transfer", "adjustment", "return", "correction", "other"]
StockStatus = Literal["low_stock", "out_of_stock", "overstock"]
SortField = Literal["name", "sku", "category", "createdAt", "updatedAt", "quantity"]

# Stock figures are stored in 32-bit integer columns.
MAX_STOCK_QUANTITY = 2**31 - 1
StockCount = Annotated[int, Field(ge=0, le=MAX_STOCK_QUANTITY)]
StockMovement = Annotated[int, Field(gt=0, le=MAX_STOCK_QUANTITY)]


def _strip_optional(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# Nested item structures ----------------------------------------------------------------


class LocationRef(_CamelModel):
    warehouse: str = Field(default="Main", min_length=1, max_length=64)
    zone: str | None = Field(default=None, max_length=64)
    aisle: str | None = Field(default=None, max_length=64)
    shelf: str | None = Field(default=None, max_length=64)
    bin: str | None = Field(default=None, max_length=64)

    @field_validator("zone", "aisle", "shelf", "bin")
    @classmethod
    def _strip(cls, value: str | None) -> str | None:
        return _strip_optional(value)


class LocationEntry(LocationRef):
    quantity: StockCount = 0


class SupplierContact(_CamelModel):
    email: str | None = None
    phone: str | None = None
    address: str | None = None


class SupplierEntry(_CamelModel):
    name: str = Field(min_length=1, max_length=200)
    contact_info: SupplierContact | None = Field(default=None, alias="contactInfo")
    lead_time_days: NonNegativeInt = Field(default=7, alias="leadTimeDays")
    min_order_qty: PositiveInt = Field(default=1, alias="minOrderQty")
    cost: Decimal | None = Field(default=None, ge=Decimal("0"), max_digits=12, decimal_places=2)
    is_primary: bool = Field(default=False, alias="isPrimary")


class QuantityInput(_CamelModel):
    current: StockCount = 0
    reserved: StockCount = 0


class StockLevels(_CamelModel):
    minimum: StockCount = 0
    maximum: StockCount = 1000
    reorder_point: StockCount = Field(default=10, alias="reorderPoint")
    reorder_quantity: StockCount = Field(default=50, alias="reorderQuantity")


class Pricing(_CamelModel):
    cost: Decimal = Field(default=Decimal("0"), ge=Decimal("0"), max_digits=12, decimal_places=2)
    selling_price: Decimal = Field(
        default=Decimal("0"), ge=Decimal("0"), max_digits=12, decimal_places=2, alias="sellingPrice"
    )
    wholesale_price: Decimal = Field(
        default=Decimal("0"), ge=Decimal("0"), max_digits=12, decimal_places=2, alias="wholesalePrice"
    )
    currency: str = Field(default="USD", min_length=3, max_length=3)


class AlertSettings(_CamelModel):
    low_stock: bool = Field(default=True, alias="lowStock")
    out_of_stock: bool = Field(default=True, alias="outOfStock")
    expiring_soon: bool = Field(default=True, alias="expiringSoon")
    overstock: bool = False


# Item requests --------------------------------------------------------------------------


class ItemCreate(_CamelModel):
    name: str = Field(min_length=1, max_length=200)
    sku: str = Field(min_length=1, max_length=64)
    barcode: str | None = Field(default=None, max_length=64)
    description: str | None = Field(default=None, max_length=1000)
    category: Category = "other"
    subcategory: str | None = Field(default=None, max_length=64)
    tags: list[str] = Field(default_factory=list)
    quantity: QuantityInput = Field(default_factory=QuantityInput)
    stock_levels: StockLevels = Field(default_factory=StockLevels, alias="stockLevels")
    pricing: Pricing = Field(default_factory=Pricing)
    suppliers: list[SupplierEntry] = Field(default_factory=list)
    locations: list[LocationEntry] = Field(default_factory=list)
    status: Literal["active", "inactive", "discontinued"] = "active"
    is_perishable: bool = Field(default=False, alias="isPerishable")
    expiration_date: date | None = Field(default=None, alias="expirationDate")
    alerts: AlertSettings = Field(default_factory=AlertSettings)
    notes: str | None = None

    @field_validator("sku")
    @classmethod
    def _normalise_sku(cls, value: str) -> str:
        cleaned = value.strip().upper()
        if not cleaned:
            msg = "sku must be non-empty"
            raise ValueError(msg)
        return cleaned

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            msg = "name must be non-empty"
            raise ValueError(msg)
        return cleaned

    @field_validator("barcode", "subcategory")
    @classmethod
    def _strip_text(cls, value: str | None) -> str | None:
        return _strip_optional(value)

    @field_validator("description")
    @classmethod
    def _strip_description(cls, value: str | None) -> str | None:
        return value.strip() if value is not None else None


class QuantityUpdate(_CamelModel):
    current: StockCount | None = None
    reserved: StockCount | None = None


class StockLevelsUpdate(_CamelModel):
    minimum: StockCount | None = None
    maximum: StockCount | None = None
    reorder_point: StockCount | None = Field(default=None, alias="reorderPoint")
    reorder_quantity: StockCount | None = Field(default=None, alias="reorderQuantity")


class PricingUpdate(_CamelModel):
    cost: Decimal | None = Field(default=None, ge=Decimal("0"), max_digits=12, decimal_places=2)
    selling_price: Decimal | None = Field(
        default=None, ge=Decimal("0"), max_digits=12, decimal_places=2, alias="sellingPrice"
    )
    wholesale_price: Decimal | None = Field(
        default=None, ge=Decimal("0"), max_digits=12, decimal_places=2, alias="wholesalePrice"
    )
    currency: str | None = Field(default=None, min_length=3, max_length=3)


class AlertSettingsUpdate(_CamelModel):
    low_stock: bool | None = Field(default=None, alias="lowStock")
    out_of_stock: bool | None = Field(default=None, alias="outOfStock")
    expiring_soon: bool | None = Field(default=None, alias="expiringSoon")
    overstock: bool | None = None


class ItemUpdate(_CamelModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    sku: str | None = Field(default=None, min_length=1, max_length=64)
    barcode: str | None = Field(default=None, max_length=64)
    description: str | None = Field(default=None, max_length=1000)
    category: Category | None = None
    subcategory: str | None = Field(default=None, max_length=64)
    tags: list[str] | None = None
    quantity: QuantityUpdate | None = None
    stock_levels: StockLevelsUpdate | None = Field(default=None, alias="stockLevels")
    pricing: PricingUpdate | None = None
    suppliers: list[SupplierEntry] | None = None
    locations: list[LocationEntry] | None = None
    status: ItemStatus | None = None
    is_perishable: bool | None = Field(default=None, alias="isPerishable")
    expiration_date: date | None = Field(default=None, alias="expirationDate")
    alerts: AlertSettingsUpdate | None = None
    notes: str | None = None

    @field_validator("sku")
    @classmethod
    def _normalise_sku(cls, value: str | None) -> str | None:
        if value is None:
            return None
        cleaned = value.strip().upper()
        if not cleaned:
            msg = "sku must be non-empty"
            raise ValueError(msg)
        return cleaned


# Ledger requests ------------------------------------------------------------------------


class AdjustRequest(_CamelModel):
    adjustment: int = Field(ge=-MAX_STOCK_QUANTITY, le=MAX_STOCK_QUANTITY)
    reason: str = Field(max_length=500)
    performed_by: int | None = Field(default=None, alias="performedBy")
    performed_by_name: str | None = Field(default=None, alias="performedByName", max_length=200)
    reference_type: ReferenceType | None = Field(default=None, alias="referenceType")
    reference_id: str | None = Field(default=None, alias="referenceId", max_length=64)
    notes: str | None = None


class TransferRequest(_CamelModel):
    from_location: LocationRef = Field(alias="fromLocation")
    to_location: LocationRef = Field(alias="toLocation")
    quantity: StockMovement
    reason: str = Field(max_length=500)
    performed_by: int | None = Field(default=None, alias="performedBy")


class QuantityRequest(_CamelModel):
    quantity: StockMovement


class ReverseRequest(_CamelModel):
    reason: str = Field(max_length=480)
    performed_by: int | None = Field(default=None, alias="performedBy")


class BulkImportRequest(_CamelModel):
    rows: list[dict[str, Any]] = Field(min_length=1)


class OwnerContactUpdate(_CamelModel):
    email: str = Field(min_length=3, max_length=255)
    name: str | None = Field(default=None, max_length=200)
    notifications_enabled: bool = Field(default=True, alias="notificationsEnabled")


# Responses ------------------------------------------------------------------------------


class QuantityView(_CamelModel):
    current: int
    reserved: int
    available: int


class ItemResponse(_CamelModel):
    id: PositiveInt
    owner_id: int = Field(alias="ownerId")
    sku: str
    barcode: str | None
    name: str
    description: str | None
    category: str
    subcategory: str | None
    tags: list[str]
    quantity: QuantityView
    stock_levels: StockLevels = Field(alias="stockLevels")
    pricing: Pricing
    suppliers: list[SupplierEntry]
    primary_supplier: SupplierEntry | None = Field(alias="primarySupplier")
    locations: list[LocationEntry]
    location_total: int = Field(alias="locationTotal")
    status: str
    stock_status: str = Field(alias="stockStatus")
    profit_margin: float = Field(alias="profitMargin")
    reorder_suggestion: int = Field(alias="reorderSuggestion")
    is_perishable: bool = Field(alias="isPerishable")
    expiration_date: date | None = Field(alias="expirationDate")
    alerts: AlertSettings
    notes: str | None
    version: int
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")


class ItemListResponse(_CamelModel):
    items: list[ItemResponse]
    total: int
    page: int
    pages: int
    limit: int


class TransactionResponse(_CamelModel):
    id: PositiveInt
    owner_id: int = Field(alias="ownerId")
    item_id: int = Field(alias="itemId")
    item_name: str | None = Field(default=None, alias="itemName")
    item_sku: str | None = Field(default=None, alias="itemSku")
    type: str
    quantity: int
    before_quantity: int = Field(alias="beforeQuantity")
    after_quantity: int = Field(alias="afterQuantity")
    reason: str
    reference_type: str | None = Field(alias="referenceType")
    reference_id: str | None = Field(alias="referenceId")
    reversed_transaction_id: int | None = Field(alias="reversedTransactionId")
    location_from: dict[str, Any] | None = Field(alias="locationFrom")
    location_to: dict[str, Any] | None = Field(alias="locationTo")
    unit_cost: Decimal = Field(alias="unitCost")
    total_cost: Decimal = Field(alias="totalCost")
    unit_price: Decimal = Field(alias="unitPrice")
    total_price: Decimal = Field(alias="totalPrice")
    performed_by: int | None = Field(alias="performedBy")
    performed_by_name: str | None = Field(alias="performedByName")
    approval_status: str = Field(alias="approvalStatus")
    notes: str | None
    created_at: datetime = Field(alias="createdAt")


class TransactionListResponse(_CamelModel):
    transactions: list[TransactionResponse]
    total: int
    page: int
    pages: int
    limit: int


class LedgerResultResponse(_CamelModel):
    item: ItemResponse
    transaction: TransactionResponse


class DeleteResultResponse(_CamelModel):
    deleted: bool
    status: str | None
    message: str


class AlertResponse(_CamelModel):
    type: str
    message: str


class ItemAlertsResponse(_CamelModel):
    item_id: int = Field(alias="itemId")
    alerts: list[AlertResponse]


class AlertItemsResponse(_CamelModel):
    items: list[ItemResponse]
    count: int


class InventoryValue(_CamelModel):
    total_value: Decimal = Field(alias="totalValue")
    total_retail_value: Decimal = Field(alias="totalRetailValue")
    total_quantity: int = Field(alias="totalQuantity")


class TransactionTypeSummary(_CamelModel):
    type: str
    count: int
    total_quantity: int = Field(alias="totalQuantity")
    total_value: Decimal = Field(alias="totalValue")


class TopMovingItem(_CamelModel):
    item_id: int = Field(alias="itemId")
    name: str
    sku: str
    total_movement: int = Field(alias="totalMovement")
    stock_in: int = Field(alias="stockIn")
    stock_out: int = Field(alias="stockOut")
    transaction_count: int = Field(alias="transactionCount")


class CategorySummary(_CamelModel):
    category: str
    count: int
    total_quantity: int = Field(alias="totalQuantity")
    total_value: Decimal = Field(alias="totalValue")


class AnalyticsSummary(_CamelModel):
    total_items: int = Field(alias="totalItems")
    active_items: int = Field(alias="activeItems")
    low_stock_items: int = Field(alias="lowStockItems")
    out_of_stock_items: int = Field(alias="outOfStockItems")
    inventory_value: InventoryValue = Field(alias="inventoryValue")
    stock_turnover_rate: float = Field(alias="stockTurnoverRate")
    window_turnover_rate: float = Field(alias="windowTurnoverRate")
    turnover_basis: str = Field(alias="turnoverBasis")


class TransactionsSummary(_CamelModel):
    total: int
    by_type: list[TransactionTypeSummary] = Field(alias="byType")


class DateRange(_CamelModel):
    start: datetime
    end: datetime


class AnalyticsResponse(_CamelModel):
    summary: AnalyticsSummary
    transactions: TransactionsSummary
    top_moving_items: list[TopMovingItem] = Field(alias="topMovingItems")
    category_breakdown: list[CategorySummary] = Field(alias="categoryBreakdown")
    date_range: DateRange = Field(alias="dateRange")


class ImportSuccess(_CamelModel):
    row: int
    item: str
    sku: str


class ImportFailure(_CamelModel):
    row: int
    error: str


class BulkImportResponse(_CamelModel):
    success: list[ImportSuccess]
    errors: list[ImportFailure]
    total: int


class OwnerContactResponse(_CamelModel):
    owner_id: int = Field(alias="ownerId")
    email: str
    name: str | None
    notifications_enabled: bool = Field(alias="notificationsEnabled")
