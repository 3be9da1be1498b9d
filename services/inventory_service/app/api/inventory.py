"""Inventory HTTP endpoints."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status

from services.common import ServiceSettings

from ..alerts import StockAlert
from ..analytics import InventoryAnalytics
from ..dependencies import get_inventory_service, get_owner_id, get_repository, get_settings
from ..errors import (
    ConcurrentModification,
    DuplicateSku,
    InsufficientStock,
    InventoryError,
    ItemNotFound,
    PersistenceFailure,
    TransactionNotFound,
    ValidationFailure,
)
from ..importer import parse_csv
from ..models import InventoryItem, InventoryTransaction, ItemLocation, ItemSupplier
from ..repository import InventoryRepository
from ..schemas import (
    AdjustRequest,
    AlertItemsResponse,
    AnalyticsResponse,
    BulkImportRequest,
    BulkImportResponse,
    DeleteResultResponse,
    ItemAlertsResponse,
    ItemCreate,
    ItemListResponse,
    ItemResponse,
    ItemUpdate,
    LedgerResultResponse,
    OwnerContactResponse,
    OwnerContactUpdate,
    QuantityRequest,
    ReverseRequest,
    SortField,
    StockStatus,
    TransactionListResponse,
    TransactionResponse,
    TransactionType,
    TransferRequest,
)
from ..services import InventoryService, LedgerResult

router = APIRouter(prefix="/inventory", tags=["inventory"])


def _to_http(exc: InventoryError) -> HTTPException:
    if isinstance(exc, (ItemNotFound, TransactionNotFound)):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, (DuplicateSku, InsufficientStock, ConcurrentModification)):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, ValidationFailure):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, PersistenceFailure):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=str(exc))


def _pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if total else 0


def _serialize_location(location: ItemLocation) -> dict[str, object]:
    return {
        "warehouse": location.warehouse,
        "zone": location.zone,
        "aisle": location.aisle,
        "shelf": location.shelf,
        "bin": location.bin,
        "quantity": location.quantity,
    }


def _serialize_supplier(supplier: ItemSupplier) -> dict[str, object]:
    return {
        "name": supplier.name,
        "contactInfo": {
            "email": supplier.contact_email,
            "phone": supplier.contact_phone,
            "address": supplier.contact_address,
        },
        "leadTimeDays": supplier.lead_time_days,
        "minOrderQty": supplier.min_order_qty,
        "cost": supplier.cost,
        "isPrimary": supplier.is_primary,
    }


def _serialize_item(item: InventoryItem) -> dict[str, object]:
    primary = item.primary_supplier
    return {
        "id": item.id,
        "ownerId": item.owner_id,
        "sku": item.sku,
        "barcode": item.barcode,
        "name": item.name,
        "description": item.description,
        "category": item.category,
        "subcategory": item.subcategory,
        "tags": list(item.tags or []),
        "quantity": {
            "current": item.quantity_current,
            "reserved": item.quantity_reserved,
            "available": item.quantity_available,
        },
        "stockLevels": {
            "minimum": item.stock_minimum,
            "maximum": item.stock_maximum,
            "reorderPoint": item.reorder_point,
            "reorderQuantity": item.reorder_quantity,
        },
        "pricing": {
            "cost": item.cost,
            "sellingPrice": item.selling_price,
            "wholesalePrice": item.wholesale_price,
            "currency": item.currency,
        },
        "suppliers": [_serialize_supplier(supplier) for supplier in item.suppliers],
        "primarySupplier": _serialize_supplier(primary) if primary is not None else None,
        "locations": [_serialize_location(location) for location in item.locations],
        "locationTotal": item.location_total,
        "status": item.status,
        "stockStatus": item.stock_status,
        "profitMargin": item.profit_margin,
        "reorderSuggestion": item.reorder_suggestion,
        "isPerishable": item.is_perishable,
        "expirationDate": item.expiration_date,
        "alerts": {
            "lowStock": item.alert_low_stock,
            "outOfStock": item.alert_out_of_stock,
            "expiringSoon": item.alert_expiring_soon,
            "overstock": item.alert_overstock,
        },
        "notes": item.notes,
        "version": item.version,
        "createdAt": item.created_at,
        "updatedAt": item.updated_at,
    }


def _serialize_transaction(transaction: InventoryTransaction) -> dict[str, object]:
    item = transaction.item
    return {
        "id": transaction.id,
        "ownerId": transaction.owner_id,
        "itemId": transaction.item_id,
        "itemName": item.name if item is not None else None,
        "itemSku": item.sku if item is not None else None,
        "type": transaction.type,
        "quantity": transaction.quantity,
        "beforeQuantity": transaction.before_quantity,
        "afterQuantity": transaction.after_quantity,
        "reason": transaction.reason,
        "referenceType": transaction.reference_type,
        "referenceId": transaction.reference_id,
        "reversedTransactionId": transaction.reversed_transaction_id,
        "locationFrom": transaction.location_from,
        "locationTo": transaction.location_to,
        "unitCost": transaction.unit_cost,
        "totalCost": transaction.total_cost,
        "unitPrice": transaction.unit_price,
        "totalPrice": transaction.total_price,
        "performedBy": transaction.performed_by,
        "performedByName": transaction.performed_by_name,
        "approvalStatus": transaction.approval_status,
        "notes": transaction.notes,
        "createdAt": transaction.created_at,
    }


def _ledger_response(result: LedgerResult) -> LedgerResultResponse:
    return LedgerResultResponse.model_validate(
        {
            "item": _serialize_item(result.item),
            "transaction": _serialize_transaction(result.transaction),
        }
    )


def _alert_payload(alerts: list[StockAlert]) -> list[dict[str, str]]:
    return [{"type": alert.type, "message": alert.message} for alert in alerts]


async def _transaction_page(
    repository: InventoryRepository,
    owner_id: int,
    *,
    item_id: int | None,
    transaction_type: str | None,
    start: datetime | None,
    end: datetime | None,
    page: int,
    limit: int,
) -> TransactionListResponse:
    transactions, total = await repository.list_transactions(
        owner_id,
        item_id=item_id,
        transaction_type=transaction_type,
        start=start,
        end=end,
        limit=limit,
        offset=(page - 1) * limit,
    )
    return TransactionListResponse(
        transactions=[TransactionResponse.model_validate(_serialize_transaction(entry)) for entry in transactions],
        total=total,
        page=page,
        pages=_pages(total, limit),
        limit=limit,
    )


# Collection routes ----------------------------------------------------------------------


@router.post("", response_model=ItemResponse, status_code=status.HTTP_201_CREATED)
async def create_inventory_item(
    payload: ItemCreate,
    owner_id: int = Depends(get_owner_id),
    service: InventoryService = Depends(get_inventory_service),
) -> ItemResponse:
    try:
        item = await service.create_item(owner_id, payload)
    except InventoryError as exc:
        raise _to_http(exc) from exc
    return ItemResponse.model_validate(_serialize_item(item))


@router.get("", response_model=ItemListResponse)
async def list_inventory_items(
    category: str | None = None,
    item_status: str = Query(default="active", alias="status"),
    stock_status: StockStatus | None = Query(default=None, alias="stockStatus"),
    search: str | None = Query(default=None, max_length=200),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    sort_by: SortField = Query(default="name", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query(default="asc", alias="sortOrder"),
    owner_id: int = Depends(get_owner_id),
    repository: InventoryRepository = Depends(get_repository),
) -> ItemListResponse:
    items, total = await repository.list_items(
        owner_id,
        category=category,
        status=item_status,
        stock_status=stock_status,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        limit=limit,
        offset=(page - 1) * limit,
    )
    responses = [ItemResponse.model_validate(_serialize_item(item)) for item in items]
    return ItemListResponse(items=responses, total=total, page=page, pages=_pages(total, limit), limit=limit)


@router.get("/categories", response_model=list[str])
async def list_inventory_categories(
    owner_id: int = Depends(get_owner_id),
    repository: InventoryRepository = Depends(get_repository),
) -> list[str]:
    return await repository.list_categories(owner_id)


@router.get("/barcode/{barcode}", response_model=ItemResponse)
async def get_item_by_barcode(
    barcode: str,
    owner_id: int = Depends(get_owner_id),
    repository: InventoryRepository = Depends(get_repository),
) -> ItemResponse:
    item = await repository.find_by_barcode(owner_id, barcode.strip())
    if item is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Item not found with this barcode")
    return ItemResponse.model_validate(_serialize_item(item))


# Ledger ---------------------------------------------------------------------------------


@router.get("/transactions", response_model=TransactionListResponse)
async def list_inventory_transactions(
    item_id: int | None = Query(default=None, alias="itemId", ge=1),
    transaction_type: TransactionType | None = Query(default=None, alias="type"),
    start_date: datetime | None = Query(default=None, alias="startDate"),
    end_date: datetime | None = Query(default=None, alias="endDate"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=100),
    owner_id: int = Depends(get_owner_id),
    repository: InventoryRepository = Depends(get_repository),
) -> TransactionListResponse:
    return await _transaction_page(
        repository,
        owner_id,
        item_id=item_id,
        transaction_type=transaction_type,
        start=start_date,
        end=end_date,
        page=page,
        limit=limit,
    )


@router.post(
    "/transactions/{transaction_id}/reverse",
    response_model=LedgerResultResponse,
    status_code=status.HTTP_201_CREATED,
)
async def reverse_inventory_transaction(
    transaction_id: int,
    payload: ReverseRequest,
    owner_id: int = Depends(get_owner_id),
    service: InventoryService = Depends(get_inventory_service),
) -> LedgerResultResponse:
    try:
        result = await service.reverse(
            owner_id,
            transaction_id,
            reason=payload.reason,
            performed_by=payload.performed_by,
        )
    except InventoryError as exc:
        raise _to_http(exc) from exc
    return _ledger_response(result)


# Analytics and alerts ---------------------------------------------------------------------


@router.get("/analytics/summary", response_model=AnalyticsResponse)
async def inventory_analytics(
    start_date: datetime | None = Query(default=None, alias="startDate"),
    end_date: datetime | None = Query(default=None, alias="endDate"),
    owner_id: int = Depends(get_owner_id),
    repository: InventoryRepository = Depends(get_repository),
    settings: ServiceSettings = Depends(get_settings),
) -> AnalyticsResponse:
    analytics = InventoryAnalytics(repository, settings)
    try:
        summary = await analytics.summarize(owner_id, start_date, end_date)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return AnalyticsResponse.model_validate(summary)


@router.get("/alerts/low-stock", response_model=AlertItemsResponse)
async def low_stock_items(
    owner_id: int = Depends(get_owner_id),
    repository: InventoryRepository = Depends(get_repository),
) -> AlertItemsResponse:
    items = await repository.list_low_stock(owner_id)
    responses = [ItemResponse.model_validate(_serialize_item(item)) for item in items]
    return AlertItemsResponse(items=responses, count=len(responses))


@router.get("/alerts/out-of-stock", response_model=AlertItemsResponse)
async def out_of_stock_items(
    owner_id: int = Depends(get_owner_id),
    repository: InventoryRepository = Depends(get_repository),
) -> AlertItemsResponse:
    items = await repository.list_out_of_stock(owner_id)
    responses = [ItemResponse.model_validate(_serialize_item(item)) for item in items]
    return AlertItemsResponse(items=responses, count=len(responses))


# Bulk import ------------------------------------------------------------------------------


@router.post("/import", response_model=BulkImportResponse)
async def import_inventory_rows(
    payload: BulkImportRequest,
    owner_id: int = Depends(get_owner_id),
    service: InventoryService = Depends(get_inventory_service),
) -> BulkImportResponse:
    report = await service.bulk_import(owner_id, payload.rows)
    return BulkImportResponse.model_validate(
        {"success": report.success, "errors": report.errors, "total": report.total}
    )


@router.post("/import/csv", response_model=BulkImportResponse)
async def import_inventory_csv(
    csv_file: UploadFile = File(..., alias="csvFile"),
    owner_id: int = Depends(get_owner_id),
    service: InventoryService = Depends(get_inventory_service),
) -> BulkImportResponse:
    raw = await csv_file.read()
    try:
        rows = parse_csv(raw.decode("utf-8"))
    except UnicodeDecodeError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="CSV file must be UTF-8 encoded") from exc
    if not rows:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="CSV file is empty or invalid")
    report = await service.bulk_import(owner_id, rows)
    return BulkImportResponse.model_validate(
        {"success": report.success, "errors": report.errors, "total": report.total}
    )


# Owner contact ----------------------------------------------------------------------------


@router.get("/contact", response_model=OwnerContactResponse)
async def get_owner_contact(
    owner_id: int = Depends(get_owner_id),
    repository: InventoryRepository = Depends(get_repository),
) -> OwnerContactResponse:
    contact = await repository.get_contact(owner_id)
    if contact is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Owner contact not configured")
    return OwnerContactResponse(
        owner_id=contact.owner_id,
        email=contact.email,
        name=contact.name,
        notifications_enabled=contact.notifications_enabled,
    )


@router.put("/contact", response_model=OwnerContactResponse)
async def put_owner_contact(
    payload: OwnerContactUpdate,
    owner_id: int = Depends(get_owner_id),
    repository: InventoryRepository = Depends(get_repository),
) -> OwnerContactResponse:
    contact = await repository.upsert_contact(
        owner_id,
        email=payload.email.strip(),
        name=payload.name,
        notifications_enabled=payload.notifications_enabled,
    )
    return OwnerContactResponse(
        owner_id=contact.owner_id,
        email=contact.email,
        name=contact.name,
        notifications_enabled=contact.notifications_enabled,
    )


# Single item routes -----------------------------------------------------------------------


@router.get("/{item_id}", response_model=ItemResponse)
async def get_inventory_item(
    item_id: int,
    owner_id: int = Depends(get_owner_id),
    repository: InventoryRepository = Depends(get_repository),
) -> ItemResponse:
    item = await repository.get_item(owner_id, item_id)
    if item is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Item not found")
    return ItemResponse.model_validate(_serialize_item(item))


@router.patch("/{item_id}", response_model=ItemResponse)
async def update_inventory_item(
    item_id: int,
    payload: ItemUpdate,
    owner_id: int = Depends(get_owner_id),
    service: InventoryService = Depends(get_inventory_service),
) -> ItemResponse:
    try:
        item = await service.update_item(owner_id, item_id, payload, performed_by=owner_id)
    except InventoryError as exc:
        raise _to_http(exc) from exc
    return ItemResponse.model_validate(_serialize_item(item))


@router.delete("/{item_id}", response_model=DeleteResultResponse)
async def delete_inventory_item(
    item_id: int,
    owner_id: int = Depends(get_owner_id),
    service: InventoryService = Depends(get_inventory_service),
) -> DeleteResultResponse:
    try:
        result = await service.delete_item(owner_id, item_id)
    except InventoryError as exc:
        raise _to_http(exc) from exc
    return DeleteResultResponse(deleted=result.deleted, status=result.status, message=result.message)


@router.post("/{item_id}/adjust", response_model=LedgerResultResponse)
async def adjust_inventory_item(
    item_id: int,
    payload: AdjustRequest,
    owner_id: int = Depends(get_owner_id),
    service: InventoryService = Depends(get_inventory_service),
) -> LedgerResultResponse:
    try:
        result = await service.adjust(
            owner_id,
            item_id,
            adjustment=payload.adjustment,
            reason=payload.reason,
            performed_by=payload.performed_by if payload.performed_by is not None else owner_id,
            performed_by_name=payload.performed_by_name,
            reference_type=payload.reference_type,
            reference_id=payload.reference_id,
            notes=payload.notes,
        )
    except InventoryError as exc:
        raise _to_http(exc) from exc
    return _ledger_response(result)


@router.post("/{item_id}/transfer", response_model=LedgerResultResponse)
async def transfer_inventory_item(
    item_id: int,
    payload: TransferRequest,
    owner_id: int = Depends(get_owner_id),
    service: InventoryService = Depends(get_inventory_service),
) -> LedgerResultResponse:
    try:
        result = await service.transfer(
            owner_id,
            item_id,
            from_location=payload.from_location,
            to_location=payload.to_location,
            quantity=payload.quantity,
            reason=payload.reason,
            performed_by=payload.performed_by if payload.performed_by is not None else owner_id,
        )
    except InventoryError as exc:
        raise _to_http(exc) from exc
    return _ledger_response(result)


@router.post("/{item_id}/reserve", response_model=ItemResponse)
async def reserve_inventory(
    item_id: int,
    payload: QuantityRequest,
    owner_id: int = Depends(get_owner_id),
    service: InventoryService = Depends(get_inventory_service),
) -> ItemResponse:
    try:
        item = await service.reserve(owner_id, item_id, quantity=payload.quantity)
    except InventoryError as exc:
        raise _to_http(exc) from exc
    return ItemResponse.model_validate(_serialize_item(item))


@router.post("/{item_id}/release", response_model=ItemResponse)
async def release_inventory(
    item_id: int,
    payload: QuantityRequest,
    owner_id: int = Depends(get_owner_id),
    service: InventoryService = Depends(get_inventory_service),
) -> ItemResponse:
    try:
        item = await service.release(owner_id, item_id, quantity=payload.quantity)
    except InventoryError as exc:
        raise _to_http(exc) from exc
    return ItemResponse.model_validate(_serialize_item(item))


@router.get("/{item_id}/transactions", response_model=TransactionListResponse)
async def list_item_transactions(
    item_id: int,
    transaction_type: TransactionType | None = Query(default=None, alias="type"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=100),
    owner_id: int = Depends(get_owner_id),
    repository: InventoryRepository = Depends(get_repository),
) -> TransactionListResponse:
    item = await repository.get_item(owner_id, item_id)
    if item is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Item not found")
    return await _transaction_page(
        repository,
        owner_id,
        item_id=item_id,
        transaction_type=transaction_type,
        start=None,
        end=None,
        page=page,
        limit=limit,
    )


@router.get("/{item_id}/alerts", response_model=ItemAlertsResponse)
async def evaluate_item_alerts(
    item_id: int,
    owner_id: int = Depends(get_owner_id),
    service: InventoryService = Depends(get_inventory_service),
) -> ItemAlertsResponse:
    try:
        alerts = await service.evaluate_item_alerts(owner_id, item_id)
    except InventoryError as exc:
        raise _to_http(exc) from exc
    return ItemAlertsResponse.model_validate({"itemId": item_id, "alerts": _alert_payload(alerts)})
