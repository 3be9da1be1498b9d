"""Domain errors raised by the inventory service layer."""

from __future__ import annotations


class InventoryError(Exception):
    """Base class for inventory domain failures."""


class ItemNotFound(InventoryError):
    def __init__(self, item_id: int | str) -> None:
        super().__init__(f"Inventory item {item_id} not found")
        self.item_id = item_id


class TransactionNotFound(InventoryError):
    def __init__(self, transaction_id: int) -> None:
        super().__init__(f"Inventory transaction {transaction_id} not found")
        self.transaction_id = transaction_id


class InsufficientStock(InventoryError):
    """Raised when a transfer or reservation asks for more than is on hand."""

    def __init__(self, message: str, *, requested: int, available: int) -> None:
        super().__init__(message)
        self.requested = requested
        self.available = available


class ValidationFailure(InventoryError):
    """Raised for missing or inconsistent input the schemas cannot catch."""


class DuplicateSku(ValidationFailure):
    def __init__(self, sku: str) -> None:
        super().__init__(f"Item with SKU {sku} already exists")
        self.sku = sku


class ConcurrentModification(InventoryError):
    """Raised when another writer changed the item between read and write."""


class PersistenceFailure(InventoryError):
    """Raised when the store is unreachable, rejects a write, or times out."""
