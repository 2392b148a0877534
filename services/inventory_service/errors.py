"""Inventory errors.

Every error carries a machine-readable ``code`` and the HTTP status the API
layer answers with, so routes can translate them uniformly.
"""

from typing import Any, Optional


class InventoryError(Exception):
    """Base class for all inventory errors."""

    code = "INVENTORY_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(InventoryError):
    """Caller supplied an invalid field, quantity or enum value."""

    code = "VALIDATION_ERROR"
    status_code = 400


class ProductNotFoundError(InventoryError):
    code = "PRODUCT_NOT_FOUND"
    status_code = 404

    def __init__(self, product_id: str):
        super().__init__(f"Product {product_id} not found")
        self.product_id = product_id


class TrackingDisabledError(InventoryError):
    code = "TRACKING_DISABLED"
    status_code = 400

    def __init__(self, product_id: str):
        super().__init__(f"Inventory tracking is not enabled for product {product_id}")
        self.product_id = product_id


class InsufficientStockError(InventoryError):
    """Raised by guarded stock writes; reserve() turns it into a False result."""

    code = "INSUFFICIENT_STOCK"
    status_code = 400

    def __init__(self, product_id: str, requested: int, available: int):
        super().__init__(f"Insufficient stock for product {product_id}: need {requested}, have {available}")
        self.product_id = product_id
        self.requested = requested
        self.available = available


class ConcurrentUpdateError(InventoryError):
    """The optimistic lock on a product lost every retry."""

    code = "CONCURRENT_UPDATE"
    status_code = 409


class InventoryTransactionError(InventoryError):
    """Persisting a movement or reservation failed."""

    code = "INVENTORY_TRANSACTION_FAILED"
    status_code = 500
