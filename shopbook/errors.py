from __future__ import annotations

from typing import Any, Optional


class LedgerError(Exception):
    """Base error for catalog, order and borrower operations."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidInput(LedgerError):
    pass


class ProductNotFound(LedgerError):
    def __init__(self, product_id: int):
        super().__init__(f"Product with ID {product_id} not found.", {"product_id": product_id})
        self.product_id = product_id


class InsufficientStock(LedgerError):
    def __init__(self, name: str, available: int, requested: int):
        super().__init__(
            f'Insufficient stock for product "{name}". Available: {available}, Requested: {requested}.',
            {"name": name, "available": available, "requested": requested},
        )
        self.name = name
        self.available = available
        self.requested = requested


class OrderNotFound(LedgerError):
    def __init__(self, order_id: int):
        super().__init__(f"Order with ID {order_id} not found.", {"order_id": order_id})
        self.order_id = order_id


class BorrowerNotFound(LedgerError):
    def __init__(self, borrower_id: int):
        super().__init__(f"Borrower with ID {borrower_id} not found.", {"borrower_id": borrower_id})
        self.borrower_id = borrower_id


class StorageFailure(LedgerError):
    """The storage engine is unavailable or a statement failed."""


class NotInitialized(StorageFailure):
    def __init__(self, message: str = "Database not initialized. Open it first."):
        super().__init__(message)
