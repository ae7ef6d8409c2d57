# Overview: Typed business errors raised by the stock and sales services.

"""
Error taxonomy for the stock engine.

Every error carries a human-readable message and a details dict. Routes map
the classes to HTTP status codes:

- NotFoundError (ProductNotFound, ReceiptNotFound, ActorNotFound) -> 404
- InsufficientStock -> 400, details name available vs requested
- IntegrityViolation -> 409, data-consistency anomaly, never skipped
- ImmutableRecordError -> raised by ORM guards, surfaces as 500

Input problems use validation.ValidationError (400) instead.
"""


class InventoryError(Exception):
    """Base class for stock engine errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class NotFoundError(InventoryError):
    """Raised when a referenced row does not exist."""


class ProductNotFound(NotFoundError):
    def __init__(self, product_id: int):
        super().__init__(
            f"Product not found with ID: {product_id}",
            details={"product_id": product_id},
        )
        self.product_id = product_id


class ReceiptNotFound(NotFoundError):
    def __init__(self, receipt_id: int):
        super().__init__(
            f"Receipt not found with ID: {receipt_id}",
            details={"receipt_id": receipt_id},
        )
        self.receipt_id = receipt_id


class ActorNotFound(NotFoundError):
    def __init__(self, username: str | None):
        super().__init__(
            f"User not found: {username}",
            details={"username": username},
        )
        self.username = username


class InsufficientStock(InventoryError):
    def __init__(self, product_id: int, product_name: str | None, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for product {product_name}. "
            f"Available: {available}, Requested: {requested}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "available": available,
                "requested": requested,
            },
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class IntegrityViolation(InventoryError):
    """Stored data contradicts an invariant (e.g. a sale whose product is gone)."""


class ImmutableRecordError(InventoryError):
    """Attempt to modify an append-only or immutable record."""
