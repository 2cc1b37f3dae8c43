# Overview: Domain error taxonomy shared by services and the API error handler.

"""
Every domain failure is a PosError with:
- kind: machine-readable category surfaced to API callers
- message: human-readable, names the offending entity id
- details: ids / quantities the caller needs to correct the request

Services raise these; they never return an empty value in place of a failure.
Storage errors (SQLAlchemyError) are NOT wrapped here: they propagate unchanged
and the API layer reports them as kind=StorageFailure.
"""

from __future__ import annotations


class PosError(Exception):
    """Base class for domain errors."""

    kind = "PosError"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message, "details": self.details}


# --- NotFound -----------------------------------------------------------------

class NotFoundError(PosError):
    kind = "NotFound"
    http_status = 404
    entity = "Entity"

    def __init__(self, entity_id, message: str | None = None, details: dict | None = None):
        self.entity_id = entity_id
        base = {} if entity_id is None else {f"{self.entity.lower()}_id": entity_id}
        base.update(details or {})
        super().__init__(message or f"{self.entity} with id {entity_id} not found", base)


class BranchNotFound(NotFoundError):
    entity = "Branch"


class UserNotFound(NotFoundError):
    entity = "User"


class CustomerNotFound(NotFoundError):
    entity = "Customer"

    def __init__(self, entity_id, details: dict | None = None):
        super().__init__(entity_id, f"Customer not found: id {entity_id}", details)


class ProductNotFound(NotFoundError):
    entity = "Product"


class VariantNotFound(NotFoundError):
    entity = "Variant"


class CategoryNotFound(NotFoundError):
    entity = "Category"


class AddonNotFound(NotFoundError):
    entity = "Addon"


class TransactionNotFound(NotFoundError):
    entity = "Transaction"


class ShiftNotFound(NotFoundError):
    entity = "Shift"


class StockRecordNotFound(NotFoundError):
    """Ledger operation on a (product, branch) pair with no stock row."""

    entity = "Stock"

    def __init__(self, product_id: int, branch_id: int):
        self.product_id = product_id
        self.branch_id = branch_id
        super().__init__(
            None,
            f"Stock record not found for product {product_id} at branch {branch_id}",
            {"product_id": product_id, "branch_id": branch_id},
        )


class NoStockRecord(StockRecordNotFound):
    """Sale path: the product was never stocked at the branch (rows are not auto-created by sales)."""

    def __init__(self, product_id: int, branch_id: int):
        super().__init__(product_id, branch_id)
        self.message = f"No stock record found for product {product_id} at branch {branch_id}"
        self.args = (self.message,)


# --- Stock rules --------------------------------------------------------------

class InsufficientStockError(PosError):
    kind = "InsufficientStock"
    http_status = 409

    def __init__(
        self,
        product_id: int,
        branch_id: int,
        available: int,
        requested: int,
        message: str | None = None,
    ):
        self.product_id = product_id
        self.branch_id = branch_id
        self.available = available
        self.requested = requested
        super().__init__(
            message
            or f"Insufficient stock for product {product_id}: available {available}, required {requested}",
            {
                "product_id": product_id,
                "branch_id": branch_id,
                "available": available,
                "requested": requested,
            },
        )


class InsufficientAvailableStockError(InsufficientStockError):
    """Reservation would push reserved_quantity above on-hand quantity."""

    kind = "InsufficientAvailableStock"

    def __init__(self, product_id: int, branch_id: int, available: int, requested: int):
        super().__init__(
            product_id,
            branch_id,
            available,
            requested,
            message=(
                f"Insufficient available stock for product {product_id} at branch {branch_id}: "
                f"available {available}, requested {requested}"
            ),
        )


class OverReleaseError(PosError):
    kind = "OverRelease"
    http_status = 409

    def __init__(self, product_id: int, branch_id: int, reserved: int, requested: int):
        super().__init__(
            f"Cannot release more than reserved for product {product_id} at branch {branch_id}: "
            f"reserved {reserved}, requested {requested}",
            {
                "product_id": product_id,
                "branch_id": branch_id,
                "reserved": reserved,
                "requested": requested,
            },
        )


# --- Input / state / conflict ---------------------------------------------------

class ValidationError(PosError, ValueError):
    """400-level input problem (kind InvalidInput). Raised before any write."""

    kind = "InvalidInput"
    http_status = 400


class InvalidStateTransition(PosError):
    kind = "InvalidState"
    http_status = 409


class ConflictError(PosError, ValueError):
    """Unique-constraint style conflict (duplicate sku, exhausted identifier retries)."""

    kind = "Conflict"
    http_status = 409
