"""
Ledger error taxonomy.

Every error carries a human-readable message plus a ``details`` dict that
routes merge into the JSON error body. Routes map:

- NotFound                 -> 404
- InsufficientStock        -> 409
- StockUnavailable         -> 409
- AllocationPartialFailure -> 409
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for stock and settlement errors."""
    status_code = 409

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": str(self), **self.details}


class NotFound(LedgerError):
    """Referenced product/branch/document/row is missing for this tenant."""
    status_code = 404

    def __init__(self, entity: str, entity_id=None, message: str | None = None):
        self.entity = entity
        self.entity_id = entity_id
        if message is None:
            message = f"{entity} {entity_id} not found" if entity_id is not None else f"{entity} not found"
        super().__init__(message, details={"entity": entity, "entity_id": entity_id})


class InsufficientStock(LedgerError):
    """A branch lacks the quantity for a decrement. Recoverable by the caller."""

    def __init__(self, product_id: int, branch_id: int, requested: int, available: int | None = None):
        self.product_id = product_id
        self.branch_id = branch_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id} in branch {branch_id}",
            details={
                "product_id": product_id,
                "branch_id": branch_id,
                "requested_quantity": requested,
                "available_quantity": available,
            },
        )


class StockUnavailable(LedgerError):
    """No branch can fulfil an order. Terminal for that order."""

    def __init__(self, product_id: int, requested: int, message: str | None = None):
        self.product_id = product_id
        self.requested = requested
        super().__init__(
            message or f"No branch has {requested} units of product {product_id}",
            details={"product_id": product_id, "requested_quantity": requested},
        )


class AllocationPartialFailure(LedgerError):
    """
    Payment allocation failed on ``document_id``.

    Applications listed in ``applied`` were committed before the failure and stand.
    """

    def __init__(self, document_id, applied: list[dict], cause: Exception):
        self.document_id = document_id
        self.applied = applied
        self.cause = cause
        super().__init__(
            f"Payment allocation failed on document {document_id}: {cause}",
            details={"document_id": document_id, "applied": applied},
        )
