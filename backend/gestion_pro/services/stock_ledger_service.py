# Overview: Per-branch stock ledger: atomic decrement/increment, consolidated stock, product-edit upserts.

"""
Stock Ledger

INVARIANTS:
- BranchStock.stock >= 0 after every committed mutation.
- consolidated_stock(product) == SUM(stock) over the product's branch rows.
- decrement/increment change only the stock column of one row.

ATOMICITY:
decrement is a single guarded statement:

    UPDATE branch_stock SET stock = stock - :q
    WHERE product_id = :p AND branch_id = :b AND stock >= :q

Two concurrent sales of the last unit cannot both succeed: the second
UPDATE matches zero rows. The stock >= 0 CHECK constraint backs this up.
Any client-side stock check done before calling decrement is advisory.

Each mutation commits on its own. Multi-line callers (sales documents,
e-commerce ingestion) compensate already-applied decrements with increment
when a later line fails.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import BranchStock, Branch, Product
from ..errors import NotFound, InsufficientStock
from ..validation import ValidationError, require_positive_int, enforce_rules_branch_stock
from .concurrency import guarded_update


def _row_query(org_id: int, product_id: int, branch_id: int):
    return db.session.query(BranchStock).filter(
        BranchStock.org_id == org_id,
        BranchStock.product_id == product_id,
        BranchStock.branch_id == branch_id,
    )


def get_branch_stock(org_id: int, product_id: int, branch_id: int) -> BranchStock:
    row = _row_query(org_id, product_id, branch_id).first()
    if row is None:
        raise NotFound(
            "BranchStock",
            f"{product_id}/{branch_id}",
            message=f"No stock row for product {product_id} in branch {branch_id}",
        )
    return row


def consolidated_stock(org_id: int, product_id: int) -> int:
    """Sum of stock across every branch row of the product. Read-only."""
    total = db.session.query(func.coalesce(func.sum(BranchStock.stock), 0)).filter(
        BranchStock.org_id == org_id,
        BranchStock.product_id == product_id,
    ).scalar()
    return int(total or 0)


def decrement(org_id: int, product_id: int, branch_id: int, quantity) -> None:
    """
    Atomically remove ``quantity`` units from one (product, branch) row.

    Raises:
        ValidationError: quantity is not a positive integer
        NotFound: no row for (product, branch) in this tenant
        InsufficientStock: row exists but holds fewer than ``quantity``; stock unchanged
    """
    quantity = require_positive_int("quantity", quantity)

    rowcount = guarded_update(
        _row_query(org_id, product_id, branch_id).filter(BranchStock.stock >= quantity),
        {BranchStock.stock: BranchStock.stock - quantity},
    )
    if rowcount:
        return

    # Guard rejected: tell a missing row apart from a short one
    row = _row_query(org_id, product_id, branch_id).first()
    if row is None:
        raise NotFound(
            "BranchStock",
            f"{product_id}/{branch_id}",
            message=f"No stock row for product {product_id} in branch {branch_id}",
        )
    raise InsufficientStock(product_id, branch_id, quantity, available=row.stock)


def increment(org_id: int, product_id: int, branch_id: int, quantity) -> None:
    """
    Add ``quantity`` units back to one (product, branch) row.

    Used to reverse a decrement (compensation, reservation cancellation).
    Raises NotFound if the row is missing.
    """
    quantity = require_positive_int("quantity", quantity)

    rowcount = guarded_update(
        _row_query(org_id, product_id, branch_id),
        {BranchStock.stock: BranchStock.stock + quantity},
    )
    if not rowcount:
        raise NotFound(
            "BranchStock",
            f"{product_id}/{branch_id}",
            message=f"No stock row for product {product_id} in branch {branch_id}",
        )


def decrement_many(org_id: int, branch_id: int, lines: list[tuple[int, int]]) -> None:
    """
    Decrement every (product_id, quantity) line in one branch, all or nothing.

    Lines are applied in order. If any line fails, every decrement already
    applied is reversed with increment and the original error is re-raised.
    When a reversal fails, its error is raised with the original as cause.
    """
    applied: list[tuple[int, int]] = []
    try:
        for product_id, quantity in lines:
            decrement(org_id, product_id, branch_id, quantity)
            applied.append((product_id, quantity))
    except Exception as exc:
        db.session.rollback()
        try:
            restore(org_id, branch_id, applied)
        except Exception as restore_exc:
            raise restore_exc from exc
        raise


def restore(org_id: int, branch_id: int, lines: list[tuple[int, int]]) -> None:
    """
    Increment each (product_id, quantity) back, newest first.

    If an increment fails, the lines still decremented are logged and the
    error propagates.
    """
    pending = list(lines)
    try:
        while pending:
            product_id, quantity = pending[-1]
            increment(org_id, product_id, branch_id, quantity)
            pending.pop()
    except Exception:
        db.session.rollback()
        current_app.logger.exception(
            "Stock restore failed in branch %s; lines still decremented: %s", branch_id, pending
        )
        raise


def upsert_for_product(org_id: int, product_id: int, rows: list[dict]) -> list[BranchStock]:
    """
    Overwrite stock, min_stock and prices of the given branches for a product;
    create rows that don't exist yet.

    This is the product-edit/import path. Sales never call it.
    Does not commit: the caller commits together with the product change.
    """
    product = db.session.get(Product, product_id)
    if product is None or product.org_id != org_id:
        raise NotFound("Product", product_id)

    cleaned_rows = [enforce_rules_branch_stock(r) for r in rows or []]
    branch_ids = {r["branch_id"] for r in cleaned_rows}
    if len(branch_ids) != len(cleaned_rows):
        raise ValidationError("Each branch may appear only once per product")

    if branch_ids:
        owned = {
            bid for (bid,) in db.session.query(Branch.id).filter(
                Branch.org_id == org_id, Branch.id.in_(list(branch_ids))
            ).all()
        }
        missing = sorted(branch_ids - owned)
        if missing:
            raise NotFound("Branch", missing[0])

    existing = {
        row.branch_id: row
        for row in db.session.query(BranchStock).filter(
            BranchStock.org_id == org_id, BranchStock.product_id == product_id
        ).all()
    }

    result = []
    for cleaned in cleaned_rows:
        row = existing.get(cleaned["branch_id"])
        if row is None:
            row = BranchStock(org_id=org_id, product_id=product_id, branch_id=cleaned["branch_id"])
            db.session.add(row)
        row.stock = cleaned["stock"]
        row.min_stock = cleaned["min_stock"]
        row.cost_price_cents = cleaned["cost_price_cents"]
        row.sale_price_cents = cleaned["sale_price_cents"]
        result.append(row)

    return result


def list_stock(org_id: int, *, product_id: int | None = None, branch_id: int | None = None) -> list[BranchStock]:
    query = db.session.query(BranchStock).filter(BranchStock.org_id == org_id)
    if product_id is not None:
        query = query.filter(BranchStock.product_id == product_id)
    if branch_id is not None:
        query = query.filter(BranchStock.branch_id == branch_id)
    return query.order_by(BranchStock.product_id.asc(), BranchStock.branch_id.asc()).all()


def list_low_stock(org_id: int, branch_id: int | None = None) -> list[BranchStock]:
    """Rows at or below their minimum stock, active products only."""
    query = (
        db.session.query(BranchStock)
        .join(Product, Product.id == BranchStock.product_id)
        .filter(
            BranchStock.org_id == org_id,
            Product.is_active.is_(True),
            BranchStock.stock <= BranchStock.min_stock,
        )
    )
    if branch_id is not None:
        query = query.filter(BranchStock.branch_id == branch_id)
    return query.order_by(BranchStock.branch_id.asc(), BranchStock.product_id.asc()).all()


def stock_summary(org_id: int, product_id: int) -> dict:
    """Per-branch breakdown plus consolidated total, for API responses."""
    rows = list_stock(org_id, product_id=product_id)
    return {
        "product_id": product_id,
        "consolidated_stock": sum(r.stock for r in rows),
        "branches": [r.to_dict() for r in rows],
    }
