# Overview: Picks the fulfilling branch for an incoming e-commerce order.

"""
Order Assignment Resolver

RULE:
- Only the order's first line is considered.
- Branches are tried in priority_order ascending, ties broken by id.
- The first branch whose stock row for that product holds at least the
  requested quantity wins.
- No winner -> StockUnavailable.

The resolver only reads. Stock is decremented afterwards, by the caller,
through the stock ledger; another client may take the stock in between,
in which case that decrement fails and the caller compensates.

Other lines are not checked here: a multi-line order can be assigned to a
branch that lacks a later line, and ingestion then fails with compensation.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Branch, BranchStock
from ..errors import StockUnavailable
from ..validation import ValidationError, coerce_int, require_positive_int


def _first_line(lines) -> tuple[int, int]:
    if not lines:
        raise ValidationError("Order has no lines")
    first = lines[0]
    if not isinstance(first, dict) or "product_id" not in first or "quantity" not in first:
        raise ValidationError("Each line needs product_id and quantity")
    return (
        coerce_int("product_id", first["product_id"]),
        require_positive_int("quantity", first["quantity"]),
    )


def assign_branch(org_id: int, lines: list[dict]) -> Branch:
    """
    Return the highest-priority branch able to serve the first line.

    Deterministic: same data, same answer.
    """
    product_id, quantity = _first_line(lines)

    branch = (
        db.session.query(Branch)
        .join(BranchStock, BranchStock.branch_id == Branch.id)
        .filter(
            Branch.org_id == org_id,
            BranchStock.org_id == org_id,
            BranchStock.product_id == product_id,
            BranchStock.stock >= quantity,
        )
        .order_by(Branch.priority_order.asc(), Branch.id.asc())
        .first()
    )

    if branch is None:
        raise StockUnavailable(
            product_id,
            quantity,
            message=f"No branch has {quantity} units of product {product_id} in stock",
        )
    return branch
