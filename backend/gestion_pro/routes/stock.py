# Overview: Flask API routes for stock queries and manual adjustments.

"""
Stock routes.

Reads go straight to the stock ledger. Manual adjustments use the same
guarded decrement/increment as sales, so they can never drive stock
below zero.
"""

from flask import Blueprint, request, g

from ..decorators import require_auth, require_permission
from ..errors import LedgerError
from ..services import stock_ledger_service, ecommerce_service
from ..services.tenant_service import require_branch_in_org, TenantAccessError
from ..validation import ValidationError, coerce_int


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("")
@require_auth
@require_permission("VIEW_STOCK")
def list_stock():
    """
    Query params:
    - product_id: int (optional)
    - branch_id: int (optional)
    """
    rows = stock_ledger_service.list_stock(
        g.org_id,
        product_id=request.args.get("product_id", type=int),
        branch_id=request.args.get("branch_id", type=int),
    )
    return {"items": [row.to_dict() for row in rows], "count": len(rows)}, 200


@stock_bp.get("/low")
@require_auth
@require_permission("VIEW_STOCK")
def low_stock():
    rows = stock_ledger_service.list_low_stock(g.org_id, branch_id=request.args.get("branch_id", type=int))
    return {"items": [row.to_dict() for row in rows], "count": len(rows)}, 200


@stock_bp.get("/consolidated/<int:product_id>")
@require_auth
@require_permission("VIEW_STOCK")
def consolidated(product_id: int):
    return {
        "product_id": product_id,
        "consolidated_stock": stock_ledger_service.consolidated_stock(g.org_id, product_id),
    }, 200


@stock_bp.post("/adjust")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def adjust_stock():
    """
    Manual stock movement on one (product, branch) row.

    Request body:
    - product_id: int
    - branch_id: int
    - delta: int (non-zero; negative removes units)
    """
    data = request.get_json(silent=True) or {}
    try:
        product_id = coerce_int("product_id", data.get("product_id"))
        branch_id = require_branch_in_org(coerce_int("branch_id", data.get("branch_id")), g.org_id).id
        delta = coerce_int("delta", data.get("delta"))
        if delta == 0:
            raise ValidationError("delta must be non-zero")

        if delta < 0:
            stock_ledger_service.decrement(g.org_id, product_id, branch_id, -delta)
        else:
            stock_ledger_service.increment(g.org_id, product_id, branch_id, delta)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except TenantAccessError:
        return {"error": "Branch not found"}, 404
    except LedgerError as e:
        return e.to_dict(), e.status_code

    ecommerce_service.sync_product_stock(g.org_id, product_id)
    row = stock_ledger_service.get_branch_stock(g.org_id, product_id, branch_id)
    return row.to_dict(), 200
