# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/gestion_pro/routes/products.py
"""
Product management routes.

MULTI-TENANT: All product operations are scoped to the caller's organization.
The org_id is derived from g.org_id (set by @require_auth).

SECURITY:
- Read operations require VIEW_PRODUCTS permission
- Write operations require MANAGE_PRODUCTS permission
"""
from flask import Blueprint, request, g, current_app

from ..services import product_service
from ..errors import LedgerError
from ..validation import ValidationError, ConflictError
from ..decorators import require_auth, require_permission

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
@require_permission("VIEW_PRODUCTS")
def list_products():
    """
    List products with their consolidated stock.

    Query params:
    - search: str (optional) - matches name or SKU
    - include_inactive: bool (default false)
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    return product_service.list_products(
        g.org_id,
        search=request.args.get("search"),
        include_inactive=request.args.get("include_inactive", "false").lower() == "true",
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@products_bp.post("")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def create_product_route():
    """
    Create a product.

    Body: product fields plus optional "stocks": [{branch_id, stock, min_stock,
    cost_price_cents, sale_price_cents}].
    """
    payload = request.get_json(silent=True) or {}
    try:
        product = product_service.create_product(g.org_id, payload)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    except LedgerError as e:
        return e.to_dict(), e.status_code

    data = product.to_dict()
    data["stock"] = product_service.product_stock(g.org_id, product.id)
    return data, 201


@products_bp.get("/<int:product_id>")
@require_auth
@require_permission("VIEW_PRODUCTS")
def get_product_route(product_id: int):
    try:
        product = product_service.get_product(g.org_id, product_id)
    except LedgerError as e:
        return e.to_dict(), e.status_code

    data = product.to_dict()
    data["stock"] = product_service.product_stock(g.org_id, product.id)
    return data, 200


@products_bp.put("/<int:product_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        product = product_service.update_product(g.org_id, product_id, payload)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    except LedgerError as e:
        return e.to_dict(), e.status_code

    data = product.to_dict()
    data["stock"] = product_service.product_stock(g.org_id, product.id)
    return data, 200


@products_bp.delete("/<int:product_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def delete_product_route(product_id: int):
    """
    Delete a product and its stock rows.

    Products referenced by sales documents are deactivated instead.
    """
    try:
        return product_service.delete_product(g.org_id, product_id), 200
    except LedgerError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete product %s", product_id)
        return {"error": "Internal server error"}, 500


@products_bp.patch("/<int:product_id>/active")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def set_product_active_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    if "is_active" not in payload:
        return {"error": "is_active is required"}, 400
    try:
        product = product_service.set_product_active(g.org_id, product_id, payload["is_active"])
    except LedgerError as e:
        return e.to_dict(), e.status_code
    return product.to_dict(), 200


@products_bp.get("/<int:product_id>/stock")
@require_auth
@require_permission("VIEW_STOCK")
def product_stock_route(product_id: int):
    """Per-branch stock plus consolidated total."""
    try:
        return product_service.product_stock(g.org_id, product_id), 200
    except LedgerError as e:
        return e.to_dict(), e.status_code


@products_bp.post("/import")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def import_products_route():
    """
    Bulk upsert by SKU.

    Request body:
    - rows: [{sku, name, description?, category?, unit?, stock?, min_stock?,
      cost_price_cents?, sale_price_cents?}]
    - conflict_resolution: "skip" (default) | "overwrite"

    Rows arrive already parsed; spreadsheet reading happens client-side.
    """
    payload = request.get_json(silent=True) or {}
    try:
        summary = product_service.import_products(
            g.org_id,
            payload.get("rows"),
            conflict_resolution=payload.get("conflict_resolution", "skip"),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except LedgerError as e:
        return e.to_dict(), e.status_code

    current_app.logger.info(
        "Product import org=%s: %s created, %s updated, %s skipped, %s errors",
        g.org_id, summary["created"], summary["updated"], summary["skipped"], summary["error_count"],
    )
    return summary, 200
