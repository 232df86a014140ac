# Overview: Flask API routes for storefront integrations, order ingestion and sync logs.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_permission
from ..errors import LedgerError
from ..services import ecommerce_service
from ..services.ecommerce_service import EcommerceError
from ..validation import ValidationError


ecommerce_bp = Blueprint("ecommerce", __name__, url_prefix="/api/ecommerce")


# =============================================================================
# INTEGRATIONS
# =============================================================================

@ecommerce_bp.get("/integrations")
@require_auth
@require_permission("MANAGE_ECOMMERCE")
def list_integrations():
    integrations = ecommerce_service.list_integrations(g.org_id)
    return jsonify([i.to_dict() for i in integrations]), 200


@ecommerce_bp.post("/integrations")
@require_auth
@require_permission("MANAGE_ECOMMERCE")
def create_integration():
    """
    Request body:
    - platform: "Shopify" | "WooCommerce" | "Tienda Nube"
    - stock_source: "global" | "branch" (branch requires branch_id)
    - api_key, api_secret, store_url, access_token, sync_prices, is_active
    """
    data = request.get_json(silent=True) or {}
    try:
        integration = ecommerce_service.create_integration(g.org_id, data)
        return jsonify(integration.to_dict()), 201
    except (EcommerceError, ValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@ecommerce_bp.put("/integrations/<int:integration_id>")
@require_auth
@require_permission("MANAGE_ECOMMERCE")
def update_integration(integration_id: int):
    data = request.get_json(silent=True) or {}
    try:
        integration = ecommerce_service.update_integration(g.org_id, integration_id, data)
        return jsonify(integration.to_dict()), 200
    except (EcommerceError, ValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@ecommerce_bp.delete("/integrations/<int:integration_id>")
@require_auth
@require_permission("MANAGE_ECOMMERCE")
def delete_integration(integration_id: int):
    try:
        ecommerce_service.delete_integration(g.org_id, integration_id)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"message": "Integration deleted"}), 200


@ecommerce_bp.post("/products/<int:product_id>/sync")
@require_auth
@require_permission("MANAGE_ECOMMERCE")
def sync_product(product_id: int):
    """Publish one product's stock to every active integration now."""
    entries = ecommerce_service.sync_product_stock(g.org_id, product_id)
    return jsonify({"synced": len(entries), "logs": [e.to_dict() for e in entries]}), 200


# =============================================================================
# ORDERS
# =============================================================================

@ecommerce_bp.post("/orders")
@require_auth
@require_permission("MANAGE_ECOMMERCE")
def ingest_order():
    """
    Receive a storefront order and turn it into a reservation.

    Request body:
    - platform: str
    - lines: [{product_id, quantity}]
    - original_order_id: str (optional, generated when omitted)

    Returns the order in its final state. A STOCK_UNAVAILABLE or ERROR order
    is still a successfully recorded order, so the status code is 201 for
    every outcome; only unrecordable payloads get 400.
    """
    data = request.get_json(silent=True) or {}
    try:
        order = ecommerce_service.ingest_order(
            g.org_id,
            g.current_user.id,
            data.get("platform"),
            data.get("lines"),
            original_order_id=data.get("original_order_id"),
        )
    except (EcommerceError, ValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to record e-commerce order")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(order.to_dict()), 201


@ecommerce_bp.get("/orders")
@require_auth
@require_permission("MANAGE_ECOMMERCE")
def list_orders():
    orders = ecommerce_service.list_orders(
        g.org_id,
        status=request.args.get("status"),
        limit=min(request.args.get("limit", 100, type=int), 500),
    )
    return jsonify({"orders": [o.to_dict() for o in orders], "count": len(orders)}), 200


@ecommerce_bp.get("/orders/<int:order_id>")
@require_auth
@require_permission("MANAGE_ECOMMERCE")
def get_order(order_id: int):
    try:
        order = ecommerce_service.get_order(g.org_id, order_id)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify(order.to_dict()), 200


@ecommerce_bp.get("/sync-logs")
@require_auth
@require_permission("MANAGE_ECOMMERCE")
def list_sync_logs():
    logs = ecommerce_service.list_sync_logs(g.org_id, limit=min(request.args.get("limit", 100, type=int), 500))
    return jsonify({"logs": [log.to_dict() for log in logs], "count": len(logs)}), 200
