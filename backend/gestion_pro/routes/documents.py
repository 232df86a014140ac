# Overview: Flask API routes for sales documents (invoices, quotes, reservations).

# backend/gestion_pro/routes/documents.py
"""
Sales document routes.

MULTI-TENANT: documents, branches, customers and products are resolved
inside g.org_id. A branch of another tenant is reported as not found.

ERRORS:
- 400 validation (bad type, payment method, quantities...)
- 404 product/branch/customer/document not found
- 409 insufficient stock, already-cancelled reservation
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_permission
from ..errors import LedgerError
from ..extensions import db
from ..models import Organization
from ..services import sales_service, exchange_rate_service
from ..services.sales_service import SalesError
from ..validation import ValidationError


documents_bp = Blueprint("documents", __name__, url_prefix="/api/documents")


@documents_bp.post("")
@require_auth
@require_permission("CREATE_SALE")
def create_document_route():
    """
    Issue an invoice, quote or reservation.

    Request body:
    - document_type: "INVOICE" | "QUOTE" | "RESERVATION"
    - items: [{product_id, quantity, unit_price_cents?}]
    - branch_id: int (optional, defaults to the user's branch, then the first branch)
    - customer_id: int (optional, walk-in when omitted)
    - payment_method: str (default "Efectivo")
    - payment_currency: "ARS" | "USD" (optional)
    - exchange_rate: number (optional)
    """
    data = request.get_json(silent=True) or {}
    try:
        document = sales_service.create_document(
            g.org_id,
            g.current_user.id,
            data.get("document_type"),
            data.get("items"),
            branch_id=data.get("branch_id", g.branch_id),
            customer_id=data.get("customer_id"),
            payment_method=data.get("payment_method", "Efectivo"),
            payment_currency=data.get("payment_currency"),
            exchange_rate=data.get("exchange_rate"),
        )
        return jsonify(document.to_dict()), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except SalesError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to create sales document")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.get("")
@require_auth
@require_permission("VIEW_DOCUMENTS")
def list_documents_route():
    """
    Query params:
    - document_type, status, customer_id, branch_id (optional filters)
    - limit (default 100, max 500), offset
    """
    documents, total = sales_service.list_documents(
        g.org_id,
        document_type=request.args.get("document_type"),
        status=request.args.get("status"),
        customer_id=request.args.get("customer_id", type=int),
        branch_id=request.args.get("branch_id", type=int),
        limit=request.args.get("limit", 100, type=int),
        offset=request.args.get("offset", 0, type=int),
    )
    return jsonify({
        "documents": [d.to_dict(include_lines=False) for d in documents],
        "count": len(documents),
        "total": total,
    }), 200


@documents_bp.get("/<int:document_id>")
@require_auth
@require_permission("VIEW_DOCUMENTS")
def get_document_route(document_id: int):
    try:
        document = sales_service.get_document(g.org_id, document_id)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify(document.to_dict()), 200


@documents_bp.post("/<int:document_id>/cancel")
@require_auth
@require_permission("CANCEL_RESERVATION")
def cancel_reservation_route(document_id: int):
    """Cancel a reservation and return its units to the branch."""
    try:
        document = sales_service.cancel_reservation(g.org_id, document_id, user_id=g.current_user.id)
        return jsonify(document.to_dict()), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except SalesError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to cancel reservation %s", document_id)
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.get("/exchange-rate")
@require_auth
def exchange_rate_route():
    """Current ARS per USD selling rate (configured fallback when the lookup fails)."""
    rate = exchange_rate_service.fetch_rate()
    return jsonify({"rate": str(rate)}), 200


@documents_bp.get("/<int:document_id>/convert")
@require_auth
@require_permission("VIEW_DOCUMENTS")
def convert_document_total_route(document_id: int):
    """
    Document total expressed in another currency.

    Query params:
    - currency: "ARS" | "USD"
    - rate: number (optional, current rate when omitted)
    """
    try:
        document = sales_service.get_document(g.org_id, document_id)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code

    currency = (request.args.get("currency") or "").upper()
    if currency not in sales_service.CURRENCIES:
        return jsonify({"error": f"currency must be one of {', '.join(sales_service.CURRENCIES)}"}), 400

    rate = request.args.get("rate") or exchange_rate_service.fetch_rate()
    base = db.session.get(Organization, g.org_id).base_currency
    try:
        converted = sales_service.convert_total(document.total_cents, base, currency, rate)
    except (ValueError, ArithmeticError):
        return jsonify({"error": "rate must be a positive number"}), 400

    return jsonify({
        "document_id": document.id,
        "base_currency": base,
        "total_cents": document.total_cents,
        "currency": currency,
        "rate": str(rate),
        "converted_cents": converted,
    }), 200
