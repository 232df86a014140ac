# Overview: Flask API routes for accounts receivable (customer debt and payments).

"""
Receivables routes.

POST /api/receivables/payments spreads one payment over the selected
invoices in the order given. The response always reports what was applied,
what was skipped and the leftover (over-payment is reported, not stored).

A failure part-way returns 409 with the applications that were already
committed: those stand, and the client re-queries before retrying.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_permission
from ..errors import LedgerError, AllocationPartialFailure
from ..services import settlement_service, party_service
from ..validation import ValidationError


receivables_bp = Blueprint("receivables", __name__, url_prefix="/api/receivables")


@receivables_bp.get("/debtors")
@require_auth
@require_permission("VIEW_RECEIVABLES")
def list_debtors_route():
    debtors = settlement_service.list_debtors(g.org_id)
    return jsonify({
        "debtors": debtors,
        "count": len(debtors),
        "total_debt_cents": sum(d["debt_cents"] for d in debtors),
    }), 200


@receivables_bp.get("/customers/<int:customer_id>")
@require_auth
@require_permission("VIEW_RECEIVABLES")
def customer_account_route(customer_id: int):
    """Debt plus open invoices (oldest first) for one customer."""
    try:
        customer = party_service.get_customer(g.org_id, customer_id)
    except party_service.PartyError as e:
        return jsonify({"error": str(e)}), 404

    invoices = settlement_service.list_open_invoices(g.org_id, customer.id)
    return jsonify({
        "customer": customer.to_dict(),
        "debt_cents": settlement_service.customer_debt(g.org_id, customer.id),
        "open_invoices": [doc.to_dict(include_lines=False) for doc in invoices],
    }), 200


@receivables_bp.post("/payments")
@require_auth
@require_permission("APPLY_PAYMENTS")
def apply_payment_route():
    """
    Request body:
    - amount_cents: int > 0
    - document_ids: [int] in the order they should be settled
    """
    data = request.get_json(silent=True) or {}
    document_ids = data.get("document_ids")
    if not isinstance(document_ids, list) or not document_ids:
        return jsonify({"error": "document_ids must be a non-empty list"}), 400

    try:
        result = settlement_service.apply_payment(
            g.org_id,
            data.get("amount_cents"),
            document_ids,
            user_id=g.current_user.id,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except AllocationPartialFailure as e:
        current_app.logger.error("Payment allocation failed for org %s: %s", g.org_id, e)
        return jsonify(e.to_dict()), e.status_code
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify(result.to_dict()), 200


@receivables_bp.get("/documents/<int:document_id>/payments")
@require_auth
@require_permission("VIEW_RECEIVABLES")
def list_applications_route(document_id: int):
    try:
        applications = settlement_service.list_applications(g.org_id, document_id)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"payments": [a.to_dict() for a in applications]}), 200
