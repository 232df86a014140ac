# Overview: Flask API routes for customers and suppliers.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_permission
from ..services import party_service, settlement_service
from ..services.party_service import PartyError
from ..validation import ValidationError


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")
suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


def _party_error(e: PartyError):
    status = 404 if str(e).endswith("not found") else 409
    return jsonify({"error": str(e)}), status


# =============================================================================
# CUSTOMERS
# =============================================================================

@customers_bp.get("")
@require_auth
@require_permission("VIEW_PRODUCTS")
def list_customers():
    """
    Query params:
    - search: str (name, email or CUIT)
    - include_inactive: bool (default false)
    - with_debt: bool (default false) - adds debt_cents per customer
    """
    customers = party_service.list_customers(
        g.org_id,
        search=request.args.get("search"),
        include_inactive=request.args.get("include_inactive", "false").lower() == "true",
    )
    with_debt = request.args.get("with_debt", "false").lower() == "true"

    result = []
    for customer in customers:
        data = customer.to_dict()
        if with_debt:
            data["debt_cents"] = settlement_service.customer_debt(g.org_id, customer.id)
        result.append(data)
    return jsonify({"customers": result, "count": len(result)}), 200


@customers_bp.post("")
@require_auth
@require_permission("MANAGE_CUSTOMERS")
def create_customer():
    try:
        customer = party_service.create_customer(g.org_id, request.get_json(silent=True) or {})
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(customer.to_dict()), 201


@customers_bp.get("/<int:customer_id>")
@require_auth
@require_permission("VIEW_PRODUCTS")
def get_customer(customer_id: int):
    try:
        customer = party_service.get_customer(g.org_id, customer_id)
    except PartyError as e:
        return _party_error(e)
    return jsonify(customer.to_dict()), 200


@customers_bp.put("/<int:customer_id>")
@require_auth
@require_permission("MANAGE_CUSTOMERS")
def update_customer(customer_id: int):
    try:
        customer = party_service.update_customer(g.org_id, customer_id, request.get_json(silent=True) or {})
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PartyError as e:
        return _party_error(e)
    return jsonify(customer.to_dict()), 200


@customers_bp.delete("/<int:customer_id>")
@require_auth
@require_permission("MANAGE_CUSTOMERS")
def delete_customer(customer_id: int):
    """Refused (409) while the customer has unpaid invoices."""
    try:
        party_service.delete_customer(g.org_id, customer_id)
    except PartyError as e:
        return _party_error(e)
    return jsonify({"message": "Customer deleted"}), 200


# =============================================================================
# SUPPLIERS
# =============================================================================

@suppliers_bp.get("")
@require_auth
@require_permission("MANAGE_SUPPLIERS")
def list_suppliers():
    suppliers = party_service.list_suppliers(g.org_id)
    return jsonify({"suppliers": [s.to_dict() for s in suppliers], "count": len(suppliers)}), 200


@suppliers_bp.post("")
@require_auth
@require_permission("MANAGE_SUPPLIERS")
def create_supplier():
    try:
        supplier = party_service.create_supplier(g.org_id, request.get_json(silent=True) or {})
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(supplier.to_dict()), 201


@suppliers_bp.put("/<int:supplier_id>")
@require_auth
@require_permission("MANAGE_SUPPLIERS")
def update_supplier(supplier_id: int):
    try:
        supplier = party_service.update_supplier(g.org_id, supplier_id, request.get_json(silent=True) or {})
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PartyError as e:
        return _party_error(e)
    return jsonify(supplier.to_dict()), 200


@suppliers_bp.delete("/<int:supplier_id>")
@require_auth
@require_permission("MANAGE_SUPPLIERS")
def delete_supplier(supplier_id: int):
    try:
        party_service.delete_supplier(g.org_id, supplier_id)
    except PartyError as e:
        return _party_error(e)
    return jsonify({"message": "Supplier deleted"}), 200
