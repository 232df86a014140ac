# Overview: Flask API routes for branch (sucursal) management.

from flask import Blueprint, jsonify, request, g, current_app

from ..decorators import require_auth, require_permission
from ..services import branch_service
from ..validation import ValidationError


branches_bp = Blueprint("branches", __name__, url_prefix="/api/branches")


@branches_bp.get("")
@require_auth
@require_permission("VIEW_STOCK")
def list_branches():
    """Branches in assignment order (priority_order, then id)."""
    branches = branch_service.list_branches(g.org_id)
    return jsonify([branch.to_dict() for branch in branches]), 200


@branches_bp.post("")
@require_auth
@require_permission("MANAGE_BRANCHES")
def create_branch():
    data = request.get_json(silent=True) or {}
    try:
        branch = branch_service.create_branch(g.org_id, data)
        return jsonify(branch.to_dict()), 201
    except (branch_service.BranchError, ValidationError) as exc:
        return jsonify({"error": str(exc)}), 400


@branches_bp.get("/<int:branch_id>")
@require_auth
@require_permission("VIEW_STOCK")
def get_branch(branch_id: int):
    branch = branch_service.get_branch(g.org_id, branch_id)
    if not branch:
        return jsonify({"error": "Branch not found"}), 404
    return jsonify(branch.to_dict()), 200


@branches_bp.put("/<int:branch_id>")
@require_auth
@require_permission("MANAGE_BRANCHES")
def update_branch(branch_id: int):
    data = request.get_json(silent=True) or {}
    try:
        branch = branch_service.update_branch(g.org_id, branch_id, data)
        return jsonify(branch.to_dict()), 200
    except branch_service.BranchError as exc:
        status = 404 if str(exc) == "Branch not found" else 400
        return jsonify({"error": str(exc)}), status
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400


@branches_bp.delete("/<int:branch_id>")
@require_auth
@require_permission("MANAGE_BRANCHES")
def delete_branch(branch_id: int):
    try:
        branch_service.delete_branch(g.org_id, branch_id)
        return jsonify({"message": "Branch deleted"}), 200
    except branch_service.BranchError as exc:
        status = 404 if str(exc) == "Branch not found" else 409
        return jsonify({"error": str(exc)}), status
    except Exception:
        current_app.logger.exception("Failed to delete branch")
        return jsonify({"error": "Internal server error"}), 500


@branches_bp.post("/reorder")
@require_auth
@require_permission("MANAGE_BRANCHES")
def reorder_branches():
    """
    Request body:
    - branch_ids: [int] every branch of the organization, highest priority first
    """
    data = request.get_json(silent=True) or {}
    branch_ids = data.get("branch_ids")
    if not isinstance(branch_ids, list):
        return jsonify({"error": "branch_ids must be a list"}), 400
    try:
        branches = branch_service.reorder_branches(g.org_id, branch_ids)
        return jsonify([branch.to_dict() for branch in branches]), 200
    except (branch_service.BranchError, ValidationError) as exc:
        return jsonify({"error": str(exc)}), 400
