# Overview: Flask API routes for admin operations; parses input and returns JSON responses.

# backend/gestion_pro/routes/admin.py
"""
Admin routes for users, roles, permissions and business configuration.

Provides endpoints for:
- User management (invite, list, activate/deactivate)
- Role management (create, rename, delete, set permissions)
- Own profile (full name, avatar)
- Organization configuration (currency, plan, tax rate, fiscal data)
- Security event log

All endpoints require authentication; everything is scoped to g.org_id.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..models import User, Role, Permission, SecurityEvent, Organization
from ..services import auth_service, session_service, permission_service, tenant_service
from ..services.auth_service import PasswordValidationError, UserError
from ..decorators import require_auth, require_permission
from ..validation import ValidationError

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _audit(event_type: str, action: str) -> None:
    permission_service.log_security_event(
        user_id=g.current_user.id,
        event_type=event_type,
        success=True,
        resource=request.path,
        action=action,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
        org_id=g.org_id,
    )


# =============================================================================
# USER MANAGEMENT
# =============================================================================

@admin_bp.get("/users")
@require_auth
@require_permission("VIEW_USERS")
def list_users():
    """
    Query params:
    - include_inactive: bool (default false)
    - branch_id: int - filter by home branch
    """
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    branch_id = request.args.get("branch_id", type=int)

    query = db.session.query(User).filter(User.org_id == g.org_id)
    if not include_inactive:
        query = query.filter(User.is_active.is_(True))
    if branch_id:
        query = query.filter(User.branch_id == branch_id)

    users = query.order_by(User.username).all()
    return jsonify({"users": [u.to_dict() for u in users], "count": len(users)})


@admin_bp.post("/users")
@require_auth
@require_permission("MANAGE_USERS")
def invite_user():
    """
    Invite (create) a user with a role.

    Request body:
    - email: str (required)
    - password: str (required)
    - role: str (required)
    - full_name, username, branch_id (optional)
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")
        role_name = data.get("role")

        if not all([email, password, role_name]):
            return jsonify({"error": "email, password and role required"}), 400

        branch_id = data.get("branch_id")
        if branch_id is not None:
            try:
                tenant_service.require_branch_in_org(int(branch_id), g.org_id)
            except (TypeError, ValueError, tenant_service.TenantAccessError):
                return jsonify({"error": "Branch not found"}), 404

        user = auth_service.invite_user(
            g.org_id,
            email,
            password,
            role_name,
            full_name=data.get("full_name"),
            branch_id=branch_id,
            username=data.get("username"),
        )
        _audit("USER_CREATED", f"Invited user: {user.username} as {role_name}")

        return jsonify({"user": user.to_dict(), "message": "User created successfully"}), 201

    except (PasswordValidationError, UserError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to invite user")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/users/<int:user_id>/deactivate")
@require_auth
@require_permission("MANAGE_USERS")
def deactivate_user(user_id: int):
    """Deactivate a user and revoke all their sessions."""
    if user_id == g.current_user.id:
        return jsonify({"error": "Cannot deactivate your own account"}), 400
    try:
        user = auth_service.set_user_active(g.org_id, user_id, False)
    except UserError as e:
        return jsonify({"error": str(e)}), 404

    revoked_count = session_service.revoke_all_user_sessions(user.id, reason="Account deactivated by admin")
    _audit("USER_DEACTIVATED", f"Deactivated user: {user.username}")
    return jsonify({"message": f"User {user.username} deactivated", "sessions_revoked": revoked_count})


@admin_bp.post("/users/<int:user_id>/reactivate")
@require_auth
@require_permission("MANAGE_USERS")
def reactivate_user(user_id: int):
    try:
        user = auth_service.set_user_active(g.org_id, user_id, True)
    except UserError as e:
        return jsonify({"error": str(e)}), 404
    _audit("USER_REACTIVATED", f"Reactivated user: {user.username}")
    return jsonify({"message": f"User {user.username} reactivated"})


@admin_bp.post("/users/<int:user_id>/roles")
@require_auth
@require_permission("MANAGE_ROLES")
def assign_role(user_id: int):
    """Request body: role: str"""
    role_name = (request.get_json(silent=True) or {}).get("role")
    if not role_name:
        return jsonify({"error": "role required"}), 400

    user = db.session.query(User).filter_by(id=user_id, org_id=g.org_id).first()
    if not user:
        return jsonify({"error": "User not found"}), 404
    try:
        auth_service.assign_role(user.id, role_name)
    except UserError as e:
        return jsonify({"error": str(e)}), 400

    _audit("ROLE_ASSIGNED", f"Assigned role {role_name} to {user.username}")
    return jsonify({"user": user.to_dict()}), 200


# =============================================================================
# ROLES & PERMISSIONS
# =============================================================================

@admin_bp.get("/roles")
@require_auth
@require_permission("VIEW_USERS")
def list_roles():
    roles = db.session.query(Role).filter_by(org_id=g.org_id).order_by(Role.name).all()
    return jsonify({"roles": [r.to_dict(include_permissions=True) for r in roles]})


@admin_bp.post("/roles")
@require_auth
@require_permission("MANAGE_ROLES")
def create_role():
    """Request body: name (required), description, permissions: [code] (optional)"""
    data = request.get_json(silent=True) or {}
    try:
        role = auth_service.create_role(g.org_id, data.get("name"), data.get("description"))
        if data.get("permissions") is not None:
            permission_service.set_role_permissions(role, data["permissions"])
    except UserError as e:
        return jsonify({"error": str(e)}), 400
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    _audit("ROLE_CREATED", f"Created role {role.name}")
    return jsonify({"role": role.to_dict(include_permissions=True)}), 201


@admin_bp.put("/roles/<int:role_id>")
@require_auth
@require_permission("MANAGE_ROLES")
def update_role(role_id: int):
    data = request.get_json(silent=True) or {}
    try:
        role = auth_service.update_role(g.org_id, role_id, data.get("name"), data.get("description"))
    except UserError as e:
        status = 404 if str(e) == "Role not found" else 400
        return jsonify({"error": str(e)}), status
    return jsonify({"role": role.to_dict(include_permissions=True)}), 200


@admin_bp.delete("/roles/<int:role_id>")
@require_auth
@require_permission("MANAGE_ROLES")
def delete_role(role_id: int):
    """Refused (409) while any user holds the role."""
    try:
        auth_service.delete_role(g.org_id, role_id)
    except UserError as e:
        status = 404 if str(e) == "Role not found" else 409
        return jsonify({"error": str(e)}), status
    _audit("ROLE_DELETED", f"Deleted role {role_id}")
    return jsonify({"message": "Role deleted"}), 200


@admin_bp.put("/roles/<int:role_id>/permissions")
@require_auth
@require_permission("MANAGE_ROLES")
def set_role_permissions(role_id: int):
    """Replace the role's permissions. Request body: permissions: [code]"""
    codes = (request.get_json(silent=True) or {}).get("permissions")
    if not isinstance(codes, list):
        return jsonify({"error": "permissions must be a list"}), 400

    role = db.session.query(Role).filter_by(id=role_id, org_id=g.org_id).first()
    if not role:
        return jsonify({"error": "Role not found"}), 404
    try:
        permission_service.set_role_permissions(role, codes)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    _audit("ROLE_PERMISSIONS_CHANGED", f"Role {role.name}: {', '.join(sorted(codes))}")
    return jsonify({"role": role.to_dict(include_permissions=True)}), 200


@admin_bp.get("/permissions")
@require_auth
@require_permission("VIEW_USERS")
def list_permissions():
    """Query params: category: str - filter by category"""
    query = db.session.query(Permission)
    category = request.args.get("category")
    if category:
        query = query.filter_by(category=category)
    permissions = query.order_by(Permission.category, Permission.code).all()
    return jsonify({"permissions": [p.to_dict() for p in permissions]})


# =============================================================================
# PROFILE & ORGANIZATION
# =============================================================================

@admin_bp.put("/profile")
@require_auth
def update_profile():
    """Any user may edit their own full_name and avatar_url."""
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.update_profile(
            g.current_user.id,
            full_name=data.get("full_name"),
            avatar_url=data.get("avatar_url"),
        )
    except UserError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"user": user.to_dict()}), 200


@admin_bp.get("/organization")
@require_auth
def get_organization():
    org = db.session.get(Organization, g.org_id)
    return jsonify({"organization": org.to_dict()}), 200


@admin_bp.put("/organization")
@require_auth
@require_permission("MANAGE_SETTINGS")
def update_organization():
    """
    Request body (all optional): name, base_currency, active_plan,
    tax_rate_bps, business_name, business_address, business_phone
    """
    try:
        org = tenant_service.update_org_config(g.org_id, request.get_json(silent=True) or {})
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    _audit("ORG_CONFIG_UPDATED", "Updated business configuration")
    return jsonify({"organization": org.to_dict()}), 200


@admin_bp.get("/security-events")
@require_auth
@require_permission("VIEW_AUDIT_LOG")
def list_security_events():
    limit = min(request.args.get("limit", 100, type=int), 500)
    events = (
        db.session.query(SecurityEvent)
        .filter(SecurityEvent.org_id == g.org_id)
        .order_by(SecurityEvent.occurred_at.desc(), SecurityEvent.id.desc())
        .limit(limit)
        .all()
    )
    return jsonify({"events": [e.to_dict() for e in events]})
