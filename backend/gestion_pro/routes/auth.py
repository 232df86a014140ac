# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/gestion_pro/routes/auth.py
"""
Authentication API routes

- POST /api/auth/login     username (or email) + password -> session token
- POST /api/auth/logout    revoke the Bearer token
- GET  /api/auth/me        current user, permissions and tenant context

Users are created by administrators only (POST /api/admin/users or the CLI).
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..services import permission_service
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Request body:
    - username: str (or email)
    - password: str
    - org_id: int (optional) - disambiguates a username used in several orgs
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username") or data.get("email")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"error": "username/email and password required"}), 400

        user_agent = request.headers.get("User-Agent")
        ip_address = request.remote_addr

        user = auth_service.authenticate(username, password, org_id=data.get("org_id"))
        if not user:
            permission_service.log_security_event(
                user_id=None,
                event_type="LOGIN_FAILED",
                success=False,
                resource="/api/auth/login",
                reason=f"Invalid credentials for {username}",
                ip_address=ip_address,
                user_agent=user_agent,
            )
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=user_agent,
            ip_address=ip_address,
        )
        permission_service.log_security_event(
            user_id=user.id,
            event_type="LOGIN_SUCCESS",
            success=True,
            resource="/api/auth/login",
            ip_address=ip_address,
            user_agent=user_agent,
            org_id=user.org_id,
        )

        return jsonify({
            "user": user.to_dict(),
            "permissions": sorted(permission_service.get_user_permissions(user.id)),
            "token": token,
            "session": session.to_dict(),
            "org_id": session.org_id,
            "branch_id": session.branch_id,
            "message": "Login successful",
        }), 200

    except ValueError as e:
        # Organization deactivated between authenticate and create_session
        return jsonify({"error": str(e)}), 401
    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    """Revoke session token. Expects Authorization: Bearer <token>."""
    try:
        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authorization header required"}), 401

        revoked = session_service.revoke_session(auth_header.split(" ", 1)[1], reason="User logout")
        if not revoked:
            return jsonify({"error": "Invalid or expired token"}), 401

        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    """Current user with permissions (for UI filtering) and tenant context."""
    user = g.current_user
    return jsonify({
        "user": user.to_dict(),
        "organization": user.organization.to_dict(),
        "permissions": sorted(permission_service.get_user_permissions(user.id)),
        "org_id": g.org_id,
        "branch_id": g.branch_id,
    }), 200
