# Overview: Role-based access checks and the security event audit trail.

"""
Permission Checking and Security Event Logging

MULTI-TENANT: Roles are org-scoped; permission definitions are global.
Security events carry org_id for tenant-scoped auditing.

DESIGN PRINCIPLES:
- Fail closed: deny unless a role grants the permission
- Log denials only
"""

from ..extensions import db
from ..models import UserRole, Role, RolePermission, Permission, SecurityEvent
from ..permissions import PERMISSION_DEFINITIONS, DEFAULT_ROLE_PERMISSIONS
from gestion_pro.time_utils import utcnow


class PermissionDeniedError(Exception):
    """Raised when user lacks required permission."""
    pass


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    org_id: int | None = None,
) -> SecurityEvent:
    """
    Append a security event and commit.

    event_type examples: LOGIN_SUCCESS, LOGIN_FAILED, LOGOUT, PERMISSION_DENIED,
    ROLE_ASSIGNED, USER_CREATED, CROSS_TENANT_ACCESS_DENIED.
    """
    event = SecurityEvent(
        user_id=user_id,
        org_id=org_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow(),
    )
    db.session.add(event)
    db.session.commit()
    return event


def get_user_permissions(user_id: int) -> set[str]:
    """Union of permission codes over all of the user's roles."""
    rows = (
        db.session.query(Permission.code)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .join(UserRole, UserRole.role_id == RolePermission.role_id)
        .filter(UserRole.user_id == user_id)
        .all()
    )
    return {code for (code,) in rows}


def user_has_permission(user_id: int, permission_code: str) -> bool:
    return permission_code in get_user_permissions(user_id)


def require_permission(
    user_id: int,
    permission_code: str,
    resource: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    org_id: int | None = None,
) -> None:
    """Raise PermissionDeniedError (after logging the denial) if the permission is missing."""
    if user_has_permission(user_id, permission_code):
        return

    log_security_event(
        user_id=user_id,
        event_type="PERMISSION_DENIED",
        success=False,
        resource=resource,
        action=permission_code,
        reason=f"Missing permission: {permission_code}",
        ip_address=ip_address,
        user_agent=user_agent,
        org_id=org_id,
    )
    raise PermissionDeniedError(f"Permission denied: {permission_code}")


def get_user_role_names(user_id: int) -> list[str]:
    rows = (
        db.session.query(Role.name)
        .join(UserRole, UserRole.role_id == Role.id)
        .filter(UserRole.user_id == user_id)
        .order_by(Role.name)
        .all()
    )
    return [name for (name,) in rows]


def initialize_permissions() -> int:
    """
    Create Permission rows for every code in PERMISSION_DEFINITIONS.

    Idempotent: safe to run on every startup.
    """
    existing = {code for (code,) in db.session.query(Permission.code).all()}
    created_count = 0

    for code, name, description, category in PERMISSION_DEFINITIONS:
        if code in existing:
            continue
        db.session.add(Permission(code=code, name=name, description=description, category=category))
        created_count += 1

    db.session.commit()
    return created_count


def assign_default_role_permissions(org_id: int) -> int:
    """
    Link the organization's default roles to their default permissions.

    Idempotent: existing grants are skipped.
    """
    created_count = 0

    for role_name, permission_codes in DEFAULT_ROLE_PERMISSIONS.items():
        role = db.session.query(Role).filter_by(org_id=org_id, name=role_name).first()
        if not role:
            continue
        created_count += _grant_codes(role, permission_codes)

    db.session.commit()
    return created_count


def set_role_permissions(role: Role, permission_codes: list[str]) -> Role:
    """
    Replace the role's permission set with exactly ``permission_codes``.

    Unknown codes raise ValueError; nothing is changed in that case.
    """
    wanted = set(permission_codes)
    known = {
        p.code: p
        for p in db.session.query(Permission).filter(Permission.code.in_(list(wanted))).all()
    }
    unknown = sorted(wanted - set(known))
    if unknown:
        raise ValueError(f"Unknown permission codes: {', '.join(unknown)}")

    for rp in list(role.role_permissions):
        if rp.permission.code not in wanted:
            role.role_permissions.remove(rp)

    _grant_codes(role, wanted)
    db.session.commit()
    return role


def _grant_codes(role: Role, permission_codes) -> int:
    held = {rp.permission_id for rp in role.role_permissions}
    created = 0
    for permission in db.session.query(Permission).filter(Permission.code.in_(list(permission_codes))).all():
        if permission.id in held:
            continue
        role.role_permissions.append(RolePermission(permission=permission))
        created += 1
    return created
