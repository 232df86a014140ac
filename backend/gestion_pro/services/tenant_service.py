"""
Multi-Tenant Service: Tenant validation and scoping helpers.

SECURITY INVARIANTS:
1. Every authenticated request has g.org_id set
2. Branch IDs from client input are validated against g.org_id
3. A branch of another tenant is reported exactly like a missing one
4. Cross-tenant attempts are logged as security events

USAGE:
    from gestion_pro.services.tenant_service import require_branch_in_org

    branch = require_branch_in_org(branch_id, g.org_id)
"""

from flask import current_app, g, has_request_context, request

from ..extensions import db
from ..models import Branch, Organization
from ..models.tenancy import BASE_CURRENCIES, PLANS
from ..validation import ValidationError, ConflictError, coerce_int
from .permission_service import log_security_event


class TenantAccessError(Exception):
    """Raised when a referenced branch/org is not visible to the caller's tenant."""
    pass


def require_org(org_id: int) -> Organization:
    org = db.session.get(Organization, org_id)
    if not org or not org.is_active:
        raise TenantAccessError("Organization not found")
    return org


def require_branch_in_org(branch_id: int, org_id: int) -> Branch:
    """
    Return the branch if it belongs to ``org_id``.

    Raises TenantAccessError otherwise, without revealing whether the branch
    exists in another organization.
    """
    branch = db.session.get(Branch, branch_id)

    if not branch:
        raise TenantAccessError("Branch not found")

    if branch.org_id != org_id:
        _log_cross_tenant_attempt(
            f"Branch {branch_id} belongs to org {branch.org_id}, not {org_id}",
            org_id=org_id,
        )
        raise TenantAccessError("Branch not found")

    return branch


def get_default_branch(org_id: int) -> Branch | None:
    """First branch in assignment order; used when a caller names no branch."""
    return (
        db.session.query(Branch)
        .filter(Branch.org_id == org_id)
        .order_by(Branch.priority_order.asc(), Branch.id.asc())
        .first()
    )


def _log_cross_tenant_attempt(reason: str, org_id: int | None = None) -> None:
    user_id = None
    ip_address = None
    user_agent = None
    if has_request_context():
        current_user = getattr(g, 'current_user', None)
        user_id = current_user.id if current_user else None
        ip_address = request.remote_addr
        user_agent = request.headers.get("User-Agent")

    log_security_event(
        user_id=user_id,
        event_type="CROSS_TENANT_ACCESS_DENIED",
        success=False,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        org_id=org_id,
    )


# =============================================================================
# ORGANIZATION CONFIGURATION
# =============================================================================

ORG_CONFIG_FIELDS = {
    "name", "base_currency", "active_plan", "tax_rate_bps",
    "business_name", "business_address", "business_phone",
}


def create_organization(name: str, code: str | None = None, base_currency: str = "ARS") -> Organization:
    """New tenant with the configured default tax rate."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    if code and db.session.query(Organization.id).filter_by(code=code).first():
        raise ConflictError(f"Organization with code {code!r} already exists")

    org = Organization(
        name=name,
        code=code,
        is_active=True,
        base_currency=base_currency,
        tax_rate_bps=current_app.config.get("DEFAULT_TAX_RATE_BPS", 2100),
    )
    _apply_org_config(org, {"base_currency": base_currency})
    db.session.add(org)
    db.session.commit()
    return org


def _apply_org_config(org: Organization, data: dict) -> None:
    unknown = sorted(set(data) - ORG_CONFIG_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {unknown[0]}")

    if "name" in data:
        name = (data["name"] or "").strip()
        if not name:
            raise ValidationError("name cannot be blank")
        org.name = name
    if "base_currency" in data:
        currency = (data["base_currency"] or "").upper()
        if currency not in BASE_CURRENCIES:
            raise ValidationError(f"base_currency must be one of {', '.join(BASE_CURRENCIES)}")
        org.base_currency = currency
    if "active_plan" in data:
        if data["active_plan"] not in PLANS:
            raise ValidationError(f"active_plan must be one of {', '.join(PLANS)}")
        org.active_plan = data["active_plan"]
    if "tax_rate_bps" in data:
        bps = coerce_int("tax_rate_bps", data["tax_rate_bps"])
        if bps < 0 or bps > 10000:
            raise ValidationError("tax_rate_bps must be between 0 and 10000")
        org.tax_rate_bps = bps
    for key in ("business_name", "business_address", "business_phone"):
        if key in data:
            value = data[key]
            if value is not None:
                value = str(value).strip() or None
            setattr(org, key, value)


def update_org_config(org_id: int, data: dict) -> Organization:
    """Patch the tenant's business configuration."""
    org = require_org(org_id)
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    try:
        _apply_org_config(org, data)
    except ValidationError:
        db.session.rollback()
        raise
    db.session.commit()
    return org
