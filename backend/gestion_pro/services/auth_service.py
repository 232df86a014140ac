# Overview: User accounts, password hashing, role assignment and profile edits.

"""
Authentication Service

MULTI-TENANT: Users belong to exactly one organization. Username/email
uniqueness is tenant-scoped; authentication refuses inactive organizations.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters with upper, lower, digit and special character
- Session tokens live in session_service
"""

import re

import bcrypt

from ..extensions import db
from ..models import User, Role, UserRole, Organization, Branch
from gestion_pro.time_utils import utcnow


DEFAULT_ROLES = [
    ("admin", "Full access to the organization"),
    ("manager", "Catalog, sales, receivables and e-commerce"),
    ("seller", "Counter sales only"),
]


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class UserError(Exception):
    """Invalid user or role operation (duplicate, unknown role, role in use)."""
    pass


def validate_password_strength(password: str) -> None:
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")
    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")
    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")
    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")
    if not re.search(r"[!@#$%^&*(),.'\":{}|<>_\-]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then bcrypt-hash with cost factor 12."""
    validate_password_strength(password)
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=12))
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    org_id: int,
    branch_id: int | None = None,
    full_name: str | None = None,
) -> User:
    """
    Create a user in ``org_id``.

    Raises:
        UserError: org missing/inactive, duplicate username/email, foreign branch
        PasswordValidationError: weak password
    """
    org = db.session.get(Organization, org_id)
    if not org:
        raise UserError("Organization not found")
    if not org.is_active:
        raise UserError("Organization is not active")

    username = (username or "").strip()
    email = (email or "").strip().lower()
    if not username or not email:
        raise UserError("username and email are required")

    existing = db.session.query(User).filter(
        User.org_id == org_id,
        db.or_(User.username == username, User.email == email),
    ).first()
    if existing:
        raise UserError("Username or email already exists in this organization")

    if branch_id is not None:
        branch = db.session.get(Branch, branch_id)
        if not branch or branch.org_id != org_id:
            raise UserError("Branch not found")

    user = User(
        org_id=org_id,
        username=username,
        email=email,
        full_name=full_name,
        password_hash=hash_password(password),
        branch_id=branch_id,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str, org_id: int | None = None) -> User | None:
    """
    Check credentials; ``username`` may also be the email.

    Returns the User (and stamps last_login_at) or None.
    """
    query = db.session.query(User).filter(
        db.or_(User.username == username, User.email == (username or "").lower()),
        User.is_active.is_(True),
    )
    if org_id is not None:
        query = query.filter(User.org_id == org_id)

    user = query.first()
    if not user:
        return None

    org = db.session.get(Organization, user.org_id)
    if not org or not org.is_active:
        return None

    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def create_default_roles(org_id: int) -> list[Role]:
    """Create the standard roles for an organization if they don't exist."""
    roles = []
    for name, desc in DEFAULT_ROLES:
        role = db.session.query(Role).filter_by(org_id=org_id, name=name).first()
        if not role:
            role = Role(org_id=org_id, name=name, description=desc)
            db.session.add(role)
        roles.append(role)
    db.session.commit()
    return roles


def assign_role(user_id: int, role_name: str) -> UserRole:
    """Assign an org role (looked up in the user's own organization)."""
    user = db.session.get(User, user_id)
    if not user:
        raise UserError("User not found")

    role = db.session.query(Role).filter_by(org_id=user.org_id, name=role_name).first()
    if not role:
        raise UserError(f"Role {role_name} not found")

    existing = db.session.query(UserRole).filter_by(user_id=user_id, role_id=role.id).first()
    if existing:
        return existing

    user_role = UserRole(user_id=user_id, role_id=role.id)
    db.session.add(user_role)
    db.session.commit()
    return user_role


def create_role(org_id: int, name: str, description: str | None = None) -> Role:
    name = (name or "").strip()
    if not name:
        raise UserError("name is required")
    if db.session.query(Role).filter_by(org_id=org_id, name=name).first():
        raise UserError(f"Role {name} already exists")

    role = Role(org_id=org_id, name=name, description=description)
    db.session.add(role)
    db.session.commit()
    return role


def update_role(org_id: int, role_id: int, name: str | None = None, description: str | None = None) -> Role:
    role = db.session.query(Role).filter_by(id=role_id, org_id=org_id).first()
    if not role:
        raise UserError("Role not found")

    if name is not None:
        name = name.strip()
        if not name:
            raise UserError("name cannot be blank")
        clash = db.session.query(Role).filter(
            Role.org_id == org_id, Role.name == name, Role.id != role_id
        ).first()
        if clash:
            raise UserError(f"Role {name} already exists")
        role.name = name
    if description is not None:
        role.description = description

    db.session.commit()
    return role


def delete_role(org_id: int, role_id: int) -> None:
    """Delete a role. Refused while any user still holds it."""
    role = db.session.query(Role).filter_by(id=role_id, org_id=org_id).first()
    if not role:
        raise UserError("Role not found")

    in_use = db.session.query(UserRole).filter_by(role_id=role_id).count()
    if in_use:
        raise UserError(f"Role {role.name} is assigned to {in_use} user(s) and cannot be deleted")

    db.session.delete(role)
    db.session.commit()


def invite_user(
    org_id: int,
    email: str,
    password: str,
    role_name: str,
    full_name: str | None = None,
    branch_id: int | None = None,
    username: str | None = None,
) -> User:
    """Create a user and give it ``role_name`` in one step."""
    role = db.session.query(Role).filter_by(org_id=org_id, name=role_name).first()
    if not role:
        raise UserError(f"Role {role_name} not found")

    user = create_user(
        username=username or (email or "").split("@")[0],
        email=email,
        password=password,
        org_id=org_id,
        branch_id=branch_id,
        full_name=full_name,
    )
    assign_role(user.id, role.name)
    return user


def update_profile(user_id: int, full_name: str | None = None, avatar_url: str | None = None) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise UserError("User not found")
    if full_name is not None:
        user.full_name = full_name.strip() or None
    if avatar_url is not None:
        user.avatar_url = avatar_url
    db.session.commit()
    return user


def set_user_active(org_id: int, user_id: int, is_active: bool) -> User:
    user = db.session.query(User).filter_by(id=user_id, org_id=org_id).first()
    if not user:
        raise UserError("User not found")
    user.is_active = bool(is_active)
    db.session.commit()
    return user
