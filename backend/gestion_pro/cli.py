# Overview: Flask CLI command groups for bootstrap and inspection.

# backend/gestion_pro/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--org "Org Name"]
#   Idempotent bootstrap: tables, default org, branch, roles, permissions and admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Organization management (MULTI-TENANT):
# - python -m flask orgs list
# - python -m flask orgs create --name "Acme SRL" --code "ACME"
#
# Users:
# - python -m flask users list [--org-id 1]
# - python -m flask users create --org-id 1 --username ana --email ana@example.com --password "Password123!" --role seller
#
# Stock:
# - python -m flask stock low --org-id 1 [--branch-id 2]
#   Rows at or below their minimum stock.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Branch, Organization, Product, User
from .services.auth_service import (
    DEFAULT_ROLES,
    PasswordValidationError,
    UserError,
    assign_role,
    create_default_roles,
    create_user,
)
from .services import permission_service, stock_ledger_service, tenant_service
from .validation import ValidationError, ConflictError


ROLE_NAMES = [name for name, _desc in DEFAULT_ROLES]


def _resolve_org(org_id):
    if org_id:
        return db.session.get(Organization, org_id)
    return db.session.query(Organization).order_by(Organization.id.asc()).first()


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--org', 'org_name', default='Mi Negocio', help='Organization name')
@click.option('--org-code', default='DEFAULT', help='Organization code')
@click.option('--admin-password', default='Password123!', help='Password for the admin user')
@with_appcontext
def init_system(org_name, org_code, admin_password):
    """
    Initialize Gestión Pro: tables, organization, branch, roles and admin.

    MULTI-TENANT: Creates a default organization as the tenant root.
    The default branch and the admin user are scoped to it.

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing Gestión Pro...")
    db.create_all()

    org = db.session.query(Organization).filter_by(code=org_code).first()
    if not org:
        org = tenant_service.create_organization(org_name, org_code)
        click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")
    else:
        click.echo(f"PASS Using existing organization: {org.name} (ID: {org.id})")

    branch = tenant_service.get_default_branch(org.id)
    if not branch:
        branch = Branch(org_id=org.id, name="Casa Central", priority_order=0, is_ecommerce_source=True)
        db.session.add(branch)
        db.session.commit()
        click.echo(f"PASS Created default branch: {branch.name} (ID: {branch.id})")
    else:
        click.echo(f"PASS Using existing branch: {branch.name} (ID: {branch.id})")

    roles = create_default_roles(org.id)
    click.echo(f"PASS Roles: {', '.join(r.name for r in roles)}")

    perm_count = permission_service.initialize_permissions()
    assignment_count = permission_service.assign_default_role_permissions(org.id)
    click.echo(f"PASS Created {perm_count} permissions, {assignment_count} role assignments")

    existing = db.session.query(User).filter_by(org_id=org.id, username="admin").first()
    if existing:
        click.echo("WARN  User 'admin' already exists in org, skipping...")
    else:
        try:
            user = create_user(
                username="admin",
                email="admin@gestionpro.local",
                password=admin_password,
                org_id=org.id,
                branch_id=branch.id,
                full_name="Administrador",
            )
            assign_role(user.id, "admin")
            click.echo("PASS Created user: admin (admin@gestionpro.local) with role 'admin'")
        except (PasswordValidationError, UserError) as e:
            click.echo(f"FAIL Failed to create admin user: {e}")

    click.echo("\nDONE Gestión Pro initialized.")
    click.echo("SECURITY Change the admin password immediately in production!")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """DANGER: Drop all tables and recreate schema."""
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


# =============================================================================
# ORGANIZATION MANAGEMENT COMMANDS
# =============================================================================

@click.group('orgs')
def orgs_group():
    """Organization (tenant) management commands."""


@orgs_group.command('list')
@with_appcontext
def list_orgs():
    """List all organizations."""
    orgs = db.session.query(Organization).order_by(Organization.id.asc()).all()

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<12} {'Active':<8} {'Branches':<10} {'Users'}")
    click.echo("="*80)

    for org in orgs:
        branch_count = db.session.query(Branch).filter_by(org_id=org.id).count()
        user_count = db.session.query(User).filter_by(org_id=org.id).count()
        active_str = "Yes" if org.is_active else "No"
        click.echo(f"{org.id:<5} {org.name:<30} {org.code or '-':<12} {active_str:<8} {branch_count:<10} {user_count}")

    click.echo("="*80 + "\n")


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--code', required=True, help='Short code (unique)')
@click.option('--currency', type=click.Choice(['ARS', 'USD']), default='ARS', help='Base currency')
@with_appcontext
def create_org_cli(name, code, currency):
    """Create a new organization (tenant) with its default roles."""
    try:
        org = tenant_service.create_organization(name, code, base_currency=currency)
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL {e}")
        return

    create_default_roles(org.id)
    permission_service.initialize_permissions()
    permission_service.assign_default_role_permissions(org.id)
    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")


# =============================================================================
# USER MANAGEMENT COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--org-id', type=int, help='Organization ID (uses default if not specified)')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(ROLE_NAMES), prompt=True, help='Role')
@click.option('--branch-id', type=int, help='Home branch')
@with_appcontext
def create_user_cli(org_id, username, email, password, role, branch_id):
    """
    Create a new user.

    MULTI-TENANT: User is created within the specified organization.
    If --org-id is not provided, uses the first organization.
    """
    org = _resolve_org(org_id)
    if not org:
        click.echo("FAIL Organization not found. Run 'python -m flask system init' first.")
        return

    try:
        user = create_user(
            username=username,
            email=email,
            password=password,
            org_id=org.id,
            branch_id=branch_id,
        )
        assign_role(user.id, role)
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e}")
        return
    except UserError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Created user: {username} ({email}) with role '{role}' in org '{org.name}'")


@users_group.command('list')
@click.option('--org-id', type=int, help='Filter by organization ID')
@with_appcontext
def list_users(org_id):
    """List all users with their roles."""
    query = db.session.query(User)
    if org_id:
        query = query.filter_by(org_id=org_id)

    users = query.order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Org':<5} {'Username':<20} {'Email':<30} {'Active':<8} {'Roles'}")
    click.echo("="*100)

    for user in users:
        role_names = permission_service.get_user_role_names(user.id)
        roles_str = ", ".join(role_names) if role_names else "none"
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.org_id:<5} {user.username:<20} {user.email:<30} {active_str:<8} {roles_str}")

    click.echo("="*100 + "\n")


# =============================================================================
# STOCK COMMANDS
# =============================================================================

@click.group('stock')
def stock_group():
    """Stock inspection commands."""


@stock_group.command('low')
@click.option('--org-id', type=int, help='Organization ID (uses default if not specified)')
@click.option('--branch-id', type=int, help='Restrict to one branch')
@with_appcontext
def low_stock_cli(org_id, branch_id):
    """List products at or below their minimum stock."""
    org = _resolve_org(org_id)
    if not org:
        click.echo("FAIL Organization not found.")
        return

    rows = stock_ledger_service.list_low_stock(org.id, branch_id=branch_id)
    if not rows:
        click.echo("No low-stock rows.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'Branch':<20} {'SKU':<15} {'Product':<30} {'Stock':<7} {'Min'}")
    click.echo("="*80)
    for row in rows:
        product = db.session.get(Product, row.product_id)
        branch = db.session.get(Branch, row.branch_id)
        click.echo(f"{branch.name:<20} {product.sku:<15} {product.name:<30} {row.stock:<7} {row.min_stock}")
    click.echo("="*80 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orgs_group)
    app.cli.add_command(users_group)
    app.cli.add_command(stock_group)
