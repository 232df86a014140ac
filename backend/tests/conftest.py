"""
Pytest fixtures for Gestión Pro backend tests.

Provides the app on an in-memory database, a per-test table wipe, tenant,
branch, product and user factories, and auth helpers for API tests.
"""

import pytest

from gestion_pro import create_app
from gestion_pro.extensions import db
from gestion_pro.models import Organization, Branch, Product, BranchStock, Customer, User
from gestion_pro.services.auth_service import hash_password, create_default_roles, assign_role
from gestion_pro.services import permission_service


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STORAGE_ROOT': str(tmp_path_factory.mktemp("storage")),
        'STORAGE_PUBLIC_URL': 'http://testserver/storage',
        'EXCHANGE_RATE_URL': 'http://rates.test/v2/latest',
        'EXCHANGE_RATE_FALLBACK': '1000',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='session')
def password_hash():
    """bcrypt is slow on purpose; hash the shared test password once."""
    return hash_password(PASSWORD)


@pytest.fixture(scope='function')
def client(app):
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh data for each test (schema kept)."""
    with app.app_context():
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


# =============================================================================
# FACTORIES
# =============================================================================

@pytest.fixture(scope='function')
def make_org(db_session):
    def _make(name="Org A", code=None, base_currency="ARS", tax_rate_bps=2100):
        org = Organization(
            name=name,
            code=code,
            is_active=True,
            base_currency=base_currency,
            tax_rate_bps=tax_rate_bps,
        )
        db_session.add(org)
        db_session.commit()
        create_default_roles(org.id)
        permission_service.initialize_permissions()
        permission_service.assign_default_role_permissions(org.id)
        return org
    return _make


@pytest.fixture(scope='function')
def make_branch(db_session):
    def _make(org, name, priority_order=0):
        branch = Branch(org_id=org.id, name=name, priority_order=priority_order)
        db_session.add(branch)
        db_session.commit()
        return branch
    return _make


@pytest.fixture(scope='function')
def make_product(db_session):
    """
    make_product(org, "SKU", {branch: stock}, price_cents=1000)

    Creates one BranchStock row per branch given, all at the same sale price.
    """
    def _make(org, sku, stocks=None, price_cents=1000, name=None, min_stock=0):
        product = Product(org_id=org.id, sku=sku, name=name or f"Producto {sku}")
        db_session.add(product)
        db_session.flush()
        for branch, quantity in (stocks or {}).items():
            db_session.add(BranchStock(
                org_id=org.id,
                product_id=product.id,
                branch_id=branch.id,
                stock=quantity,
                min_stock=min_stock,
                sale_price_cents=price_cents,
            ))
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def make_customer(db_session):
    def _make(org, name="Juan Pérez", email=None):
        customer = Customer(org_id=org.id, name=name, email=email)
        db_session.add(customer)
        db_session.commit()
        return customer
    return _make


@pytest.fixture(scope='function')
def make_user(db_session, password_hash):
    def _make(org, username, role="admin", branch=None):
        user = User(
            org_id=org.id,
            username=username,
            email=f"{username}@example.com",
            password_hash=password_hash,
            branch_id=branch.id if branch else None,
        )
        db_session.add(user)
        db_session.commit()
        assign_role(user.id, role)
        return user
    return _make


# =============================================================================
# COMMON SCENARIOS
# =============================================================================

@pytest.fixture(scope='function')
def org_a(make_org):
    return make_org("Org A - Ferretería Norte", code="NORTE")


@pytest.fixture(scope='function')
def org_b(make_org):
    return make_org("Org B - Librería Sur", code="SUR")


@pytest.fixture(scope='function')
def branch_a(make_branch, org_a):
    return make_branch(org_a, "Casa Central", priority_order=0)


@pytest.fixture(scope='function')
def branch_b(make_branch, org_b):
    return make_branch(org_b, "Sucursal Sur", priority_order=0)


@pytest.fixture(scope='function')
def admin_a(make_user, org_a, branch_a):
    return make_user(org_a, "admin_a", role="admin", branch=branch_a)


@pytest.fixture(scope='function')
def admin_b(make_user, org_b, branch_b):
    return make_user(org_b, "admin_b", role="admin", branch=branch_b)


@pytest.fixture(scope='function')
def stock_of(db_session):
    """stock_of(product, branch) -> current stock, read fresh from the database."""
    def _read(product, branch) -> int:
        row = db_session.query(BranchStock).filter_by(product_id=product.id, branch_id=branch.id).one()
        db_session.refresh(row)
        return row.stock
    return _read


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def login(client):
    """login(username) -> Authorization headers for that user."""
    def _login(username: str, password: str = PASSWORD) -> dict:
        token = get_auth_token(client, username, password)
        assert token, f"login failed for {username}"
        return auth_headers(token)
    return _login


@pytest.fixture(scope='function')
def headers_a(client, admin_a):
    return auth_headers(get_auth_token(client, admin_a.username))


@pytest.fixture(scope='function')
def headers_b(client, admin_b):
    return auth_headers(get_auth_token(client, admin_b.username))
