from __future__ import annotations

from ..extensions import db
from gestion_pro.time_utils import to_utc_z


BASE_CURRENCIES = ("ARS", "USD")
PLANS = ("Emprendedor", "Comercios", "Pymes")


class Organization(db.Model):
    """
    Multi-tenant root: every tenant is an Organization.

    All branches, products, documents and users belong to exactly one
    organization. No data may cross organization boundaries.

    The business configuration (currency, plan, fiscal data, tax rate) lives
    here as explicit columns rather than a free-form config blob.
    """
    __tablename__ = "organizations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    base_currency = db.Column(db.String(3), nullable=False, default="ARS")
    active_plan = db.Column(db.String(32), nullable=False, default="Emprendedor")
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=2100)  # 2100 = 21% IVA

    business_name = db.Column(db.String(255), nullable=True)
    business_address = db.Column(db.String(255), nullable=True)
    business_phone = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Organization id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "base_currency": self.base_currency,
            "active_plan": self.active_plan,
            "tax_rate_bps": self.tax_rate_bps,
            "business_name": self.business_name,
            "business_address": self.business_address,
            "business_phone": self.business_phone,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Branch(db.Model):
    """
    Sales location (sucursal) holding its own stock.

    Branches partition the stock ledger. ``priority_order`` drives automatic
    e-commerce order assignment: lower values are tried first, ties broken by id.
    """
    __tablename__ = "branches"
    __table_args__ = (
        db.UniqueConstraint("org_id", "name", name="uq_branches_org_name"),
        db.Index("ix_branches_org_priority", "org_id", "priority_order", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    name = db.Column(db.String(120), nullable=False)
    address = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    email = db.Column(db.String(255), nullable=True)

    priority_order = db.Column(db.Integer, nullable=False, default=0)
    is_ecommerce_source = db.Column(db.Boolean, nullable=False, default=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    organization = db.relationship("Organization", backref=db.backref("branches", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Branch id={self.id} name={self.name!r} priority={self.priority_order}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "address": self.address,
            "phone": self.phone,
            "email": self.email,
            "priority_order": self.priority_order,
            "is_ecommerce_source": self.is_ecommerce_source,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
