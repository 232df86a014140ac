from __future__ import annotations

from ..extensions import db
from gestion_pro.time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data.

    MULTI-TENANT: Products are scoped to organizations via org_id.

    SKU is the natural key for bulk import/merge: UniqueConstraint("org_id", "sku").
    Prices and quantities live per branch in BranchStock, not here.

    Products referenced by a sale document are deactivated rather than deleted;
    deleting an unreferenced product cascades to its stock rows.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("org_id", "sku", name="uq_products_org_sku"),
        db.Index("ix_products_org_name", "org_id", "name"),
        db.Index("ix_products_org_active", "org_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(120), nullable=True)
    unit = db.Column(db.String(32), nullable=False, default="unidad")
    image_url = db.Column(db.String(1024), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    organization = db.relationship("Organization", backref=db.backref("products", lazy=True))
    stock_rows = db.relationship(
        "BranchStock",
        backref="product",
        lazy=True,
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} org_id={self.org_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "unit": self.unit,
            "image_url": self.image_url,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class BranchStock(db.Model):
    """
    Stock ledger unit: one row per (product, branch).

    INVARIANT: stock >= 0 after every committed mutation. The CHECK constraint
    backs up the conditional UPDATE used by the stock ledger service; client
    side checks are advisory only.

    No version_id here: sales mutate stock through single UPDATE statements,
    never by read-modify-write of the ORM object.
    """
    __tablename__ = "branch_stock"
    __table_args__ = (
        db.UniqueConstraint("product_id", "branch_id", name="uq_branch_stock_product_branch"),
        db.CheckConstraint("stock >= 0", name="stock_non_negative"),
        db.CheckConstraint("min_stock >= 0", name="min_stock_non_negative"),
        db.Index("ix_branch_stock_org_product", "org_id", "product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    product_id = db.Column(
        db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    branch_id = db.Column(
        db.Integer, db.ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True
    )

    stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=0)
    cost_price_cents = db.Column(db.Integer, nullable=True)
    sale_price_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    branch = db.relationship(
        "Branch",
        backref=db.backref("stock_rows", lazy=True, cascade="all, delete-orphan"),
    )

    @property
    def is_low(self) -> bool:
        return self.stock <= self.min_stock

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "product_id": self.product_id,
            "branch_id": self.branch_id,
            "stock": self.stock,
            "min_stock": self.min_stock,
            "cost_price_cents": self.cost_price_cents,
            "sale_price_cents": self.sale_price_cents,
            "is_low": self.is_low,
            "updated_at": to_utc_z(self.updated_at),
        }
