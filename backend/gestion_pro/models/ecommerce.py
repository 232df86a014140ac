from __future__ import annotations

from ..extensions import db
from gestion_pro.time_utils import to_utc_z


PLATFORMS = ("Shopify", "WooCommerce", "Tienda Nube")
STOCK_SOURCES = ("global", "branch")
ORDER_STATUSES = ("RECEIVED", "PROCESSED", "STOCK_UNAVAILABLE", "ERROR")
SYNC_DIRECTIONS = ("pwa_to_ecom", "ecom_to_pwa")


class EcommerceIntegration(db.Model):
    """
    Connection to an online storefront.

    stock_source decides what stock is published:
    - "global": consolidated stock across every branch
    - "branch": stock of branch_id only

    Credentials are stored as given; the storefront API push is simulated and
    recorded in SyncLog.
    """
    __tablename__ = "ecommerce_integrations"
    __table_args__ = (
        db.UniqueConstraint("org_id", "platform", name="uq_ecommerce_integrations_org_platform"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    platform = db.Column(db.String(32), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=False)

    api_key = db.Column(db.String(255), nullable=True)
    api_secret = db.Column(db.String(255), nullable=True)
    store_url = db.Column(db.String(512), nullable=True)
    access_token = db.Column(db.String(512), nullable=True)

    stock_source = db.Column(db.String(16), nullable=False, default="global")
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id", ondelete="SET NULL"), nullable=True)
    sync_prices = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    branch = db.relationship("Branch")

    def to_dict(self, include_credentials: bool = False) -> dict:
        data = {
            "id": self.id,
            "org_id": self.org_id,
            "platform": self.platform,
            "is_active": self.is_active,
            "store_url": self.store_url,
            "stock_source": self.stock_source,
            "branch_id": self.branch_id,
            "sync_prices": self.sync_prices,
            "has_credentials": bool(self.api_key or self.access_token),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_credentials:
            data.update({
                "api_key": self.api_key,
                "api_secret": self.api_secret,
                "access_token": self.access_token,
            })
        return data


class EcommerceOrder(db.Model):
    """
    Incoming storefront order.

    LIFECYCLE: RECEIVED -> PROCESSED | STOCK_UNAVAILABLE | ERROR.
    An order never stays RECEIVED once ingestion returns.
    """
    __tablename__ = "ecommerce_orders"
    __table_args__ = (
        db.UniqueConstraint("org_id", "platform", "original_order_id", name="uq_ecommerce_orders_org_platform_ext"),
        db.Index("ix_ecommerce_orders_org_status", "org_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    platform = db.Column(db.String(32), nullable=False)
    original_order_id = db.Column(db.String(128), nullable=False)

    status = db.Column(db.String(24), nullable=False, default="RECEIVED")
    error_message = db.Column(db.Text, nullable=True)

    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)
    document_id = db.Column(db.Integer, db.ForeignKey("sale_documents.id"), nullable=True)

    received_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    lines = db.relationship(
        "EcommerceOrderLine",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="EcommerceOrderLine.id",
    )
    document = db.relationship("SaleDocument")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "platform": self.platform,
            "original_order_id": self.original_order_id,
            "status": self.status,
            "error_message": self.error_message,
            "branch_id": self.branch_id,
            "document_id": self.document_id,
            "lines": [line.to_dict() for line in self.lines],
            "received_at": to_utc_z(self.received_at),
            "processed_at": to_utc_z(self.processed_at) if self.processed_at else None,
        }


class EcommerceOrderLine(db.Model):
    __tablename__ = "ecommerce_order_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(
        db.Integer, db.ForeignKey("ecommerce_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {"product_id": self.product_id, "quantity": self.quantity}


class SyncLog(db.Model):
    """
    Append-only record of stock pushes and order pulls.

    direction: pwa_to_ecom (stock published) or ecom_to_pwa (order received).
    """
    __tablename__ = "sync_logs"
    __table_args__ = (
        db.Index("ix_sync_logs_org_created", "org_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    direction = db.Column(db.String(16), nullable=False)
    platform = db.Column(db.String(32), nullable=False)
    product_sku = db.Column(db.String(64), nullable=True)
    status = db.Column(db.String(16), nullable=False)  # success, error
    message = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "direction": self.direction,
            "platform": self.platform,
            "product_sku": self.product_sku,
            "status": self.status,
            "message": self.message,
            "created_at": to_utc_z(self.created_at),
        }
