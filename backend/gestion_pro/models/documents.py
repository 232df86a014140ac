from __future__ import annotations

from ..extensions import db
from gestion_pro.time_utils import to_utc_z


DOCUMENT_TYPES = ("INVOICE", "QUOTE", "RESERVATION")
DOCUMENT_STATUSES = ("PAID", "PENDING", "PARTIALLY_PAID", "CANCELLED")
CUSTOMER_KINDS = ("REGISTERED", "WALK_IN")

# Number prefix per document type: F-000001, P-000001, R-000001
DOCUMENT_PREFIXES = {
    "INVOICE": "F",
    "QUOTE": "P",
    "RESERVATION": "R",
}

WALK_IN_CUSTOMER_NAME = "Consumidor Final"
ON_ACCOUNT_PAYMENT_METHOD = "Cuenta corriente"


class SaleDocument(db.Model):
    """
    Sales document: invoice (factura), quote (presupuesto) or reservation.

    MULTI-TENANT: Scoped via org_id; branch_id must belong to the same org.

    SNAPSHOT: Customer identity and line items are copied at creation time.
    Later catalog or customer edits never alter a historical document.

    RECEIVABLES:
    - debt = total_cents - paid_amount_cents
    - only INVOICE documents carry debt
    - paid_amount_cents never exceeds total_cents
    """
    __tablename__ = "sale_documents"
    __table_args__ = (
        db.UniqueConstraint("org_id", "document_number", name="uq_sale_documents_org_number"),
        db.CheckConstraint("paid_amount_cents >= 0", name="paid_non_negative"),
        db.CheckConstraint("paid_amount_cents <= total_cents", name="paid_within_total"),
        db.Index("ix_sale_documents_org_type_status", "org_id", "document_type", "status"),
        db.Index("ix_sale_documents_org_customer", "org_id", "customer_id"),
        db.Index("ix_sale_documents_org_created", "org_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    document_type = db.Column(db.String(16), nullable=False)
    document_number = db.Column(db.String(32), nullable=False)

    # Customer snapshot
    customer_kind = db.Column(db.String(16), nullable=False, default="WALK_IN")
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id", ondelete="SET NULL"), nullable=True)
    customer_name = db.Column(db.String(255), nullable=False, default=WALK_IN_CUSTOMER_NAME)
    customer_cuit = db.Column(db.String(32), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(64), nullable=False)
    payment_currency = db.Column(db.String(3), nullable=False, default="ARS")
    exchange_rate = db.Column(db.Numeric(14, 4), nullable=True)

    status = db.Column(db.String(16), nullable=False, index=True)
    paid_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    branch = db.relationship("Branch", backref=db.backref("sale_documents", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("sale_documents", lazy=True))
    created_by = db.relationship("User", foreign_keys=[created_by_user_id])
    cancelled_by = db.relationship("User", foreign_keys=[cancelled_by_user_id])
    lines = db.relationship(
        "SaleDocumentLine",
        backref="document",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="SaleDocumentLine.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def debt_cents(self) -> int:
        if self.document_type != "INVOICE" or self.status == "CANCELLED":
            return 0
        return max(0, self.total_cents - self.paid_amount_cents)

    def __repr__(self) -> str:
        return f"<SaleDocument {self.document_number} type={self.document_type} status={self.status}>"

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "org_id": self.org_id,
            "branch_id": self.branch_id,
            "document_type": self.document_type,
            "document_number": self.document_number,
            "customer": {
                "kind": self.customer_kind,
                "id": self.customer_id,
                "name": self.customer_name,
                "cuit": self.customer_cuit,
                "email": self.customer_email,
            },
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "payment_currency": self.payment_currency,
            "exchange_rate": str(self.exchange_rate) if self.exchange_rate is not None else None,
            "status": self.status,
            "paid_amount_cents": self.paid_amount_cents,
            "debt_cents": self.debt_cents,
            "created_by_user_id": self.created_by_user_id,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class SaleDocumentLine(db.Model):
    """
    Snapshot of one sold item.

    product_sku/product_name are copied so the document renders the same
    after the product is renamed or deleted.
    """
    __tablename__ = "sale_document_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_id = db.Column(
        db.Integer, db.ForeignKey("sale_documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)

    product_sku = db.Column(db.String(64), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_id": self.document_id,
            "product_id": self.product_id,
            "product_sku": self.product_sku,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "subtotal_cents": self.subtotal_cents,
        }


class PaymentApplication(db.Model):
    """
    One portion of a receivable payment applied to an invoice.

    IMMUTABLE: Append-only. The document's paid_amount_cents is the running
    sum of its applications (plus any amount paid at creation).
    """
    __tablename__ = "payment_applications"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="amount_positive"),
        db.Index("ix_payment_applications_org_applied", "org_id", "applied_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    document_id = db.Column(db.Integer, db.ForeignKey("sale_documents.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    status_after = db.Column(db.String(16), nullable=False)

    applied_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    document = db.relationship("SaleDocument", backref=db.backref("payment_applications", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_id": self.document_id,
            "user_id": self.user_id,
            "amount_cents": self.amount_cents,
            "status_after": self.status_after,
            "applied_at": to_utc_z(self.applied_at),
        }


class DocumentSequence(db.Model):
    """
    Atomic per-organization document sequences.

    WHY: Concurrent branches of one tenant must never issue the same
    document number.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("org_id", "document_type", name="uq_doc_sequences_org_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    document_type = db.Column(db.String(16), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
