# Overview: Sales documents (invoice, quote, reservation): creation, numbering, cancellation, queries.

"""
Sales Document Service

DOCUMENT RULES:
- INVOICE and RESERVATION take stock from the branch through the stock
  ledger; QUOTE never touches stock.
- Status at creation:
    INVOICE paid "Cuenta corriente"  -> PENDING, paid 0 (becomes receivable)
    any other INVOICE, QUOTE, RESERVATION -> PAID, paid = total
- Totals: subtotal = Σ qty * unit price; tax = subtotal * tax_rate_bps / 10000
  rounded half-up; total = subtotal + tax.
- Customer and lines are snapshotted; walk-in sales use "Consumidor Final".

FAILURE HANDLING:
Stock decrements commit one by one. If a line fails, or the document insert
fails after stock was taken, every applied decrement is reversed before the
error propagates. No document is left without its stock movement and no
stock movement is left without its document.

Stock is published to the storefronts after the commit. A failed push
writes an error SyncLog and does not affect the document.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import (
    SaleDocument,
    SaleDocumentLine,
    DocumentSequence,
    Product,
    BranchStock,
    Customer,
    Organization,
    Branch,
)
from ..models.documents import (
    DOCUMENT_TYPES,
    DOCUMENT_PREFIXES,
    WALK_IN_CUSTOMER_NAME,
    ON_ACCOUNT_PAYMENT_METHOD,
)
from ..errors import NotFound
from ..validation import ValidationError, coerce_int, require_positive_int, MAX_PRICE_CENTS
from gestion_pro.time_utils import utcnow
from . import stock_ledger_service
from .concurrency import lock_for_update, run_with_retry
from .exchange_rate_service import convert_total, fetch_rate
from .tenant_service import get_default_branch


PAYMENT_METHODS = (
    "Efectivo",
    "Tarjeta de débito",
    "Tarjeta de crédito",
    "Transferencia bancaria",
    ON_ACCOUNT_PAYMENT_METHOD,
    "Cheque físico",
    "E-check",
    "A crédito / financiación",
    "E-commerce",
    "Pago combinado",
)
CURRENCIES = ("ARS", "USD")
STOCK_TAKING_TYPES = ("INVOICE", "RESERVATION")

__all__ = [
    "SalesError",
    "create_document",
    "cancel_reservation",
    "get_document",
    "list_documents",
    "convert_total",
    "compute_tax_cents",
    "next_document_number",
]


class SalesError(Exception):
    """Raised for sales document rule violations (wrong type, already cancelled...)."""
    pass


def compute_tax_cents(subtotal_cents: int, tax_rate_bps: int) -> int:
    """subtotal * bps / 10000, rounded half-up (amounts are never negative)."""
    return (subtotal_cents * tax_rate_bps + 5000) // 10000


def next_document_number(*, org_id: int, document_type: str, pad: int = 6) -> str:
    """
    Allocate the next number for (org, type), e.g. ``F-000042``.

    The sequence row is bumped with one UPDATE; the first document of a type
    inserts the row, and a concurrent first insert falls back to the UPDATE.
    Runs inside the caller's transaction (flush only).
    """
    prefix = DOCUMENT_PREFIXES[document_type]
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.org_id == org_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    if db.session.execute(stmt).rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(org_id=org_id, document_type=document_type)
            .scalar()
        )
        number = current - 1
    else:
        db.session.add(DocumentSequence(org_id=org_id, document_type=document_type, next_number=2))
        try:
            db.session.flush()
            number = 1
        except IntegrityError:
            # Another writer created the row first; nothing else is pending yet
            db.session.rollback()
            if not db.session.execute(stmt).rowcount:
                raise SalesError("Failed to allocate document number")
            current = (
                db.session.query(DocumentSequence.next_number)
                .filter_by(org_id=org_id, document_type=document_type)
                .scalar()
            )
            number = current - 1

    return f"{prefix}-{number:0{pad}d}"


def _resolve_branch(org_id: int, branch_id) -> Branch:
    if branch_id is None:
        branch = get_default_branch(org_id)
        if branch is None:
            raise NotFound("Branch", message="Organization has no branches")
        return branch

    branch_id = coerce_int("branch_id", branch_id)
    branch = db.session.get(Branch, branch_id)
    if branch is None or branch.org_id != org_id:
        raise NotFound("Branch", branch_id)
    return branch


def _customer_snapshot(org_id: int, customer_id) -> dict:
    if customer_id is None:
        return {
            "customer_kind": "WALK_IN",
            "customer_id": None,
            "customer_name": WALK_IN_CUSTOMER_NAME,
            "customer_cuit": None,
            "customer_email": None,
        }

    customer_id = coerce_int("customer_id", customer_id)
    customer = db.session.get(Customer, customer_id)
    if customer is None or customer.org_id != org_id:
        raise NotFound("Customer", customer_id)
    return {
        "customer_kind": "REGISTERED",
        "customer_id": customer.id,
        "customer_name": customer.name,
        "customer_cuit": customer.cuit,
        "customer_email": customer.email,
    }


def _price_lines(org_id: int, branch_id: int, items) -> list[dict]:
    """Validate items and attach product snapshot + unit price."""
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    priced = []
    for item in items:
        if not isinstance(item, dict):
            raise ValidationError("each item must be an object")
        if "product_id" not in item:
            raise ValidationError("product_id is required for each item")

        product_id = coerce_int("product_id", item["product_id"])
        quantity = require_positive_int("quantity", item.get("quantity"))

        product = db.session.get(Product, product_id)
        if product is None or product.org_id != org_id:
            raise NotFound("Product", product_id)
        if not product.is_active:
            raise ValidationError(f"Product {product.sku} is inactive")

        unit_price = item.get("unit_price_cents")
        if unit_price is None:
            row = db.session.query(BranchStock).filter_by(
                org_id=org_id, product_id=product_id, branch_id=branch_id
            ).first()
            if row is None:
                raise NotFound(
                    "BranchStock",
                    f"{product_id}/{branch_id}",
                    message=f"Product {product.sku} is not stocked in branch {branch_id}",
                )
            unit_price = row.sale_price_cents
        else:
            unit_price = coerce_int("unit_price_cents", unit_price)
            if unit_price < 0 or unit_price > MAX_PRICE_CENTS:
                raise ValidationError(f"unit_price_cents must be between 0 and {MAX_PRICE_CENTS}")

        priced.append({
            "product_id": product.id,
            "product_sku": product.sku,
            "product_name": product.name,
            "quantity": quantity,
            "unit_price_cents": unit_price,
            "subtotal_cents": unit_price * quantity,
        })
    return priced


def _resolve_exchange_rate(base_currency: str, payment_currency: str, exchange_rate):
    if payment_currency == base_currency:
        return None
    if exchange_rate is None:
        return fetch_rate()
    try:
        rate = Decimal(str(exchange_rate))
    except InvalidOperation:
        raise ValidationError("exchange_rate must be a number")
    if rate <= 0:
        raise ValidationError("exchange_rate must be > 0")
    return rate


def create_document(
    org_id: int,
    user_id: int | None,
    document_type: str,
    items: list[dict],
    *,
    branch_id=None,
    customer_id=None,
    payment_method: str = "Efectivo",
    payment_currency: str | None = None,
    exchange_rate=None,
    sync_stock: bool = True,
) -> SaleDocument:
    """
    Issue an invoice, quote or reservation.

    Args:
        items: [{"product_id", "quantity", optional "unit_price_cents"}]
        branch_id: defaults to the tenant's first branch by priority
        customer_id: None for a walk-in ("Consumidor Final") sale
        payment_currency: defaults to the organization's base currency
        exchange_rate: looked up when paying in a foreign currency and omitted

    Raises:
        ValidationError, NotFound, InsufficientStock, SalesError
    """
    document_type = (document_type or "").upper()
    if document_type not in DOCUMENT_TYPES:
        raise ValidationError(f"document_type must be one of {', '.join(DOCUMENT_TYPES)}")
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"Invalid payment method: {payment_method}")

    org = db.session.get(Organization, org_id)
    if org is None:
        raise NotFound("Organization", org_id)

    payment_currency = (payment_currency or org.base_currency).upper()
    if payment_currency not in CURRENCIES:
        raise ValidationError(f"payment_currency must be one of {', '.join(CURRENCIES)}")

    branch = _resolve_branch(org_id, branch_id)
    customer = _customer_snapshot(org_id, customer_id)
    if payment_method == ON_ACCOUNT_PAYMENT_METHOD and customer["customer_kind"] != "REGISTERED":
        raise ValidationError("Sales on account require a registered customer")

    lines = _price_lines(org_id, branch.id, items)
    rate = _resolve_exchange_rate(org.base_currency, payment_currency, exchange_rate)

    subtotal = sum(line["subtotal_cents"] for line in lines)
    tax = compute_tax_cents(subtotal, org.tax_rate_bps)
    total = subtotal + tax

    if document_type == "INVOICE" and payment_method == ON_ACCOUNT_PAYMENT_METHOD:
        status, paid = "PENDING", 0
    else:
        status, paid = "PAID", total

    takes_stock = document_type in STOCK_TAKING_TYPES
    movements = [(line["product_id"], line["quantity"]) for line in lines]
    if takes_stock:
        stock_ledger_service.decrement_many(org_id, branch.id, movements)

    try:
        document = SaleDocument(
            org_id=org_id,
            branch_id=branch.id,
            document_type=document_type,
            document_number=next_document_number(org_id=org_id, document_type=document_type),
            subtotal_cents=subtotal,
            tax_cents=tax,
            total_cents=total,
            payment_method=payment_method,
            payment_currency=payment_currency,
            exchange_rate=rate,
            status=status,
            paid_amount_cents=paid,
            created_by_user_id=user_id,
            **customer,
        )
        document.lines = [SaleDocumentLine(**line) for line in lines]
        db.session.add(document)
        db.session.commit()
    except Exception:
        db.session.rollback()
        if takes_stock:
            stock_ledger_service.restore(org_id, branch.id, movements)
        raise

    if takes_stock and sync_stock:
        _publish_stock(org_id, {pid for pid, _qty in movements})

    return document


def cancel_reservation(org_id: int, document_id, user_id: int | None = None) -> SaleDocument:
    """
    Cancel a RESERVATION and give its stock back to the branch.

    Each line is incremented; if an increment fails the lines already
    restored are taken again and the reservation stays as it was.
    """
    document_id = coerce_int("document_id", document_id)
    document = db.session.query(SaleDocument).filter_by(id=document_id, org_id=org_id).first()
    if document is None:
        raise NotFound("SaleDocument", document_id)
    if document.document_type != "RESERVATION":
        raise SalesError("Only reservations can be cancelled")
    if document.status == "CANCELLED":
        raise SalesError("Reservation is already cancelled")

    branch_id = document.branch_id
    movements = [(line.product_id, line.quantity) for line in document.lines if line.product_id is not None]

    restored: list[tuple[int, int]] = []
    try:
        for product_id, quantity in movements:
            stock_ledger_service.increment(org_id, product_id, branch_id, quantity)
            restored.append((product_id, quantity))
    except Exception:
        db.session.rollback()
        for product_id, quantity in reversed(restored):
            stock_ledger_service.decrement(org_id, product_id, branch_id, quantity)
        raise

    def _op():
        doc = lock_for_update(db.session.query(SaleDocument).filter_by(id=document_id)).first()
        doc.status = "CANCELLED"
        doc.cancelled_at = utcnow()
        doc.cancelled_by_user_id = user_id
        db.session.commit()
        return doc

    document = run_with_retry(_op)
    _publish_stock(org_id, {pid for pid, _qty in movements})
    return document


def get_document(org_id: int, document_id) -> SaleDocument:
    document_id = coerce_int("document_id", document_id)
    document = db.session.query(SaleDocument).filter_by(id=document_id, org_id=org_id).first()
    if document is None:
        raise NotFound("SaleDocument", document_id)
    return document


def list_documents(
    org_id: int,
    *,
    document_type: str | None = None,
    status: str | None = None,
    customer_id: int | None = None,
    branch_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[SaleDocument], int]:
    """Newest first. Returns (page, total_count)."""
    query = db.session.query(SaleDocument).filter(SaleDocument.org_id == org_id)
    if document_type:
        query = query.filter(SaleDocument.document_type == document_type.upper())
    if status:
        query = query.filter(SaleDocument.status == status.upper())
    if customer_id is not None:
        query = query.filter(SaleDocument.customer_id == customer_id)
    if branch_id is not None:
        query = query.filter(SaleDocument.branch_id == branch_id)

    total = query.count()
    page = (
        query.order_by(SaleDocument.created_at.desc(), SaleDocument.id.desc())
        .limit(min(max(limit, 1), 500))
        .offset(max(offset, 0))
        .all()
    )
    return page, total


def _publish_stock(org_id: int, product_ids) -> None:
    from .ecommerce_service import publish_stock

    publish_stock(org_id, product_ids)
