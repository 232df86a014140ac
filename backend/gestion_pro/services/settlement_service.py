# Overview: Accounts receivable: customer debt and payment allocation across invoices.

"""
Settlement Allocator

A payment received from a customer is spread across invoices the caller
selects, in the order given:

    remaining = amount
    for each document:
        skip if not INVOICE, CANCELLED, or debt <= 0
        apply = min(remaining, debt)
        paid += apply; status = PAID if debt hits 0 else PARTIALLY_PAID
        commit
        stop when remaining == 0

Every id must name a document of the organization; a missing one raises
NotFound before anything is applied.

INVARIANTS:
- Σ applied + leftover == amount
- 0 <= paid_amount_cents <= total_cents on every document
- Each document update commits on its own. A failure part-way leaves the
  earlier documents paid; the caller receives AllocationPartialFailure
  listing what was applied.
- Leftover (over-payment) is reported, never stored.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy import func

from ..extensions import db
from ..models import SaleDocument, PaymentApplication, Customer
from ..errors import AllocationPartialFailure, NotFound
from ..validation import coerce_int, require_positive_int
from gestion_pro.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry


STATUS_PAID = "PAID"
STATUS_PENDING = "PENDING"
STATUS_PARTIALLY_PAID = "PARTIALLY_PAID"
STATUS_CANCELLED = "CANCELLED"


@dataclass
class AllocationResult:
    amount_cents: int
    applied: list[dict] = field(default_factory=list)
    skipped: list[dict] = field(default_factory=list)
    leftover_cents: int = 0

    @property
    def applied_cents(self) -> int:
        return sum(a["amount_cents"] for a in self.applied)

    def to_dict(self) -> dict:
        return {
            "amount_cents": self.amount_cents,
            "applied_cents": self.applied_cents,
            "leftover_cents": self.leftover_cents,
            "applied": self.applied,
            "skipped": self.skipped,
        }


def _open_invoice_filter(query, org_id: int):
    return query.filter(
        SaleDocument.org_id == org_id,
        SaleDocument.document_type == "INVOICE",
        SaleDocument.status.notin_([STATUS_PAID, STATUS_CANCELLED]),
    )


def customer_debt(org_id: int, customer_id: int) -> int:
    """Σ (total - paid) over the customer's unpaid, non-cancelled invoices."""
    debt = _open_invoice_filter(
        db.session.query(
            func.coalesce(func.sum(SaleDocument.total_cents - SaleDocument.paid_amount_cents), 0)
        ),
        org_id,
    ).filter(SaleDocument.customer_id == customer_id).scalar()
    return int(debt or 0)


def list_open_invoices(org_id: int, customer_id: int) -> list[SaleDocument]:
    """Oldest first: the order a cashier usually settles them in."""
    return (
        _open_invoice_filter(db.session.query(SaleDocument), org_id)
        .filter(SaleDocument.customer_id == customer_id)
        .order_by(SaleDocument.created_at.asc(), SaleDocument.id.asc())
        .all()
    )


def list_debtors(org_id: int) -> list[dict]:
    """Customers with positive debt, largest first."""
    debt_expr = func.sum(SaleDocument.total_cents - SaleDocument.paid_amount_cents)
    rows = (
        _open_invoice_filter(
            db.session.query(Customer, debt_expr.label("debt"), func.count(SaleDocument.id))
            .select_from(SaleDocument)
            .join(Customer, Customer.id == SaleDocument.customer_id),
            org_id,
        )
        .group_by(Customer.id)
        .having(debt_expr > 0)
        .order_by(debt_expr.desc(), Customer.id.asc())
        .all()
    )
    return [
        {
            "customer": customer.to_dict(),
            "debt_cents": int(debt),
            "open_invoices": int(count),
        }
        for customer, debt, count in rows
    ]


def _skip_reason(doc: SaleDocument) -> str | None:
    if doc.document_type != "INVOICE":
        return f"{doc.document_type} documents carry no debt"
    if doc.status == STATUS_CANCELLED:
        return "cancelled"
    if doc.total_cents - doc.paid_amount_cents <= 0:
        return "no outstanding debt"
    return None


def _apply_to_document(org_id: int, document_id: int, remaining: int, user_id: int | None):
    """
    Apply up to ``remaining`` cents to one document and commit.

    Returns (applied_dict | None, skip_reason | None).
    """
    def _op():
        doc = lock_for_update(
            db.session.query(SaleDocument).filter_by(id=document_id, org_id=org_id)
        ).first()

        if doc is None:
            raise NotFound("SaleDocument", document_id)

        reason = _skip_reason(doc)
        if reason:
            db.session.rollback()
            return None, reason

        debt = doc.total_cents - doc.paid_amount_cents
        amount = min(remaining, debt)
        doc.paid_amount_cents += amount
        doc.status = STATUS_PAID if doc.paid_amount_cents >= doc.total_cents else STATUS_PARTIALLY_PAID

        application = PaymentApplication(
            org_id=org_id,
            document_id=doc.id,
            user_id=user_id,
            amount_cents=amount,
            status_after=doc.status,
            applied_at=utcnow(),
        )
        db.session.add(application)
        db.session.commit()

        return {
            "document_id": doc.id,
            "document_number": doc.document_number,
            "amount_cents": amount,
            "status": doc.status,
            "remaining_debt_cents": doc.total_cents - doc.paid_amount_cents,
        }, None

    return run_with_retry(_op)


def _require_documents(org_id: int, ids: list[int]) -> None:
    found = {
        row.id
        for row in db.session.query(SaleDocument.id).filter(
            SaleDocument.org_id == org_id, SaleDocument.id.in_(ids)
        )
    }
    for document_id in ids:
        if document_id not in found:
            raise NotFound("SaleDocument", document_id)


def apply_payment(org_id: int, amount_cents, document_ids: list, user_id: int | None = None) -> AllocationResult:
    """
    Spread ``amount_cents`` over ``document_ids`` in the given order.

    Raises:
        ValidationError: amount not a positive integer, bad document id
        NotFound: a document id is missing or belongs to another organization;
            nothing is applied
        AllocationPartialFailure: a document update failed; earlier ones stand
    """
    amount_cents = require_positive_int("amount_cents", amount_cents)
    ids = [coerce_int("document_id", d) for d in (document_ids or [])]
    _require_documents(org_id, ids)

    result = AllocationResult(amount_cents=amount_cents)
    remaining = amount_cents

    for document_id in ids:
        if remaining <= 0:
            break
        try:
            applied, reason = _apply_to_document(org_id, document_id, remaining, user_id)
        except Exception as exc:
            db.session.rollback()
            raise AllocationPartialFailure(document_id, list(result.applied), exc) from exc

        if applied is None:
            result.skipped.append({"document_id": document_id, "reason": reason})
            continue

        result.applied.append(applied)
        remaining -= applied["amount_cents"]

    result.leftover_cents = remaining
    return result


def list_applications(org_id: int, document_id: int) -> list[PaymentApplication]:
    doc = db.session.query(SaleDocument).filter_by(id=document_id, org_id=org_id).first()
    if doc is None:
        raise NotFound("SaleDocument", document_id)
    return (
        db.session.query(PaymentApplication)
        .filter_by(org_id=org_id, document_id=document_id)
        .order_by(PaymentApplication.id.asc())
        .all()
    )
