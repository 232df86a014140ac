# Overview: Customers and suppliers (CRUD, org-scoped).

from __future__ import annotations

from ..extensions import db
from ..models import Customer, Supplier, SaleDocument
from ..validation import ModelValidationPolicy, validate_payload


class PartyError(Exception):
    """Raised when a customer/supplier operation fails."""
    pass


CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone", "address", "cuit", "is_active"},
    required_on_create={"name"},
)

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "contact_person", "email", "phone", "address", "cuit", "notes"},
    required_on_create={"name"},
)


def _normalize_email(patch: dict) -> dict:
    if patch.get("email"):
        patch["email"] = patch["email"].lower()
    elif "email" in patch:
        patch["email"] = None
    return patch


# =============================================================================
# CUSTOMERS
# =============================================================================

def list_customers(org_id: int, search: str | None = None, include_inactive: bool = False) -> list[Customer]:
    query = db.session.query(Customer).filter(Customer.org_id == org_id)
    if not include_inactive:
        query = query.filter(Customer.is_active.is_(True))
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(
            Customer.name.ilike(like),
            Customer.email.ilike(like),
            Customer.cuit.ilike(like),
        ))
    return query.order_by(Customer.name.asc(), Customer.id.asc()).all()


def get_customer(org_id: int, customer_id: int) -> Customer:
    customer = db.session.query(Customer).filter_by(id=customer_id, org_id=org_id).first()
    if not customer:
        raise PartyError("Customer not found")
    return customer


def create_customer(org_id: int, payload: dict) -> Customer:
    patch = _normalize_email(validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False))
    customer = Customer(org_id=org_id, **patch)
    db.session.add(customer)
    db.session.commit()
    return customer


def update_customer(org_id: int, customer_id: int, payload: dict) -> Customer:
    customer = get_customer(org_id, customer_id)
    patch = _normalize_email(validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True))
    for key, value in patch.items():
        setattr(customer, key, value)
    db.session.commit()
    return customer


def delete_customer(org_id: int, customer_id: int) -> None:
    """
    Delete a customer with no open debt.

    Documents keep their customer snapshot; their customer_id link is cleared.
    """
    customer = get_customer(org_id, customer_id)

    open_debt = db.session.query(SaleDocument.id).filter(
        SaleDocument.org_id == org_id,
        SaleDocument.customer_id == customer_id,
        SaleDocument.document_type == "INVOICE",
        SaleDocument.status.in_(["PENDING", "PARTIALLY_PAID"]),
    ).first()
    if open_debt:
        raise PartyError("Customer has unpaid invoices and cannot be deleted")

    db.session.query(SaleDocument).filter(
        SaleDocument.org_id == org_id,
        SaleDocument.customer_id == customer_id,
    ).update({SaleDocument.customer_id: None}, synchronize_session=False)
    db.session.delete(customer)
    db.session.commit()


# =============================================================================
# SUPPLIERS
# =============================================================================

def list_suppliers(org_id: int) -> list[Supplier]:
    return (
        db.session.query(Supplier)
        .filter(Supplier.org_id == org_id)
        .order_by(Supplier.name.asc(), Supplier.id.asc())
        .all()
    )


def get_supplier(org_id: int, supplier_id: int) -> Supplier:
    supplier = db.session.query(Supplier).filter_by(id=supplier_id, org_id=org_id).first()
    if not supplier:
        raise PartyError("Supplier not found")
    return supplier


def create_supplier(org_id: int, payload: dict) -> Supplier:
    patch = _normalize_email(validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False))
    supplier = Supplier(org_id=org_id, **patch)
    db.session.add(supplier)
    db.session.commit()
    return supplier


def update_supplier(org_id: int, supplier_id: int, payload: dict) -> Supplier:
    supplier = get_supplier(org_id, supplier_id)
    patch = _normalize_email(validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=True))
    for key, value in patch.items():
        setattr(supplier, key, value)
    db.session.commit()
    return supplier


def delete_supplier(org_id: int, supplier_id: int) -> None:
    supplier = get_supplier(org_id, supplier_id)
    db.session.delete(supplier)
    db.session.commit()
