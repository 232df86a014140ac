from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Branch, EcommerceIntegration, SaleDocument
from ..validation import coerce_int
from .concurrency import lock_for_update, run_with_retry


class BranchError(Exception):
    """Raised when branch operations fail."""
    pass


BRANCH_FIELDS = {"name", "address", "phone", "email", "priority_order", "is_ecommerce_source"}


def _apply(branch: Branch, data: dict) -> None:
    unknown = sorted(set(data) - BRANCH_FIELDS)
    if unknown:
        raise BranchError(f"Field not allowed: {unknown[0]}")

    if "name" in data:
        name = (data["name"] or "").strip()
        if not name:
            raise BranchError("Branch name is required")
        branch.name = name
    for key in ("address", "phone", "email"):
        if key in data:
            value = data[key]
            if value is not None:
                value = str(value).strip() or None
            setattr(branch, key, value)
    if "priority_order" in data:
        branch.priority_order = coerce_int("priority_order", data["priority_order"])
    if "is_ecommerce_source" in data:
        branch.is_ecommerce_source = bool(data["is_ecommerce_source"])


def create_branch(org_id: int, data: dict) -> Branch:
    """
    Create a branch. Without an explicit priority_order it goes last
    (max existing priority + 1).
    """
    def _op():
        if not (data or {}).get("name"):
            raise BranchError("Branch name is required")

        branch = Branch(org_id=org_id)
        _apply(branch, data)
        if "priority_order" not in data:
            current_max = db.session.query(db.func.max(Branch.priority_order)).filter_by(org_id=org_id).scalar()
            branch.priority_order = 0 if current_max is None else current_max + 1

        db.session.add(branch)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise BranchError(f"Branch {branch.name!r} already exists")
        return branch

    return run_with_retry(_op)


def update_branch(org_id: int, branch_id: int, data: dict) -> Branch:
    def _op():
        branch = lock_for_update(db.session.query(Branch).filter_by(id=branch_id, org_id=org_id)).first()
        if not branch:
            raise BranchError("Branch not found")

        _apply(branch, data or {})
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise BranchError("Another branch already uses that name")
        return branch

    return run_with_retry(_op)


def delete_branch(org_id: int, branch_id: int) -> None:
    """
    Delete a branch and its stock rows.

    Refused when sales documents reference the branch or an e-commerce
    integration publishes its stock.
    """
    branch = db.session.query(Branch).filter_by(id=branch_id, org_id=org_id).first()
    if not branch:
        raise BranchError("Branch not found")

    if db.session.query(SaleDocument.id).filter_by(branch_id=branch_id).first():
        raise BranchError("Branch has sales documents and cannot be deleted")
    if db.session.query(EcommerceIntegration.id).filter_by(org_id=org_id, branch_id=branch_id).first():
        raise BranchError("Branch is the stock source of an e-commerce integration and cannot be deleted")

    db.session.delete(branch)
    db.session.commit()


def get_branch(org_id: int, branch_id: int) -> Branch | None:
    return db.session.query(Branch).filter_by(id=branch_id, org_id=org_id).first()


def list_branches(org_id: int) -> list[Branch]:
    """In assignment order: priority_order, then id."""
    return (
        db.session.query(Branch)
        .filter_by(org_id=org_id)
        .order_by(Branch.priority_order.asc(), Branch.id.asc())
        .all()
    )


def reorder_branches(org_id: int, branch_ids: list[int]) -> list[Branch]:
    """Set priority_order to each branch's position in ``branch_ids``."""
    def _op():
        branches = {
            b.id: b
            for b in lock_for_update(db.session.query(Branch).filter_by(org_id=org_id)).all()
        }
        ids = [coerce_int("branch_id", b) for b in branch_ids]
        if sorted(ids) != sorted(branches):
            raise BranchError("branch_ids must list every branch of the organization exactly once")

        for position, bid in enumerate(ids):
            branches[bid].priority_order = position
        db.session.commit()
        return [branches[bid] for bid in ids]

    return run_with_retry(_op)
