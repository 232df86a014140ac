# backend/gestion_pro/services/product_service.py
"""
Products Service

MULTI-TENANT: Every operation takes org_id; SKU is unique per organization.

Product edits carry their per-branch stock rows ("stocks"). Those rows go
through stock_ledger_service.upsert_for_product in the same transaction as
the product change, so a failed edit leaves neither half applied.

BULK IMPORT:
Rows are matched to existing products by SKU. conflict_resolution decides
what happens on a match:
- "overwrite": update the product and its stock in the default branch
- "skip": leave the existing product untouched
Stock of imported rows always goes to the tenant's default branch (lowest
priority_order), so at least one branch must exist.
"""
from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, SaleDocumentLine
from ..errors import NotFound
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    ValidationError,
    coerce_int,
    validate_payload,
)
from . import stock_ledger_service
from .tenant_service import get_default_branch


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "name", "description", "category", "unit", "image_url", "is_active"},
    required_on_create={"sku", "name"},
)

CONFLICT_RESOLUTIONS = ("overwrite", "skip")


def _split_payload(payload: dict | None) -> tuple[dict, list | None]:
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    payload = dict(payload)
    stocks = payload.pop("stocks", None)
    if stocks is not None and not isinstance(stocks, list):
        raise ValidationError("stocks must be a list")
    return payload, stocks


def list_products(
    org_id: int,
    *,
    search: str | None = None,
    include_inactive: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Tenant-scoped listing; each item carries its consolidated stock.

    Without ``page`` returns everything.
    """
    query = db.session.query(Product).filter(Product.org_id == org_id)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(Product.name.ilike(like), Product.sku.ilike(like)))
    query = query.order_by(Product.name.asc(), Product.id.asc())

    def _item(p: Product) -> dict:
        data = p.to_dict()
        data["consolidated_stock"] = sum(row.stock for row in p.stock_rows)
        return data

    if page is None:
        products = query.all()
        return {"items": [_item(p) for p in products], "count": len(products)}

    per_page = min(per_page or 20, 100)
    page = max(page, 1)
    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    products = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [_item(p) for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_product(org_id: int, product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id, org_id=org_id).first()
    if product is None:
        raise NotFound("Product", product_id)
    return product


def create_product(org_id: int, payload: dict) -> Product:
    """
    Create a product with optional per-branch stock rows.

    payload: product fields plus optional "stocks": [{branch_id, stock,
    min_stock, cost_price_cents, sale_price_cents}].

    Raises ValidationError, ConflictError (duplicate SKU), NotFound (branch).
    """
    fields, stocks = _split_payload(payload)
    patch = validate_payload(model=Product, payload=fields, policy=PRODUCT_POLICY, partial=False)

    if db.session.query(Product.id).filter_by(org_id=org_id, sku=patch["sku"]).first():
        raise ConflictError(f"SKU {patch['sku']} already exists")

    product = Product(org_id=org_id, **patch)
    db.session.add(product)
    try:
        db.session.flush()
        if stocks:
            stock_ledger_service.upsert_for_product(org_id, product.id, stocks)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"SKU {patch['sku']} already exists")
    except Exception:
        db.session.rollback()
        raise
    if stocks:
        _publish_stock(org_id, product.id)
    return product


def update_product(org_id: int, product_id: int, payload: dict) -> Product:
    """
    Patch product fields and upsert the stock rows that were sent.

    Stock rows of branches not listed are left as they are.
    """
    product = get_product(org_id, product_id)
    fields, stocks = _split_payload(payload)
    patch = validate_payload(model=Product, payload=fields, policy=PRODUCT_POLICY, partial=True)

    if "sku" in patch and patch["sku"] != product.sku:
        clash = db.session.query(Product.id).filter(
            Product.org_id == org_id, Product.sku == patch["sku"], Product.id != product_id
        ).first()
        if clash:
            raise ConflictError(f"SKU {patch['sku']} already exists")

    try:
        for key, value in patch.items():
            setattr(product, key, value)
        if stocks is not None:
            stock_ledger_service.upsert_for_product(org_id, product.id, stocks)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    if stocks:
        _publish_stock(org_id, product.id)
    return product


def delete_product(org_id: int, product_id: int) -> dict:
    """
    Delete a product, or deactivate it when sales documents reference it.

    Returns {"deleted": bool, "deactivated": bool}.
    """
    product = get_product(org_id, product_id)

    referenced = db.session.query(SaleDocumentLine.id).filter_by(product_id=product_id).first()
    if referenced:
        product.is_active = False
        db.session.commit()
        return {"deleted": False, "deactivated": True}

    db.session.delete(product)
    db.session.commit()
    return {"deleted": True, "deactivated": False}


def set_product_active(org_id: int, product_id: int, is_active: bool) -> Product:
    product = get_product(org_id, product_id)
    product.is_active = bool(is_active)
    db.session.commit()
    return product


def _import_stock_row(row: dict, branch_id: int) -> dict:
    return {
        "branch_id": branch_id,
        "stock": row.get("stock", 0),
        "min_stock": row.get("min_stock", 0),
        "cost_price_cents": row.get("cost_price_cents"),
        "sale_price_cents": row.get("sale_price_cents", 0),
    }


def import_products(org_id: int, rows: list[dict], conflict_resolution: str = "skip") -> dict:
    """
    Upsert already-parsed rows by SKU.

    Each row: sku, name, optional description/category/unit and stock,
    min_stock, cost_price_cents, sale_price_cents for the default branch.
    Rows are independent: a bad row is reported and the rest continue.

    Returns {"created", "updated", "skipped", "errors": [{"row", "sku", "error"}]}.
    """
    if conflict_resolution not in CONFLICT_RESOLUTIONS:
        raise ValidationError(f"conflict_resolution must be one of {', '.join(CONFLICT_RESOLUTIONS)}")
    if not isinstance(rows, list):
        raise ValidationError("rows must be a list")

    branch = get_default_branch(org_id)
    if branch is None:
        raise NotFound("Branch", message="Create a branch before importing products")
    branch_id = branch.id

    summary = {"created": 0, "updated": 0, "skipped": 0, "errors": []}

    for index, row in enumerate(rows, start=1):
        sku = row.get("sku") if isinstance(row, dict) else None
        try:
            if not isinstance(row, dict):
                raise ValidationError("row must be an object")

            fields = {
                k: row[k]
                for k in ("sku", "name", "description", "category", "unit")
                if k in row and row[k] is not None
            }
            existing = (
                db.session.query(Product)
                .filter_by(org_id=org_id, sku=str(fields.get("sku", "")).strip())
                .first()
            )

            if existing is not None:
                if conflict_resolution == "skip":
                    summary["skipped"] += 1
                    continue
                patch = validate_payload(model=Product, payload=fields, policy=PRODUCT_POLICY, partial=True)
                for key, value in patch.items():
                    setattr(existing, key, value)
                stock_ledger_service.upsert_for_product(org_id, existing.id, [_import_stock_row(row, branch_id)])
                db.session.commit()
                summary["updated"] += 1
            else:
                patch = validate_payload(model=Product, payload=fields, policy=PRODUCT_POLICY, partial=False)
                product = Product(org_id=org_id, **patch)
                db.session.add(product)
                db.session.flush()
                stock_ledger_service.upsert_for_product(org_id, product.id, [_import_stock_row(row, branch_id)])
                db.session.commit()
                summary["created"] += 1
        except (ValidationError, ConflictError, NotFound, IntegrityError) as exc:
            db.session.rollback()
            summary["errors"].append({"row": index, "sku": sku, "error": str(exc)})

    summary["success_count"] = summary["created"] + summary["updated"]
    summary["error_count"] = len(summary["errors"])
    return summary


def product_stock(org_id: int, product_id) -> dict:
    product = get_product(org_id, coerce_int("product_id", product_id))
    summary = stock_ledger_service.stock_summary(org_id, product.id)
    summary["sku"] = product.sku
    summary["name"] = product.name
    return summary


def _publish_stock(org_id: int, product_id: int) -> None:
    from .ecommerce_service import publish_stock

    publish_stock(org_id, [product_id])
