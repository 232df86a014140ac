# Overview: Storefront integrations, stock publication and incoming order ingestion.

"""
E-commerce Service

STOCK PUBLICATION:
Each active integration publishes either the consolidated stock of a product
(stock_source="global") or the stock of one branch (stock_source="branch").
The push to the storefront API is simulated: every publication is recorded
as a pwa_to_ecom SyncLog row.

ORDER INGESTION (ingest_order):
    1. record the order as RECEIVED (committed)
    2. resolve the fulfilling branch from the first line
    3. decrement every line in that branch (compensated on failure)
    4. create a RESERVATION document for the order
    5. mark the order PROCESSED with processed_at and the document link

Outcomes:
- resolver finds no branch            -> STOCK_UNAVAILABLE
- anything else fails (a later line is short in the chosen branch,
  unknown product, document insert)   -> ERROR
The order never stays RECEIVED, and no stock stays taken for a failed order.
"""

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import EcommerceIntegration, EcommerceOrder, EcommerceOrderLine, SyncLog, Product, Customer, BranchStock
from ..models.ecommerce import PLATFORMS, STOCK_SOURCES
from ..errors import NotFound, StockUnavailable
from ..validation import ValidationError, coerce_int, require_positive_int
from gestion_pro.time_utils import utcnow
from . import stock_ledger_service
from .order_assignment_service import assign_branch
from .tenant_service import require_branch_in_org, TenantAccessError


ECOMMERCE_CUSTOMER_NAME = "Cliente E-commerce"
ECOMMERCE_PAYMENT_METHOD = "E-commerce"

# Generated order ids look like SHO-1718000000000 (platform prefix + ms timestamp)
ORDER_ID_PREFIXES = {
    "Shopify": "SHO",
    "WooCommerce": "WOO",
    "Tienda Nube": "TIE",
}

INTEGRATION_FIELDS = {
    "is_active", "api_key", "api_secret", "store_url", "access_token",
    "stock_source", "branch_id", "sync_prices",
}


class EcommerceError(Exception):
    """Invalid integration configuration or order payload."""
    pass


# =============================================================================
# INTEGRATIONS
# =============================================================================

def list_integrations(org_id: int) -> list[EcommerceIntegration]:
    return (
        db.session.query(EcommerceIntegration)
        .filter_by(org_id=org_id)
        .order_by(EcommerceIntegration.platform.asc())
        .all()
    )


def get_integration(org_id: int, integration_id: int) -> EcommerceIntegration:
    integration = db.session.query(EcommerceIntegration).filter_by(id=integration_id, org_id=org_id).first()
    if integration is None:
        raise NotFound("EcommerceIntegration", integration_id)
    return integration


def _apply_integration_fields(org_id: int, integration: EcommerceIntegration, data: dict) -> None:
    unknown = sorted(set(data) - INTEGRATION_FIELDS - {"platform"})
    if unknown:
        raise EcommerceError(f"Field not allowed: {unknown[0]}")

    for key in ("api_key", "api_secret", "store_url", "access_token"):
        if key in data:
            value = data[key]
            if value is not None:
                value = str(value).strip() or None
            setattr(integration, key, value)
    if "is_active" in data:
        integration.is_active = bool(data["is_active"])
    if "sync_prices" in data:
        integration.sync_prices = bool(data["sync_prices"])
    if "stock_source" in data:
        if data["stock_source"] not in STOCK_SOURCES:
            raise EcommerceError(f"stock_source must be one of {', '.join(STOCK_SOURCES)}")
        integration.stock_source = data["stock_source"]
    if "branch_id" in data:
        branch_id = data["branch_id"]
        if branch_id is not None:
            try:
                branch_id = require_branch_in_org(coerce_int("branch_id", branch_id), org_id).id
            except TenantAccessError:
                raise NotFound("Branch", branch_id)
        integration.branch_id = branch_id

    if integration.stock_source == "branch" and integration.branch_id is None:
        raise EcommerceError("stock_source 'branch' requires branch_id")


def create_integration(org_id: int, data: dict) -> EcommerceIntegration:
    platform = (data or {}).get("platform")
    if platform not in PLATFORMS:
        raise EcommerceError(f"platform must be one of {', '.join(PLATFORMS)}")
    if db.session.query(EcommerceIntegration).filter_by(org_id=org_id, platform=platform).first():
        raise EcommerceError(f"{platform} integration already exists")

    integration = EcommerceIntegration(org_id=org_id, platform=platform, stock_source="global")
    _apply_integration_fields(org_id, integration, data)
    db.session.add(integration)
    db.session.commit()
    return integration


def update_integration(org_id: int, integration_id: int, data: dict) -> EcommerceIntegration:
    integration = get_integration(org_id, integration_id)
    if "platform" in (data or {}) and data["platform"] != integration.platform:
        raise EcommerceError("platform cannot be changed")
    try:
        _apply_integration_fields(org_id, integration, data or {})
    except Exception:
        db.session.rollback()
        raise
    db.session.commit()
    return integration


def delete_integration(org_id: int, integration_id: int) -> None:
    integration = get_integration(org_id, integration_id)
    db.session.delete(integration)
    db.session.commit()


# =============================================================================
# STOCK PUBLICATION
# =============================================================================

def published_stock(integration: EcommerceIntegration, product: Product) -> int:
    """Stock figure the storefront should show for ``product``."""
    if integration.stock_source == "branch" and integration.branch_id is not None:
        row = db.session.query(BranchStock).filter_by(
            org_id=product.org_id, product_id=product.id, branch_id=integration.branch_id
        ).first()
        return row.stock if row else 0
    return stock_ledger_service.consolidated_stock(product.org_id, product.id)


def _log_sync(org_id: int, direction: str, platform: str, status: str, message: str, sku: str | None = None) -> SyncLog:
    entry = SyncLog(
        org_id=org_id,
        direction=direction,
        platform=platform,
        product_sku=sku,
        status=status,
        message=message,
        created_at=utcnow(),
    )
    db.session.add(entry)
    return entry


def sync_product_stock(org_id: int, product_id: int) -> list[SyncLog]:
    """
    Publish the product's stock to every active integration.

    Returns the SyncLog rows written (one per active integration).
    """
    product = db.session.get(Product, product_id)
    if product is None or product.org_id != org_id:
        return []

    entries = []
    for integration in db.session.query(EcommerceIntegration).filter_by(org_id=org_id, is_active=True).all():
        quantity = published_stock(integration, product)
        entries.append(_log_sync(
            org_id,
            "pwa_to_ecom",
            integration.platform,
            "success",
            f"Stock de '{product.name}' actualizado a {quantity}",
            sku=product.sku,
        ))
    db.session.commit()
    return entries


def publish_stock(org_id: int, product_ids) -> None:
    """Push each product's stock to the storefronts. Failures are logged and recorded, never raised."""
    for product_id in sorted(set(product_ids)):
        try:
            sync_product_stock(org_id, product_id)
        except Exception as exc:
            db.session.rollback()
            current_app.logger.exception("Stock publication failed for product %s", product_id)
            record_sync_failure(org_id, product_id, exc)


def record_sync_failure(org_id: int, product_id: int, error: Exception) -> list[SyncLog]:
    """Write an error SyncLog per active integration for a stock push that failed."""
    product = db.session.get(Product, product_id)
    sku = product.sku if product is not None and product.org_id == org_id else None

    entries = [
        _log_sync(org_id, "pwa_to_ecom", integration.platform, "error", f"Error al publicar stock: {error}", sku=sku)
        for integration in db.session.query(EcommerceIntegration).filter_by(org_id=org_id, is_active=True).all()
    ]
    db.session.commit()
    return entries


def list_sync_logs(org_id: int, limit: int = 100) -> list[SyncLog]:
    return (
        db.session.query(SyncLog)
        .filter_by(org_id=org_id)
        .order_by(SyncLog.created_at.desc(), SyncLog.id.desc())
        .limit(limit)
        .all()
    )


# =============================================================================
# ORDER INGESTION
# =============================================================================

def _normalize_lines(lines) -> list[dict]:
    if not isinstance(lines, list) or not lines:
        raise ValidationError("Order must contain at least one line")
    normalized = []
    for line in lines:
        if not isinstance(line, dict):
            raise ValidationError("Each order line must be an object")
        normalized.append({
            "product_id": coerce_int("product_id", line.get("product_id")),
            "quantity": require_positive_int("quantity", line.get("quantity")),
        })
    return normalized


def _generate_order_id(platform: str) -> str:
    return f"{ORDER_ID_PREFIXES.get(platform, 'ECO')}-{int(time.time() * 1000)}"


def _ecommerce_customer_id(org_id: int) -> int | None:
    customer = db.session.query(Customer).filter(
        Customer.org_id == org_id,
        func.lower(Customer.name) == ECOMMERCE_CUSTOMER_NAME.lower(),
    ).first()
    return customer.id if customer else None


def _finish(order_id: int, status: str, message: str | None, **fields) -> EcommerceOrder:
    order = db.session.get(EcommerceOrder, order_id)
    order.status = status
    order.error_message = message
    for key, value in fields.items():
        setattr(order, key, value)
    _log_sync(
        order.org_id,
        "ecom_to_pwa",
        order.platform,
        "success" if status == "PROCESSED" else "error",
        message or f"Pedido {order.original_order_id} procesado",
    )
    db.session.commit()
    return order


def ingest_order(
    org_id: int,
    user_id: int | None,
    platform: str,
    lines: list[dict],
    original_order_id: str | None = None,
) -> EcommerceOrder:
    """
    Turn a storefront order into a reservation.

    Returns the order in its final state (PROCESSED, STOCK_UNAVAILABLE or
    ERROR). Raises only for payloads that cannot be recorded at all
    (unknown platform, malformed lines). Re-sending an external id that was
    already recorded returns the existing order untouched.
    """
    from .sales_service import create_document

    if platform not in PLATFORMS:
        raise EcommerceError(f"platform must be one of {', '.join(PLATFORMS)}")
    normalized = _normalize_lines(lines)
    original_order_id = (original_order_id or "").strip() or _generate_order_id(platform)

    existing = db.session.query(EcommerceOrder).filter_by(
        org_id=org_id, platform=platform, original_order_id=original_order_id
    ).first()
    if existing is not None:
        return existing

    order = EcommerceOrder(
        org_id=org_id,
        platform=platform,
        original_order_id=original_order_id,
        status="RECEIVED",
        received_at=utcnow(),
    )
    order.lines = [EcommerceOrderLine(**line) for line in normalized]
    db.session.add(order)
    db.session.commit()
    order_id = order.id

    try:
        branch = assign_branch(org_id, normalized)
        branch_id = branch.id
        document = create_document(
            org_id,
            user_id,
            "RESERVATION",
            [dict(line) for line in normalized],
            branch_id=branch_id,
            customer_id=_ecommerce_customer_id(org_id),
            payment_method=ECOMMERCE_PAYMENT_METHOD,
        )
    except StockUnavailable as exc:
        db.session.rollback()
        current_app.logger.info("E-commerce order %s: %s", original_order_id, exc)
        return _finish(order_id, "STOCK_UNAVAILABLE", str(exc))
    except Exception as exc:
        db.session.rollback()
        current_app.logger.warning("E-commerce order %s failed: %s", original_order_id, exc)
        return _finish(order_id, "ERROR", f"Error al procesar el pedido: {exc}")

    return _finish(
        order_id,
        "PROCESSED",
        None,
        branch_id=branch_id,
        document_id=document.id,
        processed_at=utcnow(),
    )


def list_orders(org_id: int, status: str | None = None, limit: int = 100) -> list[EcommerceOrder]:
    query = db.session.query(EcommerceOrder).filter_by(org_id=org_id)
    if status:
        query = query.filter(EcommerceOrder.status == status.upper())
    return query.order_by(EcommerceOrder.received_at.desc(), EcommerceOrder.id.desc()).limit(limit).all()


def get_order(org_id: int, order_id: int) -> EcommerceOrder:
    order = db.session.query(EcommerceOrder).filter_by(id=order_id, org_id=org_id).first()
    if order is None:
        raise NotFound("EcommerceOrder", order_id)
    return order
