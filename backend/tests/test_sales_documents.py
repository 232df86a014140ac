# Overview: Pytest coverage for invoices, quotes and reservations.

from decimal import Decimal

import pytest

from gestion_pro.errors import InsufficientStock, NotFound
from gestion_pro.models import SaleDocument
from gestion_pro.services import ecommerce_service, sales_service
from gestion_pro.services.sales_service import SalesError, compute_tax_cents, convert_total
from gestion_pro.validation import ValidationError


@pytest.fixture
def shop(org_a, branch_a, make_product, make_customer):
    return {
        "org": org_a,
        "branch": branch_a,
        "mate": make_product(org_a, "MATE", {branch_a: 10}, price_cents=1000),
        "yerba": make_product(org_a, "YERBA", {branch_a: 4}, price_cents=2500),
        "customer": make_customer(org_a, "María Gómez", email="maria@example.com"),
    }


class TestCreateDocument:

    def test_invoice_totals_tax_and_stock(self, shop, stock_of):
        doc = sales_service.create_document(
            shop["org"].id, None, "INVOICE",
            [
                {"product_id": shop["mate"].id, "quantity": 2},
                {"product_id": shop["yerba"].id, "quantity": 1},
            ],
        )

        assert doc.subtotal_cents == 4500
        assert doc.tax_cents == 945
        assert doc.total_cents == 5445
        assert doc.status == "PAID"
        assert doc.paid_amount_cents == doc.total_cents
        assert doc.document_number == "F-000001"
        assert doc.customer_name == "Consumidor Final"
        assert stock_of(shop["mate"], shop["branch"]) == 8
        assert stock_of(shop["yerba"], shop["branch"]) == 3

    def test_on_account_invoice_is_pending(self, shop):
        doc = sales_service.create_document(
            shop["org"].id, None, "INVOICE",
            [{"product_id": shop["mate"].id, "quantity": 1}],
            customer_id=shop["customer"].id,
            payment_method="Cuenta corriente",
        )

        assert doc.status == "PENDING"
        assert doc.paid_amount_cents == 0
        assert doc.debt_cents == doc.total_cents
        assert doc.customer_kind == "REGISTERED"
        assert doc.customer_email == "maria@example.com"

    def test_on_account_requires_registered_customer(self, shop, stock_of):
        with pytest.raises(ValidationError):
            sales_service.create_document(
                shop["org"].id, None, "INVOICE",
                [{"product_id": shop["mate"].id, "quantity": 1}],
                payment_method="Cuenta corriente",
            )
        assert stock_of(shop["mate"], shop["branch"]) == 10

    def test_quote_does_not_touch_stock(self, shop, stock_of):
        doc = sales_service.create_document(
            shop["org"].id, None, "QUOTE",
            [{"product_id": shop["yerba"].id, "quantity": 50}],
        )

        assert doc.document_number == "P-000001"
        assert doc.status == "PAID"
        assert stock_of(shop["yerba"], shop["branch"]) == 4

    def test_numbers_are_sequential_per_type(self, shop):
        items = [{"product_id": shop["mate"].id, "quantity": 1}]
        numbers = [
            sales_service.create_document(shop["org"].id, None, "INVOICE", items).document_number,
            sales_service.create_document(shop["org"].id, None, "RESERVATION", items).document_number,
            sales_service.create_document(shop["org"].id, None, "INVOICE", items).document_number,
        ]
        assert numbers == ["F-000001", "R-000001", "F-000002"]

    def test_explicit_unit_price_overrides_branch_price(self, shop):
        doc = sales_service.create_document(
            shop["org"].id, None, "INVOICE",
            [{"product_id": shop["mate"].id, "quantity": 3, "unit_price_cents": 900}],
        )
        assert doc.subtotal_cents == 2700
        assert doc.lines[0].unit_price_cents == 900

    def test_failed_line_restores_earlier_lines(self, db_session, shop, stock_of):
        with pytest.raises(InsufficientStock):
            sales_service.create_document(
                shop["org"].id, None, "INVOICE",
                [
                    {"product_id": shop["mate"].id, "quantity": 2},
                    {"product_id": shop["yerba"].id, "quantity": 5},
                ],
            )

        assert stock_of(shop["mate"], shop["branch"]) == 10
        assert stock_of(shop["yerba"], shop["branch"]) == 4
        assert db_session.query(SaleDocument).count() == 0

    def test_document_insert_failure_restores_stock(self, db_session, shop, stock_of, monkeypatch):
        def broken_number(**kwargs):
            raise RuntimeError("sequence unavailable")

        monkeypatch.setattr(sales_service, "next_document_number", broken_number)

        with pytest.raises(RuntimeError):
            sales_service.create_document(
                shop["org"].id, None, "RESERVATION",
                [{"product_id": shop["mate"].id, "quantity": 3}],
            )

        assert stock_of(shop["mate"], shop["branch"]) == 10
        assert db_session.query(SaleDocument).count() == 0

    def test_unknown_product_is_not_found(self, shop):
        with pytest.raises(NotFound):
            sales_service.create_document(shop["org"].id, None, "INVOICE", [{"product_id": 424242, "quantity": 1}])

    def test_branch_of_other_tenant_is_not_found(self, shop, branch_b):
        with pytest.raises(NotFound):
            sales_service.create_document(
                shop["org"].id, None, "INVOICE",
                [{"product_id": shop["mate"].id, "quantity": 1}],
                branch_id=branch_b.id,
            )

    @pytest.mark.parametrize("kwargs", [
        {"document_type": "RECEIPT"},
        {"payment_method": "Bitcoin"},
        {"payment_currency": "EUR"},
    ])
    def test_rejects_invalid_choices(self, shop, kwargs):
        args = {"document_type": "INVOICE", **kwargs}
        document_type = args.pop("document_type")
        with pytest.raises(ValidationError):
            sales_service.create_document(
                shop["org"].id, None, document_type,
                [{"product_id": shop["mate"].id, "quantity": 1}],
                **args,
            )

    def test_foreign_currency_keeps_given_rate(self, shop):
        doc = sales_service.create_document(
            shop["org"].id, None, "INVOICE",
            [{"product_id": shop["mate"].id, "quantity": 1}],
            payment_currency="USD",
            exchange_rate="1250.50",
        )
        assert doc.payment_currency == "USD"
        assert Decimal(doc.exchange_rate) == Decimal("1250.50")


class TestCancelReservation:

    def test_cancel_restores_stock(self, shop, stock_of):
        doc = sales_service.create_document(
            shop["org"].id, None, "RESERVATION",
            [
                {"product_id": shop["mate"].id, "quantity": 4},
                {"product_id": shop["yerba"].id, "quantity": 2},
            ],
        )
        assert stock_of(shop["mate"], shop["branch"]) == 6

        cancelled = sales_service.cancel_reservation(shop["org"].id, doc.id)

        assert cancelled.status == "CANCELLED"
        assert cancelled.cancelled_at is not None
        assert stock_of(shop["mate"], shop["branch"]) == 10
        assert stock_of(shop["yerba"], shop["branch"]) == 4

    def test_publication_failure_does_not_undo_cancel(self, shop, stock_of, monkeypatch):
        doc = sales_service.create_document(
            shop["org"].id, None, "RESERVATION", [{"product_id": shop["mate"].id, "quantity": 3}],
        )

        def broken_sync(org_id, product_id):
            raise RuntimeError("storefront down")

        monkeypatch.setattr(ecommerce_service, "sync_product_stock", broken_sync)

        cancelled = sales_service.cancel_reservation(shop["org"].id, doc.id)

        assert cancelled.status == "CANCELLED"
        assert stock_of(shop["mate"], shop["branch"]) == 10

    def test_cannot_cancel_twice(self, shop, stock_of):
        doc = sales_service.create_document(
            shop["org"].id, None, "RESERVATION", [{"product_id": shop["mate"].id, "quantity": 1}]
        )
        sales_service.cancel_reservation(shop["org"].id, doc.id)

        with pytest.raises(SalesError):
            sales_service.cancel_reservation(shop["org"].id, doc.id)
        assert stock_of(shop["mate"], shop["branch"]) == 10

    def test_only_reservations_can_be_cancelled(self, shop):
        doc = sales_service.create_document(
            shop["org"].id, None, "INVOICE", [{"product_id": shop["mate"].id, "quantity": 1}]
        )
        with pytest.raises(SalesError):
            sales_service.cancel_reservation(shop["org"].id, doc.id)


class TestQueries:

    def test_list_documents_filters_and_counts(self, shop):
        items = [{"product_id": shop["mate"].id, "quantity": 1}]
        sales_service.create_document(shop["org"].id, None, "INVOICE", items)
        sales_service.create_document(shop["org"].id, None, "QUOTE", items)
        sales_service.create_document(shop["org"].id, None, "QUOTE", items)

        quotes, total = sales_service.list_documents(shop["org"].id, document_type="quote")

        assert total == 2
        assert {d.document_type for d in quotes} == {"QUOTE"}

    def test_get_document_of_other_tenant_is_not_found(self, shop, org_b):
        doc = sales_service.create_document(
            shop["org"].id, None, "QUOTE", [{"product_id": shop["mate"].id, "quantity": 1}]
        )
        with pytest.raises(NotFound):
            sales_service.get_document(org_b.id, doc.id)


class TestMoney:

    @pytest.mark.parametrize("subtotal,bps,expected", [
        (4500, 2100, 945),
        (1, 2100, 0),
        (3, 2100, 1),     # 0.63 rounds up
        (50, 1000, 5),
        (1000, 0, 0),
    ])
    def test_compute_tax_half_up(self, subtotal, bps, expected):
        assert compute_tax_cents(subtotal, bps) == expected

    def test_convert_total(self):
        assert convert_total(121000, "ARS", "ARS", None) == 121000
        assert convert_total(121000, "ARS", "USD", "1000") == 121
        assert convert_total(1500, "USD", "ARS", Decimal("1000")) == 1500000

    def test_convert_total_rejects_non_positive_rate(self):
        with pytest.raises(ValueError):
            convert_total(100, "ARS", "USD", 0)
