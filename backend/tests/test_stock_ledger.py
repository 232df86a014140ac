# Overview: Pytest coverage for the per-branch stock ledger.

import pytest

from gestion_pro.errors import InsufficientStock, NotFound
from gestion_pro.services import stock_ledger_service
from gestion_pro.validation import ValidationError


class TestDecrement:

    def test_decrement_reduces_only_that_branch(self, org_a, make_branch, make_product, stock_of):
        b1 = make_branch(org_a, "B1", priority_order=0)
        b2 = make_branch(org_a, "B2", priority_order=1)
        product = make_product(org_a, "P1", {b1: 5, b2: 7})

        stock_ledger_service.decrement(org_a.id, product.id, b1.id, 3)

        assert stock_of(product, b1) == 2
        assert stock_of(product, b2) == 7

    def test_decrement_to_exactly_zero(self, org_a, branch_a, make_product, stock_of):
        product = make_product(org_a, "P1", {branch_a: 4})

        stock_ledger_service.decrement(org_a.id, product.id, branch_a.id, 4)

        assert stock_of(product, branch_a) == 0

    def test_insufficient_stock_leaves_row_unchanged(self, org_a, branch_a, make_product, stock_of):
        product = make_product(org_a, "P1", {branch_a: 2})

        with pytest.raises(InsufficientStock) as exc_info:
            stock_ledger_service.decrement(org_a.id, product.id, branch_a.id, 3)

        assert exc_info.value.available == 2
        assert exc_info.value.to_dict()["requested_quantity"] == 3
        assert stock_of(product, branch_a) == 2

    def test_missing_row_is_not_found(self, org_a, make_branch, make_product):
        b1 = make_branch(org_a, "B1")
        b2 = make_branch(org_a, "B2", priority_order=1)
        product = make_product(org_a, "P1", {b1: 5})

        with pytest.raises(NotFound):
            stock_ledger_service.decrement(org_a.id, product.id, b2.id, 1)

    @pytest.mark.parametrize("quantity", [0, -1, "2.5", True])
    def test_rejects_non_positive_or_non_integer_quantity(self, org_a, branch_a, make_product, stock_of, quantity):
        product = make_product(org_a, "P1", {branch_a: 5})

        with pytest.raises(ValidationError):
            stock_ledger_service.decrement(org_a.id, product.id, branch_a.id, quantity)

        assert stock_of(product, branch_a) == 5

    def test_other_tenant_row_is_invisible(self, org_a, org_b, branch_a, branch_b, make_product, stock_of):
        product_b = make_product(org_b, "P1", {branch_b: 5})

        with pytest.raises(NotFound):
            stock_ledger_service.decrement(org_a.id, product_b.id, branch_b.id, 1)

        assert stock_of(product_b, branch_b) == 5


class TestIncrementAndBatches:

    def test_decrement_then_increment_conserves_stock(self, org_a, branch_a, make_product, stock_of):
        product = make_product(org_a, "P1", {branch_a: 9})

        stock_ledger_service.decrement(org_a.id, product.id, branch_a.id, 4)
        stock_ledger_service.increment(org_a.id, product.id, branch_a.id, 4)

        assert stock_of(product, branch_a) == 9

    def test_decrement_many_rolls_back_applied_lines(self, org_a, branch_a, make_product, stock_of):
        p1 = make_product(org_a, "P1", {branch_a: 5})
        p2 = make_product(org_a, "P2", {branch_a: 1})

        with pytest.raises(InsufficientStock):
            stock_ledger_service.decrement_many(org_a.id, branch_a.id, [(p1.id, 2), (p2.id, 3)])

        assert stock_of(p1, branch_a) == 5
        assert stock_of(p2, branch_a) == 1

    def test_failed_reversal_keeps_original_cause(self, org_a, branch_a, make_product, stock_of, monkeypatch, caplog):
        p1 = make_product(org_a, "P1", {branch_a: 5})
        p2 = make_product(org_a, "P2", {branch_a: 1})

        def broken_increment(org_id, product_id, branch_id, quantity):
            raise RuntimeError("database gone")

        monkeypatch.setattr(stock_ledger_service, "increment", broken_increment)

        with pytest.raises(RuntimeError) as excinfo:
            stock_ledger_service.decrement_many(org_a.id, branch_a.id, [(p1.id, 2), (p2.id, 3)])

        assert isinstance(excinfo.value.__cause__, InsufficientStock)
        assert stock_of(p1, branch_a) == 3
        assert f"lines still decremented: [({p1.id}, 2)]" in caplog.text

    def test_decrement_many_applies_all_lines(self, org_a, branch_a, make_product, stock_of):
        p1 = make_product(org_a, "P1", {branch_a: 5})
        p2 = make_product(org_a, "P2", {branch_a: 3})

        stock_ledger_service.decrement_many(org_a.id, branch_a.id, [(p1.id, 2), (p2.id, 3)])

        assert stock_of(p1, branch_a) == 3
        assert stock_of(p2, branch_a) == 0


class TestQueries:

    def test_consolidated_is_sum_of_branches(self, org_a, make_branch, make_product):
        b1 = make_branch(org_a, "B1")
        b2 = make_branch(org_a, "B2", priority_order=1)
        b3 = make_branch(org_a, "B3", priority_order=2)
        product = make_product(org_a, "P1", {b1: 5, b2: 0, b3: 12})

        assert stock_ledger_service.consolidated_stock(org_a.id, product.id) == 17

        summary = stock_ledger_service.stock_summary(org_a.id, product.id)
        assert summary["consolidated_stock"] == 17
        assert sorted(b["branch_id"] for b in summary["branches"]) == sorted([b1.id, b2.id, b3.id])

    def test_consolidated_of_unstocked_product_is_zero(self, org_a, make_product):
        product = make_product(org_a, "P1")
        assert stock_ledger_service.consolidated_stock(org_a.id, product.id) == 0

    def test_low_stock_lists_rows_at_or_below_minimum(self, org_a, branch_a, make_product):
        low = make_product(org_a, "LOW", {branch_a: 2}, min_stock=2)
        make_product(org_a, "OK", {branch_a: 10}, min_stock=2)

        rows = stock_ledger_service.list_low_stock(org_a.id)

        assert [r.product_id for r in rows] == [low.id]


class TestUpsertForProduct:

    def test_creates_and_overwrites_rows(self, db_session, org_a, make_branch, make_product, stock_of):
        b1 = make_branch(org_a, "B1")
        b2 = make_branch(org_a, "B2", priority_order=1)
        product = make_product(org_a, "P1", {b1: 5})

        stock_ledger_service.upsert_for_product(org_a.id, product.id, [
            {"branch_id": b1.id, "stock": 8, "sale_price_cents": 1500},
            {"branch_id": b2.id, "stock": 3, "min_stock": 1, "sale_price_cents": 1500},
        ])
        db_session.commit()

        assert stock_of(product, b1) == 8
        assert stock_of(product, b2) == 3

    def test_rejects_branch_of_other_tenant(self, db_session, org_a, branch_a, branch_b, make_product):
        product = make_product(org_a, "P1", {branch_a: 5})

        with pytest.raises(NotFound):
            stock_ledger_service.upsert_for_product(org_a.id, product.id, [{"branch_id": branch_b.id, "stock": 1}])
        db_session.rollback()

    def test_rejects_negative_stock(self, db_session, org_a, branch_a, make_product):
        product = make_product(org_a, "P1", {branch_a: 5})

        with pytest.raises(ValidationError):
            stock_ledger_service.upsert_for_product(org_a.id, product.id, [{"branch_id": branch_a.id, "stock": -1}])
        db_session.rollback()
