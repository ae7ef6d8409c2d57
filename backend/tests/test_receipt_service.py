"""
Receipt service tests: atomic basket recording, payment rules, reversal,
and receipt queries.
"""

from datetime import datetime

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from inventory_pos.extensions import db
from inventory_pos.models import Receipt, Sale
from inventory_pos.services import receipt_service, stock_adjustment_service
from inventory_pos.services.errors import (
    ActorNotFound,
    InsufficientStock,
    IntegrityViolation,
    ProductNotFound,
    ReceiptNotFound,
)
from inventory_pos.services.receipt_service import PaymentDetails, SaleItem
from inventory_pos.validation import PaymentError, ValidationError

from conftest import stock_of, set_transaction_date


def cash(amount_cents: int) -> PaymentDetails:
    return PaymentDetails(payment_method="CASH", cash_amount_cents=amount_cents)


def receipt_count() -> int:
    return db.session.query(Receipt).count()


class TestRecordSale:
    def test_basket_creates_receipt_sales_and_decrements_stock(self, cashier, make_product):
        sugar = make_product("Sugar 1kg", price_cents=15000, quantity=40)
        milk = make_product("Milk 500ml", price_cents=6000, quantity=12)

        receipt = receipt_service.record_sale(
            cashier_username="alice",
            payment=cash(50000),
            items=[SaleItem(sugar.id, 2), SaleItem(milk.id, 3)],
        )

        assert receipt.id is not None
        assert receipt.total_amount_cents == 2 * 15000 + 3 * 6000
        assert receipt.change_due_cents == 50000 - 48000
        assert receipt.cashier_id == cashier.id
        assert [s.quantity for s in receipt.sales] == [2, 3]
        assert sum(s.total_amount_cents for s in receipt.sales) == receipt.total_amount_cents
        assert stock_of(sugar.id) == 38
        assert stock_of(milk.id) == 9

    def test_exact_stock_can_be_sold_to_zero(self, cashier, make_product):
        soap = make_product("Soap", price_cents=100, quantity=5)

        receipt_service.record_sale(
            cashier_username="alice", payment=cash(500), items=[SaleItem(soap.id, 5)],
        )

        assert stock_of(soap.id) == 0

    def test_unit_price_is_captured_at_sale_time(self, cashier, make_product):
        bread = make_product("Bread", price_cents=5500, quantity=10)
        receipt = receipt_service.record_sale(
            cashier_username="alice", payment=cash(5500), items=[SaleItem(bread.id, 1)],
        )

        bread.price_cents = 9900
        db.session.commit()

        reloaded = receipt_service.get_receipt(receipt.id)
        assert reloaded.sales[0].unit_price_cents == 5500
        assert reloaded.total_amount_cents == 5500

    def test_short_line_rejects_whole_basket(self, cashier, make_product):
        sugar = make_product("Sugar", price_cents=100, quantity=10)
        rice = make_product("Rice", price_cents=200, quantity=1)

        with pytest.raises(InsufficientStock) as exc_info:
            receipt_service.record_sale(
                cashier_username="alice",
                payment=cash(10000),
                items=[SaleItem(sugar.id, 2), SaleItem(rice.id, 5)],
            )

        err = exc_info.value
        assert err.details["product_id"] == rice.id
        assert err.details["available"] == 1
        assert err.details["requested"] == 5
        assert "Available: 1, Requested: 5" in str(err)
        assert stock_of(sugar.id) == 10
        assert stock_of(rice.id) == 1
        assert receipt_count() == 0
        assert db.session.query(Sale).count() == 0

    def test_duplicate_lines_are_checked_against_one_counter(self, cashier, make_product):
        tea = make_product("Tea", price_cents=300, quantity=5)

        with pytest.raises(InsufficientStock) as exc_info:
            receipt_service.record_sale(
                cashier_username="alice",
                payment=cash(3000),
                items=[SaleItem(tea.id, 3), SaleItem(tea.id, 3)],
            )

        assert exc_info.value.details["requested"] == 6
        assert stock_of(tea.id) == 5
        assert receipt_count() == 0

    def test_duplicate_lines_are_kept_as_separate_sales(self, cashier, make_product):
        tea = make_product("Tea", price_cents=300, quantity=5)

        receipt = receipt_service.record_sale(
            cashier_username="alice",
            payment=cash(1500),
            items=[SaleItem(tea.id, 2), SaleItem(tea.id, 3)],
        )

        assert len(receipt.sales) == 2
        assert stock_of(tea.id) == 0

    def test_unknown_product_rejects_basket(self, cashier, make_product):
        sugar = make_product("Sugar", quantity=10)

        with pytest.raises(ProductNotFound):
            receipt_service.record_sale(
                cashier_username="alice",
                payment=cash(100000),
                items=[SaleItem(sugar.id, 1), SaleItem(999999, 1)],
            )

        assert stock_of(sugar.id) == 10
        assert receipt_count() == 0

    def test_unknown_cashier_is_rejected(self, db_session, make_product):
        sugar = make_product("Sugar", quantity=10)

        with pytest.raises(ActorNotFound):
            receipt_service.record_sale(
                cashier_username="ghost", payment=cash(100000), items=[SaleItem(sugar.id, 1)],
            )

        assert stock_of(sugar.id) == 10

    def test_inactive_cashier_is_rejected(self, make_user, make_product):
        make_user("retired", is_active=False)
        sugar = make_product("Sugar", quantity=10)

        with pytest.raises(ActorNotFound):
            receipt_service.record_sale(
                cashier_username="retired", payment=cash(100000), items=[SaleItem(sugar.id, 1)],
            )

    def test_empty_basket_is_rejected(self, cashier):
        with pytest.raises(ValidationError):
            receipt_service.record_sale(cashier_username="alice", payment=cash(0), items=[])

    def test_non_positive_quantity_is_rejected(self, cashier, make_product):
        sugar = make_product("Sugar", quantity=10)

        with pytest.raises(ValidationError):
            receipt_service.record_sale(
                cashier_username="alice", payment=cash(1000), items=[SaleItem(sugar.id, 0)],
            )
        assert stock_of(sugar.id) == 10

    def test_receipt_numbers_are_unique(self, cashier, make_product):
        sugar = make_product("Sugar", price_cents=100, quantity=10)

        numbers = {
            receipt_service.record_sale(
                cashier_username="alice", payment=cash(100), items=[SaleItem(sugar.id, 1)],
            ).receipt_number
            for _ in range(3)
        }

        assert len(numbers) == 3
        assert all(n.startswith("R") for n in numbers)

    def test_failed_persist_leaves_no_stock_change(self, cashier, make_product, monkeypatch):
        sugar = make_product("Sugar", price_cents=100, quantity=10)
        first = receipt_service.record_sale(
            cashier_username="alice", payment=cash(100), items=[SaleItem(sugar.id, 1)],
        )
        taken = first.receipt_number
        monkeypatch.setattr(receipt_service, "generate_receipt_number", lambda: taken)

        with pytest.raises(IntegrityError):
            receipt_service.record_sale(
                cashier_username="alice", payment=cash(300), items=[SaleItem(sugar.id, 3)],
            )

        assert stock_of(sugar.id) == 9
        assert receipt_count() == 1
        assert db.session.query(Sale).count() == 1


class TestPaymentCoverage:
    def test_short_cash_is_rejected(self, cashier, make_product):
        sugar = make_product("Sugar", price_cents=1000, quantity=10)

        with pytest.raises(PaymentError):
            receipt_service.record_sale(
                cashier_username="alice", payment=cash(999), items=[SaleItem(sugar.id, 1)],
            )

        assert stock_of(sugar.id) == 10
        assert receipt_count() == 0

    def test_mpesa_must_cover_total(self, cashier, make_product):
        sugar = make_product("Sugar", price_cents=1000, quantity=10)

        with pytest.raises(PaymentError):
            receipt_service.record_sale(
                cashier_username="alice",
                payment=PaymentDetails("MPESA", mpesa_amount_cents=500, mpesa_transaction_id="QWE123"),
                items=[SaleItem(sugar.id, 1)],
            )

    def test_mixed_payment_sums_both_tenders(self, cashier, make_product):
        sugar = make_product("Sugar", price_cents=1000, quantity=10)

        receipt = receipt_service.record_sale(
            cashier_username="alice",
            payment=PaymentDetails(
                "MIXED", cash_amount_cents=400, mpesa_amount_cents=700, mpesa_transaction_id="QWE123",
            ),
            items=[SaleItem(sugar.id, 1)],
        )

        assert receipt.payment_method == "MIXED"
        assert receipt.change_due_cents == 100
        assert receipt.mpesa_transaction_id == "QWE123"

    def test_unknown_payment_method_is_rejected(self, cashier, make_product):
        sugar = make_product("Sugar", price_cents=100, quantity=10)

        with pytest.raises(PaymentError):
            receipt_service.record_sale(
                cashier_username="alice",
                payment=PaymentDetails("BITCOIN", cash_amount_cents=500),
                items=[SaleItem(sugar.id, 1)],
            )

        assert stock_of(sugar.id) == 10
        assert receipt_count() == 0

    def test_mpesa_without_transaction_id_is_rejected(self, cashier, make_product):
        sugar = make_product("Sugar", price_cents=100, quantity=10)

        with pytest.raises(PaymentError):
            receipt_service.record_sale(
                cashier_username="alice",
                payment=PaymentDetails("MPESA", mpesa_amount_cents=100),
                items=[SaleItem(sugar.id, 1)],
            )

        assert stock_of(sugar.id) == 10

    def test_lowercase_method_is_normalized(self, cashier, make_product):
        sugar = make_product("Sugar", price_cents=100, quantity=10)

        receipt = receipt_service.record_sale(
            cashier_username="alice",
            payment=PaymentDetails("cash", cash_amount_cents=100),
            items=[SaleItem(sugar.id, 1)],
        )

        assert receipt.payment_method == "CASH"

    def test_database_rejects_unknown_method(self, cashier):
        db.session.add(Receipt(
            receipt_number="R-MANUAL-1",
            cashier_id=cashier.id,
            total_amount_cents=0,
            payment_method="BITCOIN",
        ))

        with pytest.raises(IntegrityError):
            db.session.commit()
        db.session.rollback()


class TestReverseReceipt:
    def test_reversal_restores_stock_and_removes_rows(self, cashier, make_product):
        sugar = make_product("Sugar", price_cents=100, quantity=10)
        milk = make_product("Milk", price_cents=200, quantity=10)
        receipt = receipt_service.record_sale(
            cashier_username="alice",
            payment=cash(10000),
            items=[SaleItem(sugar.id, 4), SaleItem(milk.id, 1)],
        )
        receipt_id = receipt.id

        summary = receipt_service.reverse_receipt(receipt_id)

        assert summary["receipt_id"] == receipt_id
        assert sorted(summary["restored"], key=lambda r: r["product_id"]) == [
            {"product_id": sugar.id, "quantity": 4},
            {"product_id": milk.id, "quantity": 1},
        ]
        assert stock_of(sugar.id) == 10
        assert stock_of(milk.id) == 10
        assert receipt_service.get_receipt(receipt_id) is None
        assert db.session.query(Sale).filter_by(receipt_id=receipt_id).count() == 0

    def test_reversal_is_additive_after_adjustment(self, cashier, make_product):
        sugar = make_product("Sugar", price_cents=100, quantity=10)
        receipt = receipt_service.record_sale(
            cashier_username="alice", payment=cash(300), items=[SaleItem(sugar.id, 3)],
        )
        stock_adjustment_service.adjust_stock(
            product_id=sugar.id,
            quantity_change=-2,
            adjustment_type="SUBTRACTION",
            reason="Damaged",
            actor_username="alice",
        )
        assert stock_of(sugar.id) == 5

        receipt_service.reverse_receipt(receipt.id)

        assert stock_of(sugar.id) == 8

    def test_unknown_receipt(self, db_session):
        with pytest.raises(ReceiptNotFound):
            receipt_service.reverse_receipt(999999)

    def test_missing_product_blocks_reversal(self, cashier, make_product):
        sugar = make_product("Sugar", price_cents=100, quantity=10)
        milk = make_product("Milk", price_cents=100, quantity=10)
        receipt = receipt_service.record_sale(
            cashier_username="alice",
            payment=cash(1000),
            items=[SaleItem(sugar.id, 1), SaleItem(milk.id, 2)],
        )
        receipt_id = receipt.id
        milk_id = milk.id

        # Simulate a product removed behind the stock engine's back
        db.session.execute(text("PRAGMA foreign_keys=OFF"))
        db.session.execute(text("DELETE FROM products WHERE id = :id"), {"id": milk_id})
        db.session.commit()
        db.session.execute(text("PRAGMA foreign_keys=ON"))
        db.session.commit()

        with pytest.raises(IntegrityViolation) as exc_info:
            receipt_service.reverse_receipt(receipt_id)

        assert exc_info.value.details["product_id"] == milk_id
        assert stock_of(sugar.id) == 9
        assert receipt_service.get_receipt(receipt_id) is not None


class TestListReceipts:
    @pytest.fixture
    def sales_history(self, cashier, make_user, make_product):
        bob = make_user("bob")
        sugar = make_product("Brown Sugar", price_cents=100, quantity=100)
        milk = make_product("Milk", price_cents=200, quantity=100)

        r1 = receipt_service.record_sale(
            cashier_username="alice", payment=cash(1000),
            items=[SaleItem(sugar.id, 1), SaleItem(milk.id, 1)],
        )
        r2 = receipt_service.record_sale(
            cashier_username="bob",
            payment=PaymentDetails("MPESA", mpesa_amount_cents=200, mpesa_transaction_id="ABC"),
            items=[SaleItem(milk.id, 1)],
        )
        r3 = receipt_service.record_sale(
            cashier_username="alice", payment=cash(100), items=[SaleItem(sugar.id, 1)],
        )
        set_transaction_date(r1.id, datetime(2026, 1, 10, 9, 0))
        set_transaction_date(r2.id, datetime(2026, 1, 15, 12, 0))
        set_transaction_date(r3.id, datetime(2026, 1, 20, 18, 0))
        return {"alice": cashier, "bob": bob, "r1": r1.id, "r2": r2.id, "r3": r3.id}

    def test_no_filters_returns_newest_first(self, sales_history):
        ids = [r.id for r in receipt_service.list_receipts()]
        assert ids == [sales_history["r3"], sales_history["r2"], sales_history["r1"]]

    def test_date_range_is_inclusive(self, sales_history):
        receipts = receipt_service.list_receipts(
            start_date=datetime(2026, 1, 10, 9, 0),
            end_date=datetime(2026, 1, 15, 12, 0),
        )
        assert [r.id for r in receipts] == [sales_history["r2"], sales_history["r1"]]

    def test_filter_by_cashier(self, sales_history):
        receipts = receipt_service.list_receipts(cashier_id=sales_history["bob"].id)
        assert [r.id for r in receipts] == [sales_history["r2"]]

    def test_filter_by_payment_method(self, sales_history):
        receipts = receipt_service.list_receipts(payment_method="CASH")
        assert [r.id for r in receipts] == [sales_history["r3"], sales_history["r1"]]

    def test_product_name_is_case_insensitive_and_keeps_all_sales(self, sales_history):
        receipts = receipt_service.list_receipts(product_name="SUGAR")

        assert [r.id for r in receipts] == [sales_history["r3"], sales_history["r1"]]
        r1 = receipts[1]
        assert sorted(s.product.name for s in r1.sales) == ["Brown Sugar", "Milk"]

    def test_filters_combine(self, sales_history):
        receipts = receipt_service.list_receipts(
            cashier_id=sales_history["alice"].id,
            product_name="milk",
        )
        assert [r.id for r in receipts] == [sales_history["r1"]]

    def test_product_name_treats_wildcards_literally(self, sales_history):
        assert receipt_service.list_receipts(product_name="%") == []


class TestListSales:
    def test_lines_newest_first_with_product_filter(self, cashier, make_product):
        sugar = make_product("Sugar", price_cents=100, quantity=10)
        milk = make_product("Milk", price_cents=200, quantity=10)
        receipt_service.record_sale(
            cashier_username="alice", payment=cash(1000),
            items=[SaleItem(sugar.id, 1), SaleItem(milk.id, 2)],
        )
        receipt_service.record_sale(
            cashier_username="alice", payment=cash(300), items=[SaleItem(sugar.id, 3)],
        )

        all_lines = receipt_service.list_sales()
        assert [(s.product_id, s.quantity) for s in all_lines] == [
            (sugar.id, 3), (milk.id, 2), (sugar.id, 1),
        ]

        sugar_lines = receipt_service.list_sales(product_id=sugar.id, limit=1)
        assert [s.quantity for s in sugar_lines] == [3]
        assert sugar_lines[0].to_dict()["product_name"] == "Sugar"
