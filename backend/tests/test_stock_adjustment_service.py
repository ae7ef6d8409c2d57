"""
Stock adjustment tests: sign policy per type, audit rows, history ordering.
"""

import pytest

from inventory_pos.extensions import db
from inventory_pos.models import StockAdjustment
from inventory_pos.services import stock_adjustment_service
from inventory_pos.services.errors import ActorNotFound, InsufficientStock, ProductNotFound
from inventory_pos.validation import ValidationError

from conftest import stock_of


def adjust(product_id, change, adjustment_type, reason="Cycle count", actor="owen"):
    return stock_adjustment_service.adjust_stock(
        product_id=product_id,
        quantity_change=change,
        adjustment_type=adjustment_type,
        reason=reason,
        actor_username=actor,
    )


def adjustment_count() -> int:
    return db.session.query(StockAdjustment).count()


class TestAdjustStock:
    def test_addition_increases_stock_and_records_row(self, owner, make_product):
        flour = make_product("Flour", quantity=5)

        adjustment = adjust(flour.id, 10, "ADDITION", reason="  Delivery  ")

        assert stock_of(flour.id) == 15
        assert adjustment.quantity_change == 10
        assert adjustment.adjustment_type == "ADDITION"
        assert adjustment.reason == "Delivery"
        assert adjustment.user_id == owner.id
        assert adjustment.adjustment_date is not None

    def test_addition_must_be_positive(self, owner, make_product):
        flour = make_product("Flour", quantity=5)

        with pytest.raises(ValidationError):
            adjust(flour.id, -3, "ADDITION")

        assert stock_of(flour.id) == 5
        assert adjustment_count() == 0

    def test_subtraction_takes_negative_change(self, owner, make_product):
        flour = make_product("Flour", quantity=5)

        adjustment = adjust(flour.id, -3, "SUBTRACTION", reason="Damaged")

        assert stock_of(flour.id) == 2
        assert adjustment.quantity_change == -3

    def test_subtraction_rejects_positive_change(self, owner, make_product):
        flour = make_product("Flour", quantity=5)

        with pytest.raises(ValidationError):
            adjust(flour.id, 3, "SUBTRACTION")

        assert stock_of(flour.id) == 5

    def test_subtraction_beyond_stock_is_insufficient(self, owner, make_product):
        flour = make_product("Flour", quantity=2)

        with pytest.raises(InsufficientStock) as exc_info:
            adjust(flour.id, -5, "SUBTRACTION")

        assert exc_info.value.details["available"] == 2
        assert exc_info.value.details["requested"] == 5
        assert stock_of(flour.id) == 2
        assert adjustment_count() == 0

    def test_correction_applies_signed_delta(self, owner, make_product):
        flour = make_product("Flour", quantity=5)

        adjust(flour.id, -5, "CORRECTION")
        assert stock_of(flour.id) == 0

        adjust(flour.id, 7, "CORRECTION")
        assert stock_of(flour.id) == 7

    def test_correction_below_zero_is_rejected(self, owner, make_product):
        flour = make_product("Flour", quantity=5)

        with pytest.raises(ValidationError) as exc_info:
            adjust(flour.id, -6, "CORRECTION")

        assert "negative stock" in str(exc_info.value)
        assert stock_of(flour.id) == 5
        assert adjustment_count() == 0

    @pytest.mark.parametrize("reason", ["", "   ", None])
    def test_reason_is_required(self, owner, make_product, reason):
        flour = make_product("Flour", quantity=5)

        with pytest.raises(ValidationError):
            adjust(flour.id, 1, "ADDITION", reason=reason)

    def test_zero_change_is_rejected(self, owner, make_product):
        flour = make_product("Flour", quantity=5)

        with pytest.raises(ValidationError):
            adjust(flour.id, 0, "CORRECTION")

    @pytest.mark.parametrize("change", [1_000_001, -1_000_001, 10 ** 20])
    def test_change_beyond_limit_is_rejected(self, owner, make_product, change):
        flour = make_product("Flour", quantity=5)

        with pytest.raises(ValidationError):
            adjust(flour.id, change, "CORRECTION")

        assert stock_of(flour.id) == 5
        assert adjustment_count() == 0

    def test_unknown_type_is_rejected(self, owner, make_product):
        flour = make_product("Flour", quantity=5)

        with pytest.raises(ValidationError):
            adjust(flour.id, 1, "SHRINKAGE")

    def test_unknown_product(self, owner):
        with pytest.raises(ProductNotFound):
            adjust(999999, 1, "ADDITION")
        assert adjustment_count() == 0

    def test_unknown_actor(self, make_product):
        flour = make_product("Flour", quantity=5)

        with pytest.raises(ActorNotFound):
            adjust(flour.id, 1, "ADDITION", actor="nobody")

        assert stock_of(flour.id) == 5
        assert adjustment_count() == 0


class TestAdjustmentHistory:
    def test_history_is_newest_first(self, owner, make_product):
        flour = make_product("Flour", quantity=5)
        first = adjust(flour.id, 1, "ADDITION").id
        second = adjust(flour.id, -1, "SUBTRACTION").id
        third = adjust(flour.id, 2, "CORRECTION").id

        rows = stock_adjustment_service.list_stock_adjustments()

        assert [r.id for r in rows] == [third, second, first]

    def test_history_filters_by_product_and_limit(self, owner, make_product):
        flour = make_product("Flour", quantity=5)
        salt = make_product("Salt", quantity=5)
        adjust(flour.id, 1, "ADDITION")
        adjust(salt.id, 1, "ADDITION")
        latest_flour = adjust(flour.id, 2, "ADDITION").id

        flour_rows = stock_adjustment_service.list_stock_adjustments(product_id=flour.id)
        assert {r.product_id for r in flour_rows} == {flour.id}
        assert len(flour_rows) == 2

        limited = stock_adjustment_service.list_stock_adjustments(product_id=flour.id, limit=1)
        assert [r.id for r in limited] == [latest_flour]

    def test_history_rows_serialize_actor(self, owner, make_product):
        flour = make_product("Flour", quantity=5)
        adjust(flour.id, 3, "ADDITION", reason="Delivery")

        data = stock_adjustment_service.list_stock_adjustments()[0].to_dict()

        assert data["user"] == {"id": owner.id, "username": "owen"}
        assert data["product_name"] == "Flour"
        assert data["quantity_change"] == 3
        assert data["adjustment_date"].endswith("Z")
