# Overview: Pytest coverage for the inventory ledger.

import pytest

from noor_pos.models import StockHistory
from noor_pos.services import inventory_service
from noor_pos.services.inventory_service import (
    IN_STOCK,
    LOW_STOCK,
    OUT_OF_STOCK,
    InsufficientStockError,
    InventoryError,
)


def _history(db_session, product_id):
    return (
        db_session.query(StockHistory)
        .filter_by(product_id=product_id)
        .order_by(StockHistory.id.asc())
        .all()
    )


class TestApplyStockDelta:
    def test_debit_updates_stock_and_appends_history(self, db_session, make_product):
        product = make_product(stock=10)

        entry = inventory_service.apply_stock_delta(product.id, -3, change_type="sale", reference_id=42)
        db_session.commit()

        assert product.stock_quantity == 7
        assert entry.change_amount == -3
        assert entry.previous_quantity == 10
        assert entry.new_quantity == 7
        assert entry.reference_id == 42
        assert len(_history(db_session, product.id)) == 1

    def test_debit_below_zero_is_rejected_and_writes_nothing(self, db_session, make_product):
        product = make_product(stock=2)

        with pytest.raises(InsufficientStockError) as exc:
            inventory_service.apply_stock_delta(product.id, -3, change_type="sale")
        db_session.rollback()

        assert exc.value.details["on_hand"] == 2
        db_session.refresh(product)
        assert product.stock_quantity == 2
        assert _history(db_session, product.id) == []

    def test_unknown_product(self, db_session):
        with pytest.raises(InventoryError, match="Product not found"):
            inventory_service.apply_stock_delta(99999, 1, change_type="adjustment_in")

    @pytest.mark.parametrize("delta", [0, 1.5, True])
    def test_delta_must_be_non_zero_integer(self, db_session, make_product, delta):
        product = make_product()
        with pytest.raises(InventoryError):
            inventory_service.apply_stock_delta(product.id, delta, change_type="adjustment_in")


class TestSetStock:
    def test_unchanged_quantity_writes_no_history(self, db_session, make_product):
        product = make_product(stock=5)

        entry = inventory_service.set_stock(product.id, 5, change_type="file_upload")
        db_session.commit()

        assert entry is None
        assert _history(db_session, product.id) == []

    def test_changed_quantity_records_difference(self, db_session, make_product):
        product = make_product(stock=5)

        entry = inventory_service.set_stock(product.id, 12, change_type="file_upload", notes="Synced")
        db_session.commit()

        assert product.stock_quantity == 12
        assert entry.change_amount == 7
        assert entry.previous_quantity == 5


class TestAdjustStock:
    def test_add(self, db_session, make_product):
        product = make_product(stock=4)

        entry = inventory_service.adjust_stock(product.id, mode="adjust", quantity=6, direction="add", created_by="admin")

        assert entry.change_type == "adjustment_in"
        assert entry.notes == "Stock added 6"
        assert entry.created_by == "admin"
        db_session.refresh(product)
        assert product.stock_quantity == 10

    def test_remove(self, db_session, make_product):
        product = make_product(stock=4)

        entry = inventory_service.adjust_stock(product.id, mode="adjust", quantity=3, direction="remove")

        assert entry.change_type == "adjustment_out"
        assert entry.change_amount == -3
        assert entry.notes == "Stock removed 3"

    def test_remove_more_than_available(self, db_session, make_product):
        product = make_product(stock=4)

        with pytest.raises(InsufficientStockError, match="Cannot remove more than available stock"):
            inventory_service.adjust_stock(product.id, mode="adjust", quantity=5, direction="remove")

        db_session.refresh(product)
        assert product.stock_quantity == 4
        assert _history(db_session, product.id) == []

    def test_set_always_records_history(self, db_session, make_product):
        product = make_product(stock=4)

        entry = inventory_service.adjust_stock(product.id, mode="set", quantity=4, notes="Recount")

        assert entry.change_type == "stock_set"
        assert entry.change_amount == 0
        assert entry.notes == "Recount"

    def test_set_to_zero(self, db_session, make_product):
        product = make_product(stock=4)

        inventory_service.adjust_stock(product.id, mode="set", quantity=0)

        db_session.refresh(product)
        assert product.stock_quantity == 0

    @pytest.mark.parametrize("quantity", [-1, "5", None])
    def test_invalid_quantity(self, db_session, make_product, quantity):
        product = make_product(stock=4)
        with pytest.raises(InventoryError, match="Please enter a valid quantity"):
            inventory_service.adjust_stock(product.id, mode="adjust", quantity=quantity)

    def test_zero_adjustment_is_invalid(self, db_session, make_product):
        product = make_product(stock=4)
        with pytest.raises(InventoryError, match="Please enter a valid quantity"):
            inventory_service.adjust_stock(product.id, mode="adjust", quantity=0)


class TestStockQueries:
    def test_history_is_newest_first_and_limited(self, db_session, make_product):
        product = make_product(stock=0)
        for qty in (1, 2, 3):
            inventory_service.adjust_stock(product.id, mode="adjust", quantity=qty)

        entries = inventory_service.stock_history(product.id, limit=2)

        assert [e.change_amount for e in entries] == [3, 2]

    def test_classify_stock(self, db_session, make_product):
        assert inventory_service.classify_stock(make_product(stock=0)) == OUT_OF_STOCK
        assert inventory_service.classify_stock(make_product(stock=10)) == LOW_STOCK
        assert inventory_service.classify_stock(make_product(stock=11)) == IN_STOCK
        assert inventory_service.classify_stock(make_product(stock=4, min_stock_alert=3)) == IN_STOCK

    def test_low_stock_products(self, db_session, make_product):
        low = make_product(stock=2)
        make_product(stock=0)
        make_product(stock=50)
        make_product(stock=1, is_active=False)

        assert [p.id for p in inventory_service.low_stock_products()] == [low.id]
