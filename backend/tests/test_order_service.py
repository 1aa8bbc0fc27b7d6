# Overview: Pytest coverage for order maintenance and deletion.

from decimal import Decimal

import pytest
from sqlalchemy import delete

from noor_pos.models import Customer, Invoice, Order, OrderItem, Product, StockHistory
from noor_pos.services import order_service
from noor_pos.services.billing_service import build_cart, commit_sale
from noor_pos.services.exchange_service import commit_exchange
from noor_pos.services.order_service import OrderError, OrderNotFoundError


@pytest.fixture
def sale(db_session, make_product, customer, salesman):
    product = make_product("DEL1", price="1000", stock=10)
    result = commit_sale(
        build_cart([{"product_id": product.id, "quantity": 3}]),
        payment_method="cash",
        customer_id=customer.id,
        salesman_id=salesman.id,
    )
    return result.order, product


class TestDeleteOrder:
    def test_restores_stock_and_rollups(self, db_session, sale, customer, salesman):
        order, product = sale
        order_id = order.id

        result = order_service.delete_order(order_id, operator_id="admin")

        assert result["units_restored"] == 3
        assert result["invoices_deleted"] == 1
        assert result["history_deleted"] == 1
        assert "products" in result["invalidated_queries"]

        db_session.expire_all()
        assert product.stock_quantity == 10
        assert db_session.get(Order, order_id) is None
        assert db_session.query(OrderItem).filter_by(order_id=order_id).count() == 0
        assert db_session.query(Invoice).filter_by(order_id=order_id).count() == 0
        assert customer.total_orders == 0
        assert customer.total_spent == Decimal("0.00")
        assert salesman.total_orders == 0
        assert salesman.total_sales == Decimal("0.00")

        [restore] = db_session.query(StockHistory).filter_by(product_id=product.id).all()
        assert restore.change_type == "order_deleted"
        assert restore.change_amount == 3
        assert restore.notes == f"Order {order.order_number} deleted"
        assert restore.created_by == "admin"

    def test_rollups_never_go_negative(self, db_session, sale, customer):
        order, _ = sale
        # Rollup drifted below the order's own contribution
        db_session.query(Customer).filter_by(id=customer.id).update({"total_spent": Decimal("100"), "total_orders": 0})
        db_session.commit()

        order_service.delete_order(order.id)

        db_session.refresh(customer)
        assert customer.total_spent == Decimal("0.00")
        assert customer.total_orders == 0

    def test_line_whose_product_was_removed(self, db_session, sale):
        order, _ = sale
        order.items[0].product_id = None
        db_session.commit()

        result = order_service.delete_order(order.id)

        assert result["units_restored"] == 0

    def test_after_an_exchange(self, db_session, make_product):
        old = make_product("EXA", price="500", stock=10)
        new = make_product("EXB", price="1200", stock=5)
        order = commit_sale(build_cart([{"product_id": old.id, "quantity": 2}]), payment_method="cash").order
        commit_exchange(
            order.id,
            returned_item_ids=[order.items[0].id],
            replacements=[{"product_id": new.id, "quantity": 1}],
        )
        db_session.expire_all()
        assert (old.stock_quantity, new.stock_quantity) == (10, 4)

        result = order_service.delete_order(order.id)

        # Only the post-exchange line is put back
        assert result["units_restored"] == 1
        assert result["history_deleted"] == 3
        db_session.expire_all()
        assert (old.stock_quantity, new.stock_quantity) == (10, 5)
        remaining = [(h.product_id, h.change_type, h.change_amount) for h in db_session.query(StockHistory).all()]
        assert remaining == [(new.id, "order_deleted", 1)]

    def test_deleting_a_product_detaches_its_order_lines(self, db_session, sale):
        order, product = sale
        db_session.query(StockHistory).filter_by(product_id=product.id).delete()
        db_session.execute(delete(Product).where(Product.id == product.id))
        db_session.commit()
        db_session.expire_all()

        [line] = db_session.query(OrderItem).filter_by(order_id=order.id).all()
        assert line.product_id is None
        assert line.product_sku == "DEL1"
        assert order_service.delete_order(order.id)["units_restored"] == 0

    def test_invoices_outlive_a_removed_order_row(self, db_session, sale):
        order, _ = sale
        order_id = order.id
        db_session.query(OrderItem).filter_by(order_id=order_id).delete()
        db_session.execute(delete(Order).where(Order.id == order_id))
        db_session.commit()
        db_session.expire_all()

        [invoice] = db_session.query(Invoice).all()
        assert invoice.order_id is None

    def test_unknown_order(self, db_session):
        with pytest.raises(OrderNotFoundError):
            order_service.delete_order(424242)


class TestOrderUpdates:
    def test_payment_status_is_mirrored_to_invoices(self, db_session, sale):
        order, _ = sale

        order_service.update_payment_status(order.id, "refunded")

        db_session.expire_all()
        assert db_session.get(Order, order.id).payment_status == "refunded"
        [invoice] = db_session.query(Invoice).filter_by(order_id=order.id).all()
        assert invoice.payment_status == "refunded"

    def test_invalid_statuses(self, db_session, sale):
        order, _ = sale
        with pytest.raises(OrderError, match="payment_status must be one of"):
            order_service.update_payment_status(order.id, "lost")
        with pytest.raises(OrderError, match="status must be one of"):
            order_service.update_order_status(order.id, "teleported")

    def test_status(self, db_session, sale):
        order, _ = sale
        assert order_service.update_order_status(order.id, "cancelled").status == "cancelled"

    def test_edit_amount_keeps_totals_consistent(self, db_session, sale):
        order, _ = sale

        edited = order_service.edit_order_amount(order.id, Decimal("2500"))

        assert edited.total_amount == Decimal("2500.00")
        assert edited.subtotal == Decimal("2800.00")
        assert order_service.order_totals_consistent(edited)
        [invoice] = db_session.query(Invoice).filter_by(order_id=order.id).all()
        assert invoice.total_amount == Decimal("2500.00")

    def test_edit_amount_rejects_negative(self, db_session, sale):
        order, _ = sale
        with pytest.raises(OrderError, match="Amount cannot be negative"):
            order_service.edit_order_amount(order.id, Decimal("-1"))


class TestListOrders:
    def test_search_by_customer_and_number(self, db_session, sale, make_product):
        order, _ = sale
        walk_in = commit_sale(
            build_cart([{"product_id": make_product().id}]), payment_method="cash"
        ).order

        assert [o.id for o in order_service.list_orders(search="asha")] == [order.id]
        assert [o.id for o in order_service.list_orders(search=walk_in.order_number.lower())] == [walk_in.id]
        assert {o.id for o in order_service.list_orders(source="pos")} == {order.id, walk_in.id}
        assert order_service.list_orders(status="shipped") == []
