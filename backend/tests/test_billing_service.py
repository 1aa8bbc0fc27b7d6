# Overview: Pytest coverage for the POS cart, payment split and sale commit.

from datetime import date
from decimal import Decimal

import pytest

from noor_pos.models import Invoice, Notification, Order, OrderItem, StockHistory
from noor_pos.services import billing_service
from noor_pos.services.billing_service import (
    Cart,
    ProductNotFoundError,
    SaleError,
    StockLimitError,
    build_cart,
    clamp_discount,
    commit_sale,
    resolve_payment,
    scan_sku,
)


class TestCart:
    def test_add_product_uses_selling_price_and_default_discount(self, db_session, make_product):
        product = make_product(price="1200", discount_price="1000", sizes=["M", "L"], colors=["Red"])
        cart = Cart()

        line = cart.add_product(product)

        assert line.unit_price == Decimal("1000.00")
        assert line.quantity == 1
        assert line.discount_percent == 10
        assert (line.size, line.color) == ("M", "Red")

    def test_repeat_add_bumps_quantity_up_to_stock(self, db_session, make_product):
        product = make_product(stock=2)
        cart = Cart()

        cart.add_product(product)
        cart.add_product(product)

        assert len(cart.lines) == 1
        assert cart.lines[0].quantity == 2
        with pytest.raises(StockLimitError, match="Cannot add more than available stock"):
            cart.add_product(product)

    def test_out_of_stock_product_cannot_be_added(self, db_session, make_product):
        with pytest.raises(StockLimitError):
            Cart().add_product(make_product(stock=0))

    def test_discount_rounds_half_up_per_line(self, db_session, make_product):
        cart = Cart()
        cart.add_product(make_product(price="1005"))
        cart.add_product(make_product(price="999"))
        cart.update_line(1, discount_percent=15)

        assert cart.lines[0].discount == 101
        assert cart.lines[1].discount == 150
        totals = cart.totals()
        assert totals.subtotal == Decimal("2004")
        assert totals.discount_amount == Decimal("251")
        assert totals.total_amount == Decimal("1753")
        assert totals.tax_amount == Decimal("0")

    def test_update_line_limits(self, db_session, make_product):
        cart = Cart()
        cart.add_product(make_product(stock=3))

        with pytest.raises(SaleError, match="Quantity must be at least 1"):
            cart.update_line(0, quantity=0)
        with pytest.raises(StockLimitError):
            cart.update_line(0, quantity=4)
        with pytest.raises(SaleError, match="Cart line not found"):
            cart.update_line(5, quantity=1)

    def test_remove_line(self, db_session, make_product):
        cart = Cart()
        cart.add_product(make_product())
        cart.remove_line(0)
        assert cart.lines == []

    @pytest.mark.parametrize("raw,expected", [(None, 0), ("", 0), (-5, 0), (12.6, 13), ("40", 40), (250, 100)])
    def test_clamp_discount(self, raw, expected):
        assert clamp_discount(raw) == expected

    def test_clamp_discount_rejects_text(self):
        with pytest.raises(SaleError):
            clamp_discount("ten")


class TestScanAndBuild:
    def test_scan_is_case_insensitive(self, db_session, make_product):
        product = make_product("BCN-77")
        assert scan_sku("  bcn-77 ").id == product.id

    def test_scan_skips_inactive_and_out_of_stock(self, db_session, make_product):
        make_product("GONE", stock=0)
        make_product("HIDDEN", is_active=False)

        with pytest.raises(ProductNotFoundError, match="No product with SKU: GONE"):
            scan_sku("GONE")
        with pytest.raises(ProductNotFoundError):
            scan_sku("HIDDEN")

    def test_scan_requires_sku(self, db_session):
        with pytest.raises(SaleError, match="SKU is required"):
            scan_sku("  ")

    def test_build_cart_merges_repeated_products(self, db_session, make_product):
        product = make_product(stock=5)

        cart = build_cart([
            {"product_id": product.id, "quantity": 2, "discount_percent": 0},
            {"product_id": product.id, "quantity": 1},
        ])

        assert len(cart.lines) == 1
        assert cart.lines[0].quantity == 3
        assert cart.lines[0].discount_percent == 0

    def test_build_cart_unknown_product(self, db_session):
        with pytest.raises(ProductNotFoundError):
            build_cart([{"product_id": 999999}])


class TestResolvePayment:
    def test_cash(self):
        payment = resolve_payment("cash", Decimal("2700"))
        assert payment.cash_amount == Decimal("2700.00")
        assert payment.payment_status == "paid"

    def test_credit_defaults_to_full_total(self):
        payment = resolve_payment("credit", Decimal("2700"), credit_amount="")
        assert payment.credit_amount == Decimal("2700.00")
        assert payment.payment_status == "pending"

    def test_partial_credit_is_still_pending(self):
        payment = resolve_payment("credit", Decimal("2700"), credit_amount="1000")
        assert payment.credit_amount == Decimal("1000.00")
        assert payment.payment_status == "pending"

    def test_credit_above_total(self):
        with pytest.raises(SaleError, match="cannot exceed"):
            resolve_payment("credit", Decimal("100"), credit_amount="200")

    def test_double_must_add_up(self):
        payment = resolve_payment("double", Decimal("2700"), cash_amount="700", card_amount="2000")
        assert (payment.cash_amount, payment.card_amount) == (Decimal("700.00"), Decimal("2000.00"))

        with pytest.raises(SaleError, match="must add up"):
            resolve_payment("double", Decimal("2700"), cash_amount="700", card_amount="1000")

    def test_unknown_method(self):
        with pytest.raises(SaleError, match="payment_method must be one of"):
            resolve_payment("cheque", Decimal("1"))


class TestCommitSale:
    def _cart(self, product, quantity):
        return build_cart([{"product_id": product.id, "quantity": quantity}])

    def test_sale_debits_stock_once_with_history(self, db_session, make_product, customer, salesman):
        product = make_product(price="1000", stock=10)

        result = commit_sale(
            self._cart(product, 3),
            payment_method="cash",
            customer_id=customer.id,
            salesman_id=salesman.id,
            created_by="admin",
        )

        db_session.expire_all()
        assert product.stock_quantity == 7
        [history] = db_session.query(StockHistory).filter_by(product_id=product.id).all()
        assert history.change_type == "sale"
        assert history.change_amount == -3
        assert history.reference_id == result.order.id
        assert history.notes == f"In-store sale - Order {result.order.order_number}"

    def test_sale_writes_order_invoice_and_rollups(self, db_session, make_product, customer, salesman):
        product = make_product(price="1000", stock=10)

        result = commit_sale(
            self._cart(product, 3),
            payment_method="cash",
            customer_id=customer.id,
            salesman_id=salesman.id,
        )

        order = result.order
        assert order.order_number.startswith("POS-")
        assert order.status == "delivered"
        assert order.payment_status == "paid"
        assert order.order_source == "pos"
        assert order.subtotal == Decimal("3000.00")
        assert order.discount_amount == Decimal("300.00")
        assert order.total_amount == Decimal("2700.00")
        assert order.cash_amount == Decimal("2700.00")
        assert order.notes == "In-store purchase - cash"

        assert result.invoice.invoice_number == "INV-000001"
        assert result.invoice.total_amount == Decimal("2700.00")
        [item] = db_session.query(OrderItem).filter_by(order_id=order.id).all()
        assert (item.quantity, item.total_price, item.discount_percent) == (3, Decimal("3000.00"), 10)

        db_session.refresh(customer)
        db_session.refresh(salesman)
        assert customer.total_orders == 1
        assert customer.total_spent == Decimal("2700.00")
        assert customer.last_purchase_date is not None
        assert salesman.total_orders == 1
        assert salesman.total_sales == Decimal("2700.00")

        assert result.receipt["invoice_number"] == "INV-000001"
        assert result.receipt["customer"] == {"name": "Asha Verma"}
        assert result.receipt["total_amount"] == "2700.00"

    def test_invoice_numbers_are_sequential(self, db_session, make_product):
        product = make_product(stock=5)

        first = commit_sale(self._cart(product, 1), payment_method="cash")
        second = commit_sale(self._cart(product, 1), payment_method="card_upi")

        assert [first.invoice.invoice_number, second.invoice.invoice_number] == ["INV-000001", "INV-000002"]

    def test_sale_queues_notification(self, db_session, make_product):
        product = make_product(price="1000", stock=5)

        result = commit_sale(self._cart(product, 3), payment_method="cash")

        [notification] = db_session.query(Notification).all()
        assert notification.type == "order"
        assert notification.title == "New Walk-in Order"
        assert notification.message == f"Order {result.order.order_number} placed for ₹2,700"
        assert notification.is_read is False

    def test_credit_and_alteration(self, db_session, make_product):
        product = make_product(stock=5)

        result = commit_sale(
            self._cart(product, 1),
            payment_method="credit",
            needs_alteration=True,
            alteration_due_date=date(2026, 3, 20),
            alteration_notes="Shorten sleeves",
        )

        order = result.order
        assert order.status == "processing"
        assert order.payment_status == "pending"
        assert order.alteration_status == "pending"
        assert order.alteration_due_date == date(2026, 3, 20)
        assert result.invoice.payment_status == "pending"

    def test_insufficient_stock_rolls_back_everything(self, db_session, make_product, customer):
        product = make_product(stock=5)
        cart = self._cart(product, 3)
        # Another till sold most of it meanwhile
        product.stock_quantity = 1
        db_session.commit()

        with pytest.raises(SaleError, match="Insufficient stock for"):
            commit_sale(cart, payment_method="cash", customer_id=customer.id)

        db_session.expire_all()
        assert product.stock_quantity == 1
        assert db_session.query(Order).count() == 0
        assert db_session.query(Invoice).count() == 0
        assert db_session.query(StockHistory).count() == 0
        assert db_session.query(Notification).count() == 0
        assert customer.total_orders == 0

    def test_empty_cart(self, db_session):
        with pytest.raises(SaleError, match="Please add items to the cart"):
            commit_sale(Cart(), payment_method="cash")

    def test_inactive_salesman(self, db_session, make_product, salesman):
        salesman.is_active = False
        db_session.commit()
        product = make_product()

        with pytest.raises(SaleError, match="Salesman not found or inactive"):
            commit_sale(self._cart(product, 1), payment_method="cash", salesman_id=salesman.id)

    def test_order_number_format(self):
        assert billing_service.generate_order_number(date(2026, 3, 14)).startswith("POS-20260314-")
        assert len(billing_service.generate_order_number(date(2026, 3, 14))) == len("POS-20260314-0000")


class TestReprint:
    def test_receipt_for_invoice(self, db_session, make_product, salesman):
        product = make_product("RC1", price="500", stock=5, sizes=["S"])
        result = commit_sale(
            build_cart([{"product_id": product.id, "quantity": 2}]),
            payment_method="cash",
            salesman_id=salesman.id,
        )

        receipt = billing_service.receipt_for_invoice(result.invoice.id)

        assert receipt["invoice_number"] == "INV-000001"
        assert receipt["salesman"] == {"name": "Ravi"}
        assert receipt["customer"] is None
        [item] = receipt["items"]
        assert item["sku"] == "RC1"
        assert item["size"] == "S"
        assert item["unit_price"] == "500.00"
        assert receipt["total_amount"] == "900.00"

    def test_unknown_invoice(self, db_session):
        with pytest.raises(SaleError, match="Invoice not found"):
            billing_service.receipt_for_invoice(123456)
