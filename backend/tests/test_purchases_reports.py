# Overview: Pytest coverage for supplier purchases, sales summaries and CSV exports.

from datetime import date
from decimal import Decimal

import pytest

from noor_pos.models import PurchaseItem, StockHistory
from noor_pos.services import purchase_service, report_service
from noor_pos.services.billing_service import build_cart, commit_sale
from noor_pos.services.purchase_service import PurchaseError
from noor_pos.services.report_service import ReportError
from noor_pos.time_utils import utcnow


class TestPurchases:
    def test_record_purchase(self, db_session, supplier):
        purchase = purchase_service.record_purchase(
            supplier.id,
            [
                {"item_name": "Silk fabric", "hsn_code": "5007", "quantity": 3, "unit_price": "450.50"},
                {"item_name": "Zari lace", "quantity": "10", "unit_price": 20},
            ],
            purchase_date=date(2026, 3, 1),
            created_by="admin",
        )

        assert purchase.purchase_number.startswith("PUR-")
        assert purchase.total_amount == Decimal("1551.50")
        items = db_session.query(PurchaseItem).filter_by(purchase_id=purchase.id).order_by(PurchaseItem.sno).all()
        assert [(i.sno, i.total_price) for i in items] == [(1, Decimal("1351.50")), (2, Decimal("200.00"))]

        db_session.refresh(supplier)
        assert supplier.total_purchases == Decimal("1551.50")
        # Bills are bookkeeping only
        assert db_session.query(StockHistory).count() == 0

    def test_two_bills_get_distinct_numbers(self, db_session, supplier):
        items = [{"item_name": "Thread", "quantity": 1, "unit_price": 10}]

        first = purchase_service.record_purchase(supplier.id, items)
        second = purchase_service.record_purchase(supplier.id, items)

        assert first.purchase_number != second.purchase_number
        db_session.refresh(supplier)
        assert supplier.total_purchases == Decimal("20.00")
        assert len(purchase_service.list_purchases(supplier_id=supplier.id)) == 2

    @pytest.mark.parametrize("items,message", [
        ([], "Add at least one item"),
        ([{"item_name": " ", "quantity": 1, "unit_price": 1}], "Item name is required"),
        ([{"item_name": "X", "quantity": 0, "unit_price": 1}], "quantity must be >= 1"),
        ([{"item_name": "X", "quantity": 1, "unit_price": "-3"}], "unit_price must be >= 0"),
    ])
    def test_invalid_items(self, db_session, supplier, items, message):
        with pytest.raises(PurchaseError, match=message):
            purchase_service.record_purchase(supplier.id, items)

    def test_unknown_supplier(self, db_session):
        with pytest.raises(PurchaseError, match="Supplier not found"):
            purchase_service.record_purchase(9999, [{"item_name": "X", "quantity": 1, "unit_price": 1}])

    def test_create_and_list_suppliers(self, db_session, supplier):
        created = purchase_service.create_supplier("Banaras Weavers", city="Varanasi", phone="")

        assert created.city == "Varanasi"
        assert created.phone is None
        assert [s.name for s in purchase_service.list_suppliers()] == ["Banaras Weavers", "Surat Textiles"]

        with pytest.raises(PurchaseError, match="Unknown supplier fields"):
            purchase_service.create_supplier("X", website="x.example")
        with pytest.raises(PurchaseError, match="Supplier name is required"):
            purchase_service.create_supplier("  ")


@pytest.fixture
def two_sales(db_session, make_product, customer):
    saree = make_product("RS1", name="Silk Saree", price="1000", stock=10)
    suit = make_product("RS2", name="Cotton Suit", price="500", stock=10)
    first = commit_sale(
        build_cart([{"product_id": saree.id, "quantity": 2, "discount_percent": 0}]),
        payment_method="cash",
        customer_id=customer.id,
    )
    second = commit_sale(
        build_cart([{"product_id": suit.id, "quantity": 1, "discount_percent": 0}]),
        payment_method="double",
        cash_amount="200",
        card_amount="300",
    )
    return first.order, second.order


class TestSalesSummary:
    def test_summary(self, db_session, two_sales):
        summary = report_service.sales_summary(days=7)

        assert summary["total_revenue"] == "2500.00"
        assert summary["total_orders"] == 2
        assert summary["average_order_value"] == "1250.00"
        assert summary["new_customers"] == 1
        assert summary["daily"] == [
            {"date": utcnow().date().isoformat(), "revenue": "2500.00", "orders": 2}
        ]
        assert [p["name"] for p in summary["top_products"]] == ["Silk Saree", "Cotton Suit"]
        assert summary["top_products"][0]["quantity"] == 2
        assert summary["top_customers"][0]["name"] == "Asha Verma"

        methods = {m["method"]: m for m in summary["payment_methods"]}
        assert methods["cash"]["total"] == "2000.00"
        assert methods["double"]["cash"] == "200.00"
        assert methods["double"]["card"] == "300.00"

    def test_empty_period(self, db_session):
        summary = report_service.sales_summary(days=30)

        assert summary["total_revenue"] == "0.00"
        assert summary["average_order_value"] == "0.00"
        assert summary["daily"] == []

    @pytest.mark.parametrize("days", [0, -1, "7", True])
    def test_days_must_be_positive(self, db_session, days):
        with pytest.raises(ReportError):
            report_service.sales_summary(days=days)


class TestCsvExports:
    def test_customers_csv(self, db_session, two_sales):
        lines = report_service.export_customers_csv().splitlines()

        assert lines[0] == '"ID","Name","Email","Phone","City","State","Total Orders","Total Spent"'
        assert '"Asha Verma","asha@example.com","9800000001","Jaipur","RJ",1,' in lines[1]
        assert "2000.00" in lines[1]

    def test_orders_csv_marks_walk_ins(self, db_session, two_sales):
        first, second = two_sales

        lines = report_service.export_orders_csv(days=30).splitlines()

        assert lines[0].startswith('"Order Number","Date","Customer"')
        assert len(lines) == 3
        assert f'"{second.order_number}"' in lines[1]
        assert '"Walk-in"' in lines[1]
        assert '"Asha Verma"' in lines[2]

    def test_sales_csv(self, db_session, two_sales):
        lines = report_service.export_sales_csv(days=7).splitlines()

        assert lines[0] == '"Date","Revenue","Orders"'
        assert lines[1].startswith(f'"{utcnow().date().isoformat()}",')
        assert lines[1].endswith(",2")
