"""
Pytest fixtures for Noor POS backend tests.

Provides test database setup, catalog/party factories, and test client.
"""

from decimal import Decimal

import pytest
from noor_pos import create_app
from noor_pos.extensions import db
from noor_pos.models import Category, Customer, Product, Salesman, Supplier


OPERATOR = {"X-Operator-Id": "admin"}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        db.session.expunge_all()


@pytest.fixture(scope='function')
def operator_headers():
    return dict(OPERATOR)


@pytest.fixture(scope='function')
def categories(db_session):
    """The four import categories."""
    rows = {}
    for index, name in enumerate(("LEHENGA", "RM DRESS", "SAREE", "SUIT")):
        category = Category(name=name, slug=name.lower().replace(" ", "-"), sort_order=index)
        db_session.add(category)
        rows[name] = category
    db_session.commit()
    return rows


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(sku="BCN1", price="1000", stock=10, ...)."""
    counter = {"n": 0}

    def _make(
        sku=None,
        *,
        name=None,
        price="1000",
        discount_price=None,
        stock=10,
        min_stock_alert=None,
        sizes=None,
        colors=None,
        is_active=True,
    ):
        counter["n"] += 1
        sku = sku or f"SKU-{counter['n']:03d}"
        product = Product(
            name=name or f"Product {sku}",
            slug=f"product-{sku.lower()}",
            sku=sku,
            price=Decimal(price),
            discount_price=Decimal(discount_price) if discount_price is not None else None,
            stock_quantity=stock,
            min_stock_alert=min_stock_alert,
            sizes=sizes,
            colors=colors,
            is_active=is_active,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(name="Asha Verma", phone="9800000001", email="asha@example.com", city="Jaipur", state="RJ")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def salesman(db_session):
    salesman = Salesman(name="Ravi", commission_rate=Decimal("2.50"))
    db_session.add(salesman)
    db_session.commit()
    return salesman


@pytest.fixture(scope='function')
def supplier(db_session):
    supplier = Supplier(name="Surat Textiles", gst_number="24ABCDE1234F1Z5")
    db_session.add(supplier)
    db_session.commit()
    return supplier
