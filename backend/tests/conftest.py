"""
Pytest fixtures for billing engine tests.

Provides test database setup and tenant/customer/product fixtures.
"""

from datetime import datetime

import pytest

from billing import create_app
from billing.extensions import db
from billing.models import Business, Customer, Product
from billing.services import billing_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DB_RETRY_BACKOFF': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


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


@pytest.fixture(scope='function')
def business(db_session):
    """Create Business A (first tenant)."""
    business = Business(name="Business A - Acme Retail", code="ACME", is_active=True)
    db_session.add(business)
    db_session.commit()
    return business


@pytest.fixture(scope='function')
def other_business(db_session):
    """Create Business B (second tenant)."""
    business = Business(name="Business B - Beta Traders", code="BETA", is_active=True)
    db_session.add(business)
    db_session.commit()
    return business


@pytest.fixture(scope='function')
def customer(db_session, business):
    customer = Customer(business_id=business.id, name="Ravi Kumar", email="ravi@example.com")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def product(db_session, business):
    """Stock-tracked physical product with 10 units on hand."""
    product = Product(
        business_id=business.id,
        sku="SKU-001",
        name="Basmati Rice 5kg",
        unit="BAG",
        price_cents=1000,
        track_quantity=True,
        current_stock=10,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def service_product(db_session, business):
    product = Product(
        business_id=business.id,
        sku="SVC-001",
        name="Home Delivery",
        unit="SERVICE",
        price_cents=500,
        is_service=True,
        track_quantity=False,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def make_bill(db_session, business):
    """Factory for single-line bills whose total equals total_cents."""
    def _make(total_cents, *, customer_id=None, bill_date=None, status="PENDING", **extra):
        bill_input = {
            "customer_id": customer_id,
            "bill_date": bill_date or datetime(2025, 1, 10),
            "status": status,
            "items": [{"name": "Consulting", "quantity": 1, "rate_cents": total_cents}],
        }
        bill_input.update(extra)
        return billing_service.create_bill(business.id, 1, bill_input)
    return _make
