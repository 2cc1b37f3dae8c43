"""
Pytest fixtures for BranchPOS backend tests.

Provides test database setup, a branch/user/catalog baseline with stock,
and a test client.
"""

import pytest

from branchpos import create_app
from branchpos.extensions import db
from branchpos.models import Addon, Branch, Customer, Product, User
from branchpos.services.stock_ledger import StockLedger


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'WARNING',
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


@pytest.fixture(scope='function')
def branch(db_session):
    """Main branch."""
    branch = Branch(name="Main Branch", address="1 Market St", is_active=True)
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def other_branch(db_session):
    """Second branch, used as transfer destination."""
    branch = Branch(name="Harbour Branch", is_active=True)
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def user(db_session, branch):
    """Cashier at the main branch. Hash is a placeholder: no login in these tests."""
    user = User(
        email="cashier@branchpos.test",
        password_hash="x",
        full_name="Test Cashier",
        role="CASHIER",
        branch_id=branch.id,
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def product(db_session):
    """Product sold at 15.00."""
    product = Product(
        sku="TEST001",
        name="Test Product",
        base_price_cents=1000,
        selling_price_cents=1500,
        unit="pcs",
        min_stock=10,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def unstocked_product(db_session):
    """Product that was never stocked anywhere."""
    product = Product(
        sku="TEST002",
        name="Test Product 2",
        base_price_cents=500,
        selling_price_cents=1000,
        unit="pcs",
        min_stock=1,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def addon(db_session):
    """Addon priced 2.50."""
    addon = Addon(name="Extra Cheese", price_cents=250, is_active=True)
    db_session.add(addon)
    db_session.commit()
    return addon


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(
        customer_code="CUST-TEST-0001",
        name="Test Customer",
        phone="+15550100",
        email="customer@branchpos.test",
        membership_type="BASIC",
        loyalty_points=0,
        total_spent_cents=0,
    )
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def ledger(db_session):
    return StockLedger(db_session)


@pytest.fixture(scope='function')
def stocked(ledger, product, branch, user):
    """100 units of product on hand at the main branch."""
    ledger.apply_movement(product.id, branch.id, "IN", 100, user.id, notes="Opening stock")
    return ledger.get_stock(product.id, branch.id)


def cart_item(product_id, quantity, unit_price_cents=None, discount_cents=0, addons=None, notes=None):
    """Build one cart line in the create-transaction shape."""
    item = {
        "product_id": product_id,
        "quantity": quantity,
        "discount_cents": discount_cents,
        "addons": addons or [],
    }
    if unit_price_cents is not None:
        item["unit_price_cents"] = unit_price_cents
    if notes is not None:
        item["notes"] = notes
    return item
