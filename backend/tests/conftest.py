"""
Pytest fixtures for field ledger tests.

Provides an in-memory database, account/product factories, principals and
request headers for each role.
"""

import pytest

from fieldledger import create_app
from fieldledger.extensions import db
from fieldledger.models.accounts import ROLE_ADMIN, ROLE_SALESMAN, ROLE_SHOPKEEPER, ROLE_SUPERADMIN
from fieldledger.services import account_service, assignment_service, product_service
from fieldledger.services.account_service import Principal


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'LEDGER_RETRY_ATTEMPTS': 3,
    'LEDGER_RETRY_BACKOFF': 0,
    'LOG_LEVEL': 'WARNING',
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

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
def make_account(db_session):
    """Factory: make_account(role, **fields) -> committed Account."""
    counter = {"n": 0}

    def _make(role, **fields):
        counter["n"] += 1
        fields.setdefault("name", f"{role.title()} {counter['n']}")
        fields.setdefault("email", f"{role}{counter['n']}@example.com")
        account = account_service.create_account(role=role, **fields)
        db_session.commit()
        return account

    return _make


@pytest.fixture(scope='function')
def make_product(db_session):
    counter = {"n": 0}

    def _make(stock=50, price_cents=100, **fields):
        counter["n"] += 1
        fields.setdefault("name", f"Product {counter['n']}")
        fields.setdefault("sku", f"SKU-{counter['n']}")
        product = product_service.create_product(stock=stock, price_cents=price_cents, **fields)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def superadmin(make_account):
    return make_account(ROLE_SUPERADMIN)


@pytest.fixture(scope='function')
def admin(make_account):
    return make_account(ROLE_ADMIN)


@pytest.fixture(scope='function')
def salesman(make_account, admin):
    """Salesman managed by `admin`."""
    return make_account(ROLE_SALESMAN, managed_by_id=admin.id)


@pytest.fixture(scope='function')
def shopkeeper(make_account):
    """Shopkeeper with an opening pending amount of 1000."""
    return make_account(ROLE_SHOPKEEPER, pending_amount_cents=1000)


@pytest.fixture(scope='function')
def product(make_product):
    """Product with 50 units in the warehouse."""
    return make_product(stock=50)


@pytest.fixture(scope='function')
def assignment(db_session, superadmin, salesman, shopkeeper):
    return assignment_service.create_assignment(salesman.id, shopkeeper.id, principal_for(superadmin))


def principal_for(account) -> Principal:
    return Principal(id=account.id, role=account.role)


def headers_for(account) -> dict:
    return {"X-Principal-Id": str(account.id)}


@pytest.fixture(scope='function')
def stocked_salesman(db_session, admin, salesman, product):
    """Salesman holding 20 delivered units of `product` (warehouse left with 30)."""
    from fieldledger.models.ledger import DISTRIBUTION_ADMIN_TO_SALESMAN
    from fieldledger.schemas import DistributionRequest, DistributionStatusUpdate
    from fieldledger.services import distribution_service

    request = DistributionRequest(product_id=product.id, quantity=20, unit_price_cents=100, salesman_id=salesman.id)
    distribution = distribution_service.record_distribution(
        DISTRIBUTION_ADMIN_TO_SALESMAN, request, principal_for(admin)
    )
    distribution_service.update_distribution_status(
        distribution.id, DistributionStatusUpdate(status="delivered"), principal_for(admin)
    )
    return salesman
