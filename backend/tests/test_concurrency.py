"""
Concurrency tests.

Verifies:
- Two concurrent recoveries against one shopkeeper never lose an update
- Two concurrent hand-overs cannot over-draw one salesman's stock
- run_in_transaction retries conflicts and then surfaces TransientError
- Pool checkout timeouts and dropped connections count as conflicts
"""

import threading

import pytest
from sqlalchemy.exc import DisconnectionError, OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm.exc import StaleDataError

from conftest import TEST_CONFIG
from fieldledger import create_app
from fieldledger.errors import InsufficientStockError, TransientError, ValidationError
from fieldledger.extensions import db
from fieldledger.models import Account, Distribution
from fieldledger.models.accounts import ROLE_ADMIN, ROLE_SALESMAN, ROLE_SHOPKEEPER, ROLE_SUPERADMIN
from fieldledger.models.ledger import DISTRIBUTION_ADMIN_TO_SALESMAN, DISTRIBUTION_SALESMAN_TO_SHOPKEEPER
from fieldledger.schemas import DistributionRequest, DistributionStatusUpdate, RecoveryRequest
from fieldledger.services import (
    account_service,
    assignment_service,
    balance_service,
    distribution_service,
    product_service,
    stock_service,
)
from fieldledger.services.account_service import Principal
from fieldledger.services.concurrency import run_in_transaction


@pytest.fixture
def file_app(tmp_path):
    """App on a file-backed SQLite database so threads get real connections."""
    config = dict(TEST_CONFIG)
    config.update({
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.db'}",
        'LEDGER_RETRY_ATTEMPTS': 10,
        'LEDGER_RETRY_BACKOFF': 0.01,
    })
    app = create_app(config)

    with app.app_context():
        db.create_all()

        superadmin = account_service.create_account(name="Root", email="root@example.com", role=ROLE_SUPERADMIN)
        admin = account_service.create_account(name="Admin", email="admin@example.com", role=ROLE_ADMIN)
        db.session.flush()
        salesman = account_service.create_account(
            name="Sales", email="sales@example.com", role=ROLE_SALESMAN, managed_by_id=admin.id
        )
        shopkeeper = account_service.create_account(
            name="Shop", email="shop@example.com", role=ROLE_SHOPKEEPER, pending_amount_cents=1000
        )
        product = product_service.create_product(name="Chips", sku="CHIPS", price_cents=100, stock=50)
        db.session.commit()

        assignment_service.create_assignment(salesman.id, shopkeeper.id, Principal(superadmin.id, ROLE_SUPERADMIN))
        shipped = distribution_service.record_distribution(
            DISTRIBUTION_ADMIN_TO_SALESMAN,
            DistributionRequest(product_id=product.id, quantity=20, unit_price_cents=100, salesman_id=salesman.id),
            Principal(admin.id, ROLE_ADMIN),
        )
        distribution_service.update_distribution_status(
            shipped.id, DistributionStatusUpdate(status="delivered"), Principal(admin.id, ROLE_ADMIN)
        )

        app.ids = {
            "salesman": salesman.id,
            "shopkeeper": shopkeeper.id,
            "product": product.id,
        }
        db.session.remove()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def run_workers(app, targets):
    results = []
    lock = threading.Lock()
    barrier = threading.Barrier(len(targets))

    def worker(target):
        with app.app_context():
            try:
                barrier.wait()
                target()
                with lock:
                    results.append("ok")
            except Exception as exc:
                with lock:
                    results.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker, args=(t,)) for t in targets]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


class TestConcurrentRecoveries:

    def test_no_lost_update(self, file_app):
        ids = file_app.ids
        principal = Principal(ids["salesman"], ROLE_SALESMAN)

        def collect(amount):
            return lambda: balance_service.record_recovery(
                RecoveryRequest(
                    shopkeeper_id=ids["shopkeeper"],
                    recovery_type="payment_only",
                    amount_collected_cents=amount,
                    payment_method="cash",
                ),
                principal,
            )

        results = run_workers(file_app, [collect(300), collect(200)])

        assert results == ["ok", "ok"]
        with file_app.app_context():
            assert db.session.get(Account, ids["shopkeeper"]).pending_amount_cents == max(0, 1000 - 300 - 200)

    def test_no_overdraw_of_salesman_stock(self, file_app):
        ids = file_app.ids
        principal = Principal(ids["salesman"], ROLE_SALESMAN)

        def hand_over():
            distribution_service.record_distribution(
                DISTRIBUTION_SALESMAN_TO_SHOPKEEPER,
                DistributionRequest(
                    product_id=ids["product"], quantity=15, unit_price_cents=100, shopkeeper_id=ids["shopkeeper"]
                ),
                principal,
            )

        results = run_workers(file_app, [hand_over, hand_over])

        assert results.count("ok") == 1
        assert any(isinstance(r, InsufficientStockError) for r in results)
        with file_app.app_context():
            assert stock_service.available_stock(ids["salesman"], ids["product"]) == 5
            assert db.session.query(Distribution).filter_by(
                distribution_type=DISTRIBUTION_SALESMAN_TO_SHOPKEEPER
            ).count() == 1


class TestRunInTransaction:

    def test_retries_stale_data(self, app, db_session):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise StaleDataError("version mismatch")
            return "done"

        assert run_in_transaction(flaky, attempts=3, backoff_base=0) == "done"
        assert len(calls) == 2

    def test_exhausted_retries_raise_transient(self, app, db_session):
        def locked():
            raise OperationalError("UPDATE accounts", {}, Exception("database is locked"))

        with pytest.raises(TransientError) as exc:
            run_in_transaction(locked, attempts=2, backoff_base=0)

        assert exc.value.details["attempts"] == 2
        assert exc.value.to_dict()["message"] == "Service temporarily unavailable, retry later"

    def test_domain_errors_are_not_retried(self, app, db_session):
        calls = []

        def invalid():
            calls.append(1)
            db.session.add(Account(name="x", email="x@example.com", role=ROLE_SHOPKEEPER))
            db.session.flush()
            raise ValidationError("bad input")

        with pytest.raises(ValidationError):
            run_in_transaction(invalid, attempts=3, backoff_base=0)

        assert len(calls) == 1
        assert db.session.query(Account).filter_by(email="x@example.com").count() == 0

    def test_pool_timeout_surfaces_transient(self, app, db_session):
        calls = []

        def starved():
            calls.append(1)
            raise PoolTimeoutError("QueuePool limit of size 5 overflow 10 reached")

        with pytest.raises(TransientError) as exc:
            run_in_transaction(starved, attempts=3, backoff_base=0)

        assert len(calls) == 3
        assert exc.value.details == {"attempts": 3, "cause": "TimeoutError"}

    def test_dropped_connection_is_retried(self, app, db_session):
        calls = []

        def reconnecting():
            calls.append(1)
            if len(calls) == 1:
                raise DisconnectionError("connection reset")
            return "done"

        assert run_in_transaction(reconnecting, attempts=3, backoff_base=0) == "done"
        assert len(calls) == 2


class TestEngineOptions:

    def test_file_database_gets_pool_timeout(self, file_app):
        assert file_app.config["SQLALCHEMY_ENGINE_OPTIONS"]["pool_timeout"] == file_app.config["LEDGER_POOL_TIMEOUT"]

    def test_in_memory_database_keeps_static_pool_options(self, app):
        assert "pool_timeout" not in app.config["SQLALCHEMY_ENGINE_OPTIONS"]
