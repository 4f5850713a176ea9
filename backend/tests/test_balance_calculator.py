"""
Balance calculator tests.

Verifies:
- new_pending == max(0, previous - (collected - items_value)) for every recovery
- The literal floor is kept when items are worth more than the cash collected
- Recording is all-or-nothing when an item is short
- Reversal adds the net payment back and can only happen once
"""

import pytest

from conftest import principal_for
from fieldledger.errors import (
    ConflictError,
    ConsistencyError,
    InsufficientStockError,
    InvalidRoleError,
    PermissionDenied,
    ValidationError,
)
from fieldledger.extensions import db
from fieldledger.models import Account, LedgerEvent, Recovery
from fieldledger.models.accounts import ROLE_SALESMAN
from fieldledger.schemas import RecoveryItemInput, RecoveryRequest, RecoveryUpdate
from fieldledger.services import balance_service, stock_service


def payment_only(shopkeeper, amount, **extra):
    return RecoveryRequest(
        shopkeeper_id=shopkeeper.id,
        recovery_type="payment_only",
        amount_collected_cents=amount,
        payment_method="cash",
        **extra,
    )


def with_items(shopkeeper, amount, product, quantity, unit_price, **extra):
    return RecoveryRequest(
        shopkeeper_id=shopkeeper.id,
        recovery_type="payment_with_items",
        amount_collected_cents=amount,
        payment_method="cash",
        items=(RecoveryItemInput(product_id=product.id, quantity=quantity, unit_price_cents=unit_price),),
        **extra,
    )


def pending_of(account) -> int:
    return db.session.get(Account, account.id).pending_amount_cents


class TestRecordRecovery:

    def test_overpayment_floors_at_zero(self, salesman, shopkeeper, assignment):
        recovery = balance_service.record_recovery(payment_only(shopkeeper, 1200), principal_for(salesman))

        assert recovery.net_payment_cents == 1200
        assert recovery.items_value_cents == 0
        assert recovery.previous_pending_amount_cents == 1000
        assert recovery.new_pending_amount_cents == 0
        assert pending_of(shopkeeper) == 0

    def test_partial_payment(self, salesman, shopkeeper, assignment):
        recovery = balance_service.record_recovery(payment_only(shopkeeper, 300), principal_for(salesman))

        assert recovery.new_pending_amount_cents == 700
        assert pending_of(shopkeeper) == 700

    def test_pending_carries_forward(self, salesman, shopkeeper, assignment):
        first = balance_service.record_recovery(payment_only(shopkeeper, 300), principal_for(salesman))
        second = balance_service.record_recovery(payment_only(shopkeeper, 200), principal_for(salesman))

        assert second.previous_pending_amount_cents == first.new_pending_amount_cents == 700
        assert second.new_pending_amount_cents == 500

    def test_items_reduce_net_payment(self, stocked_salesman, shopkeeper, assignment, product):
        recovery = balance_service.record_recovery(
            with_items(shopkeeper, 500, product, 2, 100), principal_for(stocked_salesman)
        )

        assert recovery.items_value_cents == 200
        assert recovery.net_payment_cents == 300
        assert recovery.new_pending_amount_cents == 700
        assert [i.total_price_cents for i in recovery.items] == [200]

    def test_zero_cash_with_items_keeps_literal_formula(self, stocked_salesman, shopkeeper, assignment, product):
        # P=1000, V=300: max(0, P - (0 - V)) = P + V
        recovery = balance_service.record_recovery(
            with_items(shopkeeper, 0, product, 3, 100), principal_for(stocked_salesman)
        )

        assert recovery.net_payment_cents == -300
        assert recovery.new_pending_amount_cents == 1300
        assert pending_of(shopkeeper) == 1300

    def test_negative_net_on_zero_balance(self, make_account, stocked_salesman, superadmin, product):
        from fieldledger.services import assignment_service

        debt_free = make_account("shopkeeper")
        assignment_service.create_assignment(stocked_salesman.id, debt_free.id, principal_for(superadmin))

        recovery = balance_service.record_recovery(
            with_items(debt_free, 50, product, 1, 100), principal_for(stocked_salesman)
        )

        assert recovery.net_payment_cents == -50
        assert recovery.new_pending_amount_cents == max(0, 0 - (50 - 100))

    def test_short_item_aborts_everything(self, stocked_salesman, shopkeeper, assignment, product, make_product):
        other = make_product(stock=10)
        request = RecoveryRequest(
            shopkeeper_id=shopkeeper.id,
            recovery_type="payment_with_items",
            amount_collected_cents=900,
            payment_method="cash",
            items=(
                RecoveryItemInput(product_id=product.id, quantity=5, unit_price_cents=100),
                RecoveryItemInput(product_id=other.id, quantity=1, unit_price_cents=100),
            ),
        )

        with pytest.raises(InsufficientStockError) as exc:
            balance_service.record_recovery(request, principal_for(stocked_salesman))

        assert exc.value.details["product_id"] == other.id
        assert db.session.query(Recovery).count() == 0
        assert pending_of(shopkeeper) == 1000
        assert stock_service.available_stock(stocked_salesman.id, product.id) == 20

    def test_records_ledger_event(self, salesman, shopkeeper, assignment):
        recovery = balance_service.record_recovery(payment_only(shopkeeper, 100), principal_for(salesman))

        event = db.session.query(LedgerEvent).filter_by(event_type="recovery.recorded").one()
        assert event.entity_id == recovery.id
        assert event.payload["new_pending_amount_cents"] == 900


class TestRecoveryPermissions:

    def test_salesman_without_assignment_denied(self, salesman, shopkeeper):
        with pytest.raises(PermissionDenied):
            balance_service.record_recovery(payment_only(shopkeeper, 100), principal_for(salesman))
        assert pending_of(shopkeeper) == 1000

    def test_revoked_assignment_denied(self, salesman, shopkeeper, assignment, superadmin):
        from fieldledger.services import assignment_service

        assignment_service.revoke_assignment(assignment.id, principal_for(superadmin))

        with pytest.raises(PermissionDenied):
            balance_service.record_recovery(payment_only(shopkeeper, 100), principal_for(salesman))

    def test_admin_acts_for_managed_salesman(self, admin, salesman, shopkeeper):
        recovery = balance_service.record_recovery(
            payment_only(shopkeeper, 100, salesman_id=salesman.id), principal_for(admin)
        )

        assert recovery.salesman_id == salesman.id
        assert recovery.recorded_by_id == admin.id

    def test_admin_requires_salesman_id(self, admin, shopkeeper):
        with pytest.raises(ValidationError):
            balance_service.record_recovery(payment_only(shopkeeper, 100), principal_for(admin))

    def test_admin_cannot_act_for_unmanaged_salesman(self, admin, make_account, shopkeeper):
        stranger = make_account(ROLE_SALESMAN)

        with pytest.raises(PermissionDenied):
            balance_service.record_recovery(
                payment_only(shopkeeper, 100, salesman_id=stranger.id), principal_for(admin)
            )

    def test_recovery_subject_must_be_shopkeeper(self, admin, salesman):
        with pytest.raises(InvalidRoleError):
            balance_service.record_recovery(
                RecoveryRequest(
                    shopkeeper_id=salesman.id,
                    recovery_type="payment_only",
                    amount_collected_cents=100,
                    payment_method="cash",
                    salesman_id=salesman.id,
                ),
                principal_for(admin),
            )

    def test_shopkeeper_cannot_record(self, shopkeeper):
        with pytest.raises(PermissionDenied):
            balance_service.record_recovery(payment_only(shopkeeper, 100), principal_for(shopkeeper))


class TestReverseRecovery:

    def test_reversal_restores_net_payment(self, admin, salesman, shopkeeper, assignment):
        recovery = balance_service.record_recovery(payment_only(shopkeeper, 1200), principal_for(salesman))
        assert pending_of(shopkeeper) == 0

        reversed_recovery = balance_service.reverse_recovery(recovery.id, principal_for(admin))

        assert pending_of(shopkeeper) == 1200
        assert reversed_recovery.status == "cancelled"
        assert reversed_recovery.reversed_by_id == admin.id

    def test_reversal_of_300_on_zero_balance(self, admin, salesman, make_account, superadmin):
        from fieldledger.services import assignment_service

        shop = make_account("shopkeeper", pending_amount_cents=300)
        assignment_service.create_assignment(salesman.id, shop.id, principal_for(superadmin))
        recovery = balance_service.record_recovery(payment_only(shop, 300), principal_for(salesman))
        assert pending_of(shop) == 0

        balance_service.reverse_recovery(recovery.id, principal_for(admin))

        assert pending_of(shop) == 300

    def test_reversal_restores_items(self, admin, stocked_salesman, shopkeeper, assignment, product):
        recovery = balance_service.record_recovery(
            with_items(shopkeeper, 1000, product, 6, 100), principal_for(stocked_salesman)
        )
        assert stock_service.available_stock(stocked_salesman.id, product.id) == 14
        assert pending_of(shopkeeper) == 600

        balance_service.reverse_recovery(recovery.id, principal_for(admin))

        assert stock_service.available_stock(stocked_salesman.id, product.id) == 20
        assert pending_of(shopkeeper) == 1000

    def test_second_reversal_is_consistency_error(self, admin, salesman, shopkeeper, assignment):
        recovery = balance_service.record_recovery(payment_only(shopkeeper, 400), principal_for(salesman))
        balance_service.reverse_recovery(recovery.id, principal_for(admin))

        with pytest.raises(ConsistencyError):
            balance_service.reverse_recovery(recovery.id, principal_for(admin))

        assert pending_of(shopkeeper) == 1000
        assert db.session.query(LedgerEvent).filter_by(event_type="recovery.reversed").count() == 1

    def test_negative_net_reversal_clamps_at_zero(self, admin, stocked_salesman, make_account, superadmin, product):
        from fieldledger.services import assignment_service

        shop = make_account("shopkeeper")
        assignment_service.create_assignment(stocked_salesman.id, shop.id, principal_for(superadmin))
        recovery = balance_service.record_recovery(
            with_items(shop, 0, product, 2, 100), principal_for(stocked_salesman)
        )
        assert pending_of(shop) == 200
        balance_service.record_recovery(payment_only(shop, 150), principal_for(stocked_salesman))
        assert pending_of(shop) == 50

        # 50 + (-200) would be negative
        balance_service.reverse_recovery(recovery.id, principal_for(admin))

        assert pending_of(shop) == 0

    def test_salesman_cannot_reverse(self, salesman, shopkeeper, assignment):
        recovery = balance_service.record_recovery(payment_only(shopkeeper, 100), principal_for(salesman))

        with pytest.raises(PermissionDenied):
            balance_service.reverse_recovery(recovery.id, principal_for(salesman))


class TestUpdateRecovery:

    def test_update_status_and_notes(self, admin, salesman, shopkeeper, assignment):
        recovery = balance_service.record_recovery(payment_only(shopkeeper, 100), principal_for(salesman))

        updated = balance_service.update_recovery(
            recovery.id, RecoveryUpdate(status="pending", notes="cheque to clear"), principal_for(admin)
        )

        assert updated.status == "pending"
        assert updated.notes == "cheque to clear"
        assert updated.new_pending_amount_cents == 900
        assert pending_of(shopkeeper) == 900

    def test_reversed_recovery_is_frozen(self, admin, salesman, shopkeeper, assignment):
        recovery = balance_service.record_recovery(payment_only(shopkeeper, 100), principal_for(salesman))
        balance_service.reverse_recovery(recovery.id, principal_for(admin))

        with pytest.raises(ConflictError):
            balance_service.update_recovery(recovery.id, RecoveryUpdate(notes="x"), principal_for(admin))


class TestPendingSummary:

    def test_shopkeepers_with_pending(self, salesman, shopkeeper, assignment, make_account, superadmin):
        from fieldledger.services import assignment_service

        settled = make_account("shopkeeper")
        bigger = make_account("shopkeeper", pending_amount_cents=5000, credit_limit_cents=8000)
        assignment_service.create_assignment(salesman.id, settled.id, principal_for(superadmin))
        assignment_service.create_assignment(salesman.id, bigger.id, principal_for(superadmin))

        rows = balance_service.shopkeepers_with_pending(salesman.id, principal_for(salesman))

        assert [r["shopkeeper"]["id"] for r in rows] == [bigger.id, shopkeeper.id]
        assert rows[0]["credit_headroom_cents"] == 3000
        assert rows[1]["credit_headroom_cents"] is None

    def test_other_salesman_denied(self, salesman, make_account):
        other = make_account(ROLE_SALESMAN)

        with pytest.raises(PermissionDenied):
            balance_service.shopkeepers_with_pending(salesman.id, principal_for(other))
