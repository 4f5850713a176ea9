"""
Receipt tests.

Verifies:
- First copy is printed, later copies are reprinted
- Reversed recoveries cannot be printed
- Void is terminal
"""

import pytest

from conftest import headers_for, principal_for
from fieldledger.errors import ConflictError, PermissionDenied
from fieldledger.models.accounts import ROLE_SALESMAN
from fieldledger.schemas import ReceiptRequest, ReceiptStatusUpdate, RecoveryRequest
from fieldledger.services import balance_service, receipt_service


@pytest.fixture
def recovery(salesman, shopkeeper, assignment):
    return balance_service.record_recovery(
        RecoveryRequest(
            shopkeeper_id=shopkeeper.id,
            recovery_type="payment_only",
            amount_collected_cents=400,
            payment_method="cash",
        ),
        principal_for(salesman),
    )


def print_receipt(actor, recovery, content="RECEIPT"):
    return receipt_service.create_receipt(
        ReceiptRequest(recovery_id=recovery.id, receipt_content=content), principal_for(actor)
    )


class TestCreateReceipt:

    def test_first_copy_is_printed(self, salesman, recovery):
        receipt = print_receipt(salesman, recovery)

        assert receipt.status == "printed"
        assert receipt.total_amount_cents == 400
        assert receipt.shopkeeper_id == recovery.shopkeeper_id
        assert receipt.salesman_id == salesman.id

    def test_later_copies_are_reprinted(self, salesman, recovery):
        print_receipt(salesman, recovery)
        assert print_receipt(salesman, recovery).status == "reprinted"

    def test_copy_after_void_is_printed_again(self, admin, salesman, recovery):
        first = print_receipt(salesman, recovery)
        receipt_service.update_receipt_status(first.id, ReceiptStatusUpdate(status="void"), principal_for(admin))

        assert print_receipt(salesman, recovery).status == "printed"

    def test_reversed_recovery_cannot_be_printed(self, admin, salesman, recovery):
        balance_service.reverse_recovery(recovery.id, principal_for(admin))

        with pytest.raises(ConflictError):
            print_receipt(salesman, recovery)

    def test_shopkeeper_cannot_print(self, shopkeeper, recovery):
        with pytest.raises(PermissionDenied):
            print_receipt(shopkeeper, recovery)

    def test_other_salesman_cannot_print(self, make_account, recovery):
        stranger = make_account(ROLE_SALESMAN)
        with pytest.raises(PermissionDenied):
            print_receipt(stranger, recovery)


class TestReceiptStatus:

    def test_void_is_terminal(self, admin, salesman, recovery):
        receipt = print_receipt(salesman, recovery)
        receipt_service.update_receipt_status(receipt.id, ReceiptStatusUpdate(status="void"), principal_for(admin))

        with pytest.raises(ConflictError):
            receipt_service.update_receipt_status(
                receipt.id, ReceiptStatusUpdate(status="printed"), principal_for(admin)
            )

    def test_salesman_cannot_void(self, salesman, recovery):
        receipt = print_receipt(salesman, recovery)
        with pytest.raises(PermissionDenied):
            receipt_service.update_receipt_status(
                receipt.id, ReceiptStatusUpdate(status="void"), principal_for(salesman)
            )

    def test_shopkeeper_sees_own_receipt(self, salesman, shopkeeper, recovery):
        receipt = print_receipt(salesman, recovery)
        assert receipt_service.get_receipt(receipt.id, principal_for(shopkeeper)).id == receipt.id


class TestReceiptRoutes:

    def test_create_and_list(self, client, salesman, recovery):
        resp = client.post(
            "/api/receipts",
            json={"recovery_id": recovery.id, "receipt_content": "Paid 4.00"},
            headers=headers_for(salesman),
        )
        assert resp.status_code == 201
        assert resp.get_json()["receipt"]["status"] == "printed"

        listing = client.get("/api/receipts", headers=headers_for(salesman)).get_json()
        assert listing["pagination"]["total"] == 1
        assert listing["items"][0]["recovery_id"] == recovery.id

    def test_shopkeeper_post_is_forbidden(self, client, shopkeeper, recovery):
        resp = client.post(
            "/api/receipts",
            json={"recovery_id": recovery.id, "receipt_content": "x"},
            headers=headers_for(shopkeeper),
        )
        assert resp.status_code == 403
