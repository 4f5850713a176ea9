# Overview: Printed receipts for recoveries.

from __future__ import annotations

from ..errors import ConflictError, NotFoundError, PermissionDenied
from ..extensions import db
from ..models import Receipt, Recovery
from ..models.accounts import ROLE_SHOPKEEPER
from ..models.ledger import RECOVERY_STATUS_CANCELLED
from ..models.receipts import (
    RECEIPT_STATUS_PRINTED,
    RECEIPT_STATUS_REPRINTED,
    RECEIPT_STATUS_VOID,
    RECEIPT_TYPE_RECOVERY,
)
from ..schemas import ReceiptRequest, ReceiptStatusUpdate
from .account_service import Principal, visibility_scope
from .concurrency import lock_for_update, run_in_transaction
from .ledger_service import receipt_visible, recovery_visible


def create_receipt(request: ReceiptRequest, principal: Principal) -> Receipt:
    """
    Record that a receipt was printed for a recovery.

    The first non-void receipt of a recovery is `printed`, later ones are
    `reprinted`. Reversed recoveries cannot be printed.
    """
    def _op():
        recovery = db.session.get(Recovery, request.recovery_id)
        if recovery is None:
            raise NotFoundError(f"Recovery {request.recovery_id} not found")
        if not recovery_visible(visibility_scope(principal), recovery) or principal.role == ROLE_SHOPKEEPER:
            raise PermissionDenied("Recovery is outside your scope", details={"recovery_id": recovery.id})
        if recovery.status == RECOVERY_STATUS_CANCELLED:
            raise ConflictError("Cannot print a receipt for a reversed recovery", details={"recovery_id": recovery.id})

        already_printed = (
            db.session.query(Receipt.id)
            .filter(Receipt.recovery_id == recovery.id, Receipt.status != RECEIPT_STATUS_VOID)
            .first()
        )
        receipt = Receipt(
            receipt_type=RECEIPT_TYPE_RECOVERY,
            recovery_id=recovery.id,
            shopkeeper_id=recovery.shopkeeper_id,
            salesman_id=recovery.salesman_id,
            printed_by_id=principal.id,
            receipt_content=request.receipt_content,
            total_amount_cents=recovery.amount_collected_cents,
            status=RECEIPT_STATUS_REPRINTED if already_printed else RECEIPT_STATUS_PRINTED,
            notes=request.notes,
        )
        db.session.add(receipt)
        db.session.flush()
        return receipt

    return run_in_transaction(_op)


def get_receipt(receipt_id: int, principal: Principal) -> Receipt:
    receipt = db.session.get(Receipt, receipt_id)
    if receipt is None:
        raise NotFoundError(f"Receipt {receipt_id} not found", details={"receipt_id": receipt_id})
    if not receipt_visible(visibility_scope(principal), receipt):
        raise PermissionDenied("Receipt is outside your scope", details={"receipt_id": receipt_id})
    return receipt


def update_receipt_status(receipt_id: int, update: ReceiptStatusUpdate, principal: Principal) -> Receipt:
    """Void is terminal."""
    if not (principal.is_admin or principal.is_superadmin):
        raise PermissionDenied("Admin access required")

    def _op():
        receipt = lock_for_update(db.session.query(Receipt).filter_by(id=receipt_id)).first()
        if receipt is None:
            raise NotFoundError(f"Receipt {receipt_id} not found", details={"receipt_id": receipt_id})
        if not receipt_visible(visibility_scope(principal), receipt):
            raise PermissionDenied("Receipt is outside your scope", details={"receipt_id": receipt_id})
        if receipt.status == RECEIPT_STATUS_VOID and update.status != RECEIPT_STATUS_VOID:
            raise ConflictError("Void receipts cannot be reinstated", details={"receipt_id": receipt_id})
        receipt.status = update.status
        if update.notes is not None:
            receipt.notes = update.notes
        db.session.flush()
        return receipt

    return run_in_transaction(_op)
