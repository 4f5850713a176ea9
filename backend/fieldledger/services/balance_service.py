# Overview: Balance calculator: the only writer of shopkeeper pending amounts.

from __future__ import annotations

import logging

from ..errors import ConflictError, ConsistencyError, NotFoundError, PermissionDenied
from ..extensions import db
from ..models import Account, Recovery
from ..models.accounts import ROLE_ADMIN, ROLE_SALESMAN, ROLE_SHOPKEEPER, ROLE_SUPERADMIN
from ..models.ledger import (
    RECOVERY_PAYMENT_WITH_ITEMS,
    RECOVERY_STATUS_CANCELLED,
)
from ..schemas import RecoveryRequest, RecoveryUpdate
from fieldledger.time_utils import to_utc_z
from . import stock_service
from .account_service import Principal, get_account, require_role, visibility_scope
from .assignment_service import assigned_shopkeepers, require_active_assignment
from .concurrency import lock_for_update, run_in_transaction
from .ledger_service import append_ledger_event, record_recovery_entry, recovery_visible

logger = logging.getLogger(__name__)
"""
Balance Invariants (authoritative)

- For every recovery:
      net_payment = amount_collected - items_value
      new_pending = max(0, previous_pending - net_payment)
  The formula is applied literally when net_payment is negative: goods taken
  back without matching cash raise the pending amount by the difference.
- record_recovery runs as one unit: lock salesman, lock shopkeeper, reserve
  items, write the recovery, write pending. Any failure rolls all of it back.
- reverse_recovery is additive: pending += net_payment of the reversed
  recovery, clamped at zero. Callers that need a full re-derivation use the
  audit service.
- Lock order is salesman then shopkeeper in every writer.
"""


def _ensure_collector(principal: Principal) -> None:
    if principal.role not in (ROLE_SALESMAN, ROLE_ADMIN, ROLE_SUPERADMIN):
        raise PermissionDenied("Only salesmen and admins may record recoveries")


def _ensure_manager(principal: Principal) -> None:
    if not (principal.is_admin or principal.is_superadmin):
        raise PermissionDenied("Admin access required")


def _check_managed(principal: Principal, salesman: Account) -> None:
    if principal.is_admin and salesman.managed_by_id != principal.id:
        raise PermissionDenied(
            "Salesman is not managed by this admin",
            details={"salesman_id": salesman.id},
        )


def _load_recovery(recovery_id: int, *, lock: bool = False) -> Recovery:
    query = db.session.query(Recovery).filter_by(id=recovery_id)
    if lock:
        query = lock_for_update(query)
    recovery = query.first()
    if recovery is None:
        raise NotFoundError(f"Recovery {recovery_id} not found", details={"recovery_id": recovery_id})
    return recovery


def _verify_formula(recovery: Recovery, previous: int, expected_items_value: int) -> None:
    expected_net = recovery.amount_collected_cents - expected_items_value
    expected_new = max(0, previous - expected_net)
    if (
        recovery.items_value_cents != expected_items_value
        or recovery.net_payment_cents != expected_net
        or recovery.previous_pending_amount_cents != previous
        or recovery.new_pending_amount_cents != expected_new
    ):
        logger.error(
            "Recovery %s stored amounts disagree with formula (net=%s expected=%s, new=%s expected=%s)",
            recovery.id,
            recovery.net_payment_cents,
            expected_net,
            recovery.new_pending_amount_cents,
            expected_new,
        )
        raise ConsistencyError(
            "Recovery amounts do not match the balance formula",
            details={"recovery_id": recovery.id},
        )


def record_recovery(request: RecoveryRequest, principal: Principal) -> Recovery:
    """
    Record a cash (and optionally goods) collection against a shopkeeper.

    Salesmen collect for themselves and need an active assignment to the
    shopkeeper. Admins and superadmins act on behalf of a named salesman.
    """
    _ensure_collector(principal)
    salesman_id = principal.id if principal.is_salesman else request.salesman_id

    def _op():
        salesman = require_role(salesman_id, ROLE_SALESMAN, lock=True, field="salesman_id")
        _check_managed(principal, salesman)
        shopkeeper = require_role(request.shopkeeper_id, ROLE_SHOPKEEPER, lock=True, field="shopkeeper_id")
        if principal.is_salesman:
            require_active_assignment(salesman.id, shopkeeper.id)

        previous = shopkeeper.pending_amount_cents

        # All items are checked before anything is written; the first
        # shortfall aborts the whole recovery.
        if request.recovery_type == RECOVERY_PAYMENT_WITH_ITEMS:
            for product_id, quantity in request.quantities_by_product().items():
                stock_service.reserve(salesman.id, product_id, quantity)

        recovery = record_recovery_entry(
            recovery_type=request.recovery_type,
            shopkeeper=shopkeeper,
            salesman=salesman,
            recorded_by_id=principal.id,
            amount_collected_cents=request.amount_collected_cents,
            payment_method=request.payment_method,
            items=request.items,
            previous_pending_amount_cents=previous,
            notes=request.notes,
            recovery_date=request.recovery_date,
            recovery_location=request.recovery_location,
            receipt_number=request.receipt_number,
            bank_details=request.bank_details,
        )
        _verify_formula(recovery, previous, request.items_value_cents)

        shopkeeper.pending_amount_cents = recovery.new_pending_amount_cents
        db.session.flush()

        append_ledger_event(
            event_type="recovery.recorded",
            event_category="recoveries",
            entity_type="recovery",
            entity_id=recovery.id,
            actor_id=principal.id,
            shopkeeper_id=shopkeeper.id,
            salesman_id=salesman.id,
            occurred_at=request.recovery_date,
            payload={
                "amount_collected_cents": recovery.amount_collected_cents,
                "items_value_cents": recovery.items_value_cents,
                "net_payment_cents": recovery.net_payment_cents,
                "previous_pending_amount_cents": previous,
                "new_pending_amount_cents": recovery.new_pending_amount_cents,
            },
        )
        return recovery

    recovery = run_in_transaction(_op)
    logger.info(
        "Recovery %s recorded: shopkeeper=%s net=%s pending %s -> %s",
        recovery.id,
        recovery.shopkeeper_id,
        recovery.net_payment_cents,
        recovery.previous_pending_amount_cents,
        recovery.new_pending_amount_cents,
    )
    return recovery


def reverse_recovery(recovery_id: int, principal: Principal) -> Recovery:
    """
    Compensate a recovery: release its items to the salesman and add its net
    payment back onto the shopkeeper's pending amount.

    The record is kept as cancelled; a second reversal raises ConsistencyError.
    """
    _ensure_manager(principal)

    def _op():
        recovery = _load_recovery(recovery_id, lock=True)
        if not recovery_visible(visibility_scope(principal), recovery):
            raise PermissionDenied("Recovery is outside your scope", details={"recovery_id": recovery_id})

        restored = stock_service.undo_recovery(recovery, actor_id=principal.id)

        shopkeeper = get_account(recovery.shopkeeper_id, lock=True)
        before = shopkeeper.pending_amount_cents
        after = before + recovery.net_payment_cents
        if after < 0:
            logger.warning(
                "Reversal of recovery %s would take shopkeeper %s below zero (%s); clamped",
                recovery.id,
                shopkeeper.id,
                after,
            )
            after = 0
        shopkeeper.pending_amount_cents = after
        db.session.flush()

        append_ledger_event(
            event_type="recovery.reversed",
            event_category="recoveries",
            entity_type="recovery",
            entity_id=recovery.id,
            actor_id=principal.id,
            shopkeeper_id=shopkeeper.id,
            salesman_id=recovery.salesman_id,
            payload={
                "net_payment_cents": recovery.net_payment_cents,
                "pending_before_cents": before,
                "pending_after_cents": after,
                "restored_items": {str(k): v for k, v in restored.items()},
            },
        )
        return recovery

    recovery = run_in_transaction(_op)
    logger.info("Recovery %s reversed by %s", recovery.id, principal.id)
    return recovery


def update_recovery(recovery_id: int, update: RecoveryUpdate, principal: Principal) -> Recovery:
    """Admin edit of notes and pending/completed status. Financial fields are immutable."""
    _ensure_manager(principal)

    def _op():
        recovery = _load_recovery(recovery_id, lock=True)
        if not recovery_visible(visibility_scope(principal), recovery):
            raise PermissionDenied("Recovery is outside your scope", details={"recovery_id": recovery_id})
        if recovery.status == RECOVERY_STATUS_CANCELLED:
            raise ConflictError("Reversed recoveries cannot be edited", details={"recovery_id": recovery_id})

        changes = {}
        if update.status is not None and update.status != recovery.status:
            changes["status"] = [recovery.status, update.status]
            recovery.status = update.status
        if update.notes is not None and update.notes != recovery.notes:
            changes["notes"] = True
            recovery.notes = update.notes

        if changes:
            db.session.flush()
            append_ledger_event(
                event_type="recovery.updated",
                event_category="recoveries",
                entity_type="recovery",
                entity_id=recovery.id,
                actor_id=principal.id,
                shopkeeper_id=recovery.shopkeeper_id,
                salesman_id=recovery.salesman_id,
                payload=changes,
            )
        return recovery

    return run_in_transaction(_op)


def get_recovery(recovery_id: int, principal: Principal) -> Recovery:
    recovery = _load_recovery(recovery_id)
    if not recovery_visible(visibility_scope(principal), recovery):
        raise PermissionDenied("Recovery is outside your scope", details={"recovery_id": recovery_id})
    return recovery


def pending_summary(shopkeeper: Account) -> dict:
    last = (
        db.session.query(Recovery)
        .filter(Recovery.shopkeeper_id == shopkeeper.id, Recovery.status != RECOVERY_STATUS_CANCELLED)
        .order_by(Recovery.recovery_date.desc(), Recovery.id.desc())
        .first()
    )
    headroom = None
    if shopkeeper.credit_limit_cents is not None:
        headroom = shopkeeper.credit_limit_cents - shopkeeper.pending_amount_cents
    return {
        "shopkeeper": shopkeeper.to_summary(),
        "address": shopkeeper.address,
        "pending_amount_cents": shopkeeper.pending_amount_cents,
        "credit_limit_cents": shopkeeper.credit_limit_cents,
        "credit_headroom_cents": headroom,
        "last_recovery_at": to_utc_z(last.recovery_date) if last else None,
    }


def shopkeepers_with_pending(salesman_id: int, principal: Principal) -> list[dict]:
    """Assigned shopkeepers of a salesman that still owe money, largest balance first."""
    if principal.is_salesman and principal.id != salesman_id:
        raise PermissionDenied("Salesmen can only list their own shopkeepers")
    if principal.role == ROLE_SHOPKEEPER:
        raise PermissionDenied("Shopkeepers cannot list collection targets")
    salesman = require_role(salesman_id, ROLE_SALESMAN, field="salesman_id")
    _check_managed(principal, salesman)

    owing = [s for s in assigned_shopkeepers(salesman.id) if s.is_active and s.pending_amount_cents > 0]
    owing.sort(key=lambda s: (-s.pending_amount_cents, s.id))
    return [pending_summary(s) for s in owing]
