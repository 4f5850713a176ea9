# Overview: Salesman-shopkeeper assignments (who may serve and collect from whom).

"""
Invariant: at most one active assignment per (salesman, shopkeeper) pair.
Revocation is soft (is_active=False); rows are never deleted.

Only superadmins manage assignments; the check lives in the route decorators,
these functions assume an authorised actor.
"""
from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, PermissionDenied
from ..extensions import db
from ..models import Account, ShopSalesmanAssignment
from ..models.accounts import ROLE_SALESMAN, ROLE_SHOPKEEPER
from fieldledger.time_utils import utcnow
from .account_service import Principal, require_role
from .concurrency import lock_for_update, run_in_transaction
from .ledger_service import append_ledger_event

logger = logging.getLogger(__name__)


def find_active_assignment(salesman_id: int, shopkeeper_id: int) -> ShopSalesmanAssignment | None:
    return (
        db.session.query(ShopSalesmanAssignment)
        .filter_by(salesman_id=salesman_id, shopkeeper_id=shopkeeper_id, is_active=True)
        .first()
    )


def require_active_assignment(salesman_id: int, shopkeeper_id: int) -> ShopSalesmanAssignment:
    assignment = find_active_assignment(salesman_id, shopkeeper_id)
    if assignment is None:
        raise PermissionDenied(
            "Salesman is not assigned to this shopkeeper",
            details={"salesman_id": salesman_id, "shopkeeper_id": shopkeeper_id},
        )
    return assignment


def create_assignment(salesman_id: int, shopkeeper_id: int, actor: Principal, notes: str = "") -> ShopSalesmanAssignment:
    def _op():
        require_role(salesman_id, ROLE_SALESMAN, field="salesman_id")
        require_role(shopkeeper_id, ROLE_SHOPKEEPER, field="shopkeeper_id")

        if find_active_assignment(salesman_id, shopkeeper_id):
            raise ConflictError(
                "Assignment already exists",
                details={"salesman_id": salesman_id, "shopkeeper_id": shopkeeper_id},
            )

        assignment = ShopSalesmanAssignment(
            salesman_id=salesman_id,
            shopkeeper_id=shopkeeper_id,
            assigned_by_id=actor.id,
            notes=notes or "",
            is_active=True,
        )
        db.session.add(assignment)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ConflictError(
                "Assignment already exists",
                details={"salesman_id": salesman_id, "shopkeeper_id": shopkeeper_id},
            ) from exc

        append_ledger_event(
            event_type="assignment.created",
            event_category="assignments",
            entity_type="assignment",
            entity_id=assignment.id,
            actor_id=actor.id,
            salesman_id=salesman_id,
            shopkeeper_id=shopkeeper_id,
        )
        return assignment

    assignment = run_in_transaction(_op)
    logger.info("Assigned salesman %s to shopkeeper %s", salesman_id, shopkeeper_id)
    return assignment


def update_assignment(
    assignment_id: int,
    actor: Principal,
    *,
    notes: str | None = None,
    is_active: bool | None = None,
) -> ShopSalesmanAssignment:
    def _op():
        assignment = lock_for_update(
            db.session.query(ShopSalesmanAssignment).filter_by(id=assignment_id)
        ).first()
        if assignment is None:
            raise NotFoundError(f"Assignment {assignment_id} not found")

        if notes is not None:
            assignment.notes = notes

        if is_active is not None and is_active != assignment.is_active:
            if is_active:
                if find_active_assignment(assignment.salesman_id, assignment.shopkeeper_id):
                    raise ConflictError(
                        "Another active assignment exists for this pair",
                        details={
                            "salesman_id": assignment.salesman_id,
                            "shopkeeper_id": assignment.shopkeeper_id,
                        },
                    )
                assignment.is_active = True
                assignment.revoked_at = None
                assignment.revoked_by_id = None
            else:
                _revoke(assignment, actor)

        db.session.flush()
        return assignment

    return run_in_transaction(_op)


def revoke_assignment(assignment_id: int, actor: Principal) -> ShopSalesmanAssignment:
    def _op():
        assignment = lock_for_update(
            db.session.query(ShopSalesmanAssignment).filter_by(id=assignment_id)
        ).first()
        if assignment is None:
            raise NotFoundError(f"Assignment {assignment_id} not found")
        if assignment.is_active:
            _revoke(assignment, actor)
        return assignment

    return run_in_transaction(_op)


def _revoke(assignment: ShopSalesmanAssignment, actor: Principal) -> None:
    assignment.is_active = False
    assignment.revoked_at = utcnow()
    assignment.revoked_by_id = actor.id
    append_ledger_event(
        event_type="assignment.revoked",
        event_category="assignments",
        entity_type="assignment",
        entity_id=assignment.id,
        actor_id=actor.id,
        salesman_id=assignment.salesman_id,
        shopkeeper_id=assignment.shopkeeper_id,
    )


def list_active_assignments(salesman_id: int | None = None) -> list[ShopSalesmanAssignment]:
    query = db.session.query(ShopSalesmanAssignment).filter_by(is_active=True)
    if salesman_id is not None:
        query = query.filter_by(salesman_id=salesman_id)
    return query.order_by(ShopSalesmanAssignment.assigned_at.desc(), ShopSalesmanAssignment.id.desc()).all()


def assigned_shopkeepers(salesman_id: int) -> list[Account]:
    return (
        db.session.query(Account)
        .join(ShopSalesmanAssignment, ShopSalesmanAssignment.shopkeeper_id == Account.id)
        .filter(
            ShopSalesmanAssignment.salesman_id == salesman_id,
            ShopSalesmanAssignment.is_active.is_(True),
        )
        .order_by(ShopSalesmanAssignment.assigned_at.desc(), Account.id.asc())
        .all()
    )
