# Overview: Distribution recording and the pending -> delivered|returned state machine.

from __future__ import annotations

import logging

from ..errors import ConflictError, NotFoundError, PermissionDenied
from ..extensions import db
from ..models import Distribution
from ..models.accounts import ROLE_SALESMAN, ROLE_SHOPKEEPER
from ..models.ledger import (
    DISTRIBUTION_ADMIN_TO_SALESMAN,
    DISTRIBUTION_SALESMAN_TO_SHOPKEEPER,
    DISTRIBUTION_STATUS_DELIVERED,
    DISTRIBUTION_STATUS_PENDING,
    DISTRIBUTION_STATUS_RETURNED,
)
from ..schemas import DistributionRequest, DistributionStatusUpdate
from fieldledger.time_utils import utcnow
from . import stock_service
from .account_service import Principal, get_account, require_role, visibility_scope
from .assignment_service import require_active_assignment
from .concurrency import lock_for_update, run_in_transaction
from .ledger_service import append_ledger_event, distribution_visible, record_distribution_entry
from .product_service import require_product

logger = logging.getLogger(__name__)


def _load_distribution(distribution_id: int, *, lock: bool = False) -> Distribution:
    query = db.session.query(Distribution).filter_by(id=distribution_id)
    if lock:
        query = lock_for_update(query)
    distribution = query.first()
    if distribution is None:
        raise NotFoundError(
            f"Distribution {distribution_id} not found", details={"distribution_id": distribution_id}
        )
    return distribution


def _record_event(event_type: str, distribution: Distribution, actor_id: int, payload: dict | None = None) -> None:
    if distribution.distribution_type == DISTRIBUTION_ADMIN_TO_SALESMAN:
        salesman_id, shopkeeper_id = distribution.to_account_id, None
    else:
        salesman_id, shopkeeper_id = distribution.from_account_id, distribution.to_account_id
    append_ledger_event(
        event_type=event_type,
        event_category="distributions",
        entity_type="distribution",
        entity_id=distribution.id,
        actor_id=actor_id,
        salesman_id=salesman_id,
        shopkeeper_id=shopkeeper_id,
        product_id=distribution.product_id,
        payload=payload,
    )


def record_distribution(distribution_type: str, request: DistributionRequest, principal: Principal) -> Distribution:
    """
    Move stock one tier down.

    admin_to_salesman: caller is admin/superadmin; an admin may only supply
    salesmen they manage. Warehouse stock is decremented in the same unit.

    salesman_to_shopkeeper: source is the calling salesman (or the salesman
    named by an admin/superadmin); an active assignment to the shopkeeper is
    required. The decrement is implicit in the derived availability.
    """
    if distribution_type == DISTRIBUTION_ADMIN_TO_SALESMAN:
        op = _admin_to_salesman
    elif distribution_type == DISTRIBUTION_SALESMAN_TO_SHOPKEEPER:
        op = _salesman_to_shopkeeper
    else:
        raise ValueError(f"unknown distribution type {distribution_type}")

    distribution = run_in_transaction(lambda: op(request, principal))
    logger.info(
        "Distribution %s recorded: %s product=%s qty=%s %s -> %s",
        distribution.id,
        distribution.distribution_type,
        distribution.product_id,
        distribution.quantity,
        distribution.from_account_id,
        distribution.to_account_id,
    )
    return distribution


def _admin_to_salesman(request: DistributionRequest, principal: Principal) -> Distribution:
    if not (principal.is_admin or principal.is_superadmin):
        raise PermissionDenied("Admin access required")

    source = get_account(principal.id)
    salesman = require_role(request.salesman_id, ROLE_SALESMAN, lock=True, field="salesman_id")
    if principal.is_admin and salesman.managed_by_id != principal.id:
        raise PermissionDenied("Salesman is not managed by this admin", details={"salesman_id": salesman.id})
    product = require_product(request.product_id, lock=True)

    stock_service.reserve(source.id, product.id, request.quantity)
    distribution = record_distribution_entry(
        distribution_type=DISTRIBUTION_ADMIN_TO_SALESMAN,
        product=product,
        from_account=source,
        to_account=salesman,
        quantity=request.quantity,
        unit_price_cents=request.unit_price_cents,
        notes=request.notes,
    )
    stock_service.adjust_warehouse_stock(
        product.id,
        -request.quantity,
        actor_id=principal.id,
        reason="distributed to salesman",
        entity_type="distribution",
        entity_id=distribution.id,
    )
    _record_event(
        "distribution.recorded",
        distribution,
        principal.id,
        {"quantity": distribution.quantity, "total_amount_cents": distribution.total_amount_cents},
    )
    return distribution


def _salesman_to_shopkeeper(request: DistributionRequest, principal: Principal) -> Distribution:
    if principal.is_salesman:
        salesman_id = principal.id
    elif principal.is_admin or principal.is_superadmin:
        salesman_id = request.salesman_id
    else:
        raise PermissionDenied("Shopkeepers cannot distribute stock")

    salesman = require_role(salesman_id, ROLE_SALESMAN, lock=True, field="salesman_id")
    if principal.is_admin and salesman.managed_by_id != principal.id:
        raise PermissionDenied("Salesman is not managed by this admin", details={"salesman_id": salesman.id})
    shopkeeper = require_role(request.shopkeeper_id, ROLE_SHOPKEEPER, field="shopkeeper_id")
    require_active_assignment(salesman.id, shopkeeper.id)
    product = require_product(request.product_id)

    stock_service.reserve(salesman.id, product.id, request.quantity)
    distribution = record_distribution_entry(
        distribution_type=DISTRIBUTION_SALESMAN_TO_SHOPKEEPER,
        product=product,
        from_account=salesman,
        to_account=shopkeeper,
        quantity=request.quantity,
        unit_price_cents=request.unit_price_cents,
        notes=request.notes,
    )
    _record_event(
        "distribution.recorded",
        distribution,
        principal.id,
        {"quantity": distribution.quantity, "total_amount_cents": distribution.total_amount_cents},
    )
    return distribution


def get_distribution(distribution_id: int, principal: Principal) -> Distribution:
    distribution = _load_distribution(distribution_id)
    if not distribution_visible(visibility_scope(principal), distribution):
        raise PermissionDenied("Distribution is outside your scope", details={"distribution_id": distribution_id})
    return distribution


def update_distribution_status(
    distribution_id: int,
    update: DistributionStatusUpdate,
    principal: Principal,
) -> Distribution:
    """
    pending -> delivered | returned. Both targets are terminal.

    A return credits the source tier in the same transaction (see
    stock_service.undo_distribution).
    """
    if principal.role == ROLE_SHOPKEEPER:
        raise PermissionDenied("Shopkeepers cannot change distribution status")

    def _op():
        distribution = _load_distribution(distribution_id, lock=True)
        if not distribution_visible(visibility_scope(principal), distribution):
            raise PermissionDenied(
                "Distribution is outside your scope", details={"distribution_id": distribution_id}
            )
        # Salesmen settle only what they sent; inbound shipments belong to the issuing admin
        if principal.is_salesman and distribution.from_account_id != principal.id:
            raise PermissionDenied(
                "Only the sender can change this distribution", details={"distribution_id": distribution_id}
            )
        if distribution.status != DISTRIBUTION_STATUS_PENDING:
            raise ConflictError(
                f"Distribution is already {distribution.status}",
                details={"distribution_id": distribution.id, "status": distribution.status},
            )

        if update.notes is not None:
            distribution.notes = update.notes

        if update.status == DISTRIBUTION_STATUS_DELIVERED:
            distribution.status = DISTRIBUTION_STATUS_DELIVERED
            distribution.delivered_at = utcnow()
            db.session.flush()
            _record_event("distribution.delivered", distribution, principal.id)
        else:
            distribution.status = DISTRIBUTION_STATUS_RETURNED
            distribution.returned_at = utcnow()
            distribution.return_reason = update.return_reason or ""
            db.session.flush()
            restored = stock_service.undo_distribution(distribution, actor_id=principal.id)
            _record_event(
                "distribution.returned",
                distribution,
                principal.id,
                {"restored_quantity": restored, "return_reason": distribution.return_reason},
            )
        return distribution

    distribution = run_in_transaction(_op)
    logger.info("Distribution %s marked %s by %s", distribution.id, distribution.status, principal.id)
    return distribution


def custodian_stock(custodian_id: int, product_id: int, principal: Principal) -> dict:
    """Availability view; salesmen may only look at their own tier."""
    if principal.is_salesman and custodian_id != principal.id:
        raise PermissionDenied("Salesmen can only view their own stock")
    if principal.role == ROLE_SHOPKEEPER and custodian_id != principal.id:
        raise PermissionDenied("Shopkeepers can only view their own stock")
    custodian = get_account(custodian_id)
    product = require_product(product_id)
    return {
        "custodian": custodian.to_summary(),
        "product": product.to_summary(),
        "available": stock_service.available_stock(custodian.id, product.id),
    }
