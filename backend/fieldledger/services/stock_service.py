# Overview: Stock ledger: per-tier availability, reservations, warehouse adjustments and reversal.

from __future__ import annotations

import logging

from sqlalchemy import func

from ..errors import ConsistencyError, InsufficientStockError, InvalidRoleError, ValidationError
from ..extensions import db
from ..models import Account, Distribution, Product, Recovery, RecoveryItem
from ..models.accounts import ROLE_ADMIN, ROLE_SALESMAN, ROLE_SHOPKEEPER, ROLE_SUPERADMIN
from ..models.ledger import (
    DISTRIBUTION_ADMIN_TO_SALESMAN,
    DISTRIBUTION_SALESMAN_TO_SHOPKEEPER,
    DISTRIBUTION_STATUS_DELIVERED,
    DISTRIBUTION_STATUS_PENDING,
    DISTRIBUTION_STATUS_RETURNED,
    RECOVERY_PAYMENT_WITH_ITEMS,
    RECOVERY_STATUS_CANCELLED,
)
from fieldledger.time_utils import utcnow
from .account_service import get_account
from .concurrency import lock_for_update
from .ledger_service import append_ledger_event
from .product_service import get_product, require_product

logger = logging.getLogger(__name__)
"""
Stock Invariants (authoritative)

- Warehouse (admin tier) quantity is Product.stock, the only stored counter.
  It never goes below zero.
- Salesman quantity is derived on read:
      delivered admin_to_salesman in
    - delivered|pending salesman_to_shopkeeper out
    - items handed over in non-cancelled payment_with_items recoveries
- Shopkeeper quantity is what they received: delivered|pending
  salesman_to_shopkeeper plus recovery items.
- reserve() is check-only. It must run inside the same transaction that
  writes the consuming entry. A reservation at a salesman tier bumps the
  salesman's stock_revision, so concurrent reservations on the same
  custodian conflict on the row version and one of them is retried.
- Reversal is recorded on the entry itself (Recovery.reversed_at,
  Distribution.stock_restored_at). A second undo raises ConsistencyError.
"""

ADMIN_TIER_ROLES = (ROLE_ADMIN, ROLE_SUPERADMIN)


def _sum_quantity(query) -> int:
    return int(query.scalar() or 0)


def salesman_available_stock(salesman_id: int, product_id: int) -> int:
    received = _sum_quantity(
        db.session.query(func.sum(Distribution.quantity)).filter(
            Distribution.to_account_id == salesman_id,
            Distribution.product_id == product_id,
            Distribution.distribution_type == DISTRIBUTION_ADMIN_TO_SALESMAN,
            Distribution.status == DISTRIBUTION_STATUS_DELIVERED,
        )
    )
    passed_on = _sum_quantity(
        db.session.query(func.sum(Distribution.quantity)).filter(
            Distribution.from_account_id == salesman_id,
            Distribution.product_id == product_id,
            Distribution.distribution_type == DISTRIBUTION_SALESMAN_TO_SHOPKEEPER,
            Distribution.status.in_((DISTRIBUTION_STATUS_DELIVERED, DISTRIBUTION_STATUS_PENDING)),
        )
    )
    handed_over = _sum_quantity(
        db.session.query(func.sum(RecoveryItem.quantity))
        .join(Recovery, Recovery.id == RecoveryItem.recovery_id)
        .filter(
            Recovery.salesman_id == salesman_id,
            Recovery.recovery_type == RECOVERY_PAYMENT_WITH_ITEMS,
            Recovery.status != RECOVERY_STATUS_CANCELLED,
            RecoveryItem.product_id == product_id,
        )
    )
    return received - passed_on - handed_over


def shopkeeper_received_stock(shopkeeper_id: int, product_id: int) -> int:
    distributed = _sum_quantity(
        db.session.query(func.sum(Distribution.quantity)).filter(
            Distribution.to_account_id == shopkeeper_id,
            Distribution.product_id == product_id,
            Distribution.distribution_type == DISTRIBUTION_SALESMAN_TO_SHOPKEEPER,
            Distribution.status.in_((DISTRIBUTION_STATUS_DELIVERED, DISTRIBUTION_STATUS_PENDING)),
        )
    )
    via_recoveries = _sum_quantity(
        db.session.query(func.sum(RecoveryItem.quantity))
        .join(Recovery, Recovery.id == RecoveryItem.recovery_id)
        .filter(
            Recovery.shopkeeper_id == shopkeeper_id,
            Recovery.recovery_type == RECOVERY_PAYMENT_WITH_ITEMS,
            Recovery.status != RECOVERY_STATUS_CANCELLED,
            RecoveryItem.product_id == product_id,
        )
    )
    return distributed + via_recoveries


def available_stock(custodian_id: int, product_id: int) -> int:
    """
    Quantity of product usable at the custodian's tier.

    Admin and superadmin share the warehouse tier (Product.stock).
    """
    custodian = get_account(custodian_id)
    product = get_product(product_id)
    if custodian.role in ADMIN_TIER_ROLES:
        return product.stock
    if custodian.role == ROLE_SALESMAN:
        return salesman_available_stock(custodian.id, product.id)
    if custodian.role == ROLE_SHOPKEEPER:
        return shopkeeper_received_stock(custodian.id, product.id)
    raise InvalidRoleError(f"Account {custodian_id} does not hold stock", details={"role": custodian.role})


def bump_stock_revision(account: Account) -> None:
    account.stock_revision = (account.stock_revision or 0) + 1


def reserve(custodian_id: int, product_id: int, quantity: int) -> int:
    """
    Check that `quantity` can leave the custodian's tier.

    Must be called before the consuming entry is flushed (the salesman
    formula would otherwise count it already). Returns the availability the
    check ran against.

    Raises:
        ValidationError: quantity < 1, or product missing/inactive
        InvalidRoleError: custodian is a shopkeeper (end of the chain)
        InsufficientStockError: quantity exceeds availability
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError("quantity must be an integer >= 1", details={"field": "quantity"})

    custodian = get_account(custodian_id, lock=True)
    product = require_product(product_id, lock=True)

    if custodian.role in ADMIN_TIER_ROLES:
        available = product.stock
    elif custodian.role == ROLE_SALESMAN:
        bump_stock_revision(custodian)
        available = salesman_available_stock(custodian.id, product.id)
    else:
        raise InvalidRoleError(
            f"Account {custodian_id} cannot be a stock source",
            details={"field": "custodian_id", "actual_role": custodian.role},
        )

    if quantity > available:
        raise InsufficientStockError(product.id, available, quantity, custodian_id=custodian.id)
    return available


def adjust_warehouse_stock(
    product_id: int,
    delta: int,
    *,
    actor_id: int | None = None,
    reason: str = "",
    entity_type: str = "product",
    entity_id: int | None = None,
) -> Product:
    """
    Apply delta to Product.stock under a row lock. Caller commits.

    Negative deltas that would take stock below zero raise
    InsufficientStockError and leave the row untouched.
    """
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise ValidationError("delta must be an integer", details={"field": "delta"})
    if delta == 0:
        raise ValidationError("delta must be non-zero", details={"field": "delta"})

    product = get_product(product_id, lock=True)
    new_stock = product.stock + delta
    if new_stock < 0:
        raise InsufficientStockError(product.id, product.stock, -delta)

    previous = product.stock
    product.stock = new_stock
    db.session.flush()

    append_ledger_event(
        event_type="stock.adjusted",
        event_category="stock",
        entity_type=entity_type,
        entity_id=entity_id if entity_id is not None else product.id,
        actor_id=actor_id,
        product_id=product.id,
        note=reason,
        payload={"delta": delta, "previous": previous, "stock": new_stock},
    )
    return product


def undo_recovery(recovery: Recovery, *, actor_id: int | None = None) -> dict[int, int]:
    """
    Release the items of a recovery back to its salesman's availability.

    Marks the recovery cancelled/reversed, which removes its items from the
    derived formula. Returns {product_id: quantity} restored.
    """
    if recovery.is_reversed or recovery.status == RECOVERY_STATUS_CANCELLED:
        logger.error("Recovery %s already reversed at %s", recovery.id, recovery.reversed_at)
        raise ConsistencyError(
            f"Recovery {recovery.id} has already been reversed",
            details={"recovery_id": recovery.id},
        )

    restored: dict[int, int] = {}
    if recovery.recovery_type == RECOVERY_PAYMENT_WITH_ITEMS:
        for item in recovery.items:
            restored[item.product_id] = restored.get(item.product_id, 0) + item.quantity
        salesman = get_account(recovery.salesman_id, lock=True)
        bump_stock_revision(salesman)

    recovery.status = RECOVERY_STATUS_CANCELLED
    recovery.reversed_at = utcnow()
    recovery.reversed_by_id = actor_id
    db.session.flush()
    return restored


def undo_distribution(distribution: Distribution, *, actor_id: int | None = None) -> int:
    """
    Credit a returned distribution back to its source tier.

    admin_to_salesman: Product.stock += quantity.
    salesman_to_shopkeeper: the returned row leaves the formula; the
    salesman's revision is bumped so in-flight reservations re-check.
    """
    if distribution.status != DISTRIBUTION_STATUS_RETURNED:
        raise ConsistencyError(
            f"Distribution {distribution.id} is not returned",
            details={"distribution_id": distribution.id, "status": distribution.status},
        )
    if distribution.stock_restored_at is not None:
        logger.error("Distribution %s stock already restored", distribution.id)
        raise ConsistencyError(
            f"Distribution {distribution.id} stock has already been restored",
            details={"distribution_id": distribution.id},
        )

    if distribution.distribution_type == DISTRIBUTION_ADMIN_TO_SALESMAN:
        adjust_warehouse_stock(
            distribution.product_id,
            distribution.quantity,
            actor_id=actor_id,
            reason="distribution returned",
            entity_type="distribution",
            entity_id=distribution.id,
        )
    else:
        source = get_account(distribution.from_account_id, lock=True)
        bump_stock_revision(source)

    distribution.stock_restored_at = utcnow()
    db.session.flush()
    return distribution.quantity


def undo(entry, *, actor_id: int | None = None):
    if isinstance(entry, Recovery):
        return undo_recovery(entry, actor_id=actor_id)
    if isinstance(entry, Distribution):
        return undo_distribution(entry, actor_id=actor_id)
    raise TypeError(f"cannot undo {type(entry).__name__}")
