# Overview: Ledger entry store: validated writes, scoped queries, and audit events.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import func, or_

from ..errors import InvalidRoleError, ValidationError
from ..extensions import db
from ..models import Account, Distribution, LedgerEvent, Product, Receipt, Recovery, RecoveryItem, Sale
from ..models.accounts import ROLE_ADMIN, ROLE_SALESMAN, ROLE_SHOPKEEPER, ROLE_SUPERADMIN
from ..models.ledger import (
    DISTRIBUTION_ADMIN_TO_SALESMAN,
    DISTRIBUTION_SALESMAN_TO_SHOPKEEPER,
    DISTRIBUTION_STATUS_PENDING,
    DISTRIBUTION_TYPES,
    PAYMENT_METHODS,
    RECOVERY_PAYMENT_WITH_ITEMS,
    RECOVERY_STATUS_COMPLETED,
    RECOVERY_TYPES,
)
from ..models.sales import BASIS_POINTS, SALE_PAYMENT_METHODS, SALE_PAYMENT_PENDING
from .account_service import VisibilityScope
from .product_service import require_product
"""
Ledger Invariants (authoritative)

- Distribution and Recovery rows are append-mostly: after creation only
  status, notes and the reversal/delivery timestamps change.
- record_* functions validate quantities, prices and the roles of the
  referenced parties before anything is written. They flush, never commit;
  the calling service owns the transaction.
- Visibility scoping is a caller-side filter applied to queries, not an
  access-control layer of the store.
- LedgerEvent rows are appended inside the same DB transaction as the change
  they describe, and are never updated or deleted.
"""


@dataclass(frozen=True)
class EntryFilters:
    shopkeeper_id: Optional[int] = None
    salesman_id: Optional[int] = None
    status: Optional[str] = None
    entry_type: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None


@dataclass(frozen=True)
class Page:
    items: list
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        if self.limit <= 0:
            return 0
        return (self.total + self.limit - 1) // self.limit

    def to_dict(self) -> dict:
        return {
            "items": [item.to_dict() for item in self.items],
            "pagination": {"page": self.page, "pages": self.pages, "total": self.total, "limit": self.limit},
        }


def append_ledger_event(
    *,
    event_type: str,
    event_category: str,
    entity_type: str,
    entity_id: int,
    actor_id: int | None = None,
    shopkeeper_id: int | None = None,
    salesman_id: int | None = None,
    product_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[dict] = None,
) -> LedgerEvent:
    """
    Append-only ledger event.

    - No domain logic here.
    - No deletes/updates of existing events.
    """
    ev = LedgerEvent(
        event_type=event_type,
        event_category=event_category,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_id=actor_id,
        shopkeeper_id=shopkeeper_id,
        salesman_id=salesman_id,
        product_id=product_id,
        occurred_at=occurred_at,  # if None, db default applies
        note=note[:255] if note else note,
        payload=payload,
    )
    db.session.add(ev)
    db.session.flush()
    return ev


def list_ledger_events(entity_type: str, entity_id: int) -> list[LedgerEvent]:
    return (
        db.session.query(LedgerEvent)
        .filter_by(entity_type=entity_type, entity_id=entity_id)
        .order_by(LedgerEvent.id.asc())
        .all()
    )


# =============================================================================
# WRITES
# =============================================================================

def _check_quantity(quantity: Any, field: str = "quantity") -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError(f"{field} must be an integer", details={"field": field})
    if quantity < 1:
        raise ValidationError(f"{field} must be >= 1", details={"field": field})
    return quantity


def _check_price(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer amount in cents", details={"field": field})
    if value < 0:
        raise ValidationError(f"{field} must be >= 0", details={"field": field})
    return value


_DISTRIBUTION_ROLES = {
    DISTRIBUTION_ADMIN_TO_SALESMAN: ((ROLE_ADMIN, ROLE_SUPERADMIN), ROLE_SALESMAN),
    DISTRIBUTION_SALESMAN_TO_SHOPKEEPER: ((ROLE_SALESMAN,), ROLE_SHOPKEEPER),
}


def record_distribution_entry(
    *,
    distribution_type: str,
    product: Product,
    from_account: Account,
    to_account: Account,
    quantity: int,
    unit_price_cents: int,
    notes: str = "",
) -> Distribution:
    if distribution_type not in DISTRIBUTION_TYPES:
        raise ValidationError(
            f"distribution_type must be one of {', '.join(DISTRIBUTION_TYPES)}",
            details={"field": "distribution_type"},
        )
    quantity = _check_quantity(quantity)
    unit_price_cents = _check_price(unit_price_cents, "unit_price_cents")

    from_roles, to_role = _DISTRIBUTION_ROLES[distribution_type]
    if from_account.role not in from_roles:
        raise InvalidRoleError(
            f"Account {from_account.id} cannot issue a {distribution_type} distribution",
            details={"field": "from_account_id", "actual_role": from_account.role},
        )
    if to_account.role != to_role:
        raise InvalidRoleError(
            f"Account {to_account.id} is not a {to_role}",
            details={"field": "to_account_id", "expected_role": to_role, "actual_role": to_account.role},
        )

    distribution = Distribution(
        product_id=product.id,
        from_account_id=from_account.id,
        to_account_id=to_account.id,
        quantity=quantity,
        unit_price_cents=unit_price_cents,
        total_amount_cents=quantity * unit_price_cents,
        distribution_type=distribution_type,
        status=DISTRIBUTION_STATUS_PENDING,
        notes=notes or "",
    )
    db.session.add(distribution)
    db.session.flush()
    return distribution


def record_recovery_entry(
    *,
    recovery_type: str,
    shopkeeper: Account,
    salesman: Account,
    recorded_by_id: int,
    amount_collected_cents: int,
    payment_method: str,
    items: Iterable,
    previous_pending_amount_cents: int,
    notes: str | None = None,
    recovery_date: datetime | None = None,
    recovery_location: str | None = None,
    receipt_number: str | None = None,
    bank_details: dict | None = None,
) -> Recovery:
    """
    Persist a recovery with its items. Derived amounts are filled in by the
    model's flush hook; items are objects exposing product_id, quantity and
    unit_price_cents.
    """
    if recovery_type not in RECOVERY_TYPES:
        raise ValidationError(
            f"recovery_type must be one of {', '.join(RECOVERY_TYPES)}",
            details={"field": "recovery_type"},
        )
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(
            f"payment_method must be one of {', '.join(PAYMENT_METHODS)}",
            details={"field": "payment_method"},
        )
    amount_collected_cents = _check_price(amount_collected_cents, "amount_collected_cents")
    if shopkeeper.role != ROLE_SHOPKEEPER:
        raise InvalidRoleError(
            f"Account {shopkeeper.id} is not a shopkeeper",
            details={"field": "shopkeeper_id", "actual_role": shopkeeper.role},
        )
    if salesman.role != ROLE_SALESMAN:
        raise InvalidRoleError(
            f"Account {salesman.id} is not a salesman",
            details={"field": "salesman_id", "actual_role": salesman.role},
        )

    items = list(items)
    if recovery_type == RECOVERY_PAYMENT_WITH_ITEMS and not items:
        raise ValidationError("payment_with_items requires at least one item", details={"field": "items"})
    if recovery_type != RECOVERY_PAYMENT_WITH_ITEMS and items:
        raise ValidationError("payment_only recoveries cannot carry items", details={"field": "items"})

    recovery = Recovery(
        recovery_type=recovery_type,
        shopkeeper_id=shopkeeper.id,
        salesman_id=salesman.id,
        recorded_by_id=recorded_by_id,
        amount_collected_cents=amount_collected_cents,
        payment_method=payment_method,
        previous_pending_amount_cents=previous_pending_amount_cents,
        items_value_cents=0,
        status=RECOVERY_STATUS_COMPLETED,
        notes=notes,
        recovery_date=recovery_date,
        recovery_location=recovery_location,
        receipt_number=receipt_number,
        bank_details=bank_details,
    )
    for index, item in enumerate(items):
        quantity = _check_quantity(item.quantity, f"items[{index}].quantity")
        unit_price = _check_price(item.unit_price_cents, f"items[{index}].unit_price_cents")
        product = require_product(item.product_id, field=f"items[{index}].product_id")
        recovery.items.append(
            RecoveryItem(
                product_id=product.id,
                quantity=quantity,
                unit_price_cents=unit_price,
                total_price_cents=quantity * unit_price,
            )
        )

    db.session.add(recovery)
    db.session.flush()
    return recovery


def record_sale_entry(
    *,
    product: Product,
    salesman: Account,
    shopkeeper: Account,
    recorded_by_id: int,
    quantity: int,
    unit_price_cents: int,
    payment_method: str = "cash",
    notes: str = "",
    sale_date: datetime | None = None,
) -> Sale:
    """
    Persist a sale with its commission split.

    The rate is read from the salesman now and copied onto the row, so later
    rate changes do not rewrite past commission.
    """
    quantity = _check_quantity(quantity)
    unit_price_cents = _check_price(unit_price_cents, "unit_price_cents")
    if payment_method not in SALE_PAYMENT_METHODS:
        raise ValidationError(
            f"payment_method must be one of {', '.join(SALE_PAYMENT_METHODS)}",
            details={"field": "payment_method"},
        )
    if salesman.role != ROLE_SALESMAN:
        raise InvalidRoleError(
            f"Account {salesman.id} is not a salesman",
            details={"field": "salesman_id", "actual_role": salesman.role},
        )
    if shopkeeper.role != ROLE_SHOPKEEPER:
        raise InvalidRoleError(
            f"Account {shopkeeper.id} is not a shopkeeper",
            details={"field": "shopkeeper_id", "actual_role": shopkeeper.role},
        )

    total = quantity * unit_price_cents
    rate = salesman.commission_rate_bps or 0
    commission = total * rate // BASIS_POINTS
    sale = Sale(
        salesman_id=salesman.id,
        shopkeeper_id=shopkeeper.id,
        product_id=product.id,
        recorded_by_id=recorded_by_id,
        quantity=quantity,
        unit_price_cents=unit_price_cents,
        total_amount_cents=total,
        commission_rate_bps=rate,
        commission_cents=commission,
        profit_cents=total - commission,
        payment_status=SALE_PAYMENT_PENDING,
        payment_method=payment_method,
        notes=notes or "",
        sale_date=sale_date,
    )
    db.session.add(sale)
    db.session.flush()
    return sale


# =============================================================================
# READS
# =============================================================================

def recovery_conditions(filters: EntryFilters, scope: VisibilityScope | None = None) -> list:
    conditions = []
    if scope is not None:
        if scope.role == ROLE_SHOPKEEPER:
            conditions.append(Recovery.shopkeeper_id == scope.account_id)
        elif scope.salesman_ids is not None:
            conditions.append(Recovery.salesman_id.in_(sorted(scope.salesman_ids)))
    if filters.shopkeeper_id is not None:
        conditions.append(Recovery.shopkeeper_id == filters.shopkeeper_id)
    if filters.salesman_id is not None:
        conditions.append(Recovery.salesman_id == filters.salesman_id)
    if filters.status:
        conditions.append(Recovery.status == filters.status)
    if filters.entry_type:
        conditions.append(Recovery.recovery_type == filters.entry_type)
    if filters.start is not None:
        conditions.append(Recovery.recovery_date >= filters.start)
    if filters.end is not None:
        conditions.append(Recovery.recovery_date <= filters.end)
    return conditions


def distribution_conditions(filters: EntryFilters, scope: VisibilityScope | None = None) -> list:
    conditions = []
    if scope is not None:
        if scope.role == ROLE_SHOPKEEPER:
            conditions.append(Distribution.to_account_id == scope.account_id)
        elif scope.role == ROLE_SALESMAN:
            conditions.append(
                or_(
                    Distribution.from_account_id == scope.account_id,
                    Distribution.to_account_id == scope.account_id,
                )
            )
        elif scope.salesman_ids is not None:
            conditions.append(
                or_(
                    Distribution.from_account_id == scope.account_id,
                    Distribution.to_account_id.in_(sorted(scope.salesman_ids)),
                    Distribution.from_account_id.in_(sorted(scope.salesman_ids)),
                )
            )
    if filters.shopkeeper_id is not None:
        conditions.append(Distribution.to_account_id == filters.shopkeeper_id)
    if filters.salesman_id is not None:
        conditions.append(
            or_(
                Distribution.from_account_id == filters.salesman_id,
                Distribution.to_account_id == filters.salesman_id,
            )
        )
    if filters.status:
        conditions.append(Distribution.status == filters.status)
    if filters.entry_type:
        conditions.append(Distribution.distribution_type == filters.entry_type)
    if filters.start is not None:
        conditions.append(Distribution.created_at >= filters.start)
    if filters.end is not None:
        conditions.append(Distribution.created_at <= filters.end)
    return conditions


def receipt_conditions(filters: EntryFilters, scope: VisibilityScope | None = None) -> list:
    conditions = []
    if scope is not None:
        if scope.role == ROLE_SHOPKEEPER:
            conditions.append(Receipt.shopkeeper_id == scope.account_id)
        elif scope.salesman_ids is not None:
            conditions.append(Receipt.salesman_id.in_(sorted(scope.salesman_ids)))
    if filters.shopkeeper_id is not None:
        conditions.append(Receipt.shopkeeper_id == filters.shopkeeper_id)
    if filters.salesman_id is not None:
        conditions.append(Receipt.salesman_id == filters.salesman_id)
    if filters.status:
        conditions.append(Receipt.status == filters.status)
    if filters.entry_type:
        conditions.append(Receipt.receipt_type == filters.entry_type)
    if filters.start is not None:
        conditions.append(Receipt.printed_at >= filters.start)
    if filters.end is not None:
        conditions.append(Receipt.printed_at <= filters.end)
    return conditions


def sale_conditions(filters: EntryFilters, scope: VisibilityScope | None = None) -> list:
    conditions = []
    if scope is not None:
        if scope.role == ROLE_SHOPKEEPER:
            conditions.append(Sale.shopkeeper_id == scope.account_id)
        elif scope.salesman_ids is not None:
            conditions.append(Sale.salesman_id.in_(sorted(scope.salesman_ids)))
    if filters.shopkeeper_id is not None:
        conditions.append(Sale.shopkeeper_id == filters.shopkeeper_id)
    if filters.salesman_id is not None:
        conditions.append(Sale.salesman_id == filters.salesman_id)
    if filters.status:
        conditions.append(Sale.payment_status == filters.status)
    if filters.entry_type:
        conditions.append(Sale.payment_method == filters.entry_type)
    if filters.start is not None:
        conditions.append(Sale.sale_date >= filters.start)
    if filters.end is not None:
        conditions.append(Sale.sale_date <= filters.end)
    return conditions


def _paginate(query, order_by: list, page: int, limit: int) -> Page:
    total = query.order_by(None).count()
    items = query.order_by(*order_by).offset((page - 1) * limit).limit(limit).all()
    return Page(items=items, page=page, limit=limit, total=total)


def find_recoveries(filters: EntryFilters, scope: VisibilityScope | None, *, page: int = 1, limit: int = 10) -> Page:
    query = db.session.query(Recovery).filter(*recovery_conditions(filters, scope))
    return _paginate(query, [Recovery.recovery_date.desc(), Recovery.id.desc()], page, limit)


def find_distributions(filters: EntryFilters, scope: VisibilityScope | None, *, page: int = 1, limit: int = 10) -> Page:
    query = db.session.query(Distribution).filter(*distribution_conditions(filters, scope))
    return _paginate(query, [Distribution.created_at.desc(), Distribution.id.desc()], page, limit)


def find_receipts(filters: EntryFilters, scope: VisibilityScope | None, *, page: int = 1, limit: int = 10) -> Page:
    query = db.session.query(Receipt).filter(*receipt_conditions(filters, scope))
    return _paginate(query, [Receipt.printed_at.desc(), Receipt.id.desc()], page, limit)


def find_sales(filters: EntryFilters, scope: VisibilityScope | None, *, page: int = 1, limit: int = 10) -> Page:
    query = db.session.query(Sale).filter(*sale_conditions(filters, scope))
    return _paginate(query, [Sale.sale_date.desc(), Sale.id.desc()], page, limit)


_AGGREGATES = {
    "count": func.count,
    "sum": func.sum,
    "avg": func.avg,
}


def _plain_number(op: str, value):
    if value is None:
        return 0
    if op == "avg":
        return round(float(value), 2)
    return int(value)


def aggregate(model, conditions: list, metrics: dict[str, tuple[str, Any]], group_by=None) -> list[dict]:
    """
    Sum/count/average over a filtered set, optionally grouped by one key.

    metrics maps output name -> (op, column) with op in count|sum|avg.
    Returns one dict per group ({"group": key, **metrics}); ungrouped calls
    return a single row. Reporting only, never used by reconciliation writes.
    """
    columns = []
    for name, (op, column) in metrics.items():
        if op not in _AGGREGATES:
            raise ValueError(f"unsupported aggregate {op}")
        columns.append(_AGGREGATES[op](column).label(name))
    if group_by is not None:
        columns.insert(0, group_by.label("group_key"))

    query = db.session.query(*columns).select_from(model).filter(*conditions)
    if group_by is not None:
        query = query.group_by(group_by).order_by(group_by)

    results = []
    for row in query.all():
        mapping = row._mapping
        data = {name: _plain_number(op, mapping[name]) for name, (op, _) in metrics.items()}
        if group_by is not None:
            data = {"group": mapping["group_key"], **data}
        results.append(data)
    return results


def recovery_visible(scope: VisibilityScope, recovery: Recovery) -> bool:
    if scope.role == ROLE_SHOPKEEPER:
        return recovery.shopkeeper_id == scope.account_id
    if scope.salesman_ids is None:
        return True
    return recovery.salesman_id in scope.salesman_ids


def receipt_visible(scope: VisibilityScope, receipt: Receipt) -> bool:
    if scope.role == ROLE_SHOPKEEPER:
        return receipt.shopkeeper_id == scope.account_id
    if scope.salesman_ids is None:
        return True
    return receipt.salesman_id in scope.salesman_ids


def sale_visible(scope: VisibilityScope, sale: Sale) -> bool:
    if scope.role == ROLE_SHOPKEEPER:
        return sale.shopkeeper_id == scope.account_id
    if scope.salesman_ids is None:
        return True
    return sale.salesman_id in scope.salesman_ids


def distribution_visible(scope: VisibilityScope, distribution: Distribution) -> bool:
    parties = {distribution.from_account_id, distribution.to_account_id}
    if scope.role == ROLE_SHOPKEEPER:
        return distribution.to_account_id == scope.account_id
    if scope.salesman_ids is None or scope.account_id in parties:
        return True
    if scope.role == ROLE_SALESMAN:
        return False
    return bool(parties & scope.salesman_ids)
