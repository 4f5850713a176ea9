# Overview: Sales records with salesman commission, and their payment status.

"""
Sales are a commercial record kept beside the reconciliation ledger: they
never move stock and never change a shopkeeper's pending amount. Goods reach
the shop through distributions, and money comes back through recoveries.

Who may record a sale:
- a salesman, for a shopkeeper they are actively assigned to
- an admin, on behalf of a salesman they manage (salesman_id required)
- a superadmin, on behalf of any salesman (salesman_id required)
"""
from __future__ import annotations

import logging

from ..errors import NotFoundError, PermissionDenied
from ..extensions import db
from ..models import Sale
from ..models.accounts import ROLE_SALESMAN, ROLE_SHOPKEEPER
from ..schemas import SalePaymentUpdate, SaleRequest
from .account_service import Principal, require_role, visibility_scope
from .assignment_service import require_active_assignment
from .concurrency import lock_for_update, run_in_transaction
from .ledger_service import append_ledger_event, record_sale_entry, sale_visible
from .product_service import require_product

logger = logging.getLogger(__name__)


def _record_event(event_type: str, sale: Sale, actor_id: int, payload: dict) -> None:
    append_ledger_event(
        event_type=event_type,
        event_category="sales",
        entity_type="sale",
        entity_id=sale.id,
        actor_id=actor_id,
        salesman_id=sale.salesman_id,
        shopkeeper_id=sale.shopkeeper_id,
        product_id=sale.product_id,
        payload=payload,
    )


def record_sale(request: SaleRequest, principal: Principal) -> Sale:
    if principal.is_salesman:
        salesman_id = principal.id
    elif principal.is_admin or principal.is_superadmin:
        salesman_id = request.salesman_id
    else:
        raise PermissionDenied("Shopkeepers cannot record sales")

    def _op():
        salesman = require_role(salesman_id, ROLE_SALESMAN, field="salesman_id")
        if principal.is_admin and salesman.managed_by_id != principal.id:
            raise PermissionDenied("Salesman is not managed by this admin", details={"salesman_id": salesman.id})
        shopkeeper = require_role(request.shopkeeper_id, ROLE_SHOPKEEPER, field="shopkeeper_id")
        require_active_assignment(salesman.id, shopkeeper.id)
        product = require_product(request.product_id)

        sale = record_sale_entry(
            product=product,
            salesman=salesman,
            shopkeeper=shopkeeper,
            recorded_by_id=principal.id,
            quantity=request.quantity,
            unit_price_cents=request.unit_price_cents,
            payment_method=request.payment_method,
            notes=request.notes,
            sale_date=request.sale_date,
        )
        _record_event(
            "sale.recorded",
            sale,
            principal.id,
            {
                "quantity": sale.quantity,
                "total_amount_cents": sale.total_amount_cents,
                "commission_cents": sale.commission_cents,
            },
        )
        return sale

    sale = run_in_transaction(_op)
    logger.info(
        "Sale %s recorded: salesman=%s shopkeeper=%s total=%s commission=%s",
        sale.id,
        sale.salesman_id,
        sale.shopkeeper_id,
        sale.total_amount_cents,
        sale.commission_cents,
    )
    return sale


def get_sale(sale_id: int, principal: Principal) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    if not sale_visible(visibility_scope(principal), sale):
        raise PermissionDenied("Sale is outside your scope", details={"sale_id": sale_id})
    return sale


def update_payment_status(sale_id: int, update: SalePaymentUpdate, principal: Principal) -> Sale:
    """Salesmen may only touch their own sales; amounts never change."""
    if principal.role == ROLE_SHOPKEEPER:
        raise PermissionDenied("Shopkeepers cannot update sales")

    def _op():
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if sale is None:
            raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
        if not sale_visible(visibility_scope(principal), sale):
            raise PermissionDenied("Sale is outside your scope", details={"sale_id": sale_id})

        previous = sale.payment_status
        sale.payment_status = update.payment_status
        if update.payment_method is not None:
            sale.payment_method = update.payment_method
        if update.notes is not None:
            sale.notes = update.notes
        db.session.flush()

        _record_event(
            "sale.payment_updated",
            sale,
            principal.id,
            {"from": previous, "to": sale.payment_status, "payment_method": sale.payment_method},
        )
        return sale

    return run_in_transaction(_op)
