# Overview: Read-only statistics over recoveries, distributions, receipts and sales.

"""
Pure reporting. Missing aggregates default to zero here, which is acceptable
only because nothing in this module feeds a reconciliation write.
"""
from __future__ import annotations

from sqlalchemy import case, func

from ..models import Distribution, Receipt, Recovery, Sale
from ..models.ledger import (
    DISTRIBUTION_STATUS_DELIVERED,
    DISTRIBUTION_STATUS_PENDING,
    DISTRIBUTION_STATUS_RETURNED,
    RECOVERY_STATUS_CANCELLED,
)
from .account_service import VisibilityScope
from .ledger_service import (
    EntryFilters,
    aggregate,
    distribution_conditions,
    receipt_conditions,
    recovery_conditions,
    sale_conditions,
)


def _flag(condition):
    return case((condition, 1), else_=0)


def recovery_stats(filters: EntryFilters, scope: VisibilityScope) -> dict:
    conditions = recovery_conditions(filters, scope)
    if not filters.status:
        conditions.append(Recovery.status != RECOVERY_STATUS_CANCELLED)

    metrics = {
        "total_recoveries": ("count", Recovery.id),
        "total_amount_collected_cents": ("sum", Recovery.amount_collected_cents),
        "total_net_payment_cents": ("sum", Recovery.net_payment_cents),
        "total_items_value_cents": ("sum", Recovery.items_value_cents),
        "average_collected_cents": ("avg", Recovery.amount_collected_cents),
    }
    totals = aggregate(Recovery, conditions, metrics)[0]
    by_type = aggregate(
        Recovery,
        conditions,
        {
            "count": ("count", Recovery.id),
            "amount_collected_cents": ("sum", Recovery.amount_collected_cents),
        },
        group_by=Recovery.recovery_type,
    )
    by_method = aggregate(
        Recovery,
        conditions,
        {
            "count": ("count", Recovery.id),
            "amount_collected_cents": ("sum", Recovery.amount_collected_cents),
        },
        group_by=Recovery.payment_method,
    )
    return {
        "totals": totals,
        "by_type": [{"recovery_type": row.pop("group"), **row} for row in by_type],
        "by_payment_method": [{"payment_method": row.pop("group"), **row} for row in by_method],
    }


def distribution_stats(filters: EntryFilters, scope: VisibilityScope) -> dict:
    conditions = distribution_conditions(filters, scope)
    metrics = {
        "total_distributions": ("count", Distribution.id),
        "total_quantity": ("sum", Distribution.quantity),
        "total_amount_cents": ("sum", Distribution.total_amount_cents),
        "pending_distributions": ("sum", _flag(Distribution.status == DISTRIBUTION_STATUS_PENDING)),
        "delivered_distributions": ("sum", _flag(Distribution.status == DISTRIBUTION_STATUS_DELIVERED)),
        "returned_distributions": ("sum", _flag(Distribution.status == DISTRIBUTION_STATUS_RETURNED)),
    }
    totals = aggregate(Distribution, conditions, metrics)[0]
    by_type = aggregate(
        Distribution,
        conditions,
        {"count": ("count", Distribution.id), "quantity": ("sum", Distribution.quantity)},
        group_by=Distribution.distribution_type,
    )
    return {
        "totals": totals,
        "by_type": [{"distribution_type": row.pop("group"), **row} for row in by_type],
    }


def receipt_stats(filters: EntryFilters, scope: VisibilityScope) -> dict:
    conditions = receipt_conditions(filters, scope)
    totals = aggregate(
        Receipt,
        conditions,
        {"total_receipts": ("count", Receipt.id), "total_amount_cents": ("sum", Receipt.total_amount_cents)},
    )[0]
    by_status = aggregate(
        Receipt,
        conditions,
        {"count": ("count", Receipt.id), "amount_cents": ("sum", Receipt.total_amount_cents)},
        group_by=Receipt.status,
    )
    return {
        "totals": totals,
        "by_status": [{"status": row.pop("group"), **row} for row in by_status],
    }


_SALE_METRICS = {
    "total_sales": ("count", Sale.id),
    "total_quantity": ("sum", Sale.quantity),
    "total_revenue_cents": ("sum", Sale.total_amount_cents),
    "total_commission_cents": ("sum", Sale.commission_cents),
    "total_profit_cents": ("sum", Sale.profit_cents),
    "average_sale_cents": ("avg", Sale.total_amount_cents),
}


def sale_stats(filters: EntryFilters, scope: VisibilityScope) -> dict:
    """Totals plus a newest-first monthly breakdown keyed "YYYY-MM"."""
    conditions = sale_conditions(filters, scope)
    totals = aggregate(Sale, conditions, _SALE_METRICS)[0]
    monthly = aggregate(
        Sale,
        conditions,
        {
            "sales": ("count", Sale.id),
            "revenue_cents": ("sum", Sale.total_amount_cents),
            "profit_cents": ("sum", Sale.profit_cents),
        },
        group_by=func.strftime("%Y-%m", Sale.sale_date),
    )
    return {
        "totals": totals,
        "monthly": [{"month": row.pop("group"), **row} for row in reversed(monthly)],
    }


def profit_loss(filters: EntryFilters) -> dict:
    """
    Company-wide margin over sales. Commission is the only cost tracked, so
    profit_margin_pct = profit / revenue * 100, or 0 with no revenue.
    """
    totals = aggregate(
        Sale,
        sale_conditions(filters),
        {
            "sales_count": ("count", Sale.id),
            "total_revenue_cents": ("sum", Sale.total_amount_cents),
            "total_commission_cents": ("sum", Sale.commission_cents),
            "total_profit_cents": ("sum", Sale.profit_cents),
        },
    )[0]
    revenue = totals["total_revenue_cents"]
    totals["profit_margin_pct"] = round(totals["total_profit_cents"] * 100 / revenue, 2) if revenue else 0
    return totals
