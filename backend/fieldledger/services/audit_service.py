# Overview: Offline consistency audit of stored ledger entries and derived stock.

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..extensions import db
from ..models import Account, Distribution, Product, Recovery, RecoveryItem, Sale
from ..models.sales import BASIS_POINTS
from ..models.accounts import ROLE_SALESMAN
from ..models.ledger import RECOVERY_PAYMENT_WITH_ITEMS
from .stock_service import salesman_available_stock

logger = logging.getLogger(__name__)


@dataclass
class AuditFinding:
    check: str
    entity_type: str
    entity_id: int
    message: str

    def to_dict(self) -> dict:
        return {
            "check": self.check,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "message": self.message,
        }


@dataclass
class AuditReport:
    recoveries_checked: int = 0
    distributions_checked: int = 0
    sales_checked: int = 0
    custodians_checked: int = 0
    findings: list[AuditFinding] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.findings

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "recoveries_checked": self.recoveries_checked,
            "distributions_checked": self.distributions_checked,
            "sales_checked": self.sales_checked,
            "custodians_checked": self.custodians_checked,
            "findings": [f.to_dict() for f in self.findings],
        }


def _audit_recovery(recovery: Recovery, report: AuditReport) -> None:
    for item in recovery.items:
        if item.total_price_cents != item.quantity * item.unit_price_cents:
            report.findings.append(AuditFinding(
                "recovery_item_total", "recovery_item", item.id,
                f"total {item.total_price_cents} != {item.quantity} x {item.unit_price_cents}",
            ))

    if recovery.recovery_type == RECOVERY_PAYMENT_WITH_ITEMS:
        items_value = sum(item.total_price_cents for item in recovery.items)
        if recovery.items_value_cents != items_value:
            report.findings.append(AuditFinding(
                "recovery_items_value", "recovery", recovery.id,
                f"items_value {recovery.items_value_cents} != sum of items {items_value}",
            ))
    else:
        items_value = recovery.items_value_cents

    net = recovery.amount_collected_cents - items_value
    if recovery.net_payment_cents != net:
        report.findings.append(AuditFinding(
            "recovery_net_payment", "recovery", recovery.id,
            f"net_payment {recovery.net_payment_cents} != {net}",
        ))
    expected_new = max(0, recovery.previous_pending_amount_cents - net)
    if recovery.new_pending_amount_cents != expected_new:
        report.findings.append(AuditFinding(
            "recovery_new_pending", "recovery", recovery.id,
            f"new_pending {recovery.new_pending_amount_cents} != {expected_new}",
        ))


def _audit_sale(sale: Sale, report: AuditReport) -> None:
    expected_total = sale.quantity * sale.unit_price_cents
    if sale.total_amount_cents != expected_total:
        report.findings.append(AuditFinding(
            "sale_total", "sale", sale.id, f"total {sale.total_amount_cents} != {expected_total}",
        ))
    expected_commission = sale.total_amount_cents * sale.commission_rate_bps // BASIS_POINTS
    if sale.commission_cents != expected_commission:
        report.findings.append(AuditFinding(
            "sale_commission", "sale", sale.id,
            f"commission {sale.commission_cents} != {expected_commission}",
        ))
    if sale.profit_cents != sale.total_amount_cents - sale.commission_cents:
        report.findings.append(AuditFinding(
            "sale_profit", "sale", sale.id,
            f"profit {sale.profit_cents} != {sale.total_amount_cents} - {sale.commission_cents}",
        ))


def run_audit() -> AuditReport:
    """
    Re-check every stored formula and every derived stock level.

    Read-only. Findings are reported, never corrected.
    """
    report = AuditReport()

    for recovery in db.session.query(Recovery).order_by(Recovery.id.asc()).all():
        report.recoveries_checked += 1
        _audit_recovery(recovery, report)

    for distribution in db.session.query(Distribution).order_by(Distribution.id.asc()).all():
        report.distributions_checked += 1
        expected = distribution.quantity * distribution.unit_price_cents
        if distribution.total_amount_cents != expected:
            report.findings.append(AuditFinding(
                "distribution_total", "distribution", distribution.id,
                f"total {distribution.total_amount_cents} != {expected}",
            ))

    for sale in db.session.query(Sale).order_by(Sale.id.asc()).all():
        report.sales_checked += 1
        _audit_sale(sale, report)

    for product in db.session.query(Product).order_by(Product.id.asc()).all():
        if product.stock < 0:
            report.findings.append(AuditFinding(
                "warehouse_stock", "product", product.id, f"warehouse stock is {product.stock}",
            ))

    held = (
        db.session.query(Distribution.to_account_id, Distribution.product_id)
        .join(Account, Account.id == Distribution.to_account_id)
        .filter(Account.role == ROLE_SALESMAN)
        .union(
            db.session.query(Distribution.from_account_id, Distribution.product_id)
            .join(Account, Account.id == Distribution.from_account_id)
            .filter(Account.role == ROLE_SALESMAN),
            db.session.query(Recovery.salesman_id, RecoveryItem.product_id)
            .join(RecoveryItem, RecoveryItem.recovery_id == Recovery.id),
        )
        .all()
    )
    for salesman_id, product_id in sorted(held):
        report.custodians_checked += 1
        available = salesman_available_stock(salesman_id, product_id)
        if available < 0:
            report.findings.append(AuditFinding(
                "salesman_stock", "account", salesman_id,
                f"product {product_id} availability is {available}",
            ))

    if report.findings:
        logger.error("Ledger audit found %s problem(s)", len(report.findings))
    else:
        logger.info(
            "Ledger audit clean: %s recoveries, %s distributions, %s sales, %s custodian stocks",
            report.recoveries_checked,
            report.distributions_checked,
            report.sales_checked,
            report.custodians_checked,
        )
    return report
