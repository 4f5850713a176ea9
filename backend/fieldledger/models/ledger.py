from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from fieldledger.time_utils import to_utc_z


DISTRIBUTION_ADMIN_TO_SALESMAN = "admin_to_salesman"
DISTRIBUTION_SALESMAN_TO_SHOPKEEPER = "salesman_to_shopkeeper"
DISTRIBUTION_TYPES = (DISTRIBUTION_ADMIN_TO_SALESMAN, DISTRIBUTION_SALESMAN_TO_SHOPKEEPER)

DISTRIBUTION_STATUS_PENDING = "pending"
DISTRIBUTION_STATUS_DELIVERED = "delivered"
DISTRIBUTION_STATUS_RETURNED = "returned"
DISTRIBUTION_STATUSES = (
    DISTRIBUTION_STATUS_PENDING,
    DISTRIBUTION_STATUS_DELIVERED,
    DISTRIBUTION_STATUS_RETURNED,
)

RECOVERY_PAYMENT_ONLY = "payment_only"
RECOVERY_PAYMENT_WITH_ITEMS = "payment_with_items"
RECOVERY_TYPES = (RECOVERY_PAYMENT_ONLY, RECOVERY_PAYMENT_WITH_ITEMS)

RECOVERY_STATUS_PENDING = "pending"
RECOVERY_STATUS_COMPLETED = "completed"
RECOVERY_STATUS_CANCELLED = "cancelled"
RECOVERY_STATUSES = (RECOVERY_STATUS_PENDING, RECOVERY_STATUS_COMPLETED, RECOVERY_STATUS_CANCELLED)

PAYMENT_METHODS = ("cash", "bank_transfer", "cheque", "upi", "other")


class Distribution(db.Model):
    """
    One-directional transfer of product quantity from one tier to the next.

    LIFECYCLE:
    1. pending: created; stock already left the source tier
    2. delivered: terminal
    3. returned: terminal; stock goes back to the source tier

    total_amount_cents = quantity * unit_price_cents, fixed at creation.
    """
    __tablename__ = "distributions"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_distributions_quantity_positive"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_distributions_unit_price_non_negative"),
        db.Index("ix_distributions_to_product", "to_account_id", "product_id", "distribution_type", "status"),
        db.Index("ix_distributions_from_product", "from_account_id", "product_id", "distribution_type", "status"),
        db.Index("ix_distributions_created", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    from_account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False)
    to_account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_amount_cents = db.Column(db.Integer, nullable=False)

    distribution_type = db.Column(db.String(32), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default=DISTRIBUTION_STATUS_PENDING, index=True)
    notes = db.Column(db.Text, nullable=False, default="")

    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    returned_at = db.Column(db.DateTime(timezone=True), nullable=True)
    return_reason = db.Column(db.Text, nullable=False, default="")

    # Set once the return has been credited back to the source tier
    stock_restored_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product")
    from_account = db.relationship("Account", foreign_keys=[from_account_id])
    to_account = db.relationship("Account", foreign_keys=[to_account_id])

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<Distribution id={self.id} type={self.distribution_type} "
            f"product_id={self.product_id} qty={self.quantity} status={self.status}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "from_account_id": self.from_account_id,
            "to_account_id": self.to_account_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_amount_cents": self.total_amount_cents,
            "distribution_type": self.distribution_type,
            "status": self.status,
            "notes": self.notes,
            "delivered_at": to_utc_z(self.delivered_at) if self.delivered_at else None,
            "returned_at": to_utc_z(self.returned_at) if self.returned_at else None,
            "return_reason": self.return_reason,
            "stock_restored_at": to_utc_z(self.stock_restored_at) if self.stock_restored_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "product": self.product.to_summary() if self.product else None,
            "from_account": self.from_account.to_summary() if self.from_account else None,
            "to_account": self.to_account.to_summary() if self.to_account else None,
        }


class Recovery(db.Model):
    """
    Cash (and optionally goods) collected by a salesman from a shopkeeper.

    DERIVED FIELDS (recomputed on every flush, see recompute_derived):
    - payment_with_items: items_value_cents = sum(item.total_price_cents)
    - net_payment_cents = amount_collected_cents - items_value_cents (may be negative)
    - new_pending_amount_cents = max(0, previous_pending_amount_cents - net_payment_cents)

    Reversal keeps the row: status becomes cancelled and reversed_at is set.
    """
    __tablename__ = "recoveries"
    __table_args__ = (
        db.CheckConstraint("amount_collected_cents >= 0", name="ck_recoveries_amount_non_negative"),
        db.CheckConstraint("items_value_cents >= 0", name="ck_recoveries_items_value_non_negative"),
        db.Index("ix_recoveries_parties_date", "shopkeeper_id", "salesman_id", "recovery_date"),
        db.Index("ix_recoveries_status_date", "status", "recovery_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    recovery_type = db.Column(db.String(32), nullable=False)

    shopkeeper_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    salesman_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    recorded_by_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False)

    amount_collected_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False)

    items_value_cents = db.Column(db.Integer, nullable=False, default=0)
    net_payment_cents = db.Column(db.Integer, nullable=False, default=0)
    previous_pending_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    new_pending_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=RECOVERY_STATUS_COMPLETED)
    notes = db.Column(db.Text, nullable=True)

    recovery_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    recovery_location = db.Column(db.String(255), nullable=True)
    receipt_number = db.Column(db.String(64), nullable=True)
    bank_details = db.Column(db.JSON, nullable=True)

    reversed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reversed_by_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    shopkeeper = db.relationship("Account", foreign_keys=[shopkeeper_id])
    salesman = db.relationship("Account", foreign_keys=[salesman_id])
    recorded_by = db.relationship("Account", foreign_keys=[recorded_by_id])
    items = db.relationship(
        "RecoveryItem",
        backref="recovery",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="RecoveryItem.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def recompute_derived(self) -> None:
        if self.recovery_type == RECOVERY_PAYMENT_WITH_ITEMS:
            self.items_value_cents = sum(item.total_price_cents for item in self.items)
        elif self.items_value_cents is None:
            self.items_value_cents = 0
        self.net_payment_cents = self.amount_collected_cents - self.items_value_cents
        self.new_pending_amount_cents = max(
            0, (self.previous_pending_amount_cents or 0) - self.net_payment_cents
        )

    @property
    def is_reversed(self) -> bool:
        return self.reversed_at is not None

    def __repr__(self) -> str:
        return (
            f"<Recovery id={self.id} type={self.recovery_type} shopkeeper_id={self.shopkeeper_id} "
            f"net={self.net_payment_cents} status={self.status}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "recovery_type": self.recovery_type,
            "shopkeeper_id": self.shopkeeper_id,
            "salesman_id": self.salesman_id,
            "recorded_by_id": self.recorded_by_id,
            "amount_collected_cents": self.amount_collected_cents,
            "payment_method": self.payment_method,
            "items": [item.to_dict() for item in self.items],
            "items_value_cents": self.items_value_cents,
            "net_payment_cents": self.net_payment_cents,
            "previous_pending_amount_cents": self.previous_pending_amount_cents,
            "new_pending_amount_cents": self.new_pending_amount_cents,
            "status": self.status,
            "notes": self.notes,
            "recovery_date": to_utc_z(self.recovery_date),
            "recovery_location": self.recovery_location,
            "receipt_number": self.receipt_number,
            "bank_details": self.bank_details,
            "reversed_at": to_utc_z(self.reversed_at) if self.reversed_at else None,
            "reversed_by_id": self.reversed_by_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "shopkeeper": self.shopkeeper.to_summary() if self.shopkeeper else None,
            "salesman": self.salesman.to_summary() if self.salesman else None,
        }


@event.listens_for(Recovery, "before_insert")
@event.listens_for(Recovery, "before_update")
def _recompute_recovery(mapper, connection, target):
    target.recompute_derived()


class RecoveryItem(db.Model):
    """Goods handed to the shopkeeper as part of a payment_with_items recovery."""
    __tablename__ = "recovery_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_recovery_items_quantity_positive"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_recovery_items_unit_price_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    recovery_id = db.Column(db.Integer, db.ForeignKey("recoveries.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "recovery_id": self.recovery_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
            "product": self.product.to_summary() if self.product else None,
        }


class LedgerEvent(db.Model):
    """
    Append-only audit trail of reconciliation writes.

    Written inside the same DB transaction as the change it records.
    occurred_at is business time; created_at is system time.
    """
    __tablename__ = "ledger_events"
    __table_args__ = (
        db.Index("ix_ledger_events_entity", "entity_type", "entity_id"),
        db.Index("ix_ledger_events_occurred", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    event_type = db.Column(db.String(64), nullable=False, index=True)  # e.g. recovery.recorded
    event_category = db.Column(db.String(32), nullable=False, index=True)  # recoveries, distributions, stock, assignments, sales

    entity_type = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)

    actor_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True, index=True)
    shopkeeper_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True, index=True)
    salesman_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.JSON, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "event_category": self.event_category,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_id": self.actor_id,
            "shopkeeper_id": self.shopkeeper_id,
            "salesman_id": self.salesman_id,
            "product_id": self.product_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "note": self.note,
            "payload": self.payload,
        }
