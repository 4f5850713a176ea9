from __future__ import annotations

from ..extensions import db
from fieldledger.time_utils import to_utc_z


SALE_PAYMENT_PENDING = "pending"
SALE_PAYMENT_PAID = "paid"
SALE_PAYMENT_PARTIAL = "partial"
SALE_PAYMENT_STATUSES = (SALE_PAYMENT_PENDING, SALE_PAYMENT_PAID, SALE_PAYMENT_PARTIAL)

SALE_PAYMENT_METHODS = ("cash", "bank_transfer", "cheque", "upi")

# Commission rates are basis points: 250 == 2.50%
BASIS_POINTS = 10_000


class Sale(db.Model):
    """
    A salesman's record of goods sold to a shopkeeper, with the commission
    earned on it.

    AMOUNTS (fixed at creation):
    - total_amount_cents = quantity * unit_price_cents
    - commission_cents = total_amount_cents * commission_rate_bps // 10000,
      using the salesman's rate at the time of the sale
    - profit_cents = total_amount_cents - commission_cents

    A sale is a commercial record only. Stock moves through distributions and
    the shopkeeper's balance through recoveries; neither is touched here.
    Only payment_status, payment_method and notes change afterwards.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_sales_quantity_positive"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_sales_unit_price_non_negative"),
        db.CheckConstraint("commission_cents >= 0", name="ck_sales_commission_non_negative"),
        db.Index("ix_sales_salesman_date", "salesman_id", "sale_date"),
        db.Index("ix_sales_shopkeeper_date", "shopkeeper_id", "sale_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    salesman_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    shopkeeper_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    recorded_by_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_amount_cents = db.Column(db.Integer, nullable=False)
    commission_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    commission_cents = db.Column(db.Integer, nullable=False, default=0)
    profit_cents = db.Column(db.Integer, nullable=False)

    payment_status = db.Column(db.String(16), nullable=False, default=SALE_PAYMENT_PENDING, index=True)
    payment_method = db.Column(db.String(32), nullable=False, default="cash")
    notes = db.Column(db.Text, nullable=False, default="")

    sale_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product")
    salesman = db.relationship("Account", foreign_keys=[salesman_id])
    shopkeeper = db.relationship("Account", foreign_keys=[shopkeeper_id])
    recorded_by = db.relationship("Account", foreign_keys=[recorded_by_id])

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<Sale id={self.id} salesman_id={self.salesman_id} shopkeeper_id={self.shopkeeper_id} "
            f"total={self.total_amount_cents} payment={self.payment_status}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "salesman_id": self.salesman_id,
            "shopkeeper_id": self.shopkeeper_id,
            "product_id": self.product_id,
            "recorded_by_id": self.recorded_by_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_amount_cents": self.total_amount_cents,
            "commission_rate_bps": self.commission_rate_bps,
            "commission_cents": self.commission_cents,
            "profit_cents": self.profit_cents,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "notes": self.notes,
            "sale_date": to_utc_z(self.sale_date),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "product": self.product.to_summary() if self.product else None,
            "salesman": self.salesman.to_summary() if self.salesman else None,
            "shopkeeper": self.shopkeeper.to_summary() if self.shopkeeper else None,
        }
