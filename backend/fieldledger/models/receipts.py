from __future__ import annotations

from ..extensions import db
from fieldledger.time_utils import to_utc_z


RECEIPT_TYPE_RECOVERY = "recovery"

RECEIPT_STATUS_PRINTED = "printed"
RECEIPT_STATUS_REPRINTED = "reprinted"
RECEIPT_STATUS_VOID = "void"
RECEIPT_STATUSES = (RECEIPT_STATUS_PRINTED, RECEIPT_STATUS_REPRINTED, RECEIPT_STATUS_VOID)


class Receipt(db.Model):
    """
    Record of a printed receipt handed to a shopkeeper.

    Parties are copied from the source recovery at print time so that the
    receipt stays attributable even if the recovery is later reversed.
    """
    __tablename__ = "receipts"
    __table_args__ = (
        db.Index("ix_receipts_salesman_printed", "salesman_id", "printed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    receipt_type = db.Column(db.String(16), nullable=False, default=RECEIPT_TYPE_RECOVERY)
    recovery_id = db.Column(db.Integer, db.ForeignKey("recoveries.id"), nullable=False, index=True)

    shopkeeper_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    salesman_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    printed_by_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False)

    receipt_content = db.Column(db.Text, nullable=False)
    total_amount_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=RECEIPT_STATUS_PRINTED)
    notes = db.Column(db.Text, nullable=True)

    printed_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    recovery = db.relationship("Recovery")
    shopkeeper = db.relationship("Account", foreign_keys=[shopkeeper_id])
    salesman = db.relationship("Account", foreign_keys=[salesman_id])
    printed_by = db.relationship("Account", foreign_keys=[printed_by_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "receipt_type": self.receipt_type,
            "recovery_id": self.recovery_id,
            "shopkeeper_id": self.shopkeeper_id,
            "salesman_id": self.salesman_id,
            "printed_by_id": self.printed_by_id,
            "receipt_content": self.receipt_content,
            "total_amount_cents": self.total_amount_cents,
            "status": self.status,
            "notes": self.notes,
            "printed_at": to_utc_z(self.printed_at),
            "shopkeeper": self.shopkeeper.to_summary() if self.shopkeeper else None,
            "salesman": self.salesman.to_summary() if self.salesman else None,
        }
