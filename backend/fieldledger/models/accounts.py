from __future__ import annotations

from ..extensions import db
from fieldledger.time_utils import to_utc_z


ROLE_SUPERADMIN = "superadmin"
ROLE_ADMIN = "admin"
ROLE_SALESMAN = "salesman"
ROLE_SHOPKEEPER = "shopkeeper"

ROLES = (ROLE_SUPERADMIN, ROLE_ADMIN, ROLE_SALESMAN, ROLE_SHOPKEEPER)


class Account(db.Model):
    """
    Single account entity for every party in the distribution chain.

    ROLE: one of superadmin, admin, salesman, shopkeeper. Legacy admin
    identities are migrated into this table once; there is no runtime merge.

    BALANCE: pending_amount_cents is the authoritative outstanding balance of
    a shopkeeper. Only the balance service writes it.

    CONCURRENCY:
    - version_id is an optimistic lock; concurrent writers of the same row
      raise StaleDataError and are retried.
    - stock_revision is bumped whenever stock is reserved at this account's
      tier, so reservations against the same salesman serialize.
    """
    __tablename__ = "accounts"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_accounts_email"),
        db.CheckConstraint("pending_amount_cents >= 0", name="ck_accounts_pending_non_negative"),
        db.CheckConstraint(
            "credit_limit_cents IS NULL OR credit_limit_cents >= 0",
            name="ck_accounts_credit_limit_non_negative",
        ),
        db.CheckConstraint(
            "commission_rate_bps >= 0 AND commission_rate_bps <= 10000",
            name="ck_accounts_commission_rate_range",
        ),
        db.Index("ix_accounts_role_active", "role", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(64), nullable=True)
    address = db.Column(db.Text, nullable=True)

    role = db.Column(db.String(16), nullable=False, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Admin responsible for a salesman (scopes admin visibility and distribution rights)
    managed_by_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True, index=True)

    pending_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    credit_limit_cents = db.Column(db.Integer, nullable=True)

    # Salesman commission on recorded sales, in basis points (250 == 2.50%)
    commission_rate_bps = db.Column(db.Integer, nullable=False, default=0)

    stock_revision = db.Column(db.Integer, nullable=False, default=0)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    managed_by = db.relationship("Account", remote_side=[id], backref=db.backref("managed_accounts", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Account id={self.id} role={self.role} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "role": self.role,
            "is_active": self.is_active,
            "managed_by_id": self.managed_by_id,
            "pending_amount_cents": self.pending_amount_cents,
            "credit_limit_cents": self.credit_limit_cents,
            "commission_rate_bps": self.commission_rate_bps,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "role": self.role,
        }


class ShopSalesmanAssignment(db.Model):
    """
    Links a salesman to a shopkeeper they may serve and collect from.

    Revocation is a soft delete (is_active=False). At most one active row per
    (salesman, shopkeeper) pair: enforced by a partial unique index and
    re-checked in assignment_service before writes.
    """
    __tablename__ = "shop_salesman_assignments"
    __table_args__ = (
        db.Index("ix_assignments_salesman_active", "salesman_id", "is_active"),
        db.Index("ix_assignments_pair", "salesman_id", "shopkeeper_id"),
        db.Index(
            "uq_assignments_active_pair",
            "salesman_id",
            "shopkeeper_id",
            unique=True,
            sqlite_where=db.text("is_active = 1"),
            postgresql_where=db.text("is_active"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    salesman_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    shopkeeper_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    assigned_by_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False)

    assigned_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    notes = db.Column(db.Text, nullable=False, default="")

    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_by_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True)

    salesman = db.relationship("Account", foreign_keys=[salesman_id])
    shopkeeper = db.relationship("Account", foreign_keys=[shopkeeper_id])
    assigned_by = db.relationship("Account", foreign_keys=[assigned_by_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "salesman_id": self.salesman_id,
            "shopkeeper_id": self.shopkeeper_id,
            "assigned_by_id": self.assigned_by_id,
            "assigned_at": to_utc_z(self.assigned_at),
            "is_active": self.is_active,
            "notes": self.notes,
            "revoked_at": to_utc_z(self.revoked_at) if self.revoked_at else None,
            "revoked_by_id": self.revoked_by_id,
            "salesman": self.salesman.to_summary() if self.salesman else None,
            "shopkeeper": self.shopkeeper.to_summary() if self.shopkeeper else None,
        }
