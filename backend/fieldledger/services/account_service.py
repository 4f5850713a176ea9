# Overview: Account directory: role-checked lookups, provisioning, caller scoping.

"""
Account directory used by every reconciliation operation.

Lookups come in two flavours:
- get_account: the caller asked for this id directly (missing -> NotFoundError)
- require_role: the id is a reference inside a ledger entry (missing ->
  ValidationError, wrong role -> InvalidRoleError)
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from ..errors import InvalidRoleError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Account
from ..models.accounts import (
    ROLES,
    ROLE_ADMIN,
    ROLE_SALESMAN,
    ROLE_SHOPKEEPER,
    ROLE_SUPERADMIN,
)
from ..schemas import MAX_DB_INT
from .concurrency import lock_for_update


EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass(frozen=True)
class Principal:
    """Authenticated caller as resolved by the upstream authentication layer."""
    id: int
    role: str

    @property
    def is_salesman(self) -> bool:
        return self.role == ROLE_SALESMAN

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_superadmin(self) -> bool:
        return self.role == ROLE_SUPERADMIN


@dataclass(frozen=True)
class VisibilityScope:
    """
    Caller-side read filter.

    salesman_ids=None means unrestricted (superadmin). Otherwise only entries
    whose salesman is in salesman_ids are visible; account_id is the caller,
    used for entries the caller is a direct party to.
    """
    account_id: int
    role: str
    salesman_ids: frozenset[int] | None


def resolve_principal(raw_id) -> Principal | None:
    """Map an upstream-supplied account id to a Principal, or None if unusable."""
    try:
        account_id = int(str(raw_id).strip())
    except (TypeError, ValueError):
        return None
    if not 0 < account_id <= MAX_DB_INT:
        return None
    account = db.session.get(Account, account_id)
    if account is None or not account.is_active:
        return None
    return Principal(id=account.id, role=account.role)


def get_account(account_id: int, *, lock: bool = False) -> Account:
    query = db.session.query(Account).filter_by(id=account_id)
    if lock:
        query = lock_for_update(query)
    account = query.first()
    if account is None:
        raise NotFoundError(f"Account {account_id} not found", details={"account_id": account_id})
    return account


def require_role(account_id: int | None, role: str, *, lock: bool = False, field: str | None = None) -> Account:
    """
    Load a referenced party and check it holds `role` and is active.

    Raises:
        ValidationError: id missing or account does not exist / inactive
        InvalidRoleError: account exists with a different role
    """
    field = field or f"{role}_id"
    if account_id is None:
        raise ValidationError(f"{field} is required", details={"field": field})
    query = db.session.query(Account).filter_by(id=account_id)
    if lock:
        query = lock_for_update(query)
    account = query.first()
    if account is None:
        raise ValidationError(f"{field} {account_id} does not exist", details={"field": field})
    if account.role != role:
        raise InvalidRoleError(
            f"Account {account_id} is not a {role}",
            details={"field": field, "expected_role": role, "actual_role": account.role},
        )
    if not account.is_active:
        raise ValidationError(f"{field} {account_id} is inactive", details={"field": field})
    return account


def create_account(
    *,
    name: str,
    email: str,
    role: str,
    phone: str | None = None,
    address: str | None = None,
    managed_by_id: int | None = None,
    pending_amount_cents: int = 0,
    credit_limit_cents: int | None = None,
    commission_rate_bps: int = 0,
) -> Account:
    """
    Provision an account. Opening pending_amount_cents is only accepted for
    shopkeepers; afterwards the balance service owns that field.

    Caller commits.
    """
    name = (name or "").strip()
    email = (email or "").strip().lower()
    if not name:
        raise ValidationError("name is required", details={"field": "name"})
    if not EMAIL_RE.match(email):
        raise ValidationError("email is invalid", details={"field": "email"})
    if role not in ROLES:
        raise ValidationError(f"role must be one of {', '.join(ROLES)}", details={"field": "role"})
    if pending_amount_cents < 0:
        raise ValidationError("pending_amount_cents must be >= 0", details={"field": "pending_amount_cents"})
    if pending_amount_cents and role != ROLE_SHOPKEEPER:
        raise ValidationError("only shopkeepers carry a pending amount", details={"field": "pending_amount_cents"})
    if credit_limit_cents is not None and credit_limit_cents < 0:
        raise ValidationError("credit_limit_cents must be >= 0", details={"field": "credit_limit_cents"})
    if not 0 <= commission_rate_bps <= 10_000:
        raise ValidationError("commission_rate_bps must be between 0 and 10000", details={"field": "commission_rate_bps"})
    if commission_rate_bps and role != ROLE_SALESMAN:
        raise ValidationError("only salesmen earn commission", details={"field": "commission_rate_bps"})

    if managed_by_id is not None:
        if role != ROLE_SALESMAN:
            raise ValidationError("only salesmen are managed by an admin", details={"field": "managed_by_id"})
        require_role(managed_by_id, ROLE_ADMIN, field="managed_by_id")

    if db.session.query(Account.id).filter_by(email=email).first():
        raise ValidationError(f"email {email} already registered", details={"field": "email"})

    account = Account(
        name=name,
        email=email,
        role=role,
        phone=phone,
        address=address,
        managed_by_id=managed_by_id,
        pending_amount_cents=pending_amount_cents,
        credit_limit_cents=credit_limit_cents,
        commission_rate_bps=commission_rate_bps,
        is_active=True,
    )
    db.session.add(account)
    db.session.flush()
    return account


def list_accounts(role: str | None = None, *, active_only: bool = True) -> list[Account]:
    query = db.session.query(Account)
    if role:
        query = query.filter_by(role=role)
    if active_only:
        query = query.filter_by(is_active=True)
    return query.order_by(Account.name.asc()).all()


def managed_salesman_ids(admin_id: int) -> list[int]:
    rows = (
        db.session.query(Account.id)
        .filter_by(managed_by_id=admin_id, role=ROLE_SALESMAN)
        .all()
    )
    return [row.id for row in rows]


def visibility_scope(principal: Principal) -> VisibilityScope:
    if principal.is_superadmin:
        salesman_ids = None
    elif principal.is_admin:
        salesman_ids = frozenset(managed_salesman_ids(principal.id))
    elif principal.is_salesman:
        salesman_ids = frozenset({principal.id})
    else:
        salesman_ids = frozenset()
    return VisibilityScope(account_id=principal.id, role=principal.role, salesman_ids=salesman_ids)
