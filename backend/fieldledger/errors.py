# Overview: Domain error taxonomy shared by services and the HTTP boundary.

"""
Every reconciliation failure surfaces as a LedgerError subclass.

Each class carries a stable machine-readable `code` and the HTTP status the
boundary maps it to. `details` holds field-level context for the caller;
`public` is False for internal failures whose detail is logged, never returned.
"""
from __future__ import annotations

from typing import Any


class LedgerError(Exception):
    code = "ledger_error"
    http_status = 400
    public = True

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        if not self.public:
            return {"code": self.code, "message": "Internal ledger failure", "details": {}}
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(LedgerError, ValueError):
    """400-level input problem. Never retried."""
    code = "validation_error"
    http_status = 400


class InvalidRoleError(LedgerError):
    """A referenced party exists but does not hold the expected role."""
    code = "invalid_role"
    http_status = 400


class AuthenticationRequired(LedgerError):
    """No usable principal was supplied by the upstream authentication layer."""
    code = "unauthenticated"
    http_status = 401


class PermissionDenied(LedgerError):
    """Caller lacks the role or the active assignment the operation needs."""
    code = "permission_denied"
    http_status = 403


class NotFoundError(LedgerError):
    code = "not_found"
    http_status = 404


class ConflictError(LedgerError):
    """409-level business rule conflict (duplicate assignment, illegal transition)."""
    code = "conflict"
    http_status = 409


class InsufficientStockError(LedgerError):
    code = "insufficient_stock"
    http_status = 409

    def __init__(self, product_id: int, available: int, requested: int, custodian_id: int | None = None):
        super().__init__(
            f"Insufficient stock for product {product_id}. "
            f"Available: {available}, requested: {requested}",
            details={
                "product_id": product_id,
                "custodian_id": custodian_id,
                "available": available,
                "requested": requested,
            },
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class TransientError(LedgerError):
    """Store unavailable or lock contention persisted past the retry budget."""
    code = "transient_error"
    http_status = 503
    public = False

    def to_dict(self) -> dict:
        return {"code": self.code, "message": "Service temporarily unavailable, retry later", "details": {}}


class ConsistencyError(LedgerError):
    """An internal invariant was violated. Fatal for the operation, never auto-corrected."""
    code = "consistency_error"
    http_status = 500
    public = False
