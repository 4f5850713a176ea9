# Overview: Typed request structs; JSON bodies are validated here before reaching services.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .errors import ValidationError
from .models.ledger import (
    DISTRIBUTION_ADMIN_TO_SALESMAN,
    DISTRIBUTION_SALESMAN_TO_SHOPKEEPER,
    DISTRIBUTION_STATUS_DELIVERED,
    DISTRIBUTION_STATUS_RETURNED,
    DISTRIBUTION_TYPES,
    PAYMENT_METHODS,
    RECOVERY_PAYMENT_ONLY,
    RECOVERY_PAYMENT_WITH_ITEMS,
    RECOVERY_STATUS_COMPLETED,
    RECOVERY_STATUS_PENDING,
    RECOVERY_STATUSES,
    RECOVERY_TYPES,
)
from .models.receipts import RECEIPT_STATUSES
from .models.sales import SALE_PAYMENT_METHODS, SALE_PAYMENT_STATUSES
from .time_utils import parse_iso_datetime


# Maximum amount: 9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999

# Ids, pages and limits must fit a signed 64-bit database integer
MAX_DB_INT = 2**63 - 1

BANK_DETAIL_KEYS = ("bank_name", "account_number", "transaction_id", "cheque_number")


def _require_mapping(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def _check_db_range(name: str, value: int) -> int:
    if not -MAX_DB_INT - 1 <= value <= MAX_DB_INT:
        raise ValidationError(f"{name} is out of range", details={"field": name})
    return value


def _coerce_int(name: str, value: Any) -> int:
    """Strict integer: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return _check_db_range(name, value)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{name} must be an integer", details={"field": name})
        if "e" in stripped.lower():
            raise ValidationError(
                f"{name} must be a plain integer (scientific notation not allowed)", details={"field": name}
            )
        if "." in stripped:
            raise ValidationError(f"{name} must be an integer (no decimals)", details={"field": name})
        try:
            value = int(stripped)
        except ValueError:
            raise ValidationError(f"{name} must be an integer", details={"field": name})
        return _check_db_range(name, value)
    if isinstance(value, float):
        raise ValidationError(f"{name} must be an integer, not a decimal", details={"field": name})
    raise ValidationError(f"{name} must be an integer", details={"field": name})


def _required_int(payload: dict, name: str) -> int:
    if payload.get(name) is None:
        raise ValidationError(f"{name} is required", details={"field": name})
    return _coerce_int(name, payload[name])


def _optional_int(payload: dict, name: str) -> int | None:
    if payload.get(name) is None:
        return None
    return _coerce_int(name, payload[name])


def _positive_int(payload: dict, name: str) -> int:
    value = _required_int(payload, name)
    if value < 1:
        raise ValidationError(f"{name} must be >= 1", details={"field": name})
    return value


def _amount(payload: dict, name: str, *, required: bool = True) -> int | None:
    value = _required_int(payload, name) if required else _optional_int(payload, name)
    if value is None:
        return None
    if value < 0:
        raise ValidationError(f"{name} must be >= 0", details={"field": name})
    if value > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{name} cannot exceed {MAX_AMOUNT_CENTS}", details={"field": name})
    return value


def _optional_str(payload: dict, name: str, max_length: int | None = None) -> str | None:
    value = payload.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string", details={"field": name})
    value = value.strip()
    if max_length and len(value) > max_length:
        raise ValidationError(f"{name} exceeds max length {max_length}", details={"field": name})
    return value


def _choice(payload: dict, name: str, choices, *, default: str | None = None) -> str:
    value = payload.get(name, default)
    if value is None:
        raise ValidationError(f"{name} is required", details={"field": name})
    if value not in choices:
        raise ValidationError(f"{name} must be one of {', '.join(choices)}", details={"field": name})
    return value


def _optional_bool(payload: dict, name: str) -> bool | None:
    value = payload.get(name)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise ValidationError(f"{name} must be a boolean", details={"field": name})
    return value


def _optional_datetime(payload: dict, name: str) -> datetime | None:
    value = payload.get(name)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be an ISO-8601 datetime", details={"field": name})
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime", details={"field": name})


@dataclass(frozen=True)
class RecoveryItemInput:
    product_id: int
    quantity: int
    unit_price_cents: int

    @classmethod
    def from_payload(cls, payload: Any, index: int) -> "RecoveryItemInput":
        if not isinstance(payload, dict):
            raise ValidationError(f"items[{index}] must be an object", details={"field": f"items[{index}]"})
        prefix = f"items[{index}]"
        try:
            return cls(
                product_id=_required_int(payload, "product_id"),
                quantity=_positive_int(payload, "quantity"),
                unit_price_cents=_amount(payload, "unit_price_cents"),
            )
        except ValidationError as exc:
            field_name = exc.details.get("field")
            raise ValidationError(
                f"{prefix}.{exc.message}",
                details={"field": f"{prefix}.{field_name}" if field_name else prefix},
            ) from exc

    @property
    def total_price_cents(self) -> int:
        return self.quantity * self.unit_price_cents


@dataclass(frozen=True)
class RecoveryRequest:
    shopkeeper_id: int
    recovery_type: str
    amount_collected_cents: int
    payment_method: str
    items: tuple[RecoveryItemInput, ...] = ()
    salesman_id: int | None = None
    notes: str | None = None
    recovery_location: str | None = None
    receipt_number: str | None = None
    recovery_date: datetime | None = None
    bank_details: dict | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "RecoveryRequest":
        payload = _require_mapping(payload)
        recovery_type = _choice(payload, "recovery_type", RECOVERY_TYPES, default=RECOVERY_PAYMENT_ONLY)

        raw_items = payload.get("items") or []
        if not isinstance(raw_items, list):
            raise ValidationError("items must be a list", details={"field": "items"})
        items = tuple(RecoveryItemInput.from_payload(item, i) for i, item in enumerate(raw_items))
        if recovery_type == RECOVERY_PAYMENT_WITH_ITEMS and not items:
            raise ValidationError("payment_with_items requires at least one item", details={"field": "items"})
        if recovery_type == RECOVERY_PAYMENT_ONLY and items:
            raise ValidationError("payment_only recoveries cannot carry items", details={"field": "items"})

        bank_details = payload.get("bank_details")
        if bank_details is not None:
            if not isinstance(bank_details, dict):
                raise ValidationError("bank_details must be an object", details={"field": "bank_details"})
            unknown = sorted(set(bank_details) - set(BANK_DETAIL_KEYS))
            if unknown:
                raise ValidationError(
                    f"bank_details has unknown keys: {', '.join(unknown)}",
                    details={"field": "bank_details"},
                )
            bank_details = {k: str(v).strip() for k, v in bank_details.items() if v is not None}

        return cls(
            shopkeeper_id=_required_int(payload, "shopkeeper_id"),
            recovery_type=recovery_type,
            amount_collected_cents=_amount(payload, "amount_collected_cents"),
            payment_method=_choice(payload, "payment_method", PAYMENT_METHODS, default="cash"),
            items=items,
            salesman_id=_optional_int(payload, "salesman_id"),
            notes=_optional_str(payload, "notes"),
            recovery_location=_optional_str(payload, "recovery_location", 255),
            receipt_number=_optional_str(payload, "receipt_number", 64),
            recovery_date=_optional_datetime(payload, "recovery_date"),
            bank_details=bank_details or None,
        )

    @property
    def items_value_cents(self) -> int:
        return sum(item.total_price_cents for item in self.items)

    def quantities_by_product(self) -> dict[int, int]:
        totals: dict[int, int] = {}
        for item in self.items:
            totals[item.product_id] = totals.get(item.product_id, 0) + item.quantity
        return totals


@dataclass(frozen=True)
class RecoveryUpdate:
    status: str | None = None
    notes: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "RecoveryUpdate":
        payload = _require_mapping(payload)
        unknown = sorted(set(payload) - {"status", "notes"})
        if unknown:
            raise ValidationError(f"Field not allowed: {', '.join(unknown)}", details={"fields": unknown})
        status = payload.get("status")
        if status is not None and status not in RECOVERY_STATUSES:
            raise ValidationError(
                f"status must be one of {', '.join(RECOVERY_STATUSES)}", details={"field": "status"}
            )
        if status is not None and status not in (RECOVERY_STATUS_PENDING, RECOVERY_STATUS_COMPLETED):
            raise ValidationError(
                "Recoveries are cancelled by reversal, not by status update", details={"field": "status"}
            )
        update = cls(status=status, notes=_optional_str(payload, "notes"))
        if update.status is None and update.notes is None:
            raise ValidationError("Nothing to update")
        return update


@dataclass(frozen=True)
class DistributionRequest:
    product_id: int
    quantity: int
    unit_price_cents: int
    salesman_id: int | None = None
    shopkeeper_id: int | None = None
    notes: str = ""

    @classmethod
    def from_payload(cls, payload: Any, distribution_type: str) -> "DistributionRequest":
        payload = _require_mapping(payload)
        if distribution_type not in DISTRIBUTION_TYPES:
            raise ValidationError(
                f"distribution_type must be one of {', '.join(DISTRIBUTION_TYPES)}",
                details={"field": "distribution_type"},
            )
        request = cls(
            product_id=_required_int(payload, "product_id"),
            quantity=_positive_int(payload, "quantity"),
            unit_price_cents=_amount(payload, "unit_price_cents"),
            salesman_id=_optional_int(payload, "salesman_id"),
            shopkeeper_id=_optional_int(payload, "shopkeeper_id"),
            notes=_optional_str(payload, "notes") or "",
        )
        if distribution_type == DISTRIBUTION_ADMIN_TO_SALESMAN and request.salesman_id is None:
            raise ValidationError("salesman_id is required", details={"field": "salesman_id"})
        if distribution_type == DISTRIBUTION_SALESMAN_TO_SHOPKEEPER and request.shopkeeper_id is None:
            raise ValidationError("shopkeeper_id is required", details={"field": "shopkeeper_id"})
        return request


@dataclass(frozen=True)
class DistributionStatusUpdate:
    status: str
    notes: str | None = None
    return_reason: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "DistributionStatusUpdate":
        payload = _require_mapping(payload)
        status = _choice(payload, "status", (DISTRIBUTION_STATUS_DELIVERED, DISTRIBUTION_STATUS_RETURNED))
        return cls(
            status=status,
            notes=_optional_str(payload, "notes"),
            return_reason=_optional_str(payload, "return_reason"),
        )


@dataclass(frozen=True)
class AssignmentRequest:
    salesman_id: int
    shopkeeper_id: int
    notes: str = ""

    @classmethod
    def from_payload(cls, payload: Any) -> "AssignmentRequest":
        payload = _require_mapping(payload)
        return cls(
            salesman_id=_required_int(payload, "salesman_id"),
            shopkeeper_id=_required_int(payload, "shopkeeper_id"),
            notes=_optional_str(payload, "notes") or "",
        )


@dataclass(frozen=True)
class AssignmentUpdate:
    notes: str | None = None
    is_active: bool | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "AssignmentUpdate":
        payload = _require_mapping(payload)
        update = cls(notes=_optional_str(payload, "notes"), is_active=_optional_bool(payload, "is_active"))
        if update.notes is None and update.is_active is None:
            raise ValidationError("Nothing to update")
        return update


@dataclass(frozen=True)
class ReceiptRequest:
    recovery_id: int
    receipt_content: str
    notes: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "ReceiptRequest":
        payload = _require_mapping(payload)
        content = _optional_str(payload, "receipt_content")
        if not content:
            raise ValidationError("receipt_content is required", details={"field": "receipt_content"})
        return cls(
            recovery_id=_required_int(payload, "recovery_id"),
            receipt_content=content,
            notes=_optional_str(payload, "notes"),
        )


@dataclass(frozen=True)
class ReceiptStatusUpdate:
    status: str
    notes: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "ReceiptStatusUpdate":
        payload = _require_mapping(payload)
        return cls(
            status=_choice(payload, "status", RECEIPT_STATUSES),
            notes=_optional_str(payload, "notes"),
        )


@dataclass(frozen=True)
class SaleRequest:
    shopkeeper_id: int
    product_id: int
    quantity: int
    unit_price_cents: int
    payment_method: str = "cash"
    salesman_id: int | None = None
    notes: str = ""
    sale_date: datetime | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "SaleRequest":
        payload = _require_mapping(payload)
        return cls(
            shopkeeper_id=_required_int(payload, "shopkeeper_id"),
            product_id=_required_int(payload, "product_id"),
            quantity=_positive_int(payload, "quantity"),
            unit_price_cents=_amount(payload, "unit_price_cents"),
            payment_method=_choice(payload, "payment_method", SALE_PAYMENT_METHODS, default="cash"),
            salesman_id=_optional_int(payload, "salesman_id"),
            notes=_optional_str(payload, "notes") or "",
            sale_date=_optional_datetime(payload, "sale_date"),
        )


@dataclass(frozen=True)
class SalePaymentUpdate:
    payment_status: str
    payment_method: str | None = None
    notes: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "SalePaymentUpdate":
        payload = _require_mapping(payload)
        unknown = sorted(set(payload) - {"payment_status", "payment_method", "notes"})
        if unknown:
            raise ValidationError(f"Field not allowed: {', '.join(unknown)}", details={"fields": unknown})
        method = payload.get("payment_method")
        return cls(
            payment_status=_choice(payload, "payment_status", SALE_PAYMENT_STATUSES),
            payment_method=None if method is None else _choice(payload, "payment_method", SALE_PAYMENT_METHODS),
            notes=_optional_str(payload, "notes"),
        )


@dataclass(frozen=True)
class ListQuery:
    """Query-string filters shared by the list and stats endpoints."""
    page: int = 1
    limit: int = 10
    shopkeeper_id: int | None = None
    salesman_id: int | None = None
    status: str | None = None
    entry_type: str | None = None
    start: datetime | None = None
    end: datetime | None = None

    @classmethod
    def from_args(cls, args, *, default_limit: int = 10, max_limit: int = 100, type_param: str = "type") -> "ListQuery":
        values = {k: v for k, v in args.items() if v not in (None, "")}
        page = _optional_int(values, "page")
        page = 1 if page is None else page
        limit = _optional_int(values, "limit")
        limit = default_limit if limit is None else limit
        if page < 1:
            raise ValidationError("page must be >= 1", details={"field": "page"})
        if limit < 1:
            raise ValidationError("limit must be >= 1", details={"field": "limit"})
        limit = min(limit, max_limit)
        # The row offset handed to the database must fit as well
        if (page - 1) * limit > MAX_DB_INT:
            raise ValidationError("page is out of range", details={"field": "page"})
        start = _optional_datetime(values, "start_date")
        end = _optional_datetime(values, "end_date")
        if start and end and start > end:
            raise ValidationError("start_date must be before end_date", details={"field": "start_date"})
        return cls(
            page=page,
            limit=limit,
            shopkeeper_id=_optional_int(values, "shopkeeper_id"),
            salesman_id=_optional_int(values, "salesman_id"),
            status=values.get("status"),
            entry_type=values.get(type_param),
            start=start,
            end=end,
        )

    def filter_kwargs(self) -> dict:
        return {
            "shopkeeper_id": self.shopkeeper_id,
            "salesman_id": self.salesman_id,
            "status": self.status,
            "entry_type": self.entry_type,
            "start": self.start,
            "end": self.end,
        }


def list_query(args, config, *, type_param: str = "type") -> ListQuery:
    return ListQuery.from_args(
        args,
        default_limit=config.get("DEFAULT_PAGE_SIZE", 10),
        max_limit=config.get("MAX_PAGE_SIZE", 100),
        type_param=type_param,
    )
