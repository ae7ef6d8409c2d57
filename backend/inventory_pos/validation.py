from __future__ import annotations
from datetime import datetime
from inventory_pos.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .models import Receipt, Sale
from .models.sales import VALID_PAYMENT_METHODS, PAYMENT_CASH, PAYMENT_MPESA, PAYMENT_MIXED
from .models.stock import VALID_ADJUSTMENT_TYPES


# Largest basket line or adjustment we accept; keeps values inside integer columns
MAX_LINE_QUANTITY = 1_000_000


class ValidationError(ValueError):
    """400-level input problem."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class PaymentError(ValidationError):
    """Payment details missing, inconsistent, or not covering the total."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        raise ValidationError(f"{col.key} must be an integer")

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        if isinstance(value, (dict, list)):
            raise ValidationError(f"{col.key} must be a string")
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


# ---------------------------------------------------------------------------
# Batch sale payloads
# ---------------------------------------------------------------------------

RECEIPT_PAYMENT_POLICY = ModelValidationPolicy(
    writable_fields={"payment_method", "cash_amount_cents", "mpesa_amount_cents", "mpesa_transaction_id"},
    required_on_create={"payment_method"},
)

SALE_ITEM_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "quantity"},
    required_on_create={"product_id", "quantity"},
)


def enforce_rules_sale_item(patch: dict) -> None:
    if patch["product_id"] <= 0:
        raise ValidationError("product_id must be a positive integer")
    quantity = patch["quantity"]
    if quantity <= 0:
        raise ValidationError("quantity must be > 0")
    if quantity > MAX_LINE_QUANTITY:
        raise ValidationError(f"quantity cannot exceed {MAX_LINE_QUANTITY}")


def enforce_rules_payment(patch: dict) -> None:
    """
    Shape rules for payment details (amount coverage needs the basket total
    and is checked by enforce_payment_covers_total).

    - CASH: no M-Pesa amount
    - MPESA: no cash amount, transaction id required
    - MIXED: transaction id required whenever an M-Pesa amount is present
    """
    method = (patch.get("payment_method") or "").upper()
    patch["payment_method"] = method
    if method not in VALID_PAYMENT_METHODS:
        raise PaymentError(f"payment_method must be one of: {', '.join(VALID_PAYMENT_METHODS)}")

    cash = patch.get("cash_amount_cents") or 0
    mpesa = patch.get("mpesa_amount_cents") or 0
    if cash < 0:
        raise PaymentError("cash_amount_cents must be >= 0")
    if mpesa < 0:
        raise PaymentError("mpesa_amount_cents must be >= 0")

    txn_id = patch.get("mpesa_transaction_id") or None

    if method == PAYMENT_CASH:
        if mpesa:
            raise PaymentError("mpesa_amount_cents must be omitted for CASH payments")
    elif method == PAYMENT_MPESA:
        if cash:
            raise PaymentError("cash_amount_cents must be omitted for MPESA payments")
        if not txn_id:
            raise PaymentError("mpesa_transaction_id is required for MPESA payments")
    elif method == PAYMENT_MIXED:
        if mpesa and not txn_id:
            raise PaymentError("mpesa_transaction_id is required when an M-Pesa amount is paid")

    patch["cash_amount_cents"] = cash
    patch["mpesa_amount_cents"] = mpesa
    patch["mpesa_transaction_id"] = txn_id


def enforce_payment_covers_total(
    *,
    payment_method: str,
    cash_amount_cents: int,
    mpesa_amount_cents: int,
    total_cents: int,
) -> int:
    """Return change due, or raise PaymentError when the tender is short."""
    if payment_method == PAYMENT_CASH:
        tendered = cash_amount_cents
        label = "Cash amount"
    elif payment_method == PAYMENT_MPESA:
        tendered = mpesa_amount_cents
        label = "M-Pesa amount"
    else:
        tendered = cash_amount_cents + mpesa_amount_cents
        label = "Total combined amount (Cash + M-Pesa)"

    if tendered < total_cents:
        raise PaymentError(
            f"{label} is less than total payable",
            details={"tendered_cents": tendered, "total_amount_cents": total_cents},
        )
    return tendered - total_cents


def validate_batch_sale_payload(payload) -> tuple[dict, list[dict]]:
    """
    Validate a batch sale request body.

    Returns (payment_patch, items) where items is a list of
    {"product_id": int, "quantity": int} in request order.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    body = dict(payload)
    raw_items = body.pop("sale_items", None)
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("sale_items must be a non-empty list")

    payment = validate_payload(
        model=Receipt,
        payload=body,
        policy=RECEIPT_PAYMENT_POLICY,
        partial=False,
    )
    enforce_rules_payment(payment)

    items = []
    for index, raw in enumerate(raw_items):
        try:
            item = validate_payload(
                model=Sale,
                payload=raw,
                policy=SALE_ITEM_POLICY,
                partial=False,
            )
            enforce_rules_sale_item(item)
        except ValidationError as e:
            raise ValidationError(f"sale_items[{index}]: {e}", details={"index": index})
        items.append(item)

    return payment, items


# ---------------------------------------------------------------------------
# Stock adjustment payloads
# ---------------------------------------------------------------------------

STOCK_ADJUSTMENT_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "quantity_change", "reason", "adjustment_type"},
    required_on_create={"product_id", "quantity_change", "reason", "adjustment_type"},
)


def enforce_rules_stock_adjustment(patch: dict) -> None:
    """
    Type-independent adjustment rules. Sign rules per adjustment type live in
    stock_adjustment_service because they depend on the current quantity.
    """
    reason = patch.get("reason")
    if reason is None or str(reason).strip() == "":
        raise ValidationError("Reason for stock adjustment cannot be empty.")

    quantity_change = patch.get("quantity_change")
    if not isinstance(quantity_change, int) or isinstance(quantity_change, bool):
        raise ValidationError("quantity_change must be an integer")
    if quantity_change == 0:
        raise ValidationError("Quantity change cannot be zero.")
    if abs(quantity_change) > MAX_LINE_QUANTITY:
        raise ValidationError(f"quantity_change cannot exceed {MAX_LINE_QUANTITY} in either direction")

    adjustment_type = patch.get("adjustment_type")
    if adjustment_type not in VALID_ADJUSTMENT_TYPES:
        raise ValidationError(
            f"adjustment_type must be one of: {', '.join(VALID_ADJUSTMENT_TYPES)}"
        )


# ---------------------------------------------------------------------------
# Query string filters
# ---------------------------------------------------------------------------

def _parse_positive_int(name: str, raw: str | None) -> int | None:
    if raw is None or str(raw).strip() == "":
        return None
    stripped = str(raw).strip()
    if not stripped.isdigit() or int(stripped) <= 0:
        raise ValidationError(f"{name} must be a positive integer")
    return int(stripped)


def parse_receipt_filters(args) -> dict:
    """Turn receipt list query parameters into list_receipts keyword args."""
    filters: dict = {}
    for name in ("start_date", "end_date"):
        try:
            filters[name] = parse_iso_datetime(args.get(name))
        except ValueError:
            raise ValidationError(f"{name} must be an ISO-8601 datetime")

    if filters["start_date"] and filters["end_date"] and filters["start_date"] > filters["end_date"]:
        raise ValidationError("start_date must not be after end_date")

    filters["cashier_id"] = _parse_positive_int("cashier_id", args.get("cashier_id"))

    payment_method = (args.get("payment_method") or "").strip().upper() or None
    if payment_method is not None and payment_method not in VALID_PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(VALID_PAYMENT_METHODS)}")
    filters["payment_method"] = payment_method

    filters["product_name"] = (args.get("product_name") or "").strip() or None
    return filters


def parse_history_filters(args) -> dict:
    return {
        "product_id": _parse_positive_int("product_id", args.get("product_id")),
        "limit": _parse_positive_int("limit", args.get("limit")),
    }
