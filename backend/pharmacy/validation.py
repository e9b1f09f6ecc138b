from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from typing import Any

from sqlalchemy import Boolean, Date, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .models import CATEGORIES, PAYMENT_METHODS
from pharmacy.time_utils import parse_iso_date


# Maximum price: 9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999

PHONE_RE = re.compile(r"^(\+233|0)[0-9]{9}$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


INVENTORY_ITEM_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "generic_name", "brand_name", "category", "strength", "dosage_form",
        "batch_number", "barcode", "quantity", "unit_cost_cents", "selling_price_cents",
        "reorder_level", "expiry_date", "is_prescription_required",
    },
    required_on_create={"name", "brand_name", "selling_price_cents"},
)

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"first_name", "last_name", "email", "phone"},
    required_on_create={"first_name", "last_name", "phone"},
)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            if "e" in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            if "." in stripped:
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
        raise ValidationError(f"{col.key} must be true or false")

    # Dates (YYYY-MM-DD)
    if isinstance(coltype, Date):
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            try:
                parsed = parse_iso_date(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 date")
            if parsed is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 date")
            return parsed
        raise ValidationError(f"{col.key} must be a date")

    if isinstance(coltype, (String, Text)):
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

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_inventory_item(patch: dict) -> None:
    """Business rules that are not captured by column metadata alone."""
    for key in ("selling_price_cents", "unit_cost_cents"):
        if patch.get(key) is not None:
            if patch[key] < 0:
                raise ValidationError(f"{key} must be >= 0")
            if patch[key] > MAX_PRICE_CENTS:
                raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS}")

    for key in ("quantity", "reorder_level"):
        if patch.get(key) is not None and patch[key] < 0:
            raise ValidationError(f"{key} must be >= 0")

    if patch.get("category") is not None and patch["category"] not in CATEGORIES:
        raise ValidationError(f"category must be one of {', '.join(CATEGORIES)}")


def enforce_rules_customer(patch: dict) -> None:
    if patch.get("phone") and not PHONE_RE.match(patch["phone"]):
        raise ValidationError("Please provide a valid phone number")
    if patch.get("email") and not EMAIL_RE.match(patch["email"]):
        raise ValidationError("Please provide a valid email")


# ---------------------------------------------------------------------------
# Sale carts
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CartLine:
    item_id: int
    quantity: int
    prescription_number: str | None = None


@dataclass(frozen=True)
class Cart:
    """A validated sale request. Nothing here has touched the database."""
    customer_name: str
    payment_method: str
    lines: tuple[CartLine, ...]
    customer_phone: str | None = None
    customer_email: str | None = None
    customer_id: int | None = None
    discount_cents: int = 0
    prescription_number: str | None = None
    notes: str | None = None


CART_FIELDS = {
    "customer_name", "customer_phone", "customer_email", "customer_id", "items",
    "payment_method", "discount_cents", "prescription_number", "notes",
}
CART_LINE_FIELDS = {"item_id", "quantity", "prescription_number"}


def _strict_int(value, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer")
    return value


def _optional_text(payload: dict, key: str, max_len: int) -> str | None:
    raw = payload.get(key)
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise ValidationError(f"{key} must be a string")
    value = raw.strip()
    if not value:
        return None
    if len(value) > max_len:
        raise ValidationError(f"{key} exceeds max length {max_len}")
    return value


def _parse_line(index: int, raw) -> CartLine:
    if not isinstance(raw, dict):
        raise ValidationError(f"items[{index}] must be an object", details={"line": index})

    unknown = sorted(set(raw) - CART_LINE_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: items[{index}].{unknown[0]}", details={"line": index})

    if "item_id" not in raw:
        raise ValidationError(f"items[{index}].item_id is required", details={"line": index})
    if "quantity" not in raw:
        raise ValidationError(f"items[{index}].quantity is required", details={"line": index})

    try:
        item_id = _strict_int(raw["item_id"], f"items[{index}].item_id")
        quantity = _strict_int(raw["quantity"], f"items[{index}].quantity")
    except ValidationError as exc:
        exc.details["line"] = index
        raise
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1", details={"line": index, "item_id": item_id})

    rx = _optional_text(raw, "prescription_number", 50)
    return CartLine(item_id=item_id, quantity=quantity, prescription_number=rx)


def parse_cart(payload) -> Cart:
    """
    Shape-check a sale request.

    Stock, status and prescription checks are not done here; they belong
    to the stock ledger and run inside the commit.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    unknown = sorted(set(payload) - CART_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {unknown[0]}")

    name = payload.get("customer_name")
    if not isinstance(name, str) or not (2 <= len(name.strip()) <= 100):
        raise ValidationError("Customer name must be between 2 and 100 characters")
    name = name.strip()

    phone = _optional_text(payload, "customer_phone", 16)
    if phone is not None and not PHONE_RE.match(phone):
        raise ValidationError("Please provide a valid phone number")

    email = _optional_text(payload, "customer_email", 255)
    if email is not None and not EMAIL_RE.match(email):
        raise ValidationError("Please provide a valid email")

    customer_id = payload.get("customer_id")
    if customer_id is not None:
        customer_id = _strict_int(customer_id, "customer_id")

    items = payload.get("items")
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one item is required")
    lines = tuple(_parse_line(i, raw) for i, raw in enumerate(items))

    payment_method = payload.get("payment_method")
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of {', '.join(PAYMENT_METHODS)}")

    discount = payload.get("discount_cents", 0)
    if discount is None:
        discount = 0
    discount = _strict_int(discount, "discount_cents")
    if discount < 0:
        raise ValidationError("Discount cannot be negative")

    return Cart(
        customer_name=name,
        customer_phone=phone,
        customer_email=email,
        customer_id=customer_id,
        lines=lines,
        payment_method=payment_method,
        discount_cents=discount,
        prescription_number=_optional_text(payload, "prescription_number", 50),
        notes=_optional_text(payload, "notes", 500),
    )


def check_void_reason(reason) -> str:
    if not isinstance(reason, str) or not (5 <= len(reason.strip()) <= 200):
        raise ValidationError("Void reason must be between 5 and 200 characters")
    return reason.strip()


def parse_void_reason(payload) -> str:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return check_void_reason(payload.get("reason"))
