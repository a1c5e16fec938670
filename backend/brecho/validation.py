from __future__ import annotations
from datetime import date, datetime
from brecho.time_utils import parse_iso_date, parse_iso_datetime

import re
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Date, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .models.catalog import CATEGORY_KINDS, PRODUCT_STATUSES
from .models.commissions import CALCULATION_TYPES
from .models.finance import EXPENSE_TYPES, FREQUENCIES, REVENUE_TYPES
from .models.goals import GOAL_PERIODS, GOAL_TYPES
from .models.sellers import SELLER_STATUSES


# Maximum money value: R$ 9.999.999,99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical amounts
MAX_AMOUNT_CENTS = 999_999_999

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE_RE = re.compile(r"^\(?\d{2}\)?\s?\d{4,5}-?\d{4}$")
POSTAL_CODE_RE = re.compile(r"^\d{5}-?\d{3}$")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""


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
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            if '.' in stripped or ',' in stripped:
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
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in {"true", "1", "yes"}:
                return True
            if lowered in {"false", "0", "no"}:
                return False
            raise ValidationError(f"{col.key} must be a boolean")
        return bool(value)

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

    # Calendar dates ("YYYY-MM-DD")
    if isinstance(coltype, Date):
        if isinstance(value, date) and not isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                d = parse_iso_date(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be a date (YYYY-MM-DD)")
            if d is None:
                raise ValidationError(f"{col.key} must be a date (YYYY-MM-DD)")
            return d
        raise ValidationError(f"{col.key} must be a date (YYYY-MM-DD)")

    # Strings / Text
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

        # Blank optional strings are stored as NULL
        if isinstance(col.type, (String, Text)) and isinstance(val, str) and val == "":
            if not col.nullable:
                raise ValidationError(f"{k} cannot be blank")
            val = None

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


# -- Shared field rules --

def check_length(patch: dict, field: str, *, min_len: int = 0, max_len: int | None = None) -> None:
    value = patch.get(field)
    if value is None:
        return
    if len(value) < min_len:
        raise ValidationError(f"{field} must have at least {min_len} characters")
    if max_len is not None and len(value) > max_len:
        raise ValidationError(f"{field} must have at most {max_len} characters")


def check_amount(patch: dict, field: str, *, allow_zero: bool = False) -> None:
    value = patch.get(field)
    if value is None:
        return
    if allow_zero and value < 0:
        raise ValidationError(f"{field} must be >= 0")
    if not allow_zero and value <= 0:
        raise ValidationError(f"{field} must be > 0")
    if value > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT_CENTS}")


def check_choice(patch: dict, field: str, choices) -> None:
    value = patch.get(field)
    if value is None:
        return
    if value not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(sorted(choices))}")


def check_date_order(start: date | None, end: date | None, *, start_name: str, end_name: str) -> None:
    if start is not None and end is not None and end < start:
        raise ValidationError(f"{end_name} must be on or after {start_name}")


def check_email(patch: dict, field: str = "email") -> None:
    value = patch.get(field)
    if value is None:
        return
    if not is_valid_email(value):
        raise ValidationError(f"{field} is not a valid email address")


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_RE.match(value or ""))


# -- Brazilian documents --

def only_digits(value: str | None) -> str:
    return re.sub(r"\D", "", value or "")


def _check_digit(digits: list[int], weights: list[int]) -> int:
    total = sum(d * w for d, w in zip(digits, weights))
    remainder = total % 11
    return 0 if remainder < 2 else 11 - remainder


def is_valid_cpf(value: str | None) -> bool:
    digits = only_digits(value)
    if len(digits) != 11 or digits == digits[0] * 11:
        return False
    nums = [int(c) for c in digits]
    first = _check_digit(nums[:9], list(range(10, 1, -1)))
    second = _check_digit(nums[:10], list(range(11, 1, -1)))
    return nums[9] == first and nums[10] == second


def is_valid_cnpj(value: str | None) -> bool:
    digits = only_digits(value)
    if len(digits) != 14 or digits == digits[0] * 14:
        return False
    nums = [int(c) for c in digits]
    first = _check_digit(nums[:12], [5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2])
    second = _check_digit(nums[:13], [6, 5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2])
    return nums[12] == first and nums[13] == second


def normalize_document(value: str | None) -> str | None:
    """
    Validate a CPF (11 digits) or CNPJ (14 digits) and return digits only.

    Raises ValidationError for anything else.
    """
    if value is None:
        return None
    digits = only_digits(value)
    if len(digits) == 11 and is_valid_cpf(digits):
        return digits
    if len(digits) == 14 and is_valid_cnpj(digits):
        return digits
    raise ValidationError("document must be a valid CPF or CNPJ")


# -- Per-entity rules (not captured by column metadata) --
#
# Each takes the cleaned patch from validate_payload and raises
# ValidationError. Cross-field checks that need the stored row (date order on
# partial updates, "at least one target") live in the services.

def enforce_rules_category(patch: dict) -> None:
    check_length(patch, "name", min_len=3, max_len=100)
    if "kind" in patch and patch["kind"] is not None:
        patch["kind"] = patch["kind"].upper()
    check_choice(patch, "kind", CATEGORY_KINDS)


def enforce_rules_payment_method(patch: dict) -> None:
    check_length(patch, "name", min_len=2, max_len=50)


def enforce_rules_product(patch: dict) -> None:
    check_length(patch, "name", min_len=3)
    check_amount(patch, "cost_price_cents", allow_zero=True)
    check_amount(patch, "sale_price_cents", allow_zero=True)
    for field in ("quantity", "reserved_quantity"):
        if patch.get(field) is not None and patch[field] < 0:
            raise ValidationError(f"{field} must be >= 0")
    check_choice(patch, "status", PRODUCT_STATUSES)


def enforce_rules_customer(patch: dict) -> None:
    check_length(patch, "name", min_len=3)
    if patch.get("email"):
        patch["email"] = patch["email"].lower()
    check_email(patch)
    check_amount(patch, "credit_limit_cents", allow_zero=True)


def enforce_rules_supplier(patch: dict) -> None:
    check_length(patch, "legal_name", min_len=3)
    if patch.get("document") is not None:
        patch["document"] = normalize_document(patch["document"])
    if patch.get("phone") is not None and not PHONE_RE.match(patch["phone"]):
        raise ValidationError("phone must look like (11) 91234-5678")
    check_email(patch)
    if patch.get("state") is not None:
        state = patch["state"].upper()
        if not re.fullmatch(r"[A-Z]{2}", state):
            raise ValidationError("state must be a two-letter UF")
        patch["state"] = state
    if patch.get("postal_code") is not None and not POSTAL_CODE_RE.match(patch["postal_code"]):
        raise ValidationError("postal_code must look like 01234-567")


def enforce_rules_seller(patch: dict) -> None:
    check_length(patch, "name", min_len=3, max_len=100)
    check_email(patch)
    if patch.get("phone") is not None and not PHONE_RE.match(patch["phone"]):
        raise ValidationError("phone must look like (11) 91234-5678")
    check_choice(patch, "status", SELLER_STATUSES)


def enforce_rules_sales_goal(patch: dict) -> None:
    for field in ("target_amount_cents", "target_quantity"):
        if patch.get(field) is not None and patch[field] <= 0:
            raise ValidationError(f"{field} must be > 0")
    check_amount(patch, "target_amount_cents")
    check_date_order(
        patch.get("period_start"), patch.get("period_end"),
        start_name="period_start", end_name="period_end",
    )


def _enforce_recurrence(patch: dict) -> None:
    if patch.get("frequency") is not None:
        patch["frequency"] = patch["frequency"].upper()
    check_choice(patch, "frequency", FREQUENCIES)


def enforce_rules_expense(patch: dict) -> None:
    check_length(patch, "description", min_len=3, max_len=100)
    check_amount(patch, "amount_cents")
    if patch.get("expense_type") is not None:
        patch["expense_type"] = patch["expense_type"].upper()
    check_choice(patch, "expense_type", EXPENSE_TYPES)
    _enforce_recurrence(patch)


def enforce_rules_revenue(patch: dict) -> None:
    check_length(patch, "description", min_len=3, max_len=100)
    check_amount(patch, "amount_cents")
    if patch.get("revenue_type") is not None:
        patch["revenue_type"] = patch["revenue_type"].upper()
    check_choice(patch, "revenue_type", REVENUE_TYPES)
    _enforce_recurrence(patch)


def enforce_rules_goal(patch: dict) -> None:
    check_length(patch, "name", min_len=3, max_len=100)
    check_choice(patch, "goal_type", GOAL_TYPES)
    check_choice(patch, "period", GOAL_PERIODS)
    check_amount(patch, "target_cents")
    check_amount(patch, "current_cents", allow_zero=True)
    check_date_order(
        patch.get("start_date"), patch.get("end_date"),
        start_name="start_date", end_name="end_date",
    )


def enforce_rules_commission_rule(patch: dict) -> None:
    check_length(patch, "name", min_len=3, max_len=100)
    check_choice(patch, "calculation_type", CALCULATION_TYPES)
    bps = patch.get("percentage_bps")
    if bps is not None and not 0 < bps <= 10_000:
        raise ValidationError("percentage_bps must be between 1 and 10000")
    check_amount(patch, "amount_cents")
    check_date_order(
        patch.get("valid_from"), patch.get("valid_until"),
        start_name="valid_from", end_name="valid_until",
    )
