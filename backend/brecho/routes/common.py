# Overview: Query-string parsing and error groups shared by the API routes.

from flask import request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ..time_utils import parse_iso_date
from ..validation import ValidationError


# Lost optimistic-lock races and unique-constraint races; the app answers 409.
CONCURRENT_WRITE_ERRORS = (StaleDataError, IntegrityError)


def page_args(default_limit: int = 100) -> tuple[int, int]:
    """limit clamped to 1..500, offset >= 0."""
    limit = request.args.get("limit", default=default_limit, type=int)
    offset = request.args.get("offset", default=0, type=int)
    return max(1, min(limit, 500)), max(0, offset)


def page_response(items, total: int, limit: int, offset: int) -> dict:
    return {
        "items": [item.to_dict() for item in items],
        "count": total,
        "limit": limit,
        "offset": offset,
    }


def date_arg(name: str, source: dict | None = None):
    """Parse an optional YYYY-MM-DD value from the query string (or a payload)."""
    raw = (source if source is not None else request.args).get(name)
    if raw is None or raw == "":
        return None
    if not isinstance(raw, str):
        raise ValidationError(f"{name} must be a YYYY-MM-DD date")
    try:
        return parse_iso_date(raw)
    except ValueError:
        raise ValidationError(f"{name} must be a YYYY-MM-DD date")


def bool_arg(name: str) -> bool | None:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    value = raw.strip().lower()
    if value in {"1", "true", "yes"}:
        return True
    if value in {"0", "false", "no"}:
        return False
    raise ValidationError(f"{name} must be true or false")


def int_field(payload: dict, name: str, *, required: bool = False):
    value = payload.get(name)
    if value is None:
        if required:
            raise ValidationError(f"{name} is required")
        return None
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer")
    return value
