"""
Utility functions shared across the services and blueprints. This includes:
- Input parsing (money, ints, dates) with server-side validation.
- coerce_fields: turn a client patch into typed column values for a known field schema.
- JSON helpers: camelCase <-> snake_case keys, Decimal/date rendering for responses.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Mapping

from .errors import ValidationFailure


# ---------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------
def parse_decimal(value: Any, field: str = "value") -> Decimal | None:
    """Parse decimal from user input (accepts comma or dot). Empty -> None."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationFailure(f"{field} must be a number")
    if isinstance(value, Decimal):
        return value
    raw = str(value).strip().replace(",", ".")
    if raw == "":
        return None
    try:
        parsed = Decimal(raw)
    except (InvalidOperation, ValueError):
        raise ValidationFailure(f"{field} must be a number") from None
    if not parsed.is_finite():
        raise ValidationFailure(f"{field} must be a number")
    return parsed


# 13 integer digits + 2 decimals: exact on every backend, including SQLite's float storage
MONEY_LIMIT = Decimal("10000000000000")
_CENTS = Decimal("0.01")


def parse_money(value: Any, field: str = "value") -> Decimal | None:
    """parse_decimal, rounded half-up to cents and bounded to |x| < MONEY_LIMIT."""
    parsed = parse_decimal(value, field)
    if parsed is None:
        return None
    if abs(parsed) >= MONEY_LIMIT:
        raise ValidationFailure(f"{field} is out of range (must be below {MONEY_LIMIT:,})")
    parsed = parsed.quantize(_CENTS, rounding=ROUND_HALF_UP)
    if abs(parsed) >= MONEY_LIMIT:
        raise ValidationFailure(f"{field} is out of range (must be below {MONEY_LIMIT:,})")
    return parsed


def parse_optional_int(value: Any, field: str = "value") -> int | None:
    """Parse optional int from JSON/form input."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationFailure(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    raw = str(value).strip()
    if raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationFailure(f"{field} must be an integer") from None


def parse_date(value: Any, field: str = "value") -> date | None:
    """ISO date (YYYY-MM-DD); a full ISO timestamp is truncated to its date."""
    if value is None or isinstance(value, date) and not isinstance(value, datetime):
        return value
    if isinstance(value, datetime):
        return value.date()
    raw = str(value).strip()
    if raw == "":
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).date()
    except ValueError:
        raise ValidationFailure(f"{field} must be an ISO date") from None


def parse_datetime(value: Any, field: str = "value") -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    raw = str(value).strip()
    if raw == "":
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationFailure(f"{field} must be an ISO timestamp") from None


def parse_text(value: Any, field: str = "value") -> str | None:
    """Trimmed string; empty -> None."""
    if value is None:
        return None
    return str(value).strip() or None


def parse_bool(value: Any, field: str = "value") -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


_PARSERS = {
    "money": parse_money,
    "decimal": parse_decimal,
    "int": parse_optional_int,
    "date": parse_date,
    "datetime": parse_datetime,
    "str": parse_text,
    "bool": parse_bool,
}


def coerce_fields(data: Mapping[str, Any], schema: Mapping[str, str]) -> Dict[str, Any]:
    """
    Keep only keys present in `schema` and parse each with its declared kind.

    Keys absent from `data` stay absent (patch semantics); an explicit null is kept as None.
    """
    values: Dict[str, Any] = {}
    for key, kind in schema.items():
        if key in data:
            values[key] = _PARSERS[kind](data[key], key)
    return values


def require(values: Mapping[str, Any], *fields: str) -> None:
    """Reject the request when a required field is missing or empty."""
    missing = [f for f in fields if values.get(f) is None]
    if missing:
        raise ValidationFailure(f"missing required field(s): {', '.join(missing)}")


def require_choice(value: str | None, choices, field: str) -> None:
    if value is not None and value not in choices:
        raise ValidationFailure(f"{field} must be one of: {', '.join(choices)}")


def require_non_negative(value: Decimal | None, field: str) -> None:
    if value is not None and value < 0:
        raise ValidationFailure(f"{field} must not be negative")


# ---------------------------------------------------------------------
# JSON helpers
# ---------------------------------------------------------------------
_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def to_snake(name: str) -> str:
    return _CAMEL_RE.sub("_", name).lower()


def to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def snake_keys(payload: Any) -> Dict[str, Any]:
    """Request body (camelCase JSON object) -> snake_case dict."""
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationFailure("request body must be a JSON object")
    return {to_snake(k): v for k, v in payload.items()}


def to_api(value: Any) -> Any:
    """
    Render service results for JSON:
    - dict keys -> camelCase
    - Decimal -> string (exact digits, as stored)
    - date/datetime -> ISO string
    """
    if isinstance(value, dict):
        return {to_camel(k): to_api(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_api(v) for v in value]
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def model_to_dict(instance: Any) -> Dict[str, Any] | None:
    """Column snapshot of a model instance for API responses (None stays None)."""
    if instance is None:
        return None
    return {column.key: getattr(instance, column.key) for column in instance.__table__.columns}
