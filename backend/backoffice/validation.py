from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from backoffice.errors import ValidationError
from backoffice.time_utils import parse_iso_datetime

# Maximum price: R9,999,999,999.99 fits Numeric(12, 2)
MAX_MONEY = Decimal("9999999999.99")


def json_payload(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def require_fields(payload: dict, *keys: str) -> None:
    missing = [k for k in keys if payload.get(k) is None]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def coerce_int(value: Any, key: str, *, minimum: int | None = None) -> int:
    """Strict integer: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        # Reject "1e3" and "12.5"
        if "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{key} must be a plain integer")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    else:
        raise ValidationError(f"{key} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{key} must be >= {minimum}", details={key: result})
    return result


def coerce_money(value: Any, key: str) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{key} must be a decimal amount")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"{key} must be a decimal amount")
    if not amount.is_finite():
        raise ValidationError(f"{key} must be a decimal amount")
    if amount < 0:
        raise ValidationError(f"{key} must be >= 0")
    if amount > MAX_MONEY:
        raise ValidationError(f"{key} cannot exceed {MAX_MONEY}")
    return amount


def coerce_datetime(value: Any, key: str) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            dt = parse_iso_datetime(value)
        except ValueError:
            raise ValidationError(f"{key} must be an ISO-8601 datetime")
        if dt is None:
            raise ValidationError(f"{key} must be an ISO-8601 datetime")
        return dt
    raise ValidationError(f"{key} must be a datetime")


def optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
