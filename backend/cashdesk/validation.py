# Overview: Request payload parsing shared by the route modules.

from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Any

from email_validator import EmailNotValidError, validate_email

from .errors import ValidationError
from .time_utils import is_time_of_day

CENT = Decimal("0.01")

# Maximum amount: 9,999,999,999.99 (Numeric(12, 2))
MAX_AMOUNT = Decimal("9999999999.99")


def require_json(data: Any) -> dict:
    if not isinstance(data, dict):
        raise ValidationError("JSON object body required")
    return data


def to_money(value: Any) -> Decimal:
    """Quantize any numeric to cents without going through binary floats."""
    if isinstance(value, Decimal):
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def parse_amount(value: Any, field: str, *, allow_zero: bool = False) -> Decimal:
    """
    Parse a currency amount from JSON.

    Accepts ints, floats and numeric strings. Rejects booleans, NaN/Infinity,
    negatives, and zero unless allow_zero.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, str) and not value.strip():
        raise ValidationError(f"{field} must be a number")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    amount = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    if amount < 0 or (amount == 0 and not allow_zero):
        bound = "greater than or equal to 0" if allow_zero else "greater than 0"
        raise ValidationError(f"{field} must be {bound}")
    if amount > MAX_AMOUNT:
        raise ValidationError(f"{field} exceeds maximum allowed amount")
    return amount


def parse_time_of_day(value: Any, field: str) -> str:
    if not isinstance(value, str) or not is_time_of_day(value.strip()):
        raise ValidationError(f"{field} must be a time of day in HH:MM format")
    hours, minutes = value.strip().split(":")
    return f"{int(hours):02d}:{minutes}"


def parse_enum(enum_cls: type[Enum], value: Any, field: str):
    try:
        return enum_cls(str(value).upper())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"{field} must be one of: {allowed}")


def parse_optional_text(data: dict, field: str, *, max_length: int | None = None) -> str | None:
    value = data.get(field)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    value = value.strip()
    if max_length is not None and len(value) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return value or None


def parse_date(value: str | None, field: str) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"{field} must be a date in YYYY-MM-DD format")


def parse_positive_int(value: Any, field: str, *, default: int, maximum: int | None = None) -> int:
    if value is None or value == "":
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a positive integer")
    if number < 1:
        raise ValidationError(f"{field} must be a positive integer")
    if maximum is not None:
        number = min(number, maximum)
    return number


def is_valid_email(value: Any) -> bool:
    """Syntax check only; deliverability (DNS) is not probed."""
    if not isinstance(value, str) or len(value) > 255:
        return False
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True
