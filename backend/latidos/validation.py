# Overview: Request payload coercion for the finance API; strict integers, booleans and date ranges.

from __future__ import annotations

from datetime import datetime
from typing import Any

from latidos.time_utils import parse_range_end, parse_range_start
from .services.errors import InvalidAmountError, ValidationError

# Largest single amount accepted over the API: 999,999,999.99 in minor units
MAX_AMOUNT_CENTS = 99_999_999_999


def require_json_object(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def parse_int(value: Any, field: str, *, required: bool = False) -> int | None:
    """
    Strict integer coercion.

    Accepts ints and plain digit strings. Rejects bools, floats,
    decimals and scientific notation.
    """
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required")
        return None

    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value

    if isinstance(value, str):
        stripped = value.strip()
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")

    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")

    raise ValidationError(f"{field} must be an integer")


def parse_cents(value: Any, field: str = "amount_cents", *, required: bool = True) -> int | None:
    """Money in minor units: a positive integer, never a float."""
    try:
        cents = parse_int(value, field, required=required)
    except ValidationError as exc:
        raise InvalidAmountError(str(exc))
    if cents is None:
        return None
    if cents <= 0:
        raise InvalidAmountError(f"{field} must be positive")
    if cents > MAX_AMOUNT_CENTS:
        raise InvalidAmountError(f"{field} exceeds the maximum allowed amount")
    return cents


def parse_str(value: Any, field: str, *, required: bool = False, max_length: int | None = None) -> str | None:
    """Trimmed text. Blank counts as missing; anything but a string is rejected."""
    if value is None:
        value = ""
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    text = value.strip()
    if not text:
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return text


def parse_int_list(value: Any, field: str) -> list[int]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError(f"{field} must be a list of ids")
    return [parse_int(v, field, required=True) for v in value]


def parse_bool(value: Any, field: str, *, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "1", "yes"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("false", "0", "no"):
        return False
    raise ValidationError(f"{field} must be true or false")


def parse_datetime_field(value: Any, field: str) -> datetime | None:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be an ISO-8601 datetime")
    try:
        return parse_range_start(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")


def parse_date_range(args) -> tuple[datetime | None, datetime | None]:
    """
    start_date/end_date query params.

    A bare end date is inclusive through the end of that day.
    """
    try:
        start = parse_range_start(args.get("start_date"))
        end = parse_range_end(args.get("end_date"))
    except ValueError:
        raise ValidationError("start_date and end_date must be ISO-8601 dates")
    if start and end and start > end:
        raise ValidationError("start_date must be before end_date")
    return start, end
