"""Shared parsing utilities for Open Finance payloads.

Bank payloads are loosely typed: dates arrive in several ISO 8601
variants and amounts arrive as strings, numbers or ``{"amount": ...}``
objects.  Parsers here never raise on bad input; they return ``None``
and let the caller decide on a default.
"""

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation


def parse_iso_datetime(value) -> datetime | None:
    """Parse an ISO 8601 string (or date/datetime object) to a UTC-aware datetime.

    Handles:
    - Z suffix ("2024-01-15T10:30:00Z")
    - +0000 no-colon offset ("2024-01-15T10:30:00+0000")
    - Standard ISO with colon offset ("2024-06-28T18:42:46-03:00")
    - Date-only strings ("2024-06-28")
    - datetime/date objects passed through with UTC normalisation

    Args:
        value: A string, date, datetime, or None.

    Returns:
        A timezone-aware UTC datetime, or None if the value cannot be parsed.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

    value_str = str(value).strip()
    if not value_str:
        return None

    if value_str.endswith("Z"):
        value_str = value_str[:-1] + "+00:00"

    if (
        len(value_str) >= 5
        and value_str[-5] in ("+", "-")
        and value_str[-4:].isdigit()
    ):
        value_str = value_str[:-2] + ":" + value_str[-2:]

    try:
        return ensure_utc(datetime.fromisoformat(value_str)).astimezone(timezone.utc)
    except (ValueError, TypeError):
        pass

    try:
        d = date.fromisoformat(str(value))
        return datetime(d.year, d.month, d.day, tzinfo=timezone.utc)
    except (ValueError, TypeError):
        return None


def ensure_utc(dt: datetime) -> datetime:
    """Ensure a datetime is timezone-aware (UTC).

    SQLite drops tzinfo on round-trip, so values read back from the
    database are naive UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def parse_decimal(value) -> Decimal | None:
    """Parse a monetary value without going through float.

    Accepts ``Decimal``, ``int``, numeric strings, floats (via ``str``) and
    ``{"amount": ...}`` objects.

    Returns:
        The value as ``Decimal``, or None if missing or unparsable.
    """
    if isinstance(value, dict):
        value = value.get("amount")
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite():
        return None
    return result


def mask_account_number(number: str | None) -> str | None:
    """Keep only the last four characters of an account number."""
    if not number:
        return None
    if len(number) <= 4:
        return number
    return "*" * (len(number) - 4) + number[-4:]
