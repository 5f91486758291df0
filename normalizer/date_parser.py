"""
Date parser for transaction dates and rule timestamps.
"""
from datetime import date, datetime, timezone
from typing import Optional, Union

from dateutil import parser as dateutil_parser

from config import DATE_FORMATS

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_date(value: Union[str, datetime, date, None]) -> Optional[date]:
    """
    Parse a date value from various formats into a Python date object.

    Args:
        value: A string that might be a date, or a datetime/date object

    Returns:
        A date object if parsing succeeds, None otherwise
    """
    if value is None:
        return None

    # If already a date or datetime object
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    value_str = _normalize_date_string(str(value))

    if not value_str:
        return None

    # Try each date format in order
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value_str, fmt).date()
        except ValueError:
            continue

    # dateutil as a fallback for everything else (ISO timestamps included)
    try:
        return dateutil_parser.parse(value_str).date()
    except (ValueError, OverflowError):
        return None


def parse_timestamp(value: Union[str, datetime, date, None]) -> Optional[datetime]:
    """
    Parse a rule timestamp into a timezone-aware datetime.

    Naive values are taken to be UTC.

    Args:
        value: ISO-8601 string, datetime, date or None

    Returns:
        An aware datetime, or None if the value is empty or unparseable
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        value_str = str(value).strip()
        if not value_str:
            return None
        try:
            parsed = dateutil_parser.isoparse(value_str)
        except ValueError:
            try:
                parsed = dateutil_parser.parse(value_str)
            except (ValueError, OverflowError):
                return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _normalize_date_string(value: str) -> str:
    """
    Normalize a date string by cleaning up whitespace and separators.

    Args:
        value: Raw date string

    Returns:
        Normalized date string
    """
    value = " ".join(value.split())

    # "2024/01-15" -> "2024/01/15", but leave "15-Jan-2024" alone
    if "/" in value and "-" in value and not any(c.isalpha() for c in value):
        value = value.replace("-", "/")

    return value


def format_date(dt: Optional[date], fmt: str = "%Y-%m-%d") -> str:
    """
    Format a date object as a string.

    Args:
        dt: Date object to format
        fmt: Output format string (default: ISO YYYY-MM-DD)

    Returns:
        Formatted date string, or empty string if date is None
    """
    if dt is None:
        return ""
    return dt.strftime(fmt)


def format_timestamp(dt: Optional[datetime]) -> Optional[str]:
    """ISO-8601 rendering of a timestamp, or None."""
    if dt is None:
        return None
    return dt.isoformat()
