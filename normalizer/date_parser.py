"""
Date parser for transaction dates supplied as strings or date objects.
"""
from datetime import date, datetime
from typing import Optional, Union

from dateutil import parser as dateutil_parser

from config import DATE_FORMATS

DateLike = Union[str, datetime, date, None]


def parse_date(value: DateLike) -> Optional[date]:
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

    value_str = " ".join(str(value).split())

    if not value_str:
        return None

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value_str, fmt).date()
        except ValueError:
            continue

    # dateutil as a fallback for ISO timestamps with zones and other free forms
    try:
        return dateutil_parser.parse(value_str).date()
    except (ValueError, OverflowError, TypeError):
        pass

    return None


def is_valid_date(value: DateLike) -> bool:
    """
    Check if a value can be parsed as a valid date.

    Args:
        value: A value to check

    Returns:
        True if the value is a valid date, False otherwise
    """
    return parse_date(value) is not None


def days_between(earlier: DateLike, later: DateLike) -> Optional[float]:
    """
    Number of days from ``earlier`` to ``later``.

    Datetimes keep their time of day so that intervals can be fractional;
    anything else is compared at day resolution.
    """
    if isinstance(earlier, datetime) and isinstance(later, datetime):
        if (earlier.tzinfo is None) == (later.tzinfo is None):
            return (later - earlier).total_seconds() / 86400.0

    start = parse_date(earlier)
    end = parse_date(later)
    if start is None or end is None:
        return None
    return float((end - start).days)
