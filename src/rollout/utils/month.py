"""Month key utilities.

Month keys are ISO "YYYY-MM" strings. A month window is the half-open
interval [first instant of the month, first instant of the next month).
"""

import re
from datetime import date, datetime, UTC
from typing import Iterator

from dateutil.relativedelta import relativedelta

from rollout.domain.errors import ValidationError

_MONTH_KEY = re.compile(r"^(\d{4})-(\d{2})$")


def parse_month(key: str) -> date:
    """Parse a month key into the first day of that month.

    Args:
        key: Month key such as "2026-01"

    Returns:
        Date of the first day of the month

    Raises:
        ValidationError: If the key is not a valid "YYYY-MM" string
    """
    match = _MONTH_KEY.match(key.strip()) if isinstance(key, str) else None
    if match is None:
        raise ValidationError(f"Invalid month '{key}': expected YYYY-MM")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValidationError(f"Invalid month '{key}': month must be 01-12")
    return date(year, month, 1)


def validate_month(key: str) -> str:
    """Return the normalized month key, raising ValidationError if invalid."""
    return month_key(parse_month(key))


def month_key(value: date | datetime) -> str:
    """Format a date or datetime as a month key."""
    return f"{value.year:04d}-{value.month:02d}"


def current_month(now: datetime | None = None) -> str:
    """Month key for now (UTC) or for the given instant."""
    return month_key(now or datetime.now(UTC))


def month_window(key: str) -> tuple[datetime, datetime]:
    """Return the naive-UTC half-open window [start, end) covering a month."""
    first = parse_month(key)
    start = datetime(first.year, first.month, 1)
    return start, start + relativedelta(months=1)


def add_months(key: str, months: int) -> str:
    """Shift a month key by a number of months (may be negative)."""
    return month_key(parse_month(key) + relativedelta(months=months))


def months_between(start_key: str, key: str) -> int:
    """Whole months from start_key to key (negative if key is earlier)."""
    start = parse_month(start_key)
    end = parse_month(key)
    return (end.year - start.year) * 12 + (end.month - start.month)


def iter_months(start_key: str, end_key: str) -> Iterator[str]:
    """Yield month keys from start_key to end_key inclusive."""
    if months_between(start_key, end_key) < 0:
        raise ValidationError(f"Month range {start_key}..{end_key} is reversed")
    current = parse_month(start_key)
    end = parse_month(end_key)
    while current <= end:
        yield month_key(current)
        current += relativedelta(months=1)


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)
