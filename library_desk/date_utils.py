"""Calendar date helpers used by the lending lifecycle.

Dates are entered as ``DD/MM/YYYY`` (configurable) with ISO ``YYYY-MM-DD``
accepted as a fallback. Storage always uses ISO strings.
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Union

from library_desk.config import settings
from library_desk.exceptions import InvalidDateError

MIN_YEAR = 1900
ISO_FORMAT = "%Y-%m-%d"

DateLike = Union[date, datetime, str]


def today() -> date:
    return date.today()


def parse_date(value: DateLike, fmt: Optional[str] = None) -> date:
    """Parse a display or ISO date string into a ``date``.

    ``date`` and ``datetime`` values pass through (datetimes are truncated to
    their calendar day). Raises InvalidDateError on anything else.
    """
    if isinstance(value, datetime):
        parsed = value.date()
    elif isinstance(value, date):
        parsed = value
    elif isinstance(value, str):
        raw = value.strip()
        parsed = None
        for candidate in (fmt or settings.date_format, ISO_FORMAT):
            try:
                parsed = datetime.strptime(raw, candidate).date()
                break
            except ValueError:
                continue
        if parsed is None:
            raise InvalidDateError(f"Invalid date '{value}'. Use DD/MM/YYYY.")
    else:
        raise InvalidDateError(f"Unsupported date value: {value!r}")

    if parsed.year < MIN_YEAR:
        raise InvalidDateError(f"Year must be {MIN_YEAR} or later: {value}")
    return parsed


def is_valid_date(value: DateLike, fmt: Optional[str] = None) -> bool:
    try:
        parse_date(value, fmt)
    except InvalidDateError:
        return False
    return True


def format_date(value: date, fmt: Optional[str] = None) -> str:
    return value.strftime(fmt or settings.date_format)


def to_iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def from_iso(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return datetime.strptime(value, ISO_FORMAT).date()
    except ValueError as e:
        raise InvalidDateError(f"Invalid stored date '{value}'") from e


def days_between(start: DateLike, end: DateLike) -> int:
    """Whole calendar days from ``start`` to ``end`` (negative if end is earlier)."""
    return (parse_date(end) - parse_date(start)).days
