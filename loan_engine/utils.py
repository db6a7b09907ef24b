"""Utility functions for the loan engine.

This module provides helpers for parsing user input into Python data types and
for handling calendar dates: adding months, locating the calendar month a date
belongs to and counting whole months elapsed since a loan started. Money is
handled as ``Decimal`` and rounded to cents with ``ROUND_HALF_UP``.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, getcontext
from typing import Tuple, Union

from .errors import ConfigurationError

getcontext().prec = 28  # increase decimal precision to avoid rounding errors

CENT = Decimal("0.01")
ZERO = Decimal("0")
TWELVE = Decimal("12")
HUNDRED = Decimal("100")

Number = Union[Decimal, int, float, str]


def decimal_from_str(value: str) -> Decimal:
    """Convert a numeric string into a ``Decimal``.

    The function strips any commas and handles both integer and float-like
    strings. It raises ``ConfigurationError`` if conversion fails.
    """
    try:
        cleaned = str(value).replace(",", "").strip()
        result = Decimal(cleaned)
    except (InvalidOperation, ValueError) as exc:
        raise ConfigurationError(f"Invalid numeric value: {value}") from exc
    if not result.is_finite():
        raise ConfigurationError(f"Invalid numeric value: {value}")
    return result


def to_decimal(value: Number) -> Decimal:
    """Return ``value`` as a ``Decimal``.

    Floats go through ``str`` so ``0.1`` becomes ``Decimal("0.1")`` rather than
    its binary expansion.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid numeric value: {value!r}")
    if isinstance(value, int):
        return Decimal(value)
    return decimal_from_str(str(value))


def round2(value: Number) -> Decimal:
    """Round a monetary amount to cents, halves away from zero."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def parse_date(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` string (or a ``YYYY-MM`` month) into a ``date``.

    A bare year-month resolves to the first day of that month. Any
    time-of-day component in an ISO timestamp is dropped, since the engine
    works on calendar dates only.

    Raises
    ------
    ConfigurationError
        If the string is not a valid date.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        if len(text) == 7:
            year, month = text.split("-")
            return date(int(year), int(month), 1)
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError as exc:
        raise ConfigurationError(f"Invalid date string: {value}") from exc


def add_months(dt: date, months: int) -> date:
    """Return a new date a number of months after ``dt``.

    The day of the month is clamped to the last valid day if needed (e.g.,
    adding one month to Jan 31 yields Feb 28 or 29).
    """
    year = dt.year + (dt.month - 1 + months) // 12
    month = (dt.month - 1 + months) % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def days_in_month(dt: date) -> int:
    return calendar.monthrange(dt.year, dt.month)[1]


def month_span(dt: date) -> Tuple[date, date]:
    """Return the first and last day of the calendar month containing ``dt``."""
    first = dt.replace(day=1)
    return first, first.replace(day=days_in_month(dt))


def next_month_start(dt: date) -> date:
    return month_span(dt)[1] + timedelta(days=1)


def months_between(start: date, day: date) -> int:
    """Return the whole months elapsed from ``start`` to ``day``.

    This is the largest ``k`` with ``add_months(start, k) <= day``, so the
    count ticks over on each monthly anniversary of ``start`` (clamped to the
    month end for late start days). Days before ``start`` count as month 0.
    """
    if day <= start:
        return 0
    months = (day.year - start.year) * 12 + (day.month - start.month)
    if add_months(start, months) > day:
        months -= 1
    return months
