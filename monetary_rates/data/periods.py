"""
Period Key Normalization

Maps the native date representations used by the statistical APIs
(ISO dates, ISO year-month strings, compact YYYYMM codes) onto a single
canonical key: a timezone-naive Timestamp at the start of the month for
monthly data, or at midnight of the calendar day for daily data.
"""

import numbers
import re
from datetime import date, datetime
from typing import Any, Iterable

import pandas as pd

from ..exceptions import UnparseableDate


MONTHLY = 'monthly'
DAILY = 'daily'

# Native shapes, checked in order
_ISO_DATE = re.compile(r'^(\d{4})-(\d{2})-(\d{2})$')
_ISO_MONTH = re.compile(r'^(\d{4})-(\d{2})$')
_COMPACT_MONTH = re.compile(r'^(\d{4})(\d{2})$')
_COMPACT_DATE = re.compile(r'^(\d{4})(\d{2})(\d{2})$')


def _calendar_parts(value: Any) -> tuple:
    """Split a native value into (year, month, day); day is None for month codes."""
    if isinstance(value, pd.Timestamp):
        if value.tzinfo is not None:
            raise UnparseableDate(value, "timezone-aware values are not periods")
        return value.year, value.month, value.day

    if isinstance(value, datetime):
        if value.tzinfo is not None:
            raise UnparseableDate(value, "timezone-aware values are not periods")
        return value.year, value.month, value.day

    if isinstance(value, date):
        return value.year, value.month, value.day

    if isinstance(value, bool):
        raise UnparseableDate(value, "unsupported type")

    if isinstance(value, numbers.Integral):
        value = str(int(value))

    if not isinstance(value, str):
        raise UnparseableDate(value, "unsupported type")

    text = value.strip()
    for pattern, has_day in (
        (_ISO_DATE, True),
        (_ISO_MONTH, False),
        (_COMPACT_MONTH, False),
        (_COMPACT_DATE, True),
    ):
        match = pattern.match(text)
        if match:
            parts = [int(p) for p in match.groups()]
            return parts[0], parts[1], parts[2] if has_day else None

    raise UnparseableDate(value, "expected YYYY-MM-DD, YYYY-MM or YYYYMM")


def to_period_key(value: Any) -> pd.Timestamp:
    """Normalize a native date or period code to its month-start key.

    Args:
        value: '2023-03-15', '2023-03', '202303', 202303 or a date object

    Returns:
        Timestamp at the first day of the calendar month

    Raises:
        UnparseableDate: If the value is malformed or not a valid calendar date
    """
    year, month, day = _calendar_parts(value)

    if not 1 <= month <= 12:
        raise UnparseableDate(value, f"month {month} out of range")

    if day is not None:
        # Validate the full date even though only the month is kept
        try:
            date(year, month, day)
        except ValueError as e:
            raise UnparseableDate(value, str(e)) from e

    return pd.Timestamp(year=year, month=month, day=1)


def to_day_key(value: Any) -> pd.Timestamp:
    """Normalize a native calendar date to its daily key.

    Raises:
        UnparseableDate: If the value has no day component or is invalid
    """
    year, month, day = _calendar_parts(value)

    if day is None:
        raise UnparseableDate(value, "daily key needs a calendar day")

    try:
        return pd.Timestamp(date(year, month, day))
    except ValueError as e:
        raise UnparseableDate(value, str(e)) from e


def normalize_period_column(
    values: Iterable[Any],
    granularity: str = MONTHLY
) -> pd.Series:
    """Normalize a column of native dates to canonical keys.

    Args:
        values: Native date values
        granularity: 'monthly' or 'daily'

    Returns:
        Series of Timestamps, same order and index as the input
    """
    if granularity == MONTHLY:
        convert = to_period_key
    elif granularity == DAILY:
        convert = to_day_key
    else:
        raise ValueError(f"Unknown granularity: {granularity}")

    if isinstance(values, pd.Series):
        return values.map(convert).astype('datetime64[ns]')

    return pd.Series([convert(v) for v in values], dtype='datetime64[ns]')


def month_end(key: pd.Timestamp) -> pd.Timestamp:
    """Last calendar day of the month a key stands for."""
    return key + pd.offsets.MonthEnd(0)
