"""
Date helpers shared by the boundary calculator and the classifier.
Month-end test, default fiscal year end, and date coercion/parsing.
"""

import calendar
import re
from datetime import date, datetime
from typing import Optional, Union

import dateparser

DateLike = Union[date, datetime, str]

# dateparser settings for free-form input (ISO is handled before this)
DATEPARSER_SETTINGS = {
    'DATE_ORDER': 'YMD',
    'PREFER_DAY_OF_MONTH': 'first',
    'STRICT_PARSING': False,
    'RETURN_AS_TIMEZONE_AWARE': False,
}

DATEPARSER_LANGUAGES = ['en']


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def is_month_end(value: date) -> bool:
    """True if value is the last day of its month (leap years included)."""
    return value.day == days_in_month(value.year, value.month)


def default_fiscal_year_end(now: Optional[datetime] = None) -> datetime:
    """December 31 of the year of `now` (today when not supplied)."""
    now = now or datetime.now()
    return datetime(now.year, 12, 31)


def resolve_fiscal_year_end(
    fiscal_year_end: Optional[DateLike] = None,
    now: Optional[datetime] = None,
) -> datetime:
    """Fiscal year end as a datetime, defaulting to Dec 31 of the current year."""
    if fiscal_year_end is None:
        return default_fiscal_year_end(now)
    return to_datetime(fiscal_year_end)


def to_datetime(value: DateLike) -> datetime:
    """
    Coerce a date, datetime or date string to a naive datetime.
    Plain dates become midnight; sub-second precision is dropped.
    """
    if isinstance(value, str):
        value = parse_date(value)
    if isinstance(value, datetime):
        return value.replace(microsecond=0, tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    raise ValueError(f'Not a date: {value!r}')


def parse_date(text: str, require_year: bool = False) -> datetime:
    """
    Parse a date string, trying ISO format (YYYY-MM-DD[THH:MM:SS]) first and
    falling back to dateparser for everything else.

    With require_year, text without an explicit year is rejected instead of
    being completed with the current year.
    """
    text = text.strip()
    iso_match = re.match(r'^\d{4}-\d{2}-\d{2}([T ]\d{2}:\d{2}(:\d{2}(\.\d+)?)?)?$', text)
    if iso_match:
        try:
            return datetime.fromisoformat(text)
        except ValueError as e:
            raise ValueError(f'Invalid date: {text!r}') from e

    settings = dict(DATEPARSER_SETTINGS)
    if require_year:
        settings['REQUIRE_PARTS'] = ['day', 'month', 'year']
    parsed = dateparser.parse(
        text,
        settings=settings,
        languages=DATEPARSER_LANGUAGES,
    )
    if parsed is None:
        raise ValueError(f'Unrecognised date: {text!r}')
    return parsed
