"""
Quarter boundary calculator.

Derives the first or last instant of a fiscal quarter from the fiscal year
end, keeping month-end alignment for year ends on the 28th/29th/30th, and
optionally moves the result onto the nearest business day.
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable, Optional, Union

from dateutil.relativedelta import relativedelta

from .dates import DateLike, is_month_end, resolve_fiscal_year_end
from .models import BusinessDayConstraint, QuarterPeriod

logger = logging.getLogger(__name__)

QUARTERS = (1, 2, 3, 4)

ONE_DAY = timedelta(days=1)


def validate_quarter(quarter) -> int:
    """Raise ValueError unless quarter is an int in 1..4."""
    if isinstance(quarter, bool) or not isinstance(quarter, int) or quarter not in QUARTERS:
        raise ValueError(f'Quarter must be 1, 2, 3 or 4, got {quarter!r}')
    return quarter


def _coerce_constraint(business_days) -> Optional[BusinessDayConstraint]:
    if business_days is None or isinstance(business_days, BusinessDayConstraint):
        constraint = business_days
    else:
        constraint = BusinessDayConstraint.model_validate(business_days)
    # An empty weekday set would never let the adjustment loop settle
    if constraint is not None and not constraint.allowed_weekdays:
        raise ValueError('At least one allowed weekday is required')
    return constraint


def quarter_boundary(
    quarter: int,
    fiscal_year_end: Optional[DateLike] = None,
    first_day: bool = False,
    business_days: Optional[Union[BusinessDayConstraint, dict]] = None,
    now: Optional[datetime] = None,
) -> datetime:
    """
    Return the first (00:00:00) or last (23:59:59) instant of a fiscal quarter.

    Quarter q ends (4 - q) * 3 months before the fiscal year end. When
    business_days is given the result is moved forward (first day) or
    backward (last day) until it is an allowed weekday and not a blackout.
    """
    validate_quarter(quarter)
    constraint = _coerce_constraint(business_days)
    fye = resolve_fiscal_year_end(fiscal_year_end, now)

    months_back = 12 - quarter * 3
    if first_day:
        base = datetime(fye.year, fye.month, fye.day)
    else:
        base = datetime(fye.year, fye.month, fye.day, 23, 59, 59)

    if is_month_end(fye) and fye.day != 31:
        # Re-anchor on the 31st of the previous month so that every step
        # back lands on a month end instead of on the short month's day.
        candidate = (base - relativedelta(months=1)
                     + timedelta(days=31 - fye.day)
                     - relativedelta(months=months_back - 1))
    else:
        candidate = base - relativedelta(months=months_back)

    if first_day:
        # candidate is the quarter's last day; the quarter starts the day
        # after the end of the quarter before it
        if is_month_end(candidate) and candidate.day != 31:
            candidate = (candidate - relativedelta(months=1)
                         + timedelta(days=31 - candidate.day + 1)
                         - relativedelta(months=2))
        else:
            candidate = candidate - relativedelta(months=3) + ONE_DAY

    if constraint is not None:
        candidate = adjust_to_business_day(candidate, constraint, forward=first_day)

    return candidate


def adjust_to_business_day(
    candidate: datetime,
    constraint: BusinessDayConstraint,
    forward: bool = True,
) -> datetime:
    """
    Step one day at a time until candidate is an allowed weekday that is not
    a blackout date. Repeats until a pass finds no blackout match.

    Blackout entries without a year match the same month/day in every year;
    dated entries only match that exact day.
    """
    step = ONE_DAY if forward else -ONE_DAY
    limit = 7 * (len(constraint.blackout_dates) + 1) + 366
    moved = 0

    while True:
        while not constraint.is_allowed_weekday(candidate):
            candidate += step
            moved += 1
        if not constraint.is_blackout(candidate):
            break
        candidate += step
        moved += 1
        if moved > limit:
            raise ValueError(
                f'No business day found within {limit} days; '
                'blackout dates cover every allowed weekday')

    if moved:
        logger.debug(f"Moved boundary {moved} day(s) to business day {candidate.date()}")
    return candidate


def quarter_boundaries(
    quarters: Union[int, Iterable[int]],
    fiscal_year_end: Optional[DateLike] = None,
    first_day: bool = False,
    business_days: Optional[Union[BusinessDayConstraint, dict]] = None,
    now: Optional[datetime] = None,
) -> list:
    """
    Element-wise quarter_boundary, one result per quarter in input order.
    All quarters are validated before any result is computed.
    """
    if isinstance(quarters, int):
        quarters = [quarters]
    quarters = [validate_quarter(q) for q in quarters]
    constraint = _coerce_constraint(business_days)
    fye = resolve_fiscal_year_end(fiscal_year_end, now)
    return [quarter_boundary(q, fye, first_day, constraint) for q in quarters]


def quarter_period(
    quarter: int,
    fiscal_year_end: Optional[DateLike] = None,
    business_days: Optional[Union[BusinessDayConstraint, dict]] = None,
    now: Optional[datetime] = None,
) -> QuarterPeriod:
    """Both boundaries of a quarter, labelled with the fiscal year it closes."""
    fye = resolve_fiscal_year_end(fiscal_year_end, now)
    return QuarterPeriod(
        quarter=quarter,
        fiscal_year=fye.year,
        start=quarter_boundary(quarter, fye, True, business_days),
        end=quarter_boundary(quarter, fye, False, business_days),
    )


def fiscal_year_quarters(
    fiscal_year_end: Optional[DateLike] = None,
    business_days: Optional[Union[BusinessDayConstraint, dict]] = None,
    now: Optional[datetime] = None,
) -> list:
    """All four quarters of the fiscal year ending on fiscal_year_end."""
    fye = resolve_fiscal_year_end(fiscal_year_end, now)
    return [quarter_period(q, fye, business_days) for q in QUARTERS]
