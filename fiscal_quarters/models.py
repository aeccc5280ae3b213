"""
Pydantic models for quarter boundary requests, business-day constraints
and company fiscal calendars.
"""

import calendar
import re
from datetime import date as date_type, datetime
from typing import Optional

from pydantic import (
    BaseModel, ConfigDict, Field, StrictInt, field_validator, model_validator,
)

from .dates import days_in_month, parse_date, to_datetime

MAX_ITEMS_PER_REQUEST = 500

MONDAY_TO_FRIDAY = frozenset(range(5))

_WEEKDAY_LOOKUP = {
    **{name.lower(): i for i, name in enumerate(calendar.day_name)},
    **{name.lower(): i for i, name in enumerate(calendar.day_abbr)},
}


class BlackoutDate(BaseModel):
    """
    A date excluded from business-day eligibility.

    With a year it matches that exact day only. Without one it recurs
    every year on the same month/day (fixed holidays such as Jan 1).
    """
    model_config = ConfigDict(frozen=True)

    month: int = Field(ge=1, le=12)
    day: int = Field(ge=1, le=31)
    year: Optional[int] = Field(default=None, ge=1, le=9999)

    @model_validator(mode='before')
    @classmethod
    def coerce_input(cls, v):
        if isinstance(v, (date_type, datetime)):
            return {'year': v.year, 'month': v.month, 'day': v.day}
        if isinstance(v, str):
            recurring = re.match(r'^(?:--)?(\d{1,2})[-/](\d{1,2})$', v.strip())
            if recurring:
                return {'month': int(recurring.group(1)), 'day': int(recurring.group(2))}
            # Dated blackouts need an explicit year
            parsed = parse_date(v, require_year=True)
            return {'year': parsed.year, 'month': parsed.month, 'day': parsed.day}
        return v

    @model_validator(mode='after')
    def day_fits_month(self):
        # 2000 is a leap year, so a recurring Feb 29 is allowed
        if self.day > days_in_month(self.year or 2000, self.month):
            raise ValueError(f'Day {self.day} out of range for month {self.month}')
        return self

    def matches(self, value: date_type) -> bool:
        if (value.month, value.day) != (self.month, self.day):
            return False
        return self.year is None or self.year == value.year


class BusinessDayConstraint(BaseModel):
    """Allowed weekdays (Monday=0) and blackout dates for boundary adjustment."""
    model_config = ConfigDict(frozen=True)

    allowed_weekdays: frozenset[int] = MONDAY_TO_FRIDAY
    blackout_dates: tuple[BlackoutDate, ...] = ()

    @field_validator('allowed_weekdays', mode='before')
    @classmethod
    def weekday_names_to_numbers(cls, v):
        if isinstance(v, (str, int)):
            v = [v]
        if not isinstance(v, (list, tuple, set, frozenset)):
            raise ValueError('allowed_weekdays must be a weekday or a list of weekdays')
        days = []
        for item in v:
            if isinstance(item, str):
                key = item.strip().lower()
                if key not in _WEEKDAY_LOOKUP:
                    raise ValueError(f'Unknown weekday: {item}')
                days.append(_WEEKDAY_LOOKUP[key])
            else:
                days.append(item)
        return frozenset(days)

    @field_validator('allowed_weekdays')
    @classmethod
    def weekdays_must_be_valid(cls, v):
        if not v:
            raise ValueError('At least one allowed weekday is required')
        if any(d < 0 or d > 6 for d in v):
            raise ValueError('Weekdays must be between 0 (Monday) and 6 (Sunday)')
        return v

    @field_validator('blackout_dates', mode='before')
    @classmethod
    def single_blackout_to_list(cls, v):
        if isinstance(v, (str, date_type, dict)):
            return [v]
        return v

    def is_allowed_weekday(self, value: date_type) -> bool:
        return value.weekday() in self.allowed_weekdays

    def is_blackout(self, value: date_type) -> bool:
        return any(b.matches(value) for b in self.blackout_dates)


class _BatchRequest(BaseModel):
    """Shared validation for HTTP request payloads."""
    fiscal_year_end: Optional[datetime] = None
    company_id: Optional[str] = None

    @field_validator('fiscal_year_end', mode='before')
    @classmethod
    def parse_fiscal_year_end(cls, v):
        if v is None:
            return v
        return to_datetime(v)

    @field_validator('company_id')
    @classmethod
    def sanitize_ids(cls, v):
        """Reject IDs with suspicious characters (injection protection)."""
        if v is not None and not re.match(r'^[A-Za-z0-9_-]{1,128}$', v):
            raise ValueError('Invalid ID format: must be alphanumeric, max 128 chars')
        return v


class BoundaryRequest(_BatchRequest):
    """Validated payload for a quarter boundary lookup."""
    quarters: list[StrictInt]
    first_day: bool = False
    business_day: bool = False
    business_days: Optional[BusinessDayConstraint] = None

    @field_validator('quarters', mode='before')
    @classmethod
    def single_quarter_to_list(cls, v):
        if isinstance(v, int) and not isinstance(v, bool):
            return [v]
        return v

    @field_validator('quarters')
    @classmethod
    def quarters_must_be_valid(cls, v):
        if not v:
            raise ValueError('At least one quarter is required')
        if len(v) > MAX_ITEMS_PER_REQUEST:
            raise ValueError(f'Too many quarters ({len(v)}). Max {MAX_ITEMS_PER_REQUEST} per request.')
        for q in v:
            if q not in (1, 2, 3, 4):
                raise ValueError(f'Quarter must be 1, 2, 3 or 4, got {q}')
        return v


class ClassifyRequest(_BatchRequest):
    """Validated payload for classifying dates into quarters."""
    dates: list[datetime]

    @field_validator('dates', mode='before')
    @classmethod
    def parse_dates(cls, v):
        if isinstance(v, (str, date_type)):
            v = [v]
        if not isinstance(v, (list, tuple)):
            raise ValueError('dates must be a date or a list of dates')
        return [to_datetime(d) for d in v]

    @field_validator('dates')
    @classmethod
    def dates_within_limit(cls, v):
        if not v:
            raise ValueError('At least one date is required')
        if len(v) > MAX_ITEMS_PER_REQUEST:
            raise ValueError(f'Too many dates ({len(v)}). Max {MAX_ITEMS_PER_REQUEST} per request.')
        return v

    @model_validator(mode='after')
    def one_fiscal_year_source(self):
        if self.company_id and self.fiscal_year_end is not None:
            raise ValueError('Send either company_id or fiscal_year_end, not both')
        return self


class CompanyCalendar(BaseModel):
    """A company's fiscal calendar. A missing day means the month's last day."""
    id: str
    name: str = ""
    fiscal_year_end_month: int = Field(default=12, ge=1, le=12)
    fiscal_year_end_day: Optional[int] = Field(default=None, ge=1, le=31)
    business_days: Optional[BusinessDayConstraint] = None

    @model_validator(mode='before')
    @classmethod
    def flatten_fiscal_year_end(cls, v):
        if isinstance(v, dict) and isinstance(v.get('fiscal_year_end'), dict):
            v = dict(v)
            fye = v.pop('fiscal_year_end')
            v.setdefault('fiscal_year_end_month', fye.get('month', 12))
            v.setdefault('fiscal_year_end_day', fye.get('day'))
        return v

    def fiscal_year_end(self, year: int) -> datetime:
        """Fiscal year end falling in the given calendar year."""
        last = days_in_month(year, self.fiscal_year_end_month)
        day = min(self.fiscal_year_end_day or last, last)
        return datetime(year, self.fiscal_year_end_month, day)


class QuarterPeriod(BaseModel):
    """First and last instant of one fiscal quarter."""
    quarter: int
    fiscal_year: int
    start: datetime
    end: datetime

    def contains(self, value: datetime) -> bool:
        return self.start <= value <= self.end

    def format_label(self) -> str:
        """Return label like Q2-FY2025."""
        return f"Q{self.quarter}-FY{self.fiscal_year}"
