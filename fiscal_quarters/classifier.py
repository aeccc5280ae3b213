"""
Fiscal quarter classifier.
Maps dates to quarters of a fiscal year, directly from a fiscal year end or
through configurable company calendars.
"""

import json
import logging
import os
from datetime import date, datetime
from typing import Iterable, Optional

from .boundary import QUARTERS, quarter_boundary, quarter_period
from .dates import DateLike, resolve_fiscal_year_end, to_datetime
from .models import BusinessDayConstraint, CompanyCalendar, QuarterPeriod

logger = logging.getLogger(__name__)

_CONFIG_DIR = os.path.join(os.path.dirname(__file__), '..', 'config')

CONFIG_ENV_VAR = 'QUARTERS_COMPANIES_CONFIG'


def quarter_of(
    value: Optional[DateLike] = None,
    fiscal_year_end: Optional[DateLike] = None,
    now: Optional[datetime] = None,
) -> Optional[int]:
    """
    Return the quarter (1-4) of the fiscal year ending on fiscal_year_end
    that contains value, or None when value lies outside that fiscal year.
    """
    now = now or datetime.now()
    value = to_datetime(value if value is not None else now)
    fye = resolve_fiscal_year_end(fiscal_year_end, now)

    for quarter in QUARTERS:
        first = quarter_boundary(quarter, fye, first_day=True)
        last = quarter_boundary(quarter, fye, first_day=False)
        if first <= value <= last:
            return quarter

    logger.debug(f"{value} is outside the fiscal year ending {fye.date()}")
    return None


def quarters_of(
    values: Iterable[DateLike],
    fiscal_year_end: Optional[DateLike] = None,
    now: Optional[datetime] = None,
) -> list:
    """Element-wise quarter_of; dates outside the fiscal year give None."""
    if isinstance(values, (str, date)):
        values = [values]
    now = now or datetime.now()
    fye = resolve_fiscal_year_end(fiscal_year_end, now)
    return [quarter_of(v, fye, now) for v in values]


class FiscalQuarterClassifier:
    """
    Determines fiscal quarters from dates using company-specific calendars.

    Calendars are read from config/companies.json next to the package, which
    exists in a source checkout or editable install. Other installs must point
    QUARTERS_COMPANIES_CONFIG at the file or pass config_path.
    """

    def __init__(self, config_path: Optional[str] = None):
        if config_path is None:
            config_path = os.environ.get(CONFIG_ENV_VAR) or os.path.join(
                _CONFIG_DIR, 'companies.json')
        with open(config_path, encoding='utf-8') as f:
            config = json.load(f)
        self.companies = {
            c["id"]: CompanyCalendar.model_validate(c)
            for c in config.get("companies", [])
        }
        self.default_company = config.get("default_company", "")
        logger.debug(f"Loaded {len(self.companies)} fiscal calendar(s) from {config_path}")

    def calendar(self, company_id: Optional[str] = None) -> CompanyCalendar:
        """
        Calendar for company_id. Without an id the default company is used,
        falling back to a plain calendar year when none is configured.
        """
        if company_id is None:
            company = self.companies.get(self.default_company)
            return company or CompanyCalendar(id="calendar_year", name="Calendar year")

        company = self.companies.get(company_id)
        if company is None:
            raise ValueError(f'Unknown company: {company_id}')
        return company

    def fiscal_year_end_for(self, value: DateLike, company_id: Optional[str] = None) -> datetime:
        """Fiscal year end closing the fiscal year that contains value."""
        calendar = self.calendar(company_id)
        value = to_datetime(value)
        fye = calendar.fiscal_year_end(value.year)
        if value > fye.replace(hour=23, minute=59, second=59):
            fye = calendar.fiscal_year_end(value.year + 1)
        return fye

    def period(self, value: DateLike, company_id: Optional[str] = None) -> Optional[QuarterPeriod]:
        fye = self.fiscal_year_end_for(value, company_id)
        quarter = quarter_of(value, fye)
        if quarter is None:
            return None
        return quarter_period(quarter, fye)

    def classify(self, value: DateLike, company_id: Optional[str] = None) -> Optional[str]:
        """
        Returns fiscal quarter string like "Q1-FY2025" or None.

        The fiscal year is named after the calendar year its year end falls
        in, so with a September 30 year end October 2024 is Q1-FY2025.
        """
        period = self.period(value, company_id)
        return period.format_label() if period else None

    def boundary_constraint(self, company_id: Optional[str] = None) -> Optional[BusinessDayConstraint]:
        """Business-day rules configured for the company, if any."""
        return self.calendar(company_id).business_days
