"""Tests for the quarter boundary calculator."""

import pytest
import sys
import os
from datetime import date, datetime, timedelta

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from fiscal_quarters.boundary import (
    fiscal_year_quarters, quarter_boundaries, quarter_boundary, quarter_period,
)
from fiscal_quarters.dates import days_in_month, is_month_end


def _end(year, month, day):
    return datetime(year, month, day, 23, 59, 59)


# fiscal year end -> [(first day, last day) for quarters 1..4]
EXPECTED_QUARTERS = {
    date(2023, 12, 31): [
        (date(2023, 1, 1), date(2023, 3, 31)),
        (date(2023, 4, 1), date(2023, 6, 30)),
        (date(2023, 7, 1), date(2023, 9, 30)),
        (date(2023, 10, 1), date(2023, 12, 31)),
    ],
    date(2021, 2, 28): [
        (date(2020, 3, 1), date(2020, 5, 31)),
        (date(2020, 6, 1), date(2020, 8, 31)),
        (date(2020, 9, 1), date(2020, 11, 30)),
        (date(2020, 12, 1), date(2021, 2, 28)),
    ],
    date(2024, 2, 29): [
        (date(2023, 3, 1), date(2023, 5, 31)),
        (date(2023, 6, 1), date(2023, 8, 31)),
        (date(2023, 9, 1), date(2023, 11, 30)),
        (date(2023, 12, 1), date(2024, 2, 29)),
    ],
    date(2024, 4, 30): [
        (date(2023, 5, 1), date(2023, 7, 31)),
        (date(2023, 8, 1), date(2023, 10, 31)),
        (date(2023, 11, 1), date(2024, 1, 31)),
        (date(2024, 2, 1), date(2024, 4, 30)),
    ],
    date(2024, 6, 30): [
        (date(2023, 7, 1), date(2023, 9, 30)),
        (date(2023, 10, 1), date(2023, 12, 31)),
        (date(2024, 1, 1), date(2024, 3, 31)),
        (date(2024, 4, 1), date(2024, 6, 30)),
    ],
    date(2024, 9, 30): [
        (date(2023, 10, 1), date(2023, 12, 31)),
        (date(2024, 1, 1), date(2024, 3, 31)),
        (date(2024, 4, 1), date(2024, 6, 30)),
        (date(2024, 7, 1), date(2024, 9, 30)),
    ],
    date(2023, 11, 30): [
        (date(2022, 12, 1), date(2023, 2, 28)),
        (date(2023, 3, 1), date(2023, 5, 31)),
        (date(2023, 6, 1), date(2023, 8, 31)),
        (date(2023, 9, 1), date(2023, 11, 30)),
    ],
    date(2024, 3, 31): [
        (date(2023, 4, 1), date(2023, 6, 30)),
        (date(2023, 7, 1), date(2023, 9, 30)),
        (date(2023, 10, 1), date(2023, 12, 31)),
        (date(2024, 1, 1), date(2024, 3, 31)),
    ],
    date(2024, 6, 15): [
        (date(2023, 6, 16), date(2023, 9, 15)),
        (date(2023, 9, 16), date(2023, 12, 15)),
        (date(2023, 12, 16), date(2024, 3, 15)),
        (date(2024, 3, 16), date(2024, 6, 15)),
    ],
    date(2025, 4, 5): [
        (date(2024, 4, 6), date(2024, 7, 5)),
        (date(2024, 7, 6), date(2024, 10, 5)),
        (date(2024, 10, 6), date(2025, 1, 5)),
        (date(2025, 1, 6), date(2025, 4, 5)),
    ],
}

FISCAL_YEAR_ENDS = list(EXPECTED_QUARTERS)


def _previous_fiscal_year_end(fye: date) -> date:
    if is_month_end(fye):
        return date(fye.year - 1, fye.month, days_in_month(fye.year - 1, fye.month))
    return date(fye.year - 1, fye.month, fye.day)


class TestCalendarYear:
    """Test the Dec 31 fiscal year end."""

    def test_q2_last_day(self):
        assert quarter_boundary(2, datetime(2023, 12, 31)) == _end(2023, 6, 30)

    def test_q2_first_day(self):
        assert quarter_boundary(2, datetime(2023, 12, 31), first_day=True) == datetime(2023, 4, 1)

    def test_q4_last_day_is_year_end(self):
        assert quarter_boundary(4, date(2023, 12, 31)) == _end(2023, 12, 31)

    def test_default_fiscal_year_end_uses_now(self, fixed_now):
        assert quarter_boundary(2, now=fixed_now) == _end(2023, 6, 30)
        assert quarter_boundary(1, first_day=True, now=fixed_now) == datetime(2023, 1, 1)

    def test_time_of_fiscal_year_end_is_ignored(self):
        assert quarter_boundary(3, datetime(2023, 12, 31, 8, 15)) == _end(2023, 9, 30)
        assert quarter_boundary(3, datetime(2023, 12, 31, 8, 15), first_day=True) == datetime(2023, 7, 1)

    def test_accepts_date_string(self):
        assert quarter_boundary(1, "2023-12-31") == _end(2023, 3, 31)


class TestShortMonthYearEnd:
    """Year ends on the last day of a month shorter than 31 days."""

    def test_february_28_q4(self):
        assert quarter_boundary(4, datetime(2021, 2, 28)) == _end(2021, 2, 28)

    def test_february_28_q1_first_day(self):
        """Q1 starts Mar 1, not on a drifted Feb 29/30."""
        assert quarter_boundary(1, datetime(2021, 2, 28), first_day=True) == datetime(2020, 3, 1)

    def test_february_28_q1_ends_on_month_end(self):
        assert quarter_boundary(1, datetime(2021, 2, 28)) == _end(2020, 5, 31)

    def test_june_30_keeps_month_ends(self):
        ends = quarter_boundaries([1, 2, 3, 4], datetime(2024, 6, 30))
        assert all(is_month_end(e) for e in ends)


class TestExpectedQuarters:

    @pytest.mark.parametrize("fye", FISCAL_YEAR_ENDS, ids=str)
    def test_boundaries(self, fye):
        for quarter, (first, last) in enumerate(EXPECTED_QUARTERS[fye], start=1):
            assert quarter_boundary(quarter, fye, first_day=True) == datetime(
                first.year, first.month, first.day)
            assert quarter_boundary(quarter, fye) == _end(last.year, last.month, last.day)


class TestBoundaryProperties:

    @pytest.mark.parametrize("fye", FISCAL_YEAR_ENDS, ids=str)
    def test_first_day_not_after_last_day(self, fye):
        for quarter in (1, 2, 3, 4):
            assert quarter_boundary(quarter, fye, first_day=True) <= quarter_boundary(quarter, fye)

    @pytest.mark.parametrize("fye", FISCAL_YEAR_ENDS, ids=str)
    def test_quarters_are_contiguous(self, fye):
        firsts = quarter_boundaries([1, 2, 3, 4], fye, first_day=True)
        lasts = quarter_boundaries([1, 2, 3, 4], fye)
        for i in range(3):
            assert firsts[i + 1] == lasts[i] + timedelta(seconds=1)

    @pytest.mark.parametrize("fye", FISCAL_YEAR_ENDS, ids=str)
    def test_quarters_span_one_fiscal_year(self, fye):
        previous = _previous_fiscal_year_end(fye)
        assert quarter_boundary(1, fye, first_day=True) == datetime(
            previous.year, previous.month, previous.day) + timedelta(days=1)
        assert quarter_boundary(4, fye) == _end(fye.year, fye.month, fye.day)

    def test_idempotent(self):
        first = quarter_boundary(3, date(2024, 4, 30), first_day=True)
        second = quarter_boundary(3, date(2024, 4, 30), first_day=True)
        assert first == second


class TestInvalidArguments:

    @pytest.mark.parametrize("quarter", [0, 5, -1, True, "1", 1.0, None])
    def test_rejects_invalid_quarter(self, quarter):
        with pytest.raises(ValueError, match="Quarter must be"):
            quarter_boundary(quarter, date(2023, 12, 31))

    def test_sequence_validated_before_computing(self):
        with pytest.raises(ValueError):
            quarter_boundaries([1, 7], date(2023, 12, 31))


class TestSequences:

    def test_order_preserved(self):
        result = quarter_boundaries([4, 1, 2], date(2023, 12, 31))
        assert result == [_end(2023, 12, 31), _end(2023, 3, 31), _end(2023, 6, 30)]

    def test_single_quarter(self):
        assert quarter_boundaries(3, date(2023, 12, 31), first_day=True) == [datetime(2023, 7, 1)]

    def test_empty_sequence(self):
        assert quarter_boundaries([], date(2023, 12, 31)) == []


class TestQuarterPeriods:

    def test_quarter_period(self):
        period = quarter_period(1, date(2024, 9, 30))
        assert period.start == datetime(2023, 10, 1)
        assert period.end == _end(2023, 12, 31)
        assert period.format_label() == "Q1-FY2024"
        assert period.contains(datetime(2023, 11, 11, 11, 11))

    def test_fiscal_year_quarters(self):
        periods = fiscal_year_quarters(date(2021, 2, 28))
        assert [p.quarter for p in periods] == [1, 2, 3, 4]
        assert periods[0].start == datetime(2020, 3, 1)
        assert periods[-1].end == _end(2021, 2, 28)
        assert {p.fiscal_year for p in periods} == {2021}
