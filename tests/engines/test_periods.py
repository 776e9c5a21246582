"""Tests for period and fiscal-year helpers."""

from datetime import date

import pytest

from payroll_engines.periods import (
    age_on,
    days_in_month,
    fiscal_year_label,
    period_bounds,
    period_code,
    period_string,
    remaining_months_in_fiscal_year,
    working_days_between,
    working_days_in_month,
)


class TestPeriodBounds:

    def test_leap_february(self):
        assert days_in_month(2024, 2) == 29
        assert period_bounds(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))

    def test_period_keys(self):
        assert period_string(2024, 9) == "2024-09"
        assert period_code(2024, 9) == "202409"


class TestFiscalYear:

    @pytest.mark.parametrize(
        "year, month, expected",
        [
            (2024, 7, "2024-2025"),
            (2024, 9, "2024-2025"),
            (2025, 3, "2024-2025"),
            (2024, 6, "2023-2024"),
        ],
    )
    def test_july_start_label(self, year, month, expected):
        assert fiscal_year_label(year, month) == expected

    def test_january_start_label(self):
        assert fiscal_year_label(2024, 9, start_month=1) == "2024"

    @pytest.mark.parametrize(
        "month, expected",
        [(7, 12), (9, 10), (12, 7), (1, 6), (6, 1)],
    )
    def test_remaining_months(self, month, expected):
        assert remaining_months_in_fiscal_year(2024, month) == expected


class TestWorkingDays:

    def test_september_2024(self):
        assert working_days_in_month(2024, 9) == 21

    def test_february_2024(self):
        assert working_days_in_month(2024, 2) == 21

    def test_weekend_only_range(self):
        assert working_days_between(date(2024, 9, 7), date(2024, 9, 8)) == 0

    def test_reversed_range(self):
        assert working_days_between(date(2024, 9, 10), date(2024, 9, 1)) == 0


class TestAge:

    def test_day_before_birthday(self):
        assert age_on(date(1990, 4, 12), date(2024, 4, 11)) == 33

    def test_on_birthday(self):
        assert age_on(date(1990, 4, 12), date(2024, 4, 12)) == 34
