"""
Payroll period and fiscal-year helpers.

Pure date arithmetic used by proration, LST projection and YTD keying:
period bounds, day counts, Monday-Friday working days and the fiscal year
(July-June in Uganda; the start month is configurable).
"""

from __future__ import annotations

import calendar
from datetime import date, timedelta


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def period_bounds(year: int, month: int) -> tuple[date, date]:
    """First and last calendar day of the month."""
    return date(year, month, 1), date(year, month, days_in_month(year, month))


def period_string(year: int, month: int) -> str:
    """``YYYY-MM`` key used for last-processed-period tracking."""
    return f"{year:04d}-{month:02d}"


def period_code(year: int, month: int) -> str:
    """``YYYYMM`` compact form used in document numbers."""
    return f"{year:04d}{month:02d}"


def working_days_between(start: date, end: date) -> int:
    """Count Monday-Friday days in [start, end]; 0 when end < start."""
    if end < start:
        return 0
    total_days = (end - start).days + 1
    full_weeks, remainder = divmod(total_days, 7)
    count = full_weeks * 5
    day = start + timedelta(days=full_weeks * 7)
    for _ in range(remainder):
        if day.weekday() < 5:
            count += 1
        day += timedelta(days=1)
    return count


def working_days_in_month(year: int, month: int) -> int:
    start, end = period_bounds(year, month)
    return working_days_between(start, end)


def fiscal_year_start(year: int, month: int, start_month: int = 7) -> int:
    """Calendar year in which the fiscal year containing (year, month) began."""
    return year if month >= start_month else year - 1


def fiscal_year_label(year: int, month: int, start_month: int = 7) -> str:
    """
    Fiscal year key such as ``"2024-2025"``.

    A January-start fiscal year is labelled with its single calendar year.
    """
    first = fiscal_year_start(year, month, start_month)
    if start_month == 1:
        return str(first)
    return f"{first}-{first + 1}"


def remaining_months_in_fiscal_year(year: int, month: int, start_month: int = 7) -> int:
    """
    Months left in the fiscal year, counting the current month.

    July -> 12 and June -> 1 for a July-start year.
    """
    months_elapsed = (month - start_month) % 12
    return 12 - months_elapsed


def age_on(birth_date: date, on: date) -> int:
    years = on.year - birth_date.year
    if (on.month, on.day) < (birth_date.month, birth_date.day):
        years -= 1
    return years
