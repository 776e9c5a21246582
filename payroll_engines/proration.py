"""
Proration Engine - worked-day fraction for partial pay periods.

Pure function: given employment dates, period bounds and unpaid leave,
returns how many days of the period are payable and the resulting factor.
Reductions compose: a mid-period joiner who also takes unpaid leave is
prorated by both.

Usage:
    from datetime import date
    from payroll_engines.proration import calculate_proration

    result = calculate_proration(
        period_start=date(2024, 9, 1),
        period_end=date(2024, 9, 30),
        joining_date=date(2024, 9, 15),
    )
    print(result.worked_days, result.factor)  # 16, 16/30
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum

from payroll_engines.periods import working_days_between
from payroll_kernel.domain.rounding import ZERO

_ONE = Decimal("1")


class ProrationMethod(str, Enum):
    CALENDAR_DAYS = "calendar_days"
    WORKING_DAYS = "working_days"


class ProrationReason(str, Enum):
    NONE = "none"
    JOINING = "joining"
    EXIT = "exit"
    UNPAID_LEAVE = "unpaid_leave"
    PARTIAL_MONTH = "partial_month"


@dataclass(frozen=True)
class ProrationResult:
    """
    Outcome of proration for one employee and period.

    ``factor`` is the unrounded ratio ``worked_days / total_days`` capped at 1;
    ``reason`` names the most specific cause for display only.
    """

    worked_days: int
    total_days: int
    factor: Decimal
    reason: ProrationReason
    method: ProrationMethod
    days_before_joining: int = 0
    days_after_exit: int = 0
    unpaid_leave_days: int = 0

    @property
    def is_prorated(self) -> bool:
        return self.factor < _ONE


def _count_days(start: date, end: date, method: ProrationMethod) -> int:
    if end < start:
        return 0
    if method is ProrationMethod.WORKING_DAYS:
        return working_days_between(start, end)
    return (end - start).days + 1


def proration_factor(worked_days: int, total_days: int) -> Decimal:
    """``min(worked / total, 1)``; 0 when total is not positive."""
    if total_days <= 0:
        return ZERO
    factor = Decimal(max(worked_days, 0)) / Decimal(total_days)
    return min(factor, _ONE)


def calculate_proration(
    period_start: date,
    period_end: date,
    joining_date: date | None = None,
    exit_date: date | None = None,
    unpaid_leave_days: int = 0,
    method: ProrationMethod | str = ProrationMethod.CALENDAR_DAYS,
    worked_days_override: int | None = None,
) -> ProrationResult:
    """
    Compute worked days and the proration factor.

    Preconditions: ``period_start <= period_end``.
    Postconditions: ``0 <= worked_days <= total_days`` and
        ``0 <= factor <= 1``.
    """
    method = ProrationMethod(method)
    total = _count_days(period_start, period_end, method)

    if worked_days_override is not None:
        worked = min(max(int(worked_days_override), 0), total)
        reason = ProrationReason.PARTIAL_MONTH if worked < total else ProrationReason.NONE
        return ProrationResult(
            worked_days=worked,
            total_days=total,
            factor=proration_factor(worked, total),
            reason=reason,
            method=method,
        )

    one_day = timedelta(days=1)
    before = 0
    if joining_date is not None and joining_date > period_start:
        last_unemployed = min(joining_date, period_end + one_day) - one_day
        before = _count_days(period_start, last_unemployed, method)

    after = 0
    if exit_date is not None and exit_date < period_end:
        first_after_exit = max(exit_date, period_start - one_day) + one_day
        after = _count_days(first_after_exit, period_end, method)

    leave = max(int(unpaid_leave_days or 0), 0)
    worked = max(total - before - after - leave, 0)

    if leave > 0:
        reason = ProrationReason.UNPAID_LEAVE
    elif after > 0:
        reason = ProrationReason.EXIT
    elif before > 0:
        reason = ProrationReason.JOINING
    else:
        reason = ProrationReason.NONE

    return ProrationResult(
        worked_days=worked,
        total_days=total,
        factor=proration_factor(worked, total),
        reason=reason,
        method=method,
        days_before_joining=before,
        days_after_exit=after,
        unpaid_leave_days=leave,
    )
