"""
Payroll Records Module (``payroll_modules.records``).

Responsibility
--------------
One employee's payroll for one period: earnings, PAYE/NSSF/LST, deductions,
net pay, year-to-date aggregates, and the outputs derived from them
(payslips, transfer files, statutory returns, period summary).

Architecture position
---------------------
**Modules layer** -- ``PayrollRecordBuilder`` orchestrates the pure engines
and persists through the ORM; callers own the transaction.
"""

from payroll_modules.records.models import (
    AdditionalDeduction,
    AdditionalEarning,
    Compensation,
    DeductionItem,
    EarningsItem,
    Employee,
    EmployeePayroll,
    PayrollOverrides,
    PayrollStatus,
    YearToDate,
)
from payroll_modules.records.service import PayrollRecordBuilder
from payroll_modules.records.sources import (
    EmployeeDirectory,
    InMemoryEmployeeDirectory,
    InMemoryOvertimeLoanSource,
    OvertimeLoanSource,
)
from payroll_modules.records.workflows import PAYROLL_RECORD_WORKFLOW

__all__ = [
    "AdditionalDeduction",
    "AdditionalEarning",
    "Compensation",
    "DeductionItem",
    "EarningsItem",
    "Employee",
    "EmployeeDirectory",
    "EmployeePayroll",
    "InMemoryEmployeeDirectory",
    "InMemoryOvertimeLoanSource",
    "OvertimeLoanSource",
    "PAYROLL_RECORD_WORKFLOW",
    "PayrollOverrides",
    "PayrollRecordBuilder",
    "PayrollStatus",
    "YearToDate",
]
