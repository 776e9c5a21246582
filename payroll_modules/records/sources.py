"""
External data sources (``payroll_modules.records.sources``).

Responsibility
--------------
Protocols for the two collaborators the payroll engine consumes -- the
employee/contract directory and the period-scoped overtime/loan records
source -- plus thread-safe in-memory implementations for local runs and
tests.

Architecture position
---------------------
**Modules layer** -- boundary definitions.  Services depend on the
protocols; HR systems provide real implementations.

Invariants enforced
-------------------
* ``InMemoryOvertimeLoanSource.recovery_history`` is append-only; loan
  progress is derived by replacing the frozen ``LoanRecovery`` value.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Protocol, Sequence, runtime_checkable
from uuid import UUID

from payroll_kernel.domain.rounding import ZERO
from payroll_kernel.logging_config import get_logger
from payroll_modules.records.models import (
    Employee,
    EmploymentStatus,
    LoanRecovery,
    LoanRecoveryEvent,
    LoanStatus,
    OvertimeEntry,
)

logger = get_logger("modules.records.sources")


@runtime_checkable
class EmployeeDirectory(Protocol):
    """Read access to employees and their active compensation."""

    def get_employee(self, employee_id: str) -> Employee | None: ...

    def get_employees(self, employee_ids: Sequence[str]) -> list[Employee]:
        """Fetch several employees; unknown ids are simply absent."""
        ...

    def list_employees(
        self,
        subsidiary_id: str,
        department_ids: Sequence[str] | None = None,
        statuses: Iterable[EmploymentStatus] | None = None,
    ) -> list[Employee]: ...


@runtime_checkable
class OvertimeLoanSource(Protocol):
    """Approved overtime and active loan recoveries."""

    def approved_overtime(
        self, employee_id: str, period_start: date, period_end: date
    ) -> list[OvertimeEntry]: ...

    def active_loans(self, employee_id: str) -> list[LoanRecovery]: ...

    def record_loan_recovery(
        self,
        loan_id: str,
        payroll_id: UUID,
        amount: Decimal,
        recorded_at: datetime,
    ) -> LoanRecovery: ...


class InMemoryEmployeeDirectory:
    """Dictionary-backed ``EmployeeDirectory``."""

    def __init__(self, employees: Iterable[Employee] = ()):
        self._employees: dict[str, Employee] = {e.employee_id: e for e in employees}
        self._lock = threading.Lock()
        self.queries: list[tuple[str, ...]] = []

    def add(self, employee: Employee) -> None:
        with self._lock:
            self._employees[employee.employee_id] = employee

    def get_employee(self, employee_id: str) -> Employee | None:
        with self._lock:
            return self._employees.get(employee_id)

    def get_employees(self, employee_ids: Sequence[str]) -> list[Employee]:
        with self._lock:
            self.queries.append(tuple(employee_ids))
            return [self._employees[i] for i in employee_ids if i in self._employees]

    def list_employees(
        self,
        subsidiary_id: str,
        department_ids: Sequence[str] | None = None,
        statuses: Iterable[EmploymentStatus] | None = None,
    ) -> list[Employee]:
        wanted = set(statuses) if statuses is not None else None
        with self._lock:
            found = [
                e for e in self._employees.values()
                if e.subsidiary_id == subsidiary_id
                and (not department_ids or e.department_id in department_ids)
                and (wanted is None or e.employment_status in wanted)
            ]
        return sorted(found, key=lambda e: e.employee_number)


class InMemoryOvertimeLoanSource:
    """Dictionary-backed ``OvertimeLoanSource`` with recovery history."""

    def __init__(
        self,
        overtime: Iterable[OvertimeEntry] = (),
        loans: Iterable[LoanRecovery] = (),
    ):
        self._overtime: list[OvertimeEntry] = list(overtime)
        self._loans: dict[str, LoanRecovery] = {loan.id: loan for loan in loans}
        self._lock = threading.Lock()
        self.recovery_history: list[LoanRecoveryEvent] = []

    def add_overtime(self, entry: OvertimeEntry) -> None:
        with self._lock:
            self._overtime.append(entry)

    def add_loan(self, loan: LoanRecovery) -> None:
        with self._lock:
            self._loans[loan.id] = loan

    def get_loan(self, loan_id: str) -> LoanRecovery:
        with self._lock:
            return self._loans[loan_id]

    def approved_overtime(
        self, employee_id: str, period_start: date, period_end: date
    ) -> list[OvertimeEntry]:
        with self._lock:
            return [
                o for o in self._overtime
                if o.employee_id == employee_id and period_start <= o.work_date <= period_end
            ]

    def active_loans(self, employee_id: str) -> list[LoanRecovery]:
        with self._lock:
            return [
                loan for loan in self._loans.values()
                if loan.employee_id == employee_id
                and loan.status is LoanStatus.ACTIVE
                and loan.balance_remaining > ZERO
            ]

    def record_loan_recovery(
        self,
        loan_id: str,
        payroll_id: UUID,
        amount: Decimal,
        recorded_at: datetime,
    ) -> LoanRecovery:
        """Advance a loan by one paid installment and append to the history."""
        with self._lock:
            loan = self._loans[loan_id]
            balance = max(ZERO, loan.balance_remaining - amount)
            updated = replace(
                loan,
                paid_installments=loan.paid_installments + 1,
                balance_remaining=balance,
                status=LoanStatus.COMPLETED if balance == ZERO else loan.status,
            )
            self._loans[loan_id] = updated
            self.recovery_history.append(
                LoanRecoveryEvent(
                    loan_id=loan_id,
                    payroll_id=payroll_id,
                    amount=amount,
                    installment_number=updated.paid_installments,
                    balance_after=balance,
                    recorded_at=recorded_at,
                )
            )
        logger.info(
            "loan_recovery_recorded",
            extra={
                "loan_id": loan_id,
                "payroll_id": str(payroll_id),
                "amount": str(amount),
                "balance_remaining": str(balance),
            },
        )
        return updated
