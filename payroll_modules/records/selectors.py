"""
Payroll record selectors (``payroll_modules.records.selectors``).

Read-only queries over payroll records and year-to-date aggregates.  Returns
frozen DTOs; never flushes or commits.
"""

from __future__ import annotations

from typing import Iterable, Sequence
from uuid import UUID

from sqlalchemy import select

from payroll_kernel.exceptions import PayrollRecordNotFoundError
from payroll_kernel.selectors.base import BaseSelector
from payroll_modules.records.models import EmployeePayroll, PayrollStatus, YearToDate
from payroll_modules.records.orm import EmployeePayrollModel, YearToDateModel


class PayrollRecordSelector(BaseSelector):
    """Queries over ``payroll_employee_payrolls`` and ``payroll_year_to_date``."""

    def get(self, payroll_id: UUID) -> EmployeePayroll:
        model = self.session.get(EmployeePayrollModel, payroll_id)
        if model is None:
            raise PayrollRecordNotFoundError(payroll_id)
        return model.to_dto()

    def find_for_period(self, employee_id: str, year: int, month: int) -> EmployeePayroll | None:
        model = self.session.scalars(
            select(EmployeePayrollModel).where(
                EmployeePayrollModel.employee_id == employee_id,
                EmployeePayrollModel.year == year,
                EmployeePayrollModel.month == month,
            )
        ).one_or_none()
        return model.to_dto() if model is not None else None

    def list_by_ids(self, payroll_ids: Sequence[UUID]) -> list[EmployeePayroll]:
        if not payroll_ids:
            return []
        models = self.session.scalars(
            select(EmployeePayrollModel).where(EmployeePayrollModel.id.in_(list(payroll_ids)))
        ).all()
        by_id = {m.id: m.to_dto() for m in models}
        return [by_id[i] for i in payroll_ids if i in by_id]

    def list_for_batch(self, batch_id: UUID) -> list[EmployeePayroll]:
        models = self.session.scalars(
            select(EmployeePayrollModel)
            .where(EmployeePayrollModel.payroll_period_id == batch_id)
            .order_by(EmployeePayrollModel.employee_number)
        ).all()
        return [m.to_dto() for m in models]

    def list_for_period(
        self,
        subsidiary_id: str,
        year: int,
        month: int,
        statuses: Iterable[PayrollStatus] | None = None,
    ) -> list[EmployeePayroll]:
        stmt = select(EmployeePayrollModel).where(
            EmployeePayrollModel.subsidiary_id == subsidiary_id,
            EmployeePayrollModel.year == year,
            EmployeePayrollModel.month == month,
        )
        if statuses is not None:
            stmt = stmt.where(EmployeePayrollModel.status.in_([s.value for s in statuses]))
        models = self.session.scalars(stmt.order_by(EmployeePayrollModel.employee_number)).all()
        return [m.to_dto() for m in models]

    def get_ytd(self, employee_id: str, fiscal_year: str) -> YearToDate:
        """Stored aggregate, or an all-zero one when nothing was processed yet."""
        model = self.session.scalars(
            select(YearToDateModel).where(
                YearToDateModel.employee_id == employee_id,
                YearToDateModel.fiscal_year == fiscal_year,
            )
        ).one_or_none()
        if model is None:
            return YearToDate(employee_id=employee_id, fiscal_year=fiscal_year)
        return model.to_dto()
