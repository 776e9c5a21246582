"""
Payroll Record ORM Persistence Models (``payroll_modules.records.orm``).

Responsibility:
    SQLAlchemy models persisting ``EmployeePayroll`` and ``YearToDate``.
    Scalar totals live in Numeric columns so batches and reports can query
    them; line items, tax breakdowns and YTD snapshots are JSON documents.

Architecture position:
    **Modules layer** -- persistence companions to the frozen DTOs in
    ``payroll_modules.records.models``.  Inherits ``TrackedBase``.

Invariants enforced:
    - One payroll record per (employee, year, month).
    - One YTD row per (employee, fiscal year).
    - Both tables are optimistically versioned (``version_id_col``); every
      UPDATE increments ``version`` and a stale UPDATE fails.
    - Money columns are Numeric(38, 9) and JSON money is stored as strings.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, Boolean, Date, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_engines.proration import ProrationResult
from payroll_engines.tax import LSTResult, NSSFResult, PAYEResult
from payroll_kernel.db.base import TrackedBase
from payroll_kernel.db.documents import from_document, to_document


class EmployeePayrollModel(TrackedBase):
    """
    ORM model for ``EmployeePayroll``.

    Contract:
        ``payroll_period_id`` links the record to at most one batch; batches
        never delete records.
    """

    __tablename__ = "payroll_employee_payrolls"

    employee_id: Mapped[str] = mapped_column(String(64), nullable=False)
    employee_number: Mapped[str] = mapped_column(String(50), nullable=False)
    employee_name: Mapped[str] = mapped_column(String(200), nullable=False)
    subsidiary_id: Mapped[str] = mapped_column(String(64), nullable=False)
    department_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    department_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    position: Mapped[str | None] = mapped_column(String(200), nullable=True)
    contract_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    fiscal_year: Mapped[str] = mapped_column(String(20), nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_frequency: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)
    bank_name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False)
    payroll_period_id: Mapped[UUID | None] = mapped_column(nullable=True)

    basic_salary: Mapped[Decimal] = mapped_column(nullable=False)
    total_earnings: Mapped[Decimal] = mapped_column(nullable=False)
    gross_pay: Mapped[Decimal] = mapped_column(nullable=False)
    taxable_income: Mapped[Decimal] = mapped_column(nullable=False)
    nssf_applicable_income: Mapped[Decimal] = mapped_column(nullable=False)
    paye_amount: Mapped[Decimal] = mapped_column(nullable=False)
    nssf_employee_amount: Mapped[Decimal] = mapped_column(nullable=False)
    nssf_employer_amount: Mapped[Decimal] = mapped_column(nullable=False)
    lst_amount: Mapped[Decimal] = mapped_column(nullable=False)
    total_statutory_deductions: Mapped[Decimal] = mapped_column(nullable=False)
    total_voluntary_deductions: Mapped[Decimal] = mapped_column(nullable=False)
    total_deductions: Mapped[Decimal] = mapped_column(nullable=False)
    net_pay: Mapped[Decimal] = mapped_column(nullable=False)

    proration: Mapped[dict] = mapped_column(JSON, nullable=False)
    earnings: Mapped[list] = mapped_column(JSON, nullable=False)
    deductions: Mapped[list] = mapped_column(JSON, nullable=False)
    paye_breakdown: Mapped[dict] = mapped_column(JSON, nullable=False)
    nssf_breakdown: Mapped[dict] = mapped_column(JSON, nullable=False)
    lst_breakdown: Mapped[dict] = mapped_column(JSON, nullable=False)
    payment_details: Mapped[dict] = mapped_column(JSON, nullable=False)
    ytd_snapshot: Mapped[dict] = mapped_column(JSON, nullable=False)
    ytd_contribution: Mapped[dict] = mapped_column(JSON, nullable=False)
    ytd_applied: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notes: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    calculated_by: Mapped[UUID | None] = mapped_column(nullable=True)
    calculated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    reviewed_by: Mapped[UUID | None] = mapped_column(nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    reversed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint("employee_id", "year", "month", name="uq_payroll_employee_period"),
        Index("idx_payroll_subsidiary_period", "subsidiary_id", "year", "month"),
        Index("idx_payroll_period_link", "payroll_period_id"),
        Index("idx_payroll_status", "status"),
    )

    def to_dto(self):
        from payroll_modules.records.models import (
            DeductionItem,
            EarningsItem,
            EmployeePayroll,
            PaymentDetails,
            PaymentFrequency,
            PayrollStatus,
            YearToDate,
            YTDContribution,
        )

        return EmployeePayroll(
            id=self.id,
            employee_id=self.employee_id,
            employee_number=self.employee_number,
            employee_name=self.employee_name,
            subsidiary_id=self.subsidiary_id,
            department_id=self.department_id,
            department_name=self.department_name,
            position=self.position,
            contract_id=self.contract_id,
            year=self.year,
            month=self.month,
            fiscal_year=self.fiscal_year,
            period_start=self.period_start,
            period_end=self.period_end,
            payment_date=self.payment_date,
            payment_frequency=PaymentFrequency(self.payment_frequency),
            proration=from_document(ProrationResult, self.proration),
            basic_salary=self.basic_salary,
            earnings=tuple(from_document(EarningsItem, e) for e in self.earnings),
            total_earnings=self.total_earnings,
            gross_pay=self.gross_pay,
            taxable_income=self.taxable_income,
            nssf_applicable_income=self.nssf_applicable_income,
            paye=from_document(PAYEResult, self.paye_breakdown),
            nssf=from_document(NSSFResult, self.nssf_breakdown),
            lst=from_document(LSTResult, self.lst_breakdown),
            deductions=tuple(from_document(DeductionItem, d) for d in self.deductions),
            total_statutory_deductions=self.total_statutory_deductions,
            total_voluntary_deductions=self.total_voluntary_deductions,
            total_deductions=self.total_deductions,
            net_pay=self.net_pay,
            payment_details=from_document(PaymentDetails, self.payment_details),
            ytd=from_document(YearToDate, self.ytd_snapshot),
            ytd_contribution=from_document(YTDContribution, self.ytd_contribution),
            status=PayrollStatus(self.status),
            version=self.version,
            ytd_applied=self.ytd_applied,
            payroll_period_id=self.payroll_period_id,
            notes=tuple(self.notes or ()),
            calculated_by=self.calculated_by,
            calculated_at=self.calculated_at,
            reviewed_by=self.reviewed_by,
            reviewed_at=self.reviewed_at,
            approved_by=self.approved_by,
            approved_at=self.approved_at,
            paid_at=self.paid_at,
            reversed_at=self.reversed_at,
        )

    def apply_dto(self, dto) -> None:
        """Copy every calculated field of ``dto`` onto this row (not id/version)."""
        self.employee_id = dto.employee_id
        self.employee_number = dto.employee_number
        self.employee_name = dto.employee_name
        self.subsidiary_id = dto.subsidiary_id
        self.department_id = dto.department_id
        self.department_name = dto.department_name
        self.position = dto.position
        self.contract_id = dto.contract_id
        self.year = dto.year
        self.month = dto.month
        self.fiscal_year = dto.fiscal_year
        self.period_start = dto.period_start
        self.period_end = dto.period_end
        self.payment_date = dto.payment_date
        self.payment_frequency = dto.payment_frequency.value
        self.payment_method = dto.payment_details.method.value
        self.bank_name = dto.payment_details.bank_name
        self.status = dto.status.value
        self.payroll_period_id = dto.payroll_period_id
        self.basic_salary = dto.basic_salary
        self.total_earnings = dto.total_earnings
        self.gross_pay = dto.gross_pay
        self.taxable_income = dto.taxable_income
        self.nssf_applicable_income = dto.nssf_applicable_income
        self.paye_amount = dto.paye.net_paye
        self.nssf_employee_amount = dto.nssf.employee_contribution
        self.nssf_employer_amount = dto.nssf.employer_contribution
        self.lst_amount = dto.lst.monthly_amount
        self.total_statutory_deductions = dto.total_statutory_deductions
        self.total_voluntary_deductions = dto.total_voluntary_deductions
        self.total_deductions = dto.total_deductions
        self.net_pay = dto.net_pay
        self.proration = to_document(dto.proration)
        self.earnings = to_document(dto.earnings)
        self.deductions = to_document(dto.deductions)
        self.paye_breakdown = to_document(dto.paye)
        self.nssf_breakdown = to_document(dto.nssf)
        self.lst_breakdown = to_document(dto.lst)
        self.payment_details = to_document(dto.payment_details)
        self.ytd_snapshot = to_document(dto.ytd)
        self.ytd_contribution = to_document(dto.ytd_contribution)
        self.ytd_applied = dto.ytd_applied
        self.notes = list(dto.notes)
        self.calculated_by = dto.calculated_by
        self.calculated_at = dto.calculated_at
        self.reviewed_by = dto.reviewed_by
        self.reviewed_at = dto.reviewed_at
        self.approved_by = dto.approved_by
        self.approved_at = dto.approved_at
        self.paid_at = dto.paid_at
        self.reversed_at = dto.reversed_at

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> EmployeePayrollModel:
        model = cls(id=dto.id, created_by_id=created_by_id)
        model.apply_dto(dto)
        return model


class YearToDateModel(TrackedBase):
    """
    ORM model for ``YearToDate`` -- one employee's fiscal-year aggregate.

    Contract:
        Updated only by whole-period ``apply``/``revert`` moves under the
        per-(employee, fiscal year) lock and the row version.
    """

    __tablename__ = "payroll_year_to_date"

    employee_id: Mapped[str] = mapped_column(String(64), nullable=False)
    fiscal_year: Mapped[str] = mapped_column(String(20), nullable=False)
    gross_earnings: Mapped[Decimal] = mapped_column(nullable=False)
    paye: Mapped[Decimal] = mapped_column(nullable=False)
    nssf_employee: Mapped[Decimal] = mapped_column(nullable=False)
    lst: Mapped[Decimal] = mapped_column(nullable=False)
    net_pay: Mapped[Decimal] = mapped_column(nullable=False)
    periods_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_processed_period: Mapped[str | None] = mapped_column(String(7), nullable=True)
    totals: Mapped[dict] = mapped_column(JSON, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint("employee_id", "fiscal_year", name="uq_payroll_ytd_employee_year"),
    )

    def to_dto(self):
        from payroll_modules.records.models import YearToDate

        return from_document(YearToDate, self.totals)

    def apply_dto(self, dto) -> None:
        self.employee_id = dto.employee_id
        self.fiscal_year = dto.fiscal_year
        self.gross_earnings = dto.gross_earnings
        self.paye = dto.paye
        self.nssf_employee = dto.nssf_employee
        self.lst = dto.lst
        self.net_pay = dto.net_pay
        self.periods_processed = dto.periods_processed
        self.last_processed_period = dto.last_processed_period
        self.totals = to_document(dto)

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> YearToDateModel:
        model = cls(created_by_id=created_by_id)
        model.apply_dto(dto)
        return model
