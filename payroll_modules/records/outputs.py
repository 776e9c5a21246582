"""
Payroll outputs (``payroll_modules.records.outputs``).

Derived, read-only views over calculated payroll records:

* payslip data (numbered ``PS-{employee_number}-{YYYYMM}``, net pay in words),
* bank and mobile-money transfer lines (file formatting is left to the caller),
* PAYE and NSSF return data,
* per-period payroll summary by department, payment method and bank.

The builders are pure functions over ``EmployeePayroll`` records;
``PayrollOutputService`` loads the records and employee identifiers.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Mapping, Sequence
from uuid import UUID

from payroll_engines.partition import UNKNOWN_BANK, PaymentMethod
from payroll_engines.periods import period_code
from payroll_engines.words import amount_in_words
from payroll_kernel.domain.rounding import ZERO
from payroll_kernel.logging_config import get_logger
from payroll_kernel.selectors.base import BaseSelector
from payroll_modules.records.models import EarningType, Employee, EmployeePayroll, PayrollStatus
from payroll_modules.records.selectors import PayrollRecordSelector
from payroll_modules.records.sources import EmployeeDirectory

logger = get_logger("modules.records.outputs")


@dataclass(frozen=True)
class CompanyInfo:
    name: str
    tin: str
    address: str = ""
    nssf_employer_number: str = ""


# ---------------------------------------------------------------------------
# Payslips
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PayslipLine:
    description: str
    amount: Decimal


@dataclass(frozen=True)
class Payslip:
    payslip_number: str
    company_name: str
    company_tin: str
    employee_name: str
    employee_number: str
    department: str | None
    position: str | None
    nssf_number: str | None
    tin_number: str | None
    pay_period: str
    payment_date: date
    basic_salary: Decimal
    earnings: tuple[PayslipLine, ...]
    total_earnings: Decimal
    deductions: tuple[PayslipLine, ...]
    total_deductions: Decimal
    net_pay: Decimal
    net_pay_words: str
    ytd_gross: Decimal
    ytd_paye: Decimal
    ytd_nssf: Decimal
    ytd_net_pay: Decimal
    payment_method: str
    bank_details: str | None
    generated_at: datetime | None = None


def payslip_number(record: EmployeePayroll) -> str:
    return f"PS-{record.employee_number}-{period_code(record.year, record.month)}"


def transfer_reference(record: EmployeePayroll) -> str:
    return f"SAL-{period_code(record.year, record.month)}-{record.employee_number}"


def pay_period_label(year: int, month: int) -> str:
    return f"{calendar.month_name[month]} {year}"


def mask_account_number(account_number: str | None) -> str | None:
    """Keep the last four digits visible."""
    if not account_number or len(account_number) < 4:
        return account_number
    return "*" * (len(account_number) - 4) + account_number[-4:]


def describe_payment_method(record: EmployeePayroll) -> str:
    details = record.payment_details
    if details.method is PaymentMethod.BANK_TRANSFER:
        return f"Bank Transfer - {details.bank_name}" if details.bank_name else "Bank Transfer"
    if details.method is PaymentMethod.MOBILE_MONEY:
        if details.mobile_provider:
            return f"Mobile Money - {details.mobile_provider.upper()}"
        return "Mobile Money"
    return details.method.value.replace("_", " ").title()


def generate_payslip(
    record: EmployeePayroll,
    company: CompanyInfo,
    employee: Employee | None = None,
    generated_at: datetime | None = None,
) -> Payslip:
    details = record.payment_details
    bank_details = None
    if details.method is PaymentMethod.BANK_TRANSFER and details.bank_name:
        bank_details = f"{details.bank_name} - {mask_account_number(details.account_number)}"

    return Payslip(
        payslip_number=payslip_number(record),
        company_name=company.name,
        company_tin=company.tin,
        employee_name=record.employee_name,
        employee_number=record.employee_number,
        department=record.department_name,
        position=record.position,
        nssf_number=employee.nssf_number if employee is not None else None,
        tin_number=employee.tin_number if employee is not None else None,
        pay_period=pay_period_label(record.year, record.month),
        payment_date=record.payment_date,
        basic_salary=record.basic_salary,
        earnings=tuple(
            PayslipLine(e.description, e.amount)
            for e in record.earnings
        ),
        total_earnings=record.total_earnings,
        deductions=tuple(PayslipLine(d.description, d.amount) for d in record.deductions),
        total_deductions=record.total_deductions,
        net_pay=record.net_pay,
        net_pay_words=amount_in_words(record.net_pay),
        ytd_gross=record.ytd.gross_earnings,
        ytd_paye=record.ytd.paye,
        ytd_nssf=record.ytd.nssf_employee,
        ytd_net_pay=record.ytd.net_pay,
        payment_method=describe_payment_method(record),
        bank_details=bank_details,
        generated_at=generated_at,
    )


# ---------------------------------------------------------------------------
# Transfers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TransferLine:
    payroll_id: UUID
    employee_number: str
    employee_name: str
    method: PaymentMethod
    account_name: str
    amount: Decimal
    reference: str
    narration: str
    bank_name: str | None = None
    account_number: str | None = None
    mobile_provider: str | None = None
    mobile_number: str | None = None


def transfer_lines(
    records: Iterable[EmployeePayroll],
    method: PaymentMethod,
    bank_name: str | None = None,
    provider: str | None = None,
) -> list[TransferLine]:
    """Transfer instructions for one payment method, optionally one bank/provider."""
    lines = []
    for record in records:
        details = record.payment_details
        if details.method is not method:
            continue
        if bank_name is not None and (details.bank_name or UNKNOWN_BANK) != bank_name:
            continue
        if provider is not None and (details.mobile_provider or "").lower() != provider.lower():
            continue
        lines.append(
            TransferLine(
                payroll_id=record.id,
                employee_number=record.employee_number,
                employee_name=record.employee_name,
                method=method,
                account_name=details.account_name or record.employee_name,
                amount=record.net_pay,
                reference=transfer_reference(record),
                narration=f"Salary {pay_period_label(record.year, record.month)}",
                bank_name=details.bank_name,
                account_number=details.account_number,
                mobile_provider=details.mobile_provider,
                mobile_number=details.mobile_number,
            )
        )
    return lines


# ---------------------------------------------------------------------------
# Regulatory returns
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PAYEReturnEntry:
    employee_number: str
    employee_name: str
    tin_number: str
    gross_pay: Decimal
    taxable_pay: Decimal
    paye: Decimal


@dataclass(frozen=True)
class PAYEReturn:
    period: str
    employer_tin: str
    employer_name: str
    total_employees: int
    total_gross_emoluments: Decimal
    total_taxable_pay: Decimal
    total_paye: Decimal
    entries: tuple[PAYEReturnEntry, ...]


@dataclass(frozen=True)
class NSSFReturnEntry:
    employee_number: str
    employee_name: str
    nssf_number: str
    wages: Decimal
    employee_contribution: Decimal
    employer_contribution: Decimal

    @property
    def total_contribution(self) -> Decimal:
        return self.employee_contribution + self.employer_contribution


@dataclass(frozen=True)
class NSSFReturn:
    period: str
    employer_number: str
    employer_name: str
    total_employees: int
    total_wages: Decimal
    total_employee_contribution: Decimal
    total_employer_contribution: Decimal
    total_contribution: Decimal
    entries: tuple[NSSFReturnEntry, ...]


def _return_period(records: Sequence[EmployeePayroll]) -> str:
    return records[0].period if records else ""


def paye_return(
    records: Sequence[EmployeePayroll],
    company: CompanyInfo,
    tin_numbers: Mapping[str, str] | None = None,
) -> PAYEReturn:
    tin_numbers = tin_numbers or {}
    entries = tuple(
        PAYEReturnEntry(
            employee_number=r.employee_number,
            employee_name=r.employee_name,
            tin_number=tin_numbers.get(r.employee_id, ""),
            gross_pay=r.gross_pay,
            taxable_pay=r.taxable_income,
            paye=r.paye.net_paye,
        )
        for r in records
    )
    return PAYEReturn(
        period=_return_period(records),
        employer_tin=company.tin,
        employer_name=company.name,
        total_employees=len(entries),
        total_gross_emoluments=sum((e.gross_pay for e in entries), ZERO),
        total_taxable_pay=sum((e.taxable_pay for e in entries), ZERO),
        total_paye=sum((e.paye for e in entries), ZERO),
        entries=entries,
    )


def nssf_return(
    records: Sequence[EmployeePayroll],
    company: CompanyInfo,
    nssf_numbers: Mapping[str, str] | None = None,
) -> NSSFReturn:
    """NSSF schedule; exempt employees are left out."""
    nssf_numbers = nssf_numbers or {}
    entries = tuple(
        NSSFReturnEntry(
            employee_number=r.employee_number,
            employee_name=r.employee_name,
            nssf_number=nssf_numbers.get(r.employee_id, ""),
            wages=r.nssf.contribution_base,
            employee_contribution=r.nssf.employee_contribution,
            employer_contribution=r.nssf.employer_contribution,
        )
        for r in records
        if not r.nssf.is_exempt
    )
    employee_total = sum((e.employee_contribution for e in entries), ZERO)
    employer_total = sum((e.employer_contribution for e in entries), ZERO)
    return NSSFReturn(
        period=_return_period(records),
        employer_number=company.nssf_employer_number,
        employer_name=company.name,
        total_employees=len(entries),
        total_wages=sum((e.wages for e in entries), ZERO),
        total_employee_contribution=employee_total,
        total_employer_contribution=employer_total,
        total_contribution=employee_total + employer_total,
        entries=entries,
    )


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SummaryGroup:
    key: str
    employee_count: int
    gross_pay: Decimal
    total_deductions: Decimal
    net_pay: Decimal


@dataclass(frozen=True)
class PayrollSummary:
    subsidiary_id: str
    year: int
    month: int
    employee_count: int
    gross_pay: Decimal
    basic_salary: Decimal
    allowances: Decimal
    overtime: Decimal
    paye: Decimal
    nssf_employee: Decimal
    nssf_employer: Decimal
    lst: Decimal
    other_deductions: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    by_department: tuple[SummaryGroup, ...]
    by_payment_method: tuple[SummaryGroup, ...]
    by_bank: tuple[SummaryGroup, ...]


def _group(records: Iterable[EmployeePayroll], key) -> tuple[SummaryGroup, ...]:
    groups: dict[str, list[EmployeePayroll]] = {}
    for record in records:
        groups.setdefault(key(record), []).append(record)
    return tuple(
        SummaryGroup(
            key=name,
            employee_count=len(members),
            gross_pay=sum((m.gross_pay for m in members), ZERO),
            total_deductions=sum((m.total_deductions for m in members), ZERO),
            net_pay=sum((m.net_pay for m in members), ZERO),
        )
        for name, members in sorted(groups.items())
    )


def summarize_payroll(
    records: Sequence[EmployeePayroll],
    subsidiary_id: str,
    year: int,
    month: int,
) -> PayrollSummary:
    def total(values: Iterable[Decimal]) -> Decimal:
        return sum(values, ZERO)

    def earned(earning_type: EarningType) -> Decimal:
        return total(
            e.amount for r in records for e in r.earnings if e.earning_type is earning_type
        )

    return PayrollSummary(
        subsidiary_id=subsidiary_id,
        year=year,
        month=month,
        employee_count=len(records),
        gross_pay=total(r.gross_pay for r in records),
        basic_salary=earned(EarningType.BASIC_SALARY),
        allowances=earned(EarningType.ALLOWANCE),
        overtime=earned(EarningType.OVERTIME),
        paye=total(r.paye.net_paye for r in records),
        nssf_employee=total(r.nssf.employee_contribution for r in records),
        nssf_employer=total(r.nssf.employer_contribution for r in records),
        lst=total(r.lst.monthly_amount for r in records),
        other_deductions=total(r.total_voluntary_deductions for r in records),
        total_deductions=total(r.total_deductions for r in records),
        net_pay=total(r.net_pay for r in records),
        by_department=_group(records, lambda r: r.department_name or "Unassigned"),
        by_payment_method=_group(records, lambda r: r.payment_details.method.value),
        by_bank=_group(
            (r for r in records if r.payment_details.method is PaymentMethod.BANK_TRANSFER),
            lambda r: r.payment_details.bank_name or UNKNOWN_BANK,
        ),
    )


# Reversed records no longer count towards a period.
REPORTABLE_STATUSES = (
    PayrollStatus.CALCULATED,
    PayrollStatus.REVIEWED,
    PayrollStatus.APPROVED,
    PayrollStatus.PAID,
)


class PayrollOutputService(BaseSelector):
    """Loads records (and employee identifiers) for the output builders."""

    def __init__(self, session, directory: EmployeeDirectory | None = None):
        super().__init__(session)
        self._records = PayrollRecordSelector(session)
        self._directory = directory

    def _employees(self, records: Sequence[EmployeePayroll]) -> dict[str, Employee]:
        if self._directory is None or not records:
            return {}
        employees = self._directory.get_employees([r.employee_id for r in records])
        return {e.employee_id: e for e in employees}

    def payslip(
        self,
        payroll_id: UUID,
        company: CompanyInfo,
        generated_at: datetime | None = None,
    ) -> Payslip:
        record = self._records.get(payroll_id)
        employee = self._employees([record]).get(record.employee_id)
        return generate_payslip(record, company, employee, generated_at)

    def batch_payslips(
        self,
        batch_id: UUID,
        company: CompanyInfo,
        generated_at: datetime | None = None,
    ) -> list[Payslip]:
        records = self._records.list_for_batch(batch_id)
        employees = self._employees(records)
        payslips = [
            generate_payslip(r, company, employees.get(r.employee_id), generated_at)
            for r in records
        ]
        logger.info(
            "payslips_generated",
            extra={"batch_id": str(batch_id), "count": len(payslips)},
        )
        return payslips

    def period_records(self, subsidiary_id: str, year: int, month: int) -> list[EmployeePayroll]:
        return self._records.list_for_period(subsidiary_id, year, month, REPORTABLE_STATUSES)

    def paye_return(
        self, subsidiary_id: str, year: int, month: int, company: CompanyInfo,
    ) -> PAYEReturn:
        records = self.period_records(subsidiary_id, year, month)
        employees = self._employees(records)
        return paye_return(
            records,
            company,
            {i: e.tin_number for i, e in employees.items() if e.tin_number},
        )

    def nssf_return(
        self, subsidiary_id: str, year: int, month: int, company: CompanyInfo,
    ) -> NSSFReturn:
        records = self.period_records(subsidiary_id, year, month)
        employees = self._employees(records)
        return nssf_return(
            records,
            company,
            {i: e.nssf_number for i, e in employees.items() if e.nssf_number},
        )

    def period_summary(self, subsidiary_id: str, year: int, month: int) -> PayrollSummary:
        records = self.period_records(subsidiary_id, year, month)
        return summarize_payroll(records, subsidiary_id, year, month)
