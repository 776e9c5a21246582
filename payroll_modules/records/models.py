"""
Payroll Record Domain Models (``payroll_modules.records.models``).

Responsibility
--------------
Frozen dataclass value objects for one employee's payroll in one period:
the employee/contract inputs read from the directory, overtime and loan
inputs, earnings and deduction line items, year-to-date aggregates and the
finished ``EmployeePayroll`` record.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Produced by
``PayrollRecordBuilder``, persisted through ``payroll_modules.records.orm``.

Invariants enforced
-------------------
* All models are ``frozen=True``; updates go through ``dataclasses.replace``.
* All monetary fields are ``Decimal`` whole-shilling amounts.
* Allowance and deduction types are closed enums; their tax treatment and
  category come from the tables below, which cover every member.
* ``EmployeePayroll.net_pay == gross_pay - total_deductions``.

Audit relevance
---------------
Each record carries its tax breakdowns, proration details and the exact
year-to-date contribution it applied, so any figure on a payslip can be
re-derived from the record alone.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from payroll_engines.partition import PaymentMethod
from payroll_engines.proration import ProrationResult
from payroll_engines.tax import LSTResult, NSSFResult, PAYEResult
from payroll_kernel.domain.rounding import ZERO
from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.records.models")


# ---------------------------------------------------------------------------
# Employment enums
# ---------------------------------------------------------------------------


class EmploymentStatus(str, Enum):
    ACTIVE = "active"
    PROBATION = "probation"
    SUSPENDED = "suspended"
    NOTICE_PERIOD = "notice_period"
    ON_LEAVE = "on_leave"
    TERMINATED = "terminated"
    RESIGNED = "resigned"
    RETIRED = "retired"


# Only these statuses may be paid.
PAYABLE_EMPLOYMENT_STATUSES = frozenset({EmploymentStatus.ACTIVE, EmploymentStatus.ON_LEAVE})


class EmploymentType(str, Enum):
    PERMANENT = "permanent"
    CONTRACT = "contract"
    PROBATION = "probation"
    PART_TIME = "part_time"
    CASUAL = "casual"
    INTERN = "intern"
    CONSULTANT = "consultant"


class PaymentFrequency(str, Enum):
    MONTHLY = "monthly"


class PayrollStatus(str, Enum):
    """Payroll record lifecycle; linear, with reversal only from paid."""
    DRAFT = "draft"
    CALCULATED = "calculated"
    REVIEWED = "reviewed"
    APPROVED = "approved"
    PAID = "paid"
    REVERSED = "reversed"


# ---------------------------------------------------------------------------
# Earnings / allowance treatment
# ---------------------------------------------------------------------------


class EarningType(str, Enum):
    BASIC_SALARY = "basic_salary"
    ALLOWANCE = "allowance"
    OVERTIME = "overtime"
    BONUS = "bonus"
    COMMISSION = "commission"
    ARREARS = "arrears"
    OTHER = "other"


class AllowanceType(str, Enum):
    HOUSING = "housing"
    TRANSPORT = "transport"
    MEDICAL = "medical"
    LUNCH = "lunch"
    COMMUNICATION = "communication"
    HARDSHIP = "hardship"
    RESPONSIBILITY = "responsibility"
    OTHER = "other"


@dataclass(frozen=True)
class AllowanceTreatment:
    """How an allowance feeds PAYE and NSSF.

    ``tax_rate`` is the taxable share of the amount (1 = fully taxable).
    """
    taxable: bool
    tax_rate: Decimal
    nssf_applicable: bool


_FULL = Decimal("1")

ALLOWANCE_TREATMENTS: dict[AllowanceType, AllowanceTreatment] = {
    AllowanceType.HOUSING: AllowanceTreatment(True, _FULL, True),
    AllowanceType.TRANSPORT: AllowanceTreatment(True, _FULL, True),
    AllowanceType.MEDICAL: AllowanceTreatment(False, ZERO, False),
    AllowanceType.LUNCH: AllowanceTreatment(True, _FULL, False),
    AllowanceType.COMMUNICATION: AllowanceTreatment(True, _FULL, False),
    AllowanceType.HARDSHIP: AllowanceTreatment(True, _FULL, True),
    AllowanceType.RESPONSIBILITY: AllowanceTreatment(True, _FULL, True),
    AllowanceType.OTHER: AllowanceTreatment(True, _FULL, False),
}


# ---------------------------------------------------------------------------
# Deduction classification
# ---------------------------------------------------------------------------


class DeductionType(str, Enum):
    PAYE = "paye"
    NSSF_EMPLOYEE = "nssf_employee"
    LST = "lst"
    PENSION = "pension"
    LOAN = "loan"
    ADVANCE = "advance"
    SAVINGS = "savings"
    INSURANCE = "insurance"
    UNION = "union"
    SACCO = "sacco"
    GARNISHMENT = "garnishment"
    CHILD_SUPPORT = "child_support"
    MAINTENANCE = "maintenance"
    OVERPAYMENT = "overpayment"
    DAMAGE = "damage"
    OTHER = "other"


class DeductionCategory(str, Enum):
    STATUTORY = "statutory"
    VOLUNTARY = "voluntary"
    RECOVERY = "recovery"
    COURT = "court"


DEDUCTION_CATEGORIES: dict[DeductionType, DeductionCategory] = {
    DeductionType.PAYE: DeductionCategory.STATUTORY,
    DeductionType.NSSF_EMPLOYEE: DeductionCategory.STATUTORY,
    DeductionType.LST: DeductionCategory.STATUTORY,
    DeductionType.PENSION: DeductionCategory.VOLUNTARY,
    DeductionType.LOAN: DeductionCategory.RECOVERY,
    DeductionType.ADVANCE: DeductionCategory.RECOVERY,
    DeductionType.SAVINGS: DeductionCategory.VOLUNTARY,
    DeductionType.INSURANCE: DeductionCategory.VOLUNTARY,
    DeductionType.UNION: DeductionCategory.VOLUNTARY,
    DeductionType.SACCO: DeductionCategory.VOLUNTARY,
    DeductionType.GARNISHMENT: DeductionCategory.COURT,
    DeductionType.CHILD_SUPPORT: DeductionCategory.COURT,
    DeductionType.MAINTENANCE: DeductionCategory.COURT,
    DeductionType.OVERPAYMENT: DeductionCategory.RECOVERY,
    DeductionType.DAMAGE: DeductionCategory.RECOVERY,
    DeductionType.OTHER: DeductionCategory.VOLUNTARY,
}

# Computed by the tax calculator; never taken from the contract.
STATUTORY_DEDUCTION_TYPES = frozenset(
    {DeductionType.PAYE, DeductionType.NSSF_EMPLOYEE, DeductionType.LST}
)


# ---------------------------------------------------------------------------
# Directory inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BankAccount:
    bank_name: str
    account_number: str
    account_name: str
    branch_name: str | None = None


@dataclass(frozen=True)
class MobileMoneyAccount:
    provider: str
    phone_number: str
    registered_name: str


@dataclass(frozen=True)
class ContractAllowance:
    allowance_type: AllowanceType
    amount: Decimal
    description: str | None = None


@dataclass(frozen=True)
class ContractDeduction:
    deduction_type: DeductionType
    amount: Decimal
    description: str | None = None
    is_mandatory: bool = False
    reference: str | None = None


@dataclass(frozen=True)
class Compensation:
    """Active contract compensation structure."""
    contract_id: str
    base_salary: Decimal
    allowances: tuple[ContractAllowance, ...] = ()
    deductions: tuple[ContractDeduction, ...] = ()
    payment_frequency: PaymentFrequency = PaymentFrequency.MONTHLY

    def __post_init__(self):
        if self.base_salary < 0:
            logger.warning(
                "compensation_negative_base_salary",
                extra={"contract_id": self.contract_id, "base_salary": str(self.base_salary)},
            )
            raise ValueError("base_salary cannot be negative")


@dataclass(frozen=True)
class Employee:
    """An employee as returned by the employee/contract directory."""
    employee_id: str
    employee_number: str
    first_name: str
    last_name: str
    subsidiary_id: str
    employment_status: EmploymentStatus
    employment_type: EmploymentType
    joining_date: date
    compensation: Compensation | None = None
    department_id: str | None = None
    department_name: str | None = None
    position: str | None = None
    exit_date: date | None = None
    date_of_birth: date | None = None
    preferred_payment_method: PaymentMethod | None = None
    bank_account: BankAccount | None = None
    mobile_money: MobileMoneyAccount | None = None
    nssf_number: str | None = None
    tin_number: str | None = None
    nssf_exemption_reason: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


# ---------------------------------------------------------------------------
# Overtime / loan inputs
# ---------------------------------------------------------------------------


class OvertimeType(str, Enum):
    REGULAR = "regular"
    WEEKEND = "weekend"
    HOLIDAY = "holiday"


@dataclass(frozen=True)
class OvertimeEntry:
    """Approved overtime worked by an employee within the period."""
    id: str
    employee_id: str
    work_date: date
    overtime_type: OvertimeType
    hours: Decimal
    notes: str | None = None


class LoanStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    SUSPENDED = "suspended"
    WRITTEN_OFF = "written_off"


@dataclass(frozen=True)
class LoanRecovery:
    """A loan being recovered through monthly payroll deductions."""
    id: str
    employee_id: str
    loan_type: str
    principal_amount: Decimal
    total_amount: Decimal
    monthly_deduction: Decimal
    installments: int
    paid_installments: int
    balance_remaining: Decimal
    status: LoanStatus = LoanStatus.ACTIVE

    @property
    def next_installment_amount(self) -> Decimal:
        return min(self.monthly_deduction, self.balance_remaining)


@dataclass(frozen=True)
class LoanRecoveryEvent:
    """Append-only history entry written when a payroll recovery is paid."""
    loan_id: str
    payroll_id: UUID
    amount: Decimal
    installment_number: int
    balance_after: Decimal
    recorded_at: datetime


# ---------------------------------------------------------------------------
# Overrides
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AdditionalEarning:
    description: str
    amount: Decimal
    earning_type: EarningType = EarningType.OTHER
    taxable: bool = True
    nssf_applicable: bool = False


@dataclass(frozen=True)
class AdditionalDeduction:
    description: str
    amount: Decimal
    deduction_type: DeductionType = DeductionType.OTHER


@dataclass(frozen=True)
class PayrollOverrides:
    """Manual adjustments for one calculation run."""
    basic_salary: Decimal | None = None
    additional_earnings: tuple[AdditionalEarning, ...] = ()
    additional_deductions: tuple[AdditionalDeduction, ...] = ()
    unpaid_leave_days: int = 0
    proration_days: int | None = None
    payment_date: date | None = None


# ---------------------------------------------------------------------------
# Line items
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EarningsItem:
    earning_type: EarningType
    category: str
    description: str
    amount: Decimal
    is_taxable: bool
    taxable_amount: Decimal
    is_nssf_applicable: bool
    nssf_applicable_amount: Decimal
    hours: Decimal | None = None
    rate: Decimal | None = None


@dataclass(frozen=True)
class DeductionItem:
    deduction_type: DeductionType
    category: DeductionCategory
    description: str
    amount: Decimal
    is_mandatory: bool
    reference: str | None = None
    loan_id: str | None = None
    installment_number: int | None = None
    total_installments: int | None = None
    balance_remaining: Decimal | None = None


@dataclass(frozen=True)
class PaymentDetails:
    method: PaymentMethod
    bank_name: str | None = None
    account_number: str | None = None
    account_name: str | None = None
    mobile_provider: str | None = None
    mobile_number: str | None = None


# ---------------------------------------------------------------------------
# Year to date
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class YTDContribution:
    """One period's additive contribution to the year-to-date aggregate."""
    gross_earnings: Decimal = ZERO
    basic_salary: Decimal = ZERO
    allowances: Decimal = ZERO
    overtime: Decimal = ZERO
    other_earnings: Decimal = ZERO
    taxable_earnings: Decimal = ZERO
    nssf_applicable_earnings: Decimal = ZERO
    total_deductions: Decimal = ZERO
    paye: Decimal = ZERO
    nssf_employee: Decimal = ZERO
    nssf_employer: Decimal = ZERO
    lst: Decimal = ZERO
    voluntary_deductions: Decimal = ZERO
    loan_recoveries: Decimal = ZERO
    net_pay: Decimal = ZERO


YTD_AMOUNT_FIELDS: tuple[str, ...] = tuple(f.name for f in fields(YTDContribution))


@dataclass(frozen=True)
class YearToDate:
    """
    Cumulative fiscal-year totals for one employee.

    Contract:
        Keyed by (employee_id, fiscal_year).  Changes only through
        ``apply`` / ``revert`` so every movement is one whole period.
    """
    employee_id: str
    fiscal_year: str
    gross_earnings: Decimal = ZERO
    basic_salary: Decimal = ZERO
    allowances: Decimal = ZERO
    overtime: Decimal = ZERO
    other_earnings: Decimal = ZERO
    taxable_earnings: Decimal = ZERO
    nssf_applicable_earnings: Decimal = ZERO
    total_deductions: Decimal = ZERO
    paye: Decimal = ZERO
    nssf_employee: Decimal = ZERO
    nssf_employer: Decimal = ZERO
    lst: Decimal = ZERO
    voluntary_deductions: Decimal = ZERO
    loan_recoveries: Decimal = ZERO
    net_pay: Decimal = ZERO
    periods_processed: int = 0
    last_processed_period: str | None = None
    processed_periods: tuple[str, ...] = ()

    def apply(self, contribution: YTDContribution, period: str) -> YearToDate:
        amounts = {
            name: getattr(self, name) + getattr(contribution, name)
            for name in YTD_AMOUNT_FIELDS
        }
        periods = tuple(sorted(set(self.processed_periods) | {period}))
        return replace(
            self,
            **amounts,
            periods_processed=len(periods),
            last_processed_period=periods[-1],
            processed_periods=periods,
        )

    def revert(self, contribution: YTDContribution, period: str) -> YearToDate:
        amounts = {
            name: getattr(self, name) - getattr(contribution, name)
            for name in YTD_AMOUNT_FIELDS
        }
        periods = tuple(p for p in self.processed_periods if p != period)
        return replace(
            self,
            **amounts,
            periods_processed=len(periods),
            last_processed_period=periods[-1] if periods else None,
            processed_periods=periods,
        )


# ---------------------------------------------------------------------------
# Payroll record
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EmployeePayroll:
    """One employee's payroll for one period."""
    id: UUID
    employee_id: str
    employee_number: str
    employee_name: str
    subsidiary_id: str
    department_id: str | None
    department_name: str | None
    position: str | None
    contract_id: str | None

    year: int
    month: int
    fiscal_year: str
    period_start: date
    period_end: date
    payment_date: date
    payment_frequency: PaymentFrequency

    proration: ProrationResult
    basic_salary: Decimal
    earnings: tuple[EarningsItem, ...]
    total_earnings: Decimal
    gross_pay: Decimal
    taxable_income: Decimal
    nssf_applicable_income: Decimal

    paye: PAYEResult
    nssf: NSSFResult
    lst: LSTResult

    deductions: tuple[DeductionItem, ...]
    total_statutory_deductions: Decimal
    total_voluntary_deductions: Decimal
    total_deductions: Decimal
    net_pay: Decimal

    payment_details: PaymentDetails
    ytd: YearToDate
    ytd_contribution: YTDContribution

    status: PayrollStatus = PayrollStatus.CALCULATED
    version: int = 1
    ytd_applied: bool = True
    payroll_period_id: UUID | None = None
    notes: tuple[str, ...] = field(default_factory=tuple)
    calculated_by: UUID | None = None
    calculated_at: datetime | None = None
    reviewed_by: UUID | None = None
    reviewed_at: datetime | None = None
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    paid_at: datetime | None = None
    reversed_at: datetime | None = None

    def __post_init__(self):
        if self.net_pay != self.gross_pay - self.total_deductions:
            raise ValueError(
                f"net_pay {self.net_pay} != gross_pay {self.gross_pay} "
                f"- total_deductions {self.total_deductions}"
            )

    @property
    def period(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @property
    def employer_nssf(self) -> Decimal:
        return self.nssf.employer_contribution

    def deductions_of(self, *types: DeductionType) -> Decimal:
        return sum((d.amount for d in self.deductions if d.deduction_type in types), ZERO)
