"""
Payroll Record Builder (``payroll_modules.records.service``).

Responsibility
--------------
Assembles one employee's payroll for one period: precondition checks,
proration, earnings, statutory tax, deductions, totals, year-to-date merge
and persistence.  Also owns the record lifecycle writes (review, approval,
payment, reversal) that batches drive.

Architecture position
---------------------
**Modules layer** -- service over the employee directory, the overtime/loan
source, the pure engines and the ORM.  Flushes but never commits; the
caller owns the transaction (``session_scope()``).

The calculation is split so batches can parallelise it:

* ``prepare``  -- reads (directory, sources, store) and precondition checks;
* ``build``    -- pure computation, safe on any thread;
* ``persist``  -- YTD read-modify-write and record upsert.

Invariants enforced
-------------------
* ``net_pay == gross_pay - total_deductions`` on every record.
* YTD after a period = YTD before it + that period's contribution;
  recalculation backs out the previously applied contribution first.
* YTD writes for one (employee, fiscal year) are serialized by a
  process-wide lock and checked by the row version.
* Paid records are never recalculated.

Failure modes
-------------
* ``AlreadyCalculatedError`` / ``PayrollRecordLockedError`` -- existing record.
* ``EmployeeNotFoundError`` / ``InvalidEmploymentStatusError`` /
  ``NoActiveContractError`` -- directory preconditions.
* ``ConcurrentModificationError`` -- stale record or YTD row.
* ``InvalidStatusTransitionError`` -- lifecycle write not in the workflow.

Audit relevance
---------------
Each calculation logs ``employee_payroll_calculated`` with the totals and
record version; YTD movements log ``ytd_updated``.
"""

from __future__ import annotations

import threading
import weakref
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Iterable, Sequence
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from payroll_config import get_active_config
from payroll_config.schema import PayrollConfiguration
from payroll_engines.partition import PaymentMethod
from payroll_engines.periods import (
    age_on,
    days_in_month,
    fiscal_year_label,
    period_bounds,
    period_string,
    remaining_months_in_fiscal_year,
)
from payroll_engines.proration import calculate_proration
from payroll_engines.tax import NSSFOptions, PayrollTaxCalculator
from payroll_kernel.db.concurrency import check_version, flush_versioned
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.rounding import ZERO, round_currency
from payroll_kernel.exceptions import (
    AlreadyCalculatedError,
    EmployeeNotFoundError,
    InvalidEmploymentStatusError,
    NoActiveContractError,
    PayrollRecordLockedError,
    PayrollRecordNotFoundError,
)
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_modules.records.models import (
    ALLOWANCE_TREATMENTS,
    DEDUCTION_CATEGORIES,
    PAYABLE_EMPLOYMENT_STATUSES,
    STATUTORY_DEDUCTION_TYPES,
    Compensation,
    DeductionCategory,
    DeductionItem,
    DeductionType,
    EarningsItem,
    EarningType,
    Employee,
    EmployeePayroll,
    LoanRecovery,
    OvertimeEntry,
    PaymentDetails,
    PayrollOverrides,
    PayrollStatus,
    YearToDate,
    YTDContribution,
)
from payroll_modules.records.orm import EmployeePayrollModel, YearToDateModel
from payroll_modules.records.selectors import PayrollRecordSelector
from payroll_modules.records.sources import EmployeeDirectory, OvertimeLoanSource
from payroll_modules.records.workflows import PAYROLL_RECORD_WORKFLOW

logger = get_logger("modules.records.service")

SYSTEM_ACTOR_ID = UUID(int=0)

_ENTITY = "employee_payroll"


class _KeyLock:
    """A lock that can live in a WeakValueDictionary."""

    __slots__ = ("_lock", "__weakref__")

    def __init__(self):
        self._lock = threading.Lock()

    def __enter__(self) -> _KeyLock:
        self._lock.acquire()
        return self

    def __exit__(self, *exc_info) -> None:
        self._lock.release()


# Entries vanish once no caller holds the lock.
_ytd_locks: weakref.WeakValueDictionary[tuple[str, str], _KeyLock] = (
    weakref.WeakValueDictionary()
)
_ytd_locks_guard = threading.Lock()


def _ytd_lock(employee_id: str, fiscal_year: str) -> _KeyLock:
    key = (employee_id, fiscal_year)
    with _ytd_locks_guard:
        lock = _ytd_locks.get(key)
        if lock is None:
            lock = _KeyLock()
            _ytd_locks[key] = lock
        return lock


@dataclass(frozen=True)
class PayrollInputs:
    """Everything ``build`` needs, gathered by ``prepare``."""
    employee: Employee
    compensation: Compensation
    year: int
    month: int
    period_start: date
    period_end: date
    payment_date: date
    fiscal_year: str
    remaining_months: int
    overrides: PayrollOverrides
    overtime: tuple[OvertimeEntry, ...]
    loans: tuple[LoanRecovery, ...]
    ytd_before: YearToDate
    existing: EmployeePayroll | None = None


def resolve_payment_details(employee: Employee) -> PaymentDetails:
    """
    Honour the preferred method when its account details exist, otherwise
    fall back to bank, then mobile money, then cash.
    """
    bank = employee.bank_account
    mobile = employee.mobile_money

    def by_bank() -> PaymentDetails:
        return PaymentDetails(
            method=PaymentMethod.BANK_TRANSFER,
            bank_name=bank.bank_name,
            account_number=bank.account_number,
            account_name=bank.account_name,
        )

    def by_mobile() -> PaymentDetails:
        return PaymentDetails(
            method=PaymentMethod.MOBILE_MONEY,
            mobile_provider=mobile.provider,
            mobile_number=mobile.phone_number,
            account_name=mobile.registered_name,
        )

    preferred = employee.preferred_payment_method
    if preferred is PaymentMethod.BANK_TRANSFER and bank is not None:
        return by_bank()
    if preferred is PaymentMethod.MOBILE_MONEY and mobile is not None:
        return by_mobile()
    if preferred in (PaymentMethod.CASH, PaymentMethod.CHEQUE):
        return PaymentDetails(method=preferred)
    if bank is not None:
        return by_bank()
    if mobile is not None:
        return by_mobile()
    return PaymentDetails(method=PaymentMethod.CASH)


class PayrollRecordBuilder:
    """
    Builds, persists and advances ``EmployeePayroll`` records.

    Contract:
        ``calculate_employee_payroll`` returns the persisted record with
        status ``calculated``; the batch link (``payroll_period_id``) is
        set separately via ``link_to_batch``.

    Guarantees:
        - ``build`` has no side effects and may run on worker threads.
        - Failed preconditions leave the store untouched.

    Non-goals:
        - Does not commit; wrap calls in ``session_scope()``.
    """

    def __init__(
        self,
        session: Session,
        directory: EmployeeDirectory,
        overtime_loans: OvertimeLoanSource,
        config: PayrollConfiguration | None = None,
        clock: Clock | None = None,
    ):
        self.session = session
        self.directory = directory
        self.overtime_loans = overtime_loans
        self.config = config or get_active_config()
        self.clock = clock or SystemClock()
        self.calculator = PayrollTaxCalculator(self.config)
        self.selector = PayrollRecordSelector(session)

    # ------------------------------------------------------------------
    # Calculation
    # ------------------------------------------------------------------

    def calculate_employee_payroll(
        self,
        employee_id: str,
        year: int,
        month: int,
        overrides: PayrollOverrides | None = None,
        recalculate: bool = False,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> EmployeePayroll:
        """
        Calculate and persist one employee's payroll.

        Preconditions: 1 <= month <= 12.
        Postconditions: the returned record is stored with status
            ``calculated`` and its YTD contribution applied.
        """
        with LogContext.bind(employee_id=employee_id, actor_id=actor_id):
            inputs = self.prepare(employee_id, year, month, overrides, recalculate)
            record = self.build(inputs)
            return self.persist(record, actor_id)

    def prepare(
        self,
        employee_id: str,
        year: int,
        month: int,
        overrides: PayrollOverrides | None = None,
        recalculate: bool = False,
        employee: Employee | None = None,
    ) -> PayrollInputs:
        """Load inputs and run the precondition checks, in order."""
        if not 1 <= month <= 12:
            raise ValueError(f"month must be 1-12, got {month}")

        existing = self.selector.find_for_period(employee_id, year, month)
        if existing is not None:
            if not recalculate:
                raise AlreadyCalculatedError(employee_id, year, month)
            if existing.status is PayrollStatus.PAID:
                raise PayrollRecordLockedError(existing.id, existing.status.value)

        if employee is None:
            employee = self.directory.get_employee(employee_id)
        if employee is None:
            raise EmployeeNotFoundError(employee_id)
        if employee.employment_status not in PAYABLE_EMPLOYMENT_STATUSES:
            raise InvalidEmploymentStatusError(employee_id, employee.employment_status.value)
        if employee.compensation is None:
            raise NoActiveContractError(employee_id)

        start_month = self.config.fiscal_year_start_month
        fiscal_year = fiscal_year_label(year, month, start_month)
        period = period_string(year, month)
        ytd_before = self.selector.get_ytd(employee_id, fiscal_year)
        if existing is not None and existing.ytd_applied:
            ytd_before = ytd_before.revert(existing.ytd_contribution, period)

        overrides = overrides or PayrollOverrides()
        period_start, period_end = period_bounds(year, month)
        payment_date = overrides.payment_date or date(
            year, month, min(self.config.default_payment_day, days_in_month(year, month))
        )
        return PayrollInputs(
            employee=employee,
            compensation=employee.compensation,
            year=year,
            month=month,
            period_start=period_start,
            period_end=period_end,
            payment_date=payment_date,
            fiscal_year=fiscal_year,
            remaining_months=remaining_months_in_fiscal_year(year, month, start_month),
            overrides=overrides,
            overtime=tuple(
                self.overtime_loans.approved_overtime(employee_id, period_start, period_end)
            ),
            loans=tuple(self.overtime_loans.active_loans(employee_id)),
            ytd_before=ytd_before,
            existing=existing,
        )

    def build(self, inputs: PayrollInputs) -> EmployeePayroll:
        """
        Pure payroll computation.

        Postconditions: totals equal the sums of their items and
            ``net_pay == gross_pay - total_deductions``.
        """
        rounding = self.config.rounding_method
        employee = inputs.employee
        overrides = inputs.overrides

        proration = calculate_proration(
            period_start=inputs.period_start,
            period_end=inputs.period_end,
            joining_date=employee.joining_date,
            exit_date=employee.exit_date,
            unpaid_leave_days=overrides.unpaid_leave_days,
            method=self.config.proration_method,
            worked_days_override=overrides.proration_days,
        )

        earnings = self._build_earnings(inputs, proration.factor)
        total_earnings = sum((e.amount for e in earnings), ZERO)
        gross_pay = round_currency(total_earnings, rounding)
        taxable_income = sum((e.taxable_amount for e in earnings), ZERO)
        nssf_applicable = sum((e.nssf_applicable_amount for e in earnings), ZERO)

        age = (
            age_on(employee.date_of_birth, inputs.period_end)
            if employee.date_of_birth is not None
            else None
        )
        paye = self.calculator.calculate_paye(taxable_income)
        nssf = self.calculator.calculate_nssf(
            nssf_applicable,
            NSSFOptions(
                exemption_reason=employee.nssf_exemption_reason,
                employee_age=age,
                employment_type=employee.employment_type.value,
            ),
        )
        lst = self.calculator.calculate_lst(
            gross_pay,
            inputs.ytd_before.gross_earnings,
            inputs.ytd_before.lst,
            inputs.remaining_months,
        )

        deductions = self._build_deductions(inputs, paye.net_paye, nssf.employee_contribution, lst.monthly_amount)
        total_statutory = sum(
            (d.amount for d in deductions if d.category is DeductionCategory.STATUTORY), ZERO
        )
        total_voluntary = sum(
            (d.amount for d in deductions if d.category is not DeductionCategory.STATUTORY), ZERO
        )
        total_deductions = total_statutory + total_voluntary
        net_pay = gross_pay - total_deductions

        def earned(*types: EarningType) -> Decimal:
            return sum((e.amount for e in earnings if e.earning_type in types), ZERO)

        contribution = YTDContribution(
            gross_earnings=gross_pay,
            basic_salary=earned(EarningType.BASIC_SALARY),
            allowances=earned(EarningType.ALLOWANCE),
            overtime=earned(EarningType.OVERTIME),
            other_earnings=earned(
                EarningType.BONUS, EarningType.COMMISSION, EarningType.ARREARS, EarningType.OTHER
            ),
            taxable_earnings=taxable_income,
            nssf_applicable_earnings=nssf_applicable,
            total_deductions=total_deductions,
            paye=paye.net_paye,
            nssf_employee=nssf.employee_contribution,
            nssf_employer=nssf.employer_contribution,
            lst=lst.monthly_amount,
            voluntary_deductions=total_voluntary,
            loan_recoveries=sum(
                (d.amount for d in deductions if d.category is DeductionCategory.RECOVERY), ZERO
            ),
            net_pay=net_pay,
        )
        period = period_string(inputs.year, inputs.month)

        notes: list[str] = []
        if net_pay < ZERO:
            notes.append("Deductions exceed gross pay")
            logger.warning(
                "negative_net_pay",
                extra={
                    "employee_id": employee.employee_id,
                    "period": period,
                    "gross_pay": str(gross_pay),
                    "total_deductions": str(total_deductions),
                },
            )

        existing = inputs.existing
        return EmployeePayroll(
            id=existing.id if existing is not None else uuid4(),
            employee_id=employee.employee_id,
            employee_number=employee.employee_number,
            employee_name=employee.full_name,
            subsidiary_id=employee.subsidiary_id,
            department_id=employee.department_id,
            department_name=employee.department_name,
            position=employee.position,
            contract_id=inputs.compensation.contract_id,
            year=inputs.year,
            month=inputs.month,
            fiscal_year=inputs.fiscal_year,
            period_start=inputs.period_start,
            period_end=inputs.period_end,
            payment_date=inputs.payment_date,
            payment_frequency=inputs.compensation.payment_frequency,
            proration=proration,
            basic_salary=earned(EarningType.BASIC_SALARY),
            earnings=tuple(earnings),
            total_earnings=total_earnings,
            gross_pay=gross_pay,
            taxable_income=taxable_income,
            nssf_applicable_income=nssf_applicable,
            paye=paye,
            nssf=nssf,
            lst=lst,
            deductions=tuple(deductions),
            total_statutory_deductions=total_statutory,
            total_voluntary_deductions=total_voluntary,
            total_deductions=total_deductions,
            net_pay=net_pay,
            payment_details=resolve_payment_details(employee),
            ytd=inputs.ytd_before.apply(contribution, period),
            ytd_contribution=contribution,
            status=PayrollStatus.CALCULATED,
            version=existing.version + 1 if existing is not None else 1,
            ytd_applied=True,
            payroll_period_id=existing.payroll_period_id if existing is not None else None,
            notes=tuple(notes),
        )

    def _build_earnings(self, inputs: PayrollInputs, factor: Decimal) -> list[EarningsItem]:
        rounding = self.config.rounding_method
        compensation = inputs.compensation
        overrides = inputs.overrides

        basic = overrides.basic_salary if overrides.basic_salary is not None else compensation.base_salary
        prorated_basic = round_currency(basic * factor, rounding)
        items = [
            EarningsItem(
                earning_type=EarningType.BASIC_SALARY,
                category="basic",
                description="Basic Salary",
                amount=prorated_basic,
                is_taxable=True,
                taxable_amount=prorated_basic,
                is_nssf_applicable=True,
                nssf_applicable_amount=prorated_basic,
            )
        ]

        for allowance in compensation.allowances:
            amount = round_currency(allowance.amount * factor, rounding)
            if amount <= ZERO:
                continue
            treatment = ALLOWANCE_TREATMENTS[allowance.allowance_type]
            items.append(
                EarningsItem(
                    earning_type=EarningType.ALLOWANCE,
                    category=allowance.allowance_type.value,
                    description=allowance.description
                    or f"{allowance.allowance_type.value.title()} Allowance",
                    amount=amount,
                    is_taxable=treatment.taxable,
                    taxable_amount=(
                        round_currency(amount * treatment.tax_rate, rounding)
                        if treatment.taxable
                        else ZERO
                    ),
                    is_nssf_applicable=treatment.nssf_applicable,
                    nssf_applicable_amount=amount if treatment.nssf_applicable else ZERO,
                )
            )

        for entry in inputs.overtime:
            pay = self.calculator.calculate_overtime_pay(
                compensation.base_salary, entry.hours, entry.overtime_type.value
            )
            if pay.amount <= ZERO:
                continue
            items.append(
                EarningsItem(
                    earning_type=EarningType.OVERTIME,
                    category="overtime",
                    description=f"{entry.overtime_type.value.title()} Overtime - {entry.hours} hours",
                    amount=pay.amount,
                    is_taxable=True,
                    taxable_amount=pay.amount,
                    is_nssf_applicable=True,
                    nssf_applicable_amount=pay.amount,
                    hours=pay.hours,
                    rate=pay.multiplier,
                )
            )

        for extra in overrides.additional_earnings:
            amount = round_currency(extra.amount, rounding)
            if amount <= ZERO:
                continue
            items.append(
                EarningsItem(
                    earning_type=extra.earning_type,
                    category=extra.earning_type.value,
                    description=extra.description,
                    amount=amount,
                    is_taxable=extra.taxable,
                    taxable_amount=amount if extra.taxable else ZERO,
                    is_nssf_applicable=extra.nssf_applicable,
                    nssf_applicable_amount=amount if extra.nssf_applicable else ZERO,
                )
            )
        return items

    def _build_deductions(
        self,
        inputs: PayrollInputs,
        paye: Decimal,
        nssf_employee: Decimal,
        lst: Decimal,
    ) -> list[DeductionItem]:
        rounding = self.config.rounding_method
        items: list[DeductionItem] = []

        statutory = (
            (DeductionType.PAYE, "PAYE", paye),
            (DeductionType.NSSF_EMPLOYEE, "NSSF Employee Contribution", nssf_employee),
            (DeductionType.LST, "Local Service Tax", lst),
        )
        for deduction_type, description, amount in statutory:
            if amount > ZERO:
                items.append(
                    DeductionItem(
                        deduction_type=deduction_type,
                        category=DeductionCategory.STATUTORY,
                        description=description,
                        amount=amount,
                        is_mandatory=True,
                    )
                )

        for contract_deduction in inputs.compensation.deductions:
            if contract_deduction.deduction_type in STATUTORY_DEDUCTION_TYPES:
                continue
            amount = round_currency(contract_deduction.amount, rounding)
            if amount <= ZERO:
                continue
            items.append(
                DeductionItem(
                    deduction_type=contract_deduction.deduction_type,
                    category=DEDUCTION_CATEGORIES[contract_deduction.deduction_type],
                    description=contract_deduction.description
                    or contract_deduction.deduction_type.value.replace("_", " ").title(),
                    amount=amount,
                    is_mandatory=contract_deduction.is_mandatory,
                    reference=contract_deduction.reference,
                )
            )

        for loan in inputs.loans:
            amount = round_currency(loan.next_installment_amount, rounding)
            if amount <= ZERO:
                continue
            deduction_type = (
                DeductionType.ADVANCE if loan.loan_type == "salary_advance" else DeductionType.LOAN
            )
            items.append(
                DeductionItem(
                    deduction_type=deduction_type,
                    category=DeductionCategory.RECOVERY,
                    description=f"Loan Recovery - {loan.loan_type.replace('_', ' ').title()}",
                    amount=amount,
                    is_mandatory=True,
                    reference=loan.id,
                    loan_id=loan.id,
                    installment_number=loan.paid_installments + 1,
                    total_installments=loan.installments,
                    balance_remaining=max(ZERO, loan.balance_remaining - amount),
                )
            )

        for extra in inputs.overrides.additional_deductions:
            amount = round_currency(extra.amount, rounding)
            if amount <= ZERO:
                continue
            items.append(
                DeductionItem(
                    deduction_type=extra.deduction_type,
                    category=DEDUCTION_CATEGORIES[extra.deduction_type],
                    description=extra.description,
                    amount=amount,
                    is_mandatory=False,
                )
            )
        return items

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _find_model(self, employee_id: str, year: int, month: int) -> EmployeePayrollModel | None:
        return self.session.scalars(
            select(EmployeePayrollModel).where(
                EmployeePayrollModel.employee_id == employee_id,
                EmployeePayrollModel.year == year,
                EmployeePayrollModel.month == month,
            )
        ).one_or_none()

    def _find_ytd_model(self, employee_id: str, fiscal_year: str) -> YearToDateModel | None:
        return self.session.scalars(
            select(YearToDateModel).where(
                YearToDateModel.employee_id == employee_id,
                YearToDateModel.fiscal_year == fiscal_year,
            )
        ).one_or_none()

    def _move_ytd(
        self,
        employee_id: str,
        fiscal_year: str,
        actor_id: UUID,
        revert: tuple[YTDContribution, str] | None = None,
        apply: tuple[YTDContribution, str] | None = None,
    ) -> YearToDate:
        """Read-modify-write the YTD row; caller holds the YTD lock."""
        model = self._find_ytd_model(employee_id, fiscal_year)
        ytd = model.to_dto() if model is not None else YearToDate(employee_id, fiscal_year)
        if revert is not None:
            ytd = ytd.revert(*revert)
        if apply is not None:
            ytd = ytd.apply(*apply)
        if model is None:
            self.session.add(YearToDateModel.from_dto(ytd, created_by_id=actor_id))
        else:
            model.apply_dto(ytd)
            model.updated_by_id = actor_id
        flush_versioned(self.session, "year_to_date", f"{employee_id}:{fiscal_year}")
        logger.debug(
            "ytd_updated",
            extra={
                "employee_id": employee_id,
                "fiscal_year": fiscal_year,
                "gross_earnings": str(ytd.gross_earnings),
                "periods_processed": ytd.periods_processed,
            },
        )
        return ytd

    def persist(
        self,
        record: EmployeePayroll,
        actor_id: UUID = SYSTEM_ACTOR_ID,
        expected_version: int | None = None,
    ) -> EmployeePayroll:
        """
        Upsert the record and merge its contribution into YTD.

        Postconditions: stored record status is ``calculated``; the YTD row
            reflects exactly one contribution for this period.
        """
        period = record.period
        with _ytd_lock(record.employee_id, record.fiscal_year):
            model = self._find_model(record.employee_id, record.year, record.month)
            previous = None
            if model is not None:
                PAYROLL_RECORD_WORKFLOW.require(_ENTITY, model.status, PayrollStatus.CALCULATED.value)
                check_version(_ENTITY, model.id, expected_version, model.version)
                previous = model.to_dto()
            else:
                PAYROLL_RECORD_WORKFLOW.require(
                    _ENTITY, PAYROLL_RECORD_WORKFLOW.initial_state, PayrollStatus.CALCULATED.value
                )

            revert = None
            if previous is not None and previous.ytd_applied:
                revert = (previous.ytd_contribution, period)
            ytd = self._move_ytd(
                record.employee_id,
                record.fiscal_year,
                actor_id,
                revert=revert,
                apply=(record.ytd_contribution, period),
            )

            now = self.clock.now()
            stored = replace(
                record,
                ytd=ytd,
                ytd_applied=True,
                calculated_by=actor_id,
                calculated_at=now,
                reviewed_by=None,
                reviewed_at=None,
                approved_by=None,
                approved_at=None,
                reversed_at=None,
            )
            if model is None:
                model = EmployeePayrollModel.from_dto(stored, created_by_id=actor_id)
                self.session.add(model)
            else:
                model.apply_dto(stored)
                model.updated_by_id = actor_id
            flush_versioned(self.session, _ENTITY, model.id)

        result = model.to_dto()
        logger.info(
            "employee_payroll_calculated",
            extra={
                "payroll_id": str(result.id),
                "employee_id": result.employee_id,
                "period": period,
                "gross_pay": str(result.gross_pay),
                "total_deductions": str(result.total_deductions),
                "net_pay": str(result.net_pay),
                "version": result.version,
                "recalculated": previous is not None,
            },
        )
        return result

    # ------------------------------------------------------------------
    # Lifecycle writes
    # ------------------------------------------------------------------

    def _load_models(self, payroll_ids: Sequence[UUID]) -> list[EmployeePayrollModel]:
        models = []
        for payroll_id in payroll_ids:
            model = self.session.get(EmployeePayrollModel, payroll_id)
            if model is None:
                raise PayrollRecordNotFoundError(payroll_id)
            models.append(model)
        return models

    def link_to_batch(self, payroll_id: UUID, batch_id: UUID | None) -> None:
        (model,) = self._load_models([payroll_id])
        model.payroll_period_id = batch_id
        flush_versioned(self.session, _ENTITY, model.id)

    def _transition(
        self,
        payroll_ids: Iterable[UUID],
        to_status: PayrollStatus,
        actor_id: UUID,
    ) -> list[EmployeePayrollModel]:
        """Validate every record first, then write; all or nothing."""
        models = self._load_models(list(payroll_ids))
        for model in models:
            PAYROLL_RECORD_WORKFLOW.require(_ENTITY, model.status, to_status.value)
        for model in models:
            model.status = to_status.value
            model.updated_by_id = actor_id
        return models

    def mark_reviewed(self, payroll_ids: Iterable[UUID], actor_id: UUID) -> None:
        now = self.clock.now()
        for model in self._transition(payroll_ids, PayrollStatus.REVIEWED, actor_id):
            model.reviewed_by = actor_id
            model.reviewed_at = now
        self.session.flush()

    def approve(self, payroll_ids: Iterable[UUID], actor_id: UUID) -> None:
        now = self.clock.now()
        for model in self._transition(payroll_ids, PayrollStatus.APPROVED, actor_id):
            model.approved_by = actor_id
            model.approved_at = now
        self.session.flush()

    def mark_paid(self, payroll_ids: Iterable[UUID], actor_id: UUID) -> list[EmployeePayroll]:
        """Mark records paid and advance the loans they recovered."""
        now = self.clock.now()
        models = self._transition(payroll_ids, PayrollStatus.PAID, actor_id)
        for model in models:
            model.paid_at = now
        self.session.flush()

        paid = [m.to_dto() for m in models]
        for record in paid:
            for deduction in record.deductions:
                if deduction.loan_id is not None:
                    self.overtime_loans.record_loan_recovery(
                        deduction.loan_id, record.id, deduction.amount, now
                    )
        logger.info("payroll_records_paid", extra={"count": len(paid)})
        return paid

    def reverse(self, payroll_ids: Iterable[UUID], actor_id: UUID) -> None:
        """Reverse paid records and back their contributions out of YTD."""
        now = self.clock.now()
        for model in self._transition(payroll_ids, PayrollStatus.REVERSED, actor_id):
            record = model.to_dto()
            if record.ytd_applied:
                with _ytd_lock(record.employee_id, record.fiscal_year):
                    self._move_ytd(
                        record.employee_id,
                        record.fiscal_year,
                        actor_id,
                        revert=(record.ytd_contribution, record.period),
                    )
            model.ytd_applied = False
            model.reversed_at = now
        self.session.flush()
        logger.info("payroll_records_reversed", extra={"actor_id": str(actor_id)})
