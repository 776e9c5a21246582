"""
Statutory Tax Calculator - PAYE, NSSF and LST for Uganda payroll.

Pure functions with no I/O: tax tables, rates and the rounding method are
passed in (usually via ``PayrollTaxCalculator`` bound to a
``PayrollConfiguration``).  Every currency output is a whole-shilling
``Decimal``; malformed, non-finite or negative inputs are clamped to zero
before any arithmetic so no result is ever NaN or negative.

Usage:
    from decimal import Decimal
    from payroll_config import get_active_config
    from payroll_engines.tax import PayrollTaxCalculator

    calculator = PayrollTaxCalculator(get_active_config())
    paye = calculator.calculate_paye(Decimal("1000000"))
    print(paye.total_tax)        # Decimal('202000')
    nssf = calculator.calculate_nssf(Decimal("3000000"))
    print(nssf.employee_contribution, nssf.capped_at_maximum)  # 90000 True
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from payroll_config.schema import (
    LSTBand,
    LSTConfig,
    NSSFConfig,
    OvertimeConfig,
    PAYEConfig,
    PayrollConfiguration,
)
from payroll_engines.tracer import traced_engine
from payroll_kernel.domain.rounding import (
    ZERO,
    RoundingMethod,
    clamp_amount,
    round_currency,
    round_rate,
    to_decimal,
)
from payroll_kernel.logging_config import get_logger

logger = get_logger("engines.tax")


def _input(value: object, field: str) -> Decimal:
    """Clamp a calculator input, logging when the caller passed garbage."""
    raw = to_decimal(value)
    if not raw.is_finite() or raw < ZERO:
        logger.warning("tax_input_clamped", extra={"field": field, "value": str(value)})
        return ZERO
    return raw


# ---------------------------------------------------------------------------
# Result value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PAYEBandDetail:
    """Tax attributable to one progressive band."""

    lower: Decimal
    upper: Decimal | None
    rate: Decimal
    taxable_amount: Decimal
    tax: Decimal


@dataclass(frozen=True)
class PAYEResult:
    taxable_income: Decimal
    bands: tuple[PAYEBandDetail, ...]
    total_tax: Decimal
    effective_rate: Decimal
    # No reliefs are applied by default, so net PAYE equals total tax.
    net_paye: Decimal


@dataclass(frozen=True)
class NSSFOptions:
    """
    Per-employee inputs that can exempt a contribution.

    ``employee_age=None`` falls back to the configured default age.
    """

    exemption_reason: str | None = None
    employee_age: int | None = None
    employment_type: str | None = None


@dataclass(frozen=True)
class NSSFResult:
    gross_salary: Decimal
    contribution_base: Decimal
    employee_contribution: Decimal
    employer_contribution: Decimal
    total_contribution: Decimal
    capped_at_maximum: bool
    is_exempt: bool
    exemption_reason: str | None = None

    @classmethod
    def exempt(cls, gross: Decimal, reason: str) -> NSSFResult:
        return cls(
            gross_salary=gross,
            contribution_base=ZERO,
            employee_contribution=ZERO,
            employer_contribution=ZERO,
            total_contribution=ZERO,
            capped_at_maximum=False,
            is_exempt=True,
            exemption_reason=reason,
        )


@dataclass(frozen=True)
class LSTResult:
    monthly_gross: Decimal
    projected_annual_income: Decimal
    band_lower: Decimal
    band_upper: Decimal | None
    annual_amount: Decimal
    ytd_paid: Decimal
    remaining_amount: Decimal
    remaining_months: int
    monthly_amount: Decimal


@dataclass(frozen=True)
class OvertimePay:
    overtime_type: str
    hours: Decimal
    hourly_rate: Decimal
    multiplier: Decimal
    amount: Decimal


# ---------------------------------------------------------------------------
# PAYE
# ---------------------------------------------------------------------------


@traced_engine("paye", "1.0", fingerprint_fields=("taxable_income",))
def calculate_paye(
    taxable_income: object,
    config: PAYEConfig,
    rounding: RoundingMethod = RoundingMethod.ROUND,
) -> PAYEResult:
    """
    Walk the progressive bands and accumulate PAYE.

    Preconditions: ``config.bands`` are ordered and contiguous from 0.
    Postconditions: ``total_tax`` is the sum of per-band rounded tax and is
        never negative; ``effective_rate`` is ``total_tax / income`` to 4 dp,
        0 when income is 0.
    """
    income = _input(taxable_income, "taxable_income")
    details: list[PAYEBandDetail] = []
    total = ZERO

    for band in config.bands:
        if income <= band.lower:
            break
        top = income if band.upper is None else min(income, band.upper)
        segment = top - band.lower
        tax = round_currency(segment * band.rate, rounding)
        details.append(
            PAYEBandDetail(
                lower=band.lower,
                upper=band.upper,
                rate=band.rate,
                taxable_amount=segment,
                tax=tax,
            )
        )
        total += tax

    effective_rate = round_rate(total / income) if income > ZERO else ZERO
    return PAYEResult(
        taxable_income=income,
        bands=tuple(details),
        total_tax=total,
        effective_rate=effective_rate,
        net_paye=total,
    )


# ---------------------------------------------------------------------------
# NSSF
# ---------------------------------------------------------------------------


@traced_engine("nssf", "1.0", fingerprint_fields=("applicable_gross", "options"))
def calculate_nssf(
    applicable_gross: object,
    config: NSSFConfig,
    options: NSSFOptions | None = None,
    rounding: RoundingMethod = RoundingMethod.ROUND,
) -> NSSFResult:
    """
    Compute employee (5%) and employer (10%) NSSF on the capped base.

    Exemption paths are checked in order (explicit reason, age above the
    exemption age, exempt employment type); the first match returns a zero
    contribution carrying the reason.
    """
    options = options or NSSFOptions()
    gross = _input(applicable_gross, "applicable_gross")

    if options.exemption_reason:
        return NSSFResult.exempt(gross, options.exemption_reason)

    age = options.employee_age if options.employee_age is not None else config.default_employee_age
    if age > config.exemption_age:
        return NSSFResult.exempt(gross, f"Employee age {age} exceeds {config.exemption_age}")

    if options.employment_type and options.employment_type in config.exempt_categories:
        return NSSFResult.exempt(
            gross, f"Employment type '{options.employment_type}' is NSSF exempt"
        )

    capped = gross > config.monthly_cap
    base = config.monthly_cap if capped else gross
    employee = round_currency(base * config.employee_rate, rounding)
    employer = round_currency(base * config.employer_rate, rounding)
    return NSSFResult(
        gross_salary=gross,
        contribution_base=round_currency(base, rounding),
        employee_contribution=employee,
        employer_contribution=employer,
        total_contribution=employee + employer,
        capped_at_maximum=capped,
        is_exempt=False,
    )


# ---------------------------------------------------------------------------
# LST
# ---------------------------------------------------------------------------


def find_lst_band(projected_annual_income: Decimal, config: LSTConfig) -> LSTBand:
    """First band whose (upper-inclusive) range contains the projection."""
    for band in config.bands:
        if band.upper is None or projected_annual_income <= band.upper:
            return band
    # Validated configs always end with an unbounded band
    return config.bands[-1]


@traced_engine(
    "lst",
    "1.0",
    fingerprint_fields=("monthly_gross", "ytd_gross", "ytd_lst_paid", "remaining_months"),
)
def calculate_lst(
    monthly_gross: object,
    ytd_gross: object,
    ytd_lst_paid: object,
    remaining_months: int,
    config: LSTConfig,
    rounding: RoundingMethod = RoundingMethod.ROUND,
) -> LSTResult:
    """
    Spread the annual Local Service Tax over the remaining fiscal months.

    Projection: ``ytd_gross + monthly_gross * remaining_months``.  The
    unpaid balance of the band's annual amount is divided by the months
    left; with no months left the whole balance is charged now, so the
    liability is fully collected by fiscal year-end even when pay changes
    mid-year.
    """
    gross = _input(monthly_gross, "monthly_gross")
    ytd = _input(ytd_gross, "ytd_gross")
    paid = _input(ytd_lst_paid, "ytd_lst_paid")
    months = max(int(remaining_months), 0)

    projected = ytd + gross * months
    band = find_lst_band(projected, config)
    remaining = max(ZERO, band.annual_amount - paid)
    if months > 0:
        monthly = round_currency(remaining / months, rounding)
    else:
        monthly = round_currency(remaining, rounding)

    return LSTResult(
        monthly_gross=gross,
        projected_annual_income=projected,
        band_lower=band.lower,
        band_upper=band.upper,
        annual_amount=band.annual_amount,
        ytd_paid=paid,
        remaining_amount=remaining,
        remaining_months=months,
        monthly_amount=monthly,
    )


# ---------------------------------------------------------------------------
# Overtime
# ---------------------------------------------------------------------------


def hourly_rate(basic_salary: object, config: OvertimeConfig) -> Decimal:
    """Basic monthly salary over standard monthly hours (22 days x 8 h)."""
    hours = Decimal(config.working_days_per_month * config.hours_per_day)
    return clamp_amount(basic_salary) / hours


def calculate_overtime_pay(
    basic_salary: object,
    hours: object,
    overtime_type: str,
    config: OvertimeConfig,
    rounding: RoundingMethod = RoundingMethod.ROUND,
) -> OvertimePay:
    """
    Overtime pay = hours x hourly rate x type multiplier.

    Unknown overtime types are paid at the regular multiplier.
    """
    rate = hourly_rate(basic_salary, config)
    worked = _input(hours, "overtime_hours")
    multiplier = config.multipliers.get(overtime_type, config.multipliers["regular"])
    return OvertimePay(
        overtime_type=overtime_type,
        hours=worked,
        hourly_rate=rate,
        multiplier=multiplier,
        amount=round_currency(worked * rate * multiplier, rounding),
    )


# ---------------------------------------------------------------------------
# Configured facade
# ---------------------------------------------------------------------------


class PayrollTaxCalculator:
    """
    Tax calculator bound to one statutory configuration set.

    Contract:
        Stateless apart from the configuration; safe to share across
        threads.
    """

    def __init__(self, config: PayrollConfiguration):
        self.config = config

    @property
    def rounding(self) -> RoundingMethod:
        return self.config.rounding_method

    def calculate_paye(self, taxable_income: object) -> PAYEResult:
        return calculate_paye(taxable_income, self.config.paye, self.rounding)

    def calculate_nssf(
        self, applicable_gross: object, options: NSSFOptions | None = None
    ) -> NSSFResult:
        return calculate_nssf(applicable_gross, self.config.nssf, options, self.rounding)

    def calculate_lst(
        self,
        monthly_gross: object,
        ytd_gross: object,
        ytd_lst_paid: object,
        remaining_months: int,
    ) -> LSTResult:
        return calculate_lst(
            monthly_gross,
            ytd_gross,
            ytd_lst_paid,
            remaining_months,
            self.config.lst,
            self.rounding,
        )

    def calculate_overtime_pay(
        self, basic_salary: object, hours: object, overtime_type: str
    ) -> OvertimePay:
        return calculate_overtime_pay(
            basic_salary, hours, overtime_type, self.config.overtime, self.rounding
        )
