"""
Configuration schema (``payroll_config.schema``).

Responsibility
--------------
Frozen dataclasses describing one statutory payroll configuration set:
tax tables, contribution rules, working-time constants and batch policy.
Every engine receives one of these objects explicitly; no engine reads a
hidden literal default.

Invariants enforced
-------------------
* All amounts and rates are ``Decimal``.
* Collections are tuples so a loaded set is fully immutable.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from payroll_kernel.domain.rounding import RoundingMethod


@dataclass(frozen=True)
class TaxBand:
    """One progressive PAYE band; ``upper=None`` means unbounded."""
    lower: Decimal
    upper: Decimal | None
    rate: Decimal


@dataclass(frozen=True)
class PAYEConfig:
    bands: tuple[TaxBand, ...]


@dataclass(frozen=True)
class NSSFConfig:
    monthly_cap: Decimal
    employee_rate: Decimal
    employer_rate: Decimal
    exemption_age: int
    default_employee_age: int
    exempt_categories: tuple[str, ...]


@dataclass(frozen=True)
class LSTBand:
    """Annual-income band; ``upper=None`` means unbounded, upper bound inclusive."""
    lower: Decimal
    upper: Decimal | None
    annual_amount: Decimal


@dataclass(frozen=True)
class LSTConfig:
    bands: tuple[LSTBand, ...]


@dataclass(frozen=True)
class OvertimeConfig:
    working_days_per_month: int
    hours_per_day: int
    multipliers: dict[str, Decimal]


@dataclass(frozen=True)
class BatchPolicy:
    ceo_approval_threshold: Decimal
    directory_query_chunk_size: int
    subsidiary_code_length: int = 3


@dataclass(frozen=True)
class PayrollConfiguration:
    """
    A complete, validated statutory configuration set.

    Contract:
        Built only by ``payroll_config.loader``; consumers treat it as a
        read-only value.
    """
    name: str
    country: str
    currency: str
    effective_from: str
    paye: PAYEConfig
    nssf: NSSFConfig
    lst: LSTConfig
    overtime: OvertimeConfig
    batch: BatchPolicy
    rounding_method: RoundingMethod = RoundingMethod.ROUND
    proration_method: str = "calendar_days"
    fiscal_year_start_month: int = 7
    default_payment_day: int = 28
    checksum: str = ""
