"""
Module: payroll_engines
Responsibility:
    Pure calculation layer: statutory tax calculator, proration engine,
    payment partitioner and period helpers.

Architecture position:
    Engines -- zero I/O.  May import payroll_kernel.domain, payroll_config
    schema and sibling engines; MUST NOT import payroll_modules.

Invariants enforced:
    - Engines never read the clock; dates arrive as parameters.
    - Decimal-only arithmetic; results are whole currency units.
    - Identical inputs always produce identical outputs.
"""

from payroll_engines.partition import (
    PaymentBatch,
    PaymentBatchStatus,
    PaymentLine,
    PaymentMethod,
    partition_payments,
)
from payroll_engines.proration import (
    ProrationMethod,
    ProrationReason,
    ProrationResult,
    calculate_proration,
)
from payroll_engines.tax import (
    LSTResult,
    NSSFOptions,
    NSSFResult,
    PAYEResult,
    PayrollTaxCalculator,
    calculate_lst,
    calculate_nssf,
    calculate_paye,
)

__all__ = [
    "LSTResult",
    "NSSFOptions",
    "NSSFResult",
    "PAYEResult",
    "PaymentBatch",
    "PaymentBatchStatus",
    "PaymentLine",
    "PaymentMethod",
    "PayrollTaxCalculator",
    "ProrationMethod",
    "ProrationReason",
    "ProrationResult",
    "calculate_lst",
    "calculate_nssf",
    "calculate_paye",
    "calculate_proration",
    "partition_payments",
]
