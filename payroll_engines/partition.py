"""
Payment Partitioner - split a batch's payroll records into payment sub-batches.

Records are grouped by payment method; bank transfers are further grouped by
bank name.  Grouping is deterministic (fixed method order, banks sorted by
name, records in input order) and total-preserving: the sub-batch totals sum
to the batch's total net pay.

Usage:
    from payroll_engines.partition import PaymentLine, partition_payments

    sub_batches = partition_payments(lines, id_prefix="PAY-KLA-202409-01")
    assert sum(b.total_amount for b in sub_batches) == total_net_pay
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Sequence
from uuid import UUID

from payroll_engines.tracer import traced_engine
from payroll_kernel.domain.rounding import ZERO, RoundingMethod, round_total

UNKNOWN_BANK = "Unknown Bank"


class PaymentMethod(str, Enum):
    BANK_TRANSFER = "bank_transfer"
    MOBILE_MONEY = "mobile_money"
    CASH = "cash"
    CHEQUE = "cheque"


_METHOD_ORDER = {method: index for index, method in enumerate(PaymentMethod)}


class PaymentBatchStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    PARTIAL = "partial"


@dataclass(frozen=True)
class PaymentLine:
    """The slice of a payroll record the partitioner needs."""

    payroll_id: UUID
    employee_id: str
    employee_name: str
    net_pay: Decimal
    payment_method: PaymentMethod
    bank_name: str | None = None


@dataclass(frozen=True)
class PaymentBatch:
    """
    One payment sub-batch (single method, single bank for transfers).

    Created ``pending``; execution outcome is recorded later by the batch
    lifecycle service.
    """

    id: str
    payment_method: PaymentMethod
    bank_name: str | None
    total_amount: Decimal
    employee_count: int
    payroll_ids: tuple[UUID, ...]
    status: PaymentBatchStatus = PaymentBatchStatus.PENDING
    processed_count: int = 0
    failed_payroll_ids: tuple[UUID, ...] = field(default_factory=tuple)
    external_reference: str | None = None
    processed_at: datetime | None = None


def _group_key(line: PaymentLine) -> tuple[int, str]:
    method = PaymentMethod(line.payment_method)
    bank = ""
    if method is PaymentMethod.BANK_TRANSFER:
        bank = line.bank_name or UNKNOWN_BANK
    return _METHOD_ORDER[method], bank


@traced_engine("payment_partition", "1.0")
def partition_payments(
    lines: Sequence[PaymentLine],
    id_prefix: str = "PMT",
    rounding: RoundingMethod | str = RoundingMethod.ROUND,
) -> tuple[PaymentBatch, ...]:
    """
    Group payment lines into sub-batches.

    Postconditions:
        - Every line appears in exactly one sub-batch.
        - ``sum(b.total_amount) == sum(line.net_pay)`` (net pays are whole
          units already; the sum is rounded with ``rounding``, never
          clamped).
    """
    groups: dict[tuple[int, str], list[PaymentLine]] = {}
    for line in lines:
        groups.setdefault(_group_key(line), []).append(line)

    batches: list[PaymentBatch] = []
    methods = list(PaymentMethod)
    for index, key in enumerate(sorted(groups), start=1):
        members = groups[key]
        method = methods[key[0]]
        total = sum((m.net_pay for m in members), ZERO)
        batches.append(
            PaymentBatch(
                id=f"{id_prefix}-P{index:02d}",
                payment_method=method,
                bank_name=key[1] or None,
                total_amount=round_total(total, rounding),
                employee_count=len(members),
                payroll_ids=tuple(m.payroll_id for m in members),
            )
        )
    return tuple(batches)
