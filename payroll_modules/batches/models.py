"""
payroll_modules.batches.models -- Pure frozen dataclasses for payroll batches.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections; persisted through ``payroll_modules.batches.orm``.

Invariants enforced:
    - ``status_history`` and ``approval_records`` are append-only tuples;
      the service only ever extends them.
    - Every aggregate total equals the sum over the successfully calculated
      records listed in ``payroll_ids``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from payroll_engines.partition import PaymentBatch
from payroll_kernel.domain.rounding import ZERO


# =============================================================================
# Status enums
# =============================================================================


class BatchStatus(str, Enum):
    """Batch lifecycle status."""

    DRAFT = "draft"
    CALCULATING = "calculating"
    CALCULATED = "calculated"
    HR_REVIEW = "hr_review"
    HR_APPROVED = "hr_approved"
    FINANCE_REVIEW = "finance_review"
    FINANCE_APPROVED = "finance_approved"
    CEO_REVIEW = "ceo_review"
    APPROVED = "approved"
    PROCESSING_PAYMENT = "processing_payment"
    PAID = "paid"
    CANCELLED = "cancelled"
    REVERSED = "reversed"


# A period may hold at most one batch outside these statuses.
INACTIVE_BATCH_STATUSES = frozenset({BatchStatus.CANCELLED, BatchStatus.REVERSED})

CANCELLABLE_BATCH_STATUSES = (
    BatchStatus.DRAFT,
    BatchStatus.CALCULATED,
    BatchStatus.HR_REVIEW,
    BatchStatus.FINANCE_REVIEW,
    BatchStatus.CEO_REVIEW,
)


class ApprovalLevel(str, Enum):
    HR = "hr"
    FINANCE = "finance"
    CEO = "ceo"


class ApprovalAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    RETURN = "return"


class PaymentStatus(str, Enum):
    """Roll-up of the payment sub-batches."""

    PENDING = "pending"
    PARTIAL = "partial"
    COMPLETE = "complete"


# =============================================================================
# Value objects
# =============================================================================


@dataclass(frozen=True)
class StatusHistoryEntry:
    status: BatchStatus
    actor_id: UUID
    timestamp: datetime
    actor_name: str = ""
    notes: str | None = None


@dataclass(frozen=True)
class ApprovalRecord:
    """One approval decision, kept forever."""

    level: ApprovalLevel
    action: ApprovalAction
    actor_id: UUID
    timestamp: datetime
    previous_status: BatchStatus
    new_status: BatchStatus
    actor_name: str = ""
    comments: str | None = None


@dataclass(frozen=True)
class CalculationError:
    employee_id: str
    employee_name: str
    error_code: str
    message: str
    timestamp: datetime


@dataclass(frozen=True)
class ApprovalThresholds:
    ceo_threshold: Decimal
    hr_required: bool = True
    finance_required: bool = True
    ceo_required: bool = False


@dataclass(frozen=True)
class BatchTotals:
    """Aggregates over the successfully calculated records of a batch."""

    gross_pay: Decimal = ZERO
    taxable_income: Decimal = ZERO
    paye: Decimal = ZERO
    nssf_employee: Decimal = ZERO
    nssf_employer: Decimal = ZERO
    lst: Decimal = ZERO
    other_deductions: Decimal = ZERO
    total_deductions: Decimal = ZERO
    net_pay: Decimal = ZERO


@dataclass(frozen=True)
class BatchProgress:
    """Snapshot handed to ``calculate_batch``'s progress callback."""

    batch_id: UUID
    total: int
    completed: int
    failed: int
    current_employee: str | None = None


# =============================================================================
# Batch
# =============================================================================


@dataclass(frozen=True)
class PayrollBatch:
    """A subsidiary's payroll run for one period."""

    id: UUID
    batch_number: str
    subsidiary_id: str
    year: int
    month: int
    period_start: date
    period_end: date
    payment_date: date
    status: BatchStatus
    approval_thresholds: ApprovalThresholds
    department_ids: tuple[str, ...] = ()
    employee_ids: tuple[str, ...] = ()
    payroll_ids: tuple[UUID, ...] = ()
    employee_count: int = 0
    calculated_count: int = 0
    error_count: int = 0
    totals: BatchTotals = BatchTotals()
    errors: tuple[CalculationError, ...] = ()
    status_history: tuple[StatusHistoryEntry, ...] = ()
    approval_records: tuple[ApprovalRecord, ...] = ()
    payment_batches: tuple[PaymentBatch, ...] = ()
    payment_status: PaymentStatus = PaymentStatus.PENDING
    paid_amount: Decimal = ZERO
    pending_amount: Decimal = ZERO
    name: str | None = None
    notes: str | None = None
    cancellation_reason: str | None = None
    reversal_reason: str | None = None
    version: int = 1
    created_by: UUID | None = None
    created_at: datetime | None = None

    @property
    def period(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @property
    def total_net_pay(self) -> Decimal:
        return self.totals.net_pay

    @property
    def is_active(self) -> bool:
        return self.status not in INACTIVE_BATCH_STATUSES
