"""
ORM model for payroll batch persistence.

Contract:
    ``PayrollBatchModel`` persists ``PayrollBatch`` with ``to_dto()`` /
    ``from_dto()`` / ``apply_dto()``.  Aggregates the reports filter on are
    Numeric columns; history, approvals, errors and payment sub-batches are
    JSON documents.

Architecture: payroll_modules/batches.  Imports from payroll_kernel.db only
    (plus the batch DTOs, lazily).

Invariants enforced:
    - ``batch_number`` is UNIQUE.
    - ``version`` is SQLAlchemy's ``version_id_col``: every UPDATE bumps it
      and an UPDATE against a stale version raises ``StaleDataError``.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, Date, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase
from payroll_kernel.db.documents import from_document, to_document

if TYPE_CHECKING:
    from payroll_modules.batches.models import PayrollBatch


class PayrollBatchModel(TrackedBase):
    """Persistent payroll batch."""

    __tablename__ = "payroll_batches"

    __table_args__ = (
        Index("ix_payroll_batches_period", "subsidiary_id", "year", "month"),
        Index("ix_payroll_batches_status", "status"),
    )

    batch_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    subsidiary_id: Mapped[str] = mapped_column(String(64), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False)

    department_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    employee_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    payroll_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    employee_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    calculated_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    total_gross_pay: Mapped[Decimal] = mapped_column(nullable=False)
    total_net_pay: Mapped[Decimal] = mapped_column(nullable=False)
    totals: Mapped[dict] = mapped_column(JSON, nullable=False)

    errors: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    approval_thresholds: Mapped[dict] = mapped_column(JSON, nullable=False)
    approval_records: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    status_history: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    payment_batches: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    payment_status: Mapped[str] = mapped_column(String(20), nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(nullable=False)
    pending_amount: Mapped[Decimal] = mapped_column(nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    reversal_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def to_dto(self) -> PayrollBatch:
        from payroll_engines.partition import PaymentBatch
        from payroll_modules.batches.models import (
            ApprovalRecord,
            ApprovalThresholds,
            BatchStatus,
            BatchTotals,
            CalculationError,
            PaymentStatus,
            PayrollBatch,
            StatusHistoryEntry,
        )

        return PayrollBatch(
            id=self.id,
            batch_number=self.batch_number,
            name=self.name,
            subsidiary_id=self.subsidiary_id,
            year=self.year,
            month=self.month,
            period_start=self.period_start,
            period_end=self.period_end,
            payment_date=self.payment_date,
            status=BatchStatus(self.status),
            approval_thresholds=from_document(ApprovalThresholds, self.approval_thresholds),
            department_ids=tuple(self.department_ids or ()),
            employee_ids=tuple(self.employee_ids or ()),
            payroll_ids=tuple(UUID(p) for p in self.payroll_ids or ()),
            employee_count=self.employee_count,
            calculated_count=self.calculated_count,
            error_count=self.error_count,
            totals=from_document(BatchTotals, self.totals),
            errors=tuple(from_document(CalculationError, e) for e in self.errors or ()),
            status_history=tuple(
                from_document(StatusHistoryEntry, h) for h in self.status_history or ()
            ),
            approval_records=tuple(
                from_document(ApprovalRecord, a) for a in self.approval_records or ()
            ),
            payment_batches=tuple(
                from_document(PaymentBatch, p) for p in self.payment_batches or ()
            ),
            payment_status=PaymentStatus(self.payment_status),
            paid_amount=self.paid_amount,
            pending_amount=self.pending_amount,
            notes=self.notes,
            cancellation_reason=self.cancellation_reason,
            reversal_reason=self.reversal_reason,
            version=self.version,
            created_by=self.created_by_id,
            created_at=self.created_at,
        )

    def apply_dto(self, dto: PayrollBatch) -> None:
        """Copy every mutable field of ``dto`` onto this row (not id/version)."""
        self.batch_number = dto.batch_number
        self.name = dto.name
        self.subsidiary_id = dto.subsidiary_id
        self.year = dto.year
        self.month = dto.month
        self.period_start = dto.period_start
        self.period_end = dto.period_end
        self.payment_date = dto.payment_date
        self.status = dto.status.value
        self.department_ids = list(dto.department_ids)
        self.employee_ids = list(dto.employee_ids)
        self.payroll_ids = [str(p) for p in dto.payroll_ids]
        self.employee_count = dto.employee_count
        self.calculated_count = dto.calculated_count
        self.error_count = dto.error_count
        self.total_gross_pay = dto.totals.gross_pay
        self.total_net_pay = dto.totals.net_pay
        self.totals = to_document(dto.totals)
        self.errors = to_document(dto.errors)
        self.approval_thresholds = to_document(dto.approval_thresholds)
        self.approval_records = to_document(dto.approval_records)
        self.status_history = to_document(dto.status_history)
        self.payment_batches = to_document(dto.payment_batches)
        self.payment_status = dto.payment_status.value
        self.paid_amount = dto.paid_amount
        self.pending_amount = dto.pending_amount
        self.notes = dto.notes
        self.cancellation_reason = dto.cancellation_reason
        self.reversal_reason = dto.reversal_reason

    @classmethod
    def from_dto(cls, dto: PayrollBatch, created_by_id: UUID) -> PayrollBatchModel:
        model = cls(id=dto.id, created_by_id=created_by_id)
        model.apply_dto(dto)
        return model
