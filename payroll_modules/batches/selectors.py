"""
Payroll batch selectors (``payroll_modules.batches.selectors``).

Read-only queries over ``payroll_batches``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy import select

from payroll_kernel.domain.rounding import ZERO
from payroll_kernel.exceptions import BatchNotFoundError
from payroll_kernel.selectors.base import BaseSelector
from payroll_modules.batches.models import (
    INACTIVE_BATCH_STATUSES,
    BatchStatus,
    PayrollBatch,
)
from payroll_modules.batches.orm import PayrollBatchModel


@dataclass(frozen=True)
class BatchStatistics:
    """Per-subsidiary, per-year roll-up of batches."""

    subsidiary_id: str
    year: int
    total_batches: int
    total_paid: Decimal
    total_pending: Decimal
    by_status: dict[str, int] = field(default_factory=dict)


class PayrollBatchSelector(BaseSelector):

    def get(self, batch_id: UUID) -> PayrollBatch:
        model = self.session.get(PayrollBatchModel, batch_id)
        if model is None:
            raise BatchNotFoundError(batch_id)
        return model.to_dto()

    def list_batches(
        self,
        subsidiary_id: str,
        year: int | None = None,
        statuses: Iterable[BatchStatus] | None = None,
    ) -> list[PayrollBatch]:
        """Batches for a subsidiary, newest period first."""
        stmt = select(PayrollBatchModel).where(PayrollBatchModel.subsidiary_id == subsidiary_id)
        if year is not None:
            stmt = stmt.where(PayrollBatchModel.year == year)
        if statuses is not None:
            stmt = stmt.where(PayrollBatchModel.status.in_([s.value for s in statuses]))
        stmt = stmt.order_by(
            PayrollBatchModel.year.desc(),
            PayrollBatchModel.month.desc(),
            PayrollBatchModel.batch_number.desc(),
        )
        return [m.to_dto() for m in self.session.scalars(stmt).all()]

    def list_for_period(self, subsidiary_id: str, year: int, month: int) -> list[PayrollBatch]:
        models = self.session.scalars(
            select(PayrollBatchModel)
            .where(
                PayrollBatchModel.subsidiary_id == subsidiary_id,
                PayrollBatchModel.year == year,
                PayrollBatchModel.month == month,
            )
            .order_by(PayrollBatchModel.batch_number)
        ).all()
        return [m.to_dto() for m in models]

    def find_active_for_period(
        self, subsidiary_id: str, year: int, month: int
    ) -> PayrollBatch | None:
        for batch in self.list_for_period(subsidiary_id, year, month):
            if batch.status not in INACTIVE_BATCH_STATUSES:
                return batch
        return None

    def statistics(self, subsidiary_id: str, year: int) -> BatchStatistics:
        """Paid net pay, pending net pay (excluding cancelled/reversed) and counts by status."""
        by_status: dict[str, int] = {}
        total_paid = ZERO
        total_pending = ZERO
        batches = self.list_batches(subsidiary_id, year)
        for batch in batches:
            by_status[batch.status.value] = by_status.get(batch.status.value, 0) + 1
            if batch.status is BatchStatus.PAID:
                total_paid += batch.total_net_pay
            elif batch.status not in INACTIVE_BATCH_STATUSES:
                total_pending += batch.total_net_pay
        return BatchStatistics(
            subsidiary_id=subsidiary_id,
            year=year,
            total_batches=len(batches),
            total_paid=total_paid,
            total_pending=total_pending,
            by_status=by_status,
        )
