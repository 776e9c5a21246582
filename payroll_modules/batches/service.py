"""
BatchLifecycleService -- payroll batch calculation, approval and payment.

Contract:
    Owns the 13-state batch lifecycle: create, calculate (SAVEPOINT per
    employee), submit, approve through HR / finance / CEO, partition and
    complete payments, cancel, reverse and restart.  Every status write is
    validated against ``PAYROLL_BATCH_WORKFLOW`` and recorded in the
    append-only status history.

Architecture: payroll_modules/batches.  Drives ``PayrollRecordBuilder`` for
    per-employee calculation and record status writes; reads the employee
    directory for the roster; uses ``partition_payments`` for payment
    sub-batches.

Invariants enforced:
    - One history entry per transition, timestamps strictly increasing.
    - Batch aggregates equal the sums over the records in ``payroll_ids``.
    - Each employee runs in its own SAVEPOINT; one failure never aborts
      the batch.
    - Every write bumps ``version``; stale writes raise
      ``ConcurrentModificationError``.
    - All timestamps come from the injected ``Clock``.

Non-goals:
    - Does NOT call ``session.commit()``; the caller controls boundaries.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from payroll_config import get_active_config
from payroll_config.schema import PayrollConfiguration
from payroll_engines.partition import (
    PaymentBatchStatus,
    PaymentLine,
    partition_payments,
)
from payroll_engines.periods import days_in_month, period_bounds, period_code
from payroll_kernel.db.concurrency import check_version, flush_versioned
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.rounding import ZERO
from payroll_kernel.exceptions import (
    BatchAlreadyExistsError,
    BatchNotFoundError,
    EmployeeNotFoundError,
    HasCalculationErrorsError,
    InvalidStateError,
    InvalidStatusTransitionError,
    PaymentBatchNotFoundError,
)
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_modules.batches.models import (
    CANCELLABLE_BATCH_STATUSES,
    ApprovalAction,
    ApprovalLevel,
    ApprovalRecord,
    ApprovalThresholds,
    BatchProgress,
    BatchStatus,
    BatchTotals,
    CalculationError,
    PaymentStatus,
    PayrollBatch,
    StatusHistoryEntry,
)
from payroll_modules.batches.orm import PayrollBatchModel
from payroll_modules.batches.selectors import BatchStatistics, PayrollBatchSelector
from payroll_modules.batches.workflows import PAYROLL_BATCH_WORKFLOW
from payroll_modules.records.models import (
    PAYABLE_EMPLOYMENT_STATUSES,
    Employee,
    EmployeePayroll,
)
from payroll_modules.records.selectors import PayrollRecordSelector
from payroll_modules.records.service import PayrollInputs, PayrollRecordBuilder
from payroll_modules.records.sources import EmployeeDirectory, OvertimeLoanSource

logger = get_logger("modules.batches.service")

_ENTITY = "payroll_batch"

ProgressCallback = Callable[[BatchProgress], None]

# Review status -> (level, approve target, return target)
_APPROVAL_STAGES: dict[BatchStatus, tuple[ApprovalLevel, BatchStatus, BatchStatus]] = {
    BatchStatus.HR_REVIEW: (ApprovalLevel.HR, BatchStatus.HR_APPROVED, BatchStatus.CALCULATED),
    BatchStatus.FINANCE_REVIEW: (
        ApprovalLevel.FINANCE, BatchStatus.FINANCE_APPROVED, BatchStatus.HR_APPROVED,
    ),
    BatchStatus.CEO_REVIEW: (ApprovalLevel.CEO, BatchStatus.APPROVED, BatchStatus.FINANCE_APPROVED),
}

# Status an approval action would move to when no review is open
_OUT_OF_REVIEW_TARGETS: dict[ApprovalAction, BatchStatus] = {
    ApprovalAction.APPROVE: BatchStatus.APPROVED,
    ApprovalAction.RETURN: BatchStatus.CALCULATED,
    ApprovalAction.REJECT: BatchStatus.CANCELLED,
}


@dataclass(frozen=True)
class _RosterEntry:
    employee_id: str
    employee: Employee | None

    @property
    def name(self) -> str:
        return self.employee.full_name if self.employee is not None else self.employee_id


class _CalculationTracker:
    """Thread-safe counters, errors and progress reporting for one run."""

    def __init__(
        self,
        batch_id: UUID,
        total: int,
        clock: Clock,
        on_progress: ProgressCallback | None,
    ):
        self.batch_id = batch_id
        self.total = total
        self.completed = 0
        self.failed = 0
        self.errors: list[CalculationError] = []
        self._clock = clock
        self._on_progress = on_progress
        self._lock = threading.Lock()

    def succeeded(self, employee_name: str) -> None:
        with self._lock:
            self.completed += 1
            self._report(employee_name)

    def fail(self, entry: _RosterEntry, exc: Exception) -> None:
        code = getattr(exc, "code", "UNHANDLED_EXCEPTION")
        logger.warning(
            "employee_payroll_failed",
            extra={
                "batch_id": str(self.batch_id),
                "employee_id": entry.employee_id,
                "error_code": code,
                "error": str(exc),
            },
        )
        with self._lock:
            self.failed += 1
            self.errors.append(
                CalculationError(
                    employee_id=entry.employee_id,
                    employee_name=entry.name,
                    error_code=code,
                    message=str(exc),
                    timestamp=self._clock.now(),
                )
            )
            self._report(entry.name)

    def _report(self, employee_name: str) -> None:
        if self._on_progress is not None:
            self._on_progress(
                BatchProgress(
                    batch_id=self.batch_id,
                    total=self.total,
                    completed=self.completed,
                    failed=self.failed,
                    current_employee=employee_name,
                )
            )


def _totals(records: Sequence[EmployeePayroll]) -> BatchTotals:
    def total(attr: Callable[[EmployeePayroll], object]):
        return sum((attr(r) for r in records), ZERO)

    return BatchTotals(
        gross_pay=total(lambda r: r.gross_pay),
        taxable_income=total(lambda r: r.taxable_income),
        paye=total(lambda r: r.paye.net_paye),
        nssf_employee=total(lambda r: r.nssf.employee_contribution),
        nssf_employer=total(lambda r: r.nssf.employer_contribution),
        lst=total(lambda r: r.lst.monthly_amount),
        other_deductions=total(lambda r: r.total_voluntary_deductions),
        total_deductions=total(lambda r: r.total_deductions),
        net_pay=total(lambda r: r.net_pay),
    )


class BatchLifecycleService:
    """
    Payroll batch lifecycle.

    Contract:
        - Operations take the acting user's id (and optional display name)
          and return the updated ``PayrollBatch``.
        - ``expected_version`` (optional) must match the stored version.
        - Operations outside the allowed statuses raise
          ``InvalidStateError`` / ``InvalidStatusTransitionError`` and
          write nothing.

    Non-goals:
        - Does NOT commit; wrap calls in ``session_scope()``.
        - Does NOT execute payments; external systems report outcomes via
          ``complete_payment_batch``.
    """

    def __init__(
        self,
        session: Session,
        directory: EmployeeDirectory,
        overtime_loans: OvertimeLoanSource,
        config: PayrollConfiguration | None = None,
        clock: Clock | None = None,
        builder: PayrollRecordBuilder | None = None,
    ):
        self._session = session
        self._directory = directory
        self._config = config or get_active_config()
        self._clock = clock or SystemClock()
        self._builder = builder or PayrollRecordBuilder(
            session, directory, overtime_loans, self._config, self._clock,
        )
        self._batches = PayrollBatchSelector(session)
        self._records = PayrollRecordSelector(session)

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _load(self, batch_id: UUID, expected_version: int | None = None) -> PayrollBatchModel:
        model = self._session.get(PayrollBatchModel, batch_id)
        if model is None:
            raise BatchNotFoundError(batch_id)
        check_version(_ENTITY, batch_id, expected_version, model.version)
        return model

    def _save(self, model: PayrollBatchModel, batch: PayrollBatch, actor_id: UUID) -> PayrollBatch:
        model.apply_dto(batch)
        model.updated_by_id = actor_id
        flush_versioned(self._session, _ENTITY, model.id)
        return model.to_dto()

    def _stamp(self, batch: PayrollBatch) -> datetime:
        now = self._clock.now()
        if batch.status_history and now <= batch.status_history[-1].timestamp:
            now = batch.status_history[-1].timestamp + timedelta(microseconds=1)
        return now

    def _transition(
        self,
        batch: PayrollBatch,
        to_status: BatchStatus,
        actor_id: UUID,
        actor_name: str,
        notes: str | None,
        **changes,
    ) -> PayrollBatch:
        """Validate one status change and append its history entry."""
        PAYROLL_BATCH_WORKFLOW.require(_ENTITY, batch.status.value, to_status.value)
        entry = StatusHistoryEntry(
            status=to_status,
            actor_id=actor_id,
            timestamp=self._stamp(batch),
            actor_name=actor_name,
            notes=notes,
        )
        logger.info(
            "batch_status_changed",
            extra={
                "batch_id": str(batch.id),
                "batch_number": batch.batch_number,
                "from_status": batch.status.value,
                "to_status": to_status.value,
            },
        )
        return replace(
            batch,
            status=to_status,
            status_history=batch.status_history + (entry,),
            **changes,
        )

    @staticmethod
    def _require_status(
        batch: PayrollBatch, operation: str, allowed: Iterable[BatchStatus]
    ) -> None:
        allowed = tuple(allowed)
        if batch.status not in allowed:
            raise InvalidStateError(operation, batch.status.value, tuple(s.value for s in allowed))

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    def create_batch(
        self,
        subsidiary_id: str,
        year: int,
        month: int,
        actor_id: UUID,
        actor_name: str = "",
        department_ids: Sequence[str] | None = None,
        employee_ids: Sequence[str] | None = None,
        payment_date: date | None = None,
        subsidiary_code: str | None = None,
        name: str | None = None,
        notes: str | None = None,
    ) -> PayrollBatch:
        """Create a DRAFT batch for (subsidiary, year, month).

        Raises:
            BatchAlreadyExistsError: If the period already has a batch that
                is neither cancelled nor reversed.
        """
        if not 1 <= month <= 12:
            raise ValueError(f"month must be 1-12, got {month}")

        active = self._batches.find_active_for_period(subsidiary_id, year, month)
        if active is not None:
            raise BatchAlreadyExistsError(subsidiary_id, year, month, active.batch_number)

        code = (
            subsidiary_code
            or subsidiary_id[: self._config.batch.subsidiary_code_length]
        ).upper()
        sequence = len(self._batches.list_for_period(subsidiary_id, year, month)) + 1
        batch_number = f"PAY-{code}-{period_code(year, month)}-{sequence:02d}"

        period_start, period_end = period_bounds(year, month)
        now = self._clock.now()
        batch = PayrollBatch(
            id=uuid4(),
            batch_number=batch_number,
            name=name or f"Payroll {period_code(year, month)} {code}",
            subsidiary_id=subsidiary_id,
            year=year,
            month=month,
            period_start=period_start,
            period_end=period_end,
            payment_date=payment_date or date(
                year, month, min(self._config.default_payment_day, days_in_month(year, month))
            ),
            status=BatchStatus.DRAFT,
            approval_thresholds=ApprovalThresholds(
                ceo_threshold=self._config.batch.ceo_approval_threshold,
            ),
            department_ids=tuple(department_ids or ()),
            employee_ids=tuple(employee_ids or ()),
            status_history=(
                StatusHistoryEntry(
                    status=BatchStatus.DRAFT,
                    actor_id=actor_id,
                    timestamp=now,
                    actor_name=actor_name,
                    notes="Batch created",
                ),
            ),
            notes=notes,
            created_by=actor_id,
        )

        model = PayrollBatchModel.from_dto(batch, created_by_id=actor_id)
        self._session.add(model)
        flush_versioned(self._session, _ENTITY, batch.id)

        logger.info(
            "batch_created",
            extra={
                "batch_id": str(batch.id),
                "batch_number": batch_number,
                "subsidiary_id": subsidiary_id,
                "period": batch.period,
            },
        )
        return model.to_dto()

    # -------------------------------------------------------------------------
    # Calculate
    # -------------------------------------------------------------------------

    def _resolve_roster(self, batch: PayrollBatch) -> list[_RosterEntry]:
        """Explicit ids (chunked), else department filter, else every payable employee."""
        if batch.employee_ids:
            ids = list(dict.fromkeys(batch.employee_ids))
            size = self._config.batch.directory_query_chunk_size
            found: dict[str, Employee] = {}
            for start in range(0, len(ids), size):
                for employee in self._directory.get_employees(ids[start:start + size]):
                    found[employee.employee_id] = employee
            return [_RosterEntry(i, found.get(i)) for i in ids]

        employees = self._directory.list_employees(
            batch.subsidiary_id,
            department_ids=list(batch.department_ids) or None,
            statuses=PAYABLE_EMPLOYMENT_STATUSES,
        )
        return [_RosterEntry(e.employee_id, e) for e in employees]

    def _prepare_one(
        self, batch: PayrollBatch, entry: _RosterEntry, tracker: _CalculationTracker,
    ) -> PayrollInputs | None:
        try:
            if entry.employee is None:
                raise EmployeeNotFoundError(entry.employee_id)
            return self._builder.prepare(
                entry.employee_id,
                batch.year,
                batch.month,
                recalculate=True,
                employee=entry.employee,
            )
        except Exception as exc:
            tracker.fail(entry, exc)
            return None

    def _persist_one(
        self,
        batch: PayrollBatch,
        entry: _RosterEntry,
        record: EmployeePayroll,
        actor_id: UUID,
        tracker: _CalculationTracker,
    ) -> EmployeePayroll | None:
        savepoint = self._session.begin_nested()
        try:
            stored = self._builder.persist(replace(record, payroll_period_id=batch.id), actor_id)
            savepoint.commit()
        except Exception as exc:
            savepoint.rollback()
            tracker.fail(entry, exc)
            return None
        tracker.succeeded(entry.name)
        return stored

    def _calculate_sequential(
        self,
        batch: PayrollBatch,
        roster: list[_RosterEntry],
        actor_id: UUID,
        tracker: _CalculationTracker,
    ) -> list[EmployeePayroll]:
        stored: list[EmployeePayroll] = []
        for entry in roster:
            inputs = self._prepare_one(batch, entry, tracker)
            if inputs is None:
                continue
            try:
                record = self._builder.build(inputs)
            except Exception as exc:
                tracker.fail(entry, exc)
                continue
            result = self._persist_one(batch, entry, record, actor_id, tracker)
            if result is not None:
                stored.append(result)
        return stored

    def _calculate_parallel(
        self,
        batch: PayrollBatch,
        roster: list[_RosterEntry],
        actor_id: UUID,
        tracker: _CalculationTracker,
        max_workers: int,
    ) -> list[EmployeePayroll]:
        """Load on this thread, build on the pool, persist back on this thread."""
        prepared: list[tuple[_RosterEntry, PayrollInputs]] = []
        for entry in roster:
            inputs = self._prepare_one(batch, entry, tracker)
            if inputs is not None:
                prepared.append((entry, inputs))

        built: dict[str, EmployeePayroll] = {}
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = {
                pool.submit(self._builder.build, inputs): entry
                for entry, inputs in prepared
            }
            for future in as_completed(futures):
                entry = futures[future]
                try:
                    built[entry.employee_id] = future.result()
                except Exception as exc:
                    tracker.fail(entry, exc)

        stored: list[EmployeePayroll] = []
        for entry, _ in prepared:
            record = built.get(entry.employee_id)
            if record is None:
                continue
            result = self._persist_one(batch, entry, record, actor_id, tracker)
            if result is not None:
                stored.append(result)
        return stored

    def calculate_batch(
        self,
        batch_id: UUID,
        actor_id: UUID,
        actor_name: str = "",
        on_progress: ProgressCallback | None = None,
        max_workers: int = 1,
        expected_version: int | None = None,
    ) -> PayrollBatch:
        """Calculate every employee on the roster and move the batch to CALCULATED.

        Per-employee failures are recorded on the batch, never raised.  An
        unexpected failure outside the per-employee loop (e.g. the roster
        query) returns the batch to DRAFT and re-raises.
        """
        model = self._load(batch_id, expected_version)
        batch = model.to_dto()
        self._require_status(batch, "calculate_batch", (BatchStatus.DRAFT,))

        with LogContext.bind(batch_id=batch_id, actor_id=actor_id):
            batch = self._save(
                model,
                self._transition(
                    batch, BatchStatus.CALCULATING, actor_id, actor_name, "Starting calculation",
                ),
                actor_id,
            )
            try:
                roster = self._resolve_roster(batch)
                tracker = _CalculationTracker(batch.id, len(roster), self._clock, on_progress)
                if max_workers > 1:
                    stored = self._calculate_parallel(batch, roster, actor_id, tracker, max_workers)
                else:
                    stored = self._calculate_sequential(batch, roster, actor_id, tracker)

                kept = {r.id for r in stored}
                for payroll_id in batch.payroll_ids:
                    if payroll_id not in kept:
                        self._builder.link_to_batch(payroll_id, None)
            except Exception:
                logger.exception("batch_calculation_aborted", extra={"batch_id": str(batch_id)})
                self._save(
                    model,
                    self._transition(
                        batch, BatchStatus.DRAFT, actor_id, actor_name,
                        "Calculation aborted",
                    ),
                    actor_id,
                )
                raise

            totals = _totals(stored)
            thresholds = replace(
                batch.approval_thresholds,
                ceo_required=totals.net_pay >= batch.approval_thresholds.ceo_threshold,
            )
            note = f"Calculated {tracker.completed} of {tracker.total} employees"
            if tracker.failed:
                note += f", {tracker.failed} failed"

            batch = self._save(
                model,
                self._transition(
                    batch,
                    BatchStatus.CALCULATED,
                    actor_id,
                    actor_name,
                    note,
                    payroll_ids=tuple(r.id for r in stored),
                    employee_count=tracker.total,
                    calculated_count=tracker.completed,
                    error_count=tracker.failed,
                    errors=tuple(tracker.errors),
                    totals=totals,
                    approval_thresholds=thresholds,
                    payment_batches=(),
                    payment_status=PaymentStatus.PENDING,
                    paid_amount=ZERO,
                    pending_amount=totals.net_pay,
                ),
                actor_id,
            )

        logger.info(
            "batch_calculated",
            extra={
                "batch_id": str(batch_id),
                "employee_count": tracker.total,
                "calculated_count": tracker.completed,
                "error_count": tracker.failed,
                "total_net_pay": str(totals.net_pay),
                "ceo_required": thresholds.ceo_required,
            },
        )
        return batch

    # -------------------------------------------------------------------------
    # Review and approval
    # -------------------------------------------------------------------------

    def _after_finance_approval(
        self, batch: PayrollBatch, actor_id: UUID, actor_name: str,
    ) -> PayrollBatch:
        if batch.approval_thresholds.ceo_required:
            return self._transition(
                batch, BatchStatus.CEO_REVIEW, actor_id, actor_name,
                "Moving to CEO review (threshold exceeded)",
            )
        return self._transition(batch, BatchStatus.APPROVED, actor_id, actor_name, "Fully approved")

    def submit_for_review(
        self,
        batch_id: UUID,
        actor_id: UUID,
        actor_name: str = "",
        expected_version: int | None = None,
    ) -> PayrollBatch:
        """Submit a calculated batch for HR review.

        Raises:
            InvalidStateError: If the batch is not CALCULATED.
            HasCalculationErrorsError: If any employee failed to calculate.
        """
        model = self._load(batch_id, expected_version)
        batch = model.to_dto()
        self._require_status(batch, "submit_for_review", (BatchStatus.CALCULATED,))
        if batch.error_count > 0:
            raise HasCalculationErrorsError(batch_id, batch.error_count)

        updated = self._transition(
            batch, BatchStatus.HR_REVIEW, actor_id, actor_name, "Submitted for HR review",
        )
        return self._save(model, updated, actor_id)

    def resubmit_for_approval(
        self,
        batch_id: UUID,
        actor_id: UUID,
        actor_name: str = "",
        expected_version: int | None = None,
    ) -> PayrollBatch:
        """Send a returned batch back up the approval chain.

        HR_APPROVED (returned by finance) goes to finance review;
        FINANCE_APPROVED (returned by the CEO) goes to CEO review, or to
        APPROVED when the threshold no longer applies.
        """
        model = self._load(batch_id, expected_version)
        batch = model.to_dto()
        self._require_status(
            batch,
            "resubmit_for_approval",
            (BatchStatus.HR_APPROVED, BatchStatus.FINANCE_APPROVED),
        )

        if batch.status is BatchStatus.HR_APPROVED:
            updated = self._transition(
                batch, BatchStatus.FINANCE_REVIEW, actor_id, actor_name,
                "Resubmitted for finance review",
            )
        else:
            updated = self._after_finance_approval(batch, actor_id, actor_name)

        if updated.status is BatchStatus.APPROVED:
            self._builder.approve(updated.payroll_ids, actor_id)
        return self._save(model, updated, actor_id)

    def process_approval(
        self,
        batch_id: UUID,
        action: ApprovalAction | str,
        actor_id: UUID,
        actor_name: str = "",
        comments: str | None = None,
        expected_version: int | None = None,
    ) -> PayrollBatch:
        """Approve, reject or return a batch at its current review level.

        The level comes from the status (hr_review, finance_review,
        ceo_review).  Approval moves on automatically: HR approval to
        finance review, finance approval to CEO review or APPROVED.

        Raises:
            InvalidStatusTransitionError: If no review is open for the batch.
        """
        action = ApprovalAction(action)
        model = self._load(batch_id, expected_version)
        batch = model.to_dto()
        stage = _APPROVAL_STAGES.get(batch.status)
        if stage is None:
            raise InvalidStatusTransitionError(
                _ENTITY, batch.status.value, _OUT_OF_REVIEW_TARGETS[action].value,
            )
        level, approve_target, return_target = stage

        if action is ApprovalAction.APPROVE:
            target = approve_target
        elif action is ApprovalAction.RETURN:
            target = return_target
        else:
            target = BatchStatus.CANCELLED

        record = ApprovalRecord(
            level=level,
            action=action,
            actor_id=actor_id,
            timestamp=self._clock.now(),
            previous_status=batch.status,
            new_status=target,
            actor_name=actor_name,
            comments=comments,
        )
        updated = self._transition(
            batch,
            target,
            actor_id,
            actor_name,
            f"{level.value.upper()} {action.value}: {comments or 'No comments'}",
            approval_records=batch.approval_records + (record,),
        )
        if action is ApprovalAction.REJECT:
            updated = replace(updated, cancellation_reason=comments or "Rejected")

        if action is ApprovalAction.APPROVE:
            if level is ApprovalLevel.HR:
                self._builder.mark_reviewed(updated.payroll_ids, actor_id)
                updated = self._transition(
                    updated, BatchStatus.FINANCE_REVIEW, actor_id, actor_name,
                    "Moving to finance review",
                )
            elif level is ApprovalLevel.FINANCE:
                updated = self._after_finance_approval(updated, actor_id, actor_name)
            if updated.status is BatchStatus.APPROVED:
                self._builder.approve(updated.payroll_ids, actor_id)

        saved = self._save(model, updated, actor_id)
        logger.info(
            "batch_approval_processed",
            extra={
                "batch_id": str(batch_id),
                "level": level.value,
                "action": action.value,
                "new_status": saved.status.value,
            },
        )
        return saved

    # -------------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------------

    def process_payments(
        self,
        batch_id: UUID,
        actor_id: UUID,
        actor_name: str = "",
        expected_version: int | None = None,
    ) -> PayrollBatch:
        """Move an APPROVED batch to PROCESSING_PAYMENT and partition its payments."""
        model = self._load(batch_id, expected_version)
        batch = model.to_dto()
        self._require_status(batch, "process_payments", (BatchStatus.APPROVED,))

        lines = [
            PaymentLine(
                payroll_id=r.id,
                employee_id=r.employee_id,
                employee_name=r.employee_name,
                net_pay=r.net_pay,
                payment_method=r.payment_details.method,
                bank_name=r.payment_details.bank_name,
            )
            for r in self._records.list_by_ids(batch.payroll_ids)
        ]
        payment_batches = partition_payments(
            lines, id_prefix=batch.batch_number, rounding=self._config.rounding_method,
        )

        saved = self._save(
            model,
            self._transition(
                batch,
                BatchStatus.PROCESSING_PAYMENT,
                actor_id,
                actor_name,
                "Processing payments",
                payment_batches=payment_batches,
                payment_status=PaymentStatus.PENDING,
                paid_amount=ZERO,
                pending_amount=batch.total_net_pay,
            ),
            actor_id,
        )
        logger.info(
            "payment_batches_created",
            extra={
                "batch_id": str(batch_id),
                "payment_batch_count": len(payment_batches),
                "total_amount": str(sum((p.total_amount for p in payment_batches), ZERO)),
            },
        )
        return saved

    def complete_payment_batch(
        self,
        batch_id: UUID,
        payment_batch_id: str,
        status: PaymentBatchStatus | str,
        processed_count: int,
        actor_id: UUID,
        actor_name: str = "",
        failed_payroll_ids: Sequence[UUID] = (),
        reference: str | None = None,
        expected_version: int | None = None,
    ) -> PayrollBatch:
        """Record the outcome of one payment sub-batch.

        When every sub-batch has completed the batch becomes PAID and every
        linked payroll record is marked paid in the same transaction.

        Raises:
            InvalidStateError: If the batch is not PROCESSING_PAYMENT.
            PaymentBatchNotFoundError: If ``payment_batch_id`` is unknown.
        """
        status = PaymentBatchStatus(status)
        if status not in (
            PaymentBatchStatus.COMPLETED, PaymentBatchStatus.FAILED, PaymentBatchStatus.PARTIAL,
        ):
            raise ValueError(f"Payment outcome must be completed, failed or partial, got {status.value}")

        model = self._load(batch_id, expected_version)
        batch = model.to_dto()
        self._require_status(batch, "complete_payment_batch", (BatchStatus.PROCESSING_PAYMENT,))
        if not any(p.id == payment_batch_id for p in batch.payment_batches):
            raise PaymentBatchNotFoundError(batch_id, payment_batch_id)

        now = self._clock.now()
        payment_batches = tuple(
            replace(
                p,
                status=status,
                processed_count=processed_count,
                failed_payroll_ids=tuple(failed_payroll_ids),
                external_reference=reference,
                processed_at=now,
            )
            if p.id == payment_batch_id
            else p
            for p in batch.payment_batches
        )

        if all(p.status is PaymentBatchStatus.COMPLETED for p in payment_batches):
            payment_status = PaymentStatus.COMPLETE
        elif any(p.status is PaymentBatchStatus.FAILED for p in payment_batches):
            payment_status = PaymentStatus.PARTIAL
        else:
            payment_status = PaymentStatus.PENDING
        paid_amount = sum(
            (p.total_amount for p in payment_batches if p.status is PaymentBatchStatus.COMPLETED),
            ZERO,
        )

        updated = replace(
            batch,
            payment_batches=payment_batches,
            payment_status=payment_status,
            paid_amount=paid_amount,
            pending_amount=batch.total_net_pay - paid_amount,
        )
        if payment_status is PaymentStatus.COMPLETE:
            updated = self._transition(
                updated, BatchStatus.PAID, actor_id, actor_name, "All payments completed",
            )
            self._builder.mark_paid(updated.payroll_ids, actor_id)

        saved = self._save(model, updated, actor_id)
        logger.info(
            "payment_batch_completed",
            extra={
                "batch_id": str(batch_id),
                "payment_batch_id": payment_batch_id,
                "outcome": status.value,
                "payment_status": payment_status.value,
                "paid_amount": str(paid_amount),
            },
        )
        return saved

    def cancel_payment_processing(
        self,
        batch_id: UUID,
        actor_id: UUID,
        actor_name: str = "",
        reason: str | None = None,
        expected_version: int | None = None,
    ) -> PayrollBatch:
        """Return a PROCESSING_PAYMENT batch to APPROVED, discarding its sub-batches."""
        model = self._load(batch_id, expected_version)
        batch = model.to_dto()
        self._require_status(batch, "cancel_payment_processing", (BatchStatus.PROCESSING_PAYMENT,))
        return self._save(
            model,
            self._transition(
                batch,
                BatchStatus.APPROVED,
                actor_id,
                actor_name,
                f"Payment processing cancelled: {reason}" if reason else "Payment processing cancelled",
                payment_batches=(),
                payment_status=PaymentStatus.PENDING,
                paid_amount=ZERO,
                pending_amount=batch.total_net_pay,
            ),
            actor_id,
        )

    # -------------------------------------------------------------------------
    # Cancel / return / reverse
    # -------------------------------------------------------------------------

    def cancel_batch(
        self,
        batch_id: UUID,
        reason: str,
        actor_id: UUID,
        actor_name: str = "",
        expected_version: int | None = None,
    ) -> PayrollBatch:
        """Cancel a batch that has not been approved yet."""
        model = self._load(batch_id, expected_version)
        batch = model.to_dto()
        self._require_status(batch, "cancel_batch", CANCELLABLE_BATCH_STATUSES)
        saved = self._save(
            model,
            self._transition(
                batch, BatchStatus.CANCELLED, actor_id, actor_name, f"Cancelled: {reason}",
                cancellation_reason=reason,
            ),
            actor_id,
        )
        logger.info("batch_cancelled", extra={"batch_id": str(batch_id), "reason": reason})
        return saved

    def return_to_draft(
        self,
        batch_id: UUID,
        actor_id: UUID,
        actor_name: str = "",
        reason: str | None = None,
        expected_version: int | None = None,
    ) -> PayrollBatch:
        """CALCULATED -> DRAFT for recalculation; REVERSED -> DRAFT to restart.

        Restarting a reversed batch clears its aggregates, errors and
        payments and unlinks its records.
        """
        model = self._load(batch_id, expected_version)
        batch = model.to_dto()
        self._require_status(batch, "return_to_draft", (BatchStatus.CALCULATED, BatchStatus.REVERSED))

        if batch.status is BatchStatus.CALCULATED:
            updated = self._transition(
                batch, BatchStatus.DRAFT, actor_id, actor_name,
                reason or "Returned to draft for recalculation",
            )
        else:
            for payroll_id in batch.payroll_ids:
                self._builder.link_to_batch(payroll_id, None)
            updated = self._transition(
                batch,
                BatchStatus.DRAFT,
                actor_id,
                actor_name,
                reason or "Restarted after reversal",
                payroll_ids=(),
                employee_count=0,
                calculated_count=0,
                error_count=0,
                errors=(),
                totals=BatchTotals(),
                payment_batches=(),
                payment_status=PaymentStatus.PENDING,
                paid_amount=ZERO,
                pending_amount=ZERO,
                reversal_reason=None,
            )
        return self._save(model, updated, actor_id)

    def reverse_batch(
        self,
        batch_id: UUID,
        reason: str,
        actor_id: UUID,
        actor_name: str = "",
        expected_version: int | None = None,
    ) -> PayrollBatch:
        """Reverse a PAID batch: records reversed, YTD contributions backed out."""
        model = self._load(batch_id, expected_version)
        batch = model.to_dto()
        self._require_status(batch, "reverse_batch", (BatchStatus.PAID,))
        updated = self._transition(
            batch, BatchStatus.REVERSED, actor_id, actor_name, f"Reversed: {reason}",
            reversal_reason=reason,
        )
        self._builder.reverse(batch.payroll_ids, actor_id)
        saved = self._save(model, updated, actor_id)
        logger.info(
            "batch_reversed",
            extra={
                "batch_id": str(batch_id),
                "reason": reason,
                "record_count": len(batch.payroll_ids),
            },
        )
        return saved

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_batch(self, batch_id: UUID) -> PayrollBatch:
        return self._batches.get(batch_id)

    def list_batches(
        self,
        subsidiary_id: str,
        year: int | None = None,
        statuses: Iterable[BatchStatus] | None = None,
    ) -> list[PayrollBatch]:
        return self._batches.list_batches(subsidiary_id, year, statuses)

    def get_batch_statistics(self, subsidiary_id: str, year: int) -> BatchStatistics:
        return self._batches.statistics(subsidiary_id, year)

    def get_batch_payrolls(self, batch_id: UUID) -> list[EmployeePayroll]:
        batch = self._batches.get(batch_id)
        return self._records.list_by_ids(batch.payroll_ids)
