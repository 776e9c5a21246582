"""
Tests for BatchLifecycleService.

Walks the 13-state batch lifecycle end to end:
create -> calculate -> HR / finance / CEO approval -> payments -> paid,
plus the side paths (return, reject, cancel, reverse, restart).

Roster used by most tests (kampala-hq, September 2024):

    EMP001  1,000,000  Stanbic Bank     net   745,000
    EMP002  2,000,000  Centenary Bank   net 1,404,000
    EMP003    800,000  MTN mobile money net   615,000
    EMP004  terminated (never on the roster)
"""

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from payroll_engines.partition import PaymentBatchStatus, PaymentMethod
from payroll_kernel.exceptions import (
    BatchAlreadyExistsError,
    BatchNotFoundError,
    HasCalculationErrorsError,
    InvalidStateError,
    InvalidStatusTransitionError,
    PaymentBatchNotFoundError,
)
from payroll_modules.batches.models import (
    ApprovalAction,
    ApprovalLevel,
    BatchStatus,
    PaymentStatus,
)
from payroll_modules.batches.service import BatchLifecycleService
from payroll_modules.records.models import EmploymentStatus, PayrollStatus
from payroll_modules.records.selectors import PayrollRecordSelector
from payroll_modules.records.service import PayrollRecordBuilder
from tests.factories import SUBSIDIARY_ID, make_employee

TOTAL_NET = Decimal("2764000")


@pytest.fixture
def roster(directory):
    employees = [
        make_employee("emp-001", "EMP001", "1000000", bank="Stanbic Bank"),
        make_employee(
            "emp-002", "EMP002", "2000000",
            first_name="Joseph", last_name="Okello", bank="Centenary Bank",
        ),
        make_employee(
            "emp-003", "EMP003", "800000",
            first_name="Grace", last_name="Atim", bank=None, mobile_provider="MTN",
        ),
        make_employee(
            "emp-004", "EMP004", "900000",
            employment_status=EmploymentStatus.TERMINATED,
        ),
    ]
    for employee in employees:
        directory.add(employee)
    return employees


@pytest.fixture
def draft(batch_service, roster, test_actor_id):
    return batch_service.create_batch(
        SUBSIDIARY_ID, 2024, 9, test_actor_id, actor_name="Payroll Officer",
    )


@pytest.fixture
def calculated(batch_service, draft, test_actor_id):
    return batch_service.calculate_batch(draft.id, test_actor_id)


@pytest.fixture
def approved(batch_service, calculated, test_actor_id):
    batch_service.submit_for_review(calculated.id, test_actor_id)
    batch_service.process_approval(calculated.id, "approve", test_actor_id, actor_name="HR Manager")
    return batch_service.process_approval(
        calculated.id, ApprovalAction.APPROVE, test_actor_id, actor_name="Finance Manager",
    )


@pytest.fixture
def processing(batch_service, approved, test_actor_id):
    return batch_service.process_payments(approved.id, test_actor_id)


def _pay_all(batch_service, batch, actor_id):
    for payment_batch in batch.payment_batches:
        batch = batch_service.complete_payment_batch(
            batch.id,
            payment_batch.id,
            PaymentBatchStatus.COMPLETED,
            payment_batch.employee_count,
            actor_id,
            reference=f"BANK-{payment_batch.id}",
        )
    return batch


def _notes(batch):
    return [entry.notes for entry in batch.status_history]


# =============================================================================
# Create
# =============================================================================


class TestCreateBatch:

    def test_draft_created(self, draft, test_actor_id):
        assert draft.status is BatchStatus.DRAFT
        assert draft.batch_number == "PAY-KAM-202409-01"
        assert draft.period_start == date(2024, 9, 1)
        assert draft.period_end == date(2024, 9, 30)
        assert draft.payment_date == date(2024, 9, 28)
        assert draft.approval_thresholds.ceo_threshold == Decimal("100000000")
        assert draft.created_by == test_actor_id
        assert _notes(draft) == ["Batch created"]
        assert draft.status_history[0].actor_name == "Payroll Officer"

    def test_explicit_subsidiary_code(self, batch_service, test_actor_id):
        batch = batch_service.create_batch(
            "sub-9f2c", 2024, 10, test_actor_id, subsidiary_code="gul",
        )
        assert batch.batch_number == "PAY-GUL-202410-01"

    def test_duplicate_period_rejected(self, batch_service, draft, test_actor_id):
        with pytest.raises(BatchAlreadyExistsError) as exc_info:
            batch_service.create_batch(SUBSIDIARY_ID, 2024, 9, test_actor_id)
        assert exc_info.value.code == "BATCH_ALREADY_EXISTS"

    def test_sequence_continues_after_cancel(self, batch_service, draft, test_actor_id):
        batch_service.cancel_batch(draft.id, "Wrong department filter", test_actor_id)
        second = batch_service.create_batch(SUBSIDIARY_ID, 2024, 9, test_actor_id)
        assert second.batch_number == "PAY-KAM-202409-02"

    def test_other_subsidiary_independent(self, batch_service, draft, test_actor_id):
        other = batch_service.create_batch("entebbe-branch", 2024, 9, test_actor_id)
        assert other.batch_number == "PAY-ENT-202409-01"

    def test_invalid_month(self, batch_service, test_actor_id):
        with pytest.raises(ValueError):
            batch_service.create_batch(SUBSIDIARY_ID, 2024, 0, test_actor_id)

    def test_logged(self, batch_service, roster, test_actor_id, captured_logs):
        batch_service.create_batch(SUBSIDIARY_ID, 2024, 11, test_actor_id)
        created = [r for r in captured_logs() if r["message"] == "batch_created"]
        assert created[0]["batch_number"] == "PAY-KAM-202411-01"

    def test_unknown_batch(self, batch_service, test_actor_id):
        from uuid import uuid4

        with pytest.raises(BatchNotFoundError):
            batch_service.calculate_batch(uuid4(), test_actor_id)


# =============================================================================
# Calculate
# =============================================================================


class TestCalculateBatch:

    def test_calculates_payable_roster(self, calculated):
        assert calculated.status is BatchStatus.CALCULATED
        assert calculated.employee_count == 3
        assert calculated.calculated_count == 3
        assert calculated.error_count == 0
        assert len(calculated.payroll_ids) == 3

    def test_totals(self, calculated):
        totals = calculated.totals
        assert totals.gross_pay == Decimal("3800000")
        assert totals.paye == Decimal("846000")
        assert totals.nssf_employee == Decimal("180000")
        assert totals.nssf_employer == Decimal("360000")
        assert totals.lst == Decimal("10000")
        assert totals.net_pay == TOTAL_NET
        assert calculated.pending_amount == TOTAL_NET
        assert not calculated.approval_thresholds.ceo_required

    def test_history(self, calculated):
        assert _notes(calculated) == [
            "Batch created",
            "Starting calculation",
            "Calculated 3 of 3 employees",
        ]
        assert [e.status for e in calculated.status_history] == [
            BatchStatus.DRAFT, BatchStatus.CALCULATING, BatchStatus.CALCULATED,
        ]

    def test_records_linked(self, batch_service, calculated):
        records = batch_service.get_batch_payrolls(calculated.id)
        assert {r.employee_number for r in records} == {"EMP001", "EMP002", "EMP003"}
        assert all(r.payroll_period_id == calculated.id for r in records)
        assert all(r.status is PayrollStatus.CALCULATED for r in records)

    def test_only_from_draft(self, batch_service, calculated, test_actor_id):
        with pytest.raises(InvalidStateError) as exc_info:
            batch_service.calculate_batch(calculated.id, test_actor_id)
        assert exc_info.value.code == "INVALID_STATE"

    def test_employee_failure_recorded_not_raised(
        self, batch_service, directory, draft, test_actor_id, captured_logs,
    ):
        directory.add(
            make_employee("emp-005", "EMP005", first_name="Peter", last_name="Mugisha",
                          with_contract=False)
        )
        batch = batch_service.calculate_batch(draft.id, test_actor_id)

        assert batch.status is BatchStatus.CALCULATED
        assert batch.employee_count == 4
        assert batch.calculated_count == 3
        assert batch.error_count == 1
        error = batch.errors[0]
        assert error.employee_id == "emp-005"
        assert error.employee_name == "Peter Mugisha"
        assert error.error_code == "NO_ACTIVE_CONTRACT"
        assert _notes(batch)[-1] == "Calculated 3 of 4 employees, 1 failed"
        assert batch.totals.net_pay == TOTAL_NET
        assert any(r["message"] == "employee_payroll_failed" for r in captured_logs())

    def test_submit_blocked_by_errors(self, batch_service, directory, draft, test_actor_id):
        directory.add(make_employee("emp-005", "EMP005", with_contract=False))
        batch = batch_service.calculate_batch(draft.id, test_actor_id)

        with pytest.raises(HasCalculationErrorsError):
            batch_service.submit_for_review(batch.id, test_actor_id)

    def test_progress_callback(self, batch_service, draft, test_actor_id):
        progress = []
        batch_service.calculate_batch(draft.id, test_actor_id, on_progress=progress.append)

        assert len(progress) == 3
        assert [p.completed for p in progress] == [1, 2, 3]
        assert all(p.total == 3 for p in progress)
        assert progress[-1].current_employee == "Grace Atim"

    def test_parallel_matches_sequential(self, batch_service, draft, test_actor_id):
        batch = batch_service.calculate_batch(draft.id, test_actor_id, max_workers=2)

        assert batch.calculated_count == 3
        assert batch.totals.net_pay == TOTAL_NET

    def test_department_filter(self, batch_service, directory, roster, test_actor_id):
        directory.add(
            make_employee("emp-010", "EMP010", department_id="dept-ops", department_name="Ops")
        )
        batch = batch_service.create_batch(
            SUBSIDIARY_ID, 2024, 10, test_actor_id, department_ids=["dept-ops"],
        )
        batch = batch_service.calculate_batch(batch.id, test_actor_id)
        assert batch.employee_count == 1

    def test_explicit_ids_fetched_in_chunks(self, batch_service, directory, test_actor_id):
        ids = []
        for n in range(1, 13):
            employee = make_employee(f"emp-{n:03d}", f"EMP{n:03d}")
            directory.add(employee)
            ids.append(employee.employee_id)
        ids.append("ghost")

        batch = batch_service.create_batch(
            SUBSIDIARY_ID, 2024, 9, test_actor_id, employee_ids=ids,
        )
        batch = batch_service.calculate_batch(batch.id, test_actor_id)

        assert [len(q) for q in directory.queries] == [10, 3]
        assert batch.employee_count == 13
        assert batch.calculated_count == 12
        assert batch.errors[0].error_code == "EMPLOYEE_NOT_FOUND"

    def test_recalculation_after_return_to_draft(
        self, batch_service, directory, calculated, session, test_actor_id,
    ):
        batch = batch_service.return_to_draft(calculated.id, test_actor_id)
        assert batch.status is BatchStatus.DRAFT
        assert _notes(batch)[-1] == "Returned to draft for recalculation"

        directory.add(make_employee("emp-001", "EMP001", "1200000"))
        directory.add(
            make_employee("emp-003", "EMP003", "800000",
                          employment_status=EmploymentStatus.TERMINATED)
        )
        batch = batch_service.calculate_batch(batch.id, test_actor_id)

        assert batch.calculated_count == 2
        assert len(batch.payroll_ids) == 2

        selector = PayrollRecordSelector(session)
        # YTD holds exactly one September contribution
        assert selector.get_ytd("emp-001", "2024-2025").gross_earnings == Decimal("1200000")
        dropped = selector.find_for_period("emp-003", 2024, 9)
        assert dropped.payroll_period_id is None


# =============================================================================
# Review and approval
# =============================================================================


class TestApproval:

    def test_submit_for_review(self, batch_service, calculated, test_actor_id):
        batch = batch_service.submit_for_review(calculated.id, test_actor_id)
        assert batch.status is BatchStatus.HR_REVIEW
        assert _notes(batch)[-1] == "Submitted for HR review"

    def test_hr_approval_moves_to_finance(self, batch_service, calculated, test_actor_id):
        batch_service.submit_for_review(calculated.id, test_actor_id)
        batch = batch_service.process_approval(
            calculated.id, "approve", test_actor_id, comments="Headcount verified",
        )

        assert batch.status is BatchStatus.FINANCE_REVIEW
        assert _notes(batch)[-2:] == ["HR approve: Headcount verified", "Moving to finance review"]
        record = batch.approval_records[0]
        assert record.level is ApprovalLevel.HR
        assert record.previous_status is BatchStatus.HR_REVIEW
        assert record.new_status is BatchStatus.HR_APPROVED

        records = batch_service.get_batch_payrolls(batch.id)
        assert all(r.status is PayrollStatus.REVIEWED for r in records)

    def test_finance_approval_below_threshold(self, approved, batch_service):
        assert approved.status is BatchStatus.APPROVED
        assert _notes(approved)[-2:] == ["FINANCE approve: No comments", "Fully approved"]
        assert [r.level for r in approved.approval_records] == [
            ApprovalLevel.HR, ApprovalLevel.FINANCE,
        ]
        records = batch_service.get_batch_payrolls(approved.id)
        assert all(r.status is PayrollStatus.APPROVED for r in records)

    def test_hr_return(self, batch_service, calculated, test_actor_id):
        batch_service.submit_for_review(calculated.id, test_actor_id)
        batch = batch_service.process_approval(
            calculated.id, ApprovalAction.RETURN, test_actor_id, comments="Check overtime",
        )
        assert batch.status is BatchStatus.CALCULATED
        assert _notes(batch)[-1] == "HR return: Check overtime"

        # returned batches can be resubmitted
        assert batch_service.submit_for_review(batch.id, test_actor_id).status is BatchStatus.HR_REVIEW

    def test_finance_return_and_resubmit(self, batch_service, calculated, test_actor_id):
        batch_service.submit_for_review(calculated.id, test_actor_id)
        batch_service.process_approval(calculated.id, "approve", test_actor_id)
        batch = batch_service.process_approval(calculated.id, "return", test_actor_id)
        assert batch.status is BatchStatus.HR_APPROVED

        batch = batch_service.resubmit_for_approval(batch.id, test_actor_id)
        assert batch.status is BatchStatus.FINANCE_REVIEW
        assert _notes(batch)[-1] == "Resubmitted for finance review"

    def test_submit_only_from_calculated(self, batch_service, calculated, test_actor_id):
        batch_service.submit_for_review(calculated.id, test_actor_id)
        batch_service.process_approval(calculated.id, "approve", test_actor_id)
        batch = batch_service.process_approval(calculated.id, "return", test_actor_id)

        with pytest.raises(InvalidStateError):
            batch_service.submit_for_review(batch.id, test_actor_id)
        assert batch_service.get_batch(batch.id).status is BatchStatus.HR_APPROVED

    def test_resubmit_requires_returned_batch(self, batch_service, calculated, test_actor_id):
        with pytest.raises(InvalidStateError):
            batch_service.resubmit_for_approval(calculated.id, test_actor_id)

    def test_reject_cancels(self, batch_service, calculated, test_actor_id):
        batch_service.submit_for_review(calculated.id, test_actor_id)
        batch = batch_service.process_approval(
            calculated.id, "reject", test_actor_id, comments="Duplicate run",
        )
        assert batch.status is BatchStatus.CANCELLED
        assert batch.cancellation_reason == "Duplicate run"

    def test_approval_outside_review(self, batch_service, calculated, test_actor_id):
        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            batch_service.process_approval(calculated.id, "approve", test_actor_id)
        assert exc_info.value.from_status == "calculated"

    def test_approve_draft_rejected(self, batch_service, draft, test_actor_id):
        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            batch_service.process_approval(draft.id, "approve", test_actor_id)

        assert exc_info.value.code == "INVALID_STATUS_TRANSITION"
        assert exc_info.value.from_status == "draft"
        batch = batch_service.get_batch(draft.id)
        assert batch.status is BatchStatus.DRAFT
        assert batch.approval_records == ()

    def test_unknown_action(self, batch_service, calculated, test_actor_id):
        with pytest.raises(ValueError):
            batch_service.process_approval(calculated.id, "escalate", test_actor_id)


class TestCEOApproval:

    @pytest.fixture
    def low_threshold_service(
        self, session, directory, overtime_loans, config, deterministic_clock,
    ):
        config = replace(config, batch=replace(config.batch, ceo_approval_threshold=Decimal("2000000")))
        builder = PayrollRecordBuilder(
            session, directory, overtime_loans, config=config, clock=deterministic_clock,
        )
        return BatchLifecycleService(
            session, directory, overtime_loans,
            config=config, clock=deterministic_clock, builder=builder,
        )

    @pytest.fixture
    def at_ceo(self, low_threshold_service, roster, test_actor_id):
        service = low_threshold_service
        batch = service.create_batch(SUBSIDIARY_ID, 2024, 9, test_actor_id)
        batch = service.calculate_batch(batch.id, test_actor_id)
        assert batch.approval_thresholds.ceo_required
        service.submit_for_review(batch.id, test_actor_id)
        service.process_approval(batch.id, "approve", test_actor_id)
        return service.process_approval(batch.id, "approve", test_actor_id)

    def test_threshold_routes_to_ceo(self, at_ceo):
        assert at_ceo.status is BatchStatus.CEO_REVIEW
        assert _notes(at_ceo)[-1] == "Moving to CEO review (threshold exceeded)"

    def test_ceo_approval(self, low_threshold_service, at_ceo, test_actor_id):
        batch = low_threshold_service.process_approval(
            at_ceo.id, "approve", test_actor_id, actor_name="CEO", comments="OK",
        )
        assert batch.status is BatchStatus.APPROVED
        assert batch.approval_records[-1].level is ApprovalLevel.CEO
        assert _notes(batch)[-1] == "CEO approve: OK"

    def test_ceo_return_and_resubmit(self, low_threshold_service, at_ceo, test_actor_id):
        batch = low_threshold_service.process_approval(at_ceo.id, "return", test_actor_id)
        assert batch.status is BatchStatus.FINANCE_APPROVED

        batch = low_threshold_service.resubmit_for_approval(batch.id, test_actor_id)
        assert batch.status is BatchStatus.CEO_REVIEW


# =============================================================================
# Payments
# =============================================================================


class TestPayments:

    def test_partitioned_by_method_and_bank(self, processing):
        assert processing.status is BatchStatus.PROCESSING_PAYMENT
        assert [
            (p.id, p.payment_method, p.bank_name, p.total_amount)
            for p in processing.payment_batches
        ] == [
            ("PAY-KAM-202409-01-P01", PaymentMethod.BANK_TRANSFER, "Centenary Bank", Decimal("1404000")),
            ("PAY-KAM-202409-01-P02", PaymentMethod.BANK_TRANSFER, "Stanbic Bank", Decimal("745000")),
            ("PAY-KAM-202409-01-P03", PaymentMethod.MOBILE_MONEY, None, Decimal("615000")),
        ]
        assert processing.payment_status is PaymentStatus.PENDING

    def test_only_approved_batches(self, batch_service, calculated, test_actor_id):
        with pytest.raises(InvalidStateError):
            batch_service.process_payments(calculated.id, test_actor_id)

    def test_completed_sub_batch_leaves_others_pending(self, batch_service, processing, test_actor_id):
        first = processing.payment_batches[0]
        batch = batch_service.complete_payment_batch(
            processing.id, first.id, "completed", 1, test_actor_id, reference="CEN-7781",
        )

        assert batch.status is BatchStatus.PROCESSING_PAYMENT
        assert batch.payment_status is PaymentStatus.PENDING
        assert batch.paid_amount == Decimal("1404000")
        assert batch.pending_amount == TOTAL_NET - Decimal("1404000")
        assert batch.payment_batches[0].external_reference == "CEN-7781"
        assert batch.payment_batches[0].processed_at is not None

    def test_failed_sub_batch(self, batch_service, processing, test_actor_id):
        first = processing.payment_batches[0]
        payroll_id = first.payroll_ids[0]
        batch = batch_service.complete_payment_batch(
            processing.id, first.id, PaymentBatchStatus.FAILED, 0, test_actor_id,
            failed_payroll_ids=[payroll_id],
        )
        assert batch.payment_status is PaymentStatus.PARTIAL
        assert batch.paid_amount == Decimal("0")
        assert batch.payment_batches[0].failed_payroll_ids == (payroll_id,)

    def test_failure_after_completion_is_partial(self, batch_service, processing, test_actor_id):
        first, second = processing.payment_batches[:2]
        batch_service.complete_payment_batch(processing.id, first.id, "completed", 1, test_actor_id)
        batch = batch_service.complete_payment_batch(
            processing.id, second.id, "failed", 0, test_actor_id,
        )

        assert batch.status is BatchStatus.PROCESSING_PAYMENT
        assert batch.payment_status is PaymentStatus.PARTIAL
        assert batch.paid_amount == Decimal("1404000")

    def test_all_completed_marks_paid(self, batch_service, processing, overtime_loans, test_actor_id):
        batch = _pay_all(batch_service, processing, test_actor_id)

        assert batch.status is BatchStatus.PAID
        assert batch.payment_status is PaymentStatus.COMPLETE
        assert batch.paid_amount == TOTAL_NET
        assert batch.pending_amount == Decimal("0")
        assert _notes(batch)[-1] == "All payments completed"

        records = batch_service.get_batch_payrolls(batch.id)
        assert all(r.status is PayrollStatus.PAID for r in records)

    def test_unknown_payment_batch(self, batch_service, processing, test_actor_id):
        with pytest.raises(PaymentBatchNotFoundError):
            batch_service.complete_payment_batch(
                processing.id, "PAY-KAM-202409-01-P99", "completed", 1, test_actor_id,
            )

    def test_pending_is_not_an_outcome(self, batch_service, processing, test_actor_id):
        with pytest.raises(ValueError):
            batch_service.complete_payment_batch(
                processing.id, processing.payment_batches[0].id, "pending", 0, test_actor_id,
            )

    def test_cancel_payment_processing(self, batch_service, processing, test_actor_id):
        batch = batch_service.cancel_payment_processing(
            processing.id, test_actor_id, reason="Bank file rejected",
        )
        assert batch.status is BatchStatus.APPROVED
        assert batch.payment_batches == ()
        assert _notes(batch)[-1] == "Payment processing cancelled: Bank file rejected"

        # can be re-partitioned
        batch = batch_service.process_payments(batch.id, test_actor_id)
        assert len(batch.payment_batches) == 3


# =============================================================================
# Cancel / reverse / restart
# =============================================================================


class TestCancelReverse:

    def test_cancel_draft(self, batch_service, draft, test_actor_id):
        batch = batch_service.cancel_batch(draft.id, "Created by mistake", test_actor_id)
        assert batch.status is BatchStatus.CANCELLED
        assert batch.cancellation_reason == "Created by mistake"
        assert _notes(batch)[-1] == "Cancelled: Created by mistake"

    def test_cancelled_is_terminal(self, batch_service, draft, test_actor_id):
        batch_service.cancel_batch(draft.id, "x", test_actor_id)
        with pytest.raises(InvalidStateError):
            batch_service.calculate_batch(draft.id, test_actor_id)
        with pytest.raises(InvalidStateError):
            batch_service.return_to_draft(draft.id, test_actor_id)

    def test_cannot_cancel_approved(self, batch_service, approved, test_actor_id):
        with pytest.raises(InvalidStateError):
            batch_service.cancel_batch(approved.id, "too late", test_actor_id)

    def test_reverse_paid_batch(self, batch_service, processing, session, test_actor_id):
        paid = _pay_all(batch_service, processing, test_actor_id)
        batch = batch_service.reverse_batch(paid.id, "Paid twice by bank", test_actor_id)

        assert batch.status is BatchStatus.REVERSED
        assert batch.reversal_reason == "Paid twice by bank"
        records = batch_service.get_batch_payrolls(batch.id)
        assert all(r.status is PayrollStatus.REVERSED for r in records)

        selector = PayrollRecordSelector(session)
        assert selector.get_ytd("emp-001", "2024-2025").gross_earnings == Decimal("0")

    def test_reverse_requires_paid(self, batch_service, approved, test_actor_id):
        with pytest.raises(InvalidStateError):
            batch_service.reverse_batch(approved.id, "nope", test_actor_id)

    def test_restart_after_reversal(self, batch_service, processing, session, test_actor_id):
        paid = _pay_all(batch_service, processing, test_actor_id)
        batch_service.reverse_batch(paid.id, "Wrong period", test_actor_id)

        batch = batch_service.return_to_draft(paid.id, test_actor_id)
        assert batch.status is BatchStatus.DRAFT
        assert batch.payroll_ids == ()
        assert batch.totals.net_pay == Decimal("0")
        assert batch.payment_batches == ()
        assert _notes(batch)[-1] == "Restarted after reversal"

        batch = batch_service.calculate_batch(batch.id, test_actor_id)
        assert batch.calculated_count == 3
        assert batch.totals.net_pay == TOTAL_NET
        selector = PayrollRecordSelector(session)
        assert selector.get_ytd("emp-001", "2024-2025").gross_earnings == Decimal("1000000")

    def test_reversed_period_can_have_new_batch(self, batch_service, processing, test_actor_id):
        paid = _pay_all(batch_service, processing, test_actor_id)
        batch_service.reverse_batch(paid.id, "Restate", test_actor_id)

        again = batch_service.create_batch(SUBSIDIARY_ID, 2024, 9, test_actor_id)
        assert again.batch_number == "PAY-KAM-202409-02"

    def test_direct_workflow_violation_rejected(self, batch_service, draft, test_actor_id):
        with pytest.raises((InvalidStateError, InvalidStatusTransitionError)):
            batch_service.submit_for_review(draft.id, test_actor_id)


# =============================================================================
# History and queries
# =============================================================================


class TestHistoryAndQueries:

    def test_history_timestamps_strictly_increase(self, batch_service, processing, test_actor_id):
        paid = _pay_all(batch_service, processing, test_actor_id)
        stamps = [e.timestamp for e in paid.status_history]
        assert all(a < b for a, b in zip(stamps, stamps[1:]))
        assert [e.status for e in paid.status_history] == [
            BatchStatus.DRAFT,
            BatchStatus.CALCULATING,
            BatchStatus.CALCULATED,
            BatchStatus.HR_REVIEW,
            BatchStatus.HR_APPROVED,
            BatchStatus.FINANCE_REVIEW,
            BatchStatus.FINANCE_APPROVED,
            BatchStatus.APPROVED,
            BatchStatus.PROCESSING_PAYMENT,
            BatchStatus.PAID,
        ]

    def test_version_bumps_on_every_write(self, batch_service, draft, test_actor_id):
        calculated = batch_service.calculate_batch(draft.id, test_actor_id)
        assert calculated.version > draft.version

    def test_list_batches(self, batch_service, draft, test_actor_id):
        october = batch_service.create_batch(SUBSIDIARY_ID, 2024, 10, test_actor_id)
        batches = batch_service.list_batches(SUBSIDIARY_ID)
        assert [b.id for b in batches] == [october.id, draft.id]
        assert batch_service.list_batches(SUBSIDIARY_ID, statuses=[BatchStatus.CANCELLED]) == []

    def test_statistics(self, batch_service, processing, test_actor_id):
        _pay_all(batch_service, processing, test_actor_id)
        pending = batch_service.create_batch(SUBSIDIARY_ID, 2024, 10, test_actor_id)
        batch_service.calculate_batch(pending.id, test_actor_id)
        cancelled = batch_service.create_batch("kampala-hq", 2024, 11, test_actor_id)
        batch_service.cancel_batch(cancelled.id, "x", test_actor_id)

        stats = batch_service.get_batch_statistics(SUBSIDIARY_ID, 2024)
        assert stats.total_batches == 3
        assert stats.total_paid == TOTAL_NET
        assert stats.total_pending > Decimal("0")
        assert stats.by_status == {"paid": 1, "calculated": 1, "cancelled": 1}

    def test_get_batch(self, batch_service, draft):
        assert batch_service.get_batch(draft.id).batch_number == draft.batch_number
