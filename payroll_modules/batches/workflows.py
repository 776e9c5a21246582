"""Payroll batch workflow.

Thirteen-state lifecycle: draft batches are calculated, pass HR, finance
and (above the threshold) CEO approval, have their payments processed and
end paid.  Paid batches can be reversed and restarted from draft.  Every
status write goes through ``PAYROLL_BATCH_WORKFLOW.require``.
"""

from payroll_kernel.domain.workflow import Guard, Transition, Workflow
from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.batches.workflows")


NO_CALCULATION_ERRORS = Guard(
    name="no_calculation_errors",
    description="Every employee in the batch calculated without error",
)

CEO_APPROVAL_REQUIRED = Guard(
    name="ceo_approval_required",
    description="Total net pay is at or above the CEO approval threshold",
)

CEO_APPROVAL_NOT_REQUIRED = Guard(
    name="ceo_approval_not_required",
    description="Total net pay is below the CEO approval threshold",
)

ALL_PAYMENTS_COMPLETED = Guard(
    name="all_payments_completed",
    description="Every payment sub-batch reported completed",
)

PAYROLL_BATCH_WORKFLOW = Workflow(
    name="payroll_batch",
    description="Payroll batch calculation, approval and payment lifecycle",
    initial_state="draft",
    states=(
        "draft",
        "calculating",
        "calculated",
        "hr_review",
        "hr_approved",
        "finance_review",
        "finance_approved",
        "ceo_review",
        "approved",
        "processing_payment",
        "paid",
        "cancelled",
        "reversed",
    ),
    transitions=(
        Transition("draft", "calculating", action="calculate"),
        Transition("draft", "cancelled", action="cancel"),
        Transition("calculating", "calculated", action="finish_calculation"),
        Transition("calculating", "draft", action="abort_calculation"),
        Transition("calculated", "hr_review", action="submit", guard=NO_CALCULATION_ERRORS),
        Transition("calculated", "draft", action="return_to_draft"),
        Transition("hr_review", "hr_approved", action="approve"),
        Transition("hr_review", "calculated", action="return"),
        Transition("hr_review", "cancelled", action="reject"),
        Transition("hr_approved", "finance_review", action="submit", automatic=True),
        Transition("finance_review", "finance_approved", action="approve"),
        Transition("finance_review", "hr_approved", action="return"),
        Transition("finance_review", "cancelled", action="reject"),
        Transition(
            "finance_approved", "ceo_review", action="submit",
            guard=CEO_APPROVAL_REQUIRED, automatic=True,
        ),
        Transition(
            "finance_approved", "approved", action="submit",
            guard=CEO_APPROVAL_NOT_REQUIRED, automatic=True,
        ),
        Transition("ceo_review", "approved", action="approve"),
        Transition("ceo_review", "finance_approved", action="return"),
        Transition("ceo_review", "cancelled", action="reject"),
        Transition("approved", "processing_payment", action="process_payments"),
        Transition(
            "processing_payment", "paid", action="complete_payments",
            guard=ALL_PAYMENTS_COMPLETED,
        ),
        Transition("processing_payment", "approved", action="cancel_payments"),
        Transition("paid", "reversed", action="reverse"),
        Transition("reversed", "draft", action="restart"),
    ),
    terminal_states=("cancelled",),
)

logger.info(
    "payroll_batch_workflow_registered",
    extra={
        "workflow": PAYROLL_BATCH_WORKFLOW.name,
        "states": list(PAYROLL_BATCH_WORKFLOW.states),
        "transitions": len(PAYROLL_BATCH_WORKFLOW.transitions),
    },
)
