"""Payroll record workflow.

Linear lifecycle for one employee's payroll: calculated records are
reviewed and approved alongside their batch, paid when the batch's payment
completes, and reversible only once paid.  Recalculation rewrites a record
back to ``calculated`` from any state except ``paid``.
"""

from payroll_kernel.domain.workflow import Guard, Transition, Workflow
from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.records.workflows")


NOT_PAID = Guard(
    name="not_paid",
    description="Paid records are immutable except for reversal",
)

PAYROLL_RECORD_WORKFLOW = Workflow(
    name="employee_payroll",
    description="Per-employee payroll record lifecycle",
    initial_state="draft",
    states=("draft", "calculated", "reviewed", "approved", "paid", "reversed"),
    transitions=(
        Transition("draft", "calculated", action="calculate"),
        Transition("calculated", "reviewed", action="review"),
        Transition("reviewed", "approved", action="approve"),
        Transition("approved", "paid", action="pay"),
        Transition("paid", "reversed", action="reverse"),
        Transition("calculated", "calculated", action="recalculate", guard=NOT_PAID),
        Transition("reviewed", "calculated", action="recalculate", guard=NOT_PAID),
        Transition("approved", "calculated", action="recalculate", guard=NOT_PAID),
        Transition("reversed", "calculated", action="recalculate", guard=NOT_PAID),
    ),
)

logger.info(
    "payroll_record_workflow_registered",
    extra={
        "workflow": PAYROLL_RECORD_WORKFLOW.name,
        "states": list(PAYROLL_RECORD_WORKFLOW.states),
        "transitions": len(PAYROLL_RECORD_WORKFLOW.transitions),
    },
)
