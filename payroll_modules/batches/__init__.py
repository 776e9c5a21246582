"""
Payroll Batches Module (``payroll_modules.batches``).

A subsidiary's payroll run for one period: roster calculation, the
HR / finance / CEO approval chain, payment partitioning and completion,
cancellation and reversal.
"""

from payroll_modules.batches.models import (
    ApprovalAction,
    ApprovalLevel,
    BatchProgress,
    BatchStatus,
    PaymentStatus,
    PayrollBatch,
)
from payroll_modules.batches.service import BatchLifecycleService
from payroll_modules.batches.workflows import PAYROLL_BATCH_WORKFLOW

__all__ = [
    "ApprovalAction",
    "ApprovalLevel",
    "BatchLifecycleService",
    "BatchProgress",
    "BatchStatus",
    "PAYROLL_BATCH_WORKFLOW",
    "PaymentStatus",
    "PayrollBatch",
]
