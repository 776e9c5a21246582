"""
Typed exception hierarchy for the payroll engine.

Every error raised by the engine is a ``PayrollKernelError`` subclass with a
static ``code`` class attribute and its context stored as attributes, so
callers branch on type and report ``code`` instead of parsing messages.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PayrollKernelError (base)
    |
    +-- PreconditionError                 (abort ONE employee, batch continues)
    |   +-- EmployeeNotFoundError
    |   +-- NoActiveContractError
    |   +-- InvalidEmploymentStatusError
    |   +-- AlreadyCalculatedError
    |
    +-- WorkflowError                     (action rejected, state unchanged)
    |   +-- InvalidStatusTransitionError
    |   +-- HasCalculationErrorsError
    |   +-- InvalidStateError
    |   +-- PayrollRecordLockedError
    |   +-- BatchAlreadyExistsError
    |
    +-- NotFoundError
    |   +-- BatchNotFoundError
    |   +-- PayrollRecordNotFoundError
    |   +-- PaymentBatchNotFoundError
    |
    +-- ConcurrencyError                  (caller retries with fresh state)
    |   +-- ConcurrentModificationError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                        | When Raised
--------------|-----------------------------|-------------------------------------------
Precondition  | EMPLOYEE_NOT_FOUND          | Directory has no such employee
              | NO_ACTIVE_CONTRACT          | Employee has no active compensation
              | INVALID_EMPLOYMENT_STATUS   | Status is not active / on_leave
              | ALREADY_CALCULATED          | Record exists and recalculate is off
--------------|-----------------------------|-------------------------------------------
Workflow      | INVALID_STATUS_TRANSITION   | Transition absent from the workflow table
              | HAS_CALCULATION_ERRORS      | Submit attempted with error_count > 0
              | INVALID_STATE               | Operation not allowed in current status
              | PAYROLL_RECORD_LOCKED       | Recalculation of a paid record
              | BATCH_ALREADY_EXISTS        | Active batch already covers the period
--------------|-----------------------------|-------------------------------------------
Not found     | BATCH_NOT_FOUND             | Unknown batch id
              | PAYROLL_RECORD_NOT_FOUND    | Unknown payroll record
              | PAYMENT_BATCH_NOT_FOUND     | Unknown payment sub-batch id
--------------|-----------------------------|-------------------------------------------
Concurrency   | CONCURRENT_MODIFICATION     | Stale version on write
--------------|-----------------------------|-------------------------------------------
Configuration | CONFIGURATION_ERROR         | Statutory configuration set is invalid

Partial batch failure is NOT an exception: precondition errors raised while
calculating a batch are caught per employee and stored on the batch.
"""

from uuid import UUID


class PayrollKernelError(Exception):
    """
    Base exception for all payroll engine errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    identification.
    """

    code: str = "PAYROLL_KERNEL_ERROR"


# Precondition errors


class PreconditionError(PayrollKernelError):
    """Base for errors that abort a single employee's calculation."""

    code: str = "PRECONDITION_ERROR"


class EmployeeNotFoundError(PreconditionError):
    """Employee id is unknown to the employee directory."""

    code: str = "EMPLOYEE_NOT_FOUND"

    def __init__(self, employee_id: str):
        self.employee_id = employee_id
        super().__init__(f"Employee not found: {employee_id}")


class NoActiveContractError(PreconditionError):
    """Employee has no active contract / compensation structure."""

    code: str = "NO_ACTIVE_CONTRACT"

    def __init__(self, employee_id: str):
        self.employee_id = employee_id
        super().__init__(f"No active contract for employee {employee_id}")


class InvalidEmploymentStatusError(PreconditionError):
    """Employee's employment status does not allow payment."""

    code: str = "INVALID_EMPLOYMENT_STATUS"

    def __init__(self, employee_id: str, status: str):
        self.employee_id = employee_id
        self.status = status
        super().__init__(
            f"Employee {employee_id} has status '{status}' and cannot be paid"
        )


class AlreadyCalculatedError(PreconditionError):
    """A payroll record already exists for the employee and period."""

    code: str = "ALREADY_CALCULATED"

    def __init__(self, employee_id: str, year: int, month: int):
        self.employee_id = employee_id
        self.year = year
        self.month = month
        super().__init__(
            f"Payroll already calculated for employee {employee_id} "
            f"in {year}-{month:02d}"
        )


# Workflow errors


class WorkflowError(PayrollKernelError):
    """Base for errors that reject a requested action entirely."""

    code: str = "WORKFLOW_ERROR"


class InvalidStatusTransitionError(WorkflowError):
    """Requested status change is not in the workflow's transition table."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, entity_type: str, from_status: str, to_status: str):
        self.entity_type = entity_type
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid {entity_type} status transition: "
            f"{from_status} -> {to_status}"
        )


class HasCalculationErrorsError(WorkflowError):
    """Batch cannot be submitted while employees failed to calculate."""

    code: str = "HAS_CALCULATION_ERRORS"

    def __init__(self, batch_id: UUID, error_count: int):
        self.batch_id = batch_id
        self.error_count = error_count
        super().__init__(
            f"Batch {batch_id} has {error_count} calculation error(s); "
            "resolve them before submitting for review"
        )


class InvalidStateError(WorkflowError):
    """Operation is not permitted in the entity's current status."""

    code: str = "INVALID_STATE"

    def __init__(self, operation: str, status: str, allowed: tuple[str, ...] = ()):
        self.operation = operation
        self.status = status
        self.allowed = allowed
        detail = f"; allowed from: {', '.join(allowed)}" if allowed else ""
        super().__init__(
            f"Cannot {operation} in status '{status}'{detail}"
        )


class PayrollRecordLockedError(WorkflowError):
    """Paid payroll records are immutable except for reversal."""

    code: str = "PAYROLL_RECORD_LOCKED"

    def __init__(self, payroll_id: UUID, status: str):
        self.payroll_id = payroll_id
        self.status = status
        super().__init__(
            f"Payroll record {payroll_id} is {status} and cannot be recalculated"
        )


class BatchAlreadyExistsError(WorkflowError):
    """An active batch already exists for the subsidiary and period."""

    code: str = "BATCH_ALREADY_EXISTS"

    def __init__(self, subsidiary_id: str, year: int, month: int, batch_number: str):
        self.subsidiary_id = subsidiary_id
        self.year = year
        self.month = month
        self.batch_number = batch_number
        super().__init__(
            f"Active payroll batch {batch_number} already exists for "
            f"{subsidiary_id} {year}-{month:02d}"
        )


# Not-found errors


class NotFoundError(PayrollKernelError):
    code: str = "NOT_FOUND"


class BatchNotFoundError(NotFoundError):
    code: str = "BATCH_NOT_FOUND"

    def __init__(self, batch_id: UUID):
        self.batch_id = batch_id
        super().__init__(f"Payroll batch not found: {batch_id}")


class PayrollRecordNotFoundError(NotFoundError):
    code: str = "PAYROLL_RECORD_NOT_FOUND"

    def __init__(self, payroll_id: UUID):
        self.payroll_id = payroll_id
        super().__init__(f"Payroll record not found: {payroll_id}")


class PaymentBatchNotFoundError(NotFoundError):
    code: str = "PAYMENT_BATCH_NOT_FOUND"

    def __init__(self, batch_id: UUID, payment_batch_id: str):
        self.batch_id = batch_id
        self.payment_batch_id = payment_batch_id
        super().__init__(
            f"Payment batch {payment_batch_id} not found in batch {batch_id}"
        )


# Concurrency errors


class ConcurrencyError(PayrollKernelError):
    code: str = "CONCURRENCY_ERROR"


class ConcurrentModificationError(ConcurrencyError):
    """A write was attempted against a stale version of an entity."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        versions = ""
        if expected_version is not None:
            versions = f" (expected v{expected_version}, found v{actual_version})"
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id}{versions}: "
            "reload and retry"
        )


# Configuration errors


class ConfigurationError(PayrollKernelError):
    """Statutory configuration set failed validation."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, source: str, problems: list[str]):
        self.source = source
        self.problems = problems
        super().__init__(
            f"Invalid payroll configuration '{source}': " + "; ".join(problems)
        )
