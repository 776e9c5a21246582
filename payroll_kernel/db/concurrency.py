"""
Module: payroll_kernel.db.concurrency
Responsibility: Optimistic concurrency helpers.  Versioned models use
    SQLAlchemy's ``version_id_col``; a stale UPDATE surfaces here as
    ``ConcurrentModificationError`` instead of a driver-level exception.

Invariants enforced:
    - Every write to a versioned row increments its version by exactly one.
    - A write based on a stale version never succeeds silently.
"""

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from payroll_kernel.exceptions import ConcurrentModificationError
from payroll_kernel.logging_config import get_logger

logger = get_logger("db.concurrency")


def check_version(
    entity_type: str,
    entity_id: object,
    expected_version: int | None,
    actual_version: int,
) -> None:
    """Raise when a caller-supplied version no longer matches the stored one."""
    if expected_version is not None and expected_version != actual_version:
        logger.warning(
            "stale_version_rejected",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "expected_version": expected_version,
                "actual_version": actual_version,
            },
        )
        raise ConcurrentModificationError(
            entity_type, str(entity_id), expected_version, actual_version
        )


def flush_versioned(session: Session, entity_type: str, entity_id: object) -> None:
    """Flush pending changes, mapping StaleDataError to ConcurrentModificationError."""
    try:
        session.flush()
    except StaleDataError as exc:
        logger.warning(
            "concurrent_modification_detected",
            extra={"entity_type": entity_type, "entity_id": str(entity_id)},
        )
        raise ConcurrentModificationError(entity_type, str(entity_id)) from exc
