"""
Module: payroll_kernel.selectors.base
Responsibility: Base class for read-only query selectors (payroll records,
    year-to-date aggregates, batches).
Architecture position: Kernel > Selectors.  Module selectors subclass this.

Invariants enforced:
    - Selectors never add, delete, flush or commit; the caller owns the
      session and its transaction.
    - Selectors return frozen DTOs, not ORM instances.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Contract:
        Accepts a Session from the caller and performs read-only queries.
    """

    def __init__(self, session: Session):
        self.session = session
