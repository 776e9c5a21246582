"""
Module ORM Registry (``payroll_modules._orm_registry``).

Responsibility
--------------
Ensure every module-level SQLAlchemy ORM model is imported so that
``Base.metadata`` contains its table definition before tables are created
or dropped.  ``payroll_kernel.db.engine.create_tables()`` calls this.

Architecture position
---------------------
**Modules layer** -- utility.  MUST NOT be imported at module level by
``payroll_kernel``; the engine imports it lazily.
"""


def import_all_orm_models() -> None:
    """Import every ``payroll_modules.*.orm`` module (idempotent)."""
    import payroll_modules.batches.orm  # noqa: F401
    import payroll_modules.records.orm  # noqa: F401
