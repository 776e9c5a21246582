"""
Payroll Modules.

Services, ORM models, workflows and selectors over the payroll kernel and
engines.  Each module contains:
- Domain models (frozen DTOs)
- ORM persistence models
- Workflows (state machines)
- Selectors (read-only queries)
- A service facade

Modules:
- Records: per-employee payroll calculation, YTD tracking, outputs
- Batches: subsidiary payroll runs, approvals, payments, reversal
"""
