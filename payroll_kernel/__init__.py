"""
Payroll Kernel

Shared foundations for the payroll engine:
- Structured JSON logging
- Typed exception hierarchy with machine-readable codes
- Injectable clock and declarative workflow value objects
- Currency rounding policy
- SQLAlchemy declarative base and engine/session management
"""

__version__ = "0.1.0"
