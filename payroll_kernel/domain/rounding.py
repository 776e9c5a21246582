"""
Currency rounding policy.

Responsibility:
    The single sanctioned place where monetary amounts are rounded.  Payroll
    amounts are whole Uganda shillings: every line item, tax component and
    aggregate is rounded to zero decimal places with one configurable method.

Invariants enforced:
    - ``round_currency`` output is always a finite, non-negative ``Decimal`` with no fractional
      part; non-finite or negative inputs clamp to ``Decimal("0")``.
    - ``round_total`` applies the same method to aggregates but keeps
      their sign, so sums of signed line items are preserved.
    - ``round`` is half-up (0.5 rounds away from zero).

Non-goals:
    Reconciling sum-of-rounded-parts against rounded-sum.  Aggregates are
    sums of already-rounded items and may drift from the unrounded total by a
    few units.
"""

from __future__ import annotations

from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum

ZERO = Decimal("0")
_WHOLE_UNIT = Decimal("1")


class RoundingMethod(str, Enum):
    ROUND = "round"
    FLOOR = "floor"
    CEIL = "ceil"


_DECIMAL_MODES = {
    RoundingMethod.ROUND: ROUND_HALF_UP,
    RoundingMethod.FLOOR: ROUND_FLOOR,
    RoundingMethod.CEIL: ROUND_CEILING,
}


def to_decimal(value: object) -> Decimal:
    """Coerce numbers and numeric strings to Decimal; garbage becomes NaN."""
    if isinstance(value, Decimal):
        return value
    if value is None:
        return Decimal("NaN")
    try:
        # str() keeps floats like 0.1 from dragging binary noise along
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return Decimal("NaN")


def clamp_amount(value: object) -> Decimal:
    """Return ``value`` as Decimal, or 0 when it is non-finite or negative."""
    amount = to_decimal(value)
    if not amount.is_finite() or amount < ZERO:
        return ZERO
    return amount


def round_currency(
    value: object,
    method: RoundingMethod | str = RoundingMethod.ROUND,
) -> Decimal:
    """
    Round an amount to a whole currency unit.

    Preconditions: ``method`` is a RoundingMethod or its string value.
    Postconditions: result is an integral, non-negative Decimal.
    """
    return round_total(clamp_amount(value), method)


def round_total(
    amount: Decimal,
    method: RoundingMethod | str = RoundingMethod.ROUND,
) -> Decimal:
    """Round an aggregate to a whole unit without clamping; the sign is kept."""
    return amount.quantize(_WHOLE_UNIT, rounding=_DECIMAL_MODES[RoundingMethod(method)])


def round_rate(value: Decimal, places: int = 4) -> Decimal:
    """Round a ratio (effective tax rate, proration factor) for display."""
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
