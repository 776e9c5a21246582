"""Amount-in-words rendering for payslips (English, Uganda Shillings)."""

from __future__ import annotations

from decimal import Decimal

from payroll_kernel.domain.rounding import round_currency

CURRENCY_SUFFIX = "Uganda Shillings Only"

_ONES = ("", "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight", "Nine")
_TEENS = (
    "Ten", "Eleven", "Twelve", "Thirteen", "Fourteen",
    "Fifteen", "Sixteen", "Seventeen", "Eighteen", "Nineteen",
)
_TENS = ("", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy", "Eighty", "Ninety")
_SCALES = (
    (1_000_000_000_000, "Trillion"),
    (1_000_000_000, "Billion"),
    (1_000_000, "Million"),
    (1_000, "Thousand"),
    (1, ""),
)


def _below_thousand(n: int) -> str:
    if n < 10:
        return _ONES[n]
    if n < 20:
        return _TEENS[n - 10]
    if n < 100:
        tens, ones = divmod(n, 10)
        return _TENS[tens] + (f" {_ONES[ones]}" if ones else "")
    hundreds, rest = divmod(n, 100)
    words = f"{_ONES[hundreds]} Hundred"
    if rest:
        words += f" and {_below_thousand(rest)}"
    return words


def amount_in_words(amount: Decimal | int) -> str:
    """
    ``1250000`` -> ``"One Million Two Hundred and Fifty Thousand Uganda Shillings Only"``.

    Amounts are rounded to whole shillings first; negative or non-finite
    amounts render as an empty string.
    """
    value = Decimal(amount) if isinstance(amount, int) else amount
    if not value.is_finite() or value < 0:
        return ""
    remaining = int(round_currency(value))
    if remaining == 0:
        return f"Zero {CURRENCY_SUFFIX}"

    parts: list[str] = []
    for scale, name in _SCALES:
        if remaining >= scale:
            count, remaining = divmod(remaining, scale)
            parts.append(_below_thousand(count) + (f" {name}" if name else ""))
    return " ".join(parts) + f" {CURRENCY_SUFFIX}"
