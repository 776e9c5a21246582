"""Tests for the currency rounding policy."""

from decimal import Decimal

import pytest

from payroll_kernel.domain.rounding import (
    RoundingMethod,
    clamp_amount,
    round_currency,
    round_rate,
    round_total,
    to_decimal,
)


class TestRoundCurrency:

    @pytest.mark.parametrize(
        "value, method, expected",
        [
            ("2.5", RoundingMethod.ROUND, "3"),
            ("2.4", RoundingMethod.ROUND, "2"),
            ("2.9", RoundingMethod.FLOOR, "2"),
            ("2.1", RoundingMethod.CEIL, "3"),
            ("1000", "round", "1000"),
        ],
    )
    def test_methods(self, value, method, expected):
        assert round_currency(Decimal(value), method) == Decimal(expected)

    def test_result_is_integral(self):
        result = round_currency(Decimal("1333.3333"))
        assert result == result.to_integral_value()

    @pytest.mark.parametrize("value", [Decimal("-1"), Decimal("NaN"), Decimal("Infinity"), "abc", None])
    def test_non_finite_or_negative_clamped(self, value):
        assert round_currency(value) == Decimal("0")

    def test_float_goes_through_str(self):
        assert to_decimal(0.1) == Decimal("0.1")


class TestHelpers:

    def test_clamp_keeps_positive(self):
        assert clamp_amount("12.75") == Decimal("12.75")

    def test_round_rate(self):
        assert round_rate(Decimal(16) / Decimal(30)) == Decimal("0.5333")

    def test_round_total_keeps_sign(self):
        assert round_total(Decimal("-1500.5")) == Decimal("-1501")
        assert round_total(Decimal("-1500.5"), RoundingMethod.CEIL) == Decimal("-1500")
        assert round_total(Decimal("2764000.6"), "floor") == Decimal("2764000")
